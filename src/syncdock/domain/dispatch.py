"""Route domain events and manual actions to a connector."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from syncdock.domain.errors import UnknownActionError
from syncdock.domain.model import CustomAction, EventMessage, MessageKind, ReportEntry

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from syncdock.domain.connector import Connector
    from syncdock.domain.hooks import Hook, HookContext
    from syncdock.domain.ports import ReportSink

log = getLogger(__name__)

ACTION_LABELS: dict[CustomAction, str] = {
    CustomAction.TRIGGER_LOAD: "Synchronise the root record now",
    CustomAction.RELOAD_MAPPINGS: "Reload field mapping tables from the remote system",
    CustomAction.RESYNC_ALL: "Resynchronise every registered record",
}


class EventDispatcher:
    def __init__(
        self,
        connector: Connector,
        *,
        report_sink: ReportSink,
        hooks: Sequence[Hook] = (),
        hook_context: Callable[[EventMessage], HookContext] | None = None,
    ) -> None:
        if hooks and hook_context is None:
            raise ValueError("Hooks need a hook_context factory")
        self.connector = connector
        self.report_sink = report_sink
        self.hooks = tuple(hooks)
        self.hook_context = hook_context

    def dispatch(self, event: EventMessage) -> object:
        """Handle ``event``; a failure is reported under its transaction id, then re-raised."""

        log.debug("Dispatching %s (transaction %s)", event.kind, event.transaction_id)
        try:
            outcome = self._route(event)
        except Exception as exc:
            log.exception("Failure of the %s connector on %s", self.connector.name, event.kind)
            self.report_sink.report(
                ReportEntry(
                    transaction_id=event.transaction_id,
                    root_id=event.internal_id,
                    is_error=True,
                    error=exc,
                    message=f"Failure of the {self.connector.name} connector: {exc}",
                )
            )
            raise
        self._run_hooks(event)
        return outcome

    def trigger(self, action_id: str, internal_id: int | None = None) -> object:
        """Manual action entry point: an action identifier and an optional target."""

        try:
            action = CustomAction(action_id)
        except ValueError as exc:
            raise UnknownActionError(f"Unknown action {action_id!r}") from exc
        return self.dispatch(EventMessage.custom(action, internal_id=internal_id))

    @staticmethod
    def action_descriptors() -> dict[str, str]:
        return {action.value: label for action, label in ACTION_LABELS.items()}

    def _route(self, event: EventMessage) -> object:
        if event.kind is not MessageKind.CUSTOM:
            return self.connector.handle(event)
        if event.action is CustomAction.TRIGGER_LOAD:
            if event.internal_id is None:
                raise ValueError("trigger_load needs the id of the root record to load")
            return self.connector.run_root_pass(
                event.internal_id, transaction_id=event.transaction_id
            )
        if event.action is CustomAction.RELOAD_MAPPINGS:
            return self.connector.reload_mappings()
        if event.action is CustomAction.RESYNC_ALL:
            return self.connector.resync_all(transaction_id=event.transaction_id)
        raise UnknownActionError(f"Custom event without a known action: {event.action!r}")

    def _run_hooks(self, event: EventMessage) -> None:
        if not self.hooks or self.hook_context is None:
            return
        context = self.hook_context(event)
        for hook in self.hooks:
            try:
                hook(event, context)
            except Exception as exc:  # noqa: BLE001
                log.exception("Hook %r failed on %s", hook, event.kind)
                self.report_sink.report(
                    ReportEntry(
                        transaction_id=event.transaction_id,
                        root_id=event.internal_id,
                        is_error=True,
                        error=exc,
                        message=f"Hook failure on {event.kind}: {exc}",
                    )
                )
