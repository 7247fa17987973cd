"""Mirror internal user accounts to an external system through one-to-one links."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from syncdock.domain.model import LinkRecord, MessageKind, RelationType

if TYPE_CHECKING:
    from syncdock.domain.model import UserAccount
    from syncdock.domain.ports import RemoteAccountClient, SyncRepositories

log = getLogger(__name__)

ACCOUNT_RELATION = RelationType.USER


@dataclass(slots=True)
class AccountProvisioner:
    accounts: RemoteAccountClient
    repositories: SyncRepositories

    def handle(self, kind: MessageKind, user_id: int) -> str | None:
        """Apply one account event; returns the external id the account ends up with."""

        if kind is MessageKind.OBJECT_DELETED:
            self.remove(user_id)
            return None
        if kind in {
            MessageKind.OBJECT_CREATED,
            MessageKind.OBJECT_UPDATED,
            MessageKind.OBJECT_STATUS_CHANGED,
            MessageKind.RESYNC,
        }:
            return self.synchronise(user_id)
        raise ValueError(f"Account provisioning does not handle {kind} events")

    def synchronise(self, user_id: int) -> str | None:
        account = self.repositories.user_accounts.get(user_id)
        if account is None:
            log.warning("User account %s not found; nothing to provision", user_id)
            return None

        external_id = self._linked_external_id(user_id)
        if external_id is not None and self.accounts.get_account(external_id) is None:
            log.info("Remote account %s for user %s vanished; recreating", external_id, user_id)
            self.repositories.links.delete_link(user_id, external_id, ACCOUNT_RELATION)
            external_id = None

        if external_id is None:
            external_id = self._adopt_or_create(account)
            self.repositories.links.create_link(
                LinkRecord(
                    internal_id=user_id,
                    external_id=external_id,
                    relation_type=ACCOUNT_RELATION,
                ),
                one_to_one=True,
            )
            return external_id

        self.accounts.update_account(external_id, account)
        return external_id

    def remove(self, user_id: int) -> None:
        external_id = self._linked_external_id(user_id)
        if external_id is None:
            log.info("User %s has no remote account; nothing to delete", user_id)
            return
        self.accounts.delete_account(external_id)
        self.repositories.links.delete_link(user_id, external_id, ACCOUNT_RELATION)

    def _adopt_or_create(self, account: UserAccount) -> str:
        existing = self.accounts.find_account(login=account.uid, mail=account.mail)
        if existing is not None:
            log.info("Adopting remote account %s for %s", existing.external_id, account.uid)
            self.accounts.update_account(existing.external_id, account)
            return existing.external_id
        return self.accounts.create_account(account)

    def _linked_external_id(self, user_id: int) -> str | None:
        external_ids = self.repositories.links.find_links_for(user_id, ACCOUNT_RELATION)
        return external_ids[0] if external_ids else None
