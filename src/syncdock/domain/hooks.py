"""Pluggable hooks run by the event dispatcher after an event was handled.

Hooks only see a ``HookContext``. The context is versioned so hook code can
check what it is given; new primitives bump ``HOOK_CONTEXT_VERSION``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger

    from syncdock.domain.model import EventMessage

HOOK_CONTEXT_VERSION = 1


@dataclass(frozen=True, slots=True, kw_only=True)
class HookContext:
    """Narrow set of primitives handed to hook code."""

    connector: str
    find_external_ids: Callable[[int, str], list[str]]
    notify: Callable[[str], None]
    http_get: Callable[[str], str]
    log: Logger
    version: int = HOOK_CONTEXT_VERSION


@runtime_checkable
class Hook(Protocol):
    def __call__(self, event: EventMessage, context: HookContext) -> None: ...
