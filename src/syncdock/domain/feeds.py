"""File-fed loading of user accounts through the reconciliation engine.

Each feed is anchored by one unscoped ``ACCOUNT_FEED`` link whose external id
is the feed name. Accounts the feed lists hang under it with their uid as
external id, so the engine's diff tells which accounts left the feed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from syncdock.domain.locks import KeyedLocks
from syncdock.domain.model import (
    LinkRecord,
    ParentLink,
    ReconciliationScope,
    RelationType,
    RemoteAccount,
    UserAccount,
)
from syncdock.domain.reconciliation import ReconciliationEngine

if TYPE_CHECKING:
    from syncdock.domain.model import ExternalRecord
    from syncdock.domain.ports import (
        AccountFeedSource,
        SyncUnitOfWorkFactory,
        UserAccountRepository,
    )
    from syncdock.domain.reconciliation import ReconciliationResult

log = getLogger(__name__)

FEED_RELATION = RelationType.ACCOUNT_FEED
FEED_ACCOUNT_RELATION = RelationType.ACCOUNT_FEED_USER
FEED_ANCHOR_ID = 0


def feed_owner(feed_name: str) -> str:
    return f"feed.{feed_name}"


def feed_scope(feed_name: str) -> ReconciliationScope:
    return ReconciliationScope(
        parent=ParentLink(
            internal_id=FEED_ANCHOR_ID, external_id=feed_name, relation_type=FEED_RELATION
        ),
        child_relation_type=FEED_ACCOUNT_RELATION,
    )


@dataclass(slots=True, kw_only=True)
class AccountFeedRecordAdapter:
    """Upserts user accounts by uid; accounts missing from the feed are deactivated."""

    feed: AccountFeedSource
    accounts: UserAccountRepository
    deactivate_missing: bool = True

    def fetch_external_children(self, scope: ReconciliationScope) -> list[ExternalRecord]:
        del scope
        return list(self.feed.read())

    def accepts(self, record: ExternalRecord) -> bool:
        return isinstance(record, RemoteAccount)

    def upsert_internal(self, record: ExternalRecord, existing_internal_id: int | None) -> int:
        if not isinstance(record, RemoteAccount):
            raise TypeError(f"Expected a RemoteAccount, got {type(record).__name__}")
        account = (
            self.accounts.get(existing_internal_id) if existing_internal_id is not None else None
        )
        if account is None:
            # an account created by hand before the feed listed it is adopted
            account = self.accounts.find_by_uid(record.login)
        if account is None:
            return self.accounts.add(
                UserAccount(
                    uid=record.login,
                    first_name=record.first_name,
                    last_name=record.last_name,
                    mail=record.mail,
                    is_active=not record.is_locked,
                )
            )
        account.first_name = record.first_name
        account.last_name = record.last_name
        account.mail = record.mail
        account.is_active = not record.is_locked
        if account.id is None:
            raise ValueError(f"User account {account.uid} has no id")
        return account.id

    def delete_internal(self, internal_id: int) -> None:
        if not self.deactivate_missing:
            return
        account = self.accounts.get(internal_id)
        if account is not None and account.is_active:
            log.info("User account %s left the feed; deactivating it", account.uid)
            account.is_active = False


@dataclass(slots=True)
class AccountFeedLoader:
    unit_of_work_factory: SyncUnitOfWorkFactory
    deactivate_missing: bool = True
    locks: KeyedLocks = field(default_factory=KeyedLocks)

    def load(self, feed: AccountFeedSource) -> ReconciliationResult:
        """Reconcile user accounts with ``feed`` in one transaction.

        An unreadable feed raises before anything changes, so a missing file
        never deactivates anyone.
        """

        scope = feed_scope(feed.name)
        with (
            self.locks.hold((FEED_RELATION, feed.name)),
            self.unit_of_work_factory(owner=feed_owner(feed.name)) as uow,
        ):
            repositories = uow.repositories
            links = repositories.links
            if feed.name not in links.find_links_for(FEED_ANCHOR_ID, FEED_RELATION):
                links.create_link(
                    LinkRecord(
                        internal_id=FEED_ANCHOR_ID,
                        external_id=feed.name,
                        relation_type=FEED_RELATION,
                    )
                )
            adapter = AccountFeedRecordAdapter(
                feed=feed,
                accounts=repositories.user_accounts,
                deactivate_missing=self.deactivate_missing,
            )
            result = ReconciliationEngine(links).reconcile(scope, adapter)
            uow.commit()
        for row in feed.rejected_rows:
            log.warning("Feed %s skipped %s", feed.name, row)
        log.info(
            "Feed %s loaded: %s accounts read, %s created, %s updated, %s left the feed",
            feed.name,
            result.fetched,
            len(result.created),
            len(result.updated),
            len(result.deleted),
        )
        return result
