from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from syncdock.domain.errors import DuplicateLinkError
from syncdock.domain.model import LinkRecord, MessageKind, RelationType, UserAccount
from syncdock.domain.provisioning import AccountProvisioner
from tests.helpers.sync import FakeAccountClient, add_user_account

if TYPE_CHECKING:
    from collections.abc import Callable

    from syncdock.adapters.sqlalchemy import SqlAlchemySyncUnitOfWork

type UowFactory = Callable[..., SqlAlchemySyncUnitOfWork]


def _handle(
    factory: UowFactory, client: FakeAccountClient, kind: MessageKind, user_id: int
) -> str | None:
    with factory() as uow:
        external_id = AccountProvisioner(client, uow.repositories).handle(kind, user_id)
        uow.commit()
    return external_id


def _linked(factory: UowFactory, user_id: int) -> list[str]:
    with factory() as uow:
        return uow.repositories.links.find_links_for(user_id, RelationType.USER)


def test_created_account_is_mirrored_and_linked(sqlite_unit_of_work: UowFactory) -> None:
    user_id = add_user_account(sqlite_unit_of_work)
    client = FakeAccountClient()

    external_id = _handle(sqlite_unit_of_work, client, MessageKind.OBJECT_CREATED, user_id)

    assert external_id == "1"
    assert client.accounts["1"].login == "jdoe"
    assert _linked(sqlite_unit_of_work, user_id) == ["1"]


def test_update_reuses_the_linked_account(sqlite_unit_of_work: UowFactory) -> None:
    user_id = add_user_account(sqlite_unit_of_work)
    client = FakeAccountClient()
    _handle(sqlite_unit_of_work, client, MessageKind.OBJECT_CREATED, user_id)
    with sqlite_unit_of_work() as uow:
        account = uow.repositories.user_accounts.get(user_id)
        assert account is not None
        account.is_active = False
        uow.commit()

    _handle(sqlite_unit_of_work, client, MessageKind.OBJECT_STATUS_CHANGED, user_id)

    assert client.calls == [("create", "1"), ("update", "1")]
    assert client.accounts["1"].is_locked


def test_existing_remote_account_is_adopted(sqlite_unit_of_work: UowFactory) -> None:
    user_id = add_user_account(sqlite_unit_of_work, mail="jane@example.org")
    client = FakeAccountClient()
    adopted = client.create_account(
        UserAccount(uid="jane", first_name="J", last_name="D", mail="jane@example.org")
    )

    external_id = _handle(sqlite_unit_of_work, client, MessageKind.OBJECT_UPDATED, user_id)

    assert external_id == adopted
    assert client.accounts[adopted].login == "jdoe"
    assert _linked(sqlite_unit_of_work, user_id) == [adopted]


def test_vanished_remote_account_is_recreated(sqlite_unit_of_work: UowFactory) -> None:
    user_id = add_user_account(sqlite_unit_of_work)
    client = FakeAccountClient()
    _handle(sqlite_unit_of_work, client, MessageKind.OBJECT_CREATED, user_id)
    client.accounts.clear()

    external_id = _handle(sqlite_unit_of_work, client, MessageKind.RESYNC, user_id)

    assert external_id == "2"
    assert _linked(sqlite_unit_of_work, user_id) == ["2"]


def test_deleted_account_is_removed_remotely(sqlite_unit_of_work: UowFactory) -> None:
    user_id = add_user_account(sqlite_unit_of_work)
    client = FakeAccountClient()
    _handle(sqlite_unit_of_work, client, MessageKind.OBJECT_CREATED, user_id)

    assert _handle(sqlite_unit_of_work, client, MessageKind.OBJECT_DELETED, user_id) is None

    assert client.accounts == {}
    assert _linked(sqlite_unit_of_work, user_id) == []
    # deleting again is a no-op
    _handle(sqlite_unit_of_work, client, MessageKind.OBJECT_DELETED, user_id)
    assert client.calls.count(("delete", "1")) == 1


def test_unknown_user_is_ignored(sqlite_unit_of_work: UowFactory) -> None:
    client = FakeAccountClient()

    assert _handle(sqlite_unit_of_work, client, MessageKind.OBJECT_CREATED, 404) is None
    assert client.calls == []


def test_custom_events_are_rejected(sqlite_unit_of_work: UowFactory) -> None:
    user_id = add_user_account(sqlite_unit_of_work)

    with pytest.raises(ValueError, match="custom"):
        _handle(sqlite_unit_of_work, FakeAccountClient(), MessageKind.CUSTOM, user_id)


def test_user_links_are_one_to_one(sqlite_unit_of_work: UowFactory) -> None:
    user_id = add_user_account(sqlite_unit_of_work)
    with sqlite_unit_of_work() as uow:
        links = uow.repositories.links
        links.create_link(
            LinkRecord(internal_id=user_id, external_id="1", relation_type=RelationType.USER)
        )
        with pytest.raises(DuplicateLinkError):
            links.create_link(
                LinkRecord(internal_id=user_id, external_id="2", relation_type=RelationType.USER)
            )
