"""CSV export of an identity source, one account per row.

The header must name ``uid``, ``first_name``, ``last_name`` and ``mail``; an
optional ``active`` column takes ``true``/``false``, ``yes``/``no`` or
``1``/``0`` and defaults to active.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final, cast

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from syncdock.domain.errors import FeedError
from syncdock.domain.model import RemoteAccount

if TYPE_CHECKING:
    from pathlib import Path

log = getLogger(__name__)

ACCOUNT_COLUMNS: Final[tuple[str, ...]] = ("uid", "first_name", "last_name", "mail")


class AccountRow(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    uid: str
    first_name: str
    last_name: str
    mail: str
    active: bool = True

    @field_validator("uid", "mail")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("active", mode="before")
    @classmethod
    def _blank_is_active(cls, value: object) -> object:
        return True if value in {None, ""} else value

    def to_record(self) -> RemoteAccount:
        return RemoteAccount(
            external_id=self.uid,
            login=self.uid,
            first_name=self.first_name,
            last_name=self.last_name,
            mail=self.mail,
            is_locked=not self.active,
        )


@dataclass(slots=True)
class CsvAccountFeed:
    path: Path
    delimiter: str = ","
    encoding: str = "utf-8"
    feed_name: str | None = None
    rejected: list[str] = field(default_factory=list[str], init=False)

    @property
    def name(self) -> str:
        return self.feed_name or self.path.stem

    @property
    def rejected_rows(self) -> list[str]:
        return list(self.rejected)

    def read(self) -> list[RemoteAccount]:
        self.rejected = []
        try:
            with self.path.open(newline="", encoding=self.encoding) as handle:
                reader = csv.DictReader(handle, delimiter=self.delimiter)
                header = reader.fieldnames or ()
                missing = [column for column in ACCOUNT_COLUMNS if column not in header]
                if missing:
                    raise FeedError(f"{self.path} lacks the columns {', '.join(missing)}")
                return self._records(reader)
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            raise FeedError(f"Cannot read account feed {self.path}: {exc}") from exc

    def _records(self, reader: csv.DictReader[str]) -> list[RemoteAccount]:
        records: dict[str, RemoteAccount] = {}
        for row in reader:
            line = reader.line_num
            try:
                values = {key: value for key, value in row.items() if isinstance(key, str)}
                record = AccountRow.model_validate(values).to_record()
            except ValidationError as exc:
                self.rejected.append(f"line {line}: {_describe(exc)}")
                continue
            if record.external_id in records:
                self.rejected.append(f"line {line}: duplicate uid {record.external_id}")
                continue
            records[record.external_id] = record
        log.debug("Read %s accounts from %s", len(records), self.path)
        return list(records.values())


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )


if TYPE_CHECKING:
    from syncdock.domain.ports import AccountFeedSource

    _feed_check: AccountFeedSource = CsvAccountFeed(path=cast("Path", None))
