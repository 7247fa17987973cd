"""File feeds read from the local filesystem."""

from __future__ import annotations

from .account_csv import ACCOUNT_COLUMNS, AccountRow, CsvAccountFeed

__all__ = ["ACCOUNT_COLUMNS", "AccountRow", "CsvAccountFeed"]
