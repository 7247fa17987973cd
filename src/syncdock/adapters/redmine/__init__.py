"""Redmine connector binding, including user account provisioning."""

from __future__ import annotations

from typing import TYPE_CHECKING

from syncdock.domain.connector import VendorBinding

from .client import API_KEY_HEADER, PAGE_SIZE, RedmineClient
from .translator import CUSTOM_FIELD_PREFIX, CustomFieldIds, parse_issue, parse_version

if TYPE_CHECKING:
    from syncdock.config.connector import ConnectorSettings

DEFAULT_PROPERTIES = {
    "load.start_time": "04h00",
    "load.frequency": "1440",
}


def build_redmine_client(settings: ConnectorSettings) -> RedmineClient:
    return RedmineClient(
        host_url=settings.host_url,
        api_key=settings.api_key,
        custom_fields=CustomFieldIds.from_settings(settings.custom_fields),
    )


def is_local_filter(collection: str, remote_key: str) -> bool:
    """Categories and version custom fields cannot be filtered by the Redmine API."""

    if remote_key == "category":
        return True
    return collection == "iterations" and remote_key.startswith(CUSTOM_FIELD_PREFIX)


REDMINE_BINDING = VendorBinding(
    vendor="redmine",
    build_remote=build_redmine_client,
    default_properties=DEFAULT_PROPERTIES,
    is_local_filter=is_local_filter,
    build_account_client=build_redmine_client,
)

__all__ = [
    "API_KEY_HEADER",
    "DEFAULT_PROPERTIES",
    "PAGE_SIZE",
    "REDMINE_BINDING",
    "CustomFieldIds",
    "RedmineClient",
    "build_redmine_client",
    "is_local_filter",
    "parse_issue",
    "parse_version",
]
