"""SQLAlchemy mapping metadata for links, registrations and internal records."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import cache

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Dialect,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    func,
    orm,
)
from sqlalchemy.orm import configure_mappers

from syncdock.domain.model import Actor, Iteration, PortfolioEntry, Requirement, UserAccount

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Synchronisation state -------------------------------------------------------

integration_link_table = Table(
    "integration_link",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner", String, nullable=False),
    Column("internal_id", Integer, nullable=False),
    Column("external_id", String, nullable=False),
    Column("relation_type", String, nullable=False),
    Column("parent_internal_id", Integer, nullable=True),
    Column("parent_external_id", String, nullable=True),
    Column("parent_relation_type", String, nullable=True),
    Column("created_at", UTCDateTime(), nullable=False, server_default=func.now()),
    Index("ix_integration_link_internal", "owner", "internal_id", "relation_type"),
    Index("ix_integration_link_external", "owner", "external_id", "relation_type"),
    Index(
        "ix_integration_link_parent",
        "owner",
        "parent_internal_id",
        "parent_external_id",
        "parent_relation_type",
    ),
)

registration_table = Table(
    "registration",
    mapper_registry.metadata,
    Column("owner", String, primary_key=True),
    Column("root_id", Integer, primary_key=True, autoincrement=False),
    Column("needs", Boolean, nullable=False, default=False),
    Column("defects", Boolean, nullable=False, default=False),
    Column("iterations", Boolean, nullable=False, default=False),
)

configuration_block_table = Table(
    "configuration_block",
    mapper_registry.metadata,
    Column("block_id", String, primary_key=True),
    Column("content", LargeBinary, nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False, server_default=func.now()),
)

# Internal records --------------------------------------------------------------

portfolio_entry_table = Table(
    "portfolio_entry",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String, nullable=False),
    Column("ref_id", String, nullable=True),
    Column("governance_id", String, nullable=True),
    Column("erp_ref_id", String, nullable=True),
    Column("description", Text, nullable=True),
    Column("attributes", JSON, nullable=False, default=dict),
)

actor_table = Table(
    "actor",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("uid", String, nullable=False),
    Column("email", String, nullable=True),
    Column("name", String, nullable=True),
    UniqueConstraint("uid"),
)

iteration_table = Table(
    "iteration",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "portfolio_entry_id",
        Integer,
        ForeignKey("portfolio_entry.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("name", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("source", String, nullable=True),
    Column("end_date", Date, nullable=True),
    Column("is_closed", Boolean, nullable=False, default=False),
    Column("story_points", Integer, nullable=True),
)

requirement_table = Table(
    "requirement",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "portfolio_entry_id",
        Integer,
        ForeignKey("portfolio_entry.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("is_defect", Boolean, nullable=False, default=False),
    Column("external_ref_id", String, nullable=True),
    Column("external_link", String, nullable=True),
    Column("name", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("category", String, nullable=True),
    Column("status_id", Integer, nullable=True),
    Column("priority_id", Integer, nullable=True),
    Column("severity_id", Integer, nullable=True),
    Column("author_id", Integer, ForeignKey("actor.id", ondelete="SET NULL"), nullable=True),
    Column(
        "iteration_id", Integer, ForeignKey("iteration.id", ondelete="SET NULL"), nullable=True
    ),
    Column("story_points", Integer, nullable=True),
    Column("initial_estimation", Float, nullable=True),
    Column("effort", Float, nullable=True),
    Column("remaining_effort", Float, nullable=True),
    Column("is_scoped", Boolean, nullable=True),
    Index("ix_requirement_portfolio_entry", "portfolio_entry_id", "is_defect"),
)

user_account_table = Table(
    "user_account",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("uid", String, nullable=False),
    Column("first_name", String, nullable=False),
    Column("last_name", String, nullable=False),
    Column("mail", String, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    UniqueConstraint("uid"),
)


@cache
def start_mappers() -> orm.registry:
    """Map the internal record dataclasses onto their tables."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(PortfolioEntry, portfolio_entry_table)
    mapper_registry.map_imperatively(Actor, actor_table)
    mapper_registry.map_imperatively(Iteration, iteration_table)
    mapper_registry.map_imperatively(Requirement, requirement_table)
    mapper_registry.map_imperatively(UserAccount, user_account_table)

    configure_mappers()
    return mapper_registry
