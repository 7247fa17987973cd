"""Initial schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-01 09:00:00
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from syncdock.adapters.sqlalchemy.mappings import UTCDateTime

revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "integration_link",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner", sa.String(), nullable=False),
        sa.Column("internal_id", sa.Integer(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("relation_type", sa.String(), nullable=False),
        sa.Column("parent_internal_id", sa.Integer(), nullable=True),
        sa.Column("parent_external_id", sa.String(), nullable=True),
        sa.Column("parent_relation_type", sa.String(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_integration_link")),
    )
    op.create_index(
        "ix_integration_link_internal",
        "integration_link",
        ["owner", "internal_id", "relation_type"],
    )
    op.create_index(
        "ix_integration_link_external",
        "integration_link",
        ["owner", "external_id", "relation_type"],
    )
    op.create_index(
        "ix_integration_link_parent",
        "integration_link",
        ["owner", "parent_internal_id", "parent_external_id", "parent_relation_type"],
    )

    op.create_table(
        "registration",
        sa.Column("owner", sa.String(), nullable=False),
        sa.Column("root_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("needs", sa.Boolean(), nullable=False),
        sa.Column("defects", sa.Boolean(), nullable=False),
        sa.Column("iterations", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("owner", "root_id", name=op.f("pk_registration")),
    )

    op.create_table(
        "configuration_block",
        sa.Column("block_id", sa.String(), nullable=False),
        sa.Column("content", sa.LargeBinary(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("block_id", name=op.f("pk_configuration_block")),
    )

    op.create_table(
        "portfolio_entry",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("ref_id", sa.String(), nullable=True),
        sa.Column("governance_id", sa.String(), nullable=True),
        sa.Column("erp_ref_id", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_portfolio_entry")),
    )

    op.create_table(
        "actor",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uid", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_actor")),
        sa.UniqueConstraint("uid", name=op.f("uq_actor_uid")),
    )

    op.create_table(
        "iteration",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("portfolio_entry_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_closed", sa.Boolean(), nullable=False),
        sa.Column("story_points", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(
            ["portfolio_entry_id"],
            ["portfolio_entry.id"],
            name=op.f("fk_iteration_portfolio_entry_id_portfolio_entry"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_iteration")),
    )

    op.create_table(
        "requirement",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("portfolio_entry_id", sa.Integer(), nullable=False),
        sa.Column("is_defect", sa.Boolean(), nullable=False),
        sa.Column("external_ref_id", sa.String(), nullable=True),
        sa.Column("external_link", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("status_id", sa.Integer(), nullable=True),
        sa.Column("priority_id", sa.Integer(), nullable=True),
        sa.Column("severity_id", sa.Integer(), nullable=True),
        sa.Column("author_id", sa.Integer(), nullable=True),
        sa.Column("iteration_id", sa.Integer(), nullable=True),
        sa.Column("story_points", sa.Integer(), nullable=True),
        sa.Column("initial_estimation", sa.Float(), nullable=True),
        sa.Column("effort", sa.Float(), nullable=True),
        sa.Column("remaining_effort", sa.Float(), nullable=True),
        sa.Column("is_scoped", sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(
            ["portfolio_entry_id"],
            ["portfolio_entry.id"],
            name=op.f("fk_requirement_portfolio_entry_id_portfolio_entry"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["author_id"],
            ["actor.id"],
            name=op.f("fk_requirement_author_id_actor"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["iteration_id"],
            ["iteration.id"],
            name=op.f("fk_requirement_iteration_id_iteration"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_requirement")),
    )
    op.create_index(
        "ix_requirement_portfolio_entry", "requirement", ["portfolio_entry_id", "is_defect"]
    )

    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uid", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("mail", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_user_account")),
        sa.UniqueConstraint("uid", name=op.f("uq_user_account_uid")),
    )


def downgrade() -> None:
    op.drop_table("user_account")
    op.drop_index("ix_requirement_portfolio_entry", table_name="requirement")
    op.drop_table("requirement")
    op.drop_table("iteration")
    op.drop_table("actor")
    op.drop_table("portfolio_entry")
    op.drop_table("configuration_block")
    op.drop_table("registration")
    op.drop_index("ix_integration_link_parent", table_name="integration_link")
    op.drop_index("ix_integration_link_external", table_name="integration_link")
    op.drop_index("ix_integration_link_internal", table_name="integration_link")
    op.drop_table("integration_link")
