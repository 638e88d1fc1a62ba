"""initial_versioned_composites

Creates the CaseVault schema:
  - projects            - container for test cases and fixtures
  - test_cases          - versioned parent (kind "test_case")
  - fixtures            - versioned parent (kind "fixture")
  - steps               - live ordered steps, owned by one test case or fixture
  - test_case_versions  - append-only test case snapshots
  - fixture_versions    - append-only fixture snapshots
  - step_versions       - step copies inside a snapshot

Tables are created conditionally (IF NOT EXISTS semantics) so the revision can
run against a database that already received them via db.create_all().

Revision ID: c0a1e5d2b001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "c0a1e5d2b001"
down_revision = None
branch_labels = None
depends_on = None


def _parent_columns():
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=False),
        sa.Column("version", sa.String(length=50), nullable=True),
        sa.Column("created_by", sa.String(length=150), nullable=True),
        sa.Column("updated_by", sa.String(length=150), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _snapshot_columns():
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("version", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=False),
        sa.Column("change_summary", sa.String(length=300), nullable=True),
        sa.Column("created_by", sa.String(length=150), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _step_content_columns():
    return [
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("data", sa.Text(), nullable=True),
        sa.Column("expected", sa.Text(), nullable=True),
        sa.Column("disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("playwright_script", sa.Text(), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Projects ──────────────────────────────────────────────────────────
    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    # ── Live parents ──────────────────────────────────────────────────────
    if "test_cases" not in existing:
        op.create_table(
            "test_cases",
            *_parent_columns(),
            sa.Column("status", sa.String(length=30), nullable=True),
            sa.Column("is_manual", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("tags", sa.String(length=500), nullable=True),
            sa.Column("cloned_from_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["cloned_from_id"], ["test_cases.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_test_cases_project_id", "test_cases", ["project_id"])

    if "fixtures" not in existing:
        op.create_table(
            "fixtures",
            *_parent_columns(),
            sa.Column("fixture_type", sa.String(length=30), nullable=True),
            sa.Column("export_name", sa.String(length=200), nullable=True),
            sa.Column("filename", sa.String(length=300), nullable=True),
            sa.Column("cloned_from_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["cloned_from_id"], ["fixtures.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sqlite_autoincrement=True,
        )
        op.create_index("ix_fixtures_project_id", "fixtures", ["project_id"])

    # ── Live steps ────────────────────────────────────────────────────────
    if "steps" not in existing:
        op.create_table(
            "steps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_case_id", sa.Integer(), nullable=True),
            sa.Column("fixture_id", sa.Integer(), nullable=True),
            sa.Column("referenced_fixture_id", sa.Integer(), nullable=True),
            *_step_content_columns(),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.Column("updated_by", sa.String(length=150), nullable=True),
            sa.CheckConstraint(
                "(test_case_id IS NULL) <> (fixture_id IS NULL)",
                name="ck_steps_single_owner",
            ),
            sa.ForeignKeyConstraint(["test_case_id"], ["test_cases.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["fixture_id"], ["fixtures.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["referenced_fixture_id"], ["fixtures.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_steps_test_case_id", "steps", ["test_case_id"])
        op.create_index("ix_steps_fixture_id", "steps", ["fixture_id"])
        op.create_index("ix_steps_referenced_fixture_id", "steps", ["referenced_fixture_id"])
        op.create_index("ix_steps_test_case_order", "steps", ["test_case_id", "order"], unique=True)
        op.create_index("ix_steps_fixture_order", "steps", ["fixture_id", "order"], unique=True)

    # ── Snapshot headers ──────────────────────────────────────────────────
    if "test_case_versions" not in existing:
        op.create_table(
            "test_case_versions",
            *_snapshot_columns(),
            sa.Column("test_case_id", sa.Integer(), nullable=False),
            sa.Column("reverted_from_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["test_case_id"], ["test_cases.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["reverted_from_id"], ["test_case_versions.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("test_case_id", "version", name="uq_test_case_versions_version"),
        )
        op.create_index("ix_test_case_versions_test_case_id", "test_case_versions", ["test_case_id"])

    if "fixture_versions" not in existing:
        op.create_table(
            "fixture_versions",
            *_snapshot_columns(),
            sa.Column("fixture_id", sa.Integer(), nullable=False),
            sa.Column("reverted_from_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["fixture_id"], ["fixtures.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["reverted_from_id"], ["fixture_versions.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("fixture_id", "version", name="uq_fixture_versions_version"),
        )
        op.create_index("ix_fixture_versions_fixture_id", "fixture_versions", ["fixture_id"])

    # ── Snapshot steps ────────────────────────────────────────────────────
    if "step_versions" not in existing:
        op.create_table(
            "step_versions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_case_version_id", sa.Integer(), nullable=True),
            sa.Column("fixture_version_id", sa.Integer(), nullable=True),
            *_step_content_columns(),
            sa.Column("referenced_fixture_id", sa.Integer(), nullable=True),
            sa.Column("referenced_fixture_version", sa.String(length=50), nullable=True),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.CheckConstraint(
                "(test_case_version_id IS NULL) <> (fixture_version_id IS NULL)",
                name="ck_step_versions_single_owner",
            ),
            sa.ForeignKeyConstraint(
                ["test_case_version_id"], ["test_case_versions.id"], ondelete="CASCADE",
            ),
            sa.ForeignKeyConstraint(
                ["fixture_version_id"], ["fixture_versions.id"], ondelete="CASCADE",
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_step_versions_test_case_version_id", "step_versions", ["test_case_version_id"],
        )
        op.create_index(
            "ix_step_versions_fixture_version_id", "step_versions", ["fixture_version_id"],
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    for table in (
        "step_versions", "fixture_versions", "test_case_versions",
        "steps", "fixtures", "test_cases", "projects",
    ):
        if table in existing:
            op.drop_table(table)
