"""
Abstract bases shared by the two versioned composite kinds.

A composite is a parent row (TestCase or Fixture) plus an ordered list of
Step rows. Each kind keeps its own snapshot table, but the column sets are
identical, so they are declared once here:

  - VersionedParentModel: live parent columns (name, live version, audit)
  - VersionSnapshotModel: immutable per-version header row
  - StepFieldsMixin:      step content copied verbatim into StepVersion
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declared_attr

from casevault.models import db


# Fields that make up a step's content. Live steps and step snapshots both
# carry them; revert and clone copy exactly this set plus the fixture reference.
STEP_CONTENT_FIELDS = (
    "action", "data", "expected", "disabled", "playwright_script",
)


def _utcnow():
    return datetime.now(timezone.utc)


class VersionedParentModel(db.Model):
    """Abstract base for a live versioned parent."""
    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True)

    @declared_attr
    def project_id(cls):
        return db.Column(
            db.Integer,
            db.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )

    name = db.Column(db.String(300), nullable=False)
    version = db.Column(
        db.String(50), nullable=True,
        comment="Live version; always equals the newest snapshot's version",
    )

    # ── Audit
    created_by = db.Column(db.String(150), default="system")
    updated_by = db.Column(db.String(150), default="system")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    def _base_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "version": self.version,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class VersionSnapshotModel(db.Model):
    """Abstract base for an immutable version header.

    Rows are append-only. They disappear only when the owning parent is
    deleted (FK cascade).
    """
    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(300), nullable=False, comment="Parent name at capture time")
    change_summary = db.Column(db.String(300), default="", comment="What produced this version")
    created_by = db.Column(db.String(150), default="system")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    def _base_dict(self):
        return {
            "id": self.id,
            "version": self.version,
            "name": self.name,
            "change_summary": self.change_summary,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class StepFieldsMixin:
    """Step content columns, shared by live steps and step snapshots."""

    order = db.Column(db.Integer, nullable=False, comment="0-based position within the parent")
    action = db.Column(db.Text, nullable=False, comment="Action to perform")
    data = db.Column(db.Text, default="", comment="Input data for this step")
    expected = db.Column(db.Text, default="", comment="Expected outcome")
    disabled = db.Column(db.Boolean, default=False, nullable=False)
    playwright_script = db.Column(db.Text, nullable=True, comment="Embedded script, if any")

    def content(self):
        """Return the step's content as a plain dict (no ids, no order)."""
        d = {f: getattr(self, f) for f in STEP_CONTENT_FIELDS}
        d["referenced_fixture_id"] = self.referenced_fixture_id
        return d
