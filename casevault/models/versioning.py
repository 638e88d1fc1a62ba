"""
CaseVault
Version history models - append-only.

Models:
    - TestCaseVersion: snapshot header for a test case
    - FixtureVersion:  snapshot header for a fixture
    - StepVersion:     copy of one live step at capture time

Version rows are written only by the snapshot engine. Nothing updates or
deletes them; they go away only through the parent's FK cascade.
"""

from casevault.models import db
from casevault.models.base import StepFieldsMixin, VersionSnapshotModel


class TestCaseVersion(VersionSnapshotModel):
    """Immutable snapshot of a test case and its steps."""

    __tablename__ = "test_case_versions"
    __table_args__ = (
        db.UniqueConstraint("test_case_id", "version", name="uq_test_case_versions_version"),
    )

    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    reverted_from_id = db.Column(
        db.Integer, db.ForeignKey("test_case_versions.id", ondelete="SET NULL"),
        nullable=True, comment="Snapshot whose content a revert restored",
    )

    step_versions = db.relationship(
        "StepVersion", foreign_keys="StepVersion.test_case_version_id",
        lazy="select", cascade="all, delete-orphan", passive_deletes=True,
        order_by="StepVersion.order",
    )

    @property
    def parent_id(self):
        return self.test_case_id

    def to_dict(self, include_steps=False):
        d = self._base_dict()
        d["test_case_id"] = self.test_case_id
        d["reverted_from_id"] = self.reverted_from_id
        d["step_count"] = len(self.step_versions)
        if include_steps:
            d["steps"] = [s.to_dict() for s in self.step_versions]
        return d

    def __repr__(self):
        return f"<TestCaseVersion {self.id}: case#{self.test_case_id} v{self.version}>"


class FixtureVersion(VersionSnapshotModel):
    """Immutable snapshot of a fixture and its steps."""

    __tablename__ = "fixture_versions"
    __table_args__ = (
        db.UniqueConstraint("fixture_id", "version", name="uq_fixture_versions_version"),
    )

    fixture_id = db.Column(
        db.Integer, db.ForeignKey("fixtures.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    reverted_from_id = db.Column(
        db.Integer, db.ForeignKey("fixture_versions.id", ondelete="SET NULL"),
        nullable=True, comment="Snapshot whose content a revert restored",
    )

    step_versions = db.relationship(
        "StepVersion", foreign_keys="StepVersion.fixture_version_id",
        lazy="select", cascade="all, delete-orphan", passive_deletes=True,
        order_by="StepVersion.order",
    )

    @property
    def parent_id(self):
        return self.fixture_id

    def to_dict(self, include_steps=False):
        d = self._base_dict()
        d["fixture_id"] = self.fixture_id
        d["reverted_from_id"] = self.reverted_from_id
        d["step_count"] = len(self.step_versions)
        if include_steps:
            d["steps"] = [s.to_dict() for s in self.step_versions]
        return d

    def __repr__(self):
        return f"<FixtureVersion {self.id}: fixture#{self.fixture_id} v{self.version}>"


class StepVersion(StepFieldsMixin, db.Model):
    """
    Copy of a live step inside one snapshot.

    ``referenced_fixture_id`` is a plain column, not a foreign key. Deleting a
    fixture leaves history that pointed at it unchanged.
    """

    __tablename__ = "step_versions"
    __table_args__ = (
        db.CheckConstraint(
            "(test_case_version_id IS NULL) <> (fixture_version_id IS NULL)",
            name="ck_step_versions_single_owner",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_case_version_id = db.Column(
        db.Integer, db.ForeignKey("test_case_versions.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    fixture_version_id = db.Column(
        db.Integer, db.ForeignKey("fixture_versions.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    referenced_fixture_id = db.Column(db.Integer, nullable=True)
    referenced_fixture_version = db.Column(
        db.String(50), nullable=True,
        comment="Live version of the referenced fixture at capture time",
    )
    created_by = db.Column(db.String(150), default="system")

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_version_id": self.test_case_version_id,
            "fixture_version_id": self.fixture_version_id,
            "order": self.order,
            "action": self.action,
            "data": self.data,
            "expected": self.expected,
            "disabled": self.disabled,
            "playwright_script": self.playwright_script,
            "referenced_fixture_id": self.referenced_fixture_id,
            "referenced_fixture_version": self.referenced_fixture_version,
            "created_by": self.created_by,
        }

    def __repr__(self):
        return f"<StepVersion {self.id}: order#{self.order}>"
