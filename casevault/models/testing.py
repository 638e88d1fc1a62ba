"""
CaseVault
Live composite models.

Models:
    - TestCase: versioned parent of kind "test_case"
    - Fixture:  versioned parent of kind "fixture"
    - Step:     ordered child row owned by exactly one TestCase or Fixture

Architecture ref:
    Project ──1:N──▶ TestCase ──1:N──▶ Step
    Project ──1:N──▶ Fixture  ──1:N──▶ Step
    Step    ──N:1──▶ Fixture   (non-owning reference, SET NULL)
    TestCase/Fixture ──1:N──▶ *Version ──1:N──▶ StepVersion
"""

from casevault.models import db
from casevault.models.base import StepFieldsMixin, VersionedParentModel


# ── Constants ────────────────────────────────────────────────────────────

TEST_CASE_STATUSES = {"draft", "ready", "approved", "deprecated"}

FIXTURE_TYPES = {"setup", "teardown", "extend"}


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE
# ═════════════════════════════════════════════════════════════════════════════

class TestCase(VersionedParentModel):
    """
    A test case: a named, versioned, ordered list of steps.

    Manual test cases never trigger script regeneration.
    """

    __tablename__ = "test_cases"

    status = db.Column(db.String(30), default="draft", comment="draft | ready | approved | deprecated")
    is_manual = db.Column(db.Boolean, default=False, nullable=False)
    tags = db.Column(db.String(500), default="", comment="Comma-separated tags")

    # ── Clone tracking
    cloned_from_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="SET NULL"),
        nullable=True, comment="Source test case this was cloned from",
    )

    # ── Relationships
    steps = db.relationship(
        "Step", foreign_keys="Step.test_case_id", backref="test_case",
        lazy="select", cascade="all, delete-orphan", passive_deletes=True,
        order_by="Step.order",
    )
    versions = db.relationship(
        "TestCaseVersion", backref="test_case", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self, include_steps=False):
        result = self._base_dict()
        result.update({
            "status": self.status,
            "is_manual": self.is_manual,
            "tags": [t for t in (self.tags or "").split(",") if t],
            "cloned_from_id": self.cloned_from_id,
        })
        if include_steps:
            result["steps"] = [s.to_dict() for s in sorted(self.steps, key=lambda s: s.order)]
        return result

    def __repr__(self):
        return f"<TestCase {self.id}: {self.name[:30]} v{self.version}>"


# ═════════════════════════════════════════════════════════════════════════════
# FIXTURE
# ═════════════════════════════════════════════════════════════════════════════

class Fixture(VersionedParentModel):
    """
    A reusable fixture. Versioned exactly like a test case; test case steps
    may point at a fixture without owning it.
    """

    __tablename__ = "fixtures"
    # AUTOINCREMENT: ids of deleted fixtures are never handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    fixture_type = db.Column(db.String(30), default="extend", comment="setup | teardown | extend")
    export_name = db.Column(db.String(200), default="", comment="Exported identifier in generated code")
    filename = db.Column(db.String(300), default="")

    cloned_from_id = db.Column(
        db.Integer, db.ForeignKey("fixtures.id", ondelete="SET NULL"),
        nullable=True, comment="Source fixture this was cloned from",
    )

    steps = db.relationship(
        "Step", foreign_keys="Step.fixture_id", backref="fixture",
        lazy="select", cascade="all, delete-orphan", passive_deletes=True,
        order_by="Step.order",
    )
    versions = db.relationship(
        "FixtureVersion", backref="fixture", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self, include_steps=False):
        result = self._base_dict()
        result.update({
            "fixture_type": self.fixture_type,
            "export_name": self.export_name,
            "filename": self.filename,
            "cloned_from_id": self.cloned_from_id,
        })
        if include_steps:
            result["steps"] = [s.to_dict() for s in sorted(self.steps, key=lambda s: s.order)]
        return result

    def __repr__(self):
        return f"<Fixture {self.id}: {self.name[:30]} v{self.version}>"


# ═════════════════════════════════════════════════════════════════════════════
# STEP
# ═════════════════════════════════════════════════════════════════════════════

class Step(StepFieldsMixin, db.Model):
    """
    Ordered child of a test case or a fixture.

    Exactly one of test_case_id / fixture_id is set. ``order`` values for one
    parent are always the contiguous range 0..n-1; the services keep it so.
    """

    __tablename__ = "steps"
    __table_args__ = (
        db.CheckConstraint(
            "(test_case_id IS NULL) <> (fixture_id IS NULL)",
            name="ck_steps_single_owner",
        ),
        db.Index("ix_steps_test_case_order", "test_case_id", "order", unique=True),
        db.Index("ix_steps_fixture_order", "fixture_id", "order", unique=True),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    fixture_id = db.Column(
        db.Integer, db.ForeignKey("fixtures.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    referenced_fixture_id = db.Column(
        db.Integer, db.ForeignKey("fixtures.id", ondelete="SET NULL"),
        nullable=True, index=True,
        comment="Non-owning reference to a fixture used by this step",
    )

    created_by = db.Column(db.String(150), default="system")
    updated_by = db.Column(db.String(150), default="system")

    referenced_fixture = db.relationship("Fixture", foreign_keys=[referenced_fixture_id])

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "fixture_id": self.fixture_id,
            "order": self.order,
            "action": self.action,
            "data": self.data,
            "expected": self.expected,
            "disabled": self.disabled,
            "playwright_script": self.playwright_script,
            "referenced_fixture_id": self.referenced_fixture_id,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
        }

    def __repr__(self):
        owner = f"case#{self.test_case_id}" if self.test_case_id else f"fixture#{self.fixture_id}"
        return f"<Step {self.id}: {owner} order#{self.order}>"
