"""
Project model.

A project scopes test cases and fixtures. Clone naming and fixture
references are resolved within one project.
"""

from datetime import datetime, timezone

from casevault.models import db


class Project(db.Model):
    """Container for test cases and fixtures."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    created_by = db.Column(db.String(150), default="system")
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    test_cases = db.relationship(
        "TestCase", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    fixtures = db.relationship(
        "Fixture", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_by": self.created_by,
            "test_case_count": self.test_cases.count() if self.id else 0,
            "fixture_count": self.fixtures.count() if self.id else 0,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name[:30]}>"
