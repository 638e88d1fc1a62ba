"""Versioned composite kinds.

TestCase and Fixture are versioned the same way; they differ only in table
names, owner column names and a handful of parent-only fields. A
``CompositeKind`` carries those differences so the snapshot engine, the store
and the revert/clone coordinators are written once.

Usage:
    from casevault.services.composite import TEST_CASE, get_kind

    kind = get_kind("fixture")
    steps = kind.steps_query(fixture_id).all()
"""
from dataclasses import dataclass, field
from typing import Callable

from casevault.core.exceptions import NotFoundError, ValidationError
from casevault.models.testing import (
    FIXTURE_TYPES, TEST_CASE_STATUSES, Fixture, Step, TestCase,
)
from casevault.models.versioning import FixtureVersion, StepVersion, TestCaseVersion


# ── Parent-only field validators ─────────────────────────────────────────────
# Each validator receives the raw value and returns the cleaned value, or
# raises ValidationError.

def _clean_str(name, max_len=None):
    def _clean(value):
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValidationError(f"{name} must be a string", details={name: "invalid type"})
        value = value.strip()
        if max_len and len(value) > max_len:
            raise ValidationError(
                f"{name} must be at most {max_len} characters", details={name: "too long"},
            )
        return value
    return _clean


def _clean_choice(name, choices):
    def _clean(value):
        if value not in choices:
            raise ValidationError(
                f"{name} must be one of {sorted(choices)}", details={name: "invalid choice"},
            )
        return value
    return _clean


def _clean_bool(name):
    def _clean(value):
        if not isinstance(value, bool):
            raise ValidationError(f"{name} must be a boolean", details={name: "invalid type"})
        return value
    return _clean


def _clean_tags(value):
    if value is None:
        return ""
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise ValidationError("tags must be a list or a comma-separated string",
                              details={"tags": "invalid type"})
    cleaned = []
    for item in items:
        if not isinstance(item, str):
            raise ValidationError("tags must be strings", details={"tags": "invalid type"})
        item = item.strip()
        if item and item not in cleaned:
            cleaned.append(item)
    return ",".join(cleaned)


@dataclass(frozen=True)
class CompositeKind:
    """Describes one versioned parent type and where its rows live."""

    key: str
    label: str
    slug: str
    parent_model: type
    version_model: type
    step_owner_attr: str
    step_version_owner_attr: str
    version_parent_attr: str
    extra_fields: dict[str, Callable] = field(default_factory=dict)
    # Extra fields a clone does not inherit, with the value it gets instead.
    clone_resets: dict = field(default_factory=dict)

    # ── Queries ──────────────────────────────────────────────────────────

    def steps_query(self, parent_id):
        """Live steps of one parent, in order."""
        return (
            Step.query
            .filter(getattr(Step, self.step_owner_attr) == parent_id)
            .order_by(Step.order)
        )

    def versions_query(self, parent_id):
        """Snapshots of one parent, newest first."""
        model = self.version_model
        return (
            model.query
            .filter(getattr(model, self.version_parent_attr) == parent_id)
            .order_by(model.id.desc())
        )

    def snapshot_steps_query(self, version_id):
        return (
            StepVersion.query
            .filter(getattr(StepVersion, self.step_version_owner_attr) == version_id)
            .order_by(StepVersion.order)
        )

    # ── Row factories ────────────────────────────────────────────────────

    def new_step(self, parent_id, **fields):
        return Step(**{self.step_owner_attr: parent_id}, **fields)

    def new_version(self, parent_id, **fields):
        return self.version_model(**{self.version_parent_attr: parent_id}, **fields)

    def new_step_version(self, version_id, **fields):
        return StepVersion(**{self.step_version_owner_attr: version_id}, **fields)

    # ── Helpers ──────────────────────────────────────────────────────────

    def owner_id(self, step):
        return getattr(step, self.step_owner_attr)

    def version_owner_id(self, snapshot):
        return getattr(snapshot, self.version_parent_attr)

    def clean_extra_fields(self, data):
        """Validate the kind-specific parent fields present in *data*."""
        cleaned = {}
        for name, validator in self.extra_fields.items():
            if name in data:
                cleaned[name] = validator(data[name])
        return cleaned

    def extra_values(self, parent):
        return {name: getattr(parent, name) for name in self.extra_fields}

    def clone_values(self, parent):
        values = self.extra_values(parent)
        values.update(self.clone_resets)
        return values


TEST_CASE = CompositeKind(
    key="test_case",
    label="TestCase",
    slug="test-cases",
    parent_model=TestCase,
    version_model=TestCaseVersion,
    step_owner_attr="test_case_id",
    step_version_owner_attr="test_case_version_id",
    version_parent_attr="test_case_id",
    extra_fields={
        "status": _clean_choice("status", TEST_CASE_STATUSES),
        "is_manual": _clean_bool("is_manual"),
        "tags": _clean_tags,
    },
)

FIXTURE = CompositeKind(
    key="fixture",
    label="Fixture",
    slug="fixtures",
    parent_model=Fixture,
    version_model=FixtureVersion,
    step_owner_attr="fixture_id",
    step_version_owner_attr="fixture_version_id",
    version_parent_attr="fixture_id",
    extra_fields={
        "fixture_type": _clean_choice("fixture_type", FIXTURE_TYPES),
        "export_name": _clean_str("export_name", max_len=200),
        "filename": _clean_str("filename", max_len=300),
    },
    clone_resets={"filename": ""},
)

KINDS = {k.key: k for k in (TEST_CASE, FIXTURE)}
KINDS_BY_SLUG = {k.slug: k for k in (TEST_CASE, FIXTURE)}


def get_kind(key):
    """Look up a kind by key ("test_case" | "fixture")."""
    kind = KINDS.get(key)
    if kind is None:
        raise NotFoundError(resource="CompositeKind", resource_id=key)
    return kind


def kind_for_slug(slug):
    """Look up a kind by URL slug ("test-cases" | "fixtures")."""
    kind = KINDS_BY_SLUG.get(slug)
    if kind is None:
        raise NotFoundError(resource="CompositeKind", resource_id=slug)
    return kind
