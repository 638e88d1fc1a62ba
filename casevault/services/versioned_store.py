"""
CaseVault
Versioned entity store: live CRUD for test cases, fixtures and their steps.

Every mutating function here:
  1. loads the parent (row-locked where the dialect supports it) and records
     the live version it saw,
  2. applies the live change,
  3. captures a snapshot against that version,
all inside ``run_in_transaction``. After the commit the codegen collaborator
is notified.

Mutations return ``(parent, new_version)``.

Usage:
    from casevault.services import versioned_store as store
    from casevault.services.composite import TEST_CASE

    tc = store.create_parent(TEST_CASE, project_id, {"name": "Login"}, actor="ada")
    tc, version = store.add_step(TEST_CASE, tc.id, {"action": "Open page"})
"""

import logging
from collections import Counter

from casevault.core.exceptions import (
    InvalidOrderError, NotFoundError, StepMismatchError, ValidationError,
)
from casevault.models import db
from casevault.models.project import Project
from casevault.models.testing import Fixture, Step
from casevault.services import codegen_dispatch, snapshot_engine
from casevault.services.transaction import run_in_transaction

logger = logging.getLogger(__name__)

STEP_INPUT_FIELDS = (
    "action", "data", "expected", "disabled", "playwright_script", "referenced_fixture_id",
)

PARENT_NAME_MAX = 300


# ═════════════════════════════════════════════════════════════════════════════
# Loading
# ═════════════════════════════════════════════════════════════════════════════


def load_parent(kind, parent_id, *, lock=False):
    """Load a parent for mutation; *lock* takes a row lock where supported."""
    q = kind.parent_model.query.filter_by(id=parent_id)
    if lock:
        q = q.with_for_update().populate_existing()
    parent = q.first()
    if parent is None:
        raise NotFoundError(resource=kind.label, resource_id=parent_id)
    return parent


def _load_step(kind, parent_id, step_id):
    step = db.session.get(Step, step_id)
    if step is None:
        raise NotFoundError(resource="Step", resource_id=step_id)
    if kind.owner_id(step) != parent_id:
        raise StepMismatchError(step_id, f"{kind.label} id={parent_id}")
    return step


def get_parent(kind, parent_id, project_id=None):
    """Fetch a live parent, optionally scoped to a project."""
    parent = db.session.get(kind.parent_model, parent_id)
    if parent is None or (project_id is not None and parent.project_id != project_id):
        raise NotFoundError(
            resource=kind.label, resource_id=parent_id,
            scope=f"project id={project_id}" if project_id is not None else None,
        )
    return parent


def list_parents(kind, project_id, *, search=None):
    """Parents of one kind in a project, ordered by name."""
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    model = kind.parent_model
    q = model.query.filter(model.project_id == project_id)
    if search:
        q = q.filter(model.name.ilike(f"%{search}%"))
    return q.order_by(model.name, model.id)


def list_steps(kind, parent_id):
    """Live steps of a parent, in order."""
    get_parent(kind, parent_id)
    return kind.steps_query(parent_id).all()


# ═════════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════════


def _reject_unknown(data, allowed):
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Unknown field(s): {', '.join(unknown)}",
            details={name: "unknown field" for name in unknown},
        )


def clean_name(value):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("name is required", details={"name": "required"})
    value = value.strip()
    if len(value) > PARENT_NAME_MAX:
        raise ValidationError(
            f"name must be at most {PARENT_NAME_MAX} characters", details={"name": "too long"},
        )
    return value


def _check_fixture_reference(kind, parent, fixture_id):
    if fixture_id is None:
        return None
    if isinstance(fixture_id, bool) or not isinstance(fixture_id, int):
        raise ValidationError(
            "referenced_fixture_id must be an integer",
            details={"referenced_fixture_id": "invalid type"},
        )
    if kind.key == "fixture" and fixture_id == parent.id:
        raise ValidationError(
            "A fixture step cannot reference its own fixture",
            details={"referenced_fixture_id": "self reference"},
        )
    fixture = db.session.get(Fixture, fixture_id)
    if fixture is None or fixture.project_id != parent.project_id:
        raise ValidationError(
            f"Fixture id={fixture_id} not found in this project",
            details={"referenced_fixture_id": "not found"},
        )
    return fixture_id


def _clean_step_fields(kind, parent, data, *, partial):
    """Validate step input; returns only the fields present (all on create)."""
    _reject_unknown(data, STEP_INPUT_FIELDS)
    cleaned = {}

    if "action" in data or not partial:
        action = data.get("action")
        if not isinstance(action, str) or not action.strip():
            raise ValidationError("action is required", details={"action": "required"})
        cleaned["action"] = action.strip()

    for name in ("data", "expected"):
        if name in data:
            value = data[name]
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{name} must be a string", details={name: "invalid type"})
            cleaned[name] = value or ""

    if "playwright_script" in data:
        value = data["playwright_script"]
        if value is not None and not isinstance(value, str):
            raise ValidationError(
                "playwright_script must be a string",
                details={"playwright_script": "invalid type"},
            )
        cleaned["playwright_script"] = value or None

    if "disabled" in data:
        if not isinstance(data["disabled"], bool):
            raise ValidationError("disabled must be a boolean", details={"disabled": "invalid type"})
        cleaned["disabled"] = data["disabled"]

    if "referenced_fixture_id" in data:
        cleaned["referenced_fixture_id"] = _check_fixture_reference(
            kind, parent, data["referenced_fixture_id"],
        )

    if not partial:
        cleaned.setdefault("data", "")
        cleaned.setdefault("expected", "")
        cleaned.setdefault("disabled", False)
        cleaned.setdefault("playwright_script", None)
        cleaned.setdefault("referenced_fixture_id", None)
    return cleaned


# ═════════════════════════════════════════════════════════════════════════════
# Ordering
# ═════════════════════════════════════════════════════════════════════════════


def _apply_orders(steps, *, gap_at=None):
    """Renumber *steps* to 0..n-1 in list order, skipping slot *gap_at* if given.

    Two flushes: first move every row to a negative slot, then to its final
    slot, so the unique (owner, order) index never sees a transient clash.
    """
    if not steps:
        return
    for i, step in enumerate(steps):
        step.order = -(i + 1)
    db.session.flush()
    for i, step in enumerate(steps):
        step.order = i if gap_at is None or i < gap_at else i + 1
    db.session.flush()


# ═════════════════════════════════════════════════════════════════════════════
# Parent mutations
# ═════════════════════════════════════════════════════════════════════════════


def create_parent(kind, project_id, data, *, actor="system"):
    """Create a parent with no steps at version 1.0.0."""
    allowed = ("name",) + tuple(kind.extra_fields)
    _reject_unknown(data, allowed)
    name = clean_name(data.get("name"))
    extra = kind.clean_extra_fields(data)

    def op():
        if db.session.get(Project, project_id) is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
        parent = kind.parent_model(
            project_id=project_id, name=name, version=None,
            created_by=actor, updated_by=actor, **extra,
        )
        db.session.add(parent)
        db.session.flush()
        snapshot_engine.capture(
            kind, parent.id, expected_version=None, actor=actor,
            change_summary=f"Created {kind.label}",
        )
        return parent

    parent = run_in_transaction(op, resource=kind.label)
    logger.info("%s id=%s created in project %s by %s", kind.label, parent.id, project_id, actor)
    codegen_dispatch.notify_committed(kind, parent.id)
    return parent


def update_parent(kind, parent_id, data, *, actor="system"):
    """Edit name and kind-specific fields; produces a new version."""
    allowed = ("name",) + tuple(kind.extra_fields)
    _reject_unknown(data, allowed)
    if not data:
        raise ValidationError("No fields to update")
    fields = kind.clean_extra_fields(data)
    if "name" in data:
        fields["name"] = clean_name(data["name"])

    def op():
        parent = load_parent(kind, parent_id, lock=True)
        expected = parent.version
        for key, value in fields.items():
            setattr(parent, key, value)
        parent.updated_by = actor
        snapshot = snapshot_engine.capture(
            kind, parent_id, expected_version=expected, actor=actor,
            change_summary=f"Updated {', '.join(sorted(fields))}",
        )
        return parent, snapshot.version

    result = run_in_transaction(op, resource=kind.label, resource_id=parent_id)
    codegen_dispatch.notify_committed(kind, parent_id)
    return result


def delete_parent(kind, parent_id, *, actor="system"):
    """Delete a parent together with its steps and entire history."""
    def op():
        parent = load_parent(kind, parent_id, lock=True)
        db.session.delete(parent)

    run_in_transaction(op, resource=kind.label, resource_id=parent_id)
    logger.info("%s id=%s deleted by %s", kind.label, parent_id, actor)


# ═════════════════════════════════════════════════════════════════════════════
# Step mutations
# ═════════════════════════════════════════════════════════════════════════════


def _mutate_steps(kind, parent_id, actor, change, summary):
    """Run *change(parent)* then capture, in one retried transaction."""
    def op():
        parent = load_parent(kind, parent_id, lock=True)
        expected = parent.version
        change(parent)
        parent.updated_by = actor
        snapshot = snapshot_engine.capture(
            kind, parent_id, expected_version=expected, actor=actor,
            change_summary=summary,
        )
        return parent, snapshot.version

    result = run_in_transaction(op, resource=kind.label, resource_id=parent_id)
    codegen_dispatch.notify_committed(kind, parent_id)
    return result


def add_step(kind, parent_id, data, *, position=None, actor="system"):
    """Append a step, or insert it at 0-based *position*."""
    if position is not None and (isinstance(position, bool) or not isinstance(position, int)):
        raise ValidationError("position must be an integer", details={"position": "invalid type"})

    def change(parent):
        fields = _clean_step_fields(kind, parent, data, partial=False)
        steps = kind.steps_query(parent_id).all()
        at = len(steps) if position is None else position
        if not 0 <= at <= len(steps):
            raise ValidationError(
                f"position must be between 0 and {len(steps)}",
                details={"position": "out of range"},
            )
        if at < len(steps):
            _apply_orders(steps, gap_at=at)
        db.session.add(kind.new_step(
            parent_id, order=at, created_by=actor, updated_by=actor, **fields,
        ))
        db.session.flush()

    return _mutate_steps(kind, parent_id, actor, change, "Added step")


def update_step(kind, parent_id, step_id, data, *, actor="system"):
    """Edit a step's content fields. Order is changed only via reorder."""
    if isinstance(data, dict) and "order" in data:
        raise ValidationError(
            "order cannot be set directly; use reorder", details={"order": "read-only"},
        )
    if isinstance(data, dict) and not data:
        raise ValidationError("No fields to update")

    def change(parent):
        step = _load_step(kind, parent_id, step_id)
        fields = _clean_step_fields(kind, parent, data, partial=True)
        for key, value in fields.items():
            setattr(step, key, value)
        step.updated_by = actor

    return _mutate_steps(kind, parent_id, actor, change, f"Updated step {step_id}")


def delete_step(kind, parent_id, step_id, *, actor="system"):
    """Remove a step and close the gap in the ordering."""
    def change(parent):
        step = _load_step(kind, parent_id, step_id)
        db.session.delete(step)
        db.session.flush()
        _apply_orders(kind.steps_query(parent_id).all())

    return _mutate_steps(kind, parent_id, actor, change, f"Deleted step {step_id}")


def reorder_steps(kind, parent_id, ordered_step_ids, *, actor="system"):
    """Set the step order; *ordered_step_ids* must be a permutation of the live ids."""
    if not isinstance(ordered_step_ids, list) or any(
        isinstance(i, bool) or not isinstance(i, int) for i in ordered_step_ids
    ):
        raise InvalidOrderError(
            "step_ids must be a list of integers", details={"step_ids": "invalid type"},
        )

    def change(parent):
        steps = kind.steps_query(parent_id).all()
        by_id = {s.id: s for s in steps}
        duplicates = sorted(i for i, n in Counter(ordered_step_ids).items() if n > 1)
        missing = sorted(set(by_id) - set(ordered_step_ids))
        unknown = sorted(set(ordered_step_ids) - set(by_id))
        if missing or unknown or duplicates:
            raise InvalidOrderError(
                "step_ids must list every step of this parent exactly once",
                details={"missing": missing, "unknown": unknown, "duplicates": duplicates},
            )
        _apply_orders([by_id[i] for i in ordered_step_ids])

    return _mutate_steps(kind, parent_id, actor, change, "Reordered steps")


def duplicate_step(kind, parent_id, step_id, overrides=None, *, actor="system"):
    """Copy a step, apply *overrides*, and insert the copy right after the source."""
    overrides = overrides or {}

    def change(parent):
        source = _load_step(kind, parent_id, step_id)
        fields = source.content()
        fields.update(_clean_step_fields(kind, parent, overrides, partial=True))
        steps = kind.steps_query(parent_id).all()
        at = source.order + 1
        _apply_orders(steps, gap_at=at)
        db.session.add(kind.new_step(
            parent_id, order=at, created_by=actor, updated_by=actor, **fields,
        ))
        db.session.flush()

    return _mutate_steps(kind, parent_id, actor, change, f"Duplicated step {step_id}")
