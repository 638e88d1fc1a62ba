"""Snapshot engine: capture and read immutable versions of a composite.

``capture`` is the only writer of version rows and the only code that moves a
parent's live ``version``. It must run inside the caller's open transaction
(see ``transaction.run_in_transaction``) after all live changes are staged.

The live version moves by compare-and-set against the version the caller read
when it started. Losing that race raises ConcurrentModificationError; the
unique (parent, version) constraint on the snapshot tables backs it up.
"""
import logging

from casevault.core.exceptions import ConcurrentModificationError, NotFoundError
from casevault.models import db
from casevault.models.testing import Fixture
from casevault.services.version_numbering import next_version, version_key

logger = logging.getLogger(__name__)

_DIFF_STEP_FIELDS = (
    "action", "data", "expected", "disabled", "playwright_script", "referenced_fixture_id",
)


def _fixture_versions(fixture_ids):
    ids = {fid for fid in fixture_ids if fid is not None}
    if not ids:
        return {}
    rows = db.session.query(Fixture.id, Fixture.version).filter(Fixture.id.in_(ids)).all()
    return {row.id: row.version for row in rows}


def capture(kind, parent_id, *, expected_version, actor="system",
            change_summary="", reverted_from_id=None):
    """Write a new immutable version of the parent and advance its live version.

    Args:
        kind: CompositeKind of the parent.
        parent_id: Parent PK.
        expected_version: Live version read at the start of the transaction
            (None for a parent that has never been captured).
        actor: Recorded as created_by on the snapshot rows.
        change_summary: Short description of what produced this version.
        reverted_from_id: Snapshot a revert restored, if any.

    Returns:
        The new version row (flushed, not committed).

    Raises:
        NotFoundError: parent does not exist.
        ConcurrentModificationError: live version is no longer expected_version.
        InvalidVersionFormatError: stored version is malformed.
    """
    db.session.flush()

    parent = db.session.get(kind.parent_model, parent_id)
    if parent is None:
        raise NotFoundError(resource=kind.label, resource_id=parent_id)

    steps = kind.steps_query(parent_id).all()
    orders = [s.order for s in steps]
    if orders != list(range(len(steps))):
        logger.error(
            "%s id=%s has non-contiguous step order %s; refusing to capture",
            kind.label, parent_id, orders,
        )
        raise RuntimeError(f"{kind.label} id={parent_id} has non-contiguous step order")

    new_version = next_version(expected_version)

    model = kind.parent_model
    version_match = (
        model.version.is_(None) if expected_version is None
        else model.version == expected_version
    )
    updated = (
        model.query
        .filter(model.id == parent_id, version_match)
        .update({"version": new_version, "updated_by": actor}, synchronize_session="fetch")
    )
    if updated != 1:
        raise ConcurrentModificationError(kind.label, parent_id, expected=expected_version)

    snapshot = kind.new_version(
        parent_id,
        version=new_version,
        name=parent.name,
        change_summary=(change_summary or "")[:300],
        created_by=actor,
        reverted_from_id=reverted_from_id,
    )
    db.session.add(snapshot)
    db.session.flush()

    ref_versions = _fixture_versions(s.referenced_fixture_id for s in steps)
    for step in steps:
        db.session.add(kind.new_step_version(
            snapshot.id,
            order=step.order,
            referenced_fixture_version=ref_versions.get(step.referenced_fixture_id),
            created_by=actor,
            **step.content(),
        ))
    db.session.flush()

    logger.info(
        "Captured %s id=%s version %s (%d steps): %s",
        kind.label, parent_id, new_version, len(steps), change_summary,
    )
    return snapshot


# ── Reads ────────────────────────────────────────────────────────────────────


def list_versions(kind, parent_id):
    """All snapshots of a parent, newest first."""
    if db.session.get(kind.parent_model, parent_id) is None:
        raise NotFoundError(resource=kind.label, resource_id=parent_id)
    return kind.versions_query(parent_id).all()


def get_version(kind, parent_id, version_id):
    """One snapshot, which must belong to *parent_id*."""
    snapshot = db.session.get(kind.version_model, version_id)
    if snapshot is None or kind.version_owner_id(snapshot) != parent_id:
        raise NotFoundError(
            resource=f"{kind.label}Version", resource_id=version_id,
            scope=f"{kind.label} id={parent_id}",
        )
    return snapshot


def get_version_steps(kind, parent_id, version_id):
    """Step copies of one snapshot, ordered by position."""
    snapshot = get_version(kind, parent_id, version_id)
    return kind.snapshot_steps_query(snapshot.id).all()


def latest_version(kind, parent_id):
    """Newest snapshot by numeric version, or None."""
    rows = kind.versions_query(parent_id).all()
    if not rows:
        return None
    return max(rows, key=lambda r: version_key(r.version))


def _snapshot_view(kind, snapshot):
    return {
        "version": snapshot.version,
        "name": snapshot.name,
        "steps": [
            {"order": s.order, **s.content()}
            for s in kind.snapshot_steps_query(snapshot.id).all()
        ],
    }


def diff_versions(kind, parent_id, from_version_id, to_version_id):
    """Compare two snapshots of one parent.

    Steps are matched by position. Returns field changes (currently only the
    name), added/removed/changed steps, and counts.
    """
    left = _snapshot_view(kind, get_version(kind, parent_id, from_version_id))
    right = _snapshot_view(kind, get_version(kind, parent_id, to_version_id))

    fields = []
    if left["name"] != right["name"]:
        fields.append({"field": "name", "from": left["name"], "to": right["name"]})

    left_steps = {s["order"]: s for s in left["steps"]}
    right_steps = {s["order"]: s for s in right["steps"]}
    step_added = []
    step_removed = []
    step_changed = []

    for order in sorted(set(left_steps) | set(right_steps)):
        ls = left_steps.get(order)
        rs = right_steps.get(order)
        if ls and not rs:
            step_removed.append({"order": order, "from": ls})
            continue
        if rs and not ls:
            step_added.append({"order": order, "to": rs})
            continue

        row_changes = {}
        for col in _DIFF_STEP_FIELDS:
            if ls.get(col) != rs.get(col):
                row_changes[col] = {"from": ls.get(col), "to": rs.get(col)}
        if row_changes:
            step_changed.append({"order": order, "changes": row_changes})

    return {
        "from_version": left["version"],
        "to_version": right["version"],
        "field_changes": fields,
        "steps": {
            "added": step_added,
            "removed": step_removed,
            "changed": step_changed,
        },
        "summary": {
            "field_change_count": len(fields),
            "step_added_count": len(step_added),
            "step_removed_count": len(step_removed),
            "step_changed_count": len(step_changed),
        },
    }
