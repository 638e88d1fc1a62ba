"""Revert a composite to the content of an earlier snapshot.

History is never rewritten: the live steps are replaced with copies of the
target snapshot's steps and a new forward version is captured on top.
"""
import logging

from casevault.core.exceptions import NotFoundError
from casevault.models import db
from casevault.models.testing import Fixture
from casevault.services import codegen_dispatch, snapshot_engine
from casevault.services.transaction import run_in_transaction
from casevault.services.versioned_store import load_parent

logger = logging.getLogger(__name__)


def _existing_fixture_ids(ids, project_id):
    """Subset of *ids* that are live fixtures of *project_id*."""
    ids = {i for i in ids if i is not None}
    if not ids:
        return set()
    rows = (
        db.session.query(Fixture.id)
        .filter(Fixture.id.in_(ids), Fixture.project_id == project_id)
    )
    return {row.id for row in rows}


def revert_to(kind, parent_id, version_id, *, actor="system"):
    """Restore live state from snapshot *version_id* and capture a new version.

    Reverting to the current version is allowed and yields an identical
    snapshot under the next version number. A step reference to a fixture
    that has since been deleted, or is not in the parent's project, is
    restored as None.

    Returns:
        (parent, new_version)

    Raises:
        NotFoundError: parent or snapshot missing, or snapshot of another parent.
    """
    def op():
        parent = load_parent(kind, parent_id, lock=True)
        expected = parent.version
        target = snapshot_engine.get_version(kind, parent_id, version_id)
        saved_steps = kind.snapshot_steps_query(target.id).all()

        for step in kind.steps_query(parent_id).all():
            db.session.delete(step)
        db.session.flush()

        live_fixtures = _existing_fixture_ids(
            (s.referenced_fixture_id for s in saved_steps), parent.project_id,
        )
        dropped = 0
        for i, saved in enumerate(saved_steps):
            content = saved.content()
            ref = content["referenced_fixture_id"]
            if ref is not None and ref not in live_fixtures:
                content["referenced_fixture_id"] = None
                dropped += 1
            db.session.add(kind.new_step(
                parent_id, order=i, created_by=actor, updated_by=actor, **content,
            ))

        parent.name = target.name
        parent.updated_by = actor
        db.session.flush()
        if dropped:
            logger.warning(
                "Revert of %s id=%s to %s: %d step(s) referenced deleted fixtures",
                kind.label, parent_id, target.version, dropped,
            )

        snapshot = snapshot_engine.capture(
            kind, parent_id, expected_version=expected, actor=actor,
            change_summary=f"Reverted to version {target.version}",
            reverted_from_id=target.id,
        )
        return parent, snapshot.version

    try:
        result = run_in_transaction(op, resource=kind.label, resource_id=parent_id)
    except NotFoundError:
        logger.info("Revert of %s id=%s to snapshot %s: not found", kind.label, parent_id, version_id)
        raise
    codegen_dispatch.notify_committed(kind, parent_id)
    return result
