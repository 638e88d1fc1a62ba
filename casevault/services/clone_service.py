"""Clone a live composite into a new, independently versioned one."""
import logging

from casevault.models import db
from casevault.services import codegen_dispatch, snapshot_engine
from casevault.services.transaction import run_in_transaction
from casevault.services.versioned_store import PARENT_NAME_MAX, clean_name, load_parent

logger = logging.getLogger(__name__)

COPY_SUFFIX = " - Copy"


def derive_cloned_name(original_name, taken):
    """Return "<name> - Copy", or "<name> - Copy N" for the first N >= 2 not in *taken*.

    The base name is shortened if needed so the result fits the name column.
    """
    candidate_n = 1
    while True:
        suffix = COPY_SUFFIX if candidate_n == 1 else f"{COPY_SUFFIX} {candidate_n}"
        base = original_name[: PARENT_NAME_MAX - len(suffix)]
        candidate = f"{base}{suffix}"
        if candidate not in taken:
            return candidate
        candidate_n += 1


def _taken_names(kind, project_id):
    model = kind.parent_model
    rows = db.session.query(model.name).filter(model.project_id == project_id).all()
    return {row.name for row in rows}


def clone(kind, parent_id, *, actor="system", name_fn=None):
    """Deep-copy a live parent and its steps; the copy starts at version 1.0.0.

    Args:
        kind: CompositeKind of the source.
        parent_id: Source parent PK.
        actor: Recorded as creator of the clone and its baseline snapshot.
        name_fn: Optional ``fn(original_name) -> new_name``; its result is
            validated like any parent name. Defaults to
            ``derive_cloned_name`` against names already used in the project.

    Returns:
        The new parent's id.
    """
    def op():
        source = load_parent(kind, parent_id)
        if name_fn is not None:
            new_name = clean_name(name_fn(source.name))
        else:
            new_name = derive_cloned_name(source.name, _taken_names(kind, source.project_id))

        copy = kind.parent_model(
            project_id=source.project_id,
            name=new_name,
            version=None,
            cloned_from_id=source.id,
            created_by=actor,
            updated_by=actor,
            **kind.clone_values(source),
        )
        db.session.add(copy)
        db.session.flush()

        for step in kind.steps_query(source.id).all():
            db.session.add(kind.new_step(
                copy.id, order=step.order, created_by=actor, updated_by=actor,
                **step.content(),
            ))
        db.session.flush()

        snapshot_engine.capture(
            kind, copy.id, expected_version=None, actor=actor,
            change_summary=f"Cloned from {kind.label} id={source.id} v{source.version}",
        )
        return copy.id

    new_id = run_in_transaction(op, resource=kind.label, resource_id=parent_id)
    logger.info("%s id=%s cloned to id=%s by %s", kind.label, parent_id, new_id, actor)
    codegen_dispatch.notify_committed(kind, new_id)
    return new_id
