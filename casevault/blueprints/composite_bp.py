"""
CaseVault
Composite Blueprint - versioned test cases and fixtures.

Every route exists once for both kinds; ``<kind>`` is ``test-cases`` or
``fixtures``. A parent addressed under a project it does not belong to is 404.

Endpoints (prefix /api/v1/projects/<pid>/<kind>):
    POST   /                                  - Create (version 1.0.0)
    GET    /                                  - List
    GET    /<id>                              - Detail with steps
    PUT    /<id>                              - Update name / kind fields
    DELETE /<id>                              - Delete with history

    GET    /<id>/steps                        - List live steps
    POST   /<id>/steps                        - Add step (optional "position")
    PUT    /<id>/steps/<sid>                  - Update step
    DELETE /<id>/steps/<sid>                  - Delete step
    POST   /<id>/steps/reorder                - Reorder ({"step_ids": [...]})
    POST   /<id>/steps/<sid>/duplicate        - Duplicate step after itself

    GET    /<id>/versions                     - History, newest first
    GET    /<id>/versions/diff?from=&to=      - Diff two snapshots
    GET    /<id>/versions/<vid>               - Snapshot detail
    GET    /<id>/versions/<vid>/steps         - Snapshot steps
    POST   /<id>/revert/<vid>                 - Revert to snapshot
    POST   /<id>/clone                        - Clone into a new parent

Mutations respond with ``{"test_case" | "fixture": {...}, "version": "x.y.z"}``.
"""

import logging

from flask import Blueprint, jsonify, request

from casevault.blueprints import paged_envelope
from casevault.services import clone_service, revert_service, snapshot_engine
from casevault.services import versioned_store as store
from casevault.services.composite import kind_for_slug
from casevault.utils.errors import E, api_error

logger = logging.getLogger(__name__)

composite_bp = Blueprint("composite", __name__, url_prefix="/api/v1")

_BASE = '/projects/<int:project_id>/<any("test-cases", "fixtures"):kind_slug>'


def _actor():
    return request.headers.get("X-User") or "system"


def _body():
    data = request.get_json(silent=True)
    return {} if data is None else data


def _scoped(kind_slug, project_id, parent_id):
    kind = kind_for_slug(kind_slug)
    store.get_parent(kind, parent_id, project_id)
    return kind


def _mutation_response(kind, parent, version, status=200):
    return jsonify({kind.key: parent.to_dict(include_steps=True), "version": version}), status


# ═════════════════════════════════════════════════════════════════════════════
# PARENTS
# ═════════════════════════════════════════════════════════════════════════════

@composite_bp.route(_BASE, methods=["POST"])
def create_parent(project_id, kind_slug):
    """Create a test case / fixture at version 1.0.0."""
    kind = kind_for_slug(kind_slug)
    parent = store.create_parent(kind, project_id, _body(), actor=_actor())
    return _mutation_response(kind, parent, parent.version, 201)


@composite_bp.route(_BASE, methods=["GET"])
def list_parents(project_id, kind_slug):
    """List parents in a project, optional ?search= on name."""
    kind = kind_for_slug(kind_slug)
    q = store.list_parents(kind, project_id, search=request.args.get("search"))
    return jsonify(paged_envelope(q, lambda p: p.to_dict()))


@composite_bp.route(f"{_BASE}/<int:parent_id>", methods=["GET"])
def get_parent(project_id, kind_slug, parent_id):
    """Parent detail with live steps."""
    kind = kind_for_slug(kind_slug)
    parent = store.get_parent(kind, parent_id, project_id)
    return jsonify(parent.to_dict(include_steps=True))


@composite_bp.route(f"{_BASE}/<int:parent_id>", methods=["PUT"])
def update_parent(project_id, kind_slug, parent_id):
    kind = _scoped(kind_slug, project_id, parent_id)
    parent, version = store.update_parent(kind, parent_id, _body(), actor=_actor())
    return _mutation_response(kind, parent, version)


@composite_bp.route(f"{_BASE}/<int:parent_id>", methods=["DELETE"])
def delete_parent(project_id, kind_slug, parent_id):
    kind = _scoped(kind_slug, project_id, parent_id)
    store.delete_parent(kind, parent_id, actor=_actor())
    return jsonify({"message": f"{kind.label} deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# STEPS
# ═════════════════════════════════════════════════════════════════════════════

@composite_bp.route(f"{_BASE}/<int:parent_id>/steps", methods=["GET"])
def list_steps(project_id, kind_slug, parent_id):
    kind = _scoped(kind_slug, project_id, parent_id)
    return jsonify([s.to_dict() for s in store.list_steps(kind, parent_id)])


@composite_bp.route(f"{_BASE}/<int:parent_id>/steps", methods=["POST"])
def add_step(project_id, kind_slug, parent_id):
    """Append a step, or insert it at "position"."""
    kind = _scoped(kind_slug, project_id, parent_id)
    data = _body()
    position = None
    if isinstance(data, dict):
        data = dict(data)
        position = data.pop("position", None)
    parent, version = store.add_step(
        kind, parent_id, data, position=position, actor=_actor(),
    )
    return _mutation_response(kind, parent, version, 201)


@composite_bp.route(f"{_BASE}/<int:parent_id>/steps/<int:step_id>", methods=["PUT"])
def update_step(project_id, kind_slug, parent_id, step_id):
    kind = _scoped(kind_slug, project_id, parent_id)
    parent, version = store.update_step(kind, parent_id, step_id, _body(), actor=_actor())
    return _mutation_response(kind, parent, version)


@composite_bp.route(f"{_BASE}/<int:parent_id>/steps/<int:step_id>", methods=["DELETE"])
def delete_step(project_id, kind_slug, parent_id, step_id):
    kind = _scoped(kind_slug, project_id, parent_id)
    parent, version = store.delete_step(kind, parent_id, step_id, actor=_actor())
    return _mutation_response(kind, parent, version)


@composite_bp.route(f"{_BASE}/<int:parent_id>/steps/reorder", methods=["POST"])
def reorder_steps(project_id, kind_slug, parent_id):
    """Reorder steps; body must list every step id exactly once."""
    kind = _scoped(kind_slug, project_id, parent_id)
    data = _body()
    if not isinstance(data, dict) or "step_ids" not in data:
        return api_error(E.VALIDATION_REQUIRED, "step_ids is required")
    parent, version = store.reorder_steps(kind, parent_id, data["step_ids"], actor=_actor())
    return _mutation_response(kind, parent, version)


@composite_bp.route(f"{_BASE}/<int:parent_id>/steps/<int:step_id>/duplicate", methods=["POST"])
def duplicate_step(project_id, kind_slug, parent_id, step_id):
    """Copy a step (body fields override the copy) and insert it after the source."""
    kind = _scoped(kind_slug, project_id, parent_id)
    parent, version = store.duplicate_step(
        kind, parent_id, step_id, _body(), actor=_actor(),
    )
    return _mutation_response(kind, parent, version, 201)


# ═════════════════════════════════════════════════════════════════════════════
# HISTORY
# ═════════════════════════════════════════════════════════════════════════════

@composite_bp.route(f"{_BASE}/<int:parent_id>/versions", methods=["GET"])
def list_versions(project_id, kind_slug, parent_id):
    """List all versions (latest first)."""
    kind = _scoped(kind_slug, project_id, parent_id)
    return jsonify([v.to_dict() for v in snapshot_engine.list_versions(kind, parent_id)])


@composite_bp.route(f"{_BASE}/<int:parent_id>/versions/diff", methods=["GET"])
def diff_versions(project_id, kind_slug, parent_id):
    """Return field/step-level diff between two versions."""
    kind = _scoped(kind_slug, project_id, parent_id)
    try:
        from_id = int(request.args.get("from", ""))
        to_id = int(request.args.get("to", ""))
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_REQUIRED, "from and to query params are required integers")

    return jsonify({
        f"{kind.key}_id": parent_id,
        "from": snapshot_engine.get_version(kind, parent_id, from_id).to_dict(),
        "to": snapshot_engine.get_version(kind, parent_id, to_id).to_dict(),
        "diff": snapshot_engine.diff_versions(kind, parent_id, from_id, to_id),
    })


@composite_bp.route(f"{_BASE}/<int:parent_id>/versions/<int:version_id>", methods=["GET"])
def get_version(project_id, kind_slug, parent_id, version_id):
    kind = _scoped(kind_slug, project_id, parent_id)
    snapshot = snapshot_engine.get_version(kind, parent_id, version_id)
    return jsonify(snapshot.to_dict(include_steps=True))


@composite_bp.route(f"{_BASE}/<int:parent_id>/versions/<int:version_id>/steps", methods=["GET"])
def get_version_steps(project_id, kind_slug, parent_id, version_id):
    kind = _scoped(kind_slug, project_id, parent_id)
    steps = snapshot_engine.get_version_steps(kind, parent_id, version_id)
    return jsonify([s.to_dict() for s in steps])


@composite_bp.route(f"{_BASE}/<int:parent_id>/revert/<int:version_id>", methods=["POST"])
def revert(project_id, kind_slug, parent_id, version_id):
    """Restore a snapshot's content as a new forward version."""
    kind = _scoped(kind_slug, project_id, parent_id)
    parent, version = revert_service.revert_to(kind, parent_id, version_id, actor=_actor())
    return _mutation_response(kind, parent, version)


@composite_bp.route(f"{_BASE}/<int:parent_id>/clone", methods=["POST"])
def clone(project_id, kind_slug, parent_id):
    """Clone into a new parent with its own 1.0.0 history."""
    kind = _scoped(kind_slug, project_id, parent_id)
    new_id = clone_service.clone(kind, parent_id, actor=_actor())
    copy = store.get_parent(kind, new_id)
    return _mutation_response(kind, copy, copy.version, 201)
