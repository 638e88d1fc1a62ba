"""
CaseVault
Project Blueprint - containers for test cases and fixtures.

Endpoints:
    POST   /api/v1/projects          - Create project
    GET    /api/v1/projects          - List projects
    GET    /api/v1/projects/<pid>    - Project detail
    DELETE /api/v1/projects/<pid>    - Delete project with everything in it
"""

import logging

from flask import Blueprint, jsonify, request

from casevault.blueprints import paged_envelope
from casevault.models import db
from casevault.models.project import Project
from casevault.utils.errors import E, api_error
from casevault.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")


@project_bp.route("/projects", methods=["POST"])
def create_project():
    """Create a new project."""
    data = request.get_json(silent=True) or {}
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    if len(name.strip()) > 200:
        return api_error(E.VALIDATION_INVALID, "name must be at most 200 characters")

    project = Project(
        name=name.strip(),
        description=data.get("description", "") or "",
        created_by=request.headers.get("X-User", "system"),
    )
    db.session.add(project)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Project id=%s created", project.id)
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    """List projects, newest first."""
    q = Project.query.order_by(Project.created_at.desc(), Project.id.desc())
    return jsonify(paged_envelope(q, lambda p: p.to_dict()))


@project_bp.route("/projects/<int:pid>", methods=["GET"])
def get_project(pid):
    """Project detail with test case / fixture counts."""
    project, err = get_or_404(Project, pid)
    if err:
        return err
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:pid>", methods=["DELETE"])
def delete_project(pid):
    """Delete a project; its test cases, fixtures and history cascade."""
    project, err = get_or_404(Project, pid)
    if err:
        return err
    db.session.delete(project)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Project id=%s deleted", pid)
    return jsonify({"message": "Project deleted"}), 200
