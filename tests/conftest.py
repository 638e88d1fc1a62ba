"""
Shared pytest fixtures for the CaseVault test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project: Pre-created Project entity
    - other_project: A second Project, for cross-project checks
"""

import pytest

from casevault import create_app
from casevault.models import db as _db
from casevault.models.project import Project
from casevault.services.codegen_dispatch import set_codegen_collaborator


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        set_codegen_collaborator(None)
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


def _make_project(name):
    project = Project(name=name, description="", created_by="tester")
    _db.session.add(project)
    _db.session.commit()
    return project


@pytest.fixture()
def project():
    """A committed Project."""
    return _make_project("Checkout Suite")


@pytest.fixture()
def other_project():
    return _make_project("Other Suite")
