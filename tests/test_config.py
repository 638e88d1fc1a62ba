"""Tests for environment config selection and production start-up checks."""

import pytest

from casevault import create_app
from casevault.config import ProductionConfig, TestingConfig


def test_testing_config_runs_codegen_inline(app):
    assert app.config["TESTING"] is True
    assert app.config["CODEGEN_SYNC"] is True
    assert app.config["SQLALCHEMY_DATABASE_URI"] == TestingConfig.SQLALCHEMY_DATABASE_URI


def test_production_app_refuses_missing_database_url(monkeypatch):
    monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
    monkeypatch.setenv("SECRET_KEY", "s3cret")

    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        create_app("production")


def test_production_app_refuses_missing_secret_key(monkeypatch):
    monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/casevault")
    monkeypatch.delenv("SECRET_KEY", raising=False)

    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app("production")


def test_production_settings_accepted(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "s3cret")
    ProductionConfig.validate({"SQLALCHEMY_DATABASE_URI": "postgresql://db/casevault"})
