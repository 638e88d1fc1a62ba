"""Transaction runner for versioned mutations.

Every mutating operation on a composite runs inside ``run_in_transaction``:
the live change and the snapshot it produces commit together or not at all.
When another writer bumps the same parent first, the operation is rolled
back and re-run from scratch, up to ``VERSIONING_MAX_RETRIES`` times.
"""
import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from casevault.core.exceptions import ConcurrentModificationError
from casevault.models import db

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

# Unique constraints whose violation means another writer took the version.
_VERSION_CONSTRAINT_MARKERS = (
    "uq_test_case_versions_version",
    "uq_fixture_versions_version",
    "test_case_versions.test_case_id, test_case_versions.version",
    "fixture_versions.fixture_id, fixture_versions.version",
)


def _is_version_collision(exc: IntegrityError) -> bool:
    text = str(exc.orig) if exc.orig is not None else str(exc)
    return any(marker in text for marker in _VERSION_CONSTRAINT_MARKERS)


def _max_retries(explicit):
    if explicit is not None:
        return explicit
    return int(current_app.config.get("VERSIONING_MAX_RETRIES", DEFAULT_MAX_RETRIES))


def run_in_transaction(operation, *, resource, resource_id=None, max_retries=None):
    """Run *operation* and commit; retry on lost version races.

    Args:
        operation: Zero-argument callable doing all reads and writes of one
            mutation. It must re-read everything it needs, since a retry
            starts from a rolled-back session.
        resource: Parent model name, for logs and the final error.
        resource_id: Parent PK, or None for creates.
        max_retries: Overrides ``VERSIONING_MAX_RETRIES``.

    Returns:
        Whatever *operation* returned on the attempt that committed.

    Raises:
        ConcurrentModificationError: retries exhausted.
        Any other exception raised by *operation*, after rollback.
    """
    retries = _max_retries(max_retries)
    attempt = 0
    while True:
        attempt += 1
        try:
            result = operation()
            db.session.commit()
            return result
        except ConcurrentModificationError as exc:
            db.session.rollback()
            if attempt > retries:
                logger.warning(
                    "Giving up on %s id=%s after %d attempts: %s",
                    resource, resource_id, attempt, exc,
                )
                raise
            logger.warning(
                "Version race on %s id=%s (attempt %d), retrying",
                resource, resource_id, attempt,
            )
        except IntegrityError as exc:
            db.session.rollback()
            if not _is_version_collision(exc):
                logger.exception("Integrity error on %s id=%s", resource, resource_id)
                raise
            if attempt > retries:
                logger.warning(
                    "Giving up on %s id=%s after %d attempts: duplicate version",
                    resource, resource_id, attempt,
                )
                raise ConcurrentModificationError(resource, resource_id) from exc
            logger.warning(
                "Duplicate version on %s id=%s (attempt %d), retrying",
                resource, resource_id, attempt,
            )
        except Exception:
            db.session.rollback()
            raise
