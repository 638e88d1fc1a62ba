"""
CaseVault
Post-commit script regeneration.

After a mutation commits, the registered collaborator is asked to regenerate
the parent's generated script. The call is fire-and-forget: it runs on a
daemon thread (inline when ``CODEGEN_SYNC`` is set), failures are logged and
never retried, and nothing here can affect the committed mutation.

Generated files are derived from live state only, never from history.
"""

import logging
import os
import re
import threading

from flask import current_app

from casevault.models import db

logger = logging.getLogger(__name__)

_collaborator = None


def set_codegen_collaborator(fn):
    """Register ``fn(kind, parent_id)``; ``None`` restores the default writer."""
    global _collaborator
    _collaborator = fn


def get_codegen_collaborator():
    return _collaborator or write_script_file


def notify_committed(kind, parent_id):
    """Schedule regeneration for a parent whose mutation just committed."""
    app = current_app._get_current_object()
    fn = get_codegen_collaborator()

    if app.config.get("CODEGEN_SYNC"):
        _run(app, fn, kind, parent_id)
        return

    t = threading.Thread(
        target=_run, args=(app, fn, kind, parent_id),
        name=f"codegen-{kind.key}-{parent_id}", daemon=True,
    )
    t.start()


def _run(app, fn, kind, parent_id):
    with app.app_context():
        try:
            fn(kind, parent_id)
        except Exception:
            logger.exception("Codegen failed for %s id=%s", kind.label, parent_id)


# ── Default writer ───────────────────────────────────────────────────────────

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def _script_filename(kind, parent):
    explicit = getattr(parent, "filename", "") or ""
    if explicit:
        return os.path.basename(explicit)
    slug = _UNSAFE_CHARS.sub("_", parent.name.strip().lower()).strip("_") or "untitled"
    return f"{kind.key}_{parent.id}_{slug}.spec.ts"


def render_script(kind, parent, steps):
    """Concatenate the enabled steps' embedded scripts into one file body."""
    lines = [f"// {kind.label}: {parent.name} (v{parent.version})", ""]
    for step in steps:
        if step.disabled:
            continue
        lines.append(f"// step {step.order + 1}: {step.action}")
        if step.playwright_script:
            lines.append(step.playwright_script.rstrip())
        lines.append("")
    return "\n".join(lines)


def write_script_file(kind, parent_id):
    """Render the live parent into ``CODEGEN_OUTPUT_DIR``.

    No-op when the directory is not configured, the parent is gone, or the
    parent is a manual test case.
    """
    out_dir = current_app.config.get("CODEGEN_OUTPUT_DIR")
    if not out_dir:
        return None

    parent = db.session.get(kind.parent_model, parent_id)
    if parent is None:
        logger.info("Codegen skipped: %s id=%s no longer exists", kind.label, parent_id)
        return None
    if getattr(parent, "is_manual", False):
        logger.debug("Codegen skipped: %s id=%s is manual", kind.label, parent_id)
        return None

    steps = kind.steps_query(parent_id).all()
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, _script_filename(kind, parent))
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(render_script(kind, parent, steps))
    logger.info("Codegen wrote %s for %s id=%s", path, kind.label, parent_id)
    return path
