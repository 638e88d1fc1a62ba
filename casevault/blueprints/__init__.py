"""
CaseVault
Blueprint registry and the list envelope shared by list endpoints.
"""

from flask import request

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500


def _int_arg(name, default, *, lowest, highest=None):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
    value = max(value, lowest)
    return value if highest is None else min(value, highest)


def paged_envelope(query, serialize):
    """Run one page of *query* and wrap it for a list response.

    Page comes from ``?limit=`` (1..MAX_PAGE_SIZE) and ``?offset=`` (>= 0);
    unparseable values fall back to the defaults.

    Returns:
        {"items": [serialize(row), ...], "total": n, "limit": l, "offset": o}
    """
    total = query.count()
    limit = _int_arg("limit", DEFAULT_PAGE_SIZE, lowest=1, highest=MAX_PAGE_SIZE)
    offset = _int_arg("offset", 0, lowest=0)
    rows = query.limit(limit).offset(offset).all()
    return {
        "items": [serialize(row) for row in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
