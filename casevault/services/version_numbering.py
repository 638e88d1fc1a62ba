"""Version string parsing and increment.

Versions are two or more dot-separated non-negative integers ("1.0",
"1.0.0", "2.3.4.5"). A bump increments the last component only; there is no
carry, so "1.0.9" becomes "1.0.10".

Comparison is numeric, component by component. Never sort version strings
lexically: "1.0.10" < "1.0.9" as text.
"""
import re

from casevault.core.exceptions import InvalidVersionFormatError

INITIAL_VERSION = "1.0.0"

_VERSION_RE = re.compile(r"[0-9]+(\.[0-9]+)+")


def parse_version(version: str) -> tuple[int, ...]:
    """Split a version string into its integer components.

    Raises InvalidVersionFormatError on anything that is not ``\\d+(\\.\\d+)+``.
    """
    if not isinstance(version, str) or not _VERSION_RE.fullmatch(version):
        raise InvalidVersionFormatError(version)
    return tuple(int(part) for part in version.split("."))


def bump(version: str) -> str:
    """Return the next version: last component + 1, others unchanged.

    Example: bump("1.0.3") -> "1.0.4", bump("2.7") -> "2.8"
    """
    parts = list(parse_version(version))
    parts[-1] += 1
    return ".".join(str(p) for p in parts)


def next_version(current: str | None) -> str:
    """Version for the next snapshot of a parent whose live version is *current*.

    A parent with no version yet gets INITIAL_VERSION.
    """
    if current is None:
        return INITIAL_VERSION
    return bump(current)


def version_key(version: str) -> tuple[int, ...]:
    """Sort key for numeric ordering of version strings."""
    return parse_version(version)


def is_newer(candidate: str, baseline: str) -> bool:
    """True if *candidate* is strictly greater than *baseline*."""
    return version_key(candidate) > version_key(baseline)
