"""Field extractors for SIP lifecycle event payloads.

All functions are pure.  Lookups return None for anything absent or of
the wrong JSON type; the require_* variants raise FieldExtractionError
instead so the caller can reject the event.
"""

from __future__ import annotations

import posixpath
from typing import Any, Sequence

from sipin_status.shared import FieldExtractionError


# ---------------------------------------------------------------------------
# Rule 1: base_pid
# ---------------------------------------------------------------------------

def base_pid(pid: str) -> str:
    """Return the pid without any collateral suffix (``<pid>_srt`` → ``<pid>``).

    Returns the input unchanged if it contains no underscore.
    """
    return pid.split("_", 1)[0]


# ---------------------------------------------------------------------------
# Rule 2: filename_from_path
# ---------------------------------------------------------------------------

def filename_from_path(path: Any) -> str:
    """Return the final segment of a POSIX-style path.

    Raises FieldExtractionError if the path is absent, not a string, or
    has no final segment (empty string, "/", "dir/", "..").
    """
    if not isinstance(path, str) or not path.strip():
        raise FieldExtractionError("path", "missing or empty path")
    name = posixpath.basename(path)
    if not name or name in (".", ".."):
        raise FieldExtractionError("path", f"no filename in path {path!r}")
    return name


# ---------------------------------------------------------------------------
# Rule 3: nested lookup
# ---------------------------------------------------------------------------

def lookup(data: Any, path: Sequence[str | int]) -> Any:
    """Walk ``path`` (dict keys / list indices) into ``data``.

    Returns None as soon as a step is missing or hits the wrong container.
    """
    current = data
    for step in path:
        if isinstance(step, int) and not isinstance(step, bool):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
            current = current[step]
        elif isinstance(current, dict):
            if step not in current:
                return None
            current = current[step]
        else:
            return None
    return current


def lookup_str(data: Any, path: Sequence[str | int]) -> str | None:
    value = lookup(data, path)
    return value if isinstance(value, str) else None


def lookup_int(data: Any, path: Sequence[str | int]) -> int | None:
    """Integer at ``path``; floats, bools and numeric strings count as absent."""
    value = lookup(data, path)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def require_str(data: Any, path: Sequence[str | int]) -> str:
    value = lookup_str(data, path)
    if value is None:
        raise FieldExtractionError(
            ".".join(str(p) for p in path), "missing or not a string"
        )
    return value
