"""Shared utility functions for kerdar core modules.

Id factories, timestamps and handle parsing used by the store, the schema
resolver and the simulator.
"""

import re
import uuid
from datetime import UTC, datetime

_OUTPUT_HANDLE = re.compile(r"^output-(\d+)$")


def node_id() -> str:
    return f"node_{uuid.uuid4().hex[:16]}"


def edge_id() -> str:
    return f"edge_{uuid.uuid4().hex[:16]}"


def workflow_id() -> str:
    return f"wf_{uuid.uuid4().hex[:16]}"


def execution_id() -> str:
    return f"exec_{uuid.uuid4().hex[:16]}"


def utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_output_index(handle: str | None) -> int:
    """Map an edge handle such as ``"output-1"`` to its port index.

    Absent or unrecognised handles resolve to port 0.
    """
    if not handle:
        return 0
    match = _OUTPUT_HANDLE.match(handle)
    if match:
        return int(match.group(1))
    return int(handle) if handle.isdigit() else 0
