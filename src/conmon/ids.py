"""Prefixed ID generation utilities."""

import uuid
from datetime import datetime, timezone


def generate_id(prefix: str) -> str:
    """Generate a prefixed unique ID.

    Args:
        prefix: The prefix (e.g., "asmt_", "plan_", "exec_").

    Returns:
        A string like "asmt_a1b2c3d4e5f6a7b8".
    """
    return f"{prefix}{uuid.uuid4().hex[:16]}"


def backup_reference(now: datetime | None = None) -> str:
    """Reference id for the backup taken before a real remediation run."""
    now = now or datetime.now(timezone.utc)
    return f"backup-{uuid.uuid4().hex[:8]}-{now.strftime('%Y%m%d%H%M%S')}"
