"""Process-wide remediation execution log."""

from __future__ import annotations

import threading
from datetime import datetime

from conmon.errors.exceptions import NotFoundError
from conmon.models.remediation import RemediationExecution


class ExecutionHistory:
    """Append-mostly execution table, safe to share across threads and tasks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: dict[str, RemediationExecution] = {}

    def record(self, execution: RemediationExecution) -> None:
        with self._lock:
            self._by_id[execution.execution_id] = execution

    def get(self, execution_id: str) -> RemediationExecution:
        with self._lock:
            execution = self._by_id.get(execution_id)
        if execution is None:
            raise NotFoundError("Remediation execution", execution_id)
        return execution

    def query(
        self,
        subscription_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[RemediationExecution]:
        with self._lock:
            executions = list(self._by_id.values())
        return sorted(
            (
                e for e in executions
                if (subscription_id is None or e.subscription_id == subscription_id)
                and (since is None or e.started_at >= since)
                and (until is None or e.started_at <= until)
            ),
            key=lambda e: e.started_at,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)
