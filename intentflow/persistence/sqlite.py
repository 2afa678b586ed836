"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from ..contracts import OutputFormat, Step, StepStatus, Workflow, WorkflowStatus, utcnow
from .repository import WorkflowRepository

WORKFLOW_COLUMNS = "id, session_id, user_intent, status, current_step, created_at, completed_at"
STEP_COLUMNS = (
    "workflow_id, step_number, step_type, description, tool_name, tool_parameters, "
    "requires_confirmation, expected_output_format, status, result, error_message, completed_at"
)


def _dumps(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value, default=str)


def _loads(value: Optional[str]) -> Any:
    return json.loads(value) if value else None


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workflows (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    user_intent TEXT NOT NULL,
                    status TEXT NOT NULL,
                    current_step INTEGER,
                    created_at TEXT NOT NULL,
                    completed_at TEXT
                )
                """
            )
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workflow_steps (
                    workflow_id TEXT NOT NULL,
                    step_number INTEGER NOT NULL,
                    step_type TEXT NOT NULL,
                    description TEXT,
                    tool_name TEXT,
                    tool_parameters TEXT,
                    requires_confirmation INTEGER NOT NULL DEFAULT 0,
                    expected_output_format TEXT,
                    status TEXT NOT NULL,
                    result TEXT,
                    error_message TEXT,
                    completed_at TEXT,
                    PRIMARY KEY (workflow_id, step_number)
                )
                """
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_workflows_session ON workflows (session_id)"
            )

    # ------------------------------------------------------------------
    # Helper methods
    def _transaction(self, statements: Iterable[Tuple[str, tuple]]) -> int:
        with self._lock, self._conn:
            changed = 0
            for query, params in statements:
                changed += self._conn.execute(query, params).rowcount
            return changed

    def _claim(self, workflow_id: str, step_number: int) -> bool:
        with self._lock, self._conn:
            claimed = self._conn.execute(
                """
                UPDATE workflows SET status = ?
                WHERE id = ? AND status = ? AND current_step = ?
                """,
                (
                    WorkflowStatus.RUNNING.value,
                    workflow_id,
                    WorkflowStatus.WAITING_CONFIRMATION.value,
                    step_number,
                ),
            ).rowcount
            if not claimed:
                return False
            self._conn.execute(
                "UPDATE workflow_steps SET status = ? WHERE workflow_id = ? AND step_number = ?",
                (StepStatus.RUNNING.value, workflow_id, step_number),
            )
            return True

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(query, params).fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(query, params).fetchall()

    @staticmethod
    def _step_params(workflow_id: str, step: Step) -> tuple:
        return (
            workflow_id,
            step.step_number,
            step.step_type.value,
            step.description,
            step.tool_name,
            _dumps(step.tool_parameters),
            int(step.requires_confirmation),
            _dumps(step.expected_output_format.model_dump())
            if step.expected_output_format
            else None,
            step.status.value,
            _dumps(step.result),
            step.error_message,
            _ts(step.completed_at),
        )

    @staticmethod
    def _workflow_update(workflow: Workflow) -> Tuple[str, tuple]:
        return (
            "UPDATE workflows SET status = ?, current_step = ?, completed_at = ? WHERE id = ?",
            (
                workflow.status.value,
                workflow.current_step,
                _ts(workflow.completed_at),
                workflow.id,
            ),
        )

    def _step_upsert(self, workflow_id: str, step: Step) -> Tuple[str, tuple]:
        return (
            f"INSERT OR REPLACE INTO workflow_steps ({STEP_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            self._step_params(workflow_id, step),
        )

    @staticmethod
    def _to_step(row: sqlite3.Row) -> Step:
        output_format = _loads(row["expected_output_format"])
        return Step(
            step_number=row["step_number"],
            step_type=row["step_type"],
            description=row["description"] or "",
            tool_name=row["tool_name"],
            tool_parameters=_loads(row["tool_parameters"]) or {},
            requires_confirmation=bool(row["requires_confirmation"]),
            expected_output_format=OutputFormat(**output_format) if output_format else None,
            status=row["status"],
            result=_loads(row["result"]),
            error_message=row["error_message"],
            completed_at=_parse_ts(row["completed_at"]),
        )

    def _load(self, row: sqlite3.Row) -> Workflow:
        step_rows = self._fetchall(
            f"SELECT {STEP_COLUMNS} FROM workflow_steps WHERE workflow_id = ? ORDER BY step_number",
            row["id"],
        )
        return Workflow(
            id=row["id"],
            session_id=row["session_id"],
            user_intent=row["user_intent"],
            status=row["status"],
            current_step=row["current_step"],
            steps=[self._to_step(r) for r in step_rows],
            created_at=_parse_ts(row["created_at"]),
            completed_at=_parse_ts(row["completed_at"]),
        )

    def _get(self, workflow_id: str) -> Optional[Workflow]:
        row = self._fetchone(
            f"SELECT {WORKFLOW_COLUMNS} FROM workflows WHERE id = ?", workflow_id
        )
        return self._load(row) if row else None

    def _list(self, session_id: Optional[str]) -> List[Workflow]:
        if session_id is None:
            rows = self._fetchall(
                f"SELECT {WORKFLOW_COLUMNS} FROM workflows ORDER BY created_at DESC"
            )
        else:
            rows = self._fetchall(
                f"SELECT {WORKFLOW_COLUMNS} FROM workflows WHERE session_id = ? "
                "ORDER BY created_at DESC",
                session_id,
            )
        return [self._load(row) for row in rows]

    # ------------------------------------------------------------------
    # Repository API
    async def create_workflow(self, workflow: Workflow) -> None:
        statements = [
            (
                f"INSERT INTO workflows ({WORKFLOW_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    workflow.id,
                    workflow.session_id,
                    workflow.user_intent,
                    workflow.status.value,
                    workflow.current_step,
                    _ts(workflow.created_at),
                    _ts(workflow.completed_at),
                ),
            )
        ]
        statements.extend(
            (
                f"INSERT INTO workflow_steps ({STEP_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._step_params(workflow.id, step),
            )
            for step in workflow.steps
        )
        await asyncio.to_thread(self._transaction, statements)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        return await asyncio.to_thread(self._get, workflow_id)

    async def find_latest_by_session(self, session_id: str) -> Optional[Workflow]:
        workflows = await asyncio.to_thread(self._list, session_id)
        return workflows[0] if workflows else None

    async def list_workflows(self, session_id: Optional[str] = None) -> List[Workflow]:
        return await asyncio.to_thread(self._list, session_id)

    async def update_workflow(self, workflow: Workflow) -> None:
        await asyncio.to_thread(self._transaction, [self._workflow_update(workflow)])

    async def update_step(self, workflow_id: str, step: Step) -> None:
        await asyncio.to_thread(
            self._transaction, [self._step_upsert(workflow_id, step)]
        )

    async def save_workflow(self, workflow: Workflow) -> None:
        statements = [self._workflow_update(workflow)]
        statements.extend(self._step_upsert(workflow.id, s) for s in workflow.steps)
        await asyncio.to_thread(self._transaction, statements)

    async def complete_step(self, workflow_id: str, step_number: int, result: Any) -> bool:
        changed = await asyncio.to_thread(
            self._transaction,
            [
                (
                    """
                    UPDATE workflow_steps
                    SET status = ?, result = ?, error_message = NULL, completed_at = ?
                    WHERE workflow_id = ? AND step_number = ? AND status != ?
                    """,
                    (
                        StepStatus.COMPLETED.value,
                        _dumps(result),
                        _ts(utcnow()),
                        workflow_id,
                        step_number,
                        StepStatus.COMPLETED.value,
                    ),
                )
            ],
        )
        return changed > 0

    async def claim_confirmation(self, workflow_id: str, step_number: int) -> bool:
        return await asyncio.to_thread(self._claim, workflow_id, step_number)

    async def delete_workflow(self, workflow_id: str) -> bool:
        changed = await asyncio.to_thread(
            self._transaction,
            [
                ("DELETE FROM workflow_steps WHERE workflow_id = ?", (workflow_id,)),
                ("DELETE FROM workflows WHERE id = ?", (workflow_id,)),
            ],
        )
        return changed > 0
