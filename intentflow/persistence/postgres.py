"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from typing import Any, List, Optional

import asyncpg

from ..contracts import OutputFormat, Step, StepStatus, Workflow, WorkflowStatus, utcnow
from .repository import WorkflowRepository

WORKFLOW_COLUMNS = "id, session_id, user_intent, status, current_step, created_at, completed_at"
STEP_COLUMNS = (
    "workflow_id, step_number, step_type, description, tool_name, tool_parameters, "
    "requires_confirmation, expected_output_format, status, result, error_message, completed_at"
)

UPSERT_STEP = f"""
    INSERT INTO workflow_steps ({STEP_COLUMNS})
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
    ON CONFLICT (workflow_id, step_number) DO UPDATE SET
        status = EXCLUDED.status,
        tool_parameters = EXCLUDED.tool_parameters,
        result = EXCLUDED.result,
        error_message = EXCLUDED.error_message,
        completed_at = EXCLUDED.completed_at
"""

UPDATE_WORKFLOW = (
    "UPDATE workflows SET status = $1, current_step = $2, completed_at = $3 WHERE id = $4"
)


def _dumps(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value, default=str)


def _loads(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                session_id TEXT NOT NULL,
                user_intent TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step INTEGER,
                created_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_steps (
                workflow_id TEXT NOT NULL REFERENCES workflows (id) ON DELETE CASCADE,
                step_number INTEGER NOT NULL,
                step_type TEXT NOT NULL,
                description TEXT,
                tool_name TEXT,
                tool_parameters JSONB,
                requires_confirmation BOOLEAN NOT NULL DEFAULT FALSE,
                expected_output_format JSONB,
                status TEXT NOT NULL,
                result JSONB,
                error_message TEXT,
                completed_at TIMESTAMPTZ,
                PRIMARY KEY (workflow_id, step_number)
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflows_session ON workflows (session_id)"
        )

    @staticmethod
    def _step_args(workflow_id: str, step: Step) -> tuple:
        return (
            workflow_id,
            step.step_number,
            step.step_type.value,
            step.description,
            step.tool_name,
            _dumps(step.tool_parameters),
            step.requires_confirmation,
            _dumps(step.expected_output_format.model_dump())
            if step.expected_output_format
            else None,
            step.status.value,
            _dumps(step.result),
            step.error_message,
            step.completed_at,
        )

    @staticmethod
    def _to_step(r: asyncpg.Record) -> Step:
        output_format = _loads(r["expected_output_format"])
        return Step(
            step_number=r["step_number"],
            step_type=r["step_type"],
            description=r["description"] or "",
            tool_name=r["tool_name"],
            tool_parameters=_loads(r["tool_parameters"]) or {},
            requires_confirmation=r["requires_confirmation"],
            expected_output_format=OutputFormat(**output_format) if output_format else None,
            status=r["status"],
            result=_loads(r["result"]),
            error_message=r["error_message"],
            completed_at=r["completed_at"],
        )

    async def _load(self, conn: asyncpg.Connection, row: asyncpg.Record) -> Workflow:
        step_rows = await conn.fetch(
            f"SELECT {STEP_COLUMNS} FROM workflow_steps WHERE workflow_id = $1 ORDER BY step_number",
            row["id"],
        )
        return Workflow(
            id=row["id"],
            session_id=row["session_id"],
            user_intent=row["user_intent"],
            status=row["status"],
            current_step=row["current_step"],
            steps=[self._to_step(r) for r in step_rows],
            created_at=row["created_at"],
            completed_at=row["completed_at"],
        )

    # ------------------------------------------------------------------
    async def create_workflow(self, workflow: Workflow) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    f"INSERT INTO workflows ({WORKFLOW_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                    workflow.id,
                    workflow.session_id,
                    workflow.user_intent,
                    workflow.status.value,
                    workflow.current_step,
                    workflow.created_at,
                    workflow.completed_at,
                )
                for step in workflow.steps:
                    await conn.execute(UPSERT_STEP, *self._step_args(workflow.id, step))
        finally:
            await conn.close()

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {WORKFLOW_COLUMNS} FROM workflows WHERE id = $1", workflow_id
            )
            if not row:
                return None
            return await self._load(conn, row)
        finally:
            await conn.close()

    async def find_latest_by_session(self, session_id: str) -> Optional[Workflow]:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {WORKFLOW_COLUMNS} FROM workflows WHERE session_id = $1 "
                "ORDER BY created_at DESC LIMIT 1",
                session_id,
            )
            if not row:
                return None
            return await self._load(conn, row)
        finally:
            await conn.close()

    async def list_workflows(self, session_id: Optional[str] = None) -> List[Workflow]:
        conn = await self._connect()
        try:
            if session_id is None:
                rows = await conn.fetch(
                    f"SELECT {WORKFLOW_COLUMNS} FROM workflows ORDER BY created_at DESC"
                )
            else:
                rows = await conn.fetch(
                    f"SELECT {WORKFLOW_COLUMNS} FROM workflows WHERE session_id = $1 "
                    "ORDER BY created_at DESC",
                    session_id,
                )
            return [await self._load(conn, row) for row in rows]
        finally:
            await conn.close()

    async def update_workflow(self, workflow: Workflow) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                UPDATE_WORKFLOW,
                workflow.status.value,
                workflow.current_step,
                workflow.completed_at,
                workflow.id,
            )
        finally:
            await conn.close()

    async def update_step(self, workflow_id: str, step: Step) -> None:
        conn = await self._connect()
        try:
            await conn.execute(UPSERT_STEP, *self._step_args(workflow_id, step))
        finally:
            await conn.close()

    async def save_workflow(self, workflow: Workflow) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    UPDATE_WORKFLOW,
                    workflow.status.value,
                    workflow.current_step,
                    workflow.completed_at,
                    workflow.id,
                )
                for step in workflow.steps:
                    await conn.execute(UPSERT_STEP, *self._step_args(workflow.id, step))
        finally:
            await conn.close()

    async def complete_step(self, workflow_id: str, step_number: int, result: Any) -> bool:
        conn = await self._connect()
        try:
            status = await conn.execute(
                """
                UPDATE workflow_steps
                SET status = $1, result = $2, error_message = NULL, completed_at = $3
                WHERE workflow_id = $4 AND step_number = $5 AND status <> $1
                """,
                StepStatus.COMPLETED.value,
                _dumps(result),
                utcnow(),
                workflow_id,
                step_number,
            )
        finally:
            await conn.close()
        return status.split()[-1] != "0"

    async def claim_confirmation(self, workflow_id: str, step_number: int) -> bool:
        conn = await self._connect()
        try:
            async with conn.transaction():
                status = await conn.execute(
                    """
                    UPDATE workflows SET status = $1
                    WHERE id = $2 AND status = $3 AND current_step = $4
                    """,
                    WorkflowStatus.RUNNING.value,
                    workflow_id,
                    WorkflowStatus.WAITING_CONFIRMATION.value,
                    step_number,
                )
                if status.split()[-1] == "0":
                    return False
                await conn.execute(
                    "UPDATE workflow_steps SET status = $1 WHERE workflow_id = $2 AND step_number = $3",
                    StepStatus.RUNNING.value,
                    workflow_id,
                    step_number,
                )
                return True
        finally:
            await conn.close()

    async def delete_workflow(self, workflow_id: str) -> bool:
        conn = await self._connect()
        try:
            status = await conn.execute("DELETE FROM workflows WHERE id = $1", workflow_id)
        finally:
            await conn.close()
        return status.split()[-1] != "0"
