"""Workers that execute the tasks the scheduler hands out."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from .models import StepResult, StepStatus, TaskKind, TaskType, WorkerTask
from .scheduler import Scheduler, SchedulerError
from .storage import WorkflowStorage

log = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 10.0


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Worker:
    """Takes tasks from a queue, runs them and records their results.

    A ``None`` put on the queue marks the end of the task stream.
    """

    def __init__(
        self,
        worker_id: str,
        capabilities: list[TaskType],
        scheduler: Scheduler,
        storage: WorkflowStorage,
        tasks: asyncio.Queue,
    ) -> None:
        self.id = worker_id
        self.capabilities = list(capabilities)
        self.scheduler = scheduler
        self.storage = storage
        self.tasks = tasks

    async def start(self) -> None:
        """Register with the scheduler, then process tasks until the stream ends."""
        await self.scheduler.register_worker(self.id, self.capabilities)
        heartbeat = asyncio.create_task(self._heartbeat())
        try:
            while (task := await self.tasks.get()) is not None:
                await self.process_task(task)
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            try:
                await self.scheduler.worker_heartbeat(self.id)
            except SchedulerError as exc:
                log.error("Heartbeat failed: %s", exc)

    async def process_task(self, task: WorkerTask) -> StepResult:
        """Run one task, record its result, then act on feedback; return the result."""
        result = StepResult(
            step_id=task.step_id,
            status=StepStatus.RUNNING,
            worker_id=self.id,
            started_at=_now(),
        )
        await self.storage.update_step_result(task.instance_id, task.step_id, result)

        try:
            output = await self._execute(task)
        except Exception as exc:
            result = replace(result, status=StepStatus.FAILED, error=str(exc))
        else:
            result = replace(result, status=StepStatus.COMPLETED, output=output)
        result.completed_at = _now()

        await self.storage.update_step_result(task.instance_id, task.step_id, result)
        await self.scheduler.process_feedback(task.instance_id, task.step_id)
        return result

    async def _execute(self, task: WorkerTask) -> Any:
        kind = task.task_type.kind
        if kind is TaskKind.DATA_PREPARATION:
            return {"status": "completed"}
        if kind is TaskKind.MODEL_TRAINING:
            return {"status": "completed", "metrics": {"accuracy": 0.95}}
        if kind is TaskKind.MODEL_EVALUATION:
            return {"status": "completed", "metrics": {"precision": 0.92, "recall": 0.89}}
        if kind is TaskKind.MODEL_DEPLOYMENT:
            return {"status": "completed", "endpoint": "https://api.example.com/models/123"}
        if kind is TaskKind.NOTIFICATION:
            return {"status": "completed"}
        return {"status": "completed", "task": task.task_type.name}