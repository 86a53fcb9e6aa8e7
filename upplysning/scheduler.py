"""Assigns workflow steps to workers and tracks the workers that are alive."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .models import TaskType, Workflow, WorkflowInstance, WorkerTask
from .storage import WorkflowStorage

log = logging.getLogger(__name__)

DEFAULT_NODES = ("127.0.0.1:8001", "127.0.0.1:8002", "127.0.0.1:8003")
LOCAL_NODE_ID = 1
LEADER_HEARTBEAT_INTERVAL = 5.0
WORKER_TIMEOUT = timedelta(seconds=30)


class SchedulerError(RuntimeError):
    """Raised when the scheduler cannot do what was asked of it."""


@dataclass
class SimpleConsensus:
    """A minimal leader election: node 1 leads unless another leader is proposed."""

    node_id: int
    nodes: list[str]
    is_leader: bool = field(init=False)
    term: int = 1
    last_heartbeat: datetime | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.is_leader = self.node_id == 1

    async def propose_leader(self, node_id: int) -> bool:
        """Make ``node_id`` the leader; return whether this node now leads."""
        self.is_leader = self.node_id == node_id
        return self.is_leader

    async def heartbeat(self) -> None:
        """Record that the leader is still alive."""
        self.last_heartbeat = datetime.now(timezone.utc)


@dataclass
class WorkerInfo:
    """What the scheduler knows about a registered worker."""

    id: str
    capabilities: list[TaskType]
    last_heartbeat: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Scheduler:
    """Turns workflow steps into worker tasks, on the leader node only."""

    def __init__(self, amqp_url: str, storage: WorkflowStorage) -> None:
        self.amqp_url = amqp_url
        self.storage = storage
        self.workers: dict[str, WorkerInfo] = {}
        self.consensus = SimpleConsensus(LOCAL_NODE_ID, list(DEFAULT_NODES))
        self._consensus_lock = asyncio.Lock()
        self._heartbeat_task: asyncio.Task | None = None

    async def start_leader_election(self) -> None:
        """Propose this node as leader and, if it leads, keep sending heartbeats."""
        async with self._consensus_lock:
            await self.consensus.propose_leader(LOCAL_NODE_ID)
            leads = self.consensus.is_leader
        if leads and self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._leader_heartbeat())

    async def _leader_heartbeat(self) -> None:
        while True:
            await asyncio.sleep(LEADER_HEARTBEAT_INTERVAL)
            async with self._consensus_lock:
                try:
                    await self.consensus.heartbeat()
                except Exception as exc:  # keep beating whatever one round did
                    log.error("Leader heartbeat failed: %s", exc)

    async def close(self) -> None:
        """Stop the leader heartbeat, if one is running."""
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def schedule_workflow(
        self, workflow: Workflow, instance: WorkflowInstance
    ) -> list[WorkerTask]:
        """Schedule every step without dependencies; return the tasks created."""
        async with self._consensus_lock:
            if not self.consensus.is_leader:
                raise SchedulerError("Not the leader node - cannot schedule workflow")
        return [
            await self.schedule_step(workflow, instance.id, step.id)
            for step in workflow.steps
            if not step.dependencies
        ]

    async def schedule_step(
        self, workflow: Workflow, instance_id: uuid.UUID, step_id: uuid.UUID
    ) -> WorkerTask:
        """Build the worker task for one step of an instance."""
        step = next((s for s in workflow.steps if s.id == step_id), None)
        if step is None:
            raise SchedulerError(f"Step not found: {step_id}")
        return WorkerTask(
            id=uuid.uuid4(),
            step_id=step_id,
            instance_id=instance_id,
            task_type=step.task_type,
            config=dict(step.config),
        )

    async def reschedule_step(
        self, workflow: Workflow, instance_id: uuid.UUID, step_id: uuid.UUID
    ) -> WorkerTask:
        """Schedule a step again, as a feedback loop asks."""
        return await self.schedule_step(workflow, instance_id, step_id)

    async def register_worker(self, worker_id: str, capabilities: list[TaskType]) -> None:
        """Record a worker and what it can do, replacing any earlier record."""
        self.workers[worker_id] = WorkerInfo(id=worker_id, capabilities=list(capabilities))

    async def worker_heartbeat(self, worker_id: str) -> None:
        """Note that a registered worker is still alive."""
        worker = self.workers.get(worker_id)
        if worker is None:
            raise SchedulerError(f"Worker not found: {worker_id}")
        worker.last_heartbeat = datetime.now(timezone.utc)

    async def monitor_workers(self) -> list[str]:
        """Forget workers silent for longer than the timeout; return their ids."""
        now = datetime.now(timezone.utc)
        dead = [
            worker_id
            for worker_id, info in self.workers.items()
            if now - info.last_heartbeat > WORKER_TIMEOUT
        ]
        for worker_id in dead:
            del self.workers[worker_id]
        return dead

    async def process_feedback(
        self, instance_id: uuid.UUID, step_id: uuid.UUID
    ) -> list[WorkerTask]:
        """Reschedule the target of every feedback loop leaving ``step_id``."""
        instance = await self.storage.get_instance(instance_id)
        workflow = await self.storage.get_workflow(instance.workflow_id)
        return [
            await self.reschedule_step(workflow, instance.id, loop.target_step_id)
            for loop in workflow.feedback_loops
            if loop.source_step_id == step_id
        ]