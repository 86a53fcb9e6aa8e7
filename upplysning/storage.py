"""Storage for workflows and their instances."""

from __future__ import annotations

import copy
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from .models import StepResult, Workflow, WorkflowInstance


class NotFoundError(LookupError):
    """Raised when a workflow or instance is not stored."""


class WorkflowStorage(ABC):
    """Asynchronous store of workflows and workflow instances."""

    @abstractmethod
    async def save_workflow(self, workflow: Workflow) -> None:
        """Store a workflow, replacing any with the same id."""

    @abstractmethod
    async def get_workflow(self, workflow_id: uuid.UUID) -> Workflow:
        """Return the stored workflow or raise NotFoundError."""

    @abstractmethod
    async def save_instance(self, instance: WorkflowInstance) -> None:
        """Store an instance, replacing any with the same id."""

    @abstractmethod
    async def get_instance(self, instance_id: uuid.UUID) -> WorkflowInstance:
        """Return the stored instance or raise NotFoundError."""

    @abstractmethod
    async def update_step_result(
        self, instance_id: uuid.UUID, step_id: uuid.UUID, result: StepResult
    ) -> None:
        """Record a step's result on a stored instance or raise NotFoundError."""


class InMemoryStorage(WorkflowStorage):
    """Keeps independent copies of everything in process memory."""

    def __init__(self) -> None:
        self._workflows: dict[uuid.UUID, Workflow] = {}
        self._instances: dict[uuid.UUID, WorkflowInstance] = {}

    async def save_workflow(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = copy.deepcopy(workflow)

    async def get_workflow(self, workflow_id: uuid.UUID) -> Workflow:
        try:
            return copy.deepcopy(self._workflows[workflow_id])
        except KeyError:
            raise NotFoundError(f"Workflow not found: {workflow_id}") from None

    async def save_instance(self, instance: WorkflowInstance) -> None:
        self._instances[instance.id] = copy.deepcopy(instance)

    async def get_instance(self, instance_id: uuid.UUID) -> WorkflowInstance:
        try:
            return copy.deepcopy(self._instances[instance_id])
        except KeyError:
            raise NotFoundError(f"Instance not found: {instance_id}") from None

    async def update_step_result(
        self, instance_id: uuid.UUID, step_id: uuid.UUID, result: StepResult
    ) -> None:
        instance = self._instances.get(instance_id)
        if instance is None:
            raise NotFoundError(f"Instance not found: {instance_id}")
        instance.step_results[step_id] = copy.deepcopy(result)
        instance.updated_at = datetime.now(timezone.utc)