"""Starts workflow instances and acts on feedback from finished steps."""

from __future__ import annotations

import uuid

from .models import (
    CustomFeedback,
    FeedbackLoop,
    InstanceStatus,
    ManualFeedback,
    MetricThreshold,
    Workflow,
    WorkflowInstance,
    WorkerTask,
)
from .scheduler import Scheduler
from .storage import WorkflowStorage


class WorkflowEngine:
    """Ties the scheduler to the storage of workflows and instances."""

    def __init__(self, scheduler: Scheduler, storage: WorkflowStorage) -> None:
        self.scheduler = scheduler
        self.storage = storage

    async def start_workflow(self, workflow: Workflow) -> uuid.UUID:
        """Store the workflow and a new pending instance, schedule it, return its id."""
        instance = WorkflowInstance(
            id=uuid.uuid4(),
            workflow_id=workflow.id,
            status=InstanceStatus.PENDING,
        )
        await self.storage.save_workflow(workflow)
        await self.storage.save_instance(instance)
        await self.scheduler.schedule_workflow(workflow, instance)
        return instance.id

    async def process_feedback(
        self, instance_id: uuid.UUID, step_id: uuid.UUID
    ) -> list[WorkerTask]:
        """Reschedule targets of loops from ``step_id`` whose condition holds."""
        instance = await self.storage.get_instance(instance_id)
        workflow = await self.storage.get_workflow(instance.workflow_id)
        tasks = []
        for loop in workflow.feedback_loops:
            if loop.source_step_id != step_id:
                continue
            if await self.evaluate_feedback_condition(instance, loop):
                tasks.append(
                    await self.scheduler.reschedule_step(
                        workflow, instance.id, loop.target_step_id
                    )
                )
        return tasks

    async def evaluate_feedback_condition(
        self, instance: WorkflowInstance, feedback: FeedbackLoop
    ) -> bool:
        """Return whether a feedback loop's condition holds for an instance."""
        condition = feedback.condition
        if isinstance(condition, MetricThreshold):
            result = instance.step_results.get(feedback.source_step_id)
            if result is None or not isinstance(result.output, dict):
                return False
            value = result.output.get(condition.metric)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return False
            return condition.operator.compare(float(value), condition.threshold)
        if isinstance(condition, ManualFeedback):
            return True
        if isinstance(condition, CustomFeedback):
            return False
        raise TypeError(f"not a feedback condition: {condition!r}")