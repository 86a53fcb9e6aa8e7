import uuid
from datetime import datetime, timezone

import pytest

from upplysning.models import (
    StepResult,
    StepStatus,
    Step,
    TaskKind,
    TaskType,
    Workflow,
    WorkflowInstance,
)
from upplysning.storage import InMemoryStorage, NotFoundError, WorkflowStorage


def _workflow():
    step = Step(uuid.uuid4(), "train", TaskType(TaskKind.MODEL_TRAINING))
    return Workflow(uuid.uuid4(), "pipeline", [step], [])


def _instance(workflow_id):
    old = datetime(2000, 1, 1, tzinfo=timezone.utc)
    return WorkflowInstance(uuid.uuid4(), workflow_id, created_at=old, updated_at=old)


def test_storage_interface_is_abstract():
    with pytest.raises(TypeError):
        WorkflowStorage()


@pytest.mark.asyncio
async def test_workflow_round_trip():
    storage = InMemoryStorage()
    workflow = _workflow()
    await storage.save_workflow(workflow)
    assert await storage.get_workflow(workflow.id) == workflow


@pytest.mark.asyncio
async def test_stored_workflow_is_independent_copy():
    storage = InMemoryStorage()
    workflow = _workflow()
    await storage.save_workflow(workflow)
    workflow.name = "changed"
    fetched = await storage.get_workflow(workflow.id)
    assert fetched.name == "pipeline"
    fetched.steps.clear()
    assert len((await storage.get_workflow(workflow.id)).steps) == 1


@pytest.mark.asyncio
async def test_save_workflow_replaces_existing():
    storage = InMemoryStorage()
    workflow = _workflow()
    await storage.save_workflow(workflow)
    workflow.name = "renamed"
    await storage.save_workflow(workflow)
    assert (await storage.get_workflow(workflow.id)).name == "renamed"


@pytest.mark.asyncio
async def test_missing_workflow_raises():
    storage = InMemoryStorage()
    missing = uuid.uuid4()
    with pytest.raises(NotFoundError, match=f"Workflow not found: {missing}"):
        await storage.get_workflow(missing)


@pytest.mark.asyncio
async def test_instance_round_trip():
    storage = InMemoryStorage()
    instance = _instance(uuid.uuid4())
    await storage.save_instance(instance)
    assert await storage.get_instance(instance.id) == instance


@pytest.mark.asyncio
async def test_missing_instance_raises():
    storage = InMemoryStorage()
    missing = uuid.uuid4()
    with pytest.raises(NotFoundError, match=f"Instance not found: {missing}"):
        await storage.get_instance(missing)


@pytest.mark.asyncio
async def test_update_step_result_records_result_and_touches_instance():
    storage = InMemoryStorage()
    instance = _instance(uuid.uuid4())
    await storage.save_instance(instance)
    step_id = uuid.uuid4()
    result = StepResult(step_id, StepStatus.COMPLETED, output={"status": "completed"})
    await storage.update_step_result(instance.id, step_id, result)

    stored = await storage.get_instance(instance.id)
    assert stored.step_results == {step_id: result}
    assert stored.updated_at > instance.updated_at
    assert stored.created_at == instance.created_at


@pytest.mark.asyncio
async def test_update_step_result_overwrites_previous():
    storage = InMemoryStorage()
    instance = _instance(uuid.uuid4())
    await storage.save_instance(instance)
    step_id = uuid.uuid4()
    await storage.update_step_result(instance.id, step_id, StepResult(step_id, StepStatus.RUNNING))
    await storage.update_step_result(
        instance.id, step_id, StepResult(step_id, StepStatus.FAILED, error="boom")
    )
    stored = await storage.get_instance(instance.id)
    assert stored.step_results[step_id].status is StepStatus.FAILED
    assert stored.step_results[step_id].error == "boom"


@pytest.mark.asyncio
async def test_update_step_result_missing_instance_raises():
    storage = InMemoryStorage()
    missing = uuid.uuid4()
    step_id = uuid.uuid4()
    with pytest.raises(NotFoundError, match=f"Instance not found: {missing}"):
        await storage.update_step_result(missing, step_id, StepResult(step_id, StepStatus.PENDING))