import uuid

import pytest

from upplysning.engine import WorkflowEngine
from upplysning.models import (
    CustomFeedback,
    FeedbackLoop,
    InstanceStatus,
    ManualFeedback,
    MetricThreshold,
    Step,
    StepResult,
    StepStatus,
    TaskKind,
    TaskType,
    ThresholdOperator,
    Workflow,
    WorkflowInstance,
)
from upplysning.scheduler import Scheduler, SchedulerError
from upplysning.storage import InMemoryStorage, NotFoundError


def _engine():
    storage = InMemoryStorage()
    return WorkflowEngine(Scheduler("amqp://localhost", storage), storage), storage


def _workflow(condition):
    prep = Step(uuid.uuid4(), "prep", TaskType(TaskKind.DATA_PREPARATION))
    train = Step(uuid.uuid4(), "train", TaskType(TaskKind.MODEL_TRAINING), {}, [prep.id])
    return Workflow(uuid.uuid4(), "wf", [prep, train], [FeedbackLoop(train.id, prep.id, condition)])


def _instance(workflow, output):
    source = workflow.feedback_loops[0].source_step_id
    instance = WorkflowInstance(uuid.uuid4(), workflow.id)
    instance.step_results[source] = StepResult(source, StepStatus.COMPLETED, output=output)
    return instance


@pytest.mark.asyncio
async def test_start_workflow_stores_pending_instance():
    engine, storage = _engine()
    workflow = _workflow(ManualFeedback())
    instance_id = await engine.start_workflow(workflow)
    instance = await storage.get_instance(instance_id)
    assert instance.workflow_id == workflow.id
    assert instance.status is InstanceStatus.PENDING
    assert instance.step_results == {}
    assert await storage.get_workflow(workflow.id) == workflow


@pytest.mark.asyncio
async def test_start_workflow_not_leader_raises_after_saving():
    engine, storage = _engine()
    await engine.scheduler.consensus.propose_leader(2)
    workflow = _workflow(ManualFeedback())
    with pytest.raises(SchedulerError):
        await engine.start_workflow(workflow)
    assert (await storage.get_workflow(workflow.id)).name == "wf"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "operator, threshold, expected",
    [
        (ThresholdOperator.GREATER_THAN, 0.9, True),
        (ThresholdOperator.GREATER_THAN, 0.95, False),
        (ThresholdOperator.LESS_THAN, 0.9, False),
        (ThresholdOperator.LESS_THAN, 0.99, True),
        (ThresholdOperator.EQUAL, 0.95, True),
        (ThresholdOperator.EQUAL, 0.9, False),
    ],
)
async def test_metric_threshold(operator, threshold, expected):
    engine, _ = _engine()
    workflow = _workflow(MetricThreshold("accuracy", threshold, operator))
    instance = _instance(workflow, {"status": "completed", "accuracy": 0.95})
    assert await engine.evaluate_feedback_condition(instance, workflow.feedback_loops[0]) is expected


@pytest.mark.asyncio
async def test_metric_threshold_accepts_integers():
    engine, _ = _engine()
    workflow = _workflow(MetricThreshold("epochs", 5.0, ThresholdOperator.GREATER_THAN))
    instance = _instance(workflow, {"epochs": 10})
    assert await engine.evaluate_feedback_condition(instance, workflow.feedback_loops[0]) is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "output",
    [None, {}, {"accuracy": "high"}, {"accuracy": True}, [0.95], {"other": 0.95}],
)
async def test_metric_threshold_without_numeric_metric_is_false(output):
    engine, _ = _engine()
    workflow = _workflow(MetricThreshold("accuracy", 0.0, ThresholdOperator.GREATER_THAN))
    instance = _instance(workflow, output)
    assert await engine.evaluate_feedback_condition(instance, workflow.feedback_loops[0]) is False


@pytest.mark.asyncio
async def test_metric_threshold_without_result_is_false():
    engine, _ = _engine()
    workflow = _workflow(MetricThreshold("accuracy", 0.0, ThresholdOperator.GREATER_THAN))
    instance = WorkflowInstance(uuid.uuid4(), workflow.id)
    assert await engine.evaluate_feedback_condition(instance, workflow.feedback_loops[0]) is False


@pytest.mark.asyncio
async def test_manual_and_custom_conditions():
    engine, _ = _engine()
    manual = _workflow(ManualFeedback())
    custom = _workflow(CustomFeedback("accuracy > 0.5"))
    assert await engine.evaluate_feedback_condition(
        _instance(manual, None), manual.feedback_loops[0]
    ) is True
    assert await engine.evaluate_feedback_condition(
        _instance(custom, {"accuracy": 0.95}), custom.feedback_loops[0]
    ) is False


@pytest.mark.asyncio
async def test_process_feedback_reschedules_when_condition_holds():
    engine, storage = _engine()
    workflow = _workflow(MetricThreshold("accuracy", 0.99, ThresholdOperator.LESS_THAN))
    instance = _instance(workflow, {"accuracy": 0.95})
    await storage.save_workflow(workflow)
    await storage.save_instance(instance)
    source = workflow.feedback_loops[0].source_step_id
    tasks = await engine.process_feedback(instance.id, source)
    assert [t.step_id for t in tasks] == [workflow.steps[0].id]
    assert tasks[0].instance_id == instance.id
    assert await engine.process_feedback(instance.id, workflow.steps[0].id) == []


@pytest.mark.asyncio
async def test_process_feedback_skips_when_condition_fails():
    engine, storage = _engine()
    workflow = _workflow(CustomFeedback("always"))
    instance = _instance(workflow, {"accuracy": 0.95})
    await storage.save_workflow(workflow)
    await storage.save_instance(instance)
    source = workflow.feedback_loops[0].source_step_id
    assert await engine.process_feedback(instance.id, source) == []


@pytest.mark.asyncio
async def test_process_feedback_unknown_instance():
    engine, _ = _engine()
    with pytest.raises(NotFoundError, match="Instance not found"):
        await engine.process_feedback(uuid.uuid4(), uuid.uuid4())