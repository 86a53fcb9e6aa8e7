"""Data model for workflows, their running instances and the tasks handed to workers.

Every type converts to and from plain JSON-compatible values. Enum variants
are written by name. Variants that carry data are written as a one-key object.
"""

from __future__ import annotations

import re
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

_FRACTION = re.compile(r"\.(\d+)")


def _require(data: Any, key: str) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"expected an object, got {type(data).__name__}")
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field: {key}") from None


def _to_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if not isinstance(value, str):
        raise ValueError(f"expected a UUID string, got {value!r}")
    return uuid.UUID(value)


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _format_datetime(moment: datetime | None) -> str | None:
    if moment is None:
        return None
    return _utc(moment).isoformat().replace("+00:00", "Z")


def _parse_datetime(text: Any) -> datetime | None:
    if text is None:
        return None
    if not isinstance(text, str):
        raise ValueError(f"expected a timestamp string, got {text!r}")
    text = text.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # Sub-microsecond precision is dropped; fromisoformat wants 3 or 6 digits.
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return _utc(datetime.fromisoformat(text))


def _string_map(data: Any, what: str) -> dict[str, str]:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be an object")
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in data.items()):
        raise ValueError(f"{what} must map strings to strings")
    return dict(data)


def _list(data: Any, what: str) -> list:
    if not isinstance(data, list):
        raise ValueError(f"{what} must be a list")
    return data


def _optional_str(data: Any, what: str) -> str | None:
    if data is not None and not isinstance(data, str):
        raise ValueError(f"{what} must be a string or null")
    return data


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ThresholdOperator(Enum):
    """How a metric is compared with a threshold."""

    GREATER_THAN = "GreaterThan"
    LESS_THAN = "LessThan"
    EQUAL = "Equal"

    def compare(self, value: float, threshold: float) -> bool:
        """Return whether ``value`` satisfies this operator against ``threshold``."""
        if self is ThresholdOperator.GREATER_THAN:
            return value > threshold
        if self is ThresholdOperator.LESS_THAN:
            return value < threshold
        return abs(value - threshold) < sys.float_info.epsilon


@dataclass(frozen=True)
class MetricThreshold:
    """Trigger when a metric in the source step's output crosses a threshold."""

    metric: str
    threshold: float
    operator: ThresholdOperator


@dataclass(frozen=True)
class ManualFeedback:
    """Trigger whenever feedback is requested."""


@dataclass(frozen=True)
class CustomFeedback:
    """Trigger decided by a custom condition expression."""

    code: str


FeedbackCondition = Union[MetricThreshold, ManualFeedback, CustomFeedback]


def condition_to_json(condition: FeedbackCondition) -> Any:
    """Convert a feedback condition to its JSON form."""
    if isinstance(condition, MetricThreshold):
        return {
            "MetricThreshold": {
                "metric": condition.metric,
                "threshold": condition.threshold,
                "operator": condition.operator.value,
            }
        }
    if isinstance(condition, ManualFeedback):
        return "Manual"
    if isinstance(condition, CustomFeedback):
        return {"Custom": condition.code}
    raise TypeError(f"not a feedback condition: {condition!r}")


def condition_from_json(data: Any) -> FeedbackCondition:
    """Build a feedback condition from its JSON form."""
    if data == "Manual":
        return ManualFeedback()
    if isinstance(data, dict) and len(data) == 1:
        (tag, body), = data.items()
        if tag == "MetricThreshold":
            metric = _require(body, "metric")
            threshold = _require(body, "threshold")
            if not isinstance(metric, str):
                raise ValueError("metric must be a string")
            if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
                raise ValueError("threshold must be a number")
            return MetricThreshold(
                metric=metric,
                threshold=float(threshold),
                operator=ThresholdOperator(_require(body, "operator")),
            )
        if tag == "Custom":
            if not isinstance(body, str):
                raise ValueError("custom condition must be a string")
            return CustomFeedback(body)
    raise ValueError(f"unknown feedback condition: {data!r}")


class TaskKind(Enum):
    """The kinds of work a step can ask for."""

    DATA_PREPARATION = "DataPreparation"
    MODEL_TRAINING = "ModelTraining"
    MODEL_EVALUATION = "ModelEvaluation"
    MODEL_DEPLOYMENT = "ModelDeployment"
    NOTIFICATION = "Notification"
    CUSTOM = "Custom"


@dataclass(frozen=True)
class TaskType:
    """A task kind; custom tasks also carry a name."""

    kind: TaskKind
    name: str | None = None

    def __post_init__(self) -> None:
        if self.kind is TaskKind.CUSTOM and self.name is None:
            raise ValueError("a custom task type needs a name")
        if self.kind is not TaskKind.CUSTOM and self.name is not None:
            raise ValueError("only custom task types carry a name")

    @classmethod
    def custom(cls, name: str) -> TaskType:
        return cls(TaskKind.CUSTOM, name)

    def to_json(self) -> Any:
        if self.kind is TaskKind.CUSTOM:
            return {"Custom": self.name}
        return self.kind.value

    @classmethod
    def from_json(cls, data: Any) -> TaskType:
        if isinstance(data, str):
            kind = TaskKind(data)
            if kind is TaskKind.CUSTOM:
                raise ValueError("a custom task type needs a name")
            return cls(kind)
        if isinstance(data, dict) and len(data) == 1 and "Custom" in data:
            name = data["Custom"]
            if not isinstance(name, str):
                raise ValueError("custom task name must be a string")
            return cls.custom(name)
        raise ValueError(f"unknown task type: {data!r}")


@dataclass
class Step:
    """One unit of work in a workflow."""

    id: uuid.UUID
    name: str
    task_type: TaskType
    config: dict[str, str] = field(default_factory=dict)
    dependencies: list[uuid.UUID] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "task_type": self.task_type.to_json(),
            "config": dict(self.config),
            "dependencies": [str(dep) for dep in self.dependencies],
        }

    @classmethod
    def from_json(cls, data: Any) -> Step:
        name = _require(data, "name")
        if not isinstance(name, str):
            raise ValueError("step name must be a string")
        return cls(
            id=_to_uuid(_require(data, "id")),
            name=name,
            task_type=TaskType.from_json(_require(data, "task_type")),
            config=_string_map(_require(data, "config"), "config"),
            dependencies=[
                _to_uuid(dep) for dep in _list(_require(data, "dependencies"), "dependencies")
            ],
        )


@dataclass
class FeedbackLoop:
    """A route back from one step to an earlier one, taken when its condition holds."""

    source_step_id: uuid.UUID
    target_step_id: uuid.UUID
    condition: FeedbackCondition

    def to_json(self) -> dict[str, Any]:
        return {
            "source_step_id": str(self.source_step_id),
            "target_step_id": str(self.target_step_id),
            "condition": condition_to_json(self.condition),
        }

    @classmethod
    def from_json(cls, data: Any) -> FeedbackLoop:
        return cls(
            source_step_id=_to_uuid(_require(data, "source_step_id")),
            target_step_id=_to_uuid(_require(data, "target_step_id")),
            condition=condition_from_json(_require(data, "condition")),
        )


@dataclass
class Workflow:
    """A named set of steps and the feedback loops between them."""

    id: uuid.UUID
    name: str
    steps: list[Step] = field(default_factory=list)
    feedback_loops: list[FeedbackLoop] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "steps": [step.to_json() for step in self.steps],
            "feedback_loops": [loop.to_json() for loop in self.feedback_loops],
        }

    @classmethod
    def from_json(cls, data: Any) -> Workflow:
        name = _require(data, "name")
        if not isinstance(name, str):
            raise ValueError("workflow name must be a string")
        return cls(
            id=_to_uuid(_require(data, "id")),
            name=name,
            steps=[Step.from_json(s) for s in _list(_require(data, "steps"), "steps")],
            feedback_loops=[
                FeedbackLoop.from_json(f)
                for f in _list(_require(data, "feedback_loops"), "feedback_loops")
            ],
        )


class InstanceStatus(Enum):
    """Lifecycle state of a workflow instance."""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class StepStatus(Enum):
    """Lifecycle state of a single step within an instance."""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    SKIPPED = "Skipped"


@dataclass
class StepResult:
    """What is known about one step's execution."""

    step_id: uuid.UUID
    status: StepStatus
    output: Any = None
    error: str | None = None
    worker_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "step_id": str(self.step_id),
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "worker_id": self.worker_id,
            "started_at": _format_datetime(self.started_at),
            "completed_at": _format_datetime(self.completed_at),
        }

    @classmethod
    def from_json(cls, data: Any) -> StepResult:
        return cls(
            step_id=_to_uuid(_require(data, "step_id")),
            status=StepStatus(_require(data, "status")),
            output=data.get("output"),
            error=_optional_str(data.get("error"), "error"),
            worker_id=_optional_str(data.get("worker_id"), "worker_id"),
            started_at=_parse_datetime(data.get("started_at")),
            completed_at=_parse_datetime(data.get("completed_at")),
        )


@dataclass
class WorkflowInstance:
    """One run of a workflow."""

    id: uuid.UUID
    workflow_id: uuid.UUID
    status: InstanceStatus = InstanceStatus.PENDING
    step_results: dict[uuid.UUID, StepResult] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "workflow_id": str(self.workflow_id),
            "status": self.status.value,
            "step_results": {
                str(step_id): result.to_json() for step_id, result in self.step_results.items()
            },
            "created_at": _format_datetime(self.created_at),
            "updated_at": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_json(cls, data: Any) -> WorkflowInstance:
        results = _require(data, "step_results")
        if not isinstance(results, dict):
            raise ValueError("step_results must be an object")
        created_at = _parse_datetime(_require(data, "created_at"))
        updated_at = _parse_datetime(_require(data, "updated_at"))
        if created_at is None or updated_at is None:
            raise ValueError("instance timestamps are required")
        return cls(
            id=_to_uuid(_require(data, "id")),
            workflow_id=_to_uuid(_require(data, "workflow_id")),
            status=InstanceStatus(_require(data, "status")),
            step_results={
                _to_uuid(key): StepResult.from_json(value) for key, value in results.items()
            },
            created_at=created_at,
            updated_at=updated_at,
        )


@dataclass
class WorkerTask:
    """A step of an instance, packaged for a worker to execute."""

    id: uuid.UUID
    step_id: uuid.UUID
    instance_id: uuid.UUID
    task_type: TaskType
    config: dict[str, str] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "step_id": str(self.step_id),
            "instance_id": str(self.instance_id),
            "task_type": self.task_type.to_json(),
            "config": dict(self.config),
        }

    @classmethod
    def from_json(cls, data: Any) -> WorkerTask:
        return cls(
            id=_to_uuid(_require(data, "id")),
            step_id=_to_uuid(_require(data, "step_id")),
            instance_id=_to_uuid(_require(data, "instance_id")),
            task_type=TaskType.from_json(_require(data, "task_type")),
            config=_string_map(_require(data, "config"), "config"),
        )