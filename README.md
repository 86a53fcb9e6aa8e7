# upplysning

`upplysning` models machine-learning workflows and coordinates how they run.
A workflow is a set of steps, such as data preparation, model training,
evaluation, deployment and notification. A step can depend on other steps.
A feedback loop sends a workflow back to an earlier step when a condition
holds.

## Modules

- **`upplysning.models`** defines the data types: `Workflow`, `Step`,
  `TaskType` / `TaskKind`, `FeedbackLoop` with its conditions
  (`MetricThreshold`, `ManualFeedback`, `CustomFeedback`), `WorkflowInstance`,
  `StepResult` and `WorkerTask`, and the enums `InstanceStatus`, `StepStatus`
  and `ThresholdOperator`. Each model has `to_json()` and `from_json()`, which
  convert it to and from plain JSON-ready data. Feedback conditions use
  `condition_to_json()` and `condition_from_json()` instead. Malformed input
  raises `ValueError`.
- **`upplysning.storage`** defines the async `WorkflowStorage` interface and
  `InMemoryStorage`, which stores independent copies of workflows and
  instances. Looking up an unknown id raises `NotFoundError`.
- **`upplysning.scheduler`** holds `Scheduler` and `SimpleConsensus`.
  `SimpleConsensus` is a minimal leader election in which node 1 leads.
  - `start_leader_election()` makes this node the leader and starts a
    heartbeat every 5 seconds. `close()` stops that heartbeat.
  - Only the leader can schedule work; otherwise `SchedulerError` is raised.
  - `schedule_workflow()` returns a `WorkerTask` for every step that has no
    dependencies.
  - `schedule_step()` and `reschedule_step()` return the task for one step.
    They raise `SchedulerError` if the step is unknown.
  - `register_worker()` and `worker_heartbeat()` track workers.
    `monitor_workers()` forgets workers that have been silent for more than
    30 seconds and returns their ids.
  - `Scheduler.process_feedback()` reschedules the target of every feedback
    loop that leaves the given step. It does not check the loop's condition.
- **`upplysning.engine`** holds `WorkflowEngine`.
  - `start_workflow()` stores the workflow and a new pending instance,
    schedules the instance and returns the instance id.
  - `process_feedback()` reschedules only the loops whose condition holds:
    - a `MetricThreshold` holds when the named numeric metric in the source
      step's output compares true with the threshold (greater than, less than,
      or equal);
    - `ManualFeedback` always holds;
    - `CustomFeedback` never holds.
- **`upplysning.worker`** holds `Worker`, which takes `WorkerTask`s from an
  `asyncio.Queue`. `None` on the queue ends the stream. `start()` registers
  the worker and sends a heartbeat every 10 seconds while it processes tasks.
  `process_task()` records a running `StepResult` and then a completed or
  failed one, asks the scheduler to process feedback, and returns the result.
- **`upplysning.webserver`** holds `ApiServer`. `build_app()` returns the
  aiohttp application. `start(addr)` serves it on `host:port` until the task
  is cancelled.

## HTTP endpoints

| Method | Path                        | Response                                           |
|--------|-----------------------------|----------------------------------------------------|
| POST   | `/workflows`                | validates the workflow JSON, returns `{"id": ...}` |
| GET    | `/workflows/{id}`           | `{"id": <id>}`                                     |
| POST   | `/workflows/{id}/instances` | `{"instance_id": <new random id>}`                 |
| GET    | `/instances/{id}`           | `{"id": <id>}`                                     |
| POST   | `/instances/{id}/feedback`  | `{"status": "feedback_triggered"}`                 |

The POST endpoints that take a body respond as follows:

- a body not sent as `application/json` gets 415;
- a body that is not valid JSON gets 400;
- a workflow that does not validate gets 422.

## Running the server

```
upplysning [--amqp-url URL] [--addr HOST:PORT]
```

The server listens on `0.0.0.0:3000` by default. It uses in-memory storage
and makes its own node the leader. To run the service inside your own asyncio
program, await `upplysning.main.run(amqp_url, addr)`.

## What it does not do

- The HTTP API does not pass requests to the engine:
  - submitted workflows are validated but not stored;
  - lookups only echo the id;
  - starting an instance or triggering feedback schedules nothing.
- Scheduled tasks are returned to the caller and are not published anywhere.
  The task-queue URL is accepted and recorded, but nothing connects to it.
- Leader election does not talk to other nodes.
- Workers return fixed outputs for each task kind instead of running real
  jobs.
- Storage lives only in memory and is lost when the process exits.

## Development

```
pip install -e ".[test]"
pytest
```