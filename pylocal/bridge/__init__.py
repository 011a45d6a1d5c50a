"""Out-of-process execution bridge.

The bridge runs user Python code in a separate interpreter process:

    snapshot = capture_context(json=row["json"], item=row, parameter=params)
    script = wrap_code(code)
    value = await PythonRunner(config, bus).run(script, snapshot)
    row = normalize_each(value)

Exports:
    - capture_context / to_plain / ContextNames: JSON snapshot of workflow state
    - wrap_code: builds the script run by the child interpreter
    - PythonRunner / run_process / ProcessResult: spawns and supervises the child
    - normalize_items / normalize_all / normalize_each: result to row-objects
    - EventBus and the event dataclasses
    - BridgeError and its subclasses
"""

from .bus import EventBus
from .context import DEFAULT_NAMES, MISSING, ContextNames, capture_context, row_context, to_plain
from .errors import (
    BridgeError,
    ExecutableNotFoundError,
    MalformedOutputError,
    NonZeroExitError,
    ResultShapeError,
    SpawnError,
)
from .events import (
    DiagnosticOutput,
    ErrorOccurred,
    ExecutionHint,
    InvocationCompleted,
    InvocationFailed,
    InvocationStarted,
)
from .normalize import normalize_all, normalize_each, normalize_items
from .runner import ProcessResult, PythonRunner, run_process
from .wrapper import wrap_code

__all__ = [
    "EventBus",
    "DEFAULT_NAMES",
    "MISSING",
    "ContextNames",
    "capture_context",
    "row_context",
    "to_plain",
    "BridgeError",
    "ExecutableNotFoundError",
    "MalformedOutputError",
    "NonZeroExitError",
    "ResultShapeError",
    "SpawnError",
    "DiagnosticOutput",
    "ErrorOccurred",
    "ExecutionHint",
    "InvocationCompleted",
    "InvocationFailed",
    "InvocationStarted",
    "normalize_all",
    "normalize_each",
    "normalize_items",
    "ProcessResult",
    "PythonRunner",
    "run_process",
    "wrap_code",
]
