"""Event dataclasses for the bridge event bus.

Events are frozen dataclasses describing what happened during an invocation.
Every event carries item_index so observers can attribute output when a node
runs once per item; batch invocations use item_index=None.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class InvocationStarted:
    """Emitted right before the child interpreter is spawned.

    Attributes:
        executable: Interpreter executable that will be spawned
        item_index: Input item being processed (None in batch mode)
        context_keys: Wire keys present in the context snapshot
        timestamp: When the invocation started
    """
    executable: str
    item_index: Optional[int] = None
    context_keys: tuple = ()
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class DiagnosticOutput:
    """Emitted for each chunk of text the child writes to stderr.

    This is how print() output from user code reaches the host while the
    child is still running.

    Attributes:
        text: Decoded chunk of diagnostic text (not necessarily a whole line)
        item_index: Input item being processed (None in batch mode)
        timestamp: When the chunk was read
    """
    text: str
    item_index: Optional[int] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class InvocationCompleted:
    """Emitted when the child exited cleanly and its result was parsed.

    Attributes:
        item_index: Input item being processed (None in batch mode)
        duration_ms: Wall time from spawn to parsed result
        timestamp: When the invocation completed
    """
    item_index: Optional[int]
    duration_ms: float
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class InvocationFailed:
    """Emitted when an invocation ends in a BridgeError.

    Attributes:
        item_index: Input item being processed (None in batch mode)
        error_type: Class name of the error
        error_message: Human-readable error message
        exit_code: Child exit status, if the child ran at all
        duration_ms: Wall time until the failure was detected
        timestamp: When the failure was detected
    """
    item_index: Optional[int]
    error_type: str
    error_message: str
    exit_code: Optional[int] = None
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ErrorOccurred:
    """Emitted by the node when an invocation failure reaches its error policy.

    Attributes:
        error_type: Class name of the error
        error_message: Human-readable error message
        item_index: Input item whose invocation failed (None in batch mode)
        continued: True if the failure was recorded as an error row
        timestamp: When the error occurred
    """
    error_type: str
    error_message: str
    item_index: Optional[int]
    continued: bool
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ExecutionHint:
    """Emitted when a node's output is likely to confuse downstream steps.

    Attributes:
        message: Hint text for the user
        input_count: Number of input items
        output_count: Number of output rows
        timestamp: When the hint was produced
    """
    message: str
    input_count: int
    output_count: int
    timestamp: datetime = field(default_factory=datetime.now)


ALL_EVENTS = (
    InvocationStarted,
    DiagnosticOutput,
    InvocationCompleted,
    InvocationFailed,
    ErrorOccurred,
    ExecutionHint,
)
