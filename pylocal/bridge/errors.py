"""Exception classes for bridge errors.

This module defines the exception hierarchy raised by the execution bridge.
Every failed invocation surfaces as exactly one BridgeError subclass carrying
the full diagnostic text, so callers can decide per invocation whether to stop
or record the failure and continue.
"""

from typing import Optional


class BridgeError(Exception):
    """Base exception for bridge errors.

    All bridge-specific exceptions inherit from this class,
    allowing callers to catch all bridge errors with a single handler.
    """
    pass


class ExecutableNotFoundError(BridgeError):
    """Raised when the configured Python interpreter cannot be located.

    Attributes:
        executable: The configured executable name or path.
    """

    def __init__(self, executable: str):
        self.executable = executable
        super().__init__(
            f'Python executable "{executable}" not found. '
            "Please install Python or set PYLOCAL_PYTHON_EXECUTABLE to its path."
        )


class SpawnError(BridgeError):
    """Raised when the interpreter exists but could not be started.

    Attributes:
        executable: The configured executable name or path.
    """

    def __init__(self, executable: str, reason: str):
        self.executable = executable
        super().__init__(f'Failed to start Python executable "{executable}": {reason}')


class NonZeroExitError(BridgeError):
    """Raised when the child interpreter exits with a failing status.

    Attributes:
        exit_code: Exit status of the child process.
        stderr: Everything the child wrote to its diagnostic stream.
    """

    def __init__(self, exit_code: int, stderr: str):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"Python process exited with code {exit_code}. Error output:\n{stderr}"
        )


class MalformedOutputError(BridgeError):
    """Raised when the child exits cleanly but its output is not strict JSON.

    The underlying decoding or parsing error is chained as __cause__.

    Attributes:
        output: The raw text read from the child's output stream.
    """

    def __init__(self, output: str, reason: Optional[str] = None):
        self.output = output
        message = "Python process returned output that is not valid JSON"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ResultShapeError(BridgeError):
    """Raised when a returned value cannot be mapped to row-objects."""
    pass


__all__ = [
    'BridgeError',
    'ExecutableNotFoundError',
    'SpawnError',
    'NonZeroExitError',
    'MalformedOutputError',
    'ResultShapeError',
]
