"""Console observer for the bridge event bus.

Streams the child's diagnostic text (print() output, tracebacks) to a
terminal as it arrives, and reports errors and execution hints once an
invocation is over.
"""

import logging
import sys
from typing import Optional, TextIO

from ..bus import EventBus
from ..events import DiagnosticOutput, ErrorOccurred, ExecutionHint

logger = logging.getLogger(__name__)


class ConsoleObserver:
    """Observer that writes bridge events to a text stream.

    Handler failures (e.g. a closed stream) are logged and swallowed so
    console problems never fail an invocation.

    Attributes:
        stream: Where output is written (stderr by default)
        quiet: If True, diagnostic text is suppressed; errors and hints are
            still shown
    """

    ERROR_COLOR = '\033[31m'
    WARNING_COLOR = '\033[33m'
    RESET_COLOR = '\033[0m'

    def __init__(
        self,
        bus: EventBus,
        stream: Optional[TextIO] = None,
        quiet: bool = False,
        use_colors: Optional[bool] = None,
    ) -> None:
        """Initialize the console observer and subscribe it to bus.

        Args:
            bus: Event bus to subscribe to
            stream: Output stream; defaults to sys.stderr at write time
            quiet: Suppress diagnostic text
            use_colors: Force colors on or off; auto-detected from the stream
                when None
        """
        self._bus = bus
        self._stream = stream
        self.quiet = quiet
        self._use_colors = use_colors
        self._at_line_start = True

        self._bus.on(DiagnosticOutput, self._on_diagnostic_output)
        self._bus.on(ErrorOccurred, self._on_error_occurred)
        self._bus.on(ExecutionHint, self._on_execution_hint)

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def close(self) -> None:
        """Unsubscribe from all events."""
        self._bus.off(DiagnosticOutput, self._on_diagnostic_output)
        self._bus.off(ErrorOccurred, self._on_error_occurred)
        self._bus.off(ExecutionHint, self._on_execution_hint)

    def _colors_enabled(self) -> bool:
        if self._use_colors is not None:
            return self._use_colors
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def _colored(self, text: str, color: str) -> str:
        if self._colors_enabled():
            return f"{color}{text}{self.RESET_COLOR}"
        return text

    def _write_line(self, text: str) -> None:
        # Finish a partial line of diagnostic output first
        if not self._at_line_start:
            self.stream.write("\n")
            self._at_line_start = True
        self.stream.write(text + "\n")
        self.stream.flush()

    def _on_diagnostic_output(self, event: DiagnosticOutput) -> None:
        if self.quiet:
            return
        try:
            self.stream.write(event.text)
            self.stream.flush()
            self._at_line_start = event.text.endswith("\n")
        except Exception as e:
            logger.warning(f"ConsoleObserver failed on diagnostic_output: {e}")

    def _on_error_occurred(self, event: ErrorOccurred) -> None:
        try:
            where = f" (item {event.item_index})" if event.item_index is not None else ""
            label = "Error, continuing" if event.continued else "Error"
            first_line = event.error_message.splitlines()[0] if event.error_message else ""
            self._write_line(self._colored(
                f"! {label}{where}: {event.error_type}: {first_line}",
                self.ERROR_COLOR,
            ))
        except Exception as e:
            logger.warning(f"ConsoleObserver failed on error_occurred: {e}")

    def _on_execution_hint(self, event: ExecutionHint) -> None:
        try:
            self._write_line(self._colored(f"Hint: {event.message}", self.WARNING_COLOR))
        except Exception as e:
            logger.warning(f"ConsoleObserver failed on execution_hint: {e}")
