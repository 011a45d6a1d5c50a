"""Code node: runs user Python code over workflow items.

A CodeNode drives the bridge in one of two modes:

- run once for all items: one invocation sees every input row as `_items`
  and may return any number of rows;
- run once for each item: one invocation per input row, which sees that row
  as `_item` and contributes at most one output row.

Both modes share the same bridge protocol and differ only in the context they
capture and in how the result is normalized. Failures either stop the node
(NodeExecutionError) or, with continue_on_fail, become error rows.
"""

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from .bridge.bus import EventBus
from .bridge.context import DEFAULT_NAMES, ContextNames, capture_context, row_context
from .bridge.errors import BridgeError
from .bridge.events import ErrorOccurred, ExecutionHint
from .bridge.normalize import Row, normalize_all, normalize_each
from .bridge.runner import PythonRunner
from .bridge.wrapper import wrap_code
from .config import BridgeConfig

logger = logging.getLogger(__name__)

RUN_ONCE_FOR_ALL_ITEMS = "runOnceForAllItems"
RUN_ONCE_FOR_EACH_ITEM = "runOnceForEachItem"
MODES = (RUN_ONCE_FOR_ALL_ITEMS, RUN_ONCE_FOR_EACH_ITEM)

PAIRING_HINT = (
    "To make sure expressions after this node work, return the input items "
    "that produced each output item."
)


class NodeExecutionError(Exception):
    """Raised when an invocation fails and continue_on_fail is off.

    The BridgeError is chained as __cause__.

    Attributes:
        item_index: Input item whose invocation failed (None in batch mode)
        node: Node descriptor the error belongs to
    """

    def __init__(self, error: BridgeError, item_index: Optional[int] = None,
                 node: Optional[Dict[str, Any]] = None):
        self.error = error
        self.item_index = item_index
        self.node = node
        super().__init__(str(error))


class CodeNode:
    """Runs one piece of user code against a list of row-objects."""

    def __init__(
        self,
        code: str,
        mode: str = RUN_ONCE_FOR_EACH_ITEM,
        config: Optional[BridgeConfig] = None,
        bus: Optional[EventBus] = None,
        continue_on_fail: bool = False,
        names: ContextNames = DEFAULT_NAMES,
    ) -> None:
        if mode not in MODES:
            raise ValueError(f"Unknown mode {mode!r}, expected one of {', '.join(MODES)}")
        self.code = code
        self.mode = mode
        self.config = config if config is not None else BridgeConfig.from_env()
        self.bus = bus
        self.continue_on_fail = continue_on_fail
        self.names = names
        self._runner = PythonRunner(self.config, bus)

    def _emit(self, event: Any) -> None:
        if self.bus is not None:
            self.bus.emit(event)

    def _env(self, env: Optional[Mapping[str, str]]) -> Dict[str, Any]:
        if self.config.block_env_access:
            return {}
        return {"env": dict(os.environ if env is None else env)}

    def _handle_error(self, error: BridgeError, item_index: Optional[int],
                      node: Optional[Dict[str, Any]]) -> Row:
        """Apply the continue-on-fail policy to a failed invocation.

        Returns the error row to emit, or raises NodeExecutionError.
        """
        self._emit(ErrorOccurred(
            error_type=type(error).__name__,
            error_message=str(error),
            item_index=item_index,
            continued=self.continue_on_fail,
        ))
        if not self.continue_on_fail:
            raise NodeExecutionError(error, item_index=item_index, node=node) from error

        logger.info(f"Continuing after {type(error).__name__} (item {item_index})")
        row: Row = {"json": {"error": str(error)}}
        if item_index is not None:
            row["pairedItem"] = {"item": item_index}
        return row

    async def execute(
        self,
        items: List[Row],
        parameter: Optional[Dict[str, Any]] = None,
        node: Optional[Dict[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> List[Row]:
        """Run the code over items according to the node's mode.

        Args:
            items: Input row-objects
            parameter: Resolved node parameters exposed as `_parameter`
            node: Node descriptor exposed as `_node`
            env: Environment exposed as `_env`; defaults to os.environ

        Returns:
            Output row-objects

        Raises:
            NodeExecutionError: If an invocation fails and continue_on_fail
                is off
        """
        if self.mode == RUN_ONCE_FOR_ALL_ITEMS:
            rows = await self.run_once_for_all_items(items, parameter, node, env)
        else:
            rows = await self.run_once_for_each_item(items, parameter, node, env)
        self._add_post_execution_hint(rows, len(items))
        return rows

    async def run_once_for_all_items(
        self,
        items: List[Row],
        parameter: Optional[Dict[str, Any]] = None,
        node: Optional[Dict[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> List[Row]:
        """Single invocation over the whole batch."""
        script = wrap_code(self.code, self.names)
        context = capture_context(
            items=items,
            parameter=parameter,
            node=node,
            names=self.names,
            **row_context(items[0] if items else None),
            **self._env(env),
        )
        try:
            value = await self._runner.run(script, context)
            return normalize_all(value)
        except BridgeError as e:
            return [self._handle_error(e, None, node)]

    async def run_once_for_each_item(
        self,
        items: List[Row],
        parameter: Optional[Dict[str, Any]] = None,
        node: Optional[Dict[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> List[Row]:
        """One invocation per item, strictly one after another."""
        script = wrap_code(self.code, self.names)
        env_fields = self._env(env)
        rows: List[Row] = []
        for index, item in enumerate(items):
            context = capture_context(
                item=item,
                parameter=parameter,
                node=node,
                names=self.names,
                **row_context(item),
                **env_fields,
            )
            try:
                value = await self._runner.run(script, context, item_index=index)
                row = normalize_each(value)
            except BridgeError as e:
                rows.append(self._handle_error(e, index, node))
                continue
            if row is not None:
                row.setdefault("pairedItem", {"item": index})
                rows.append(row)
        return rows

    def _add_post_execution_hint(self, rows: List[Row], input_count: int) -> None:
        if len(rows) == input_count and all("pairedItem" in row for row in rows):
            return
        logger.info(PAIRING_HINT)
        self._emit(ExecutionHint(
            message=PAIRING_HINT,
            input_count=input_count,
            output_count=len(rows),
        ))
