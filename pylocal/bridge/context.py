"""Context capture for the child interpreter.

Live workflow values are copied into a plain snapshot that can be written to
the child's stdin as one JSON object. Each field goes through a strict JSON
round trip on its own. A field that cannot make the trip (host-side lazy
objects, sets, NaN, circular structures, ...) is left out of the snapshot:
its key is absent, not null. Dropping a field is never an error.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

# Marks a field the caller did not supply, as opposed to one supplied as None
MISSING = object()

_DROPPED = object()

CONTEXT_FIELDS = ("items", "item", "json", "binary", "parameter", "node", "env")


@dataclass(frozen=True)
class ContextNames:
    """Naming scheme for context fields inside the child interpreter.

    Each field travels under prefix + field name on stdin and is bound to a
    global of the same name. The default "_" prefix yields _items, _json, ...
    which cannot shadow modules like json that user code may import.
    """
    prefix: str = "_"

    def key(self, field_name: str) -> str:
        if field_name not in CONTEXT_FIELDS:
            raise ValueError(f"Unknown context field: {field_name!r}")
        return f"{self.prefix}{field_name}"

    def keys(self) -> Dict[str, str]:
        return {name: self.key(name) for name in CONTEXT_FIELDS}


DEFAULT_NAMES = ContextNames()


def to_plain(value: Any) -> Any:
    """Copy value through a strict JSON round trip.

    Returns the deserialized copy, or the private _DROPPED sentinel if value
    cannot be represented as JSON.
    """
    try:
        return json.loads(json.dumps(value, allow_nan=False))
    except (TypeError, ValueError, RecursionError):
        return _DROPPED


def capture_context(
    json: Any = MISSING,
    binary: Any = MISSING,
    parameter: Any = MISSING,
    node: Any = MISSING,
    env: Any = MISSING,
    items: Any = MISSING,
    item: Any = MISSING,
    names: ContextNames = DEFAULT_NAMES,
) -> Dict[str, Any]:
    """Build the snapshot written to the child's stdin.

    A field that is not supplied is left out, same as one that fails the
    round trip. Which of items/item is present tells user code whether it runs
    for the whole batch or per item; env is omitted when env access is blocked.

    Args:
        json: JSON view of the current row
        binary: Binary metadata of the current row
        parameter: Resolved node parameter values
        node: Static node descriptor
        env: Environment variables exposed to user code
        items: All input rows (batch mode)
        item: The current input row (per-item mode)
        names: Naming scheme for wire keys

    Returns:
        Dict of wire key to JSON-plain value, without any field that failed
        the round trip.
    """
    fields = {
        "items": items,
        "item": item,
        "json": json,
        "binary": binary,
        "parameter": parameter,
        "node": node,
        "env": env,
    }

    snapshot: Dict[str, Any] = {}
    dropped = []
    for field_name in CONTEXT_FIELDS:
        value = fields[field_name]
        if value is MISSING:
            continue
        plain = to_plain(value)
        if plain is _DROPPED:
            dropped.append(field_name)
            continue
        snapshot[names.key(field_name)] = plain

    if dropped:
        logger.debug(f"Context fields not JSON serializable, omitted: {', '.join(dropped)}")

    return snapshot


def row_context(row: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Split a row-object into the json/binary views used by capture_context().

    A missing row (e.g. a batch with no input items) yields no views at all,
    so the matching keys are absent from the snapshot.
    """
    if row is None:
        return {}
    views: Dict[str, Any] = {"json": row.get("json", {})}
    if row.get("binary") is not None:
        views["binary"] = row["binary"]
    return views
