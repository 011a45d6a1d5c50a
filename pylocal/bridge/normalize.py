"""Mapping of script results onto row-objects.

User code may return a row-object ({"json": {...}, ...}), a bare object, or a
list of either. Both invocation modes share normalize_items(); they differ
only in how much of the result they keep.
"""

from typing import Any, Dict, List, Optional

from .errors import ResultShapeError

Row = Dict[str, Any]


def _is_row(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("json"), dict)


def normalize_items(value: Any) -> List[Row]:
    """Normalize a script result into an ordered list of row-objects.

    - None (no return value) gives no rows.
    - A row-object is kept as is; any other object becomes {"json": value}.
    - A list is normalized element-wise, but must not mix row-objects with
      bare objects.

    Raises:
        ResultShapeError: If value (or a list element) is not an object, or
            the list mixes row-objects and bare objects.
    """
    if value is None:
        return []

    if isinstance(value, dict):
        return [value] if _is_row(value) else [{"json": value}]

    if not isinstance(value, list):
        raise ResultShapeError(
            f"Code doesn't return items properly: expected an object or a list "
            f"of objects, got {type(value).__name__}"
        )

    for index, element in enumerate(value):
        if not isinstance(element, dict):
            raise ResultShapeError(
                f"Code doesn't return items properly: item {index} is "
                f"{type(element).__name__}, not an object"
            )

    rows = [_is_row(element) for element in value]
    if all(rows):
        return list(value)
    if any(rows):
        raise ResultShapeError(
            "Inconsistent item format: either return all items with a 'json' key "
            "or none of them"
        )
    return [{"json": element} for element in value]


def normalize_all(value: Any) -> List[Row]:
    """Rows for a run-once-for-all-items invocation."""
    return normalize_items(value)


def normalize_each(value: Any) -> Optional[Row]:
    """Row for a run-once-for-each-item invocation.

    Only the first row is kept; a single item never fans out. Returns None
    when the script produced no row.
    """
    rows = normalize_items(value)
    return rows[0] if rows else None
