"""Script assembly for the child interpreter.

wrap_code() turns user source text into a complete script that:

- reads the context snapshot from stdin and binds every key as a global,
- runs the user code as the body of a function so a top-level `return`
  produces the result,
- sends anything the user code writes to stdout (print() included) to stderr,
- writes the return value as a single JSON document to the real stdout
  (NaN and Infinity are rejected, they are not JSON).

The script refers to sys and json only through private aliases, so neither
user code nor context keys can break the final write.
"""

import keyword

from .context import DEFAULT_NAMES, ContextNames

INDENT = "    "

# Lines of preamble before the first line of user code
USER_LINE_OFFSET = 4

_PREAMBLE = """\
import sys as __pylocal_sys, json as __pylocal_json
__pylocal_stdout = __pylocal_sys.stdout
globals().update(__pylocal_json.loads(__pylocal_sys.stdin.read()))
def __main():
"""

_EPILOGUE = """\
__pylocal_sys.stdout = __pylocal_sys.stderr
try:
    __result = __main()
finally:
    __pylocal_sys.stdout = __pylocal_stdout
__pylocal_stdout.write(__pylocal_json.dumps(__result, allow_nan=False))
__pylocal_stdout.flush()
"""


def has_code(code: str) -> bool:
    """Return True if code has a line that is neither blank nor a comment.

    Code made only of comments would leave the function body empty too.
    """
    for line in code.replace("\r\n", "\n").split("\n"):
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            return True
    return False


def indent_body(code: str) -> str:
    """Indent user code as a function body, substituting `pass` when empty.

    Blank lines are kept, so traceback line numbers stay a fixed offset
    (USER_LINE_OFFSET) from the user's source. Only \\n and \\r\\n end a
    line. str.splitlines(), and textwrap.indent() which relies on it, would
    also split on characters such as U+2028 that are legal inside string
    literals.
    """
    if not has_code(code):
        return INDENT + "pass\n"
    lines = code.replace("\r\n", "\n").rstrip("\n").split("\n")
    return "".join(INDENT + line + "\n" if line.strip() else line + "\n" for line in lines)


def wrap_code(code: str, names: ContextNames = DEFAULT_NAMES) -> str:
    """Build the script passed to the interpreter with -c.

    Args:
        code: User source text; may use `return` at top level.
        names: Naming scheme the context snapshot was captured with.

    Returns:
        The complete script text.

    Raises:
        ValueError: If names would bind context fields to names that are not
            valid Python identifiers.
    """
    for key in names.keys().values():
        if not key.isidentifier() or keyword.iskeyword(key):
            raise ValueError(f"Context key {key!r} is not a valid Python identifier")

    return _PREAMBLE + indent_body(code) + _EPILOGUE
