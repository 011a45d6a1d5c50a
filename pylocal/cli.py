"""Command-line interface for pylocal."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .bridge.bus import EventBus
from .bridge.errors import ResultShapeError
from .bridge.normalize import normalize_items
from .bridge.observers.console import ConsoleObserver
from .config import ConfigError, build_bridge_config, init_config, load_config, merge_config_and_args
from .node import MODES, RUN_ONCE_FOR_ALL_ITEMS, RUN_ONCE_FOR_EACH_ITEM, CodeNode, NodeExecutionError

MODE_ALIASES = {
    "all": RUN_ONCE_FOR_ALL_ITEMS,
    "each": RUN_ONCE_FOR_EACH_ITEM,
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI.

    Without --verbose nothing is logged to the console; stderr is reserved
    for the output of the user's print() calls.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    if verbose:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        root_logger.addHandler(console_handler)
        root_logger.setLevel(logging.DEBUG)
    else:
        root_logger.setLevel(logging.WARNING)


def read_text(path: str) -> str:
    """Read a file, or stdin when path is '-'."""
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def load_items(path: Optional[str]) -> List[Dict[str, Any]]:
    """Load input rows from a JSON file.

    The file may hold row-objects, bare objects, or a single object. Without
    a file the node gets one empty item, like a manually triggered workflow.

    Raises:
        ValueError: If the file is not JSON or does not hold objects
    """
    if path is None:
        return [{"json": {}}]
    try:
        data = json.loads(read_text(path))
    except json.JSONDecodeError as e:
        raise ValueError(f"Items file {path} is not valid JSON: {e}") from e
    try:
        return normalize_items(data)
    except ResultShapeError as e:
        raise ValueError(f"Items file {path}: {e}") from e


def load_parameters(path: Optional[str]) -> Dict[str, Any]:
    """Load node parameters from a YAML (or JSON) file.

    Raises:
        ValueError: If the file cannot be parsed or is not a mapping
    """
    if path is None:
        return {}
    try:
        data = yaml.safe_load(read_text(path))
    except yaml.YAMLError as e:
        raise ValueError(f"Parameters file {path} is not valid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Parameters file {path} must contain a mapping, got {type(data).__name__}"
        )
    return data


def cmd_run(args: argparse.Namespace) -> int:
    """Run a code file over the input items and print the output rows."""
    try:
        code = read_text(args.code_file)
        items = load_items(args.items)
        parameters = load_parameters(args.params)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    config = build_bridge_config(
        args.file_config,
        cli_executable=args.python,
        block_env_access=args.block_env_access,
    )

    bus = EventBus()
    observer = ConsoleObserver(bus, quiet=args.quiet)
    node = CodeNode(
        code,
        mode=MODE_ALIASES.get(args.mode, args.mode),
        config=config,
        bus=bus,
        continue_on_fail=args.continue_on_fail,
    )
    node_descriptor = {
        "name": Path(args.code_file).stem if args.code_file != "-" else "Code",
        "type": "pylocal.code",
        "mode": node.mode,
    }

    try:
        rows = asyncio.run(node.execute(items, parameter=parameters, node=node_descriptor))
    except NodeExecutionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    finally:
        observer.close()

    print(json.dumps(rows, indent=args.indent))
    return 0


def cmd_init_config(args: argparse.Namespace) -> int:
    """Write a commented .pylocal/config.toml."""
    return init_config()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pylocal",
        description="Run workflow Python code in a local interpreter process.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a code file over input items")
    run_parser.add_argument("code_file", help="Python code to run ('-' for stdin)")
    run_parser.add_argument(
        "--items", metavar="FILE",
        help="JSON file with input items ('-' for stdin); default is one empty item",
    )
    run_parser.add_argument(
        "--params", metavar="FILE",
        help="YAML or JSON file with node parameters, exposed as _parameter",
    )
    run_parser.add_argument(
        "--mode", choices=sorted(MODE_ALIASES) + list(MODES), default="each",
        help="Run once for all items or once for each item (default: each)",
    )
    run_parser.add_argument(
        "--python", metavar="EXE",
        help="Python executable (overrides PYLOCAL_PYTHON_EXECUTABLE and config)",
    )
    run_parser.add_argument(
        "--continue-on-fail", action="store_true",
        help="Record failures as error items instead of stopping",
    )
    run_parser.add_argument(
        "--block-env-access", action="store_true",
        help="Do not expose environment variables to the code as _env",
    )
    run_parser.add_argument(
        "--indent", type=int, default=2,
        help="Indentation of the JSON output (default: 2)",
    )
    run_parser.add_argument("-q", "--quiet", action="store_true", help="Hide print() output")
    run_parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    run_parser.set_defaults(func=cmd_run)

    init_parser = subparsers.add_parser("init-config", help="Create .pylocal/config.toml")
    init_parser.set_defaults(func=cmd_init_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        file_config = load_config()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    args = merge_config_and_args(file_config, args)
    args.file_config = file_config

    setup_logging(getattr(args, "verbose", False))
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
