"""Configuration for pylocal.

Two sources feed the configuration:

- the PYLOCAL_PYTHON_EXECUTABLE environment variable, which selects the
  interpreter for the whole process, and
- an optional per-project `.pylocal/config.toml`, discovered by searching
  upward from the current working directory until a `.git` directory is found.

Everything is resolved once into a frozen BridgeConfig that is passed to the
runner at construction; nothing below the CLI reads the environment itself.
"""

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

if sys.version_info < (3, 11):
    raise RuntimeError(
        "pylocal requires Python 3.11 or greater for tomllib support. "
        f"Current version: {sys.version_info.major}.{sys.version_info.minor}"
    )

import tomllib

# Environment variable selecting the interpreter executable name or path
PYTHON_EXECUTABLE_ENV = "PYLOCAL_PYTHON_EXECUTABLE"

# Used when nothing else is configured; resolved via PATH
DEFAULT_PYTHON_EXECUTABLE = "python"

CONFIG_DIR_NAME = ".pylocal"
CONFIG_FILE_NAME = "config.toml"

# Expected type of every known key in the [pylocal] table
KNOWN_KEYS = {
    "python_executable": str,
    "block_env_access": bool,
    "continue_on_fail": bool,
    "verbose": bool,
}


class ConfigError(Exception):
    """Raised when configuration file operations fail."""
    pass


@dataclass(frozen=True)
class BridgeConfig:
    """Process-wide, read-only bridge settings.

    Attributes:
        python_executable: Interpreter name (looked up on PATH) or path.
        block_env_access: If True, user code gets no environment variables.
    """
    python_executable: str = DEFAULT_PYTHON_EXECUTABLE
    block_env_access: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BridgeConfig":
        """Build a config from the environment alone (no config file)."""
        return cls(python_executable=resolve_python_executable(environ=environ))


def resolve_python_executable(
    cli_value: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Pick the interpreter executable.

    Precedence: explicit CLI value, then PYLOCAL_PYTHON_EXECUTABLE, then the
    config file, then DEFAULT_PYTHON_EXECUTABLE. Empty values are skipped.
    """
    if environ is None:
        environ = os.environ
    for candidate in (
        cli_value,
        environ.get(PYTHON_EXECUTABLE_ENV),
        (config or {}).get("python_executable"),
    ):
        if candidate:
            return candidate
    return DEFAULT_PYTHON_EXECUTABLE


def find_project_root(cwd: Path) -> Path:
    """Find project root (directory containing .git) or return cwd if not found."""
    current = Path(cwd).resolve()
    root = Path(current.anchor)

    while current != root:
        if (current / ".git").exists():
            return current
        current = current.parent

    return Path(cwd).resolve()


def find_config_dir(cwd: Path, create_if_missing: bool = False) -> Optional[Path]:
    """Find the .pylocal directory by searching upward from cwd.

    The search stops at the first directory containing .git (the project
    boundary) or at the filesystem root.

    Args:
        cwd: Directory to start searching from
        create_if_missing: Create .pylocal at the project root (or cwd when
            there is no .git) if none is found

    Returns:
        The .pylocal directory if found or created, None otherwise
    """
    current = Path(cwd).resolve()
    root = Path(current.anchor)
    project_root = None

    while current != root:
        config_dir = current / CONFIG_DIR_NAME
        if config_dir.is_dir():
            return config_dir
        if (current / ".git").exists():
            project_root = current
            break
        current = current.parent

    if create_if_missing:
        target_dir = project_root if project_root is not None else Path(cwd).resolve()
        config_dir = target_dir / CONFIG_DIR_NAME
        config_dir.mkdir(parents=True, exist_ok=True)
        return config_dir

    return None


def find_config_file(cwd: Path) -> Optional[Path]:
    """Return .pylocal/config.toml above cwd, or None if there is none."""
    config_dir = find_config_dir(cwd)
    if config_dir is None:
        return None

    config_file = config_dir / CONFIG_FILE_NAME
    if config_file.is_file():
        return config_file

    return None


def validate_config(config: Dict[str, Any], config_file: Path) -> Dict[str, Any]:
    """Type-check known keys and drop unknown ones.

    Args:
        config: Contents of the [pylocal] table
        config_file: Path to the config file (for error messages)

    Returns:
        Validated config dictionary with only known keys

    Raises:
        ConfigError: If a known key has the wrong type or an empty value
    """
    validated = {k: v for k, v in config.items() if k in KNOWN_KEYS}

    for key, value in validated.items():
        expected = KNOWN_KEYS[key]
        if not isinstance(value, expected):
            raise ConfigError(
                f"Invalid value for '{key}' in {config_file}: "
                f"expected {'boolean' if expected is bool else 'string'}, "
                f"got {type(value).__name__}"
            )

    if "python_executable" in validated and not validated["python_executable"].strip():
        raise ConfigError(
            f"Invalid value for 'python_executable' in {config_file}: must not be empty"
        )

    return validated


def load_config(cwd: Optional[Path] = None) -> Dict[str, Any]:
    """Load .pylocal/config.toml, returning an empty dict if there is none.

    Raises:
        ConfigError: If the file exists but cannot be read, is not valid TOML,
            or contains invalid values
    """
    if cwd is None:
        cwd = Path.cwd()

    config_file = find_config_file(cwd)
    if config_file is None:
        return {}

    try:
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(
            f"Failed to parse {config_file}: Invalid TOML syntax - {e}"
        ) from e
    except OSError as e:
        raise ConfigError(f"Failed to read {config_file}: {e}") from e

    return validate_config(data.get("pylocal", {}), config_file)


def merge_config_and_args(config: Dict[str, Any], args: argparse.Namespace) -> argparse.Namespace:
    """Fill unset CLI options from the config file; CLI values win.

    store_true flags left at False can be switched on by the config file.
    """
    for flag in ("continue_on_fail", "verbose", "block_env_access"):
        if hasattr(args, flag) and not getattr(args, flag) and config.get(flag, False):
            setattr(args, flag, True)
    return args


def build_bridge_config(
    config: Dict[str, Any],
    cli_executable: Optional[str] = None,
    block_env_access: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> BridgeConfig:
    """Resolve file, environment and CLI settings into a BridgeConfig."""
    return BridgeConfig(
        python_executable=resolve_python_executable(cli_executable, config, environ),
        block_env_access=block_env_access or config.get("block_env_access", False),
    )


CONFIG_TEMPLATE = """# pylocal configuration file
# Command-line arguments override values in this file
# Uncomment and modify values as needed

[pylocal]
# Python interpreter name or path (default: "python")
# PYLOCAL_PYTHON_EXECUTABLE takes precedence over this value
# python_executable = "python3"

# Hide environment variables from user code (default: false)
# block_env_access = false

# Record failures as error items instead of stopping (default: false)
# continue_on_fail = false

# Enable verbose logging (default: false)
# verbose = false
"""


def init_config(cwd: Optional[Path] = None) -> int:
    """Write a .pylocal/config.toml with every option commented out.

    Returns:
        0 on success, 1 on error
    """
    if cwd is None:
        cwd = Path.cwd()

    existing_config = find_config_file(cwd)
    if existing_config is not None:
        print(
            f"Error: Configuration file already exists at {existing_config}",
            file=sys.stderr
        )
        return 1

    project_root = find_project_root(cwd)
    config_dir = find_config_dir(project_root, create_if_missing=True)
    config_file = config_dir / CONFIG_FILE_NAME

    try:
        config_file.write_text(CONFIG_TEMPLATE, encoding="utf-8")
    except OSError as e:
        print(f"Error: Failed to write configuration file: {e}", file=sys.stderr)
        return 1

    print(f"Created configuration file at {config_file}")
    return 0
