"""pylocal: run workflow Python code in a local interpreter process."""

__version__ = "0.1.0"
