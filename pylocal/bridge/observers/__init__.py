"""Observers for the bridge event bus.

Observers subscribe to invocation events and perform side effects such as
console output, keeping those concerns out of the runner itself.
"""

from .console import ConsoleObserver

__all__ = [
    "ConsoleObserver",
]
