"""Reentrancy guard shared by the ledger's value-transferring operations."""

from .errors import ReentrantCall


class ReentrancyGuard:
    """A single not-entered / entered flag.

    Used as a context manager around a guarded body:

        with hub.guard:
            ...

    Entering while the flag is already set raises ReentrantCall immediately,
    leaving the flag owned by the outer invocation. The flag is cleared when
    the outer body exits, whether it completed or raised.
    """

    def __init__(self):
        self._entered = False

    @property
    def entered(self) -> bool:
        return self._entered

    def __enter__(self) -> "ReentrancyGuard":
        if self._entered:
            raise ReentrantCall("reentrant call")
        self._entered = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._entered = False
