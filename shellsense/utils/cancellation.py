"""Cooperative cancellation shared by transport calls and pipeline runs."""

from typing import Optional

from shellsense.utils.errors import PipelineCancelledError


class CancellationToken:
    """
    Flag checked at suspension points.

    A run owns one token; whoever replaces the run calls cancel(). Work
    checks the token before each network call and at each loop iteration
    and stops without publishing results.
    """

    def __init__(self, parent: Optional['CancellationToken'] = None):
        self._cancelled = False
        self._parent = parent

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._parent is not None and self._parent.cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise PipelineCancelledError()
