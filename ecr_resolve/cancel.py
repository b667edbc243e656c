import threading
import time
from typing import Optional

from .errors import Cancelled


class CancelScope:
    """Cancellation signal plus optional deadline for one resolution call.

    Child scopes are cancelled with their parent but can also be cancelled
    on their own, which lets the matcher stop a listing scan it no longer
    needs without cancelling the caller's scope.
    """

    def __init__(self, event: Optional[threading.Event] = None,
                 timeout: Optional[float] = None,
                 parent: Optional["CancelScope"] = None):
        self.event = event if event is not None else threading.Event()
        self.deadline = time.monotonic() + timeout if timeout is not None else None
        self.parent = parent

    def child(self) -> "CancelScope":
        return CancelScope(parent=self)

    def cancel(self) -> None:
        self.event.set()

    @property
    def timed_out(self) -> bool:
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return True
        return self.parent is not None and self.parent.timed_out

    @property
    def cancelled(self) -> bool:
        if self.event.is_set() or self.timed_out:
            return True
        return self.parent is not None and self.parent.cancelled

    def check(self) -> None:
        if self.cancelled:
            raise Cancelled("timed out" if self.timed_out else "cancelled")

    def sleep(self, seconds: float, poll: float = 0.05) -> None:
        """Sleep up to ``seconds``, raising Cancelled as soon as the scope is cancelled."""
        end = time.monotonic() + seconds
        while True:
            self.check()
            left = end - time.monotonic()
            if left <= 0:
                return
            self.event.wait(min(left, poll))
