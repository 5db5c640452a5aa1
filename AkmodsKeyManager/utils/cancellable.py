"""
Cooperative cancellation for blocking calls
"""

import threading


class Cancellable:
    """
    Cancellation flag shared between a worker and whoever owns the dialog
    Anything with an is_cancelled() method (Gio.Cancellable too) is accepted
    wherever a cancellable is expected
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        """Request cancellation"""
        self._event.set()

    def is_cancelled(self):
        """Check whether cancellation was requested"""
        return self._event.is_set()

    def reset(self):
        """Allow the object to be reused for a new operation"""
        self._event.clear()


def is_cancelled(cancellable):
    return cancellable is not None and cancellable.is_cancelled()
