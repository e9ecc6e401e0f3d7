"""
Listener registration handles shared by auth, session and live-query listeners.
"""

from typing import Any, Callable, List, Optional

from .logging_config import get_logger

logger = get_logger(__name__)


class ListenerHandle:
    """Owns a single listener registration and releases it exactly once.

    Use as a context manager to guarantee release on every exit path.
    """

    def __init__(self, release_fn: Optional[Callable[[], Any]] = None, name: str = 'listener'):
        self._release_fn = release_fn
        self.name = name
        self.released = False

    def release(self) -> None:
        """Unregister the listener. Calling it again is a no-op."""
        if self.released:
            return
        self.released = True
        release_fn, self._release_fn = self._release_fn, None
        if release_fn is not None:
            release_fn()
            logger.debug(f'Released {self.name}')

    def __enter__(self) -> 'ListenerHandle':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = 'released' if self.released else 'active'
        return f'<ListenerHandle {self.name} {state}>'


class ListenerRegistry:
    """Ordered set of callbacks notified with the same arguments."""

    def __init__(self, name: str = 'listeners'):
        self.name = name
        self._callbacks: List[Callable[..., Any]] = []

    def add(self, callback: Callable[..., Any]) -> ListenerHandle:
        """Register a callback and return the handle that removes it."""
        self._callbacks.append(callback)
        return ListenerHandle(lambda: self._remove(callback), name=self.name)

    def notify(self, *args: Any) -> None:
        """Call every registered callback in registration order.

        A failing callback is logged and does not stop delivery to the rest.
        """
        for callback in list(self._callbacks):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f'Listener in {self.name} failed: {e}')

    def __len__(self) -> int:
        return len(self._callbacks)

    def _remove(self, callback: Callable[..., Any]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)
