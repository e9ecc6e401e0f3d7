"""
Session context passing the store handle and identity to consumers.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..models.core import AuthState
from ..utils.listeners import ListenerHandle, ListenerRegistry
from ..utils.logging_config import get_logger
from .auth_state import AuthStateMachine
from .record_mapping import collection_path

logger = get_logger(__name__)


@dataclass(frozen=True)
class Session:
    """The two capabilities a consumer may use, plus the app namespace.

    store is None when persistence is unavailable; identity is None unless signed in.
    """
    store: Optional[Any]
    identity: Optional[str]
    app_id: str

    @property
    def ready(self) -> bool:
        return self.store is not None and self.identity is not None

    def collection_path(self, collection: str) -> str:
        """User-scoped path for a collection; only valid when ready."""
        return collection_path(self.app_id, self.identity, collection)


class SessionContext:
    """Owns the store handle and exposes the current Session as auth state changes."""

    def __init__(self, store: Optional[Any], auth: AuthStateMachine, app_id: str):
        self.store = store
        self.auth = auth
        self.app_id = app_id
        self._observers = ListenerRegistry('session observers')
        self._auth_listener = auth.on_change(self._on_auth_change)

    def current(self) -> Session:
        return Session(store=self.store, identity=self.auth.identity, app_id=self.app_id)

    @property
    def ready(self) -> bool:
        """Whether auth has resolved, i.e. the loading screen can be left."""
        return self.auth.ready

    def on_change(self, callback: Callable[[Session], Any]) -> ListenerHandle:
        """Register for Session changes (identity appearing, changing or disappearing)."""
        return self._observers.add(callback)

    def close(self) -> None:
        self._auth_listener.release()

    def _on_auth_change(self, state: AuthState, identity: Optional[str]) -> None:
        logger.debug(f'Session changed: state={state.value} identity={identity}')
        self._observers.notify(self.current())
