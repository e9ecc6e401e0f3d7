"""
Authentication state machine resolving the process identity.
"""

from typing import Any, Callable, Optional

from ..models.core import AuthState, AuthUser
from ..utils.identity_client import IdentityClient, IdentityError
from ..utils.listeners import ListenerHandle, ListenerRegistry
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class AuthStateMachine:
    """Drives UNRESOLVED -> SIGNED_IN(identity) | SIGNED_OUT from the provider's listener.

    The provider's auth-state listener is the single source of truth. While no
    pre-issued token is configured, every report of an absent user triggers one
    anonymous sign-in attempt; failures are logged and leave the state SIGNED_OUT.
    """

    def __init__(self, identity_client: Optional[IdentityClient], initial_auth_token: Optional[str] = None):
        """
        Initialize the state machine.

        Args:
            identity_client: Identity provider, or None when sign-in is unavailable
            initial_auth_token: Optional pre-issued custom token exchanged on start
        """
        self.identity_client = identity_client
        self.initial_auth_token = initial_auth_token
        self.state = AuthState.UNRESOLVED
        self.identity: Optional[str] = None
        self._observers = ListenerRegistry('auth state observers')
        self._provider_listener: Optional[ListenerHandle] = None

    @property
    def ready(self) -> bool:
        """False only until the first listener callback has been processed."""
        return self.state is not AuthState.UNRESOLVED

    def start(self) -> None:
        """Exchange the pre-issued token, if any, then follow the provider listener."""
        if self._provider_listener is not None:
            return

        if self.identity_client is None:
            logger.warning('No identity provider configured, staying signed out')
            self._transition(AuthState.SIGNED_OUT, None)
            return

        if self.initial_auth_token:
            try:
                self.identity_client.sign_in_with_custom_token(self.initial_auth_token)
            except IdentityError as e:
                logger.error(f'Custom token sign-in failed: {e}')

        self._provider_listener = self.identity_client.on_auth_state_changed(self._on_user)

    def stop(self) -> None:
        """Stop following the provider listener."""
        if self._provider_listener is not None:
            self._provider_listener.release()
            self._provider_listener = None

    def on_change(self, callback: Callable[[AuthState, Optional[str]], Any]) -> ListenerHandle:
        """Register for (state, identity) changes."""
        return self._observers.add(callback)

    def _on_user(self, user: Optional[AuthUser]) -> None:
        if user is not None:
            self._transition(AuthState.SIGNED_IN, user.uid)
            return

        self._transition(AuthState.SIGNED_OUT, None)
        if self.initial_auth_token:
            return

        try:
            self.identity_client.sign_in_anonymously()
        except IdentityError as e:
            logger.error(f'Anonymous sign-in failed: {e}')

    def _transition(self, state: AuthState, identity: Optional[str]) -> None:
        if state is self.state and identity == self.identity:
            return
        logger.info(f'Auth state {self.state.value} -> {state.value}')
        self.state = state
        self.identity = identity
        self._observers.notify(state, identity)
