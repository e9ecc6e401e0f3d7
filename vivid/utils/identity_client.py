"""
Firebase Identity Toolkit client for anonymous and custom-token sign-in.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import requests
from google.auth import credentials as google_credentials
from google.auth import exceptions as google_auth_exceptions
from google.auth import jwt

from ..models.core import AuthUser
from .config import AuthConfig, FirebaseConfig
from .listeners import ListenerHandle, ListenerRegistry
from .logging_config import get_logger

logger = get_logger(__name__)

IDENTITY_TOOLKIT_URL = 'https://identitytoolkit.googleapis.com/v1'
SECURE_TOKEN_URL = 'https://securetoken.googleapis.com/v1/token'

# Refresh this long before the provider-reported expiry
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)


class IdentityError(Exception):
    """Custom exception for identity provider errors."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def decode_token_claims(id_token: str) -> Dict[str, Any]:
    """Read the claims segment of a JWT without verifying it.

    The provider already verified the token it issued us; the client only needs the uid.
    """
    try:
        claims = jwt.decode(id_token, verify=False)
    except (ValueError, google_auth_exceptions.GoogleAuthError):
        return {}
    return claims if isinstance(claims, dict) else {}


class IdentityClient:
    """Identity provider client holding the current user and auth-state listeners."""

    def __init__(self, api_key: str, timeout: int = 10, session: Optional[requests.Session] = None):
        """
        Initialize the identity client.

        Args:
            api_key: Firebase web API key
            timeout: HTTP timeout in seconds
            session: Optional requests session (shared connection pool)
        """
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.current_user: Optional[AuthUser] = None
        self._listeners = ListenerRegistry('auth-state listeners')

        logger.info('Initialized identity client')

    @classmethod
    def from_config(cls, firebase: Optional[FirebaseConfig], auth: AuthConfig) -> Optional['IdentityClient']:
        """Build a client, or None when no Firebase configuration is available."""
        if firebase is None or not firebase.api_key:
            logger.warning('No Firebase API key configured, sign-in is unavailable')
            return None
        return cls(api_key=firebase.api_key, timeout=auth.timeout)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def sign_in_anonymously(self) -> AuthUser:
        """Create an anonymous account and make it the current user.

        Raises:
            IdentityError: If the provider rejects the request or is unreachable
        """
        body = self._post(f'{IDENTITY_TOOLKIT_URL}/accounts:signUp', json={'returnSecureToken': True})
        user = self._user_from_response(body, is_anonymous=True)
        self._set_user(user)
        logger.info(f'Signed in anonymously as {user.uid}')
        return user

    def sign_in_with_custom_token(self, token: str) -> AuthUser:
        """Exchange a pre-issued custom token for a signed-in user.

        Raises:
            IdentityError: If the token is rejected or the provider is unreachable
        """
        if not token or not token.strip():
            raise IdentityError('Custom token is empty')

        body = self._post(f'{IDENTITY_TOOLKIT_URL}/accounts:signInWithCustomToken',
                          json={
                              'token': token,
                              'returnSecureToken': True
                          })
        user = self._user_from_response(body, is_anonymous=False)
        self._set_user(user)
        logger.info(f'Signed in with custom token as {user.uid}')
        return user

    def refresh_current_user(self) -> Optional[AuthUser]:
        """Trade the current refresh token for a fresh ID token.

        Returns:
            The refreshed user, or None when nobody is signed in

        Raises:
            IdentityError: If the refresh grant fails
        """
        user = self.current_user
        if user is None:
            return None

        body = self._post(SECURE_TOKEN_URL, data={'grant_type': 'refresh_token', 'refresh_token': user.refresh_token})
        if not body.get('id_token'):
            raise IdentityError('Refresh response did not contain an ID token')

        refreshed = AuthUser(uid=str(body.get('user_id') or user.uid),
                             id_token=body['id_token'],
                             refresh_token=body.get('refresh_token') or user.refresh_token,
                             expires_at=_utcnow() + timedelta(seconds=int(body.get('expires_in') or 3600)),
                             is_anonymous=user.is_anonymous)
        self._set_user(refreshed)
        logger.debug(f'Refreshed ID token for {refreshed.uid}')
        return refreshed

    def sign_out(self) -> None:
        """Forget the current user."""
        if self.current_user is not None:
            logger.info(f'Signing out {self.current_user.uid}')
        self._set_user(None)

    def on_auth_state_changed(self, callback: Callable[[Optional[AuthUser]], Any]) -> ListenerHandle:
        """Register for identity presence changes.

        The callback is invoked immediately with the current user (or None),
        then again whenever the signed-in uid changes.
        """
        handle = self._listeners.add(callback)
        callback(self.current_user)
        return handle

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _set_user(self, user: Optional[AuthUser]) -> None:
        previous_uid = self.current_user.uid if self.current_user else None
        self.current_user = user
        if (user.uid if user else None) != previous_uid:
            self._listeners.notify(user)

    def _user_from_response(self, body: Dict[str, Any], is_anonymous: bool) -> AuthUser:
        id_token = body.get('idToken')
        if not id_token:
            raise IdentityError('Identity response did not contain an ID token')

        claims = decode_token_claims(id_token)
        uid = body.get('localId') or claims.get('user_id') or claims.get('sub')
        if not uid:
            raise IdentityError('Identity response did not identify the user')

        return AuthUser(uid=str(uid),
                        id_token=id_token,
                        refresh_token=body.get('refreshToken', ''),
                        expires_at=_utcnow() + timedelta(seconds=int(body.get('expiresIn') or 3600)),
                        is_anonymous=is_anonymous)

    def _post(self, url: str, json: Optional[Dict[str, Any]] = None, data: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        try:
            resp = self.session.post(url, params={'key': self.api_key}, json=json, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f'Identity request to {url} failed: {e}')
            raise IdentityError(f'Identity request failed: {e}')

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            error = body.get('error') if isinstance(body, dict) else None
            message = error.get('message') if isinstance(error, dict) else None
            logger.error(f'Identity request to {url} failed with status {resp.status_code}: {message or resp.text}')
            raise IdentityError(f'Identity request failed: {message or resp.status_code}')

        if not isinstance(body, dict):
            raise IdentityError('Identity response was not a JSON object')
        return body


class IdentityTokenCredentials(google_credentials.Credentials):
    """google-auth credentials that authorize store requests as the signed-in user.

    The Firestore client calls refresh() whenever the token is missing or expired.
    """

    def __init__(self, identity_client: IdentityClient):
        super().__init__()
        self._identity_client = identity_client
        # A different user must never reuse the previous user's token
        self._listener = identity_client.on_auth_state_changed(lambda user: self._reset())

    def refresh(self, request) -> None:
        user = self._identity_client.current_user
        if user is None:
            raise google_auth_exceptions.RefreshError('No signed-in user to authorize store requests')

        stale = user.id_token == self.token or (user.expires_at is not None and
                                                user.expires_at <= _utcnow() + TOKEN_REFRESH_MARGIN)
        if stale:
            try:
                user = self._identity_client.refresh_current_user()
            except IdentityError as e:
                raise google_auth_exceptions.RefreshError(str(e)) from e
            if user is None:
                raise google_auth_exceptions.RefreshError('User signed out during token refresh')

        self.token = user.id_token
        self.expiry = user.expires_at

    def close(self) -> None:
        self._listener.release()

    def _reset(self) -> None:
        self.token = None
        self.expiry = None
