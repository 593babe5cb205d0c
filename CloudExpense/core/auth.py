"""
Identity providers and the authentication repository.

:class:`FirebaseAuthProvider` signs users in with email and password against the Firebase
Identity Toolkit REST API and persists the session to ``creds.json`` so that the next start
restores it. :class:`MemoryAuthProvider` keeps accounts in-process for the offline backend.

:class:`AuthRepository` wraps a provider, mirrors new accounts into the ``users`` collection
and reports outcomes as :class:`~CloudExpense.core.result.Result` values.
"""

import abc
import json
import logging
import pathlib
import threading
import time
import uuid
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

import requests

from .result import Result
from .store import DocumentStore
from ..data import user
from ..status import status

IDENTITY_TOOLKIT_URL: str = 'https://identitytoolkit.googleapis.com/v1/accounts:{method}'
SECURE_TOKEN_URL: str = 'https://securetoken.googleapis.com/v1/token'
REQUEST_TIMEOUT: int = 20

# Refresh the id token this many seconds before it expires
EXPIRY_MARGIN: int = 60

MIN_PASSWORD_LENGTH: int = 6

ERROR_MESSAGES: Dict[str, str] = {
    'EMAIL_EXISTS': 'The email address is already in use by another account.',
    'EMAIL_NOT_FOUND': 'There is no user record corresponding to this email.',
    'INVALID_PASSWORD': 'The password is invalid.',
    'INVALID_LOGIN_CREDENTIALS': 'The email or password is incorrect.',
    'INVALID_EMAIL': 'The email address is badly formatted.',
    'MISSING_PASSWORD': 'A password is required.',
    'USER_DISABLED': 'The user account has been disabled.',
    'TOO_MANY_ATTEMPTS_TRY_LATER': 'Too many attempts. Try again later.',
    'OPERATION_NOT_ALLOWED': 'Password sign-in is disabled for this project.',
}


@dataclass(frozen=True)
class Identity:
    """The authenticated user as reported by the identity provider."""
    uid: str
    email: str = ''
    display_name: str = ''
    photo_url: str = ''


class IdentityProvider(abc.ABC):
    """Interface of a managed identity provider.

    Failed calls raise :class:`status.AuthenticationFailedError` carrying a readable message.
    """

    @abc.abstractmethod
    def create_account(self, email: str, password: str) -> Identity:
        """Create an account and sign it in."""

    @abc.abstractmethod
    def sign_in(self, email: str, password: str) -> Identity:
        ...

    @abc.abstractmethod
    def sign_out(self) -> None:
        ...

    @abc.abstractmethod
    def send_password_reset(self, email: str) -> None:
        ...

    @abc.abstractmethod
    def current_identity(self) -> Optional[Identity]:
        """The signed-in identity, or None."""

    @abc.abstractmethod
    def update_profile(self, display_name: Optional[str] = None,
                       photo_url: Optional[str] = None) -> Identity:
        """Update the signed-in user's profile and return the updated identity."""


class MemoryAuthProvider(IdentityProvider):
    """In-process identity provider with the same failure cases as the hosted one."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accounts: Dict[str, Dict[str, Any]] = {}
        self._current: Optional[Identity] = None
        self.password_resets: list[str] = []

    def create_account(self, email: str, password: str) -> Identity:
        with self._lock:
            if not email or '@' not in email:
                raise status.AuthenticationFailedError(ERROR_MESSAGES['INVALID_EMAIL'])
            if email in self._accounts:
                raise status.AuthenticationFailedError(ERROR_MESSAGES['EMAIL_EXISTS'])
            if len(password or '') < MIN_PASSWORD_LENGTH:
                raise status.AuthenticationFailedError(
                    f'Password should be at least {MIN_PASSWORD_LENGTH} characters.')

            identity = Identity(uid=uuid.uuid4().hex, email=email)
            self._accounts[email] = {'password': password, 'identity': identity}
            self._current = identity
            return identity

    def sign_in(self, email: str, password: str) -> Identity:
        with self._lock:
            account = self._accounts.get(email)
            if account is None or account['password'] != password:
                raise status.AuthenticationFailedError(ERROR_MESSAGES['INVALID_LOGIN_CREDENTIALS'])
            self._current = account['identity']
            return self._current

    def sign_out(self) -> None:
        with self._lock:
            self._current = None

    def send_password_reset(self, email: str) -> None:
        with self._lock:
            if email not in self._accounts:
                raise status.AuthenticationFailedError(ERROR_MESSAGES['EMAIL_NOT_FOUND'])
            self.password_resets.append(email)

    def current_identity(self) -> Optional[Identity]:
        return self._current

    def update_profile(self, display_name: Optional[str] = None,
                       photo_url: Optional[str] = None) -> Identity:
        with self._lock:
            if self._current is None:
                raise status.AuthorizationError
            changes = {}
            if display_name is not None:
                changes['display_name'] = display_name
            if photo_url is not None:
                changes['photo_url'] = photo_url
            identity = replace(self._current, **changes)
            self._accounts[identity.email]['identity'] = identity
            self._current = identity
            return identity


@dataclass
class Session:
    """A signed-in Firebase session as persisted in ``creds.json``."""
    uid: str
    email: str
    id_token: str
    refresh_token: str
    expires_at: float
    display_name: str = ''
    photo_url: str = ''

    @property
    def expired(self) -> bool:
        return time.time() >= self.expires_at - EXPIRY_MARGIN

    @property
    def identity(self) -> Identity:
        return Identity(uid=self.uid, email=self.email, display_name=self.display_name, photo_url=self.photo_url)

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> 'Session':
        """Build a session from a signUp or signInWithPassword response."""
        return cls(
            uid=data['localId'],
            email=data.get('email', ''),
            id_token=data['idToken'],
            refresh_token=data['refreshToken'],
            expires_at=time.time() + int(data.get('expiresIn', 3600)),
            display_name=data.get('displayName', '') or '',
            photo_url=data.get('photoUrl', '') or '',
        )


def _error_message(response: requests.Response) -> str:
    """Extract a readable message from a Firebase REST error response."""
    try:
        code = response.json()['error']['message']
    except (ValueError, KeyError, TypeError):
        return f'Identity provider returned HTTP {response.status_code}.'
    # Codes may carry a detail suffix, e.g. 'WEAK_PASSWORD : Password should be at least 6 characters'
    key = code.split(':', 1)[0].strip()
    if key in ERROR_MESSAGES:
        return ERROR_MESSAGES[key]
    return code.split(':', 1)[-1].strip() if ':' in code else code


class FirebaseAuthProvider(IdentityProvider):
    """Email and password identity provider backed by the Firebase REST API.

    Args:
        api_key: The Firebase web API key.
        creds_path: File used to persist the session between runs.
    """

    def __init__(self, api_key: str, creds_path: pathlib.Path) -> None:
        self._api_key = api_key
        self._creds_path = pathlib.Path(creds_path)
        self._lock = threading.Lock()
        self._session: Optional[Session] = self._load_session()

    def _post(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = requests.post(url, params={'key': self._api_key}, timeout=REQUEST_TIMEOUT, **kwargs)
        except requests.RequestException as ex:
            raise status.AuthenticationFailedError(f'Could not reach the identity provider: {ex}') from ex

        if response.status_code != 200:
            raise status.AuthenticationFailedError(_error_message(response))
        return response.json()

    def _accounts(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._post(IDENTITY_TOOLKIT_URL.format(method=method), json=payload)

    def _load_session(self) -> Optional[Session]:
        if not self._creds_path.exists():
            logging.debug('No saved session found.')
            return None
        try:
            with self._creds_path.open('r', encoding='utf-8') as f:
                session = Session(**json.load(f))
            logging.debug(f'Restored session for {session.uid}.')
            return session
        except (ValueError, TypeError) as ex:
            logging.error(f'Failed to load the saved session, discarding it: {ex}')
            self._creds_path.unlink(missing_ok=True)
            return None

    def _save_session(self) -> None:
        if self._session is None:
            self._creds_path.unlink(missing_ok=True)
            return
        self._creds_path.parent.mkdir(parents=True, exist_ok=True)
        with self._creds_path.open('w', encoding='utf-8') as f:
            json.dump(asdict(self._session), f, indent=4)
        logging.debug(f'Session saved to {self._creds_path}.')

    def create_account(self, email: str, password: str) -> Identity:
        data = self._accounts('signUp', {'email': email, 'password': password, 'returnSecureToken': True})
        with self._lock:
            self._session = Session.from_response(data)
            self._save_session()
            return self._session.identity

    def sign_in(self, email: str, password: str) -> Identity:
        data = self._accounts('signInWithPassword', {'email': email, 'password': password, 'returnSecureToken': True})
        with self._lock:
            self._session = Session.from_response(data)
            self._save_session()
            return self._session.identity

    def sign_out(self) -> None:
        with self._lock:
            self._session = None
            self._save_session()
        logging.debug('Successfully signed out.')

    def send_password_reset(self, email: str) -> None:
        self._accounts('sendOobCode', {'requestType': 'PASSWORD_RESET', 'email': email})
        logging.debug(f'Password reset email requested for {email}.')

    def current_identity(self) -> Optional[Identity]:
        session = self._session
        return session.identity if session else None

    def update_profile(self, display_name: Optional[str] = None,
                       photo_url: Optional[str] = None) -> Identity:
        payload: Dict[str, Any] = {'idToken': self.id_token(), 'returnSecureToken': False}
        if display_name is not None:
            payload['displayName'] = display_name
        if photo_url is not None:
            payload['photoUrl'] = photo_url
        data = self._accounts('update', payload)

        with self._lock:
            if self._session is None:
                raise status.AuthorizationError
            self._session.display_name = data.get('displayName', self._session.display_name) or ''
            self._session.photo_url = data.get('photoUrl', self._session.photo_url) or ''
            self._save_session()
            return self._session.identity

    def id_token(self) -> str:
        """Return a valid id token for the signed-in user, refreshing it when it expired.

        Raises:
            status.AuthorizationError: If nobody is signed in.
            status.CredsInvalidException: If the session could not be refreshed.
        """
        with self._lock:
            if self._session is None:
                raise status.AuthorizationError
            if self._session.expired:
                self._refresh()
            return self._session.id_token

    def _refresh(self) -> None:
        logging.debug('Id token expired; attempting refresh.')
        try:
            data = self._post(SECURE_TOKEN_URL, data={
                'grant_type': 'refresh_token',
                'refresh_token': self._session.refresh_token,
            })
        except status.AuthenticationFailedError as ex:
            self._session = None
            self._save_session()
            raise status.CredsInvalidException('Failed to refresh the session.') from ex

        self._session.id_token = data['id_token']
        self._session.refresh_token = data.get('refresh_token', self._session.refresh_token)
        self._session.expires_at = time.time() + int(data.get('expires_in', 3600))
        self._save_session()
        logging.debug('Successfully refreshed the id token.')


class AuthRepository:
    """Authentication calls reported as results, plus the user profile document."""

    def __init__(self, provider: IdentityProvider, store: DocumentStore) -> None:
        self.provider = provider
        self.store = store

    def get_current_user(self) -> Optional[Identity]:
        return self.provider.current_identity()

    def is_user_logged_in(self) -> bool:
        return self.provider.current_identity() is not None

    def sign_up(self, email: str, password: str, display_name: str) -> Result[Identity]:
        """Create an account, set its display name and write its profile document."""
        try:
            self.provider.create_account(email, password)
            identity = self.provider.update_profile(display_name=display_name)
            self._create_user_document(identity, display_name)
        except status.BaseStatusException as ex:
            return Result.failure(ex)
        return Result.success(identity)

    def sign_in(self, email: str, password: str) -> Result[Identity]:
        try:
            identity = self.provider.sign_in(email, password)
        except status.BaseStatusException as ex:
            return Result.failure(ex)
        return Result.success(identity)

    def sign_out(self) -> None:
        self.provider.sign_out()

    def reset_password(self, email: str) -> Result[None]:
        try:
            self.provider.send_password_reset(email)
        except status.BaseStatusException as ex:
            return Result.failure(ex)
        return Result.success()

    def _create_user_document(self, identity: Identity, display_name: str) -> None:
        profile = user.UserProfile(
            uid=identity.uid,
            email=identity.email,
            display_name=display_name,
            photo_url=identity.photo_url,
        )
        self.store.set(user.COLLECTION, identity.uid, profile.to_storage_map())
        logging.debug(f'Created profile document for {identity.uid}.')
