"""Session controller: sign-up, sign-in, sign-out and password reset as observable state."""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from PySide6 import QtCore

from .auth import AuthRepository, Identity
from .livedata import LiveData
from ..signals import signals


class AuthStatus(enum.StrEnum):
    Idle = enum.auto()
    Loading = enum.auto()
    Success = enum.auto()
    Error = enum.auto()
    SignedOut = enum.auto()


@dataclass(frozen=True)
class AuthState:
    """State of the last authentication request. ``message`` is set for Success and Error."""
    status: AuthStatus = AuthStatus.Idle
    message: str = ''

    @classmethod
    def idle(cls) -> 'AuthState':
        return cls(AuthStatus.Idle)

    @classmethod
    def loading(cls) -> 'AuthState':
        return cls(AuthStatus.Loading)

    @classmethod
    def success(cls, message: str) -> 'AuthState':
        return cls(AuthStatus.Success, message)

    @classmethod
    def error(cls, message: str) -> 'AuthState':
        return cls(AuthStatus.Error, message)

    @classmethod
    def signed_out(cls) -> 'AuthState':
        return cls(AuthStatus.SignedOut)


class SessionController(QtCore.QObject):
    """Drives the authentication flow and exposes its state.

    Attributes:
        auth_state (LiveData): The current :class:`AuthState`.
        current_user (LiveData): The signed-in :class:`Identity`, or None.
    """

    def __init__(self, repository: AuthRepository, parent: QtCore.QObject = None) -> None:
        super().__init__(parent)
        self.repository = repository

        self.auth_state = LiveData(AuthState.idle(), parent=self)
        self.current_user = LiveData(repository.get_current_user(), parent=self)

    def is_user_logged_in(self) -> bool:
        return self.repository.is_user_logged_in()

    def _signed_in(self, identity: Identity, message: str) -> None:
        self.current_user.set_value(identity)
        self.auth_state.set_value(AuthState.success(message))
        signals.signedIn.emit(identity)

    def sign_up(self, email: str, password: str, display_name: str) -> None:
        self.auth_state.set_value(AuthState.loading())
        result = self.repository.sign_up(email, password, display_name)
        if result.is_failure:
            self.auth_state.set_value(AuthState.error(result.error_message('Sign up failed')))
            return
        self._signed_in(result.value, 'Account created successfully!')

    def sign_in(self, email: str, password: str) -> None:
        self.auth_state.set_value(AuthState.loading())
        result = self.repository.sign_in(email, password)
        if result.is_failure:
            self.auth_state.set_value(AuthState.error(result.error_message('Login failed')))
            return
        self._signed_in(result.value, 'Logged in successfully!')

    def sign_out(self) -> None:
        self.repository.sign_out()
        self.current_user.set_value(None)
        self.auth_state.set_value(AuthState.signed_out())
        signals.signedOut.emit()

    def reset_password(self, email: str) -> None:
        self.auth_state.set_value(AuthState.loading())
        result = self.repository.reset_password(email)
        if result.is_failure:
            self.auth_state.set_value(AuthState.error(result.error_message('Password reset failed')))
            return
        logging.debug(f'Password reset requested for {email}')
        self.auth_state.set_value(AuthState.success('Password reset email sent!'))

    def reset_state(self) -> None:
        """Return to Idle, e.g. after an error message was shown."""
        self.auth_state.set_value(AuthState.idle())

    @property
    def user(self) -> Optional[Identity]:
        return self.current_user.value
