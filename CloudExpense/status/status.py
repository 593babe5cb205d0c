"""Status definitions and exceptions for CloudExpense.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., AuthorizationError, StoreError) raised by the services
"""
import enum
import logging
from typing import Dict


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    ConfigNotFound = enum.auto()
    ConfigInvalid = enum.auto()

    # Authentication status
    NotAuthenticated = enum.auto()
    AuthenticationFailed = enum.auto()
    CredsInvalid = enum.auto()

    # Document store status
    NotFound = enum.auto()
    StoreUnavailable = enum.auto()
    ValidationFailed = enum.auto()

    # Location status
    LocationPermissionDenied = enum.auto()
    LocationUnavailable = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.ConfigNotFound: 'Could not find the app config.',
    Status.ConfigInvalid: 'The app config seems to be incomplete, or contains invalid values.',

    Status.NotAuthenticated: 'User not logged in.',
    Status.AuthenticationFailed: 'Authentication failed.',
    Status.CredsInvalid: 'The saved session could not be restored. Please sign in again.',

    Status.NotFound: 'The expense could not be found.',
    Status.StoreUnavailable: 'The expense store is unavailable. Please check your connection.',
    Status.ValidationFailed: 'The expense contains invalid values.',

    Status.LocationPermissionDenied: 'Location permission not granted.',
    Status.LocationUnavailable: 'Unable to get location.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in CloudExpense.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.
        message (str): The additional context, or the status message when none was given.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        self.message = message or self.status_message
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..signals import signals
        signals.error.emit(self.message)


class ConfigNotFoundException(BaseStatusException):
    """Exception raised when app.json cannot be found."""
    status = Status.ConfigNotFound


class ConfigInvalidException(BaseStatusException):
    """Exception raised when app.json is invalid or malformed."""
    status = Status.ConfigInvalid


class AuthorizationError(BaseStatusException):
    """Exception raised when an operation needs an authenticated identity and there is none,
    or when the identity does not own the requested record."""
    status = Status.NotAuthenticated


class AuthenticationFailedError(BaseStatusException):
    """Exception raised when the identity provider rejects a sign-in, sign-up or reset call."""
    status = Status.AuthenticationFailed


class CredsInvalidException(BaseStatusException):
    """Exception raised when the stored session is corrupt or can no longer be refreshed."""
    status = Status.CredsInvalid


class NotFoundError(BaseStatusException):
    """Exception raised when a record does not exist."""
    status = Status.NotFound


class StoreError(BaseStatusException):
    """Exception raised when the document store fails."""
    status = Status.StoreUnavailable


class ValidationError(BaseStatusException):
    """Exception raised when a record holds invalid values, e.g. a negative amount."""
    status = Status.ValidationFailed


class LocationPermissionError(BaseStatusException):
    """Exception raised when the location capability was not granted."""
    status = Status.LocationPermissionDenied


class LocationUnavailableError(BaseStatusException):
    """Exception raised when the location provider cannot report a position."""
    status = Status.LocationUnavailable
