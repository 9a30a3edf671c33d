"""Status definitions and exceptions for Seihin.

This module provides:
    - Status: enumeration of possible application and sync states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., WriteConflictException) used as the tagged error
      taxonomy of the sync engine
"""
import enum
import logging
from typing import Dict


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    SettingsNotFound = enum.auto()
    SettingsInvalid = enum.auto()

    # Authentication status
    ClientSecretNotFound = enum.auto()
    ClientSecretInvalid = enum.auto()
    CredsInvalid = enum.auto()
    NotAuthenticated = enum.auto()

    # Sync status
    SyncInProgress = enum.auto()
    RemoteNotConfigured = enum.auto()
    RemoteUnavailable = enum.auto()
    WriteConflict = enum.auto()
    SnapshotMalformed = enum.auto()

    # Local store status
    LocalStoreError = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.SettingsNotFound: 'Could not find the settings file.',
    Status.SettingsInvalid: 'The settings seem to be incomplete, or contain invalid values.',

    Status.ClientSecretNotFound: 'Could not find the google client secret. Have you set up a valid Google client secret?',
    Status.ClientSecretInvalid: 'Could not verify the client secret. Have you set up a valid Google client secret?',
    Status.CredsInvalid: 'Could not verify the credentials. Please sign in again to your Google account.',
    Status.NotAuthenticated: 'Authentication error. Try signing in again to your Google account.',

    Status.SyncInProgress: 'A sync is already in progress.',
    Status.RemoteNotConfigured: 'Sync is disabled. No remote storage has been configured.',
    Status.RemoteUnavailable: 'The remote storage is unavailable. Please check your connection.',
    Status.WriteConflict: 'The remote file was changed by another device.',
    Status.SnapshotMalformed: 'The remote file could not be read. It is not a valid snapshot.',

    Status.LocalStoreError: 'The local database could not be read or written.',
}

#: Statuses that are expected during normal operation and are logged as warnings
WARNING_STATUSES = frozenset({
    Status.SyncInProgress,
    Status.WriteConflict,
    Status.RemoteNotConfigured,
})


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
    """Base exception for status-based errors in Seihin.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        self.detail = message or ''
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        if self.status in WARNING_STATUSES:
            logging.warning(exception_message)
            return

        logging.error(exception_message)

        from ..core.signals import signals
        signals.error.emit(message or self.status_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class SettingsNotFoundException(BaseStatusException):
    """Exception raised when the settings file cannot be found."""
    status = Status.SettingsNotFound


class SettingsInvalidException(BaseStatusException):
    """Exception raised when the settings file is invalid or malformed."""
    status = Status.SettingsInvalid


class SyncInProgressException(BaseStatusException):
    """Exception raised when a sync round is requested while another one is running."""
    status = Status.SyncInProgress


class RemoteNotConfiguredException(BaseStatusException):
    """Exception raised when a sync round is requested but no remote is configured."""
    status = Status.RemoteNotConfigured


class RemoteUnavailableException(BaseStatusException):
    """Exception raised on transport or authentication failures reaching the remote store."""
    status = Status.RemoteUnavailable


class AuthenticationException(RemoteUnavailableException):
    """Exception raised when user is not authenticated with Google services."""
    status = Status.NotAuthenticated


class ClientSecretNotFoundException(AuthenticationException):
    """Exception raised when the Google OAuth client secret file cannot be found."""
    status = Status.ClientSecretNotFound


class ClientSecretInvalidException(AuthenticationException):
    """Exception raised when the Google OAuth client secret is invalid or malformed."""
    status = Status.ClientSecretInvalid


class CredsInvalidException(AuthenticationException):
    """Exception raised when stored Google credentials are invalid or expired."""
    status = Status.CredsInvalid


class WriteConflictException(BaseStatusException):
    """Exception raised when an optimistic write finds a different remote revision."""
    status = Status.WriteConflict


class MalformedSnapshotException(BaseStatusException):
    """Exception raised when a fetched snapshot cannot be parsed or normalized."""
    status = Status.SnapshotMalformed


class LocalStoreException(BaseStatusException):
    """Exception raised when the local database fails."""
    status = Status.LocalStoreError
