"""Status definitions and exceptions for CashTag.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., RemoteApiError, RecordInvalidException) raised by the data layer
"""
import enum
import logging
from typing import Dict, Optional


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
    CredsNotFound = enum.auto()
    CredsInvalid = enum.auto()
    NotAuthenticated = enum.auto()

    # Remote status
    RemoteApiFailed = enum.auto()
    SpreadsheetNotConnected = enum.auto()

    # Record status
    RecordInvalid = enum.auto()
    RecordNotFound = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.SettingsNotFound: 'Could not find the settings file.',
    Status.SettingsInvalid: 'The settings file seems to be incomplete, or contains invalid values.',

    Status.ClientSecretNotFound: 'Could not find the google client secret. Have you set up a valid Google client secret?',
    Status.ClientSecretInvalid: 'Could not verify the client secret. Have you set up a valid Google client secret?',
    Status.CredsNotFound: 'Could not find the credentials. Please sign in to your Google account.',
    Status.CredsInvalid: 'Could not verify the credentials. Please sign in again to your Google account.',
    Status.NotAuthenticated: 'Authentication error. Try signing in again to your Google account.',

    Status.RemoteApiFailed: 'Google API request failed.',
    Status.SpreadsheetNotConnected: 'No database spreadsheet is connected. Please connect or set up your sheet first.',

    Status.RecordInvalid: 'The record is incomplete, or contains invalid values.',
    Status.RecordNotFound: 'Could not find the record.',
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
    """Base exception for status-based errors in CashTag.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.
        message (str): The additional context passed in, or the status message.

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


class SettingsNotFoundException(BaseStatusException):
    """Exception raised when the settings file cannot be found."""
    status = Status.SettingsNotFound


class SettingsInvalidException(BaseStatusException):
    """Exception raised when the settings file is invalid or malformed."""
    status = Status.SettingsInvalid


class ClientSecretNotFoundException(BaseStatusException):
    """Exception raised when the Google OAuth client secret file cannot be found."""
    status = Status.ClientSecretNotFound


class ClientSecretInvalidException(BaseStatusException):
    """Exception raised when the Google OAuth client secret is invalid or malformed."""
    status = Status.ClientSecretInvalid


class CredsNotFoundException(BaseStatusException):
    """Exception raised when stored Google credentials cannot be found."""
    status = Status.CredsNotFound


class CredsInvalidException(BaseStatusException):
    """Exception raised when stored Google credentials are invalid or expired."""
    status = Status.CredsInvalid


class AuthenticationExceptionException(BaseStatusException):
    """Exception raised when user is not authenticated with Google services."""
    status = Status.NotAuthenticated


class RemoteApiError(BaseStatusException):
    """Exception raised for any non-success response from the Sheets or Drive API.

    Attributes:
        url (str): The request URL, when known.
        http_status (int): The HTTP status code, when the remote answered.

    Args:
        message (str): Message reported by the remote API. When empty, a generic
            message naming the url is used.
        url (str): The request URL.
        http_status (int): The HTTP status code.
    """
    status = Status.RemoteApiFailed

    def __init__(self, message: Optional[str] = None, url: Optional[str] = None,
                 http_status: Optional[int] = None):
        self.url = url
        self.http_status = http_status
        super().__init__(message or f'Failed to fetch from Google API: {url}')


class SpreadsheetNotConnectedException(BaseStatusException):
    """Exception raised when a data operation runs before a spreadsheet is connected."""
    status = Status.SpreadsheetNotConnected


class RecordInvalidException(BaseStatusException):
    """Exception raised when a record fails local validation or a row cannot be decoded."""
    status = Status.RecordInvalid


class RecordNotFoundException(BaseStatusException):
    """Exception raised when a record to update cannot be located."""
    status = Status.RecordNotFound
