"""Status definitions and exceptions for SharePointExpenses.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., ListNotFoundException) raised by the sync layer
"""
import enum
import logging
from typing import Any, Dict, List, Optional


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    ConfigNotFound = enum.auto()
    ConfigInvalid = enum.auto()
    SiteUrlNotConfigured = enum.auto()
    ClientIdNotConfigured = enum.auto()

    # Authentication status
    NotAuthenticated = enum.auto()

    # Remote schema status
    ListNotFound = enum.auto()
    ColumnNotFound = enum.auto()
    DocumentLibraryNotFound = enum.auto()
    LookupUnresolved = enum.auto()

    # Remote operation status
    RemoteRejected = enum.auto()
    PartialAttachmentFailure = enum.auto()
    ServiceUnavailable = enum.auto()

    # Local validation
    ValidationFailed = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.ConfigNotFound: 'Could not find the SharePoint configuration file.',
    Status.ConfigInvalid: 'The SharePoint configuration seems to be incomplete, or contains invalid values.',
    Status.SiteUrlNotConfigured: 'The SharePoint site url is not configured. Have you set it in the settings?',
    Status.ClientIdNotConfigured: 'The Azure client id is not configured. Have you set it in the settings?',

    Status.NotAuthenticated: 'No active session. Please sign in to your Microsoft account.',

    Status.ListNotFound: 'Could not find the SharePoint list. Is the list provisioned on the site?',
    Status.ColumnNotFound: 'The SharePoint list is missing expected columns.',
    Status.DocumentLibraryNotFound: 'Could not find the document library used for attachments.',
    Status.LookupUnresolved: 'A referenced item could not be found.',

    Status.RemoteRejected: 'SharePoint rejected the request.',
    Status.PartialAttachmentFailure: 'The expense was saved, but some attachments could not be uploaded.',
    Status.ServiceUnavailable: 'SharePoint is unavailable. Please check your connection.',

    Status.ValidationFailed: 'The entry is incomplete or contains invalid values.',
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
    """Base exception for status-based errors in SharePointExpenses.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.
        message (str): The additional context given by the raiser, if any.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus
    log_level = logging.ERROR

    def __init__(self, message: Optional[str] = None):
        self.status_message = get_message(self.status)
        self.message = message
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.log(self.log_level, exception_message)

        from ..core.signals import signals
        signals.error.emit(message or self.status_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class ConfigNotFoundException(BaseStatusException):
    """Exception raised when the configuration file cannot be found."""
    status = Status.ConfigNotFound


class ConfigInvalidException(BaseStatusException):
    """Exception raised when the configuration is invalid or malformed."""
    status = Status.ConfigInvalid


class SiteUrlNotConfiguredException(BaseStatusException):
    """Exception raised when the SharePoint site url is missing."""
    status = Status.SiteUrlNotConfigured


class ClientIdNotConfiguredException(BaseStatusException):
    """Exception raised when the Azure application (client) id is missing."""
    status = Status.ClientIdNotConfigured


class AuthRequiredException(BaseStatusException):
    """Exception raised when there is no active session to call SharePoint with."""
    status = Status.NotAuthenticated


class ListNotFoundException(BaseStatusException):
    """Exception raised when a list display name has no match on the site."""
    status = Status.ListNotFound

    def __init__(self, list_name: str, message: Optional[str] = None):
        self.list_name = list_name
        super().__init__(message or f'List "{list_name}" not found.')


class ColumnNotFoundException(BaseStatusException):
    """Exception raised by strict schema validation when columns are missing."""
    status = Status.ColumnNotFound

    def __init__(self, list_name: str, fields: List[str], message: Optional[str] = None):
        self.list_name = list_name
        self.fields = list(fields)
        super().__init__(
            message or f'List "{list_name}" has no column for: {", ".join(self.fields)}.'
        )


class DocumentLibraryNotFoundException(BaseStatusException):
    """Exception raised when the attachment document library does not exist."""
    status = Status.DocumentLibraryNotFound


class LookupUnresolvedException(BaseStatusException):
    """Exception raised when a mandatory reference cannot be translated to a row id."""
    status = Status.LookupUnresolved

    def __init__(self, list_name: str, value: Any, field: Optional[str] = None):
        self.list_name = list_name
        self.value = value
        self.field = field
        target = f'"{field}" ' if field else ''
        super().__init__(f'Reference {target}"{value}" not found in list "{list_name}".')


class RemoteRejectedException(BaseStatusException):
    """Exception raised when SharePoint refuses a read or write.

    Attributes:
        status_code (int): HTTP status code returned by the store, if any.
        remote_message (str): The store's own error message, verbatim.
    """
    status = Status.RemoteRejected

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None,
                 remote_message: Optional[str] = None):
        self.status_code = status_code
        self.remote_message = remote_message
        super().__init__(message)


class PartialAttachmentFailureException(BaseStatusException):
    """Exception raised when an expense row persisted but attachments failed to upload.

    Attributes:
        gasto: The expense as persisted, with the attachments that did upload.
        failed (list[tuple[str, str]]): (file name, error) for each failed upload.
    """
    status = Status.PartialAttachmentFailure

    def __init__(self, gasto: Any, failed: List[tuple], message: Optional[str] = None):
        self.gasto = gasto
        self.failed = list(failed)
        names = ', '.join(name for name, _ in self.failed)
        super().__init__(message or f'Expense {getattr(gasto, "id", "?")}: failed to upload {names}.')


class ServiceUnavailableException(BaseStatusException):
    """Exception raised when SharePoint cannot be reached or is throttling."""
    status = Status.ServiceUnavailable


class ValidationException(BaseStatusException):
    """Exception raised when a local entity fails validation before submission."""
    status = Status.ValidationFailed
    log_level = logging.WARNING

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f'Field "{field}" is required.')
