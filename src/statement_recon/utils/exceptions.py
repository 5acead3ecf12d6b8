"""Custom exceptions for the statement reconciliation application."""


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class InputFormatError(ReconciliationError):
    """Unreadable or unsupported statement file. Aborts the whole batch."""

    pass


class EmptyDocument(InputFormatError):
    """The statement file contains no rows."""

    pass


class HeaderNotFound(InputFormatError):
    """No row in the header scan window looks like a column header."""

    pass


class YearRequired(InputFormatError):
    """Dates without a year were found and no statement year is known."""

    pass


class TotalsMismatch(InputFormatError):
    """Parsed line totals disagree with the statement's own summary."""

    pass


class ParseCancelled(InputFormatError):
    """A parse job was cancelled before it finished."""

    pass


class MatchCandidateConflict(ReconciliationError):
    """An accounting record is already linked to another statement line."""

    pass


class DeleteBlocked(ReconciliationError):
    """Attempted deletion of a reconciled statement line."""

    pass


class InvalidTransition(ReconciliationError):
    """A reconciliation status change that the state machine does not allow."""

    pass


class NotFoundError(ReconciliationError):
    """A referenced account, upload or line does not exist."""

    pass


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class ValidationError(ReconciliationError):
    """Data validation error."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass
