"""Exceptions raised by the loan tracker."""


class LoanTrackerError(Exception):
    """Base class for loan tracker errors."""


class InvalidRecordError(LoanTrackerError, ValueError):
    """A loan project or part payment has invalid field values."""


class ImportFormatError(LoanTrackerError, ValueError):
    """An import payload does not match the export envelope format."""
