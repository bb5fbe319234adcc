"""Exceptions raised by the service layer"""


class TransactionValidationError(ValueError):
    """A record is missing a required field or carries an invalid value."""


class StoreError(ConnectionError):
    """The database rejected or failed an operation."""


class ParseError(ValueError):
    """An uploaded CSV cannot be turned into transaction records."""
