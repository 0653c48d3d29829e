"""Exceptions."""


class ValidationError(ValueError):
    """Input to a security operation is missing or malformed."""


class UnknownRole(RuntimeError):
    """A role was assigned that does not exist in the account store."""
