"""Errors raised by the analysis context."""


class ValidationError(ValueError):
    """Input rejected before any computation (panel, region code, flag, window)."""
    pass


class PersistenceError(Exception):
    """A store could not be reached or refused the operation. Safe to retry."""
    pass
