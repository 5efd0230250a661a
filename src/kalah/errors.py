"""
Exception taxonomy.

Invalid moves are not exceptions: the engine reports them by returning None.
"""


class KalahError(Exception):
    """Base class for all errors raised by the package."""


class IllegalMoveError(KalahError):
    """A policy returned a pit that is not a valid move."""


class ModelNotFoundError(KalahError, FileNotFoundError):
    """No saved model exists at the requested location."""


class MalformedModelError(KalahError, ValueError):
    """Saved model data exists but cannot be understood."""
