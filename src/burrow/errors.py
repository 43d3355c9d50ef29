"""Exceptions raised by burrow."""


class BurrowError(Exception):
    """Base class for burrow errors."""


class InvalidRootError(BurrowError):
    """The requested root path does not exist or is not a directory."""


class ScanError(BurrowError):
    """The root of a listing scan could not be read."""


class DeletionNotConfirmed(BurrowError):
    """A deletion was requested without an explicit confirmation."""
