"""Exception hierarchy shared by the larasniff modules."""


class LarasniffError(Exception):
    """Base class for all errors raised by larasniff."""


class ParseError(LarasniffError):
    """Source text could not be parsed into a clean syntax tree."""

    def __init__(self, message: str, line: int = 0):
        super().__init__(message)
        self.line = line


class ConfigError(LarasniffError):
    """A configuration file or option value is malformed."""
