"""Exception types raised by freshgate collaborators."""


class FreshgateError(Exception):
    """Base class for freshgate errors."""


class CacheUnavailableError(FreshgateError):
    """The persistent date store could not be read or written."""


class FetchError(FreshgateError):
    """A content fetch failed in a way the caller may want to retry."""
