"""
Exceptions raised by depscope.

Only whole-batch and call-boundary problems are raised. Per-file problems
(unresolved imports, failed files, cache store hiccups) are reported in the
analysis results instead.
"""


class DepscopeError(Exception):
    """Base exception for depscope errors"""

    pass


class ConfigurationError(DepscopeError, ValueError):
    """Raised when analysis or cache configuration is invalid"""

    pass


class InvalidFileResultError(DepscopeError, ValueError):
    """Raised when a file analysis result is malformed (e.g. missing path)"""

    pass
