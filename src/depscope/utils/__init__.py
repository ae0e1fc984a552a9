"""
Utilities module - logging and path helpers.
"""

from depscope.utils.logger import logger, DepscopeLogger

__all__ = ["logger", "DepscopeLogger"]
