"""
Cross-cutting helpers for keyspread: logging setup and run profiling.
"""

from keyspread.utils.logging import configure_logging, get_logger
from keyspread.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
