"""Utility functions"""
from .time_utils import utc_now, to_iso, parse_timestamp

__all__ = [
    "utc_now",
    "to_iso",
    "parse_timestamp",
]
