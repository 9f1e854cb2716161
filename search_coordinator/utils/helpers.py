"""
Utility functions for the search coordinator
"""
import os
import time
from typing import Any, Dict

import psutil


def elapsed_ms(started: float) -> int:
    """
    Whole milliseconds since a time.monotonic() reading

    Args:
        started: Earlier time.monotonic() value

    Returns:
        Elapsed milliseconds, truncated
    """
    return int((time.monotonic() - started) * 1000)


def format_duration(ms: float) -> str:
    """
    Format a millisecond duration in human readable form

    Args:
        ms: Duration in milliseconds

    Returns:
        Formatted duration string
    """
    if ms < 1000:
        return f"{ms:.0f} ms"
    seconds = ms / 1000.0
    if seconds < 60:
        return f"{seconds:.2f} s"
    return f"{int(seconds // 60)} min {seconds % 60:.0f} s"


def format_time_ago(timestamp: float) -> str:
    """
    Format timestamp as time ago

    Args:
        timestamp: Unix timestamp

    Returns:
        Human readable time ago string
    """
    diff = time.time() - timestamp

    if diff < 60:
        return f"{int(diff)} seconds ago"
    elif diff < 3600:
        return f"{int(diff / 60)} minutes ago"
    elif diff < 86400:
        return f"{int(diff / 3600)} hours ago"
    else:
        return f"{int(diff / 86400)} days ago"


def parse_node_option(value: str) -> Dict[str, Any]:
    """
    Parse a ``node_id=locator[@weight]`` string

    Raises:
        ValueError: on a missing id or locator, or a weight that is not a number
    """
    node_id, sep, rest = value.partition("=")
    if not sep or not node_id.strip() or not rest.strip():
        raise ValueError(f"expected node_id=locator[@weight], got {value!r}")
    locator, _, weight = rest.rpartition("@") if "@" in rest else (rest, "", "")
    return {
        "node_id": node_id.strip(),
        "locator": locator.strip(),
        "weight": float(weight) if weight else 1.0,
    }


def get_system_info() -> Dict[str, Any]:
    """
    Get system information

    Returns:
        Dictionary with system information
    """
    memory = psutil.virtual_memory()
    return {
        "cpu_count": psutil.cpu_count(),
        "cpu_percent": psutil.cpu_percent(),
        "memory": {
            "total": memory.total,
            "available": memory.available,
            "percent": memory.percent
        },
        "load_average": os.getloadavg() if hasattr(os, 'getloadavg') else [0, 0, 0]
    }
