"""
Utility helpers for the aftercare backend

Simple utility functions for record IDs.
"""

import time


def generate_record_id():
    """
    Generate an identifier for records stored without a database.

    Returns:
        str: Milliseconds since the epoch

    Examples:
        >>> generate_record_id()
        '1737813787123'
    """
    return str(int(time.time() * 1000))
