"""
Artifact naming for database dumps.

A name pattern may contain the placeholders:
- {db}: database name
- {date}: YYYY-MM-DD
- {time}: HH-MM-SS
- {timestamp}: epoch seconds
- {hostname}: short host name

Unrecognized placeholders are left untouched. Pruning relies on names sorting
chronologically within one database's prefix, so patterns should keep the
date/time segments ahead of anything that varies between runs.
"""

import re
import socket
from datetime import datetime
from typing import Optional


ARTIFACT_SUFFIX = '.sql.gz'
DEFAULT_NAME_PATTERN = '{hostname}_{db}_{date}_{time}'

PLACEHOLDER_RE = re.compile(r'\{(db|date|time|timestamp|hostname)\}')


def short_hostname() -> str:
    """Host name without its domain part (like ``hostname -s``)."""
    return socket.gethostname().split('.')[0]


def render_name(pattern: str, db: str, now: datetime, host: str) -> str:
    """
    Substitute placeholders in a name pattern.

    Args:
        pattern: Name pattern, e.g. '{hostname}_{db}_{date}_{time}'
        db: Database name
        now: Capture instant for this database
        host: Host identity

    Returns:
        Rendered name (without suffix)
    """
    values = {
        'db': db,
        'date': now.strftime('%Y-%m-%d'),
        'time': now.strftime('%H-%M-%S'),
        'timestamp': str(int(now.timestamp())),
        'hostname': host,
    }

    # single pass: substituted values are never scanned again
    return PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], pattern)


def artifact_filename(pattern: str, db: str, now: datetime, host: str) -> str:
    """Rendered name with the fixed dump suffix appended."""
    return f"{render_name(pattern, db, now, host)}{ARTIFACT_SUFFIX}"


def _join_key(*parts: Optional[str]) -> str:
    segments = [part.strip('/') for part in parts if part and part.strip('/')]
    return '/'.join(segments)


def database_prefix(path_prefix: str, db: str) -> str:
    """
    Storage prefix holding every artifact of one database.

    Always ends with '/' so that 'shop' never matches 'shop_archive'.
    """
    return _join_key(path_prefix, db) + '/'


def artifact_key(path_prefix: str, db: str, filename: str) -> str:
    """Full storage key: {path_prefix}/{db}/{filename}"""
    return _join_key(path_prefix, db, filename)
