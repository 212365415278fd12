"""
Backup module for the MySQL backup service.

This module handles the core backup functionality including:
- Artifact naming
- Database dumps with in-line compression
- Object storage (S3 and local)
- Count-based retention
- Run locking
- Run orchestration
"""

from .executor import BackupCoordinator, summarize
from .lock import RunLock
from .naming import render_name, artifact_filename, artifact_key
from .retention import RetentionManager, select_for_deletion
from .sources import MySQLSource
from .storage import ObjectStore, S3Storage, LocalStorage

__all__ = [
    'BackupCoordinator',
    'summarize',
    'RunLock',
    'render_name',
    'artifact_filename',
    'artifact_key',
    'RetentionManager',
    'select_for_deletion',
    'MySQLSource',
    'ObjectStore',
    'S3Storage',
    'LocalStorage'
]
