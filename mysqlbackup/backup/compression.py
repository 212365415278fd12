"""
In-line gzip compression for dump streams.

Dump output is compressed while it is read, so only the compressed artifact
ever lands on disk.
"""

import gzip
import os
import shutil
from typing import BinaryIO


# 1MB read buffer
CHUNK_SIZE = 1024 * 1024


class CompressionError(Exception):
    """Raised when a compressed artifact cannot be written."""
    pass


def compress_stream(source: BinaryIO, output_path: str, compresslevel: int = 6) -> int:
    """
    Copy a byte stream into a gzip file.

    Args:
        source: Readable binary stream (e.g. a subprocess stdout pipe)
        output_path: Path of the .gz file to create
        compresslevel: gzip compression level (1-9)

    Returns:
        Size of the compressed file in bytes

    Raises:
        CompressionError: If the artifact cannot be written
    """
    try:
        with gzip.open(output_path, 'wb', compresslevel=compresslevel) as gz:
            shutil.copyfileobj(source, gz, CHUNK_SIZE)
        return get_archive_size(output_path)
    except CompressionError:
        raise
    except OSError as e:
        remove_partial(output_path)
        raise CompressionError(f"Failed to write {output_path}: {e}")


def remove_partial(path: str):
    """Remove a partially written artifact, if any."""
    if os.path.exists(path):
        os.remove(path)


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise CompressionError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get archive size: {e}")


def format_size(size_bytes: int) -> str:
    """Human readable size, e.g. '12.40 MB'."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.2f} KB"
    if size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.2f} MB"
    return f"{size_bytes / 1024 / 1024 / 1024:.2f} GB"
