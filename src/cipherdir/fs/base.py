"""Defines the API for the filesystem operations the staging lifecycle relies on.

The most important class is :class:`Filesystem`.
"""

from typing import Optional


class FilesystemError(OSError):
    """Raised when a filesystem operation fails.

    The message names the operation and the path, but never the data being read or written.
    """
    def __init__(self, operation: str, path: str, cause: BaseException = None):
        detail = 'unknown error'
        if cause is not None:
            detail = getattr(cause, 'strerror', None) or type(cause).__name__
        super().__init__(getattr(cause, 'errno', None), f'Could not {operation} {path}: {detail}')
        self.operation = operation
        self.path = path
        self.cause = cause

    def __str__(self):
        return self.strerror


class Filesystem:
    """Base class for filesystems, which are responsible for reading and writing whole files.

    Every method may raise :exc:`FilesystemError`.
    """
    def read(self, path: str) -> bytes:
        """Returns the full contents of the file."""
        raise NotImplementedError()

    def write_atomic(self, path: str, data: bytes, mode: Optional[int] = None) -> None:
        """Replaces the contents of the file, creating it if necessary.

        A concurrent reader must see either the complete old contents or the complete new contents, never a
        partially written file. If ``mode`` is given, a newly created file gets those permission bits.
        """
        raise NotImplementedError()

    def remove(self, path: str) -> None:
        """Deletes the file."""
        raise NotImplementedError()

    def exists(self, path: str) -> bool:
        """Returns True if there is a file at the path."""
        raise NotImplementedError()
