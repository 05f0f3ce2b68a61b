"""Provides the :class:`DirectFilesystem` class."""

import os
import os.path
from tempfile import mkstemp
from typing import Optional

from cipherdir.fs.base import Filesystem, FilesystemError


class DirectFilesystem(Filesystem):
    """Reads and writes files on the local disk.

    :meth:`write_atomic` writes to a temporary file in the destination directory and then renames it over the
    destination, which is atomic on POSIX filesystems and on Windows when both paths are on the same volume.
    """
    def read(self, path: str) -> bytes:
        try:
            with open(path, 'rb') as file:
                return file.read()
        except OSError as e:
            raise FilesystemError('read', path, e) from e

    def write_atomic(self, path: str, data: bytes, mode: Optional[int] = None) -> None:
        destdir, destname = os.path.split(os.path.abspath(path))
        try:
            os.makedirs(destdir, exist_ok=True)
            fd, tmp = mkstemp(prefix=f'.{destname}.', dir=destdir)
        except OSError as e:
            raise FilesystemError('write', path, e) from e
        try:
            with os.fdopen(fd, 'wb') as file:
                file.write(data)
                file.flush()
                os.fsync(file.fileno())
            if mode is not None:
                os.chmod(tmp, mode)
            elif os.path.exists(path):
                os.chmod(tmp, os.stat(path).st_mode & 0o777)
            os.replace(tmp, path)
        except OSError as e:
            try:
                os.remove(tmp)
            except OSError:
                pass
            raise FilesystemError('write', path, e) from e

    def remove(self, path: str) -> None:
        try:
            os.remove(path)
        except OSError as e:
            raise FilesystemError('remove', path, e) from e

    def exists(self, path: str) -> bool:
        return os.path.isfile(path)
