"""Provides the :class:`StagingManager` class, which controls when plaintext copies of notes exist.

A note is either *sealed* (only the encrypted file exists) or *staged* (a :class:`cipherdir.models.StagingSession`
exists and a decrypted copy is on disk for editing). The manager performs every transition between those states:

* :meth:`StagingManager.open` decrypts a sealed note into a staging copy
* :meth:`StagingManager.persist` re-encrypts the staging copy over the note
* :meth:`StagingManager.close` persists one last time, deletes the staging copy, and ends the session
* :meth:`StagingManager.delete` ends any session and deletes the note

All operations on one note are serialized by a lock for that note. Operations on different notes do not wait for
each other, apart from brief access to the session registry.
"""

from contextlib import contextmanager
import hmac
import logging
import os.path
import threading
from typing import Callable, Dict, Iterator, List, Optional

import shortuuid

from cipherdir.codec import CipherCodec, DecryptionError
from cipherdir.fs.base import Filesystem, FilesystemError
from cipherdir.models import CloseReport, StagingSession
from cipherdir.watch import WatchHandle

logger = logging.getLogger(__name__)

STAGING_FILE_MODE = 0o600

WatcherFactory = Callable[[str, Callable[[], None]], WatchHandle]


class SessionConflictError(Exception):
    """Raised if a second staging session would be registered for the same note.

    :meth:`StagingManager.open` returns the existing session instead of creating another, so this indicates a bug.
    """
    def __init__(self, path: str):
        super().__init__(f'A staging session already exists for {path}')
        self.path = path


class SessionNotFoundError(Exception):
    """Raised when an operation requires a staging session but the note is not staged."""
    def __init__(self, path: str):
        super().__init__(f'Note is not open for editing: {path}')
        self.path = path


class _PathLock:
    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class StagingManager:
    """Owns the staging sessions for a collection of notes.

    .. attribute:: fs
       :type: cipherdir.fs.base.Filesystem

    .. attribute:: codec
       :type: cipherdir.codec.CipherCodec

    .. attribute:: staging_dir
       :type: str

       Where staging copies are written. It should not be inside the notes directory, so that plaintext is never
       picked up by version control.

    .. attribute:: watcher_factory

       If set, called as ``watcher_factory(staging_path, on_save)`` when a session starts. It should return a
       :class:`cipherdir.watch.WatchHandle` that calls ``on_save`` whenever the staging copy is saved; each call
       re-encrypts the note with the password the session was opened with.
    """

    def __init__(self, fs: Filesystem, codec: CipherCodec, staging_dir: str,
                 encrypted_suffix: str = '.enc', display_suffix: str = '.md',
                 watcher_factory: Optional[WatcherFactory] = None):
        if not (encrypted_suffix and display_suffix) or encrypted_suffix == display_suffix:
            raise ValueError('The encrypted and display suffixes must be different and non-empty.')
        self.fs = fs
        self.codec = codec
        self.staging_dir = os.path.abspath(staging_dir)
        self.encrypted_suffix = encrypted_suffix
        self.display_suffix = display_suffix
        self.watcher_factory = watcher_factory
        self._lock = threading.Lock()
        self._sessions: Dict[str, StagingSession] = {}
        self._path_locks: Dict[str, _PathLock] = {}

    def _resolve(self, path: str) -> str:
        path = os.path.abspath(path)
        if not path.endswith(self.encrypted_suffix):
            raise ValueError(f'Not an encrypted note (expected suffix {self.encrypted_suffix}): {path}')
        return path

    @contextmanager
    def _locked(self, path: str) -> Iterator[None]:
        # Entries are dropped once no thread holds or waits for them.
        with self._lock:
            entry = self._path_locks.get(path)
            if entry is None:
                entry = self._path_locks[path] = _PathLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._path_locks[path]

    def _check_credential(self, session: StagingSession, password: str) -> None:
        expected = (session.credential or '').encode('utf-8')
        if not hmac.compare_digest(password.encode('utf-8'), expected):
            raise DecryptionError()

    def _staging_path_for(self, path: str) -> str:
        stem = os.path.basename(path)[:-len(self.encrypted_suffix)]
        return os.path.join(self.staging_dir, f'{stem}_{shortuuid.uuid()}{self.display_suffix}')

    def session(self, path: str) -> Optional[StagingSession]:
        """Returns the live session for the note at the given path, if any."""
        with self._lock:
            return self._sessions.get(os.path.abspath(path))

    def sessions(self) -> List[StagingSession]:
        """Returns all live sessions."""
        with self._lock:
            return list(self._sessions.values())

    def _register(self, session: StagingSession) -> None:
        with self._lock:
            if session.path in self._sessions:
                raise SessionConflictError(session.path)
            self._sessions[session.path] = session

    def open(self, path: str, password: str) -> StagingSession:
        """Decrypts the note into a staging copy and starts a session for it.

        If the note already has a session, that session is returned and nothing is decrypted or written. The
        password must then match the one the session was opened with.

        Raises :exc:`cipherdir.codec.DecryptionError` if the password is wrong or the note is corrupted, and
        :exc:`cipherdir.fs.base.FilesystemError` if the note cannot be read or the staging copy cannot be
        written. In either case no new session exists and no staging copy is left behind.
        """
        path = self._resolve(path)
        with self._locked(path):
            existing = self.session(path)
            if existing:
                self._check_credential(existing, password)
                logger.debug('Note %s is already staged at %s', path, existing.staging_path)
                return existing

            plaintext = self.codec.unseal(self.fs.read(path), password)
            staging_path = self._staging_path_for(path)
            self.fs.write_atomic(staging_path, plaintext, mode=STAGING_FILE_MODE)
            del plaintext

            session = StagingSession(path, staging_path, credential=password)
            try:
                if self.watcher_factory:
                    session.watch_handles.append(self.watcher_factory(staging_path, lambda: self._on_save(session)))
                self._register(session)
            except Exception:
                self._teardown(session, CloseReport(path, staging_path))
                raise
            logger.debug('Staged %s at %s', path, staging_path)
            return session

    def _persist(self, session: StagingSession, password: str) -> None:
        data = self.fs.read(session.staging_path)
        self.fs.write_atomic(session.path, self.codec.seal(data, password))

    def persist(self, path: str, password: str) -> None:
        """Encrypts the current content of the staging copy and replaces the note with it.

        Raises :exc:`SessionNotFoundError` if the note is not staged,
        :exc:`cipherdir.codec.DecryptionError` if the password is not the one the session was opened with, and
        :exc:`cipherdir.fs.base.FilesystemError` if reading or writing fails. In each case the note is unchanged.
        """
        path = self._resolve(path)
        with self._locked(path):
            session = self.session(path)
            if not session:
                raise SessionNotFoundError(path)
            self._check_credential(session, password)
            self._persist(session, password)
            logger.debug('Persisted %s', path)

    def _on_save(self, session: StagingSession) -> None:
        with self._locked(session.path):
            if session.closed:
                return
            self._persist(session, session.credential)
            logger.debug('Persisted %s after save of its staging copy', session.path)

    def attach(self, path: str, handle: WatchHandle) -> None:
        """Ties an additional registration to the note's session, so that it is disposed when the session ends.

        Raises :exc:`SessionNotFoundError` if the note is not staged.
        """
        path = self._resolve(path)
        with self._locked(path):
            session = self.session(path)
            if not session:
                raise SessionNotFoundError(path)
            session.watch_handles.append(handle)

    def close(self, path: str, password: str) -> Optional[CloseReport]:
        """Ends the note's session.

        The staging copy is encrypted over the note one last time, then deleted, and the session's watch handles
        are disposed. Filesystem errors do not stop the session from ending; they are logged and returned in the
        :class:`cipherdir.models.CloseReport`. If the final encryption fails, the staging copy is kept so its
        content is not lost.

        Returns None if the note is not staged. Raises :exc:`cipherdir.codec.DecryptionError`, and leaves the
        session open, if the password is not the one the session was opened with.
        """
        path = self._resolve(path)
        with self._locked(path):
            session = self.session(path)
            if not session:
                logger.debug('Note %s is not staged; nothing to close', path)
                return None
            self._check_credential(session, password)
            return self._close(session, password)

    def _close(self, session: StagingSession, password: str) -> CloseReport:
        report = CloseReport(session.path, session.staging_path)
        try:
            self._persist(session, password)
            report.persisted = True
        except FilesystemError as e:
            logger.error('Could not persist %s while closing it; leaving staging copy at %s',
                         session.path, session.staging_path)
            report.errors.append(e)
        finally:
            self._teardown(session, report, remove_staging=report.persisted)
        return report

    def close_all(self) -> List[CloseReport]:
        """Closes every live session, persisting each with the password it was opened with."""
        reports = []
        for path in [s.path for s in self.sessions()]:
            with self._locked(path):
                session = self.session(path)
                if session:
                    reports.append(self._close(session, session.credential))
        return reports

    def delete(self, path: str) -> Optional[CloseReport]:
        """Deletes the note.

        If the note is staged, the session is ended first, and the staging copy is discarded without being
        persisted. Returns the report for that session, or None if there was none.

        Raises :exc:`cipherdir.fs.base.FilesystemError` if the note cannot be deleted.
        """
        path = self._resolve(path)
        with self._locked(path):
            report = None
            session = self.session(path)
            if session:
                report = CloseReport(path, session.staging_path)
                self._teardown(session, report)
            self.fs.remove(path)
            logger.debug('Deleted %s', path)
            return report

    def _teardown(self, session: StagingSession, report: CloseReport, remove_staging: bool = True) -> None:
        try:
            if remove_staging:
                try:
                    self.fs.remove(session.staging_path)
                    report.staging_removed = True
                except FilesystemError as e:
                    logger.warning('Could not remove staging copy %s: %s', session.staging_path, e)
                    report.errors.append(e)
        finally:
            session.closed = True
            session.credential = None
            handles, session.watch_handles = session.watch_handles, []
            for handle in handles:
                try:
                    handle.dispose()
                except Exception as e:
                    logger.exception('Could not dispose watch handle for %s', session.path)
                    report.errors.append(e)
            with self._lock:
                if self._sessions.get(session.path) is session:
                    del self._sessions[session.path]
            logger.debug('Closed session for %s', session.path)
