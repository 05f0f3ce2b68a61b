"""Observation registrations tied to the lifetime of a staging session.

Everything a session registers is a :class:`WatchHandle`, and is disposed exactly once when the session ends.
:class:`PollingWatcher` is the one that turns saves of a staging copy into re-encryption.
"""

import logging
import os
import threading
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)


class WatchHandle:
    """Base class for registrations that must be released when a staging session ends."""

    def dispose(self) -> None:
        """Releases the registration. Calling this more than once has no further effect."""
        raise NotImplementedError()


class CallbackHandle(WatchHandle):
    """Releases a registration by calling the given function, once."""

    def __init__(self, fn: Callable[[], None]):
        self._fn = fn
        self._lock = threading.Lock()

    @property
    def disposed(self) -> bool:
        return self._fn is None

    def dispose(self) -> None:
        with self._lock:
            fn, self._fn = self._fn, None
        if fn:
            fn()


class PollingWatcher(WatchHandle):
    """Calls ``callback`` whenever the file at ``path`` is saved.

    A save is detected as a change in the file's modification time or size. :meth:`start` checks every
    ``interval`` seconds on a daemon thread; :meth:`check` performs one check in the calling thread.

    .. attribute:: path
       :type: str
    """

    def __init__(self, path: str, callback: Callable[[], None], interval: float = 1.0):
        self.path = path
        self.callback = callback
        self.interval = interval
        self._stopped = threading.Event()
        self._thread = None
        self._stat_failed = False
        self._last = self._signature()

    def _signature(self) -> Optional[Tuple[int, int]]:
        try:
            stat = os.stat(self.path)
        except FileNotFoundError:
            return None
        except OSError as e:
            if not self._stat_failed:
                logger.warning('Cannot check %s for saves: %s', self.path, e)
                self._stat_failed = True
            return None
        self._stat_failed = False
        return stat.st_mtime_ns, stat.st_size

    def check(self) -> bool:
        """Calls the callback if the file changed since the last check. Returns True if it did.

        Errors raised by the callback are logged rather than propagated.
        """
        if self._stopped.is_set():
            return False
        current = self._signature()
        if current is None or current == self._last:
            return False
        self._last = current
        try:
            self.callback()
        except Exception:
            logger.exception('Handling save of %s failed', self.path)
        return True

    def start(self) -> 'PollingWatcher':
        self._thread = threading.Thread(target=self._run, name=f'watch:{os.path.basename(self.path)}', daemon=True)
        self._thread.start()
        return self

    def _run(self):
        while not self._stopped.wait(self.interval):
            self.check()

    @property
    def disposed(self) -> bool:
        return self._stopped.is_set()

    def dispose(self) -> None:
        # The thread may be waiting for the session lock held by our caller, so it is not joined.
        self._stopped.set()


def polling_watcher_factory(interval: float) -> Callable[[str, Callable[[], None]], WatchHandle]:
    """Returns a factory for :class:`cipherdir.staging.StagingManager` that starts a :class:`PollingWatcher`."""
    def factory(path: str, on_save: Callable[[], None]) -> WatchHandle:
        return PollingWatcher(path, on_save, interval).start()
    return factory
