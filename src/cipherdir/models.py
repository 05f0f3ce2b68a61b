"""Defines classes for representing staging sessions and the notes in a collection.

The most important class is :class:`StagingSession`.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import os.path
from typing import List, Optional

from cipherdir.watch import WatchHandle


@dataclass
class StagingSession:
    """The live association between an encrypted note and its plaintext staging copy.

    Instances are created and destroyed only by :class:`cipherdir.staging.StagingManager`, which guarantees there
    is at most one per persistent path.
    """

    path: str
    """The resolved, absolute path of the encrypted note."""

    staging_path: str
    """The path of the decrypted working copy."""

    watch_handles: List[WatchHandle] = field(default_factory=list)
    """Registrations released when the session ends."""

    closed: bool = False
    """True once the session has been torn down."""

    credential: Optional[str] = field(default=None, repr=False, compare=False)
    """The password the session was opened with, kept in memory so that saves noticed by a watcher can be
    re-encrypted. Cleared when the session ends."""


@dataclass
class CloseReport:
    """Describes how closing a staging session went.

    Closing never raises for filesystem problems; they are collected in :attr:`errors` instead.
    """

    path: str
    staging_path: str

    persisted: bool = False
    """True if the final content of the staging copy was encrypted and written to :attr:`path`."""

    staging_removed: bool = False
    """True if the staging copy was deleted. When :attr:`persisted` is False the copy is deliberately kept, so
    that its content is not lost."""

    errors: List[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.persisted and self.staging_removed and not self.errors


@dataclass
class NoteEntry:
    """One item in a directory of the notes collection."""

    label: str
    """The name shown to the user: the file name, with the display suffix in place of the encrypted suffix."""

    path: str
    """The resolved, absolute path of the encrypted note or of the folder."""

    is_directory: bool = False

    def as_json(self) -> dict:
        """Returns a dict representing the instance, suitable for serializing as json."""
        return {
            'label': self.label,
            'path': self.path,
            'type': 'folder' if self.is_directory else 'note'
        }

    @property
    def name(self) -> str:
        return os.path.splitext(self.label)[0] if not self.is_directory else self.label
