"""Provides the main entry point for using the library, :class:`Cipherdir`"""

from __future__ import annotations
from datetime import datetime, timezone
from glob import glob
import logging
import os
import os.path
import re
import shutil
from typing import Dict, List, Optional

from mako.template import Template

from cipherdir.codec import CipherCodec
from cipherdir.conf import CipherdirConf
from cipherdir.fs.base import FilesystemError
from cipherdir.fs.direct import DirectFilesystem
from cipherdir.models import CloseReport, NoteEntry, StagingSession
from cipherdir.staging import StagingManager
from cipherdir.watch import polling_watcher_factory

logger = logging.getLogger(__name__)

INVALID_NAME_RE = re.compile(r'[\\/:*?"<>|]')
MONTHS = ['January', 'February', 'March', 'April', 'May', 'June',
          'July', 'August', 'September', 'October', 'November', 'December']


class Error(Exception):
    pass


def validate_name(name: str, allow_dots: bool = False) -> str:
    """Returns the name stripped of surrounding whitespace, or raises :exc:`Error` if it is not usable."""
    name = (name or '').strip()
    if not name:
        raise Error('Name cannot be empty')
    if INVALID_NAME_RE.search(name) or (not allow_dots and '.' in name) or name in ('.', '..'):
        raise Error(f'Invalid characters in name: {name}')
    return name


class Cipherdir:
    """Main entry point for working programmatically with your collection of encrypted notes.

    Generally, you should get an instance using the :meth:`Cipherdir.for_user` method. Call :meth:`close` when
    you're done with it, or else use it as a context manager; either one closes any notes still open for editing.

    Every method that reads or writes note content takes the password as a parameter. It is never stored, apart
    from being held in memory by a :class:`cipherdir.models.StagingSession` while a note is open.

    .. attribute:: conf
       :type: cipherdir.conf.CipherdirConf

       Typically loaded from the variable ``conf`` in the file ``~/.cipherdir.conf.py``

    .. attribute:: staging
       :type: cipherdir.staging.StagingManager

    .. attribute:: vcs
       :type: Optional[cipherdir.vcs.base.VersionControl]

    Here's an example that appends a line to a note:

    .. code-block:: python

       from cipherdir.api import Cipherdir
       with Cipherdir.for_user() as cd:
           path = cd.note_path('todo')
           session = cd.open(path, password)
           with open(session.staging_path, 'a') as file:
               file.write('- buy milk\\n')
           cd.close(path, password)
    """

    @staticmethod
    def for_user() -> Cipherdir:
        """Creates an instance using the user's ``~/.cipherdir.conf.py`` file.

        Raises :exc:`Exception` if it does not exist or does not define configuration.
        """
        return CipherdirConf.for_user().instantiate()

    def __init__(self, conf: CipherdirConf):
        root = os.path.join(conf.root_path, '')
        if os.path.join(conf.staging_path, '').startswith(root):
            raise ValueError('`staging_path` must not be inside `root_path` in CipherdirConf.')
        self.conf = conf
        self.fs = DirectFilesystem()
        self.codec = CipherCodec()
        watcher_factory = polling_watcher_factory(conf.watch_interval) if conf.watch_interval else None
        self.staging = StagingManager(self.fs, self.codec, conf.staging_path,
                                      encrypted_suffix=conf.encrypted_suffix,
                                      display_suffix=conf.display_suffix,
                                      watcher_factory=watcher_factory)
        self.vcs = conf.vcs_conf.instantiate() if conf.vcs_conf else None

    def display_name(self, path: str) -> str:
        """Returns the name shown for the note at the given path, e.g. ``todo.md`` for ``/notes/todo.enc``."""
        basename = os.path.basename(path)
        if basename.endswith(self.conf.encrypted_suffix):
            return basename[:-len(self.conf.encrypted_suffix)] + self.conf.display_suffix
        return basename

    def note_path(self, name: str, parent: Optional[str] = None) -> str:
        """Returns the path of the encrypted note with the given name.

        The name may include either suffix, or neither. Relative names are resolved against ``parent`` if given,
        or else the notes directory.
        """
        for suffix in (self.conf.display_suffix, self.conf.encrypted_suffix):
            if name.endswith(suffix):
                name = name[:-len(suffix)]
                break
        path = os.path.join(parent or self.conf.root_path, name + self.conf.encrypted_suffix)
        return os.path.abspath(path)

    def ls(self, directory: Optional[str] = None) -> List[NoteEntry]:
        """Lists the folders and notes directly inside the given directory (by default, the notes directory).

        Folders come first, then notes, each sorted case-insensitively. Files without the encrypted suffix, and
        anything excluded by :attr:`cipherdir.conf.CipherdirConf.ignore`, are left out.
        """
        directory = os.path.abspath(directory or self.conf.root_path)
        entries = []
        for entry in os.scandir(directory):
            if entry.is_symlink() or self.conf.ignore(directory, entry.name):
                continue
            if entry.is_dir():
                entries.append(NoteEntry(entry.name, entry.path, is_directory=True))
            elif entry.name.endswith(self.conf.encrypted_suffix):
                entries.append(NoteEntry(self.display_name(entry.path), entry.path))
        entries.sort(key=lambda e: (not e.is_directory, e.label.lower(), e.label))
        return entries

    def templates_by_name(self) -> Dict[str, str]:
        """Returns paths of note templates that are known based on the config.

        The name is the part of the filename before any `.` character. If multiple templates
        have the same name, the one whose path is lexicographically first will appear in the dict.
        """
        paths = [p for g in self.conf.template_globs for p in glob(g, recursive=True) if os.path.isfile(p)]
        paths.sort(reverse=True)
        return {os.path.split(p)[1].split('.')[0].lower(): p for p in paths}

    def template_for_name(self, name: str) -> Optional[str]:
        """Returns the path to the template for the given name, if one is found.

        If treating the name as a relative or absolute path leads to a file, that file is used.
        Otherwise, the name is looked up from :meth:`Cipherdir.templates_by_name`, case-insensitively.
        Returns None if a matching template cannot be found.
        """
        if os.path.isfile(name):
            return name
        else:
            return self.templates_by_name().get(name.lower())

    def initial_content(self, name: str, template_name: Optional[str] = None) -> str:
        """Returns the content for a new note.

        Without a template this is a heading with the note's name. A Mako template is rendered with these names
        defined in its namespace:

        * ``cd``: this instance of :class:`Cipherdir`
        * ``name``: the name of the note being created
        * ``template_path``: the path of the template being rendered

        Raises :exc:`FileNotFoundError` if the template cannot be found.
        """
        if not template_name:
            return f'# {name}\n\nYour new note...'
        template_path = self.template_for_name(template_name)
        if not (template_path and os.path.isfile(template_path)):
            raise FileNotFoundError(f'Template does not exist: {template_name}')
        template = Template(filename=os.path.abspath(template_path))
        return template.render(cd=self, name=name, template_path=template_path)

    def new(self, name: str, password: str, parent: Optional[str] = None, template: Optional[str] = None) -> str:
        """Creates a new encrypted note and returns its path.

        Raises :exc:`Error` if the name is invalid or a note with that name already exists.
        """
        name = validate_name(name)
        path = self.note_path(name, parent)
        if self.fs.exists(path):
            raise Error(f'A note with this name already exists: {self.display_name(path)}')
        content = self.initial_content(name, template)
        self.fs.write_atomic(path, self.codec.seal(content.encode('utf-8'), password))
        logger.info('Created note %s', path)
        return path

    def mkdir(self, name: str, parent: Optional[str] = None) -> str:
        """Creates a folder for notes and returns its path. It is not an error if the folder already exists."""
        name = validate_name(name, allow_dots=True)
        path = os.path.abspath(os.path.join(parent or self.conf.root_path, name))
        os.makedirs(path, exist_ok=True)
        return path

    def read(self, path: str, password: str) -> str:
        """Decrypts the note and returns its text without writing a staging copy.

        Raises :exc:`cipherdir.codec.DecryptionError` if the password is wrong or the note is corrupted.
        """
        return self.codec.unseal(self.fs.read(path), password).decode('utf-8', errors='replace')

    def open(self, path: str, password: str) -> StagingSession:
        """See :meth:`cipherdir.staging.StagingManager.open`."""
        return self.staging.open(path, password)

    def persist(self, path: str, password: str) -> None:
        """See :meth:`cipherdir.staging.StagingManager.persist`."""
        self.staging.persist(path, password)

    def close(self, path: Optional[str] = None, password: Optional[str] = None) -> Optional[CloseReport]:
        """Closes the note at the given path; see :meth:`cipherdir.staging.StagingManager.close`.

        Called without arguments, closes every open note and releases other resources.
        """
        if path is None:
            for report in self.staging.close_all():
                if not report.ok:
                    logger.warning('Problems closing %s: %s', report.path, report.errors)
            return None
        return self.staging.close(path, password)

    def delete(self, path: str) -> Optional[CloseReport]:
        """See :meth:`cipherdir.staging.StagingManager.delete`."""
        return self.staging.delete(path)

    def rmdir(self, path: str) -> List[CloseReport]:
        """Deletes a folder in the notes directory, and everything in it.

        Notes inside it that are open for editing are deleted through
        :meth:`cipherdir.staging.StagingManager.delete` first, so their staging copies are removed and their
        watchers stopped. Returns the reports for those sessions.

        Raises :exc:`Error` if the path is the notes directory itself or is not inside it, and
        :exc:`cipherdir.fs.base.FilesystemError` if the folder cannot be removed.
        """
        path = os.path.abspath(path)
        prefix = os.path.join(path, '')
        if path == self.conf.root_path or not prefix.startswith(os.path.join(self.conf.root_path, '')):
            raise Error(f'Not a folder in the notes directory: {path}')
        reports = []
        for session in self.staging.sessions():
            if session.path.startswith(prefix):
                report = self.staging.delete(session.path)
                if report:
                    reports.append(report)
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise FilesystemError('remove', path, e) from e
        logger.info('Deleted folder %s', path)
        return reports

    def commit_message(self, action: str, name: str, now: Optional[datetime] = None) -> str:
        """Returns a default commit message like ``Updated file todo.md @ May 02, 2012 03:04 UTC``."""
        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        return f'{action} {name} @ {MONTHS[now.month - 1]} {now.day:02d}, {now.year} {now:%H:%M} UTC'

    def _require_vcs(self):
        if not self.vcs:
            raise Error('No version control is configured. Set `vcs_conf` in your config file.')
        return self.vcs

    def init_vcs(self) -> None:
        """Prepares the notes directory for version control."""
        self._require_vcs().init(self.conf.root_path)

    def commit(self, message: str) -> bool:
        """Commits all changes in the notes directory. Returns False if there was nothing to commit."""
        return self._require_vcs().commit(self.conf.root_path, message.strip())

    def sync(self) -> bool:
        """Commits any pending changes, then pulls from and pushes to the remote.

        Returns False if no remote is configured, in which case changes are only committed locally.
        """
        vcs = self._require_vcs()
        vcs.commit(self.conf.root_path, self.commit_message('Manual sync', 'repository'), push=False)
        if not vcs.remote:
            return False
        vcs.pull(self.conf.root_path)
        vcs.push(self.conf.root_path)
        return True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
