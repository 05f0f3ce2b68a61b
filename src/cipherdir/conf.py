from __future__ import annotations
from dataclasses import dataclass, field, replace
import os
import os.path
from typing import Callable, Optional, Set

from cipherdir.vcs.base import VersionControl


def default_ignore(parentpath: str, filename: str) -> bool:
    return filename.startswith('.')


def default_staging_path() -> str:
    return os.path.join(os.path.expanduser('~'), '.cache', 'cipherdir', 'staging')


def default_editor() -> str:
    return os.environ.get('VISUAL') or os.environ.get('EDITOR') or 'vi'


@dataclass
class VCSConf:
    """Base class for version control config. Use a subclass such as :class:`GitConf`."""

    def instantiate(self) -> VersionControl:
        raise NotImplementedError("Please use a subclass like GitConf instead!")


@dataclass
class GitConf(VCSConf):
    """Configures cipherdir to commit changes with git, via :class:`cipherdir.vcs.git.GitVersionControl`."""

    remote: Optional[str] = None
    """URL of the remote repository. If set, every commit is pushed to it."""

    def instantiate(self) -> VersionControl:
        from cipherdir.vcs.git import GitVersionControl
        return GitVersionControl(remote=self.remote)


@dataclass
class CipherdirConf:
    root_path: str
    """The folder containing your encrypted notes. Notes may be nested in subfolders."""

    staging_path: str = field(default_factory=default_staging_path)
    """The folder where decrypted copies of notes are written while you edit them.

    Each copy is deleted when you finish editing. This should be outside :attr:`root_path`, so that plaintext
    never ends up in version control.
    """

    encrypted_suffix: str = '.enc'
    """File extension of encrypted notes. Only files with this extension are treated as notes."""

    display_suffix: str = '.md'
    """File extension shown for notes, and used for the decrypted copies you edit."""

    template_globs: Set[str] = field(default_factory=set)
    """A set of path globs such as ``{"/notes-templates/*.mako"}`` to search for templates.

    This is used for the CLI command ``new``, and template-related methods of :class:`cipherdir.api.Cipherdir`.
    Templates are rendered before being encrypted, so keep them outside :attr:`root_path` if they are private.
    """

    vcs_conf: Optional[VCSConf] = None
    """Configures version control for the notes folder. If None, the ``sync`` command and ``--commit`` options
    are unavailable."""

    editor: str = field(default_factory=default_editor)
    """Command used by ``cipherdir edit``. Defaults to ``$VISUAL``, then ``$EDITOR``, then ``vi``.

    The command must not return until you are done editing, so for GUI editors pass the appropriate flag,
    e.g. ``code --wait``.
    """

    watch_interval: Optional[float] = None
    """If set, the decrypted copy is checked this often (in seconds) while you edit it, and every save is
    encrypted into the note immediately rather than only when the editor exits."""

    ignore: Callable[[str, str], bool] = default_ignore
    """Use this to indicate files or folders that should not be listed.

    The first argument is the path to the directory containing the file/folder, and the second argument is
    the filename. The current default behavior is to ignore all files or folders whose name begins with a period
    (``.``), which includes ``.git``.
    """

    @classmethod
    def for_user(cls) -> CipherdirConf:
        path = os.path.expanduser(os.path.join('~', '.cipherdir.conf.py'))
        if not os.path.exists(path):
            raise Exception(f'You need to create the config file: {path}')
        with open(path, 'r') as file:
            conf_script = file.read()
        context = {}
        exec(conf_script, context)
        if 'conf' not in context or not isinstance(context['conf'], cls):
            raise Exception('You need to assign an instance of CipherdirConf to the variable `conf` '
                            f'in your config file: {path}')
        return context['conf']

    def standardize(self):
        return replace(
            self,
            root_path=os.path.realpath(os.path.expanduser(self.root_path)),
            staging_path=os.path.realpath(os.path.expanduser(self.staging_path))
        )

    def instantiate(self):
        from cipherdir.api import Cipherdir
        return Cipherdir(self.standardize())
