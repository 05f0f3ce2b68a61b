"""Provides the :class:`GitVersionControl` class."""

import logging
import subprocess
from typing import List, Optional

from cipherdir.vcs.base import VersionControl, VersionControlError

logger = logging.getLogger(__name__)

DEFAULT_USER_NAME = 'cipherdir'
DEFAULT_USER_EMAIL = 'cipherdir@localhost'


def _push_error_message(output: str) -> str:
    lower = output.lower()
    if 'authentication' in lower or 'permission denied' in lower:
        return 'Git authentication failed. Please check your credentials or use SSH keys.'
    if 'rejected' in lower:
        return 'Push rejected. The remote repository may have newer commits. Try pulling first.'
    if 'remote' in lower or 'could not read from' in lower:
        return 'Remote repository not accessible. Check your internet connection and repository URL.'
    return 'Push failed.'


class GitVersionControl(VersionControl):
    """Runs the ``git`` executable in the notes directory.

    .. attribute:: remote
       :type: Optional[str]

       URL of the ``origin`` remote. If None, commits are never pushed.
    """
    def __init__(self, remote: Optional[str] = None, executable: str = 'git'):
        self.remote = remote
        self.executable = executable

    def _git(self, root: str, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        cmd = [self.executable] + list(args)
        logger.debug('Running %s in %s', ' '.join(cmd[:2]), root)
        try:
            result = subprocess.run(cmd, cwd=root, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                                    universal_newlines=True)
        except OSError as e:
            raise VersionControlError('Could not run git. Check that it is installed.', e) from e
        if check and result.returncode != 0:
            raise VersionControlError(f'git {args[0]} failed: {result.stderr.strip()}')
        return result

    def _lines(self, root: str, *args: str) -> List[str]:
        return [line for line in self._git(root, *args).stdout.splitlines() if line.strip()]

    def init(self, root: str, remote: Optional[str] = None) -> None:
        if remote:
            self.remote = remote
        if self._git(root, 'rev-parse', '--is-inside-work-tree', check=False).returncode != 0:
            self._git(root, 'init')
            logger.info('Initialized git repository in %s', root)
        if self.remote:
            if 'origin' in self._lines(root, 'remote'):
                self._git(root, 'remote', 'set-url', 'origin', self.remote)
            else:
                self._git(root, 'remote', 'add', 'origin', self.remote)
        if self._git(root, 'config', 'user.name', check=False).returncode != 0:
            self._git(root, 'config', 'user.name', DEFAULT_USER_NAME)
            self._git(root, 'config', 'user.email', DEFAULT_USER_EMAIL)

    def commit(self, root: str, message: str, push: bool = True) -> bool:
        self._git(root, 'add', '--all', '.')
        if not self._lines(root, 'status', '--porcelain'):
            logger.info('No changes to commit in %s', root)
            return False
        self._git(root, 'commit', '-m', message)
        logger.info('Committed changes in %s', root)
        if push and self.remote:
            self.push(root)
        return True

    def _branch(self, root: str) -> str:
        return self._git(root, 'rev-parse', '--abbrev-ref', 'HEAD').stdout.strip()

    def _require_remote(self) -> None:
        if not self.remote:
            raise VersionControlError('No git remote repository configured.')

    def push(self, root: str) -> None:
        self._require_remote()
        branch = self._branch(root)
        result = self._git(root, 'push', 'origin', branch, check=False)
        if result.returncode != 0:
            logger.debug('Push of %s failed; retrying with --set-upstream', branch)
            result = self._git(root, 'push', '--set-upstream', 'origin', branch, check=False)
        if result.returncode != 0:
            raise VersionControlError(_push_error_message(result.stderr))
        logger.info('Pushed %s to origin', branch)

    def pull(self, root: str) -> None:
        self._require_remote()
        branch = self._branch(root)
        if not self._lines(root, 'ls-remote', '--heads', 'origin', branch):
            logger.info('Remote has no branch %s yet; nothing to pull', branch)
            return
        result = self._git(root, 'pull', '--no-edit', 'origin', branch, check=False)
        if result.returncode != 0:
            raise VersionControlError('Failed to pull latest changes from remote repository.')
        logger.info('Pulled %s from origin', branch)
