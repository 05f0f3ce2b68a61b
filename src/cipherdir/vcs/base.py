"""Defines the API for committing and pushing a notes directory.

The most important class is :class:`VersionControl`.
"""

from typing import Optional


class VersionControlError(Exception):
    """Raised when a version control operation fails."""
    def __init__(self, message: str, cause: BaseException = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class VersionControl:
    """Base class for version control backends.

    Every method may raise :exc:`VersionControlError`.

    .. attribute:: remote
       :type: Optional[str]

       Where changes are pushed to and pulled from. If None, changes are only recorded locally.
    """
    remote: Optional[str] = None

    def init(self, root: str, remote: Optional[str] = None) -> None:
        """Prepares the directory for use, creating a repository and configuring the remote if necessary."""
        raise NotImplementedError()

    def commit(self, root: str, message: str, push: bool = True) -> bool:
        """Records every change in the directory, and pushes it if ``push`` is True and a remote is configured.

        Returns False if there was nothing to commit.
        """
        raise NotImplementedError()

    def push(self, root: str) -> None:
        """Sends existing commits to the remote."""
        raise NotImplementedError()

    def pull(self, root: str) -> None:
        """Fetches and merges changes from the remote."""
        raise NotImplementedError()
