"""Synchronizes the notes directory with version control.

:class:`cipherdir.vcs.base.VersionControl` defines an API.
:class:`cipherdir.vcs.git.GitVersionControl` implements it by running ``git``.

Nothing in :mod:`cipherdir.staging` uses version control. Committing after a note changes is up to the caller,
such as :meth:`cipherdir.api.Cipherdir.commit`.
"""
