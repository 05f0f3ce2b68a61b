"""Handles reading and writing the files that make up a collection of notes.

:class:`cipherdir.fs.base.Filesystem` defines an API.
:class:`cipherdir.fs.direct.DirectFilesystem` implements it on the local disk.
"""
