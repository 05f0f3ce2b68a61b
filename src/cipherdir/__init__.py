"""Helps manage notes that are kept encrypted in a directory of files.

If you installed via ``pip``, run ``cipherdir -h`` to get help.
Or, run ``python3 -m cipherdir -h``.

To use the Python API, look at :class:`cipherdir.api.Cipherdir`
"""
