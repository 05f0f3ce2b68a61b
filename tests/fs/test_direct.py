import errno
import os
from pathlib import Path
import pytest
from cipherdir.fs.base import FilesystemError
from cipherdir.fs.direct import DirectFilesystem


def test_read(fs):
    fs.create_file('/notes/todo.enc', contents='{"iv":"00"}')
    assert DirectFilesystem().read('/notes/todo.enc') == b'{"iv":"00"}'


def test_read_missing(fs):
    with pytest.raises(FilesystemError) as excinfo:
        DirectFilesystem().read('/notes/missing.enc')
    assert excinfo.value.operation == 'read'
    assert excinfo.value.path == '/notes/missing.enc'
    assert excinfo.value.errno == errno.ENOENT
    assert str(excinfo.value).startswith('Could not read /notes/missing.enc: ')
    assert isinstance(excinfo.value, OSError)


def test_write_atomic_creates_file_and_parents(fs):
    DirectFilesystem().write_atomic('/notes/sub/todo.enc', b'data')
    assert Path('/notes/sub/todo.enc').read_bytes() == b'data'
    assert os.listdir('/notes/sub') == ['todo.enc']


def test_write_atomic_replaces_file(fs):
    fs.create_file('/notes/todo.enc', contents='old')
    os.chmod('/notes/todo.enc', 0o640)
    DirectFilesystem().write_atomic('/notes/todo.enc', b'new')
    assert Path('/notes/todo.enc').read_bytes() == b'new'
    assert os.stat('/notes/todo.enc').st_mode & 0o777 == 0o640
    assert os.listdir('/notes') == ['todo.enc']


def test_write_atomic_mode(fs):
    DirectFilesystem().write_atomic('/staging/todo.md', b'plain', mode=0o600)
    assert os.stat('/staging/todo.md').st_mode & 0o777 == 0o600


def test_write_atomic_failure_cleans_up(fs):
    fs.create_dir('/notes/todo.enc')
    with pytest.raises(FilesystemError) as excinfo:
        DirectFilesystem().write_atomic('/notes/todo.enc', b'data')
    assert excinfo.value.operation == 'write'
    assert os.listdir('/notes') == ['todo.enc']
    assert os.path.isdir('/notes/todo.enc')


def test_remove(fs):
    fs.create_file('/notes/todo.enc')
    DirectFilesystem().remove('/notes/todo.enc')
    assert not os.path.exists('/notes/todo.enc')
    with pytest.raises(FilesystemError) as excinfo:
        DirectFilesystem().remove('/notes/todo.enc')
    assert excinfo.value.operation == 'remove'


def test_exists(fs):
    fs.create_file('/notes/todo.enc')
    fs.create_dir('/notes/sub')
    filesystem = DirectFilesystem()
    assert filesystem.exists('/notes/todo.enc')
    assert not filesystem.exists('/notes/sub')
    assert not filesystem.exists('/notes/missing.enc')
