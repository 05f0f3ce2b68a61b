import logging
import os
from pathlib import Path
import threading
from cipherdir.watch import CallbackHandle, PollingWatcher, polling_watcher_factory


def test_check_detects_saves(fs):
    fs.create_file('/staging/todo.md', contents='one')
    calls = []
    watcher = PollingWatcher('/staging/todo.md', lambda: calls.append('saved'), interval=60)
    assert not watcher.check()
    Path('/staging/todo.md').write_text('one two')
    assert watcher.check()
    assert calls == ['saved']
    assert not watcher.check()
    assert calls == ['saved']


def test_check_after_dispose(fs):
    fs.create_file('/staging/todo.md', contents='one')
    calls = []
    watcher = PollingWatcher('/staging/todo.md', lambda: calls.append('saved'))
    watcher.dispose()
    watcher.dispose()
    assert watcher.disposed
    Path('/staging/todo.md').write_text('one two')
    assert not watcher.check()
    assert calls == []


def test_check_missing_file(fs):
    calls = []
    watcher = PollingWatcher('/staging/gone.md', lambda: calls.append('saved'))
    assert not watcher.check()
    assert calls == []


def test_callback_errors_are_logged(fs, caplog):
    fs.create_file('/staging/todo.md', contents='one')

    def fail():
        raise RuntimeError('boom')

    watcher = PollingWatcher('/staging/todo.md', fail)
    Path('/staging/todo.md').write_text('one two')
    with caplog.at_level(logging.ERROR):
        assert watcher.check()
    assert 'Handling save of /staging/todo.md failed' in caplog.text


def test_callback_handle_disposes_once():
    calls = []
    handle = CallbackHandle(lambda: calls.append('disposed'))
    assert not handle.disposed
    handle.dispose()
    handle.dispose()
    assert handle.disposed
    assert calls == ['disposed']


def test_polling_watcher_factory(tmp_path):
    path = tmp_path / 'todo.md'
    path.write_text('one')
    saved = threading.Event()
    handle = polling_watcher_factory(0.01)(str(path), saved.set)
    try:
        path.write_text('one two three')
        assert saved.wait(5)
    finally:
        handle.dispose()
    assert handle.disposed


def test_unreadable_file_is_retried(tmp_path, mocker, caplog):
    path = tmp_path / 'todo.md'
    path.write_text('one')
    calls = []
    watcher = PollingWatcher(str(path), lambda: calls.append('saved'))
    real_stat = os.stat
    denied = [True]

    def stat(target, *args, **kwargs):
        if denied[0] and str(target) == str(path):
            raise PermissionError(13, 'Permission denied')
        return real_stat(target, *args, **kwargs)

    mocker.patch('cipherdir.watch.os.stat', side_effect=stat)
    path.write_text('one two')
    with caplog.at_level(logging.WARNING):
        assert not watcher.check()
        assert not watcher.check()
    assert caplog.text.count('Cannot check') == 1
    assert calls == []

    denied[0] = False
    assert watcher.check()
    assert calls == ['saved']
