import subprocess
import pytest
from cipherdir.vcs.git import GitVersionControl
from cipherdir.vcs.base import VersionControlError


def fake_git(mocker, responses=None):
    """Patches subprocess.run so git commands return canned results.

    responses maps a tuple of leading git arguments to (returncode, stdout, stderr), or to a list of them for
    successive calls. Unlisted commands succeed with no output.
    """
    responses = dict(responses or {})
    calls = []

    def run(cmd, cwd=None, **kwargs):
        args = tuple(cmd[1:])
        calls.append(args)
        for prefix in sorted(responses, key=len, reverse=True):
            if args[:len(prefix)] == prefix:
                response = responses[prefix]
                if isinstance(response, list):
                    response = response.pop(0) if len(response) > 1 else response[0]
                code, out, err = response
                return subprocess.CompletedProcess(cmd, code, out, err)
        return subprocess.CompletedProcess(cmd, 0, '', '')

    mocker.patch('cipherdir.vcs.git.subprocess.run', side_effect=run)
    return calls


def test_commit_nothing_to_commit(mocker):
    calls = fake_git(mocker)
    assert not GitVersionControl().commit('/notes', 'Updated file todo.md')
    assert calls == [('add', '--all', '.'), ('status', '--porcelain')]


def test_commit_without_remote(mocker):
    calls = fake_git(mocker, {('status',): (0, ' M todo.enc\n', '')})
    assert GitVersionControl().commit('/notes', 'Updated file todo.md')
    assert ('commit', '-m', 'Updated file todo.md') in calls
    assert not any(c[0] == 'push' for c in calls)


def test_commit_pushes_to_remote(mocker):
    calls = fake_git(mocker, {
        ('status',): (0, ' M todo.enc\n', ''),
        ('rev-parse', '--abbrev-ref'): (0, 'main\n', ''),
    })
    assert GitVersionControl(remote='git@example.com:notes.git').commit('/notes', 'msg')
    assert calls[-1] == ('push', 'origin', 'main')


def test_push_retries_with_upstream(mocker):
    calls = fake_git(mocker, {
        ('rev-parse', '--abbrev-ref'): (0, 'main\n', ''),
        ('push', 'origin'): (1, '', 'fatal: The current branch main has no upstream branch.'),
    })
    GitVersionControl(remote='git@example.com:notes.git').push('/notes')
    assert calls[-2:] == [('push', 'origin', 'main'), ('push', '--set-upstream', 'origin', 'main')]


@pytest.mark.parametrize('stderr,message', [
    ('! [rejected] main -> main (fetch first)', 'Push rejected.'),
    ('fatal: Authentication failed for', 'Git authentication failed.'),
    ('fatal: Could not read from remote repository.', 'Remote repository not accessible.'),
    ('fatal: something odd', 'Push failed.'),
])
def test_push_errors(mocker, stderr, message):
    fake_git(mocker, {
        ('rev-parse', '--abbrev-ref'): (0, 'main\n', ''),
        ('push',): (1, '', stderr),
    })
    with pytest.raises(VersionControlError) as excinfo:
        GitVersionControl(remote='git@example.com:notes.git').push('/notes')
    assert str(excinfo.value).startswith(message)


def test_push_without_remote(mocker):
    fake_git(mocker)
    with pytest.raises(VersionControlError, match='No git remote'):
        GitVersionControl().push('/notes')


def test_init_new_repository(mocker):
    calls = fake_git(mocker, {
        ('rev-parse', '--is-inside-work-tree'): (128, '', 'fatal: not a git repository'),
        ('config', 'user.name'): [(1, '', ''), (0, '', '')],
    })
    GitVersionControl().init('/notes', remote='git@example.com:notes.git')
    assert ('init',) in calls
    assert ('remote', 'add', 'origin', 'git@example.com:notes.git') in calls
    assert ('config', 'user.name', 'cipherdir') in calls
    assert ('config', 'user.email', 'cipherdir@localhost') in calls


def test_init_existing_repository(mocker):
    calls = fake_git(mocker, {
        ('remote',): (0, 'origin\n', ''),
        ('config', 'user.name'): (0, 'Alex\n', ''),
    })
    GitVersionControl(remote='https://example.com/notes.git').init('/notes')
    assert ('init',) not in calls
    assert ('remote', 'set-url', 'origin', 'https://example.com/notes.git') in calls
    assert not any(c[:2] == ('config', 'user.email') for c in calls)


def test_git_failure(mocker):
    fake_git(mocker, {('add',): (128, '', 'fatal: not a git repository')})
    with pytest.raises(VersionControlError, match='git add failed: fatal: not a git repository'):
        GitVersionControl().commit('/notes', 'msg')


def test_git_not_installed(mocker):
    mocker.patch('cipherdir.vcs.git.subprocess.run', side_effect=FileNotFoundError(2, 'No such file'))
    with pytest.raises(VersionControlError, match='Could not run git'):
        GitVersionControl().commit('/notes', 'msg')


def test_pull(mocker):
    calls = fake_git(mocker, {
        ('rev-parse', '--abbrev-ref'): (0, 'main\n', ''),
        ('ls-remote',): (0, 'abc123\trefs/heads/main\n', ''),
    })
    GitVersionControl(remote='git@example.com:notes.git').pull('/notes')
    assert calls[-1] == ('pull', '--no-edit', 'origin', 'main')


def test_pull_empty_remote(mocker):
    calls = fake_git(mocker, {('rev-parse', '--abbrev-ref'): (0, 'main\n', '')})
    GitVersionControl(remote='git@example.com:notes.git').pull('/notes')
    assert calls[-1] == ('ls-remote', '--heads', 'origin', 'main')


def test_pull_errors(mocker):
    fake_git(mocker)
    with pytest.raises(VersionControlError, match='No git remote'):
        GitVersionControl().pull('/notes')
    fake_git(mocker, {
        ('rev-parse', '--abbrev-ref'): (0, 'main\n', ''),
        ('ls-remote',): (0, 'abc123\trefs/heads/main\n', ''),
        ('pull',): (1, '', 'CONFLICT (content): Merge conflict in todo.enc'),
    })
    with pytest.raises(VersionControlError, match='Failed to pull'):
        GitVersionControl(remote='git@example.com:notes.git').pull('/notes')


def test_commit_without_push(mocker):
    calls = fake_git(mocker, {('status',): (0, ' M todo.enc\n', '')})
    assert GitVersionControl(remote='git@example.com:notes.git').commit('/notes', 'msg', push=False)
    assert calls[-1] == ('commit', '-m', 'msg')
