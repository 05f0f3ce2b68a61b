"""Command-line interface for cipherdir."""


import argparse
from getpass import getpass
import json
import logging
import os
import os.path
import shlex
import subprocess
import sys
from typing import Optional
from terminaltables import AsciiTable
from cipherdir.api import Cipherdir, Error
from cipherdir.codec import DecryptionError
from cipherdir.fs.base import FilesystemError
from cipherdir.models import CloseReport
from cipherdir.staging import SessionNotFoundError
from cipherdir.vcs.base import VersionControlError

PASSWORD_ENV = 'CIPHERDIR_PASSWORD'


def _password(confirm: bool = False) -> str:
    password = os.environ.get(PASSWORD_ENV)
    if password:
        return password
    password = getpass('Encryption password: ')
    if confirm and not getpass('Repeat password: ') == password:
        raise Error('Passwords do not match')
    return password


def _note_path(nd: Cipherdir, name: str) -> str:
    if os.path.isfile(name) and name.endswith(nd.conf.encrypted_suffix):
        return os.path.abspath(name)
    path = nd.note_path(name)
    if not nd.fs.exists(path):
        raise Error(f'Note not found: {name}')
    return path


def _maybe_commit(args, nd: Cipherdir, action: str, name: str) -> None:
    if not args.commit:
        return
    message = args.message[0] if getattr(args, 'message', None) else nd.commit_message(action, name)
    if nd.commit(message):
        print(f'Committed: {message}')


def _print_report(report: Optional[CloseReport]) -> int:
    if not report:
        return 0
    if not report.persisted:
        print(f'Could not save the note. Your latest changes are still in {report.staging_path}', file=sys.stderr)
    for error in report.errors:
        print(str(error), file=sys.stderr)
    return 0 if report.ok else 1


def _init(args, nd: Cipherdir) -> int:
    os.makedirs(nd.conf.root_path, exist_ok=True)
    nd.init_vcs()
    print(f'Initialized {nd.conf.root_path}')
    return 0


def _ls(args, nd: Cipherdir) -> int:
    directory = os.path.join(nd.conf.root_path, args.directory) if args.directory else None
    entries = nd.ls(directory)
    if args.json:
        print(json.dumps([e.as_json() for e in entries]))
    elif args.table:
        data = [('Name', 'Type')] + [(e.label, 'folder' if e.is_directory else 'note') for e in entries]
        print(AsciiTable(data).table)
    else:
        for entry in entries:
            print(f'{entry.label}/' if entry.is_directory else entry.label)
    return 0


def _new(args, nd: Cipherdir) -> int:
    password = _password(confirm=True)
    parent = os.path.join(nd.conf.root_path, args.parent[0]) if args.parent else None
    path = nd.new(args.name[0], password, parent=parent, template=args.template[0] if args.template else None)
    print(f'Created {nd.display_name(path)}')
    _maybe_commit(args, nd, 'Created file', nd.display_name(path))
    if args.edit:
        return _edit_path(args, nd, path, password, commit=False)
    return 0


def _mkdir(args, nd: Cipherdir) -> int:
    path = nd.mkdir(args.name[0])
    print(f'Created {path}')
    _maybe_commit(args, nd, 'Created folder', os.path.basename(path))
    return 0


def _cat(args, nd: Cipherdir) -> int:
    path = _note_path(nd, args.note[0])
    sys.stdout.write(nd.read(path, _password()))
    return 0


def _run_editor(nd: Cipherdir, staging_path: str) -> None:
    cmd = shlex.split(nd.conf.editor) + [staging_path]
    try:
        subprocess.run(cmd, check=False)
    except FileNotFoundError as e:
        raise Error(f'Editor not found: {cmd[0]}. Set `editor` in your config file.') from e


def _edit_path(args, nd: Cipherdir, path: str, password: str, commit: bool = True) -> int:
    session = nd.open(path, password)
    try:
        _run_editor(nd, session.staging_path)
    finally:
        report = nd.close(path, password)
    status = _print_report(report)
    if status == 0 and commit:
        _maybe_commit(args, nd, 'Updated file', nd.display_name(path))
    return status


def _edit(args, nd: Cipherdir) -> int:
    path = _note_path(nd, args.note[0])
    return _edit_path(args, nd, path, _password())


def _rm(args, nd: Cipherdir) -> int:
    folder = os.path.join(nd.conf.root_path, args.note[0])
    if os.path.isdir(folder):
        nd.rmdir(folder)
        name = os.path.basename(os.path.normpath(folder))
        print(f'Deleted {name}/')
        _maybe_commit(args, nd, 'Deleted folder', name)
        return 0
    path = _note_path(nd, args.note[0])
    nd.delete(path)
    print(f'Deleted {nd.display_name(path)}')
    _maybe_commit(args, nd, 'Deleted', nd.display_name(path))
    return 0


def _sync(args, nd: Cipherdir) -> int:
    if nd.sync():
        print('Synced notes to remote repository.')
    else:
        print('Committed changes locally. No remote repository is configured, so nothing was pushed.')
    return 0


def argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser()
    parser.set_defaults(func=None)
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug information to stderr.')

    subs = parser.add_subparsers(title='Commands')

    def add_commit_args(p):
        p.add_argument('-c', '--commit', action='store_true',
                       help='Commit the change (and push it, if a remote is configured) afterwards.')
        p.add_argument('-m', '--message', nargs=1, help='Commit message. A default message is generated if omitted.')

    p_init = subs.add_parser(
        'init',
        help='Create the notes directory if needed and set up version control for it, as configured in '
             'conf.vcs_conf.')
    p_init.set_defaults(func=_init)

    p_ls = subs.add_parser('ls', help='List folders and notes.')
    p_ls.add_argument('directory', nargs='?', help='Folder to list, relative to the notes directory.')
    p_ls_formats = p_ls.add_mutually_exclusive_group()
    p_ls_formats.add_argument('-j', '--json', action='store_true', help='Output as JSON.')
    p_ls_formats.add_argument('-t', '--table', action='store_true', help='Format output as a table.')
    p_ls.set_defaults(func=_ls)

    p_new = subs.add_parser(
        'new',
        help='Create a new encrypted note. Its initial content is a heading with the note name, or the rendered '
             'Mako template if one is given. You will be asked for the password twice.')
    p_new.add_argument('name', nargs=1, help='Name of the note, without a file extension.')
    p_new.add_argument('-t', '--template', nargs=1,
                       help='Name or path of template. Names are looked up using conf.template_globs.')
    p_new.add_argument('-d', '--parent', nargs=1, help='Folder to create the note in, relative to the notes directory.')
    p_new.add_argument('-e', '--edit', action='store_true', help='Open the new note in your editor.')
    add_commit_args(p_new)
    p_new.set_defaults(func=_new)

    p_mkdir = subs.add_parser('mkdir', help='Create a folder in the notes directory.')
    p_mkdir.add_argument('name', nargs=1)
    add_commit_args(p_mkdir)
    p_mkdir.set_defaults(func=_mkdir)

    p_cat = subs.add_parser('cat', help='Decrypt a note and print it.')
    p_cat.add_argument('note', nargs=1, help='Name of the note (relative to the notes directory) or path to it.')
    p_cat.set_defaults(func=_cat)

    p_edit = subs.add_parser(
        'edit',
        help='Decrypt a note to a temporary file and open it in your editor. When the editor exits, the file is '
             'encrypted back into the note and deleted.')
    p_edit.add_argument('note', nargs=1, help='Name of the note (relative to the notes directory) or path to it.')
    add_commit_args(p_edit)
    p_edit.set_defaults(func=_edit)

    p_rm = subs.add_parser('rm', help='Delete a note, or a folder and everything in it.')
    p_rm.add_argument('note', nargs=1,
                      help='Name of the note or folder (relative to the notes directory) or path to it.')
    add_commit_args(p_rm)
    p_rm.set_defaults(func=_rm)

    p_sync = subs.add_parser('sync', help='Commit any pending changes, then pull from and push to the remote repository.')
    p_sync.set_defaults(func=_sync)

    return parser


def main(args=None) -> int:
    """Runs the tool and returns its exit code.

    args may be an array of string command-line arguments; if absent,
    the process's arguments are used.
    """
    parser = argparser()
    args = parser.parse_args(args)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')
    if not args.func:
        parser.print_help()
        return 1
    with Cipherdir.for_user() as nd:
        try:
            return args.func(args, nd)
        except (Error, DecryptionError, FilesystemError, FileNotFoundError, SessionNotFoundError,
                VersionControlError) as e:
            print(str(e), file=sys.stderr)
            return 1
