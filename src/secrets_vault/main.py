#!/usr/bin/env python3
"""Secrets Vault CLI - Command line access to an encrypted secrets file.

Examples:
    secrets write bitso/prod '{key: abc, secret: def}'
    secrets read bitso/prod/key
    secrets inspect --file other-secrets.json
    secrets with-env '{BITSO_KEY: bitso/prod/key}' -- ./my-script.py
"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .codec import dump_tree, parse_mapping, parse_path, parse_value
from .config import Config
from .constants import MAX_PASSPHRASE_ATTEMPTS
from .editor import edit_tree
from .env_inject import run_with_env
from .errors import AuthenticationError, SecretsError
from .paths import assoc_in, mask_leaves, merge_in
from .prompt import read_new_password, read_password
from .session import SecretsContext
from .store import SecretsStore


def get_context(args) -> SecretsContext:
    """Build the store and session context for one invocation."""
    config = Config.from_env().with_overrides(
        path=Path(args.file).expanduser() if getattr(args, "file", None) else None,
        audit_log=Path(args.audit_log).expanduser() if getattr(args, "audit_log", None) else None,
    )
    return SecretsContext(SecretsStore(config=config, prompt=read_password))


def with_retries(ctx: SecretsContext, action):
    """Run `action`, re-prompting on a wrong passphrase.

    With a passphrase override there is nothing to re-prompt for, so the
    first failure is final.
    """
    attempts = 1 if ctx.passphrase is not None else MAX_PASSPHRASE_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            return action()
        except AuthenticationError:
            if attempt == attempts:
                raise
            print("Passphrase incorrect, try again.", file=sys.stderr)


def confirm(prompt: str) -> bool:
    return input(prompt).strip().lower() == "y"


def report_write(ctx: SecretsContext, written: int) -> None:
    print(f"Wrote {written} bytes to {ctx.store.resolve_path()}.")


def format_value(value) -> str:
    if isinstance(value, dict):
        return dump_tree(value).rstrip("\n")
    if isinstance(value, str):
        return value
    return dump_tree(value).rstrip("\n").removesuffix("\n...")


def cmd_inspect(args):
    """Show the tree with every secret value replaced by '***'."""
    ctx = get_context(args)

    def show():
        with ctx.unlock():
            print(dump_tree(mask_leaves(ctx.secrets())), end="")

    with_retries(ctx, show)


def cmd_read(args):
    """Print the secret (or branch) at a path."""
    ctx = get_context(args)
    path = parse_path(args.path)

    def lookup():
        with ctx.unlock():
            return ctx.secrets(*path)

    value = with_retries(ctx, lookup)
    if value is None:
        print(f"Entry not found: {args.path}", file=sys.stderr)
        sys.exit(1)
    print(format_value(value))


def cmd_write(args):
    """Store a value (parsed as YAML) at a path."""
    ctx = get_context(args)
    path = parse_path(args.path)
    value = parse_value(args.value)

    written = with_retries(ctx, lambda: ctx.update(assoc_in, path, value))
    report_write(ctx, written)


def cmd_merge(args):
    """Merge a YAML mapping into the branch at a path."""
    ctx = get_context(args)
    path = parse_path(args.path)
    mapping = parse_mapping(args.value)

    written = with_retries(ctx, lambda: ctx.update(merge_in, path, mapping))
    report_write(ctx, written)


def cmd_delete(args):
    """Delete the secret at a path, pruning branches left empty."""
    ctx = get_context(args)
    path = parse_path(args.path)

    written = with_retries(ctx, lambda: ctx.delete(path))
    report_write(ctx, written)


def cmd_edit(args):
    """Edit the decrypted secrets in an external editor."""
    ctx = get_context(args)

    def edit():
        with ctx.unlock() as unlocked:
            passphrase = unlocked.passphrase
            if passphrase is None:
                passphrase = ctx.passphrase
            if passphrase is None or (
                sys.stdin.isatty() and confirm("Encrypt with a new password? [y/N] ")
            ):
                passphrase = read_new_password(f"Set password for {unlocked.path}: ")

            tree = edit_tree(unlocked.tree, args.editor)
            return ctx.store.write(tree, passphrase)

    report_write(ctx, with_retries(ctx, edit))


def cmd_passwd(args):
    """Re-encrypt the whole secrets file under a new passphrase."""
    ctx = get_context(args)

    def rotate():
        with ctx.unlock() as unlocked:
            passphrase = read_new_password(f"New password for {unlocked.path}: ")
            return ctx.reencrypt(passphrase)

    report_write(ctx, with_retries(ctx, rotate))


def cmd_with_env(args):
    """Run a command with secrets exported as environment variables."""
    ctx = get_context(args)
    mapping = parse_mapping(args.mapping)

    cmd = args.cmd
    if cmd and cmd[0] == '--':
        cmd = cmd[1:]

    def unlock_tree():
        with ctx.unlock():
            return ctx.secrets()

    tree = with_retries(ctx, unlock_tree)
    sys.exit(run_with_env(tree, mapping, cmd))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='secrets',
        description="Secrets Vault - passphrase-encrypted secrets file"
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument('--file', help='Path to secrets file (default: ./.secrets.json or ~/.secrets.json)')
    parser.add_argument('--audit-log', dest='audit_log', help='Append an access record to this file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    # Lets --file also follow the subcommand without clobbering the global value
    file_option = argparse.ArgumentParser(add_help=False)
    file_option.add_argument('--file', default=argparse.SUPPRESS, help='Path to secrets file')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    subparsers.add_parser('inspect', parents=[file_option], help="Show secrets with values masked as '***'")

    read_parser = subparsers.add_parser('read', parents=[file_option], help='Print the secret at a path')
    read_parser.add_argument('path', help='Secret path, e.g. bitso/prod/key or "[bitso, prod, key]"')

    write_parser = subparsers.add_parser('write', parents=[file_option], help='Store a value at a path')
    write_parser.add_argument('path', help='Secret path')
    write_parser.add_argument('value', help='Value, parsed as YAML')

    merge_parser = subparsers.add_parser('merge', parents=[file_option], help='Merge a mapping into a branch')
    merge_parser.add_argument('path', help='Branch path')
    merge_parser.add_argument('value', help='YAML/JSON mapping')

    delete_parser = subparsers.add_parser('delete', parents=[file_option], help='Delete the secret at a path')
    delete_parser.add_argument('path', help='Secret path')

    edit_parser = subparsers.add_parser('edit', parents=[file_option], help='Edit secrets in $EDITOR')
    edit_parser.add_argument('--editor', help='Editor command (default: $VISUAL, $EDITOR or vi)')

    subparsers.add_parser('passwd', parents=[file_option], help='Re-encrypt with a new passphrase')

    env_parser = subparsers.add_parser(
        'with-env', parents=[file_option], help='Run a command with secrets in its environment'
    )
    env_parser.add_argument('mapping', help='YAML/JSON map of VAR_NAME -> secret path')
    env_parser.add_argument('cmd', nargs=argparse.REMAINDER, help='Command to execute (use -- to separate)')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    commands = {
        'inspect': cmd_inspect,
        'read': cmd_read,
        'write': cmd_write,
        'merge': cmd_merge,
        'delete': cmd_delete,
        'edit': cmd_edit,
        'passwd': cmd_passwd,
        'with-env': cmd_with_env,
    }

    try:
        commands[args.command](args)
    except (SecretsError, OSError, EOFError) as e:
        print(f"Error executing {args.command}: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
