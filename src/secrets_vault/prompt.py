#!/usr/bin/env python3
"""Passphrase prompting.

Prefers a secure (no-echo) terminal prompt and falls back to reading a
plaintext line from stdin, with a warning, when there is no TTY.
"""

import getpass
import sys


def read_password(prompt: str = "Password: ") -> str:
    """Read a passphrase from the terminal, or from stdin as a fallback."""
    if sys.stdin.isatty():
        return getpass.getpass(prompt)

    print("[WARN] No secure console available, reading via plaintext.", file=sys.stderr)
    print(prompt, end="", file=sys.stderr, flush=True)
    line = sys.stdin.readline()
    if not line:
        raise EOFError("No passphrase on stdin")
    return line.rstrip("\r\n")


def read_new_password(prompt: str = "Set password: ", read=read_password) -> str:
    """Ask for a new passphrase twice until both entries match."""
    while True:
        password = read(prompt)
        confirm = read("Confirm password: ")
        if password == confirm:
            return password
        print("Passwords didn't match.", file=sys.stderr)
