#!/usr/bin/env python3
"""Secrets Store - Read, write and update one encrypted secrets file.

The path used for the secrets file, in priority order, is:

- the one given explicitly (constructor argument, then SECRETS_FILE),
- the `.secrets.json` file in the working directory, or
- the `.secrets.json` file in the home directory.

Every write produces a brand-new envelope (fresh salt, fresh IV) and replaces
the old file wholesale via a temporary file and rename.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from .audit import ACTION_READ, ACTION_WRITE, RESULT_DENIED, RESULT_ERROR, RESULT_OK, AuditLogger
from .codec import deserialize_edn_tree, deserialize_tree, serialize_tree
from .config import Config
from .constants import DEFAULT_FILENAME, FILE_MODE, FORMAT_LEGACY
from .crypto import seal, unseal
from .envelope import Envelope
from .errors import AuthenticationError, MalformedInputError
from .paths import dissoc_in
from .prompt import read_password

logger = logging.getLogger("secrets_vault")


@dataclass
class Unlocked:
    """A decrypted secrets tree and the passphrase that opened it.

    `passphrase` is None when the file does not exist yet.
    """

    tree: Dict[Any, Any]
    passphrase: Optional[str]
    path: Path


def default_secrets_path() -> Path:
    """`.secrets.json` in the working directory if present, else in home."""
    local = Path(DEFAULT_FILENAME)
    if local.is_file():
        return local
    return Path.home() / DEFAULT_FILENAME


def set_permissions(path, mode=FILE_MODE):
    """Set file permissions."""
    os.chmod(path, mode)


def atomic_write(path: Path, data: bytes) -> None:
    """Write `data` to a temp file beside `path`, then rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        set_permissions(tmp)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class SecretsStore:
    """Encrypted secrets tree persisted in a single file."""

    def __init__(
        self,
        path=None,
        prompt: Callable[[str], str] = read_password,
        config: Optional[Config] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.config = config or Config()
        self.path = Path(path).expanduser() if path else None
        self.prompt = prompt

        if audit_logger is None and self.config.audit_log:
            audit_logger = AuditLogger(self.config.audit_log)
        self.audit_logger = audit_logger

    def _audit(self, result: str, action: str, path: Path, reason: Optional[str] = None) -> None:
        if self.audit_logger is not None:
            self.audit_logger.log_access(result, action, path, reason)

    def resolve_path(self) -> Path:
        """Location of the secrets file on disk."""
        return self.path or self.config.path or default_secrets_path()

    def read(self, passphrase: Optional[str] = None) -> Unlocked:
        """Decrypt the secrets file.

        Prompts for a passphrase unless one is given. A missing file reads as
        an empty tree with no passphrase.

        Raises:
            AuthenticationError: Wrong passphrase or corrupted file
            MalformedInputError: The file is not a valid envelope

        """
        path = self.resolve_path()
        if not path.is_file():
            logger.debug("No secrets file at %s, starting empty", path)
            return Unlocked(tree={}, passphrase=None, path=path)

        envelope = Envelope.from_bytes(path.read_bytes())
        logger.debug("Secrets file %s uses envelope format %d", path, envelope.format_version)

        if passphrase is None:
            passphrase = self.prompt(f"Password for {path}: ")

        try:
            plaintext = unseal(envelope, passphrase)
        except AuthenticationError:
            self._audit(RESULT_DENIED, ACTION_READ, path, "passphrase-incorrect")
            raise

        try:
            # Salt-less envelopes always hold EDN plaintext
            if envelope.format_version == FORMAT_LEGACY:
                tree = deserialize_edn_tree(plaintext)
            else:
                tree = deserialize_tree(plaintext)
        except MalformedInputError:
            self._audit(RESULT_ERROR, ACTION_READ, path, "unparseable")
            raise

        self._audit(RESULT_OK, ACTION_READ, path)
        logger.debug("Decrypted %s (%d top-level keys)", path, len(tree))
        return Unlocked(tree=tree, passphrase=passphrase, path=path)

    def write(self, tree: Dict[Any, Any], passphrase: Optional[str]) -> int:
        """Encrypt `tree` into a fresh envelope and replace the secrets file.

        Returns:
            Number of bytes written

        """
        if passphrase is None:
            raise ValueError("A passphrase is required to write secrets")

        path = self.resolve_path()
        envelope = seal(serialize_tree(tree), passphrase, self.config.kdf_iterations)
        data = envelope.to_bytes()

        try:
            atomic_write(path, data)
        except OSError as e:
            self._audit(RESULT_ERROR, ACTION_WRITE, path, type(e).__name__)
            raise

        self._audit(RESULT_OK, ACTION_WRITE, path)
        logger.debug("Wrote %d bytes to %s", len(data), path)
        return len(data)

    def update(self, fn: Callable[..., Dict[Any, Any]], *args,
               passphrase: Optional[str] = None) -> Tuple[Unlocked, int]:
        """Read, apply `fn(tree, *args)`, then write the result.

        The file is only touched once both the new tree and a passphrase are
        in memory. A brand-new file prompts for its passphrase after `fn` runs.

        Returns:
            (new Unlocked state, bytes written)

        """
        current = self.read(passphrase)
        tree = fn(current.tree, *args)
        if not isinstance(tree, dict):
            raise MalformedInputError(
                f"Update must produce a mapping, got {type(tree).__name__}"
            )

        new_passphrase = current.passphrase
        if new_passphrase is None:
            new_passphrase = passphrase
        if new_passphrase is None:
            new_passphrase = self.prompt("Password: ")

        written = self.write(tree, new_passphrase)
        return Unlocked(tree=tree, passphrase=new_passphrase, path=current.path), written

    def delete(self, path: Sequence, passphrase: Optional[str] = None) -> Tuple[Unlocked, int]:
        """Delete the secret at `path`, pruning emptied branches."""
        return self.update(dissoc_in, list(path), passphrase=passphrase)

    def reencrypt(self, new_passphrase: str,
                  passphrase: Optional[str] = None) -> Tuple[Unlocked, int]:
        """Re-encrypt the whole tree under a new passphrase."""
        current = self.read(passphrase)
        written = self.write(current.tree, new_passphrase)
        return Unlocked(tree=current.tree, passphrase=new_passphrase, path=current.path), written
