#!/usr/bin/env python3
"""Session Context - Reentrant unlock scope over a secrets store.

The first (outermost) `unlock()` decrypts the file and caches the tree and
passphrase. Nested `unlock()` scopes reuse the cache, so the passphrase is
asked for at most once. The cache is dropped when the outermost scope exits.

Passphrase overrides (`with_passphrase`) are a separate stack: inside one, no
operation prompts. They work with or without an open unlock scope.

    ctx = SecretsContext(SecretsStore())
    with ctx.unlock():
        print(ctx.secrets("bitso", "prod", "key"))
        with ctx.unlock():  # no prompt
            print(list(ctx.secrets()))
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from .errors import NotUnlockedError
from .paths import get_in
from .store import SecretsStore, Unlocked


class SecretsContext:
    """Request-scoped handle holding the unlocked state for one store."""

    def __init__(self, store: SecretsStore):
        self.store = store
        self._unlocked: Optional[Unlocked] = None
        self._depth = 0
        self._passphrases: List[str] = []
        if store.config.passphrase is not None:
            self._passphrases.append(store.config.passphrase)

    # ------------------------------------------------------------------
    # Passphrase override
    # ------------------------------------------------------------------

    @property
    def passphrase(self) -> Optional[str]:
        """The innermost passphrase override, if any."""
        return self._passphrases[-1] if self._passphrases else None

    @contextmanager
    def with_passphrase(self, passphrase: str) -> Iterator[None]:
        """Use `passphrase` instead of prompting for the duration of the block."""
        self._passphrases.append(passphrase)
        try:
            yield
        finally:
            self._passphrases.pop()

    # ------------------------------------------------------------------
    # Unlock scope
    # ------------------------------------------------------------------

    @property
    def is_unlocked(self) -> bool:
        return self._unlocked is not None

    @property
    def depth(self) -> int:
        return self._depth

    @contextmanager
    def unlock(self) -> Iterator[Unlocked]:
        """Make the decrypted tree available via `secrets()`.

        Reentrant: only the outermost entry reads (and maybe prompts).
        """
        if self._depth == 0:
            # A failed read leaves the context locked
            self._unlocked = self.store.read(self.passphrase)
        self._depth += 1
        try:
            yield self._unlocked
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._unlocked = None

    def secrets(self, *path) -> Any:
        """Return the secret at `path`, or the whole tree with no path.

        Raises:
            NotUnlockedError: If called outside `unlock()`

        """
        if self._unlocked is None:
            raise NotUnlockedError()
        return get_in(self._unlocked.tree, path)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _write_passphrase(self) -> Optional[str]:
        if self.passphrase is not None:
            return self.passphrase
        if self._unlocked is not None:
            return self._unlocked.passphrase
        return None

    def _refresh(self, unlocked: Unlocked) -> None:
        if self._unlocked is not None:
            self._unlocked = unlocked

    def update(self, fn: Callable[..., Dict[Any, Any]], *args) -> int:
        """Apply `fn(tree, *args)` and persist the result.

        Inside an unlock scope the cached passphrase is reused and the cached
        tree is replaced by the new one.

        Returns:
            Number of bytes written

        """
        unlocked, written = self.store.update(fn, *args, passphrase=self._write_passphrase())
        self._refresh(unlocked)
        return written

    def delete(self, path: Sequence) -> int:
        """Delete the secret at `path`, pruning emptied branches."""
        unlocked, written = self.store.delete(path, passphrase=self._write_passphrase())
        self._refresh(unlocked)
        return written

    def reencrypt(self, new_passphrase: str) -> int:
        """Re-encrypt everything under `new_passphrase`."""
        unlocked, written = self.store.reencrypt(new_passphrase, passphrase=self._write_passphrase())
        self._refresh(unlocked)
        return written
