#!/usr/bin/env python3
"""Runtime configuration, read from the environment.

    SECRETS_FILE            explicit secrets file (beats ./ and ~/ defaults)
    SECRETS_PASSWORD        passphrase override for automation/testing
    SECRETS_KDF_ITERATIONS  PBKDF2 iterations for newly written envelopes
    SECRETS_AUDIT_LOG       append access records to this file

Security note: SECRETS_PASSWORD may be visible in process listings. Only use
it in isolated environments.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from .constants import KDF_ITERATIONS
from .errors import MalformedInputError


@dataclass(frozen=True)
class Config:
    """Settings shared by the store, session and CLI."""

    path: Optional[Path] = None
    passphrase: Optional[str] = None
    kdf_iterations: int = KDF_ITERATIONS
    audit_log: Optional[Path] = None

    def __post_init__(self):
        if self.kdf_iterations < 1:
            raise MalformedInputError(
                f"KDF iterations must be positive, got {self.kdf_iterations}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Build a Config from environment variables.

        Empty variables are treated as unset.
        """
        env = os.environ if environ is None else environ

        path = env.get("SECRETS_FILE") or None
        audit_log = env.get("SECRETS_AUDIT_LOG") or None
        raw_iterations = env.get("SECRETS_KDF_ITERATIONS") or None

        try:
            iterations = int(raw_iterations) if raw_iterations else KDF_ITERATIONS
        except ValueError:
            raise MalformedInputError(
                f"SECRETS_KDF_ITERATIONS must be an integer, got {raw_iterations!r}"
            ) from None

        return cls(
            path=Path(path).expanduser() if path else None,
            passphrase=env.get("SECRETS_PASSWORD") or None,
            kdf_iterations=iterations,
            audit_log=Path(audit_log).expanduser() if audit_log else None,
        )

    def with_overrides(self, **overrides) -> "Config":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)
