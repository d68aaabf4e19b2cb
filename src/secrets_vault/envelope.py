#!/usr/bin/env python3
"""Envelope - The encrypted record persisted to the secrets file.

On disk it is a single JSON object with base64 text fields:

    {"data": "<ciphertext||tag>", "iv": "<16 bytes>", "salt": "<16 bytes>"}

A missing "salt" marks a legacy envelope, keyed with LEGACY_SALT. Legacy files
may also hold the record as an EDN map, {:data "..." :iv "..."}.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .constants import (
    FIELD_DATA,
    FIELD_ITERATIONS,
    FIELD_IV,
    FIELD_SALT,
    FORMAT_LEGACY,
    FORMAT_SALTED,
    IV_SIZE,
    KDF_ITERATIONS,
    LEGACY_SALT,
    SALT_SIZE,
)
from .codec import parse_edn
from .errors import MalformedInputError


def bytes_to_b64(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def b64_to_bytes(s: str, field: str) -> bytes:
    try:
        return base64.b64decode(s.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise MalformedInputError(f"Envelope field '{field}' is not valid base64") from e


@dataclass(frozen=True)
class Envelope:
    """Ciphertext plus the parameters needed to decrypt it."""

    ciphertext: bytes
    iv: bytes
    salt: Optional[bytes] = None
    iterations: int = KDF_ITERATIONS

    @property
    def is_legacy(self) -> bool:
        return self.salt is None

    @property
    def format_version(self) -> int:
        return FORMAT_LEGACY if self.is_legacy else FORMAT_SALTED

    @property
    def kdf_salt(self) -> bytes:
        """Salt to stretch the passphrase with."""
        return LEGACY_SALT if self.salt is None else self.salt

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            FIELD_DATA: bytes_to_b64(self.ciphertext),
            FIELD_IV: bytes_to_b64(self.iv),
        }
        if self.salt is not None:
            record[FIELD_SALT] = bytes_to_b64(self.salt)
        if self.iterations != KDF_ITERATIONS:
            record[FIELD_ITERATIONS] = self.iterations
        return record

    def to_bytes(self) -> bytes:
        return (json.dumps(self.to_record()) + "\n").encode("utf-8")

    @classmethod
    def from_record(cls, record: Any) -> "Envelope":
        """Validate and decode a parsed on-disk record.

        Raises:
            MalformedInputError: If required fields are missing or mistyped

        """
        if not isinstance(record, dict):
            raise MalformedInputError("Envelope must be a mapping")

        for field in (FIELD_DATA, FIELD_IV):
            if not isinstance(record.get(field), str):
                raise MalformedInputError(f"Envelope field '{field}' is missing")

        iv = b64_to_bytes(record[FIELD_IV], FIELD_IV)
        if len(iv) != IV_SIZE:
            raise MalformedInputError(
                f"Envelope IV must be {IV_SIZE} bytes, got {len(iv)}"
            )

        salt = None
        if record.get(FIELD_SALT) is not None:
            if not isinstance(record[FIELD_SALT], str):
                raise MalformedInputError(f"Envelope field '{FIELD_SALT}' is not a string")
            salt = b64_to_bytes(record[FIELD_SALT], FIELD_SALT)
            if len(salt) != SALT_SIZE:
                raise MalformedInputError(
                    f"Envelope salt must be {SALT_SIZE} bytes, got {len(salt)}"
                )

        iterations = record.get(FIELD_ITERATIONS, KDF_ITERATIONS)
        # bool is an int subclass; reject it explicitly
        if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations < 1:
            raise MalformedInputError(f"Envelope field '{FIELD_ITERATIONS}' is invalid")
        if salt is None and iterations != KDF_ITERATIONS:
            raise MalformedInputError("Legacy envelopes cannot carry an iteration count")

        return cls(
            ciphertext=b64_to_bytes(record[FIELD_DATA], FIELD_DATA),
            iv=iv,
            salt=salt,
            iterations=iterations,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Envelope":
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedInputError(f"Secrets file is not a valid envelope: {e}") from e

        try:
            record = json.loads(text)
        except json.JSONDecodeError as e:
            if not text.lstrip().startswith("{"):
                raise MalformedInputError(f"Secrets file is not a valid envelope: {e}") from e
            record = parse_edn(text)
        return cls.from_record(record)
