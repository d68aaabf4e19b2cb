#!/usr/bin/env python3
"""Format constants for the on-disk secrets envelope.

Changing any of these breaks decryption of existing files.
"""

import base64

# File resolution
DEFAULT_FILENAME = ".secrets.json"

# Key stretching
KDF_ITERATIONS = 100_000  # target O(100ms) on commodity hardware
KEY_SIZE = 64             # 32 bytes MAC key + 32 bytes AES-256 key
SALT_SIZE = 16

# Fixed salt for envelopes written before per-file salts existed. Read-only.
LEGACY_SALT = base64.b64decode("j3gT0zoPJos=")

# Envelope cipher (AES-256-CBC + HMAC-SHA512, tag truncated to 32 bytes)
IV_SIZE = 16
TAG_SIZE = 32
BLOCK_SIZE_BITS = 128

# Envelope record fields
FIELD_DATA = "data"
FIELD_IV = "iv"
FIELD_SALT = "salt"
FIELD_ITERATIONS = "iterations"

# Envelope layouts
FORMAT_LEGACY = 1  # {data, iv}
FORMAT_SALTED = 2  # {data, iv, salt[, iterations]}

# Files
FILE_MODE = 0o600

# CLI
MAX_PASSPHRASE_ATTEMPTS = 3
MASK = "***"
