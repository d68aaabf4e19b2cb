"""Secrets Vault - A passphrase-protected, file-based store for nested secrets.
Uses PBKDF2-SHA512 key stretching and AES-256-CBC + HMAC-SHA512 via cryptography.
"""

__version__ = "1.0.0"
