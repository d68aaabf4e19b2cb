#!/usr/bin/env python3
"""Key stretching and authenticated encryption for secrets envelopes.

- KDF: PBKDF2-HMAC-SHA512, 100,000 iterations by default -> 64 byte key
- Cipher: AES-256-CBC + HMAC-SHA512 (encrypt-then-MAC, A256CBC-HS512 layout)

Key layout: key[:32] authenticates, key[32:] encrypts. The stored ciphertext
is the CBC output followed by the first 32 bytes of the HMAC.

Security note: never log keys, passphrases or plaintext.
"""

import struct
from typing import Optional, Tuple

import nacl.utils
from cryptography.hazmat.primitives import constant_time, hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .constants import BLOCK_SIZE_BITS, IV_SIZE, KDF_ITERATIONS, KEY_SIZE, SALT_SIZE, TAG_SIZE
from .envelope import Envelope
from .errors import AuthenticationError


def derive_key(passphrase: str, salt: bytes, length: int = KEY_SIZE,
               iterations: int = KDF_ITERATIONS) -> bytes:
    """Stretch a passphrase into `length` key bytes with PBKDF2-SHA512."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def random_salt() -> bytes:
    return nacl.utils.random(SALT_SIZE)


def _split_key(key: bytes) -> Tuple[bytes, bytes]:
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
    half = KEY_SIZE // 2
    return key[:half], key[half:]


def _auth_tag(mac_key: bytes, iv: bytes, ciphertext: bytes,
              aad: Optional[bytes] = None) -> bytes:
    h = hmac.HMAC(mac_key, hashes.SHA512())
    if aad:
        h.update(aad)
    h.update(iv)
    h.update(ciphertext)
    if aad:
        h.update(struct.pack(">Q", len(aad) * 8))
    return h.finalize()[:TAG_SIZE]


def encrypt(plaintext: bytes, key: bytes) -> Tuple[bytes, bytes]:
    """Encrypt and authenticate plaintext under a fresh random IV.

    Returns:
        (ciphertext_with_tag, iv)

    """
    mac_key, enc_key = _split_key(key)
    iv = nacl.utils.random(IV_SIZE)

    padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
    padded = padder.update(plaintext) + padder.finalize()

    encryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return ciphertext + _auth_tag(mac_key, iv, ciphertext), iv


def decrypt(ciphertext: bytes, iv: bytes, key: bytes) -> bytes:
    """Verify the tag, then decrypt.

    Raises:
        AuthenticationError: If the tag does not verify. A wrong passphrase
            and a corrupted file are reported identically.

    """
    mac_key, enc_key = _split_key(key)
    block = BLOCK_SIZE_BITS // 8

    body, tag = ciphertext[:-TAG_SIZE], ciphertext[-TAG_SIZE:]
    if len(iv) != IV_SIZE or len(body) < block or len(body) % block:
        raise AuthenticationError()

    if not constant_time.bytes_eq(_auth_tag(mac_key, iv, body), tag):
        raise AuthenticationError()

    decryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(body) + decryptor.finalize()

    unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError:
        raise AuthenticationError() from None


def seal(plaintext: bytes, passphrase: str, iterations: int = KDF_ITERATIONS) -> Envelope:
    """Encrypt bytes under a passphrase with a fresh salt and IV."""
    salt = random_salt()
    key = derive_key(passphrase, salt, iterations=iterations)
    ciphertext, iv = encrypt(plaintext, key)
    return Envelope(ciphertext=ciphertext, iv=iv, salt=salt, iterations=iterations)


def unseal(envelope: Envelope, passphrase: str) -> bytes:
    """Decrypt an envelope, falling back to the legacy salt when it has none."""
    key = derive_key(passphrase, envelope.kdf_salt, iterations=envelope.iterations)
    return decrypt(envelope.ciphertext, envelope.iv, key)


def encrypt_text(clear_text: str, passphrase: str,
                 iterations: int = KDF_ITERATIONS) -> Envelope:
    """Encrypt a string so it can be shared and opened with `decrypt_text`."""
    return seal(clear_text.encode("utf-8"), passphrase, iterations)


def decrypt_text(envelope: Envelope, passphrase: str) -> str:
    return unseal(envelope, passphrase).decode("utf-8")
