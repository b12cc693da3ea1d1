"""
Passphrase encryption for note text, compatible with ``frontend/notecrypt.js``.

The browser derives an AES-256-GCM key from the passphrase with PBKDF2-SHA256
over a fixed salt and stores ``base64(IV || ciphertext || tag)`` as the note
text. The server only ever sees that string. This module implements the same
recipe so stored notes can be produced or read outside the browser, e.g. from
the output of ``GET /api/lists/<list_id>/notes``.
"""
from __future__ import annotations

import argparse
import base64
import binascii
import os
import re
import sys
from typing import List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

# Must match notecrypt.js
SALT = b"notesapp-encryption-v1"
ITERATIONS = 100_000
KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16

_B64_RE = re.compile(r"[A-Za-z0-9+/]+={0,2}")


class DecryptionError(ValueError):
    pass


def derive_key(passphrase: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=SALT,
        iterations=ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt_with_key(text: str, key: bytes, iv: Optional[bytes] = None) -> str:
    if iv is None:
        iv = os.urandom(IV_LENGTH)
    if len(iv) != IV_LENGTH:
        raise ValueError(f"IV must be {IV_LENGTH} bytes")
    sealed = AESGCM(key).encrypt(iv, text.encode("utf-8"), None)
    return base64.b64encode(iv + sealed).decode("ascii")


def decrypt_with_key(blob: str, key: bytes) -> str:
    try:
        raw = base64.b64decode(blob.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Not valid base64") from e
    if len(raw) < IV_LENGTH + TAG_LENGTH:
        raise DecryptionError("Ciphertext too short")
    iv, sealed = raw[:IV_LENGTH], raw[IV_LENGTH:]
    try:
        plaintext = AESGCM(key).decrypt(iv, sealed, None)
    except InvalidTag as e:
        raise DecryptionError("Wrong passphrase or corrupt data") from e
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted data is not UTF-8") from e


def encrypt_text(text: str, passphrase: str) -> str:
    return encrypt_with_key(text, derive_key(passphrase))


def decrypt_text(blob: str, passphrase: str) -> str:
    return decrypt_with_key(blob, derive_key(passphrase))


def looks_encrypted(text: str) -> bool:
    """Guess whether a stored note is ciphertext rather than plaintext.

    True for strict, padded base64 whose decoded length leaves room for the IV,
    the GCM tag and at least one byte of payload. Plain notes that happen to be
    base64-shaped pass too; callers fall back to showing them as-is when
    decryption fails.
    """
    if not text or len(text) % 4 or not _B64_RE.fullmatch(text):
        return False
    padding = len(text) - len(text.rstrip("="))
    decoded_len = len(text) // 4 * 3 - padding
    return decoded_len > IV_LENGTH + TAG_LENGTH


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="notecrypt", description="Encrypt or decrypt note text.")
    parser.add_argument("mode", choices=("encrypt", "decrypt"))
    parser.add_argument("--passphrase", required=True)
    parser.add_argument("text", nargs="?", help="note text; read from stdin when omitted")
    args = parser.parse_intermixed_args(argv)

    text = args.text if args.text is not None else sys.stdin.read().rstrip("\n")
    if args.mode == "encrypt":
        print(encrypt_text(text, args.passphrase))
        return 0
    try:
        print(decrypt_text(text, args.passphrase))
    except DecryptionError as e:
        print(f"notecrypt: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
