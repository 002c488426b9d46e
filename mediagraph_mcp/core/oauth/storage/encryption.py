"""
AES-256-GCM sealing for the token file.

The key is derived with scrypt from the local user's identity and a
fixed application salt, so the same user on the same machine can always
reopen its own store while the key itself is never written anywhere.

Sealed layout: ``salt(16) || iv(12) || tag(16) || ciphertext``. The
random salt is recorded for format compatibility; key derivation uses
the fixed application salt.
"""

import os
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from ..constants import StorageDefaults
from ..exceptions import StorageError

_HEADER_LENGTH = (
    StorageDefaults.SALT_LENGTH + StorageDefaults.IV_LENGTH + StorageDefaults.TAG_LENGTH
)


def machine_identity(home: Path | None = None) -> str:
    """Stable identity string for the current user on this machine."""
    home_dir = home if home is not None else Path.home()
    return f"{home_dir}{StorageDefaults.KDF_IDENTITY_SUFFIX}"


def derive_key(identity: str) -> bytes:
    """Derive the 32-byte store key from ``identity`` with scrypt."""
    kdf = Scrypt(
        salt=StorageDefaults.KDF_SALT,
        length=StorageDefaults.KEY_LENGTH,
        n=StorageDefaults.SCRYPT_N,
        r=StorageDefaults.SCRYPT_R,
        p=StorageDefaults.SCRYPT_P,
    )
    return kdf.derive(identity.encode("utf-8"))


def seal(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt and authenticate ``plaintext`` with a fresh salt and IV."""
    salt = os.urandom(StorageDefaults.SALT_LENGTH)
    iv = os.urandom(StorageDefaults.IV_LENGTH)
    # AESGCM appends the tag to the ciphertext
    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    ciphertext, tag = sealed[: -StorageDefaults.TAG_LENGTH], sealed[-StorageDefaults.TAG_LENGTH :]
    return salt + iv + tag + ciphertext


def unseal(blob: bytes, key: bytes) -> bytes:
    """Verify and decrypt a blob produced by :func:`seal`.

    Raises:
        StorageError: If the blob is truncated or fails authentication
    """
    if len(blob) < _HEADER_LENGTH:
        raise StorageError(f"Sealed data too short ({len(blob)} bytes)")

    iv_start = StorageDefaults.SALT_LENGTH
    tag_start = iv_start + StorageDefaults.IV_LENGTH
    iv = blob[iv_start:tag_start]
    tag = blob[tag_start:_HEADER_LENGTH]
    ciphertext = blob[_HEADER_LENGTH:]

    try:
        return AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise StorageError("Authentication tag mismatch (corrupt file or wrong key)") from e


__all__ = ["derive_key", "machine_identity", "seal", "unseal"]
