"""
Encrypted filesystem-based authentication storage.

Stores the session in ~/.mediagraph/tokens.enc, sealed with AES-256-GCM
under a key derived from the local user's identity.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path

from ..constants import StorageDefaults
from ..exceptions import OAuthError, StorageError
from . import AuthStorage, Clock, StoredIdentity
from .encryption import derive_key, machine_identity, seal, unseal

_logger = logging.getLogger(__name__)


class EncryptedFileAuthStorage(AuthStorage):
    """Single-file encrypted session storage.

    Uses ~/.mediagraph/tokens.enc by default. The directory is created
    with mode 0700 and the file with mode 0600 on Unix systems. Writes
    replace the whole file atomically (temp file + rename), so a crash
    mid-write leaves either the old or the new content.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        identity: str | None = None,
        clock: Clock = time.time,
    ) -> None:
        """Initialize encrypted file storage.

        Args:
            path: Location of the sealed token file. Defaults to
                ~/.mediagraph/tokens.enc
            identity: Key derivation input. Defaults to the current user's
                machine identity; tests pass their own.
            clock: Time source in epoch seconds, for expiry checks
        """
        super().__init__(clock)
        if path is not None:
            self.token_file = Path(path).expanduser()
        else:
            self.token_file = Path.home() / StorageDefaults.DIR_NAME / StorageDefaults.FILE_NAME
        self._identity = identity if identity is not None else machine_identity()
        self._key: bytes | None = None

    def _get_key(self) -> bytes:
        if self._key is None:
            self._key = derive_key(self._identity)
        return self._key

    def load(self) -> StoredIdentity | None:
        """Read and decrypt the session.

        Returns:
            StoredIdentity if the file exists and decrypts cleanly,
            None otherwise (missing, emptied, corrupt, or sealed with
            another key)
        """
        try:
            blob = self.token_file.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            _logger.warning("Cannot read token file %s: %s", self.token_file, e)
            return None

        if not blob:
            return None

        try:
            plaintext = unseal(blob, self._get_key())
            return StoredIdentity.from_dict(json.loads(plaintext.decode("utf-8")))
        except (StorageError, ValueError, TypeError, OAuthError) as e:
            _logger.warning("Ignoring unreadable token file %s: %s", self.token_file, e)
            return None

    def save(self, record: StoredIdentity) -> None:
        """Encrypt and atomically write the session.

        Raises:
            StorageError: If the directory or file cannot be written
        """
        payload = json.dumps(record.to_dict()).encode("utf-8")
        blob = seal(payload, self._get_key())
        directory = self.token_file.parent

        try:
            if not directory.exists():
                directory.mkdir(parents=True, mode=StorageDefaults.DIR_PERMISSIONS)
                # mkdir mode is filtered by the umask
                if hasattr(os, "chmod"):
                    os.chmod(directory, StorageDefaults.DIR_PERMISSIONS)

            fd, tmp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self.token_file.name}.", suffix=".tmp"
            )
        except OSError as e:
            _logger.error("Failed to prepare token file %s: %s", self.token_file, e)
            raise StorageError(f"Cannot write token file: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                if hasattr(os, "fchmod"):
                    os.fchmod(f.fileno(), StorageDefaults.FILE_PERMISSIONS)
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.token_file)
        except OSError as e:
            _logger.error("Failed to write token file %s: %s", self.token_file, e)
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Cannot write token file: {e}") from e

        _logger.debug("Saved session to %s", self.token_file)

    def clear(self) -> None:
        """Remove the token file.

        Raises:
            StorageError: If file removal fails due to I/O errors
        """
        try:
            self.token_file.unlink(missing_ok=True)
        except OSError as e:
            _logger.error("Failed to remove token file %s: %s", self.token_file, e)
            raise StorageError(f"Cannot remove token file: {e}") from e

    @property
    def path(self) -> str:
        """Absolute path to the token file as string."""
        return str(self.token_file)

    def __repr__(self) -> str:
        return f"EncryptedFileAuthStorage(path={self.path!r})"
