"""
Local device identity.

Each machine owns one X25519 keypair per key profile. The secret half
never leaves the machine; the public half is what gets enrolled as a
recipient.

Key files live at ``<home>/keys/<profile>.key``::

    # envlock-device: alice-laptop
    ENVLOCK-SECRET-KEY-<base64url raw private key>

Public keys are written as ``envlock-pub-<base64url raw public key>``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey

from .errors import EnvlockError, ValidationError

logger = logging.getLogger("envlock.keys")

SECRET_KEY_PREFIX = "ENVLOCK-SECRET-KEY-"
PUBLIC_KEY_PREFIX = "envlock-pub-"
DEVICE_HEADER = "# envlock-device:"
DEFAULT_PROFILE = "default"
FINGERPRINT_BYTES = 8


class KeyFileError(EnvlockError):
    """The local key file is missing, unreadable, or malformed."""


@dataclass
class DeviceIdentity:
    """A machine's keypair plus the name it enrolls under."""

    private_key: X25519PrivateKey
    device_name: str = ""

    @property
    def public_key(self) -> str:
        raw = self.private_key.public_key().public_bytes_raw()
        return PUBLIC_KEY_PREFIX + _b64e(raw)

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.public_key)

    def secret_key_string(self) -> str:
        return SECRET_KEY_PREFIX + _b64e(self.private_key.private_bytes_raw())


def generate_identity(device_name: str) -> DeviceIdentity:
    return DeviceIdentity(X25519PrivateKey.generate(), device_name.strip())


def fingerprint(public_key: str) -> str:
    """Short, stable, non-secret digest of a public key (8 bytes, hex)."""
    digest = hashlib.sha256(public_key.strip().encode("utf-8")).digest()
    return digest[:FINGERPRINT_BYTES].hex()


def validate_public_key(public_key: str) -> None:
    """Raise ValidationError unless ``public_key`` is a well-formed envlock key."""
    pub = public_key.strip()
    if not pub.startswith(PUBLIC_KEY_PREFIX):
        raise ValidationError(f"invalid recipient public key: expected {PUBLIC_KEY_PREFIX}...")
    try:
        raw = _b64d(pub[len(PUBLIC_KEY_PREFIX):])
        X25519PublicKey.from_public_bytes(raw)
    except (ValueError, binascii.Error) as exc:
        raise ValidationError(f"invalid recipient public key: {exc}") from exc


def default_key_path(home: Path, profile: str = DEFAULT_PROFILE) -> Path:
    """Where the key for ``profile`` lives under ``home``."""
    name = profile.strip() or DEFAULT_PROFILE
    if "/" in name or os.sep in name:
        raise ValidationError("key name must not contain path separators")
    return Path(home).expanduser() / "keys" / f"{name}.key"


def write_identity(path: Path, identity: DeviceIdentity, force: bool = False) -> Path:
    """Write a key file readable only by the owner.

    Raises:
        KeyFileError: If the file exists and ``force`` is False.
    """
    path = Path(path)
    if path.exists() and not force:
        raise KeyFileError(f"key already exists at {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    os.chmod(path.parent, 0o700)

    content = ""
    if identity.device_name:
        content += f"{DEVICE_HEADER} {identity.device_name}\n"
    content += identity.secret_key_string() + "\n"

    fd = os.open(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
    logger.info("Wrote device key %s", path)
    return path


def load_identity(path: Path) -> DeviceIdentity:
    """Read a key file written by :func:`write_identity`.

    Raises:
        KeyFileError: If the file is missing or holds no valid secret key.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise KeyFileError(f"load local key ({path}): {exc} (run `envlock init` first)") from exc

    device_name = ""
    for line in text.splitlines():
        line = line.strip()
        if line.startswith(DEVICE_HEADER):
            device_name = line[len(DEVICE_HEADER):].strip()
            continue
        if line.startswith(SECRET_KEY_PREFIX):
            try:
                raw = _b64d(line[len(SECRET_KEY_PREFIX):])
                key = X25519PrivateKey.from_private_bytes(raw)
            except (ValueError, binascii.Error) as exc:
                raise KeyFileError(f"malformed secret key in {path}: {exc}") from exc
            return DeviceIdentity(key, device_name)

    raise KeyFileError(f"no {SECRET_KEY_PREFIX} found in {path}")


def _b64e(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64d(s: str) -> bytes:
    return base64.urlsafe_b64decode(s + "=" * (-len(s) % 4))
