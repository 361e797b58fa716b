from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey


class InteractionVerifier:
    """Checks Discord's Ed25519 signature over `timestamp + body`."""

    def __init__(self, public_key_hex: str) -> None:
        self._public_key: Ed25519PublicKey | None = None
        if public_key_hex:
            # malformed keys raise ValueError here, at startup
            self._public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))

    @property
    def enabled(self) -> bool:
        return self._public_key is not None

    def verify(self, *, raw_body: bytes, signature_header: str | None, timestamp_header: str | None) -> None:
        if self._public_key is None:
            raise ValueError("Interaction public key is not configured")
        if not signature_header or not timestamp_header:
            raise ValueError("Missing interaction signature headers")
        try:
            signature = bytes.fromhex(signature_header)
        except ValueError as exc:
            raise ValueError("Malformed interaction signature") from exc
        try:
            self._public_key.verify(signature, timestamp_header.encode("utf-8") + raw_body)
        except InvalidSignature as exc:
            raise ValueError("Invalid interaction signature") from exc
