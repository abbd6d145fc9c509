"""Helpers for submitting certificates to a certificate transparency log."""

from __future__ import annotations

import base64
from collections.abc import Iterable
from dataclasses import dataclass, field

_LOG_ID_LENGTH = 32
_MAX_SIGNATURE_LENGTH = 0xFFFF


@dataclass(frozen=True)
class DigitallySigned:
    """A TLS ``DigitallySigned`` structure: algorithm pair plus signature bytes."""

    hash_algorithm: int
    signature_algorithm: int
    signature: bytes = b""

    def marshal(self) -> bytes:
        """Encode the structure in TLS wire format."""
        for label, value in (
            ("hash", self.hash_algorithm),
            ("signature", self.signature_algorithm),
        ):
            if not 0 <= value <= 0xFF:
                raise ValueError(f"{label} algorithm {value} does not fit in one byte")
        if len(self.signature) > _MAX_SIGNATURE_LENGTH:
            raise ValueError(
                f"signature length {len(self.signature)} exceeds {_MAX_SIGNATURE_LENGTH}"
            )
        return (
            bytes([self.hash_algorithm, self.signature_algorithm])
            + len(self.signature).to_bytes(2, "big")
            + bytes(self.signature)
        )


@dataclass(frozen=True)
class SignedCertificateTimestamp:
    """A signed certificate timestamp as returned by a CT log."""

    log_id: bytes
    timestamp: int
    sct_version: int = 0
    extensions: bytes = b""
    signature: DigitallySigned = field(default_factory=lambda: DigitallySigned(0, 0))

    def __post_init__(self) -> None:
        if len(self.log_id) != _LOG_ID_LENGTH:
            raise ValueError(
                f"log ID must be {_LOG_ID_LENGTH} bytes, got {len(self.log_id)}"
            )


@dataclass(frozen=True)
class AddChainResponse:
    """The JSON-facing form of an SCT returned from an add-chain request."""

    sct_version: int
    id: bytes
    timestamp: int
    extensions: str
    signature: bytes


def build_ct_chain(cert: bytes, chain: Iterable[bytes]) -> list[bytes]:
    """Return the DER certificates in log submission order, leaf first."""
    return [bytes(cert), *(bytes(c) for c in chain)]


def to_add_chain_response(sct: SignedCertificateTimestamp) -> AddChainResponse:
    """Convert an SCT into an add-chain response."""
    try:
        signature = sct.signature.marshal()
    except ValueError as exc:
        raise ValueError(f"failed to marshal signature: {exc}") from exc
    return AddChainResponse(
        sct_version=sct.sct_version,
        id=bytes(sct.log_id),
        timestamp=sct.timestamp,
        extensions=base64.b64encode(sct.extensions).decode("ascii"),
        signature=signature,
    )