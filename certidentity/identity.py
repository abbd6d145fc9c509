"""Core identity types: ID tokens, principals, issuers and certificate extensions."""

from __future__ import annotations

import base64
import binascii
import json
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from typing import Any
from urllib.parse import SplitResult, quote, urlsplit, urlunsplit


class IdentityError(Exception):
    """Raised when a token cannot be authenticated or a principal embedded."""


@dataclass(frozen=True)
class IDToken:
    """A verified OIDC ID token: issuer, subject and the full claim set."""

    issuer: str
    subject: str
    claims: Mapping[str, Any] = field(default_factory=dict)

    def claim(self, name: str, default: Any = None) -> Any:
        """Return a claim by name, or ``default`` when it is absent."""
        return self.claims.get(name, default)


_Authorize = Callable[[str], IDToken]

_OID_PREFIX = "1.3.6.1.4.1.57264.1."

# Field name -> (OID arc, stored as raw bytes rather than DER UTF8String).
_FIELD_OIDS: dict[str, tuple[tuple[int, bool], ...]] = {
    "issuer": ((1, True), (8, False)),
    "github_workflow_trigger": ((2, True),),
    "github_workflow_sha": ((3, True),),
    "github_workflow_name": ((4, True),),
    "github_workflow_repository": ((5, True),),
    "github_workflow_ref": ((6, True),),
    "build_signer_uri": ((9, False),),
    "build_signer_digest": ((10, False),),
    "runner_environment": ((11, False),),
    "source_repository_uri": ((12, False),),
    "source_repository_digest": ((13, False),),
    "source_repository_ref": ((14, False),),
    "source_repository_identifier": ((15, False),),
    "source_repository_owner_uri": ((16, False),),
    "source_repository_owner_identifier": ((17, False),),
    "build_config_uri": ((18, False),),
    "build_config_digest": ((19, False),),
    "build_trigger": ((20, False),),
    "run_invocation_uri": ((21, False),),
    "source_repository_visibility_at_signing": ((22, False),),
}


def _der_length(length: int) -> bytes:
    if length < 0x80:
        return bytes([length])
    encoded = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(encoded)]) + encoded


def _der_utf8_string(value: bytes) -> bytes:
    return b"\x0c" + _der_length(len(value)) + value


@dataclass(frozen=True)
class Extensions:
    """Custom certificate extensions describing where an identity came from."""

    issuer: str = ""
    github_workflow_trigger: str = ""
    github_workflow_sha: str = ""
    github_workflow_name: str = ""
    github_workflow_repository: str = ""
    github_workflow_ref: str = ""
    build_signer_uri: str = ""
    build_signer_digest: str = ""
    runner_environment: str = ""
    source_repository_uri: str = ""
    source_repository_digest: str = ""
    source_repository_ref: str = ""
    source_repository_identifier: str = ""
    source_repository_owner_uri: str = ""
    source_repository_owner_identifier: str = ""
    build_config_uri: str = ""
    build_config_digest: str = ""
    build_trigger: str = ""
    run_invocation_uri: str = ""
    source_repository_visibility_at_signing: str = ""

    def render(self) -> dict[str, bytes]:
        """Return the non-empty extensions keyed by dotted OID, in OID order."""
        rendered: list[tuple[int, bytes]] = []
        for spec in fields(self):
            value = getattr(self, spec.name)
            if not value:
                continue
            try:
                encoded = value.encode("utf-8")
            except UnicodeEncodeError as exc:
                raise IdentityError(f"{spec.name} is not valid UTF-8: {exc}") from exc
            for arc, raw in _FIELD_OIDS[spec.name]:
                rendered.append((arc, encoded if raw else _der_utf8_string(encoded)))
        rendered.sort(key=lambda item: item[0])
        return {_OID_PREFIX + str(arc): data for arc, data in rendered}


@dataclass
class CertificateTemplate:
    """The identity-bearing parts of a certificate being issued."""

    uris: list[str] = field(default_factory=list)
    email_addresses: list[str] = field(default_factory=list)
    extra_extensions: dict[str, bytes] = field(default_factory=dict)


class Principal(ABC):
    """An authenticated identity that can be embedded into a certificate."""

    @abstractmethod
    def name(self) -> str:
        """The e-mail or subject that the proof of possession must be signed over."""

    @abstractmethod
    def embed(self, cert: CertificateTemplate) -> None:
        """Write subject alternative names and extensions into ``cert``."""


class Issuer(ABC):
    """A source of OIDC tokens that can be turned into principals."""

    @abstractmethod
    def match(self, url: str) -> bool:
        """Whether this issuer handles tokens from the given issuer URL."""

    @abstractmethod
    def authenticate(self, token: str, authorize: _Authorize) -> Principal:
        """Verify ``token`` with ``authorize`` and return its principal."""


class IssuerPool(list):
    """An ordered collection of issuers; the first one that matches wins."""

    def authenticate(self, token: str, authorize: _Authorize) -> Principal:
        """Authenticate ``token`` with the first issuer matching its ``iss`` claim."""
        url = extract_issuer_url(token)
        for issuer in self:
            if issuer.match(url):
                return issuer.authenticate(token, authorize)
        raise IdentityError(
            f"failed to match issuer URL {url} from token with any configured providers"
        )


def _decode_segment(segment: str) -> bytes:
    if "=" in segment:
        raise binascii.Error("unexpected padding")
    padded = segment + "=" * (-len(segment) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


def extract_issuer_url(token: str) -> str:
    """Read the unverified ``iss`` claim from a compact JWT."""
    parts = token.split(".")
    if len(parts) != 3:
        raise IdentityError(f"oidc: malformed jwt, expected 3 parts got {len(parts)}")
    try:
        raw = _decode_segment(parts[1])
    except (binascii.Error, ValueError) as exc:
        raise IdentityError(f"oidc: malformed jwt payload: {exc}") from exc
    try:
        payload = json.loads(raw, object_pairs_hook=list)
    except (ValueError, UnicodeDecodeError) as exc:
        raise IdentityError(f"oidc: failed to unmarshal claims: {exc}") from exc
    if payload is None:
        return ""
    if not isinstance(payload, list) or not all(isinstance(p, tuple) for p in payload):
        raise IdentityError("oidc: failed to unmarshal claims: payload is not an object")
    issuer = ""
    for key, value in payload:
        if key.casefold() != "iss" or value is None:
            continue
        if not isinstance(value, str):
            raise IdentityError("oidc: failed to unmarshal claims: iss is not a string")
        issuer = value
    return issuer


_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_PATH_SAFE = "/%!$&'()*+,;=:@-._~[]"


def parse_uri(value: str) -> SplitResult:
    """Parse and validate a URI, raising IdentityError when it is malformed."""
    if _CONTROL_CHARS.search(value):
        raise IdentityError(f"parse {value!r}: invalid control character in URL")
    if value.startswith(":"):
        raise IdentityError(f"parse {value!r}: missing protocol scheme")
    try:
        parts = urlsplit(value)
        _ = parts.port
    except ValueError as exc:
        raise IdentityError(f"parse {value!r}: {exc}") from exc
    for component in (parts.netloc, parts.path, parts.fragment):
        if _BAD_ESCAPE.search(component):
            raise IdentityError(f"parse {value!r}: invalid URL escape")
    if not parts.scheme and not parts.netloc and ":" in parts.path.split("/", 1)[0]:
        raise IdentityError(
            f"parse {value!r}: first path segment in URL cannot contain colon"
        )
    return parts


def _clean(path: str) -> str:
    rooted = path.startswith("/")
    segments: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if segments and segments[-1] != "..":
                segments.pop()
            elif not rooted:
                segments.append("..")
            continue
        segments.append(segment)
    cleaned = ("/" if rooted else "") + "/".join(segments)
    return cleaned or ("/" if rooted else ".")


def join_path(base: str, *args: str) -> str:
    """Join path elements onto the path of ``base`` and return the full URI."""
    parts = parse_uri(base)
    first = parts.path
    elements = [first if first.startswith("/") else "/" + first, *args]
    joined = _clean("/".join(e for e in elements if e))
    if not first.startswith("/"):
        joined = joined[1:]
    if elements[-1].endswith("/") and not joined.endswith("/"):
        joined += "/"
    return urlunsplit(parts._replace(path=quote(joined, safe=_PATH_SAFE)))