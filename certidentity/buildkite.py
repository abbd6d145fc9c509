"""Identities for Buildkite jobs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from certidentity.base import BaseIssuer
from certidentity.identity import (
    CertificateTemplate,
    Extensions,
    IDToken,
    IdentityError,
    Principal,
    _Authorize,
    parse_uri,
)


def _string_claim(token: IDToken, name: str) -> str:
    value: Any = token.claim(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise IdentityError(f"{name} claim in ID token is not a string")
    return value


@dataclass(frozen=True)
class JobPrincipal(Principal):
    """A Buildkite job, identified by its token subject and pipeline URL."""

    subject: str
    issuer: str
    url: str

    def name(self) -> str:
        return self.subject

    def embed(self, cert: CertificateTemplate) -> None:
        parsed = parse_uri(self.url)
        cert.uris = [parsed.geturl()]
        cert.extra_extensions = Extensions(issuer=self.issuer).render()


def job_principal_from_id_token(token: IDToken) -> JobPrincipal:
    """Build a Buildkite job principal from a verified ID token."""
    organization_slug = _string_claim(token, "organization_slug")
    pipeline_slug = _string_claim(token, "pipeline_slug")
    if not organization_slug:
        raise IdentityError("missing organization_slug claim in ID token")
    if not pipeline_slug:
        raise IdentityError("missing pipeline_slug claim in ID token")
    return JobPrincipal(
        subject=token.subject,
        issuer=token.issuer,
        url=f"https://buildkite.com/{organization_slug}/{pipeline_slug}",
    )


@dataclass(frozen=True)
class BuildkiteIssuer(BaseIssuer):
    """Issuer of Buildkite agent tokens."""

    def authenticate(self, token: str, authorize: _Authorize) -> Principal:
        return job_principal_from_id_token(authorize(token))