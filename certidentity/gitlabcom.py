"""Identities for GitLab CI jobs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import SplitResult, quote

from certidentity.base import BaseIssuer
from certidentity.identity import (
    CertificateTemplate,
    Extensions,
    IDToken,
    IdentityError,
    Principal,
    _Authorize,
    join_path,
    parse_uri,
)

GITLAB_URL = "https://gitlab.com/"

_STRING_CLAIMS = (
    "project_path",
    "project_id",
    "pipeline_source",
    "pipeline_id",
    "ci_config_ref_uri",
    "ci_config_sha",
    "namespace_path",
    "namespace_id",
    "job_id",
    "ref",
    "ref_type",
    "sha",
    "runner_environment",
    "project_visibility",
)

# Claims that must be present and non-empty, in the order they are checked.
_REQUIRED_CLAIMS = (
    "project_path",
    "pipeline_source",
    "pipeline_id",
    "ci_config_ref_uri",
    "job_id",
    "ref",
    "ref_type",
    "namespace_path",
    "namespace_id",
    "project_id",
    "sha",
    "runner_environment",
)

_REF_PREFIXES = {"branch": "refs/heads/", "tag": "refs/tags/"}

_PATH_SAFE = "/%!$&'()*+,;=:@-._~[]"


def _string_claim(token: IDToken, name: str) -> str:
    value: Any = token.claim(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise IdentityError(f"{name} claim in ID token is not a string")
    return value


def _int_claim(token: IDToken, name: str) -> int:
    value: Any = token.claim(name)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise IdentityError(f"{name} claim in ID token is not an integer")
    if not -(2**63) <= value < 2**63:
        raise IdentityError(f"{name} claim in ID token is out of range")
    return value


def _host(parts: SplitResult) -> str:
    return parts.netloc.rpartition("@")[2]


def _format_uri(scheme: str, parts: SplitResult) -> str:
    """Render a parsed URI with a replaced scheme, always emitting an authority."""
    rendered = scheme + ":"
    path = quote(parts.path, safe=_PATH_SAFE)
    if parts.netloc or path:
        rendered += "//"
    rendered += parts.netloc
    if path and not path.startswith("/") and parts.netloc:
        rendered += "/"
    rendered += path
    if parts.query:
        rendered += "?" + parts.query
    if parts.fragment:
        rendered += "#" + parts.fragment
    return rendered


@dataclass(frozen=True)
class GitlabJobPrincipal(Principal):
    """A GitLab CI job and the project it built."""

    subject: str = ""
    issuer: str = ""
    url: str = ""
    event_name: str = ""
    pipeline_id: str = ""
    ci_config_ref_uri: str = ""
    ci_config_sha: str = ""
    repository: str = ""
    repository_id: str = ""
    repository_owner: str = ""
    repository_owner_id: str = ""
    job_id: str = ""
    ref: str = ""
    sha: str = ""
    runner_id: int = 0
    runner_environment: str = ""
    project_visibility: str = ""

    def name(self) -> str:
        return self.subject

    def embed(self, cert: CertificateTemplate) -> None:
        base_url = parse_uri(self.url)
        ci_config = parse_uri(self.ci_config_ref_uri)

        # The ci_config_ref_uri claim carries no scheme: default to https,
        # or borrow the instance's scheme when it lives on the same host.
        scheme = "https"
        if _host(base_url) == _host(ci_config):
            scheme = base_url.scheme
        ci_config_url = _format_uri(scheme, ci_config)

        cert.uris = [ci_config_url]
        cert.extra_extensions = Extensions(
            issuer=self.issuer,
            build_config_uri=ci_config_url,
            build_config_digest=self.ci_config_sha,
            build_signer_uri=ci_config_url,
            build_signer_digest=self.ci_config_sha,
            runner_environment=self.runner_environment,
            source_repository_uri=join_path(self.url, self.repository),
            source_repository_digest=self.sha,
            source_repository_ref=self.ref,
            source_repository_identifier=self.repository_id,
            source_repository_owner_uri=join_path(self.url, self.repository_owner),
            source_repository_owner_identifier=self.repository_owner_id,
            build_trigger=self.event_name,
            run_invocation_uri=join_path(
                self.url, self.repository, "/-/jobs/", self.job_id
            ),
            source_repository_visibility_at_signing=self.project_visibility,
        ).render()


def job_principal_from_id_token(token: IDToken) -> GitlabJobPrincipal:
    """Build a GitLab job principal from a verified ID token."""
    claims = {name: _string_claim(token, name) for name in _STRING_CLAIMS}
    runner_id = _int_claim(token, "runner_id")

    for name in _REQUIRED_CLAIMS:
        if not claims[name]:
            raise IdentityError(f"missing {name} claim in ID token")
    if runner_id == 0:
        raise IdentityError("missing runner_id claim in ID token")

    prefix = _REF_PREFIXES.get(claims["ref_type"])
    if prefix is None:
        raise IdentityError(f"unexpected ref_type: {claims['ref_type']}")

    return GitlabJobPrincipal(
        subject=token.subject,
        issuer=token.issuer,
        url=GITLAB_URL,
        event_name=claims["pipeline_source"],
        pipeline_id=claims["pipeline_id"],
        ci_config_ref_uri=claims["ci_config_ref_uri"],
        ci_config_sha=claims["ci_config_sha"],
        repository=claims["project_path"],
        repository_id=claims["project_id"],
        repository_owner=claims["namespace_path"],
        repository_owner_id=claims["namespace_id"],
        job_id=claims["job_id"],
        ref=prefix + claims["ref"],
        sha=claims["sha"],
        runner_id=runner_id,
        runner_environment=claims["runner_environment"],
        project_visibility=claims["project_visibility"],
    )


@dataclass(frozen=True)
class GitlabIssuer(BaseIssuer):
    """Issuer of GitLab CI OIDC tokens."""

    def authenticate(self, token: str, authorize: _Authorize) -> Principal:
        return job_principal_from_id_token(authorize(token))