"""Identities for GitHub Actions workflow runs."""

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
    join_path,
    parse_uri,
)

GITHUB_URL = "https://github.com/"

# Claims that must be present and non-empty, in the order they are checked.
_REQUIRED_CLAIMS = (
    "job_workflow_ref",
    "sha",
    "event_name",
    "repository",
    "workflow",
    "ref",
    "job_workflow_sha",
    "runner_environment",
    "repository_id",
    "repository_owner",
    "repository_owner_id",
    "repository_visibility",
    "workflow_ref",
    "workflow_sha",
    "run_id",
    "run_attempt",
)


def _string_claim(token: IDToken, name: str) -> str:
    value: Any = token.claim(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise IdentityError(f"{name} claim in ID token is not a string")
    return value


@dataclass(frozen=True)
class WorkflowPrincipal(Principal):
    """A GitHub Actions workflow run and the repository it built."""

    subject: str = ""
    issuer: str = ""
    url: str = ""
    sha: str = ""
    event_name: str = ""
    repository: str = ""
    workflow: str = ""
    ref: str = ""
    job_workflow_ref: str = ""
    job_workflow_sha: str = ""
    runner_environment: str = ""
    repository_id: str = ""
    repository_owner: str = ""
    repository_owner_id: str = ""
    repository_visibility: str = ""
    workflow_ref: str = ""
    workflow_sha: str = ""
    run_id: str = ""
    run_attempt: str = ""

    def name(self) -> str:
        return self.subject

    def embed(self, cert: CertificateTemplate) -> None:
        parse_uri(self.url)
        signer_uri = join_path(self.url, self.job_workflow_ref)
        cert.uris = [signer_uri]
        cert.extra_extensions = Extensions(
            issuer=self.issuer,
            github_workflow_trigger=self.event_name,
            github_workflow_sha=self.sha,
            github_workflow_name=self.workflow,
            github_workflow_repository=self.repository,
            github_workflow_ref=self.ref,
            build_signer_uri=signer_uri,
            build_signer_digest=self.job_workflow_sha,
            runner_environment=self.runner_environment,
            source_repository_uri=join_path(self.url, self.repository),
            source_repository_digest=self.sha,
            source_repository_ref=self.ref,
            source_repository_identifier=self.repository_id,
            source_repository_owner_uri=join_path(self.url, self.repository_owner),
            source_repository_owner_identifier=self.repository_owner_id,
            build_config_uri=join_path(self.url, self.workflow_ref),
            build_config_digest=self.workflow_sha,
            build_trigger=self.event_name,
            run_invocation_uri=join_path(
                self.url,
                self.repository,
                "actions/runs",
                self.run_id,
                "attempts",
                self.run_attempt,
            ),
            source_repository_visibility_at_signing=self.repository_visibility,
        ).render()


def workflow_principal_from_id_token(token: IDToken) -> WorkflowPrincipal:
    """Build a GitHub workflow principal from a verified ID token."""
    claims = {name: _string_claim(token, name) for name in _REQUIRED_CLAIMS}
    for name in _REQUIRED_CLAIMS:
        if not claims[name]:
            raise IdentityError(f"missing {name} claim in ID token")
    return WorkflowPrincipal(
        subject=token.subject,
        issuer=token.issuer,
        url=GITHUB_URL,
        sha=claims["sha"],
        event_name=claims["event_name"],
        repository=claims["repository"],
        workflow=claims["workflow"],
        ref=claims["ref"],
        job_workflow_ref=claims["job_workflow_ref"],
        job_workflow_sha=claims["job_workflow_sha"],
        runner_environment=claims["runner_environment"],
        repository_id=claims["repository_id"],
        repository_owner=claims["repository_owner"],
        repository_owner_id=claims["repository_owner_id"],
        repository_visibility=claims["repository_visibility"],
        workflow_ref=claims["workflow_ref"],
        workflow_sha=claims["workflow_sha"],
        run_id=claims["run_id"],
        run_attempt=claims["run_attempt"],
    )


@dataclass(frozen=True)
class GithubIssuer(BaseIssuer):
    """Issuer of GitHub Actions OIDC tokens."""

    def authenticate(self, token: str, authorize: _Authorize) -> Principal:
        try:
            id_token = authorize(token)
        except IdentityError as exc:
            raise IdentityError(f"authorizing github issuer: {exc}") from exc
        return workflow_principal_from_id_token(id_token)