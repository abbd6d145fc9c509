"""Identities for Kubernetes service accounts."""

from __future__ import annotations

from collections.abc import Mapping
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


def _object(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise IdentityError(f"{what} claim in ID token is not an object")
    return value


def _string(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise IdentityError(f"{what} claim in ID token is not a string")
    return value


def _kubernetes_uri(token: IDToken) -> str:
    k8s = _object(token.claim("kubernetes.io"), "kubernetes.io")
    namespace = _string(k8s.get("namespace"), "kubernetes.io.namespace")
    pod = _object(k8s.get("pod"), "kubernetes.io.pod")
    _string(pod.get("name"), "kubernetes.io.pod.name")
    _string(pod.get("uid"), "kubernetes.io.pod.uid")
    account = _object(k8s.get("serviceaccount"), "kubernetes.io.serviceaccount")
    account_name = _string(account.get("name"), "kubernetes.io.serviceaccount.name")
    _string(account.get("uid"), "kubernetes.io.serviceaccount.uid")
    return (
        "https://kubernetes.io/namespaces/"
        + namespace
        + "/serviceaccounts/"
        + account_name
    )


@dataclass(frozen=True)
class KubernetesPrincipal(Principal):
    """A Kubernetes service account, expressed as a URI."""

    subject: str
    issuer: str
    uri: str

    def name(self) -> str:
        return self.subject

    def embed(self, cert: CertificateTemplate) -> None:
        parsed = parse_uri(self.uri)
        cert.uris = [parsed.geturl()]
        cert.extra_extensions = Extensions(issuer=self.issuer).render()


def principal_from_id_token(token: IDToken) -> KubernetesPrincipal:
    """Build a Kubernetes principal from a verified ID token."""
    return KubernetesPrincipal(
        subject=token.subject,
        issuer=token.issuer,
        uri=_kubernetes_uri(token),
    )


@dataclass(frozen=True)
class KubernetesIssuer(BaseIssuer):
    """Issuer of Kubernetes service account tokens."""

    def authenticate(self, token: str, authorize: _Authorize) -> Principal:
        return principal_from_id_token(authorize(token))