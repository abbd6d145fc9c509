import pytest

from certidentity.identity import CertificateTemplate, IDToken, IdentityError
from certidentity.kubernetes import (
    KubernetesIssuer,
    KubernetesPrincipal,
    principal_from_id_token,
)

ISSUER_OID = "1.3.6.1.4.1.57264.1.1"


def _claims():
    return {
        "aud": ["sigstore"],
        "iss": "https://iss.example.com",
        "kubernetes.io": {
            "namespace": "foo",
            "pod": {
                "name": "bar",
                "uid": "2ff0bae1-6b8a-445b-ae03-1f8d2a08d031",
            },
            "serviceaccount": {
                "name": "baz",
                "uid": "5cb6264f-e283-4365-9a1f-d5a15090527e",
            },
        },
        "sub": "system:serviceaccount:foo:baz",
    }


def _token(claims):
    return IDToken(issuer=claims["iss"], subject=claims["sub"], claims=claims)


def test_issuer_match():
    issuer = KubernetesIssuer("test-issuer-url")
    assert issuer.match("test-issuer-url") is True
    assert issuer.match("some-other-url") is False


def test_issuer_authenticate():
    issuer = KubernetesIssuer("test-issuer-url")
    token = IDToken(
        issuer="https://iss.example.com", subject="subject", claims=_claims()
    )
    principal = issuer.authenticate("token", lambda _raw: token)
    assert principal.name() == "subject"


def test_valid_token_gives_expected_principal():
    principal = principal_from_id_token(_token(_claims()))
    assert principal == KubernetesPrincipal(
        issuer="https://iss.example.com",
        subject="system:serviceaccount:foo:baz",
        uri="https://kubernetes.io/namespaces/foo/serviceaccounts/baz",
    )


def test_name_matches_sub_claim():
    principal = principal_from_id_token(_token(_claims()))
    assert principal.name() == "system:serviceaccount:foo:baz"


def test_missing_kubernetes_claims_give_empty_segments():
    claims = {"iss": "https://iss.example.com", "sub": "s"}
    principal = principal_from_id_token(_token(claims))
    assert principal.uri == "https://kubernetes.io/namespaces//serviceaccounts/"


def test_malformed_kubernetes_claim_is_rejected():
    claims = _claims()
    claims["kubernetes.io"] = "not-an-object"
    with pytest.raises(IdentityError):
        principal_from_id_token(_token(claims))


def test_embed_sets_issuer_and_uri():
    principal = KubernetesPrincipal(
        subject="",
        issuer="https://k8s.example.com",
        uri="https://kubernetes.io/namespaces/foo/serviceaccounts/bar",
    )
    cert = CertificateTemplate()
    principal.embed(cert)
    assert cert.extra_extensions[ISSUER_OID] == b"https://k8s.example.com"
    assert cert.uris == ["https://kubernetes.io/namespaces/foo/serviceaccounts/bar"]


def test_embed_with_bad_url_fails():
    principal = KubernetesPrincipal(subject="", issuer="example.com", uri="\nbadurl")
    with pytest.raises(IdentityError):
        principal.embed(CertificateTemplate())