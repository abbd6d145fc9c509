import base64
import json

import pytest

from certidentity.identity import (
    CertificateTemplate,
    Extensions,
    IDToken,
    IdentityError,
    Issuer,
    IssuerPool,
    Principal,
    extract_issuer_url,
    join_path,
    parse_uri,
)

ISSUER_OID = "1.3.6.1.4.1.57264.1.1"
ISSUER_V2_OID = "1.3.6.1.4.1.57264.1.8"


def _segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _jwt(payload) -> str:
    return "header." + _segment(json.dumps(payload).encode()) + ".signature"


class _NamedPrincipal(Principal):
    def __init__(self, label):
        self.label = label

    def name(self):
        return self.label

    def embed(self, cert):
        cert.email_addresses = [self.label]


class _StaticIssuer(Issuer):
    def __init__(self, url, label):
        self.url = url
        self.label = label

    def match(self, url):
        return url == self.url

    def authenticate(self, token, authorize):
        id_token = authorize(token)
        return _NamedPrincipal(f"{self.label}:{id_token.subject}")


def test_extract_issuer_url():
    token = _jwt({"iss": "https://iss.example.com", "sub": "subject"})
    assert extract_issuer_url(token) == "https://iss.example.com"


def test_extract_issuer_url_missing_claim_is_empty():
    assert extract_issuer_url(_jwt({"sub": "subject"})) == ""


def test_extract_issuer_url_key_match_ignores_case():
    assert extract_issuer_url(_jwt({"ISS": "https://iss.example.com"})) == "https://iss.example.com"


def test_extract_issuer_url_wrong_part_count():
    with pytest.raises(IdentityError, match="expected 3 parts"):
        extract_issuer_url("only.two")


def test_extract_issuer_url_bad_base64():
    with pytest.raises(IdentityError, match="malformed jwt payload"):
        extract_issuer_url("a.!!!.c")


def test_extract_issuer_url_rejects_padding():
    padded = base64.urlsafe_b64encode(b'{"iss":"x"}').decode()
    assert padded.endswith("=")
    with pytest.raises(IdentityError, match="malformed jwt payload"):
        extract_issuer_url(f"a.{padded}.c")


def test_extract_issuer_url_bad_json():
    with pytest.raises(IdentityError, match="failed to unmarshal claims"):
        extract_issuer_url("a." + _segment(b"not json") + ".c")


def test_extract_issuer_url_non_string_issuer():
    with pytest.raises(IdentityError, match="failed to unmarshal claims"):
        extract_issuer_url(_jwt({"iss": 5}))


def test_issuer_pool_uses_first_matching_issuer():
    pool = IssuerPool(
        [
            _StaticIssuer("https://other.example.com", "first"),
            _StaticIssuer("https://iss.example.com", "second"),
            _StaticIssuer("https://iss.example.com", "third"),
        ]
    )
    token = _jwt({"iss": "https://iss.example.com"})
    principal = pool.authenticate(
        token, lambda raw: IDToken(issuer="https://iss.example.com", subject="subject")
    )
    assert principal.name() == "second:subject"


def test_issuer_pool_without_match_fails():
    pool = IssuerPool([_StaticIssuer("https://other.example.com", "first")])
    with pytest.raises(IdentityError, match="failed to match issuer URL https://iss.example.com"):
        pool.authenticate(_jwt({"iss": "https://iss.example.com"}), lambda raw: None)


def test_issuer_pool_propagates_token_errors():
    with pytest.raises(IdentityError, match="malformed jwt"):
        IssuerPool([]).authenticate("garbage", lambda raw: None)


def test_id_token_claim_lookup():
    token = IDToken("https://iss.example.com", "subject", {"email": "alice@example.com"})
    assert token.claim("email") == "alice@example.com"
    assert token.claim("missing", "fallback") == "fallback"
    assert token.claim("missing") is None


def test_abstract_principal_cannot_be_created():
    with pytest.raises(TypeError):
        Principal()


def test_principal_embeds_into_template():
    cert = CertificateTemplate()
    _NamedPrincipal("alice@example.com").embed(cert)
    assert cert.email_addresses == ["alice@example.com"]
    assert cert.uris == []


def test_extensions_issuer_raw_and_der():
    value = "https://token.actions.githubusercontent.com"
    rendered = Extensions(issuer=value).render()
    assert rendered[ISSUER_OID] == value.encode()
    der = rendered[ISSUER_V2_OID]
    assert der[0] == 0x0C
    assert der[1] == len(value)
    assert der[2:] == value.encode()


def test_extensions_empty_fields_are_omitted():
    assert Extensions().render() == {}
    rendered = Extensions(build_trigger="push").render()
    assert list(rendered) == ["1.3.6.1.4.1.57264.1.20"]


def test_extensions_long_values_use_long_form_length():
    value = "a" * 200
    der = Extensions(run_invocation_uri=value).render()["1.3.6.1.4.1.57264.1.21"]
    assert der[:3] == b"\x0c\x81\xc8"
    assert der[3:] == value.encode()


def test_extensions_are_ordered_by_oid():
    rendered = Extensions(issuer="i", github_workflow_ref="r", build_signer_uri="u").render()
    arcs = [int(oid.rsplit(".", 1)[1]) for oid in rendered]
    assert arcs == sorted(arcs)


def test_extensions_invalid_text_fails():
    with pytest.raises(IdentityError):
        Extensions(issuer="\ud800").render()


def test_parse_uri_round_trip():
    value = "https://kubernetes.io/namespaces/foo/serviceaccounts/bar"
    assert parse_uri(value).geturl() == value


@pytest.mark.parametrize("value", ["\nbadurl", ":nope", "https://example.com:port/", "%zz"])
def test_parse_uri_rejects_malformed(value):
    with pytest.raises(IdentityError):
        parse_uri(value)


def test_join_path_simple():
    assert join_path("https://github.com/", "sigstore/fulcio") == "https://github.com/sigstore/fulcio"


def test_join_path_many_elements():
    got = join_path("https://github.com/", "repository", "actions/runs", "runID", "attempts", "runAttempt")
    assert got == "https://github.com/repository/actions/runs/runID/attempts/runAttempt"


def test_join_path_collapses_slashes():
    got = join_path("https://gitlab.com/", "cpanato/testing-cosign", "/-/jobs/", "3659681386")
    assert got == "https://gitlab.com/cpanato/testing-cosign/-/jobs/3659681386"


def test_join_path_keeps_trailing_slash():
    assert join_path("https://example.com/a", "b/") == "https://example.com/a/b/"


def test_join_path_rejects_bad_base():
    with pytest.raises(IdentityError):
        join_path("\nbadurl", "x")