# certidentity

`certidentity` turns verified OIDC identity tokens into the identity data that goes into a short-lived code-signing certificate. Each supported token issuer has its own mapping:

- **Buildkite** jobs: `certidentity.buildkite` (`BuildkiteIssuer`, `JobPrincipal`, `job_principal_from_id_token`)
- **GitHub Actions** workflows: `certidentity.github` (`GithubIssuer`, `WorkflowPrincipal`, `workflow_principal_from_id_token`)
- **GitLab.com** CI jobs: `certidentity.gitlabcom` (`GitlabIssuer`, `GitlabJobPrincipal`, `job_principal_from_id_token`)
- **Kubernetes** service accounts: `certidentity.kubernetes` (`KubernetesIssuer`, `KubernetesPrincipal`, `principal_from_id_token`)

Each mapping gives a principal. The principal has a `name()`, which is the token's subject: the value the signer must prove it controls. It also has `embed(cert)`. This method writes Subject Alternative Name URIs and custom certificate extensions onto a `CertificateTemplate`.

The package also has helpers for Certificate Transparency logs in `certidentity.ctl`.

The package has no dependencies beyond the standard library.

## Installation

```
pip install certidentity
```

To run the test suite, install the test extra and run pytest:

```
pip install "certidentity[test]"
pytest
```

## Issuers and matching

You set up an issuer with the issuer URL it accepts. `match(url)` is true when the URL equals that string. Otherwise the issuer URL is treated as a pattern. Regex metacharacters in it are escaped, and each `*` becomes a run of one or more letters, digits, `-` or `_`. The pattern is searched for in the URL.

```python
from certidentity.github import GithubIssuer

issuer = GithubIssuer("https://token.actions.githubusercontent.com")
issuer.match("https://token.actions.githubusercontent.com")  # True
```

`certidentity.base.meta_regex(issuer)` returns the compiled pattern. `BaseIssuer` only matches. Its `authenticate` always raises `IdentityError`.

`certidentity.identity.IssuerPool` is a list of issuers. Its `authenticate(token, authorize)` reads the unverified `iss` claim from a compact JWT with `extract_issuer_url`. It then hands the token to the first issuer that matches. If no issuer matches, it raises `IdentityError`.

## Authenticating a token

The caller checks the signature. `authenticate(token, authorize)` takes a callable that verifies the raw token and returns an `IDToken`. The issuer then builds its principal from the claims:

```python
from certidentity.identity import CertificateTemplate, IDToken
from certidentity.kubernetes import KubernetesIssuer

def authorize(raw_token):
    # verify the signature, then:
    return IDToken(issuer="https://iss.example.com", subject="system:serviceaccount:foo:baz",
                   claims={"kubernetes.io": {"namespace": "foo",
                                             "serviceaccount": {"name": "baz"}}})

principal = KubernetesIssuer("https://iss.example.com").authenticate("token", authorize)
principal.name()  # 'system:serviceaccount:foo:baz'
cert = CertificateTemplate()
principal.embed(cert)
cert.uris  # ['https://kubernetes.io/namespaces/foo/serviceaccounts/baz']
```

A token that lacks a required claim is rejected with `IdentityError`, and the message names the missing claim. Some claims have rules of their own:

- GitLab's `ref_type` must be `branch` or `tag`. The stored ref is then prefixed with `refs/heads/` or `refs/tags/`.
- GitLab's `runner_id` must be a non-zero integer.
- GitHub wraps errors raised by `authorize` as `authorizing github issuer: ...`.

## Certificate extensions

`certidentity.identity.Extensions.render()` returns the non-empty fields as a dict keyed by dotted OID under `1.3.6.1.4.1.57264.1.`, in OID order.

- The issuer and the deprecated GitHub workflow fields (arcs 1 to 6) are stored as raw UTF-8 bytes.
- The issuer is repeated at arc 8. Arc 8 and every field from there on is stored as a DER UTF8String.

`parse_uri` validates a URI and raises `IdentityError` when it is malformed. `join_path(base, *args)` joins path elements onto a URI's path.

## Certificate Transparency helpers

- `build_ct_chain(cert, chain)` returns the DER bytes of the leaf, then those of its chain, in that order.
- `to_add_chain_response(sct)` converts a `SignedCertificateTimestamp` into an `AddChainResponse`. It base64-encodes the extensions and TLS-encodes the `DigitallySigned` signature with `DigitallySigned.marshal()`.

## What this package does not do

This package does not:

- fetch issuer keys or verify token signatures; the `authorize` callable must do that
- create or sign certificates
- talk to a Certificate Transparency log
- provide a server or a command-line tool