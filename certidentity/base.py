"""An issuer that matches URLs, including wildcard meta-issuer URLs."""

from __future__ import annotations

import re
from dataclasses import dataclass

from certidentity.identity import IdentityError, Issuer, Principal, _Authorize

_WILDCARD_SEGMENT = "[-_a-zA-Z0-9]+"


def meta_regex(issuer: str) -> re.Pattern[str]:
    """Compile an issuer URL in which each ``*`` matches one URL-safe segment."""
    quoted = re.escape(issuer)
    return re.compile(quoted.replace(re.escape("*"), _WILDCARD_SEGMENT))


@dataclass(frozen=True)
class BaseIssuer(Issuer):
    """Matches issuer URLs; concrete issuers add authentication."""

    issuer_url: str

    def match(self, url: str) -> bool:
        if url == self.issuer_url:
            return True
        try:
            pattern = meta_regex(self.issuer_url)
        except re.error:
            return False
        return pattern.search(url) is not None

    def authenticate(self, token: str, authorize: _Authorize) -> Principal:
        raise IdentityError("authentication is not supported by the base issuer")