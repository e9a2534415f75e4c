"""PKCE verifier/challenge pairs and CSRF state tokens.

Both values come from :mod:`secrets`. A failure to obtain secure
randomness propagates; there is no fallback source.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import NamedTuple


class PKCEPair(NamedTuple):
    """PKCE code verifier and its ``S256`` challenge."""

    verifier: str
    challenge: str


def pkce_challenge(verifier: str) -> str:
    """Return ``base64url(SHA-256(verifier))`` without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> PKCEPair:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A :class:`PKCEPair`. The verifier is 86 characters from the
        unreserved set, within RFC 7636's 43-128 bound.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    verifier = secrets.token_urlsafe(64)[:128]
    return PKCEPair(verifier=verifier, challenge=pkce_challenge(verifier))


def new_state() -> str:
    """Generate an unguessable anti-forgery ``state`` token (256 bits)."""
    return secrets.token_urlsafe(32)
