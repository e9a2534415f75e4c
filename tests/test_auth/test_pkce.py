"""Tests for PKCE pair and CSRF state generation."""

from __future__ import annotations

import base64
import hashlib
import re

from desklogin.auth.pkce import PKCEPair, generate_pkce_pair, new_state, pkce_challenge

_UNRESERVED = re.compile(r"^[A-Za-z0-9\-._~]+$")


class TestPKCE:
    def test_verifier_length_within_rfc_bounds(self) -> None:
        pair = generate_pkce_pair()
        assert 43 <= len(pair.verifier) <= 128

    def test_verifier_uses_unreserved_characters(self) -> None:
        pair = generate_pkce_pair()
        assert _UNRESERVED.match(pair.verifier)

    def test_challenge_is_s256_of_verifier(self) -> None:
        pair = generate_pkce_pair()
        digest = hashlib.sha256(pair.verifier.encode("ascii")).digest()
        expected = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        assert pair.challenge == expected
        assert "=" not in pair.challenge

    def test_rfc7636_appendix_b_vector(self) -> None:
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert pkce_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_pairs_are_unique(self) -> None:
        pairs = {generate_pkce_pair().verifier for _ in range(50)}
        assert len(pairs) == 50

    def test_pair_is_named_tuple(self) -> None:
        verifier, challenge = generate_pkce_pair()
        assert isinstance(PKCEPair(verifier, challenge), tuple)


class TestState:
    def test_state_has_256_bits(self) -> None:
        # 32 random bytes encode to 43 base64url characters.
        assert len(new_state()) == 43

    def test_state_is_url_safe(self) -> None:
        assert _UNRESERVED.match(new_state())

    def test_states_are_unique(self) -> None:
        assert len({new_state() for _ in range(50)}) == 50
