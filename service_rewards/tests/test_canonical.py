"""
Tests for canonical message reconstruction.
"""

import pytest

from service_rewards.app.verification.canonical import MessageCanonicalizer, canonicalize


class TestMessageCanonicalizer:
    """Test cases for MessageCanonicalizer."""

    def test_removes_trailing_signature(self):
        query = "ad_network=x&key_id=K1&signature=SIG1"

        assert canonicalize(query) == b"ad_network=x&key_id=K1"

    def test_removes_signature_anywhere(self):
        """Only the signature token goes; the rest keep their relative order."""
        query = "b=2&signature=SIG&a=1&key_id=K1"

        assert canonicalize(query) == b"b=2&a=1&key_id=K1"

    def test_removes_every_signature_token(self):
        query = "signature=A&x=1&signature=B"

        assert canonicalize(query) == b"x=1"

    def test_preserves_original_encoding(self):
        """Percent escapes, plus signs and hex case are left as sent."""
        query = "custom_data=a%2Fb+c%3d&reward_item=Gold%20Coins&key_id=1&signature=abc"

        assert canonicalize(query) == b"custom_data=a%2Fb+c%3d&reward_item=Gold%20Coins&key_id=1"

    def test_keeps_parameters_that_only_start_with_signature(self):
        """A parameter is dropped only when its name is exactly ``signature``."""
        query = "signature_version=2&signatures=3&xsignature=4&signature=SIG"

        assert canonicalize(query) == b"signature_version=2&signatures=3&xsignature=4"

    def test_drops_bare_signature_token(self):
        assert canonicalize("a=1&signature") == b"a=1"

    def test_keeps_empty_tokens(self):
        """Stray separators are part of what was signed."""
        assert canonicalize("a=1&&b=2&signature=S") == b"a=1&&b=2"

    @pytest.mark.parametrize("query", [None, "", b""])
    def test_no_query_string_is_empty(self, query):
        assert canonicalize(query) == b""

    def test_only_signature_is_empty(self):
        assert canonicalize("signature=SIG") == b""

    def test_accepts_bytes(self):
        assert canonicalize(b"a=1&signature=S&b=%E2%82%AC") == b"a=1&b=%E2%82%AC"

    def test_raw_non_ascii_bytes_survive(self):
        """Bytes that are not valid UTF-8 come back unchanged."""
        raw = b"name=\xff\xfe&signature=S"

        assert canonicalize(raw) == b"name=\xff\xfe"

    def test_custom_signature_param(self):
        canonicalizer = MessageCanonicalizer(signature_param=b"sig")

        assert canonicalizer.canonicalize("a=1&sig=X&signature=Y") == b"a=1&signature=Y"
