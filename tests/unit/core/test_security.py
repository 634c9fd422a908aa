"""
Unit Tests for Security Module.

Black box tests against the public interface of security.py.
All cryptographic operations (bcrypt, JWT) execute for real.
"""

from unittest.mock import patch

import pytest

from smscp.core.exceptions import (
    AuthenticationError,
    InvalidTokenError,
    UpstreamError,
    ValidationError,
)
from smscp.core.security import PasswordHasher, TokenService

TEST_SECRET = "test-secret-key-that-is-long-enough-for-testing-purposes"


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def service() -> TokenService:
    return TokenService(TEST_SECRET, algorithm="HS256", audience="test-api")


# =============================================================================
# Password Hashing
# =============================================================================


class TestPasswordHasher:
    """Tests for password hashing and comparison, no mocks."""

    def test_returns_bcrypt_formatted_hash(self, hasher):
        result = hasher.hash("password123")
        assert result.startswith("$2b$04$")
        assert "password123" not in result

    def test_same_password_produces_different_hashes(self, hasher):
        """Bcrypt salts each hash, so two calls must differ."""
        assert hasher.hash("identical") != hasher.hash("identical")

    def test_compare_accepts_original(self, hasher):
        digest = hasher.hash("correct-horse-battery-staple")
        assert hasher.compare("correct-horse-battery-staple", digest) is None

    @pytest.mark.parametrize("attempt", ["wrong", "", "pw12", "pw1234", "PW123", " pw123"])
    def test_compare_rejects_other_plaintexts(self, hasher, attempt):
        digest = hasher.hash("pw123")
        with pytest.raises(AuthenticationError):
            hasher.compare(attempt, digest)

    def test_compare_with_garbage_digest_raises_upstream_error(self, hasher):
        with pytest.raises(UpstreamError):
            hasher.compare("pw123", "not-a-bcrypt-hash")

    def test_hash_failure_raises_upstream_error(self, hasher):
        with patch("smscp.core.security.bcrypt.hashpw", side_effect=ValueError("too long")):
            with pytest.raises(UpstreamError):
                hasher.hash("pw123")

    def test_unicode_password_round_trips(self, hasher):
        digest = hasher.hash("pässwörd-日本")
        hasher.compare("pässwörd-日本", digest)

    def test_password_over_72_bytes_is_rejected_as_invalid_input(self, hasher):
        with pytest.raises(ValidationError, match="too long"):
            hasher.hash("x" * 100)

    def test_multibyte_password_is_measured_in_bytes(self, hasher):
        with pytest.raises(ValidationError):
            hasher.hash("日" * 25)

    def test_password_of_exactly_72_bytes_hashes(self, hasher):
        digest = hasher.hash("x" * 72)
        hasher.compare("x" * 72, digest)

    def test_compare_with_overlong_password_is_a_mismatch(self, hasher):
        digest = hasher.hash("pw123")
        with pytest.raises(AuthenticationError):
            hasher.compare("x" * 100, digest)


# =============================================================================
# Claim Tokens
# =============================================================================


class TestTokenService:
    """Tests for token issue and verify."""

    def test_empty_secret_is_rejected(self):
        with pytest.raises(ValueError):
            TokenService("")

    def test_verify_returns_issued_claims(self, service):
        claims = {"kind": "user", "id": 42, "extra": "value"}
        assert service.verify(service.issue(claims)) == claims

    def test_empty_claims_round_trip(self, service):
        assert service.verify(service.issue({})) == {}

    def test_mutating_any_character_fails_verification(self, service):
        token = service.issue(service.user_claims(7))

        for i, char in enumerate(token):
            if char == ".":
                continue
            replacement = "A" if char != "A" else "B"
            mutated = token[:i] + replacement + token[i + 1:]
            with pytest.raises(InvalidTokenError):
                service.verify(mutated)

    def test_token_from_other_secret_is_rejected(self, service):
        other = TokenService("another-secret-that-is-also-long-enough", audience="test-api")
        with pytest.raises(InvalidTokenError):
            service.verify(other.issue({"kind": "user", "id": 1}))

    def test_token_for_other_audience_is_rejected(self, service):
        other = TokenService(TEST_SECRET, audience="someone-else")
        with pytest.raises(InvalidTokenError):
            service.verify(other.issue({"kind": "user", "id": 1}))

    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "...."])
    def test_malformed_token_is_rejected(self, service, token):
        with pytest.raises(InvalidTokenError):
            service.verify(token)

    def test_invalid_token_error_is_an_authentication_error(self, service):
        with pytest.raises(AuthenticationError):
            service.verify("a.b.c")


class TestClaimReaders:
    """Tests for the typed claim helpers."""

    def test_user_id_from_user_token(self, service):
        assert service.user_id_from(service.issue(service.user_claims(5))) == 5

    def test_note_id_from_note_token(self, service):
        assert service.note_id_from(service.issue(service.note_claims(9))) == 9

    def test_user_reader_rejects_note_token(self, service):
        with pytest.raises(InvalidTokenError):
            service.user_id_from(service.issue(service.note_claims(9)))

    def test_note_reader_rejects_user_token(self, service):
        with pytest.raises(InvalidTokenError):
            service.note_id_from(service.issue(service.user_claims(5)))

    @pytest.mark.parametrize("value", ["5", 5.0, True, None])
    def test_non_integer_id_is_rejected(self, service, value):
        token = service.issue({"kind": "user", "id": value})
        with pytest.raises(InvalidTokenError):
            service.user_id_from(token)

    def test_missing_id_is_rejected(self, service):
        with pytest.raises(InvalidTokenError):
            service.user_id_from(service.issue({"kind": "user"}))

    def test_reset_claims_round_trip(self, service):
        claims = service.reset_claims(3, 1700000000)
        assert service.verify(service.issue(claims)) == {
            "purpose": "password_reset",
            "user_id": 3,
            "issued_at": 1700000000,
        }
        assert service.reset_user_id_from(service.issue(claims)) == 3

    def test_reset_reader_rejects_user_token(self, service):
        with pytest.raises(InvalidTokenError):
            service.reset_user_id_from(service.issue(service.user_claims(3)))
