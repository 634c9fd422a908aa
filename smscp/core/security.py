"""
Security Primitives.

Password hashing (bcrypt) and signed claim tokens (JWT, HMAC).

Claim tokens are capabilities: they name one user, one note, or one
password-reset request. They are never stored and never expire here;
callers always re-resolve the named entity against storage before
trusting a token.
"""

import hmac
from collections.abc import Mapping
from typing import Any

import bcrypt
from jose import JWTError, jwt
from jose.utils import base64url_decode, base64url_encode

from smscp.core.exceptions import (
    AuthenticationError,
    InvalidTokenError,
    UpstreamError,
    ValidationError,
)
from smscp.core.logging import get_logger

logger = get_logger(__name__)

USER_KIND = "user"
NOTE_KIND = "note"
PASSWORD_RESET = "password_reset"

# bcrypt only reads this many bytes of input
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """One-way password hashing with a per-call random salt."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """
        Hash a password using bcrypt.

        Raises:
            ValidationError: If the password is longer than bcrypt accepts
            UpstreamError: If bcrypt rejects the input
        """
        password = plaintext.encode("utf-8")
        if len(password) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                "Password is too long",
                details={"max_bytes": MAX_PASSWORD_BYTES},
            )
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            return bcrypt.hashpw(password, salt).decode("utf-8")
        except ValueError as e:
            logger.warning("Password hashing failed", extra={"error": str(e)})
            raise UpstreamError("Password could not be hashed") from e

    def compare(self, plaintext: str, digest: str) -> None:
        """
        Verify a password against its hash in constant time.

        A password bcrypt could never have hashed cannot match.

        Raises:
            AuthenticationError: If the password does not match
            UpstreamError: If the stored digest is not a bcrypt hash
        """
        password = plaintext.encode("utf-8")
        if len(password) > MAX_PASSWORD_BYTES:
            raise AuthenticationError("Password does not match")
        try:
            matched = bcrypt.checkpw(password, digest.encode("utf-8"))
        except ValueError as e:
            logger.warning("Password comparison failed", extra={"error": str(e)})
            raise UpstreamError("Stored password hash is unusable") from e
        if not matched:
            raise AuthenticationError("Password does not match")


class TokenService:
    """
    Issues and verifies signed claim tokens.

    Every token carries the configured audience, which verify() checks
    and strips, so verify(issue(claims)) == claims.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", audience: str = "smscp") -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm
        self.audience = audience

    def issue(self, claims: Mapping[str, Any]) -> str:
        """
        Sign claims into a token string.

        Raises:
            UpstreamError: If signing fails
        """
        payload = dict(claims)
        payload["aud"] = self.audience
        try:
            return jwt.encode(payload, self._secret, algorithm=self.algorithm)
        except (JWTError, TypeError, ValueError) as e:
            logger.error("Token signing failed", extra={"error": str(e)})
            raise UpstreamError("Token could not be signed") from e

    def verify(self, token: str) -> dict[str, Any]:
        """
        Decode a token and check its signature and audience.

        No claim is assumed to be present; use the *_from helpers to
        check for the claims a caller expects.

        Raises:
            InvalidTokenError: If the token is malformed or its signature is bad
        """
        if not isinstance(token, str) or token.count(".") != 2:
            raise InvalidTokenError("Malformed token")
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                audience=self.audience,
            )
        except JWTError as e:
            logger.info("Token rejected", extra={"error": str(e)})
            raise InvalidTokenError("Invalid token") from e

        # a signature segment with altered padding bits still decodes
        signature = token.rsplit(".", 1)[1].encode("ascii", errors="replace")
        if not hmac.compare_digest(base64url_encode(base64url_decode(signature)), signature):
            raise InvalidTokenError("Invalid token signature encoding")

        claims.pop("aud", None)
        return claims

    # -------------------------------------------------------------------------
    # Claim builders
    # -------------------------------------------------------------------------

    @staticmethod
    def user_claims(user_id: int) -> dict[str, Any]:
        return {"kind": USER_KIND, "id": user_id}

    @staticmethod
    def note_claims(note_id: int) -> dict[str, Any]:
        return {"kind": NOTE_KIND, "id": note_id}

    @staticmethod
    def reset_claims(user_id: int, issued_at: int) -> dict[str, Any]:
        return {"purpose": PASSWORD_RESET, "user_id": user_id, "issued_at": issued_at}

    # -------------------------------------------------------------------------
    # Claim readers
    # -------------------------------------------------------------------------

    def user_id_from(self, token: str) -> int:
        """Return the id named by a user token."""
        return self._entity_id(self.verify(token), USER_KIND)

    def note_id_from(self, token: str) -> int:
        """Return the id named by a note token."""
        return self._entity_id(self.verify(token), NOTE_KIND)

    def reset_user_id_from(self, token: str) -> int:
        """Return the user id named by a password-reset token."""
        claims = self.verify(token)
        if claims.get("purpose") != PASSWORD_RESET:
            raise InvalidTokenError("Token is not a password reset token")
        return _require_int(claims, "user_id")

    @staticmethod
    def _entity_id(claims: dict[str, Any], kind: str) -> int:
        if claims.get("kind") != kind:
            raise InvalidTokenError(f"Token does not name a {kind}")
        return _require_int(claims, "id")


def _require_int(claims: dict[str, Any], key: str) -> int:
    value = claims.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidTokenError(f"Token claim '{key}' missing or malformed")
    return value
