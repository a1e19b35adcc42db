"""Stateless proof-of-work challenges for expensive actions.

A challenge is 16 random bytes (base64, no padding). The server signs it
together with its expiry::

    token = b64(HMAC-SHA256(secret, challenge || be_u64(expires_at))) + "." + b64(be_u64(expires_at))

Nothing is stored. On submission the server re-derives the MAC from the
challenge and the expiry carried in the token, so tampering with either one
breaks the signature. The client must find a nonce such that
``SHA-256(b64decode(challenge) || nonce)`` starts with ``difficulty`` zero
bits: about ``2 ** difficulty`` hashes on average, while verification is a
single hash.

Without single-use mode a solved token can be presented again until it
expires. That bounded replay window is the price of keeping no state; the
optional ``SpentTokenCache`` closes it per process.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
import struct
import time
from dataclasses import dataclass
from typing import Callable

from gatehouse.core.config import PowSettings
from gatehouse.core.errors import (
    PowExpiredAppError,
    PowInsufficientWorkAppError,
    PowMalformedAppError,
    PowMissingAppError,
    PowReplayAppError,
    PowSignatureAppError,
)
from gatehouse.utils.spent_token_cache import SpentTokenCache

logger = logging.getLogger(__name__)

CHALLENGE_BYTES = 16
TOKEN_SEPARATOR = "."
_EXPIRY = struct.Struct(">Q")


def b64encode_raw(data: bytes) -> str:
    """Standard base64 alphabet without padding."""
    return base64.b64encode(data).decode("ascii").rstrip("=")


def b64decode_raw(value: str) -> bytes:
    """Inverse of ``b64encode_raw``. Raises ValueError on bad input."""
    if "=" in value:
        raise ValueError("padding is not allowed")
    padded = value + "=" * (-len(value) % 4)
    return base64.b64decode(padded, validate=True)


def leading_zero_bits(digest: bytes) -> int:
    """Count zero bits from the most significant bit of the first byte."""
    zeros = 0
    for byte in digest:
        if byte == 0:
            zeros += 8
            continue
        zeros += 8 - byte.bit_length()
        break
    return zeros


def solution_digest(challenge: str, nonce: str) -> bytes:
    """SHA-256 over the decoded challenge bytes followed by the nonce."""
    return hashlib.sha256(b64decode_raw(challenge) + nonce.encode()).digest()


def meets_difficulty(challenge: str, nonce: str, difficulty: int) -> bool:
    try:
        digest = solution_digest(challenge, nonce)
    except ValueError:
        return False
    return leading_zero_bits(digest) >= difficulty


def solve(challenge: str, difficulty: int, max_attempts: int = 10_000_000) -> str | None:
    """Brute-force a nonce for a challenge.

    Warning: this is CPU-intensive; it is what clients do, not the server.
    """
    prefix = b64decode_raw(challenge)
    for attempt in range(max_attempts):
        nonce = str(attempt)
        digest = hashlib.sha256(prefix + nonce.encode()).digest()
        if leading_zero_bits(digest) >= difficulty:
            return nonce
    return None


def sign_challenge(key: bytes, challenge: str, expiry_raw: bytes) -> bytes:
    return hmac.new(key, challenge.encode() + expiry_raw, hashlib.sha256).digest()


@dataclass(frozen=True)
class PowConfig:
    """Immutable engine configuration."""

    enable: bool
    difficulty: int
    ttl_seconds: int
    secret_key: bytes

    @classmethod
    def from_settings(cls, pow_settings: PowSettings) -> "PowConfig":
        return cls(
            enable=pow_settings.enable,
            difficulty=pow_settings.difficulty,
            ttl_seconds=pow_settings.ttl_seconds,
            secret_key=pow_settings.secret_key.encode(),
        )

    @property
    def bypass_reason(self) -> str | None:
        """Why verification is skipped, or None when it is enforced."""
        if not self.enable:
            return "disabled"
        if self.difficulty <= 0:
            return "zero_difficulty"
        if self.ttl_seconds <= 0:
            return "non_positive_ttl"
        if not self.secret_key:
            return "empty_secret"
        return None


@dataclass(frozen=True)
class PowChallenge:
    """A freshly issued challenge as sent to the client."""

    challenge: str
    difficulty: int
    ttl_secs: int
    token: str
    expires_at: int

    def to_payload(self) -> dict[str, str | int]:
        return {
            "challenge": self.challenge,
            "difficulty": self.difficulty,
            "ttl_secs": self.ttl_secs,
            "token": self.token,
        }


class ProofOfWorkEngine:
    """Issue and verify signed proof-of-work challenges.

    The engine holds only immutable configuration (plus the optional spent
    token cache, which synchronises itself), so it is safe to share between
    concurrent requests.
    """

    def __init__(
        self,
        config: PowConfig,
        *,
        clock: Callable[[], float] = time.time,
        spent_tokens: SpentTokenCache | None = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._spent_tokens = spent_tokens

        reason = config.bypass_reason
        if reason == "disabled":
            logger.info("pow.verification_bypassed", extra={"reason": reason})
        elif reason is not None:
            logger.warning("pow.verification_bypassed", extra={"reason": reason})

    @property
    def config(self) -> PowConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        """Whether challenges are issued at all."""
        return self._config.enable

    @property
    def enforced(self) -> bool:
        """Whether ``verify`` actually checks anything."""
        return self._config.bypass_reason is None

    def issue(self) -> PowChallenge | None:
        """Create a signed challenge, or None when the feature is off."""
        if not self._config.enable:
            return None

        challenge = b64encode_raw(secrets.token_bytes(CHALLENGE_BYTES))
        now = int(self._clock())
        expires_at = now + self._config.ttl_seconds
        expiry_raw = _EXPIRY.pack(max(expires_at, 0))
        mac = sign_challenge(self._config.secret_key, challenge, expiry_raw)
        token = b64encode_raw(mac) + TOKEN_SEPARATOR + b64encode_raw(expiry_raw)

        return PowChallenge(
            challenge=challenge,
            difficulty=self._config.difficulty,
            ttl_secs=expires_at - now,
            token=token,
            expires_at=expires_at,
        )

    def parse_token(self, challenge: str, token: str) -> int:
        """Check the token signature against the challenge.

        Returns:
            The signed expiry (UNIX seconds).

        Raises:
            PowMalformedAppError: Challenge is not ASCII, or the token is not
                two base64 segments with an 8-byte expiry.
            PowSignatureAppError: MAC does not match.
        """
        # Issued challenges are base64; anything else cannot be signed.
        if not challenge.isascii():
            raise PowMalformedAppError(code="pow_malformed", message="invalid challenge encoding")

        parts = token.split(TOKEN_SEPARATOR)
        if len(parts) != 2:
            raise PowMalformedAppError(code="pow_malformed", message="invalid token format")

        try:
            mac = b64decode_raw(parts[0])
            expiry_raw = b64decode_raw(parts[1])
        except ValueError as exc:
            raise PowMalformedAppError(
                code="pow_malformed", message="invalid token encoding"
            ) from exc

        if len(expiry_raw) != _EXPIRY.size:
            raise PowMalformedAppError(code="pow_malformed", message="invalid token expiry")

        expected = sign_challenge(self._config.secret_key, challenge, expiry_raw)
        if not hmac.compare_digest(expected, mac):
            raise PowSignatureAppError(code="pow_bad_signature", message="invalid proof of work")

        return _EXPIRY.unpack(expiry_raw)[0]

    def verify(self, challenge: str, nonce: str, token: str) -> None:
        """Accept a solution or raise the matching ``ProofOfWorkAppError``.

        Under a bypassing configuration every submission is accepted.
        """
        if self._config.bypass_reason is not None:
            return

        if not challenge or not nonce or not token:
            raise PowMissingAppError(code="pow_required", message="proof of work required")

        expires_at = self.parse_token(challenge, token)

        if int(self._clock()) > expires_at:
            raise PowExpiredAppError(code="pow_expired", message="proof of work challenge expired")

        if not meets_difficulty(challenge, nonce, self._config.difficulty):
            raise PowInsufficientWorkAppError(
                code="pow_insufficient", message="invalid proof of work"
            )

        if self._spent_tokens is not None and not self._spent_tokens.mark_spent(token, expires_at):
            raise PowReplayAppError(code="pow_replayed", message="proof of work already used")
