"""Authorization header handling.

The auth handler only checks that a credential is present and hands it to a
pluggable ``CredentialVerifier``. Verification strength is the verifier's
concern; none of the verifiers here perform any cryptography.

Design principles:
- Single Responsibility: the handler extracts, the verifier decides
- Dependency Injection: verifier and logger are passed in at construction
- Configuration-driven: accepted keys come from settings, not code
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable

from crudgate.core.errors import UnauthenticatedError
from crudgate.core.pipeline import CallNext, MiddlewareContext

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def _hash_token(token: str) -> str:
    """Hash a credential for logging and ids without exposing it."""
    return hashlib.sha256(token.encode()).hexdigest()[:16]


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Args:
        keys_string: Comma-separated string of API keys, or None.

    Returns:
        Set of trimmed, non-empty API keys.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ") == {"key1", "key2", "key3"}
        True
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def extract_token(header_value: str) -> str:
    """Strip an optional ``Bearer`` scheme from an Authorization value."""
    if header_value.startswith(BEARER_PREFIX):
        return header_value[len(BEARER_PREFIX):].strip()
    return header_value.strip()


@dataclass(frozen=True)
class Principal:
    """Identity attached to a request after authentication."""

    id: str
    token: str

    def __repr__(self) -> str:
        return f"Principal(id={self.id!r})"


class CredentialVerifier(ABC):
    """Decide whether a presented token identifies a principal."""

    @abstractmethod
    def verify(self, token: str) -> Principal:
        """Return the principal for ``token``.

        Raises:
            UnauthenticatedError: If the token is not accepted.
        """
        raise NotImplementedError


class PassthroughCredentialVerifier(CredentialVerifier):
    """Accept any non-empty token and derive a stable principal id from it."""

    def verify(self, token: str) -> Principal:
        if not token:
            raise UnauthenticatedError(code="invalid_token", message="Invalid token")
        return Principal(id=f"user-{_hash_token(token)}", token=token)


class ApiKeyCredentialVerifier(CredentialVerifier):
    """Accept only tokens from a configured key set."""

    def __init__(self, keys: Iterable[str], *, log: logging.Logger | None = None) -> None:
        self._keys = frozenset(keys)
        self._log = log or logger

    def verify(self, token: str) -> Principal:
        if not self._keys:
            self._log.error(
                "api_key_validation_failed",
                extra={"reason": "api_keys_not_configured"},
            )
            raise UnauthenticatedError(
                code="api_keys_not_configured",
                message="API key authentication is enabled but no valid keys are configured",
                details={"hint": "Set APP_API_KEYS or disable auth with APP_AUTH_REQUIRED=false"},
            )

        token_hash = _hash_token(token)
        if token not in self._keys:
            self._log.warning(
                "api_key_validation_failed",
                extra={"reason": "invalid_api_key", "token_hash": token_hash},
            )
            raise UnauthenticatedError(code="invalid_api_key", message="Invalid or missing API key")

        return Principal(id=f"key-{token_hash}", token=token)


class AuthHandler:
    """Pipeline handler requiring an Authorization header.

    Missing header, empty token and rejected token each end the chain with a
    401. On success the principal is attached to the context.
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        *,
        required: bool = True,
        exempt_paths: Iterable[str] = (),
        log: logging.Logger | None = None,
    ) -> None:
        self._verifier = verifier
        self._required = required
        self._exempt_paths = frozenset(exempt_paths)
        self._log = log or logger

    async def __call__(self, ctx: MiddlewareContext, call_next: CallNext) -> None:
        if not self._required or ctx.request.path in self._exempt_paths:
            await call_next()
            return

        auth_header = ctx.request.header("Authorization")
        if not auth_header:
            self._log.warning(
                "auth.missing_header",
                extra={"request_path": ctx.request.path, "client_key": ctx.client_key},
            )
            ctx.respond(401, {"error": "No authorization header"})
            return

        token = extract_token(auth_header)
        if not token:
            self._log.warning("auth.empty_token", extra={"request_path": ctx.request.path})
            ctx.respond(401, {"error": "Invalid token"})
            return

        try:
            principal = self._verifier.verify(token)
        except UnauthenticatedError as exc:
            self._log.warning(
                "auth.rejected",
                extra={"reason": exc.code, "token_hash": _hash_token(token)},
            )
            ctx.respond(401, {"error": "Authentication failed"})
            return

        ctx.principal = principal
        self._log.debug("auth.success", extra={"principal_id": principal.id})
        await call_next()
