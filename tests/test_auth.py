"""Unit tests for token parsing and credential verifiers."""

import pytest

from crudgate.core.auth import (
    ApiKeyCredentialVerifier,
    PassthroughCredentialVerifier,
    extract_token,
    parse_api_keys,
)
from crudgate.core.errors import UnauthenticatedError


class TestParseAPIKeys:
    """Test API key parsing utility function."""

    def test_parse_single_key(self) -> None:
        assert parse_api_keys("my-secret-key") == {"my-secret-key"}

    def test_parse_keys_with_whitespace(self) -> None:
        """Test that whitespace is trimmed from keys."""
        assert parse_api_keys("key1 , key2  ,  key3") == {"key1", "key2", "key3"}

    @pytest.mark.parametrize("raw", [None, "", "   ,  ,  "])
    def test_parse_empty_input_returns_empty_set(self, raw) -> None:
        assert parse_api_keys(raw) == set()

    def test_parse_removes_duplicate_keys(self) -> None:
        assert parse_api_keys("key1,key2,key1,key3,key2") == {"key1", "key2", "key3"}


class TestExtractToken:
    def test_strips_bearer_scheme(self) -> None:
        assert extract_token("Bearer abc.def") == "abc.def"

    def test_bare_token_is_kept(self) -> None:
        assert extract_token("  abc  ") == "abc"

    def test_scheme_without_token_is_empty(self) -> None:
        assert extract_token("Bearer    ") == ""


class TestPassthroughCredentialVerifier:
    def test_same_token_maps_to_same_principal(self) -> None:
        verifier = PassthroughCredentialVerifier()

        first = verifier.verify("token-a")

        assert first == verifier.verify("token-a")
        assert first.id.startswith("user-")
        assert first.id != verifier.verify("token-b").id

    def test_empty_token_is_rejected(self) -> None:
        with pytest.raises(UnauthenticatedError) as exc_info:
            PassthroughCredentialVerifier().verify("")

        assert exc_info.value.code == "invalid_token"


class TestApiKeyCredentialVerifier:
    def test_accepts_configured_key(self) -> None:
        principal = ApiKeyCredentialVerifier({"valid-key"}).verify("valid-key")

        assert principal.id.startswith("key-")
        assert principal.token == "valid-key"

    def test_rejects_unknown_key(self) -> None:
        with pytest.raises(UnauthenticatedError) as exc_info:
            ApiKeyCredentialVerifier({"valid-key"}).verify("other-key")

        assert exc_info.value.code == "invalid_api_key"

    def test_rejects_everything_without_configured_keys(self, memory_log) -> None:
        log, handler = memory_log

        with pytest.raises(UnauthenticatedError) as exc_info:
            ApiKeyCredentialVerifier(set(), log=log).verify("any")

        assert exc_info.value.code == "api_keys_not_configured"
        assert exc_info.value.details is not None
        assert "APP_API_KEYS" in exc_info.value.details["hint"]
        assert handler.error_records()
