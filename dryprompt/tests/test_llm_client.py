"""Tests for LLMClient provider abstraction and error translation."""

import pytest
from unittest.mock import Mock


class TestLLMClientInit:
    def test_missing_anthropic_key_logs_info(self, caplog):
        import logging
        from dryprompt.common.llm_client import LLMClient
        with caplog.at_level(logging.INFO, logger="dryprompt.common.llm_client"):
            client = LLMClient(provider="anthropic")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_missing_openai_key_logs_info(self, caplog):
        import logging
        from dryprompt.common.llm_client import LLMClient
        with caplog.at_level(logging.INFO, logger="dryprompt.common.llm_client"):
            client = LLMClient(provider="openai")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_unsupported_provider_logs_warning(self, caplog):
        import logging
        from dryprompt.common.llm_client import LLMClient
        with caplog.at_level(logging.WARNING, logger="dryprompt.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz")
        assert not client.is_available
        assert "Unsupported" in caplog.text


class TestLLMClientGenerate:
    def test_generate_raises_when_unavailable(self):
        from dryprompt.common.llm_client import LLMClient
        client = LLMClient(provider="openai")
        with pytest.raises(RuntimeError, match="not available"):
            client.generate("test")

    def test_openai_generate_uses_chat_completions(self):
        from dryprompt.common.llm_client import LLMClient
        client = LLMClient(provider="openai", model="gpt-4o")
        response = Mock()
        response.choices = [Mock(message=Mock(content="  Replacement: Explain this code:  "))]
        client._client = Mock()
        client._client.chat.completions.create.return_value = response

        text = client.generate("prompt")

        assert text == "Replacement: Explain this code:"
        kwargs = client._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1000
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    def test_anthropic_generate_uses_messages(self):
        from dryprompt.common.llm_client import LLMClient
        client = LLMClient(provider="anthropic", model="claude-x")
        response = Mock()
        response.content = [Mock(text="answer")]
        client._client = Mock()
        client._client.messages.create.return_value = response

        assert client.generate("prompt", system="be brief") == "answer"
        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "be brief"


class TestComplete:
    def _client_raising(self, exc):
        from dryprompt.common.llm_client import LLMClient
        client = LLMClient(provider="openai")
        client._client = Mock()
        client._client.chat.completions.create.side_effect = exc
        return client

    def test_auth_failure_becomes_auth_error(self):
        from dryprompt.common.errors import AuthError

        class AuthenticationError(Exception):
            status_code = 401

        client = self._client_raising(AuthenticationError("Incorrect API key provided"))
        with pytest.raises(AuthError):
            client.complete("prompt")

    def test_rate_limit_becomes_rate_limit_error(self):
        from dryprompt.common.errors import RateLimitError

        class RateLimit(Exception):
            status_code = 429

        client = self._client_raising(RateLimit("slow down"))
        with pytest.raises(RateLimitError):
            client.complete("prompt")

    def test_unavailable_client_keeps_runtime_error(self):
        from dryprompt.common.llm_client import LLMClient
        with pytest.raises(RuntimeError, match="not available"):
            LLMClient(provider="openai").complete("prompt")


class TestTranslateProviderError:
    def test_quota_code(self):
        from dryprompt.common.errors import QuotaError, translate_provider_error

        class APIError(Exception):
            code = "insufficient_quota"

        assert isinstance(translate_provider_error(APIError("x")), QuotaError)

    def test_quota_message(self):
        from dryprompt.common.errors import QuotaError, translate_provider_error
        err = translate_provider_error(Exception("You exceeded your current quota"))
        assert isinstance(err, QuotaError)
        assert err.kind == "quota"

    def test_permission_denied_is_auth(self):
        from dryprompt.common.errors import AuthError, translate_provider_error

        class PermissionDeniedError(Exception):
            pass

        assert isinstance(translate_provider_error(PermissionDeniedError("no")), AuthError)

    def test_unknown_is_generic_provider_error(self):
        from dryprompt.common.errors import (
            AuthError, ProviderError, QuotaError, RateLimitError, translate_provider_error,
        )
        err = translate_provider_error(ConnectionError("reset by peer"))
        assert type(err) is ProviderError
        assert err.kind == "other"
        assert not isinstance(err, (AuthError, QuotaError, RateLimitError))

    def test_provider_errors_pass_through(self):
        from dryprompt.common.errors import AuthError, translate_provider_error
        original = AuthError("bad key")
        assert translate_provider_error(original) is original
