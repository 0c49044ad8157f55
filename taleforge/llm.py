"""LLM client - HTTP connection to a text-generation backend.

The pipeline injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str, *,
                       system_prompt: str = "",
                       sampling: SamplingParams | None = None) -> str: ...

`stage` identifies which pipeline stage is calling (e.g. "narrator"). The
implementation may use it for logging or routing; the simplest
implementation ignores it.

Two implementations are provided:

    HttpLLM   - real HTTP client, supports OpenAI-compatible chat
                 completions (DeepSeek by default) and KoboldCpp backends.
                 Selected by provider_format.
    EchoLLM   - returns the prompt back unchanged. Useful for smoke-testing
                 the pipeline wiring without a running model.

Production code constructs an HttpLLM from config (see llm_from_config) and
hands it to the NarrativeGenerator. Tests use the StubLLM from conftest.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class SamplingParams(BaseModel):
    """Sampling settings sent with every generation request."""

    temperature: float = 0.8
    top_p: float = 0.9
    frequency_penalty: float = 0.3
    presence_penalty: float = 0.3
    max_tokens: int = 800


# ---------------------------------------------------------------------------
# Protocol - every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self,
        stage: str,
        prompt: str,
        *,
        system_prompt: str = "",
        sampling: SamplingParams | None = None,
    ) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM - connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["openai", "koboldcpp"]


class HttpLLM:
    """Async HTTP client for text-generation backends.

    Supported formats:
      "openai"     - POST /v1/chat/completions
                     {"model": ..., "messages": [...], sampling fields}
                     Response: {"choices": [{"message": {"content": "..."}}]}
      "koboldcpp"  - POST /api/v1/generate  {"prompt": ..., "max_length": ...}
                     Response: {"results": [{"text": "..."}]}

    Args:
        provider_url:     Base URL of the backend, e.g. "https://api.deepseek.com".
        api_key:          Bearer token, or empty string if not required.
        provider_format:  Wire format to use. Defaults to "openai".
        model:            Model identifier, used only by the openai format.
        timeout:          HTTP timeout in seconds. Defaults to 120.
        require_api_key:  Fail before any network call when api_key is empty.
                          Defaults to True for the openai format.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "deepseek-chat",
        timeout: float = 120.0,
        require_api_key: bool | None = None,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout
        if require_api_key is None:
            require_api_key = provider_format == "openai"
        self._require_api_key = require_api_key

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(
        self, prompt: str, system_prompt: str, sampling: SamplingParams
    ) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "koboldcpp":
            url = f"{self._base_url}/api/v1/generate"
            full_prompt = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
            return url, {
                "prompt": full_prompt,
                "max_length": sampling.max_tokens,
                "temperature": sampling.temperature,
                "top_p": sampling.top_p,
            }

        # openai (default)
        url = f"{self._base_url}/v1/chat/completions"
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        body: dict[str, Any] = {"messages": messages, **sampling.model_dump()}
        if self._model:
            body["model"] = self._model
        return url, body

    def _parse_response(self, data: Any) -> str:
        """Extract the completion text from the response body."""
        if not isinstance(data, dict):
            raise LLMError("Unexpected response format from LLM backend")

        if self._format == "koboldcpp":
            results = data.get("results")
            if (
                not isinstance(results, list)
                or not results
                or not isinstance(results[0], dict)
                or not isinstance(results[0].get("text"), str)
            ):
                raise LLMError("Unexpected response format from KoboldCpp backend")
            return results[0]["text"].strip()

        choices = data.get("choices")
        if (
            not isinstance(choices, list)
            or not choices
            or not isinstance(choices[0], dict)
            or not isinstance(choices[0].get("message"), dict)
        ):
            raise LLMError("Unexpected response format from OpenAI-compatible backend")
        content = choices[0]["message"].get("content")
        if not isinstance(content, str):
            raise LLMError("Unexpected response format from OpenAI-compatible backend")
        return content.strip()

    async def __call__(
        self,
        stage: str,
        prompt: str,
        *,
        system_prompt: str = "",
        sampling: SamplingParams | None = None,
    ) -> str:
        if self._require_api_key and not self._api_key:
            raise MissingCredentialError(
                "LLM API key not configured. Set TALEFORGE_API_KEY or DEEPSEEK_API_KEY."
            )

        url, body = self._build_request(prompt, system_prompt, sampling or SamplingParams())
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            message = f"LLM backend returned HTTP {e.response.status_code}"
            if detail:
                message = f"{message}: {detail}"
            raise LLMError(message) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            raise LLMError(f"LLM request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON response") from e

        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


def _error_detail(response: httpx.Response) -> str:
    """Best-effort extraction of `{"error": {"message": ...}}` from an error body."""
    try:
        data = response.json()
    except ValueError:
        return ""
    if not isinstance(data, dict):
        return ""
    error = data.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str):
        return error
    return ""


def llm_from_config(llm_config: dict[str, Any]) -> HttpLLM:
    """Build an HttpLLM from the `llm` section of the app config."""
    return HttpLLM(
        provider_url=llm_config["provider_url"],
        api_key=llm_config.get("api_key", ""),
        provider_format=llm_config.get("provider_format", "openai"),
        model=llm_config.get("model", ""),
        timeout=float(llm_config.get("timeout", 120.0)),
    )


# ---------------------------------------------------------------------------
# EchoLLM - returns the prompt unchanged; useful for pipeline smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the prompt text as-is. No network calls, no credential.

    Lets you verify that the pipeline wiring (context building, validation,
    reconciliation, storage writes) works end-to-end without a running model.
    """

    async def __call__(
        self,
        stage: str,
        prompt: str,
        *,
        system_prompt: str = "",
        sampling: SamplingParams | None = None,
    ) -> str:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(prompt))
        return prompt


# ---------------------------------------------------------------------------
# Errors - raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""


class MissingCredentialError(LLMError):
    """Raised before any network call when the backend needs a key and has none."""
