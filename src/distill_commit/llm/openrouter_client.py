"""
Client for generating commit messages through the OpenRouter API.

OpenRouter exposes an OpenAI-compatible ``/chat/completions`` endpoint.
The client sends one request per run with a fixed system instruction
describing the Conventional Commits policy and the staged diff as user
content, then hands the returned text to
:func:`distill_commit.llm.commit_message.normalize`.

Failures are never retried and never replaced by a placeholder message:
transport errors, timeouts and non-success statuses raise
:class:`GenerationServiceError`, and a response without text raises
:class:`EmptyResponseError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from textwrap import dedent
from typing import Any, Dict, List, Optional

import requests

from distill_commit.diff.assembler import DiffPayload
from distill_commit.errors import (
    ConfigurationError,
    EmptyResponseError,
    GenerationServiceError,
)
from distill_commit.llm.commit_message import (
    DEFAULT_MAX_SUMMARY_LENGTH,
    CommitMessage,
    normalize,
)


logger = logging.getLogger(__name__)
# Attach a null handler to avoid errors when the root logger is missing a
# stream. Messages will still propagate to the root logger if configured.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-sonnet-4"
DEFAULT_TIMEOUT = 30.0
API_KEY_ENV_VAR = "OPENROUTER_API_KEY"

# Omitted paths listed in the truncation note
_MAX_OMITTED_LISTED = 20

SYSTEM_INSTRUCTION = dedent(
    """
    You are an expert software engineer writing git commit messages.
    You will receive the staged diff of a repository and must write one
    commit message that follows the Conventional Commits specification.

    FORMAT:
    Line 1: type(scope): summary
    Line 2: (blank)
    Lines 3+: optional body explaining what changed and why

    RULES:
    - type is one of: feat, fix, docs, style, refactor, perf, test, build, ci, chore, revert
    - scope is optional; use a short noun for the affected area
    - write the summary in the imperative mood ("add", not "added" or "adds")
    - keep the summary under 72 characters and do not end it with a period
    - wrap body lines at 72 characters
    - output ONLY the commit message: no code fences, no quotes, no preamble,
      no explanation of your choices
    """
).strip()


@dataclass(frozen=True)
class GenerationRequest:
    """Immutable description of a single generation call."""

    model: str
    system_instruction: str
    user_content: str
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None

    def to_json(self) -> Dict[str, Any]:
        """Return the chat-completions request body."""
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_instruction},
                {"role": "user", "content": self.user_content},
            ],
        }
        if self.max_tokens is not None:
            body["max_tokens"] = self.max_tokens
        if self.temperature is not None:
            body["temperature"] = self.temperature
        return body


@dataclass(frozen=True)
class GenerationResponse:
    """Raw outcome of a generation call.

    ``ok`` is False when the call failed; ``error`` then carries the detail
    and ``status_code`` the HTTP status when one was received.
    """

    text: str = ""
    ok: bool = True
    status_code: Optional[int] = None
    error: Optional[str] = None
    model: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None


def _extract_text(data: Dict[str, Any]) -> str:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, list):
        # Some providers return content parts instead of a plain string
        content = "".join(
            part["text"]
            for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    return content if isinstance(content, str) else ""


def _error_detail(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or getattr(response, "reason", None) or "no detail"
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return str(data["error"].get("message") or data["error"])
    return response.text.strip() or "no detail"


@dataclass
class OpenRouterClient:
    """Client for the OpenRouter chat-completions API.

    Parameters
    ----------
    api_key : str, optional
        OpenRouter API key. Its absence is reported by
        :meth:`check_credentials` before any request is made.
    model : str, optional
        Model identifier, e.g. ``"anthropic/claude-sonnet-4"``.
    base_url : str, optional
        API base URL. Defaults to OpenRouter's public endpoint.
    request_timeout : float, optional
        Timeout in seconds for the HTTP request.
    max_tokens : int, optional
        Maximum number of tokens to generate.
    temperature : float, optional
        Sampling temperature.
    max_summary_length : int, optional
        Longest accepted summary line for the normalized message.
    """

    api_key: Optional[str] = field(default=None, repr=False)
    model: str = DEFAULT_MODEL
    base_url: str = OPENROUTER_BASE_URL
    request_timeout: float = DEFAULT_TIMEOUT
    max_tokens: Optional[int] = 500
    temperature: Optional[float] = 0.2
    max_summary_length: int = DEFAULT_MAX_SUMMARY_LENGTH

    def _endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "https://github.com/distill",
            "X-Title": "distill",
        }

    def check_credentials(self) -> None:
        """Raise :class:`ConfigurationError` if no API key is configured."""
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError(
                f"{API_KEY_ENV_VAR} environment variable is not set. "
                "Please set it to your OpenRouter API key."
            )

    def build_request(self, payload: DiffPayload) -> GenerationRequest:
        """Build the generation request for ``payload``."""
        user_content = payload.text
        if payload.truncated:
            note = "[Diff truncated to fit the request size limit"
            if payload.omitted:
                listed: List[str] = list(payload.omitted[:_MAX_OMITTED_LISTED])
                more = len(payload.omitted) - len(listed)
                names = ", ".join(listed) + (f" and {more} more" if more > 0 else "")
                note += f"; {len(payload.omitted)} file(s) not shown: {names}"
            user_content = f"{user_content.rstrip()}\n\n{note}]"
        return GenerationRequest(
            model=self.model,
            system_instruction=SYSTEM_INSTRUCTION,
            user_content=user_content,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    def send(self, request: GenerationRequest) -> GenerationResponse:
        """Send ``request`` and describe the result.

        Transport problems are reported through the returned response
        (``ok=False``) rather than raised.
        """
        url = self._endpoint()
        logger.debug(
            "Sending request to %s (model=%s, %d characters of user content)",
            url,
            request.model,
            len(request.user_content),
        )
        try:
            response = requests.post(
                url,
                json=request.to_json(),
                headers=self._headers(),
                timeout=self.request_timeout,
            )
        except requests.Timeout as exc:
            logger.error("Request to generation service timed out: %s", exc)
            return GenerationResponse(ok=False, error="timeout")
        except requests.RequestException as exc:
            logger.error("Failed to connect to generation service: %s", exc)
            return GenerationResponse(ok=False, error=str(exc))

        if not 200 <= response.status_code < 300:
            detail = _error_detail(response)
            logger.error(
                "Generation service returned status %s: %s", response.status_code, detail
            )
            return GenerationResponse(ok=False, status_code=response.status_code, error=detail)

        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Failed to parse generation service response: %s", exc)
            return GenerationResponse(
                ok=False,
                status_code=response.status_code,
                error="Failed to parse response body as JSON",
            )
        if not isinstance(data, dict):
            return GenerationResponse(
                ok=False,
                status_code=response.status_code,
                error="Unexpected response structure",
            )
        if isinstance(data.get("error"), dict):
            # OpenRouter reports some upstream failures with a 200 status
            error = data["error"]
            code = error.get("code")
            return GenerationResponse(
                ok=False,
                status_code=code if isinstance(code, int) else response.status_code,
                error=str(error.get("message") or error),
            )

        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        result = GenerationResponse(
            text=_extract_text(data),
            ok=True,
            status_code=response.status_code,
            model=data.get("model"),
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
        )
        logger.debug(
            "Generation succeeded (model=%s, prompt_tokens=%s, completion_tokens=%s)",
            result.model,
            result.prompt_tokens,
            result.completion_tokens,
        )
        return result

    def generate(self, payload: DiffPayload) -> CommitMessage:
        """Generate a normalized commit message for ``payload``.

        Raises
        ------
        ConfigurationError
            If no API key is configured; no request is sent.
        GenerationServiceError
            If the request fails, times out or is refused.
        EmptyResponseError
            If the service returns no usable text.
        InvalidMessageError
            If the text cannot be normalized into a commit message.
        """
        self.check_credentials()
        request = self.build_request(payload)
        response = self.send(request)
        if not response.ok:
            raise GenerationServiceError(response.error or "unknown error", response.status_code)
        if not response.text.strip():
            raise EmptyResponseError("Generation service returned an empty commit message")
        return normalize(response.text, max_summary_length=self.max_summary_length)
