"""
LLM chat completion client.

One-shot completions against the Anthropic Messages API with a per-call
timeout and the retry schedule from ``RetryPolicy``. The SDK's own retries
are disabled so that 429s and 5xx are handled in one place.
"""

import logging

import anthropic
from anthropic import AsyncAnthropic
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from scientific_query.config import get_settings
from scientific_query.data_sources.base_client import RateLimitError
from scientific_query.services.retry import RetryPolicy, parse_retry_after

# The SDK reads ANTHROPIC_API_KEY from the environment when LLM_API_KEY is unset
load_dotenv()

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class LLMError(Exception):
    """Base exception for LLM call failures."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class LLMRateLimit(LLMError):
    """HTTP 429 from the provider after the retry schedule was exhausted."""


class LLMTimeout(LLMError):
    """The call did not complete before its deadline on any attempt."""


class LLMTransient(LLMError):
    """5xx or connection failure that persisted through every retry."""


class LLMInvalidResponse(LLMError):
    """The response carried no text content."""


class LLMRequestError(LLMError):
    """Non-429 4xx; the request itself is wrong and is never retried."""


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for provider rate-limit failures, however they surfaced."""
    if isinstance(exc, (LLMRateLimit, RateLimitError, anthropic.RateLimitError)):
        return True
    message = str(exc).lower()
    return "rate limit" in message or "429" in message


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LLMOptions(BaseModel):
    """Per-call completion options."""

    model: str | None = None  # falls back to the client's default model
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int = 2048
    timeout_ms: int = 45_000
    max_retries: int | None = None  # falls back to the policy's max_retries


class LLMClient:
    """Async completion client with timeout, backoff, and Retry-After handling."""

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        policy: RetryPolicy | None = None,
        model: str | None = None,
    ):
        settings = get_settings()
        self._client = client or AsyncAnthropic(
            api_key=settings.llm_api_key or None,
            base_url=settings.llm_base_url,
            max_retries=0,
        )
        self.policy = policy or RetryPolicy(max_retries=settings.llm_max_retries)
        self.model = model or settings.llm_model

    async def complete(self, prompt: str, options: LLMOptions | None = None) -> str:
        """Send ``prompt`` as a single user message and return the response text.

        Args:
            prompt: The full prompt.
            options: Model, sampling, and retry options for this call.

        Returns:
            Concatenated text of every text block in the response.

        Raises:
            LLMRateLimit: 429 on the final attempt.
            LLMTimeout: Timeout on the final attempt.
            LLMTransient: 5xx or connection failure on the final attempt.
            LLMRequestError: Any other 4xx, raised without retrying.
            LLMInvalidResponse: The response contained no text.
        """
        opts = options or LLMOptions()
        model = opts.model or self.model
        max_retries = self.policy.max_retries if opts.max_retries is None else opts.max_retries

        last_error: LLMError | None = None
        for attempt in range(max_retries + 1):
            retry_after: float | None = None
            try:
                logger.info(
                    "LLM request model=%s attempt=%d/%d prompt_chars=%d",
                    model,
                    attempt + 1,
                    max_retries + 1,
                    len(prompt),
                )
                response = await self._client.messages.create(
                    model=model,
                    max_tokens=opts.max_tokens,
                    temperature=opts.temperature,
                    messages=[{"role": "user", "content": prompt}],
                    timeout=opts.timeout_ms / 1000,
                )
            except anthropic.RateLimitError as e:
                retry_after = parse_retry_after(e.response.headers.get("retry-after"))
                last_error = LLMRateLimit(f"LLM rate limit exceeded (429): {e}", 429)
            except anthropic.APITimeoutError as e:
                last_error = LLMTimeout(f"LLM call timed out after {opts.timeout_ms}ms: {e}")
            except anthropic.APIConnectionError as e:
                if "rate limit" in str(e).lower():
                    last_error = LLMRateLimit(f"LLM rate limit exceeded: {e}")
                else:
                    last_error = LLMTransient(f"LLM connection error: {e}")
            except anthropic.APIStatusError as e:
                if e.status_code < 500:
                    logger.error("LLM request rejected with HTTP %d: %s", e.status_code, e)
                    raise LLMRequestError(
                        f"LLM request rejected (HTTP {e.status_code}): {e}", e.status_code
                    ) from e
                last_error = LLMTransient(
                    f"LLM provider error (HTTP {e.status_code}): {e}", e.status_code
                )
            else:
                return self._response_text(response, model)

            if attempt < max_retries:
                delay = self.policy.delay_ms(attempt, retry_after)
                logger.warning(
                    "LLM attempt %d failed (%s); retrying in %dms",
                    attempt + 1,
                    last_error,
                    delay,
                )
                await self.policy.wait(delay)

        logger.error("LLM call failed after %d attempts: %s", max_retries + 1, last_error)
        raise last_error

    @staticmethod
    def _response_text(response, model: str) -> str:
        text = "".join(
            block.text
            for block in getattr(response, "content", None) or []
            if getattr(block, "type", "text") == "text" and getattr(block, "text", None)
        )
        if not text:
            raise LLMInvalidResponse("LLM response contained no text content")

        usage = getattr(response, "usage", None)
        logger.info(
            "LLM response model=%s chars=%d input_tokens=%s output_tokens=%s",
            model,
            len(text),
            getattr(usage, "input_tokens", None),
            getattr(usage, "output_tokens", None),
        )
        return text
