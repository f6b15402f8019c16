"""
Resilient generation client.

Sends a prompt to a remote text-generation provider and returns the generated
text. Survives cold starts, rate limits and transient failures through
bounded retry with exponential backoff and provider wait hints. Every failure
that leaves the client is a GenerationError carrying a classified ErrorRecord.
"""

import asyncio
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from storywriter.models.error import ErrorSeverity, ErrorType
from storywriter.models.generation import AttemptStatus, FailureSource, GenerationAttempt
from storywriter.services.providers import (
    ProviderResponseError,
    TextGenerationProvider,
    create_provider,
)
from storywriter.utils.errors import GenerationCancelledError, GenerationError, classify
from storywriter.utils.logging import StructuredLogger, log_generation_attempt
from storywriter.utils.metrics import GenerationMetrics, emit_metric
from storywriter.utils.resilience import (
    OperationCancelled,
    RetryPolicy,
    Sleep,
    run_cancellable,
    wait_or_cancel,
)

MAX_RETRIES = 3
INITIAL_DELAY_MS = 1000
REQUEST_TIMEOUT_SECONDS = 30.0

# Statuses below 500 that are still worth retrying
RETRYABLE_STATUS_CODES = {408, 425, 429}

INTERVIEW_CONTINUATION_PATTERN = re.compile(r"^\s*based on our conversation so far", re.IGNORECASE)
# Line prefixes that mark a prior conversation turn
TURN_SPEAKERS = ("user", "child", "agent", "assistant", "storyteller", "q", "a")
CONVERSATION_TURN_PATTERN = re.compile(
    rf"^\s*({'|'.join(TURN_SPEAKERS)})\s*:",
    re.IGNORECASE | re.MULTILINE,
)
FALLBACK_INTERVIEW_PROMPT = (
    "What kind of story would you like to create today? "
    "Tell me about the hero of your story!"
)


def is_interview_continuation(prompt: str) -> bool:
    return bool(INTERVIEW_CONTINUATION_PATTERN.match(prompt))


def has_prior_turns(prompt: str) -> bool:
    return bool(CONVERSATION_TURN_PATTERN.search(prompt))


class ResilientGenerationClient:
    """
    Generates text from a prompt through a pluggable provider.

    Retry behaviour:
    - A provider wait hint (model loading) is honoured exactly and does not
      advance the backoff index; it is bounded by the policy's wait-hint
      retry count and cumulative wait budget
    - Other transient failures (transport errors, timeouts, 5xx, malformed
      payloads) wait ``base_delay * 2**n`` before retry n
    - Non-retryable HTTP statuses stop immediately

    Attempts are strictly sequential. Concurrent ``generate`` calls share no
    per-call state.

    Args:
        provider: Provider implementing the wire format
        logger: Structured logger
        http_client: Optional httpx.AsyncClient (one is created and owned if omitted)
        retry_policy: Retry bounds (defaults to MAX_RETRIES / INITIAL_DELAY_MS)
        timeout: Per-attempt request timeout in seconds
        sleep: Awaitable sleep used for backoff and wait hints
        metrics: Optional metrics collector receiving every attempt
    """

    def __init__(
        self,
        provider: TextGenerationProvider,
        logger: StructuredLogger,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        sleep: Sleep = asyncio.sleep,
        metrics: Optional[GenerationMetrics] = None,
    ):
        self.provider = provider
        self.logger = logger
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=MAX_RETRIES,
            base_delay=INITIAL_DELAY_MS / 1000,
        )
        self.timeout = timeout
        self.metrics = metrics
        self._sleep = sleep
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

        self.logger.system_event(
            f"Generation client initialized for provider: {provider.name}",
            {"retry_policy": repr(self.retry_policy), "timeout_seconds": timeout},
        )

    async def __aenter__(self) -> "ResilientGenerationClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def generate(self, prompt: Any, cancel_event: Optional[asyncio.Event] = None) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: Prompt text; must be a non-blank string
            cancel_event: Optional event; once set, no further attempt or wait
                is started and the call fails with GenerationCancelledError

        Returns:
            Generated text, stripped

        Raises:
            GenerationError: VALIDATION for a bad prompt, NETWORK for transport
                failures, SYSTEM for malformed responses or missing configuration
            GenerationCancelledError: If cancel_event fired
        """
        self._validate_prompt(prompt)

        if is_interview_continuation(prompt) and not has_prior_turns(prompt):
            self.logger.story_generation(
                "Interview continuation without prior turns, using fallback question",
                {"provider": self.provider.name},
                "💬",
            )
            return FALLBACK_INTERVIEW_PROMPT

        if not self.provider.is_configured:
            raise self._configuration_error()

        started = time.monotonic()
        attempt_number = 0
        backoff_retries = 0
        hint_retries = 0
        hint_waited = 0.0

        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelled("Cancelled before next attempt")

                attempt_number += 1
                attempt = await self._attempt(prompt, attempt_number, cancel_event)
                self._record_attempt(attempt)

                if attempt.status == AttemptStatus.SUCCESS:
                    emit_metric(
                        self.logger,
                        "generation.duration_ms",
                        round((time.monotonic() - started) * 1000, 2),
                        provider=self.provider.name,
                        attempts=attempt_number,
                    )
                    return attempt.text

                if attempt.status == AttemptStatus.TERMINAL:
                    raise self._failure(attempt, started, exhausted=False)

                hint = attempt.wait_hint_seconds
                if hint is not None and self.retry_policy.allows_wait_hint(hint, hint_retries, hint_waited):
                    hint_retries += 1
                    hint_waited += hint
                    self.logger.service_call(
                        self.provider.category,
                        f"Model is loading. Waiting {hint:.1f}s before retry",
                        {"attempt": attempt_number, "wait_hint_retry": hint_retries},
                        "⏳",
                    )
                    await self._wait(hint, cancel_event)
                    continue

                if backoff_retries < self.retry_policy.max_retries:
                    delay = self.retry_policy.delay_for(backoff_retries)
                    backoff_retries += 1
                    self.logger.service_call(
                        self.provider.category,
                        f"Retrying in {delay:.1f}s",
                        {"attempt": attempt_number, "retry": backoff_retries},
                        "🔄",
                    )
                    await self._wait(delay, cancel_event)
                    continue

                raise self._failure(attempt, started, exhausted=True)

        except OperationCancelled as e:
            raise self._cancelled(str(e), attempt_number, started) from None

    async def _attempt(
        self,
        prompt: str,
        attempt_number: int,
        cancel_event: Optional[asyncio.Event],
    ) -> GenerationAttempt:
        fields: Dict[str, Any] = {
            "attempt_number": attempt_number,
            "prompt": prompt,
            "started_at": datetime.now(timezone.utc),
        }
        start = time.monotonic()

        try:
            response = await run_cancellable(
                self._http.post(
                    self.provider.api_url,
                    json=self.provider.build_request(prompt),
                    headers=self.provider.headers(),
                    timeout=self.timeout,
                ),
                cancel_event,
            )
        except httpx.TimeoutException as e:
            attempt = GenerationAttempt(
                **fields,
                status=AttemptStatus.RETRYABLE,
                reason=f"Request timed out after {self.timeout:.0f}s",
                failure_source=FailureSource.TRANSPORT,
                cause=e,
            )
        except httpx.HTTPError as e:
            attempt = GenerationAttempt(
                **fields,
                status=AttemptStatus.RETRYABLE,
                reason=f"{type(e).__name__}: {e}",
                failure_source=FailureSource.TRANSPORT,
                cause=e,
            )
        else:
            attempt = self._evaluate_response(response, fields)

        attempt.duration_ms = (time.monotonic() - start) * 1000
        return attempt

    def _evaluate_response(self, response: httpx.Response, fields: Dict[str, Any]) -> GenerationAttempt:
        status_code = response.status_code
        payload = _json_or_none(response)

        if response.is_success:
            try:
                text = self.provider.parse_response(payload)
            except ProviderResponseError as e:
                return GenerationAttempt(
                    **fields,
                    status=AttemptStatus.RETRYABLE,
                    reason=str(e),
                    failure_source=FailureSource.RESPONSE_SHAPE,
                    status_code=status_code,
                    cause=e,
                )
            return GenerationAttempt(
                **fields,
                status=AttemptStatus.SUCCESS,
                text=text,
                status_code=status_code,
            )

        reason = f"HTTP {status_code}"
        if isinstance(payload, dict) and payload.get("error"):
            reason += f": {payload['error']}"

        hint = self.provider.wait_hint(status_code, payload)
        retryable = (
            hint is not None
            or status_code >= 500
            or status_code in RETRYABLE_STATUS_CODES
        )

        return GenerationAttempt(
            **fields,
            status=AttemptStatus.RETRYABLE if retryable else AttemptStatus.TERMINAL,
            reason=reason,
            wait_hint_seconds=hint,
            failure_source=FailureSource.TRANSPORT,
            status_code=status_code,
            cause=payload if payload is not None else reason,
        )

    def _record_attempt(self, attempt: GenerationAttempt) -> None:
        if self.metrics:
            self.metrics.record_attempt(self.provider.name, attempt)

        log_generation_attempt(
            self.logger,
            self.provider.category,
            attempt.attempt_number,
            attempt.duration_ms,
            error=None if attempt.status == AttemptStatus.SUCCESS else attempt.reason,
            status_code=attempt.status_code,
            wait_hint_seconds=attempt.wait_hint_seconds,
        )

    async def _wait(self, seconds: float, cancel_event: Optional[asyncio.Event]) -> None:
        if self.metrics:
            self.metrics.record_wait(seconds)
        await wait_or_cancel(seconds, cancel_event, self._sleep)

    def _validate_prompt(self, prompt: Any) -> None:
        if isinstance(prompt, str) and prompt.strip():
            return

        reason = (
            f"Prompt must be a string, got {type(prompt).__name__}"
            if not isinstance(prompt, str)
            else "Prompt must not be empty"
        )
        record = classify(
            ValueError(reason),
            ErrorType.VALIDATION,
            ErrorSeverity.LOW,
            {"provider": self.provider.name},
        )
        self.logger.warn(self.provider.category, "Rejected invalid prompt", {"reason": reason})
        raise GenerationError(record)

    def _configuration_error(self) -> GenerationError:
        message = f"{self.provider.name} API key is not configured"
        record = classify(
            message,
            ErrorType.SYSTEM,
            ErrorSeverity.HIGH,
            {"provider": self.provider.name},
        )
        self.logger.service_error(self.provider.category, message)
        return GenerationError(record)

    def _failure(self, attempt: GenerationAttempt, started: float, exhausted: bool) -> GenerationError:
        kind = (
            ErrorType.SYSTEM
            if attempt.failure_source == FailureSource.RESPONSE_SHAPE
            else ErrorType.NETWORK
        )
        prefix = (
            f"Generation failed after {attempt.attempt_number} attempts"
            if exhausted
            else "Generation failed with a non-retryable response"
        )
        context = {
            "provider": self.provider.name,
            "attempts": attempt.attempt_number,
            "elapsed_ms": round((time.monotonic() - started) * 1000, 2),
            "status_code": attempt.status_code,
            "failure_source": attempt.failure_source.value if attempt.failure_source else None,
        }
        cause = attempt.cause if attempt.cause is not None else attempt.reason
        record = classify(
            f"{prefix}: {attempt.reason}",
            kind,
            ErrorSeverity.MEDIUM if exhausted else ErrorSeverity.HIGH,
            context,
        ).model_copy(update={"cause": cause})

        self.logger.service_error(self.provider.category, record.technical_message, cause, context)
        return GenerationError(record)

    def _cancelled(self, reason: str, attempt_number: int, started: float) -> GenerationCancelledError:
        context = {
            "provider": self.provider.name,
            "attempts": attempt_number,
            "elapsed_ms": round((time.monotonic() - started) * 1000, 2),
        }
        record = classify(
            f"Generation cancelled: {reason}",
            ErrorType.SYSTEM,
            ErrorSeverity.LOW,
            context,
        )
        self.logger.service_call(self.provider.category, record.technical_message, context, "🛑")
        return GenerationCancelledError(record)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def create_generation_client(
    settings=None,
    logger: Optional[StructuredLogger] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    metrics: Optional[GenerationMetrics] = None,
) -> ResilientGenerationClient:
    """
    Build a generation client from application settings.

    Args:
        settings: Application settings (defaults to the global instance)
        logger: Structured logger (built with setup_logging if omitted)
        http_client: Optional shared httpx.AsyncClient
        metrics: Optional metrics collector

    Returns:
        Configured ResilientGenerationClient
    """
    if settings is None:
        from storywriter.config import settings
    if logger is None:
        from storywriter.utils.logging import setup_logging
        logger = setup_logging(settings)

    retry_policy = RetryPolicy(
        max_retries=settings.generation_max_retries,
        base_delay=settings.generation_initial_delay_seconds,
        max_wait_hint_total=settings.generation_max_wait_hint_seconds,
    )

    return ResilientGenerationClient(
        provider=create_provider(settings),
        logger=logger,
        http_client=http_client,
        retry_policy=retry_policy,
        timeout=settings.generation_timeout_seconds,
        metrics=metrics,
    )
