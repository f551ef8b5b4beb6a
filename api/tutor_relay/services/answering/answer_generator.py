"""
Answer generation against the DeepSeek chat completions API.

The generator degrades in three layers and never raises to its caller:
- full request (system prompt + question), retried with a linearly
  increasing delay
- one simplified request with a smaller budget and shorter timeout
- a canned, keyword-selected fallback answer
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_incrementing

from tutor_relay.core.config import Settings
from tutor_relay.metrics.workflow_metrics import (
    answer_attempt_failures_total,
    answer_generation_total,
    fallback_answers_total,
)
from tutor_relay.models.question import AnswerServiceError
from tutor_relay.services.answering.fallback_answers import (
    classify_question,
    fallback_answer,
)
from tutor_relay.utils.logging import preview

logger = logging.getLogger(__name__)

SIMPLIFIED_PROMPT_TEMPLATE = "Answer this as briefly as possible: {question}"


class AnswerGenerator:
    """Produces a best-effort answer for a student question.

    Args:
        settings: Application settings with API credentials and retry policy
        http_client: Optional shared httpx.AsyncClient (tests inject one
            backed by httpx.MockTransport)
        sleep: Coroutine used to wait between primary attempts
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.api_url = settings.DEEPSEEK_API_URL
        self.model = settings.DEEPSEEK_MODEL
        self.system_prompt = settings.ANSWER_SYSTEM_PROMPT
        self.max_retries = settings.ANSWER_MAX_RETRIES
        self.retry_delay_seconds = settings.ANSWER_RETRY_DELAY_MS / 1000.0
        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

        key_hint = (
            f"{settings.DEEPSEEK_API_KEY[:5]}..."
            if settings.DEEPSEEK_API_KEY
            else "undefined"
        )
        logger.info(f"AnswerGenerator initialized (API key prefix: {key_hint})")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this generator created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.DEEPSEEK_API_KEY}",
        }

    async def generate_answer(self, question: str) -> str:
        """Generate an answer for a student question.

        Args:
            question: The student's question text

        Returns:
            Non-empty answer text. Never raises.
        """
        try:
            answer = await self._generate_with_retries(question)
            answer_generation_total.labels(source="primary").inc()
            return answer
        except Exception as e:
            logger.error(
                f"Answer service failed after {self.max_retries + 1} attempts: {e}"
            )

        try:
            logger.info("Trying simplified request as last resort...")
            answer = await self._make_simplified_request(question)
            answer_generation_total.labels(source="simplified").inc()
            return answer
        except Exception as e:
            answer_attempt_failures_total.labels(stage="simplified").inc()
            logger.error(f"Simplified request also failed: {e}")

        logger.info(f"Generating fallback response for: {preview(question, 30)}")
        answer_generation_total.labels(source="fallback").inc()
        fallback_answers_total.labels(category=classify_question(question)).inc()
        return fallback_answer(question)

    async def _generate_with_retries(self, question: str) -> str:
        # Delay before attempt n+1 is retry_delay * n
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_incrementing(
                start=self.retry_delay_seconds, increment=self.retry_delay_seconds
            ),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                try:
                    return await self._make_request(question)
                except Exception:
                    answer_attempt_failures_total.labels(stage="primary").inc()
                    raise
        raise AnswerServiceError("Answer service retries exhausted")

    @staticmethod
    def _log_retry(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Answer service error (attempt {retry_state.attempt_number}): {exc}; "
            f"retrying in {retry_state.next_action.sleep:.1f}s"
        )

    async def _make_request(self, question: str) -> str:
        """Make the primary request with the tutor system prompt."""
        logger.info(f"Requesting answer for question: {preview(question)}")
        answer = await self._post_completion(
            messages=[
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": question},
            ],
            max_tokens=self.settings.ANSWER_MAX_TOKENS,
            temperature=self.settings.ANSWER_TEMPERATURE,
            timeout=self.settings.ANSWER_TIMEOUT_SECONDS,
        )
        logger.info(f"Received answer from answer service ({len(answer)} chars)")
        return answer

    async def _make_simplified_request(self, question: str) -> str:
        """Make a single, cheaper request without the system prompt."""
        logger.info("Making simplified answer service request...")
        return await self._post_completion(
            messages=[
                {
                    "role": "user",
                    "content": SIMPLIFIED_PROMPT_TEMPLATE.format(question=question),
                }
            ],
            max_tokens=self.settings.ANSWER_SIMPLIFIED_MAX_TOKENS,
            temperature=self.settings.ANSWER_SIMPLIFIED_TEMPERATURE,
            timeout=self.settings.ANSWER_SIMPLIFIED_TIMEOUT_SECONDS,
        )

    async def _post_completion(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
        timeout: float,
    ) -> str:
        client = self._get_client()
        try:
            response = await client.post(
                self.api_url,
                json={
                    "model": self.model,
                    "messages": messages,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                },
                headers=self._headers,
                timeout=timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Answer service status: {e.response.status_code}, "
                f"body: {e.response.text[:500]}"
            )
            raise
        except httpx.RequestError as e:
            logger.error(f"No response received from answer service: {e!r}")
            raise

        return self._extract_content(response)

    @staticmethod
    def _extract_content(response: httpx.Response) -> str:
        try:
            data: Any = response.json()
        except ValueError as e:
            raise AnswerServiceError("Answer service returned invalid JSON") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise AnswerServiceError("Invalid response format from answer service")
        try:
            content = choices[0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AnswerServiceError(
                "Invalid response format from answer service"
            ) from e
        if not isinstance(content, str) or not content.strip():
            raise AnswerServiceError("Answer service returned an empty answer")
        return content
