"""
Generation Adapter

Wraps a TextGenerator with a per-attempt deadline, retries with exponential
backoff, and cooperative cancellation.

Retried: network errors, timeouts, HTTP 5xx.
Not retried: HTTP 4xx, provider errors, and successful-but-malformed output
(that is the parser's problem, not a transport problem).
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Optional

from ..common.errors import (
    GenerationFailed,
    GenerationFailureKind,
    GenerationTimeout,
    HttpStatusError,
    NetworkError,
    TransportError,
)
from ..common.llm_client import TextGenerator

logger = logging.getLogger("notary.answerer.generation")

# How often a waiting attempt checks for cancellation
_POLL_INTERVAL = 0.05


class _Cancelled(Exception):
    pass


class GenerationAdapter:
    """
    Calls the text generator on a worker thread so the deadline holds even
    when the generator ignores its own timeout. An expired or cancelled call
    is abandoned; its eventual result is discarded.
    """

    def __init__(
        self,
        generator: TextGenerator,
        timeout_seconds: float = 60.0,
        max_retries: int = 2,
        backoff_base_seconds: float = 1.0,
    ):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self._generator = generator
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.backoff_base_seconds = backoff_base_seconds

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt counts from 0)"""
        return self.backoff_base_seconds * (2 ** attempt)

    def generate(
        self,
        model: str,
        prompt: str,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """
        Generate text, retrying transient failures.

        Args:
            model: Model name passed through to the generator
            prompt: Prompt text
            cancel: Set it from another thread to abandon the call

        Returns:
            Raw generated text

        Raises:
            GenerationFailed: retries exhausted, non-retryable error, or cancelled
        """
        cancel = cancel or threading.Event()
        total_attempts = self.max_retries + 1
        attempts = 0

        for attempt in range(total_attempts):
            if cancel.is_set():
                raise GenerationFailed(GenerationFailureKind.CANCELLED, attempts)

            attempts += 1
            status_code = None
            try:
                return self._attempt(model, prompt, cancel)
            except _Cancelled:
                logger.info("Generation cancelled during attempt %d", attempts)
                raise GenerationFailed(GenerationFailureKind.CANCELLED, attempts) from None
            except GenerationTimeout as e:
                kind, error = GenerationFailureKind.TIMEOUT, e
            except NetworkError as e:
                kind, error = GenerationFailureKind.NETWORK, e
            except HttpStatusError as e:
                kind, error, status_code = GenerationFailureKind.HTTP, e, e.status_code
                if not e.retryable:
                    raise GenerationFailed(kind, attempts, status_code, str(e)) from e
            except TransportError as e:
                raise GenerationFailed(GenerationFailureKind.HTTP, attempts, message=str(e)) from e

            if attempt + 1 >= total_attempts:
                logger.error(
                    "Generation failed after %d attempt(s): %s", attempts, error,
                )
                raise GenerationFailed(kind, attempts, status_code, str(error)) from error

            delay = self.backoff_delay(attempt)
            logger.warning(
                "Generation attempt %d/%d failed (%s: %s), retrying in %.1fs",
                attempts, total_attempts, kind.value, error, delay,
            )
            if cancel.wait(delay):
                raise GenerationFailed(GenerationFailureKind.CANCELLED, attempts)

        # Unreachable: the loop either returns or raises
        raise GenerationFailed(GenerationFailureKind.NETWORK, attempts)

    def _attempt(self, model: str, prompt: str, cancel: threading.Event) -> str:
        """One generator call bounded by the adapter's own deadline"""
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="notary-generate")
        try:
            future = executor.submit(
                self._generator.generate, model, prompt, timeout=self.timeout_seconds,
            )
            deadline = time.monotonic() + self.timeout_seconds
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    future.cancel()
                    raise GenerationTimeout(
                        f"No response within {self.timeout_seconds:.1f}s"
                    )
                try:
                    return future.result(timeout=min(remaining, _POLL_INTERVAL))
                except (FutureTimeout, TimeoutError) as e:
                    if future.done():
                        # The generator itself raised a TimeoutError
                        raise GenerationTimeout(str(e) or "Generator timed out") from e
                    if cancel.is_set():
                        future.cancel()
                        raise _Cancelled() from None
        finally:
            executor.shutdown(wait=False)
