"""Retry-with-fallback policy shared by every provider call site.

The policy distinguishes three kinds of failure:

- FORMAT: the provider answered but the answer did not parse. Retried up to
  ``max_attempts`` times with exponential backoff; on exhaustion ``execute``
  returns None so the caller can degrade.
- CONTEXT_LENGTH: the prompt did not fit. The identical prompt is sent once to
  the alternate provider, and the policy stays on the alternate for any
  further FORMAT retries of the same call. Without an alternate, or if the
  alternate also overflows, the error propagates.
- TRANSPORT: anything else. Propagates immediately; the pipeline aborts the
  current branch.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from codefeed_core.errors import ContextLengthError, ProviderFormatError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_ATTEMPTS = 3


class ErrorKind(enum.Enum):
    FORMAT = "format"
    CONTEXT_LENGTH = "context_length"
    TRANSPORT = "transport"


def classify_error(error: BaseException) -> ErrorKind:
    if isinstance(error, ProviderFormatError):
        return ErrorKind.FORMAT
    if isinstance(error, ContextLengthError):
        return ErrorKind.CONTEXT_LENGTH
    return ErrorKind.TRANSPORT


@dataclass
class RetryPolicy:
    max_attempts: int = _MAX_ATTEMPTS
    classify: Callable[[BaseException], ErrorKind] = classify_error
    fallback: Optional[Callable[[str], str]] = None
    # Seconds before the first retry; doubles on every further retry. 0 disables sleeping.
    backoff: float = 1.0

    def with_fallback(self, fallback: Optional[Callable[[str], str]]) -> "RetryPolicy":
        return RetryPolicy(self.max_attempts, self.classify, fallback, self.backoff)

    def execute(self, call: Callable[[str], str], prompt: str, parse: Callable[[str], T]) -> T | None:
        """Run ``call(prompt)`` and ``parse`` its answer under this policy.

        Returns the parsed value, or None once every attempt produced a
        malformed answer.
        """
        active = call
        for attempt in range(self.max_attempts):
            try:
                raw, active = self._call_once(active, call, prompt)
                return parse(raw)
            except Exception as e:
                if self.classify(e) is not ErrorKind.FORMAT:
                    raise
                if attempt == self.max_attempts - 1:
                    logger.error("Provider response unusable after %d attempts: %s", self.max_attempts, e)
                    return None
                delay = self.backoff * 2**attempt
                logger.warning(
                    "Malformed provider response (attempt %d/%d): %s. Retrying in %.0fs...",
                    attempt + 1,
                    self.max_attempts,
                    e,
                    delay,
                )
                if delay:
                    time.sleep(delay)
        return None

    def _call_once(
        self, active: Callable[[str], str], primary: Callable[[str], str], prompt: str
    ) -> tuple[str, Callable[[str], str]]:
        """Make one call, switching to the fallback once on a context-length error.

        Returns the raw answer together with the callable that produced it so
        later attempts go to the provider that could actually take the prompt.
        """
        try:
            return active(prompt), active
        except Exception as e:
            if self.classify(e) is not ErrorKind.CONTEXT_LENGTH or self.fallback is None or active is not primary:
                raise
            logger.warning("Prompt too long for the primary provider (%s). Retrying once with the fallback.", e)
            return self.fallback(prompt), self.fallback
