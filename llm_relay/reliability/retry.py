from __future__ import annotations

import random
from typing import Callable, Optional

from ..config.settings import RetryPolicy
from .error_classifier import ClassifiedError, ErrorCategory


class RetryScheduler:
    """
    Decides whether and when a candidate is retried in place.

    This class handles:
    - The per-candidate retry cap
    - Exponential backoff with jitter
    - Respect for provider Retry-After hints
    - Category floors (a 5xx never waits less than the server default)
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        random_func: Callable[[float, float], float] = random.uniform
    ):
        self.policy = policy or RetryPolicy()
        self._uniform = random_func

    def should_retry(self, classified: ClassifiedError, retries_done: int) -> bool:
        """True when another attempt on the same candidate is allowed."""
        if not classified.should_retry:
            return False
        return retries_done < self.policy.per_candidate_retry_cap

    def compute_delay(self, classified: ClassifiedError, retry_number: int) -> float:
        """
        Delay before retry ``retry_number`` (0 for the first retry).

        An explicit provider hint is used as-is. Otherwise the exponential
        backoff is raised to the category floor from the classifier.
        """
        if classified.category == ErrorCategory.PARSE:
            return 0.0

        if (
            self.policy.respect_retry_after
            and classified.retry_after_is_hint
            and classified.retry_after is not None
        ):
            return classified.retry_after

        backoff = min(self.policy.max_delay, self.policy.base_delay * (2 ** retry_number))
        if self.policy.jitter_max > 0:
            backoff += self._uniform(0, self.policy.jitter_max)

        floor = classified.retry_after or 0.0
        return max(floor, backoff)
