import asyncio
from typing import Awaitable, Callable

from carecircle.config import MAX_RETRY_COUNT
from carecircle.logger import log_info
from carecircle.models import NotificationResult


def no_backoff(attempt: int) -> float:
    return 0.0


def exponential_backoff(base: float = 0.5, cap: float = 5.0) -> Callable[[int], float]:
    """Delay of base * 2**(attempt - 1) seconds, capped."""

    def delay(attempt: int) -> float:
        return min(cap, base * (2 ** (attempt - 1)))

    return delay


class RetryPolicy:
    """Decides whether a failed send is re-attempted and performs the re-attempt."""

    def __init__(self, max_retries: int = MAX_RETRY_COUNT, backoff: Callable[[int], float] = no_backoff):
        if not 0 <= max_retries <= MAX_RETRY_COUNT:
            raise ValueError(f"max_retries must be between 0 and {MAX_RETRY_COUNT}")
        self.max_retries = max_retries
        self.backoff = backoff

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before the given retry attempt."""
        return self.backoff(attempt)

    def should_retry(self, result: NotificationResult) -> bool:
        return result.failed and result.retry_count < self.max_retries

    async def retry(
        self,
        result: NotificationResult,
        send: Callable[[], Awaitable[NotificationResult]],
    ) -> NotificationResult:
        """Run one more attempt; the new result carries the incremented retry count."""
        if not self.should_retry(result):
            return result

        attempt = result.retry_count + 1
        log_info(
            "notification_retry",
            notification_id=result.notification_id,
            channel=result.channel.value,
            attempt=attempt,
        )
        delay = self.delay_for(attempt)
        if delay > 0:
            await asyncio.sleep(delay)

        retried = await send()
        return retried.model_copy(update={"retry_count": attempt})
