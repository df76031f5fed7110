"""
Retrying Executor

Architectural Intent:
- Bounded retry with a fixed (optionally growing) delay around any awaitable operation
- max_attempts counts every invocation; the final failure propagates unchanged
- Non-idempotent operations run once unless the policy opts in to retrying them
- Retries are logged with their attempt count and never change behaviour otherwise
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar
from hoist.domain.errors import CommandError, RemoteConnectionError, TransferError
from hoist.domain.value_objects.remote_command import Idempotency
from hoist.domain.value_objects.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    CommandError,
    TransferError,
    RemoteConnectionError,
)


class RetryingExecutor:
    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
    ) -> None:
        self.policy = policy
        self._sleep = sleep
        self._retry_on = retry_on

    def attempts_for(self, idempotency: Idempotency, policy: Optional[RetryPolicy] = None) -> int:
        policy = policy or self.policy
        if idempotency is Idempotency.UNSAFE and not policy.retry_unsafe:
            return 1
        return policy.max_attempts

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        idempotency: Idempotency = Idempotency.SAFE,
        description: str = "operation",
    ) -> T:
        policy = policy or self.policy
        attempts = self.attempts_for(idempotency, policy)
        attempt = 1
        while True:
            try:
                return await operation()
            except self._retry_on as e:
                if attempt >= attempts:
                    if attempts > 1:
                        logger.error("%s failed after %d attempts: %s", description, attempts, e)
                    raise
                delay = policy.delay_after(attempt)
                logger.warning(
                    "Attempt %d/%d of %s failed: %s; retrying in %.1fs",
                    attempt, attempts, description, e, delay,
                )
                await self._sleep(delay)
                attempt += 1
