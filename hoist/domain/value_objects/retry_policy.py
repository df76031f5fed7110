from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry: max_attempts counts every invocation, the first included.
    """
    max_attempts: int = 3
    delay: float = 5.0
    backoff: float = 1.0
    retry_unsafe: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")
        if self.backoff < 1.0:
            raise ValueError(f"backoff must be >= 1.0, got {self.backoff}")

    def delay_after(self, attempt: int) -> float:
        """Sleep before the attempt following `attempt` (1-based)."""
        return self.delay * (self.backoff ** (attempt - 1))
