"""
Retry Policy Model
Reconnect budget and backoff delays
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for reconnect attempts"""
    max_attempts: int = 10
    base_delay: float = 5.0  # seconds

    def delay_for(self, attempt: int) -> float:
        """
        Delay before reconnect attempt ``attempt`` (1-indexed).

        Linear: base_delay * attempt.
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return self.base_delay * attempt

    def exhausted(self, attempt_count: int) -> bool:
        """Check if no reconnect attempts are left"""
        return attempt_count >= self.max_attempts
