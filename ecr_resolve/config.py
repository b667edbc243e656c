from dataclasses import dataclass
from typing import Optional

from .lister import RetryPolicy


@dataclass(frozen=True)
class ResolverConfig:
    """Tuning knobs for one resolution call.

    AWS credentials, region and profile are not configured here; they come
    from the usual boto3 chain (environment, shared config, instance role).
    """

    max_attempts: int = 5
    base_delay: float = 0.2
    max_delay: float = 5.0
    page_size: int = 100
    max_workers: int = 4
    timeout: Optional[float] = None

    def __post_init__(self):
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")
        # RetryPolicy validates the retry fields
        self.retry_policy()

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
        )
