# =============================================================================
# File: titan/config/reliability_config.py
# Description: Retry configuration for downstream service calls
# =============================================================================

from functools import lru_cache
from typing import Optional, Callable

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import SettingsConfigDict

from titan.common.base.base_config import BaseConfig


class RetryConfig(BaseModel):
    """Retry configuration."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_attempts: int = 3
    initial_delay_ms: int = 100
    max_delay_ms: int = 10000
    backoff_factor: float = 2.0
    jitter: bool = True
    exponential_base: Optional[float] = None
    jitter_type: str = "full"
    # Return False to stop retrying on this exception
    retry_condition: Optional[Callable[[Exception], bool]] = Field(default=None, exclude=True)


class ReliabilityConfig(BaseConfig):
    """Reliability settings, read from RELIABILITY_* environment variables"""

    model_config = SettingsConfigDict(
        **{**BaseConfig.model_config, "env_prefix": "RELIABILITY_"},
    )

    # Campaign/deliverable/wallet calls made by the system message generator
    downstream_retry: RetryConfig = Field(
        default_factory=lambda: RetryConfig(max_attempts=3, initial_delay_ms=200, max_delay_ms=5000)
    )

    # Background persistence of reactions
    reaction_retry: RetryConfig = Field(
        default_factory=lambda: RetryConfig(max_attempts=5, initial_delay_ms=250, max_delay_ms=10000)
    )


@lru_cache(maxsize=1)
def get_reliability_config() -> ReliabilityConfig:
    """Get reliability configuration singleton"""
    return ReliabilityConfig()
