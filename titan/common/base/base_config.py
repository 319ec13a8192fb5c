# titan/common/base/base_config.py
# =============================================================================
# BaseConfig - Foundation for all TITAN configuration classes
#
# - SettingsConfigDict (not the deprecated class Config)
# - Automatic .env file loading
# - Case-insensitive environment variables
# - Nested config support via __ delimiter
# - @lru_cache singleton pattern for factory functions
#
# Usage:
#     class MyConfig(BaseConfig):
#         model_config = SettingsConfigDict(
#             **{**BaseConfig.model_config, "env_prefix": "MY_"}
#         )
#         timeout_ms: int = 5000
#
#     @lru_cache(maxsize=1)
#     def get_my_config() -> MyConfig:
#         return MyConfig()
# =============================================================================

from typing import Any, Dict

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class for all TITAN configs.

    Environment Variable Naming:
    - Use domain-specific prefixes (MESSAGING_, RELIABILITY_, LOG_)
    - Nested values use __ delimiter (e.g., RELIABILITY__DOWNSTREAM_RETRY__MAX_ATTEMPTS)

    Secrets Handling:
    - Sensitive fields should use SecretStr, which masks values in logs
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    def to_dict(self, mask_secrets: bool = True) -> Dict[str, Any]:
        """Convert config to dictionary.

        Args:
            mask_secrets: If True (default), SecretStr values are masked.
        """
        if mask_secrets:
            return self.model_dump()
        data = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            if isinstance(value, SecretStr):
                data[field_name] = value.get_secret_value()
            else:
                data[field_name] = value
        return data

    def __repr__(self) -> str:
        """Safe repr that masks secrets."""
        class_name = self.__class__.__name__
        fields = []
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            if isinstance(value, SecretStr):
                fields.append(f"{field_name}=SecretStr('**********')")
            else:
                fields.append(f"{field_name}={value!r}")
        return f"{class_name}({', '.join(fields)})"
