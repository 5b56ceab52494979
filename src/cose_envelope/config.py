"""Runtime settings.

Values are read from the environment with the ``COSE_ENVELOPE_`` prefix, e.g.
``COSE_ENVELOPE_MAX_RECIPIENT_DEPTH=4``.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoseSettings(BaseSettings):
    """Process-wide tunables for message decoding."""

    model_config = SettingsConfigDict(
        env_prefix="COSE_ENVELOPE_",
        extra="ignore",
    )

    # Deepest allowed nesting of COSE_recipient structures when decoding.
    max_recipient_depth: int = Field(default=16, ge=1)
    # Keep unregistered header labels instead of rejecting them.
    allow_unknown_attributes: bool = False


@lru_cache(maxsize=1)
def get_settings() -> CoseSettings:
    """Return the cached settings instance."""
    return CoseSettings()
