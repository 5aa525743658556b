"""Library settings and configuration.

This module defines the defaults used by every positioned row type.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library settings loaded from environment variables.

    Values act as defaults for `PositionConfig`; a row type can override any of
    them at registration time. Settings can be overridden via environment
    variables (prefixed with ``ROWPOSITION_``) or a ``.env`` file.
    """

    # Positioning defaults
    position_column: str = Field(default="position")
    start_position: int = Field(default=0)
    always_order_by_position: bool = Field(default=False)
    shift_positions: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_prefix="ROWPOSITION_",
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )


settings = Settings()
