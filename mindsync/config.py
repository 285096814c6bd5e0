"""
Settings for the engine and backend.

Values come from defaults, then a `.env` file, then `MINDSYNC_*` environment
variables (e.g. `MINDSYNC_DEBOUNCE_MS=150`).
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine and backend settings."""

    # Sync
    debounce_ms: int = Field(default=300, ge=0)
    max_history: int = Field(default=100, ge=0)

    # Serialization
    layout_directive_name: str = "mindsync-layout"

    # Radial layout
    radial_center_x: float = 500
    radial_center_y: float = 500
    radial_level_padding: float = 40   # px between rings
    radial_node_padding: float = 20    # px between neighbours on a ring

    # Horizontal layout
    horizontal_start_x: float = 100
    horizontal_start_y: float = 100
    horizontal_level_padding: float = 50  # px between columns
    horizontal_node_padding: float = 20   # px between stacked nodes

    # Backend
    host: str = "127.0.0.1"
    port: int = 8765
    cors_origins: list[str] = Field(default_factory=lambda: [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ])

    model_config = SettingsConfigDict(
        env_prefix="MINDSYNC_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings (cached)."""
    return Settings()
