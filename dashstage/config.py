"""
Engine Configuration

Uses pydantic-settings for environment variable loading with validation.
All tunables of the layout and session engine are centralized here.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Environment variables can be set directly or via .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="DASHSTAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "testing", "production"] = Field(
        default="development",
        description="Runtime environment"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Root log level applied by configure_logging()"
    )

    # ==========================================================================
    # Dashboard API
    # ==========================================================================
    app_id: str = Field(
        default="dashstage",
        description="Application id passed to every Dashboard API call"
    )

    # ==========================================================================
    # Workspaces
    # ==========================================================================
    default_menu_id: int = Field(
        default=1,
        description="Folder assigned to new workspaces when none is given"
    )

    initial_preview: bool = Field(
        default=True,
        description="Open workspaces in Preview (True) or Editing (False) mode"
    )

    # ==========================================================================
    # Layout tree and grids
    # ==========================================================================
    order_tie_break: Literal["stable", "last_write_wins"] = Field(
        default="stable",
        description="How normalize() ranks siblings that share the same order"
    )

    default_grid_gap: str = Field(
        default="gap-2",
        description="Gap class assigned to grids that do not declare one"
    )

    max_split_count: int = Field(
        default=4,
        ge=2,
        description="Largest number of cells a single split may produce"
    )

    max_row_height: int = Field(
        default=3,
        ge=1,
        description="Largest row height multiplier for grid rows"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
