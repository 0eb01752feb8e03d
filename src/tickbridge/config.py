"""Configuration management for tickbridge."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BridgeSettings(BaseSettings):
    """Bridge settings."""

    model_config = SettingsConfigDict(
        env_prefix="TICKBRIDGE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Channel Configuration
    bridge_dir: Path = Field(default=Path("Assets/LLM/Bridge"), description="Folder holding the channel files")
    request_file: str = Field(default="request.json", description="Request file name inside bridge_dir")
    response_file: str = Field(default="response.md", description="Response file name inside bridge_dir")
    state_file: str = Field(default="state.json", description="Durable state file name inside bridge_dir")
    capture_dir: str = Field(default="Screenshots", description="Capture folder inside bridge_dir")

    # Scheduling
    poll_interval: float = Field(default=1.0, gt=0, description="Seconds between request file checks")
    tick_interval: float = Field(default=0.1, gt=0, description="Seconds between scheduler ticks in serve mode")

    # Capture task
    capture_delay: float = Field(default=1.0, gt=0, description="Default wait after play mode starts")
    capture_safety_margin: float = Field(default=30.0, gt=0, description="Extra seconds before forcing an exit")
    capture_stale_after: float = Field(default=120.0, gt=0, description="Age at which a pending capture is stale")
    capture_finalize_ticks: int = Field(default=2, ge=0, description="Ticks to wait for the artifact to flush")

    # Rebuild task
    rebuild_timeout: float = Field(default=300.0, gt=0, description="Upper bound for a tracked rebuild")
    rebuild_stale_after: float = Field(default=600.0, gt=0, description="Age at which a pending rebuild is stale")

    # Coercion
    reference_marker: str = Field(default="@", min_length=1, description="Prefix of in-graph references")
    asset_prefix: str = Field(default="Assets/", min_length=1, description="Prefix of asset storage paths")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def request_path(self) -> Path:
        return self.bridge_dir / self.request_file

    @property
    def response_path(self) -> Path:
        return self.bridge_dir / self.response_file

    @property
    def state_path(self) -> Path:
        return self.bridge_dir / self.state_file

    @property
    def capture_path(self) -> Path:
        return self.bridge_dir / self.capture_dir


def get_settings(bridge_dir: Path | None = None) -> BridgeSettings:
    """Get bridge settings.

    Args:
        bridge_dir: Optional bridge folder override

    Returns:
        BridgeSettings instance
    """
    if bridge_dir is None:
        return BridgeSettings()
    return BridgeSettings(bridge_dir=bridge_dir)
