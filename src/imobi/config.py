"""Application configuration using pydantic-settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from imobi.store.local import SimulatedLatency


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="IMOBI_",
        extra="ignore",
    )

    # Backend selection (resolved once at startup)
    backend: Literal["local", "firestore"] = Field(
        default="local",
        description="Storage backend: local SQLite partitions or a shared Firestore collection",
    )

    # Local store
    database_path: str = Field(default="data/imobi.db")
    partition_prefix: str = Field(
        default="data_",
        min_length=1,
        description="Prefix of the per-user partition key",
    )
    create_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Simulated network latency before a create completes",
    )
    write_delay_seconds: float = Field(
        default=0.3,
        ge=0,
        description="Simulated network latency before update/remove/clear/restore complete",
    )
    initial_delivery_delay_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Delay before the first snapshot reaches a new subscriber",
    )
    poll_interval_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Re-read interval to pick up writes from other sessions (0 disables)",
    )

    # Firestore (optional)
    firestore_project_id: str = Field(
        default="",
        description="Google Cloud project id; leave empty to run unconfigured",
    )
    firestore_collection: str = Field(default="imoveis", min_length=1)
    firestore_credentials_path: str = Field(
        default="",
        description="Service account JSON file (defaults to application credentials)",
    )

    # Logging
    log_json: bool = Field(default=False, description="Emit JSON logs instead of console output")
    debug: bool = Field(default=False)

    @property
    def data_dir(self) -> str:
        """Return the directory containing the database."""
        return str(Path(self.database_path).parent)

    @property
    def poll_interval(self) -> float | None:
        return self.poll_interval_seconds or None

    def get_latency(self) -> SimulatedLatency:
        """Build the simulated write latency for the local store."""
        return SimulatedLatency(
            create=self.create_delay_seconds,
            write=self.write_delay_seconds,
        )
