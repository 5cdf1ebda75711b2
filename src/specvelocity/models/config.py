"""Configuration models."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MiningConfig(BaseModel):
    """Options for one history mining run."""

    specs_dir: str = Field(".kiro/specs", description="Spec directory relative to the repository root")
    tasks_filename: str = Field("tasks.md", description="Checklist document inside each spec directory")
    max_revisions: Optional[int] = Field(None, description="Maximum revisions to replay per document")
    max_file_size_bytes: int = Field(
        default=1_000_000,  # 1MB
        description="Revisions larger than this are skipped",
    )
    max_workers: int = Field(4, ge=1, description="Documents mined concurrently")
    document_timeout_seconds: Optional[float] = Field(
        30.0, gt=0, description="Time limit for one document (None disables it)"
    )
    git_timeout_seconds: Optional[float] = Field(
        10.0, gt=0, description="Time limit for one git history query (None disables it)"
    )

    class Config:
        """Pydantic config."""
        json_schema_extra = {
            "example": {
                "specs_dir": ".kiro/specs",
                "tasks_filename": "tasks.md",
                "max_revisions": 500,
                "max_file_size_bytes": 1000000,
                "max_workers": 4,
                "document_timeout_seconds": 30.0,
                "git_timeout_seconds": 10.0,
            }
        }


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings are prefixed with SPECVELOCITY_ (e.g., SPECVELOCITY_STATE_DIR).
    """

    model_config = SettingsConfigDict(
        env_prefix="SPECVELOCITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    state_dir: Path = Path.home() / ".specvelocity"

    # Document discovery
    specs_dir: str = ".kiro/specs"
    tasks_filename: str = "tasks.md"

    # Mining
    max_workers: int = 4
    document_timeout_seconds: float = 30.0
    git_timeout_seconds: float = 10.0
    max_revisions: Optional[int] = None
    max_file_size_bytes: int = 1_000_000

    # Aggregation
    activity_log_limit: int = 100
    daily_retention_days: int = 90

    # Logging
    log_level: str = "INFO"

    def mining_config(self) -> MiningConfig:
        """Build the per-run mining options from these settings."""
        return MiningConfig(
            specs_dir=self.specs_dir,
            tasks_filename=self.tasks_filename,
            max_revisions=self.max_revisions,
            max_file_size_bytes=self.max_file_size_bytes,
            max_workers=self.max_workers,
            document_timeout_seconds=self.document_timeout_seconds,
            git_timeout_seconds=self.git_timeout_seconds,
        )
