"""Pydantic models for recently used paths."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RecencyEntry(BaseModel):
    """A path the user has searched in or selected.

    Attributes:
        path: Absolute path, unique within the ledger
        last_used: When the path was last used (UTC)
        use_count: How many times the path has been used
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Absolute path")
    last_used: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the path was last used",
    )
    use_count: int = Field(default=1, ge=1, description="Number of uses")

    @field_validator("last_used")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        """Treat naive timestamps from older history files as UTC."""
        return v if v.tzinfo is not None else v.replace(tzinfo=UTC)


class SelectRequest(BaseModel):
    """Request body for recording a selected path."""

    session_id: str = Field(..., min_length=1, description="Client session id")
    path: str = Field(..., min_length=1, description="Selected path")
