"""Worker task inputs, read from unprefixed environment variables."""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rehydration.models.dataset import DatasetVersion, User


class TaskEnv(BaseSettings):
    """Environment of one worker task.

    Required variables must be present and non-empty; ``TaskEnv()`` raises
    ``pydantic.ValidationError`` otherwise.
    """

    model_config = SettingsConfigDict(case_sensitive=False, str_strip_whitespace=True)

    dataset_id: int = Field(gt=0)
    dataset_version_id: int = Field(gt=0)
    user_name: str = Field(min_length=1)
    user_email: str = Field(min_length=1)
    env: str = Field(min_length=1)
    idempotency_table_name: str = Field(min_length=1)

    # Unset disables tracking; the requesting user is notified directly
    tracking_table_name: str | None = None
    region: str | None = None

    @field_validator("tracking_table_name", "region", mode="before")
    @classmethod
    def _empty_as_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def dataset(self) -> DatasetVersion:
        return DatasetVersion(dataset_id=self.dataset_id, version_id=self.dataset_version_id)

    @property
    def user(self) -> User:
        return User(name=self.user_name, email=self.user_email)
