"""Remote synchronisation configuration models."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator

from linkstash.config.base import BaseConfig
from linkstash.config.utils import resolve_env_reference


class SyncConfig(BaseConfig):
    """Configuration describing the remote store and outbox replay behaviour."""

    enabled: bool = Field(True, description="Whether local mutations are queued for remote sync")
    backend: Literal["local", "supabase"] = Field(
        "local",
        description="Remote store backend",
    )
    remote_dir: Path | None = Field(
        Path("./remote"),
        description="Directory used by the local remote store (relative to data_root)",
    )
    supabase_url: str | None = Field(None, description="Supabase project URL")
    supabase_key: str | None = Field(
        None,
        description="Supabase service or anon key, can use 'env:VAR_NAME' format",
    )
    user_id: str | None = Field(None, description="Owner id written into remote rows when set")
    timeout: float = Field(15.0, gt=0, description="Remote request timeout in seconds")
    backoff_base: float = Field(2.0, gt=0, description="Initial retry delay after a failed operation in seconds")
    backoff_max: float = Field(300.0, gt=0, description="Upper bound for the retry delay in seconds")
    max_batch: int = Field(100, ge=1, description="Maximum number of operations replayed per flush")

    @property
    def supabase_key_secret(self) -> str | None:
        return resolve_env_reference(self.supabase_key, required=False)

    @model_validator(mode="after")
    def _validate_backend(self) -> "SyncConfig":
        if self.backend == "local":
            if self.remote_dir is None:
                raise ValueError("Local sync backend requires 'remote_dir'.")
        elif self.backend == "supabase":
            if not self.supabase_url or not self.supabase_key:
                raise ValueError("Supabase sync backend requires 'supabase_url' and 'supabase_key'.")
        if self.backoff_max < self.backoff_base:
            raise ValueError("'backoff_max' must not be smaller than 'backoff_base'.")
        return self


__all__ = ["SyncConfig"]
