"""Scheduler configuration models."""

from __future__ import annotations

from pydantic import Field

from linkstash.config.base import BaseConfig


class SchedulerConfig(BaseConfig):
    """Periodic background work driven by APScheduler."""

    enabled: bool = Field(True, description="Whether the scheduler is active")
    timezone: str = Field("UTC", description="Timezone used by the scheduler")
    replay_interval_seconds: int = Field(30, ge=1, description="Interval between outbox replays")
    connectivity_interval_seconds: int = Field(60, ge=1, description="Interval between remote connectivity probes")
    pull_interval_seconds: int | None = Field(
        None,
        ge=60,
        description="Interval between remote pulls; disabled when unset",
    )


__all__ = ["SchedulerConfig"]
