"""Secret handling shared by the configuration sections."""

from __future__ import annotations

import os

ENV_PREFIX = "env:"


def env_reference_name(value: str | None) -> str | None:
    """Return ``VAR`` for an ``env:VAR`` reference, ``None`` for anything else."""

    if value and value.startswith(ENV_PREFIX):
        return value[len(ENV_PREFIX):].strip() or None
    return None


def resolve_env_reference(value: str | None, *, required: bool = True) -> str | None:
    """Expand ``env:VAR`` references; literal values and ``None`` pass through.

    An unset or empty variable raises :class:`EnvironmentError` when
    ``required`` and resolves to ``None`` otherwise.
    """

    if value is None:
        return None
    name = env_reference_name(value)
    if name is None:
        return value
    resolved = os.getenv(name)
    if resolved:
        return resolved
    if required:
        raise EnvironmentError(f"Environment variable '{name}' is not set or empty")
    return None


def describe_secret(value: str | None) -> str:
    """Human readable state of a secret setting that never reveals the secret."""

    if not value:
        return "missing"
    name = env_reference_name(value)
    if name is None:
        return "configured"
    return f"from ${name}" if os.getenv(name) else f"${name} is not set"


__all__ = ["ENV_PREFIX", "describe_secret", "env_reference_name", "resolve_env_reference"]
