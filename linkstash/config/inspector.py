"""Validation report and field reference for linkstash configuration files."""

from __future__ import annotations

import os
import re
from pathlib import Path
from types import UnionType
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined, to_jsonable_python

from .app import AppConfig
from .base import load_config
from .utils import env_reference_name

_MODULE_PATH = re.compile(r"\b(?:[A-Za-z_]\w*\.)+(?=[A-Za-z_])")


class ConfigInspectionError(RuntimeError):
    """Raised when configuration inspection fails unexpectedly."""


def check_config(path: Path, *, config_cls: type[AppConfig] = AppConfig) -> tuple[dict[str, Any], int, AppConfig | None]:
    """Load ``path`` and report the outcome as ``(result, exit_code, config)``.

    Exit codes: 0 ok, 1 invalid TOML, 2 unreadable file, 3 schema violation.
    ``config`` is ``None`` unless the file validated.
    """

    try:
        config = load_config(config_cls, path)
    except (FileNotFoundError, PermissionError) as exc:
        kind = "missing_file" if isinstance(exc, FileNotFoundError) else "permission_error"
        return _error(path, kind, str(exc)), 2, None
    except ValidationError as exc:
        details = [
            {"loc": ".".join(str(part) for part in err["loc"]), "message": err["msg"], "type": err["type"]}
            for err in exc.errors()
        ]
        return _error(path, "validation_error", "Configuration validation failed", details=details), 3, None
    except ValueError as exc:
        return _error(path, "invalid_format", str(exc)), 1, None
    except Exception as exc:  # pragma: no cover - unexpected failures
        raise ConfigInspectionError("Unexpected configuration inspection error") from exc

    return {"status": "ok", "config_path": str(path), "warnings": collect_warnings(config)}, 0, config


def explain_config(*, config_cls: type[AppConfig] = AppConfig) -> list[dict[str, Any]]:
    """List every field, nested sections included, as ``name/type/required/default/description``."""

    documentation: list[dict[str, Any]] = []
    seen: set[type[BaseModel]] = set()
    pending: list[tuple[type[BaseModel], str]] = [(config_cls, "")]
    while pending:
        model_cls, prefix = pending.pop(0)
        if model_cls in seen:
            continue
        seen.add(model_cls)
        nested: list[tuple[type[BaseModel], str]] = []
        for name, field in model_cls.model_fields.items():
            documentation.append(
                {
                    "name": prefix + name,
                    "type": _type_label(field.annotation),
                    "required": field.is_required(),
                    "default": _default_value(field),
                    "description": field.description or "",
                }
            )
            nested.extend(_section_models(field.annotation, prefix + name))
        pending[:0] = nested
    return documentation


def collect_warnings(config: AppConfig) -> list[str]:
    """Non-fatal problems that limit extraction, sync or enrichment."""

    warnings: list[str] = []
    extraction = config.extraction
    enrichment = config.enrichment

    if extraction.x.enabled and not extraction.x.bearer_token:
        warnings.append("X extractor is enabled but no 'bearer_token' is configured; tweets fall back to the reader")
    if extraction.reader.require_api_key and not extraction.reader.api_key:
        warnings.append("Reader requires an API key but 'extraction.reader.api_key' is empty")
    if not config.sync.enabled:
        warnings.append("Sync is disabled; changes stay on this machine only")
    if config.scheduler is None:
        warnings.append("No scheduler block configured; the outbox is only replayed on demand")

    aliases = (
        ("vision_model", enrichment.vision_model),
        ("tag_model", enrichment.tag_model),
        ("tldr_model", enrichment.tldr_model),
    )
    for label, alias in aliases:
        if alias is not None and config.get_llm(alias) is None:
            warnings.append(f"'enrichment.{label}' references unknown LLM alias '{alias}'")
    if enrichment.auto_generate_image_descriptions and enrichment.vision_model is None:
        warnings.append("Automatic image descriptions are enabled but no 'vision_model' is set")
    if enrichment.auto_generate_tags and enrichment.tag_model is None:
        warnings.append("Automatic tags are enabled but no 'tag_model' is set")
    if enrichment.auto_generate_tldr and (enrichment.tldr_model or enrichment.tag_model) is None:
        warnings.append("Automatic TLDRs are enabled but neither 'tldr_model' nor 'tag_model' is set")
    if enrichment.auto_generate_transcripts and not enrichment.assemblyai.api_key:
        warnings.append("No AssemblyAI key configured; only YouTube captions can be transcribed")

    secrets = {
        "extraction.x.bearer_token": extraction.x.bearer_token,
        "extraction.reader.api_key": extraction.reader.api_key,
        "sync.supabase_key": config.sync.supabase_key,
        "enrichment.assemblyai.api_key": enrichment.assemblyai.api_key,
    }
    secrets.update({f"llms[{llm.alias}].api_key": llm.api_key for llm in config.llms})
    for label, value in secrets.items():
        name = env_reference_name(value)
        if name is not None and not os.getenv(name):
            warnings.append(f"'{label}' reads ${name}, which is not set")

    return warnings


def _error(path: Path, kind: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"status": "error", "config_path": str(path), "error": {"type": kind, "message": message, **extra}}


def _type_label(annotation: Any) -> str:
    if isinstance(annotation, type) and not get_args(annotation):
        return annotation.__name__
    return _MODULE_PATH.sub("", str(annotation))


def _default_value(field: FieldInfo) -> Any:
    if field.is_required():
        return None
    if field.default_factory is None:
        value = field.default
    else:
        try:
            value = field.default_factory()  # type: ignore[call-arg]
        except Exception:  # pragma: no cover - factory failure is unexpected
            return "<factory>"
    if value is PydanticUndefined:
        return None
    return to_jsonable_python(value)


def _section_models(annotation: Any, name: str) -> list[tuple[type[BaseModel], str]]:
    origin = get_origin(annotation)
    if origin is None:
        return [(annotation, f"{name}.")] if _is_model(annotation) else []
    args = get_args(annotation)
    if origin in {Union, UnionType}:
        return [(arg, f"{name}.") for arg in args if _is_model(arg)]
    if origin is list and args and _is_model(args[0]):
        return [(args[0], f"{name}[].")]
    return []


def _is_model(candidate: Any) -> bool:
    return isinstance(candidate, type) and get_origin(candidate) is None and issubclass(candidate, BaseModel)


__all__ = ["check_config", "collect_warnings", "explain_config", "ConfigInspectionError"]
