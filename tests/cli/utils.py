"""Shared helpers for CLI tests."""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from pathlib import Path

from loguru import logger
from pytest import MonkeyPatch

from linkstash.config import AppConfig, LLMConfig, SchedulerConfig


@contextmanager
def logger_to_stderr(level: str = "INFO"):
    """Temporarily route Loguru output to stderr for assertion."""

    handler_id = logger.add(sys.stderr, level=level)
    try:
        yield
    finally:
        logger.remove(handler_id)


def write_config(base_dir: Path, extra: str = "") -> Path:
    """Write a config file whose data root lives under ``base_dir``."""

    config_file = base_dir / "config.toml"
    config_file.write_text(
        f"data_root = {json.dumps(str(base_dir / 'data'))}\n"
        'logging_level = "INFO"\n'
        "\n"
        "[extraction]\n"
        "extractor_order = []\n" + extra
    )
    return config_file


def make_app_config(base_dir: Path, *, include_llms: bool = True, include_scheduler: bool = True) -> AppConfig:
    """Construct an in-memory AppConfig tailored for CLI tests."""

    data_root = base_dir / "data"
    data_root.mkdir(parents=True, exist_ok=True)

    llms: list[LLMConfig] = []
    if include_llms:
        llms.append(
            LLMConfig(
                alias="tagger",
                name="stub-tagger",
                base_url="stub://local",
                api_key="dummy",
                temperature=0.0,
                top_p=1.0,
                reasoning_effort=None,
            )
        )

    return AppConfig(
        data_root=data_root,
        logging_level="INFO",
        scheduler=SchedulerConfig(enabled=True, timezone="UTC") if include_scheduler else None,
        enrichment={"tag_model": "tagger" if include_llms else None},
        extraction={"extractor_order": []},
        llms=llms,
    )


def patch_load_config(monkeypatch: MonkeyPatch, config: AppConfig) -> None:
    """Force the CLI to return the provided config instead of reading from disk."""

    def _fake_load_config(model: object, path: Path) -> AppConfig:
        if model is not AppConfig:
            raise AssertionError("Unexpected config model request")
        return config

    monkeypatch.setattr("linkstash.cli.load_config", _fake_load_config)
