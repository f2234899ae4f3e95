from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from linkstash.config import AppConfig, BaseConfig, LLMConfig, SyncConfig, load_config, resolve_env_reference
from linkstash.config.utils import describe_secret, env_reference_name


class ExampleConfig(BaseConfig):
    data_root: Path
    feature_enabled: bool


def test_load_config_success(tmp_path: Path) -> None:
    sample = tmp_path / "config.toml"
    sample.write_text(
        """
        data_root = "./cache"
        feature_enabled = true
        """.strip(),
        encoding="utf-8",
    )

    cfg = load_config(ExampleConfig, sample)

    assert cfg.data_root == Path("./cache")
    assert cfg.feature_enabled is True


def test_load_config_missing_file(tmp_path: Path) -> None:
    missing = tmp_path / "missing.toml"
    with pytest.raises(FileNotFoundError):
        load_config(ExampleConfig, missing)


def test_load_config_invalid_toml(tmp_path: Path) -> None:
    broken = tmp_path / "broken.toml"
    broken.write_text("data_root = [unterminated", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid TOML"):
        load_config(ExampleConfig, broken)


def test_app_config_example_file() -> None:
    """The shipped example configuration stays loadable."""
    config_path = Path(__file__).resolve().parents[2] / "config" / "example.toml"
    cfg = load_config(AppConfig, config_path)

    assert cfg.data_root == Path("./data")
    assert cfg.logging_level == "INFO"
    assert cfg.snapshot_dir == Path("./data") / "store"

    assert cfg.extraction.extractor_order == ["youtube", "x", "reddit"]
    assert cfg.extraction.reddit.enabled is True
    assert cfg.extraction.x.bearer_token == "env:X_BEARER_TOKEN"
    assert cfg.extraction.reader.base_url == "https://r.jina.ai"

    assert cfg.sync.backend == "local"
    assert cfg.sync.remote_dir == Path("remote")

    assert cfg.scheduler is not None
    assert cfg.scheduler.replay_interval_seconds == 30
    assert cfg.scheduler.pull_interval_seconds == 900

    assert cfg.enrichment.vision_model == "vision"
    assert cfg.get_llm("tagger") is not None
    assert cfg.get_llm("missing") is None


def test_app_config_defaults() -> None:
    cfg = AppConfig()

    assert cfg.sync.enabled is True
    assert cfg.scheduler is None
    assert cfg.enrichment.caption_languages == ["en"]
    assert cfg.resolve_path(Path("/abs/path")) == Path("/abs/path")
    assert cfg.resolve_path(Path("sync")) == Path("./data") / "sync"


def test_app_config_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        AppConfig.model_validate({"unknown_field": 1})


def test_app_config_rejects_duplicate_llm_aliases() -> None:
    llm = {"alias": "dup", "name": "m", "base_url": "stub://", "api_key": "k"}
    with pytest.raises(ValidationError, match="unique"):
        AppConfig.model_validate({"llms": [llm, dict(llm)]})


def test_extractor_order_must_be_unique() -> None:
    with pytest.raises(ValidationError):
        AppConfig.model_validate({"extraction": {"extractor_order": ["x", "x"]}})


def test_supabase_backend_requires_credentials() -> None:
    with pytest.raises(ValidationError, match="supabase_url"):
        SyncConfig(backend="supabase")

    cfg = SyncConfig(backend="supabase", supabase_url="https://demo.supabase.co", supabase_key="secret")
    assert cfg.supabase_key_secret == "secret"


def test_backoff_bounds_are_checked() -> None:
    with pytest.raises(ValidationError, match="backoff_max"):
        SyncConfig(backoff_base=10, backoff_max=5)


def test_env_reference_resolution(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LINKSTASH_TEST_KEY", "from-env")
    monkeypatch.delenv("LINKSTASH_MISSING_KEY", raising=False)

    assert resolve_env_reference("plain") == "plain"
    assert resolve_env_reference(None) is None
    assert resolve_env_reference("env:LINKSTASH_TEST_KEY") == "from-env"
    assert resolve_env_reference("env:LINKSTASH_MISSING_KEY", required=False) is None
    with pytest.raises(EnvironmentError):
        resolve_env_reference("env:LINKSTASH_MISSING_KEY")

    llm = LLMConfig(alias="a", name="m", base_url="stub://", api_key="env:LINKSTASH_TEST_KEY")
    assert llm.api_key_secret == "from-env"


def test_describe_secret_never_reveals_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LINKSTASH_PRESENT", "abc")
    monkeypatch.delenv("LINKSTASH_ABSENT", raising=False)

    assert describe_secret(None) == "missing"
    assert describe_secret("literal-token") == "configured"
    assert describe_secret("env:LINKSTASH_PRESENT") == "from $LINKSTASH_PRESENT"
    assert describe_secret("env:LINKSTASH_ABSENT") == "$LINKSTASH_ABSENT is not set"
    assert env_reference_name("env:") is None
