import pytest

from reference_engine.config import ConfidenceAdjustments, ReferenceEngineConfig, load_config
from reference_engine.core.models import DuplicateHandling
from reference_engine.exceptions import ConfigError


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    load_config.cache_clear()
    yield
    load_config.cache_clear()


def test_defaults():
    config = ReferenceEngineConfig()

    assert config.similarity.text == 0.4
    assert config.relevance.similarity == 0.5
    assert config.quality.citation == 0.3
    assert config.confidence.floor == 0.1
    assert config.duplicates.title_similarity_threshold == 0.85
    assert config.manager.min_confidence == 0.5
    assert config.manager.duplicate_handling is DuplicateHandling.PROMPT_USER
    assert config.store.backend == "memory"


def test_nested_environment_overrides(monkeypatch):
    monkeypatch.setenv("REFERENCE_ENGINE_RELEVANCE__SIMILARITY", "0.6")
    monkeypatch.setenv("REFERENCE_ENGINE_MANAGER__DUPLICATE_HANDLING", "skip")

    config = load_config()

    assert config.relevance.similarity == 0.6
    assert config.relevance.quality == 0.3
    assert config.manager.duplicate_handling is DuplicateHandling.SKIP


def test_dotenv_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("REFERENCE_ENGINE_MANAGER__MIN_CONFIDENCE=0.7\n", encoding="utf-8")

    assert load_config().manager.min_confidence == 0.7


def test_load_config_is_cached():
    assert load_config() is load_config()


def test_invalid_configuration_raises_config_error(monkeypatch):
    monkeypatch.setenv("REFERENCE_ENGINE_STORE__BACKEND", "supabase")

    with pytest.raises(ConfigError, match="supabase_url"):
        load_config()


def test_out_of_range_weight_is_rejected(monkeypatch):
    monkeypatch.setenv("REFERENCE_ENGINE_QUALITY__CITATION", "1.5")

    with pytest.raises(ConfigError):
        load_config()


def test_confidence_floor_must_not_exceed_ceiling():
    with pytest.raises(ValueError, match="floor"):
        ConfidenceAdjustments(floor=0.9, ceiling=0.5)
