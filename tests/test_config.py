import logging
from pathlib import Path

import pytest

from pdfchat.config import PipelineSettings
from pdfchat.errors import InvalidConfigError


def test_defaults_without_environment() -> None:
    settings = PipelineSettings.from_env({})

    assert settings.chunk_size == 500
    assert settings.chunk_overlap == 0
    assert settings.top_k == 4
    assert settings.embedding_backend == "placeholder"
    assert settings.embedding_dimension == 1536
    assert settings.fast_model == "deepseek/deepseek-chat"
    assert settings.high_model == "anthropic/claude-3.5-sonnet"
    assert settings.llm_api_key is None
    assert settings.index_capacity == 50
    assert settings.data_dir == Path("data")


def test_environment_values_are_parsed() -> None:
    settings = PipelineSettings.from_env(
        {
            "PDFCHAT_CHUNK_SIZE": "800",
            "PDFCHAT_CHUNK_OVERLAP": "100",
            "PDFCHAT_TOP_K": " 6 ",
            "PDFCHAT_EMBEDDING_BACKEND": "OpenAI",
            "PDFCHAT_LLM_TEMPERATURE": "0.2",
            "PDFCHAT_DATA_DIR": "/srv/pdfs",
            "PDFCHAT_FAST_MODEL": "",
        }
    )

    assert settings.chunk_size == 800
    assert settings.chunk_overlap == 100
    assert settings.top_k == 6
    assert settings.embedding_backend == "openai"
    assert settings.llm_temperature == 0.2
    assert settings.data_dir == Path("/srv/pdfs")
    assert settings.fast_model == "deepseek/deepseek-chat"


def test_invalid_number_falls_back_to_default(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="pdfchat.config"):
        settings = PipelineSettings.from_env({"PDFCHAT_TOP_K": "many", "PDFCHAT_LLM_TIMEOUT": "soon"})

    assert settings.top_k == 4
    assert settings.llm_timeout == 60.0
    assert "PDFCHAT_TOP_K" in caplog.text


def test_openrouter_key_takes_precedence() -> None:
    settings = PipelineSettings.from_env({"OPENROUTER_API_KEY": "or-key", "OPENAI_API_KEY": "oa-key"})
    fallback = PipelineSettings.from_env({"OPENAI_API_KEY": "oa-key"})

    assert settings.llm_api_key == "or-key"
    assert fallback.llm_api_key == "oa-key"


def test_api_key_is_hidden_from_repr() -> None:
    settings = PipelineSettings(llm_api_key="secret-value")

    assert "secret-value" not in repr(settings)


@pytest.mark.parametrize(
    "changes",
    [
        {"chunk_size": 0},
        {"chunk_size": -5},
        {"chunk_overlap": 500},
        {"chunk_overlap": -1},
        {"top_k": 0},
        {"embedding_backend": "word2vec"},
        {"index_capacity": 0},
        {"session_capacity": 0},
        {"llm_timeout": 0},
        {"fetch_timeout": -1.0},
    ],
)
def test_invalid_values_are_rejected(changes: dict) -> None:
    with pytest.raises(InvalidConfigError):
        PipelineSettings(**changes)


def test_invalid_environment_chunking_is_rejected() -> None:
    with pytest.raises(InvalidConfigError):
        PipelineSettings.from_env({"PDFCHAT_CHUNK_SIZE": "100", "PDFCHAT_CHUNK_OVERLAP": "100"})


def test_with_overrides_validates_and_keeps_other_values() -> None:
    base = PipelineSettings(top_k=7)

    changed = base.with_overrides(chunk_size=200)

    assert changed.chunk_size == 200
    assert changed.top_k == 7
    assert base.chunk_size == 500
    with pytest.raises(InvalidConfigError):
        base.with_overrides(chunk_overlap=600)


def test_invalid_config_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        PipelineSettings(top_k=-1)


def test_tfidf_backend_and_session_capacity_from_environment() -> None:
    settings = PipelineSettings.from_env(
        {"PDFCHAT_EMBEDDING_BACKEND": "tfidf", "PDFCHAT_SESSION_CAPACITY": "5"}
    )

    assert settings.embedding_backend == "tfidf"
    assert settings.session_capacity == 5
