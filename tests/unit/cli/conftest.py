"""Fixtures for CLI tests: isolated config, fake embedding provider."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

_DIMS = 768


def fake_embedding(**kwargs):
    """Deterministic 768-d vector derived from the input text."""
    text = kwargs["input"][0]
    vector = [0.0] * _DIMS
    for i, ch in enumerate(text[:_DIMS]):
        vector[i] = (ord(ch) % 17) / 17.0
    vector[0] += 1.0
    resp = MagicMock()
    resp.data = [{"embedding": vector}]
    return resp


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Run in an empty project dir with no global config and a dummy API key."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("devbrain.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("DEVBRAIN_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("DEVBRAIN_DB", raising=False)
    # No pauses between embedding batches
    (tmp_path / "devbrain.yaml").write_text("embedding:\n  batch_delay: 0\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def fake_provider():
    with patch("devbrain.rag.embedding_client.litellm.embedding", side_effect=fake_embedding) as mock_e:
        yield mock_e
