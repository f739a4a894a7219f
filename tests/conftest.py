"""Shared fixtures for the StageDo test suite."""

import pytest

from stagedo.normalizer import set_default_canonicalizer


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep environment-driven defaults from leaking between tests."""
    for name in ("STAGEDO_CANONICALIZER", "STAGEDO_STORAGE_DIR", "STAGEDO_PROJECT_ROOT", "STAGEDO_MODEL", "STAGEDO_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    set_default_canonicalizer(None)
    yield
    set_default_canonicalizer(None)
