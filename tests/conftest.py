"""Pytest fixtures and utilities for secrets-vault tests."""

import tempfile
from pathlib import Path

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from secrets_vault.config import Config
from secrets_vault.session import SecretsContext
from secrets_vault.store import SecretsStore

# Keeps PBKDF2 fast in tests; the default stays 100,000
FAST_ITERATIONS = 1000

TEST_PASSWORD = "test_password_123"

SAMPLE_TREE = {
    "bitso": {
        "prod": {"key": "sk_live_123", "secret": "prod_secret_456"},
        "test": {"key": "sk_test_789"},
    },
    1: {True: "typed keys survive"},
}


class ScriptedPrompt:
    """Prompt collaborator that answers from a script and records labels."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = []

    def __call__(self, label):
        self.calls.append(label)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {label}")
        return self.answers.pop(0)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep the developer's SECRETS_* variables out of the tests."""
    for name in ("SECRETS_FILE", "SECRETS_PASSWORD", "SECRETS_KDF_ITERATIONS", "SECRETS_AUDIT_LOG"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_vault_dir():
    """Create a temporary directory for secrets files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def secrets_path(temp_vault_dir):
    return temp_vault_dir / "secrets.json"


@pytest.fixture
def fast_config():
    return Config(kdf_iterations=FAST_ITERATIONS)


@pytest.fixture
def make_store(secrets_path, fast_config):
    """Factory for stores on the shared temp file with a scripted prompt."""
    def _make(*answers, **kwargs):
        prompt = ScriptedPrompt(*answers)
        kwargs.setdefault("config", fast_config)
        store = SecretsStore(path=kwargs.pop("path", secrets_path), prompt=prompt, **kwargs)
        return store, prompt
    return _make


@pytest.fixture
def test_vault(make_store, secrets_path):
    """A secrets file populated with SAMPLE_TREE."""
    store, _ = make_store()
    store.write(SAMPLE_TREE, TEST_PASSWORD)
    return {
        "path": secrets_path,
        "password": TEST_PASSWORD,
        "tree": SAMPLE_TREE,
    }


@pytest.fixture
def make_context(make_store):
    def _make(*answers, **kwargs):
        store, prompt = make_store(*answers, **kwargs)
        return SecretsContext(store), prompt
    return _make


@pytest.fixture
def cli_env(monkeypatch, secrets_path):
    """Point the CLI at the temp secrets file with a fast KDF."""
    monkeypatch.setenv("SECRETS_FILE", str(secrets_path))
    monkeypatch.setenv("SECRETS_KDF_ITERATIONS", str(FAST_ITERATIONS))
    return secrets_path
