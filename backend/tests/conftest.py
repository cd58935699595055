import json
from pathlib import Path

import pytest

from infra_discovery.core.config import settings


@pytest.fixture
def write_file(tmp_path):
    """Write ``content`` (str, or dict/list dumped as JSON) under tmp_path."""

    def _write(relative: str, content) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if not isinstance(content, str):
            content = json.dumps(content, indent=2)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def clean_azure_env(monkeypatch):
    """Remove every Azure identity variable from the process and settings."""
    for key in ("AZURE_SUBSCRIPTION_ID", "AZURE_TENANT_ID", "AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET"):
        monkeypatch.delenv(key, raising=False)
        monkeypatch.setattr(settings, key, None)
