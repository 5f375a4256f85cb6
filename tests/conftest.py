import pytest

from app.storage import session_store


@pytest.fixture(autouse=True)
def session_store_dir(tmp_path, monkeypatch):
    base = tmp_path / "sessions"
    monkeypatch.setattr(session_store, "BASE_DIR", base)
    return base
