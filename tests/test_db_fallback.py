import api.db as db
from api.config.settings import Settings


def test_db_url_setting_wins(monkeypatch):
    monkeypatch.setattr(db, "get_settings", lambda: Settings(db_url="postgresql+psycopg://og@db/outagegate"))
    assert db._db_url() == "postgresql+psycopg://og@db/outagegate"


def test_db_sqlite_fallback_uses_state_dir(monkeypatch, tmp_path):
    st = tmp_path / "state"
    monkeypatch.setattr(db, "get_settings", lambda: Settings(db_url="  "))
    monkeypatch.setattr(db, "STATE_DIR", st)

    url = db._db_url()

    assert url == f"sqlite:///{(st / 'outagegate.sqlite3').as_posix()}"
    assert st.is_dir()
