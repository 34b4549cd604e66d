"""Engine configuration from the environment / .env files."""

from __future__ import annotations

import pytest

from posts_api import db


@pytest.fixture(autouse=True)
def fresh_engine(monkeypatch, tmp_path):
    monkeypatch.setattr(db, "_engine", None)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("DB_URL", raising=False)
    monkeypatch.delenv("ENV_PATH", raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    if db._engine is not None:
        db._engine.dispose()


class TestGetEngine:
    def test_missing_url(self):
        with pytest.raises(RuntimeError, match="DATABASE_URL is not set"):
            db.get_engine()

    def test_missing_url_lists_env_files(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ENV_PATH", str(tmp_path / "absent.env"))
        with pytest.raises(RuntimeError) as exc_info:
            db.get_engine()
        message = str(exc_info.value)
        assert message.index("absent.env") < message.index(str(tmp_path / ".env"))

    def test_database_url(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'a.db'}")
        engine = db.get_engine()
        assert engine.dialect.name == "sqlite"
        assert db.get_engine() is engine

    def test_db_url_fallback(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DB_URL", f"sqlite:///{tmp_path / 'b.db'}")
        assert db.get_engine().url.database.endswith("b.db")

    def test_env_path_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text(f"DATABASE_URL=sqlite:///{tmp_path / 'c.db'}\n")
        monkeypatch.setenv("ENV_PATH", str(env_file))

        # load_dotenv writes into os.environ; let monkeypatch restore it
        monkeypatch.setenv("DATABASE_URL", "")
        monkeypatch.delenv("DATABASE_URL")

        assert db.database_url().endswith("c.db")

    def test_db_ping(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'd.db'}")
        db.db_ping(db.get_engine())
