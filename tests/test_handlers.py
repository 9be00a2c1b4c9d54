"""Tests for the process entry points."""

from fastapi.testclient import TestClient

import handlers.api


class TestApiHandler:
    def test_get_app_builds_context_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DOCVAULT_STORAGE_PATH", str(tmp_path / "objects"))
        monkeypatch.setenv("DOCVAULT_TEMP_DIR", str(tmp_path / "temp"))
        monkeypatch.setenv("DOCVAULT_DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
        monkeypatch.setattr(handlers.api, "_context", None)

        app = handlers.api.get_app()
        try:
            response = TestClient(app).get("/health")

            assert response.status_code == 200
            assert response.json()["storage"] == "local"
            assert (tmp_path / "temp").is_dir()
            assert handlers.api.get_app().state.context is handlers.api._context
        finally:
            handlers.api._context.close()
