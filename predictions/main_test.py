from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pydantic import ValidationError
from pymongo.errors import ServerSelectionTimeoutError

from predictions.config import Settings, get_settings
from predictions.main import create_app


def make_settings(**overrides) -> Settings:
    values = {"MONGO_URI": "mongodb://mongo:27017/predictions"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def mongo():
    """Motor client double: collection calls are async, the rest is sync."""
    collection = MagicMock()
    collection.create_index = AsyncMock()
    collection.insert_one = AsyncMock(
        return_value=MagicMock(inserted_id=ObjectId())
    )
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))

    db = MagicMock()
    db.__getitem__.return_value = collection

    client = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    client.get_default_database.return_value = db
    client.__getitem__.return_value = db

    factory = MagicMock(return_value=client)
    return factory, client, collection


def test_startup_connects_and_registers_routes(mongo):
    factory, client, collection = mongo
    app = create_app(make_settings(), client_factory=factory)

    with TestClient(app) as test_client:
        response = test_client.post(
            "/api/predictions", json={"name": "Rain", "percent": 73}
        )

    assert response.status_code == 201
    assert response.json()["ok"] is True
    factory.assert_called_once_with(
        "mongodb://mongo:27017/predictions",
        serverSelectionTimeoutMS=5000,
        tz_aware=True,
    )
    client.admin.command.assert_awaited_once_with("ping")
    client.get_default_database.assert_called_once_with(default="predictions")
    collection.create_index.assert_awaited_once()
    collection.insert_one.assert_awaited_once()
    client.close.assert_called_once()


def test_explicit_database_name(mongo):
    factory, client, _ = mongo
    app = create_app(make_settings(MONGO_DB="other"), client_factory=factory)

    with TestClient(app):
        pass

    client.__getitem__.assert_called_with("other")
    client.get_default_database.assert_not_called()


def test_failed_ping_aborts_startup(mongo):
    factory, client, _ = mongo
    client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")
    app = create_app(make_settings(), client_factory=factory)

    with pytest.raises(ServerSelectionTimeoutError):
        with TestClient(app):
            pass

    client.close.assert_called_once()


def test_health_and_edge_headers(mongo):
    factory, _, _ = mongo
    app = create_app(make_settings(), client_factory=factory)

    with TestClient(app) as test_client:
        response = test_client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert "time" in data
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-RateLimit-Limit"] == "120"
    assert len(response.headers["X-Request-ID"]) == 36


def test_rate_limit_applies_across_routes(mongo):
    factory, _, _ = mongo
    app = create_app(make_settings(RATE_LIMIT_MAX=2), client_factory=factory)

    with TestClient(app) as test_client:
        statuses = [test_client.get("/api/health").status_code for _ in range(3)]

    assert statuses == [200, 200, 429]


def test_oversized_body_rejected(mongo):
    factory, _, collection = mongo
    app = create_app(make_settings(), client_factory=factory)

    with TestClient(app) as test_client:
        response = test_client.post(
            "/api/predictions",
            json={"name": "Rain", "percent": 5, "message": "x" * 11000},
        )

    assert response.status_code == 413
    collection.insert_one.assert_not_awaited()


def test_cors_preflight(mongo):
    factory, _, _ = mongo
    app = create_app(make_settings(), client_factory=factory)

    with TestClient(app) as test_client:
        response = test_client.options(
            "/api/predictions",
            headers={
                "Origin": "https://example.com",
                "Access-Control-Request-Method": "DELETE",
                "Access-Control-Request-Headers": "x-admin-key",
            },
        )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_unknown_route_uses_error_shape(mongo):
    factory, _, _ = mongo
    app = create_app(make_settings(), client_factory=factory)

    with TestClient(app) as test_client:
        response = test_client.get("/api/nothing")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_delete_guarded_by_admin_key(mongo):
    factory, _, collection = mongo
    app = create_app(make_settings(ADMIN_KEY="s3cret"), client_factory=factory)

    with TestClient(app) as test_client:
        forbidden = test_client.delete("/api/predictions")
        allowed = test_client.delete(
            "/api/predictions", headers={"x-admin-key": "s3cret"}
        )

    assert forbidden.status_code == 403
    assert allowed.status_code == 200
    collection.delete_many.assert_awaited_once_with({})


def test_settings_defaults():
    settings = make_settings()

    assert settings.PORT == 4000
    assert settings.cors_origins == ["*"]
    assert settings.admin_key is None
    assert settings.RATE_LIMIT_MAX == 120
    assert settings.RATE_LIMIT_WINDOW_SECONDS == 60
    assert settings.MAX_BODY_BYTES == 10240


def test_settings_parses_origin_list():
    settings = make_settings(CORS_ORIGIN="https://a.example, https://b.example")
    assert settings.cors_origins == ["https://a.example", "https://b.example"]


def test_settings_require_mongo_uri(monkeypatch, tmp_path):
    monkeypatch.delenv("MONGO_URI", raising=False)

    with pytest.raises(ValidationError):
        get_settings(str(tmp_path / "missing.env"))


def test_settings_read_env_file(monkeypatch, tmp_path):
    monkeypatch.delenv("MONGO_URI", raising=False)
    monkeypatch.delenv("PORT", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("MONGO_URI=mongodb://db:27017/x\nPORT=5000\n")

    settings = get_settings(str(env_file))

    assert settings.MONGO_URI == "mongodb://db:27017/x"
    assert settings.PORT == 5000
