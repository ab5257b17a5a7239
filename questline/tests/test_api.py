"""
Tests for API layer.

Tests:
- API service methods and error mapping
- HTTP endpoints via TestClient
- Configuration and CLI entry points
"""

import json

import pytest
from fastapi.testclient import TestClient

from ..api import APIService, ChoiceRequestBody, ErrorCode, create_app, error_response
from ..cli import main
from ..config import QuestlineConfig
from ..errors import (
    ChestNotFoundError,
    ChestQuestMismatchError,
    ContentIntegrityError,
    ContentNotFoundError,
    DegeneratePoolError,
    ProgressConflictError,
    UnknownChoiceError,
    UnknownSceneError,
)
from .conftest import TEST_SECRET, odyssey_data


@pytest.fixture
def service(content_repo, store, exporter) -> APIService:
    return APIService.create(
        content=content_repo,
        store=store,
        rng_secret=TEST_SECRET,
        exporter=exporter,
    )


@pytest.fixture
def client(service) -> TestClient:
    return TestClient(create_app(service))


def play_to_chest(client, user_id="u1"):
    """Take the odyssey to its chest and return the chest instance id."""
    headers = {"X-User-Id": user_id}
    client.post("/v1/quests/odyssey/choice", json={"choice_id": "c_brave"}, headers=headers)
    response = client.post("/v1/quests/odyssey/choice", json={"choice_id": "c_take"}, headers=headers)
    return response.json()["spawned_chest_ids"][0]


class TestAPIService:
    """Tests for APIService."""

    def test_get_state(self, service):
        response = service.get_state("u1", "odyssey")
        assert response.scene.id == "s1"
        assert response.timer.duration_seconds == 1800
        assert response.api_version == "v1"

    def test_apply_choice(self, service):
        response = service.apply_choice("u1", "odyssey", ChoiceRequestBody(choice_id="c_brave"))
        assert response.previous_scene_id == "s1"
        assert response.params_delta.tags == {"courage": 3}
        assert response.next.scene.id == "s2"

    def test_preview(self, service):
        response = service.preview_stage("odyssey", {"gold": 10})
        assert response.scene.stage_key == "S2"
        assert response.timer is None

    def test_open_chest(self, service, exporter):
        service.apply_choice("u1", "odyssey", ChoiceRequestBody(choice_id="c_brave"))
        outcome = service.apply_choice("u1", "odyssey", ChoiceRequestBody(choice_id="c_take"))
        chest_id = outcome.spawned_chest_ids[0]

        first = service.open_chest("u1", "odyssey", chest_id)
        second = service.open_chest("u1", "odyssey", chest_id, idempotency_key="k")
        assert first == second
        assert len(first.combination_id) == 32
        assert len(exporter.calls) == 1

    def test_default_locale(self, content_repo, store):
        """The configured locale is used when a request names none."""
        seen = []

        class SpyRepo:
            def get(self, quest_id, locale=None):
                seen.append(locale)
                return content_repo.get(quest_id, locale)

        config = QuestlineConfig(default_locale="fr")
        service = APIService.create(content=SpyRepo(), store=store, config=config)
        service.get_state("u1", "odyssey")
        service.get_state("u1", "odyssey", "de")
        assert seen == ["fr", "de"]


class TestErrorMapping:
    """Tests for error_response."""

    @pytest.mark.parametrize("error,status,code", [
        (ContentNotFoundError("q"), 404, ErrorCode.CONTENT_NOT_FOUND),
        (ContentIntegrityError("bad"), 400, ErrorCode.INVALID_REQUEST),
        (UnknownSceneError("s", "S1"), 400, ErrorCode.UNKNOWN_SCENE),
        (UnknownChoiceError("c", "s"), 400, ErrorCode.UNKNOWN_CHOICE),
        (ChestNotFoundError("x"), 404, ErrorCode.CHEST_NOT_FOUND),
        (ChestQuestMismatchError("x", "q"), 403, ErrorCode.CHEST_NOT_IN_QUEST),
        (DegeneratePoolError("zero"), 403, ErrorCode.INVALID_POOL),
        (ProgressConflictError("u1", "odyssey"), 409, ErrorCode.PROGRESS_CONFLICT),
    ])
    def test_domain_errors(self, error, status, code):
        got_status, body = error_response(error)
        assert got_status == status
        assert body.error_code == code
        assert body.error == error.message

    def test_internal_error_hides_detail(self):
        """Unexpected errors never leak their message."""
        status, body = error_response(RuntimeError("db password is hunter2"))
        assert status == 500
        assert body.error_code == ErrorCode.INTERNAL_ERROR
        assert "hunter2" not in body.error


class TestEndpoints:
    """Tests for the FastAPI app."""

    def test_state_default_user(self, client, store):
        """Without X-User-Id the demo user is used."""
        response = client.get("/v1/quests/odyssey/state")
        assert response.status_code == 200
        assert response.json()["scene"]["id"] == "s1"
        assert store.get_or_create_session("demo-user", "odyssey", "x").current_stage_key == "S1"

    def test_state_shape(self, client):
        data = client.get("/v1/quests/odyssey/state", headers={"X-User-Id": "u1"}).json()
        assert data["scene"] == {
            "id": "s1",
            "stage_key": "S1",
            "title": "The Harbor",
            "description": "A storm gathers over the harbor.",
            "image": "harbor.png",
        }
        assert data["choices"][0] == {"id": "c_brave", "text": "Sail into the storm"}
        assert data["timer"]["duration_seconds"] == 1800
        assert data["params"] == {"tags": {}, "stats": {}, "inventory": {}}

    def test_choice(self, client):
        response = client.post(
            "/v1/quests/odyssey/choice",
            json={"choice_id": "c_brave", "current_scene_id": "s1"},
            headers={"X-User-Id": "u1"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["params_delta"]["tags"] == {"courage": 3}
        assert data["effects_applied"][0] == {
            "type": "tag", "key": "courage", "value": 3,
            "chest_id": None, "chest_instance_id": None,
        }
        assert data["next"]["scene"]["id"] == "s2"

    def test_stage_preview(self, client):
        response = client.post("/v1/quests/odyssey/stage", json={"gold": 10})
        assert response.status_code == 200
        data = response.json()
        assert data["scene"]["stage_key"] == "S2"
        assert data["timer"] is None
        assert data["params"]["inventory"] == {"gold": 10}

    def test_open_chest_idempotent(self, client):
        chest_id = play_to_chest(client)
        url = f"/v1/chests/{chest_id}/open"
        first = client.post(url, params={"quest_id": "odyssey"}, headers={"X-User-Id": "u1"})
        second = client.post(
            url,
            params={"quest_id": "odyssey"},
            headers={"X-User-Id": "u1", "Idempotency-Key": "retry"},
        )
        assert first.status_code == 200
        assert first.json() == second.json()
        assert first.json()["variant_id"] in ("v_coins", "v_spins")

    def test_open_chest_wrong_quest(self, client):
        chest_id = play_to_chest(client)
        response = client.post(f"/v1/chests/{chest_id}/open", params={"quest_id": "iliad"})
        assert response.status_code == 403
        assert response.json()["error_code"] == "CHEST_NOT_IN_QUEST"
        assert response.json()["error"] == "Chest not in this quest"

    def test_open_chest_not_found(self, client):
        response = client.post("/v1/chests/missing/open", params={"quest_id": "odyssey"})
        assert response.status_code == 404
        assert response.json()["error_code"] == "CHEST_NOT_FOUND"

    def test_open_chest_requires_quest(self, client):
        response = client.post("/v1/chests/missing/open")
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_unknown_quest(self, client):
        response = client.get("/v1/quests/iliad/state")
        assert response.status_code == 404
        assert response.json()["error_code"] == "CONTENT_NOT_FOUND"

    def test_unknown_choice(self, client):
        response = client.post("/v1/quests/odyssey/choice", json={"choice_id": "c_fly"})
        assert response.status_code == 400
        assert response.json()["error_code"] == "UNKNOWN_CHOICE"

    def test_unknown_scene(self, client):
        response = client.post(
            "/v1/quests/odyssey/choice",
            json={"choice_id": "c_rest", "current_scene_id": "nowhere"},
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "UNKNOWN_SCENE"

    def test_invalid_body(self, client):
        response = client.post("/v1/quests/odyssey/choice", json={"choice_id": ""})
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_internal_error(self, service):
        """Unexpected failures return a generic 500."""
        def explode(*args, **kwargs):
            raise RuntimeError("secret detail")

        service.runtime.get_state = explode
        client = TestClient(create_app(service), raise_server_exceptions=False)
        response = client.get("/v1/quests/odyssey/state")
        assert response.status_code == 500
        assert response.json()["error_code"] == "INTERNAL_ERROR"
        assert "secret detail" not in response.text

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["name"] == "Questline API"


class TestConfig:
    """Tests for QuestlineConfig."""

    def test_defaults(self):
        config = QuestlineConfig.from_env({})
        assert config.env == "development"
        assert config.content_dir == "./content"
        assert config.database_url is None
        assert config.timer_seconds == 1800
        assert config.allowed_origins == ["*"]
        assert config.log_level == "INFO"
        assert config.uses_default_secret

    def test_from_environment(self):
        config = QuestlineConfig.from_env({
            "QUESTLINE_ENV": "production",
            "QUESTLINE_CONTENT_DIR": "/srv/content",
            "QUESTLINE_DATABASE_URL": "sqlite://",
            "QUESTLINE_RNG_SECRET": "s3cret",
            "QUESTLINE_DEFAULT_LOCALE": "fr",
            "QUESTLINE_TIMER_SECONDS": "60",
            "ALLOWED_ORIGINS": "https://a.example, https://b.example",
            "QUESTLINE_LOG_LEVEL": "debug",
        })
        assert config.is_production
        assert config.content_dir == "/srv/content"
        assert config.database_url == "sqlite://"
        assert not config.uses_default_secret
        assert config.default_locale == "fr"
        assert config.timer_seconds == 60
        assert config.allowed_origins == ["https://a.example", "https://b.example"]
        assert config.log_level == "DEBUG"

    def test_from_config_wires_file_content(self, tmp_path):
        (tmp_path / "odyssey.json").write_text(json.dumps(odyssey_data()), encoding="utf-8")
        config = QuestlineConfig(content_dir=str(tmp_path), timer_seconds=60)
        service = APIService.from_config(config)

        response = service.get_state("u1", "odyssey")
        assert response.scene.id == "s1"
        assert response.timer.duration_seconds == 60


class TestCLI:
    """Tests for the command-line entry point."""

    @pytest.fixture(autouse=True)
    def content_dir(self, tmp_path, monkeypatch):
        (tmp_path / "odyssey.json").write_text(json.dumps(odyssey_data()), encoding="utf-8")
        monkeypatch.setenv("QUESTLINE_CONTENT_DIR", str(tmp_path))
        monkeypatch.delenv("QUESTLINE_DATABASE_URL", raising=False)
        monkeypatch.chdir(tmp_path)

    def test_state(self, capsys):
        main(["state", "odyssey", "--user", "u1"])
        data = json.loads(capsys.readouterr().out)
        assert data["scene"]["id"] == "s1"

    def test_preview(self, capsys):
        main(["preview", "odyssey", "--param", "gold=10"])
        data = json.loads(capsys.readouterr().out)
        assert data["scene"]["stage_key"] == "S2"

    def test_choose(self, capsys):
        main(["choose", "odyssey", "c_brave", "--user", "u1"])
        data = json.loads(capsys.readouterr().out)
        assert data["next"]["scene"]["id"] == "s2"

    def test_domain_error_exits(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["choose", "odyssey", "c_fly"])
        assert exc.value.code == 1
        assert "Unknown choice" in capsys.readouterr().err

    def test_progress_kept_between_runs(self, capsys, tmp_path):
        """A chest spawned by one invocation can be opened by the next."""
        main(["choose", "odyssey", "c_brave", "--user", "u1"])
        capsys.readouterr()
        main(["choose", "odyssey", "c_take", "--user", "u1"])
        chest_id = json.loads(capsys.readouterr().out)["spawned_chest_ids"][0]

        main(["open", "odyssey", chest_id, "--user", "u1"])
        data = json.loads(capsys.readouterr().out)
        assert data["chest_instance_id"] == chest_id
        assert (tmp_path / "questline.db").is_file()

    def test_database_url_option(self, capsys, tmp_path):
        url = f"sqlite:///{tmp_path / 'custom.db'}"
        main(["--database-url", url, "choose", "odyssey", "c_brave", "--user", "u1"])
        capsys.readouterr()
        main(["--database-url", url, "state", "odyssey", "--user", "u1"])
        assert json.loads(capsys.readouterr().out)["scene"]["id"] == "s2"
        assert not (tmp_path / "questline.db").exists()

    def test_bad_param(self):
        with pytest.raises(SystemExit):
            main(["preview", "odyssey", "--param", "gold"])
