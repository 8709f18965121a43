import pytest
from fastapi.testclient import TestClient

from appconfig.config import Settings
from appconfig.main import create_app

from .conftest import FakeUpdater

PREFIX = "/api/v1"


@pytest.fixture
def updater():
    return FakeUpdater(outcome=4)


@pytest.fixture
def client(tmp_path, updater):
    settings = Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'api.db'}",
        WS_HEARTBEAT_INTERVAL=3600,
        COMMAND_WORKERS=2,
    )
    app = create_app(settings, updater=updater)
    with TestClient(app) as client:
        yield client


def create_config(client, name="Theme", authority="com.example.theme", key_values=()):
    config_id = client.post(f"{PREFIX}/configs").json()["id"]
    client.patch(f"{PREFIX}/configs/{config_id}", json={"name": name, "authority": authority})
    for key, value in key_values:
        client.post(f"{PREFIX}/configs/{config_id}/key-values", json={"key": key, "value": value})
    return config_id


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_and_list_configs(client):
    response = client.post(f"{PREFIX}/configs")
    assert response.status_code == 201
    config_id = response.json()["id"]

    listed = client.get(f"{PREFIX}/configs").json()

    assert listed == [
        {"config": {"id": config_id, "name": "", "authority": ""}, "latest_result": None}
    ]


def test_update_config(client):
    config_id = create_config(client, name="Theme", authority="com.example.theme")

    response = client.patch(f"{PREFIX}/configs/{config_id}", json={"name": "Dark theme"})

    assert response.status_code == 200
    assert response.json()["config"] == {
        "id": config_id,
        "name": "Dark theme",
        "authority": "com.example.theme",
    }


def test_missing_config_is_404(client):
    assert client.get(f"{PREFIX}/configs/99").status_code == 404
    assert client.patch(f"{PREFIX}/configs/99", json={"name": "x"}).status_code == 404
    assert client.delete(f"{PREFIX}/configs/99").status_code == 404
    assert client.post(f"{PREFIX}/configs/99/clone").status_code == 404


def test_execute_records_result(client, updater):
    config_id = create_config(client, key_values=[("k1", "a"), ("k2", "b"), ("k1", "c")])

    response = client.post(f"{PREFIX}/configs/{config_id}/execute")

    assert response.status_code == 200
    result = response.json()
    assert (result["result_type"], result["values_count"], result["message"]) == ("success", 4, None)
    assert updater.calls == [("com.example.theme", {"k1": "c", "k2": "b"})]
    assert client.get(f"{PREFIX}/configs").json()[0]["latest_result"]["id"] == result["id"]
    assert [r["id"] for r in client.get(f"{PREFIX}/configs/{config_id}/results").json()] == [result["id"]]


def test_execute_missing_config_is_404(client, updater):
    response = client.post(f"{PREFIX}/configs/123/execute")

    assert response.status_code == 404
    assert updater.calls == []


def test_execute_access_denied(client, updater):
    updater.outcome = PermissionError("not exported")
    config_id = create_config(client)

    result = client.post(f"{PREFIX}/configs/{config_id}/execute").json()

    assert (result["result_type"], result["values_count"], result["message"]) == ("access_denied", 0, None)


def test_clone_and_delete(client):
    config_id = create_config(client, name="Theme", key_values=[("a", "1")])
    client.post(f"{PREFIX}/configs/{config_id}/execute")

    response = client.post(f"{PREFIX}/configs/{config_id}/clone")
    assert response.status_code == 201
    clone_id = response.json()["id"]

    clone = client.get(f"{PREFIX}/configs/{clone_id}").json()
    assert clone["config"]["name"] == "Copy of Theme"
    assert [(kv["key"], kv["value"]) for kv in clone["key_values"]] == [("a", "1")]
    assert client.get(f"{PREFIX}/configs/{clone_id}/results").json() == []

    assert client.delete(f"{PREFIX}/configs/{config_id}").status_code == 204
    assert client.get(f"{PREFIX}/configs/{config_id}").status_code == 404
    assert client.get(f"{PREFIX}/configs/{config_id}/key-values").json() == []
    assert client.get(f"{PREFIX}/configs/{config_id}/results").json() == []
    assert [e["config"]["id"] for e in client.get(f"{PREFIX}/configs").json()] == [clone_id]


def test_key_value_lifecycle(client):
    config_id = create_config(client)

    response = client.post(f"{PREFIX}/configs/{config_id}/key-values", json={"key": "a", "value": "1"})
    assert response.status_code == 201
    kv_id = response.json()["id"]

    response = client.put(f"{PREFIX}/key-values/{kv_id}", json={"key": "a", "value": "2"})
    assert response.json() == {"id": kv_id, "config_id": config_id, "key": "a", "value": "2"}
    assert client.get(f"{PREFIX}/key-values/{kv_id}").json()["value"] == "2"
    assert len(client.get(f"{PREFIX}/configs/{config_id}/key-values").json()) == 1

    assert client.delete(f"{PREFIX}/key-values/{kv_id}").status_code == 204
    assert client.get(f"{PREFIX}/key-values/{kv_id}").status_code == 404
    assert client.put(f"{PREFIX}/key-values/{kv_id}", json={"key": "a"}).status_code == 404


def test_add_key_value_to_missing_config_is_404(client):
    response = client.post(f"{PREFIX}/configs/55/key-values", json={"key": "a", "value": "1"})

    assert response.status_code == 404


def test_websocket_live_config_entries(client):
    with client.websocket_connect("/ws") as websocket:
        assert websocket.receive_json()["type"] == "connection"

        websocket.send_json({"type": "subscribe", "topic": "config_entries"})

        subscribed = websocket.receive_json()
        assert (subscribed["type"], subscribed["key"]) == ("subscribed", "config_entries")

        data = websocket.receive_json()
        assert (data["type"], data["topic"], data["data"]) == ("data", "config_entries", [])


@pytest.mark.parametrize(
    "message",
    [
        {"type": "subscribe", "topic": "config"},
        {"type": "subscribe", "topic": "widgets"},
    ],
)
def test_websocket_rejects_bad_topic(client, message):
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()

        websocket.send_json(message)

        assert websocket.receive_json()["type"] == "error"
