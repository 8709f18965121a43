import pytest
import requests

from appconfig.errors import AccessDeniedError, InvariantViolation, NotFoundError
from appconfig.models.config import ExecutionResult, ResultType
from appconfig.schemas import ConfigEntry, ConfigSchema, KeyValueEntry
from appconfig.services.executor import ConfigExecutor, build_parameters
from appconfig.services.updaters import HttpContentUpdater

from .conftest import FakeUpdater


def result_count(database, config_id=None):
    with database.session() as db:
        query = db.query(ExecutionResult)
        if config_id is not None:
            query = query.filter(ExecutionResult.config_id == config_id)
        return query.count()


def test_build_parameters_later_duplicate_wins():
    key_values = [
        KeyValueEntry(id=1, config_id=1, key="k1", value="a"),
        KeyValueEntry(id=2, config_id=1, key="k2", value="b"),
        KeyValueEntry(id=3, config_id=1, key="k1", value="c"),
    ]

    assert build_parameters(key_values) == {"k1": "c", "k2": "b"}


def test_build_parameters_empty():
    assert build_parameters([]) == {}


@pytest.mark.parametrize(
    "outcome, result_type, values_count, message",
    [
        (4, ResultType.SUCCESS, 4, None),
        (0, ResultType.SUCCESS, 0, None),
        (AccessDeniedError("no grant"), ResultType.ACCESS_DENIED, 0, None),
        (PermissionError("denied"), ResultType.ACCESS_DENIED, 0, None),
        (RuntimeError("boom"), ResultType.EXCEPTION, 0, "boom"),
        (ValueError(), ResultType.EXCEPTION, 0, None),
    ],
)
def test_execution_classification(store, database, make_config, outcome, result_type, values_count, message):
    entry = make_config(key_values=[("a", "1")])
    executor = ConfigExecutor(store, FakeUpdater(outcome))

    result = executor.execute(entry)

    assert (result.result_type, result.values_count, result.message) == (result_type, values_count, message)
    assert result.config_id == entry.config.id
    assert result_count(database, entry.config.id) == 1


def test_execute_passes_authority_and_folded_parameters(store, make_config, updater):
    entry = make_config(authority="com.example.prefs", key_values=[("k1", "a"), ("k2", "b"), ("k1", "c")])

    ConfigExecutor(store, updater).execute(entry)

    assert updater.calls == [("com.example.prefs", {"k1": "c", "k2": "b"})]


def test_each_execution_appends_one_result(store, database, executor, make_config):
    entry = make_config()

    executor.execute(entry)
    executor.execute(entry)

    assert result_count(database, entry.config.id) == 2


def test_execute_by_id_missing_config(executor, database, updater):
    with pytest.raises(NotFoundError) as excinfo:
        executor.execute_by_id(404)

    assert excinfo.value.config_id == 404
    assert updater.calls == []
    assert result_count(database) == 0


def test_execute_without_config_id_violates_invariant(executor, updater):
    entry = ConfigEntry(config=ConfigSchema(name="detached", authority="x"))

    with pytest.raises(InvariantViolation):
        executor.execute(entry)
    assert updater.calls == []


def test_config_deleted_during_external_call(store, database, make_config):
    entry = make_config()

    class DeletingUpdater:
        def update(self, authority, values):
            store.delete_config_entry(entry)
            return 1

    with pytest.raises(NotFoundError):
        ConfigExecutor(store, DeletingUpdater()).execute(entry)
    assert result_count(database) == 0


class StubResponse:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class StubSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def patch(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        return self.response

    def close(self):
        pass


def test_http_updater_patches_authority_url():
    session = StubSession(StubResponse(200, {"updated": 3}))
    updater = HttpContentUpdater(scheme="https", timeout=5, session=session)

    assert updater.update("prefs.example.org/app", {"a": "1"}) == 3
    assert session.calls == [("https://prefs.example.org/app", {"a": "1"}, 5)]


def test_http_updater_accepts_bare_count():
    updater = HttpContentUpdater(session=StubSession(StubResponse(200, 2)))

    assert updater.update("localhost:9000", {}) == 2


@pytest.mark.parametrize("status_code", [401, 403])
def test_http_updater_access_denied(status_code):
    updater = HttpContentUpdater(session=StubSession(StubResponse(status_code)))

    with pytest.raises(AccessDeniedError):
        updater.update("localhost:9000", {"a": "1"})


def test_http_updater_requires_authority():
    updater = HttpContentUpdater(session=StubSession(StubResponse(200, 1)))

    with pytest.raises(ValueError):
        updater.update("", {"a": "1"})


@pytest.mark.parametrize(
    "response, result_type, message",
    [
        (StubResponse(200, {"updated": 5}), ResultType.SUCCESS, None),
        (StubResponse(403), ResultType.ACCESS_DENIED, None),
        (StubResponse(500), ResultType.EXCEPTION, "500 Server Error"),
    ],
)
def test_executor_with_http_updater(store, make_config, response, result_type, message):
    entry = make_config(authority="localhost:9000", key_values=[("a", "1")])
    executor = ConfigExecutor(store, HttpContentUpdater(session=StubSession(response)))

    result = executor.execute(entry)

    assert result.result_type == result_type
    assert result.message == message


def test_config_deleted_right_after_result_insert(store, database, make_config, updater, monkeypatch):
    entry = make_config()
    insert = store.insert_execution_result

    def insert_then_delete(result):
        result_id = insert(result)
        store.delete_config_entry(entry)
        return result_id

    monkeypatch.setattr(store, "insert_execution_result", insert_then_delete)

    with pytest.raises(NotFoundError) as excinfo:
        ConfigExecutor(store, updater).execute(entry)
    assert excinfo.value.config_id == entry.config.id
    assert result_count(database) == 0
