import pytest

from appconfig.database import Base, Database
from appconfig.models.config import ResultType
from appconfig.schemas import NewExecutionResult, NewKeyValue
from appconfig.services.commands import AppConfigCommands
from appconfig.services.executor import ConfigExecutor
from appconfig.services.live_query import InvalidationTracker
from appconfig.services.store import AppConfigStore


class FakeUpdater:
    """Returns ``outcome`` when it is a count, raises it when it is an exception"""

    def __init__(self, outcome=0):
        self.outcome = outcome
        self.calls = []

    def update(self, authority, values):
        self.calls.append((authority, dict(values)))
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


class RecordingPresenter:
    def __init__(self):
        self.details = []
        self.key_value_details = []
        self.errors = []

    def show_details(self, config_id):
        self.details.append(config_id)

    def show_key_value_details(self, config_id, key_value_id):
        self.key_value_details.append((config_id, key_value_id))

    def notify_error(self, error):
        self.errors.append(error)


@pytest.fixture
def database(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'appconfig.db'}")
    database.init_db()
    yield database
    database.dispose()


@pytest.fixture
def tracker():
    # Deliver synchronously so tests can assert right after a write
    tracker = InvalidationTracker(Base.metadata, dispatch=lambda fn: fn())
    yield tracker
    tracker.close()


@pytest.fixture
def store(database, tracker):
    return AppConfigStore(database, tracker)


@pytest.fixture
def updater():
    return FakeUpdater(outcome=0)


@pytest.fixture
def executor(store, updater):
    return ConfigExecutor(store, updater)


@pytest.fixture
def presenter():
    return RecordingPresenter()


@pytest.fixture
def commands(store, executor, presenter):
    commands = AppConfigCommands(store, executor, presenter, workers=2)
    yield commands
    commands.close()


@pytest.fixture
def make_config(store):
    """Create a config with the given key-values and execution results"""

    def make(name="config", authority="example.provider", key_values=(), results=0):
        config_id = store.insert_empty_config()
        store.update_config_name(name, config_id)
        store.update_config_authority(authority, config_id)
        for key, value in key_values:
            store.insert_key_value(NewKeyValue(config_id=config_id, key=key, value=value))
        for _ in range(results):
            store.insert_execution_result(
                NewExecutionResult(config_id=config_id, result_type=ResultType.SUCCESS, values_count=1)
            )
        return store.fetch_config_entry_by_id(config_id)

    return make
