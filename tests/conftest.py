import pytest

from medride.config import Settings
from medride.sockets.hub import RealtimeHub
from tests.fakes import InMemoryStore, RecordingNotificationSink


@pytest.fixture
def settings():
    return Settings(jwt_secret_key="test-secret", cors_origin="http://testserver")


@pytest.fixture
def store():
    store = InMemoryStore()
    store.add_user("1", "Abebe", "Kebede", role="patient")
    store.add_user("2", "Selam", "Tadesse", role="doctor")
    store.add_user("3", "Dawit", "Alemu", role="patient")
    store.add_doctor("2")
    store.add_chat("42", patient_id="1", doctor_id="2")
    store.add_chat("43", patient_id="3", doctor_id="2")
    return store


@pytest.fixture
def notifier():
    return RecordingNotificationSink()


@pytest.fixture
def hub(store, notifier, settings):
    return RealtimeHub(store=store, settings=settings, notifier=notifier)
