import mongomock
import pytest
from fastapi.testclient import TestClient

import users
from notifications import Notifier
from summarizer import FrequencySummarizer
from uploads import ImageHost


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events = []

    def to_user(self, user_id, event, data=None):
        self.events.append(("user", user_id, event, data))

    def broadcast(self, event, data=None):
        self.events.append(("all", None, event, data))

    def of(self, event):
        return [e for e in self.events if e[2] == event]


class FakeImageHost(ImageHost):
    def __init__(self):
        self.uploads = []

    def upload(self, content, content_type, folder):
        self.uploads.append((folder, content_type, len(content)))
        return f"https://images.example.com/{folder}/{len(self.uploads)}.png"


@pytest.fixture
def db():
    return mongomock.MongoClient()["localaid_test"]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def image_host():
    return FakeImageHost()


@pytest.fixture
def make_user(db):
    def _make(name="Alice", password="secret123"):
        return users.register_user(db, name, f"{name.lower()}@example.com", password)
    return _make


@pytest.fixture
def client(db, notifier, image_host):
    import main

    main.app.dependency_overrides[main.get_db] = lambda: db
    main.app.dependency_overrides[main.get_notifier] = lambda: notifier
    main.app.dependency_overrides[main.get_image_host] = lambda: image_host
    main.app.dependency_overrides[main.get_summarizer] = lambda: FrequencySummarizer()
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def bearer(user):
    return {"Authorization": f"Bearer {user['token']}"}
