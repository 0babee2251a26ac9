from fastapi.testclient import TestClient

from relay_api.app.infrastructure.messaging.rabbitmq.constants import PublisherState
from tests.conftest import FakeDeadLetterRepository, FakePublisher, dead_letter_doc


def _repo(*docs):
    return FakeDeadLetterRepository({doc["_id"]: doc for doc in docs})


def test_list_returns_records(test_app):
    test_app.state.dead_letter_repository = _repo(dead_letter_doc("a1"), dead_letter_doc("b2", status="REPLAYED"))
    client = TestClient(test_app)

    r = client.get("/dead-letters")

    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    first = body["items"][0]
    assert first["id"] == "a1"
    assert first["attempts"] == 5
    assert first["error"] == "retryable 500"
    assert first["original"]["email"] == "a@example.com"


def test_list_filters_by_status_and_caps_limit(test_app):
    repo = _repo(dead_letter_doc("a1"), dead_letter_doc("b2", status="REPLAYED"))
    test_app.state.dead_letter_repository = repo
    client = TestClient(test_app)

    r = client.get("/dead-letters", params={"status": "REPLAYED", "limit": 10_000})

    assert r.status_code == 200
    assert [item["id"] for item in r.json()["items"]] == ["b2"]
    assert repo.list_calls == [("REPLAYED", 200)]


def test_list_rejects_non_positive_limit(test_app):
    client = TestClient(test_app)
    r = client.get("/dead-letters", params={"limit": 0})
    assert r.status_code == 422


def test_list_503_when_database_fails(test_app):
    test_app.state.dead_letter_repository = FakeDeadLetterRepository(raise_on_read=RuntimeError("down"))
    client = TestClient(test_app)
    assert client.get("/dead-letters").status_code == 503


def test_list_503_when_repository_missing(test_app):
    test_app.state.dead_letter_repository = None
    client = TestClient(test_app)
    assert client.get("/dead-letters").status_code == 503


def test_get_one_200_and_404(test_app):
    test_app.state.dead_letter_repository = _repo(dead_letter_doc("a1"))
    client = TestClient(test_app)

    r = client.get("/dead-letters/a1")
    assert r.status_code == 200
    assert r.json()["status"] == "PENDING_REVIEW"

    assert client.get("/dead-letters/missing").status_code == 404


def test_replay_202_publishes_original_and_marks_replayed(test_app):
    repo = _repo(dead_letter_doc("a1", email="replay@example.com"))
    publisher = FakePublisher(state=PublisherState.READY)
    test_app.state.dead_letter_repository = repo
    test_app.state.publisher = publisher
    client = TestClient(test_app)

    r = client.post("/dead-letters/a1/replay")

    assert r.status_code == 202
    request_id = r.json()["request_id"]
    assert len(publisher.published) == 1
    message = publisher.published[0]
    assert message["email"] == "replay@example.com"
    assert message["request_id"] == request_id
    assert message["request_id"] != "old-req"
    assert repo.records["a1"]["status"] == "REPLAYED"


def test_replay_404_when_missing(test_app):
    client = TestClient(test_app)
    assert client.post("/dead-letters/nope/replay").status_code == 404


def test_replay_409_when_already_replayed(test_app):
    publisher = FakePublisher()
    test_app.state.dead_letter_repository = _repo(dead_letter_doc("a1", status="REPLAYED"))
    test_app.state.publisher = publisher
    client = TestClient(test_app)

    assert client.post("/dead-letters/a1/replay").status_code == 409
    assert publisher.published == []


def test_replay_503_when_publisher_not_ready_leaves_record_pending(test_app):
    repo = _repo(dead_letter_doc("a1"))
    test_app.state.dead_letter_repository = repo
    test_app.state.publisher = FakePublisher(state=PublisherState.RECONNECTING)
    client = TestClient(test_app)

    assert client.post("/dead-letters/a1/replay").status_code == 503
    assert repo.records["a1"]["status"] == "PENDING_REVIEW"


def test_replay_503_when_database_fails(test_app):
    test_app.state.dead_letter_repository = FakeDeadLetterRepository(raise_on_read=RuntimeError("down"))
    client = TestClient(test_app)
    assert client.post("/dead-letters/a1/replay").status_code == 503
