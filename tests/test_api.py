import re
import uuid

import pytest
from fastapi.testclient import TestClient

from chatvault.api.main import create_app, validate_pagination
from chatvault.errors import PaginationError, StorageError
from chatvault.services import ServiceContainer

from conftest import BASE_URL, CHATGPT_HTML

LOCATOR = re.compile(rf"^{re.escape(BASE_URL)}/conversation/(?P<id>[0-9a-f-]+)$")


def _upload(client, content, **fields):
    return client.post(
        "/api/conversation",
        files={"htmlDoc": ("conversation.html", content, "text/html")},
        data=fields,
    )


# =============================================================================
# Pagination validation
# =============================================================================

@pytest.mark.parametrize("limit, offset, expected", [
    (None, None, (50, 0)),
    ("1", "0", (1, 0)),
    ("100", "7", (100, 7)),
    (" 20 ", None, (20, 0)),
])
def test_validate_pagination_accepts(limit, offset, expected):
    assert validate_pagination(limit, offset) == expected


@pytest.mark.parametrize("limit, offset, message", [
    ("0", None, "limit"),
    ("101", None, "limit"),
    ("abc", None, "limit"),
    ("", None, "limit"),
    ("10", "-1", "offset"),
    ("10", "x", "offset"),
    ("10_0", None, "limit"),
    ("\uff11\uff10", None, "limit"),
    ("10", "\u0663", "offset"),
    ("2.5", None, "limit"),
])
def test_validate_pagination_rejects(limit, offset, message):
    with pytest.raises(PaginationError) as exc_info:
        validate_pagination(limit, offset)
    assert message in str(exc_info.value)


# =============================================================================
# GET /api/conversation
# =============================================================================

def test_list_empty_store(client):
    response = client.get("/api/conversation", params={"limit": 50, "offset": 0})

    assert response.status_code == 200
    assert response.json() == {"conversations": []}


@pytest.mark.parametrize("limit", ["0", "101", "ten"])
def test_list_rejects_bad_limit(client, container, limit):
    response = client.get("/api/conversation", params={"limit": limit})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid limit parameter. Must be between 1 and 100."}
    assert not container.is_ready


@pytest.mark.parametrize("limit", ["1", "100"])
def test_list_accepts_limit_bounds(client, limit):
    assert client.get("/api/conversation", params={"limit": limit}).status_code == 200


def test_list_rejects_negative_offset(client, container):
    response = client.get("/api/conversation", params={"offset": "-1"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid offset parameter. Must be non-negative."}
    assert not container.is_ready


def test_list_accepts_zero_offset(client):
    assert client.get("/api/conversation", params={"offset": "0"}).status_code == 200


def test_list_storage_failure_is_generic_500(client, container, monkeypatch):
    client.get("/api/conversation")

    async def broken(limit, offset):
        raise StorageError("database is locked")

    monkeypatch.setattr(container.conversations, "list", broken)
    response = client.get("/api/conversation")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal error, see logs"}


# =============================================================================
# POST /api/conversation
# =============================================================================

def test_structured_submission_end_to_end(client):
    response = _upload(client, b"<p>hi</p>", model="TestBot", isMCP="true")

    assert response.status_code == 201
    match = LOCATOR.match(response.json()["url"])
    assert match
    conversation_id = str(uuid.UUID(match["id"]))

    listing = client.get("/api/conversation").json()["conversations"]
    assert [c["model"] for c in listing] == ["TestBot"]
    assert listing[0]["id"] == conversation_id
    assert listing[0]["views"] == 0
    assert listing[0]["source_html_bytes"] == len(b"<p>hi</p>")

    detail = client.get(f"/api/conversation/{conversation_id}").json()
    assert detail["content"] == "<p>hi</p>"
    assert detail["conversation"]["views"] == 1


def test_structured_submission_keeps_exact_content(client):
    payload = b"<p>hi</p>\r\n<p>there</p>\r"

    response = _upload(client, payload, model="TestBot", isMCP="true")

    conversation_id = LOCATOR.match(response.json()["url"])["id"]
    detail = client.get(f"/api/conversation/{conversation_id}").json()
    assert detail["content"].encode("utf-8") == payload


def test_invalid_utf8_payload_is_rejected_without_writes(client, container, settings):
    response = _upload(client, b"<p>caf\xe9</p>", model="TestBot", isMCP="true")

    assert response.status_code == 400
    assert "UTF-8" in response.json()["error"]
    assert not container.is_ready
    assert not settings.blob_dir.exists()


def test_html_submission_defaults_to_chatgpt(client):
    response = _upload(client, CHATGPT_HTML.encode("utf-8"))

    assert response.status_code == 201
    conversation_id = LOCATOR.match(response.json()["url"])["id"]
    detail = client.get(f"/api/conversation/{conversation_id}").json()
    assert detail["conversation"]["model"] == "ChatGPT"
    assert detail["content"].startswith('<div class="chatgpt-conversation">')
    assert detail["conversation"]["source_html_bytes"] == len(CHATGPT_HTML.encode("utf-8"))


def test_missing_payload_is_rejected_without_writes(client, container, settings):
    response = client.post("/api/conversation", data={"model": "TestBot", "isMCP": "true"})

    assert response.status_code == 400
    assert response.json() == {"error": "`htmlDoc` must be a file field"}
    assert not container.is_ready
    assert not settings.database_path.exists()
    assert not settings.blob_dir.exists()


def test_payload_sent_as_text_field_is_rejected(client):
    response = client.post(
        "/api/conversation",
        data={"htmlDoc": "<p>hi</p>"},
        files={"other": ("x.txt", b"x", "text/plain")},
    )

    assert response.status_code == 400
    assert "htmlDoc" in response.json()["error"]


def test_unknown_format_is_generic_500(client, container):
    response = _upload(client, b"<p>hi</p>", model="TestBot")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal error, see logs"}
    assert client.get("/api/conversation").json() == {"conversations": []}


def test_blob_failure_is_generic_500(settings, registry):
    class BrokenBlobStore:
        async def store(self, conversation_id, content):
            raise StorageError("s3 timeout with secret-bucket-name")

    container = ServiceContainer(settings=settings, registry=registry, blob_store=BrokenBlobStore())
    with TestClient(create_app(container)) as client:
        response = _upload(client, b"<p>hi</p>", model="TestBot", isMCP="true")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal error, see logs"}
    assert "secret-bucket-name" not in response.text


# =============================================================================
# Other endpoints
# =============================================================================

def test_get_unknown_conversation(client):
    response = client.get(f"/api/conversation/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json() == {"error": "Conversation not found"}


@pytest.mark.parametrize("method", ["POST", "GET"])
def test_cors_preflight_allows_any_origin(client, method):
    response = client.options(
        "/api/conversation",
        headers={
            "Origin": "https://chat.example.com",
            "Access-Control-Request-Method": method,
            "Access-Control-Request-Headers": "Content-Type",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert method in response.headers["access-control-allow-methods"]


def test_simple_requests_carry_cors_header(client):
    response = client.get("/api/conversation", headers={"Origin": "https://chat.example.com"})

    assert response.headers["access-control-allow-origin"] == "*"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
