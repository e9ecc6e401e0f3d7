"""
Shared pytest fixtures.

Provides an in-memory document store and a scripted HTTP session so no
Firebase project or network access is required for tests.
"""
import base64
import json
from collections import defaultdict, deque
from datetime import datetime, timezone

import pytest

from vivid.models.core import StoredDocument
from vivid.utils.firestore_client import FirestoreError
from vivid.utils.identity_client import IdentityClient
from vivid.utils.listeners import ListenerHandle

SERVER_TIMESTAMP = object()
NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


def make_id_token(claims):
    """Unsigned JWT carrying the given claims."""
    def segment(obj):
        return base64.urlsafe_b64encode(json.dumps(obj).encode()).decode().rstrip("=")
    return f"{segment({'alg': 'none'})}.{segment(claims)}.sig"


def doc(doc_id, **data):
    return StoredDocument(id=doc_id, data=data)


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body
        self.text = json.dumps(body) if body is not None else ""

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class FakeHTTP:
    """Stands in for requests.Session; responses are queued per endpoint suffix."""

    def __init__(self):
        self.queues = defaultdict(deque)
        self.calls = []

    def queue(self, endpoint, response):
        self.queues[endpoint].append(response)

    def post(self, url, params=None, json=None, data=None, timeout=None):
        self.calls.append({"url": url, "params": params, "json": json, "data": data})
        endpoint = url.rsplit("/", 1)[-1]
        if not self.queues[endpoint]:
            raise AssertionError(f"Unexpected request to {url}")
        response = self.queues[endpoint].popleft()
        if isinstance(response, Exception):
            raise response
        return response

    def count(self, endpoint):
        return sum(1 for call in self.calls if call["url"].endswith(endpoint))


def anonymous_response(uid="anon-1"):
    return FakeResponse(200, {
        "idToken": make_id_token({"user_id": uid, "sub": uid}),
        "refreshToken": f"refresh-{uid}",
        "expiresIn": "3600",
        "localId": uid,
    })


def custom_token_response(uid="user-42"):
    # signInWithCustomToken does not return localId; the uid comes from the token claims
    return FakeResponse(200, {
        "idToken": make_id_token({"user_id": uid, "sub": uid}),
        "refreshToken": f"refresh-{uid}",
        "expiresIn": "3600",
    })


def error_response(message="ADMIN_ONLY_OPERATION", status=400):
    return FakeResponse(status, {"error": {"code": status, "message": message}})


class FakeStore:
    """In-memory document store with the same surface as DocumentStore."""

    def __init__(self):
        self.listeners = defaultdict(list)
        self.writes = []
        self.write_error = None
        self.subscribe_error = None
        self.closed = False
        self._next_id = 0

    def subscribe(self, path, on_documents, on_error):
        if self.subscribe_error is not None:
            raise self.subscribe_error
        entry = {"on_documents": on_documents, "on_error": on_error}
        self.listeners[path].append(entry)
        return ListenerHandle(lambda: self.listeners[path].remove(entry), name=f"fake {path}")

    def add_document(self, path, fields):
        self.writes.append((path, fields))
        if self.write_error is not None:
            raise self.write_error
        self._next_id += 1
        return f"doc-{self._next_id}"

    def server_timestamp(self):
        return SERVER_TIMESTAMP

    def close(self):
        self.closed = True

    def active(self, path):
        return len(self.listeners[path])

    def emit(self, path, docs):
        for entry in list(self.listeners[path]):
            entry["on_documents"](list(docs))

    def fail(self, path, error=None):
        for entry in list(self.listeners[path]):
            entry["on_error"](error or FirestoreError("permission denied"))


@pytest.fixture()
def store():
    return FakeStore()


@pytest.fixture()
def http():
    return FakeHTTP()


@pytest.fixture()
def identity_client(http):
    return IdentityClient(api_key="test-key", session=http)
