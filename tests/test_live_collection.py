"""
Tests for the live collection subscription.

Covers:
- No listener without both store and identity
- Loading flag, empty emissions, atomic snapshot replacement
- Error handling keeps the last snapshot and clears loading
- Rebinding on identity change, stale deliveries ignored
- mount() releasing every listener on exit
"""
from datetime import timedelta

import pytest

from conftest import NOW, anonymous_response, doc
from vivid.services.auth_state import AuthStateMachine
from vivid.services.live_collection import LiveCollectionSubscription, mount, mount_memories
from vivid.services.record_mapping import memory_from_document, project_from_document
from vivid.services.session import Session, SessionContext
from vivid.utils.firestore_client import FirestoreError

MEMORIES_PATH = "artifacts/app/users/uid-1/memories"


def memories_subscription():
    return LiveCollectionSubscription("memories", memory_from_document, clock=lambda: NOW)


@pytest.fixture()
def session(store):
    return Session(store=store, identity="uid-1", app_id="app")


class TestPreconditions:
    def test_no_identity_no_listener(self, store):
        subscription = memories_subscription()
        subscription.bind(Session(store=store, identity=None, app_id="app"))
        assert not subscription.active
        assert store.listeners == {}
        assert subscription.loading
        assert subscription.records == []

    def test_no_store_no_listener(self):
        subscription = memories_subscription()
        subscription.bind(Session(store=None, identity="uid-1", app_id="app"))
        assert not subscription.active
        assert subscription.loading


class TestEmissions:
    def test_established_on_user_scoped_path(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        assert subscription.active
        assert store.active(MEMORIES_PATH) == 1

    def test_empty_emission_clears_loading(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        store.emit(MEMORIES_PATH, [])
        assert subscription.loading is False
        assert subscription.records == []
        assert subscription.records is not None

    def test_emission_is_sorted_and_defaulted(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        store.emit(MEMORIES_PATH, [
            doc("older", createdAt=NOW - timedelta(days=2), description="Picnic"),
            doc("newer", createdAt=NOW - timedelta(days=1)),
        ])
        assert [m.id for m in subscription.records] == ["newer", "older"]
        assert subscription.records[0].description == "Default description"
        assert subscription.records[1].description == "Picnic"

    def test_scenario_missing_created_at_sorts_first(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        store.emit(MEMORIES_PATH, [doc("stamped", createdAt=NOW - timedelta(hours=1)), doc("pending")])
        assert [m.id for m in subscription.records] == ["pending", "stamped"]

    def test_each_emission_replaces_the_snapshot(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        store.emit(MEMORIES_PATH, [doc("a"), doc("b")])
        first = subscription.records
        store.emit(MEMORIES_PATH, [doc("c")])
        assert [m.id for m in subscription.records] == ["c"]
        assert [m.id for m in first] == ["a", "b"]

    def test_identical_emissions_are_equal(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        docs = [doc("a", createdAt=NOW), doc("b", createdAt=NOW), doc("c")]
        store.emit(MEMORIES_PATH, docs)
        first = list(subscription.records)
        store.emit(MEMORIES_PATH, docs)
        assert subscription.records == first

    def test_snapshot_listeners_notified(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        seen = []
        subscription.on_snapshot(lambda records: seen.append([r.id for r in records]))
        store.emit(MEMORIES_PATH, [doc("a")])
        assert seen == [["a"]]


class TestErrors:
    def test_error_keeps_last_snapshot_and_clears_loading(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        store.emit(MEMORIES_PATH, [doc("a")])
        store.fail(MEMORIES_PATH)
        assert subscription.loading is False
        assert [m.id for m in subscription.records] == ["a"]
        assert "permission denied" in subscription.last_error

    def test_error_before_first_emission_clears_loading(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        store.fail(MEMORIES_PATH)
        assert subscription.loading is False
        assert subscription.records == []

    def test_subscribe_failure_is_not_raised(self, store, session):
        store.subscribe_error = FirestoreError("unavailable")
        subscription = memories_subscription()
        subscription.bind(session)
        assert not subscription.active
        assert subscription.loading is False
        assert subscription.last_error == "unavailable"

    def test_next_emission_clears_error(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        store.fail(MEMORIES_PATH)
        store.emit(MEMORIES_PATH, [doc("a")])
        assert subscription.last_error is None


class TestRebinding:
    def test_same_session_is_noop(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        store.emit(MEMORIES_PATH, [doc("a")])
        subscription.bind(Session(store=store, identity="uid-1", app_id="app"))
        assert store.active(MEMORIES_PATH) == 1
        assert [m.id for m in subscription.records] == ["a"]

    def test_identity_change_restarts_from_empty(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        store.emit(MEMORIES_PATH, [doc("a")])
        subscription.bind(Session(store=store, identity="uid-2", app_id="app"))
        assert store.active(MEMORIES_PATH) == 0
        assert store.active("artifacts/app/users/uid-2/memories") == 1
        assert subscription.records == []
        assert subscription.loading

    def test_identity_loss_tears_down(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        subscription.bind(Session(store=store, identity=None, app_id="app"))
        assert store.active(MEMORIES_PATH) == 0
        assert not subscription.active

    def test_rebind_while_snapshot_is_built_drops_the_delivery(self, store, session):
        rebinds = []

        def clock():
            # The identity changes while the uid-1 delivery is being mapped
            if not rebinds:
                rebinds.append("uid-2")
                subscription.bind(Session(store=store, identity="uid-2", app_id="app"))
            return NOW

        subscription = LiveCollectionSubscription("memories", memory_from_document, clock=clock)
        subscription.bind(session)
        store.emit(MEMORIES_PATH, [doc("uid1-private")])

        assert rebinds == ["uid-2"]
        assert subscription.records == []
        assert subscription.loading
        assert store.active("artifacts/app/users/uid-2/memories") == 1

    def test_stale_delivery_after_teardown_is_ignored(self, store, session):
        subscription = memories_subscription()
        subscription.bind(session)
        stale = store.listeners[MEMORIES_PATH][0]["on_documents"]
        subscription.close()
        stale([doc("late")])
        assert subscription.records == []
        assert subscription.loading


class TestMount:
    def test_mount_follows_session_and_releases(self, store, identity_client, http):
        http.queue("accounts:signUp", anonymous_response("uid-1"))
        auth = AuthStateMachine(identity_client)
        context = SessionContext(store, auth, "app")

        with mount_memories(context) as subscription:
            assert not subscription.active
            auth.start()
            assert store.active(MEMORIES_PATH) == 1
            store.emit(MEMORIES_PATH, [doc("a")])
            assert [m.id for m in subscription.records] == ["a"]

        assert store.active(MEMORIES_PATH) == 0
        auth.stop()

    def test_mount_releases_on_error(self, store):
        auth = AuthStateMachine(None)
        context = SessionContext(store, auth, "app")
        with pytest.raises(RuntimeError):
            with mount(context, "projects", project_from_document):
                raise RuntimeError("view torn down")
        assert len(context._observers) == 0
