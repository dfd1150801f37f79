"""Tests for the Datastore manager."""
import threading
from dataclasses import dataclass
from typing import Optional

import pytest

from pygoo.core.config import DEFAULT_DATASTORE_CONFIG, DatastoreConfig
from pygoo.core.exceptions import EntityNotFoundError, GDSError, UniqueViolationError
from pygoo.datastore.entity import Key
from pygoo.datastore.query import Query
from pygoo.managers.gds import GDSManager

PROJECT = "my-project"


@dataclass
class User:
    name: str = ""
    key: Optional[Key] = None


def _entity(key, name):
    return {"key": key.to_api(PROJECT), "properties": {"name": {"stringValue": name}}}


def _batch(names, cursor, more="MORE_RESULTS_AFTER_LIMIT", skipped=0):
    return {"batch": {
        "entityResults": [{"entity": _entity(Key("User", name=n), n)} for n in names],
        "endCursor": cursor,
        "moreResults": more,
        "skippedResults": skipped,
    }}


def _query_bodies(service):
    return [c.kwargs["body"]["query"] for c in service.projects.return_value.runQuery.call_args_list]


def test_kind_name_and_build_key(service):
    gds = GDSManager(service, PROJECT, config=DatastoreConfig(namespace="prod"))
    gds.setup("_test")

    assert gds.kind_name("User") == "User_test"
    assert gds.build_key("User", "joe") == Key("User", name="joe", namespace="prod")
    assert DEFAULT_DATASTORE_CONFIG.suffix_of_kind == ""


def test_put_resolves_allocated_id(service):
    """An incomplete key gets the id allocated by Datastore."""
    allocated = Key("User", id=1234)
    projects = service.projects.return_value
    projects.commit.return_value.execute.return_value = {
        "mutationResults": [{"key": allocated.to_api(PROJECT)}]
    }
    user = User(name="joe")

    gds = GDSManager(service, PROJECT)
    key = gds.put(Key("User"), user)

    assert key == allocated
    assert user.key == allocated
    assert projects.commit.call_args.kwargs["body"]["mode"] == "NON_TRANSACTIONAL"


def test_put_unique_inserts_new_key(service):
    key = Key("User", name="joe")
    projects = service.projects.return_value
    projects.beginTransaction.return_value.execute.return_value = {"transaction": "tx-1"}
    projects.lookup.return_value.execute.return_value = {"missing": [{"entity": {"key": key.to_api(PROJECT)}}]}
    projects.commit.return_value.execute.return_value = {"mutationResults": [{}]}
    user = User(name="joe")

    gds = GDSManager(service, PROJECT)
    gds.put_unique(key, user)

    body = projects.commit.call_args.kwargs["body"]
    assert body["mode"] == "TRANSACTIONAL"
    assert body["transaction"] == "tx-1"
    assert user.key == key
    projects.rollback.assert_not_called()


def test_put_unique_violation_rolls_back(service):
    key = Key("User", name="joe")
    projects = service.projects.return_value
    projects.beginTransaction.return_value.execute.return_value = {"transaction": "tx-1"}
    projects.lookup.return_value.execute.return_value = {"found": [{"entity": _entity(key, "joe")}]}

    gds = GDSManager(service, PROJECT)
    with pytest.raises(UniqueViolationError):
        gds.put_unique(key, User(name="other"))

    projects.rollback.assert_called_once_with(projectId=PROJECT, body={"transaction": "tx-1"})
    projects.commit.assert_not_called()


def test_get_with_model(service):
    key = Key("User", name="joe")
    service.projects.return_value.lookup.return_value.execute.return_value = {
        "found": [{"entity": _entity(key, "joe")}]
    }

    gds = GDSManager(service, PROJECT)
    assert gds.get(key, User) == User(name="joe", key=key)


def test_get_child_of_namespaced_parent(service):
    """A child of a built key is looked up in the parent's namespace."""
    lookup = service.projects.return_value.lookup
    gds = GDSManager(service, PROJECT, config=DatastoreConfig(namespace="prod"))
    key = Key("Order", name="o1", parent=gds.build_key("User", "joe"))
    lookup.return_value.execute.return_value = {"found": [{"entity": {
        "key": {"partitionId": {"projectId": PROJECT, "namespaceId": "prod"},
                "path": [{"kind": "User", "name": "joe"}, {"kind": "Order", "name": "o1"}]},
        "properties": {"name": {"stringValue": "o1"}},
    }}]}

    assert gds.get(key) == {"name": "o1"}
    sent = lookup.call_args.kwargs["body"]["keys"][0]
    assert sent["partitionId"] == {"projectId": PROJECT, "namespaceId": "prod"}


def test_get_missing(service):
    service.projects.return_value.lookup.return_value.execute.return_value = {"missing": []}

    gds = GDSManager(service, PROJECT)
    with pytest.raises(EntityNotFoundError) as exc:
        gds.get(Key("User", name="ghost"))

    assert isinstance(exc.value, GDSError)


def test_get_multi_keeps_key_order(service):
    joe, ann = Key("User", name="joe"), Key("User", name="ann")
    service.projects.return_value.lookup.return_value.execute.return_value = {
        "found": [{"entity": _entity(ann, "ann")}, {"entity": _entity(joe, "joe")}]
    }

    gds = GDSManager(service, PROJECT)
    users = gds.get_multi([joe, ann], User)

    assert [u.name for u in users] == ["joe", "ann"]


def test_get_multi_with_missing_key(service):
    joe = Key("User", name="joe")
    service.projects.return_value.lookup.return_value.execute.return_value = {
        "found": [{"entity": _entity(joe, "joe")}]
    }

    gds = GDSManager(service, PROJECT)
    with pytest.raises(GDSError, match="1 of 2"):
        gds.get_multi([joe, Key("User", name="ghost")])


def test_delete_nil_key(service):
    gds = GDSManager(service, PROJECT)
    with pytest.raises(GDSError, match="key is nil"):
        gds.delete(None)


def test_delete(service):
    key = Key("User", name="joe")

    gds = GDSManager(service, PROJECT)
    gds.delete(key)

    body = service.projects.return_value.commit.call_args.kwargs["body"]
    assert body["mutations"] == [{"delete": key.to_api(PROJECT)}]


def test_get_all_follows_cursors(service):
    service.projects.return_value.runQuery.return_value.execute.side_effect = [
        _batch(["a", "b"], "c1"),
        _batch(["c"], "c2", more="NO_MORE_RESULTS"),
    ]

    gds = GDSManager(service, PROJECT, config=DatastoreConfig(page_size=2))
    keys, users = gds.get_all(Query("User"), User)

    assert [k.name for k in keys] == ["a", "b", "c"]
    assert [u.name for u in users] == ["a", "b", "c"]
    bodies = _query_bodies(service)
    assert "startCursor" not in bodies[0]
    assert bodies[1]["startCursor"] == "c1"


def test_iter_pages_honours_query_limit(service):
    service.projects.return_value.runQuery.return_value.execute.side_effect = [
        _batch(["a", "b"], "c1"),
        _batch(["c"], "c2"),
    ]

    gds = GDSManager(service, PROJECT)
    pages = list(gds.iter_pages(Query("User").limit(3), page_size=2))

    assert [len(p) for p in pages] == [2, 1]
    assert [b["limit"] for b in _query_bodies(service)] == [2, 1]


def test_iter_pages_consumes_offset(service):
    """Skipped results reduce the offset sent with the next page."""
    service.projects.return_value.runQuery.return_value.execute.side_effect = [
        _batch([], "c1", more="NOT_FINISHED", skipped=3),
        _batch(["d"], "c2", more="NO_MORE_RESULTS"),
    ]

    gds = GDSManager(service, PROJECT)
    pages = list(gds.iter_pages(Query("User").offset(3)))

    assert [len(p) for p in pages] == [1]
    bodies = _query_bodies(service)
    assert bodies[0]["offset"] == 3
    assert "offset" not in bodies[1]


def test_get_keys_only(service):
    service.projects.return_value.runQuery.return_value.execute.return_value = _batch(
        ["a"], "c1", more="NO_MORE_RESULTS"
    )

    gds = GDSManager(service, PROJECT)
    keys = gds.get_keys_only(Query("User"))

    assert keys == [Key("User", name="a")]
    assert _query_bodies(service)[0]["projection"] == [{"property": {"name": "__key__"}}]


def test_get_count(service):
    service.projects.return_value.runAggregationQuery.return_value.execute.return_value = {
        "batch": {"aggregationResults": [
            {"aggregateProperties": {"total": {"integerValue": "42"}}}
        ]}
    }

    gds = GDSManager(service, PROJECT)
    assert gds.get_count(Query("User").filter("active", "=", True)) == 42


def test_delete_all_batches_mutations(service):
    names = [f"u{i}" for i in range(501)]
    projects = service.projects.return_value
    projects.runQuery.return_value.execute.return_value = _batch(names, "c1", more="NO_MORE_RESULTS")

    gds = GDSManager(service, PROJECT)
    assert gds.delete_all("User") == 501

    sizes = [len(c.kwargs["body"]["mutations"]) for c in projects.commit.call_args_list]
    assert sizes == [500, 1]


def test_process_pages(service):
    service.projects.return_value.runQuery.return_value.execute.side_effect = [
        _batch(["a", "b"], "c1"),
        _batch(["c"], "c2", more="NO_MORE_RESULTS"),
    ]
    seen = []
    lock = threading.Lock()

    def handler(page):
        with lock:
            seen.extend(u["name"] for u in page.entities)

    gds = GDSManager(service, PROJECT)
    count = gds.process_pages(Query("User"), handler, page_size=2, max_workers=2)

    assert count == 3
    assert sorted(seen) == ["a", "b", "c"]


def test_process_pages_reraises_handler_error(service):
    service.projects.return_value.runQuery.return_value.execute.return_value = _batch(
        ["a"], "c1", more="NO_MORE_RESULTS"
    )

    def handler(page):
        raise ValueError("bad page")

    gds = GDSManager(service, PROJECT)
    with pytest.raises(ValueError, match="bad page"):
        gds.process_pages(Query("User"), handler)


def test_process_pages_bounds_read_ahead(service):
    """No further page is fetched while every worker is busy."""
    run_query = service.projects.return_value.runQuery
    run_query.return_value.execute.side_effect = [
        _batch([f"u{i}"], f"c{i}") for i in range(9)
    ] + [_batch(["u9"], "c9", more="NO_MORE_RESULTS")]
    release = threading.Event()
    started = threading.Semaphore(0)

    def handler(page):
        started.release()
        release.wait(5)

    gds = GDSManager(service, PROJECT)
    result = []
    worker = threading.Thread(
        target=lambda: result.append(gds.process_pages(Query("User"), handler, page_size=1, max_workers=2))
    )
    worker.start()

    assert started.acquire(timeout=5)
    assert started.acquire(timeout=5)
    worker.join(0.2)
    fetched_while_blocked = run_query.return_value.execute.call_count
    release.set()
    worker.join(5)

    assert fetched_while_blocked == 2
    assert result == [10]


def test_iter_pages_stops_without_end_cursor(service):
    run_query = service.projects.return_value.runQuery
    run_query.return_value.execute.return_value = _batch(["a"], None)

    gds = GDSManager(service, PROJECT)
    pages = list(gds.iter_pages(Query("User")))

    assert [len(p) for p in pages] == [1]
    assert run_query.return_value.execute.call_count == 1


def test_iter_pages_stops_on_empty_batch(service):
    run_query = service.projects.return_value.runQuery
    run_query.return_value.execute.return_value = _batch([], "c1", more="NOT_FINISHED")

    gds = GDSManager(service, PROJECT)

    assert list(gds.iter_pages(Query("User"))) == []
    assert run_query.return_value.execute.call_count == 1


def test_get_count_without_results(service):
    service.projects.return_value.runAggregationQuery.return_value.execute.return_value = {"batch": {}}

    gds = GDSManager(service, PROJECT)
    assert gds.get_count(Query("User")) == 0
