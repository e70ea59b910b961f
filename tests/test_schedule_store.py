import threading
import time
from datetime import date

import pytest

from src.nurse_scheduler.cancellation import CancelToken
from src.nurse_scheduler.errors import ScheduleCancelledError
from src.nurse_scheduler.models.domain import Schedule, ScheduleStatus, WorkflowStatus
from src.nurse_scheduler.persistence import schedules as schedules_persistence
from src.nurse_scheduler.persistence.schedules import SCHEDULES_TABLE, SupabaseScheduleStore
from src.nurse_scheduler.services.scheduling.store import InMemoryScheduleStore

DAY = date(2026, 10, 19)


def _schedule(worker_id: str = "W1", schedule_date: date = DAY, tour=("C1", "C2")) -> Schedule:
    return Schedule(
        worker_id=worker_id,
        schedule_date=schedule_date,
        tour=tuple(tour),
        route_coordinates=((33.9, -98.5), (33.95, -98.45), (34.0, -98.5), (33.9, -98.5)),
        total_distance_m=12_345.0,
        total_travel_time_min=14,
        status=ScheduleStatus.GENERATED,
        generated_on=schedule_date,
        routing_source="road",
        total_service_minutes=45,
    )


class Counter:
    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.count = 0
        self._lock = threading.Lock()

    def compute(self, worker_id: str = "W1", schedule_date: date = DAY):
        def _run() -> Schedule:
            with self._lock:
                self.count += 1
            if self.delay:
                time.sleep(self.delay)
            return _schedule(worker_id, schedule_date)

        return _run


def _run_threads(targets) -> None:
    barrier = threading.Barrier(len(targets))

    def wrap(target):
        def run():
            barrier.wait()
            target()

        return run

    threads = [threading.Thread(target=wrap(target)) for target in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)


def test_put_and_get_by_worker_and_date():
    store = InMemoryScheduleStore()
    schedule = _schedule()

    assert store.get("W1", DAY) is None
    store.put("W1", DAY, schedule)

    assert store.get("W1", DAY) is schedule
    assert store.get("W1", date(2026, 10, 20)) is None
    assert store.get("W2", DAY) is None


def test_get_or_compute_computes_once():
    store = InMemoryScheduleStore()
    counter = Counter()

    first = store.get_or_compute("W1", DAY, counter.compute())
    second = store.get_or_compute("W1", DAY, counter.compute())

    assert counter.count == 1
    assert first is second


def test_concurrent_requests_for_one_key_share_a_computation():
    store = InMemoryScheduleStore()
    counter = Counter(delay=0.05)
    results = []

    _run_threads([lambda: results.append(store.get_or_compute("W1", DAY, counter.compute())) for _ in range(16)])

    assert counter.count == 1
    assert len(results) == 16
    assert all(result is results[0] for result in results)


def test_distinct_keys_compute_independently():
    store = InMemoryScheduleStore()
    counter = Counter(delay=0.05)
    keys = [(f"W{index}", DAY) for index in range(8)]

    started = time.monotonic()
    _run_threads([lambda key=key: store.get_or_compute(*key, counter.compute(*key)) for key in keys])
    elapsed = time.monotonic() - started

    assert counter.count == len(keys)
    assert len(store) == len(keys)
    # keys do not wait on each other
    assert elapsed < 0.05 * len(keys)


def test_failed_computation_is_not_cached():
    store = InMemoryScheduleStore()

    def broken() -> Schedule:
        raise RuntimeError("routing exploded")

    with pytest.raises(RuntimeError):
        store.get_or_compute("W1", DAY, broken)

    assert store.get("W1", DAY) is None
    assert store.get_or_compute("W1", DAY, Counter().compute()).tour == ("C1", "C2")


class SlowComputation:
    """Holds the key lock until released by the test."""

    def __init__(self, store):
        self.store = store
        self.started = threading.Event()
        self.release = threading.Event()

    def _compute(self) -> Schedule:
        self.started.set()
        self.release.wait(timeout=5)
        return _schedule()

    def __enter__(self):
        self.thread = threading.Thread(target=lambda: self.store.get_or_compute("W1", DAY, self._compute))
        self.thread.start()
        assert self.started.wait(timeout=5)
        return self

    def __exit__(self, *exc_info):
        self.release.set()
        self.thread.join(timeout=5)


def test_waiter_gives_up_when_its_deadline_passes():
    store = InMemoryScheduleStore()
    counter = Counter()

    with SlowComputation(store):
        started = time.monotonic()
        with pytest.raises(ScheduleCancelledError):
            store.get_or_compute("W1", DAY, counter.compute(), CancelToken.with_timeout(0.1))
        waited = time.monotonic() - started

    assert waited < 1.0
    assert counter.count == 0
    assert store.get("W1", DAY) is not None


def test_waiter_gives_up_when_cancelled():
    store = InMemoryScheduleStore()
    token = CancelToken()

    with SlowComputation(store):
        timer = threading.Timer(0.1, token.cancel)
        timer.start()
        with pytest.raises(ScheduleCancelledError):
            store.replace_with("W1", DAY, Counter().compute(), token)
        timer.join()


def test_waiter_without_deadline_receives_shared_result():
    store = InMemoryScheduleStore()
    counter = Counter()
    results = []

    with SlowComputation(store) as slow:
        waiter = threading.Thread(
            target=lambda: results.append(store.get_or_compute("W1", DAY, counter.compute(), CancelToken()))
        )
        waiter.start()
        time.sleep(0.1)
        assert results == []
        slow.release.set()
        waiter.join(timeout=5)

    assert counter.count == 0
    assert results == [store.get("W1", DAY)]


def test_replace_with_overwrites_existing_schedule():
    store = InMemoryScheduleStore()
    store.put("W1", DAY, _schedule(tour=("C1",)))

    replaced = store.replace_with("W1", DAY, lambda: _schedule(tour=("C9", "C8")))

    assert store.get("W1", DAY) is replaced
    assert replaced.tour == ("C9", "C8")


def test_listing_by_worker_and_by_date():
    store = InMemoryScheduleStore()
    for worker_id, day in [("W1", date(2026, 10, 18)), ("W1", DAY), ("W1", date(2026, 10, 25)), ("W2", DAY)]:
        store.put(worker_id, day, _schedule(worker_id, day))

    week = store.list_for_worker("W1", date(2026, 10, 18), date(2026, 10, 24))
    today = store.list_for_date(DAY)

    assert [s.schedule_date for s in week] == [date(2026, 10, 18), DAY]
    assert [s.worker_id for s in today] == ["W1", "W2"]


def test_workflow_status_update_keeps_generated_content():
    store = InMemoryScheduleStore()
    original = _schedule()
    store.put("W1", DAY, original)

    updated = store.update_workflow_status("W1", DAY, WorkflowStatus.CONFIRMED)

    assert updated.workflow_status == WorkflowStatus.CONFIRMED
    assert updated.tour == original.tour
    assert updated.route_coordinates == original.route_coordinates
    assert store.get("W1", DAY) == updated
    assert store.update_workflow_status("W2", DAY, WorkflowStatus.CONFIRMED) is None


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, table: "FakeTable"):
        self.table = table
        self.filters = []

    def select(self, *args):
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row[column] == value)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row[column] >= value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda row: row[column] <= value)
        return self

    def order(self, column):
        self.order_by = column
        return self

    def limit(self, count):
        return self

    def execute(self):
        rows = [row for row in self.table.rows if all(check(row) for check in self.filters)]
        return FakeResponse(sorted(rows, key=lambda row: row[getattr(self, "order_by", "worker_id")]))


class FakeUpsert:
    def __init__(self, table: "FakeTable", record: dict, on_conflict: str):
        self.table = table
        self.record = record
        self.on_conflict = on_conflict

    def execute(self):
        keys = self.on_conflict.split(",")
        self.table.rows = [
            row for row in self.table.rows if any(row[key] != self.record[key] for key in keys)
        ]
        self.table.rows.append(dict(self.record))
        self.table.upserts.append(self.on_conflict)
        return FakeResponse([self.record])


class FakeTable:
    def __init__(self):
        self.rows = []
        self.upserts = []

    def select(self, *args):
        return FakeQuery(self).select(*args)

    def upsert(self, record, on_conflict=None):
        return FakeUpsert(self, record, on_conflict)


class FakeSupabase:
    def __init__(self):
        self.tables = {}

    def table(self, name):
        return self.tables.setdefault(name, FakeTable())


def test_supabase_store_upserts_on_worker_and_date():
    client = FakeSupabase()
    store = SupabaseScheduleStore(client=client)

    store.put("W1", DAY, _schedule(tour=("C1",)))
    store.put("W1", DAY, _schedule(tour=("C2", "C1")))
    store.put("W2", DAY, _schedule("W2"))

    table = client.tables[SCHEDULES_TABLE]
    assert table.upserts == ["worker_id,schedule_date"] * 3
    assert len(table.rows) == 2
    loaded = store.get("W1", DAY)
    assert loaded == _schedule(tour=("C2", "C1"))
    assert [s.worker_id for s in store.list_for_date(DAY)] == ["W1", "W2"]


def test_supabase_store_single_flight():
    store = SupabaseScheduleStore(client=FakeSupabase())
    counter = Counter(delay=0.05)

    _run_threads([lambda: store.get_or_compute("W1", DAY, counter.compute()) for _ in range(8)])

    assert counter.count == 1


def test_supabase_store_requires_configuration(monkeypatch):
    monkeypatch.setattr(schedules_persistence, "get_supabase_client", lambda: None)

    with pytest.raises(ValueError):
        SupabaseScheduleStore()
