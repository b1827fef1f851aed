"""
Shared fixtures.

Everything runs synchronously: the effect queue executes inline, the
clock is fixed and debounce timers only fire when a test says so.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from organizer.audit import AuditLogger
from organizer.config import AppSettings
from organizer.managers import CalendarManager, FinanceManager, NotesManager, TaskManager
from organizer.managers.finance import ACCOUNTS, BILLS, BUDGETS, SAVINGS_GOALS, TRANSACTIONS
from organizer.models import (
    Account,
    Bill,
    Budget,
    CalendarEvent,
    Note,
    NoteFolder,
    SavingsGoal,
    Task,
    Transaction,
)
from organizer.services.effects import EffectQueue
from organizer.services.notifications import InMemoryNotificationCenter, NotificationScheduler
from organizer.services.storage import (
    JsonFileStorage,
    JsonLinesAuditStorage,
    KeyValueFile,
    KeyValueStorage,
)


NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """A settable time source."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeTimer:
    """Stands in for threading.Timer; fires only when told to."""

    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


class TimerFactory:
    """Records every timer a debounced saver creates."""

    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function, args=()):
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return AppSettings(
        seed_sample_data=False,
        async_effects=False,
        display_timezone="UTC",
    )


@pytest.fixture
def effects():
    queue = EffectQueue(run_async=False)
    yield queue
    queue.close()


@pytest.fixture
def audit_storage(tmp_path):
    return JsonLinesAuditStorage(tmp_path / "audit.jsonl")


@pytest.fixture
def audit(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def center():
    return InMemoryNotificationCenter()


@pytest.fixture
def scheduler(center, clock):
    return NotificationScheduler(center, clock=clock)


@pytest.fixture
def task_storage(tmp_path):
    return JsonFileStorage(tmp_path / "tasks.json", Task, "tasks")


@pytest.fixture
def task_manager(task_storage, effects, scheduler, audit, settings, clock):
    manager = TaskManager(
        task_storage,
        effects,
        scheduler=scheduler,
        audit=audit,
        settings=settings,
        clock=clock,
    )
    manager.load()
    return manager


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def preferences(tmp_path):
    return KeyValueFile(tmp_path / "preferences.json")


@pytest.fixture
def notes_manager(preferences, effects, audit, clock, timers):
    manager = NotesManager(
        KeyValueStorage(preferences, "savedNotes", Note),
        KeyValueStorage(preferences, "savedFolders", NoteFolder),
        effects,
        audit=audit,
        debounce_seconds=1.0,
        clock=clock,
        timer_factory=timers,
    )
    manager.load()
    return manager


@pytest.fixture
def finance_storages(tmp_path):
    files = {
        ACCOUNTS: Account,
        TRANSACTIONS: Transaction,
        BUDGETS: Budget,
        BILLS: Bill,
        SAVINGS_GOALS: SavingsGoal,
    }
    return {
        name: JsonFileStorage(tmp_path / f"{name}.json", model, name)
        for name, model in files.items()
    }


@pytest.fixture
def finance_manager(finance_storages, effects, audit, settings, clock):
    manager = FinanceManager(
        finance_storages,
        effects,
        audit=audit,
        settings=settings,
        clock=clock,
    )
    manager.load()
    return manager


@pytest.fixture
def checking(finance_manager):
    return finance_manager.add_account(
        Account(name="Checking", balance=Decimal("1000.00"))
    )


@pytest.fixture
def event_scheduler(center, clock):
    return NotificationScheduler(center, prefix="event", clock=clock)


@pytest.fixture
def event_storage(tmp_path):
    return JsonFileStorage(tmp_path / "events.json", CalendarEvent, "events")


@pytest.fixture
def calendar_manager(event_storage, effects, event_scheduler, audit, settings, clock):
    manager = CalendarManager(
        event_storage,
        effects,
        scheduler=event_scheduler,
        audit=audit,
        settings=settings,
        clock=clock,
    )
    manager.load()
    return manager
