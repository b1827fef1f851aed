"""
Tests for the storage layer

JSON file collections, the key-value blob store and the audit trail,
all against real files in a temp directory.
"""

import json
import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

from organizer.models import (
    AttachmentType,
    AuditEventBuilder,
    Location,
    Note,
    NoteAttachment,
    SubTask,
    Task,
    TaskAttachment,
    TaskPriority,
    TaskStatus,
    TaskTag,
    Transaction,
    TransactionType,
)
from organizer.audit import AuditLogger
from organizer.services.storage import (
    AuditStorageInterface,
    CorruptDataError,
    JsonFileStorage,
    JsonLinesAuditStorage,
    KeyValueFile,
    KeyValueStorage,
    StorageError,
)

from tests.conftest import NOW


def full_task() -> Task:
    return Task(
        title="Pack for trip",
        notes="Passport!",
        priority=TaskPriority.HIGH,
        tags=frozenset({TaskTag.TRAVEL, TaskTag.PERSONAL}),
        status=TaskStatus.COMPLETED,
        due_date=NOW + timedelta(days=1),
        reminder_enabled=True,
        reminder_date=NOW + timedelta(hours=20),
        location=Location(latitude=48.85, longitude=2.35, name="Home", address="1 Rue X"),
        subtasks=[SubTask(title="Socks", is_completed=True, created_at=NOW)],
        attachments=[TaskAttachment(
            file_name="map.png", file_type="png", file_path="/tmp/map.png", created_at=NOW
        )],
        voice_note_url="file:///tmp/memo.m4a",
        created_at=NOW,
        updated_at=NOW + timedelta(minutes=3),
        completed_at=NOW + timedelta(minutes=3),
    )


class TestJsonFileStorage:
    """Tests for one-array-per-family JSON files."""

    def test_absent_file_loads_none(self, tmp_path):
        """Test that a first run is distinguishable from an empty list."""
        storage = JsonFileStorage(tmp_path / "tasks.json", Task)
        assert storage.load_all() is None

    def test_empty_list_round_trip(self, tmp_path):
        """Test that an empty collection stays empty, not absent."""
        storage = JsonFileStorage(tmp_path / "tasks.json", Task)
        storage.save_all([])
        assert storage.load_all() == []

    def test_task_round_trip(self, tmp_path):
        """Test that every task field survives a save and load."""
        storage = JsonFileStorage(tmp_path / "tasks.json", Task)
        task = full_task()

        storage.save_all([task])

        assert storage.load_all() == [task]

    def test_transaction_with_receipt_round_trip(self, tmp_path):
        """Test that bytes and decimals survive as base64 and strings."""
        storage = JsonFileStorage(tmp_path / "transactions.json", Transaction)
        txn = Transaction(
            amount=Decimal("12.34"),
            type=TransactionType.EXPENSE,
            category="Shopping",
            merchant="Store",
            date=NOW,
            receipt_image=b"\x89PNG\r\n",
            tags=frozenset({"gift"}),
        )

        storage.save_all([txn])

        raw = json.loads(storage.path.read_text(encoding="utf-8"))
        assert raw[0]["amount"] == "12.34"
        assert storage.load_all() == [txn]

    def test_name_defaults_to_file_stem(self, tmp_path):
        """Test the family name used in logs."""
        assert JsonFileStorage(tmp_path / "bills.json", Task).name == "bills"

    def test_corrupt_file_raises(self, tmp_path):
        """Test that undecodable content is reported, not treated as empty."""
        path = tmp_path / "tasks.json"
        path.write_text('[{"title": ""}]', encoding="utf-8")

        with pytest.raises(CorruptDataError):
            JsonFileStorage(path, Task).load_all()

    def test_quarantine_moves_file(self, tmp_path):
        """Test that quarantine renames the file next to itself."""
        path = tmp_path / "tasks.json"
        path.write_text("garbage", encoding="utf-8")
        storage = JsonFileStorage(path, Task)

        target = storage.quarantine()

        assert not path.exists()
        assert target.startswith(str(path) + ".corrupt-")
        assert storage.load_all() is None

    def test_no_temp_files_left_behind(self, tmp_path):
        """Test that atomic writes clean up after themselves."""
        storage = JsonFileStorage(tmp_path / "tasks.json", Task)
        storage.save_all([full_task()])
        storage.save_all([])

        assert [p.name for p in tmp_path.iterdir()] == ["tasks.json"]

    def test_unwritable_location_raises_storage_error(self, tmp_path):
        """Test that write failures surface as StorageError after retries."""
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        storage = JsonFileStorage(blocker / "tasks.json", Task, retry_attempts=2)

        with pytest.raises(StorageError):
            storage.save_all([])


class TestKeyValueStorage:
    """Tests for blobs sharing one key-value file."""

    def test_families_share_one_file(self, tmp_path):
        """Test that notes and folders live side by side."""
        store = KeyValueFile(tmp_path / "preferences.json")
        notes = KeyValueStorage(store, "savedNotes", Note)
        other = KeyValueStorage(store, "other", Note)
        note = Note(title="Hello", content="World", created_date=NOW)

        notes.save_all([note])
        other.save_all([])

        assert store.keys() == ["other", "savedNotes"]
        assert notes.load_all() == [note]
        assert other.load_all() == []

    def test_note_attachment_round_trip(self, tmp_path):
        """Test that attachment bytes survive inside a blob."""
        store = KeyValueFile(tmp_path / "preferences.json")
        notes = KeyValueStorage(store, "savedNotes", Note)
        note = Note(
            title="Sketch",
            created_date=NOW,
            attachments=[NoteAttachment(
                type=AttachmentType.DRAWING, data=b"\x00\x01\x02", file_name="s.png",
                created_date=NOW,
            )],
            tags=["art"],
        )

        notes.save_all([note])

        assert notes.load_all() == [note]

    def test_missing_key_loads_none(self, tmp_path):
        """Test that an absent blob means first run."""
        store = KeyValueFile(tmp_path / "preferences.json")
        assert KeyValueStorage(store, "savedNotes", Note).load_all() is None

    def test_corrupt_blob_quarantined_under_new_key(self, tmp_path):
        """Test that a bad blob is renamed and its neighbours kept."""
        store = KeyValueFile(tmp_path / "preferences.json")
        store.set("savedNotes", "not json")
        store.set("savedFolders", "[]")
        notes = KeyValueStorage(store, "savedNotes", Note)

        with pytest.raises(CorruptDataError):
            notes.load_all()
        new_key = notes.quarantine()

        assert new_key.startswith("savedNotes.corrupt-")
        assert store.get("savedFolders") == "[]"
        assert notes.load_all() is None

    def test_corrupt_document_quarantines_file(self, tmp_path):
        """Test that an unreadable document is moved aside whole."""
        path = tmp_path / "preferences.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        notes = KeyValueStorage(KeyValueFile(path), "savedNotes", Note)

        with pytest.raises(CorruptDataError):
            notes.load_all()
        target = notes.quarantine()

        assert not path.exists()
        assert target.startswith(str(path) + ".corrupt-")

    def test_remove_key(self, tmp_path):
        """Test that removing a key leaves the rest."""
        store = KeyValueFile(tmp_path / "preferences.json")
        store.set("a", "1")
        store.set("b", "2")

        store.remove("a")
        store.remove("missing")

        assert store.keys() == ["b"]


class TestJsonLinesAuditStorage:
    """Tests for the append-only audit file."""

    def test_recent_events_newest_first(self, tmp_path):
        """Test ordering and limit."""
        storage = JsonLinesAuditStorage(tmp_path / "audit.jsonl")
        ids = [uuid4() for _ in range(3)]
        for entity_id in ids:
            storage.append_event(AuditEventBuilder.entity_created("task", entity_id, "t"))

        events = storage.get_recent_events(limit=2)

        assert [e.entity_id for e in events] == [ids[2], ids[1]]

    def test_partial_line_skipped(self, tmp_path):
        """Test that a torn trailing line does not break reading."""
        path = tmp_path / "audit.jsonl"
        storage = JsonLinesAuditStorage(path)
        storage.append_event(AuditEventBuilder.entity_deleted("note", uuid4()))
        with path.open("a", encoding="utf-8") as fh:
            fh.write('{"event_type": "enti')

        assert len(storage.get_recent_events()) == 1

    def test_events_by_entity_oldest_first(self, tmp_path):
        """Test filtering one entity's history."""
        storage = JsonLinesAuditStorage(tmp_path / "audit.jsonl")
        task_id = uuid4()
        storage.append_event(AuditEventBuilder.entity_created("task", task_id, "t"))
        storage.append_event(AuditEventBuilder.entity_created("task", uuid4(), "other"))
        storage.append_event(AuditEventBuilder.task_status_changed(task_id, "completed"))

        events = storage.get_events_by_entity("task", task_id)

        assert [e.event_type.value for e in events] == ["task_created", "task_completed"]


class TestAuditLogger:
    """Tests for the audit logger's failure handling."""

    def test_storage_failure_is_not_raised(self):
        """Test that a broken audit store never breaks the caller."""

        class BrokenStorage(AuditStorageInterface):
            def append_event(self, event):
                raise StorageError("disk full")

            def get_recent_events(self, limit=100):
                return []

        logger = AuditLogger(BrokenStorage())

        assert logger.log(AuditEventBuilder.entity_deleted("task", uuid4())) is False

    def test_without_storage(self):
        """Test that local-only logging reports success."""
        assert AuditLogger().log(AuditEventBuilder.entity_deleted("task", uuid4())) is True

    def test_events_reach_storage(self, tmp_path):
        """Test that helper methods persist their events."""
        storage = JsonLinesAuditStorage(tmp_path / "audit.jsonl")
        task_id = uuid4()

        AuditLogger(storage).log_created("task", task_id, "Pay rent")

        [event] = storage.get_recent_events()
        assert event.entity_id == task_id
        assert event.description == "Task created: Pay rent"
