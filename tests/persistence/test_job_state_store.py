"""Tests for the job state persistence layer."""

import asyncio
import json
import os
import shutil
import sqlite3
import tempfile
from unittest.mock import patch

import pytest

from movejob_app.errors import StorageWriteError
from movejob_app.persistence.job_state_store import JobStateStore
from movejob_app.utils.time import MS_PER_DAY

from conftest import FakeClock


def sample_state(job_id: str = "job-001", step: int = 3) -> dict:
    return {
        "jobId": job_id,
        "totalSteps": 8,
        "currentStep": step,
        "intervals": [
            {"step": 1, "startedAtMs": 1000, "endedAtMs": 2000, "durationMs": 1000},
            {"step": 2, "startedAtMs": 2000, "endedAtMs": None, "durationMs": None},
        ],
        "isRunning": True,
        "isOnBreak": False,
    }


class TestJobStateStore:
    """Test JobStateStore class."""

    def setup_method(self):
        """Setup test database."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test_job_states.db")
        self.clock = FakeClock()
        self.store = JobStateStore(self.db_path, clock=self.clock)

    def teardown_method(self):
        """Cleanup test database."""
        shutil.rmtree(self.temp_dir)

    def test_init_database(self):
        """Test database initialization."""
        assert os.path.exists(self.db_path)

        with sqlite3.connect(self.db_path) as conn:
            tables = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
            table_names = [table[0] for table in tables]

        assert "kv_store" in table_names

    def test_save_and_load_round_trip(self):
        state = sample_state()

        asyncio.run(self.store.save("job-001", state))
        loaded = asyncio.run(self.store.load("job-001"))

        assert loaded == state

    def test_record_stored_under_prefixed_key(self):
        asyncio.run(self.store.save("job-001", sample_state()))

        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT value, updated_at_ms FROM kv_store WHERE key = ?",
                ("job_state_job-001",)
            ).fetchone()
            index_row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", ("job_states_index",)
            ).fetchone()

        assert json.loads(row[0])["jobId"] == "job-001"
        assert row[1] == self.clock.now
        assert json.loads(index_row[0]) == ["job-001"]

    def test_save_replaces_full_snapshot(self):
        asyncio.run(self.store.save("job-001", sample_state(step=2)))
        asyncio.run(self.store.save("job-001", {"jobId": "job-001", "currentStep": 5}))

        loaded = asyncio.run(self.store.load("job-001"))

        assert loaded == {"jobId": "job-001", "currentStep": 5}
        assert asyncio.run(self.store.list_ids()) == ["job-001"]

    def test_load_missing_returns_none(self):
        assert asyncio.run(self.store.load("unknown")) is None

    def test_load_corrupt_record_returns_none(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO kv_store (key, value, updated_at_ms) VALUES (?, ?, ?)",
                ("job_state_broken", "{not json", 0)
            )
            conn.commit()

        assert asyncio.run(self.store.load("broken")) is None

    def test_load_non_object_record_returns_none(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO kv_store (key, value, updated_at_ms) VALUES (?, ?, ?)",
                ("job_state_listy", "[1, 2, 3]", 0)
            )
            conn.commit()

        assert asyncio.run(self.store.load("listy")) is None

    def test_save_unserializable_state_raises_write_error(self):
        with pytest.raises(StorageWriteError) as exc_info:
            asyncio.run(self.store.save("job-001", {"bad": object()}))

        assert exc_info.value.operation == "save"
        assert exc_info.value.key == "job_state_job-001"

    def test_save_database_failure_raises_write_error(self):
        with patch(
            "movejob_app.persistence.job_state_store.sqlite3.connect",
            side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            with pytest.raises(StorageWriteError):
                asyncio.run(self.store.save("job-001", sample_state()))

    def test_delete(self):
        asyncio.run(self.store.save("job-001", sample_state("job-001")))
        asyncio.run(self.store.save("job-002", sample_state("job-002")))

        asyncio.run(self.store.delete("job-001"))

        assert asyncio.run(self.store.load("job-001")) is None
        assert asyncio.run(self.store.list_ids()) == ["job-002"]

    def test_delete_missing_is_noop(self):
        asyncio.run(self.store.delete("never-saved"))
        assert asyncio.run(self.store.list_ids()) == []

    def test_list_ids_in_insertion_order(self):
        for job_id in ("job-003", "job-001", "job-002"):
            asyncio.run(self.store.save(job_id, sample_state(job_id)))

        assert asyncio.run(self.store.list_ids()) == ["job-003", "job-001", "job-002"]

    def test_load_all_skips_unreadable_records(self):
        asyncio.run(self.store.save("job-001", sample_state("job-001")))
        asyncio.run(self.store.save("job-002", sample_state("job-002")))

        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "UPDATE kv_store SET value = ? WHERE key = ?",
                ("garbage", "job_state_job-002")
            )
            conn.commit()

        records = asyncio.run(self.store.load_all())

        assert [r["jobId"] for r in records] == ["job-001"]

    def test_corrupt_index_is_rebuilt_on_save(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO kv_store (key, value, updated_at_ms) VALUES (?, ?, ?)",
                ("job_states_index", "oops", 0)
            )
            conn.commit()

        assert asyncio.run(self.store.list_ids()) == []

        asyncio.run(self.store.save("job-001", sample_state()))
        assert asyncio.run(self.store.list_ids()) == ["job-001"]

    def test_purge_older_than(self):
        asyncio.run(self.store.save("old-job", sample_state("old-job")))

        self.clock.advance(20 * MS_PER_DAY)
        asyncio.run(self.store.save("recent-job", sample_state("recent-job")))

        self.clock.advance(15 * MS_PER_DAY)
        purged = asyncio.run(self.store.purge_older_than(30))

        assert purged == 1
        assert asyncio.run(self.store.load("old-job")) is None
        assert asyncio.run(self.store.load("recent-job")) is not None
        assert asyncio.run(self.store.list_ids()) == ["recent-job"]

    def test_purge_nothing_stale(self):
        asyncio.run(self.store.save("job-001", sample_state()))

        assert asyncio.run(self.store.purge_older_than(30)) == 0
        assert asyncio.run(self.store.list_ids()) == ["job-001"]


class TestSharedDatabase:
    """Two stores with different prefixes in one database file."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "shared.db")
        self.clock = FakeClock()
        self.progress = JobStateStore(self.db_path, clock=self.clock)
        self.timers = JobStateStore(
            self.db_path,
            key_prefix="job_timer_",
            index_key="job_timers_index",
            clock=self.clock,
        )

    def teardown_method(self):
        shutil.rmtree(self.temp_dir)

    def test_prefixes_are_isolated(self):
        asyncio.run(self.progress.save("job-001", {"kind": "progress"}))
        asyncio.run(self.timers.save("job-001", {"kind": "timer"}))

        assert asyncio.run(self.progress.load("job-001")) == {"kind": "progress"}
        assert asyncio.run(self.timers.load("job-001")) == {"kind": "timer"}
        assert asyncio.run(self.progress.list_ids()) == ["job-001"]
        assert asyncio.run(self.timers.list_ids()) == ["job-001"]

    def test_purge_only_touches_own_prefix(self):
        asyncio.run(self.progress.save("job-001", {"kind": "progress"}))
        asyncio.run(self.timers.save("job-001", {"kind": "timer"}))

        self.clock.advance(40 * MS_PER_DAY)
        assert asyncio.run(self.timers.purge_older_than(30)) == 1

        assert asyncio.run(self.timers.load("job-001")) is None
        assert asyncio.run(self.progress.load("job-001")) == {"kind": "progress"}
