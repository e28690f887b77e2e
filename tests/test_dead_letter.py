# =============================================================================
# Unit Tests — Dead-Letter Store
# =============================================================================
#
# Redis is a MagicMock; the tests check what is written, what is read
# back, and that a Redis outage never hides the failure.
# =============================================================================

from datetime import UTC, datetime
from unittest.mock import MagicMock

import redis

from pdf_rag.errors import DecodeError, LoadError, UpsertError
from pdf_rag.workers.dead_letter import DeadLetterEntry, DeadLetterStore


def _entry(**overrides) -> DeadLetterEntry:
    fields = {
        "job_id": "job-1",
        "step": "loading",
        "error_type": "LoadError",
        "message": "not a valid PDF",
        "payload": {"filename": "bad.pdf", "path": "/tmp/bad.pdf"},
        "attempts": 1,
        "failed_at": datetime(2026, 10, 19, 8, 0, tzinfo=UTC),
    }
    fields.update(overrides)
    return DeadLetterEntry(**fields)


class TestDeadLetterEntry:
    def test_from_ingestion_error(self):
        exc = LoadError("not a valid PDF")
        entry = DeadLetterEntry.from_error(exc, "job-1", payload={"filename": "x"}, attempts=2)
        assert entry.step == "loading"
        assert entry.error_type == "LoadError"
        assert entry.message == "not a valid PDF"
        assert entry.cause is None
        assert entry.attempts == 2

    def test_records_the_underlying_cause(self):
        exc = UpsertError("write rejected", ConnectionError("chroma down"), step="upserting")
        entry = DeadLetterEntry.from_error(exc, "job-3")
        assert entry.step == "upserting"
        assert entry.error_type == "UpsertError"
        assert entry.cause == "ConnectionError('chroma down')"

    def test_from_decode_error(self):
        entry = DeadLetterEntry.from_error(DecodeError("bad json"), "job-2", payload="{")
        assert entry.step == "decoding"
        assert entry.error_type == "DecodeError"
        assert entry.payload == "{"

    def test_from_plain_exception(self):
        entry = DeadLetterEntry.from_error(ValueError("unexpected"), "job-4")
        assert entry.step == "decoding"
        assert entry.error_type == "ValueError"
        assert entry.message == "unexpected"
        assert entry.cause is None

    def test_json_round_trip(self):
        entry = _entry()
        assert DeadLetterEntry.from_json(entry.to_json()) == entry


class TestDeadLetterStore:
    def test_record_pushes_and_trims(self):
        client = MagicMock()
        pipe = client.pipeline.return_value
        store = DeadLetterStore(client, key="dl", max_entries=10)

        store.record(_entry())

        key, raw = pipe.lpush.call_args.args
        assert key == "dl"
        assert DeadLetterEntry.from_json(raw).job_id == "job-1"
        pipe.ltrim.assert_called_once_with("dl", 0, 9)
        pipe.execute.assert_called_once()

    def test_record_logs_failure_event(self, caplog):
        store = DeadLetterStore(MagicMock(), key="dl")
        with caplog.at_level("ERROR", logger="pdf_rag.workers.dead_letter"):
            store.record(_entry())
        assert "job-1" in caplog.text
        assert "loading" in caplog.text

    def test_redis_outage_is_logged_not_raised(self, caplog):
        client = MagicMock()
        client.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")
        store = DeadLetterStore(client, key="dl")

        with caplog.at_level("ERROR", logger="pdf_rag.workers.dead_letter"):
            store.record(_entry())

        assert "Could not write dead-letter entry" in caplog.text

    def test_list_entries_newest_first(self):
        client = MagicMock()
        client.lrange.return_value = [
            _entry(job_id="job-2").to_json(),
            _entry(job_id="job-1").to_json(),
        ]
        store = DeadLetterStore(client, key="dl")

        entries = store.list_entries(limit=2)

        client.lrange.assert_called_once_with("dl", 0, 1)
        assert [e.job_id for e in entries] == ["job-2", "job-1"]

    def test_count(self):
        client = MagicMock()
        client.llen.return_value = 3
        assert DeadLetterStore(client, key="dl").count() == 3
