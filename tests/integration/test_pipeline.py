"""
Integration tests for the full write path.

These tests drive the processor from several threads through the real
pool and writers, with only the MongoDB client mocked, validating the
crawl → filter → borrow → shape → insert → return cycle end to end.
"""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import bson

from crawl_sink.core.config import Settings
from crawl_sink.core.lifespan import sink_lifespan
from crawl_sink.main import create_processor
from crawl_sink.worker.processor import MongoWriterProcessor, ProcessResult


def crawl(processor, records, workers=4):
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(processor.process, records))


class TestConcurrentPipeline:
    """Many URIs through a shared pool from many threads."""

    def test_one_document_per_writable_uri(
        self, parameters, patched_connect, make_record, inserted_documents
    ):
        processor = MongoWriterProcessor(
            parameters,
            pool_max_active=3,
            max_wait_for_idle_ms=5000,
            max_file_size_bytes=200,
        )
        processor.start()
        good = [make_record(url=f"http://example.com/{i}") for i in range(20)]
        missing = [make_record(url=f"http://example.com/gone/{i}", fetch_status=404) for i in range(5)]
        unfetched = [make_record(url="http://example.com/x", fetch_status=-1)]
        too_big = [make_record(url="http://example.com/big", content_size=500)]

        results = crawl(processor, good + missing + unfetched + too_big)
        processor.close()

        docs = inserted_documents()
        assert all(result is ProcessResult.PROCEED for result in results)
        assert sorted(doc["curi:url"] for doc in docs) == sorted(r.url for r in good)
        assert processor.urls_written.get() == 20
        assert processor.total_bytes_written.get() == sum(len(bson.encode(d)) for d in docs)
        assert too_big[0].annotations == ["unwritten:size"]
        assert processor.serial.value <= 3
        for doc in docs:
            assert set(doc) <= parameters.column_names()
            assert {"curi:url", "curi:ip"} <= set(doc)

    def test_checkpoint_round_trip(self, parameters, patched_connect, make_record):
        """Seven URIs, snapshot, restore into a fresh processor."""
        processor = MongoWriterProcessor(parameters, pool_max_active=2, max_wait_for_idle_ms=5000)
        processor.start()
        records = [make_record(url=f"https://example.org/{i}") for i in range(5)]
        records += [make_record(url=f"http://example.org/{i}") for i in range(2)]
        crawl(processor, records)
        snapshot = processor.to_checkpoint_json()
        processor.close()

        restored = MongoWriterProcessor(parameters)
        restored.from_checkpoint_json(snapshot)

        assert restored.urls_written.get() == 7
        assert restored.stats.snapshot() == processor.stats.snapshot()
        assert restored.stats.get("https", "numRecords") == 5
        assert restored.stats.get("http", "numRecords") == 2
        assert restored.total_bytes_written.get() == processor.total_bytes_written.get()
        assert restored.serial.value == processor.serial.value


class TestLifespan:
    """Tests for the settings-driven factory and lifespan."""

    def test_factory_wires_settings(self):
        settings = Settings(
            mongo_host="db",
            mongo_database="crawl",
            mongo_collection="pages",
            pool_max_active=5,
            max_wait_for_idle_ms=50,
            max_file_size_bytes=1000,
            degraded_cooldown_ms=1234,
        )

        processor = create_processor(settings)

        assert processor.parameters.require("host") == "db"
        assert processor.pool_max_active == 5
        assert processor.max_wait_for_idle_ms == 50
        assert processor.max_file_size_bytes == 1000
        assert processor.degraded_cooldown_ms == 1234
        assert processor.pool is None

    def test_lifespan_starts_and_closes_pool(
        self, patched_connect, make_record, inserted_documents
    ):
        settings = Settings(
            mongo_host="db", mongo_database="crawl", mongo_collection="pages",
            time_zone="UTC", log_level="DEBUG",
        )

        with patch("crawl_sink.core.lifespan.setup_logging") as mock_setup_logging:
            with sink_lifespan(settings) as processor:
                processor.process(make_record(fetch_begin_time=0))
                pool = processor.get_pool()

        mock_setup_logging.assert_called_once_with("DEBUG")
        assert processor.pool is None
        assert pool.closed is True
        assert inserted_documents()[0]["curi:processed_at"] == "1970-01-01 00:00:00"
