"""
Unit tests for the ingest job queue.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock, patch

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from rq.job import JobStatus

from src.config import QueueSettings
from src.ingest_queue import (
    IngestJobQueue,
    job_id_for,
    process_ingest_job,
    run_worker,
    set_worker_context,
)
from src.rag.error_handler import IngestionFailed, UpstreamUnavailable
from src.rag.ingestion_coordinator import IngestionCoordinator
from src.rag.models import IngestRequest, IngestStatus
from src.rag.service_context import ServiceContext
from src.rag.text_splitter_factory import ChunkingStrategySelector, TextSplitterFactory


def request(path="/notes/a.md", content="# Title\nSome text.", when="2024-01-01T00:00:00Z"):
    return IngestRequest(filePath=path, content=content, lastModified=when)


@pytest.fixture
def redis_conn():
    return fakeredis.FakeStrictRedis()


@pytest.fixture
def queue_settings():
    return QueueSettings(name="test-ingest", max_retries=2, retry_intervals=[1, 2])


@pytest.fixture
def job_queue(redis_conn, queue_settings):
    return IngestJobQueue(redis_conn, queue_settings)


@pytest.fixture
def worker_context(fake_index):
    context = ServiceContext(
        caller=Mock(),
        vector_store_manager=Mock(),
        ingestion_coordinator=IngestionCoordinator(
            vector_index=fake_index,
            selector=ChunkingStrategySelector(),
            splitter_factory=TextSplitterFactory(),
        ),
        retrieval_pipeline=Mock(),
        answer_generator=Mock(),
    )
    set_worker_context(context)
    yield context
    set_worker_context(None)


def test_job_id_is_stable_and_safe():
    assert job_id_for("/notes/a.md") == job_id_for("/notes/a.md")
    assert job_id_for("/notes/a.md") != job_id_for("/notes/b.md")
    job_id = job_id_for("/home/me/My Notes/ünïcode:file.md")
    assert all(ch.isalnum() or ch in "-_" for ch in job_id)


class TestEnqueue:
    """Producer-side behaviour."""

    def test_enqueue_sets_retention_and_retry(self, job_queue):
        receipt = job_queue.enqueue(request())

        assert receipt.deduplicated is False
        job = job_queue.queue.fetch_job(receipt.job_id)
        assert job.result_ttl == 3600
        assert job.failure_ttl == 86400
        assert job.retries_left == 2
        assert job.args[0]["filePath"] == "/notes/a.md"

    def test_same_file_collapses_into_one_pending_job(self, job_queue):
        first = job_queue.enqueue(request())
        second = job_queue.enqueue(request(content="edited", when="2024-01-02T00:00:00Z"))

        assert second.deduplicated is True
        assert second.job_id == first.job_id
        assert len(job_queue.queue) == 1

    def test_pending_job_takes_newer_payload(self, job_queue):
        receipt = job_queue.enqueue(request())
        job_queue.enqueue(request(content="edited", when="2024-01-02T00:00:00Z"))

        job = job_queue.queue.fetch_job(receipt.job_id)
        assert job.args[0]["content"] == "edited"
        assert job.args[0]["lastModified"] == "2024-01-02T00:00:00Z"

    def test_pending_job_keeps_payload_over_older_one(self, job_queue):
        receipt = job_queue.enqueue(request(content="edited", when="2024-01-02T00:00:00Z"))
        job_queue.enqueue(request(content="stale", when="2024-01-01T00:00:00Z"))

        job = job_queue.queue.fetch_job(receipt.job_id)
        assert job.args[0]["content"] == "edited"

    def test_different_files_get_separate_jobs(self, job_queue):
        job_queue.enqueue(request("/a.md"))
        job_queue.enqueue(request("/b.md"))
        assert len(job_queue.queue) == 2


class TestWorker:
    """Worker-side behaviour."""

    def test_process_job_indexes_file(self, worker_context, fake_index):
        result = process_ingest_job(request().model_dump(by_alias=True))
        assert result["status"] == IngestStatus.INDEXED.value
        assert result["chunk_count"] == 1
        assert fake_index.texts_for("/notes/a.md") == ["# Title\nSome text."]

    def test_process_job_propagates_failure(self, worker_context, fake_index):
        fake_index.fail_on["upsert"] = UpstreamUnavailable("vector_store", "upsert", RuntimeError("down"))
        with pytest.raises(IngestionFailed):
            process_ingest_job(request().model_dump(by_alias=True))

    def test_sync_queue_runs_job_to_completion(self, redis_conn, queue_settings, worker_context, fake_index):
        sync_queue = IngestJobQueue(redis_conn, queue_settings, is_async=False)

        receipt = sync_queue.enqueue(request())

        job = sync_queue.queue.fetch_job(receipt.job_id)
        assert job.is_finished
        assert job.return_value()["status"] == "indexed"
        # A finished job no longer blocks a new one for the same file.
        again = sync_queue.enqueue(request(when="2023-12-31T00:00:00Z"))
        assert again.deduplicated is False
        assert sync_queue.queue.fetch_job(again.job_id).return_value()["status"] == "skipped"

    def test_run_worker_single_process(self, redis_conn):
        settings = Mock()
        settings.queue = QueueSettings(name="test-ingest", worker_concurrency=1)
        context = Mock()
        with patch("src.ingest_queue.redis_connection", return_value=redis_conn), \
             patch("src.ingest_queue.ServiceContext.init", return_value=context), \
             patch("src.ingest_queue.SimpleWorker") as mock_worker:
            run_worker(settings, burst=True)

        mock_worker.return_value.work.assert_called_once_with(burst=True)
        context.close.assert_called_once()

    def test_run_worker_pool(self, redis_conn):
        settings = Mock()
        settings.queue = QueueSettings(name="test-ingest", worker_concurrency=3)
        with patch("src.ingest_queue.redis_connection", return_value=redis_conn), \
             patch("src.ingest_queue.WorkerPool") as mock_pool:
            run_worker(settings, burst=True)

        mock_pool.assert_called_once_with(["test-ingest"], connection=redis_conn, num_workers=3)
        mock_pool.return_value.start.assert_called_once_with(burst=True)


class TestConcurrentProducers:
    """Dedup under concurrent producers and Redis failures."""

    def test_concurrent_enqueues_push_one_job(self, job_queue):
        original_fetch = job_queue.queue.fetch_job

        def slow_fetch(job_id):
            job = original_fetch(job_id)
            time.sleep(0.05)
            return job

        barrier = threading.Barrier(4)

        def produce():
            barrier.wait()
            return job_queue.enqueue(request())

        with patch.object(job_queue.queue, "fetch_job", side_effect=slow_fetch):
            with ThreadPoolExecutor(max_workers=4) as pool:
                receipts = list(pool.map(lambda _: produce(), range(4)))

        assert [receipt.deduplicated for receipt in receipts].count(False) == 1
        assert job_queue.queue.get_job_ids() == [job_id_for("/notes/a.md")]

    def test_started_job_keeps_its_snapshot(self, job_queue):
        receipt = job_queue.enqueue(request())
        job = job_queue.queue.fetch_job(receipt.job_id)
        job.set_status(JobStatus.STARTED)

        job_queue._refresh_pending_payload(receipt.job_id, request(content="edited", when="2024-01-02T00:00:00Z"))

        stored = job_queue.queue.fetch_job(receipt.job_id)
        assert stored.get_status() == JobStatus.STARTED
        assert stored.args[0]["content"] == "# Title\nSome text."

    def test_redis_failure_is_upstream_unavailable(self, job_queue, redis_conn):
        with patch.object(redis_conn, "lock", side_effect=RedisConnectionError("refused")):
            with pytest.raises(UpstreamUnavailable) as exc_info:
                job_queue.enqueue(request())
        assert exc_info.value.service == "queue"
