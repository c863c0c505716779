"""
Redis-backed ingest job queue.

Producers enqueue one job per file; the job id is derived from the file path
so at most one job per file is pending at a time. Workers run each job to
completion through the IngestionCoordinator.
"""

import hashlib
import logging
from typing import Any, Dict, NamedTuple, Optional

from redis import Redis
from redis.exceptions import RedisError, WatchError
from rq import Queue, Retry, SimpleWorker
from rq.job import Job, JobStatus
from rq.worker_pool import WorkerPool

from src.config import AppSettings, QueueSettings
from src.config import settings as app_settings
from src.rag.error_handler import UpstreamUnavailable
from src.rag.models import IngestRequest, parse_timestamp
from src.rag.service_context import ServiceContext


PENDING_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.STARTED, JobStatus.DEFERRED, JobStatus.SCHEDULED})
LOCK_PREFIX = "brain:enqueue-lock:"

logger = logging.getLogger(__name__)

_worker_context: Optional[ServiceContext] = None


class EnqueueReceipt(NamedTuple):
    job_id: str
    deduplicated: bool


def job_id_for(file_path: str) -> str:
    """Queue identity of a file. rq ids only allow letters, digits, '-' and '_'."""
    return f"ingest-{hashlib.sha1(file_path.encode('utf-8')).hexdigest()}"


def redis_connection(queue_settings: QueueSettings) -> Redis:
    return Redis(host=queue_settings.redis_host, port=queue_settings.redis_port, db=queue_settings.redis_db)


class IngestJobQueue:
    """Producer side of the ingest queue."""

    def __init__(
        self,
        connection: Redis,
        queue_settings: Optional[QueueSettings] = None,
        is_async: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            connection: Redis connection
            queue_settings: Queue name, retention and retry settings
            is_async: False runs jobs inline on enqueue (used in tests)
            logger: Optional logger instance
        """
        self.settings = queue_settings or app_settings.queue
        self.connection = connection
        self.queue = Queue(self.settings.name, connection=connection, is_async=is_async)
        self.logger = logger or logging.getLogger(__name__)

    def enqueue(self, request: IngestRequest) -> EnqueueReceipt:
        """
        Enqueue an ingestion, collapsing it into the pending job for the same file if any.

        The check and the enqueue run under a per-file Redis lock, so concurrent
        producers never push the same job twice. A job that has not started yet
        takes over the newer payload, so the worker indexes the latest content
        it was told about.

        Args:
            request: Validated ingest request

        Returns:
            EnqueueReceipt with the job id and whether an existing job was reused

        Raises:
            UpstreamUnavailable: If Redis cannot be reached or the lock is not acquired
        """
        job_id = job_id_for(request.file_path)
        try:
            with self.connection.lock(
                f"{LOCK_PREFIX}{job_id}",
                timeout=self.settings.lock_timeout_seconds,
                blocking_timeout=self.settings.lock_timeout_seconds,
            ):
                return self._enqueue_locked(job_id, request)
        except RedisError as e:
            self.logger.error(f"Could not enqueue {request.file_path}: {e}", exc_info=True)
            raise UpstreamUnavailable("queue", "enqueue", e) from e

    def _enqueue_locked(self, job_id: str, request: IngestRequest) -> EnqueueReceipt:
        existing = self.queue.fetch_job(job_id)
        if existing is not None and existing.get_status(refresh=True) in PENDING_STATUSES:
            self._refresh_pending_payload(job_id, request)
            self.logger.info(f"Job for {request.file_path} already pending ({job_id}); deduplicated.")
            return EnqueueReceipt(job_id=job_id, deduplicated=True)

        retry = None
        if self.settings.max_retries > 0:
            retry = Retry(max=self.settings.max_retries, interval=list(self.settings.retry_intervals))

        self.queue.enqueue(
            process_ingest_job,
            request.model_dump(by_alias=True),
            job_id=job_id,
            result_ttl=self.settings.result_ttl,
            failure_ttl=self.settings.failure_ttl,
            retry=retry,
            description=f"ingest {request.file_path}",
        )
        self.logger.info(f"Queued ingestion of {request.file_path} as {job_id}")
        return EnqueueReceipt(job_id=job_id, deduplicated=False)

    def _refresh_pending_payload(self, job_id: str, request: IngestRequest) -> None:
        # Workers do not take the producer lock; WATCH aborts the write if the job changed meanwhile.
        with self.connection.pipeline() as pipe:
            try:
                pipe.watch(Job.key_for(job_id))
                job = Job.fetch(job_id, connection=self.connection)
                if job.get_status() != JobStatus.QUEUED or not job.args:
                    return
                pending = IngestRequest.model_validate(job.args[0])
                if parse_timestamp(request.last_modified) <= parse_timestamp(pending.last_modified):
                    return
                pipe.multi()
                job.args = (request.model_dump(by_alias=True),)
                job.save(pipeline=pipe)
                pipe.execute()
                self.logger.debug(f"Pending job {job_id} now carries lastModified={request.last_modified}")
            except WatchError:
                self.logger.info(f"Job {job_id} changed while refreshing its payload; keeping it as is.")


def set_worker_context(context: Optional[ServiceContext]) -> None:
    """Install the context used by ``process_ingest_job`` in this process."""
    global _worker_context
    _worker_context = context


def _get_worker_context() -> ServiceContext:
    global _worker_context
    if _worker_context is None:
        _worker_context = ServiceContext.init(app_settings)
    return _worker_context


def process_ingest_job(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Worker entry point for one ingest job.

    Raises:
        IngestionFailed: Propagated so the queue records the failure and retries
    """
    request = IngestRequest.model_validate(payload)
    context = _get_worker_context()
    outcome = context.ingestion_coordinator.ingest(request.to_source_document())
    logger.info(f"Job finished for {outcome.file_path}: {outcome.status.value}")
    return outcome.model_dump(mode="json")


def run_worker(settings: Optional[AppSettings] = None, burst: bool = False) -> None:
    """
    Run queue workers until stopped (or until the queue is empty when ``burst``).

    One worker runs in-process; more are started as a pool of processes.
    """
    cfg = settings or app_settings
    connection = redis_connection(cfg.queue)
    concurrency = max(1, cfg.queue.worker_concurrency)
    logger.info(f"Starting {concurrency} worker(s) on queue '{cfg.queue.name}'")

    if concurrency == 1:
        context = ServiceContext.init(cfg)
        set_worker_context(context)
        try:
            worker = SimpleWorker([Queue(cfg.queue.name, connection=connection)], connection=connection)
            worker.work(burst=burst)
        finally:
            set_worker_context(None)
            context.close()
        return

    pool = WorkerPool([cfg.queue.name], connection=connection, num_workers=concurrency)
    pool.start(burst=burst)
