import queue
import threading

from app.document.exceptions import ProcessorShuttingDownError, QueueFullError
from app.document.models import ExtractionJob
from app.external.client import ExtractionClient
from app.logging.logger import Log


class AsyncProcessor:
    """Bounded extraction queue drained by a fixed set of worker threads.

    Jobs are attempted once. Failures are logged and the job is dropped.
    Workers start on construction and stop on ``shutdown``.
    """

    DEFAULT_WORKER_COUNT = 3
    DEFAULT_QUEUE_SIZE = 100
    POLL_INTERVAL_SECONDS = 0.1

    def __init__(
        self,
        extraction_client: ExtractionClient,
        worker_count: int = DEFAULT_WORKER_COUNT,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._extraction_client = extraction_client
        self._worker_count = worker_count if worker_count > 0 else self.DEFAULT_WORKER_COUNT
        self._capacity = queue_size if queue_size > 0 else self.DEFAULT_QUEUE_SIZE
        self._jobs: queue.Queue[ExtractionJob] = queue.Queue(maxsize=self._capacity)
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._shutting_down = False
        self._workers = [
            threading.Thread(
                target=self._worker,
                args=(worker_id,),
                name=f"extraction-worker-{worker_id}",
                daemon=True,
            )
            for worker_id in range(self._worker_count)
        ]
        for worker in self._workers:
            worker.start()

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def capacity(self) -> int:
        return self._capacity

    def submit(self, job: ExtractionJob) -> None:
        """Enqueue a job without blocking.

        Raises:
            ProcessorShuttingDownError: once ``shutdown`` has been called.
            QueueFullError: if the queue is at capacity.
        """
        with self._lock:
            if self._shutting_down:
                raise ProcessorShuttingDownError(
                    "processor is shutting down, cannot accept new jobs"
                )
            try:
                self._jobs.put_nowait(job)
            except queue.Full:
                raise QueueFullError(
                    f"job queue is full ({self._capacity} jobs), cannot submit new job"
                ) from None
        Log.info(
            "Extraction job submitted",
            detail_id=job.detail_id,
            queue_size=self._jobs.qsize(),
        )

    def shutdown(self) -> None:
        """Stop accepting jobs, signal workers, and wait for them to exit.

        A worker finishes the extraction call it is running; jobs still
        queued are dropped. Safe to call more than once.
        """
        with self._lock:
            self._shutting_down = True
        Log.info("Shutting down async processor")
        self._cancelled.set()
        for worker in self._workers:
            worker.join()
        dropped = self._jobs.qsize()
        if dropped:
            Log.warning(f"Dropped {dropped} queued extraction jobs on shutdown")
        Log.info("Async processor shut down complete")

    def queue_depth(self) -> int:
        """Approximate number of queued jobs; advisory only."""
        return self._jobs.qsize()

    def _worker(self, worker_id: int) -> None:
        Log.info("Extraction worker started", worker=worker_id)
        while not self._cancelled.is_set():
            try:
                job = self._jobs.get(timeout=self.POLL_INTERVAL_SECONDS)
            except queue.Empty:
                continue
            self._process(worker_id, job)
        Log.info("Extraction worker received shutdown signal", worker=worker_id)

    def _process(self, worker_id: int, job: ExtractionJob) -> None:
        Log.info("Processing extraction job", worker=worker_id, detail_id=job.detail_id)
        try:
            self._extraction_client.extract_document(job.request)
        except Exception as exc:
            Log.error(
                f"Failed to extract document: {exc}",
                worker=worker_id,
                detail_id=job.detail_id,
            )
            return
        Log.info("Extracted document", worker=worker_id, detail_id=job.detail_id)
