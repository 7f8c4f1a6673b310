import logging
import math
import os
import threading
import concurrent.futures
from collections import deque
from pathlib import Path
from typing import Iterable, List, Optional
from vbconv.config.models import GeneralConfig
from vbconv.domain.events import BatchFinished, BatchStarted, JobFailed
from vbconv.domain.models import EncoderCapability, JobResult
from vbconv.infrastructure.event_bus import EventBus
from vbconv.pipeline.capabilities import CapabilityDirectory
from vbconv.pipeline.executor import JobExecutor

logger = logging.getLogger(__name__)


def compute_concurrency(
    cpu_count: Optional[int],
    capability: EncoderCapability,
    config: Optional[GeneralConfig] = None,
) -> int:
    """clamp(floor(fraction * cpus), min, max), capped further for hardware encoders."""
    config = config or GeneralConfig()
    if config.jobs:
        limit = config.jobs
    else:
        cpus = cpu_count or 1
        limit = max(config.min_jobs, min(config.max_jobs, math.floor(cpus * config.cpu_fraction)))
    if capability.is_hardware:
        # Hardware encode sessions are scarce; oversubscribing them slows down or crashes drivers
        limit = min(limit, config.hw_max_jobs)
    return limit


class BatchScheduler:
    """Runs a bounded pool of workers pulling files from a shared FIFO queue."""

    def __init__(
        self,
        executor: JobExecutor,
        directory: CapabilityDirectory,
        event_bus: EventBus,
        config: Optional[GeneralConfig] = None,
        cpu_count: Optional[int] = None,
    ):
        self.executor = executor
        self.directory = directory
        self.event_bus = event_bus
        self.config = config or GeneralConfig()
        self.cpu_count = cpu_count
        self._shutdown_requested = False

    def request_shutdown(self):
        """Stops handing out queued files and disables fallbacks for jobs still running."""
        self._shutdown_requested = True
        self.executor.request_shutdown()

    def _process_file(self, file_path: Path) -> JobResult:
        try:
            return self.executor.convert(file_path, self.event_bus.publish)
        except Exception as e:
            # Failures stay file-scoped; the batch keeps going
            logger.exception(f"Exception processing {file_path.name}: {e}")
            message = f"Exception: {e}"
            result = JobResult(file_path=file_path, success=False, error_message=message)
            self.event_bus.publish(JobFailed(file_path=file_path, result=result, error_message=message))
            return result

    def run(self, file_paths: Iterable[Path]) -> List[JobResult]:
        files = list(file_paths)
        if not files:
            return []

        capability = self.directory.detect_encoder()
        limit = compute_concurrency(self.cpu_count or os.cpu_count(), capability, self.config)
        worker_count = min(limit, len(files))
        logger.info(
            f"BATCH_START: files={len(files)} capability={capability.value} "
            f"limit={limit} workers={worker_count}"
        )
        self.event_bus.publish(BatchStarted(files=files, concurrency=limit, capability=capability))

        pending = deque(files)
        results: List[JobResult] = []
        lock = threading.Lock()

        def worker():
            while True:
                with lock:
                    if self._shutdown_requested or not pending:
                        return
                    file_path = pending.popleft()
                result = self._process_file(file_path)
                with lock:
                    results.append(result)

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix="vbconv-worker"
        ) as pool:
            futures = [pool.submit(worker) for _ in range(worker_count)]
            try:
                for future in concurrent.futures.as_completed(futures):
                    future.result()
            except KeyboardInterrupt:
                # Leaving the pool joins the workers; only in-flight files may finish
                with lock:
                    self.request_shutdown()
                    dropped = len(pending)
                    pending.clear()
                logger.warning(f"BATCH_INTERRUPTED: dropped {dropped} queued file(s)")
                raise

        failed = sum(1 for r in results if not r.success)
        logger.info(f"BATCH_END: completed={len(results) - failed} failed={failed}")
        self.event_bus.publish(BatchFinished(results=list(results)))
        return list(results)
