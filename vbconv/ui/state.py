import threading
from pathlib import Path
from typing import Dict, List, Optional
from vbconv.domain.models import EncoderCapability, JobResult

class UIState:
    """Thread-safe batch state fed by UIManager."""

    def __init__(self):
        self._lock = threading.RLock()

        # Counters
        self.completed_count = 0
        self.failed_count = 0
        self.fallback_count = 0

        # Job tracking
        self.active_files: List[Path] = []
        self.progress: Dict[Path, float] = {}
        self.results: List[JobResult] = []

        # Batch status
        self.total_files = 0
        self.concurrency = 0
        self.capability: Optional[EncoderCapability] = None
        self.batch_finished = False

    @property
    def pending_count(self) -> int:
        with self._lock:
            return max(0, self.total_files - self.completed_count - self.failed_count - len(self.active_files))

    def start_batch(self, total_files: int, concurrency: int, capability: EncoderCapability):
        with self._lock:
            self.total_files = total_files
            self.concurrency = concurrency
            self.capability = capability
            self.batch_finished = False

    def finish_batch(self):
        with self._lock:
            self.batch_finished = True

    def add_active_file(self, file_path: Path):
        with self._lock:
            if file_path not in self.active_files:
                self.active_files.append(file_path)

    def remove_active_file(self, file_path: Path):
        with self._lock:
            if file_path in self.active_files:
                self.active_files.remove(file_path)
            self.progress.pop(file_path, None)

    def set_progress(self, file_path: Path, percent: float) -> Optional[float]:
        """Stores progress and returns the previous value."""
        with self._lock:
            previous = self.progress.get(file_path)
            self.progress[file_path] = percent
            return previous

    def add_result(self, result: JobResult):
        with self._lock:
            if result.success:
                self.completed_count += 1
            else:
                self.failed_count += 1
            if result.used_fallback:
                self.fallback_count += 1
            self.results.append(result)
            self.remove_active_file(result.file_path)
