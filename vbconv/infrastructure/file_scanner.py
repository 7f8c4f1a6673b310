import logging
from pathlib import Path
from typing import Iterable, List

logger = logging.getLogger(__name__)


class FileScanner:
    """Expands a mix of files and directories into an ordered, de-duplicated file list."""

    def __init__(self, extensions: Iterable[str], recursive: bool = False):
        self.extensions = {e.lower() for e in extensions}
        self.recursive = recursive

    def _matches(self, path: Path) -> bool:
        return path.is_file() and path.suffix.lower() in self.extensions

    def _scan_dir(self, directory: Path) -> List[Path]:
        pattern = directory.rglob("*") if self.recursive else directory.glob("*")
        return sorted(p for p in pattern if self._matches(p))

    def scan(self, inputs: Iterable[Path]) -> List[Path]:
        inputs = list(inputs)
        seen = set()
        files: List[Path] = []
        for item in inputs:
            if item.is_dir():
                candidates = self._scan_dir(item)
            else:
                # Explicit files are kept regardless of extension; missing ones fail at probe time
                candidates = [item]
            for candidate in candidates:
                key = candidate.resolve()
                if key in seen:
                    continue
                seen.add(key)
                files.append(candidate)
        logger.info(f"SCAN: {len(files)} file(s) from {len(inputs)} input(s)")
        return files
