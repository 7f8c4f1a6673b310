import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
LOG_FILENAME = "vbconv.log"


def setup_logging(log_dir: Optional[Path] = None, debug: bool = False) -> logging.Logger:
    """Configures root logging: a file log in log_dir plus warnings (or everything in debug) on stderr."""
    level = logging.DEBUG if debug else logging.INFO
    handlers = []

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / LOG_FILENAME)
        file_handler.setLevel(level)
        handlers.append(file_handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if debug else logging.WARNING)
    handlers.append(console)

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    return logging.getLogger("vbconv")
