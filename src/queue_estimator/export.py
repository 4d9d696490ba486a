"""
Raw sample export for offline analysis.

Writes one CSV per queue session:
- queue_YYYY-MM-DD_HH-MM-SS.csv with header ``timestamp,relative_time_ms,position``

Export failures never interrupt tracking; they are logged and the exporter
disables itself for the rest of the session.
"""

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, TextIO, Tuple

logger = logging.getLogger("queue_estimator.export")

CSV_HEADER = ["timestamp", "relative_time_ms", "position"]


class SampleExporter:
    """
    Appends every accepted sample to the session's CSV log.

    Example:
        exporter = SampleExporter(log_dir=Path("queue_logs"))
        tracker = QueueTracker(config, exporter=exporter)
    """

    DEFAULT_LOG_DIR = Path("queue_logs")
    FILENAME_FORMAT = "queue_%Y-%m-%d_%H-%M-%S.csv"

    def __init__(self, log_dir: Optional[Path] = None, enabled: bool = True):
        """
        Initialize exporter.

        Args:
            log_dir: Directory for CSV files (default: ./queue_logs)
            enabled: Whether export is enabled
        """
        self.log_dir = Path(log_dir) if log_dir else self.DEFAULT_LOG_DIR
        self.enabled = enabled

        self._file: Optional[TextIO] = None
        self._writer = None
        self._path: Optional[Path] = None
        self._failed = False
        self._rows_written = 0

    def start_session(self, started_at_ms: float) -> Optional[Path]:
        """
        Create the CSV file for a new session.

        Args:
            started_at_ms: Wall-clock time of the first sample (epoch ms)

        Returns:
            Path of the new file, or None if export is disabled or failed
        """
        self.end_session()
        self._failed = False
        if not self.enabled:
            return None

        started = datetime.fromtimestamp(started_at_ms / 1000.0)
        path = self.log_dir / started.strftime(self.FILENAME_FORMAT)
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._file = open(path, "w", newline="")
            self._writer = csv.writer(self._file)
            self._writer.writerow(CSV_HEADER)
            self._file.flush()
        except OSError as e:
            logger.warning(f"Failed to initialize CSV log {path}: {e}")
            self._close_file()
            self._failed = True
            return None

        self._path = path
        self._rows_written = 0
        logger.info(f"CSV log initialized: {path}")
        return path

    def write_sample(self, absolute_ms: float, relative_ms: float, position: int):
        """Append one ``isoTimestamp,relativeMs,position`` row."""
        if not self.enabled or self._failed or self._writer is None:
            return

        iso_time = datetime.fromtimestamp(absolute_ms / 1000.0).isoformat(timespec="milliseconds")
        try:
            self._writer.writerow([iso_time, int(round(relative_ms)), int(position)])
            self._file.flush()
        except OSError as e:
            logger.warning(f"Failed to write to CSV log {self._path}: {e}")
            self._close_file()
            self._failed = True
            return

        self._rows_written += 1

    def end_session(self):
        """Close the current CSV file, if any."""
        if self._file is not None:
            logger.info(f"CSV log closed: {self._path} ({self._rows_written} samples)")
        self._close_file()

    def _close_file(self):
        if self._file is not None:
            try:
                self._file.close()
            except OSError as e:
                logger.warning(f"Failed to close CSV log {self._path}: {e}")
        self._file = None
        self._writer = None

    @property
    def path(self) -> Optional[Path]:
        """Path of the current (or last) session file."""
        return self._path

    @property
    def is_active(self) -> bool:
        return self._writer is not None

    @property
    def rows_written(self) -> int:
        return self._rows_written


def read_samples(path: Path) -> List[Tuple[float, int]]:
    """
    Read an exported CSV back into ``(relative_ms, position)`` pairs.

    Rows that do not parse are skipped.
    """
    samples = []
    with open(path, newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            try:
                samples.append((float(row["relative_time_ms"]), int(row["position"])))
            except (KeyError, TypeError, ValueError):
                continue
    return samples
