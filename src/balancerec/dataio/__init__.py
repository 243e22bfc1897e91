"""Trial file input/output.

Utility modules here keep disk-level concerns isolated from the engine:
- :mod:`csv_writer` owns the append-only trial CSV and its row format.
- :mod:`file_paths` centralises the ``data/<participant>/`` naming scheme.
- :mod:`log_loader` parses recorded trials back for offline review.
"""

from .csv_writer import CSV_HEADER, CsvRecorder, format_record
from .file_paths import trial_file_path

__all__ = ["CSV_HEADER", "CsvRecorder", "format_record", "trial_file_path"]
