import errno
import pathlib
import sys
import tempfile
import unittest
from datetime import datetime
from unittest import mock

import numpy as np

# Ensure src/ is on path for direct test execution
ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from balancerec.core.errors import RecorderError  # noqa: E402
from balancerec.core.models import SessionRecord  # noqa: E402
from balancerec.dataio.csv_writer import CSV_HEADER, CsvRecorder, format_record  # noqa: E402
from balancerec.dataio.log_loader import load_sessions  # noqa: E402


def _record(elapsed, weight=1.2, x=1.0, y=-0.5):
    return SessionRecord(
        wall_clock=datetime(2024, 1, 1, 12, 0, 0, 123456),
        elapsed_s=elapsed,
        top_left_kg=17.8,
        top_right_kg=17.8,
        bottom_left_kg=17.8,
        bottom_right_kg=17.8,
        weight_kg=weight,
        x=x,
        y=y,
    )


class CsvRecorderTest(unittest.TestCase):
    def test_format_record_precision(self):
        fields = format_record(_record(0.1, weight=1.2000000001, x=1.0, y=-0.5))
        self.assertEqual(
            fields,
            [
                "2024-01-01 12:00:00.123456",
                "0.100",
                "17.80",
                "17.80",
                "17.80",
                "17.80",
                "1.20",
                "1.00",
                "-0.50",
            ],
        )

    def test_creates_parent_directories_and_writes_rows(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = pathlib.Path(tmpdir) / "alice" / "trial.csv"
            recorder = CsvRecorder.open(path, fsync=False)
            recorder.write_header()
            recorder.append(_record(0.1))
            recorder.append(_record(0.2))

            # Rows are on disk before append returns, so they are visible while open.
            lines = path.read_text(encoding="utf-8").splitlines()
            recorder.close()

            self.assertEqual(lines[0], ",".join(CSV_HEADER))
            self.assertEqual(len(lines), 3)
            self.assertEqual(recorder.rows_written, 2)
            self.assertEqual(recorder.headers_written, 1)

    def test_sessions_round_trip_through_loader(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = pathlib.Path(tmpdir) / "trial.csv"
            recorder = CsvRecorder.open(path, fsync=False)
            recorder.write_header()
            recorder.append(_record(0.1))
            recorder.write_header()
            recorder.append(_record(0.05, weight=2.0))
            recorder.append(_record(0.10, weight=2.5))
            recorder.close()

            sessions = load_sessions(path)

            self.assertEqual([len(s) for s in sessions], [1, 2])
            self.assertAlmostEqual(float(sessions[1].weight[1]), 2.5)

    def test_refuses_to_overwrite_existing_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = pathlib.Path(tmpdir) / "trial.csv"
            path.write_text("keep me\n", encoding="utf-8")

            with self.assertRaises(RecorderError) as ctx:
                CsvRecorder.open(path)

            self.assertEqual(ctx.exception.errno, errno.EEXIST)
            self.assertEqual(path.read_text(encoding="utf-8"), "keep me\n")

    def test_close_is_idempotent_and_blocks_writes(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            recorder = CsvRecorder.open(pathlib.Path(tmpdir) / "trial.csv", fsync=False)
            recorder.close()
            recorder.close()

            self.assertTrue(recorder.closed)
            with self.assertRaises(RecorderError) as ctx:
                recorder.append(_record(0.1))
            self.assertEqual(ctx.exception.errno, errno.EBADF)

    def test_failed_row_is_removed_from_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = pathlib.Path(tmpdir) / "trial.csv"
            recorder = CsvRecorder.open(path, fsync=True)
            recorder.write_header()

            with mock.patch(
                "balancerec.dataio.csv_writer.os.fsync",
                side_effect=OSError(errno.EIO, "I/O error"),
            ):
                with self.assertRaises(RecorderError) as ctx:
                    recorder.append(_record(0.1))
            self.assertEqual(ctx.exception.errno, errno.EIO)
            self.assertEqual(recorder.rows_written, 0)

            recorder.append(_record(0.2))
            recorder.close()
            self.assertEqual(recorder.rows_written, 1)
            lines = path.read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 2)
            (session,) = load_sessions(path)
            np.testing.assert_allclose(session.elapsed, [0.2])

    def test_recorder_error_is_an_oserror(self):
        self.assertTrue(issubclass(RecorderError, OSError))


if __name__ == "__main__":
    unittest.main()
