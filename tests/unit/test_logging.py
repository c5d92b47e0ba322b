import json
import logging
import shutil
import tempfile
import unittest

from pathlib import Path

from scenesync.utils.logging import FileLoggingContext, write_json


class TestFileLoggingContext(unittest.TestCase):
    """Test FileLoggingContext functionality."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.logger = logging.getLogger("scenesync.test_logging")

    def tearDown(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_records_are_written_to_file(self):
        log_path = self.temp_dir / "nested" / "run.log"

        with FileLoggingContext(log_path):
            self.logger.warning("Placed cup.1001")
        self.logger.warning("After the context")

        self.assertTrue(log_path.exists())
        content = log_path.read_text()
        self.assertIn("Placed cup.1001", content)
        self.assertIn("WARNING", content)
        self.assertNotIn("After the context", content)

    def test_handler_removed_on_exit(self):
        root_logger = logging.getLogger()
        handlers_before = list(root_logger.handlers)

        with FileLoggingContext(self.temp_dir / "run.log") as context:
            self.assertIn(context.file_handler, root_logger.handlers)

        self.assertEqual(root_logger.handlers, handlers_before)
        self.assertIsNone(context.file_handler)

    def test_suppress_stdout_restores_handlers(self):
        root_logger = logging.getLogger()
        stream_handler = logging.StreamHandler()
        root_logger.addHandler(stream_handler)
        try:
            with FileLoggingContext(self.temp_dir / "run.log", suppress_stdout=True):
                self.assertNotIn(stream_handler, root_logger.handlers)
            self.assertIn(stream_handler, root_logger.handlers)
        finally:
            root_logger.removeHandler(stream_handler)

    def test_handlers_restored_after_exception(self):
        root_logger = logging.getLogger()
        handlers_before = list(root_logger.handlers)

        with self.assertRaises(RuntimeError):
            with FileLoggingContext(self.temp_dir / "run.log", suppress_stdout=True):
                raise RuntimeError("expansion failed")

        self.assertEqual(root_logger.handlers, handlers_before)


class TestWriteJson(unittest.TestCase):
    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_creates_parent_directories(self):
        path = write_json(self.temp_dir / "out" / "result.json", {"success": True})

        self.assertEqual(path, self.temp_dir / "out" / "result.json")
        with open(path) as f:
            self.assertEqual(json.load(f), {"success": True})


if __name__ == "__main__":
    unittest.main()
