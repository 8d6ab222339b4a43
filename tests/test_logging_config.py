"""Tests for the logging setup."""

import logging
import shutil
import tempfile
import unittest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from arrow_scoring.logging_config import LoggingManager, StructuredFormatter


class TestLoggingManager(unittest.TestCase):
    """Test cases for LoggingManager."""

    def setUp(self):
        self.log_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.log_dir, ignore_errors=True)

    def test_console_only_manager_creates_no_files(self):
        manager = LoggingManager()

        stats = manager.get_log_stats()

        self.assertIsNone(stats["log_directory"])
        self.assertEqual(stats["log_files"], {})

    def test_component_loggers_are_cached_under_package(self):
        manager = LoggingManager()

        first = manager.get_component_logger("decoder")
        second = manager.get_component_logger("decoder")

        self.assertIs(first, second)
        self.assertEqual(first.name, "arrow_scoring.decoder")
        self.assertEqual(manager.get_log_stats()["active_loggers"], ["arrow_scoring.decoder"])

    def test_performance_log_file(self):
        manager = LoggingManager(self.log_dir)
        perf_logger = manager.get_performance_logger()
        perf_logger.setLevel(logging.INFO)

        perf_logger.info("Image scored | arrows=3")
        for handler in perf_logger.handlers:
            handler.flush()

        with open(os.path.join(self.log_dir, "performance.log")) as f:
            self.assertIn("arrows=3", f.read())

        for handler in list(perf_logger.handlers):
            perf_logger.removeHandler(handler)
            handler.close()

    def test_repeated_setup_keeps_one_performance_handler(self):
        second_dir = os.path.join(self.log_dir, "second")
        LoggingManager(self.log_dir).get_performance_logger()
        perf_logger = LoggingManager(second_dir).get_performance_logger()

        try:
            self.assertEqual(len(perf_logger.handlers), 1)
            self.assertFalse(perf_logger.propagate)
            self.assertEqual(os.path.dirname(perf_logger.handlers[0].baseFilename),
                             os.path.abspath(second_dir))
        finally:
            for handler in list(perf_logger.handlers):
                perf_logger.removeHandler(handler)
                handler.close()

    def test_context_is_formatted(self):
        record = logging.LogRecord("arrow_scoring.test", logging.INFO, __file__, 1,
                                   "scored", None, None)
        record.context = {"arrows": 3}

        output = StructuredFormatter(include_context=True).format(record)

        self.assertIn("scored", output)
        self.assertIn("Context: arrows=3", output)


if __name__ == '__main__':
    unittest.main()
