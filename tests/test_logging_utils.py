"""
Unit tests for logging setup and the performance decorator
"""

import logging
import logging.handlers
import os
import tempfile
import unittest

from utils.logging_utils import log_performance, setup_logging


class TestSetupLogging(unittest.TestCase):

    def setUp(self):
        self.root = logging.getLogger()
        self.saved_handlers = self.root.handlers[:]
        self.saved_level = self.root.level

    def tearDown(self):
        for handler in self.root.handlers[:]:
            self.root.removeHandler(handler)
            handler.close()
        for handler in self.saved_handlers:
            self.root.addHandler(handler)
        self.root.setLevel(self.saved_level)

    def test_console_and_rotating_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_file = os.path.join(tmp, 'logs', 'engine.log')
            root = setup_logging(log_level='debug', log_file=log_file)

            self.assertEqual(root.level, logging.DEBUG)
            self.assertTrue(os.path.isdir(os.path.dirname(log_file)))
            self.assertEqual(
                sum(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers), 1
            )
            self.assertEqual(logging.getLogger('sklearn').level, logging.WARNING)

            setup_logging(log_level='INFO', log_file=None)
            self.assertEqual(len(root.handlers), 1)
            self.assertEqual(root.level, logging.INFO)

    def test_unknown_level_defaults_to_info(self):
        root = setup_logging(log_level='chatty', log_file=None)
        self.assertEqual(root.level, logging.INFO)


class TestLogPerformance(unittest.TestCase):

    def setUp(self):
        self.logger = logging.getLogger('tests.performance')

    def test_slow_call_warns(self):
        @log_performance(self.logger, threshold_ms=-1)
        def compute(x):
            return x * 2

        with self.assertLogs(self.logger, level='WARNING') as logs:
            self.assertEqual(compute(4), 8)
        self.assertIn('compute took', logs.output[0])

    def test_failure_is_logged_and_raised(self):
        @log_performance(self.logger)
        def explode():
            raise RuntimeError("boom")

        with self.assertLogs(self.logger, level='ERROR') as logs:
            with self.assertRaises(RuntimeError):
                explode()
        self.assertIn('boom', logs.output[0])


if __name__ == '__main__':
    unittest.main()
