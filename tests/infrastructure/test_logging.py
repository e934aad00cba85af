import logging
import os
import unittest
from unittest import mock

from src.fastumap.infrastructure._config import reload_config
from src.fastumap.infrastructure._logging import get_logger


class TestGetLogger(unittest.TestCase):
    def tearDown(self) -> None:
        reload_config()

    def test_names_are_rooted_at_package_logger(self) -> None:
        self.assertEqual(get_logger().name, "fastumap")
        self.assertEqual(get_logger("fastumap.ops").name, "fastumap.ops")
        self.assertEqual(get_logger("bench").name, "fastumap.bench")

    def test_module_loggers_use_fixed_names(self) -> None:
        from src.fastumap.infrastructure.backends import _registry
        from src.fastumap.infrastructure.ops import pairwise_distance_cuda

        self.assertEqual(_registry.logger.name, "fastumap.backends.registry")
        self.assertEqual(
            pairwise_distance_cuda.logger.name, "fastumap.ops.pairwise_distance_cuda"
        )

    def test_single_handler_on_root(self) -> None:
        get_logger("a")
        get_logger("b")
        root = logging.getLogger("fastumap")
        self.assertEqual(len(root.handlers), 1)

    def test_reload_config_reapplies_level(self) -> None:
        get_logger()
        with mock.patch.dict(os.environ, {"FASTUMAP_LOG_LEVEL": "DEBUG"}):
            reload_config()
            self.assertEqual(logging.getLogger("fastumap").level, logging.DEBUG)
        reload_config()
        self.assertEqual(logging.getLogger("fastumap").level, logging.WARNING)

    def test_child_records_reach_root(self) -> None:
        with self.assertLogs("fastumap", level="WARNING") as cm:
            get_logger("child").warning("hello %d", 7)
        self.assertIn("hello 7", cm.output[0])


if __name__ == "__main__":
    unittest.main()
