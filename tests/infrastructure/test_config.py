import os
import unittest
from unittest import mock

from src.fastumap.infrastructure._config import RuntimeConfig, get_config, reload_config


class TestRuntimeConfig(unittest.TestCase):
    def tearDown(self) -> None:
        reload_config()

    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            cfg = RuntimeConfig.from_env()
        self.assertEqual(cfg, RuntimeConfig())
        self.assertEqual(cfg.cpu_row_block, 128)
        self.assertEqual(cfg.cuda_block_size, 256)
        self.assertFalse(cfg.cuda_debug)

    def test_values_from_environment(self) -> None:
        env = {
            "FASTUMAP_LOG_LEVEL": "debug",
            "FASTUMAP_CPU_ROW_BLOCK": "16",
            "FASTUMAP_CPU_WORKERS": "4",
            "FASTUMAP_CUDA_BLOCK_SIZE": "128",
            "FASTUMAP_CUDA_DEBUG": "1",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            cfg = RuntimeConfig.from_env()
        self.assertEqual(cfg.log_level, "DEBUG")
        self.assertEqual(cfg.cpu_row_block, 16)
        self.assertEqual(cfg.cpu_num_workers, 4)
        self.assertEqual(cfg.cuda_block_size, 128)
        self.assertTrue(cfg.cuda_debug)

    def test_falsy_debug_values(self) -> None:
        for raw in ("0", "false", "off", "no", ""):
            with self.subTest(raw=raw):
                with mock.patch.dict(os.environ, {"FASTUMAP_CUDA_DEBUG": raw}, clear=True):
                    self.assertFalse(RuntimeConfig.from_env().cuda_debug)

    def test_malformed_integer_names_the_variable(self) -> None:
        with mock.patch.dict(os.environ, {"FASTUMAP_CPU_ROW_BLOCK": "many"}, clear=True):
            with self.assertRaisesRegex(ValueError, "FASTUMAP_CPU_ROW_BLOCK"):
                RuntimeConfig.from_env()

    def test_out_of_range_block_size(self) -> None:
        for raw in ("0", "2048"):
            with self.subTest(raw=raw):
                with mock.patch.dict(
                    os.environ, {"FASTUMAP_CUDA_BLOCK_SIZE": raw}, clear=True
                ):
                    with self.assertRaises(ValueError):
                        RuntimeConfig.from_env()

    def test_get_config_is_cached_until_reload(self) -> None:
        with mock.patch.dict(os.environ, {"FASTUMAP_CPU_WORKERS": "2"}):
            first = reload_config()
            self.assertIs(get_config(), first)
            os.environ["FASTUMAP_CPU_WORKERS"] = "3"
            self.assertEqual(get_config().cpu_num_workers, 2)
            self.assertEqual(reload_config().cpu_num_workers, 3)


if __name__ == "__main__":
    unittest.main()
