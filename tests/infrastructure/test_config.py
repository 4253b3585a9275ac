from unittest import TestCase
import logging
import unittest

import numpy as np

from keyla.domain.device._device import Device
from keyla.infrastructure._config import get_config, load_config, reload_config
from keyla.infrastructure.routines._creation import zeros


class TestLoadConfig(TestCase):
    def test_defaults(self):
        cfg = load_config({})
        self.assertEqual(cfg.default_dtype, np.dtype(np.float32))
        self.assertEqual(cfg.default_device, Device("cpu"))
        self.assertFalse(cfg.debug)

    def test_overrides(self):
        cfg = load_config(
            {
                "KEYLA_DEFAULT_DTYPE": "float64",
                "KEYLA_DEFAULT_DEVICE": "cuda:0",
                "KEYLA_DEBUG": "1",
            }
        )
        self.assertEqual(cfg.default_dtype, np.dtype(np.float64))
        self.assertEqual(cfg.default_device, Device("cuda:0"))
        self.assertTrue(cfg.debug)

    def test_false_values_disable_debug(self):
        for v in ("0", "", "false", "False", "FALSE"):
            with self.subTest(v=v):
                self.assertFalse(load_config({"KEYLA_DEBUG": v}).debug)

    def test_invalid_dtype_raises(self):
        with self.assertRaises(ValueError):
            load_config({"KEYLA_DEFAULT_DTYPE": "not-a-dtype"})

    def test_invalid_device_raises(self):
        with self.assertRaises(ValueError):
            load_config({"KEYLA_DEFAULT_DEVICE": "tpu"})

    def test_config_is_frozen(self):
        cfg = load_config({})
        with self.assertRaises(Exception):
            cfg.debug = True


class TestReloadConfig(TestCase):
    def tearDown(self):
        reload_config({})

    def test_reload_changes_creation_defaults(self):
        reload_config({"KEYLA_DEFAULT_DTYPE": "float64"})
        self.assertEqual(zeros((2,)).dtype, np.dtype(np.float64))
        reload_config({})
        self.assertEqual(zeros((2,)).dtype, np.dtype(np.float32))

    def test_get_config_returns_cached_snapshot(self):
        cfg = reload_config({})
        self.assertIs(get_config(), cfg)

    def test_debug_sets_package_logger_level(self):
        reload_config({"KEYLA_DEBUG": "true"})
        self.assertEqual(logging.getLogger("keyla").level, logging.DEBUG)
        reload_config({})
        self.assertEqual(logging.getLogger("keyla").level, logging.NOTSET)


if __name__ == "__main__":
    unittest.main()
