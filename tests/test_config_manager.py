"""Unit tests for configuration manager."""

import unittest
import os
import json
import shutil
import tempfile
from dataclasses import FrozenInstanceError
from unittest.mock import Mock
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from arrow_scoring.config.defaults import DEFAULT_CLASS_LABELS
from arrow_scoring.config_manager import ConfigManager, build_config, config_to_dict
from arrow_scoring.models.config import ObjectDetectionConfig
from arrow_scoring.services.error_handler import ConfigurationLoadFailure


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.test_dir, "test_config.json")
        self.config_manager = ConfigManager(self.config_path)

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def write_config(self, values):
        with open(self.config_path, 'w') as f:
            json.dump(values, f)

    def test_get_before_load_raises(self):
        self.assertFalse(self.config_manager.is_loaded)
        with self.assertRaises(ConfigurationLoadFailure):
            self.config_manager.get_config()

    def test_load_merges_over_defaults(self):
        self.write_config({"confidence_threshold": 0.4, "target_geometry": {"ring_count": 5}})

        config = self.config_manager.load_config()

        self.assertIs(self.config_manager.get_config(), config)
        self.assertEqual(config.confidence_threshold, 0.4)
        self.assertEqual(config.iou_threshold, 0.45)
        self.assertEqual(config.input_size, 640)
        self.assertEqual(config.target_geometry.ring_count, 5)
        self.assertEqual(config.target_geometry.source, "detected")
        self.assertEqual(config.class_labels, tuple(DEFAULT_CLASS_LABELS))

    def test_missing_file(self):
        with self.assertRaises(ConfigurationLoadFailure):
            self.config_manager.load_config()

    def test_bad_json(self):
        with open(self.config_path, 'w') as f:
            f.write("{not json")

        with self.assertRaises(ConfigurationLoadFailure):
            self.config_manager.load_config()

    def test_unknown_key(self):
        self.write_config({"confidence_treshold": 0.4})

        with self.assertRaises(ConfigurationLoadFailure) as ctx:
            self.config_manager.load_config()

        self.assertIn("confidence_treshold: unknown key", ctx.exception.errors)

    def test_unknown_nested_key(self):
        self.write_config({"output_schema": {"layuot": "channels_last"}})

        with self.assertRaises(ConfigurationLoadFailure):
            self.config_manager.load_config()

    def test_invalid_values(self):
        for values in [
            {"input_size": 0},
            {"confidence_threshold": 1.5},
            {"iou_threshold": -0.1},
            {"class_labels": []},
            {"preprocessor": "magick"},
            {"output_schema": {"version": 2}},
            {"target_geometry": {"source": "fixed"}},
            {"input_size": "large"},
        ]:
            with self.subTest(values=values):
                self.write_config(values)
                with self.assertRaises(ConfigurationLoadFailure):
                    self.config_manager.load_config()

    def test_failed_load_keeps_previous_config(self):
        self.write_config({})
        config = self.config_manager.load_config()

        self.write_config({"input_size": -1})
        with self.assertRaises(ConfigurationLoadFailure):
            self.config_manager.reload_config()

        self.assertIs(self.config_manager.get_config(), config)

    def test_config_is_immutable(self):
        self.write_config({})
        config = self.config_manager.load_config()

        with self.assertRaises(FrozenInstanceError):
            config.confidence_threshold = 0.9

    def test_save_and_load_round_trip(self):
        config = build_config({"iou_threshold": 0.6, "preprocessor": "pillow"})

        self.config_manager.save_config(config)
        loaded = self.config_manager.load_config()

        self.assertEqual(loaded, config)

    def test_save_rejects_invalid_config(self):
        with self.assertRaises(ConfigurationLoadFailure):
            self.config_manager.save_config(ObjectDetectionConfig())

    def test_reload_builds_new_object_and_notifies(self):
        self.write_config({})
        first = self.config_manager.load_config()
        callback = Mock()
        self.config_manager.register_change_callback(callback)

        self.write_config({"confidence_threshold": 0.6})
        second = self.config_manager.reload_config()

        self.assertIsNot(first, second)
        self.assertEqual(first.confidence_threshold, 0.25)
        self.assertEqual(second.confidence_threshold, 0.6)
        callback.assert_called_once_with(second)

    def test_unregister_callback(self):
        self.write_config({})
        self.config_manager.load_config()
        callback = Mock()
        self.config_manager.register_change_callback(callback)
        self.config_manager.unregister_change_callback(callback)

        self.config_manager.reload_config()

        callback.assert_not_called()

    def test_config_to_dict_is_json_serializable(self):
        values = config_to_dict(build_config({}))

        self.assertEqual(json.loads(json.dumps(values))["class_labels"], list(DEFAULT_CLASS_LABELS))


if __name__ == '__main__':
    unittest.main()
