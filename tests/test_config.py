import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from src.common.config import ClusterOptions, EngineConfig

REPO_ROOT = Path(__file__).resolve().parents[1]


class EngineConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self.tmpdir.name)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_defaults(self) -> None:
        config = EngineConfig()
        self.assertEqual(config.batch_pause_seconds, 2.0)
        self.assertEqual(config.poll_interval_seconds, 5.0)
        self.assertEqual(config.readiness_timeout_seconds, 300.0)
        self.assertEqual(config.default_strategy, "conservative")
        self.assertEqual(config.cluster("anything"), ClusterOptions())

    def test_shipped_config_loads(self) -> None:
        config = EngineConfig.from_file(REPO_ROOT / "configs" / "engine.yaml")
        self.assertEqual(config.custom_rules["cpu"]["minReductionPercentage"], 15)
        self.assertFalse(config.cluster("default").in_cluster)

    def test_per_cluster_options_fall_back_to_default(self) -> None:
        path = self.base / "engine.yaml"
        path.write_text(
            "batch_pause_seconds: 0.5\n"
            "clusters:\n"
            "  default:\n"
            "    kubeconfig: /tmp/kubeconfig\n"
            "  prod:\n"
            "    context: prod-admin\n",
            encoding="utf-8",
        )
        config = EngineConfig.from_file(path)
        self.assertEqual(config.batch_pause_seconds, 0.5)
        self.assertEqual(config.cluster("prod").context, "prod-admin")
        self.assertEqual(config.cluster("staging").kubeconfig, "/tmp/kubeconfig")

    def test_unknown_keys_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            EngineConfig.from_mapping({"batch_pause": 1})

    def test_non_mapping_file_is_rejected(self) -> None:
        path = self.base / "engine.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with self.assertRaises(ValueError):
            EngineConfig.from_file(path)

    def test_environment_overrides(self) -> None:
        env = {
            "PATCH_ENGINE_BATCH_PAUSE_SECONDS": "0",
            "PATCH_ENGINE_READINESS_TIMEOUT_SECONDS": "60",
            "PATCH_ENGINE_STRATEGY": "balanced",
            "PATCH_ENGINE_LOG_LEVEL": "DEBUG",
            "KUBECONFIG": "/etc/kube/config",
        }
        with mock.patch.dict(os.environ, env):
            config = EngineConfig.from_env(self.base / "missing.yaml")
        self.assertEqual(config.batch_pause_seconds, 0.0)
        self.assertEqual(config.readiness_timeout_seconds, 60.0)
        self.assertEqual(config.default_strategy, "balanced")
        self.assertEqual(config.log_level, "DEBUG")
        self.assertEqual(config.cluster("default").kubeconfig, "/etc/kube/config")


if __name__ == "__main__":
    unittest.main()
