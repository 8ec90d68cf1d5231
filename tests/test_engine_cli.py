import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import typer
from typer.testing import CliRunner

from fakes import FakeClusterClient, deployment
from src.cluster.client import ClusterRegistry
from src.common.config import EngineConfig
from src.engine import cli as engine_cli
from src.engine.engine import PatchEngine

SCAN = {
    "cluster_id": "default",
    "scan_id": "scan-7",
    "scan_date": "2024-05-01T10:00:00Z",
    "scan_state": "success",
    "results": [
        {
            "cluster_id": "default",
            "namespace": "shop",
            "name": "web",
            "kind": "Deployment",
            "container": "app",
            "priority": "HIGH",
            "current_cpu_request": 1000,
            "recommended_cpu_request": 600,
        },
        {
            "cluster_id": "default",
            "namespace": "shop",
            "name": "web",
            "kind": "Deployment",
            "container": "app",
            "priority": "LOW",
            "current_memory_request": 1000,
            "recommended_memory_request": 1500,
        },
    ],
}


class EngineCliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self.tmpdir.name)
        self.cluster = FakeClusterClient([deployment("web")])
        self.engine = PatchEngine(EngineConfig(), ClusterRegistry({"default": self.cluster}), sleep=lambda _: None)
        patcher = mock.patch.object(engine_cli, "_build_engine", return_value=self.engine)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.scan_path = self.base / "scan.json"
        self.scan_path.write_text(json.dumps(SCAN), encoding="utf-8")
        self.patches_path = self.base / "patches.json"
        self.applied_path = self.base / "applied.json"
        self.rolled_back_path = self.base / "rolled_back.json"

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def _generate(self, cumulative: bool = False):
        engine_cli.generate(
            recommendations=self.scan_path,
            out=self.patches_path,
            strategy="conservative",
            cumulative=cumulative,
            config=None,
        )
        return json.loads(self.patches_path.read_text(encoding="utf-8"))

    def _apply(self, dry_run: bool = False) -> dict:
        engine_cli.apply(
            patches=self.patches_path,
            out=self.applied_path,
            dry_run=dry_run,
            backup=None,
            monitor=False,
            timeout=None,
            config=None,
        )
        return json.loads(self.applied_path.read_text(encoding="utf-8"))

    def test_generate_from_krr_scan(self) -> None:
        patches = self._generate()
        self.assertEqual(len(patches), 1)
        self.assertEqual(patches[0]["recommendation_ids"], ["scan-7:0"])
        self.assertEqual(patches[0]["resource_name"], "web")
        self.assertIn("600m", patches[0]["patch_data"]["yaml"])

    def test_generate_cumulative(self) -> None:
        batch = self._generate(cumulative=True)
        self.assertTrue(batch["batch_id"])
        self.assertEqual(batch["strategy"], "conservative")
        self.assertEqual(batch["total_recommendations"], 2)
        self.assertEqual(batch["skipped"], [])
        self.assertEqual(len(batch["patches"]), 1)
        self.assertTrue(batch["patches"][0]["is_cumulative"])
        self.assertEqual(batch["patches"][0]["batch_id"], batch["batch_id"])

    def test_generate_cumulative_records_skipped_resources(self) -> None:
        scan = json.loads(json.dumps(SCAN))
        scan["results"].append(
            {
                "cluster_id": "default",
                "namespace": "shop",
                "name": "api",
                "kind": "Deployment",
                "container": "app",
                "priority": "LOW",
                "current_cpu_request": 1000,
                "recommended_cpu_request": 990,
            }
        )
        self.scan_path.write_text(json.dumps(scan), encoding="utf-8")
        batch = self._generate(cumulative=True)
        self.assertEqual(batch["skipped"], ["default/shop/api/Deployment"])
        self.assertEqual(len(batch["patches"]), 1)

    def test_apply_accepts_cumulative_batch_file(self) -> None:
        self._generate(cumulative=True)
        applied = self._apply()
        self.assertTrue(applied["batch_success"])
        self.assertEqual(applied["total"], 1)
        self.assertFalse(applied["cancelled"])
        containers = self.cluster.get("Deployment", "shop", "web")["spec"]["template"]["spec"]["containers"]
        self.assertEqual(containers[0]["resources"]["requests"]["cpu"], "600m")

    def test_apply_rejects_object_without_patches(self) -> None:
        self.patches_path.write_text(json.dumps({"batch_id": "b"}), encoding="utf-8")
        with self.assertRaises(typer.BadParameter):
            self._apply()

    def test_apply_then_rollback(self) -> None:
        self._generate()
        applied = self._apply()
        self.assertTrue(applied["batch_success"])
        self.assertEqual(applied["results"][0]["patch_id"], "scan-7:0")
        self.assertIn("backup", applied["results"][0])

        engine_cli.rollback(backups=self.applied_path, out=self.rolled_back_path, dry_run=False, config=None)
        rolled_back = json.loads(self.rolled_back_path.read_text(encoding="utf-8"))
        self.assertTrue(rolled_back["batch_success"])
        self.assertEqual(rolled_back["total"], 1)
        containers = self.cluster.get("Deployment", "shop", "web")["spec"]["template"]["spec"]["containers"]
        self.assertEqual(containers[0]["resources"]["requests"]["cpu"], "1")

    def test_dry_run_apply_has_no_backups(self) -> None:
        self._generate()
        applied = self._apply(dry_run=True)
        self.assertTrue(applied["dry_run"])
        self.assertNotIn("backup", applied["results"][0])

    def test_apply_aborts_when_cluster_unreachable(self) -> None:
        self._generate()
        self.cluster.connected = False
        with self.assertRaises(typer.Exit):
            self._apply()
        self.assertFalse(self.applied_path.exists())

    def test_missing_input_file(self) -> None:
        with self.assertRaises(typer.BadParameter):
            engine_cli.generate(
                recommendations=self.base / "missing.json",
                out=self.patches_path,
                strategy=None,
                cumulative=False,
                config=None,
            )

    def test_strategies_command(self) -> None:
        result = CliRunner().invoke(engine_cli.app, ["strategies"])
        self.assertEqual(result.exit_code, 0, result.output)
        names = [entry["name"] for entry in json.loads(result.stdout)]
        self.assertEqual(names, ["conservative", "balanced", "aggressive", "custom"])


if __name__ == "__main__":
    unittest.main()
