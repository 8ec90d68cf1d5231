import unittest

from fakes import FakeClusterClient, deployment
from src.cluster.client import ClusterRegistry
from src.common.errors import CorruptBackupFault, ValidationFault
from src.common.models import ResourceCoordinate
from src.rollback.manager import RollbackItem, RollbackManager
from src.snapshot.snapshotter import Snapshotter

CPU_PATH = "/spec/template/spec/containers/0/resources/requests/cpu"


def _set_cpu(cluster, name, value):
    resource = cluster.get("Deployment", "shop", name)
    resource["spec"]["template"]["spec"]["containers"][0]["resources"]["requests"]["cpu"] = value


def _cpu(cluster, name):
    resource = cluster.get("Deployment", "shop", name)
    return resource["spec"]["template"]["spec"]["containers"][0]["resources"]["requests"]["cpu"]


class RollbackManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.cluster = FakeClusterClient([deployment("a"), deployment("b"), deployment("c")])
        self.sleeps = []
        self.manager = RollbackManager(ClusterRegistry({"default": self.cluster}), sleep=self.sleeps.append)
        snapshotter = Snapshotter(self.cluster)
        self.items = []
        for name in ("a", "b", "c"):
            coordinate = ResourceCoordinate("default", "shop", name, "Deployment")
            self.items.append(RollbackItem(backup=snapshotter.snapshot(coordinate), item_id=name))
            _set_cpu(self.cluster, name, "600m")

    def test_preview_lists_reverting_operations(self) -> None:
        item = self.items[0]
        ops = self.manager.preview(item.target, item.backup)
        self.assertIn({"op": "replace", "path": CPU_PATH, "value": "1"}, ops)

    def test_rollback_restores_backup(self) -> None:
        item = self.items[0]
        result = self.manager.rollback(item.target, item.backup, item_id="a")
        self.assertTrue(result.success)
        self.assertEqual(_cpu(self.cluster, "a"), "1")
        self.assertTrue(result.reverted)
        self.assertEqual(result.to_dict()["patch_id"], "a")

    def test_dry_run_rollback_leaves_resource(self) -> None:
        item = self.items[0]
        result = self.manager.rollback(item.target, item.backup, dry_run=True)
        self.assertTrue(result.success)
        self.assertEqual(_cpu(self.cluster, "a"), "600m")
        self.assertIn(("replace", "a", True), self.cluster.calls)

    def test_batch_runs_in_reverse_order(self) -> None:
        batch = self.manager.rollback_batch(self.items)
        self.assertTrue(batch.batch_success)
        self.assertEqual([r.item_id for r in batch.results], ["c", "b", "a"])
        replaced = [call[1] for call in self.cluster.calls if call[0] == "replace"]
        self.assertEqual(replaced, ["c", "b", "a"])
        self.assertEqual(self.sleeps, [2.0, 2.0])
        for name in ("a", "b", "c"):
            self.assertEqual(_cpu(self.cluster, name), "1")

    def test_corrupt_backup_never_reaches_cluster(self) -> None:
        item = self.items[0]
        item.backup.body["spec"]["replicas"] = 9
        self.cluster.calls.clear()
        with self.assertRaises(CorruptBackupFault):
            self.manager.rollback(item.target, item.backup)
        self.assertEqual(self.cluster.calls, [])

    def test_corrupt_backup_is_a_failed_batch_entry(self) -> None:
        self.items[1].backup.body["spec"]["replicas"] = 9
        batch = self.manager.rollback_batch(self.items)
        self.assertEqual(batch.failed, 1)
        failed = [r for r in batch.results if not r.success][0]
        self.assertEqual(failed.item_id, "b")
        self.assertIn("corrupt", failed.error_message)
        self.assertEqual(_cpu(self.cluster, "b"), "600m")

    def test_backup_for_other_resource_is_refused(self) -> None:
        item = self.items[0]
        other = ResourceCoordinate("default", "shop", "b", "Deployment")
        with self.assertRaises(ValidationFault):
            self.manager.rollback(other, item.backup)

    def test_deleted_resource_is_reported(self) -> None:
        del self.cluster.resources[("Deployment", "shop", "a")]
        item = self.items[0]
        result = self.manager.rollback(item.target, item.backup)
        self.assertFalse(result.success)
        self.assertIn("not found", result.error_message)


if __name__ == "__main__":
    unittest.main()
