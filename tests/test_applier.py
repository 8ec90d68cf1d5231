import unittest

from fakes import FakeClusterClient, deployment, recommendation
from src.applier.applier import ApplyItem, PatchApplier
from src.cluster.client import ClusterRegistry
from src.common.errors import ClusterCommunicationFault
from src.common.models import ResourceCoordinate
from src.patcher.builder import PatchBuilder


def _requests(resource):
    return resource["spec"]["template"]["spec"]["containers"][0]["resources"]["requests"]


class PatchApplierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.cluster = FakeClusterClient([deployment("a"), deployment("b"), deployment("c")])
        self.sleeps = []
        self.applier = PatchApplier(ClusterRegistry({"default": self.cluster}), sleep=self.sleeps.append)
        builder = PatchBuilder()
        self.items = []
        for name in ("a", "b", "c"):
            rec = recommendation(name=name, rec_id=name, current_cpu_request=1000, recommended_cpu_request=600)
            document = builder.build_single(rec, "conservative")
            coordinate = ResourceCoordinate("default", "shop", name, "Deployment")
            self.items.append(ApplyItem(coordinate=coordinate, document=document, item_id=name))

    def test_single_apply_updates_resource(self) -> None:
        item = self.items[0]
        result = self.applier.apply(item.coordinate, item.document, item_id="a")
        self.assertTrue(result.success)
        self.assertEqual(result.to_dict()["patch_id"], "a")
        self.assertEqual(_requests(self.cluster.get("Deployment", "shop", "a"))["cpu"], "600m")
        self.assertEqual(_requests(self.cluster.get("Deployment", "shop", "a"))["memory"], "512Mi")

    def test_batch_failure_is_partitioned(self) -> None:
        self.cluster.fail("patch", "b", ClusterCommunicationFault("apiserver unavailable"))
        batch = self.applier.apply_batch(self.items)
        self.assertEqual(batch.total, 3)
        self.assertEqual(batch.successful, 2)
        self.assertEqual(batch.failed, 1)
        self.assertFalse(batch.batch_success)
        self.assertEqual([r.success for r in batch.results], [True, False, True])
        self.assertIn("apiserver unavailable", batch.results[1].error_message)
        self.assertEqual(self.sleeps, [2.0, 2.0])

    def test_dry_run_does_not_persist_or_pause(self) -> None:
        batch = self.applier.apply_batch(self.items, dry_run=True)
        self.assertTrue(batch.batch_success)
        self.assertTrue(batch.dry_run)
        self.assertEqual(self.sleeps, [])
        self.assertEqual([call for call in self.cluster.calls if call[0] == "patch"], [
            ("patch", "a", True),
            ("patch", "b", True),
            ("patch", "c", True),
        ])
        self.assertEqual(_requests(self.cluster.get("Deployment", "shop", "a"))["cpu"], "1")

    def test_missing_resource_is_reported(self) -> None:
        item = self.items[0]
        target = ResourceCoordinate("default", "shop", "ghost", "Deployment")
        result = self.applier.apply(target, item.document)
        self.assertFalse(result.success)
        self.assertIn("not found", result.error_message)

    def test_kind_mismatch_is_reported(self) -> None:
        item = self.items[0]
        target = ResourceCoordinate("default", "shop", "a", "StatefulSet")
        result = self.applier.apply(target, item.document)
        self.assertFalse(result.success)
        self.assertIn("does not match", result.error_message)
        self.assertEqual(self.cluster.calls, [])

    def test_unknown_cluster_is_reported(self) -> None:
        item = self.items[0]
        target = ResourceCoordinate("staging", "shop", "a", "Deployment")
        result = self.applier.apply(target, item.document)
        self.assertFalse(result.success)
        self.assertIn("staging", result.error_message)


if __name__ == "__main__":
    unittest.main()
