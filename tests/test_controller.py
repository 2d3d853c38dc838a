import tempfile
import unittest
from pathlib import Path

from s3_inventory.controller import InventoryController, NotConnectedError
from s3_inventory.cursor import StoreRequestFailed, StoreUnavailable
from s3_inventory.models import Page
from s3_inventory.profiles import ConnectionProfile, ProfileStorage
from s3_inventory.settings import InventorySettings

from fakes import BASE_TIME, FakeKeychain, FakeSink, FakeStore, access_denied, descriptor, scripted_pages

ROOT = "bui_invoice/projects/"


class FakeService:
    def __init__(self, store=None):
        self.store = store or FakeStore({})
        self.create_store_calls = []
        self.list_buckets_calls = []

    def create_store(self, profile, bucket_name=None):
        self.create_store_calls.append((profile.name, bucket_name))
        return self.store

    def list_buckets(self, profile):
        self.list_buckets_calls.append(profile.name)
        return ["buiservice-assets"]


def profile(bucket="buiservice-assets"):
    return ConnectionProfile(
        name="r2", endpoint_url="https://r2.example", access_key="a", secret_key="s", bucket=bucket
    )


def connected(responses, settings=None):
    service = FakeService(FakeStore(responses))
    controller = InventoryController(service=service, settings=settings or InventorySettings())
    controller.connect(profile())
    return controller, service.store


class InventoryControllerTests(unittest.TestCase):
    def test_requires_connection(self):
        controller = InventoryController(service=FakeService())

        self.assertFalse(controller.is_connected)
        with self.assertRaises(NotConnectedError):
            controller.count(ROOT)
        with self.assertRaises(NotConnectedError):
            controller.list_buckets()

    def test_connect_uses_profile_bucket_or_override(self):
        service = FakeService()
        controller = InventoryController(service=service)

        controller.connect(profile())
        controller.connect(profile(), bucket_name="other")

        self.assertTrue(controller.is_connected)
        self.assertEqual([("r2", "buiservice-assets"), ("r2", "other")], service.create_store_calls)
        self.assertEqual(["buiservice-assets"], controller.list_buckets())

    def test_connect_without_bucket_fails(self):
        controller = InventoryController(service=FakeService())

        with self.assertRaises(ValueError):
            controller.connect(profile(bucket=""))
        self.assertFalse(controller.is_connected)

    def test_list_level_merges_pages(self):
        pages = [
            Page(
                number=1,
                descriptors=(descriptor(ROOT), descriptor(f"{ROOT}index.csv")),
                common_prefixes=frozenset({f"{ROOT}P001/"}),
                continuation_token="token-1",
                is_truncated=True,
            ),
            Page(number=2, common_prefixes=frozenset({f"{ROOT}P002/"})),
        ]
        controller, store = connected({ROOT: pages})

        listing = controller.list_level(ROOT)

        self.assertEqual(frozenset({"P001", "P002"}), listing.subdirectories)
        self.assertEqual([f"{ROOT}index.csv"], [d.key for d in listing.files])
        self.assertEqual(["/", "/"], [call["delimiter"] for call in store.calls])
        self.assertEqual([1000, 1000], [call["max_keys"] for call in store.calls])

    def test_empty_prefix(self):
        controller, _ = connected({"nothing/": [Page(number=1)], "other/": [Page(number=1)]})

        listing = controller.list_level("nothing/")

        self.assertEqual(frozenset(), listing.subdirectories)
        self.assertEqual((), listing.files)
        self.assertEqual(0, controller.count("other/"))

    def test_recent_filters_sorts_and_limits(self):
        pages = [
            Page(
                number=1,
                descriptors=(
                    descriptor(f"{ROOT}P001/thirty.pdf", minutes_ago=30),
                    descriptor(f"{ROOT}P001/.placeholder", minutes_ago=1),
                ),
                continuation_token="token-1",
                is_truncated=True,
            ),
            Page(
                number=2,
                descriptors=(
                    descriptor(f"{ROOT}P002/ninety.pdf", minutes_ago=90),
                    descriptor(f"{ROOT}P002/ten.pdf", minutes_ago=10),
                    descriptor(f"{ROOT}P002/five.pdf", minutes_ago=5),
                ),
            ),
        ]
        controller, store = connected({ROOT: pages})

        recent = controller.recent(ROOT, window_ms=3_600_000, limit=2, now=BASE_TIME)

        self.assertEqual([f"{ROOT}P002/five.pdf", f"{ROOT}P002/ten.pdf"], [d.key for d in recent])
        self.assertEqual([None, None], [call["delimiter"] for call in store.calls])

    def test_recent_uses_settings_window(self):
        entries = (descriptor("a.pdf", minutes_ago=30), descriptor("b.pdf", minutes_ago=3))
        settings = InventorySettings(recent_window_ms=10 * 60 * 1000)
        controller, _ = connected({"": [Page(number=1, descriptors=entries)]}, settings)

        self.assertEqual(["b.pdf"], [d.key for d in controller.recent("", now=BASE_TIME)])

    def test_snapshot_writes_to_path(self):
        controller, _ = connected({ROOT: scripted_pages(ROOT, [2, 1])})
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "r2_files_list.txt"

            snapshot = controller.snapshot(ROOT, path)

            self.assertEqual(3, len(snapshot.names))
            self.assertEqual(
                "file-0000.pdf\nfile-0001.pdf\nfile-0002.pdf\n", path.read_text(encoding="utf-8")
            )

    def test_snapshot_failure_leaves_sink_untouched(self):
        controller, _ = connected({ROOT: [scripted_pages(ROOT, [2, 1])[0], access_denied()]})
        sink = FakeSink()

        with self.assertRaises(StoreRequestFailed):
            controller.snapshot(ROOT, sink)

        self.assertEqual([], sink.writes)

    def test_count(self):
        controller, _ = connected({ROOT: scripted_pages(ROOT, [50, 50, 12])})

        self.assertEqual(112, controller.count(ROOT))

    def test_count_subdirectories(self):
        controller, store = connected(
            {
                ROOT: [Page(number=1, common_prefixes=frozenset({f"{ROOT}P002/", f"{ROOT}P001/"}))],
                f"{ROOT}P001/": scripted_pages(f"{ROOT}P001/", [3]),
                f"{ROOT}P002/": scripted_pages(f"{ROOT}P002/", [2, 2]),
            }
        )

        counts = controller.count_subdirectories(ROOT)

        self.assertEqual([(f"{ROOT}P001/", 3), (f"{ROOT}P002/", 4)], [(c.prefix, c.count) for c in counts])

    def test_count_subdirectories_aborts_on_failure(self):
        controller, _ = connected(
            {
                ROOT: [Page(number=1, common_prefixes=frozenset({f"{ROOT}P001/", f"{ROOT}P002/"}))],
                f"{ROOT}P001/": [access_denied()],
                f"{ROOT}P002/": scripted_pages(f"{ROOT}P002/", [2]),
            }
        )

        with self.assertRaises(StoreUnavailable):
            controller.count_subdirectories(ROOT)

    def test_count_subdirectories_can_skip_failures(self):
        controller, _ = connected(
            {
                ROOT: [Page(number=1, common_prefixes=frozenset({f"{ROOT}P001/", f"{ROOT}P002/"}))],
                f"{ROOT}P001/": [access_denied()],
                f"{ROOT}P002/": scripted_pages(f"{ROOT}P002/", [2]),
            }
        )

        counts = controller.count_subdirectories(ROOT, skip_failed=True)

        self.assertIsNone(counts[0].count)
        self.assertIn("AccessDenied", counts[0].error)
        self.assertEqual(2, counts[1].count)

    def test_count_subdirectories_without_children(self):
        controller, _ = connected({ROOT: [Page(number=1)]})

        self.assertEqual([], controller.count_subdirectories(ROOT))

    def test_reconcile_snapshot(self):
        controller = InventoryController(service=FakeService())
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "r2_files_list.txt"
            path.write_text("a.pdf\nb.pdf\n", encoding="utf-8")

            report = controller.reconcile_snapshot(path, ["b.pdf", "c.pdf"])

        self.assertEqual(["c.pdf"], report.missing)
        self.assertEqual(["a.pdf"], report.extra)


class ProfileManagementTests(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.path = Path(tmp.name) / "connections.json"
        self.keychain = FakeKeychain()
        self.service = FakeService()

    def controller(self):
        storage = ProfileStorage(self.path, keychain=self.keychain)
        return InventoryController(service=self.service, storage=storage)

    def test_saved_profile_is_visible_to_a_new_controller(self):
        self.controller().save_profile(profile())

        profiles = self.controller().list_profiles()

        self.assertEqual(["r2"], [p.name for p in profiles])
        self.assertEqual("s", profiles[0].secret_key)
        self.assertEqual({"r2": "s"}, self.keychain.secrets)

    def test_save_replaces_profile_with_same_name(self):
        controller = self.controller()
        controller.save_profile(profile())

        controller.save_profile(profile(bucket="archive"))

        self.assertEqual(["archive"], [p.bucket for p in self.controller().list_profiles()])

    def test_delete_profile_removes_secret(self):
        controller = self.controller()
        controller.save_profile(profile())

        controller.delete_profile("r2")

        self.assertEqual([], self.controller().list_profiles())
        self.assertEqual(["r2"], self.keychain.delete_calls)
        with self.assertRaises(ValueError):
            controller.delete_profile("r2")

    def test_connect_with_profile(self):
        self.controller().save_profile(profile())
        controller = self.controller()

        controller.connect_with_profile("r2", bucket_name="other")

        self.assertTrue(controller.is_connected)
        self.assertEqual([("r2", "other")], self.service.create_store_calls)
        with self.assertRaises(ValueError):
            controller.connect_with_profile("missing")


if __name__ == "__main__":
    unittest.main()
