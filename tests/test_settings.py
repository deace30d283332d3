import json
import pathlib
import sys
import tempfile
import unittest


ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from townwatch.errors import TownwatchError, ValidationError
from townwatch.settings import (
    MergeQueueConfig,
    PoolSettings,
    load_pool_settings,
    pool_config_path,
    registry_path,
    save_pool_settings,
)


REGISTRY = {
    "version": 1,
    "rigs": {
        "perch": {
            "git_url": "git@example.com:perch.git",
            "added_at": "2026-01-01T00:00:00Z",
            "beads": {"prefix": "pe"},
        },
        "sidekick": {"git_url": "git@example.com:sidekick.git", "beads": {"prefix": "sk"}},
    },
}


class ValidationTests(unittest.TestCase):
    def test_invalid_fields(self):
        cases = [
            (PoolSettings(name="", prefix="tr"), "name"),
            (PoolSettings(name="test-rig", prefix=""), "prefix"),
            (PoolSettings(name="test-rig", prefix="tr", max_workers=-1), "max_workers"),
            (
                PoolSettings(name="test-rig", prefix="tr", merge_queue=MergeQueueConfig(True, True, "")),
                "test_command",
            ),
        ]
        for settings, field in cases:
            with self.subTest(field=field):
                with self.assertRaises(ValidationError) as ctx:
                    settings.validate()
                self.assertEqual(ctx.exception.field, field)

    def test_valid_settings(self):
        PoolSettings(name="test-rig", prefix="tr", max_workers=0).validate()
        PoolSettings(name="test-rig", prefix="tr", merge_queue=MergeQueueConfig(True, False, "")).validate()

    def test_error_string(self):
        self.assertEqual(str(ValidationError("test_field", "test message")), "test_field: test message")


class SettingsFileTests(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.root = pathlib.Path(self._td.name)

    def tearDown(self):
        self._td.cleanup()

    def _write_registry(self):
        path = registry_path(self.root)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps(REGISTRY), encoding="utf-8")

    def test_defaults_without_files(self):
        settings = load_pool_settings(self.root, "perch")
        self.assertEqual(settings.name, "perch")
        self.assertEqual(settings.prefix, "")
        self.assertTrue(settings.merge_queue.enabled)
        self.assertTrue(settings.merge_queue.run_tests)
        self.assertEqual(settings.merge_queue.test_command, "go test ./...")

    def test_load_merges_registry_and_local_file(self):
        self._write_registry()
        local = pool_config_path(self.root, "perch")
        local.parent.mkdir(parents=True)
        local.write_text(
            json.dumps({"theme": "ocean", "max_workers": 4, "merge_queue": {"enabled": True, "test_command": "make"}}),
            encoding="utf-8",
        )
        settings = load_pool_settings(self.root, "perch")
        self.assertEqual(settings.prefix, "pe")
        self.assertEqual(settings.git_url, "git@example.com:perch.git")
        self.assertEqual(settings.theme, "ocean")
        self.assertEqual(settings.max_workers, 4)
        self.assertFalse(settings.merge_queue.run_tests)
        self.assertEqual(settings.merge_queue.test_command, "make")

    def test_save_preserves_unknown_fields(self):
        self._write_registry()
        settings = PoolSettings(
            name="perch",
            prefix="pc",
            theme="forest",
            max_workers=3,
            merge_queue=MergeQueueConfig(enabled=True, run_tests=True, test_command="pytest"),
        )
        save_pool_settings(self.root, settings)

        registry = json.loads(registry_path(self.root).read_text(encoding="utf-8"))
        self.assertEqual(registry["version"], 1)
        self.assertEqual(registry["rigs"]["perch"]["beads"]["prefix"], "pc")
        self.assertEqual(registry["rigs"]["perch"]["added_at"], "2026-01-01T00:00:00Z")
        self.assertEqual(registry["rigs"]["sidekick"]["beads"]["prefix"], "sk")

        local = json.loads(pool_config_path(self.root, "perch").read_text(encoding="utf-8"))
        self.assertEqual(local["theme"], "forest")
        self.assertEqual(local["merge_queue"]["test_command"], "pytest")

        reloaded = load_pool_settings(self.root, "perch")
        self.assertEqual(reloaded.prefix, "pc")
        self.assertEqual(reloaded.max_workers, 3)

    def test_save_keeps_unknown_local_keys(self):
        self._write_registry()
        local = pool_config_path(self.root, "perch")
        local.parent.mkdir(parents=True)
        local.write_text(json.dumps({"polecat_template": "default"}), encoding="utf-8")
        save_pool_settings(self.root, PoolSettings(name="perch", prefix="pe"))
        self.assertEqual(json.loads(local.read_text(encoding="utf-8"))["polecat_template"], "default")

    def test_save_validates_before_writing(self):
        with self.assertRaises(ValidationError):
            save_pool_settings(self.root, PoolSettings(name="perch", prefix=""))
        self.assertFalse(pool_config_path(self.root, "perch").exists())

    def test_save_requires_registry(self):
        with self.assertRaises(TownwatchError):
            save_pool_settings(self.root, PoolSettings(name="perch", prefix="pe"))

    def test_undecodable_local_file_reads_as_defaults(self):
        local = pool_config_path(self.root, "perch")
        local.parent.mkdir(parents=True)
        local.write_bytes(b'{"theme": "\xff"}')
        settings = load_pool_settings(self.root, "perch")
        self.assertEqual(settings.theme, "")
        self.assertTrue(settings.merge_queue.enabled)

    def test_save_rejects_unreadable_registry(self):
        path = registry_path(self.root)
        path.parent.mkdir(parents=True)
        for body in (b'{"rigs": "\xff"}', b"[1, 2]"):
            with self.subTest(body=body):
                path.write_bytes(body)
                with self.assertRaises(TownwatchError):
                    save_pool_settings(self.root, PoolSettings(name="perch", prefix="pe"))
        self.assertFalse(pool_config_path(self.root, "perch").exists())


if __name__ == "__main__":
    unittest.main()
