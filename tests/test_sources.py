import pathlib
import sys
import unittest


ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from town_fakes import FakeRunner, batch_detail, batches, town_runner
from townwatch.errors import SourceError
from townwatch.models import Batch, Issue
from townwatch.sources import TownReader, recent_beads


class TownReaderTests(unittest.TestCase):
    def reader(self, runner=None):
        return TownReader("/tmp/test-town", runner or town_runner())

    def test_workspace_status_decodes_pools_and_summary(self):
        status = self.reader().load_workspace_status()
        self.assertEqual(status.name, "test-town")
        self.assertEqual([pool.name for pool in status.pools], ["perch", "sidekick"])
        self.assertEqual(status.summary.active_hooks, 3)
        self.assertEqual(status.summary.worker_count, 3)
        self.assertEqual(status.overseer.username, "testuser")
        perch = status.pool("perch")
        self.assertEqual(perch.workers, ["able", "baker"])
        self.assertEqual(len(perch.agents), 4)
        self.assertEqual(perch.hooks[0].agent, "perch/able")

    def test_null_and_empty_bodies_are_empty_results(self):
        runner = FakeRunner()
        runner.on("gt polecat list", "null")
        runner.on("gt convoy list", "")
        runner.on("bd list", "  \n")
        runner.on("gt mail inbox", "null")
        reader = self.reader(runner)
        self.assertEqual(reader.load_workers(), [])
        self.assertEqual(reader.load_batches(), [])
        self.assertEqual(reader.load_issues(), [])
        self.assertEqual(reader.load_mail(), [])

    def test_failed_command_names_source_and_stderr(self):
        runner = FakeRunner().fail("gt polecat list", stderr="tmux not running")
        with self.assertRaises(SourceError) as ctx:
            self.reader(runner).load_workers()
        message = str(ctx.exception)
        self.assertTrue(message.startswith("loading polecats: gt: exit status 1"))
        self.assertIn("tmux not running", message)

    def test_bad_json_is_source_error(self):
        runner = FakeRunner().on("gt convoy list --json", "{not json")
        with self.assertRaises(SourceError) as ctx:
            self.reader(runner).load_batches()
        self.assertIn("parsing gt output", str(ctx.exception))

    def test_batch_details_fall_back_per_batch(self):
        runner = FakeRunner()
        runner.on("gt convoy list --json", batches())
        runner.on("gt convoy status convoy-001 --json", batch_detail("convoy-001"))
        runner.fail("gt convoy status convoy-002 --json")
        detailed = self.reader(runner).load_batches_with_details()
        self.assertEqual([batch.id for batch in detailed], ["convoy-001", "convoy-002"])
        self.assertEqual(detailed[0].total, 2)
        self.assertEqual(detailed[0].progress(), 50)
        self.assertEqual(detailed[1].title, "Bug: Fix login")
        self.assertEqual(detailed[1].total, 0)

    def test_batch_statuses_return_failures_alongside_results(self):
        runner = FakeRunner()
        runner.on("gt convoy status convoy-001 --json", batch_detail("convoy-001"))
        runner.fail("gt convoy status convoy-002 --json")
        reader = self.reader(runner)
        statuses, failures = reader.load_all_batch_statuses([Batch.from_dict(item) for item in batches()])
        self.assertEqual(list(statuses), ["convoy-001"])
        self.assertEqual(len(failures), 1)
        self.assertIn("convoy-002", str(failures[0]))

    def test_active_issues_merge_and_dedupe(self):
        runner = FakeRunner()
        runner.on("bd list --json --status hooked --limit 0", [{"id": "gt-1", "status": "hooked"}, {"id": "gt-2"}])
        runner.on("bd list --json --status in_progress --limit 0", [{"id": "gt-2"}, {"id": "gt-3"}])
        active = self.reader(runner).load_active_issues()
        self.assertEqual([issue.id for issue in active], ["gt-1", "gt-2", "gt-3"])
        self.assertEqual(active[0].status, "hooked")

    def test_active_issues_fail_when_either_query_fails(self):
        runner = FakeRunner()
        runner.on("bd list --json --status hooked --limit 0", [{"id": "gt-1"}])
        runner.fail("bd list --json --status in_progress --limit 0")
        with self.assertRaises(SourceError):
            self.reader(runner).load_active_issues()

    def test_issue_dependencies_split_by_type(self):
        rows = [
            {"id": "gt-9", "title": "Schema", "status": "open", "dependency_type": "blocks"},
            {"id": "gt-8", "title": "Client", "status": "open", "dependency_type": "blocked_by"},
            {"id": "gt-7", "dependency_type": "related"},
        ]
        runner = FakeRunner().on("bd dep list gt-1", rows)
        deps = self.reader(runner).load_issue_dependencies("gt-1")
        self.assertEqual([dep.id for dep in deps.blocked_by], ["gt-9"])
        self.assertEqual([dep.id for dep in deps.blocking], ["gt-8"])
        self.assertEqual(deps.load_error, "")

    def test_issue_dependencies_record_failure(self):
        runner = FakeRunner().fail("bd dep list gt-1", stderr="unknown command")
        deps = self.reader(runner).load_issue_dependencies("gt-1")
        self.assertEqual(deps.blocked_by, [])
        self.assertTrue(deps.load_error.startswith("listing dependencies"))

    def test_comments_and_mutations(self):
        runner = FakeRunner()
        runner.on("bd comments gt-1 --json", [{"id": "c1", "author": "testuser", "text": "looks good"}])
        runner.on("bd comments add", "")
        runner.on("bd dep add", "")
        runner.on("bd dep remove", "")
        reader = self.reader(runner)
        comments = reader.load_issue_comments("gt-1")
        self.assertEqual(comments.comments[0].text, "looks good")
        reader.add_comment("gt-1", "ship it")
        reader.add_dependency("gt-2", "gt-1")
        reader.remove_dependency("gt-2", "gt-1")
        self.assertIn(["bd", "comments", "add", "gt-1", "ship it"], runner.calls)
        self.assertIn(["bd", "dep", "add", "gt-2", "gt-1"], runner.calls)
        self.assertIn(["bd", "dep", "remove", "gt-2", "gt-1"], runner.calls)

    def test_comment_failure_is_recorded(self):
        runner = FakeRunner().fail("bd comments gt-1")
        comments = self.reader(runner).load_issue_comments("gt-1")
        self.assertEqual(comments.comments, [])
        self.assertIn("loading comments", comments.load_error)

    def test_audit_timeline_arguments(self):
        runner = FakeRunner().on("gt audit", [{"actor": "perch/polecats/able", "summary": "claimed gt-1"}])
        reader = self.reader(runner)
        entries = reader.load_audit_timeline("perch/polecats/able", 20)
        reader.load_audit_timeline()
        self.assertEqual(entries[0].summary, "claimed gt-1")
        self.assertEqual(
            runner.calls[0], ["gt", "audit", "--json", "--actor=perch/polecats/able", "--limit", "20"]
        )
        self.assertEqual(runner.calls[1], ["gt", "audit", "--json"])

    def test_recent_commits_tolerate_git_failure(self):
        runner = FakeRunner().fail("git log", stderr="not a git repository")
        self.assertEqual(self.reader(runner).load_recent_commits(), [])

    def test_identity_combines_overseer_commits_and_beads(self):
        reader = self.reader()
        status = reader.load_workspace_status()
        identity = reader.load_identity(status.overseer, reader.load_issues())
        self.assertEqual(identity.email, "test@example.com")
        self.assertEqual(identity.last_commits[0].hash, "abc1234")
        self.assertEqual(identity.last_commits[0].subject, "Initial commit")
        self.assertEqual([bead.id for bead in identity.last_beads], ["gt-001", "gt-002", "gt-003"])

    def test_recent_beads_orders_by_update_and_keeps_ties(self):
        items = [
            Issue.from_dict({"id": "a", "updated_at": "2026-01-01T00:00:00Z"}),
            Issue.from_dict({"id": "b", "updated_at": "2026-01-03T00:00:00Z"}),
            Issue.from_dict({"id": "c", "updated_at": "2026-01-02T00:00:00Z"}),
            Issue.from_dict({"id": "d", "updated_at": "2026-01-02T00:00:00Z"}),
        ]
        self.assertEqual([bead.id for bead in recent_beads(items, 3)], ["b", "c", "d"])

    def test_non_object_items_are_source_errors(self):
        runner = FakeRunner().on("gt polecat list --all --json", '[1, "x", true]')
        with self.assertRaises(SourceError) as ctx:
            self.reader(runner).load_workers()
        self.assertIn("parsing gt output: item[0]: expected object, got int", str(ctx.exception))

    def test_nested_shape_mismatch_is_source_error(self):
        runner = FakeRunner().on("gt status", '{"name": "t", "rigs": [{"name": "perch", "hooks": "none"}]}')
        with self.assertRaises(SourceError) as ctx:
            self.reader(runner).load_workspace_status()
        self.assertIn("hooks: expected list, got str", str(ctx.exception))

    def test_dependency_rows_must_be_objects(self):
        runner = FakeRunner().on("bd dep list gt-001", '[{"id": "gt-002", "dependency_type": "blocks"}, 7]')
        deps = self.reader(runner).load_issue_dependencies("gt-001")
        self.assertTrue(deps.load_error.startswith("parsing dependencies:"))
        self.assertEqual(deps.blocked_by, [])


if __name__ == "__main__":
    unittest.main()
