import importlib.util
import json
import logging
import sys
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import mock

import git

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
for path in (SRC_DIR, ROOT_DIR / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from configarchive.archive.committer import CommitResult
from configarchive.common.pipeline import run_archive
from configarchive.common.run_summary import RunSummaryBuilder
from configarchive.core.config import ArchiveSettings
from configarchive.core.models import DeviceSpec, FilterSpec
from helpers import ECHO_ARGS, write_script

LOGGER = logging.getLogger("configarchive.test")


def _load_cli():
    spec = importlib.util.spec_from_file_location("configarchive_run", ROOT_DIR / "scripts" / "run.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class PipelineTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.scripts_dir = self.root / "scripts"
        self.state_dir = self.root / "configs"
        self.scripts_dir.mkdir()
        self.state_dir.mkdir()
        self.repo = git.Repo.init(self.state_dir)
        with self.repo.config_writer() as writer:
            writer.set_value("user", "name", "Archive Test")
            writer.set_value("user", "email", "archive@example.net")
            writer.set_value("commit", "gpgsign", "false")
        write_script(self.scripts_dir, "ios", ECHO_ARGS)
        write_script(self.scripts_dir, "broken", '#!/bin/sh\necho "timeout" >&2\nexit 2\n')

    def tearDown(self) -> None:
        self.repo.close()
        self._tmp.cleanup()

    def settings(self, **overrides) -> ArchiveSettings:
        values = {"scripts_dir": self.scripts_dir, "devices": self.root / "devices.yml", "state_dir": self.state_dir,
                  "push": False}
        values.update(overrides)
        return ArchiveSettings(**values)


class RunArchiveTests(PipelineTestCase):
    def test_all_devices_committed(self) -> None:
        devices = [
            DeviceSpec(host="r1", model="ios", user="u", password_file="p"),
            DeviceSpec(host="r2", model="ios", user="u", password_file="p", filter_spec=FilterSpec(trim_head=2)),
        ]

        summary = run_archive(devices, self.settings(), LOGGER)

        self.assertFalse(summary.failed)
        self.assertEqual(2, summary.devices_success)
        self.assertEqual(["r1", "r2"], sorted(summary.commit.committed))
        self.assertEqual("r2", (self.state_dir / "r2").read_text(encoding="utf-8"))

    def test_failed_device_still_commits_the_others(self) -> None:
        devices = [
            DeviceSpec(host="r1", model="ios", user="u", password_file="p"),
            DeviceSpec(host="r2", model="broken", user="u", password_file="p"),
        ]

        summary = run_archive(devices, self.settings(), LOGGER)

        self.assertTrue(summary.failed)
        self.assertEqual(1, summary.devices_failed)
        self.assertEqual(["r1"], summary.commit.committed)
        self.assertIsNone(summary.commit_error)

    def test_commit_failure_marks_run_failed(self) -> None:
        devices = [DeviceSpec(host="r1", model="ios", user="u", password_file="p")]

        with self.assertLogs(LOGGER, level="ERROR") as captured:
            summary = run_archive(devices, self.settings(state_dir=self.root / "absent"), LOGGER)

        self.assertTrue(summary.failed)
        self.assertEqual(1, summary.devices_failed)
        self.assertIn("archive directory does not exist", summary.commit_error)
        self.assertTrue(any("commit phase failed" in line for line in captured.output))

    def test_summary_is_saved_as_json(self) -> None:
        devices = [DeviceSpec(host="r1", model="ios", user="u", password_file="p")]
        summary = run_archive(devices, self.settings(), LOGGER)

        target = summary.save(self.root / "summary", LOGGER)

        data = json.loads(target.read_text(encoding="utf-8"))
        self.assertEqual(1, data["totals"]["devices_success"])
        self.assertEqual(1, data["totals"]["files_committed"])
        self.assertEqual("r1", data["devices"][0]["host"])


class RunSummaryBuilderTests(unittest.TestCase):
    def test_missing_commit_phase_counts_as_failure(self) -> None:
        summary = RunSummaryBuilder(run_id="r", timestamp="t", push_enabled=True)

        self.assertTrue(summary.failed)
        self.assertEqual("commit phase not run", summary.build()["commit"]["error"])

    def test_commit_result_is_reported_as_is(self) -> None:
        summary = RunSummaryBuilder(run_id="r", timestamp="t", push_enabled=True)
        result = CommitResult(committed=["sw2", "sw1"], pushed=True)

        summary.set_commit(result)

        self.assertFalse(summary.failed)
        self.assertIs(result, summary.commit)
        data = summary.build()
        self.assertEqual({"committed": ["sw2", "sw1"], "pushed": True, "error": None}, data["commit"])
        self.assertEqual(2, data["totals"]["files_committed"])
        self.assertTrue(data["totals"]["pushed"])


class CliTests(PipelineTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.cli = _load_cli()
        patcher = mock.patch.object(self.cli, "setup_logging", return_value=LOGGER)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.devices_file = self.root / "devices.yml"

    def _main(self, *extra: str) -> int:
        return self.cli.main(
            [
                "--scripts-dir",
                str(self.scripts_dir),
                "--devices",
                str(self.devices_file),
                "--state-dir",
                str(self.state_dir),
                "--no-push",
                *extra,
            ]
        )

    def test_exit_status_zero_when_everything_succeeds(self) -> None:
        self.devices_file.write_text("- {host: r1, model: ios, user: u, password_file: p}\n", encoding="utf-8")

        self.assertEqual(0, self._main())
        self.assertEqual(["Update r1"], [c.message.strip() for c in self.repo.iter_commits()])

    def test_exit_status_one_when_a_device_fails(self) -> None:
        self.devices_file.write_text(
            "- {host: r1, model: ios, user: u, password_file: p}\n"
            "- {host: r2, model: broken, user: u, password_file: p}\n",
            encoding="utf-8",
        )

        self.assertEqual(1, self._main())
        self.assertTrue((self.state_dir / "r1").exists())

    def test_invalid_device_list_exits_with_failure(self) -> None:
        self.devices_file.write_text("- {host: r1, model: ios, user: u, password_file: p, bogus: 1}\n", encoding="utf-8")

        self.assertEqual(1, self._main())

    def test_dry_run_does_not_execute_scripts(self) -> None:
        self.devices_file.write_text("- {host: r1, model: ios, user: u, password_file: p}\n", encoding="utf-8")

        exit_code = self.cli.main(
            ["backup", "--dry-run", "--devices", str(self.devices_file), "--state-dir", str(self.state_dir)]
        )

        self.assertEqual(0, exit_code)
        self.assertFalse((self.state_dir / "r1").exists())

    def test_summary_dir_option_writes_json(self) -> None:
        self.devices_file.write_text("- {host: r1, model: ios, user: u, password_file: p}\n", encoding="utf-8")

        self.assertEqual(0, self._main("--summary-dir", str(self.root / "summary")))
        self.assertEqual(1, len(list((self.root / "summary").glob("run_*.json"))))


if __name__ == "__main__":
    unittest.main()
