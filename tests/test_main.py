"""Tests for the kanbansync CLI entry point."""

from pathlib import Path
from unittest.mock import patch

import pytest

from kanbansync.adapters import TrackerError
from kanbansync.config import DEFAULT_CONFIG_PATH, load_config
from kanbansync.main import main, parse_args, run
from kanbansync.store import TaskValidationError

ENV = {
    "PROJECTS_TOKEN": "pat",
    "GITHUB_REPOSITORY": "acme/tasks",
    "OWNER": "acme",
    "PROJECT_NUMBER": "1",
}


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("PROJECTS_TOKEN", "GITHUB_TOKEN", "GITHUB_REPOSITORY", "OWNER", "PROJECT_NUMBER", "SYNC_MODE"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def full_env(clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
    for key, value in ENV.items():
        monkeypatch.setenv(key, value)


class TestParseArgs:
    def test_defaults(self) -> None:
        args = parse_args([])
        assert args.subcommand == "push"
        assert args.config == DEFAULT_CONFIG_PATH
        assert args.check is False
        assert args.no_commit is False
        assert args.mode is None

    def test_pull_with_mode(self) -> None:
        args = parse_args(["pull", "--mode", "force", "-c", "other.yaml", "--no-commit"])
        assert args.subcommand == "pull"
        assert args.mode == "force"
        assert args.config == Path("other.yaml")
        assert args.no_commit is True

    def test_invalid_mode_exits(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["pull", "--mode", "sometimes"])


class TestMain:
    def test_missing_config_returns_1(self, clean_env: None, tmp_path: Path) -> None:
        assert main(["--config", str(tmp_path / "none.yaml")]) == 1

    def test_check_returns_0(self, full_env: None, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        assert main(["--check", "--config", str(tmp_path / "none.yaml")]) == 0
        assert "Config OK: acme/tasks acme#1" in capsys.readouterr().out

    def test_validation_error_returns_1(self, full_env: None, tmp_path: Path) -> None:
        with patch("kanbansync.main.run", side_effect=TaskValidationError(["a.md: bad"])):
            assert main(["--config", str(tmp_path / "none.yaml")]) == 1

    def test_tracker_error_returns_1(self, full_env: None, tmp_path: Path) -> None:
        with patch("kanbansync.main.run", side_effect=TrackerError("board gone")):
            assert main(["--config", str(tmp_path / "none.yaml")]) == 1

    def test_success_passes_options(self, full_env: None, tmp_path: Path) -> None:
        with patch("kanbansync.main.run") as run_mock:
            assert main(["pull", "--mode", "all", "--no-commit", "--config", str(tmp_path / "none.yaml")]) == 0
        _config, subcommand = run_mock.call_args[0]
        assert subcommand == "pull"
        assert run_mock.call_args[1] == {"mode": "all", "commit": False}


class TestRun:
    def _config(self, tmp_path: Path):
        return load_config(tmp_path / "none.yaml", env=ENV)

    def test_push_runs_reconciler_then_commits(self, tmp_path: Path) -> None:
        config = self._config(tmp_path)
        with (
            patch("kanbansync.main.Reconciler") as reconciler,
            patch("kanbansync.main.RemotePuller") as puller,
            patch("kanbansync.main.commit_and_push") as commit,
        ):
            run(config, "push")
        reconciler.return_value.run.assert_called_once_with()
        puller.assert_not_called()
        assert commit.call_args[0][:2] == (["Tasks"], "main")

    def test_pull_runs_puller_without_commit(self, tmp_path: Path) -> None:
        config = self._config(tmp_path)
        with (
            patch("kanbansync.main.Reconciler") as reconciler,
            patch("kanbansync.main.RemotePuller") as puller,
            patch("kanbansync.main.commit_and_push") as commit,
        ):
            run(config, "pull", mode="force", commit=False)
        puller.return_value.run.assert_called_once_with("force")
        reconciler.assert_not_called()
        commit.assert_not_called()
