"""Tests for histcraft.cli module."""

from typer.testing import CliRunner

from histcraft import __version__
from histcraft.cli import app
from histcraft.git import Repository
from histcraft.git.lock import ref_lock
from histcraft.user_config import get_config_file

runner = CliRunner()


def write_plan(tmp_path, text, name="plan.yaml"):
    path = tmp_path / name
    path.write_text(text)
    return path


class TestMainCommand:
    """Tests for the top-level callback."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"histcraft {__version__}" in result.output

    def test_no_subcommand_shows_help(self):
        result = runner.invoke(app, [])

        assert result.exit_code == 0
        assert "craft" in result.output
        assert "init" in result.output


class TestCraftPreflight:
    """Tests for the checks made before a session starts."""

    def test_outside_repository(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(app, ["craft"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_dirty_tree(self, route_repo, monkeypatch):
        repo_dir, _ = route_repo
        (repo_dir / "app.py").write_text("app = 1\n")
        monkeypatch.chdir(repo_dir)

        result = runner.invoke(app, ["craft"])

        assert result.exit_code == 1
        assert "dirty working tree" in result.output

    def test_detached_head(self, route_repo, monkeypatch, git):
        repo_dir, (c1, c2, c3) = route_repo
        git(repo_dir, "checkout", "-q", "--detach", c3)
        monkeypatch.chdir(repo_dir)

        result = runner.invoke(app, ["craft"])

        assert result.exit_code == 1

    def test_locked_branch(self, route_repo, monkeypatch):
        repo_dir, _ = route_repo
        monkeypatch.chdir(repo_dir)
        repo = Repository(repo_dir)

        with ref_lock(repo, "refs/heads/main"):
            result = runner.invoke(app, ["craft"])

        assert result.exit_code == 1
        assert "locked" in result.output

    def test_interactive_needs_terminal(self, route_repo, monkeypatch):
        repo_dir, _ = route_repo
        monkeypatch.chdir(repo_dir)

        result = runner.invoke(app, ["craft"])

        assert result.exit_code == 1
        assert "--from-plan" in result.output

    def test_count_must_be_positive(self, route_repo, monkeypatch):
        repo_dir, _ = route_repo
        monkeypatch.chdir(repo_dir)

        result = runner.invoke(app, ["craft", "-n", "0"])

        assert result.exit_code == 2


class TestCraftFromPlan:
    """Tests for non-interactive sessions driven by a plan file."""

    def test_fixup(self, route_repo, monkeypatch, tmp_path, git):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        plan = write_plan(tmp_path, f"commits:\n  - commit: {c3[:7]}\n    action: fixup\n    target: {c2[:7]}\n")

        result = runner.invoke(app, ["craft", "--from-plan", str(plan), "--yes"])

        assert result.exit_code == 0
        assert "Rewrote main" in result.output
        assert git(repo_dir, "log", "--format=%s", "-3").splitlines() == ["add routes", "init", "Initial commit"]
        assert "hello world" in (repo_dir / "routes.py").read_text()

    def test_confirmation_declined(self, route_repo, monkeypatch, tmp_path, git):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        plan = write_plan(tmp_path, f"commits:\n  - commit: {c2}\n    action: drop\n")

        result = runner.invoke(app, ["craft", "--from-plan", str(plan)], input="n\n")

        assert result.exit_code == 0
        assert "No changes made" in result.output
        assert git(repo_dir, "rev-parse", "HEAD") == c3

    def test_confirmation_disabled_in_config(self, route_repo, monkeypatch, tmp_path, git):
        repo_dir, (c1, c2, c3) = route_repo
        config_file = get_config_file(repo_dir)
        config_file.parent.mkdir()
        config_file.write_text("craft:\n  confirm: false\n")
        git(repo_dir, "add", "-A")
        git(repo_dir, "commit", "-q", "-m", "add config")
        monkeypatch.chdir(repo_dir)
        plan = write_plan(tmp_path, f"commits:\n  - commit: {c3}\n    action: reword\n    message: Fix typo\n")

        result = runner.invoke(app, ["craft", "--from-plan", str(plan)])

        assert result.exit_code == 0
        assert git(repo_dir, "log", "--format=%s", "-2").splitlines() == ["add config", "Fix typo"]

    def test_dry_run(self, route_repo, monkeypatch, tmp_path, git):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        plan = write_plan(tmp_path, f"commits:\n  - commit: {c2}\n    action: drop\n")

        result = runner.invoke(app, ["craft", "--from-plan", str(plan), "--dry-run"])

        assert result.exit_code == 0
        assert "Plan for main" in result.output
        assert git(repo_dir, "rev-parse", "HEAD") == c3

    def test_json(self, route_repo, monkeypatch, tmp_path):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        plan = write_plan(tmp_path, f"commits:\n  - commit: {c2}\n    action: drop\n")

        result = runner.invoke(app, ["craft", "--from-plan", str(plan), "--dry-run", "--json"])

        assert result.exit_code == 0
        assert '"steps"' in result.output
        assert '"patch"' not in result.output

    def test_nothing_to_do(self, route_repo, monkeypatch, tmp_path, git):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        plan = write_plan(tmp_path, "commits: []\n")

        result = runner.invoke(app, ["craft", "--from-plan", str(plan), "--yes"])

        assert result.exit_code == 0
        assert "No changes to apply" in result.output

    def test_invalid_plan(self, route_repo, monkeypatch, tmp_path, git):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        plan = write_plan(tmp_path, f"commits:\n  - commit: {c2}\n    action: fixup\n    target: {c3}\n")

        result = runner.invoke(app, ["craft", "--from-plan", str(plan), "--yes"])

        assert result.exit_code == 1
        assert "problem" in result.output
        assert git(repo_dir, "rev-parse", "HEAD") == c3

    def test_unreadable_plan_file(self, route_repo, monkeypatch, tmp_path):
        repo_dir, _ = route_repo
        monkeypatch.chdir(repo_dir)

        result = runner.invoke(app, ["craft", "--from-plan", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 1
        assert "Cannot read plan file" in result.output

    def test_conflict_rolls_back(self, chain_repo, monkeypatch, tmp_path, git):
        repo_dir, (a, b, c) = chain_repo
        monkeypatch.chdir(repo_dir)
        plan = write_plan(tmp_path, f"commits:\n  - commit: {b}\n    action: drop\n")

        result = runner.invoke(app, ["craft", "--from-plan", str(plan), "--yes"])

        assert result.exit_code == 1
        assert "Conflict" in result.output
        assert git(repo_dir, "rev-parse", "HEAD") == c
        assert git(repo_dir, "symbolic-ref", "HEAD") == "refs/heads/main"
        assert git(repo_dir, "status", "--porcelain") == ""

    def test_edit_pause_is_skipped(self, route_repo, monkeypatch, tmp_path, git):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        plan = write_plan(
            tmp_path,
            f"commits:\n  - commit: {c2}\n    action: edit\n  - commit: {c3}\n    action: reword\n    message: Fix typo\n",
        )

        result = runner.invoke(app, ["craft", "--from-plan", str(plan), "--yes"])

        assert result.exit_code == 0
        assert git(repo_dir, "rev-parse", "HEAD^") == c2

    def test_last_widens_window(self, route_repo, monkeypatch, tmp_path, git):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        plan = write_plan(tmp_path, f"commits:\n  - commit: {c1}\n    action: reword\n    message: Init app\n")

        result = runner.invoke(app, ["craft", "-n", "1", "--last", "3", "--from-plan", str(plan), "--yes"])

        assert result.exit_code == 0
        assert git(repo_dir, "log", "--format=%s", "-3").splitlines() == ["fix typo", "add routes", "Init app"]


class TestCraftInteractive:
    """Tests for the summary printed after an interactive session."""

    def _session(self, mocker, *keys):
        mocker.patch("histcraft.cli.craft.sys").stdin.isatty.return_value = True

        def drive(controller):
            for key in keys:
                controller.handle_key(key)
            return controller.exit_code

        return mocker.patch("histcraft.cli.craft.run_session", side_effect=drive)

    def test_rewrite(self, route_repo, monkeypatch, mocker, git):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        self._session(mocker, "enter", "f", "enter", "p", "y")

        result = runner.invoke(app, ["craft"])

        assert result.exit_code == 0
        assert "Rewrote main" in result.output
        assert git(repo_dir, "rev-parse", "HEAD^") == c1

    def test_quit_with_pending_changes(self, route_repo, monkeypatch, mocker, git):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        self._session(mocker, "enter", "d", "q")

        result = runner.invoke(app, ["craft"])

        assert result.exit_code == 0
        assert "Plan discarded" in result.output
        assert git(repo_dir, "rev-parse", "HEAD") == c3

    def test_quit_untouched(self, route_repo, monkeypatch, mocker):
        repo_dir, _ = route_repo
        monkeypatch.chdir(repo_dir)
        self._session(mocker, "q")

        result = runner.invoke(app, ["craft"])

        assert result.exit_code == 0
        assert "No changes made." in result.output
        assert "Plan discarded" not in result.output

    def test_dry_run_prints_plan(self, route_repo, monkeypatch, mocker, git):
        repo_dir, (c1, c2, c3) = route_repo
        monkeypatch.chdir(repo_dir)
        self._session(mocker, "k", "enter", "d", "p", "y")

        result = runner.invoke(app, ["craft", "--dry-run"])

        assert result.exit_code == 0
        assert "1 new commit(s)" in result.output
        assert git(repo_dir, "rev-parse", "HEAD") == c3


class TestInitCommand:
    """Tests for histcraft init."""

    def test_writes_config(self, temp_repo, monkeypatch):
        monkeypatch.chdir(temp_repo)

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert "count: 20" in get_config_file(temp_repo).read_text()

    def test_keeps_existing_config(self, temp_repo, monkeypatch):
        monkeypatch.chdir(temp_repo)
        config_file = get_config_file(temp_repo)
        config_file.parent.mkdir()
        config_file.write_text("craft:\n  count: 5\n")

        result = runner.invoke(app, ["init"], input="n\n")

        assert result.exit_code == 0
        assert config_file.read_text() == "craft:\n  count: 5\n"

    def test_force_overwrites(self, temp_repo, monkeypatch):
        monkeypatch.chdir(temp_repo)
        config_file = get_config_file(temp_repo)
        config_file.parent.mkdir()
        config_file.write_text("craft:\n  count: 5\n")

        result = runner.invoke(app, ["init", "--force"])

        assert result.exit_code == 0
        assert "count: 20" in config_file.read_text()

    def test_outside_repository(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 1
