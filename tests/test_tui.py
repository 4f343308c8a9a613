"""Tests for histcraft.craft.tui."""

import click

from histcraft.craft import CraftController, CraftMode, Plan
from histcraft.craft.tui import edit_text, render, run_session, translate_key
from histcraft.git import Repository, load_history


def make_controller(repo_dir, count=3, **kwargs):
    repo = Repository(repo_dir)
    plan = Plan(load_history(repo, count=count))
    return CraftController(repo, plan, "refs/heads/main", plan.commits[-1].id, **kwargs)


def screen(controller):
    return "\n".join(click.unstyle(line) for line in render(controller))


def scripted(*keys):
    pending = list(keys)
    return lambda: pending.pop(0)


class TestTranslateKey:
    """Tests for translate_key function."""

    def test_named_keys(self):
        assert translate_key("\r") == "enter"
        assert translate_key("\x1b") == "esc"
        assert translate_key("\x1b[A") == "up"
        assert translate_key("\x7f") == "backspace"
        assert translate_key(" ") == "space"

    def test_plain_characters_pass_through(self):
        assert translate_key("j") == "j"
        assert translate_key("K") == "K"


class TestRender:
    """Tests for render function."""

    def test_commit_list(self, route_repo):
        repo_dir, (c1, c2, c3) = route_repo
        controller = make_controller(repo_dir)

        text = screen(controller)

        assert "main (3 commits)" in text
        assert f">  pick   {c3[:7]} fix typo" in text
        assert "q quit" in text

    def test_actions_and_marks(self, route_repo):
        repo_dir, (c1, c2, c3) = route_repo
        controller = make_controller(repo_dir, preselect=1)
        for key in ("enter", "f", "enter"):
            controller.handle_key(key)

        text = screen(controller)

        assert f"fixup  {c3[:7]} fix typo  -> {c2[:7]}" in text
        assert "*" in text.splitlines()[4]

    def test_violations_shown(self, route_repo):
        repo_dir, (c1, c2, c3) = route_repo
        controller = make_controller(repo_dir)
        for key in ("k", "k", "enter", "d", "j", "enter", "d", "j", "enter", "d", "p"):
            controller.handle_key(key)

        text = screen(controller)

        assert "problem" in text
        assert "!" in text

    def test_reword_buffer(self, route_repo):
        repo_dir, _ = route_repo
        controller = make_controller(repo_dir)
        controller.handle_key("enter")
        controller.handle_key("r")

        assert "fix typo_" in screen(controller)

    def test_split_view(self, split_repo):
        controller = make_controller(split_repo, count=2)
        for key in ("enter", "s", "1"):
            controller.handle_key(key)

        text = screen(controller)

        assert "[1] H1" in text
        assert "[-] H2" in text
        assert "app.py" in text

    def test_preview(self, route_repo):
        repo_dir, _ = route_repo
        controller = make_controller(repo_dir, dry_run=True)
        for key in ("k", "enter", "d", "p"):
            controller.handle_key(key)

        text = screen(controller)

        assert "Compiled plan" in text
        assert "dry run" in text


class TestEditText:
    """Tests for edit_text function."""

    def test_strips_comments(self, mocker):
        mocker.patch("click.edit", return_value="New subject\n# a comment\n\nBody\n")

        assert edit_text("Old subject") == "New subject\n\nBody"

    def test_unchanged_returns_none(self, mocker):
        mocker.patch("click.edit", return_value=None)

        assert edit_text("Old subject") is None


class TestRunSession:
    """Tests for run_session function."""

    def test_quit(self, route_repo, mocker):
        mocker.patch("click.clear")
        repo_dir, _ = route_repo
        controller = make_controller(repo_dir)

        code = run_session(controller, read_key=scripted("j", "q"))

        assert code == 0
        assert controller.mode == CraftMode.QUIT

    def test_execute_to_done(self, route_repo, mocker, git):
        mocker.patch("click.clear")
        repo_dir, (c1, c2, c3) = route_repo
        controller = make_controller(repo_dir)

        code = run_session(controller, read_key=scripted("enter", "f", "enter", "p", "y"))

        assert code == 0
        assert controller.mode == CraftMode.DONE
        assert git(repo_dir, "rev-list", "--count", "HEAD") == "3"

    def test_abort_exit_code(self, chain_repo, mocker, git):
        mocker.patch("click.clear")
        repo_dir, (a, b, c) = chain_repo

        controller = make_controller(repo_dir)
        code = run_session(controller, read_key=scripted("k", "enter", "d", "p", "y", "a"))

        assert code == 2
        assert git(repo_dir, "rev-parse", "HEAD") == c

    def test_interrupt_before_execution_quits(self, route_repo, mocker, git):
        mocker.patch("click.clear")
        repo_dir, (c1, c2, c3) = route_repo
        controller = make_controller(repo_dir)

        def read_key():
            raise KeyboardInterrupt

        code = run_session(controller, read_key=read_key)

        assert code == 0
        assert controller.mode == CraftMode.QUIT
        assert git(repo_dir, "rev-parse", "HEAD") == c3

    def test_end_of_input_quits(self, route_repo, mocker):
        mocker.patch("click.clear")
        repo_dir, _ = route_repo
        controller = make_controller(repo_dir)

        def read_key():
            raise EOFError

        assert run_session(controller, read_key=read_key) == 0
        assert controller.mode == CraftMode.QUIT

    def test_interrupt_during_edit_pause_rolls_back(self, route_repo, mocker, git):
        """Ctrl-C while stopped at an Edit leaves HEAD attached to the original tip."""
        mocker.patch("click.clear")
        repo_dir, (c1, c2, c3) = route_repo
        controller = make_controller(repo_dir)
        pending = ["k", "enter", "e", "p", "y"]

        def read_key():
            if not pending:
                raise KeyboardInterrupt
            return pending.pop(0)

        code = run_session(controller, read_key=read_key)

        assert code == 2
        assert controller.mode == CraftMode.ABORTED
        assert git(repo_dir, "symbolic-ref", "HEAD") == "refs/heads/main"
        assert git(repo_dir, "rev-parse", "HEAD") == c3
