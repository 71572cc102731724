"""Tests for the Rich result views."""

from io import StringIO
from pathlib import Path

from rich.console import Console

from specks.doctor import PASS, WARN, DoctorReport, HealthCheck
from specks.steps import ConsistencyState, PublishResult, StepCommitResult
from specks.sync import SyncResult
from specks.views import (
	render_cleanup,
	render_create,
	render_doctor,
	render_publish,
	render_step_result,
	render_sync,
	render_worktrees,
)
from specks.worktree import CleanupResult, CreateResult, DiscoveredWorktree

WORKTREE = DiscoveredWorktree(
	path=Path("/repo/.specks-worktrees/specks__auth-20260101-000000"),
	branch="specks/auth-20260101-000000",
	speck_slug="auth",
	base_branch="main",
)


def _console() -> Console:
	return Console(file=StringIO(), width=160)


def _text(console: Console) -> str:
	return console.file.getvalue()


# -- worktrees --

def test_worktrees_empty():
	console = _console()
	render_worktrees([], console)
	assert "No specks worktrees" in _text(console)


def test_worktrees_table():
	console = _console()
	render_worktrees([WORKTREE], console)
	out = _text(console)
	assert "specks/auth-20260101-000000" in out
	assert "auth" in out


def test_create_reused():
	console = _console()
	render_create(CreateResult(worktree=WORKTREE, reused=True), console)
	assert "Reusing worktree: auth" in _text(console)


def test_cleanup_dry_run_and_skipped():
	console = _console()
	render_cleanup(CleanupResult(
		removed=[WORKTREE], skipped=[("specks/x-20260101-000000", "contains [modified] files")], dry_run=True,
	), console)
	out = _text(console)
	assert "Would remove: specks/auth-20260101-000000" in out
	assert "contains [modified] files" in out


# -- beads / steps --

def test_sync_tree():
	console = _console()
	render_sync(SyncResult(root_id="bd-1", mapping={"step-0": "bd-2"}, issues_created=2), console)
	out = _text(console)
	assert "#step-0 -> bd-2" in out
	assert "2 created" in out


def test_needs_reconcile_shows_retry_command():
	console = _console()
	render_step_result(StepCommitResult(
		state=ConsistencyState.NEEDS_RECONCILE, step="#step-0", tracker_id="bd-2",
		commit_hash="abc123", error="database is locked",
	), console)
	out = _text(console)
	assert "needs_reconcile" in out
	assert "specks step-reconcile --commit abc123 --bead bd-2" in out


def test_publish_not_created():
	console = _console()
	render_publish(PublishResult(pushed=True, pr_created=False, branch="b", error="boom"), console)
	out = _text(console)
	assert "not created" in out
	assert "boom" in out


def test_doctor_summary():
	console = _console()
	render_doctor(DoctorReport(checks=[
		HealthCheck("initialized", PASS, "Specks is initialized"),
		HealthCheck("worktrees", WARN, "1 worktree problem(s) found", details=["/x: missing"]),
	]), console)
	out = _text(console)
	assert "[ok] initialized" in out
	assert "[!!] worktrees" in out
	assert "/x: missing" in out
	assert "1 passed, 1 warning(s)" in out
