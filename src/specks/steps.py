"""
Step Completion - commit a step's work, then close its bead.

git and beads cannot be updated atomically, so each step ends in one of
three states:

	failed           nothing was committed
	needs_reconcile  the commit landed but the bead is still open
	completed        commit and bead close both succeeded

A needs_reconcile result carries the commit hash and bead ID, which is all
reconcile_step needs to retry the close without committing again.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .beads import BeadsCli
from .config import SPECKS_DIR
from .errors import InvalidTransitionError, SpecksError, UsageError
from .git import GitCli
from .github import GhCli, parse_repo_from_remote, pr_url_from_output
from .implementation_log import ARCHIVE_DIR_NAME, LOG_FILE_NAME, log_path, prepend_entry, rotate_log

logger = logging.getLogger(__name__)

DEFAULT_CLOSE_REASON = "Step completed"


class ConsistencyState(str, Enum):
	"""Cross-system state of one step."""
	PENDING = "pending"
	IN_PROGRESS = "in_progress"
	COMPLETED = "completed"
	FAILED = "failed"
	NEEDS_RECONCILE = "needs_reconcile"


_TRANSITIONS = {
	ConsistencyState.PENDING: {ConsistencyState.IN_PROGRESS},
	ConsistencyState.IN_PROGRESS: {
		ConsistencyState.COMPLETED,
		ConsistencyState.FAILED,
		ConsistencyState.NEEDS_RECONCILE,
	},
	ConsistencyState.COMPLETED: set(),
	ConsistencyState.FAILED: set(),
	ConsistencyState.NEEDS_RECONCILE: set(),
}


class StepProgress:
	"""
	One-way state holder for a single commit/close attempt.

	NEEDS_RECONCILE may only be entered once a commit exists, and COMPLETED
	only once both the commit and the close succeeded.
	"""

	def __init__(self):
		self.state = ConsistencyState.PENDING
		self.committed = False
		self.closed = False

	def advance(self, new_state: ConsistencyState) -> None:
		if new_state not in _TRANSITIONS[self.state]:
			raise InvalidTransitionError(f"Cannot move from {self.state.value} to {new_state.value}")
		if new_state == ConsistencyState.NEEDS_RECONCILE and not self.committed:
			raise InvalidTransitionError("needs_reconcile requires a commit")
		if new_state == ConsistencyState.COMPLETED and not (self.committed and self.closed):
			raise InvalidTransitionError("completed requires both commit and close")
		self.state = new_state


@dataclass(frozen=True)
class StepCommitResult:
	state: ConsistencyState
	step: str
	tracker_id: str
	commit_hash: Optional[str] = None
	files_staged: list[str] = field(default_factory=list)
	log_rotated: bool = False
	error: Optional[str] = None

	@property
	def ok(self) -> bool:
		return self.state != ConsistencyState.FAILED

	def to_dict(self) -> dict:
		return {
			"state": self.state.value,
			"step": self.step,
			"tracker_id": self.tracker_id,
			"commit_hash": self.commit_hash,
			"files_staged": self.files_staged,
			"log_rotated": self.log_rotated,
			"error": self.error,
		}


@dataclass(frozen=True)
class PublishResult:
	pushed: bool
	pr_created: bool
	branch: Optional[str] = None
	repo: Optional[str] = None
	pr_url: Optional[str] = None
	error: Optional[str] = None

	def to_dict(self) -> dict:
		return {
			"pushed": self.pushed,
			"pr_created": self.pr_created,
			"branch": self.branch,
			"repo": self.repo,
			"pr_url": self.pr_url,
			"error": self.error,
		}


def _failed(progress: StepProgress, step: str, tracker_id: str, error: str, **kwargs) -> StepCommitResult:
	progress.advance(ConsistencyState.FAILED)
	logger.error(f"Step {step} failed: {error}")
	return StepCommitResult(state=progress.state, step=step, tracker_id=tracker_id, error=error, **kwargs)


async def commit_step(
	worktree: Path,
	step: str,
	files: list[str],
	message: str,
	tracker_id: str,
	close_reason: Optional[str] = None,
	speck: Optional[str] = None,
	summary: Optional[str] = None,
	git: Optional[GitCli] = None,
	beads: Optional[BeadsCli] = None,
) -> StepCommitResult:
	"""
	Stage and commit a step's files, then close its bead.

	Args:
		worktree: Worktree to commit in
		step: Step anchor, e.g. '#step-0'
		files: Paths relative to the worktree to stage
		message: Commit message
		tracker_id: Bead to close after the commit
		close_reason: Reason recorded on the bead
		speck: Speck path, recorded in the implementation log entry
		summary: When given, a log entry is prepended (rotating the log first if needed)
	"""
	git = git or GitCli()
	beads = beads or BeadsCli(worktree)
	worktree = Path(worktree)
	progress = StepProgress()
	progress.advance(ConsistencyState.IN_PROGRESS)

	if not worktree.is_dir():
		return _failed(progress, step, tracker_id, f"Worktree does not exist: {worktree}")
	missing = [f for f in files if not (worktree / f).exists()]
	if missing:
		return _failed(progress, step, tracker_id, f"Files not found in worktree: {', '.join(missing)}")
	if summary and not speck:
		return _failed(progress, step, tracker_id, "A log summary needs the speck path")

	to_stage = list(files)
	log_rotated = False
	archive: Optional[Path] = None
	previous_log = None
	error = None
	if summary and log_path(worktree).is_file():
		previous_log = log_path(worktree).read_text(encoding="utf-8")
	try:
		if summary:
			rotation = rotate_log(worktree)
			log_rotated = rotation.rotated
			archive = rotation.archive_path
			prepend_entry(worktree, step, speck, summary, bead=tracker_id)
			to_stage.append(f"{SPECKS_DIR}/{LOG_FILE_NAME}")
			if log_rotated:
				to_stage.append(f"{SPECKS_DIR}/{ARCHIVE_DIR_NAME}")
		await git.add(worktree, to_stage)
		result = await git.commit(worktree, message)
		if not result.ok:
			error = f"git commit failed: {result.stderr or result.stdout}"
	except (SpecksError, OSError) as e:
		error = str(e)
	if error is not None:
		await _undo_staging(git, worktree, to_stage, previous_log if summary else False, archive)
		return _failed(progress, step, tracker_id, error, files_staged=to_stage, log_rotated=log_rotated)

	progress.committed = True
	commit_hash = None
	note = None
	try:
		commit_hash = await git.head(worktree)
		logger.info(f"Committed {step} as {commit_hash[:12]}")
	except SpecksError as e:
		note = f"Commit landed but its hash could not be read: {e}"
		logger.warning(f"{step}: {note}")

	return await _close(
		progress, beads, worktree, step, tracker_id, close_reason, commit_hash, note,
		files_staged=to_stage, log_rotated=log_rotated,
	)


async def _undo_staging(
	git: GitCli,
	worktree: Path,
	staged: list[str],
	previous_log,
	archive: Optional[Path],
) -> None:
	"""
	Put the worktree back the way it was before a commit that did not land.

	previous_log is False when the log was not touched, None when it did not
	exist before, and otherwise its earlier content.
	"""
	if previous_log is not False:
		try:
			if previous_log is None:
				log_path(worktree).unlink(missing_ok=True)
			else:
				log_path(worktree).write_text(previous_log, encoding="utf-8")
			if archive is not None:
				archive.unlink(missing_ok=True)
		except OSError as e:
			logger.warning(f"Could not restore the implementation log in {worktree}: {e}")
	result = await git.unstage(worktree, staged)
	if not result.ok:
		logger.warning(f"Could not unstage {', '.join(staged)}: {result.stderr}")


async def _close(
	progress: StepProgress,
	beads: BeadsCli,
	worktree: Path,
	step: str,
	tracker_id: str,
	close_reason: Optional[str],
	commit_hash: Optional[str],
	note: Optional[str] = None,
	**kwargs,
) -> StepCommitResult:
	label = commit_hash[:12] if commit_hash else f"for {step}"
	try:
		await beads.close(tracker_id, close_reason or DEFAULT_CLOSE_REASON, cwd=worktree)
	except SpecksError as e:
		progress.advance(ConsistencyState.NEEDS_RECONCILE)
		logger.warning(f"Commit {label} landed but closing {tracker_id} failed: {e}")
		error = f"{note}; {e}" if note else str(e)
		return StepCommitResult(
			state=progress.state, step=step, tracker_id=tracker_id,
			commit_hash=commit_hash, error=error, **kwargs,
		)

	progress.closed = True
	progress.advance(ConsistencyState.COMPLETED)
	logger.info(f"Closed {tracker_id}")
	return StepCommitResult(
		state=progress.state, step=step, tracker_id=tracker_id, commit_hash=commit_hash, error=note, **kwargs,
	)


async def reconcile_step(
	worktree: Path,
	commit_hash: str,
	tracker_id: str,
	close_reason: Optional[str] = None,
	step: str = "",
	git: Optional[GitCli] = None,
	beads: Optional[BeadsCli] = None,
) -> StepCommitResult:
	"""
	Retry only the bead close for a step left in needs_reconcile.

	Raises:
		UsageError: the commit is not in the worktree's history
	"""
	git = git or GitCli()
	beads = beads or BeadsCli(worktree)
	worktree = Path(worktree)
	if not await git.commit_in_history(worktree, commit_hash):
		raise UsageError(f"Commit {commit_hash} is not in the history of {worktree}")

	progress = StepProgress()
	progress.advance(ConsistencyState.IN_PROGRESS)
	progress.committed = True
	return await _close(progress, beads, worktree, step, tracker_id, close_reason, commit_hash)


def build_pr_body(commits: list[str]) -> str:
	lines = ["## Summary", ""]
	lines += [f"- {c}" for c in commits]
	return "\n".join(lines) + "\n"


def _subject(oneline: str) -> str:
	parts = oneline.split(" ", 1)
	return parts[1] if len(parts) == 2 else oneline


async def publish(
	worktree: Path,
	base_branch: str = "main",
	repo: Optional[str] = None,
	title: Optional[str] = None,
	remote: str = "origin",
	git: Optional[GitCli] = None,
	gh: Optional[GhCli] = None,
) -> PublishResult:
	"""
	Push the worktree branch and open a pull request.

	Order is fixed: auth check, commit list, push, PR. A failure at any point
	stops there and is reported in the result.
	"""
	git = git or GitCli()
	gh = gh or GhCli()
	worktree = Path(worktree)

	try:
		authenticated = await gh.auth_status()
	except SpecksError as e:
		return PublishResult(pushed=False, pr_created=False, error=str(e))
	if not authenticated:
		return PublishResult(
			pushed=False, pr_created=False, error="gh is not authenticated (run `gh auth login`)",
		)

	try:
		branch = await git.current_branch(worktree)
		commits = await git.log_oneline(worktree, base_branch)
	except SpecksError as e:
		return PublishResult(pushed=False, pr_created=False, error=str(e))
	if not commits:
		return PublishResult(
			pushed=False, pr_created=False, branch=branch,
			error=f"No commits on {branch} since {base_branch}; nothing to publish",
		)

	push = await git.push(worktree, remote, branch)
	if not push.ok:
		logger.error(f"Push of {branch} failed: {push.stderr}")
		return PublishResult(
			pushed=False, pr_created=False, branch=branch, error=f"git push failed: {push.stderr}",
		)
	logger.info(f"Pushed {branch} to {remote}")

	if not repo:
		url = await git.remote_url(worktree, remote)
		repo = parse_repo_from_remote(url) if url else None
		if repo is None:
			logger.debug(f"Could not derive repo from remote {remote!r}; letting gh infer it")

	title = title or _subject(commits[-1])
	try:
		created = await gh.pr_create(
			worktree, base=base_branch, head=branch, title=title,
			body=build_pr_body(commits), repo=repo,
		)
	except SpecksError as e:
		return PublishResult(pushed=True, pr_created=False, branch=branch, repo=repo, error=str(e))
	if not created.ok:
		return PublishResult(
			pushed=True, pr_created=False, branch=branch, repo=repo,
			error=f"gh pr create failed: {created.stderr}",
		)

	pr_url = pr_url_from_output(created.stdout)
	logger.info(f"Opened pull request {pr_url}")
	return PublishResult(pushed=True, pr_created=True, branch=branch, repo=repo, pr_url=pr_url)
