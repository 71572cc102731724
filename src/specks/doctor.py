"""
Reconciler - read-only health checks for a specks project.

Every check reports pass or warn and none of them change anything on disk,
in git, or on GitHub. Fixes are left to the user.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Optional

from .config import PROJECT_CONFIG_NAME, SPECKS_DIR, ProjectSettings, load_project_settings
from .document import SpeckDocument, list_speck_files
from .errors import ConfigError, DocumentError, SpecksError, ToolNotFoundError
from .git import GitCli
from .github import GhCli
from .implementation_log import LOG_BYTE_THRESHOLD, LOG_LINE_THRESHOLD, log_stats
from .worktree import DiscoveredWorktree, WorktreeManager

logger = logging.getLogger(__name__)

PASS = "pass"
WARN = "warn"

LEGACY_SESSIONS_DIR = ".sessions"
LEGACY_ARTIFACTS_DIR = ".artifacts"


@dataclass
class HealthCheck:
	name: str
	status: str
	message: str
	details: list[str] = field(default_factory=list)

	def to_dict(self) -> dict:
		data = {"name": self.name, "status": self.status, "message": self.message}
		if self.details:
			data["details"] = self.details
		return data


@dataclass
class DoctorReport:
	checks: list[HealthCheck] = field(default_factory=list)

	@property
	def passed(self) -> int:
		return sum(1 for c in self.checks if c.status == PASS)

	@property
	def warnings(self) -> int:
		return sum(1 for c in self.checks if c.status == WARN)

	def to_dict(self) -> dict:
		return {
			"checks": [c.to_dict() for c in self.checks],
			"summary": {"passed": self.passed, "warnings": self.warnings},
		}


class Doctor:
	"""Runs the checks against one repository."""

	def __init__(
		self,
		repo_root: Path,
		settings: Optional[ProjectSettings] = None,
		git: Optional[GitCli] = None,
		gh: Optional[GhCli] = None,
		config_error: Optional[str] = None,
	):
		self.repo_root = Path(repo_root)
		self.config_error = config_error
		self.settings = settings or ProjectSettings()
		self.git = git or GitCli()
		self.gh = gh or GhCli()
		self.manager = WorktreeManager(self.repo_root, self.settings, self.git)
		self._worktrees: Optional[list[DiscoveredWorktree]] = None

	async def worktrees(self) -> list[DiscoveredWorktree]:
		if self._worktrees is None:
			self._worktrees = await self.manager.list()
		return self._worktrees

	async def run(self) -> DoctorReport:
		checks: list[tuple[str, Callable[[], Awaitable[HealthCheck]]]] = [
			("initialized", self.check_initialized),
			("log_size", self.check_log_size),
			("worktrees", self.check_worktrees),
			("stale_branches", self.check_stale_branches),
			("closed_prs", self.check_closed_prs),
			("legacy_sessions", self.check_legacy_sessions),
			("broken_refs", self.check_broken_refs),
		]
		report = DoctorReport()
		for name, check in checks:
			try:
				result = await check()
			except SpecksError as e:
				logger.debug(f"doctor check {name} failed: {e}")
				result = HealthCheck(name, WARN, f"Check could not run: {e}")
			report.checks.append(result)
		return report

	async def check_initialized(self) -> HealthCheck:
		specks_dir = self.repo_root / SPECKS_DIR
		if not specks_dir.is_dir():
			return HealthCheck("initialized", WARN, "Specks is not initialized (.specks/ directory missing)")
		if not (specks_dir / PROJECT_CONFIG_NAME).is_file():
			return HealthCheck(
				"initialized", WARN,
				f"Specks directory exists but {SPECKS_DIR}/{PROJECT_CONFIG_NAME} is missing",
			)
		if self.config_error:
			return HealthCheck("initialized", WARN, f"Project config could not be read: {self.config_error}")
		return HealthCheck("initialized", PASS, "Specks is initialized")

	async def check_log_size(self) -> HealthCheck:
		stats = log_stats(self.repo_root)
		if stats is None:
			return HealthCheck("log_size", PASS, "Implementation log not found (no history yet)")
		size = f"{stats.lines} lines, {stats.bytes} bytes"
		if stats.over_warning_threshold:
			return HealthCheck(
				"log_size", WARN,
				f"Implementation log is large ({size}); it is rotated above "
				f"{LOG_LINE_THRESHOLD} lines or {LOG_BYTE_THRESHOLD // 1024} KiB",
			)
		return HealthCheck("log_size", PASS, f"Implementation log size OK ({size})")

	async def check_worktrees(self) -> HealthCheck:
		root = self.manager.worktrees_root
		registered = await self.worktrees()
		registered_paths = {w.path.resolve() for w in registered}
		problems = []

		if root.is_dir():
			for entry in sorted(root.iterdir()):
				if entry.name.startswith(".") or not entry.is_dir():
					continue
				if entry.resolve() not in registered_paths:
					problems.append(f"{entry}: directory not registered with git")
		for worktree in registered:
			if not worktree.path.is_dir():
				problems.append(f"{worktree.path}: registered for {worktree.branch} but missing on disk")

		if problems:
			return HealthCheck(
				"worktrees", WARN, f"{len(problems)} worktree problem(s) found", details=problems,
			)
		if not registered:
			return HealthCheck("worktrees", PASS, "No worktrees found")
		return HealthCheck("worktrees", PASS, f"{len(registered)} worktree(s) found, all consistent")

	async def check_stale_branches(self) -> HealthCheck:
		prefix = self.settings.branch_prefix
		branches = await self.git.list_branches(self.repo_root, f"{prefix}/*")
		in_use = {w.branch for w in await self.worktrees()}
		stale = []
		for branch in branches:
			if branch in in_use:
				continue
			if await self.git.is_ancestor(self.repo_root, branch, self.settings.base_branch):
				continue
			stale.append(branch)
		if stale:
			return HealthCheck(
				"stale_branches", WARN,
				f"{len(stale)} unmerged {prefix}/* branch(es) without a worktree",
				details=stale,
			)
		return HealthCheck("stale_branches", PASS, "No stale branches")

	async def check_closed_prs(self) -> HealthCheck:
		worktrees = await self.worktrees()
		if not worktrees:
			return HealthCheck("closed_prs", PASS, "No worktrees to check")
		try:
			authenticated = await self.gh.auth_status()
		except ToolNotFoundError:
			return HealthCheck("closed_prs", PASS, "Skipped: gh is not installed")
		if not authenticated:
			return HealthCheck("closed_prs", PASS, "Skipped: gh is not authenticated")

		finished = []
		for worktree in worktrees:
			state = await self.gh.pr_state(self.repo_root, worktree.branch)
			if state is not None and state.is_finished:
				finished.append(f"{worktree.branch}: PR {state.state.upper()} ({worktree.path})")
		if finished:
			return HealthCheck(
				"closed_prs", WARN,
				f"{len(finished)} worktree(s) whose pull request is merged or closed",
				details=finished,
			)
		return HealthCheck("closed_prs", PASS, "No worktrees with finished pull requests")

	async def check_legacy_sessions(self) -> HealthCheck:
		root = self.manager.worktrees_root
		found: list[Path] = []
		sessions = root / LEGACY_SESSIONS_DIR
		if sessions.is_dir():
			found += sorted(sessions.glob("*.json"))
		artifacts = root / LEGACY_ARTIFACTS_DIR
		if artifacts.is_dir():
			found += sorted(artifacts.iterdir())
		for worktree in await self.worktrees():
			session = worktree.path / SPECKS_DIR / "session.json"
			if session.is_file():
				found.append(session)
			step_artifacts = worktree.path / SPECKS_DIR / "step-artifacts"
			if step_artifacts.is_dir():
				found.append(step_artifacts)
		if found:
			return HealthCheck(
				"legacy_sessions", WARN,
				f"{len(found)} legacy session file(s) found; remove them manually",
				details=[str(p) for p in found],
			)
		return HealthCheck("legacy_sessions", PASS, "No legacy session files")

	async def check_broken_refs(self) -> HealthCheck:
		broken = []
		for path in list_speck_files(self.repo_root):
			try:
				document = SpeckDocument.load(path)
			except DocumentError as e:
				broken.append(f"{path.name}: unreadable ({e})")
				continue
			for anchor, dep in document.unknown_dependencies():
				broken.append(f"{path.name}: #{anchor} depends on unknown #{dep}")
		if broken:
			return HealthCheck(
				"broken_refs", WARN, f"{len(broken)} broken reference(s) found", details=broken,
			)
		return HealthCheck("broken_refs", PASS, "No broken anchor references found")


async def run_doctor(
	repo_root: Path,
	settings: Optional[ProjectSettings] = None,
	git: Optional[GitCli] = None,
	gh: Optional[GhCli] = None,
) -> DoctorReport:
	config_error = None
	if settings is None:
		try:
			settings = load_project_settings(repo_root)
		except ConfigError as e:
			logger.warning(f"Using default settings: {e}")
			config_error = str(e)
			settings = ProjectSettings()
	return await Doctor(repo_root, settings, git, gh, config_error=config_error).run()
