"""
Worktree Manager - one isolated git worktree per speck.

Nothing about a worktree is persisted by specks. Path, branch and slug are
read back from `git worktree list --porcelain` on every query, so several
processes can work on the same repository without sharing state.

Naming:
	speck  .specks/specks-auth.md
	slug   auth
	branch specks/auth-20260208-143022     (UTC timestamp, always 15 chars)
	dir    .specks-worktrees/specks__auth-20260208-143022
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import ProjectSettings
from .document import SPECK_PREFIX, SpeckDocument
from .errors import (
	AmbiguousWorktreeError,
	BaseBranchNotFoundError,
	SpeckHasNoStepsError,
	SpeckNotFoundError,
	UsageError,
	WorktreeAlreadyExistsError,
	WorktreeError,
	WorktreeNotFoundError,
)
from .git import GitCli

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
TIMESTAMP_LEN = 15
TIMESTAMP_SUFFIX_RE = re.compile(r"-\d{8}-\d{6}$")
FALLBACK_DIR_NAME = "specks-worktree"


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

def derive_speck_slug(speck_path: Path) -> str:
	"""'.specks/specks-auth.md' -> 'auth'; 'my-feature.md' -> 'my-feature'."""
	return Path(speck_path).stem.removeprefix(SPECK_PREFIX)


def generate_branch_name(slug: str, prefix: str = "specks", now: Optional[datetime] = None) -> str:
	now = now or datetime.now(timezone.utc)
	return f"{prefix}/{slug}-{now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)}"


def recover_slug(branch: str, prefix: str = "specks") -> Optional[str]:
	"""Inverse of generate_branch_name. None for branches specks did not create."""
	head = f"{prefix}/"
	if not branch.startswith(head) or not TIMESTAMP_SUFFIX_RE.search(branch):
		return None
	slug = branch[len(head):-(TIMESTAMP_LEN + 1)]
	return slug or None


def branch_timestamp(branch: str) -> str:
	return branch[-TIMESTAMP_LEN:]


def sanitize_branch_name(branch: str) -> str:
	"""Map a branch name to a filesystem-safe directory name."""
	name = branch.replace("/", "__").replace("\\", "__").replace(":", "_").replace(" ", "_")
	name = "".join(c for c in name if (c.isascii() and c.isalnum()) or c in "-_")
	return name or FALLBACK_DIR_NAME


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DiscoveredWorktree:
	"""A specks worktree as git reports it right now."""
	path: Path
	branch: str
	speck_slug: str
	base_branch: str

	@property
	def created(self) -> str:
		return branch_timestamp(self.branch)

	def to_dict(self) -> dict:
		return {
			"path": str(self.path),
			"branch": self.branch,
			"speck_slug": self.speck_slug,
			"base_branch": self.base_branch,
		}


@dataclass(frozen=True)
class CreateResult:
	worktree: DiscoveredWorktree
	reused: bool

	def to_dict(self) -> dict:
		return {**self.worktree.to_dict(), "reused": self.reused}


@dataclass
class CleanupResult:
	removed: list[DiscoveredWorktree] = field(default_factory=list)
	skipped: list[tuple[str, str]] = field(default_factory=list)
	dry_run: bool = False

	def to_dict(self) -> dict:
		return {
			"removed": [w.to_dict() for w in self.removed],
			"skipped": [{"branch": b, "reason": r} for b, r in self.skipped],
			"dry_run": self.dry_run,
		}


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

class WorktreeManager:
	"""Creates, discovers and removes speck worktrees for one repository."""

	def __init__(
		self,
		repo_root: Path,
		settings: Optional[ProjectSettings] = None,
		git: Optional[GitCli] = None,
	):
		self.repo_root = Path(repo_root)
		self.settings = settings or ProjectSettings()
		self.git = git or GitCli()

	@property
	def worktrees_root(self) -> Path:
		return self.settings.worktrees_root(self.repo_root)

	def _speck_path(self, speck_path: Path) -> Path:
		speck_path = Path(speck_path)
		return speck_path if speck_path.is_absolute() else self.repo_root / speck_path

	async def create(
		self,
		speck_path: Path,
		base_branch: Optional[str] = None,
		reuse_existing: bool = True,
	) -> CreateResult:
		"""
		Create (or reuse) the worktree for a speck.

		Raises, in this order: GitVersionError, NotAGitRepositoryError,
		BaseBranchNotFoundError, SpeckNotFoundError, SpeckHasNoStepsError,
		WorktreeAlreadyExistsError.
		"""
		base_branch = base_branch or self.settings.base_branch
		await self.git.check_version()
		await self.git.repo_root(self.repo_root)
		if not await self.git.branch_exists(self.repo_root, base_branch):
			raise BaseBranchNotFoundError(base_branch)

		full_path = self._speck_path(speck_path)
		if not full_path.is_file():
			raise SpeckNotFoundError(str(speck_path))
		document = SpeckDocument.load(full_path)
		if not document.steps:
			raise SpeckHasNoStepsError(f"Speck has no execution steps: {speck_path}")

		existing = await self.find_existing(full_path, base_branch)
		if existing is not None:
			if not reuse_existing:
				raise WorktreeAlreadyExistsError(
					f"Worktree already exists for {speck_path}: {existing.path}"
				)
			logger.info(f"Reusing worktree {existing.path} ({existing.branch})")
			return CreateResult(worktree=existing, reused=True)

		slug = derive_speck_slug(full_path)
		branch = generate_branch_name(slug, self.settings.branch_prefix)
		path = self.worktrees_root / sanitize_branch_name(branch)
		if path.exists():
			raise WorktreeAlreadyExistsError(f"Worktree directory already exists: {path}")
		if await self.git.branch_exists(self.repo_root, branch):
			raise WorktreeAlreadyExistsError(f"Branch already exists: {branch}")

		try:
			self.worktrees_root.mkdir(parents=True, exist_ok=True)
		except OSError as e:
			raise WorktreeError(f"Cannot create worktrees directory {self.worktrees_root}: {e}") from e
		await self.git.create_branch(self.repo_root, branch, base_branch)
		result = await self.git.worktree_add(self.repo_root, path, branch)
		if not result.ok:
			rollback = await self.git.delete_branch(self.repo_root, branch, force=True)
			if not rollback.ok:
				logger.warning(f"Could not delete branch {branch} after failed worktree add: {rollback.stderr}")
			raise WorktreeError(f"git worktree add failed: {result.stderr}")

		logger.info(f"Created worktree {path} on {branch}")
		for worktree in await self.list(base_branch):
			if worktree.branch == branch:
				return CreateResult(worktree=worktree, reused=False)
		raise WorktreeError(f"Worktree {path} was added but git does not list it")

	async def find_all(self, speck_path: Path, base_branch: Optional[str] = None) -> list[DiscoveredWorktree]:
		"""Worktrees for a speck, most recent first."""
		slug = derive_speck_slug(Path(speck_path))
		matches = [w for w in await self.list(base_branch) if w.speck_slug == slug]
		return sorted(matches, key=lambda w: w.created, reverse=True)

	async def find_existing(
		self, speck_path: Path, base_branch: Optional[str] = None,
	) -> Optional[DiscoveredWorktree]:
		matches = await self.find_all(speck_path, base_branch)
		return matches[0] if matches else None

	async def is_merged(self, worktree: DiscoveredWorktree) -> bool:
		"""Branch tip is a strict ancestor of the base branch."""
		if not await self.git.is_ancestor(self.repo_root, worktree.branch, worktree.base_branch):
			return False
		tip = await self.git.rev_parse(self.repo_root, worktree.branch)
		base = await self.git.rev_parse(self.repo_root, worktree.base_branch)
		return tip != base

	async def cleanup(
		self,
		merged: bool = False,
		dry_run: bool = False,
		base_branch: Optional[str] = None,
	) -> CleanupResult:
		"""
		Remove worktrees whose branches have been merged into the base branch.

		Squash and rebase merges leave the branch tip outside the base
		history, so those worktrees are not detected as merged.
		"""
		if not merged:
			raise UsageError("Refusing to clean up without --merged")

		result = CleanupResult(dry_run=dry_run)
		for worktree in await self.list(base_branch):
			if not await self.is_merged(worktree):
				continue
			if dry_run:
				result.removed.append(worktree)
				continue
			removal = await self.git.worktree_remove(self.repo_root, worktree.path)
			if not removal.ok:
				logger.warning(f"Skipping {worktree.branch}: {removal.stderr}")
				result.skipped.append((worktree.branch, removal.stderr or "git worktree remove failed"))
				continue
			await self.git.worktree_prune(self.repo_root)
			deleted = await self.git.delete_branch(self.repo_root, worktree.branch, force=True)
			if not deleted.ok:
				logger.warning(f"Could not delete branch {worktree.branch}: {deleted.stderr}")
			result.removed.append(worktree)
		return result

	async def resolve_target(self, target: str) -> DiscoveredWorktree:
		"""Find a worktree by branch name, worktree path, or speck path."""
		worktrees = await self.list()
		for worktree in worktrees:
			if worktree.branch == target:
				return worktree

		target_path = Path(target)
		if not target_path.is_absolute():
			target_path = self.repo_root / target_path
		for worktree in worktrees:
			if target_path.exists() and worktree.path.resolve() == target_path.resolve():
				return worktree

		slug = derive_speck_slug(Path(target))
		matches = [w for w in worktrees if w.speck_slug == slug]
		if not matches:
			raise WorktreeNotFoundError(f"No worktree found for {target}")
		if len(matches) > 1:
			raise AmbiguousWorktreeError(target, [w.branch for w in matches])
		return matches[0]

	async def remove(self, target: str, force: bool = False) -> DiscoveredWorktree:
		"""Remove one worktree and its branch. Dirty worktrees need force."""
		worktree = await self.resolve_target(target)
		if not force and worktree.path.is_dir() and await self.git.is_dirty(worktree.path):
			raise WorktreeError(
				f"Worktree {worktree.path} has uncommitted changes; commit them or use --force"
			)
		removal = await self.git.worktree_remove(self.repo_root, worktree.path, force=force)
		if not removal.ok:
			raise WorktreeError(f"git worktree remove failed: {removal.stderr}")
		deleted = await self.git.delete_branch(self.repo_root, worktree.branch, force=True)
		if not deleted.ok:
			logger.warning(f"Could not delete branch {worktree.branch}: {deleted.stderr}")
		await self.git.worktree_prune(self.repo_root)
		logger.info(f"Removed worktree {worktree.path}")
		return worktree

	# Defined last: inside the class body the name shadows the builtin.
	async def list(self, base_branch: Optional[str] = None) -> "list[DiscoveredWorktree]":
		"""All specks worktrees registered with git, oldest first."""
		base_branch = base_branch or self.settings.base_branch
		prefix = self.settings.branch_prefix
		found = []
		for entry in await self.git.worktree_list(self.repo_root):
			if entry.branch is None:
				continue
			slug = recover_slug(entry.branch, prefix)
			if slug is None:
				continue
			found.append(DiscoveredWorktree(
				path=entry.path, branch=entry.branch, speck_slug=slug, base_branch=base_branch,
			))
		return sorted(found, key=lambda w: (w.created, w.branch))
