"""
Error taxonomy for specks operations.

Every error carries the process exit code the CLI reports for it. Partial
failures (a commit that landed without its bead close, a push without its
pull request) are NOT errors: they are returned as result values so callers
can retry only the missing piece.
"""

from typing import Optional


class SpecksError(Exception):
	"""Base class for all specks errors."""
	exit_code = 1


class UsageError(SpecksError):
	"""Bad arguments or a missing safety flag. Nothing was changed."""
	exit_code = 2


class ConfigError(SpecksError):
	"""Raised when a config.toml cannot be parsed."""
	exit_code = 2


class WorktreeAlreadyExistsError(SpecksError):
	"""Raised when the branch or worktree directory for a speck already exists."""
	exit_code = 3


class GitVersionError(SpecksError):
	"""Raised when the installed git is older than 2.15."""
	exit_code = 4


class NotAGitRepositoryError(SpecksError):
	"""Raised when the project root is not inside a git repository."""
	exit_code = 5


class BaseBranchNotFoundError(SpecksError):
	"""Raised when the requested base branch does not exist."""
	exit_code = 6

	def __init__(self, branch: str):
		super().__init__(f"Base branch not found: {branch}")
		self.branch = branch


class SpeckNotFoundError(SpecksError):
	"""Raised when the speck file does not exist."""
	exit_code = 7

	def __init__(self, path: str):
		super().__init__(f"Speck not found: {path}")
		self.path = path


class SpeckHasNoStepsError(SpecksError):
	"""Raised when a speck declares no execution steps."""
	exit_code = 8


class DocumentError(SpecksError):
	"""Raised when a speck document cannot be read or written."""
	pass


class WorktreeError(SpecksError):
	"""Raised when a git worktree operation fails."""
	pass


class WorktreeNotFoundError(WorktreeError):
	"""Raised when no worktree matches a removal target."""
	pass


class AmbiguousWorktreeError(WorktreeError):
	"""Raised when a speck path matches more than one worktree."""

	def __init__(self, target: str, candidates: list[str]):
		super().__init__(
			f"Multiple worktrees found for {target}: {', '.join(candidates)}. "
			"Use a branch name or worktree path to disambiguate."
		)
		self.target = target
		self.candidates = candidates


class ToolNotFoundError(SpecksError):
	"""Raised when an external binary (git, gh, bd) is not on PATH."""

	def __init__(self, program: str):
		super().__init__(f"{program} not installed or not found on PATH")
		self.program = program


class TrackerNotInstalledError(ToolNotFoundError):
	"""Raised when the beads CLI cannot be run."""
	exit_code = 5


class TrackerNotInitializedError(SpecksError):
	"""Raised when the project has no .beads/ directory."""
	exit_code = 13

	def __init__(self):
		super().__init__("beads not initialized (run `bd init`)")


class CommandError(SpecksError):
	"""A tool exited nonzero or produced output that could not be parsed."""

	def __init__(
		self,
		program: str,
		args: list[str],
		stderr: str,
		returncode: Optional[int] = None,
	):
		command = " ".join([program, *args[:2]])
		super().__init__(f"{command} failed: {stderr.strip() or 'no output'}")
		self.program = program
		self.args_list = args
		self.stderr = stderr
		self.returncode = returncode


class SyncIncompleteError(SpecksError):
	"""Raised when a sync pass leaves steps without a bead ID."""

	def __init__(self, anchors: list[str]):
		super().__init__(
			f"Beads sync incomplete; steps without a bead: {', '.join(anchors)}"
		)
		self.anchors = anchors


class InvalidTransitionError(SpecksError):
	"""Raised when a step state would move backwards or skip a phase."""
	pass
