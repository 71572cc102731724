"""Async wrapper around the git CLI."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import CommandError, GitVersionError, NotAGitRepositoryError
from .process import CommandResult, run_command

logger = logging.getLogger(__name__)

MIN_GIT_VERSION = (2, 15)


@dataclass(frozen=True)
class WorktreeEntry:
	"""One record from `git worktree list --porcelain`."""
	path: Path
	branch: Optional[str]
	head: Optional[str] = None


def parse_worktree_porcelain(output: str) -> list[WorktreeEntry]:
	"""Parse porcelain worktree output. Detached worktrees get branch None."""
	entries = []
	path = branch = head = None
	for line in output.splitlines() + [""]:
		if not line.strip():
			if path is not None:
				entries.append(WorktreeEntry(path=Path(path), branch=branch, head=head))
			path = branch = head = None
		elif line.startswith("worktree "):
			path = line[len("worktree "):]
		elif line.startswith("HEAD "):
			head = line[len("HEAD "):]
		elif line.startswith("branch "):
			branch = line[len("branch "):].removeprefix("refs/heads/")
	return entries


def parse_git_version(output: str) -> tuple[int, ...]:
	"""'git version 2.39.3 (Apple Git-145)' -> (2, 39, 3)"""
	match = re.search(r"(\d+)\.(\d+)(?:\.(\d+))?", output)
	if not match:
		raise CommandError("git", ["--version"], f"unrecognised version string: {output}")
	return tuple(int(g) for g in match.groups() if g is not None)


class GitCli:
	"""Thin async layer over `git`; every call names its working directory."""

	def __init__(self, program: str = "git"):
		self.program = program

	async def run(self, args: list[str], cwd: Path) -> CommandResult:
		return await run_command(self.program, args, cwd=cwd)

	async def check_version(self) -> tuple[int, ...]:
		result = (await run_command(self.program, ["--version"])).check()
		version = parse_git_version(result.stdout)
		if version[:2] < MIN_GIT_VERSION:
			raise GitVersionError(
				f"git {'.'.join(map(str, version))} is too old; "
				f"worktree support needs {'.'.join(map(str, MIN_GIT_VERSION))}+"
			)
		return version

	async def repo_root(self, path: Path) -> Path:
		if not path.is_dir():
			raise NotAGitRepositoryError(f"Not a git repository: {path}")
		result = await self.run(["rev-parse", "--show-toplevel"], path)
		if not result.ok:
			raise NotAGitRepositoryError(f"Not a git repository: {path} ({result.stderr})")
		return Path(result.stdout)

	async def branch_exists(self, repo: Path, branch: str) -> bool:
		result = await self.run(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], repo)
		return result.ok

	async def list_branches(self, repo: Path, pattern: str) -> list[str]:
		result = (await self.run(
			["branch", "--list", "--format=%(refname:short)", pattern], repo,
		)).check()
		return [line.strip() for line in result.stdout.splitlines() if line.strip()]

	async def rev_parse(self, repo: Path, ref: str) -> str:
		result = (await self.run(["rev-parse", "--verify", ref], repo)).check()
		return result.stdout

	async def is_dirty(self, cwd: Path) -> bool:
		result = (await self.run(["status", "--porcelain"], cwd)).check()
		return bool(result.stdout)

	async def create_branch(self, repo: Path, branch: str, base: str) -> None:
		(await self.run(["branch", branch, base], repo)).check()

	async def delete_branch(self, repo: Path, branch: str, force: bool = False) -> CommandResult:
		return await self.run(["branch", "-D" if force else "-d", branch], repo)

	async def is_ancestor(self, repo: Path, commit: str, of: str) -> bool:
		"""True if `commit` is reachable from `of`."""
		result = await self.run(["merge-base", "--is-ancestor", commit, of], repo)
		if result.returncode not in (0, 1):
			raise CommandError(self.program, result.args, result.stderr, result.returncode)
		return result.ok

	async def worktree_add(self, repo: Path, path: Path, branch: str) -> CommandResult:
		return await self.run(["worktree", "add", str(path), branch], repo)

	async def worktree_remove(self, repo: Path, path: Path, force: bool = False) -> CommandResult:
		args = ["worktree", "remove"]
		if force:
			args.append("--force")
		return await self.run(args + [str(path)], repo)

	async def worktree_prune(self, repo: Path) -> None:
		(await self.run(["worktree", "prune"], repo)).check()

	async def worktree_list(self, repo: Path) -> list[WorktreeEntry]:
		result = (await self.run(["worktree", "list", "--porcelain"], repo)).check()
		return parse_worktree_porcelain(result.stdout)

	async def add(self, cwd: Path, files: list[str]) -> None:
		(await self.run(["add", "--", *files], cwd)).check()

	async def commit(self, cwd: Path, message: str) -> CommandResult:
		return await self.run(["commit", "-m", message], cwd)

	async def unstage(self, cwd: Path, files: list[str]) -> CommandResult:
		return await self.run(["reset", "-q", "--", *files], cwd)

	async def head(self, cwd: Path) -> str:
		result = (await self.run(["rev-parse", "HEAD"], cwd)).check()
		return result.stdout

	async def current_branch(self, cwd: Path) -> str:
		result = (await self.run(["rev-parse", "--abbrev-ref", "HEAD"], cwd)).check()
		return result.stdout

	async def commit_in_history(self, cwd: Path, commit: str) -> bool:
		"""True if `commit` exists and is an ancestor of (or equal to) HEAD."""
		exists = await self.run(["cat-file", "-e", f"{commit}^{{commit}}"], cwd)
		if not exists.ok:
			return False
		return await self.is_ancestor(cwd, commit, "HEAD")

	async def log_oneline(self, cwd: Path, base: str) -> list[str]:
		result = (await self.run(["log", "--oneline", f"{base}..HEAD"], cwd)).check()
		return [line for line in result.stdout.splitlines() if line]

	async def push(self, cwd: Path, remote: str, branch: str) -> CommandResult:
		return await self.run(["push", "-u", remote, branch], cwd)

	async def remote_url(self, cwd: Path, remote: str) -> Optional[str]:
		result = await self.run(["remote", "get-url", remote], cwd)
		return result.stdout if result.ok and result.stdout else None
