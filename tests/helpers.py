"""Shared test fixtures and helpers for specks tests."""

import stat
import subprocess
from pathlib import Path
from typing import Callable, Optional
from unittest.mock import MagicMock

from specks.beads import BeadDependency, BeadIssue
from specks.errors import CommandError
from specks.github import PullRequestState
from specks.process import CommandResult

SPECK_TEMPLATE = """# Authentication

## Phase 1.0: Authentication {#phase-1}

### Plan Metadata {#plan-metadata}

| Field | Value |
|------|-------|
| Owner | test |
| Status | active |
| Last updated | 2026-01-01 |

---

### Execution Steps {#execution-steps}

#### Step 0: Setup {#step-0}

**Commit:** `feat: setup`

Create the package skeleton.

---

#### Step 1: Models {#step-1}

**Depends on:** #step-0

**Commit:** `feat: models`

Add the user model.

---

#### Step 2: API {#step-2}

**Depends on:** #step-0, #step-1

**Commit:** `feat: api`

Expose the login endpoint.
"""

NO_STEPS_SPECK = """# Empty

## Phase 1.0: Nothing yet {#phase-1}

Just prose, no execution steps.
"""


def git(path: Path, *args: str) -> str:
	"""Run git in path and return stripped stdout (raises on failure)."""
	result = subprocess.run(
		["git", *args], cwd=str(path), capture_output=True, text=True, check=True,
	)
	return result.stdout.strip()


def init_git_repo(path: Path) -> None:
	"""Create a real git repo on branch main with an initial commit."""
	path.mkdir(parents=True, exist_ok=True)
	subprocess.run(["git", "init"], cwd=str(path), capture_output=True, check=True)
	subprocess.run(["git", "symbolic-ref", "HEAD", "refs/heads/main"], cwd=str(path), capture_output=True, check=True)
	subprocess.run(["git", "config", "user.email", "test@test.com"], cwd=str(path), capture_output=True)
	subprocess.run(["git", "config", "user.name", "Test"], cwd=str(path), capture_output=True)
	subprocess.run(["git", "config", "commit.gpgsign", "false"], cwd=str(path), capture_output=True)
	(path / "README.md").write_text("# Test\n")
	(path / ".gitignore").write_text(".specks-worktrees/\n")
	subprocess.run(["git", "add", "README.md", ".gitignore"], cwd=str(path), capture_output=True, check=True)
	subprocess.run(["git", "commit", "-m", "init"], cwd=str(path), capture_output=True, check=True)


def write_speck(repo: Path, slug: str = "auth", content: str = SPECK_TEMPLATE) -> Path:
	"""Write .specks/specks-<slug>.md and return its path."""
	specks_dir = repo / ".specks"
	specks_dir.mkdir(parents=True, exist_ok=True)
	path = specks_dir / f"specks-{slug}.md"
	path.write_text(content)
	return path


def commit_file(repo: Path, name: str, content: str = "x\n", message: Optional[str] = None) -> str:
	"""Write, add and commit one file; return the new HEAD hash."""
	(repo / name).parent.mkdir(parents=True, exist_ok=True)
	(repo / name).write_text(content)
	git(repo, "add", name)
	git(repo, "commit", "-m", message or f"add {name}")
	return git(repo, "rev-parse", "HEAD")


def write_script(path: Path, body: str) -> Path:
	"""Write an executable shell script (used to stand in for bd or gh)."""
	path.write_text("#!/bin/sh\n" + body)
	path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
	return path


def capture_tools(config: MagicMock, register_fn: Callable) -> dict:
	"""Register tools on a mock MCP and return the captured tool functions.

	Args:
		config: Mock config object to pass to the registration function
		register_fn: The registration function (e.g., register_worktree_tools)

	Returns:
		Dict mapping tool name to the tool function
	"""
	captured = {}

	class MockMCP:
		def tool(self):
			def decorator(fn):
				captured[fn.__name__] = fn
				return fn
			return decorator

	register_fn(MockMCP(), config)
	return captured


class FakeBeads:
	"""In-memory stand-in for BeadsCli with the same async surface."""

	def __init__(self, repo_root: Path, fail_close: bool = False):
		self.repo_root = repo_root
		self.fail_close = fail_close
		self.issues: dict[str, BeadIssue] = {}
		self.parents: dict[str, Optional[str]] = {}
		self.deps: dict[str, list[str]] = {}
		self.closed: list[tuple[str, Optional[str], Optional[Path]]] = []
		self.create_calls = 0
		self.dep_add_calls = 0
		self._next = 1

	async def ensure_ready(self) -> None:
		return None

	async def create(self, title, description=None, parent=None, issue_type=None) -> BeadIssue:
		bead_id = f"bd-{self._next}"
		self._next += 1
		self.create_calls += 1
		issue = BeadIssue(
			id=bead_id, title=title, description=description or "",
			status="open", issue_type=issue_type or "task",
		)
		self.issues[bead_id] = issue
		self.parents[bead_id] = parent
		return issue

	async def show(self, bead_id: str) -> BeadIssue:
		if bead_id not in self.issues:
			raise CommandError("bd", ["show", bead_id], f"issue {bead_id} not found")
		return self.issues[bead_id]

	async def exists(self, bead_id: str) -> bool:
		return bead_id in self.issues

	async def close(self, bead_id, reason=None, cwd=None) -> None:
		if self.fail_close:
			raise CommandError("bd", ["close", bead_id], "database is locked", 1)
		self.closed.append((bead_id, reason, cwd))

	async def dep_add(self, from_id: str, to_id: str) -> None:
		self.dep_add_calls += 1
		self.deps.setdefault(from_id, []).append(to_id)

	async def dep_list(self, bead_id: str) -> list[BeadDependency]:
		return [BeadDependency(id=d) for d in self.deps.get(bead_id, [])]


class FakeGh:
	"""In-memory stand-in for GhCli."""

	def __init__(
		self,
		authenticated: bool = True,
		pr_ok: bool = True,
		pr_states: Optional[dict[str, str]] = None,
	):
		self.authenticated = authenticated
		self.pr_ok = pr_ok
		self.pr_states = pr_states or {}
		self.created: list[dict] = []

	async def auth_status(self) -> bool:
		return self.authenticated

	async def pr_create(self, cwd, base, head, title, body, repo=None) -> CommandResult:
		self.created.append({
			"cwd": cwd, "base": base, "head": head, "title": title, "body": body, "repo": repo,
		})
		if not self.pr_ok:
			return CommandResult("gh", ["pr", "create"], "", "GraphQL: permission denied", 1)
		return CommandResult("gh", ["pr", "create"], "https://github.com/acme/app/pull/7", "", 0)

	async def pr_state(self, cwd, branch: str) -> Optional[PullRequestState]:
		state = self.pr_states.get(branch)
		return PullRequestState(state=state) if state else None
