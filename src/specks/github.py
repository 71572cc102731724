"""Async wrapper around the GitHub CLI (`gh`)."""

import json
import logging
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import CommandError
from .process import CommandResult, run_command

logger = logging.getLogger(__name__)

# git@github.com:owner/repo.git
_SCP_RE = re.compile(r"^[\w.-]+@[\w.-]+:(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$")
# ssh://git@github.com/owner/repo.git, https://github.com/owner/repo(.git)
_URL_RE = re.compile(
	r"^(?:ssh|https?|git)://(?:[^@/]+@)?[^/]+/(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"
)


def parse_repo_from_remote(url: str) -> Optional[str]:
	"""Extract 'owner/repo' from a remote URL, or None if the shape is unknown."""
	url = url.strip()
	match = _SCP_RE.match(url) or _URL_RE.match(url)
	if not match:
		return None
	return f"{match.group('owner')}/{match.group('repo')}"


class PullRequestState(BaseModel):
	"""Subset of `gh pr view --json state,mergedAt,url`."""
	model_config = ConfigDict(extra="ignore", populate_by_name=True)

	state: str
	merged_at: Optional[str] = Field(default=None, alias="mergedAt")
	url: Optional[str] = None

	@property
	def is_finished(self) -> bool:
		return self.state.upper() in ("MERGED", "CLOSED")


class GhCli:
	"""Typed boundary for the handful of gh calls specks makes."""

	def __init__(self, program: str = "gh"):
		self.program = program

	async def auth_status(self) -> bool:
		result = await run_command(self.program, ["auth", "status"])
		if not result.ok:
			logger.debug(f"gh auth status: {result.stderr}")
		return result.ok

	async def pr_create(
		self,
		cwd: Path,
		base: str,
		head: str,
		title: str,
		body: str,
		repo: Optional[str] = None,
	) -> CommandResult:
		args = ["pr", "create", "--base", base, "--head", head, "--title", title, "--body", body]
		if repo:
			args += ["--repo", repo]
		return await run_command(self.program, args, cwd=cwd)

	async def pr_state(self, cwd: Path, branch: str) -> Optional[PullRequestState]:
		"""PR state for a branch; None when the branch has no pull request."""
		result = await run_command(
			self.program, ["pr", "view", branch, "--json", "state,mergedAt,url"], cwd=cwd,
		)
		if not result.ok:
			if "no pull requests found" in result.stderr.lower():
				return None
			raise CommandError(self.program, result.args, result.stderr, result.returncode)
		try:
			return PullRequestState.model_validate(json.loads(result.stdout))
		except (json.JSONDecodeError, ValidationError) as e:
			raise CommandError(self.program, result.args, f"unparseable output: {e}") from e


def pr_url_from_output(stdout: str) -> Optional[str]:
	"""`gh pr create` prints the new PR URL as its last line."""
	for line in reversed(stdout.splitlines()):
		line = line.strip()
		if line.startswith("http"):
			return line
	return None
