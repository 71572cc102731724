"""Step tools - commit a step, retry its bead close, publish the branch."""

import json
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from ..beads import BeadsCli
from ..config import Config
from ..errors import SpecksError
from ..steps import commit_step, publish, reconcile_step
from .common import error_response, resolve_project


def register_steps_tools(mcp: FastMCP, config: Config) -> None:
	"""Register step completion tools."""

	@mcp.tool()
	async def step_commit(
		worktree: str,
		step: str,
		message: str,
		bead: str,
		files: list[str],
		close_reason: str = "",
		speck: str = "",
		summary: str = "",
	) -> str:
		"""
		Commit a finished step and close its bead.

		The result state is one of:
		- completed: commit and bead close both succeeded
		- needs_reconcile: the commit landed but the bead close failed;
		  call step_reconcile with the returned commit_hash and bead
		- failed: nothing was committed

		Args:
			worktree: Path to the speck worktree
			step: Step anchor (e.g. '#step-0')
			message: Commit message
			bead: Bead ID to close
			files: Files to stage, relative to the worktree
			close_reason: Reason recorded on the bead
			speck: Speck path, for the implementation log entry
			summary: One-line summary; when set an implementation log entry is added
		"""
		try:
			_, settings = await resolve_project(worktree)
			result = await commit_step(
				Path(worktree), step, files, message, bead,
				close_reason=close_reason or None,
				speck=speck or None,
				summary=summary or None,
				beads=BeadsCli(Path(worktree), settings.bd_path),
			)
		except SpecksError as e:
			return error_response(e)
		return json.dumps({"success": result.ok, **result.to_dict()}, indent=2)

	@mcp.tool()
	async def step_reconcile(worktree: str, commit: str, bead: str, close_reason: str = "") -> str:
		"""
		Retry only the bead close for a step left in needs_reconcile.

		Never commits again. Fails if the commit is not in the worktree history.

		Args:
			worktree: Path to the speck worktree
			commit: Commit hash reported by step_commit
			bead: Bead ID reported by step_commit
			close_reason: Reason recorded on the bead
		"""
		try:
			_, settings = await resolve_project(worktree)
			result = await reconcile_step(
				Path(worktree), commit, bead,
				close_reason=close_reason or None,
				beads=BeadsCli(Path(worktree), settings.bd_path),
			)
		except SpecksError as e:
			return error_response(e)
		return json.dumps({"success": result.ok, **result.to_dict()}, indent=2)

	@mcp.tool()
	async def step_publish(worktree: str, base_branch: str = "", repo: str = "", title: str = "") -> str:
		"""
		Push the worktree branch and open a pull request.

		Checks gh authentication first; nothing is pushed if that fails or if
		the branch has no commits beyond the base.

		Args:
			worktree: Path to the speck worktree
			base_branch: PR base (default from .specks/config.toml)
			repo: GitHub 'owner/repo' (default: derived from the remote URL)
			title: PR title (default: first commit subject)
		"""
		try:
			_, settings = await resolve_project(worktree)
			result = await publish(
				Path(worktree),
				base_branch or settings.base_branch,
				repo=repo or None,
				title=title or None,
				remote=settings.remote,
			)
		except SpecksError as e:
			return error_response(e)
		return json.dumps({"success": result.pr_created, **result.to_dict()}, indent=2)
