"""Worktree tools - one git worktree per speck."""

import json

from mcp.server.fastmcp import FastMCP

from ..config import Config
from ..document import resolve_speck_path
from ..errors import SpecksError
from ..worktree import WorktreeManager
from .common import error_response, resolve_project


def register_worktree_tools(mcp: FastMCP, config: Config) -> None:
	"""Register worktree lifecycle tools."""

	@mcp.tool()
	async def create_worktree(
		speck: str,
		base_branch: str = "",
		reuse_existing: bool = True,
		project_path: str = "",
	) -> str:
		"""
		Create (or reuse) the isolated worktree for a speck.

		Call this before implementing a speck. If a worktree for the same
		speck already exists it is returned instead of creating a duplicate.

		Args:
			speck: Speck name or path (e.g. 'auth' or '.specks/specks-auth.md')
			base_branch: Branch to start from (default from .specks/config.toml)
			reuse_existing: Return an existing worktree instead of failing
			project_path: Repository root (default: current directory)
		"""
		try:
			repo_root, settings = await resolve_project(project_path)
			manager = WorktreeManager(repo_root, settings)
			result = await manager.create(
				resolve_speck_path(repo_root, speck),
				base_branch or None,
				reuse_existing=reuse_existing,
			)
		except SpecksError as e:
			return error_response(e)
		return json.dumps({"success": True, **result.to_dict()}, indent=2)

	@mcp.tool()
	async def list_worktrees(project_path: str = "") -> str:
		"""
		List specks worktrees as git currently reports them.

		Args:
			project_path: Repository root (default: current directory)
		"""
		try:
			repo_root, settings = await resolve_project(project_path)
			worktrees = await WorktreeManager(repo_root, settings).list()
		except SpecksError as e:
			return error_response(e)
		return json.dumps({
			"success": True,
			"worktrees": [w.to_dict() for w in worktrees],
		}, indent=2)

	@mcp.tool()
	async def cleanup_worktrees(merged: bool = False, dry_run: bool = True, project_path: str = "") -> str:
		"""
		Remove worktrees whose branch has been merged into the base branch.

		Requires merged=True. Defaults to a dry run; pass dry_run=False to
		actually remove. Squash and rebase merges are not detected.

		Args:
			merged: Must be True to confirm merged-only cleanup
			dry_run: Report what would be removed without removing it
			project_path: Repository root (default: current directory)
		"""
		try:
			repo_root, settings = await resolve_project(project_path)
			result = await WorktreeManager(repo_root, settings).cleanup(merged=merged, dry_run=dry_run)
		except SpecksError as e:
			return error_response(e)
		return json.dumps({"success": True, **result.to_dict()}, indent=2)
