"""Beads tools - mirror a speck's steps into the beads tracker."""

import json

from mcp.server.fastmcp import FastMCP

from ..beads import BeadsCli
from ..config import Config
from ..document import SpeckDocument, resolve_speck_path
from ..errors import SpecksError
from ..sync import TrackerSynchronizer
from .common import error_response, resolve_project


def register_beads_tools(mcp: FastMCP, config: Config) -> None:
	"""Register beads synchronization tools."""

	@mcp.tool()
	async def sync_beads(speck: str, dry_run: bool = False, project_path: str = "") -> str:
		"""
		Create or update beads for every step of a speck.

		Safe to call repeatedly: steps that already carry a **Bead:** ID are
		left alone and existing dependency edges are not duplicated. New bead
		IDs are written back into the speck file.

		Args:
			speck: Speck name or path (e.g. 'auth' or '.specks/specks-auth.md')
			dry_run: Report what would be created without touching beads or the file
			project_path: Repository root (default: current directory)
		"""
		try:
			repo_root, settings = await resolve_project(project_path)
			document = SpeckDocument.load(resolve_speck_path(repo_root, speck))
			beads = BeadsCli(repo_root, settings.bd_path)
			result = await TrackerSynchronizer(beads, settings).sync(document, dry_run=dry_run)
		except SpecksError as e:
			return error_response(e)
		return json.dumps({"success": True, **result.to_dict()}, indent=2)
