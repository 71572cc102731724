"""Doctor tool - read-only project health checks."""

import json

from mcp.server.fastmcp import FastMCP

from .. import doctor as reconciler
from ..config import Config
from ..errors import SpecksError
from .common import error_response, project_root


def register_doctor_tools(mcp: FastMCP, config: Config) -> None:
	"""Register the doctor tool."""

	@mcp.tool()
	async def run_doctor(project_path: str = "") -> str:
		"""
		Check worktrees, branches, pull requests, legacy files and speck
		references for problems. Changes nothing.

		Args:
			project_path: Repository root (default: current directory)
		"""
		try:
			report = await reconciler.run_doctor(await project_root(project_path))
		except SpecksError as e:
			return error_response(e)
		return json.dumps({"success": True, **report.to_dict()}, indent=2)
