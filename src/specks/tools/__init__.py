"""MCP tool registration - modular tool definitions."""

from mcp.server.fastmcp import FastMCP

from ..config import Config
from .beads import register_beads_tools
from .doctor import register_doctor_tools
from .steps import register_steps_tools
from .worktree import register_worktree_tools


def register_all_tools(mcp: FastMCP, config: Config) -> None:
	"""Register all MCP tools."""
	register_worktree_tools(mcp, config)
	register_beads_tools(mcp, config)
	register_steps_tools(mcp, config)
	register_doctor_tools(mcp, config)
