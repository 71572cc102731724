"""Helpers shared by the tool modules."""

import json
import logging
import os
from pathlib import Path

from ..config import ProjectSettings, load_project_settings
from ..errors import SpecksError
from ..git import GitCli

logger = logging.getLogger(__name__)


async def project_root(project_path: str = "") -> Path:
	start = Path(project_path).expanduser().resolve() if project_path else Path(os.getcwd())
	return await GitCli().repo_root(start)


async def resolve_project(project_path: str = "") -> tuple[Path, ProjectSettings]:
	"""Repository root and settings for a project path (default: cwd)."""
	repo_root = await project_root(project_path)
	return repo_root, load_project_settings(repo_root)


def error_response(e: SpecksError) -> str:
	logger.warning(f"{type(e).__name__}: {e}")
	return json.dumps({
		"success": False,
		"error": str(e),
		"error_type": type(e).__name__,
		"exit_code": e.exit_code,
	})
