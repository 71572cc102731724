"""
Typed boundary for the beads (`bd`) issue tracker CLI.

`bd` answers some queries with a single JSON object and others with a
one-element array. Both shapes are normalised to a list and validated
against the same pydantic models.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import CommandError, TrackerNotInitializedError, TrackerNotInstalledError
from .process import CommandResult, run_command

logger = logging.getLogger(__name__)

BEADS_DIR = ".beads"
BEAD_ID_RE = re.compile(r"^[a-z0-9][a-z0-9-]*-[a-z0-9]+(\.[0-9]+)*$")


def is_valid_bead_id(bead_id: str) -> bool:
	return bool(BEAD_ID_RE.match(bead_id))


class BeadIssue(BaseModel):
	"""An issue as returned by `bd create/show --json`."""
	model_config = ConfigDict(extra="ignore")

	id: str
	title: str = ""
	description: str = ""
	status: str = ""
	issue_type: str = ""


class BeadDependency(BaseModel):
	"""One row of `bd dep list --json`: the issue depended upon."""
	model_config = ConfigDict(extra="ignore")

	id: str
	dependency_type: str = ""
	title: str = ""
	status: str = ""


def _json_records(result: CommandResult) -> list[dict[str, Any]]:
	"""Parse bd JSON output that may be either an object or an array of objects."""
	try:
		payload = json.loads(result.stdout or "[]")
	except json.JSONDecodeError as e:
		raise CommandError(result.program, result.args, f"unparseable JSON output: {e}") from e
	if isinstance(payload, dict):
		payload = [payload]
	if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
		raise CommandError(result.program, result.args, "expected a JSON object or array of objects")
	return payload


class BeadsCli:
	"""
	Async wrapper around `bd`.

	Commands run with the repository root as working directory so `bd` finds
	the project's .beads/ store; `close` may be pointed at a worktree instead.
	"""

	def __init__(self, repo_root: Path, bd_path: str = "bd"):
		self.repo_root = repo_root
		self.bd_path = bd_path

	async def _run(self, args: list[str], cwd: Optional[Path] = None) -> CommandResult:
		return await run_command(
			self.bd_path, args, cwd=cwd or self.repo_root, not_found=TrackerNotInstalledError,
		)

	def is_initialized(self) -> bool:
		return (self.repo_root / BEADS_DIR).is_dir()

	async def version(self) -> str:
		return (await self._run(["--version"])).check().stdout

	async def ensure_ready(self) -> None:
		"""Raise unless bd is installed and the project has a beads store."""
		await self.version()
		if not self.is_initialized():
			raise TrackerNotInitializedError()

	async def create(
		self,
		title: str,
		description: Optional[str] = None,
		parent: Optional[str] = None,
		issue_type: Optional[str] = None,
	) -> BeadIssue:
		args = ["create", "--json", title]
		if description:
			args += ["--description", description]
		if parent:
			args += ["--parent", parent]
		if issue_type:
			args += ["--type", issue_type]
		result = (await self._run(args)).check()
		records = _json_records(result)
		if not records:
			raise CommandError(self.bd_path, args, "bd create returned no issue")
		return self._validate(BeadIssue, records[0], result)

	async def show(self, bead_id: str) -> BeadIssue:
		result = (await self._run(["show", bead_id, "--json"])).check()
		records = _json_records(result)
		if not records:
			raise CommandError(self.bd_path, result.args, f"bd show returned no issue for {bead_id}")
		return self._validate(BeadIssue, records[0], result)

	async def exists(self, bead_id: str) -> bool:
		"""True if `bd show` can load the issue."""
		try:
			await self.show(bead_id)
		except CommandError as e:
			logger.debug(f"bd show {bead_id}: {e}")
			return False
		return True

	async def close(self, bead_id: str, reason: Optional[str] = None, cwd: Optional[Path] = None) -> None:
		args = ["close", bead_id]
		if reason:
			args += ["--reason", reason]
		(await self._run(args, cwd=cwd)).check()

	async def dep_add(self, from_id: str, to_id: str) -> None:
		"""Record that `from_id` depends on `to_id`."""
		(await self._run(["dep", "add", from_id, to_id, "--json"])).check()

	async def dep_list(self, bead_id: str) -> list[BeadDependency]:
		result = (await self._run(["dep", "list", bead_id, "--json"])).check()
		return [self._validate(BeadDependency, r, result) for r in _json_records(result)]

	def _validate(self, model, record: dict[str, Any], result: CommandResult):
		try:
			return model.model_validate(record)
		except ValidationError as e:
			raise CommandError(result.program, result.args, f"unexpected bd output: {e}") from e
