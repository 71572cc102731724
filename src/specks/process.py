"""Subprocess boundary shared by the git, gh, and bd wrappers."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import CommandError, ToolNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
	"""Captured output of one finished tool invocation."""
	program: str
	args: list[str]
	stdout: str
	stderr: str
	returncode: int

	@property
	def ok(self) -> bool:
		return self.returncode == 0

	def check(self) -> "CommandResult":
		"""Raise CommandError unless the command succeeded."""
		if not self.ok:
			raise CommandError(self.program, self.args, self.stderr or self.stdout, self.returncode)
		return self


async def run_command(
	program: str,
	args: list[str],
	cwd: Optional[Path] = None,
	not_found: type[ToolNotFoundError] = ToolNotFoundError,
) -> CommandResult:
	"""
	Run a tool and wait for it to exit.

	No timeout is applied: a hung tool hangs the operation.

	Raises:
		ToolNotFoundError (or the given subclass) if the binary is missing.
	"""
	logger.debug("run: %s %s (cwd=%s)", program, " ".join(args), cwd)
	if cwd is not None and not Path(cwd).is_dir():
		raise CommandError(program, list(args), f"working directory does not exist: {cwd}")
	try:
		proc = await asyncio.create_subprocess_exec(
			program, *args,
			stdout=asyncio.subprocess.PIPE,
			stderr=asyncio.subprocess.PIPE,
			cwd=str(cwd) if cwd else None,
		)
	except FileNotFoundError as e:
		raise not_found(program) from e
	stdout, stderr = await proc.communicate()
	return CommandResult(
		program=program,
		args=list(args),
		stdout=stdout.decode(errors="replace").strip(),
		stderr=stderr.decode(errors="replace").strip(),
		returncode=proc.returncode or 0,
	)
