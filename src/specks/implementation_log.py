"""
Implementation log: a newest-first markdown record of completed steps.

Lives at .specks/specks-implementation-log.md. When it grows past 500 lines
or 100 KiB it is moved to .specks/archive/ and a fresh log is started.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import SPECKS_DIR

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "specks-implementation-log.md"
ARCHIVE_DIR_NAME = "archive"

LOG_LINE_THRESHOLD = 500
LOG_BYTE_THRESHOLD = 102400

# doctor warns before rotation kicks in
WARN_LINE_THRESHOLD = 400
WARN_BYTE_THRESHOLD = 80 * 1024

LOG_HEADER = """# Specks Implementation Log

This file documents the implementation progress for this project.

**Format:** Each entry records a completed step with tasks, files, and verification results.

Entries are sorted newest-first.

---

"""


def log_path(root: Path) -> Path:
	return root / SPECKS_DIR / LOG_FILE_NAME


def archive_dir(root: Path) -> Path:
	return root / SPECKS_DIR / ARCHIVE_DIR_NAME


@dataclass(frozen=True)
class LogStats:
	lines: int
	bytes: int

	@property
	def over_rotation_threshold(self) -> bool:
		return self.lines > LOG_LINE_THRESHOLD or self.bytes > LOG_BYTE_THRESHOLD

	@property
	def over_warning_threshold(self) -> bool:
		return self.lines > WARN_LINE_THRESHOLD or self.bytes > WARN_BYTE_THRESHOLD


def log_stats(root: Path) -> Optional[LogStats]:
	"""Line and byte counts of the log, or None if it does not exist."""
	path = log_path(root)
	if not path.is_file():
		return None
	data = path.read_bytes()
	return LogStats(lines=data.count(b"\n"), bytes=len(data))


@dataclass(frozen=True)
class RotateResult:
	rotated: bool
	archive_path: Optional[Path] = None
	reason: str = ""

	def to_dict(self) -> dict:
		return {
			"rotated": self.rotated,
			"archive_path": str(self.archive_path) if self.archive_path else None,
			"reason": self.reason,
		}


def rotate_log(root: Path, force: bool = False, now: Optional[datetime] = None) -> RotateResult:
	"""Archive the log if it is over threshold (or always, with force)."""
	stats = log_stats(root)
	if stats is None:
		return RotateResult(rotated=False, reason="no log")
	if not force and not stats.over_rotation_threshold:
		return RotateResult(rotated=False, reason="below threshold")

	now = now or datetime.now(timezone.utc)
	target_dir = archive_dir(root)
	target_dir.mkdir(parents=True, exist_ok=True)
	archive = target_dir / f"implementation-log-{now.strftime('%Y-%m-%d-%H%M%S')}.md"
	log_path(root).replace(archive)
	log_path(root).write_text(LOG_HEADER, encoding="utf-8")
	logger.info(f"Rotated implementation log to {archive} ({stats.lines} lines, {stats.bytes} bytes)")
	return RotateResult(rotated=True, archive_path=archive, reason="forced" if force else "threshold")


def format_entry(
	step: str,
	speck: str,
	summary: str,
	bead: Optional[str] = None,
	now: Optional[datetime] = None,
) -> str:
	now = now or datetime.now(timezone.utc)
	anchor = step if step.startswith("#") else f"#{step}"
	lines = [
		"---",
		f"step: {anchor}",
		f"speck: {speck}",
	]
	if bead:
		lines.append(f"bead: {bead}")
	lines += [
		f"date: {now.strftime('%Y-%m-%dT%H:%M:%SZ')}",
		"---",
		"",
		f"## {anchor}: {summary}",
		"",
		"",
	]
	return "\n".join(lines)


def prepend_entry(
	root: Path,
	step: str,
	speck: str,
	summary: str,
	bead: Optional[str] = None,
	now: Optional[datetime] = None,
) -> Path:
	"""
	Insert an entry right after the log header (the first `---` rule).

	Creates the log with its header when it does not exist yet.
	"""
	path = log_path(root)
	if path.is_file():
		content = path.read_text(encoding="utf-8")
	else:
		path.parent.mkdir(parents=True, exist_ok=True)
		content = LOG_HEADER

	entry = format_entry(step, speck, summary, bead, now)
	marker = "\n---\n"
	idx = content.find(marker)
	if idx == -1:
		content = entry + content
	else:
		head = content[:idx + len(marker)]
		rest = content[idx + len(marker):].lstrip("\n")
		content = head + "\n" + entry + rest
	path.write_text(content, encoding="utf-8")
	return path
