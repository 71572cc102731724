"""
Speck document model.

Reads the execution steps, dependency edges and bead IDs out of a speck
markdown file, and writes newly assigned bead IDs back into it. The document
itself is the durable store for the anchor -> bead mapping.

Recognised markup:

	## Phase 1.0: Title {#phase-1}
	| Beads Root | `bd-12` |
	#### Step 0: Setup {#step-0}
	**Depends on:** #step-0, #step-1
	**Bead:** `bd-13`
	**Commit:** `feat: setup`
"""

import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .config import SPECKS_DIR
from .errors import DocumentError, SpeckNotFoundError

SPECK_PREFIX = "specks-"
NON_SPECK_FILES = {"specks-skeleton.md", "specks-implementation-log.md"}

HEADING_RE = re.compile(r"^(#{2,6})\s+(.*?)\s*\{#([A-Za-z0-9_.-]+)\}\s*$")
STEP_TITLE_RE = re.compile(r"^Step\s+([0-9][0-9.]*)\s*:\s*(.+)$")
DEPENDS_RE = re.compile(r"^\*\*Depends on:\*\*\s*(.*)$")
BEAD_RE = re.compile(r"^\*\*Bead:\*\*\s*`([^`]*)`")
COMMIT_RE = re.compile(r"^\*\*Commit:\*\*\s*`([^`]*)`")
ANCHOR_REF_RE = re.compile(r"#([A-Za-z0-9_.-]+)")
ROOT_ROW_RE = re.compile(r"^\|\s*Beads Root\s*\|\s*`([^`]*)`\s*\|")
ROOT_INLINE_RE = re.compile(r"^\*\*Beads Root:\*\*\s*`([^`]*)`")

STEP_HEADING_LEVEL = 4


class StepRecord(BaseModel):
	"""One execution step of a speck."""
	anchor: str = Field(description="Stable step identifier, e.g. 'step-0'")
	number: str = Field(description="Step number as written, e.g. '2.1'")
	title: str
	depends_on: list[str] = Field(default_factory=list, description="Anchors this step depends on")
	tracker_id: Optional[str] = Field(default=None, description="Bead ID, once synced")
	commit_message: Optional[str] = None
	description: str = ""


def _is_section_break(line: str) -> bool:
	"""A heading at step level or above, or a horizontal rule, ends a step section."""
	if line.strip() == "---":
		return True
	level = len(line) - len(line.lstrip("#"))
	return 0 < level <= STEP_HEADING_LEVEL and line[level:level + 1] == " "


def _section_end(lines: list[str], start: int) -> int:
	for i in range(start + 1, len(lines)):
		if _is_section_break(lines[i]):
			return i
	return len(lines)


def _step_heading(line: str) -> Optional[tuple[str, str, str]]:
	"""Return (number, title, anchor) if the line is a step heading."""
	match = HEADING_RE.match(line)
	if not match or len(match.group(1)) != STEP_HEADING_LEVEL:
		return None
	step_match = STEP_TITLE_RE.match(match.group(2))
	if not step_match:
		return None
	return step_match.group(1), step_match.group(2).strip(), match.group(3)


def parse_steps(content: str) -> list[StepRecord]:
	"""Extract the execution steps of a speck in document order."""
	lines = content.split("\n")
	steps = []
	for i, line in enumerate(lines):
		heading = _step_heading(line)
		if heading is None:
			continue
		number, title, anchor = heading
		end = _section_end(lines, i)
		depends_on: list[str] = []
		tracker_id = None
		commit_message = None
		body = []
		for section_line in lines[i + 1:end]:
			if m := DEPENDS_RE.match(section_line):
				depends_on.extend(ANCHOR_REF_RE.findall(m.group(1)))
			elif m := BEAD_RE.match(section_line):
				tracker_id = m.group(1).strip() or None
			elif m := COMMIT_RE.match(section_line):
				commit_message = m.group(1)
			else:
				body.append(section_line)
		steps.append(StepRecord(
			anchor=anchor,
			number=number,
			title=title,
			depends_on=depends_on,
			tracker_id=tracker_id,
			commit_message=commit_message,
			description="\n".join(body).strip(),
		))
	return steps


def parse_beads_root(content: str) -> Optional[str]:
	for line in content.split("\n"):
		match = ROOT_ROW_RE.match(line) or ROOT_INLINE_RE.match(line)
		if match:
			return match.group(1).strip() or None
	return None


def parse_phase_title(content: str) -> Optional[str]:
	for line in content.split("\n"):
		match = HEADING_RE.match(line)
		if match and len(match.group(1)) == 2:
			return match.group(2)
		if line.startswith("## "):
			return line[3:].strip()
	return None


def write_bead_to_step(content: str, anchor: str, bead_id: str) -> str:
	"""
	Record a bead ID on the step with the given anchor.

	Matches on the anchor only, never on line numbers. An existing Bead line
	is replaced; otherwise the line goes after **Depends on:** when present,
	else directly under the heading.
	"""
	lines = content.split("\n")
	bead_line = f"**Bead:** `{bead_id}`"
	for i, line in enumerate(lines):
		heading = _step_heading(line)
		if heading is None or heading[2] != anchor:
			continue
		end = _section_end(lines, i)
		for j in range(i + 1, end):
			if BEAD_RE.match(lines[j]):
				lines[j] = bead_line
				return "\n".join(lines)
		insert_at = i + 1
		for j in range(i + 1, end):
			if DEPENDS_RE.match(lines[j]):
				insert_at = j + 1
				break
		lines[insert_at:insert_at] = ["", bead_line]
		return "\n".join(lines)
	raise DocumentError(f"Step anchor not found: #{anchor}")


def write_beads_root(content: str, bead_id: str) -> str:
	"""Record the root bead ID in the Plan Metadata table (or under the title)."""
	lines = content.split("\n")
	for i, line in enumerate(lines):
		if ROOT_ROW_RE.match(line):
			lines[i] = f"| Beads Root | `{bead_id}` |"
			return "\n".join(lines)
		if ROOT_INLINE_RE.match(line):
			lines[i] = f"**Beads Root:** `{bead_id}`"
			return "\n".join(lines)

	# Append a row to the metadata table
	in_metadata = False
	for i, line in enumerate(lines):
		if "Plan Metadata" in line:
			in_metadata = True
			continue
		if in_metadata and line.startswith("|"):
			j = i
			while j < len(lines) and lines[j].startswith("|"):
				j += 1
			lines.insert(j, f"| Beads Root | `{bead_id}` |")
			return "\n".join(lines)

	# No table: put it under the first level-2 heading
	for i, line in enumerate(lines):
		if line.startswith("## "):
			lines[i + 1:i + 1] = ["", f"**Beads Root:** `{bead_id}`"]
			return "\n".join(lines)
	return "\n".join([f"**Beads Root:** `{bead_id}`", ""] + lines)


class SpeckDocument:
	"""
	A speck file plus its parsed step graph.

	Usage:
		doc = SpeckDocument.load(Path(".specks/specks-auth.md"))
		for step in doc.steps:
			...
		doc.set_step_tracker_id("step-0", "bd-12")
		doc.save()
	"""

	def __init__(self, path: Path, content: str):
		self.path = path
		self.content = content
		self._reparse()

	@classmethod
	def load(cls, path: Path) -> "SpeckDocument":
		if not path.is_file():
			raise SpeckNotFoundError(str(path))
		try:
			content = path.read_text(encoding="utf-8")
		except (OSError, UnicodeDecodeError) as e:
			raise DocumentError(f"Failed to read {path}: {e}") from e
		return cls(path, content)

	def _reparse(self) -> None:
		self.steps = parse_steps(self.content)
		self.beads_root_id = parse_beads_root(self.content)
		self.phase_title = parse_phase_title(self.content)

	def step(self, anchor: str) -> Optional[StepRecord]:
		anchor = anchor.lstrip("#")
		for step in self.steps:
			if step.anchor == anchor:
				return step
		return None

	def mapping(self) -> dict[str, str]:
		"""Current anchor -> bead ID mapping for steps that have one."""
		return {s.anchor: s.tracker_id for s in self.steps if s.tracker_id}

	def unknown_dependencies(self) -> list[tuple[str, str]]:
		"""(step anchor, missing dependency anchor) pairs."""
		anchors = {s.anchor for s in self.steps}
		return [
			(s.anchor, dep)
			for s in self.steps
			for dep in s.depends_on
			if dep not in anchors
		]

	def set_step_tracker_id(self, anchor: str, bead_id: str) -> None:
		self.content = write_bead_to_step(self.content, anchor, bead_id)
		self._reparse()

	def set_root_id(self, bead_id: str) -> None:
		self.content = write_beads_root(self.content, bead_id)
		self._reparse()

	def save(self) -> None:
		try:
			self.path.write_text(self.content, encoding="utf-8")
		except OSError as e:
			raise DocumentError(f"Failed to write {self.path}: {e}") from e


def resolve_speck_path(repo_root: Path, name: str) -> Path:
	"""
	Resolve a speck reference the way users type it.

	'auth' -> .specks/specks-auth.md, 'specks-auth.md' -> .specks/specks-auth.md,
	paths and absolute paths are taken as given.
	"""
	path = Path(name)
	if path.is_absolute():
		return path
	if name.startswith(f"{SPECKS_DIR}/") or name.startswith(f"{SPECKS_DIR}\\"):
		return repo_root / name
	if name.startswith(SPECK_PREFIX) and name.endswith(".md"):
		return repo_root / SPECKS_DIR / name
	if name.endswith(".md"):
		as_is = repo_root / name
		if as_is.exists():
			return as_is
		return repo_root / SPECKS_DIR / f"{SPECK_PREFIX}{name}"
	return repo_root / SPECKS_DIR / f"{SPECK_PREFIX}{name}.md"


def list_speck_files(repo_root: Path) -> list[Path]:
	"""All speck documents under .specks/, skeleton and log excluded."""
	specks_dir = repo_root / SPECKS_DIR
	if not specks_dir.is_dir():
		return []
	return sorted(
		p for p in specks_dir.glob(f"{SPECK_PREFIX}*.md")
		if p.name not in NON_SPECK_FILES
	)
