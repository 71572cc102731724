"""
Tracker Synchronizer - converge beads with a speck's step graph.

Safe to run any number of times: IDs already recorded in the document are
reused, and dependency edges are only added when `bd dep list` does not
already show them.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .beads import BeadsCli
from .config import ProjectSettings
from .document import SpeckDocument, StepRecord
from .errors import SyncIncompleteError

logger = logging.getLogger(__name__)

DRY_RUN_PREFIX = "bd-dryrun-"
UNTITLED = "Untitled Speck"


@dataclass
class SyncResult:
	"""Outcome of one sync pass."""
	root_id: Optional[str] = None
	mapping: dict[str, str] = field(default_factory=dict)
	issues_created: int = 0
	deps_added: int = 0
	document_updated: bool = False
	dry_run: bool = False

	def to_dict(self) -> dict:
		return {
			"root_id": self.root_id,
			"mapping": self.mapping,
			"issues_created": self.issues_created,
			"deps_added": self.deps_added,
			"document_updated": self.document_updated,
			"dry_run": self.dry_run,
		}


def step_issue_title(step: StepRecord) -> str:
	return f"Step {step.number}: {step.title}"


def step_issue_description(speck_ref: str, step: StepRecord) -> str:
	parts = [f"Specks: {speck_ref}#{step.anchor}"]
	if step.commit_message:
		parts.append(f"Commit: {step.commit_message}")
	if step.depends_on:
		parts.append(f"Depends on: {', '.join(step.depends_on)}")
	return "\n".join(parts)


class TrackerSynchronizer:
	"""
	Mirrors a speck into beads: one root issue, one child per step, one
	dependency edge per declared `Depends on` reference.
	"""

	def __init__(self, beads: BeadsCli, settings: Optional[ProjectSettings] = None):
		self.beads = beads
		self.settings = settings or ProjectSettings()

	def _speck_ref(self, document: SpeckDocument) -> str:
		try:
			return str(document.path.resolve().relative_to(Path(self.beads.repo_root).resolve()))
		except ValueError:
			return str(document.path)

	async def sync(self, document: SpeckDocument, dry_run: bool = False) -> SyncResult:
		"""
		Converge the tracker with the document.

		The document is saved after every ID writeback, so a failure part way
		through never loses an issue that was already created.

		Raises:
			TrackerNotInstalledError, TrackerNotInitializedError, CommandError,
			SyncIncompleteError if a step is still without a bead afterwards.
		"""
		await self.beads.ensure_ready()
		result = SyncResult(dry_run=dry_run)
		speck_ref = self._speck_ref(document)

		result.root_id = await self._ensure_root(document, speck_ref, result)

		for step in list(document.steps):
			if step.tracker_id:
				result.mapping[step.anchor] = step.tracker_id
				continue
			if dry_run:
				result.mapping[step.anchor] = f"{DRY_RUN_PREFIX}{step.anchor}"
				result.issues_created += 1
				continue
			issue = await self.beads.create(
				step_issue_title(step),
				description=step_issue_description(speck_ref, step),
				parent=result.root_id,
			)
			logger.info(f"Created bead {issue.id} for #{step.anchor}")
			result.issues_created += 1
			result.mapping[step.anchor] = issue.id
			document.set_step_tracker_id(step.anchor, issue.id)
			document.save()
			result.document_updated = True

		await self._ensure_dependencies(document, result)

		if not dry_run:
			missing = [s.anchor for s in document.steps if not s.tracker_id]
			if missing:
				raise SyncIncompleteError(missing)
		return result

	async def _ensure_root(self, document: SpeckDocument, speck_ref: str, result: SyncResult) -> str:
		root_id = document.beads_root_id
		if root_id:
			if await self.beads.exists(root_id):
				return root_id
			logger.warning(f"Beads root {root_id} no longer exists; creating a new one")

		if result.dry_run:
			result.issues_created += 1
			return f"{DRY_RUN_PREFIX}root"

		issue = await self.beads.create(
			document.phase_title or UNTITLED,
			description=f"Specks: {speck_ref}",
			issue_type=self.settings.root_issue_type,
		)
		logger.info(f"Created root bead {issue.id} for {speck_ref}")
		result.issues_created += 1
		document.set_root_id(issue.id)
		document.save()
		result.document_updated = True
		return issue.id

	async def _ensure_dependencies(self, document: SpeckDocument, result: SyncResult) -> None:
		for step in document.steps:
			step_id = result.mapping.get(step.anchor)
			if not step_id or not step.depends_on:
				continue

			existing: set[str] = set()
			if not step_id.startswith(DRY_RUN_PREFIX):
				existing = {dep.id for dep in await self.beads.dep_list(step_id)}

			for dep_anchor in step.depends_on:
				dep_id = result.mapping.get(dep_anchor)
				if dep_id is None:
					logger.warning(f"#{step.anchor} depends on unknown step #{dep_anchor}; skipping")
					continue
				if dep_id in existing:
					continue
				if not result.dry_run:
					await self.beads.dep_add(step_id, dep_id)
					logger.debug(f"Added dependency {step_id} -> {dep_id}")
				result.deps_added += 1
