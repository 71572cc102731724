"""CLI for specks: worktrees, beads sync, step completion, and doctor."""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape

from .beads import BeadsCli
from .config import (
	DEFAULT_PROJECT_CONFIG,
	PROJECT_CONFIG_NAME,
	SPECKS_DIR,
	ProjectSettings,
	load_config,
	load_project_settings,
)
from .doctor import run_doctor
from .document import SpeckDocument, resolve_speck_path
from .errors import NotAGitRepositoryError, SpecksError
from .git import GitCli
from .implementation_log import LOG_HEADER, log_path, prepend_entry, rotate_log
from .logging_config import setup_logging
from .steps import ConsistencyState, commit_step, publish, reconcile_step
from .sync import TrackerSynchronizer
from .views import (
	render_cleanup,
	render_create,
	render_doctor,
	render_publish,
	render_step_result,
	render_sync,
	render_worktrees,
)
from .worktree import WorktreeManager

GITIGNORE_COMMENT = "# Specks worktrees (isolated implementation environments)"


def _console(args: argparse.Namespace) -> Console:
	return Console(quiet=getattr(args, "quiet", False))


def _print_json(data: dict) -> None:
	print(json.dumps(data, indent=2))


def _start_dir(args: argparse.Namespace) -> Path:
	return Path(args.project_dir).expanduser().resolve() if args.project_dir else Path(os.getcwd())


async def _project(args: argparse.Namespace) -> tuple[Path, ProjectSettings]:
	repo_root = await GitCli().repo_root(_start_dir(args))
	return repo_root, load_project_settings(repo_root)


def _settings_for(path: Path) -> ProjectSettings:
	"""Settings for the repository a worktree belongs to (defaults if unreadable)."""
	async def _find() -> Optional[Path]:
		try:
			return await GitCli().repo_root(path)
		except SpecksError:
			return None
	root = asyncio.run(_find())
	return load_project_settings(root) if root else ProjectSettings()


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

def cmd_init(args: argparse.Namespace) -> int:
	"""Create .specks/ with config and log, and git-ignore the worktrees root."""
	console = _console(args)
	try:
		root = asyncio.run(GitCli().repo_root(_start_dir(args)))
	except NotAGitRepositoryError:
		root = _start_dir(args)

	specks_dir = root / SPECKS_DIR
	specks_dir.mkdir(parents=True, exist_ok=True)
	created = []

	config_path = specks_dir / PROJECT_CONFIG_NAME
	if args.force or not config_path.exists():
		config_path.write_text(DEFAULT_PROJECT_CONFIG, encoding="utf-8")
		created.append(str(config_path.relative_to(root)))

	log_file = log_path(root)
	if not log_file.exists():
		log_file.write_text(LOG_HEADER, encoding="utf-8")
		created.append(str(log_file.relative_to(root)))

	settings = load_project_settings(root)
	entry = f"{settings.worktrees_dir.rstrip('/')}/"
	gitignore = root / ".gitignore"
	existing = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
	if not any(line.strip() == entry for line in existing.splitlines()):
		prefix = "" if not existing or existing.endswith("\n") else "\n"
		gitignore.write_text(f"{existing}{prefix}\n{GITIGNORE_COMMENT}\n{entry}\n", encoding="utf-8")
		created.append(".gitignore entry")

	if args.json:
		_print_json({"success": True, "path": str(specks_dir), "created": created})
	else:
		console.print(f"Initialized specks in {specks_dir}")
		for item in created:
			console.print(f"  Created: {item}")
	return 0


# ---------------------------------------------------------------------------
# worktree
# ---------------------------------------------------------------------------

def cmd_worktree_create(args: argparse.Namespace) -> int:
	async def _run():
		repo_root, settings = await _project(args)
		manager = WorktreeManager(repo_root, settings)
		speck_path = resolve_speck_path(repo_root, args.speck)
		return await manager.create(speck_path, args.base, reuse_existing=not args.no_reuse)

	result = asyncio.run(_run())
	if args.json:
		_print_json({"success": True, **result.to_dict()})
	else:
		render_create(result, _console(args))
	return 0


def cmd_worktree_list(args: argparse.Namespace) -> int:
	async def _run():
		repo_root, settings = await _project(args)
		return await WorktreeManager(repo_root, settings).list()

	worktrees = asyncio.run(_run())
	if args.json:
		_print_json({"success": True, "worktrees": [w.to_dict() for w in worktrees]})
	else:
		render_worktrees(worktrees, _console(args))
	return 0


def cmd_worktree_cleanup(args: argparse.Namespace) -> int:
	async def _run():
		repo_root, settings = await _project(args)
		manager = WorktreeManager(repo_root, settings)
		return await manager.cleanup(merged=args.merged, dry_run=args.dry_run, base_branch=args.base)

	result = asyncio.run(_run())
	if args.json:
		_print_json({"success": True, **result.to_dict()})
	else:
		render_cleanup(result, _console(args))
	return 0


def cmd_worktree_remove(args: argparse.Namespace) -> int:
	async def _run():
		repo_root, settings = await _project(args)
		return await WorktreeManager(repo_root, settings).remove(args.target, force=args.force)

	removed = asyncio.run(_run())
	if args.json:
		_print_json({"success": True, "removed": removed.to_dict()})
	else:
		_console(args).print(f"Removed worktree {removed.path} ({removed.branch})")
	return 0


# ---------------------------------------------------------------------------
# beads
# ---------------------------------------------------------------------------

def cmd_beads_sync(args: argparse.Namespace) -> int:
	async def _run():
		repo_root, settings = await _project(args)
		document = SpeckDocument.load(resolve_speck_path(repo_root, args.speck))
		beads = BeadsCli(repo_root, settings.bd_path)
		return await TrackerSynchronizer(beads, settings).sync(document, dry_run=args.dry_run)

	result = asyncio.run(_run())
	if args.json:
		_print_json({"success": True, **result.to_dict()})
	else:
		render_sync(result, _console(args))
	return 0


def cmd_beads_close(args: argparse.Namespace) -> int:
	async def _run():
		repo_root, settings = await _project(args)
		await BeadsCli(repo_root, settings.bd_path).close(args.bead_id, args.reason)

	asyncio.run(_run())
	if args.json:
		_print_json({"success": True, "closed": args.bead_id})
	else:
		_console(args).print(f"Closed {args.bead_id}")
	return 0


# ---------------------------------------------------------------------------
# step-commit / step-reconcile / step-publish
# ---------------------------------------------------------------------------

def cmd_step_commit(args: argparse.Namespace) -> int:
	worktree = Path(args.worktree).expanduser().resolve()
	settings = _settings_for(worktree)
	result = asyncio.run(commit_step(
		worktree,
		args.step,
		args.files,
		args.message,
		args.bead,
		close_reason=args.close_reason,
		speck=args.speck,
		summary=args.summary,
		beads=BeadsCli(worktree, settings.bd_path),
	))
	if args.json:
		_print_json({"success": result.ok, **result.to_dict()})
	else:
		render_step_result(result, _console(args))
	return 1 if result.state == ConsistencyState.FAILED else 0


def cmd_step_reconcile(args: argparse.Namespace) -> int:
	worktree = Path(args.worktree).expanduser().resolve()
	settings = _settings_for(worktree)
	result = asyncio.run(reconcile_step(
		worktree,
		args.commit,
		args.bead,
		close_reason=args.close_reason,
		step=args.step or "",
		beads=BeadsCli(worktree, settings.bd_path),
	))
	if args.json:
		_print_json({"success": result.state == ConsistencyState.COMPLETED, **result.to_dict()})
	else:
		render_step_result(result, _console(args))
	return 0 if result.state == ConsistencyState.COMPLETED else 1


def cmd_step_publish(args: argparse.Namespace) -> int:
	worktree = Path(args.worktree).expanduser().resolve()
	settings = _settings_for(worktree)
	result = asyncio.run(publish(
		worktree,
		args.base or settings.base_branch,
		repo=args.repo,
		title=args.title,
		remote=settings.remote,
	))
	if args.json:
		_print_json({"success": result.pr_created, **result.to_dict()})
	else:
		render_publish(result, _console(args))
	return 0 if result.pr_created else 1


# ---------------------------------------------------------------------------
# log
# ---------------------------------------------------------------------------

def _log_root(args: argparse.Namespace) -> Path:
	return Path(args.root).expanduser().resolve() if args.root else _start_dir(args)


def cmd_log_prepend(args: argparse.Namespace) -> int:
	path = prepend_entry(_log_root(args), args.step, args.speck, args.summary, bead=args.bead)
	if args.json:
		_print_json({"success": True, "entry_added": True, "path": str(path)})
	else:
		_console(args).print(f"Added entry for {args.step} to {path}")
	return 0


def cmd_log_rotate(args: argparse.Namespace) -> int:
	result = rotate_log(_log_root(args), force=args.force)
	if args.json:
		_print_json({"success": True, **result.to_dict()})
	elif result.rotated:
		_console(args).print(f"Rotated implementation log to {result.archive_path}")
	else:
		_console(args).print(f"Log not rotated ({result.reason})")
	return 0


# ---------------------------------------------------------------------------
# doctor / serve
# ---------------------------------------------------------------------------

def cmd_doctor(args: argparse.Namespace) -> int:
	async def _run():
		try:
			repo_root = await GitCli().repo_root(_start_dir(args))
		except NotAGitRepositoryError:
			repo_root = _start_dir(args)
		return await run_doctor(repo_root)

	report = asyncio.run(_run())
	if args.json:
		_print_json({"success": True, **report.to_dict()})
	else:
		render_doctor(report, _console(args))
	return 0


def cmd_serve(args: argparse.Namespace) -> int:
	"""Run the MCP server (stdio transport)."""
	from .server import mcp
	mcp.run()
	return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="specks",
		description="Worktree lifecycle and beads reconciliation for speck-driven development",
	)
	parser.add_argument("-C", "--project-dir", default=None, help="Run as if started in this directory")
	verbosity = parser.add_mutually_exclusive_group()
	verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
	verbosity.add_argument("-q", "--quiet", action="store_true", help="Only print errors")
	subparsers = parser.add_subparsers(dest="command")

	def add_json(p: argparse.ArgumentParser) -> None:
		p.add_argument("--json", action="store_true", help="Machine-readable output")

	# init
	init_parser = subparsers.add_parser("init", help="Initialize .specks/ in this repository")
	init_parser.add_argument("--force", action="store_true", help="Overwrite an existing config.toml")
	add_json(init_parser)
	init_parser.set_defaults(func=cmd_init)

	# worktree
	wt_parser = subparsers.add_parser("worktree", help="Manage speck worktrees")
	wt_sub = wt_parser.add_subparsers(dest="worktree_command")

	wt_create = wt_sub.add_parser("create", help="Create (or reuse) the worktree for a speck")
	wt_create.add_argument("speck", help="Speck name or path")
	wt_create.add_argument("--base", default=None, help="Base branch (default from config)")
	wt_create.add_argument("--no-reuse", action="store_true", help="Fail if a worktree already exists")
	add_json(wt_create)
	wt_create.set_defaults(func=cmd_worktree_create)

	wt_list = wt_sub.add_parser("list", help="List specks worktrees")
	add_json(wt_list)
	wt_list.set_defaults(func=cmd_worktree_list)

	wt_cleanup = wt_sub.add_parser("cleanup", help="Remove worktrees merged into the base branch")
	wt_cleanup.add_argument("--merged", action="store_true", help="Required: only remove merged worktrees")
	wt_cleanup.add_argument("--dry-run", action="store_true", help="Show what would be removed")
	wt_cleanup.add_argument("--base", default=None, help="Base branch (default from config)")
	add_json(wt_cleanup)
	wt_cleanup.set_defaults(func=cmd_worktree_cleanup)

	wt_remove = wt_sub.add_parser("remove", help="Remove one worktree and its branch")
	wt_remove.add_argument("target", help="Speck path, branch name, or worktree path")
	wt_remove.add_argument("--force", action="store_true", help="Remove even with uncommitted changes")
	add_json(wt_remove)
	wt_remove.set_defaults(func=cmd_worktree_remove)

	# beads
	beads_parser = subparsers.add_parser("beads", help="Beads tracker integration")
	beads_sub = beads_parser.add_subparsers(dest="beads_command")

	beads_sync = beads_sub.add_parser("sync", help="Create beads for a speck's steps")
	beads_sync.add_argument("speck", help="Speck name or path")
	beads_sync.add_argument("--dry-run", action="store_true", help="Show what would be created")
	add_json(beads_sync)
	beads_sync.set_defaults(func=cmd_beads_sync)

	beads_close = beads_sub.add_parser("close", help="Close a bead")
	beads_close.add_argument("bead_id", help="Bead ID")
	beads_close.add_argument("--reason", default=None, help="Close reason")
	add_json(beads_close)
	beads_close.set_defaults(func=cmd_beads_close)

	# step-commit
	sc = subparsers.add_parser("step-commit", help="Commit a step and close its bead")
	sc.add_argument("--worktree", required=True, help="Worktree path")
	sc.add_argument("--step", required=True, help="Step anchor, e.g. #step-0")
	sc.add_argument("--message", required=True, help="Commit message")
	sc.add_argument("--bead", required=True, help="Bead ID to close")
	sc.add_argument("--files", nargs="+", required=True, help="Files to stage (relative to the worktree)")
	sc.add_argument("--close-reason", default=None, help="Bead close reason")
	sc.add_argument("--speck", default=None, help="Speck path for the log entry")
	sc.add_argument("--summary", default=None, help="Add an implementation log entry with this summary")
	add_json(sc)
	sc.set_defaults(func=cmd_step_commit)

	# step-reconcile
	sr = subparsers.add_parser("step-reconcile", help="Retry the bead close for a committed step")
	sr.add_argument("--worktree", required=True, help="Worktree path")
	sr.add_argument("--commit", required=True, help="Commit hash from step-commit")
	sr.add_argument("--bead", required=True, help="Bead ID to close")
	sr.add_argument("--step", default=None, help="Step anchor (for display)")
	sr.add_argument("--close-reason", default=None, help="Bead close reason")
	add_json(sr)
	sr.set_defaults(func=cmd_step_reconcile)

	# step-publish
	sp = subparsers.add_parser("step-publish", help="Push the worktree branch and open a PR")
	sp.add_argument("--worktree", required=True, help="Worktree path")
	sp.add_argument("--base", default=None, help="PR base branch (default from config)")
	sp.add_argument("--repo", default=None, help="owner/repo (default: from the remote URL)")
	sp.add_argument("--title", default=None, help="PR title")
	add_json(sp)
	sp.set_defaults(func=cmd_step_publish)

	# log
	log_parser = subparsers.add_parser("log", help="Implementation log")
	log_sub = log_parser.add_subparsers(dest="log_command")

	log_prepend = log_sub.add_parser("prepend", help="Add an entry to the implementation log")
	log_prepend.add_argument("--step", required=True, help="Step anchor")
	log_prepend.add_argument("--speck", required=True, help="Speck path")
	log_prepend.add_argument("--summary", required=True, help="One-line summary")
	log_prepend.add_argument("--bead", default=None, help="Bead ID")
	log_prepend.add_argument("--root", default=None, help="Repository or worktree root (default: cwd)")
	add_json(log_prepend)
	log_prepend.set_defaults(func=cmd_log_prepend)

	log_rotate = log_sub.add_parser("rotate", help="Archive the log when over threshold")
	log_rotate.add_argument("--force", action="store_true", help="Rotate even below threshold")
	log_rotate.add_argument("--root", default=None, help="Repository or worktree root (default: cwd)")
	add_json(log_rotate)
	log_rotate.set_defaults(func=cmd_log_rotate)

	# doctor
	doctor_parser = subparsers.add_parser("doctor", help="Health checks (read-only)")
	add_json(doctor_parser)
	doctor_parser.set_defaults(func=cmd_doctor)

	# serve
	serve_parser = subparsers.add_parser("serve", help="Run MCP server (stdio)")
	serve_parser.set_defaults(func=cmd_serve)

	return parser


def main() -> None:
	"""CLI entry point."""
	load_dotenv()
	parser = build_parser()
	args = parser.parse_args()

	if not args.command or not hasattr(args, "func"):
		parser.print_help()
		sys.exit(1)

	config = load_config()
	level = "DEBUG" if args.verbose else "ERROR" if args.quiet else config.log_level
	setup_logging(level, config.log_dir)

	try:
		code = args.func(args)
	except SpecksError as e:
		if getattr(args, "json", False):
			_print_json({
				"success": False,
				"error": str(e),
				"error_type": type(e).__name__,
				"exit_code": e.exit_code,
			})
		else:
			Console(stderr=True).print(f"[red]error:[/red] {escape(str(e))}", highlight=False)
		sys.exit(e.exit_code)
	sys.exit(code)


if __name__ == "__main__":
	main()
