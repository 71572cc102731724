"""Rich views for command results."""

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from .doctor import PASS, DoctorReport
from .steps import ConsistencyState, PublishResult, StepCommitResult
from .sync import SyncResult
from .worktree import CleanupResult, CreateResult, DiscoveredWorktree

STATE_STYLES = {
	ConsistencyState.COMPLETED: "[green]completed[/green]",
	ConsistencyState.NEEDS_RECONCILE: "[yellow]needs_reconcile[/yellow]",
	ConsistencyState.FAILED: "[red]failed[/red]",
	ConsistencyState.IN_PROGRESS: "[dim]in_progress[/dim]",
	ConsistencyState.PENDING: "[dim]pending[/dim]",
}

CHECK_ICONS = {
	PASS: "[green]\\[ok][/green]",
	"warn": "[yellow]\\[!!][/yellow]",
}


def render_worktrees(worktrees: list[DiscoveredWorktree], console: Optional[Console] = None) -> None:
	console = console or Console()
	if not worktrees:
		console.print("[dim]No specks worktrees.[/dim]")
		return

	table = Table(title="Specks Worktrees")
	table.add_column("Speck", style="cyan")
	table.add_column("Branch")
	table.add_column("Base", style="dim")
	table.add_column("Path", style="dim")
	for w in worktrees:
		table.add_row(escape(w.speck_slug), escape(w.branch), escape(w.base_branch), escape(str(w.path)))
	console.print(table)


def render_create(result: CreateResult, console: Optional[Console] = None) -> None:
	console = console or Console()
	w = result.worktree
	verb = "Reusing" if result.reused else "Created"
	lines = [
		f"[bold]Branch:[/bold] {escape(w.branch)}",
		f"[bold]Base:[/bold]   {escape(w.base_branch)}",
		f"[bold]Path:[/bold]   {escape(str(w.path))}",
	]
	console.print(Panel("\n".join(lines), title=f"{verb} worktree: {escape(w.speck_slug)}", border_style="cyan"))


def render_cleanup(result: CleanupResult, console: Optional[Console] = None) -> None:
	console = console or Console()
	verb = "Would remove" if result.dry_run else "Removed"
	if not result.removed and not result.skipped:
		console.print("[dim]No merged worktrees to clean up.[/dim]")
		return
	for w in result.removed:
		console.print(f"  {verb}: {escape(w.branch)} [dim]({escape(str(w.path))})[/dim]")
	for branch, reason in result.skipped:
		console.print(f"  [yellow]Skipped:[/yellow] {escape(branch)} [dim]- {escape(reason)}[/dim]")


def render_sync(result: SyncResult, console: Optional[Console] = None) -> None:
	console = console or Console()
	title = "Beads sync (dry run)" if result.dry_run else "Beads sync"
	tree = Tree(
		f"[bold]{result.root_id}[/bold]  "
		f"[dim]({result.issues_created} created, {result.deps_added} dependencies added)[/dim]"
	)
	for anchor, bead_id in result.mapping.items():
		tree.add(f"#{anchor} -> {bead_id}")
	console.print(Panel(tree, title=title, border_style="cyan"))


def render_step_result(result: StepCommitResult, console: Optional[Console] = None) -> None:
	console = console or Console()
	lines = [
		f"[bold]State:[/bold]  {STATE_STYLES.get(result.state, result.state.value)}",
		f"[bold]Bead:[/bold]   {result.tracker_id}",
	]
	if result.commit_hash:
		lines.append(f"[bold]Commit:[/bold] {result.commit_hash}")
	if result.log_rotated:
		lines.append("[bold]Log:[/bold]    rotated")
	if result.error:
		lines.append("")
		lines.append(f"[red]{escape(result.error)}[/red]")
	if result.state == ConsistencyState.NEEDS_RECONCILE:
		lines.append("")
		lines.append(
			f"Retry with: specks step-reconcile --commit {result.commit_hash or '<commit>'} --bead {result.tracker_id}"
		)
	console.print(Panel("\n".join(lines), title=f"Step {result.step}", border_style="cyan"))


def render_publish(result: PublishResult, console: Optional[Console] = None) -> None:
	console = console or Console()
	lines = [
		f"[bold]Branch:[/bold] {result.branch or '-'}",
		f"[bold]Pushed:[/bold] {'yes' if result.pushed else 'no'}",
		f"[bold]PR:[/bold]     {result.pr_url or ('created' if result.pr_created else 'not created')}",
	]
	if result.error:
		lines.append("")
		lines.append(f"[red]{escape(result.error)}[/red]")
	console.print(Panel("\n".join(lines), title="Publish", border_style="cyan"))


def render_doctor(report: DoctorReport, console: Optional[Console] = None) -> None:
	console = console or Console()
	console.print("[bold]specks doctor[/bold]")
	console.print()
	for check in report.checks:
		icon = CHECK_ICONS.get(check.status, "\\[?]")
		console.print(f"  {icon} {check.name} - {escape(check.message)}")
		for detail in check.details:
			console.print(f"       [dim]{escape(detail)}[/dim]")
	console.print()
	console.print(f"  {report.passed} passed, {report.warnings} warning(s)")
