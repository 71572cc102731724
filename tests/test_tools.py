"""Tests for the MCP tool wrappers."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from mcp.server.fastmcp import FastMCP

from specks.config import Config
from specks.tools import register_all_tools
from specks.tools.beads import register_beads_tools
from specks.tools.doctor import register_doctor_tools
from specks.tools.steps import register_steps_tools
from specks.tools.worktree import register_worktree_tools
from tests.helpers import capture_tools, git, init_git_repo, write_script, write_speck

FAKE_BD = """
dir="$(dirname "$0")"
case "$1" in
	--version) echo "bd version 0.40.0" ;;
	create)
		n=$(cat "$dir/counter" 2>/dev/null || echo 0)
		n=$((n + 1))
		echo "$n" > "$dir/counter"
		echo '[{"id": "bd-'"$n"'"}]' ;;
	dep) if [ "$2" = "list" ]; then echo '[]'; else echo '{}'; fi ;;
	close) echo "$2" >> "$dir/closed" ;;
esac
"""


@pytest.fixture
def repo(tmp_path: Path) -> Path:
	path = tmp_path / "repo"
	init_git_repo(path)
	write_speck(path, "auth")
	return path


@pytest.fixture
def bd_dir(tmp_path: Path, monkeypatch) -> Path:
	tools = tmp_path / "tools"
	tools.mkdir()
	write_script(tools / "bd", FAKE_BD)
	monkeypatch.setenv("SPECKS_BD_PATH", str(tools / "bd"))
	return tools


def test_register_all_tools():
	tools = capture_tools(MagicMock(), register_all_tools)
	assert set(tools) == {
		"create_worktree", "list_worktrees", "cleanup_worktrees",
		"sync_beads",
		"step_commit", "step_reconcile", "step_publish",
		"run_doctor",
	}


@pytest.mark.asyncio
async def test_tools_register_on_fastmcp(tmp_path: Path):
	server = FastMCP("specks-test")
	register_all_tools(server, Config(config_dir=tmp_path / "config", data_dir=tmp_path / "data"))
	names = {tool.name for tool in await server.list_tools()}
	assert "create_worktree" in names
	assert "run_doctor" in names


# ---------------------------------------------------------------------------
# Worktree tools
# ---------------------------------------------------------------------------

class TestWorktreeTools:
	@pytest.mark.asyncio
	async def test_create_and_list(self, repo: Path):
		tools = capture_tools(MagicMock(), register_worktree_tools)
		created = json.loads(await tools["create_worktree"]("auth", project_path=str(repo)))
		assert created["success"] is True
		assert created["reused"] is False

		again = json.loads(await tools["create_worktree"]("auth", project_path=str(repo)))
		assert again["reused"] is True

		listed = json.loads(await tools["list_worktrees"](project_path=str(repo)))
		assert [w["branch"] for w in listed["worktrees"]] == [created["branch"]]

	@pytest.mark.asyncio
	async def test_create_error_is_structured(self, repo: Path):
		tools = capture_tools(MagicMock(), register_worktree_tools)
		data = json.loads(await tools["create_worktree"]("missing", project_path=str(repo)))
		assert data["success"] is False
		assert data["error_type"] == "SpeckNotFoundError"
		assert data["exit_code"] == 7

	@pytest.mark.asyncio
	async def test_not_a_repository(self, tmp_path: Path):
		tools = capture_tools(MagicMock(), register_worktree_tools)
		data = json.loads(await tools["list_worktrees"](project_path=str(tmp_path)))
		assert data["success"] is False
		assert data["exit_code"] == 5

	@pytest.mark.asyncio
	async def test_cleanup_needs_merged(self, repo: Path):
		tools = capture_tools(MagicMock(), register_worktree_tools)
		data = json.loads(await tools["cleanup_worktrees"](project_path=str(repo)))
		assert data["success"] is False
		assert data["exit_code"] == 2

	@pytest.mark.asyncio
	async def test_cleanup_defaults_to_dry_run(self, repo: Path):
		tools = capture_tools(MagicMock(), register_worktree_tools)
		created = json.loads(await tools["create_worktree"]("auth", project_path=str(repo)))
		worktree = Path(created["path"])
		(worktree / "f.txt").write_text("x\n")
		git(worktree, "add", "f.txt")
		git(worktree, "commit", "-m", "work")
		git(repo, "merge", "--no-ff", "-m", "merge", created["branch"])

		data = json.loads(await tools["cleanup_worktrees"](merged=True, project_path=str(repo)))
		assert data["dry_run"] is True
		assert len(data["removed"]) == 1
		assert worktree.is_dir()


# ---------------------------------------------------------------------------
# Beads, step and doctor tools
# ---------------------------------------------------------------------------

class TestOtherTools:
	@pytest.mark.asyncio
	async def test_sync_beads(self, repo: Path, bd_dir: Path):
		(repo / ".beads").mkdir()
		tools = capture_tools(MagicMock(), register_beads_tools)
		data = json.loads(await tools["sync_beads"]("auth", project_path=str(repo)))
		assert data["success"] is True
		assert data["issues_created"] == 4
		assert set(data["mapping"]) == {"step-0", "step-1", "step-2"}

	@pytest.mark.asyncio
	async def test_step_commit(self, repo: Path, bd_dir: Path):
		(repo / "auth.py").write_text("x = 1\n")
		tools = capture_tools(MagicMock(), register_steps_tools)
		data = json.loads(await tools["step_commit"](
			str(repo), "#step-0", "feat: setup", "bd-3", ["auth.py"],
		))
		assert data["success"] is True
		assert data["state"] == "completed"
		assert (bd_dir / "closed").read_text().split() == ["bd-3"]

	@pytest.mark.asyncio
	async def test_step_reconcile_unknown_commit(self, repo: Path, bd_dir: Path):
		tools = capture_tools(MagicMock(), register_steps_tools)
		data = json.loads(await tools["step_reconcile"](str(repo), "0" * 40, "bd-3"))
		assert data["success"] is False
		assert data["error_type"] == "UsageError"

	@pytest.mark.asyncio
	async def test_run_doctor(self, repo: Path):
		tools = capture_tools(MagicMock(), register_doctor_tools)
		data = json.loads(await tools["run_doctor"](project_path=str(repo)))
		assert data["success"] is True
		assert len(data["checks"]) == 7
