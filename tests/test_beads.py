"""Tests for the bd CLI wrapper, using small shell scripts in place of bd."""

from pathlib import Path

import pytest

from specks.beads import BeadsCli, _json_records, is_valid_bead_id
from specks.errors import CommandError, TrackerNotInitializedError, TrackerNotInstalledError
from specks.process import CommandResult
from tests.helpers import write_script

FAKE_BD = """
echo "$@" >> "$(dirname "$0")/calls.log"
case "$1" in
	--version) echo "bd version 0.40.0" ;;
	create) echo '{"id": "bd-7", "title": "'"$3"'", "status": "open", "issue_type": "task", "priority": 2}' ;;
	show)
		if [ "$2" = "bd-404" ]; then echo "Error: issue bd-404 not found" >&2; exit 1; fi
		echo '[{"id": "'"$2"'", "title": "Root", "status": "open"}]' ;;
	dep)
		if [ "$2" = "list" ]; then echo '[{"id": "bd-1", "dependency_type": "blocks"}]'; else echo '{}'; fi ;;
	close) echo '{"id": "'"$2"'", "status": "closed"}' ;;
esac
"""


@pytest.fixture
def bd(tmp_path: Path) -> BeadsCli:
	script = write_script(tmp_path / "bd", FAKE_BD)
	(tmp_path / ".beads").mkdir()
	return BeadsCli(tmp_path, bd_path=str(script))


def calls(tmp_path: Path) -> list[str]:
	return (tmp_path / "calls.log").read_text().splitlines()


# ---------------------------------------------------------------------------
# Readiness
# ---------------------------------------------------------------------------

class TestReadiness:
	@pytest.mark.asyncio
	async def test_ready(self, bd: BeadsCli):
		await bd.ensure_ready()
		assert bd.is_initialized()

	@pytest.mark.asyncio
	async def test_not_installed(self, tmp_path: Path):
		cli = BeadsCli(tmp_path, bd_path=str(tmp_path / "no-such-bd"))
		with pytest.raises(TrackerNotInstalledError):
			await cli.ensure_ready()

	@pytest.mark.asyncio
	async def test_not_initialized(self, tmp_path: Path):
		script = write_script(tmp_path / "bd", FAKE_BD)
		cli = BeadsCli(tmp_path, bd_path=str(script))
		with pytest.raises(TrackerNotInitializedError):
			await cli.ensure_ready()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

class TestCommands:
	@pytest.mark.asyncio
	async def test_create_parses_object(self, tmp_path: Path, bd: BeadsCli):
		issue = await bd.create("Step 0: Setup", description="d", parent="bd-1", issue_type="task")
		assert issue.id == "bd-7"
		assert issue.title == "Step 0: Setup"
		assert calls(tmp_path) == [
			"create --json Step 0: Setup --description d --parent bd-1 --type task"
		]

	@pytest.mark.asyncio
	async def test_show_parses_array(self, bd: BeadsCli):
		issue = await bd.show("bd-3")
		assert issue.id == "bd-3"
		assert issue.title == "Root"

	@pytest.mark.asyncio
	async def test_exists(self, bd: BeadsCli):
		assert await bd.exists("bd-3") is True
		assert await bd.exists("bd-404") is False

	@pytest.mark.asyncio
	async def test_show_failure_raises(self, bd: BeadsCli):
		with pytest.raises(CommandError, match="not found"):
			await bd.show("bd-404")

	@pytest.mark.asyncio
	async def test_dep_list(self, bd: BeadsCli):
		deps = await bd.dep_list("bd-2")
		assert [d.id for d in deps] == ["bd-1"]
		assert deps[0].dependency_type == "blocks"

	@pytest.mark.asyncio
	async def test_dep_add_argument_order(self, tmp_path: Path, bd: BeadsCli):
		await bd.dep_add("bd-2", "bd-1")
		assert calls(tmp_path) == ["dep add bd-2 bd-1 --json"]

	@pytest.mark.asyncio
	async def test_close_in_worktree(self, tmp_path: Path, bd: BeadsCli):
		worktree = tmp_path / "wt"
		worktree.mkdir()
		await bd.close("bd-2", reason="Step completed", cwd=worktree)
		assert calls(tmp_path) == ["close bd-2 --reason Step completed"]


# ---------------------------------------------------------------------------
# Output shapes
# ---------------------------------------------------------------------------

def _result(stdout: str) -> CommandResult:
	return CommandResult("bd", ["show", "bd-1", "--json"], stdout, "", 0)


class TestJsonRecords:
	def test_object_becomes_list(self):
		assert _json_records(_result('{"id": "bd-1"}')) == [{"id": "bd-1"}]

	def test_array_passes_through(self):
		assert _json_records(_result('[{"id": "bd-1"}, {"id": "bd-2"}]')) == [{"id": "bd-1"}, {"id": "bd-2"}]

	def test_empty_output_is_empty_list(self):
		assert _json_records(_result("")) == []

	def test_not_json(self):
		with pytest.raises(CommandError, match="JSON"):
			_json_records(_result("not json"))

	def test_wrong_shape(self):
		with pytest.raises(CommandError, match="expected"):
			_json_records(_result('["bd-1"]'))


@pytest.mark.parametrize("bead_id,valid", [
	("bd-1", True),
	("specks-a1b2", True),
	("bd-12.3", True),
	("BD-1", False),
	("bd", False),
	("bd 1", False),
])
def test_is_valid_bead_id(bead_id: str, valid: bool):
	assert is_valid_bead_id(bead_id) is valid
