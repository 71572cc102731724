"""Tests for the configuration system."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from specks.config import (
	DEFAULT_PROJECT_CONFIG,
	Config,
	ProjectSettings,
	_apply_env_overrides,
	load_config,
	load_project_settings,
)
from specks.errors import ConfigError


def test_config_defaults():
	"""Config should have sensible defaults."""
	config = Config()
	assert config.config_dir.is_absolute()
	assert config.data_dir.is_absolute()
	assert config.log_dir == config.data_dir / "logs"
	assert config.log_level == "INFO"


def test_config_env_overrides():
	"""Environment variables should override defaults."""
	config = Config()
	with patch.dict(os.environ, {
		"SPECKS_DATA_DIR": "/tmp/test-data",
		"SPECKS_CONFIG_DIR": "/tmp/test-config",
		"SPECKS_LOG_LEVEL": "debug",
	}):
		config = _apply_env_overrides(config)
		assert config.data_dir == Path("/tmp/test-data")
		assert config.config_dir == Path("/tmp/test-config")
		assert config.log_level == "DEBUG"
		# Derived paths should be recomputed
		assert config.log_dir == Path("/tmp/test-data/logs")


def test_config_ensure_dirs(tmp_path: Path):
	"""ensure_dirs should create all required directories."""
	config = Config(
		config_dir=tmp_path / "config",
		data_dir=tmp_path / "data",
	)
	assert not config.config_dir.exists()

	config.ensure_dirs()

	assert config.config_dir.exists()
	assert config.data_dir.exists()
	assert config.log_dir.exists()


def test_load_config_creates_dirs(tmp_path: Path):
	"""load_config should create directories."""
	with patch.dict(os.environ, {
		"SPECKS_DATA_DIR": str(tmp_path / "data"),
		"SPECKS_CONFIG_DIR": str(tmp_path / "config"),
	}):
		config = load_config()
		assert config.data_dir.exists()
		assert config.config_dir.exists()
		assert config.log_dir.exists()


def test_load_config_reads_user_toml(tmp_path: Path):
	"""Values from the platform config.toml apply when no env var overrides them."""
	config_dir = tmp_path / "config"
	config_dir.mkdir()
	(config_dir / "config.toml").write_text(f'log_level = "WARNING"\ndata_dir = "{tmp_path / "data"}"\n')
	with patch("specks.config.platformdirs.user_config_dir", return_value=str(config_dir)), \
		patch.dict(os.environ, {}, clear=False):
		for key in ("SPECKS_CONFIG_DIR", "SPECKS_DATA_DIR", "SPECKS_LOG_LEVEL"):
			os.environ.pop(key, None)
		config = load_config()
	assert config.log_level == "WARNING"
	assert config.data_dir == tmp_path / "data"


# ---------------------------------------------------------------------------
# Project settings
# ---------------------------------------------------------------------------

class TestProjectSettings:
	def test_defaults_without_file(self, tmp_path: Path):
		with patch.dict(os.environ, {}, clear=False):
			os.environ.pop("SPECKS_BD_PATH", None)
			settings = load_project_settings(tmp_path)
		assert settings == ProjectSettings()
		assert settings.worktrees_root(tmp_path) == tmp_path / ".specks-worktrees"

	def test_reads_specks_table(self, tmp_path: Path):
		(tmp_path / ".specks").mkdir()
		(tmp_path / ".specks" / "config.toml").write_text(
			'[specks]\nbase_branch = "develop"\nbranch_prefix = "wip"\nunknown_key = 1\n'
		)
		with patch.dict(os.environ, {}, clear=False):
			os.environ.pop("SPECKS_BD_PATH", None)
			settings = load_project_settings(tmp_path)
		assert settings.base_branch == "develop"
		assert settings.branch_prefix == "wip"
		assert settings.bd_path == "bd"

	def test_bd_path_env_override(self, tmp_path: Path):
		with patch.dict(os.environ, {"SPECKS_BD_PATH": "/opt/bd"}):
			assert load_project_settings(tmp_path).bd_path == "/opt/bd"

	def test_invalid_toml(self, tmp_path: Path):
		(tmp_path / ".specks").mkdir()
		(tmp_path / ".specks" / "config.toml").write_text("[specks\n")
		with pytest.raises(ConfigError):
			load_project_settings(tmp_path)

	def test_default_template_parses_to_defaults(self, tmp_path: Path):
		(tmp_path / ".specks").mkdir()
		(tmp_path / ".specks" / "config.toml").write_text(DEFAULT_PROJECT_CONFIG)
		with patch.dict(os.environ, {}, clear=False):
			os.environ.pop("SPECKS_BD_PATH", None)
			assert load_project_settings(tmp_path) == ProjectSettings()
