"""Configuration system using platformdirs for user paths and .specks/config.toml for project settings."""

import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import platformdirs

from .errors import ConfigError

APP_NAME = "specks"
APP_AUTHOR = "specks"

SPECKS_DIR = ".specks"
PROJECT_CONFIG_NAME = "config.toml"


@dataclass
class Config:
	"""User-level configuration with XDG/platform conventions."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	log_dir: Path = field(init=False)

	# User-configurable
	log_level: str = "INFO"

	def __post_init__(self) -> None:
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.config_dir.mkdir(parents=True, exist_ok=True)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)


def _read_toml(path: Path) -> dict:
	try:
		with open(path, "rb") as f:
			return tomllib.load(f)
	except tomllib.TOMLDecodeError as e:
		raise ConfigError(f"{path}: {e}") from e


def _apply_env_overrides(config: Config) -> Config:
	"""Apply SPECKS_* environment variable overrides."""
	env_map = {
		"SPECKS_CONFIG_DIR": "config_dir",
		"SPECKS_DATA_DIR": "data_dir",
	}
	for env_key, attr in env_map.items():
		val = os.getenv(env_key)
		if val:
			setattr(config, attr, Path(val))
	level = os.getenv("SPECKS_LOG_LEVEL")
	if level:
		config.log_level = level.upper()
	# Recompute derived paths after overrides
	config.__post_init__()
	return config


def _apply_toml(config: Config) -> Config:
	"""Apply config.toml overrides if file exists."""
	toml_path = config.config_dir / "config.toml"
	if not toml_path.exists():
		return config

	data = _read_toml(toml_path)

	path_fields = {"config_dir", "data_dir"}
	for key, val in data.items():
		if hasattr(config, key):
			if key in path_fields:
				setattr(config, key, Path(os.path.expanduser(val)))
			else:
				setattr(config, key, val)

	config.__post_init__()
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	config.ensure_dirs()
	return config


# Singleton
_config: Optional[Config] = None


def get_config() -> Config:
	"""Get or create the global config instance."""
	global _config
	if _config is None:
		_config = load_config()
	return _config


@dataclass
class ProjectSettings:
	"""Per-repository settings from the [specks] table of .specks/config.toml."""

	bd_path: str = "bd"
	branch_prefix: str = "specks"
	worktrees_dir: str = ".specks-worktrees"
	base_branch: str = "main"
	root_issue_type: str = "epic"
	remote: str = "origin"

	def worktrees_root(self, repo_root: Path) -> Path:
		return repo_root / self.worktrees_dir


DEFAULT_PROJECT_CONFIG = """# specks project configuration

[specks]
# bd_path = "bd"
# branch_prefix = "specks"
# worktrees_dir = ".specks-worktrees"
# base_branch = "main"
# root_issue_type = "epic"
# remote = "origin"
"""


def load_project_settings(repo_root: Path) -> ProjectSettings:
	"""Load settings with precedence: SPECKS_BD_PATH > .specks/config.toml > defaults."""
	settings = ProjectSettings()
	toml_path = repo_root / SPECKS_DIR / PROJECT_CONFIG_NAME
	if toml_path.exists():
		table = _read_toml(toml_path).get("specks", {})
		known = {f.name for f in fields(ProjectSettings)}
		for key, val in table.items():
			if key in known:
				setattr(settings, key, str(val))

	bd_path = os.getenv("SPECKS_BD_PATH")
	if bd_path:
		settings.bd_path = bd_path
	return settings
