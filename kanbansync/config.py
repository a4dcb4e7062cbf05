"""Configuration loading from YAML and environment.

The config is built once at process start and passed into every component;
nothing below the CLI reads the environment. Secrets (tokens) are taken from
environment variables or from files (Docker/CI secrets). Never put real tokens
in config files committed to the repo.
"""

import os
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_PATH = Path("kanbansync.yaml")
BOT_LOGIN = "github-actions[bot]"
BOT_EMAIL = "41898282+github-actions[bot]@users.noreply.github.com"


class ConfigurationError(Exception):
    """Raised when required configuration (token, owner, board number) is
    missing."""

    pass


def _read_secret(env: Mapping[str, str], env_key: str, file_env_key: str) -> str | None:
    """Read secret from env var or from file path in env (e.g. Docker
    secrets)."""
    value = env.get(env_key)
    if value:
        return value.strip()
    file_path = env.get(file_env_key)
    if file_path:
        return Path(file_path).read_text().strip()
    return None


class GitHubConfig(BaseSettings):
    """GitHub API settings and the repository issues are created in."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_", extra="ignore", frozen=True)

    token: str | None = Field(default=None, description="PAT with project scope; use env or secret file")
    repository: str | None = Field(default=None, description="Repository full name, e.g. owner/repo")
    api_url: str = Field(default="https://api.github.com", description="REST API base URL")
    graphql_url: str = Field(default="https://api.github.com/graphql", description="GraphQL endpoint")
    actor: str = Field(default=BOT_LOGIN, description="Login recorded as comment author in history")


class BoardConfig(BaseSettings):
    """Projects (v2) board the issues are attached to."""

    model_config = SettingsConfigDict(env_prefix="BOARD_", extra="ignore", frozen=True)

    owner: str | None = Field(default=None, description="Organization or user owning the board")
    number: int | None = Field(default=None, ge=1, description="Board (project) number")
    status_field: str = Field(default="Status", description="Single-select field holding the status")


class TasksConfig(BaseSettings):
    """Local task directory and sync behaviour."""

    model_config = SettingsConfigDict(env_prefix="TASKS_", extra="ignore", frozen=True)

    dir: str = Field(default="Tasks", description="Root directory of the task files")
    relationship_header: str = Field(default="Relationships", description="Marker of the relationship comment")
    notes_header: str = Field(default="Automated Notes", description="Body section posted as a notes comment")
    sync_label: str | None = Field(default="kanban-sync", description="Label marking issues owned by this tool")
    strict_validation: bool = Field(default=False, description="Fail the run on header validation errors")
    reuse_by_title: bool = Field(default=True, description="Search by exact title before creating an issue")
    cleanup_orphans: bool = Field(default=True, description="Run orphan detection after a push")
    images_branch: str = Field(default="main", description="Branch uploaded comment images are committed to")
    images_upload_dir: str = Field(default="images/uploads", description="Repo folder for uploaded images")

    @property
    def root(self) -> Path:
        return Path(self.dir)


class PullConfig(BaseSettings):
    """Remote -> local direction."""

    model_config = SettingsConfigDict(env_prefix="PULL_", extra="ignore", frozen=True)

    mode: Literal["missing", "all", "force"] = Field(
        default="missing",
        description="missing: only create absent files; all: update changed files; force: rewrite all",
    )
    image_timeout: int = Field(default=30, ge=1, description="Image download timeout in seconds")


class GitConfig(BaseSettings):
    """Commit and push of file mutations at the end of a run."""

    model_config = SettingsConfigDict(env_prefix="GIT_", extra="ignore", frozen=True)

    commit: bool = Field(default=True, description="Commit and push changed task files")
    branch: str = Field(default="main", description="Branch to pull/push")
    name: str = Field(default=BOT_LOGIN, description="Git user.name for the commit")
    email: str = Field(default=BOT_EMAIL, description="Git user.email for the commit")
    message: str = Field(default="chore(kanban): sync issues & move files", description="Commit message")


class LoggingConfig(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(env_prefix="LOGGING_", extra="ignore", frozen=True)

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    annotations: bool = Field(
        default=False,
        description="Also emit warnings/errors as GitHub Actions workflow annotations",
    )


class AppConfig(BaseSettings):
    """Root application config from YAML + env."""

    model_config = SettingsConfigDict(extra="ignore", frozen=True)

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    board: BoardConfig = Field(default_factory=BoardConfig)
    tasks: TasksConfig = Field(default_factory=TasksConfig)
    pull: PullConfig = Field(default_factory=PullConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def require(self) -> None:
        """Raise ConfigurationError listing every missing required value."""
        missing = []
        if not self.github.token:
            missing.append("PROJECTS_TOKEN (or GITHUB_TOKEN)")
        if not self.github.repository:
            missing.append("GITHUB_REPOSITORY")
        if not self.board.owner:
            missing.append("OWNER")
        if not self.board.number:
            missing.append("PROJECT_NUMBER")
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")


# Names used by existing CI workflows; they win over YAML and prefixed env vars.
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "GITHUB_REPOSITORY": ("github", "repository"),
    "GITHUB_ACTOR": ("github", "actor"),
    "OWNER": ("board", "owner"),
    "PROJECT_NUMBER": ("board", "number"),
    "STATUS_FIELD_NAME": ("board", "status_field"),
    "TASKS_DIR": ("tasks", "dir"),
    "RELATIONSHIP_HEADER": ("tasks", "relationship_header"),
    "COMMENT_HEADER": ("tasks", "notes_header"),
    "SYNC_LABEL": ("tasks", "sync_label"),
    "STRICT_VALIDATION": ("tasks", "strict_validation"),
    "REUSE_BY_TITLE": ("tasks", "reuse_by_title"),
    "CLEANUP_ORPHANS": ("tasks", "cleanup_orphans"),
    "IMAGES_BRANCH": ("tasks", "images_branch"),
    "IMAGES_UPLOAD_DIR": ("tasks", "images_upload_dir"),
    "SYNC_MODE": ("pull", "mode"),
    "GITHUB_ACTIONS": ("logging", "annotations"),
}


def _substitute_env(value: Any, env: Mapping[str, str]) -> Any:
    """Replace ${VAR} and $VAR in strings with values from env."""
    if isinstance(value, str):
        if value.startswith("${") and value.endswith("}"):
            key = value[2:-1].strip()
            return env.get(key, value)
        if value.startswith("$") and not value.startswith("${"):
            key = value[1:].strip()
            return env.get(key, value)
        return value
    if isinstance(value, dict):
        return {k: _substitute_env(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_env(v, env) for v in value]
    return value


def _resolve_token(raw_token: Any, env: Mapping[str, str]) -> str | None:
    """PROJECTS_TOKEN beats the YAML value, which beats GITHUB_TOKEN."""
    projects_token = _read_secret(env, "PROJECTS_TOKEN", "PROJECTS_TOKEN_FILE")
    if projects_token:
        return projects_token
    if raw_token and not str(raw_token).startswith("$"):
        return str(raw_token)
    return _read_secret(env, "GITHUB_TOKEN", "GITHUB_TOKEN_FILE")


def load_config(config_path: Path | None = None, env: Mapping[str, str] | None = None) -> AppConfig:
    """Load config from an optional YAML file and the environment.

    The YAML file is optional: CI runs usually configure everything through
    env (PROJECTS_TOKEN, OWNER, PROJECT_NUMBER, ...).
    """
    env = dict(os.environ) if env is None else dict(env)

    path = config_path or DEFAULT_CONFIG_PATH
    raw: dict[str, Any] = {}
    if path.is_file():
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        raw = _substitute_env(raw, env)

    sections: dict[str, dict[str, Any]] = {
        name: dict(raw.get(name) or {}) for name in ("github", "board", "tasks", "pull", "git", "logging")
    }
    for env_key, (section, key) in _ENV_OVERRIDES.items():
        if env.get(env_key):
            sections[section][key] = env[env_key]
    sections["github"]["token"] = _resolve_token(sections["github"].get("token"), env)

    return AppConfig(
        github=GitHubConfig(**sections["github"]),
        board=BoardConfig(**sections["board"]),
        tasks=TasksConfig(**sections["tasks"]),
        pull=PullConfig(**sections["pull"]),
        git=GitConfig(**sections["git"]),
        logging=LoggingConfig(**sections["logging"]),
    )
