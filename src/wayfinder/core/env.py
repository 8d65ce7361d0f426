"""
Environment and project-root helpers.

Provider keys (GEOCODER_API_KEY, PLACES_STORE_URL, ...) usually live in a repo-local
`.env`, and the file cache directory is configured as a relative path. Both must resolve
the same way whether the process is uvicorn, the CLI or pytest, from any working dir.

- `load_dotenv_if_present()` loads `.env` once, never overriding the real environment.
- `get_project_root()` honours WAYFINDER_PROJECT_ROOT / WAYFINDER_ENV_FILE, then walks up
  from the cwd and from this module looking for a `.env`, `.git` or `src/` + `pyproject.toml`.
- `resolve_project_path()` anchors relative paths at that root.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

_ROOT_ENV = "WAYFINDER_PROJECT_ROOT"
_ENV_FILE_ENV = "WAYFINDER_ENV_FILE"


def _env_path(name: str) -> Path | None:
    raw = os.getenv(name)
    return Path(raw).expanduser().resolve() if raw else None


def _is_project_root(path: Path) -> bool:
    if (path / ".env").is_file() or (path / ".git").exists():
        return True
    return (path / "src").is_dir() and (path / "pyproject.toml").is_file()


def _walk_up(start: Path) -> Path | None:
    start = start.resolve()
    return next((p for p in (start, *start.parents) if _is_project_root(p)), None)


@lru_cache
def get_project_root() -> Path:
    """Return the best-guess project root directory (cached)."""
    explicit = _env_path(_ROOT_ENV)
    if explicit is not None:
        return explicit
    env_file = _env_path(_ENV_FILE_ENV)
    if env_file is not None:
        return env_file.parent
    return _walk_up(Path.cwd()) or _walk_up(Path(__file__).parent) or Path.cwd().resolve()


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load `.env` once if present and return its path (or None)."""
    env_path = _env_path(_ENV_FILE_ENV) or get_project_root() / ".env"
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    """Resolve a possibly-relative path against the project root."""
    p = Path(path).expanduser()
    return p if p.is_absolute() else (get_project_root() / p).resolve()
