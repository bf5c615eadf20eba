"""Environment-driven settings for the server and the admin client.

Values come from the process environment after ``load_dotenv()`` has merged
the ``.env`` file in the base directory (the working directory unless given).
Variables already set in the environment win.  Malformed numbers abort
startup with a message.

Dependencies: (none, leaf module)
Wired in: cli.py → main(), server/app.py → create_app_from_env()
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_DEFAULT_DB_PATH = "data/approvals.sqlite"
_DEFAULT_HOST = "127.0.0.1"
_DEFAULT_PORT = 8421
_DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class Settings:
    """Resolved runtime configuration."""

    db_path: Path
    """SQLite file holding every artifact and its approval state."""

    host: str = _DEFAULT_HOST
    port: int = _DEFAULT_PORT

    api_key: str | None = None
    """When set, mutating requests must carry it in ``X-API-Key``."""

    server_url: str = f"http://{_DEFAULT_HOST}:{_DEFAULT_PORT}"
    """Base URL the admin client talks to."""

    log_level: str = _DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, *, base_dir: Path | None = None) -> Settings:
        root = base_dir or Path.cwd()
        load_dotenv(dotenv_path=root / ".env")
        host = os.getenv("SCRIPT_APPROVAL_HOST", _DEFAULT_HOST)
        port = _read_port("SCRIPT_APPROVAL_PORT", _DEFAULT_PORT)
        return cls(
            db_path=_resolve_db_path(root),
            host=host,
            port=port,
            api_key=os.getenv("SCRIPT_APPROVAL_API_KEY") or None,
            server_url=os.getenv("SCRIPT_APPROVAL_URL", f"http://{host}:{port}"),
            log_level=os.getenv("SCRIPT_APPROVAL_LOG_LEVEL", _DEFAULT_LOG_LEVEL).upper(),
        )


def _read_port(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError as exc:
        raise SystemExit(f"{name} must be an integer.") from exc
    if not 0 < value < 65536:
        raise SystemExit(f"{name} must be between 1 and 65535.")
    return value


def _resolve_db_path(base_dir: Path) -> Path:
    explicit = os.getenv("SCRIPT_APPROVAL_DB_PATH")
    if explicit:
        path = Path(explicit)
        resolved = path if path.is_absolute() else (base_dir / path)
        return resolved.resolve()
    return (base_dir / _DEFAULT_DB_PATH).resolve()
