import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

DB_ENV_VAR = "PROPSIM_DB_PATH"


def _resolve_db_path() -> Path:
    """Resolve the SQLite save database path.

    Resolution order:
    1) If PROPSIM_DB_PATH is set, use it.
    2) Prefer <repo>/src/propsim/propsim.db by scanning from the current
       working directory upwards for a "src/propsim" dir.
    3) Fallback to a module-adjacent path.
    """
    raw_path = os.getenv(DB_ENV_VAR)
    if raw_path:
        path = Path(raw_path).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    try:
        cwd = Path.cwd().resolve()
        for base in [cwd, *cwd.parents]:
            repo_dir = base / "src" / "propsim"
            if repo_dir.exists():
                return (repo_dir / "propsim.db").resolve()
    except OSError:
        pass

    return (Path(__file__).resolve().parent.parent / "propsim.db").resolve()


DB_PATH = _resolve_db_path()


@contextmanager
def get_connection(db_path: str | Path | None = None) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(
        db_path or DB_PATH,
        check_same_thread=False,
        timeout=30.0,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout = 30000")
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute_script(sql: str, db_path: str | Path | None = None) -> None:
    with get_connection(db_path) as conn:
        conn.executescript(sql)
