"""Run database migrations against the configured Postgres database.

Requires DATABASE_URL in .env or .env.local (Postgres connection string from
Supabase Dashboard → Database → Connection string).

Usage:
    python -m sitemap_indexer.db.migrate
"""

import os
from pathlib import Path

import psycopg
from dotenv import load_dotenv

from sitemap_indexer.logging_config import redact_url_credentials

# Project root (parent of sitemap_indexer/)
_project_root = Path(__file__).resolve().parent.parent.parent


def find_migration_files(migrations_dir: Path) -> list[Path]:
    """Return migration SQL files in lexicographic order (001_..., 002_...)."""
    if not migrations_dir.is_dir():
        raise SystemExit(f"Migrations directory not found: {migrations_dir}")
    sql_files = sorted(migrations_dir.glob("*.sql"))
    if not sql_files:
        raise SystemExit(f"No .sql files found in {migrations_dir}")
    return sql_files


def run_migrations(migrations_dir: Path | None = None) -> None:
    """Apply migration SQL files in migrations/ in order."""
    # Load .env and .env.local so DATABASE_URL is available without full app config
    load_dotenv(_project_root / ".env")
    load_dotenv(_project_root / ".env.local")

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise SystemExit(
            "DATABASE_URL is not set. Add your Postgres connection string to .env or .env.local.\n"
            "Get it from Supabase Dashboard → Project Settings → Database → Connection string (URI)."
        )

    sql_files = find_migration_files(migrations_dir or _project_root / "migrations")

    try:
        with psycopg.connect(database_url, autocommit=True) as conn:
            with conn.cursor() as cur:
                for path in sql_files:
                    print(f"Applying {path.name}...")
                    cur.execute(path.read_text())
                    print(f"  OK {path.name}")
    except psycopg.OperationalError as e:
        hint = ""
        if "password authentication failed" in str(e):
            hint = (
                "\n\nCheck that you used the database password (not the service key) "
                "and percent-encoded any # @ % or : characters."
            )
        raise SystemExit(
            f"Database connection failed ({redact_url_credentials(database_url)}): {e}{hint}"
        ) from e

    print("Migrations complete.")


if __name__ == "__main__":
    run_migrations()
