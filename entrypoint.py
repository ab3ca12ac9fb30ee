"""
Entrypoint script – waits for the database, applies Alembic migrations, then
execs the given command (e.g. ``gunicorn 'mailrules:create_app()'`` or
``python worker.py``). Used by the web and worker containers.
"""

import os
import subprocess
import sys
import time

DB_WAIT_ATTEMPTS = int(os.environ.get("DB_WAIT_ATTEMPTS", "30"))
DB_WAIT_SECONDS = 2


def wait_for_db():
    """Wait for PostgreSQL to accept connections."""
    import psycopg2

    db_url = os.environ.get("DATABASE_URL", "")

    for attempt in range(1, DB_WAIT_ATTEMPTS + 1):
        try:
            psycopg2.connect(db_url).close()
            return
        except psycopg2.OperationalError as exc:
            print(f"Database not ready ({attempt}/{DB_WAIT_ATTEMPTS}): {exc}".strip())
            time.sleep(DB_WAIT_SECONDS)

    print(f"Database unreachable after {DB_WAIT_ATTEMPTS * DB_WAIT_SECONDS} seconds", file=sys.stderr)
    sys.exit(1)


def upgrade_schema():
    """Run alembic upgrade head from the project root."""
    root = os.path.abspath(os.path.dirname(__file__))
    result = subprocess.run(
        ["alembic", "-c", os.path.join(root, "alembic.ini"), "upgrade", "head"],
        capture_output=True,
        text=True,
        cwd=root,
    )
    if result.returncode != 0:
        print("Migration failed:", result.stderr, file=sys.stderr)
        sys.exit(1)
    print("Schema is up to date.")
    if result.stdout:
        print(result.stdout)


if __name__ == "__main__":
    wait_for_db()
    upgrade_schema()

    if len(sys.argv) > 1:
        os.execvp(sys.argv[1], sys.argv[1:])
