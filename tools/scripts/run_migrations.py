#!/usr/bin/env python3
"""
Migration Runner Script for CI/CD Pipeline

Runs the Alembic migrations in migrations/ against a target database,
exactly once, before the new API build is promoted.

Usage:
    python tools/scripts/run_migrations.py --database-url <URL> --environment <staging|production>

Requirements:
    - Must use DIRECT connection URL (Port 5432), NOT the Supabase transaction pooler (Port 6543)
    - Database must be accessible from the CI runner
"""

import argparse
import sys
from pathlib import Path

from alembic.config import Config
from alembic import command
from alembic.script import ScriptDirectory
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError, ProgrammingError

# tools/scripts/run_migrations.py -> repository root
project_root = Path(__file__).resolve().parents[2]
migrations_dir = project_root / "migrations"


class MigrationError(Exception):
    """Custom exception for migration failures"""
    pass


def validate_database_url(database_url: str) -> None:
    """
    Raises:
        MigrationError: If URL uses transaction pooler (Port 6543)
    """
    if ':6543/' in database_url:
        raise MigrationError(
            "Database URL uses the transaction pooler (Port 6543). "
            "Migrations MUST use a direct connection (Port 5432)."
        )

    if ':5432/' not in database_url:
        print("WARNING: Database URL does not explicitly specify port. Ensure it's Port 5432.")


def build_alembic_config(database_url: str) -> Config:
    ini_path = migrations_dir / "alembic.ini"
    if not ini_path.exists():
        raise MigrationError(f"alembic.ini not found at {ini_path}")

    alembic_cfg = Config(str(ini_path))
    alembic_cfg.set_main_option("script_location", str(migrations_dir))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url.replace('%', '%%'))
    return alembic_cfg


def get_revisions(database_url: str, alembic_cfg: Config):
    """
    Connects once and reads the applied and the head revision.

    Returns:
        Tuple[str, str]: (current_revision, head_revision)
    """
    engine = create_engine(database_url, echo=False)
    try:
        with engine.connect() as conn:
            version = conn.execute(text("SELECT version();")).fetchone()[0]
            print(f"✓ Connected: {version}")
            current_rev = MigrationContext.configure(conn).get_current_revision()
    except OperationalError as e:
        raise MigrationError(f"Database connection failed: {str(e)}")
    finally:
        engine.dispose()

    head_rev = ScriptDirectory.from_config(alembic_cfg).get_current_head()
    return current_rev, head_rev


def main():
    parser = argparse.ArgumentParser(description="Run database migrations in CI/CD pipeline")
    parser.add_argument("--database-url", required=True, help="Direct database connection URL (Port 5432)")
    parser.add_argument("--environment", required=True, choices=["staging", "production"],
                        help="Deployment environment")
    args = parser.parse_args()

    try:
        print("Step 1: Validating database URL...")
        validate_database_url(args.database_url)

        print("Step 2: Configuring Alembic...")
        alembic_cfg = build_alembic_config(args.database_url)

        print("Step 3: Checking migration status...")
        current_rev, head_rev = get_revisions(args.database_url, alembic_cfg)
        if current_rev == head_rev:
            print(f"✓ Database is up-to-date (revision: {current_rev}). Nothing to apply.")
            sys.exit(0)
        print(f"⚠ Migrations pending: {current_rev} → {head_rev}")

        print(f"Step 4: Running migrations for {args.environment.upper()}...")
        try:
            command.upgrade(alembic_cfg, "head")
        except ProgrammingError as e:
            raise MigrationError(f"SQL error during migration: {str(e)}")

        print(f"\n✓ Migration pipeline completed successfully for {args.environment.upper()}")
        sys.exit(0)

    except MigrationError as e:
        print("\n✗ MIGRATION FAILED", file=sys.stderr)
        print(f"Error: {str(e)}", file=sys.stderr)
        print("Deployment will be BLOCKED. Old code remains active.", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
