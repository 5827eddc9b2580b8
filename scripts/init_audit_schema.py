#!/usr/bin/env python3
"""
Create the audit_logs table in Snowflake.

Safe to run repeatedly: the statement is CREATE TABLE IF NOT EXISTS.

Usage:
    python scripts/init_audit_schema.py
    python scripts/init_audit_schema.py --dry-run

Requires:
    - .env file with Snowflake credentials
"""

import sys
from pathlib import Path

# Add project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from src.api.dependencies import build_snowflake_config  # noqa: E402
from src.config.settings import Settings  # noqa: E402
from src.infrastructure.snowflake.client import (  # noqa: E402
    SnowflakeConnectionError,
    get_snowflake_connection,
)
from src.infrastructure.snowflake.repositories.audit_logs import CREATE_AUDIT_LOGS_TABLE  # noqa: E402


def create_audit_table(settings: Settings, dry_run: bool = False) -> bool:
    if dry_run:
        print("\n=== DRY RUN - Nothing will be created ===\n")
        print(CREATE_AUDIT_LOGS_TABLE)
        return True

    if not settings.snowflake_account or not settings.snowflake_user:
        print("ERROR: Missing SNOWFLAKE_ACCOUNT or SNOWFLAKE_USER")
        return False

    print(f"Connecting to Snowflake account: {settings.snowflake_account}")
    try:
        with get_snowflake_connection(build_snowflake_config(settings)) as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(CREATE_AUDIT_LOGS_TABLE)
                conn.commit()
            finally:
                cursor.close()
    except SnowflakeConnectionError as e:
        print(f"ERROR connecting to Snowflake: {e}")
        return False

    print(f"audit_logs ready in {settings.snowflake_database}.{settings.snowflake_schema}")
    return True


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Create the audit_logs table in Snowflake')
    parser.add_argument('--dry-run', action='store_true', help='Print the DDL only')
    args = parser.parse_args()

    success = create_audit_table(Settings(), dry_run=args.dry_run)

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
