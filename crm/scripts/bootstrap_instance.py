"""
Bootstrap Instance Script
Applies the schema (optional) and creates or updates the first organization
and admin user, using the service-role credentials from the environment.

    python -m crm.scripts.bootstrap_instance --company-name Acme --email admin@acme.io

The admin password is read from BOOTSTRAP_ADMIN_PASSWORD unless --password is given.
"""

import argparse
import logging
import os
import sys

from crm.config import settings
from crm.core.errors import StorageNotReadyError
from crm.database.supabase_client import get_service_supabase
from crm.modules.installer.bootstrap import BootstrapError, bootstrap_instance
from crm.modules.installer.database import run_schema_migration
from crm.modules.installer.password_policy import validate_installer_password

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Bootstrap the first organization and admin user")
    parser.add_argument("--company-name", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", default=os.environ.get("BOOTSTRAP_ADMIN_PASSWORD"))
    parser.add_argument("--db-url", default=os.environ.get("DATABASE_URL"),
                        help="Postgres URL used to apply the schema (default: DATABASE_URL)")
    parser.add_argument("--skip-migrations", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    password_error = validate_installer_password(args.password)
    if password_error:
        logger.error(password_error)
        return 1

    if not args.skip_migrations:
        if not args.db_url:
            logger.error("No database URL: pass --db-url, set DATABASE_URL or use --skip-migrations")
            return 1
        try:
            logger.info("Applying schema...")
            run_schema_migration(args.db_url)
        except StorageNotReadyError as e:
            logger.error(f"Storage not ready: {e}")
            return 1
        except Exception as e:
            logger.error(f"Schema migration failed: {e}")
            return 1

    try:
        result = bootstrap_instance(get_service_supabase(), args.company_name, args.email, args.password)
    except BootstrapError as e:
        logger.error(f"Bootstrap failed: {e}")
        return 1

    logger.info(
        f"Bootstrap complete ({result.mode}): organization={result.organization_id} user={result.user_id}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
