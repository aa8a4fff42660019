#!/usr/bin/env python3
"""
Register an application from the command line and print its API key.

Examples:
  python scripts/register_application.py --name "Landing" \\
    --domain https://example.com --type web --owner ops@example.com
"""
import sys
import argparse
from pathlib import Path

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).parent.parent))

load_dotenv()

from analytics_engine.core.database import SessionLocal
from analytics_engine.core.errors import AnalyticsError
from analytics_engine.models.application import APPLICATION_TYPES
from analytics_engine.services.credential_service import CredentialService


def main():
    parser = argparse.ArgumentParser(
        description='Register an application and issue its API key',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--name', required=True, help='Application name')
    parser.add_argument('--domain', required=True, help='Application URL (http/https)')
    parser.add_argument('--type', choices=APPLICATION_TYPES, default='web', help='Application type')
    parser.add_argument('--owner', required=True, help='Owner identifier')

    args = parser.parse_args()

    db = SessionLocal()
    try:
        api_key, application = CredentialService(db).issue(
            name=args.name,
            domain=args.domain,
            app_type=args.type,
            owner_id=args.owner,
        )
        print(f"Application registered: {application.id}")
        print(f"Expires at: {application.expires_at.isoformat()}")
        print(f"API key (shown once): {api_key}")
    except AnalyticsError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
