#!/usr/bin/env python3
"""
Upsert the default role matrix (Tenants, Contractor, Building Manager,
Property Manager, Admin) for one or more orgs.

Usage:
    python scripts/seed_roles.py                 # default org
    python scripts/seed_roles.py acme globex     # named orgs
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.logging import configure_logging  # noqa: E402
from app.core.settings import settings  # noqa: E402
from app.db.init_db import init_db  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed default roles")
    parser.add_argument("org_ids", nargs="*", help="Org ids to seed (defaults to DEFAULT_ORG_ID)")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    for org_id in args.org_ids or [settings.default_org_id]:
        await init_db(org_id)
        print(f"Seeded default roles for org {org_id}")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(main())
