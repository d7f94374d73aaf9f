#!/usr/bin/env python3
"""Leave balance drift report — compare recorded ``used`` days with approved leaves.

A balance adjustment that failed (see ``leave_reconciliation_events``)
leaves an employee's counters out of step with their approved leaves.
This script lists every such employee and, with ``--fix``, overwrites
``used`` with the recomputed value.

Usage:
    python -m scripts.balance_drift                      # report, all companies
    python -m scripts.balance_drift --company <uuid>     # one tenant
    python -m scripts.balance_drift --fix                # report + correct

Requires in .env (project root):
    DATABASE_URL, JWT_SECRET

Exit codes:
    0 = no drift (or drift fixed)
    1 = drift found (report only)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from dotenv import load_dotenv

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Load .env before hrms.config reads the environment
env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

from hrms.common.tenancy import TenantScope  # noqa: E402
from hrms.database import async_session_factory, engine  # noqa: E402
from hrms.leave.balance import find_balance_drift, fix_balance_drift  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("balance_drift")


async def run(company_id: uuid.UUID | None, fix: bool) -> int:
    scope = TenantScope(company_id)
    async with async_session_factory() as session:
        drifts = await find_balance_drift(session, scope)
        for d in drifts:
            logger.warning(
                "Employee %s: used=%d expected=%d (delta %+d)",
                d.employee_id, d.recorded_used, d.expected_used, d.delta,
            )
        if not drifts:
            logger.info("No leave balance drift found")
            return 0
        if not fix:
            logger.info("%d employee(s) drifted; rerun with --fix to correct", len(drifts))
            return 1
        fixed = await fix_balance_drift(session, drifts)
        await session.commit()
        logger.info("Corrected %d employee balance(s)", fixed)
        return 0


# ══════════════════════════════════════════════════════════════════════
# Main
# ══════════════════════════════════════════════════════════════════════

def main():
    parser = argparse.ArgumentParser(
        description="Leave balance drift report",
    )
    parser.add_argument("--company", type=uuid.UUID,
                        help="Restrict to one company (tenant) id")
    parser.add_argument("--fix", action="store_true",
                        help="Overwrite drifted 'used' counters with the recomputed value")
    args = parser.parse_args()

    async def _main() -> int:
        try:
            return await run(args.company, args.fix)
        finally:
            await engine.dispose()

    sys.exit(asyncio.run(_main()))


if __name__ == "__main__":
    main()
