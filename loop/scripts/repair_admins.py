"""
Repair Group Admins Script
Promotes the oldest active member of every active group that has members
but no active admin. Safe to run repeatedly, e.g. as a nightly job.
"""

import sys
import logging

from loop.config import settings
from loop.core.errors import LoopError
from loop.core.events import EventBus
from loop.core.locks import GroupLockRegistry
from loop.database.supabase_client import create_service_supabase
from loop.modules.members.service import MembershipService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main() -> int:
    """Run the repair once and report repaired group ids"""
    try:
        supabase = create_service_supabase(settings)
        service = MembershipService(supabase, GroupLockRegistry(), EventBus())

        logger.info("Checking active groups for missing admins...")
        repaired = service.repair_admins()

        if repaired:
            logger.info(f"Repaired {len(repaired)} group(s): {', '.join(str(g) for g in repaired)}")
        else:
            logger.info("Every active group has an admin")
        return 0
    except LoopError as e:
        logger.error(f"Error during admin repair: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
