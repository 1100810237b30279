import asyncio
import logging
import sys

from database import close_db, connect_db
from services.profile_service import (
    backfill_driver_profiles, backfill_users, plan_driver_profile_backfill, plan_user_backfill,
)


async def run_backfill(dry_run: bool):
    store = await connect_db()
    try:
        if dry_run:
            for user in await store.find("users", {}):
                changes = plan_user_backfill(user)
                if changes:
                    print(f"👤 {user['user_id']} : {changes}")
            for profile in await store.find("driver_profiles", {}):
                changes = plan_driver_profile_backfill(profile)
                if changes:
                    print(f"🚗 {profile['driver_id']} : {changes}")
            print("ℹ️ Mode simulation : aucune écriture (codes anonymes non générés).")
            return

        users = await backfill_users(store)
        drivers = await backfill_driver_profiles(store)
        print(f"✅ {users} utilisateur(s) et {drivers} profil(s) livreur mis à jour.")
    finally:
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_backfill(dry_run="--dry-run" in sys.argv[1:]))
