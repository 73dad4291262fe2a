"""
Main entrypoint: runs a sync session (scheduler + connectivity probing) in one process.

FastAPI runs separately under uvicorn.

Usage:
    python -m lifesprint                 # sync session for settings.user_id (USER_ID)
    python -m lifesprint sync <user>     # drain the user's queue once
    python -m lifesprint status <user>   # print the user's sync status
    uvicorn lifesprint.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_session(user_id: str) -> None:
    from lifesprint.scheduler.jobs import build_scheduler
    from lifesprint.sync.engine import build_sync_engine
    from lifesprint.sync.session import SyncSession

    sync_engine = build_sync_engine()
    scheduler = build_scheduler(sync_engine)
    session = SyncSession(sync_engine, scheduler, user_id)

    online = await sync_engine.refresh_connectivity()
    if not online:
        logger.warning("Remote store unreachable; changes stay queued until it is back.")

    result = await session.start()
    logger.info(
        "Initial sync: %d applied, %d pending",
        len(result.applied),
        sync_engine.tracker.get(user_id).pending_count,
    )
    logger.info("Sync session running. Press Ctrl+C to stop.")

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        await session.stop()
        scheduler.shutdown()
        await sync_engine.remote.aclose()
        logger.info("Goodbye.")


async def _sync_once(user_id: str) -> int:
    from lifesprint.sync.engine import build_sync_engine

    sync_engine = build_sync_engine()
    sync_engine.clear_stale_in_progress(user_id)
    try:
        if not await sync_engine.refresh_connectivity():
            logger.error("Remote store unreachable; nothing synced.")
            return 1
        result = await sync_engine.drain(user_id)
    finally:
        await sync_engine.remote.aclose()

    if result.skipped:
        logger.info("Sync skipped: another sync is in progress.")
    else:
        logger.info(
            "Applied %d, retrying %d, dropped %d operation(s)",
            len(result.applied),
            len(result.retrying),
            len(result.dropped),
        )
    if result.error:
        logger.error(result.error)
    return 0 if result.success else 1


def _print_status(user_id: str) -> None:
    from lifesprint.db.engine import get_engine
    from lifesprint.sync.status import SyncStatusTracker

    status = SyncStatusTracker(get_engine()).get(user_id)
    last_sync = status.last_sync_at.isoformat() if status.last_sync_at else "never"
    print(f"user:          {user_id}")
    print(f"last sync:     {last_sync}")
    print(f"in progress:   {'yes' if status.in_progress else 'no'}")
    print(f"pending:       {status.pending_count}")
    print(f"last error:    {status.last_error or '-'}")


def main(argv=None) -> int:
    from lifesprint.config import get_settings

    parser = argparse.ArgumentParser(prog="lifesprint", description="LifeSprint offline sync")
    sub = parser.add_subparsers(dest="command")
    sync_cmd = sub.add_parser("sync", help="Drain a user's queue once")
    sync_cmd.add_argument("user_id")
    status_cmd = sub.add_parser("status", help="Print a user's sync status")
    status_cmd.add_argument("user_id")
    args = parser.parse_args(argv)

    if args.command == "sync":
        return asyncio.run(_sync_once(args.user_id))
    if args.command == "status":
        _print_status(args.user_id)
        return 0

    user_id = get_settings().user_id
    if not user_id:
        logger.error("No user configured. Set USER_ID in .env or use `sync <user>`.")
        return 1
    try:
        asyncio.run(_run_session(user_id))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
