"""Command line entry point: run sync tasks, list them, show job status or start the scheduler"""

import argparse
import json
import sys
from datetime import date
from typing import List, Optional

from dotenv import load_dotenv
from supabase import create_client

from reportsync.config.settings import get_settings
from reportsync.connectors.erp import ErpConnector
from reportsync.core.exceptions import ConfigurationError, SyncError
from reportsync.etl.catalog import build_registry
from reportsync.etl.jobs import SupabaseJobStatusStore, build_scheduler
from reportsync.logging_config.logger import configure_logging, setup_logger
from reportsync.storage.supabase_store import SupabaseDirectory, SupabaseRecordStore
from reportsync.sync.cursor_store import SupabaseCursorStore
from reportsync.sync.fanout import FanoutEnumerator
from reportsync.sync.models import RunOptions, SyncMode
from reportsync.sync.orchestrator import Orchestrator
from reportsync.sync.pacing import FixedDelayPacer
from reportsync.sync.persistence import PersistencePolicy
from reportsync.sync.runner import SyncRunner
from reportsync.sync.window import PlannerConfig, WindowPlanner

logger = setup_logger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reportsync", description="ERP report sync engine")
    parser.add_argument("--task", help="Task type to run (default: all tasks for the mode)")
    parser.add_argument("--account", help="Run for a single account id")
    parser.add_argument("--mode", choices=[m.value for m in SyncMode], default=SyncMode.INCREMENTAL.value)
    parser.add_argument("--start-date", type=_parse_date, help="Full mode window start (YYYY-MM-DD)")
    parser.add_argument("--end-date", type=_parse_date, help="Window end (YYYY-MM-DD), default today")
    parser.add_argument("--lookback", type=int, help="Override the task's cold-start lookback")
    parser.add_argument("--list", action="store_true", help="List registered task types and exit")
    parser.add_argument("--status", action="store_true", help="Print scheduled job status and exit")
    parser.add_argument("--schedule", action="store_true", help="Start the cron scheduler (blocking)")
    return parser


def build_orchestrator(settings, supabase) -> Orchestrator:
    """Wire the engine against Supabase and the ERP open API"""
    connector = ErpConnector(settings.ERP_BASE_URL, timeout=settings.HTTP_TIMEOUT_SECONDS)
    registry = build_registry(connector, settings)
    directory = SupabaseDirectory(supabase, settings.ACCOUNTS_TABLE, settings.SELLERS_TABLE)
    pacer = FixedDelayPacer(settings.SYNC_DELAY_SECONDS)

    runner = SyncRunner(
        cursor_store=SupabaseCursorStore(supabase, settings.SYNC_STATE_TABLE),
        fanout=FanoutEnumerator(directory),
        persistence=PersistencePolicy(SupabaseRecordStore(supabase, batch_size=settings.BATCH_SIZE)),
        planner=WindowPlanner(PlannerConfig(timezone=settings.SYNC_TIMEZONE)),
        pacer=pacer,
    )
    return Orchestrator(registry, directory, runner)


def main(argv: Optional[List[str]] = None) -> int:
    """Main sync entry point; returns the process exit code"""
    args = build_parser().parse_args(argv)

    load_dotenv()
    settings = get_settings()

    configure_logging(
        log_level=settings.LOG_LEVEL,
        log_dir=settings.LOG_DIR,
        log_to_file=settings.LOG_TO_FILE,
    )

    try:
        sb_key = settings.get_supabase_key()
        if not sb_key:
            raise ConfigurationError("No Supabase key available (SERVICE_ROLE or ANON)")

        supabase = create_client(settings.SUPABASE_URL, sb_key)
        logger.info("✅ Supabase client initialized")

        orchestrator = build_orchestrator(settings, supabase)
        mode = SyncMode(args.mode)

        if args.list:
            print(json.dumps(orchestrator.list_tasks(), ensure_ascii=False, indent=2))
            return 0

        status_store = SupabaseJobStatusStore(supabase, settings.JOB_STATUS_TABLE)
        if args.status:
            print(json.dumps(status_store.list(), ensure_ascii=False, indent=2, default=str))
            return 0

        if args.schedule:
            scheduler = build_scheduler(orchestrator, status_store, settings)
            logger.info("Starting scheduler")
            try:
                scheduler.start()
            except (KeyboardInterrupt, SystemExit):
                logger.info("Scheduler stopped")
            return 0

        options = RunOptions(
            end_date=args.end_date,
            start_date=args.start_date,
            default_lookback=args.lookback,
        )

        logger.info("=" * 80)
        logger.info(f"Starting sync ({mode.value})")
        logger.info("=" * 80)

        if args.task and args.account:
            result = orchestrator.run_task_for_account(args.task, args.account, mode, options)
            print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
            return 0 if result.success else 1

        if args.task:
            report = orchestrator.run_task(args.task, mode, options)
        else:
            if args.account:
                raise ConfigurationError("--account requires --task")
            report = orchestrator.run_all(mode, options)

        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        return 0 if report.success else 1

    except SyncError as e:
        logger.error(f"Sync aborted: {e}")
        return 2
    except Exception as e:
        logger.error(f"Fatal error in sync: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    sys.exit(main())
