"""CLI entry point for the job tracker sync engine."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from jobsync.core.config import Settings
from jobsync.core.schemas import Identity, JobDraft, JobStatus, Role
from jobsync.core.timestamps import time_ago
from jobsync.sync.auth_gate import StaticCredentials
from jobsync.sync.creation import CreationStatus
from jobsync.sync.errors import DuplicateJobError, JobSyncError, ReauthenticationRequired
from jobsync.sync.orchestrator import FetchResult
from jobsync.sync.state_machine import TransitionOutcome, TransitionResult
from jobsync.tracker.board import board_stats, build_board
from jobsync.tracker.session import TrackerSession

EMAIL_ENV = "JOBSYNC_EMAIL"


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--email",
        default=os.environ.get(EMAIL_ENV, ""),
        help=f"Owner email of the job collection (default: ${EMAIL_ENV})",
    )
    parser.add_argument(
        "--operations",
        metavar="OPERATOR_NAME",
        help="Act through the operations surface as this operator",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job tracker sync - keep a local job board in step with the server",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    board_parser = subparsers.add_parser("board", help="Show the kanban board")
    board_parser.add_argument("--query", default="", help="Filter by title or company")
    board_parser.add_argument("--refresh", action="store_true", help="Ignore the cache")
    _add_common(board_parser)

    stats_parser = subparsers.add_parser("stats", help="Show per-status counts")
    _add_common(stats_parser)

    add_parser = subparsers.add_parser("add", help="Add a saved job")
    add_parser.add_argument("--title", required=True, help="Job title")
    add_parser.add_argument("--company", required=True, help="Company name")
    add_parser.add_argument("--link", default="", help="Job posting URL")
    add_parser.add_argument("--description", default="", help="Job description")
    add_parser.add_argument(
        "--attach", action="append", default=[], type=Path,
        help="Image to upload and attach (repeatable)",
    )
    _add_common(add_parser)

    move_parser = subparsers.add_parser("move", help="Move a job to another column")
    move_parser.add_argument("job_id", help="Job ID")
    move_parser.add_argument("status", choices=[s.value for s in JobStatus], help="Target column")
    move_parser.add_argument("--code", help="Deletion confirmation code")
    _add_common(move_parser)

    delete_parser = subparsers.add_parser("delete", help="Delete a job")
    delete_parser.add_argument("job_id", help="Job ID")
    delete_parser.add_argument("--code", required=True, help="Deletion confirmation code")
    _add_common(delete_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _identity(args: argparse.Namespace) -> Identity:
    if not args.email:
        msg = f"an owner email is required (--email or ${EMAIL_ENV})"
        raise ValueError(msg)
    if args.operations:
        return Identity(email=args.email, role=Role.OPERATIONS, name=args.operations)
    return Identity(email=args.email)


def _check_fetch(result: FetchResult) -> None:
    if result.reauth_required:
        raise ReauthenticationRequired()
    if result.error:
        print(f"Warning: {result.error} (showing last known jobs)", file=sys.stderr)


def _check_transition(result: TransitionResult) -> None:
    if result.outcome is TransitionOutcome.APPLIED:
        print(f"{result.job_id} -> {result.target_status.value}")
    elif result.outcome is TransitionOutcome.PENDING:
        print(f"{result.job_id}: {result.message}")
    elif result.outcome is TransitionOutcome.IGNORED:
        print(f"{result.job_id}: nothing to do")
    else:
        msg = result.message or result.outcome.value
        raise JobSyncError(msg)


async def run(args: argparse.Namespace, settings: Settings) -> None:
    identity = _identity(args)
    credentials = StaticCredentials()

    async with TrackerSession(settings, identity, credentials) as session:
        if getattr(args, "refresh", False):
            fetched = await session.refresh()
        else:
            fetched = await session.mount()
        _check_fetch(fetched)

        if args.command == "board":
            for column in build_board(
                fetched.records, args.query, per_page=settings.board.jobs_per_page,
            ):
                print(f"\n{column.label} ({column.total})")
                for job in column.jobs:
                    print(f"  [{job.job_id}] {job.job_title} @ {job.company_name}"
                          f"  {time_ago(job.created_at)}")

        elif args.command == "stats":
            stats = board_stats(fetched.records)
            for status, count in stats.counts.items():
                print(f"  {status.value:<13}{count}")
            print(f"Active jobs: {stats.total_active}")
            print(f"Response rate: {stats.response_rate}%")

        elif args.command == "add":
            draft = JobDraft(
                job_title=args.title,
                company_name=args.company,
                joblink=args.link,
                job_description=args.description,
                pasted_files=args.attach,
            )
            outcome = await session.creation.create_job(draft)
            if outcome.status is CreationStatus.DUPLICATE:
                raise DuplicateJobError(outcome.error)
            if outcome.status is CreationStatus.REAUTH_REQUIRED:
                raise ReauthenticationRequired()
            if outcome.status is CreationStatus.FAILED:
                raise JobSyncError(outcome.error)
            print(f"Added job {outcome.job_id} ({outcome.status.value})")

        elif args.command == "move":
            result = await session.state_machine.drop(
                args.job_id, JobStatus(args.status), confirmation_code=args.code,
            )
            _check_transition(result)

        elif args.command == "delete":
            result = await session.state_machine.delete_job(args.job_id, args.code)
            _check_transition(result)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(run(args, settings))
    except ReauthenticationRequired:
        print("Error: session expired, please log in again", file=sys.stderr)
        sys.exit(1)
    except (JobSyncError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
