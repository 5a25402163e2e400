#!/usr/bin/env python3
"""
CLI for tracksync reconciliation.

Usage:
    tracksync sync EPIC-1 TASK-7 [--strategy merge] [--workers 4] [--json]
    tracksync status [fetch-task update-task ...]
    tracksync pending
    tracksync outbox [--entity TASK-7]
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .config.config_loader import SyncConfig
from .conflict.audit import ConflictAuditLog
from .conflict.resolution import ResolutionStrategy
from .connectors.jira_client import JiraRestClient
from .core.exceptions import SyncConfigError, SyncError
from .core.logging import configure_logging
from .core.models import EntityKind
from .runner.concurrent_runner import ConcurrentSyncRunner, RunnerConfig
from .runner.orchestrator import SyncOrchestrator, fetch_key, transitions_key, update_key
from .state.atomic import read_json
from .state.circuit_store import FileCircuitStateStore


def load_config(config_path: Optional[str]) -> SyncConfig:
    """Load .env, then the YAML config (environment overrides apply on top)."""
    load_dotenv()
    return SyncConfig(Path(config_path) if config_path else None)


def build_remote_client(config: SyncConfig) -> JiraRestClient:
    """Create the Jira client from the remote config section."""
    remote = config.get_remote_config()
    if not remote.get("base_url"):
        raise SyncConfigError("remote.base_url is not set (or JIRA_BASE_URL)")
    return JiraRestClient(
        base_url=remote["base_url"],
        email=remote.get("email"),
        api_token=remote.get("api_token"),
        timeout=float(remote.get("timeout") or 30),
    )


def cmd_sync(args) -> int:
    """Reconcile one or more entities."""
    logger = logging.getLogger(__name__)

    config = load_config(args.config)
    client = build_remote_client(config)
    try:
        orchestrator = SyncOrchestrator.from_config(config, client)
        runner = ConcurrentSyncRunner(
            orchestrator,
            RunnerConfig(max_workers=config.get_sync_config()["max_workers"]),
        )
        metrics = runner.sync_many(
            args.entity_ids,
            strategy=args.strategy,
            max_workers=args.workers,
        )
    finally:
        client.close()

    print(metrics.summary())
    if args.json:
        print("\n" + json.dumps(metrics.to_dict(), indent=2, default=str))

    if metrics.errors:
        logger.error(f"{len(metrics.errors)} entit(ies) failed")
        return 1
    return 0


def cmd_status(args) -> int:
    """Show circuit breaker states."""
    config = load_config(args.config)
    store = FileCircuitStateStore(config.get_state_dir() / "circuit-breaker.json")

    keys = args.keys or sorted({
        key_fn(kind)
        for kind in EntityKind
        for key_fn in (fetch_key, update_key, transitions_key)
    } | set(store.list_states()))

    for key in keys:
        state = store.load_state(key)
        print(f"{key:<24} {state.state.value:<10} failures={state.failure_count}")
    return 0


def cmd_pending(args) -> int:
    """List conflicts waiting for manual resolution."""
    config = load_config(args.config)
    audit_log = ConflictAuditLog(config.get_state_dir() / "conflicts")

    pending = audit_log.list_pending()
    if not pending:
        print("No pending conflicts.")
        return 0
    for entity_id in pending:
        entry = audit_log.load_pending(entity_id) or {}
        fields = [c["field"] for c in (entry.get("report") or {}).get("conflicts", [])]
        print(f"{entity_id}: {', '.join(fields)}")
    return 0


def cmd_outbox(args) -> int:
    """List remote updates queued after failed pushes."""
    config = load_config(args.config)
    audit_log = ConflictAuditLog(config.get_state_dir() / "conflicts")

    entries = audit_log.list_outbox(args.entity)
    if not entries:
        print("Outbox is empty.")
        return 0
    for path in entries:
        entry = read_json(path) or {}
        print(f"{entry.get('entity_id')}: {json.dumps(entry.get('field_updates'), default=str)}")
    return 0


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Reconcile local work items with a remote tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument("--config", help="Path to YAML config file")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Reconcile entities")
    sync_parser.add_argument("entity_ids", nargs="+", help="Entity ids to reconcile")
    sync_parser.add_argument("--strategy", choices=[s.value for s in ResolutionStrategy],
                             help="Conflict resolution strategy")
    sync_parser.add_argument("--workers", type=int, help="Concurrent workers")
    sync_parser.add_argument("--json", action="store_true", help="Output run report as JSON")

    # Status command
    status_parser = subparsers.add_parser("status", help="Show circuit breaker states")
    status_parser.add_argument("keys", nargs="*", help="Operation keys (default: all)")

    # Pending command
    subparsers.add_parser("pending", help="List conflicts awaiting manual resolution")

    # Outbox command
    outbox_parser = subparsers.add_parser("outbox", help="List queued remote updates")
    outbox_parser.add_argument("--entity", help="Only show updates for this entity")

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        structured=args.json_logs,
    )

    commands = {
        "sync": cmd_sync,
        "status": cmd_status,
        "pending": cmd_pending,
        "outbox": cmd_outbox,
    }
    command = commands.get(args.command)
    if command is None:
        print("No command specified. Use --help for usage.", file=sys.stderr)
        return 1

    try:
        return command(args)
    except SyncError as e:
        logging.getLogger(__name__).error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
