"""Payroll service command line interface.

Usage:
    python -m huminex_payroll serve
    python -m huminex_payroll init-db
    python -m huminex_payroll purge-idempotency
    python -m huminex_payroll dispatch-outbox --limit 50
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Callable

import uvicorn

from huminex_payroll.config import Settings, get_settings
from huminex_payroll.database import create_schema, dispose_db, get_session, init_db
from huminex_payroll.events import AsyncEventEmitter, EmitterEventPublisher, OutboxDispatcher, log_event
from huminex_payroll.log import configure_logging
from huminex_payroll.services.idempotency_store import IdempotencyStore

logger = logging.getLogger(__name__)


class PayrollCli:
    """Payroll service command line interface."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="python -m huminex_payroll",
            description="Huminex payroll service",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        serve = subparsers.add_parser("serve", help="Run the HTTP API")
        serve.add_argument("--host", default=self.settings.host, help="Bind address")
        serve.add_argument("--port", type=int, default=self.settings.port, help="Bind port")

        subparsers.add_parser("init-db", help="Create missing database tables")

        subparsers.add_parser(
            "purge-idempotency",
            help="Delete expired idempotency records",
        )

        dispatch = subparsers.add_parser(
            "dispatch-outbox",
            help="Deliver business events still pending in the outbox",
        )
        dispatch.add_argument(
            "--limit",
            type=int,
            default=self.settings.outbox_batch_size,
            help="Maximum number of events to deliver",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(self.settings.log_level)

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "serve": self._cmd_serve,
            "init-db": self._cmd_init_db,
            "purge-idempotency": self._cmd_purge_idempotency,
            "dispatch-outbox": self._cmd_dispatch_outbox,
        }
        return handlers[parsed.command](parsed)

    def _cmd_serve(self, args: argparse.Namespace) -> int:
        uvicorn.run(
            "huminex_payroll.api.app:create_app",
            factory=True,
            host=args.host,
            port=args.port,
            reload=self.settings.debug,
        )
        return 0

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        asyncio.run(self._init_db())
        print("Database schema is up to date.")
        return 0

    def _cmd_purge_idempotency(self, args: argparse.Namespace) -> int:
        removed = asyncio.run(self._purge_idempotency())
        print(f"Purged {removed} expired idempotency record(s).")
        return 0

    def _cmd_dispatch_outbox(self, args: argparse.Namespace) -> int:
        if args.limit < 1:
            print("--limit must be at least 1", file=sys.stderr)
            return 1
        delivered, failed = asyncio.run(self._dispatch_outbox(args.limit))
        print(f"Delivered {delivered} event(s), {failed} failed.")
        return 0 if failed == 0 else 1

    async def _init_db(self) -> None:
        engine, _ = init_db(self.settings.database_url)
        try:
            await create_schema(engine)
        finally:
            await dispose_db()

    async def _purge_idempotency(self) -> int:
        init_db(self.settings.database_url)
        try:
            async with get_session() as session:
                return await IdempotencyStore(session).purge_expired()
        finally:
            await dispose_db()

    async def _dispatch_outbox(self, limit: int) -> tuple[int, int]:
        emitter = AsyncEventEmitter()
        emitter.on_all(log_event)
        init_db(self.settings.database_url)
        try:
            async with get_session() as session:
                dispatcher = OutboxDispatcher(session, EmitterEventPublisher(emitter))
                result = await dispatcher.dispatch_pending(limit)
        finally:
            await dispose_db()
        return result.delivered, result.failed


def main() -> int:
    """CLI entry point."""
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
