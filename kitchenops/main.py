from __future__ import annotations

import argparse
import logging
import threading

from kitchenops.config import load_settings
from kitchenops.infra.db import create_engine_from_url, create_session_factory, init_db
from kitchenops.infra.logging import setup_logging
from kitchenops.infra.repository import TaskRepository
from kitchenops.services.notifier import build_notifier
from kitchenops.services.scheduler import (
    SchedulerContext,
    run_tick,
    start_notification_service,
    stop_notification_service,
)

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="kitchenops",
        description="Task reminder, recurrence and cleanup service.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single pass and exit instead of staying in the background",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = load_settings()
    setup_logging(settings)

    engine = create_engine_from_url(settings.database_url)
    try:
        init_db(engine)
    except Exception:  # noqa: BLE001
        logger.exception("Database is not reachable")
        raise SystemExit(1)

    store = TaskRepository(create_session_factory(engine))
    context = SchedulerContext.from_settings(store, build_notifier(settings), settings)

    if args.once:
        run_tick(context)
        return

    handle = start_notification_service(context, settings.check_interval_seconds)
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        stop_notification_service(handle, wait=True)


if __name__ == "__main__":
    main()
