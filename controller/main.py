from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading

from prometheus_client import start_http_server

from adapters.k8s import auth
from adapters.k8s.pods import PodLookup, PodPatcher
from . import otel
from .metrics import PrometheusSink
from .reconciler import Reconciler
from .settings import Settings
from .watch import BlockedEventWatcher, NodeClaimWatcher, Watcher

logger = logging.getLogger("controller")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="disruption-controller",
        description="Remove karpenter.sh/do-not-disrupt from pods on expired nodes inside their disruption window.",
    )
    parser.add_argument(
        "--dry-run",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Whether or not to execute do-not-disrupt pod annotation removals. Defaults to true",
    )
    parser.add_argument("--trigger", choices=["expired", "blocked"], default=None)
    parser.add_argument("--metrics-port", type=int, default=None)
    return parser.parse_args(argv)


def load_settings(argv: list[str] | None = None) -> Settings:
    args = parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if v is not None}
    return Settings(**overrides)


def build_watcher(settings: Settings, stop: threading.Event) -> Watcher:
    core_v1, custom_api = auth.get_client(settings)
    reconciler = Reconciler(
        PodLookup(core_v1),
        PodPatcher(core_v1),
        dry_run=settings.dry_run,
        metrics=PrometheusSink(),
    )
    kwargs = {
        "sync_period_seconds": settings.sync_period_seconds,
        "watch_timeout_seconds": settings.watch_timeout_seconds,
    }
    if settings.trigger == "blocked":
        return BlockedEventWatcher(core_v1, reconciler, stop, **kwargs)
    return NodeClaimWatcher(custom_api, reconciler, stop, **kwargs)


def main(argv: list[str] | None = None) -> int:
    settings = load_settings(argv)
    logging.basicConfig(level=settings.log_level.upper())
    otel.instrument(settings)

    logger.info("Parsed settings:")
    for key, value in settings.model_dump(exclude={"sa_token"}).items():
        logger.info("%s: %s", key, value)
    if settings.dry_run:
        logger.info("Dry-run mode enabled, resource update operations will not be applied")

    stop = threading.Event()
    try:
        watcher = build_watcher(settings, stop)
    except Exception:
        logger.exception("Error creating Kubernetes clients")
        return 1

    start_http_server(settings.metrics_port)

    def _shutdown(signum, frame) -> None:
        logger.info("Received signal %s, shutting down", signum)
        watcher.shutdown()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    worker = threading.Thread(target=watcher.run, name=watcher.name, daemon=True)
    worker.start()
    while worker.is_alive() and not stop.is_set():
        stop.wait(1)
    # let an in-flight patch finish; the reconciler checks stop between pods
    worker.join(timeout=settings.watch_timeout_seconds)
    return 0


if __name__ == "__main__":
    sys.exit(main())
