"""Event subscription for the two deployment modes.

``NodeClaimWatcher`` reconciles a node once when its NodeClaim becomes
Expired (or is already Expired when first seen). ``BlockedEventWatcher``
reconciles once per delivered ``DisruptionBlocked`` Node event. Both relist
every ``sync_period_seconds`` and after the watch's resourceVersion expires.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

from kubernetes import watch
from kubernetes.client import CoreV1Api, CustomObjectsApi
from kubernetes.client.exceptions import ApiException

from .errors import ReconcileError, WorkloadLookupError
from .events import (
    BLOCKED_KIND,
    BLOCKED_REASON,
    BlockedEvent,
    ExpiryEvent,
    TriggerEvent,
    is_blocked_signal,
    should_reconcile_create,
    should_reconcile_delete,
    should_reconcile_update,
)
from .reconciler import Reconciler

logger = logging.getLogger(__name__)

NODECLAIM_GROUP = "karpenter.sh"
NODECLAIM_VERSION = "v1"
NODECLAIM_PLURAL = "nodeclaims"

HTTP_GONE = 410
RETRY_DELAY_SECONDS = 5


class Watcher(ABC):
    name = "watcher"

    def __init__(
        self,
        reconciler: Reconciler,
        stop: threading.Event,
        *,
        sync_period_seconds: int = 1800,
        watch_timeout_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.reconciler = reconciler
        self.stop = stop
        self.sync_period_seconds = sync_period_seconds
        self.watch_timeout_seconds = watch_timeout_seconds
        self.clock = clock
        self.needs_relist = True
        self._last_list = 0.0
        self._watch: watch.Watch | None = None

    @abstractmethod
    def list_func(self) -> Callable[..., Any]:
        """Return the API list call that is also streamed by the watch."""

    def list_args(self) -> tuple[Any, ...]:
        return ()

    def list_kwargs(self) -> dict[str, Any]:
        return {}

    @abstractmethod
    def handle_list(self, items: list[Any]) -> None:
        ...

    @abstractmethod
    def handle(self, event_type: str, obj: Any) -> None:
        ...

    def run(self) -> None:
        resource_version = ""
        logger.info("Starting %s", self.name)
        while not self.stop.is_set():
            try:
                if self.needs_relist or self.clock() - self._last_list >= self.sync_period_seconds:
                    resource_version = self.relist()
                resource_version = self.watch_once(resource_version)
            except ApiException as e:
                if e.status == HTTP_GONE:
                    logger.info("%s resourceVersion expired, relisting", self.name)
                else:
                    logger.error("%s failed with status %s: %s", self.name, e.status, e.reason)
                    self.stop.wait(RETRY_DELAY_SECONDS)
                self.needs_relist = True
            except Exception:
                logger.exception("%s failed, retrying in %ss", self.name, RETRY_DELAY_SECONDS)
                self.needs_relist = True
                self.stop.wait(RETRY_DELAY_SECONDS)
        logger.info("Stopped %s", self.name)

    def relist(self) -> str:
        resp = self.list_func()(*self.list_args(), **self.list_kwargs())
        self._last_list = self.clock()
        self.needs_relist = False
        items, resource_version = _items_and_version(resp)
        self.handle_list(items)
        return resource_version

    def watch_once(self, resource_version: str) -> str:
        self._watch = watch.Watch()
        try:
            for ev in self._watch.stream(
                self.list_func(),
                *self.list_args(),
                resource_version=resource_version,
                timeout_seconds=self.watch_timeout_seconds,
                **self.list_kwargs(),
            ):
                if self.stop.is_set():
                    break
                self.handle(ev["type"], ev["object"])
            return self._watch.resource_version or resource_version
        finally:
            self._watch.stop()
            self._watch = None

    def shutdown(self) -> None:
        self.stop.set()
        if self._watch is not None:
            self._watch.stop()

    def dispatch(self, event: TriggerEvent) -> bool:
        """Run one reconciliation; returns False when it should be retried."""
        try:
            self.reconciler.reconcile(event, stop=self.stop)
        except WorkloadLookupError as e:
            logger.error("%s; will retry on next relist", e)
            self.needs_relist = True
            return False
        except ReconcileError as e:
            logger.error("Dropping event: %s", e)
        except Exception:
            logger.exception("Reconciling %s failed; will retry on next relist", event)
            self.needs_relist = True
            return False
        return True


class NodeClaimWatcher(Watcher):
    name = "nodeclaim watcher"

    def __init__(self, custom_api: CustomObjectsApi, reconciler: Reconciler, stop: threading.Event, **kwargs: Any) -> None:
        super().__init__(reconciler, stop, **kwargs)
        self.custom_api = custom_api
        self.known: dict[str, ExpiryEvent] = {}

    def list_func(self) -> Callable[..., Any]:
        return self.custom_api.list_cluster_custom_object

    def list_args(self) -> tuple[Any, ...]:
        return (NODECLAIM_GROUP, NODECLAIM_VERSION, NODECLAIM_PLURAL)

    def handle_list(self, items: list[Any]) -> None:
        seen = set()
        for obj in items:
            seen.add(_claim_name(obj))
            self.handle("ADDED", obj)
        for name in set(self.known) - seen:
            del self.known[name]

    def handle(self, event_type: str, obj: Any) -> None:
        if event_type == "ERROR":
            _raise_watch_error(obj)
        if event_type not in ("ADDED", "MODIFIED", "DELETED"):
            return

        name = _claim_name(obj)
        event = ExpiryEvent.from_nodeclaim(obj)
        previous = self.known.get(name)

        if event_type == "DELETED":
            self.known.pop(name, None)
            trigger = should_reconcile_delete(event)
        elif previous is None:
            self.known[name] = event
            trigger = should_reconcile_create(event)
        else:
            self.known[name] = event
            trigger = should_reconcile_update(previous, event)

        if not trigger:
            return

        logger.info("NodeClaim %s on node %s is expired, reconciling", name, event.node_name)
        if not self.dispatch(event):
            # forget the claim so the next relist sees it as newly expired
            self.known.pop(name, None)


class BlockedEventWatcher(Watcher):
    name = "disruption-blocked event watcher"

    def __init__(self, core_v1: CoreV1Api, reconciler: Reconciler, stop: threading.Event, **kwargs: Any) -> None:
        super().__init__(reconciler, stop, **kwargs)
        self.core_v1 = core_v1
        self.pending: list[BlockedEvent] = []
        self._replayed = False

    def list_func(self) -> Callable[..., Any]:
        return self.core_v1.list_event_for_all_namespaces

    def list_kwargs(self) -> dict[str, Any]:
        return {"field_selector": f"involvedObject.kind={BLOCKED_KIND},reason={BLOCKED_REASON}"}

    def handle_list(self, items: list[Any]) -> None:
        retry, self.pending = self.pending, []
        for event in retry:
            self._deliver(event)
        # events already in the cluster are only delivered on the first list
        if self._replayed:
            return
        self._replayed = True
        for obj in items:
            self.handle("ADDED", obj)

    def handle(self, event_type: str, obj: Any) -> None:
        if event_type == "ERROR":
            _raise_watch_error(obj)
        if event_type not in ("ADDED", "MODIFIED"):
            return
        event = BlockedEvent.from_event(obj)
        if is_blocked_signal(event):
            self._deliver(event)

    def _deliver(self, event: BlockedEvent) -> None:
        logger.info("Disruption blocked on node %s, reconciling", event.involved_name)
        if not self.dispatch(event) and event not in self.pending:
            self.pending.append(event)


def _items_and_version(resp: Any) -> tuple[list[Any], str]:
    if isinstance(resp, dict):
        return resp.get("items") or [], (resp.get("metadata") or {}).get("resourceVersion", "")
    return list(resp.items or []), resp.metadata.resource_version or ""


def _claim_name(obj: dict[str, Any]) -> str:
    return (obj.get("metadata") or {}).get("name", "")


def _raise_watch_error(obj: Any) -> None:
    status = obj if isinstance(obj, dict) else {}
    raise ApiException(status=status.get("code", 500), reason=status.get("message", "watch error"))
