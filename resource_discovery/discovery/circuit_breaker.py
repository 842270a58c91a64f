"""
Eligibility Gate Module
=======================

Circuit breaker that decides whether a discovery scan may run for an area,
based on the area's last scan and its cooldown window. Scan starts and
completions are the only state it mutates.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from resource_discovery.core.enums import ScanStatus
from resource_discovery.core.errors import PersistenceError
from resource_discovery.core.schema import EligibilityResult
from resource_discovery.db.models import DiscoveryEventDB
from resource_discovery.db.repositories import DiscoveryEventRepository

logger = logging.getLogger(__name__)

DISCOVERY_COOLDOWN = timedelta(days=30)
EVENT_METADATA_VERSION = "1.0"


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


@dataclass
class ClaimResult:
    """Outcome of an atomic check-and-start."""

    granted: bool
    eligibility: EligibilityResult
    event_id: str | None = None


class EligibilityGate:
    """
    Rate limits discovery scans per area.

    The gate never authorizes a force override itself; callers decide who
    may force and pass ``force=True`` to ``claim``.
    """

    def __init__(
        self,
        session: Session,
        cooldown: timedelta = DISCOVERY_COOLDOWN,
        clock: Callable[[], datetime] | None = None,
        provider: str = "fixture",
        release_on_failure: bool = False,
    ) -> None:
        """
        Initialize the gate.

        Args:
            session: SQLAlchemy database session
            cooldown: Window during which a scanned area is not searched again
            clock: Returns the current UTC time (injectable for tests)
            provider: Search provider name recorded on scan events
            release_on_failure: Let an area be searched again right after a
                failed scan instead of waiting out the cooldown
        """
        self.session = session
        self.cooldown = cooldown
        self.clock = clock or (lambda: datetime.now(UTC))
        self.provider = provider
        self.release_on_failure = release_on_failure
        self.events = DiscoveryEventRepository(session)

    def check_eligibility(self, area_key: str) -> EligibilityResult:
        """
        Decide whether a new scan may run for an area.

        Args:
            area_key: Normalized "city-state" key

        Returns:
            EligibilityResult; when not eligible, ``reason`` explains why
        """
        return self._evaluate(area_key, for_update=False)

    def _evaluate(self, area_key: str, for_update: bool) -> EligibilityResult:
        area = self.events.get_area(area_key, for_update=for_update)
        if area is None or area.last_scan_at is None:
            return EligibilityResult(should_search=True)

        last_scan_at = _as_utc(area.last_scan_at)
        status = ScanStatus(area.last_status) if area.last_status else ScanStatus.COMPLETED

        if status == ScanStatus.FAILED and self.release_on_failure:
            return EligibilityResult(should_search=True, last_scan_at=last_scan_at)

        cooldown = timedelta(seconds=area.cooldown_seconds)
        if self.clock() - last_scan_at > cooldown:
            return EligibilityResult(should_search=True, last_scan_at=last_scan_at)

        return EligibilityResult(
            should_search=False,
            reason=f"Recently searched on {last_scan_at.isoformat()}. Status: {status.value}",
            last_scan_at=last_scan_at,
        )

    def log_scan_start(
        self,
        area_key: str,
        initiator_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> str:
        """
        Record the start of a scan.

        Args:
            area_key: Normalized area key
            initiator_id: User or system that triggered the scan
            meta: Extra metadata stored with the event

        Returns:
            The scan event id
        """
        try:
            event = self._start(area_key, initiator_id, meta)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to log scan start for '{area_key}': {e}") from e

        logger.info(f"Scan started for '{area_key}' (event {event.id})")
        return event.id

    def _start(
        self, area_key: str, initiator_id: str | None, meta: dict[str, Any] | None
    ) -> DiscoveryEventDB:
        metadata = {"version": EVENT_METADATA_VERSION, **(meta or {})}
        return self.events.create_event(
            area_key=area_key,
            initiator_id=initiator_id,
            provider=self.provider,
            metadata=metadata,
            searched_at=self.clock(),
            cooldown_seconds=int(self.cooldown.total_seconds()),
        )

    def claim(
        self,
        area_key: str,
        initiator_id: str | None = None,
        meta: dict[str, Any] | None = None,
        force: bool = False,
    ) -> ClaimResult:
        """
        Atomically check eligibility and log the scan start.

        Both steps run in one transaction with the area row locked where the
        backend supports it, so two callers racing for the same area are
        far less likely to both start a scan.

        Args:
            area_key: Normalized area key
            initiator_id: User or system that triggered the scan
            meta: Extra metadata stored with the event
            force: Skip the history check (caller must have authorized it)

        Returns:
            ClaimResult with the new event id when granted
        """
        try:
            if force:
                eligibility = EligibilityResult(should_search=True)
            else:
                eligibility = self._evaluate(area_key, for_update=True)

            if not eligibility.should_search:
                self.session.rollback()
                logger.info(f"Scan for '{area_key}' denied: {eligibility.reason}")
                return ClaimResult(granted=False, eligibility=eligibility)

            if force:
                metadata = {**(meta or {}), "forced": True}
            else:
                metadata = meta
            event = self._start(area_key, initiator_id, metadata)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to claim scan for '{area_key}': {e}") from e

        logger.info(f"Scan claimed for '{area_key}' (event {event.id}, forced={force})")
        return ClaimResult(granted=True, eligibility=eligibility, event_id=event.id)

    def log_scan_complete(
        self,
        event_id: str,
        outcome: ScanStatus,
        resources_found: int,
    ) -> bool:
        """
        Record the outcome of a scan.

        Safe to call after a failure; calling it again overwrites the
        previous outcome.

        Args:
            event_id: Id returned by ``log_scan_start`` or ``claim``
            outcome: Final scan status
            resources_found: Number of resources inserted

        Returns:
            True if the event was found and updated
        """
        try:
            event = self.events.get_event(event_id)
            if event is None:
                logger.warning(f"Cannot complete unknown scan event {event_id}")
                return False

            self.events.complete_event(event, outcome, resources_found, self.clock())
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to log scan completion for {event_id}: {e}") from e

        logger.info(
            f"Scan {event_id} for '{event.area_key}' finished: "
            f"{outcome.value} ({resources_found} resources)"
        )
        return True

    def recent_events(self, area_key: str | None = None, limit: int = 20) -> list[dict[str, Any]]:
        """
        List recent scan log entries.

        Args:
            area_key: Restrict to one area
            limit: Maximum number of entries

        Returns:
            Event dictionaries, newest first
        """
        return [
            {
                "id": e.id,
                "area_key": e.area_key,
                "status": e.status,
                "provider": e.provider,
                "initiator_id": e.initiator_id,
                "resources_found": e.resources_found,
                "metadata": json.loads(e.metadata_json or "{}"),
                "searched_at": _as_utc(e.searched_at),
                "completed_at": _as_utc(e.completed_at) if e.completed_at else None,
            }
            for e in self.events.list_events(area_key, limit)
        ]
