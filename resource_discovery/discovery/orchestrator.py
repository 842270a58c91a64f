"""
Discovery Orchestrator Module
=============================

Drives one discovery run for an area:
1. Claim the area through the eligibility gate (or honor an authorized force)
2. Search via the configured provider
3. Per candidate: normalize, geocode fallback, guard, detect, score, persist
4. Stream progress events and exactly one terminal event

The whole run after the claim is bounded by one wall-clock timeout.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from resource_discovery.core.enums import (
    GuardType,
    OutcomeStatus,
    ProgressStage,
    ScanStatus,
    TerminalState,
    VerificationStatus,
)
from resource_discovery.core.errors import (
    CandidateValidationError,
    ConfigurationError,
    PersistenceError,
    ScanCancelledError,
    ScanTimeoutError,
    TransientFetchError,
)
from resource_discovery.core.geo import make_area_key
from resource_discovery.core.schema import (
    CandidateResource,
    ProgressEvent,
    ResourceDecision,
    TriggerRequest,
)
from resource_discovery.core.scoring import (
    ScoringContext,
    calculate_confidence,
    should_auto_approve,
)
from resource_discovery.db.repositories import ResourceRepository
from resource_discovery.discovery.circuit_breaker import EligibilityGate
from resource_discovery.discovery.detector import (
    DuplicateDetector,
    RunIndex,
    has_high_confidence_match,
)
from resource_discovery.discovery.geocoder import MapboxGeocoder
from resource_discovery.discovery.guard import DuplicateGuard
from resource_discovery.discovery.normalizer import ResourceNormalizer
from resource_discovery.discovery.providers.base import BaseSearchProvider
from resource_discovery.discovery.settings import DiscoverySettings, get_default_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

COOLDOWN_MESSAGE = "Discovery recently run for this area. Cooldown active."
GENERIC_FAILURE_MESSAGE = "Discovery process failed."


@dataclass
class CandidateOutcome:
    """Result of processing one raw candidate."""

    index: int
    name: str | None
    status: OutcomeStatus
    resource_id: str | None = None
    reason: str | None = None
    auto_approved: bool = False
    confidence_score: int | None = None
    potential_duplicate_ids: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.INSERTED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "index": self.index,
            "name": self.name,
            "status": self.status.value,
            "resource_id": self.resource_id,
            "reason": self.reason,
            "auto_approved": self.auto_approved,
            "confidence_score": self.confidence_score,
            "potential_duplicate_ids": self.potential_duplicate_ids,
        }


@dataclass
class ScanRun:
    """State of one orchestrated discovery run. Not persisted."""

    area_key: str
    city: str
    state: str
    started_at: datetime
    timeout_at: datetime
    event_id: str | None = None
    progress_stage: ProgressStage | None = None
    resources_found: int = 0
    search_results: int = 0
    terminal_state: TerminalState = TerminalState.RUNNING
    outcomes: list[CandidateOutcome] = field(default_factory=list)
    index: RunIndex = field(default_factory=RunIndex)
    completion_logged: bool = False

    def summary(self) -> dict[str, Any]:
        """Aggregate counts of per-candidate outcomes."""
        counts = {status.value: 0 for status in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return {
            "area_key": self.area_key,
            "terminal_state": self.terminal_state.value,
            "search_results": self.search_results,
            "processed": len(self.outcomes),
            "auto_approved": sum(1 for o in self.outcomes if o.auto_approved),
            "flagged_duplicates": sum(
                1 for o in self.outcomes if o.ok and o.potential_duplicate_ids
            ),
            **counts,
        }


def cached_event(reason: str | None) -> dict[str, Any]:
    """Terminal event for an area still in cooldown."""
    return {
        "status": "cached",
        "reason": reason or COOLDOWN_MESSAGE,
        "resourcesFound": 0,
        "message": COOLDOWN_MESSAGE,
    }


def encode_event(event: dict[str, Any]) -> str:
    """Render an event as one NDJSON line."""
    return json.dumps(event, default=str) + "\n"


async def collect(events: AsyncIterator[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drain an event stream into a list."""
    return [event async for event in events]


class _EventEmitter:
    """Pushes events for one run onto its queue, keeping stages monotonic."""

    def __init__(self, run: ScanRun, queue: asyncio.Queue) -> None:
        self.run = run
        self.queue = queue

    def emit(self, event: ProgressEvent) -> None:
        current = self.run.progress_stage
        if current is not None and event.stage.order < current.order:
            logger.debug(f"Dropping out-of-order progress event: {event.stage.value}")
            return
        self.run.progress_stage = event.stage
        self.queue.put_nowait(event.to_wire())

    def progress(
        self,
        stage: ProgressStage,
        message: str,
        current: int | None = None,
        total: int | None = None,
    ) -> None:
        self.emit(ProgressEvent(stage=stage, message=message, current=current, total=total))

    def terminal(self, event: dict[str, Any]) -> None:
        self.queue.put_nowait(event)

    def error(self, message: str) -> None:
        self.terminal({"type": "error", "message": message})


class DiscoveryOrchestrator:
    """
    Runs discovery scans end to end.

    One scan processes candidates sequentially in provider order. Resources
    inserted during the scan are tracked in the run's index so later
    candidates are checked against them as well as the store.
    """

    def __init__(
        self,
        session: Session,
        search_provider: BaseSearchProvider,
        settings: DiscoverySettings | None = None,
        normalizer: ResourceNormalizer | None = None,
        geocoder: MapboxGeocoder | None = None,
        clock: Callable[[], datetime] | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            session: SQLAlchemy database session
            search_provider: Provider returning raw candidates
            settings: Pipeline settings (defaults to the global settings)
            normalizer: Raw-record validator (defaults to ResourceNormalizer)
            geocoder: Optional geocoding fallback for missing coordinates
            clock: Returns the current UTC time (injectable for tests)
            timeout_seconds: Override for the scan timeout
        """
        self.session = session
        self.search_provider = search_provider
        self.settings = settings or get_default_settings()
        self.normalizer = normalizer or ResourceNormalizer()
        self.geocoder = geocoder
        self.clock = clock or (lambda: datetime.now(UTC))
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else self.settings.global_config.scan_timeout_seconds
        )

        duplicates = self.settings.duplicates
        self.gate = EligibilityGate(
            session,
            cooldown=self.settings.eligibility.cooldown,
            clock=self.clock,
            provider=search_provider.PROVIDER_NAME,
            release_on_failure=self.settings.eligibility.release_on_failure,
        )
        self.guard = DuplicateGuard(session, duplicates.guard_name_similarity)
        self.detector = DuplicateDetector.from_config(session, duplicates)
        self.resources = ResourceRepository(session)

        self.last_run: ScanRun | None = None

    async def run(
        self,
        request: TriggerRequest,
        initiator_id: str | None = None,
        force_authorized: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Run a discovery scan, yielding wire-format events.

        Args:
            request: Validated trigger request
            initiator_id: User or system starting the scan
            force_authorized: The caller has verified the initiator may force
            cancel_event: Set to stop processing further candidates

        Yields:
            Progress events, then one terminal event ("complete" or "error"),
            or a single "cached" event when the area is in cooldown
        """
        area_key = make_area_key(request.city, request.state)
        force = request.force and force_authorized
        if request.force and not force_authorized:
            logger.warning(f"Ignoring unauthorized force request for '{area_key}' from {initiator_id}")

        try:
            claim = self.gate.claim(
                area_key,
                initiator_id=initiator_id,
                meta={"city": request.city, "state": request.state, "is_test": request.is_test},
                force=force,
            )
        except PersistenceError:
            logger.exception(f"Could not start scan for '{area_key}'")
            yield {"type": "error", "message": GENERIC_FAILURE_MESSAGE}
            return
        if not claim.granted:
            yield cached_event(claim.eligibility.reason)
            return

        started_at = self.clock()
        run = ScanRun(
            area_key=area_key,
            city=request.city,
            state=request.state,
            started_at=started_at,
            timeout_at=started_at + timedelta(seconds=self.timeout_seconds),
            event_id=claim.event_id,
        )
        self.last_run = run

        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self._execute(run, request, queue, cancel_event))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            await task
        finally:
            if not task.done():
                # Consumer went away; stop the pipeline and let it log completion
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _execute(
        self,
        run: ScanRun,
        request: TriggerRequest,
        queue: asyncio.Queue,
        cancel_event: asyncio.Event | None,
    ) -> None:
        emitter = _EventEmitter(run, queue)
        try:
            await asyncio.wait_for(
                self._pipeline(run, request, emitter, cancel_event),
                timeout=self.timeout_seconds,
            )
            samples = self.resources.list_recent_discoveries(
                run.city, run.state, limit=self.settings.global_config.samples_limit
            )
            run.terminal_state = TerminalState.COMPLETED
            emitter.terminal(
                {
                    "type": "complete",
                    "resourcesFound": run.resources_found,
                    "samples": [s.to_sample() for s in samples],
                    "message": f"Discovery successful. Added {run.resources_found} new resources.",
                    "summary": run.summary(),
                }
            )
        except TimeoutError:
            run.terminal_state = TerminalState.TIMED_OUT
            error = ScanTimeoutError(self.timeout_seconds)
            logger.error(f"Scan for '{run.area_key}' {error} ({run.resources_found} saved)")
            emitter.error(str(error))
        except ScanCancelledError as e:
            run.terminal_state = TerminalState.CANCELLED
            logger.info(f"Scan for '{run.area_key}' cancelled after {len(run.outcomes)} candidates")
            emitter.error(str(e))
        except ConfigurationError as e:
            run.terminal_state = TerminalState.ERRORED
            logger.error(f"Scan for '{run.area_key}' misconfigured: {e}")
            emitter.error(str(e))
        except PersistenceError as e:
            run.terminal_state = TerminalState.ERRORED
            logger.error(f"Scan for '{run.area_key}' aborted: {e}")
            emitter.error(
                f"Discovery aborted after saving {run.resources_found} resources: "
                f"could not save '{e.candidate_name}'."
            )
        except asyncio.CancelledError:
            run.terminal_state = TerminalState.CANCELLED
            raise
        except Exception:
            run.terminal_state = TerminalState.ERRORED
            logger.exception(f"Scan for '{run.area_key}' failed")
            emitter.error(GENERIC_FAILURE_MESSAGE)
        finally:
            self._log_completion(run)
            queue.put_nowait(None)

    def _log_completion(self, run: ScanRun) -> None:
        """Log the scan outcome exactly once, with the partial count."""
        if run.completion_logged or run.event_id is None:
            return
        run.completion_logged = True

        if run.terminal_state == TerminalState.COMPLETED:
            outcome = ScanStatus.COMPLETED if run.search_results else ScanStatus.NO_RESULTS
        else:
            outcome = ScanStatus.FAILED

        try:
            self.gate.log_scan_complete(run.event_id, outcome, run.resources_found)
        except PersistenceError:
            logger.exception(f"Could not log completion of scan {run.event_id}")

        summary = run.summary()
        logger.info(
            f"Scan for '{run.area_key}' {run.terminal_state.value}: "
            f"{summary['inserted']} inserted, {summary['duplicate']} duplicates, "
            f"{summary['blocked']} blocked, {summary['invalid']} invalid, "
            f"{summary['failed']} failed"
        )

    async def _interruptible(
        self, awaitable: Awaitable[T], cancel_event: asyncio.Event | None
    ) -> T:
        """Await work, abandoning it if the cancel event fires first."""
        if cancel_event is None:
            return await awaitable

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()

        if work in done:
            return work.result()
        raise ScanCancelledError()

    async def _pipeline(
        self,
        run: ScanRun,
        request: TriggerRequest,
        emitter: _EventEmitter,
        cancel_event: asyncio.Event | None,
    ) -> None:
        emitter.progress(ProgressStage.INIT, f"Starting discovery for {run.city}, {run.state}...")
        if cancel_event is not None and cancel_event.is_set():
            raise ScanCancelledError()

        raw_results = await self._interruptible(
            self.search_provider.search(run.city, run.state, on_progress=emitter.emit),
            cancel_event,
        )
        run.search_results = len(raw_results)
        logger.info(f"Search for '{run.area_key}' returned {run.search_results} results")

        if not raw_results:
            return

        total = len(raw_results)
        emitter.progress(ProgressStage.SAVING, "Saving new resources...", current=0, total=total)

        for index, raw in enumerate(raw_results, start=1):
            if cancel_event is not None and cancel_event.is_set():
                raise ScanCancelledError()

            outcome = await self._process_candidate(index, raw, run, request, cancel_event)
            run.outcomes.append(outcome)
            if outcome.ok:
                run.resources_found += 1

            emitter.progress(
                ProgressStage.SAVING,
                f"Processed {index} of {total}: {outcome.name or 'unnamed'} ({outcome.status.value})",
                current=index,
                total=total,
            )
            # Yield to the loop so the timeout and consumer can run
            await asyncio.sleep(0)

    async def _enrich_coordinates(
        self, candidate: CandidateResource, cancel_event: asyncio.Event | None
    ) -> CandidateResource:
        """Geocode a candidate with placeholder coordinates; failures are non-fatal."""
        if not candidate.has_placeholder_coordinates or self.geocoder is None:
            return candidate

        try:
            result = await self._interruptible(
                self.geocoder.geocode(candidate.address, candidate.city, candidate.state),
                cancel_event,
            )
        except TransientFetchError as e:
            logger.warning(f"Geocoding failed for '{candidate.name}', keeping placeholder: {e}")
            return candidate

        if result is None:
            return candidate
        return candidate.model_copy(
            update={"latitude": result.latitude, "longitude": result.longitude}
        )

    async def _process_candidate(
        self,
        index: int,
        raw: Any,
        run: ScanRun,
        request: TriggerRequest,
        cancel_event: asyncio.Event | None,
    ) -> CandidateOutcome:
        raw_name = raw.get("name") if isinstance(raw, dict) else None

        try:
            candidate = self.normalizer.normalize(raw)
        except CandidateValidationError as e:
            logger.warning(f"Skipping invalid result #{index}: {e}")
            return CandidateOutcome(index, raw_name, OutcomeStatus.INVALID, reason=str(e))

        candidate = await self._enrich_coordinates(candidate, cancel_event)

        guard = self.guard.is_duplicate_or_blocked(candidate, run_index=run.index)
        if guard.type == GuardType.HARD:
            logger.info(f"Skipping '{candidate.name}': {guard.reason}")
            return CandidateOutcome(
                index,
                candidate.name,
                OutcomeStatus.DUPLICATE,
                resource_id=guard.duplicate_id,
                reason=guard.reason,
            )
        if guard.type == GuardType.BLOCKED:
            logger.info(f"Skipping '{candidate.name}': {guard.reason}")
            return CandidateOutcome(
                index, candidate.name, OutcomeStatus.BLOCKED, reason=guard.reason
            )

        matches = self.detector.detect_duplicates(candidate, run_index=run.index)
        is_potential_duplicate = has_high_confidence_match(matches)
        duplicate_ids = [m.matched_resource.id for m in matches if m.matched_resource]

        discovered_at = self.clock()
        confidence = calculate_confidence(
            candidate,
            ScoringContext(discovery_date=discovered_at, confirming_sources=[]),
            now=discovered_at,
        )
        approval = self.settings.approval
        auto_approved = should_auto_approve(
            confidence.score,
            candidate.source_url,
            is_potential_duplicate,
            threshold=approval.threshold,
            require_trusted_source=approval.require_trusted_source,
            trusted_domains=approval.trusted_domains,
        )

        provider_name = self.search_provider.PROVIDER_NAME
        decision = ResourceDecision(
            verification_status=(
                VerificationStatus.COMMUNITY_VERIFIED
                if auto_approved
                else VerificationStatus.UNVERIFIED
            ),
            confidence_score=confidence.score,
            potential_duplicate_ids=duplicate_ids,
            import_source=f"{provider_name}_test_run" if request.is_test else provider_name,
            auto_discovered_at=discovered_at,
        )

        try:
            resource = self.resources.insert_discovered(candidate, decision)
            self.session.commit()
        except (PersistenceError, SQLAlchemyError) as e:
            self.session.rollback()
            if self.settings.global_config.fail_fast_on_persistence_error:
                if isinstance(e, PersistenceError):
                    raise
                raise PersistenceError(str(e), candidate_name=candidate.name) from e
            logger.error(f"Failed to save '{candidate.name}': {e}")
            return CandidateOutcome(index, candidate.name, OutcomeStatus.FAILED, reason=str(e))

        run.index.add(resource)
        logger.info(
            f"Saved '{candidate.name}' as {decision.verification_status.value} "
            f"(confidence {confidence.score}, {len(duplicate_ids)} potential duplicates)"
        )
        return CandidateOutcome(
            index,
            candidate.name,
            OutcomeStatus.INSERTED,
            resource_id=resource.id,
            auto_approved=auto_approved,
            confidence_score=confidence.score,
            potential_duplicate_ids=duplicate_ids,
        )
