"""
Background Jobs Module
======================

Defines arq tasks for running discovery scans off the request path.
Uses Redis as the job queue backend.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from arq import create_pool
from arq.connections import RedisSettings
from arq.jobs import Job

from resource_discovery.core.errors import DiscoveryError
from resource_discovery.core.geo import make_area_key
from resource_discovery.core.schema import TriggerRequest
from resource_discovery.db.engine import get_session
from resource_discovery.discovery.geocoder import get_geocoder
from resource_discovery.discovery.orchestrator import DiscoveryOrchestrator
from resource_discovery.discovery.providers import provider_from_settings
from resource_discovery.discovery.settings import get_default_settings

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryJobResult:
    """Result of a discovery job."""

    job_id: str
    area_key: str
    status: str = "running"
    started_at: datetime | None = None
    completed_at: datetime | None = None
    resources_found: int = 0
    message: str | None = None
    summary: dict[str, Any] = field(default_factory=dict)
    progress_events: int = 0
    duration_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "area_key": self.area_key,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "resources_found": self.resources_found,
            "message": self.message,
            "summary": self.summary,
            "progress_events": self.progress_events,
            "duration_seconds": self.duration_seconds,
        }


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


async def run_discovery(
    ctx: dict[str, Any],
    city: str,
    state: str,
    force: bool = False,
    initiator_id: str | None = None,
    is_test: bool = False,
    provider: str | None = None,
) -> dict[str, Any]:
    """
    Discovery task.

    Drains the orchestrator's event stream and keeps the terminal event.
    Force is only honored when the initiator is an admin.

    Args:
        ctx: arq context (contains Redis connection)
        city: City to scan
        state: State to scan
        force: Bypass the cooldown (admins only)
        initiator_id: User or system starting the scan
        is_test: Tag inserted resources as a test run
        provider: Search provider name (defaults to the configured one)

    Returns:
        DiscoveryJobResult as dictionary
    """
    job_id = ctx.get("job_id") or str(uuid4())
    result = DiscoveryJobResult(
        job_id=job_id,
        area_key="",
        started_at=datetime.now(UTC),
    )

    try:
        request = TriggerRequest(city=city, state=state, force=force, is_test=is_test)
        result.area_key = make_area_key(request.city, request.state)
        settings = get_default_settings()
        search_provider = provider_from_settings(settings, provider)

        with get_session() as session:
            orchestrator = DiscoveryOrchestrator(
                session,
                search_provider,
                settings=settings,
                geocoder=get_geocoder(settings),
            )
            async for event in orchestrator.run(
                request,
                initiator_id=initiator_id,
                force_authorized=settings.is_admin(initiator_id),
            ):
                if event.get("type") == "progress":
                    result.progress_events += 1
                    continue

                result.message = event.get("message")
                if event.get("status") == "cached":
                    result.status = "cached"
                elif event.get("type") == "complete":
                    result.status = "completed"
                    result.resources_found = event["resourcesFound"]
                else:
                    result.status = "failed"

            run = orchestrator.last_run
            if run is not None:
                result.area_key = run.area_key
                result.summary = run.summary()
                result.resources_found = run.resources_found

    except (DiscoveryError, ValueError) as e:
        logger.error(f"Discovery job {job_id} could not start: {e}")
        result.status = "failed"
        result.message = str(e)

    finally:
        result.completed_at = datetime.now(UTC)
        if result.started_at and result.completed_at:
            result.duration_seconds = (result.completed_at - result.started_at).total_seconds()

    return result.to_dict()


async def run_discovery_sync(
    city: str,
    state: str,
    force: bool = False,
    initiator_id: str | None = None,
    is_test: bool = False,
    provider: str | None = None,
) -> DiscoveryJobResult:
    """
    Run discovery in-process (without arq).

    Returns:
        DiscoveryJobResult
    """
    ctx: dict[str, Any] = {"job_id": str(uuid4())}
    data = await run_discovery(ctx, city, state, force, initiator_id, is_test, provider)

    return DiscoveryJobResult(
        job_id=data["job_id"],
        area_key=data["area_key"],
        status=data["status"],
        started_at=datetime.fromisoformat(data["started_at"]) if data["started_at"] else None,
        completed_at=datetime.fromisoformat(data["completed_at"]) if data["completed_at"] else None,
        resources_found=data["resources_found"],
        message=data["message"],
        summary=data["summary"],
        progress_events=data["progress_events"],
        duration_seconds=data["duration_seconds"],
    )


async def enqueue_discovery(
    city: str,
    state: str,
    force: bool = False,
    initiator_id: str | None = None,
    is_test: bool = False,
    provider: str | None = None,
) -> str:
    """
    Enqueue a discovery job for async processing.

    Returns:
        Job ID
    """
    redis = await create_pool(get_redis_settings())
    job = await redis.enqueue_job(
        "run_discovery", city, state, force, initiator_id, is_test, provider
    )
    await redis.close()
    return job.job_id


async def get_job_status(job_id: str) -> dict[str, Any] | None:
    """
    Get the status of a discovery job.

    Args:
        job_id: Job ID to look up

    Returns:
        Job info dict, or None if not found
    """
    redis = await create_pool(get_redis_settings())
    job = Job(job_id, redis)

    status = await job.status()
    if status.value == "not_found":
        await redis.close()
        return None

    info = await job.result_info()
    await redis.close()

    return {
        "job_id": job_id,
        "status": status.value,
        "result": info.result if info else None,
    }


class WorkerSettings:
    """arq worker settings."""

    functions = [run_discovery]
    redis_settings = get_redis_settings()
    max_jobs = 5
    # Scan timeout plus headroom for claim and completion logging
    job_timeout = int(get_default_settings().global_config.scan_timeout_seconds) + 60
    keep_result = 86400  # 24 hours
