"""Repository classes for database operations."""

import json
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from resource_discovery.core.enums import ScanStatus, TombstoneKind, VerificationStatus
from resource_discovery.core.errors import PersistenceError
from resource_discovery.core.geo import address_fingerprint
from resource_discovery.core.schema import (
    CandidateResource,
    ExistingResource,
    ResourceDecision,
)
from resource_discovery.db.models import (
    AreaEligibilityDB,
    DiscoveryEventDB,
    ResourceDB,
    TombstoneDB,
)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on read; treat stored naive values as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class ResourceRepository:
    """Repository for resource lookups and inserts of discovered resources."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        candidate: CandidateResource,
        verification_status: VerificationStatus = VerificationStatus.OFFICIAL,
        import_source: str | None = "manual",
        confidence_score: int | None = None,
        potential_duplicate_ids: list[str] | None = None,
        auto_discovered_at: datetime | None = None,
        resource_id: str | None = None,
    ) -> ExistingResource:
        """
        Create a resource row from a candidate.

        Args:
            candidate: The resource fields.
            verification_status: Publication state for the new row.
            import_source: Where the row came from.
            confidence_score: Optional 0-100 score.
            potential_duplicate_ids: Ids of records this one may duplicate.
            auto_discovered_at: Set for rows produced by discovery.
            resource_id: Optional explicit id.

        Returns:
            The persisted resource.

        Raises:
            PersistenceError: If the insert fails.
        """
        db_resource = ResourceDB(
            id=resource_id or str(uuid4()),
            name=candidate.name,
            address=candidate.address,
            address_fingerprint=address_fingerprint(candidate.address),
            city=candidate.city,
            state=candidate.state,
            zip_code=candidate.zip_code,
            latitude=candidate.latitude,
            longitude=candidate.longitude,
            phone=candidate.phone,
            website=candidate.website,
            description=candidate.description,
            services_json=json.dumps(list(candidate.services)),
            hours_json=json.dumps(candidate.hours) if candidate.hours else None,
            source_url=candidate.source_url,
            verification_status=verification_status.value,
            confidence_score=confidence_score,
            potential_duplicate_ids_json=json.dumps(potential_duplicate_ids or []),
            import_source=import_source,
            auto_discovered_at=auto_discovered_at,
            created_at=_utc_now(),
        )
        try:
            self.session.add(db_resource)
            self.session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to insert resource '{candidate.name}': {e}",
                candidate_name=candidate.name,
            ) from e
        return self._to_domain(db_resource)

    def insert_discovered(
        self, candidate: CandidateResource, decision: ResourceDecision
    ) -> ExistingResource:
        """
        Insert a discovered candidate with the pipeline's decision attached.

        Args:
            candidate: The normalized candidate.
            decision: Verification status, confidence and duplicate flags.

        Returns:
            The persisted resource.
        """
        return self.create(
            candidate,
            verification_status=decision.verification_status,
            import_source=decision.import_source,
            confidence_score=decision.confidence_score,
            potential_duplicate_ids=decision.potential_duplicate_ids,
            auto_discovered_at=decision.auto_discovered_at,
        )

    def get_by_id(self, resource_id: str) -> ExistingResource | None:
        """Get a resource by ID."""
        stmt = select(ResourceDB).where(ResourceDB.id == resource_id)
        db_resource = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_resource) if db_resource else None

    def find_exact_address_matches(
        self, address: str, city: str, state: str
    ) -> list[ExistingResource]:
        """
        Find resources whose address, city and state match case-insensitively.

        Args:
            address: Street address
            city: City name
            state: State code

        Returns:
            Matching resources.
        """
        stmt = select(ResourceDB).where(
            func.lower(func.trim(ResourceDB.address)) == address.strip().lower(),
            func.lower(func.trim(ResourceDB.city)) == city.strip().lower(),
            func.lower(func.trim(ResourceDB.state)) == state.strip().lower(),
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(r) for r in result]

    def find_nearby(
        self,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
        limit: int | None = 10,
    ) -> list[ExistingResource]:
        """
        Find resources inside a latitude/longitude bounding box.

        Rows come back nearest to the box center first, so a limit drops
        the farthest rows rather than arbitrary ones.

        Args:
            min_lat: Southern edge
            max_lat: Northern edge
            min_lon: Western edge
            max_lon: Eastern edge
            limit: Maximum rows to return (None for no limit)

        Returns:
            Resources inside the box, closest first.
        """
        center_lat = (min_lat + max_lat) / 2
        center_lon = (min_lon + max_lon) / 2
        lat_delta = ResourceDB.latitude - center_lat
        lon_delta = ResourceDB.longitude - center_lon

        stmt = (
            select(ResourceDB)
            .where(
                ResourceDB.latitude >= min_lat,
                ResourceDB.latitude <= max_lat,
                ResourceDB.longitude >= min_lon,
                ResourceDB.longitude <= max_lon,
            )
            .order_by(lat_delta * lat_delta + lon_delta * lon_delta, ResourceDB.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(r) for r in result]

    def find_by_address_fingerprint(
        self, fingerprint: str, city: str, state: str
    ) -> list[ExistingResource]:
        """List resources in an area stored under a normalized address fingerprint."""
        stmt = select(ResourceDB).where(
            ResourceDB.address_fingerprint == fingerprint,
            func.lower(func.trim(ResourceDB.city)) == city.strip().lower(),
            func.lower(func.trim(ResourceDB.state)) == state.strip().lower(),
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(r) for r in result]

    def find_in_area(self, city: str, state: str) -> list[ExistingResource]:
        """List resources in a city and state (case-insensitive)."""
        stmt = select(ResourceDB).where(
            func.lower(func.trim(ResourceDB.city)) == city.strip().lower(),
            func.lower(func.trim(ResourceDB.state)) == state.strip().lower(),
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(r) for r in result]

    def list_recent_discoveries(
        self, city: str, state: str, limit: int = 5
    ) -> list[ExistingResource]:
        """
        List the newest unverified resources in an area.

        Args:
            city: City name
            state: State code
            limit: Maximum number of rows

        Returns:
            Resources ordered newest first.
        """
        stmt = (
            select(ResourceDB)
            .where(
                func.lower(func.trim(ResourceDB.city)) == city.strip().lower(),
                func.lower(func.trim(ResourceDB.state)) == state.strip().lower(),
                ResourceDB.verification_status == VerificationStatus.UNVERIFIED.value,
            )
            .order_by(ResourceDB.created_at.desc())
            .limit(limit)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(r) for r in result]

    def _to_domain(self, db_resource: ResourceDB) -> ExistingResource:
        """Convert database model to domain model."""
        hours = json.loads(db_resource.hours_json) if db_resource.hours_json else None
        return ExistingResource(
            id=db_resource.id,
            name=db_resource.name,
            address=db_resource.address,
            city=db_resource.city,
            state=db_resource.state,
            zip_code=db_resource.zip_code or "",
            latitude=db_resource.latitude or 0.0,
            longitude=db_resource.longitude or 0.0,
            phone=db_resource.phone,
            website=db_resource.website,
            description=db_resource.description,
            services=tuple(json.loads(db_resource.services_json or "[]")),
            hours=hours,
            source_url=db_resource.source_url,
            verification_status=VerificationStatus(db_resource.verification_status),
            confidence_score=db_resource.confidence_score,
            potential_duplicate_ids=tuple(
                json.loads(db_resource.potential_duplicate_ids_json or "[]")
            ),
            import_source=db_resource.import_source,
            auto_discovered_at=_as_utc(db_resource.auto_discovered_at),
            created_at=_as_utc(db_resource.created_at),
        )


class DiscoveryEventRepository:
    """Repository for the scan log and per-area eligibility rows."""

    def __init__(self, session: Session):
        self.session = session

    def get_area(self, area_key: str, for_update: bool = False) -> AreaEligibilityDB | None:
        """
        Get the eligibility row for an area.

        Args:
            area_key: Normalized area key.
            for_update: Lock the row where the backend supports it.
        """
        stmt = select(AreaEligibilityDB).where(AreaEligibilityDB.area_key == area_key)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def get_event(self, event_id: str) -> DiscoveryEventDB | None:
        """Get a scan log entry by ID."""
        stmt = select(DiscoveryEventDB).where(DiscoveryEventDB.id == event_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def create_event(
        self,
        area_key: str,
        initiator_id: str | None,
        provider: str,
        metadata: dict,
        searched_at: datetime,
        cooldown_seconds: int,
    ) -> DiscoveryEventDB:
        """
        Insert an in-progress scan event and claim the area row.

        Args:
            area_key: Normalized area key.
            initiator_id: User or system that started the scan.
            provider: Search provider name.
            metadata: Free-form metadata stored as JSON.
            searched_at: Scan start time.
            cooldown_seconds: Cooldown window recorded on the area row.

        Returns:
            The new event row.
        """
        event = DiscoveryEventDB(
            id=str(uuid4()),
            area_key=area_key,
            status=ScanStatus.IN_PROGRESS.value,
            provider=provider,
            initiator_id=initiator_id,
            resources_found=0,
            metadata_json=json.dumps(metadata, default=str),
            searched_at=searched_at,
        )
        self.session.add(event)

        area = self.get_area(area_key)
        if area is None:
            area = AreaEligibilityDB(area_key=area_key, cooldown_seconds=cooldown_seconds)
            self.session.add(area)
        area.cooldown_seconds = cooldown_seconds
        area.last_scan_at = searched_at
        area.last_status = ScanStatus.IN_PROGRESS.value
        area.last_event_id = event.id
        area.updated_at = searched_at

        self.session.flush()
        return event

    def complete_event(
        self,
        event: DiscoveryEventDB,
        status: ScanStatus,
        resources_found: int,
        completed_at: datetime,
    ) -> None:
        """Record a scan's outcome on the event and its area row."""
        event.status = status.value
        event.resources_found = resources_found
        event.completed_at = completed_at

        area = self.get_area(event.area_key)
        if area is not None and area.last_event_id == event.id:
            area.last_status = status.value
            area.updated_at = completed_at

        self.session.flush()

    def list_events(self, area_key: str | None = None, limit: int = 20) -> list[DiscoveryEventDB]:
        """List scan log entries, newest first."""
        stmt = select(DiscoveryEventDB).order_by(DiscoveryEventDB.searched_at.desc()).limit(limit)
        if area_key:
            stmt = stmt.where(DiscoveryEventDB.area_key == area_key)
        return list(self.session.execute(stmt).scalars().all())


class TombstoneRepository:
    """Repository for the address/source block list."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, kind: TombstoneKind, value: str, reason: str = "") -> TombstoneDB:
        """
        Add a block-list entry.

        Args:
            kind: ADDRESS or SOURCE.
            value: Address or domain; stored lower-cased and trimmed.
            reason: Why the entry was blocked.

        Returns:
            The new entry.
        """
        tombstone = TombstoneDB(
            id=str(uuid4()),
            kind=kind.value,
            value=value.strip().lower(),
            reason=reason,
            created_at=_utc_now(),
        )
        self.session.add(tombstone)
        self.session.flush()
        return tombstone

    def find_address(self, address: str) -> TombstoneDB | None:
        """Find a tombstone for an address (case-insensitive)."""
        stmt = select(TombstoneDB).where(
            TombstoneDB.kind == TombstoneKind.ADDRESS.value,
            TombstoneDB.value == address.strip().lower(),
        )
        return self.session.execute(stmt).scalars().first()

    def find_sources(self, domains: list[str]) -> TombstoneDB | None:
        """Find the first tombstone matching any of the given domains."""
        if not domains:
            return None
        stmt = select(TombstoneDB).where(
            TombstoneDB.kind == TombstoneKind.SOURCE.value,
            TombstoneDB.value.in_([d.lower() for d in domains]),
        )
        return self.session.execute(stmt).scalars().first()

    def list_all(self) -> list[TombstoneDB]:
        """List every block-list entry, newest first."""
        stmt = select(TombstoneDB).order_by(TombstoneDB.created_at.desc())
        return list(self.session.execute(stmt).scalars().all())
