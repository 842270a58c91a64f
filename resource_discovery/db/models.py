"""SQLAlchemy ORM models for the resource discovery database."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ResourceDB(Base):
    """
    Database model for food resources.

    Discovered resources are inserted here; the pipeline never updates
    existing rows.
    """

    __tablename__ = "resources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    address_fingerprint: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str] = mapped_column(String(200), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), default="")
    latitude: Mapped[float] = mapped_column(Float, default=0.0)
    longitude: Mapped[float] = mapped_column(Float, default=0.0)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    website: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    services_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    hours_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON object
    source_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    verification_status: Mapped[str] = mapped_column(String(30), default="unverified")
    confidence_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    potential_duplicate_ids_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    import_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    auto_discovered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    __table_args__ = (
        Index("ix_resources_lat_lng", "latitude", "longitude"),
        Index("ix_resources_city_state", "city", "state"),
        Index("ix_resources_address_fingerprint", "address_fingerprint"),
    )

    def __repr__(self) -> str:
        return f"<ResourceDB(id={self.id}, name='{self.name}', city='{self.city}')>"


class AreaEligibilityDB(Base):
    """
    Database model for per-area scan eligibility.

    One row per normalized area key. Created on the first scan of an area,
    updated when a scan starts and completes, never deleted.
    """

    __tablename__ = "area_eligibility"

    area_key: Mapped[str] = mapped_column(String(300), primary_key=True)
    last_scan_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cooldown_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    last_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_event_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<AreaEligibilityDB(area_key='{self.area_key}', last_status={self.last_status})>"


class DiscoveryEventDB(Base):
    """
    Database model for the discovery scan log.

    One row per scan start; completed with the outcome and resource count.
    """

    __tablename__ = "discovery_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    area_key: Mapped[str] = mapped_column(String(300), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="in_progress")
    provider: Mapped[str] = mapped_column(String(50), default="fixture")
    initiator_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resources_found: Mapped[int] = mapped_column(Integer, default=0)
    metadata_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    searched_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<DiscoveryEventDB(id={self.id}, area_key='{self.area_key}', status={self.status})>"


class TombstoneDB(Base):
    """
    Database model for the manually maintained block list.

    Entries block either an address (lower-cased) or a source domain.
    """

    __tablename__ = "tombstones"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # address, source
    value: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def __repr__(self) -> str:
        return f"<TombstoneDB(kind={self.kind}, value='{self.value}')>"
