"""
Reference lookup cache for the CSV importer.

Translates the human-readable names in a CSV row (project type, province,
municipality, barangay, district) into foreign-key ids.

Caching strategy
----------------
- One ``ReferenceResolver`` is built per process (in the app lifespan) and
  shared by every import run and conflict check.
- The cache is an immutable ``ReferenceCache`` snapshot.  A rebuild queries
  all five reference tables into a brand-new snapshot and then replaces the
  old one in a single attribute assignment, so readers see either the old or
  the new maps, never a mix.
- Only one rebuild runs at a time.  While it runs, readers that already have
  a (stale) snapshot keep using it instead of waiting.
- Keys are lowercased names; scoped entries use ``(name, parent_id)`` tuples.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from sitetracker.models.barangay import Barangay
from sitetracker.models.district import District
from sitetracker.models.municipality import Municipality
from sitetracker.models.project_type import ProjectType
from sitetracker.models.province import Province
from sitetracker.parsers.row_validator import ValidatedRow

logger = logging.getLogger(__name__)


def _key(name: str | None) -> str:
    return (name or "").strip().lower()


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReferenceCache:
    """Immutable snapshot of every reference lookup map."""

    project_types: dict[str, int]
    provinces: dict[str, int]
    municipalities_scoped: dict[tuple[str, int], int]
    municipalities: dict[str, int]
    barangays: dict[tuple[str, int], int]
    districts: dict[tuple[str, int], int]
    refreshed_at: float


@dataclass(frozen=True)
class ResolvedIds:
    """Foreign-key ids of a resolved row; optional ids may be ``None``."""

    project_type_id: int
    province_id: int
    municipality_id: int
    barangay_id: int | None = None
    district_id: int | None = None


@dataclass
class ResolveResult:
    """Outcome of ``ReferenceResolver.resolve``."""

    ids: ResolvedIds | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ReferenceResolver:
    """Shared, lazily refreshed name → id resolver.

    Args:
        ttl_seconds: Lifetime of a snapshot before the next
            ``refresh_if_stale`` call rebuilds it.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: ReferenceCache | None = None
        self._rebuild_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Cache lifecycle
    # ------------------------------------------------------------------

    @property
    def cache(self) -> ReferenceCache | None:
        return self._cache

    def is_stale(self) -> bool:
        cache = self._cache
        return cache is None or (self._clock() - cache.refreshed_at) >= self._ttl

    def refresh_if_stale(self, db: Session) -> None:
        """Rebuild the snapshot when it is missing or older than the TTL.

        Returns immediately while the snapshot is fresh.  When it is stale and
        another thread is already rebuilding, callers that hold an older
        snapshot return at once and keep using it; only a cold cache makes a
        caller wait for the rebuild.
        """
        if not self.is_stale():
            return
        if not self._rebuild_lock.acquire(blocking=self._cache is None):
            return
        try:
            if self.is_stale():
                self._cache = self._load(db)
        finally:
            self._rebuild_lock.release()

    def refresh(self, db: Session) -> None:
        """Unconditionally rebuild the snapshot."""
        with self._rebuild_lock:
            self._cache = self._load(db)

    def invalidate(self) -> None:
        """Drop the snapshot; the next ``refresh_if_stale`` rebuilds it."""
        self._cache = None

    def _load(self, db: Session) -> ReferenceCache:
        project_types = {
            _key(pt.name): pt.id
            for pt in db.query(ProjectType)
            .filter(ProjectType.is_active.is_(True))
            .order_by(ProjectType.id)
            .all()
        }
        provinces: dict[str, int] = {}
        for p in db.query(Province).order_by(Province.id).all():
            provinces.setdefault(_key(p.name), p.id)

        municipalities_scoped: dict[tuple[str, int], int] = {}
        municipalities: dict[str, int] = {}
        for m in db.query(Municipality).order_by(Municipality.id).all():
            municipalities_scoped.setdefault((_key(m.name), m.province_id), m.id)
            # Unscoped fallback keeps the first municipality with that name
            municipalities.setdefault(_key(m.name), m.id)

        barangays: dict[tuple[str, int], int] = {}
        for b in db.query(Barangay).order_by(Barangay.id).all():
            barangays.setdefault((_key(b.name), b.municipality_id), b.id)

        districts: dict[tuple[str, int], int] = {}
        for d in db.query(District).order_by(District.id).all():
            districts.setdefault((_key(d.name), d.province_id), d.id)

        cache = ReferenceCache(
            project_types=project_types,
            provinces=provinces,
            municipalities_scoped=municipalities_scoped,
            municipalities=municipalities,
            barangays=barangays,
            districts=districts,
            refreshed_at=self._clock(),
        )
        logger.info(
            "Reference cache rebuilt: %d project types, %d provinces, %d municipalities, "
            "%d barangays, %d districts",
            len(project_types),
            len(provinces),
            len(municipalities),
            len(barangays),
            len(districts),
        )
        return cache

    def _snapshot(self) -> ReferenceCache:
        cache = self._cache
        if cache is None:
            raise RuntimeError("Reference cache is cold; call refresh_if_stale() first.")
        return cache

    # ------------------------------------------------------------------
    # Individual lookups (lenient, used for conflict snapshots)
    # ------------------------------------------------------------------

    def project_type_id(self, name: str | None) -> int | None:
        return self._snapshot().project_types.get(_key(name))

    def province_id(self, name: str | None) -> int | None:
        return self._snapshot().provinces.get(_key(name))

    def municipality_id(self, name: str | None, province_id: int | None) -> int | None:
        cache = self._snapshot()
        name_key = _key(name)
        if not name_key:
            return None
        found = None
        if province_id is not None:
            found = cache.municipalities_scoped.get((name_key, province_id))
        return found if found is not None else cache.municipalities.get(name_key)

    def barangay_id(self, name: str | None, municipality_id: int | None) -> int | None:
        if not _key(name) or municipality_id is None:
            return None
        return self._snapshot().barangays.get((_key(name), municipality_id))

    def district_id(self, name: str | None, province_id: int | None) -> int | None:
        if not _key(name) or province_id is None:
            return None
        return self._snapshot().districts.get((_key(name), province_id))

    # ------------------------------------------------------------------
    # Row resolution
    # ------------------------------------------------------------------

    def resolve(self, record: ValidatedRow) -> ResolveResult:
        """Resolve every reference name of a validated row.

        Project type, province and municipality are required; barangay and
        district are best-effort and left unset when not found.
        """
        errors: list[str] = []

        project_type_id = self.project_type_id(record.project_type_name)
        if project_type_id is None:
            errors.append(f'Project type "{record.project_type_name}" not found')

        province_id = self.province_id(record.province_name)
        if province_id is None:
            errors.append(f'Province "{record.province_name}" not found')

        municipality_id = self.municipality_id(record.municipality_name, province_id)
        if municipality_id is None:
            errors.append(f'Municipality "{record.municipality_name}" not found')

        if errors:
            return ResolveResult(errors=errors)

        ids = ResolvedIds(
            project_type_id=project_type_id,
            province_id=province_id,
            municipality_id=municipality_id,
            barangay_id=self.barangay_id(record.barangay_name, municipality_id),
            district_id=self.district_id(record.district_name, province_id),
        )
        return ResolveResult(ids=ids)
