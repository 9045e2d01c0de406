from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from concurrent.futures import Executor, Future
from pathlib import Path

# Must be set before sitetracker.database builds its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"

import pandas as pd
import pytest
from sqlalchemy.orm import Session, sessionmaker

import sitetracker.models  # noqa: F401
from sitetracker.config import Settings
from sitetracker.database import Base, SessionLocal, engine
from sitetracker.models import (
    Barangay,
    District,
    Municipality,
    ProjectType,
    Province,
    User,
)
from sitetracker.services.progress_broadcaster import ImportEvent, ProgressBroadcaster
from sitetracker.utils.constants import TEMPLATE_COLUMNS
from sitetracker.utils.security import hash_password


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn, /, *args, **kwargs):
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:
            future.set_exception(exc)
        return future


class DeferredExecutor(Executor):
    """Queues submitted work until ``run_all`` is called."""

    def __init__(self) -> None:
        self.pending: list[tuple[Future, Callable, tuple, dict]] = []

    def submit(self, fn, /, *args, **kwargs):
        future: Future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_all(self) -> None:
        while self.pending:
            future, fn, args, kwargs = self.pending.pop(0)
            future.set_result(fn(*args, **kwargs))


class RecordingBroadcaster(ProgressBroadcaster):
    """Broadcaster that also keeps every published event."""

    def __init__(self) -> None:
        super().__init__(heartbeat_seconds=0.05)
        self.published: list[tuple[int, ImportEvent]] = []

    def publish(self, import_id: int, event: ImportEvent) -> None:
        self.published.append((import_id, event))
        super().publish(import_id, event)

    def kinds(self, import_id: int) -> list[str]:
        return [event.kind for iid, event in self.published if iid == import_id]


@pytest.fixture()
def session_factory() -> Iterator[sessionmaker]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield SessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def reference_data(db: Session) -> dict[str, int]:
    """Batanes/Itbayat/Raele plus a second ``San Jose`` in Cagayan."""
    wifi = ProjectType(name="Free-WIFI for All", code_prefix="UNDP", is_active=True)
    retired = ProjectType(name="Retired Programme", code_prefix="OLD", is_active=False)
    batanes = Province(name="Batanes", region_code="02")
    cagayan = Province(name="Cagayan", region_code="02")
    db.add_all([wifi, retired, batanes, cagayan])
    db.flush()

    district = District(name="District I", province_id=batanes.id)
    db.add(district)
    db.flush()

    itbayat = Municipality(name="Itbayat", province_id=batanes.id, district_id=district.id)
    basco = Municipality(name="Basco", province_id=batanes.id, district_id=district.id)
    san_jose_batanes = Municipality(name="San Jose", province_id=batanes.id)
    san_jose_cagayan = Municipality(name="San Jose", province_id=cagayan.id)
    db.add_all([itbayat, basco, san_jose_batanes, san_jose_cagayan])
    db.flush()

    raele = Barangay(name="Raele", municipality_id=itbayat.id)
    db.add(raele)
    db.commit()

    return {
        "project_type": wifi.id,
        "retired_type": retired.id,
        "batanes": batanes.id,
        "cagayan": cagayan.id,
        "district_i": district.id,
        "itbayat": itbayat.id,
        "basco": basco.id,
        "san_jose_batanes": san_jose_batanes.id,
        "san_jose_cagayan": san_jose_cagayan.id,
        "raele": raele.id,
    }


def _make_user(db: Session, username: str, role: str) -> User:
    user = User(
        username=username,
        email=f"{username}@example.org",
        password_hash=hash_password("Secret123!"),
        full_name=f"{username.title()} User",
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def editor(db: Session) -> User:
    return _make_user(db, "editor", "Editor")


@pytest.fixture()
def viewer(db: Session) -> User:
    return _make_user(db, "viewer", "Viewer")


_FIELD_COLUMNS = {
    "site_code": "Site Code",
    "project_name": "Project Name",
    "site_name": "Site Name",
    "barangay": "Barangay",
    "municipality": "Municipality",
    "province": "Province",
    "district": "District",
    "latitude": "Latitude",
    "longitude": "Longitude",
    "activation_date": "Date of Activation",
    "status": "Status",
}


@pytest.fixture()
def site_row() -> Callable[..., dict[str, str]]:
    """Factory for a valid CSV record; keyword overrides use snake_case column names."""

    def _build(number: int = 1, **overrides: str) -> dict[str, str]:
        row = {
            "Site Code": f"UNDP-GI-{number:04d}",
            "Project Name": "Free-WIFI for All",
            "Site Name": f"Barangay Hall {number}",
            "Barangay": "Raele",
            "Municipality": "Itbayat",
            "Province": "Batanes",
            "District": "District I",
            "Latitude": "20.728794",
            "Longitude": "121.804235",
            "Date of Activation": "2024-04-29",
            "Status": "Pending",
        }
        for key, value in overrides.items():
            row[_FIELD_COLUMNS[key]] = value
        return row

    return _build


@pytest.fixture()
def make_csv() -> Callable[[list[dict[str, str]]], bytes]:
    def _render(rows: list[dict[str, str]], columns: list[str] | None = None) -> bytes:
        df = pd.DataFrame(rows, columns=columns or TEMPLATE_COLUMNS)
        return df.to_csv(index=False, lineterminator="\n").encode("utf-8")

    return _render


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        UPLOADS_DIR=tmp_path / "uploads",
        MAX_UPLOAD_BYTES=64 * 1024,
        SSE_HEARTBEAT_SECONDS=0.05,
        IMPORT_PROGRESS_INTERVAL=10,
    )


@pytest.fixture()
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture()
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture()
def deferred_executor() -> DeferredExecutor:
    return DeferredExecutor()
