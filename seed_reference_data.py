"""Seed reference data for the Project Site Tracker database.

Creates the location hierarchy (provinces, districts, municipalities,
barangays), the project types referenced by CSV imports, and the default
admin account.  The script is idempotent: existing rows are left alone.

Usage (from the repository root):
    python seed_reference_data.py
"""

from __future__ import annotations

from sitetracker.config import get_settings
from sitetracker.database import Base, SessionLocal, engine
from sitetracker.models import Barangay, District, Municipality, ProjectType, Province
from sitetracker.services.auth_service import ensure_admin_user

# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

PROJECT_TYPES: list[tuple[str, str, str]] = [
    ("Free-WIFI for All", "FW", "Public Wi-Fi access points"),
    ("PNPKI", "PK", "Public key infrastructure enrolment sites"),
    ("IIDB", "IB", "Integrated government broadband"),
    ("eLGU", "EL", "Electronic local government unit systems"),
    ("GECS", "GE", "Government emergency communications"),
]

# province -> district -> municipality -> barangays
LOCATIONS: dict[str, dict[str, dict[str, list[str]]]] = {
    "Batanes": {
        "District I": {
            "Basco": ["Kayhuvokan", "San Antonio", "Chanarian"],
            "Itbayat": ["Raele", "San Rafael", "Santa Lucia"],
            "Sabtang": ["Sinakan", "Malakdang"],
        },
    },
    "Cagayan": {
        "District I": {
            "Aparri": ["Centro 1", "Maura", "Punta"],
            "Camalaniugan": ["Dacal-Lafugu", "Bulala"],
        },
        "District II": {
            "Tuguegarao City": ["Centro 10", "Ugac Norte", "Caritan Sur"],
        },
    },
    "Isabela": {
        "District IV": {
            "Ilagan City": ["Alibagu", "Baligatan", "Osmeña"],
            "San Mateo": ["Cauayan", "Villa Fuerte"],
        },
    },
}


# ---------------------------------------------------------------------------
# Seed functions
# ---------------------------------------------------------------------------


def seed_project_types(session) -> None:
    for name, prefix, description in PROJECT_TYPES:
        if session.query(ProjectType).filter(ProjectType.name == name).first():
            print(f"  [SKIP] ProjectType '{name}' already exists.")
            continue
        session.add(ProjectType(name=name, code_prefix=prefix, description=description, is_active=True))
        print(f"  [ADD]  ProjectType '{name}'")
    session.commit()


def seed_locations(session) -> None:
    for province_name, districts in LOCATIONS.items():
        province = session.query(Province).filter(Province.name == province_name).first()
        if province is None:
            province = Province(name=province_name, region_code="02")
            session.add(province)
            session.flush()
            print(f"  [ADD]  Province '{province_name}'")

        for district_name, municipalities in districts.items():
            district = (
                session.query(District)
                .filter(District.name == district_name, District.province_id == province.id)
                .first()
            )
            if district is None:
                district = District(name=district_name, province_id=province.id)
                session.add(district)
                session.flush()

            for municipality_name, barangays in municipalities.items():
                municipality = (
                    session.query(Municipality)
                    .filter(
                        Municipality.name == municipality_name,
                        Municipality.province_id == province.id,
                    )
                    .first()
                )
                if municipality is None:
                    municipality = Municipality(
                        name=municipality_name,
                        province_id=province.id,
                        district_id=district.id,
                    )
                    session.add(municipality)
                    session.flush()
                    print(f"  [ADD]  Municipality '{municipality_name}' ({province_name})")

                for barangay_name in barangays:
                    exists = (
                        session.query(Barangay)
                        .filter(
                            Barangay.name == barangay_name,
                            Barangay.municipality_id == municipality.id,
                        )
                        .first()
                    )
                    if exists is None:
                        session.add(Barangay(name=barangay_name, municipality_id=municipality.id))
    session.commit()


def main() -> None:
    settings = get_settings()
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        print("Seeding project types...")
        seed_project_types(session)
        print("Seeding locations...")
        seed_locations(session)
        print("Ensuring admin user...")
        ensure_admin_user(session, settings)
        print("Done.")
    finally:
        session.close()


if __name__ == "__main__":
    main()
