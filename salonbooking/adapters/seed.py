"""
Loading salons, services, professionals and clients from a YAML/JSON-like mapping.

The catalog itself is maintained elsewhere; this loader exists to bootstrap
development databases and test fixtures.
"""

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from ..domain.models import WorkingHours
from .database import Database
from .orm import ClientRecord, ProfessionalRecord, SalonRecord, ServiceRecord


def load_catalog_file(path: Path) -> Dict[str, Any]:
    """Read a catalog file; raises ValueError for malformed content."""
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError("Catalog file must contain a mapping at the root level.")
    return data


def _checked_hours(value: Any) -> Any:
    # Parse once so malformed schedules fail at load time; the raw mapping is stored.
    if value:
        WorkingHours.from_dict(value)
    return value


def seed_catalog(database: Database, data: Mapping[str, Any]) -> Dict[str, int]:
    """
    Insert or update every entity in ``data``.

    Returns:
        Counts of loaded entities per kind
    """
    counts = {"salons": 0, "services": 0, "professionals": 0, "clients": 0}

    with database.session_scope() as session:
        for salon_data in data.get("salons") or []:
            interval = salon_data.get("appointment_interval")
            if interval is not None and int(interval) < 5:
                raise ValueError(
                    f"Salon {salon_data['id']} needs an appointment_interval of at least 5 minutes"
                )
            salon = session.merge(
                SalonRecord(
                    id=str(salon_data["id"]),
                    name=salon_data["name"],
                    business_hours=_checked_hours(salon_data.get("business_hours")),
                    appointment_interval=int(interval) if interval is not None else None,
                )
            )
            counts["salons"] += 1

            for service_data in salon_data.get("services") or []:
                duration = int(service_data["duration_minutes"])
                price = Decimal(str(service_data.get("price", "0")))
                if duration <= 0:
                    raise ValueError(f"Service {service_data['id']} needs a positive duration")
                if price < 0:
                    raise ValueError(f"Service {service_data['id']} cannot have a negative price")
                session.merge(
                    ServiceRecord(
                        id=str(service_data["id"]),
                        salon_id=salon.id,
                        name=service_data["name"],
                        duration_minutes=duration,
                        price=price,
                        active=bool(service_data.get("active", True)),
                    )
                )
                counts["services"] += 1
            session.flush()

            for professional_data in salon_data.get("professionals") or []:
                professional = session.merge(
                    ProfessionalRecord(
                        id=str(professional_data["id"]),
                        salon_id=salon.id,
                        name=professional_data["name"],
                        active=bool(professional_data.get("active", True)),
                        working_hours=_checked_hours(professional_data.get("working_hours")),
                    )
                )
                services = []
                for service_id in professional_data.get("services") or []:
                    service = session.get(ServiceRecord, str(service_id))
                    if service is None:
                        raise ValueError(
                            f"Professional {professional.id} references unknown service {service_id}"
                        )
                    services.append(service)
                professional.services = services
                counts["professionals"] += 1

            for client_data in salon_data.get("clients") or []:
                session.merge(
                    ClientRecord(
                        id=str(client_data["id"]),
                        salon_id=salon.id,
                        name=client_data["name"],
                        phone=client_data.get("phone"),
                    )
                )
                counts["clients"] += 1

    return counts
