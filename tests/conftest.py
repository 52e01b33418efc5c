"""
Shared fixtures: a seeded SQLite database per test and wired services.
"""

import pendulum
import pytest

from salonbooking.adapters.database import Database
from salonbooking.adapters.seed import seed_catalog
from salonbooking.config import NotificationConfig, SchedulingConfig
from salonbooking.services.availability import AvailabilityService
from salonbooking.services.booking import AppointmentInput, BookingService
from salonbooking.services.notifications import NotificationScheduler

TZ = "America/Sao_Paulo"

WEEKDAY_HOURS = {"isOpen": True, "slots": [{"start": "09:00", "end": "18:00"}]}

CATALOG = {
    "salons": [
        {
            "id": "salon-1",
            "name": "Salão Beleza Total",
            "business_hours": {
                "monday": WEEKDAY_HOURS,
                "tuesday": WEEKDAY_HOURS,
                "wednesday": WEEKDAY_HOURS,
                "thursday": WEEKDAY_HOURS,
                "friday": WEEKDAY_HOURS,
                "saturday": {"isOpen": True, "slots": [{"start": "09:00", "end": "14:00"}]},
                "sunday": {"isOpen": False, "slots": []},
            },
            "services": [
                {"id": "svc-cut", "name": "Corte", "duration_minutes": 60, "price": "80.00"},
                {"id": "svc-nails", "name": "Manicure", "duration_minutes": 30, "price": "35.00"},
                {"id": "svc-old", "name": "Permanente", "duration_minutes": 90, "price": "120.00", "active": False},
            ],
            "professionals": [
                {"id": "pro-ana", "name": "Ana", "services": ["svc-cut", "svc-nails", "svc-old"]},
                {
                    "id": "pro-bruno",
                    "name": "Bruno",
                    "services": ["svc-cut"],
                    "working_hours": {
                        "monday": {"isWorking": True, "slots": [{"start": "13:00", "end": "18:00"}]},
                        "tuesday": {"isWorking": False, "slots": []},
                    },
                },
                {"id": "pro-carla", "name": "Carla", "active": False, "services": ["svc-cut"]},
            ],
            "clients": [
                {"id": "cli-maria", "name": "Maria", "phone": "5511999990001"},
                {"id": "cli-joana", "name": "Joana", "phone": "5511999990002"},
            ],
        },
        {
            "id": "salon-2",
            "name": "Studio Norte",
            "services": [
                {"id": "svc-north", "name": "Barba", "duration_minutes": 30, "price": "40.00"},
            ],
            "professionals": [{"id": "pro-north", "name": "Diego", "services": ["svc-north"]}],
            "clients": [{"id": "cli-north", "name": "Paulo"}],
        },
    ]
}


def at(text: str):
    """Parse a salon-local timestamp."""
    return pendulum.parse(text, tz=TZ)


def booking_input(start: str, end: str = None, professional_id: str = "pro-ana",
                  service_id: str = "svc-cut", client_id: str = "cli-maria") -> AppointmentInput:
    return AppointmentInput(
        salon_id="salon-1",
        client_id=client_id,
        professional_id=professional_id,
        service_id=service_id,
        start_time=at(start),
        end_time=at(end) if end else None,
    )


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'booking.db'}")
    db.create_all()
    seed_catalog(db, CATALOG)
    yield db
    db.dispose()


@pytest.fixture
def scheduling():
    return SchedulingConfig()


@pytest.fixture
def notification_config():
    return NotificationConfig(webhook_url="https://relay.example.com/hook", instance_name="salon_1")


@pytest.fixture
def scheduler(database, scheduling, notification_config):
    return NotificationScheduler(
        database=database,
        scheduling=scheduling,
        notifications=notification_config,
        timezone=TZ,
    )


@pytest.fixture
def booking(database, scheduler, scheduling):
    return BookingService(
        database=database,
        notifications=scheduler,
        scheduling=scheduling,
        timezone=TZ,
        clock=lambda: at("2023-12-01 08:00"),
    )


@pytest.fixture
def availability(database, scheduling):
    return AvailabilityService(database=database, scheduling=scheduling, timezone=TZ)
