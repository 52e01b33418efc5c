"""
Tests for catalog seeding and the command line interface.
"""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from salonbooking import __version__
from salonbooking.adapters.database import Database
from salonbooking.adapters.repositories import SqlCatalog
from salonbooking.adapters.seed import load_catalog_file, seed_catalog
from salonbooking.cli.app import app

EXAMPLE_CATALOG = Path(__file__).parent.parent / "catalog.example.yaml"

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"database_url: sqlite:///{tmp_path / 'cli.db'}\n"
        "timezone: America/Sao_Paulo\n",
        encoding="utf-8",
    )
    return path


class TestSeedCatalog:
    """Tests for loading catalog data."""

    def test_example_catalog(self, tmp_path):
        database = Database(f"sqlite:///{tmp_path / 'seed.db'}")
        database.create_all()

        counts = seed_catalog(database, load_catalog_file(EXAMPLE_CATALOG))
        again = seed_catalog(database, load_catalog_file(EXAMPLE_CATALOG))

        assert counts == {"salons": 1, "services": 3, "professionals": 2, "clients": 2}
        assert again == counts
        with database.session_scope() as session:
            catalog = SqlCatalog(session, "America/Sao_Paulo")
            ana = catalog.get_professional("pro-ana")
            bruno = catalog.get_professional("pro-bruno")
            assert ana.service_ids == frozenset({"svc-corte", "svc-escova"})
            assert len(catalog.get_working_hours("pro-ana", 0).slots) == 2
            # Without own hours the salon's business hours apply
            assert catalog.working_hours_for(bruno).for_weekday(4).slots[0][1].hour == 20
        database.dispose()

    def test_unknown_service_reference(self, tmp_path):
        database = Database(f"sqlite:///{tmp_path / 'seed.db'}")
        database.create_all()
        data = {
            "salons": [
                {
                    "id": "s-1",
                    "name": "Salon",
                    "professionals": [{"id": "p-1", "name": "Ana", "services": ["nope"]}],
                }
            ]
        }

        with pytest.raises(ValueError, match="unknown service"):
            seed_catalog(database, data)
        database.dispose()

    def test_invalid_hours_rejected(self, tmp_path):
        database = Database(f"sqlite:///{tmp_path / 'seed.db'}")
        database.create_all()
        data = {
            "salons": [
                {
                    "id": "s-1",
                    "name": "Salon",
                    "business_hours": {"monday": {"isOpen": True, "slots": [{"start": "18:00", "end": "09:00"}]}},
                }
            ]
        }

        with pytest.raises(ValueError):
            seed_catalog(database, data)
        database.dispose()

    @pytest.mark.parametrize("interval", [-15, 0, 4])
    def test_short_interval_rejected(self, tmp_path, interval):
        database = Database(f"sqlite:///{tmp_path / 'seed.db'}")
        database.create_all()
        data = {"salons": [{"id": "s-1", "name": "Salon", "appointment_interval": interval}]}

        with pytest.raises(ValueError, match="at least 5"):
            seed_catalog(database, data)
        database.dispose()


class TestCli:
    """Tests for the Typer application."""

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_seed_book_and_list(self, config_file):
        """Test the booking flow end to end through the CLI."""
        seeded = runner.invoke(app, ["seed", str(EXAMPLE_CATALOG), "-c", str(config_file)])
        assert seeded.exit_code == 0, seeded.stdout

        booked = runner.invoke(
            app,
            [
                "book",
                "--salon", "salon-beleza-total",
                "--client", "cli-maria",
                "--professional", "pro-bruno",
                "--service", "svc-corte",
                "--start", "2030-01-07 10:00",
                "-c", str(config_file),
            ],
        )
        assert booked.exit_code == 0, booked.stdout
        assert "Appointment booked" in booked.stdout

        clash = runner.invoke(
            app,
            [
                "book",
                "--salon", "salon-beleza-total",
                "--client", "cli-joana",
                "--professional", "pro-bruno",
                "--service", "svc-corte",
                "--start", "2030-01-07 10:30",
                "-c", str(config_file),
            ],
        )
        assert clash.exit_code == 1

        listed = runner.invoke(app, ["appointments", "--salon", "salon-beleza-total", "-c", str(config_file)])
        assert listed.exit_code == 0
        assert "No appointments found" not in listed.stdout

    def test_availability(self, config_file):
        runner.invoke(app, ["seed", str(EXAMPLE_CATALOG), "-c", str(config_file)])

        result = runner.invoke(
            app,
            ["availability", "salon-beleza-total", "2030-01-07", "-p", "pro-ana", "-s", "svc-corte", "-c", str(config_file)],
        )

        assert result.exit_code == 0
        assert "09:00" in result.stdout
        assert "13:00" in result.stdout

    def test_unknown_appointment(self, config_file):
        runner.invoke(app, ["init-db", "-c", str(config_file)])

        result = runner.invoke(app, ["cancel", "missing", "-c", str(config_file)])

        assert result.exit_code == 1
        assert "not found" in result.stdout
