"""Shared fixtures for offline scanner tests."""

import os
import tempfile

# Settings are read at import time; keep test history out of the working directory.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.mkdtemp(prefix='netsweep-tests-'), 'test.db')}",
)

import pytest

from netsweep.scanner.oui_lookup import VendorDatabase
from netsweep.scanner.orchestrator import ScanOrchestrator
from netsweep.scanner.probe import ProbeExecutor

from .fakes import FakeNeighborTable, FakeTopology


@pytest.fixture
def vendor_csv(tmp_path):
    path = tmp_path / "oui.csv"
    path.write_text(
        "# test vendors\n"
        "001A2B,Acme Corp\n"
        "\n"
        "B827EB,Raspberry Pi\n"
    )
    return path


@pytest.fixture
def vendor_db(vendor_csv):
    return VendorDatabase([vendor_csv])


@pytest.fixture
def make_orchestrator(vendor_db):
    """Build an orchestrator around a fake prober with no pacing delay."""

    def factory(prober, pacing_delay_ms=0, neighbor_table=None, topology=None):
        executor = ProbeExecutor(
            prober=prober,
            vendor_db=vendor_db,
            neighbor_table=neighbor_table or FakeNeighborTable(),
            topology=topology or FakeTopology(on_link=False),
        )
        return ScanOrchestrator(
            executor,
            pacing_delay_ms=pacing_delay_ms,
            topology=topology or FakeTopology(),
        )

    return factory
