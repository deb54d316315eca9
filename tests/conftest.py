from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app import TruckCheckApp
from backend.app.session import InspectionSession
from backend.app.store import InspectionStore
from backend.app.timer import InspectionTimer

SIGNATURE = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAvoB9pWcVYoAAAAASUVORK5CYII="
)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def app(tmp_path: Path) -> TruckCheckApp:
    return TruckCheckApp.create(tmp_path / "test_truck_check.db")


@pytest.fixture()
def store(app: TruckCheckApp) -> InspectionStore:
    return app.store


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def session(app: TruckCheckApp, clock: FakeClock) -> InspectionSession:
    return app.new_session(timer=InspectionTimer(clock))


def fill_saveable(session: InspectionSession, *, unit: str = "M-12", name: str = "J. Smith") -> None:
    session.update_details(unit_number=unit, inspector_name=name)
    session.set_signature(SIGNATURE)
    session.toggle_item("general", "general-0")
