"""
Test fixtures for wod-sync-api.

Provides sample source records and in-memory fakes for the source and
destination platforms so sync runs are fast, deterministic and offline.
"""

import sys
from pathlib import Path
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

# Make src/ importable so tests can do `import wod_sync_api...`
for p in {ROOT, SRC}:
    p_str = str(p)
    if p_str not in sys.path:
        sys.path.insert(0, p_str)

from factories import FakeClock, FakePlatform


@pytest.fixture
def fake_platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Sample Data Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_record() -> Dict[str, Any]:
    """A realistic two-section record as returned by the activity timeline."""
    return {
        "id": 987654,
        "when": "20240301183000",
        "day": "03-01-2024",
        "classTime": "18:30",
        "score": "12:45",
        "comments": "Felt strong",
        "TIPOWODs": [
            {"id": 11, "title": "", "type": 5, "timecap": 0, "notes": "Back squat 5x5 @ 80%", "rondas": "5", "res": 5},
            {
                "id": 12,
                "title": "",
                "type": 2,
                "timecap": "1",
                "notes": "<p>AMRAP TC 12'</p><br>Burpees &amp; pull-ups",
                "res": "6",
                "reps": 14,
                "rx": 1,
            },
        ],
        "ejerRate": [
            {"ejerId": 501, "ejerName": "Back Squat", "formaReg": "4", "valor1": ["5"], "valor2": "100", "tipoWOD": "0"},
            {"ejerId": 502, "ejerName": "Burpee", "formaReg": 3, "valor1": [10], "roundrepeat": "10", "tipoWOD": 1},
            {"ejerId": 503, "ejerName": "Row", "formaReg": 2, "valor1": ["500"], "tipoWOD": 1},
            {"ejerId": 504, "ejerName": "Wall Ball", "reps": "20", "weight": 9, "unit": "kg", "tipoWOD": 7, "pr": "1"},
        ],
    }


# ---------------------------------------------------------------------------
# Webhook Test Client
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> TestClient:
    """Per-test FastAPI TestClient with dependency overrides cleared afterwards."""
    from wod_sync_api.main import app

    yield TestClient(app)
    app.dependency_overrides.clear()

