"""
Pytest configuration and shared test helpers for backend tests.
"""
import os
import sys
from pathlib import Path

# Skip MongoDB connection when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest
from unittest.mock import AsyncMock, MagicMock

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app

SIGNATURE_IMAGE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    return TestClient(app)


@pytest.fixture
def signature_image():
    return SIGNATURE_IMAGE


@pytest.fixture
def answers():
    """A complete single-landlord, single-tenant answer set."""
    return {
        "agreementDate": "2025-02-10",
        "landlords": [{
            "landlordName": "Dana Levi",
            "landlordId": "123456782",
            "landlordAddress": "Herzl 1, Haifa",
            "landlordPhone": "050-1111111",
            "landlordEmail": "dana@example.com",
        }],
        "tenants": [{
            "tenantName": "Yossi Cohen",
            "tenantIdNumber": "000000018",
            "tenantCity": "Tel Aviv",
            "tenantPhone": "052-2222222",
            "tenantEmail": "yossi@example.com",
        }],
        "street": "Dizengoff",
        "buildingNumber": "50",
        "apartmentNumber": "4",
        "propertyCity": "Tel Aviv",
        "apartmentRooms": "3",
        "apartmentFeatures": "fridge, oven",
        "moveInDate": "2025-03-01",
        "rentEndDate": "2026-02-28",
        "monthlyRent": "6,500 NIS",
        "paymentMethod": "bank transfer",
        "paymentDay": "1",
    }


def make_db(*collections):
    """MagicMock database whose named collections have async CRUD methods."""
    db = MagicMock()
    for name in collections:
        collection = getattr(db, name)
        collection.find_one = AsyncMock(return_value=None)
        collection.insert_one = AsyncMock()
        collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
        collection.find_one_and_update = AsyncMock(return_value=None)
        collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))
        collection.find = MagicMock(return_value=MagicMock(to_list=AsyncMock(return_value=[])))
    return db
