"""
Shared test fixtures for the employee verification test suite.
"""
import io
import os
import sys

import pandas as pd
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Settings are read once at import time; keep runs fast and offline.
os.environ["LOOKUP_BACKEND"] = "fixture"
os.environ["MATCHING_BATCH_DELAY_SECONDS"] = "0"
os.environ["LOG_FORMAT"] = "text"

from starlette.testclient import TestClient  # noqa: E402

from verifier.api import app, get_lookup_client  # noqa: E402
from verifier.lookup import FixtureLookupClient  # noqa: E402
from verifier.models import CandidateProfile, EmployeeRecord, new_record_id  # noqa: E402
from verifier.store import InMemoryStore, get_store  # noqa: E402


def make_csv(rows, header=("Name", "Email", "Company", "Position")) -> bytes:
    lines = [",".join(header)] + [",".join(r) for r in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def make_xlsx(rows, header=("Name", "Email", "Company", "Position")) -> bytes:
    buf = io.BytesIO()
    pd.DataFrame(list(rows), columns=list(header)).to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


def make_record(name="John Doe", email="john@x.com", company="Acme", position="Engineer", **extra) -> EmployeeRecord:
    return EmployeeRecord(
        id=new_record_id(),
        name=name,
        email=email,
        company=company,
        position=position,
        **extra,
    )


def profile_for(record: EmployeeRecord, **changes) -> CandidateProfile:
    fields = {
        "name": record.name,
        "email": record.email,
        "company": record.company,
        "position": record.position,
    }
    fields.update(changes)
    return CandidateProfile(**fields)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def lookup_client():
    """Fixture client that echoes every record (all exact matches)."""

    class EchoClient(FixtureLookupClient):
        async def lookup(self, name, email, company, position):
            self.calls.append(email)
            return CandidateProfile(name=name, email=email, company=company, position=position)

    return EchoClient()


@pytest.fixture
def client(store, lookup_client):
    """Test client with a fresh store and an echoing lookup client."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_lookup_client] = lambda: lookup_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
