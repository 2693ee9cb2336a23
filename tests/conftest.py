from __future__ import annotations

import sys
from pathlib import Path

import pytest


_REPO_ROOT = Path(__file__).resolve().parents[1]
_SRC = _REPO_ROOT / "src"
if _SRC.exists():
    sys.path.insert(0, str(_SRC))


@pytest.fixture
def contact_fields():
    return [
        {"id": "f_email", "label": "Email", "type": "email", "stableId": "email"},
        {"id": "f_svc", "label": "Service", "stableId": "service"},
        {"id": "f_mgr", "label": "Manager Email", "stableId": "managerEmail"},
    ]


@pytest.fixture
def contact_data():
    return {"f_email": "lead@example.com", "f_svc": "Roofing", "f_mgr": "boss@example.com"}
