# tests/conftest.py
from __future__ import annotations

import os
import tempfile

# must be set before occupancy_engine.config is imported anywhere
_TMP_DIR = tempfile.mkdtemp(prefix="occupancy-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402

from occupancy_engine import models  # noqa: E402,F401
from occupancy_engine.db import Base, SessionLocal, engine  # noqa: E402


@pytest.fixture()
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()
