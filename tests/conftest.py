import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="forecast-ai-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["UPLOADS_DIR"] = os.path.join(_TMP, "uploads")
os.environ["MODELS_DIR"] = os.path.join(_TMP, "saved_models")
os.environ["GROK_API_KEY"] = ""

import math  # noqa: E402

import pytest  # noqa: E402

from db.connection import engine, SessionLocal  # noqa: E402
from db.models import Base, Dataset, TimeSeriesData  # noqa: E402
from utils.date_utils import add_months  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from app import app

    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def seasonal_series():
    """36 monthly points: upward trend with a 12-period cycle."""
    return [round(100 + 2 * t + 20 * math.sin(2 * math.pi * t / 12), 2) for t in range(36)]


@pytest.fixture
def short_series():
    return [10.0, 12.0, 11.0, 13.0, 12.0, 14.0, 13.0, 15.0]


@pytest.fixture
def make_dataset(db):
    """Insert a dataset with {sku: [values]} as monthly rows starting 2022-01-01."""
    from datetime import date

    def _make(series: dict, company_id: int = 1, frequency: str = "monthly"):
        dataset = Dataset(company_id=company_id, name="Test dataset", file_path="test.csv",
                          dataset_hash="abc", frequency=frequency, summary={})
        db.add(dataset)
        db.flush()
        for sku, values in series.items():
            for i, v in enumerate(values):
                db.add(TimeSeriesData(company_id=company_id, dataset_id=dataset.id, sku_code=sku,
                                      date=add_months(date(2022, 1, 1), i), value=float(v)))
        db.commit()
        return dataset.id

    return _make
