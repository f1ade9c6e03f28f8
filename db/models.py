import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Float, Date, TIMESTAMP, BigInteger, Text, JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


# 1) Datasets
class Dataset(Base):
    __tablename__ = "datasets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    dataset_hash = Column(String(64))
    frequency = Column(String(20), default="monthly")
    summary = Column(JSON)
    uploaded_at = Column(TIMESTAMP, default=datetime.utcnow)


# 2) Time series rows (long format)
class TimeSeriesData(Base):
    __tablename__ = "time_series_data"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(BigInteger, nullable=False)
    dataset_id = Column(Integer, nullable=False)
    sku_code = Column(String(255), nullable=False)
    description = Column(String(500))
    date = Column(Date, nullable=False)
    value = Column(Float, nullable=False)
    note = Column(String(500))
    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("dataset_id", "sku_code", "date", name="uq_series_dataset_sku_date"),
    )


# 3) Optimization jobs
class OptimizationJob(Base):
    __tablename__ = "optimization_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, nullable=False)
    dataset_id = Column(Integer, nullable=False)
    sku = Column(String(255), nullable=False)
    model_id = Column(String(100), nullable=False)
    method = Column(String(20), nullable=False, default="grid")
    payload = Column(JSON)
    reason = Column(String(100), default="manual_trigger")
    batch_id = Column(String(100))

    status = Column(String(20), nullable=False, default="pending")
    progress = Column(Integer, default=0)
    error = Column(Text)
    priority = Column(Integer, default=3)
    optimization_hash = Column(String(64))
    result = Column(JSON)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow)
    started_at = Column(TIMESTAMP)
    completed_at = Column(TIMESTAMP)

    __table_args__ = (
        Index("ix_jobs_queue", "status", "priority", "created_at"),
    )


# 4) Optimization results
class OptimizationResult(Base):
    __tablename__ = "optimization_results"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(BigInteger, nullable=False)
    job_id = Column(Integer, nullable=False)
    optimization_hash = Column(String(64), nullable=False)
    parameters = Column(JSON)
    scores = Column(JSON)
    forecasts = Column(JSON)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("company_id", "optimization_hash", name="uq_result_company_hash"),
    )


# 5) Generated forecasts
class ForecastResult(Base):
    __tablename__ = "forecast_results"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(BigInteger, nullable=False)
    dataset_id = Column(Integer, nullable=False)
    sku_code = Column(String(255), nullable=False)
    model_id = Column(String(100), nullable=False)
    forecast_date = Column(Date, nullable=False)
    predicted_value = Column(Float, nullable=False)
    accuracy = Column(Float)
    model_version = Column(String(50), default="v1.0")
    generated_at = Column(TIMESTAMP, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint(
            "company_id", "dataset_id", "sku_code", "model_id", "forecast_date", "model_version",
            name="uq_forecast_company_dataset_sku_model_date_version"
        ),
    )


# 6) Company settings
class CompanySetting(Base):
    __tablename__ = "company_settings"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(BigInteger, nullable=False)
    key = Column(String(100), nullable=False)
    value = Column(JSON)
    description = Column(String(255))
    updated_at = Column(TIMESTAMP, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("company_id", "key", name="uq_setting_company_key"),
    )
