import glob
import hashlib
import json
import logging
import os
from datetime import date

import pandas as pd
from sqlalchemy import func

from db.models import Dataset, TimeSeriesData
from utils.csv_utils import MATERIAL_CODE, DESCRIPTION, DATE, SALES
from utils.date_utils import to_date
from utils.errors import ImportValidationError

logger = logging.getLogger(__name__)

FILE_PREFIX = "Original_CSV_Upload"


def csv_hash(raw_csv: str) -> str:
    return hashlib.sha256(raw_csv.encode("utf-8")).hexdigest()[:30]


def dataset_name(date_range, sku_count: int, today: date | None = None) -> str:
    today = today or date.today()
    start, end = (date_range or ["N/A", "N/A"])[:2]
    return f"Dataset {today.isoformat()} - From {start} to {end} ({sku_count} products)"


# ----------------------------------------------------------
# FILES
# ----------------------------------------------------------
def _discard(path: str):
    root, ext = os.path.splitext(path)
    target = f"{root}-discarded{ext}"
    os.replace(path, target)
    logger.info(f"Discarded previous upload {os.path.basename(path)}")


def write_import_files(uploads_dir: str, raw_csv: str, processed, hash_value: str, ts: int):
    """
    Writes the original CSV and the processed JSON for an upload.
    Earlier uploads with the same short hash are renamed with a -discarded suffix.
    Returns (csv_path, json_path).
    """
    os.makedirs(uploads_dir, exist_ok=True)
    hash8 = hash_value[:8]

    for old in glob.glob(os.path.join(uploads_dir, f"{FILE_PREFIX}-*-{hash8}-*")):
        if "-discarded" not in os.path.basename(old):
            _discard(old)

    base = os.path.join(uploads_dir, f"{FILE_PREFIX}-{ts}-{hash8}")
    csv_path = f"{base}-original.csv"
    json_path = f"{base}-processed.json"

    with open(csv_path, "w", encoding="utf-8") as f:
        f.write(raw_csv)
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(processed, f, default=str)

    return csv_path, json_path


# ----------------------------------------------------------
# DATABASE
# ----------------------------------------------------------
def find_duplicate(db, company_id: int, hash_value: str):
    return db.query(Dataset).filter(
        Dataset.company_id == company_id,
        Dataset.dataset_hash == hash_value,
    ).order_by(Dataset.uploaded_at.desc()).first()


def aggregate_long_rows(long_rows) -> pd.DataFrame:
    """Sum Sales per (Material Code, Date); rows with an unparseable date are dropped."""
    df = pd.DataFrame(long_rows)
    if df.empty:
        return pd.DataFrame(columns=["sku_code", "description", "date", "value"])

    if DESCRIPTION not in df.columns:
        df[DESCRIPTION] = None
    df["date"] = df[DATE].map(to_date)
    dropped = int(df["date"].isna().sum())
    if dropped:
        logger.warning(f"Dropping {dropped} rows with unparseable dates")
    df = df.dropna(subset=["date"])
    df["value"] = pd.to_numeric(df[SALES], errors="coerce").fillna(0.0)
    df["sku_code"] = df[MATERIAL_CODE].astype(str).str.strip()

    return df.groupby(["sku_code", "date"], as_index=False, sort=True).agg(
        value=("value", "sum"),
        description=(DESCRIPTION, "first"),
    )


def save_dataset(db, company_id: int, name: str, file_path: str, hash_value: str,
                 frequency: str, summary: dict, long_rows) -> Dataset:
    """Adds the dataset row and its series rows. Caller commits."""
    frame = aggregate_long_rows(long_rows)
    if frame.empty:
        raise ImportValidationError("No sales rows to import")

    dataset = Dataset(
        company_id=company_id,
        name=name,
        file_path=file_path,
        dataset_hash=hash_value,
        frequency=frequency,
        summary=summary,
    )
    db.add(dataset)
    db.flush()

    db.bulk_save_objects([
        TimeSeriesData(
            company_id=company_id,
            dataset_id=dataset.id,
            sku_code=row["sku_code"],
            description=(row["description"] or None) if isinstance(row["description"], str) else None,
            date=row["date"],
            value=float(row["value"]),
        )
        for row in frame.to_dict("records")
    ])
    logger.info(f"Saved dataset {dataset.id} with {len(frame)} rows for company {company_id}")
    return dataset


def serialize_dataset(d: Dataset, row_count: int | None = None) -> dict:
    return {
        "id": d.id,
        "company_id": d.company_id,
        "name": d.name,
        "file_path": d.file_path,
        "dataset_hash": d.dataset_hash,
        "frequency": d.frequency,
        "summary": d.summary or {},
        "uploaded_at": d.uploaded_at.isoformat() if d.uploaded_at else None,
        "row_count": row_count,
    }


def dataset_row_counts(db, company_id: int) -> dict:
    rows = db.query(TimeSeriesData.dataset_id, func.count(TimeSeriesData.id)).filter(
        TimeSeriesData.company_id == company_id
    ).group_by(TimeSeriesData.dataset_id).all()
    return {dataset_id: count for dataset_id, count in rows}
