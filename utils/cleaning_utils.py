import io
import logging

import pandas as pd

from db.models import TimeSeriesData
from utils.date_utils import to_date
from utils.errors import ImportValidationError

logger = logging.getLogger(__name__)

CLEANING_COLUMNS = [
    "SKU", "Date", "Original_Sales", "Cleaned_Sales", "Change_Amount", "Note", "Was_Outlier", "Z_Score"
]
REQUIRED_COLUMNS = ("SKU", "Date", "Cleaned_Sales")
EXPORT_TITLE = "Sales Data Cleaning Export"
VALUE_TOLERANCE = 1e-6
LINE_COLUMN = "__line__"


# ----------------------------------------------------------
# EXPORT
# ----------------------------------------------------------
def export_cleaning_csv(records, threshold: float, export_date: str) -> str:
    """
    records: dicts with sku, date, original, cleaned, note, is_outlier, z_score.
    Cleaned defaults to the original value when missing.
    """
    lines = [
        f"# {EXPORT_TITLE}",
        f"# Export Date: {export_date}",
        f"# Z-Score Threshold: {threshold}",
        f"# Total Records: {len(records)}",
    ]

    rows = []
    for r in records:
        original = float(r.get("original") or 0)
        cleaned = r.get("cleaned")
        cleaned = original if cleaned is None else float(cleaned)
        rows.append({
            "SKU": r["sku"],
            "Date": str(r["date"]),
            "Original_Sales": original,
            "Cleaned_Sales": cleaned,
            "Change_Amount": round(cleaned - original, 4),
            "Note": r.get("note") or "",
            "Was_Outlier": "Yes" if r.get("is_outlier") else "No",
            "Z_Score": round(float(r.get("z_score") or 0), 2),
        })

    body = pd.DataFrame(rows, columns=CLEANING_COLUMNS).to_csv(index=False, lineterminator="\n")
    return "\n".join(lines) + "\n" + body


# ----------------------------------------------------------
# IMPORT
# ----------------------------------------------------------
def _parse_metadata(line: str, metadata: dict):
    text = line.lstrip("#").strip()
    if ":" not in text:
        if text:
            metadata.setdefault("title", text)
        return
    key, value = text.split(":", 1)
    key = key.strip().lower().replace("-", "_").replace(" ", "_")
    metadata[key] = value.strip()


def parse_cleaning_csv(text: str):
    """
    Returns (records, metadata, errors). Malformed lines and lines with an
    unreadable SKU, Date or Cleaned_Sales are reported in errors with their
    1-based line number and left out.
    """
    metadata, records, errors = {}, [], []
    data_lines = []

    for n, line in enumerate((text or "").splitlines(), start=1):
        if line.startswith("#"):
            _parse_metadata(line, metadata)
        elif line.strip():
            data_lines.append(f"{n},{line}")

    if not data_lines:
        return [], metadata, ["No data rows found"]

    # first column carries the source line number
    data_lines[0] = f"{LINE_COLUMN},{data_lines[0].split(',', 1)[1]}"

    def bad_line(fields):
        errors.append((int(fields[0]), f"Line {fields[0]}: too many fields ({len(fields) - 1})"))
        return None

    try:
        df = pd.read_csv(
            io.StringIO("\n".join(data_lines)),
            dtype=str,
            keep_default_na=False,
            index_col=False,
            on_bad_lines=bad_line,
            engine="python",
        )
    except pd.errors.ParserError as e:
        raise ImportValidationError(f"Cleaning CSV could not be parsed: {e}") from e
    df = df.fillna("")
    df.columns = [str(c).strip() for c in df.columns]

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        return [], metadata, [f"Missing required columns: {', '.join(missing)}"]

    for row in df.to_dict("records"):
        line_no = int(row[LINE_COLUMN])
        sku = str(row.get("SKU", "")).strip()
        date_value = to_date(str(row.get("Date", "")).strip())
        cleaned = pd.to_numeric(str(row.get("Cleaned_Sales", "")).strip(), errors="coerce")
        original = pd.to_numeric(str(row.get("Original_Sales", "")).strip(), errors="coerce")

        if not sku:
            errors.append((line_no, f"Line {line_no}: missing SKU"))
            continue
        if date_value is None:
            errors.append((line_no, f"Line {line_no}: invalid date '{row.get('Date')}'"))
            continue
        if pd.isna(cleaned):
            errors.append((line_no, f"Line {line_no}: invalid Cleaned_Sales '{row.get('Cleaned_Sales')}'"))
            continue

        records.append({
            "sku": sku,
            "date": date_value.isoformat(),
            "original": None if pd.isna(original) else float(original),
            "cleaned": float(cleaned),
            "note": str(row.get("Note", "")).strip(),
        })

    messages = [message for _, message in sorted(errors, key=lambda e: e[0])]
    logger.info(f"Parsed {len(records)} cleaning records ({len(messages)} errors)")
    return records, metadata, messages


# ----------------------------------------------------------
# PREVIEW + APPLY
# ----------------------------------------------------------
def build_import_preview(records, current_values: dict):
    """
    current_values maps (sku, iso date) -> {"value": float, "note": str | None}.
    Records whose (sku, date) is not in the dataset come back with found=False.
    """
    previews = []
    for r in records:
        current = current_values.get((r["sku"], r["date"]))
        if current is None:
            previews.append({**r, "current": None, "found": False, "action": "no_change", "has_changes": False})
            continue

        current_note = current.get("note") or ""
        if abs(float(current["value"]) - r["cleaned"]) > VALUE_TOLERANCE:
            action = "modify"
        elif r["note"] and r["note"] != current_note:
            action = "add_note"
        else:
            action = "no_change"

        previews.append({
            **r,
            "current": float(current["value"]),
            "current_note": current_note,
            "found": True,
            "action": action,
            "has_changes": action != "no_change",
        })
    return previews


def current_values_for(db, company_id: int, dataset_id: int) -> dict:
    rows = db.query(TimeSeriesData).filter(
        TimeSeriesData.company_id == company_id,
        TimeSeriesData.dataset_id == dataset_id,
    ).all()
    return {(r.sku_code, r.date.isoformat()): {"value": r.value, "note": r.note} for r in rows}


def apply_cleaning_changes(db, company_id: int, dataset_id: int, previews) -> int:
    """Writes modify/add_note previews to time_series_data. Caller commits. Returns rows updated."""
    updated = 0
    for p in previews:
        if p.get("action") not in ("modify", "add_note"):
            continue
        row = db.query(TimeSeriesData).filter(
            TimeSeriesData.company_id == company_id,
            TimeSeriesData.dataset_id == dataset_id,
            TimeSeriesData.sku_code == p["sku"],
            TimeSeriesData.date == to_date(p["date"]),
        ).first()
        if row is None:
            continue
        if p["action"] == "modify":
            row.value = float(p["cleaned"])
        if p.get("note"):
            row.note = p["note"]
        updated += 1
    return updated
