import io
import logging
import math
import re

import pandas as pd

from utils.date_utils import parse_date_with_format, detect_date_frequency
from utils.errors import ImportValidationError

logger = logging.getLogger(__name__)

SEPARATORS = (",", ";", "\t", "|")

MATERIAL_CODE = "Material Code"
DESCRIPTION = "Description"
DATE = "Date"
SALES = "Sales"
IGNORE = "Ignore"

NUMBER_FORMATS = ("1,234.56", "1.234,56", "1 234,56", "1234.56", "1234,56")

_MATERIAL_RE = re.compile(
    r"material|sku|product.?code|item.?code|part.?number|product.?id|item.?id|part.?id", re.I
)
_SHORT_CODE_RE = re.compile(r"^[a-z]{2,6}\d{2,}$", re.I)
_DATE_WORD_RE = re.compile(r"date|year|month|day|week|quarter|period|time", re.I)
_DESCRIPTION_RE = re.compile(r"description|name|product.?name|item.?name|title|product.?title|^desc", re.I)
_MONTH_PREFIX_RE = re.compile(r"^(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)", re.I)

_DATE_VALUE_PATTERNS = [
    re.compile(p) for p in (
        r"^\d{4}-\d{2}-\d{2}$", r"^\d{2}/\d{2}/\d{4}$", r"^\d{2}-\d{2}-\d{4}$",
        r"^\d{4}/\d{2}/\d{2}$", r"^\d{1,2}/\d{1,2}/\d{2,4}$", r"^\d{1,2}-\d{1,2}-\d{2,4}$",
    )
]
_DATE_HEADER_WORDS = [re.compile(p, re.I) for p in (r"^(q[1-4]|quarter)", r"^(week|wk)", r"^(month|mon)", r"^(year|yr)")]


# ----------------------------------------------------------
# PARSING
# ----------------------------------------------------------
def auto_detect_separator(first_line: str) -> str:
    if not first_line:
        return ","
    counts = {sep: first_line.count(sep) for sep in SEPARATORS}
    best = max(counts.values())
    if best == 0:
        return ","
    return next(sep for sep in SEPARATORS if counts[sep] == best)


def dedupe_headers(raw_headers):
    """
    Drop blank headers and make the rest unique (name, name_2, name_3 ...).
    Returns [(original_index, final_name), ...].
    """
    seen = {}
    mapping = []
    for idx, header in enumerate(raw_headers):
        name = "" if header is None else str(header).strip()
        if not name:
            continue
        if name in seen:
            seen[name] += 1
            final = f"{name}_{seen[name]}"
        else:
            seen[name] = 1
            final = name
        mapping.append((idx, final))
    return mapping


def parse_csv_with_headers(csv_text: str, separator: str | None = None):
    """
    Parse raw CSV text into (rows, headers, separator).
    Rows are dicts of strings keyed by the cleaned headers.
    """
    if not csv_text or not csv_text.strip():
        return [], [], separator or ","

    sep = separator or auto_detect_separator(csv_text.splitlines()[0])
    df = pd.read_csv(
        io.StringIO(csv_text),
        sep=sep,
        header=None,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        on_bad_lines="warn",
        engine="python",
    ).fillna("")
    if df.empty:
        return [], [], sep

    mapping = dedupe_headers(df.iloc[0].tolist())
    headers = [name for _, name in mapping]

    rows = []
    for values in df.iloc[1:].itertuples(index=False, name=None):
        row = {name: values[idx] for idx, name in mapping if idx < len(values)}
        if any(str(v).strip() for v in row.values()):
            rows.append(row)

    return rows, headers, sep


def transpose_data(rows, headers):
    """The first column's values become the headers; every other header becomes a row."""
    if not rows or not headers:
        return [], []

    key = headers[0]
    new_headers = [key] + [row.get(key) for row in rows]

    transposed = []
    for header in headers[1:]:
        new_row = {key: header}
        for i, row in enumerate(rows):
            new_row[new_headers[i + 1]] = row.get(header)
        transposed.append(new_row)

    return transposed, new_headers


# ----------------------------------------------------------
# COLUMN ROLE DETECTION
# ----------------------------------------------------------
def is_date_string(value) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    text = value.strip()
    if any(p.match(text) for p in _DATE_VALUE_PATTERNS):
        return True
    if re.match(r"^\d{8}$", text):
        return True
    return bool(_MONTH_PREFIX_RE.match(text))


def is_likely_date_column(header: str) -> bool:
    text = header.strip().lower()
    if any(p.match(text) for p in _DATE_VALUE_PATTERNS):
        return True
    if _MONTH_PREFIX_RE.match(text) or any(p.match(text) for p in _DATE_HEADER_WORDS):
        return True
    if re.match(r"^\d{8}$", text) and int(text[4:6]) <= 12 and int(text[6:8]) <= 31:
        return True
    if re.match(r"^\d{4}$", text) and 1900 <= int(text) <= 2100:
        return True
    return False


def detect_column_role(header: str) -> str:
    text = str(header).strip().lower()

    if _MATERIAL_RE.search(text):
        return MATERIAL_CODE
    if _SHORT_CODE_RE.match(text) and not _DATE_WORD_RE.search(text):
        return MATERIAL_CODE
    if _DESCRIPTION_RE.search(text):
        return DESCRIPTION
    if is_date_string(str(header)) or is_likely_date_column(str(header)):
        return DATE
    return str(header)


def detect_column_roles(headers):
    return [{"originalName": h, "role": detect_column_role(h)} for h in headers or []]


# ----------------------------------------------------------
# NUMBERS
# ----------------------------------------------------------
def parse_number_with_format(value, number_format: str | None = None) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    text = str(value).strip().replace("\u00a0", " ")
    if not text:
        return None

    if number_format == "1,234.56":
        text = text.replace(",", "")
    elif number_format == "1.234,56":
        text = text.replace(".", "").replace(",", ".")
    elif number_format == "1 234,56":
        text = text.replace(" ", "").replace(",", ".")
    elif number_format == "1234,56":
        text = text.replace(",", ".")

    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


# ----------------------------------------------------------
# WIDE -> LONG NORMALIZATION
# ----------------------------------------------------------
def normalize_to_long_format(rows, headers, column_roles, date_format="yyyy-mm-dd",
                             date_range=None, number_format=None):
    """
    Pivot dated columns into one row per (Material Code, Date).
    Output rows: Material Code, Description (when mapped), any aggregatable
    columns keyed by their role, Date (yyyy-mm-dd when parseable), Sales.
    """
    roles = [r["role"] if isinstance(r, dict) else r for r in column_roles]
    if len(roles) != len(headers):
        raise ImportValidationError("column roles must match the number of headers")
    if MATERIAL_CODE not in roles:
        raise ImportValidationError('"Material Code" column mapping is required.')

    material_col = headers[roles.index(MATERIAL_CODE)]
    desc_col = headers[roles.index(DESCRIPTION)] if DESCRIPTION in roles else None
    aggregatable = [
        (headers[i], role) for i, role in enumerate(roles)
        if role not in (MATERIAL_CODE, DESCRIPTION, DATE, IGNORE)
    ]

    start, end = date_range if date_range else (0, len(headers) - 1)
    date_columns = []
    for i in range(max(0, start), min(end, len(headers) - 1) + 1):
        if roles[i] != DATE:
            continue
        parsed = parse_date_with_format(headers[i], date_format)
        date_columns.append((headers[i], parsed.isoformat() if parsed else headers[i]))

    result = []
    for row in rows:
        material = row.get(material_col)
        if material is None or str(material).strip() == "":
            continue

        for col, iso_date in date_columns:
            entry = {MATERIAL_CODE: str(material).strip()}
            if desc_col is not None:
                entry[DESCRIPTION] = row.get(desc_col, "")
            for agg_col, role in aggregatable:
                entry[role] = row.get(agg_col)
            entry[DATE] = iso_date
            sales = parse_number_with_format(row.get(col), number_format)
            entry[SALES] = sales if sales is not None else 0.0
            result.append(entry)

    logger.info(f"Normalized {len(rows)} rows into {len(result)} long-format records.")
    return result


def summarize_long_data(long_rows):
    sku_list = list(dict.fromkeys(r[MATERIAL_CODE] for r in long_rows if r.get(MATERIAL_CODE)))
    unique_dates = sorted({r[DATE] for r in long_rows if r.get(DATE)})
    date_range = [unique_dates[0], unique_dates[-1]] if unique_dates else ["N/A", "N/A"]
    frequency = detect_date_frequency(unique_dates)["type"]
    return {
        "skuList": sku_list,
        "skuCount": len(sku_list),
        "dateRange": date_range,
        "totalPeriods": len(unique_dates),
        "frequency": frequency,
    }
