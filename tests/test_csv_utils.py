import pytest

from utils.csv_utils import (
    DATE, DESCRIPTION, MATERIAL_CODE, SALES,
    auto_detect_separator, detect_column_role, detect_column_roles, is_date_string, is_likely_date_column,
    normalize_to_long_format, parse_csv_with_headers, parse_number_with_format, summarize_long_data,
    transpose_data,
)
from utils.errors import ImportValidationError

WIDE_CSV = (
    "Material,Description,2024-01-01,2024-02-01\n"
    "A1,Widget,10,20\n"
    "B2,Gadget,5,\n"
)


def test_auto_detect_separator():
    assert auto_detect_separator("a;b;c,d") == ";"
    assert auto_detect_separator("a\tb\tc") == "\t"
    # ties resolve in declaration order
    assert auto_detect_separator("a,b;c") == ","
    assert auto_detect_separator("") == ","
    assert auto_detect_separator("single") == ","


def test_parse_csv_with_headers_basic():
    rows, headers, sep = parse_csv_with_headers(WIDE_CSV)
    assert sep == ","
    assert headers == ["Material", "Description", "2024-01-01", "2024-02-01"]
    assert len(rows) == 2
    assert rows[0] == {"Material": "A1", "Description": "Widget", "2024-01-01": "10", "2024-02-01": "20"}
    assert rows[1]["2024-02-01"] == ""


def test_parse_csv_dedupes_and_drops_blank_headers():
    rows, headers, _ = parse_csv_with_headers("SKU,,Jan,Jan\nA,x,1,2\n")
    assert headers == ["SKU", "Jan", "Jan_2"]
    assert rows == [{"SKU": "A", "Jan": "1", "Jan_2": "2"}]


def test_parse_csv_semicolon_and_empty_rows():
    rows, headers, sep = parse_csv_with_headers("SKU;Sales\nA;1\n;\nB;2\n")
    assert sep == ";"
    assert headers == ["SKU", "Sales"]
    assert [r["SKU"] for r in rows] == ["A", "B"]


def test_parse_csv_empty_input():
    assert parse_csv_with_headers("   ") == ([], [], ",")


def test_transpose_data():
    headers = ["SKU", "2024-01", "2024-02"]
    rows = [
        {"SKU": "A", "2024-01": "1", "2024-02": "2"},
        {"SKU": "B", "2024-01": "3", "2024-02": "4"},
    ]
    transposed, new_headers = transpose_data(rows, headers)
    assert new_headers == ["SKU", "A", "B"]
    assert transposed == [
        {"SKU": "2024-01", "A": "1", "B": "3"},
        {"SKU": "2024-02", "A": "2", "B": "4"},
    ]
    assert transpose_data([], []) == ([], [])


@pytest.mark.parametrize("header, role", [
    ("Material Code", MATERIAL_CODE),
    ("SKU", MATERIAL_CODE),
    ("Item ID", MATERIAL_CODE),
    ("abc123", MATERIAL_CODE),
    ("Product Name", DESCRIPTION),
    ("Description", DESCRIPTION),
    ("2024-01-01", DATE),
    ("01/02/2024", DATE),
    ("Jan-24", DATE),
    ("Q1 2024", DATE),
    ("2023", DATE),
    ("20240115", DATE),
    ("Region", "Region"),
])
def test_detect_column_role(header, role):
    assert detect_column_role(header) == role


def test_detect_column_roles_shape():
    roles = detect_column_roles(["SKU", "Region"])
    assert roles == [
        {"originalName": "SKU", "role": MATERIAL_CODE},
        {"originalName": "Region", "role": "Region"},
    ]


def test_date_string_helpers():
    assert is_date_string("2024-03-01")
    assert is_date_string("March")
    assert not is_date_string("")
    assert not is_date_string("Revenue")
    assert is_likely_date_column("week 12")
    assert not is_likely_date_column("1850")
    assert not is_likely_date_column("20241399")


@pytest.mark.parametrize("value, fmt, expected", [
    ("1,234.56", "1,234.56", 1234.56),
    ("1.234,56", "1.234,56", 1234.56),
    ("1 234,56", "1 234,56", 1234.56),
    ("1234,56", "1234,56", 1234.56),
    ("1234.56", "1234.56", 1234.56),
    ("12.5", None, 12.5),
    (7, None, 7.0),
    ("", None, None),
    ("abc", "1,234.56", None),
    (None, None, None),
])
def test_parse_number_with_format(value, fmt, expected):
    assert parse_number_with_format(value, fmt) == expected


def test_normalize_to_long_format():
    rows, headers, _ = parse_csv_with_headers(WIDE_CSV)
    long_rows = normalize_to_long_format(rows, headers, detect_column_roles(headers))

    assert len(long_rows) == 4
    assert long_rows[0] == {MATERIAL_CODE: "A1", DESCRIPTION: "Widget", DATE: "2024-01-01", SALES: 10.0}
    assert long_rows[1][DATE] == "2024-02-01"
    # empty cell becomes 0
    assert long_rows[3] == {MATERIAL_CODE: "B2", DESCRIPTION: "Gadget", DATE: "2024-02-01", SALES: 0.0}


def test_normalize_parses_header_dates_with_format():
    headers = ["SKU", "01/02/2024", "Jan-24"]
    rows = [{"SKU": "A", "01/02/2024": "3", "Jan-24": "4"}]
    long_rows = normalize_to_long_format(rows, headers, detect_column_roles(headers), "dd/mm/yyyy")
    assert [r[DATE] for r in long_rows] == ["2024-02-01", "Jan-24"]


def test_normalize_respects_date_range_and_aggregatable_roles():
    headers = ["SKU", "Region", "2024-01-01", "2024-02-01"]
    rows = [{"SKU": "A", "Region": "North", "2024-01-01": "1", "2024-02-01": "2"}]
    long_rows = normalize_to_long_format(rows, headers, detect_column_roles(headers), date_range=(0, 2))
    assert long_rows == [{MATERIAL_CODE: "A", "Region": "North", DATE: "2024-01-01", SALES: 1.0}]


def test_normalize_skips_rows_without_material_code():
    headers = ["SKU", "2024-01-01"]
    rows = [{"SKU": "", "2024-01-01": "5"}, {"SKU": "B", "2024-01-01": "6"}]
    long_rows = normalize_to_long_format(rows, headers, detect_column_roles(headers))
    assert [r[MATERIAL_CODE] for r in long_rows] == ["B"]


def test_normalize_requires_material_code():
    headers = ["Region", "2024-01-01"]
    with pytest.raises(ImportValidationError):
        normalize_to_long_format([{"Region": "x", "2024-01-01": "1"}], headers, detect_column_roles(headers))


def test_summarize_long_data():
    rows, headers, _ = parse_csv_with_headers(WIDE_CSV)
    summary = summarize_long_data(normalize_to_long_format(rows, headers, detect_column_roles(headers)))
    assert summary["skuList"] == ["A1", "B2"]
    assert summary["skuCount"] == 2
    assert summary["dateRange"] == ["2024-01-01", "2024-02-01"]
    assert summary["totalPeriods"] == 2
    assert summary["frequency"] == "monthly"

    assert summarize_long_data([])["dateRange"] == ["N/A", "N/A"]
