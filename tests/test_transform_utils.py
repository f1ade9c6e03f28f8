from utils.transform_utils import apply_transformations, evaluate_condition

ROWS = [
    {"SKU": "A", "YEAR": "2024", "MONTH": "1", "Sales": "10"},
    {"SKU": "A", "YEAR": "2024", "MONTH": "2", "Sales": "4"},
    {"SKU": "", "YEAR": "2024", "MONTH": "2", "Sales": "7"},
    {"SKU": "B", "YEAR": "2024", "MONTH": "1", "Sales": "n/a"},
]


def test_evaluate_condition():
    row = {"SKU": "A", "Sales": "10", "Region": "North"}
    assert evaluate_condition(row, "is_numeric(Sales)")
    assert evaluate_condition(row, "not is_blank('SKU') and Sales >= 10")
    assert not evaluate_condition(row, "Sales > 10")
    assert evaluate_condition(row, "Region == 'North'")
    assert not evaluate_condition(row, "Region != North")
    assert not evaluate_condition({"Sales": "abc"}, "Sales > 1")
    assert not evaluate_condition({}, "Sales < 1")


def test_rename_combine_filter_select():
    config = {"operations": [
        {"operation": "rename", "old_name": "SKU", "new_name": "Material Code"},
        {"operation": "combine", "cols": ["YEAR", "MONTH"], "new_col": "Date"},
        {"operation": "filter", "condition": "not is_blank('Material Code') and is_numeric(Sales)"},
        {"operation": "select", "cols": ["Material Code", "Date", "Sales"]},
    ]}
    rows, columns = apply_transformations(ROWS, config)
    assert columns == ["Material Code", "Date", "Sales"]
    assert rows == [
        {"Material Code": "A", "Date": "2024-01-01", "Sales": "10"},
        {"Material Code": "A", "Date": "2024-02-01", "Sales": "4"},
    ]


def test_pivot_wider_fills_missing_and_sorts_names():
    rows = [
        {"SKU": "A", "Month": "2024-02", "Sales": "2"},
        {"SKU": "A", "Month": "2024-01", "Sales": "1"},
        {"SKU": "B", "Month": "2024-01", "Sales": "3"},
    ]
    config = {"operations": [{"operation": "pivot_wider", "names_from": "Month", "values_from": "Sales"}]}
    out, columns = apply_transformations(rows, config)
    assert columns == ["SKU", "2024-01", "2024-02"]
    assert out == [
        {"SKU": "A", "2024-02": "2", "2024-01": "1"},
        {"SKU": "B", "2024-01": "3", "2024-02": "0"},
    ]


def test_pivot_longer():
    rows = [{"SKU": "A", "Jan": "1", "Feb": "2"}]
    config = {"operations": [
        {"operation": "pivot_longer", "cols": ["Jan", "Feb"], "names_to": "Month", "values_to": "Sales"},
    ]}
    out, columns = apply_transformations(rows, config)
    assert out == [
        {"SKU": "A", "Month": "Jan", "Sales": "1"},
        {"SKU": "A", "Month": "Feb", "Sales": "2"},
    ]
    assert columns == ["SKU", "Month", "Sales"]


def test_unknown_operation_is_skipped():
    rows, columns = apply_transformations(ROWS[:1], {"operations": [{"operation": "explode"}]})
    assert rows == ROWS[:1]
    assert columns == ["SKU", "YEAR", "MONTH", "Sales"]


def test_invalid_config_and_empty_input():
    rows, columns = apply_transformations(ROWS, {"steps": []})
    assert rows == ROWS
    assert columns == list(ROWS[0].keys())
    assert apply_transformations([], {"operations": []}) == ([], [])
