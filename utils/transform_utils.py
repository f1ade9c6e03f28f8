import logging
import math
import re

logger = logging.getLogger(__name__)

_COMPARISON_OPS = (">=", "<=", "==", "!=", ">", "<")


def _to_float(value):
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _is_blank(value):
    return value is None or str(value).strip() == ""


def evaluate_condition(row: dict, condition: str) -> bool:
    """
    Evaluate the filter mini-language against one row. Clauses are joined by
    " and ": is_numeric(col), not is_blank('col'), col OP value.
    Unrecognised clauses pass.
    """
    for part in (p.strip() for p in condition.split(" and ")):
        if part.startswith("is_numeric"):
            match = re.search(r"\(([^)]+)\)", part)
            col = match.group(1).strip().strip("'\"") if match else ""
            if _is_blank(row.get(col)) or _to_float(row.get(col)) is None:
                return False
            continue

        if part.startswith("not is_blank"):
            match = re.search(r"\(([^)]+)\)", part)
            col = match.group(1).strip().strip("'\"") if match else ""
            if _is_blank(row.get(col)):
                return False
            continue

        op = next((o for o in _COMPARISON_OPS if o in part), None)
        if op is None:
            continue
        col, raw = (s.strip() for s in part.split(op, 1))
        expected = raw.replace("'", "").replace('"', "")
        actual = row.get(col)
        if actual is None:
            return False

        if op == "==":
            ok = str(actual) == expected
        elif op == "!=":
            ok = str(actual) != expected
        else:
            left, right = _to_float(actual), _to_float(expected)
            if left is None or right is None:
                return False
            ok = {
                ">=": left >= right,
                "<=": left <= right,
                ">": left > right,
                "<": left < right,
            }[op]
        if not ok:
            return False
    return True


# ----------------------------------------------------------
# OPERATIONS
# ----------------------------------------------------------
def _rename(rows, op):
    old, new = op.get("old_name"), op.get("new_name")
    out = []
    for row in rows:
        new_row = dict(row)
        if old in new_row:
            new_row[new] = new_row.pop(old)
        out.append(new_row)
    return out


def _combine(rows, op):
    cols = op.get("cols") or []
    new_col = op.get("new_col")
    out = []
    for row in rows:
        new_row = dict(row)
        if cols and all(c in row for c in cols):
            year, month = row.get("YEAR"), row.get("MONTH")
            if year and month:
                new_row[new_col] = f"{year}-{str(month).zfill(2)}-01"
        out.append(new_row)
    return out


def _filter(rows, op):
    condition = op.get("condition")
    if not condition:
        return rows
    return [row for row in rows if evaluate_condition(row, condition)]


def _select(rows, op):
    cols = op.get("cols")
    if not isinstance(cols, list):
        logger.warning("select operation missing or invalid cols array")
        return rows
    return [{c: row.get(c) for c in cols} for row in rows]


def _pivot_wider(rows, op):
    names_from, values_from = op.get("names_from"), op.get("values_from")
    fill = op.get("values_fill") or "0"
    if not names_from or not values_from:
        logger.warning("pivot_wider operation missing names_from/values_from")
        return rows, None

    id_cols = [c for c in rows[0].keys() if c not in (names_from, values_from)]
    grouped = {}
    for row in rows:
        key = tuple(row.get(c) for c in id_cols)
        group = grouped.setdefault(key, {c: row.get(c) for c in id_cols})
        name = row.get(names_from)
        if name:
            group[name] = row.get(values_from)

    names = sorted({row.get(names_from) for row in rows if row.get(names_from)})
    out = []
    for group in grouped.values():
        for name in names:
            group.setdefault(name, fill)
        out.append(group)
    return out, id_cols + names


def _pivot_longer(rows, op):
    cols = op.get("cols") or []
    names_to = op.get("names_to", "name")
    values_to = op.get("values_to", "value")
    out = []
    for row in rows:
        base = {k: v for k, v in row.items() if k not in cols}
        for col in cols:
            if col not in row:
                continue
            entry = dict(base)
            entry[names_to] = col
            entry[values_to] = row[col]
            out.append(entry)
    return out


def apply_transformations(rows, config):
    """
    Apply the operations of a transform config in order.
    Returns (rows, columns).
    """
    if not rows:
        return [], []
    if not isinstance(config, dict) or not isinstance(config.get("operations"), list):
        logger.warning("apply_transformations called with invalid config")
        return list(rows), list(rows[0].keys())

    result = list(rows)
    pivot_columns = None

    for i, op in enumerate(config["operations"]):
        if not result:
            logger.warning(f"No data left before operation {i}: {op.get('operation')}")
            break
        name = op.get("operation")
        try:
            if name == "rename":
                result = _rename(result, op)
            elif name == "combine":
                result = _combine(result, op)
            elif name == "filter":
                result = _filter(result, op)
            elif name == "select":
                result = _select(result, op)
            elif name == "pivot_wider":
                result, columns = _pivot_wider(result, op)
                if columns is not None:
                    pivot_columns = columns
            elif name == "pivot_longer":
                result = _pivot_longer(result, op)
                pivot_columns = None
            else:
                logger.info(f"Unknown operation type: {name}")
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(f"Error applying operation {i} ({name}): {e}")

    if pivot_columns:
        return result, pivot_columns
    return result, (list(result[0].keys()) if result else [])
