import pandas as pd
from sklearn.ensemble import IsolationForest

from db.queries import load_series_frame
from utils.ai_config import DEFAULT_Z_THRESHOLD


# ----------------------------------------------------------
# HUMAN-READABLE REASON BUILDER
# ----------------------------------------------------------
def build_reason(row, mu, sigma, threshold):
    reasons = []

    if row["is_zero_outlier"]:
        reasons.append(f"Zero sales on {row['date']} treated as an outlier.")

    if row["is_z_outlier"]:
        reasons.append(
            f"Z-score {row['z_score']:.2f} above {threshold} on {row['date']}: "
            f"{row['value']:,.0f} vs mean {mu:,.0f} (σ={sigma:,.0f})."
        )

    if row["iso_flag"]:
        reasons.append(f"Isolation Forest flagged this period as unusual (iso_score={row['iso_score']:.3f}).")

    if not reasons:
        return "Within normal range."
    return " ".join(reasons)


# ----------------------------------------------------------
# MAIN OUTLIER DETECTION
# ----------------------------------------------------------
def detect_outliers(values, dates, threshold: float = DEFAULT_Z_THRESHOLD,
                    treat_zeros_as_outliers: bool = False):
    """
    Z-score outlier detection for one SKU series.
    Each row contains: index, date, value, z_score, is_outlier, iso_flag,
    severity, reason. Isolation Forest only contributes (iso_flag, severity)
    and never decides is_outlier on its own.
    """
    if not values:
        return []

    df = pd.DataFrame({"date": [str(d) for d in dates], "value": [float(v) for v in values]})

    # ------------------------------------------------------
    # Z-SCORE (population std)
    # ------------------------------------------------------
    mu = df["value"].mean()
    sigma = df["value"].std(ddof=0)

    df["z_score"] = 0.0 if sigma == 0 else (df["value"] - mu).abs() / sigma
    df["is_z_outlier"] = df["z_score"] > threshold
    df["is_zero_outlier"] = (df["value"] == 0) & treat_zeros_as_outliers

    # ------------------------------------------------------
    # Isolation Forest
    # ------------------------------------------------------
    if len(df) > 10 and sigma > 0:
        iso = IsolationForest(contamination=0.05, random_state=42)
        df["iso_label"] = iso.fit_predict(df[["value"]])
        df["iso_score"] = iso.decision_function(df[["value"]])
        df["iso_flag"] = df["iso_label"] == -1
    else:
        df["iso_score"] = 0.5  # neutral score
        df["iso_flag"] = False

    df["is_outlier"] = df["is_z_outlier"] | df["is_zero_outlier"]
    df["severity"] = df["z_score"] + (0.5 - df["iso_score"]).clip(lower=0)

    results = []
    for idx, row in df.iterrows():
        results.append({
            "index": int(idx),
            "date": row["date"],
            "value": float(row["value"]),
            "z_score": float(round(row["z_score"], 4)),
            "is_outlier": bool(row["is_outlier"]),
            "iso_flag": bool(row["iso_flag"]),
            "severity": float(round(row["severity"], 4)),
            "reason": build_reason(row, mu, sigma, threshold),
        })
    return results


def detect_dataset_outliers(company_id: int, dataset_id: int, sku: str | None = None,
                            threshold: float = DEFAULT_Z_THRESHOLD, treat_zeros_as_outliers: bool = False,
                            only_outliers: bool = False):
    df = load_series_frame(company_id, dataset_id, sku)
    if df.empty:
        return []

    results = []
    for sku_code, grp in df.groupby("sku_code", sort=True):
        for row in detect_outliers(grp["value"].tolist(), grp["date"].tolist(), threshold, treat_zeros_as_outliers):
            if only_outliers and not row["is_outlier"]:
                continue
            results.append({"sku": str(sku_code), **row})
    return results
