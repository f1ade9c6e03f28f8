import pandas as pd
from sqlalchemy import text

from db.connection import engine


def load_series_frame(company_id: int, dataset_id: int, sku: str | None = None) -> pd.DataFrame:
    """
    Long-format sales for a dataset: sku_code, date, value (ordered by sku, date).
    """
    base_query = """
        SELECT sku_code, date, value
        FROM time_series_data
        WHERE company_id = :company_id
          AND dataset_id = :dataset_id
        {sku_filter}
        ORDER BY sku_code, date
    """
    sku_filter = ""
    params = {"company_id": company_id, "dataset_id": dataset_id}
    if sku is not None:
        sku_filter = "AND sku_code = :sku"
        params["sku"] = str(sku)

    query = text(base_query.format(sku_filter=sku_filter))
    df = pd.read_sql(query, engine, params=params)
    if not df.empty:
        df["date"] = pd.to_datetime(df["date"]).dt.date
        df["value"] = df["value"].astype(float)
    return df


def series_by_sku(df: pd.DataFrame) -> dict:
    """sku -> (dates, values)"""
    return {
        str(sku): (grp["date"].tolist(), grp["value"].tolist())
        for sku, grp in df.groupby("sku_code", sort=True)
    }
