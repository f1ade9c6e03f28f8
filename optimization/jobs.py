import io
import json
import logging
import math
import uuid
from datetime import datetime

import numpy as np
import pandas as pd
from sqlalchemy import func

from db.connection import upsert
from db.models import Dataset, OptimizationJob, OptimizationResult, TimeSeriesData
from db.queries import load_series_frame, series_by_sku
from models.registry import (
    get_model_class, is_model_eligible, optimizable_models, resolve_model_id, required_total_points
)
from optimization.scoring import (
    composite_score, data_hash, get_priority_from_reason, metric_maxima, optimization_hash
)
from utils.ai_config import DEFAULT_METRIC_WEIGHTS, FINISHED_STATUSES, OPTIMIZATION_METHODS
from utils.date_utils import seasonal_period_from_frequency
from utils.errors import JobStateError, NotFoundError, OptimizationError

logger = logging.getLogger(__name__)


def json_safe(obj):
    """Make results storable as JSON: non-finite floats become None, numpy scalars become Python."""
    if isinstance(obj, dict):
        return {str(k): json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [json_safe(v) for v in obj]
    if isinstance(obj, np.generic):
        obj = obj.item()
    if isinstance(obj, float) and not math.isfinite(obj):
        return None
    return obj


def serialize_job(j: OptimizationJob) -> dict:
    return {
        "id": j.id,
        "datasetId": j.dataset_id,
        "sku": j.sku,
        "modelId": j.model_id,
        "method": j.method,
        "reason": j.reason,
        "batchId": j.batch_id,
        "status": j.status,
        "progress": j.progress,
        "priority": j.priority,
        "error": j.error,
        "optimizationHash": j.optimization_hash,
        "createdAt": j.created_at.strftime("%Y-%m-%d %H:%M:%S") if j.created_at else None,
        "startedAt": j.started_at.strftime("%Y-%m-%d %H:%M:%S") if j.started_at else None,
        "completedAt": j.completed_at.strftime("%Y-%m-%d %H:%M:%S") if j.completed_at else None,
    }


def get_dataset(db, company_id: int, dataset_id: int) -> Dataset:
    dataset = db.query(Dataset).filter_by(id=dataset_id, company_id=company_id).first()
    if dataset is None:
        raise NotFoundError(f"Dataset {dataset_id} not found")
    return dataset


# ----------------------------------------------------------
# JOB CREATION
# ----------------------------------------------------------
def create_jobs(db, company_id: int, dataset_id: int, skus=None, model_ids=None, method: str = "grid",
                reason: str | None = None, batch_id: str | None = None, metric_weights: dict | None = None):
    """
    Queue one job per (sku, model). Models without enough history for a SKU
    are filtered; models that opt out of grid search and requests already
    queued with the same optimization hash are skipped.
    """
    if method not in OPTIMIZATION_METHODS:
        raise OptimizationError(f"Unknown optimization method: {method}")

    dataset = get_dataset(db, company_id, dataset_id)
    seasonal_period = seasonal_period_from_frequency(dataset.frequency)
    weights = metric_weights or DEFAULT_METRIC_WEIGHTS
    reason = reason or "manual_trigger"
    priority = get_priority_from_reason(reason)
    batch_id = batch_id or uuid.uuid4().hex[:12]

    series = series_by_sku(load_series_frame(company_id, dataset_id))
    skus = list(dict.fromkeys(str(s) for s in skus)) if skus else list(series.keys())
    model_ids = list(dict.fromkeys(resolve_model_id(m) for m in model_ids)) if model_ids else optimizable_models()

    created = skipped = filtered = 0
    queued = set()
    for sku in skus:
        _, values = series.get(sku, ([], []))
        values_hash = data_hash(values)

        for model_id in model_ids:
            if not is_model_eligible(model_id, len(values), seasonal_period):
                filtered += 1
                logger.info(
                    f"Filtered {model_id} for SKU {sku}: {len(values)} points, "
                    f"requires {required_total_points(model_id, seasonal_period)}"
                )
                continue

            opt_hash = optimization_hash(sku, model_id, method, values_hash, {}, weights)
            payload = {
                "seasonalPeriod": seasonal_period,
                "frequency": dataset.frequency,
                "metricWeights": weights,
                "datasetName": dataset.name,
            }

            if method == "grid" and not get_model_class(model_id).grid_search:
                db.add(OptimizationJob(
                    company_id=company_id, dataset_id=dataset_id, sku=sku, model_id=model_id,
                    method=method, payload=payload, reason=reason, batch_id=batch_id,
                    status="skipped", priority=priority, optimization_hash=opt_hash,
                    error="Model opted out of grid search", completed_at=datetime.utcnow(),
                ))
                skipped += 1
                continue

            if opt_hash in queued:
                skipped += 1
                continue

            duplicate = (
                db.query(OptimizationJob.id)
                .filter(OptimizationJob.company_id == company_id,
                        OptimizationJob.optimization_hash == opt_hash,
                        OptimizationJob.status.in_(("pending", "running")))
                .first()
            )
            if duplicate:
                skipped += 1
                continue

            db.add(OptimizationJob(
                company_id=company_id, dataset_id=dataset_id, sku=sku, model_id=model_id,
                method=method, payload=payload, reason=reason, batch_id=batch_id,
                status="pending", progress=0, priority=priority, optimization_hash=opt_hash,
            ))
            queued.add(opt_hash)
            created += 1

    db.commit()
    logger.info(f"Created {created} jobs (skipped {skipped}, filtered {filtered}) in batch {batch_id}")
    return {
        "jobsCreated": created,
        "jobsSkipped": skipped,
        "jobsFiltered": filtered,
        "skusProcessed": len(skus),
        "modelsPerSku": len(model_ids),
        "priority": priority,
        "batchId": batch_id,
    }


# ----------------------------------------------------------
# JOB LIFECYCLE
# ----------------------------------------------------------
def claim_next_job(db):
    job = (
        db.query(OptimizationJob)
        .filter(OptimizationJob.status == "pending")
        .order_by(OptimizationJob.priority.asc(), OptimizationJob.created_at.asc(), OptimizationJob.id.asc())
        .with_for_update(skip_locked=True)
        .first()
    )
    if job is None:
        return None
    now = datetime.utcnow()
    job.status = "running"
    job.progress = 0
    job.started_at = now
    job.updated_at = now
    job.error = None
    db.commit()
    return job


def update_progress(db, job_id: int, percentage: int) -> bool:
    """Write progress; False when the job is no longer running."""
    updated = (
        db.query(OptimizationJob)
        .filter(OptimizationJob.id == job_id, OptimizationJob.status == "running")
        .update({"progress": int(max(0, min(100, percentage))), "updated_at": datetime.utcnow()},
                synchronize_session=False)
    )
    db.commit()
    return updated == 1


def complete_job(db, job_id: int, result: dict) -> bool:
    db.expire_all()
    job = db.get(OptimizationJob, job_id)
    if job is None or job.status != "running":
        return False

    result = json_safe(result)
    now = datetime.utcnow()
    job.status = "completed"
    job.progress = 100
    job.result = result
    job.completed_at = now
    job.updated_at = now

    best = result.get("bestResult") or {}
    row = {
        "id": str(uuid.uuid4()),
        "company_id": job.company_id,
        "job_id": job.id,
        "optimization_hash": job.optimization_hash,
        "parameters": best.get("parameters"),
        "scores": {k: best.get(k) for k in ("accuracy", "mape", "rmse", "mae", "compositeScore")},
        "forecasts": result.get("forecast"),
        "created_at": now,
        "updated_at": now,
    }
    stmt = upsert(
        OptimizationResult, [row],
        index_elements=[OptimizationResult.company_id, OptimizationResult.optimization_hash],
        update_columns={"job_id": "excluded", "parameters": "excluded", "scores": "excluded",
                        "forecasts": "excluded", "updated_at": now},
    )
    db.execute(stmt)
    db.commit()
    return True


def fail_job(db, job_id: int, error: str) -> bool:
    updated = (
        db.query(OptimizationJob)
        .filter(OptimizationJob.id == job_id, OptimizationJob.status == "running")
        .update({"status": "failed", "error": str(error)[:2000], "completed_at": datetime.utcnow(),
                 "updated_at": datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return updated == 1


def _get_job(db, company_id: int, job_id: int) -> OptimizationJob:
    job = db.query(OptimizationJob).filter_by(id=job_id, company_id=company_id).first()
    if job is None:
        raise NotFoundError(f"Job {job_id} not found")
    return job


def cancel_job(db, company_id: int, job_id: int) -> OptimizationJob:
    job = _get_job(db, company_id, job_id)
    if job.status not in ("pending", "running"):
        raise JobStateError(f"Job {job_id} is {job.status} and cannot be cancelled")
    job.status = "cancelled"
    job.completed_at = datetime.utcnow()
    db.commit()
    return job


def pause_job(db, company_id: int, job_id: int) -> OptimizationJob:
    job = _get_job(db, company_id, job_id)
    if job.status != "running":
        raise JobStateError(f"Job {job_id} is {job.status}; only running jobs can be paused")
    job.status = "pending"
    job.progress = 0
    job.started_at = None
    db.commit()
    return job


# ----------------------------------------------------------
# QUEUE VIEWS
# ----------------------------------------------------------
def list_jobs(db, company_id: int, status=None, sku=None, batch_id=None, dataset_id=None):
    q = db.query(OptimizationJob).filter(OptimizationJob.company_id == company_id)
    if status:
        q = q.filter(OptimizationJob.status == status)
    if sku:
        q = q.filter(OptimizationJob.sku == str(sku))
    if batch_id:
        q = q.filter(OptimizationJob.batch_id == batch_id)
    if dataset_id:
        q = q.filter(OptimizationJob.dataset_id == dataset_id)
    rows = q.order_by(OptimizationJob.method.desc(), OptimizationJob.priority.asc(),
                      OptimizationJob.sku.asc(), OptimizationJob.created_at.asc()).all()
    return [serialize_job(j) for j in rows]


def _progress(counts: dict) -> dict:
    total = sum(counts.values())
    finished = sum(counts.get(s, 0) for s in FINISHED_STATUSES)
    return {
        "total": total,
        "pending": counts.get("pending", 0),
        "running": counts.get("running", 0),
        "completed": counts.get("completed", 0),
        "failed": counts.get("failed", 0),
        "cancelled": counts.get("cancelled", 0),
        "skipped": counts.get("skipped", 0),
        "isOptimizing": counts.get("pending", 0) + counts.get("running", 0) > 0,
        "progress": round(finished / total * 100, 1) if total else 0.0,
    }


def job_status_summary(db, company_id: int) -> dict:
    rows = (
        db.query(OptimizationJob.status, func.count(OptimizationJob.id))
        .filter(OptimizationJob.company_id == company_id)
        .group_by(OptimizationJob.status)
        .all()
    )
    return _progress({status: count for status, count in rows})


def optimization_status(db, company_id: int):
    rows = (
        db.query(OptimizationJob)
        .filter(OptimizationJob.company_id == company_id)
        .order_by(OptimizationJob.sku.asc(), OptimizationJob.created_at.asc())
        .all()
    )
    groups = {}
    for j in rows:
        entry = groups.setdefault((j.sku, j.batch_id), {"counts": {}, "jobs": []})
        entry["counts"][j.status] = entry["counts"].get(j.status, 0) + 1
        entry["jobs"].append({"id": j.id, "modelId": j.model_id, "method": j.method,
                              "status": j.status, "progress": j.progress})
    return [
        {"sku": sku, "batchId": batch_id, **_progress(entry["counts"]), "jobs": entry["jobs"]}
        for (sku, batch_id), entry in groups.items()
    ]


def _delete(db, company_id: int, status=None) -> int:
    q = db.query(OptimizationJob).filter(OptimizationJob.company_id == company_id)
    if status:
        q = q.filter(OptimizationJob.status == status)
    count = q.delete(synchronize_session=False)
    db.commit()
    return count


def reset_jobs(db, company_id: int) -> int:
    return _delete(db, company_id)


def clear_completed(db, company_id: int) -> int:
    return _delete(db, company_id, "completed")


def clear_pending(db, company_id: int) -> int:
    return _delete(db, company_id, "pending")


# ----------------------------------------------------------
# RESULTS
# ----------------------------------------------------------
def _result_entry(j: OptimizationJob) -> dict:
    best = (j.result or {}).get("bestResult") or {}
    return {
        "jobId": j.id,
        "datasetId": j.dataset_id,
        "sku": j.sku,
        "modelId": j.model_id,
        "method": j.method,
        "batchId": j.batch_id,
        "status": j.status,
        "accuracy": best.get("accuracy"),
        "mape": best.get("mape"),
        "rmse": best.get("rmse"),
        "mae": best.get("mae"),
        "parameters": best.get("parameters"),
        "completedAt": j.completed_at.strftime("%Y-%m-%d %H:%M:%S") if j.completed_at else None,
    }


def _completed_entries(db, company_id: int, dataset_id=None, sku=None):
    q = db.query(OptimizationJob).filter(OptimizationJob.company_id == company_id,
                                         OptimizationJob.status == "completed")
    if dataset_id:
        q = q.filter(OptimizationJob.dataset_id == dataset_id)
    if sku:
        q = q.filter(OptimizationJob.sku == str(sku))
    return [_result_entry(j) for j in q.order_by(OptimizationJob.completed_at.asc()).all()]


def _best_by(entries, key_fn, weights):
    groups = {}
    for e in entries:
        groups.setdefault(key_fn(e), []).append(e)
    best = {}
    for key, group in groups.items():
        maxima = metric_maxima(group)
        for e in group:
            e["compositeScore"] = composite_score(e, maxima, weights)
        best[key] = max(group, key=lambda e: e["compositeScore"])
    return best


def results_summary(db, company_id: int, dataset_id=None, weights=None):
    """
    Best completed result per (dataset, sku, model, method) by composite score.
    Every other sku x model x method combination is listed as `ineligible`
    (not enough history) or `pending`.
    """
    weights = weights or DEFAULT_METRIC_WEIGHTS
    entries = _completed_entries(db, company_id, dataset_id)
    best = _best_by(entries, lambda e: (e["datasetId"], e["sku"], e["modelId"], e["method"]), weights)

    datasets_q = db.query(Dataset).filter(Dataset.company_id == company_id)
    if dataset_id:
        datasets_q = datasets_q.filter(Dataset.id == dataset_id)

    summary = list(best.values())
    for ds in datasets_q.all():
        seasonal_period = seasonal_period_from_frequency(ds.frequency)
        counts = dict(
            db.query(TimeSeriesData.sku_code, func.count(TimeSeriesData.id))
            .filter(TimeSeriesData.dataset_id == ds.id)
            .group_by(TimeSeriesData.sku_code)
            .all()
        )
        for sku, n in sorted(counts.items()):
            for model_id in optimizable_models():
                for method in OPTIMIZATION_METHODS:
                    if (ds.id, sku, model_id, method) in best:
                        continue
                    eligible = is_model_eligible(model_id, n, seasonal_period)
                    summary.append({
                        "jobId": None, "datasetId": ds.id, "sku": sku, "modelId": model_id,
                        "method": method, "batchId": None,
                        "status": "pending" if eligible else "ineligible",
                        "accuracy": None, "mape": None, "rmse": None, "mae": None,
                        "parameters": None, "completedAt": None, "compositeScore": None,
                    })

    best_per_sku = _best_by([dict(e) for e in best.values()], lambda e: (e["datasetId"], e["sku"]), weights)
    return {
        "results": summary,
        "bestPerSku": [
            {"datasetId": ds_id, "sku": sku, **{k: v for k, v in e.items() if k not in ("datasetId", "sku")}}
            for (ds_id, sku), e in best_per_sku.items()
        ],
        "metricWeights": weights,
    }


def best_results_per_model(db, company_id: int, dataset_id=None, sku=None, weights=None):
    weights = weights or DEFAULT_METRIC_WEIGHTS
    entries = _completed_entries(db, company_id, dataset_id, sku)
    per_method = _best_by(entries, lambda e: (e["modelId"], e["method"]), weights)
    per_model = _best_by([dict(e) for e in per_method.values()], lambda e: e["modelId"], weights)
    return [
        {
            "modelId": model_id,
            "bestResult": best,
            "methods": {m: e for (mid, m), e in per_method.items() if mid == model_id},
        }
        for model_id, best in sorted(per_model.items())
    ]


def export_results_csv(db, company_id: int, dataset_id=None) -> str:
    entries = _completed_entries(db, company_id, dataset_id)
    df = pd.DataFrame([
        {
            "Job ID": e["jobId"],
            "Dataset ID": e["datasetId"],
            "SKU": e["sku"],
            "Model": e["modelId"],
            "Method": e["method"],
            "Accuracy": e["accuracy"],
            "MAPE": e["mape"],
            "RMSE": e["rmse"],
            "MAE": e["mae"],
            "Parameters": json.dumps(e["parameters"] or {}, sort_keys=True),
            "Batch ID": e["batchId"],
            "Completed At": e["completedAt"],
        }
        for e in entries
    ], columns=["Job ID", "Dataset ID", "SKU", "Model", "Method", "Accuracy", "MAPE", "RMSE", "MAE",
                "Parameters", "Batch ID", "Completed At"])
    buf = io.StringIO()
    df.to_csv(buf, index=False)
    return buf.getvalue()
