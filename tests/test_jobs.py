import math

import pytest

from db.models import OptimizationJob, OptimizationResult
from optimization.jobs import (
    best_results_per_model, cancel_job, claim_next_job, clear_completed, clear_pending, complete_job,
    create_jobs, export_results_csv, fail_job, job_status_summary, list_jobs, optimization_status, pause_job,
    reset_jobs, results_summary, update_progress,
)
from utils.errors import JobStateError, NotFoundError, OptimizationError


def _best(accuracy, mape, rmse=1.0, mae=1.0, **params):
    return {"bestResult": {"parameters": params, "accuracy": accuracy, "mape": mape, "rmse": rmse, "mae": mae},
            "forecast": [{"date": "2025-01-01", "value": 10.0}]}


def test_create_jobs_filters_ineligible_models(db, make_dataset, seasonal_series, short_series):
    dataset_id = make_dataset({"A": seasonal_series, "B": short_series})
    result = create_jobs(db, 1, dataset_id)

    # 9 optimizable models; B has 8 points so only the 4 non-seasonal short models qualify
    assert result["jobsCreated"] == 9 + 4
    assert result["jobsFiltered"] == 5
    assert result["jobsSkipped"] == 0
    assert result["skusProcessed"] == 2
    assert result["modelsPerSku"] == 9
    assert result["priority"] == 3

    jobs = db.query(OptimizationJob).all()
    assert {j.batch_id for j in jobs} == {result["batchId"]}
    assert all(j.status == "pending" for j in jobs)
    assert jobs[0].payload["seasonalPeriod"] == 12


def test_create_jobs_skips_duplicates(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["moving_average"])
    again = create_jobs(db, 1, dataset_id, model_ids=["moving_average"])
    assert again["jobsCreated"] == 0
    assert again["jobsSkipped"] == 1

    # a different method is a different request
    ai = create_jobs(db, 1, dataset_id, model_ids=["moving_average"], method="ai")
    assert ai["jobsCreated"] == 1


def test_create_jobs_repeated_inputs_queue_once(db, make_dataset, short_series):
    dataset_id = make_dataset({"A": short_series})
    result = create_jobs(db, 1, dataset_id, skus=["A", "A"], model_ids=["linear_trend"])
    assert result["jobsCreated"] == 1
    assert result["skusProcessed"] == 1

    result = create_jobs(db, 1, dataset_id, skus=["A"], model_ids=["moving_average", "moving-average"],
                         method="ai")
    assert result["jobsCreated"] == 1
    assert result["modelsPerSku"] == 1

    pending = db.query(OptimizationJob).filter_by(status="pending").all()
    assert len(pending) == 2
    assert len({j.optimization_hash for j in pending}) == 2


def test_create_jobs_grid_opt_out_is_skipped(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    result = create_jobs(db, 1, dataset_id, model_ids=["prophet"])
    assert result["jobsSkipped"] == 1
    assert result["jobsCreated"] == 0
    job = db.query(OptimizationJob).one()
    assert job.status == "skipped"


def test_create_jobs_validation(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    with pytest.raises(OptimizationError):
        create_jobs(db, 1, dataset_id, method="random")
    with pytest.raises(NotFoundError):
        create_jobs(db, 1, 999)
    with pytest.raises(NotFoundError):
        create_jobs(db, 2, dataset_id)


def test_claim_next_job_respects_priority(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["moving_average"], reason="manual_trigger")
    create_jobs(db, 1, dataset_id, model_ids=["linear_trend"], reason="dataset_upload")

    job = claim_next_job(db)
    assert job.model_id == "linear_trend"
    assert job.status == "running"
    assert job.started_at is not None

    assert claim_next_job(db).model_id == "moving_average"
    assert claim_next_job(db) is None


def test_job_lifecycle(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["moving_average", "linear_trend"])

    job = claim_next_job(db)
    assert update_progress(db, job.id, 40) is True
    db.refresh(job)
    assert job.progress == 40

    result = _best(92.0, 8.0, window=3)
    result["results"] = [{"mape": math.inf}]
    assert complete_job(db, job.id, result) is True
    db.refresh(job)
    assert job.status == "completed"
    assert job.progress == 100
    assert job.result["results"][0]["mape"] is None

    stored = db.query(OptimizationResult).one()
    assert stored.optimization_hash == job.optimization_hash
    assert stored.parameters == {"window": 3}
    assert stored.scores["accuracy"] == 92.0

    # finished jobs ignore further progress and completion
    assert update_progress(db, job.id, 10) is False
    assert complete_job(db, job.id, result) is False

    other = claim_next_job(db)
    assert fail_job(db, other.id, "boom") is True
    db.refresh(other)
    assert other.status == "failed"
    assert other.error == "boom"


def test_cancel_and_pause(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["moving_average", "linear_trend"])
    pending = db.query(OptimizationJob).filter_by(model_id="moving_average").one()

    with pytest.raises(JobStateError):
        pause_job(db, 1, pending.id)
    assert cancel_job(db, 1, pending.id).status == "cancelled"
    with pytest.raises(JobStateError):
        cancel_job(db, 1, pending.id)
    with pytest.raises(NotFoundError):
        cancel_job(db, 2, pending.id)

    running = claim_next_job(db)
    paused = pause_job(db, 1, running.id)
    assert paused.status == "pending"
    assert paused.progress == 0
    assert paused.started_at is None


def test_status_views(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["moving_average", "linear_trend"])
    job = claim_next_job(db)
    complete_job(db, job.id, _best(90.0, 10.0))

    summary = job_status_summary(db, 1)
    assert summary["total"] == 2
    assert summary["completed"] == 1
    assert summary["pending"] == 1
    assert summary["isOptimizing"] is True
    assert summary["progress"] == 50.0

    groups = optimization_status(db, 1)
    assert len(groups) == 1
    assert groups[0]["sku"] == "B"
    assert groups[0]["total"] == 2

    assert len(list_jobs(db, 1)) == 2
    assert len(list_jobs(db, 1, status="completed")) == 1
    assert list_jobs(db, 1, sku="missing") == []


def test_clear_and_reset(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["moving_average", "linear_trend", "simple_exponential_smoothing"])
    job = claim_next_job(db)
    complete_job(db, job.id, _best(90.0, 10.0))

    assert clear_completed(db, 1) == 1
    assert clear_pending(db, 1) == 2
    create_jobs(db, 1, dataset_id, model_ids=["moving_average"])
    assert reset_jobs(db, 1) == 1
    assert job_status_summary(db, 1)["total"] == 0


def test_results_summary_fills_missing_combinations(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["moving_average"])
    job = claim_next_job(db)
    complete_job(db, job.id, _best(90.0, 10.0, window=3))

    summary = results_summary(db, 1, dataset_id)
    by_key = {(r["modelId"], r["method"]): r for r in summary["results"]}
    assert by_key[("moving_average", "grid")]["status"] == "completed"
    assert by_key[("moving_average", "grid")]["compositeScore"] is not None
    assert by_key[("moving_average", "ai")]["status"] == "pending"
    assert by_key[("holt_winters", "grid")]["status"] == "ineligible"
    assert summary["bestPerSku"][0]["sku"] == "B"
    assert summary["bestPerSku"][0]["modelId"] == "moving_average"


def test_best_results_per_model_and_export(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["moving_average"])
    create_jobs(db, 1, dataset_id, model_ids=["moving_average"], method="ai")
    first = claim_next_job(db)
    complete_job(db, first.id, _best(80.0, 20.0, 3.0, 3.0, window=4))
    second = claim_next_job(db)
    complete_job(db, second.id, _best(95.0, 5.0, window=2))

    best = best_results_per_model(db, 1)
    assert len(best) == 1
    assert best[0]["modelId"] == "moving_average"
    assert best[0]["bestResult"]["accuracy"] == 95.0
    assert set(best[0]["methods"]) == {"grid", "ai"}

    csv_text = export_results_csv(db, 1)
    lines = csv_text.strip().splitlines()
    assert lines[0].startswith("Job ID,Dataset ID,SKU,Model,Method,Accuracy")
    assert len(lines) == 3
