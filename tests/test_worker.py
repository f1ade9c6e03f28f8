import pytest

from db.connection import SessionLocal
from db.models import OptimizationJob, OptimizationResult
from optimization.jobs import cancel_job, create_jobs, pause_job
from worker import OptimizationWorker


def test_poll_once_empty_queue():
    assert OptimizationWorker().poll_once() is None


def test_worker_completes_grid_job(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["simple_exponential_smoothing"])

    job_id = OptimizationWorker(forecast_periods=3).poll_once()
    assert job_id is not None

    db.expire_all()
    job = db.get(OptimizationJob, job_id)
    assert job.status == "completed"
    assert job.progress == 100

    result = job.result
    assert result["type"] == "grid"
    assert len(result["results"]) == 9
    assert result["bestResult"]["compositeScore"] is not None
    assert [f["date"] for f in result["forecast"]] == ["2022-09-01", "2022-10-01", "2022-11-01"]
    assert all(f["value"] >= 0 for f in result["forecast"])

    stored = db.query(OptimizationResult).one()
    assert stored.parameters == result["bestResult"]["parameters"]


def test_worker_runs_ai_job(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["moving_average"], method="ai")

    job_id = OptimizationWorker(forecast_periods=2).poll_once()
    db.expire_all()
    job = db.get(OptimizationJob, job_id)
    assert job.status == "completed"
    assert job.result["type"] == "ai"
    assert "aiInsights" in job.result


def test_worker_marks_failure(db, make_dataset, short_series):
    dataset_id = make_dataset({"B": short_series})
    db.add(OptimizationJob(company_id=1, dataset_id=dataset_id, sku="MISSING", model_id="linear_trend",
                           method="grid", status="pending", priority=3, payload={}))
    db.commit()

    job_id = OptimizationWorker().poll_once()
    db.expire_all()
    job = db.get(OptimizationJob, job_id)
    assert job.status == "failed"
    assert "No data for SKU MISSING" in job.error


def test_worker_stops_when_job_cancelled(db, make_dataset, short_series, monkeypatch):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["linear_trend"])
    job_id = db.query(OptimizationJob.id).scalar()

    def cancelled_mid_run(values, model_ids, seasonal_period, progress_callback):
        other = SessionLocal()
        try:
            cancel_job(other, 1, job_id)
        finally:
            other.close()
        progress_callback({"completed": 1, "total": 2, "percentage": 50})
        raise AssertionError("progress callback should have interrupted the run")

    monkeypatch.setattr("worker.run_grid_search", cancelled_mid_run)
    OptimizationWorker().poll_once()

    db.expire_all()
    job = db.get(OptimizationJob, job_id)
    assert job.status == "cancelled"
    assert job.result is None


def test_worker_marks_unexpected_error_as_failed(db, make_dataset, short_series, monkeypatch):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["linear_trend"])

    def broken(values, model_ids, seasonal_period, progress_callback):
        raise RuntimeError("internal library failure")

    monkeypatch.setattr("worker.run_grid_search", broken)
    job_id = OptimizationWorker().poll_once()

    db.expire_all()
    job = db.get(OptimizationJob, job_id)
    assert job.status == "failed"
    assert job.error == "RuntimeError: internal library failure"
    assert job.completed_at is not None


def test_worker_stops_when_job_paused(db, make_dataset, short_series, monkeypatch):
    dataset_id = make_dataset({"B": short_series})
    create_jobs(db, 1, dataset_id, model_ids=["linear_trend"])
    job_id = db.query(OptimizationJob.id).scalar()

    def paused_mid_run(values, model_ids, seasonal_period, progress_callback):
        other = SessionLocal()
        try:
            pause_job(other, 1, job_id)
        finally:
            other.close()
        progress_callback({"completed": 1, "total": 2, "percentage": 50})
        raise AssertionError("progress callback should have interrupted the run")

    monkeypatch.setattr("worker.run_grid_search", paused_mid_run)
    OptimizationWorker().poll_once()

    db.expire_all()
    job = db.get(OptimizationJob, job_id)
    assert job.status == "pending"
    assert job.progress == 0
    assert job.result is None
    assert db.query(OptimizationResult).count() == 0


class _StopLoop(BaseException):
    pass


def test_run_forever_survives_poll_errors(monkeypatch):
    worker = OptimizationWorker()
    calls = []

    def poll():
        calls.append("poll")
        if len(calls) == 1:
            raise RuntimeError("database went away")
        raise _StopLoop()

    sleeps = []
    monkeypatch.setattr(worker, "poll_once", poll)
    monkeypatch.setattr("worker.time.sleep", sleeps.append)

    with pytest.raises(_StopLoop):
        worker.run_forever(interval=0.5)
    assert calls == ["poll", "poll"]
    assert sleeps == [0.5]
