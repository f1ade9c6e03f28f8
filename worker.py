import logging
import time

from config import config
from db.connection import SessionLocal
from db.queries import load_series_frame
from models.registry import create_model
from optimization.ai_optimizer import run_ai_optimization
from optimization.grid_optimizer import run_grid_search
from optimization.jobs import claim_next_job, complete_job, fail_job, update_progress
from optimization.scoring import select_best_result, composite_score, metric_maxima
from utils.ai_config import DEFAULT_METRIC_WEIGHTS, DEFAULT_SEASONAL_PERIOD
from utils.date_utils import generate_forecast_dates
from utils.errors import ForecastAIError, JobInterrupted, OptimizationError

logger = logging.getLogger("ForecastAI.worker")

MAX_STORED_RESULTS = 50


class OptimizationWorker:
    """Polls optimization_jobs and runs one job at a time."""

    def __init__(self, session_factory=SessionLocal, forecast_periods: int | None = None):
        self.session_factory = session_factory
        self.forecast_periods = forecast_periods or config.DEFAULT_FORECAST_PERIODS
        self.current_job_id = None

    def poll_once(self) -> int | None:
        """Claim and process the next pending job. Returns its id, or None when the queue is empty."""
        db = self.session_factory()
        try:
            job = claim_next_job(db)
            if job is None:
                return None
            self.current_job_id = job.id
            logger.info(f"Picked up job {job.id} ({job.model_id}/{job.method}) for SKU {job.sku}")
            self._process(db, job)
            return job.id
        finally:
            self.current_job_id = None
            db.close()

    def _process(self, db, job):
        job_id = job.id
        try:
            result = self.run_job(db, job)
            if complete_job(db, job_id, result):
                logger.info(f"✅ Optimization completed for job {job_id}")
            else:
                logger.info(f"Job {job_id} was stopped before completion; result discarded")
        except JobInterrupted:
            logger.info(f"Job {job_id} was cancelled or paused while running")
        except (ForecastAIError, ValueError, ArithmeticError) as e:
            db.rollback()
            logger.error(f"❌ Optimization failed for job {job_id}: {e}")
            fail_job(db, job_id, str(e))
        except Exception as e:
            db.rollback()
            logger.exception(f"❌ Unexpected error in job {job_id}: {e}")
            fail_job(db, job_id, f"{type(e).__name__}: {e}")

    def run_job(self, db, job) -> dict:
        payload = job.payload or {}
        seasonal_period = int(payload.get("seasonalPeriod") or DEFAULT_SEASONAL_PERIOD)
        weights = payload.get("metricWeights") or DEFAULT_METRIC_WEIGHTS
        frequency = payload.get("frequency") or "monthly"
        job_id = job.id

        frame = load_series_frame(job.company_id, job.dataset_id, job.sku)
        if frame.empty:
            raise OptimizationError(f"No data for SKU {job.sku} in dataset {job.dataset_id}")
        values = frame["value"].tolist()
        dates = frame["date"].tolist()

        def on_progress(progress):
            if not update_progress(db, job_id, progress["percentage"]):
                raise JobInterrupted(f"Job {job_id} is no longer running")

        if job.method == "ai":
            result = run_ai_optimization(values, [job.model_id], seasonal_period, on_progress)
        else:
            result = run_grid_search(values, [job.model_id], seasonal_period, on_progress)

        best = select_best_result(result["results"], weights)
        if best is None:
            errors = {r["error"] for r in result["results"] if r.get("error")}
            raise OptimizationError("; ".join(sorted(errors)) or "No configuration could be evaluated")

        maxima = metric_maxima([r for r in result["results"] if r["success"]])
        best = {**best, "compositeScore": composite_score(best, maxima, weights)}

        model = create_model(job.model_id, best["parameters"], seasonal_period).train(values)
        predictions = model.predict(self.forecast_periods)
        forecast_dates = generate_forecast_dates(dates[-1], self.forecast_periods, frequency)

        result["results"] = result["results"][:MAX_STORED_RESULTS]
        result["bestResult"] = best
        result["metricWeights"] = weights
        result["forecast"] = [
            {"date": d.isoformat(), "value": round(max(0.0, v), 2)}
            for d, v in zip(forecast_dates, predictions)
        ]
        return result

    def run_forever(self, interval: float | None = None):
        interval = interval or config.WORKER_POLL_INTERVAL
        logger.info(f"Starting polling for jobs every {interval}s...")
        while True:
            try:
                processed = self.poll_once()
            except Exception as e:
                logger.error(f"❌ Worker poll failed: {e}")
                processed = None
            if processed is None:
                time.sleep(interval)


if __name__ == "__main__":
    from db.connection import engine
    from db.models import Base

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    Base.metadata.create_all(bind=engine)
    OptimizationWorker().run_forever()
