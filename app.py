import logging
import time
from datetime import datetime

from flask import Flask, request, jsonify, Response
from flask_cors import CORS
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import config
from db.connection import engine, SessionLocal, upsert
from db.models import Base, Dataset, TimeSeriesData, OptimizationJob, OptimizationResult, ForecastResult
from models.forecast_model import generate_forecasts
from models.outlier_model import detect_dataset_outliers
from models.registry import check_compatibility, get_data_requirements, get_model_metadata
from optimization.jobs import (
    best_results_per_model, cancel_job, clear_completed, clear_pending, create_jobs, export_results_csv,
    get_dataset, job_status_summary, list_jobs, optimization_status, pause_job, reset_jobs, results_summary,
    serialize_job
)
from utils.ai_config import APP_VERSION, DEFAULT_Z_THRESHOLD
from utils.cleaning_utils import (
    apply_cleaning_changes, build_import_preview, current_values_for, export_cleaning_csv, parse_cleaning_csv
)
from utils.csv_utils import (
    detect_column_roles, normalize_to_long_format, parse_csv_with_headers, summarize_long_data, transpose_data
)
from utils.data_analysis import analyze_dataset
from utils.date_utils import FREQUENCY_INTERVALS, detect_date_frequency, seasonal_period_from_frequency
from utils.errors import ForecastAIError, JobStateError, NotFoundError
from utils.grok_client import grok_generate_config, grok_transform
from utils.import_utils import (
    csv_hash, dataset_name, dataset_row_counts, find_duplicate, save_dataset, serialize_dataset, write_import_files
)
from utils.settings_utils import load_settings, save_settings
from utils.transform_utils import apply_transformations

# ✅ Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger("ForecastAI")

app = Flask(__name__)
CORS(app)

# ✅ Database initialization and health check
try:
    Base.metadata.create_all(bind=engine)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("✅ Database connection established successfully.")
except SQLAlchemyError as e:
    logger.error(f"❌ Database connection failed: {e}")
else:
    logger.info("✅ All forecasting tables ensured in database.")

logger.info("🚀 ForecastAI Flask service initialized successfully.")


def error_response(e: ForecastAIError):
    status = 400
    if isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, JobStateError):
        status = 409
    return jsonify({"status": "error", "message": str(e)}), status


def _date_range(value):
    if not value:
        return None
    if isinstance(value, dict):
        return int(value.get("start", 0)), int(value.get("end", 0))
    return int(value[0]), int(value[1])


@app.route("/api/v1/health", methods=["GET"])
def health():
    database = "connected"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        database = "disconnected"
    return jsonify({
        "status": "ok" if database == "connected" else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "database": database,
        "version": APP_VERSION,
    })


# ----------------------------------------------------------
# CSV
# ----------------------------------------------------------
@app.route("/api/v1/csv/preview", methods=["POST"])
def csv_preview():
    """
    Body:
    {
      "csvData": "...",
      "separator": ";",        # optional; auto-detected
      "transpose": false       # optional
    }
    """
    data = request.get_json() or {}
    csv_text = data.get("csvData")
    if not csv_text:
        return jsonify({"status": "error", "message": "csvData is required"}), 400

    rows, headers, separator = parse_csv_with_headers(csv_text, data.get("separator"))
    if data.get("transpose"):
        rows, headers = transpose_data(rows, headers)

    column_roles = detect_column_roles(headers)
    return jsonify({
        "status": "success",
        "headers": headers,
        "previewRows": rows[:10],
        "totalRows": len(rows),
        "separator": separator,
        "columnRoles": column_roles,
    })


@app.route("/api/v1/csv/grok-transform", methods=["POST"])
def csv_grok_transform():
    data = request.get_json() or {}
    csv_text = data.get("csvData")
    if not csv_text:
        return jsonify({"status": "error", "message": "csvData is required"}), 400
    try:
        result = grok_transform(csv_text, data.get("instructions"), bool(data.get("reasoningEnabled")))
    except ForecastAIError as e:
        return error_response(e)
    return jsonify({"status": "success", **result})


@app.route("/api/v1/csv/grok-generate-config", methods=["POST"])
def csv_grok_generate_config():
    data = request.get_json() or {}
    csv_chunk = data.get("csvChunk")
    if not csv_chunk:
        return jsonify({"status": "error", "message": "csvChunk is required"}), 400
    try:
        result = grok_generate_config(csv_chunk, int(data.get("fileSize", 0)), data.get("instructions"),
                                      bool(data.get("reasoningEnabled")))
    except ForecastAIError as e:
        return error_response(e)
    return jsonify({"status": "success", **result})


@app.route("/api/v1/csv/apply-config", methods=["POST"])
def csv_apply_config():
    data = request.get_json() or {}
    csv_text = data.get("csvData")
    transform_config = data.get("config")
    if not csv_text or not transform_config:
        return jsonify({"status": "error", "message": "csvData and config are required"}), 400

    rows, _, _ = parse_csv_with_headers(csv_text, data.get("separator"))
    transformed, columns = apply_transformations(rows, transform_config)
    return jsonify({
        "status": "success",
        "transformedData": transformed,
        "columns": columns,
        "columnRoles": [r["role"] for r in detect_column_roles(columns)],
    })


# ----------------------------------------------------------
# DATASETS
# ----------------------------------------------------------
@app.route("/api/v1/datasets/check-duplicate", methods=["POST"])
def check_duplicate():
    data = request.get_json() or {}
    company_id = data.get("company_id")
    csv_text = data.get("csvData")
    if not company_id or not csv_text:
        return jsonify({"status": "error", "message": "company_id and csvData are required"}), 400

    db = SessionLocal()
    try:
        hash_value = csv_hash(csv_text)
        existing = find_duplicate(db, company_id, hash_value)
        return jsonify({
            "isDuplicate": existing is not None,
            "csvHash": hash_value,
            "existingDataset": serialize_dataset(existing) if existing else None,
        })
    finally:
        db.close()


@app.route("/api/v1/datasets/import", methods=["POST"])
def import_dataset():
    """
    Body:
    {
      "company_id": 1,
      "csvData": "...",
      "columnRoles": ["Material Code", "Description", "Date", ...],   # optional; detected
      "dateFormat": "yyyy-mm-dd",
      "numberFormat": "1,234.56",     # optional
      "dateRange": [2, 14],           # optional; inclusive column indexes
      "transpose": false,
      "transformConfig": {...},       # optional; applied before normalization
      "force": false,                 # import even when the same CSV exists
      "optimize": false               # queue optimization jobs for the new dataset
    }
    """
    data = request.get_json() or {}
    company_id = data.get("company_id")
    csv_text = data.get("csvData")
    if not company_id or not csv_text:
        return jsonify({"status": "error", "message": "company_id and csvData are required"}), 400

    db = SessionLocal()
    try:
        hash_value = csv_hash(csv_text)
        existing = find_duplicate(db, company_id, hash_value)
        if existing is not None and not data.get("force"):
            return jsonify({"status": "error", "message": "This CSV was already imported",
                            "existingDataset": serialize_dataset(existing)}), 409

        rows, headers, _ = parse_csv_with_headers(csv_text, data.get("separator"))
        if data.get("transformConfig"):
            rows, headers = apply_transformations(rows, data["transformConfig"])
        if data.get("transpose"):
            rows, headers = transpose_data(rows, headers)

        column_roles = data.get("columnRoles") or detect_column_roles(headers)
        long_rows = normalize_to_long_format(
            rows, headers, column_roles,
            date_format=data.get("dateFormat", "yyyy-mm-dd"),
            date_range=_date_range(data.get("dateRange")),
            number_format=data.get("numberFormat"),
        )
        summary = summarize_long_data(long_rows)

        settings = load_settings(db, company_id)
        if settings.get("global_autoDetectFrequency"):
            frequency = summary["frequency"]
            save_settings(db, company_id, {"global_frequency": frequency})
        else:
            frequency = settings.get("global_frequency", "monthly")

        ts = int(time.time() * 1000)
        csv_path, json_path = write_import_files(config.UPLOADS_DIR, csv_text, long_rows, hash_value, ts)
        dataset = save_dataset(
            db, company_id,
            name=dataset_name(summary["dateRange"], summary["skuCount"]),
            file_path=csv_path,
            hash_value=hash_value,
            frequency=frequency,
            summary={**summary, "processedFile": json_path, "columnRoles": column_roles},
            long_rows=long_rows,
        )
        db.commit()
        logger.info(f"Imported dataset {dataset.id} ({summary['skuCount']} SKUs) for company {company_id}")

        jobs = None
        if data.get("optimize"):
            jobs = create_jobs(db, company_id, dataset.id, reason="dataset_upload",
                               metric_weights=settings.get("global_metricWeights"))

        return jsonify({
            "status": "success",
            "dataset": serialize_dataset(dataset),
            "summary": summary,
            "jobs": jobs,
        })
    except ForecastAIError as e:
        db.rollback()
        return error_response(e)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Dataset import failed: {e}")
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()


@app.route("/api/v1/datasets/<int:company_id>", methods=["GET"])
def get_datasets(company_id):
    db = SessionLocal()
    try:
        counts = dataset_row_counts(db, company_id)
        rows = (
            db.query(Dataset)
            .filter_by(company_id=company_id)
            .order_by(Dataset.uploaded_at.desc())
            .all()
        )
        return jsonify([serialize_dataset(d, counts.get(d.id, 0)) for d in rows])
    finally:
        db.close()


@app.route("/api/v1/datasets/count/<int:company_id>", methods=["GET"])
def count_datasets(company_id):
    db = SessionLocal()
    try:
        count = db.query(Dataset).filter_by(company_id=company_id).count()
        return jsonify({"company_id": company_id, "count": count})
    finally:
        db.close()


@app.route("/api/v1/datasets/<int:company_id>/<int:dataset_id>/data", methods=["GET"])
def get_dataset_data(company_id, dataset_id):
    sku = request.args.get("sku")
    db = SessionLocal()
    try:
        get_dataset(db, company_id, dataset_id)
        q = db.query(TimeSeriesData).filter_by(company_id=company_id, dataset_id=dataset_id)
        if sku:
            q = q.filter(TimeSeriesData.sku_code == sku)
        rows = q.order_by(TimeSeriesData.sku_code.asc(), TimeSeriesData.date.asc()).all()
        return jsonify([
            {
                "sku_code": r.sku_code,
                "description": r.description,
                "date": r.date.isoformat(),
                "value": float(r.value),
                "note": r.note,
            } for r in rows
        ])
    except ForecastAIError as e:
        return error_response(e)
    finally:
        db.close()


@app.route("/api/v1/datasets/<int:company_id>/<int:dataset_id>/analysis", methods=["GET"])
def get_dataset_analysis(company_id, dataset_id):
    db = SessionLocal()
    try:
        get_dataset(db, company_id, dataset_id)
        rows = (
            db.query(TimeSeriesData)
            .filter_by(company_id=company_id, dataset_id=dataset_id)
            .order_by(TimeSeriesData.sku_code.asc(), TimeSeriesData.date.asc())
            .all()
        )
        analysis = analyze_dataset([{"sku_code": r.sku_code, "date": r.date, "value": r.value} for r in rows])
        return jsonify({"status": "success", "datasetId": dataset_id, **analysis})
    except ForecastAIError as e:
        return error_response(e)
    finally:
        db.close()


@app.route("/api/v1/datasets/<int:dataset_id>/frequency", methods=["POST"])
def update_dataset_frequency(dataset_id):
    data = request.get_json() or {}
    company_id = data.get("company_id")
    frequency = data.get("frequency")
    if not company_id or frequency not in FREQUENCY_INTERVALS:
        return jsonify({"status": "error", "message": "company_id and a valid frequency are required"}), 400

    db = SessionLocal()
    try:
        dataset = get_dataset(db, company_id, dataset_id)
        dataset.frequency = frequency
        db.commit()
        return jsonify({"status": "success", "datasetId": dataset_id, "frequency": frequency,
                        "seasonalPeriod": seasonal_period_from_frequency(frequency)})
    except ForecastAIError as e:
        db.rollback()
        return error_response(e)
    except Exception as e:
        db.rollback()
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()


@app.route("/api/v1/datasets/<int:dataset_id>/auto-detect-frequency", methods=["POST"])
def auto_detect_dataset_frequency(dataset_id):
    data = request.get_json() or {}
    company_id = data.get("company_id")
    if not company_id:
        return jsonify({"status": "error", "message": "company_id is required"}), 400

    db = SessionLocal()
    try:
        dataset = get_dataset(db, company_id, dataset_id)
        dates = [
            d for (d,) in db.query(TimeSeriesData.date)
            .filter_by(company_id=company_id, dataset_id=dataset_id)
            .distinct()
            .order_by(TimeSeriesData.date.asc())
            .all()
        ]
        detected = detect_date_frequency(dates)
        dataset.frequency = detected["type"]
        db.commit()
        return jsonify({"status": "success", "datasetId": dataset_id, **detected})
    except ForecastAIError as e:
        db.rollback()
        return error_response(e)
    except Exception as e:
        db.rollback()
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()


@app.route("/api/v1/datasets/<int:company_id>/<int:dataset_id>", methods=["DELETE"])
def delete_dataset(company_id, dataset_id):
    db = SessionLocal()
    try:
        dataset = get_dataset(db, company_id, dataset_id)
        job_ids = [j for (j,) in db.query(OptimizationJob.id).filter_by(dataset_id=dataset_id).all()]
        if job_ids:
            db.query(OptimizationResult).filter(OptimizationResult.job_id.in_(job_ids)) \
                .delete(synchronize_session=False)
        db.query(OptimizationJob).filter_by(dataset_id=dataset_id).delete(synchronize_session=False)
        series = db.query(TimeSeriesData).filter_by(dataset_id=dataset_id).delete(synchronize_session=False)
        db.query(ForecastResult).filter_by(dataset_id=dataset_id).delete(synchronize_session=False)
        db.delete(dataset)
        db.commit()
        logger.info(f"Deleted dataset {dataset_id} ({series} rows, {len(job_ids)} jobs)")
        return jsonify({"status": "success", "deletedRows": series, "deletedJobs": len(job_ids)})
    except ForecastAIError as e:
        db.rollback()
        return error_response(e)
    except Exception as e:
        db.rollback()
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()


# ----------------------------------------------------------
# MODELS
# ----------------------------------------------------------
@app.route("/api/v1/models", methods=["GET"])
def get_models():
    seasonal_period = request.args.get("seasonal_period", default=12, type=int)
    return jsonify(get_model_metadata(seasonal_period))


@app.route("/api/v1/models/data-requirements", methods=["GET"])
def get_models_data_requirements():
    seasonal_period = request.args.get("seasonal_period", default=12, type=int)
    return jsonify(get_data_requirements(seasonal_period))


@app.route("/api/v1/models/check-compatibility", methods=["POST"])
def check_models_compatibility():
    data = request.get_json() or {}
    data_length = data.get("dataLength")
    if data_length is None:
        return jsonify({"status": "error", "message": "dataLength is required"}), 400
    return jsonify(check_compatibility(int(data_length), int(data.get("seasonalPeriod", 12))))


# ----------------------------------------------------------
# OPTIMIZATION JOBS
# ----------------------------------------------------------
@app.route("/api/v1/jobs", methods=["POST"])
def post_jobs():
    """
    Body:
    {
      "company_id": 1,
      "dataset_id": 3,
      "skus": ["A100"],          # optional; all SKUs
      "models": ["arima"],       # optional; all optimizable models
      "method": "grid",          # grid | ai
      "reason": "manual_trigger",
      "batch_id": "..."          # optional
    }
    """
    data = request.get_json() or {}
    company_id = data.get("company_id")
    dataset_id = data.get("dataset_id")
    if not company_id or not dataset_id:
        return jsonify({"status": "error", "message": "company_id and dataset_id are required"}), 400

    db = SessionLocal()
    try:
        settings = load_settings(db, company_id)
        result = create_jobs(
            db, company_id, dataset_id,
            skus=data.get("skus"),
            model_ids=data.get("models"),
            method=data.get("method", "grid"),
            reason=data.get("reason"),
            batch_id=data.get("batch_id"),
            metric_weights=settings.get("global_metricWeights"),
        )
        return jsonify({"status": "success", **result})
    except ForecastAIError as e:
        db.rollback()
        return error_response(e)
    except Exception as e:
        db.rollback()
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()


@app.route("/api/v1/jobs/<int:company_id>", methods=["GET"])
def get_jobs(company_id):
    db = SessionLocal()
    try:
        return jsonify(list_jobs(
            db, company_id,
            status=request.args.get("status"),
            sku=request.args.get("sku"),
            batch_id=request.args.get("batch_id"),
            dataset_id=request.args.get("dataset_id", type=int),
        ))
    finally:
        db.close()


@app.route("/api/v1/jobs/status/<int:company_id>", methods=["GET"])
def get_job_status(company_id):
    db = SessionLocal()
    try:
        return jsonify(job_status_summary(db, company_id))
    finally:
        db.close()


@app.route("/api/v1/jobs/optimization-status/<int:company_id>", methods=["GET"])
def get_optimization_status(company_id):
    db = SessionLocal()
    try:
        return jsonify(optimization_status(db, company_id))
    finally:
        db.close()


@app.route("/api/v1/jobs/results-summary/<int:company_id>", methods=["GET"])
def get_results_summary(company_id):
    db = SessionLocal()
    try:
        weights = load_settings(db, company_id).get("global_metricWeights")
        return jsonify(results_summary(db, company_id, request.args.get("dataset_id", type=int), weights))
    finally:
        db.close()


@app.route("/api/v1/jobs/best-results-per-model/<int:company_id>", methods=["GET"])
def get_best_results_per_model(company_id):
    db = SessionLocal()
    try:
        weights = load_settings(db, company_id).get("global_metricWeights")
        return jsonify(best_results_per_model(
            db, company_id,
            dataset_id=request.args.get("dataset_id", type=int),
            sku=request.args.get("sku"),
            weights=weights,
        ))
    finally:
        db.close()


@app.route("/api/v1/jobs/export-results/<int:company_id>", methods=["GET"])
def export_results(company_id):
    db = SessionLocal()
    try:
        csv_text = export_results_csv(db, company_id, request.args.get("dataset_id", type=int))
    finally:
        db.close()
    filename = f"optimization-results-{company_id}-{datetime.utcnow().strftime('%Y%m%d')}.csv"
    return Response(csv_text, mimetype="text/csv",
                    headers={"Content-Disposition": f"attachment; filename={filename}"})


def _bulk_job_action(action, label):
    data = request.get_json() or {}
    company_id = data.get("company_id")
    if not company_id:
        return jsonify({"status": "error", "message": "company_id is required"}), 400

    db = SessionLocal()
    try:
        count = action(db, company_id)
        logger.info(f"{label}: {count} jobs for company {company_id}")
        return jsonify({"status": "success", "count": count})
    except Exception as e:
        db.rollback()
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()


@app.route("/api/v1/jobs/reset", methods=["POST"])
def post_reset_jobs():
    return _bulk_job_action(reset_jobs, "Reset")


@app.route("/api/v1/jobs/clear-completed", methods=["POST"])
def post_clear_completed():
    return _bulk_job_action(clear_completed, "Cleared completed")


@app.route("/api/v1/jobs/clear-pending", methods=["POST"])
def post_clear_pending():
    return _bulk_job_action(clear_pending, "Cleared pending")


def _single_job_action(action, job_id):
    data = request.get_json() or {}
    company_id = data.get("company_id")
    if not company_id:
        return jsonify({"status": "error", "message": "company_id is required"}), 400

    db = SessionLocal()
    try:
        job = action(db, company_id, job_id)
        return jsonify({"status": "success", "job": serialize_job(job)})
    except ForecastAIError as e:
        db.rollback()
        return error_response(e)
    except Exception as e:
        db.rollback()
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()


@app.route("/api/v1/jobs/<int:job_id>/cancel", methods=["POST"])
def post_cancel_job(job_id):
    return _single_job_action(cancel_job, job_id)


@app.route("/api/v1/jobs/<int:job_id>/pause", methods=["POST"])
def post_pause_job(job_id):
    return _single_job_action(pause_job, job_id)


# ----------------------------------------------------------
# FORECASTS
# ----------------------------------------------------------
@app.route("/api/v1/forecast", methods=["POST"])
def forecast():
    """
    Body:
    {
      "company_id": 1,
      "dataset_id": 3,
      "models": ["holt_winters"],   # optional; every model except prophet
      "periods": 12,                # optional; company setting
      "sku": "A100",                # optional; all SKUs
      "parameters": {"moving_average": {"window": 4}}   # optional
    }
    """
    data = request.get_json() or {}
    company_id = data.get("company_id")
    dataset_id = data.get("dataset_id")
    if not company_id or not dataset_id:
        return jsonify({"status": "error", "message": "company_id and dataset_id are required"}), 400

    db = SessionLocal()
    try:
        dataset = get_dataset(db, company_id, dataset_id)
        settings = load_settings(db, company_id)
        periods = int(data.get("periods") or settings.get("global_forecastPeriods") or config.DEFAULT_FORECAST_PERIODS)

        predictions = generate_forecasts(
            company_id, dataset_id,
            model_ids=data.get("models"),
            periods=periods,
            sku=data.get("sku"),
            parameters=data.get("parameters"),
            frequency=dataset.frequency,
        )
        if not predictions:
            return jsonify({"status": "ok", "count": 0, "message": "No trainable SKUs found (insufficient history)."}), 200

        stmt = upsert(
            ForecastResult, predictions,
            index_elements=[
                ForecastResult.company_id,
                ForecastResult.dataset_id,
                ForecastResult.sku_code,
                ForecastResult.model_id,
                ForecastResult.forecast_date,
                ForecastResult.model_version,
            ],
            update_columns={
                "predicted_value": "excluded",
                "accuracy": "excluded",
                "generated_at": datetime.utcnow(),
            },
        )
        db.execute(stmt)
        db.commit()
        return jsonify({"status": "success", "count": len(predictions), "periods": periods})
    except ForecastAIError as e:
        db.rollback()
        return error_response(e)
    except Exception as e:
        db.rollback()
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()


@app.route("/api/v1/forecast/<int:company_id>/<int:dataset_id>", methods=["GET"])
def get_forecast(company_id, dataset_id):
    db = SessionLocal()
    try:
        q = db.query(ForecastResult).filter_by(company_id=company_id, dataset_id=dataset_id)
        if request.args.get("sku"):
            q = q.filter(ForecastResult.sku_code == request.args["sku"])
        if request.args.get("model_id"):
            q = q.filter(ForecastResult.model_id == request.args["model_id"])
        rows = q.order_by(ForecastResult.sku_code.asc(), ForecastResult.model_id.asc(),
                          ForecastResult.forecast_date.asc()).all()
        return jsonify([
            {
                "sku_code": r.sku_code,
                "model_id": r.model_id,
                "forecast_date": r.forecast_date.isoformat(),
                "predicted_value": float(r.predicted_value),
                "accuracy": float(r.accuracy) if r.accuracy is not None else None,
                "model_version": r.model_version,
                "generated_at": r.generated_at.strftime("%Y-%m-%d %H:%M:%S") if r.generated_at else None,
            } for r in rows
        ])
    finally:
        db.close()


# ----------------------------------------------------------
# OUTLIERS + CLEANING
# ----------------------------------------------------------
@app.route("/api/v1/outliers/detect", methods=["POST"])
def detect_outliers_route():
    """
    Body:
    {
      "company_id": 1,
      "dataset_id": 3,
      "sku": "A100",                 # optional
      "threshold": 2.5,              # optional
      "treatZerosAsOutliers": false,
      "onlyOutliers": false
    }
    """
    data = request.get_json() or {}
    company_id = data.get("company_id")
    dataset_id = data.get("dataset_id")
    if not company_id or not dataset_id:
        return jsonify({"status": "error", "message": "company_id & dataset_id required"}), 400

    threshold = float(data.get("threshold", DEFAULT_Z_THRESHOLD))
    results = detect_dataset_outliers(
        company_id, dataset_id, data.get("sku"), threshold,
        bool(data.get("treatZerosAsOutliers")), bool(data.get("onlyOutliers")),
    )
    if not results:
        return jsonify({"status": "ok", "count": 0, "outlierCount": 0, "results": []}), 200

    return jsonify({
        "status": "success",
        "count": len(results),
        "outlierCount": sum(1 for r in results if r["is_outlier"]),
        "threshold": threshold,
        "results": results,
    })


@app.route("/api/v1/cleaning/export", methods=["POST"])
def cleaning_export():
    """
    Body: either explicit "records" ({sku, date, original, cleaned, note,
    is_outlier, z_score}) or company_id + dataset_id to export the stored data
    with outlier flags.
    """
    data = request.get_json() or {}
    threshold = float(data.get("threshold", DEFAULT_Z_THRESHOLD))
    records = data.get("records")

    if records is None:
        company_id = data.get("company_id")
        dataset_id = data.get("dataset_id")
        if not company_id or not dataset_id:
            return jsonify({"status": "error", "message": "records or company_id & dataset_id required"}), 400
        records = [
            {"sku": r["sku"], "date": r["date"], "original": r["value"], "cleaned": r["value"],
             "is_outlier": r["is_outlier"], "z_score": r["z_score"]}
            for r in detect_dataset_outliers(company_id, dataset_id, data.get("sku"), threshold)
        ]

    export_date = datetime.utcnow().strftime("%Y-%m-%d")
    csv_text = export_cleaning_csv(records, threshold, export_date)
    return Response(csv_text, mimetype="text/csv",
                    headers={"Content-Disposition": f"attachment; filename=cleaning-export-{export_date}.csv"})


@app.route("/api/v1/cleaning/import-preview", methods=["POST"])
def cleaning_import_preview():
    data = request.get_json() or {}
    company_id = data.get("company_id")
    dataset_id = data.get("dataset_id")
    csv_text = data.get("csvData")
    if not company_id or not dataset_id or not csv_text:
        return jsonify({"status": "error", "message": "company_id, dataset_id and csvData are required"}), 400

    db = SessionLocal()
    try:
        get_dataset(db, company_id, dataset_id)
        records, metadata, errors = parse_cleaning_csv(csv_text)
        previews = build_import_preview(records, current_values_for(db, company_id, dataset_id))
    except ForecastAIError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"❌ Cleaning import preview failed: {e}")
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()

    return jsonify({
        "status": "success",
        "metadata": metadata,
        "errors": errors,
        "previews": previews,
        "changes": sum(1 for p in previews if p["has_changes"]),
        "notFound": sum(1 for p in previews if not p["found"]),
    })


@app.route("/api/v1/cleaning/apply", methods=["POST"])
def cleaning_apply():
    """
    Body:
    {
      "company_id": 1,
      "dataset_id": 3,
      "previews": [...],        # from import-preview; or "csvData"
      "reoptimize": false       # queue data_cleaning jobs for changed SKUs
    }
    """
    data = request.get_json() or {}
    company_id = data.get("company_id")
    dataset_id = data.get("dataset_id")
    if not company_id or not dataset_id:
        return jsonify({"status": "error", "message": "company_id & dataset_id required"}), 400

    db = SessionLocal()
    try:
        get_dataset(db, company_id, dataset_id)
        previews = data.get("previews")
        if previews is None:
            if not data.get("csvData"):
                return jsonify({"status": "error", "message": "previews or csvData required"}), 400
            records, _, _ = parse_cleaning_csv(data["csvData"])
            previews = build_import_preview(records, current_values_for(db, company_id, dataset_id))

        updated = apply_cleaning_changes(db, company_id, dataset_id, previews)
        db.commit()
        logger.info(f"Applied {updated} cleaning changes to dataset {dataset_id}")

        jobs = None
        changed_skus = sorted({p["sku"] for p in previews if p.get("action") == "modify"})
        if data.get("reoptimize") and changed_skus:
            weights = load_settings(db, company_id).get("global_metricWeights")
            jobs = create_jobs(db, company_id, dataset_id, skus=changed_skus, reason="data_cleaning",
                               metric_weights=weights)

        return jsonify({"status": "success", "updated": updated, "jobs": jobs})
    except ForecastAIError as e:
        db.rollback()
        return error_response(e)
    except Exception as e:
        db.rollback()
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()


# ----------------------------------------------------------
# SETTINGS
# ----------------------------------------------------------
@app.route("/api/v1/settings/<int:company_id>", methods=["GET"])
def get_settings(company_id):
    db = SessionLocal()
    try:
        return jsonify(load_settings(db, company_id))
    finally:
        db.close()


@app.route("/api/v1/settings", methods=["POST"])
def post_settings():
    """
    Body:
    {
      "company_id": 1,
      "settings": {"global_frequency": "weekly", "global_forecastPeriods": 8}
    }
    """
    data = request.get_json() or {}
    company_id = data.get("company_id")
    values = data.get("settings")
    if not company_id or not isinstance(values, dict):
        return jsonify({"status": "error", "message": "company_id and settings are required"}), 400

    db = SessionLocal()
    try:
        saved = save_settings(db, company_id, values)
        db.commit()
        return jsonify({"status": "success", "saved": saved, "settings": load_settings(db, company_id)})
    except ForecastAIError as e:
        db.rollback()
        return error_response(e)
    except Exception as e:
        db.rollback()
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        db.close()


if __name__ == "__main__":
    app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=config.FLASK_ENV == "development")
