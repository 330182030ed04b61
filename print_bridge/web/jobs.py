from __future__ import annotations

"""
Print job endpoints for Print Bridge.

Endpoints:
- GET    /api/print-jobs               : Latest jobs (optional ?status=&limit=) and queue status
- GET    /api/print-jobs/status        : Job counts per state plus worker status
- GET    /api/print-jobs/<job_id>      : One job (404 if not found)
- POST   /api/print-jobs/<job_id>/retry: Manual retry of a failed job (409 otherwise)
- DELETE /api/print-jobs/<job_id>      : Delete a job in any state
"""

from flask import Blueprint, current_app, jsonify, request

from . import schemas
from .common import get_services, json_error, register_error_handlers

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/print-jobs")
register_error_handlers(jobs_bp)


@jobs_bp.get("")
def jobs_list():
    """
    Return jobs newest first with the queue status.
    """
    try:
        q = schemas.JobListQuery.model_validate(request.args.to_dict())
    except Exception as e:
        return json_error(f"invalid query: {e}", 400)
    scheduler = get_services().scheduler
    jobs = scheduler.list(status=q.status, limit=q.limit)
    current_app.logger.info("GET /api/print-jobs count=%d status=%s", len(jobs), q.status or "*")
    return jsonify({"jobs": [j.to_dict() for j in jobs], "queueStatus": scheduler.status()})


@jobs_bp.get("/status")
def jobs_status():
    return jsonify(get_services().scheduler.status())


@jobs_bp.get("/<job_id>")
def job_detail(job_id: str):
    return jsonify(get_services().scheduler.get(job_id).to_dict())


@jobs_bp.post("/<job_id>/retry")
def job_retry(job_id: str):
    job = get_services().scheduler.retry(job_id)
    current_app.logger.info("POST /api/print-jobs/%s/retry ok", job_id)
    return jsonify({"success": True, "job": job.to_dict()})


@jobs_bp.delete("/<job_id>")
def job_delete(job_id: str):
    get_services().scheduler.remove(job_id)
    current_app.logger.info("DELETE /api/print-jobs/%s ok", job_id)
    return jsonify({"success": True})
