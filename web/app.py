#!/usr/bin/env python3
"""
pdfshrink - Flask Web Application

A local JSON API for batch PDF compression with progress tracking.
"""

import logging
import shutil
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS

# Add parent directory to path to import pdfshrink
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pdfshrink import (
    BatchFailure,
    BatchRequest,
    BundlingError,
    CompressionIntent,
    CompressionOrchestrator,
    CompressorConfig,
    SourceDocument,
    ValidationError,
    bundle_records,
    run_batch,
)
from pdfshrink import notifications
from pdfshrink.export import write_record
from pdfshrink.validation import validate_files

_LOGGER = logging.getLogger("pdfshrink.web")

app = Flask(__name__)
CORS(app)

# Configuration
OUTPUT_FOLDER = Path(tempfile.gettempdir()) / "pdfshrink_output"
MAX_CONTENT_LENGTH = 500 * 1024 * 1024  # 500MB per request

app.config["OUTPUT_FOLDER"] = OUTPUT_FOLDER
app.config["MAX_CONTENT_LENGTH"] = MAX_CONTENT_LENGTH
app.config["COMPRESSOR_CONFIG"] = CompressorConfig()

# Job tracking
jobs: Dict[str, dict] = {}
jobs_lock = threading.Lock()
cancel_events: Dict[str, threading.Event] = {}

# One batch compresses at a time
compression_lock = threading.Lock()


def output_folder() -> Path:
    folder = Path(app.config["OUTPUT_FOLDER"])
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def cleanup_old_files(max_age_hours: int = 1):
    """Clean up job folders older than max_age_hours."""
    now = time.time()
    max_age_seconds = max_age_hours * 3600

    for job_dir in output_folder().iterdir():
        if not job_dir.is_dir():
            continue
        age = now - job_dir.stat().st_mtime
        if age > max_age_seconds:
            try:
                shutil.rmtree(job_dir)
            except OSError as e:
                _LOGGER.debug("Could not remove %s: %s", job_dir, e)
                continue
            with jobs_lock:
                jobs.pop(job_dir.name, None)
                cancel_events.pop(job_dir.name, None)


def parse_intent(form) -> CompressionIntent:
    """
    Build the compression intent from request form fields.

    Exactly one of ``level`` or ``target_kb`` may be given; neither means
    medium compression.

    Raises:
        ValueError: If the fields are contradictory or malformed
    """
    level = (form.get("level") or "").strip()
    target_kb = (form.get("target_kb") or "").strip()

    if level and target_kb:
        raise ValueError("Provide either a compression level or a target size, not both")

    if target_kb:
        try:
            kb = int(target_kb)
        except ValueError:
            raise ValueError("Target size must be a positive whole number of KB")
        return CompressionIntent.from_target_kb(kb)

    return CompressionIntent.from_level(level or "medium")


def read_uploads() -> List[SourceDocument]:
    return [
        SourceDocument(name=f.filename, data=f.read(), content_type=f.mimetype)
        for f in request.files.getlist("files")
        if f.filename
    ]


@app.route("/api/compress", methods=["POST"])
def start_compression():
    """Validate the uploaded selection and start a compression job."""
    cleanup_old_files()

    files = read_uploads()

    try:
        intent = parse_intent(request.form)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    config: CompressorConfig = app.config["COMPRESSOR_CONFIG"]
    batch_request = BatchRequest.create(files, intent)

    try:
        validate_files(batch_request.files, config.max_file_size)
    except ValidationError as e:
        return jsonify({
            "error": e.message,
            "reason": e.reason,
            "invalid_files": e.invalid_files,
        }), 400

    job_id = str(uuid.uuid4())

    with jobs_lock:
        jobs[job_id] = {
            "status": "queued",
            "stage": "Waiting for previous jobs",
            "progress": 0,
            "mode": intent.describe(),
            "filenames": [f.name for f in batch_request.files],
            "result": None,
            "error": None,
            "bundled": False,
            "output_files": [],
            "bundle_file": None,
        }
        cancel_events[job_id] = threading.Event()

    # Start compression in background thread
    thread = threading.Thread(
        target=run_compression_job,
        args=(job_id, batch_request, config),
        daemon=True,
    )
    thread.start()

    return jsonify({"job_id": job_id}), 202


def _update_job(job_id: str, **changes):
    with jobs_lock:
        if job_id in jobs:
            jobs[job_id].update(changes)


def run_compression_job(job_id: str, batch_request: BatchRequest, config: CompressorConfig):
    """Run a batch in the background, one batch at a time."""
    def progress_callback(stage: str, percentage: int):
        _update_job(job_id, stage=stage, progress=percentage, status="processing")

    with compression_lock:
        _update_job(job_id, status="processing", stage="Initializing")
        try:
            result = run_batch(
                batch_request,
                CompressionOrchestrator(config=config),
                progress_callback=progress_callback,
                cancel_event=cancel_events.get(job_id),
            )
        except BatchFailure as e:
            _update_job(
                job_id,
                status="failed",
                stage="Failed",
                progress=100,
                error=e.message,
                result=e.result.to_dict() if e.result else None,
            )
            return
        except Exception as e:
            _LOGGER.exception("Compression job %s crashed", job_id)
            _update_job(job_id, status="failed", stage="Error", error=str(e) or "Unknown error")
            return

    job_dir = output_folder() / job_id
    job_dir.mkdir(parents=True, exist_ok=True)
    output_files = [str(write_record(record, job_dir)) for record in result.records]

    bundle_file: Optional[str] = None
    if len(result.records) > 1:
        try:
            archive = bundle_records(result.records)
        except BundlingError as e:
            _LOGGER.warning("ZIP creation error for job %s: %s", job_id, e)
            result.notifications.append(
                notifications.warning("Error creating ZIP file. Downloading files individually...")
            )
        else:
            bundle_path = job_dir / config.bundle_name
            bundle_path.write_bytes(archive)
            bundle_file = str(bundle_path)

    _update_job(
        job_id,
        status="cancelled" if result.cancelled else "completed",
        stage="Cancelled" if result.cancelled else "Complete",
        progress=100,
        result=result.to_dict(),
        output_files=output_files,
        bundle_file=bundle_file,
        bundled=bundle_file is not None,
    )


def _finished_job(job_id: str):
    """Return (job, error_response) for a job whose outputs can be downloaded."""
    with jobs_lock:
        if job_id not in jobs:
            return None, (jsonify({"error": "Job not found"}), 404)
        job = dict(jobs[job_id])

    if job["status"] not in ("completed", "cancelled") or not job["output_files"]:
        return None, (jsonify({"error": "Job not completed"}), 400)
    return job, None


@app.route("/api/job/<job_id>")
def get_job_status(job_id: str):
    """Get job status and progress."""
    with jobs_lock:
        if job_id not in jobs:
            return jsonify({"error": "Job not found"}), 404

        job = jobs[job_id].copy()

    job.pop("output_files", None)
    job.pop("bundle_file", None)
    return jsonify(job)


@app.route("/api/job/<job_id>/cancel", methods=["POST"])
def cancel_job(job_id: str):
    """Stop a job before its next file starts."""
    with jobs_lock:
        if job_id not in jobs:
            return jsonify({"error": "Job not found"}), 404
        event = cancel_events.get(job_id)

    if event is not None:
        event.set()
    return jsonify({"job_id": job_id, "cancel_requested": True})


@app.route("/api/download/<job_id>")
def download_results(job_id: str):
    """
    Download a job's output.

    One file is sent directly and several files are sent as the ZIP bundle.
    If bundling failed the response lists individual download URLs with
    the delay a client should leave between them.
    """
    job, error = _finished_job(job_id)
    if error:
        return error

    if job["bundle_file"]:
        return send_file(
            job["bundle_file"],
            as_attachment=True,
            download_name=Path(job["bundle_file"]).name,
            mimetype="application/zip",
        )

    if len(job["output_files"]) == 1:
        return download_single(job_id, 0)

    config: CompressorConfig = app.config["COMPRESSOR_CONFIG"]
    return jsonify({
        "bundled": False,
        "stagger_ms": int(config.stagger_seconds * 1000),
        "files": [
            {"name": Path(path).name, "url": f"/api/download/{job_id}/{index}"}
            for index, path in enumerate(job["output_files"])
        ],
    })


@app.route("/api/download/<job_id>/<int:index>")
def download_single(job_id: str, index: int):
    """Download one compressed file of a job."""
    job, error = _finished_job(job_id)
    if error:
        return error

    if index < 0 or index >= len(job["output_files"]):
        return jsonify({"error": "File not found"}), 404

    file_path = Path(job["output_files"][index])
    if not file_path.exists():
        return jsonify({"error": "File no longer available"}), 404

    return send_file(
        file_path,
        as_attachment=True,
        download_name=file_path.name,
        mimetype="application/pdf",
    )


@app.route("/api/report/<job_id>")
def get_report(job_id: str):
    """Get the batch report as JSON."""
    with jobs_lock:
        if job_id not in jobs:
            return jsonify({"error": "Job not found"}), 404

        job = jobs[job_id]

        if job["result"] is None:
            return jsonify({"error": "Job not completed"}), 400

        report = job["result"]

    return jsonify(report)


if __name__ == "__main__":
    print("Starting pdfshrink Web Server...")
    print("API available at http://localhost:5000/api")
    app.run(debug=True, host="0.0.0.0", port=5000)
