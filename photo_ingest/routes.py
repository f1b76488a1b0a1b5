from flask import Blueprint, current_app, request, jsonify, redirect
from sqlalchemy import func as sa_func, select
from werkzeug.exceptions import HTTPException
from .auth import resolve_account
from .errors import ImageNotFoundError, InvalidRequestError, PhotoIngestError
from .models.imageModel import Image, Variant, QUALITIES, QUALITY_ORIGINAL, QUALITY_MEDIUM, QUALITY_SMALL
from .services.uploadCoordinator import UploadRequest
from .utils.logging import logger

routes_bp = Blueprint("routes_bp", __name__)


def pipeline():
    return current_app.extensions["photo_ingest"]


def error_response(msg, code=400):
    return jsonify({"status": "error", "data": None, "error": msg}), code


@routes_bp.app_errorhandler(PhotoIngestError)
def handle_pipeline_error(e):
    if e.status_code >= 500:
        logger.error(f"{request.method} {request.path} failed: {e.message}")
    return error_response(e.message, e.status_code)


@routes_bp.app_errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception(f"{request.method} {request.path} failed: {e}")
    return error_response("Internal server error", 500)


def _file_part():
    # any field name is accepted for the single binary part
    for _, file in request.files.items(multi=True):
        return file
    return None


@routes_bp.route("/api/images", methods=["POST"])
def upload_image():
    account = resolve_account()
    file = _file_part()
    upload = UploadRequest(
        filename=request.form.get("filename", "").strip(),
        last_modified=request.form.get("last_modified", "").strip(),
        data=file.read() if file else b"",
        content_type=file.mimetype if file else None,
    )
    result = pipeline().coordinator.upload(account, upload)

    return jsonify({
        "status": "success",
        "data": {
            "image_id": result.image_id,
            "filename": result.filename,
            "captured_at": result.captured_at.isoformat(),
            "status": "processing"
        },
        "error": None
    }), 201


@routes_bp.route("/api/images", methods=["GET"])
def list_images():
    account = resolve_account()
    with pipeline().session_factory() as db:
        imgs = db.execute(
            select(Image).where(Image.account_id == account.account_id).order_by(Image.id)
        ).scalars().all()
        data = [{
            "image_id": i.id,
            "filename": i.filename,
            "captured_at": i.captured_at.isoformat() if i.captured_at else None,
            "aspect_ratio": i.aspect_ratio,
            "variants": sorted({v.quality for v in i.variants}, key=QUALITIES.index),
        } for i in imgs]
    return jsonify({"status": "success", "data": data, "error": None})


@routes_bp.route("/api/images/<image_id>", methods=["GET"])
def get_image(image_id):
    account = resolve_account()
    quality = request.args.get("quality", QUALITY_ORIGINAL)
    if quality not in QUALITIES:
        raise InvalidRequestError(f"Invalid quality: {quality}")

    with pipeline().session_factory() as db:
        variant = db.execute(
            select(Variant)
            .join(Image, Variant.image_id == Image.id)
            .where(Image.id == image_id, Image.account_id == account.account_id, Variant.quality == quality)
            .order_by(Variant.version.desc())
        ).scalars().first()
        if variant is None:
            raise ImageNotFoundError(f"No {quality} variant for image {image_id}")
        object_name = variant.object_name

    return redirect(pipeline().object_store.presign_get(object_name), code=307)


@routes_bp.route("/api/stats", methods=["GET"])
def get_stats():
    with pipeline().session_factory() as db:
        total_images = db.scalar(select(sa_func.count(Image.id)))
        per_tier = dict(db.execute(
            select(Variant.quality, sa_func.count(Variant.id)).group_by(Variant.quality)
        ).all())
        derived = db.scalar(
            select(sa_func.count(sa_func.distinct(Variant.image_id)))
            .where(Variant.quality.in_([QUALITY_MEDIUM, QUALITY_SMALL]))
        )

    return jsonify({
        "status": "success",
        "data": {
            "total_images": total_images,
            "variants": {q: per_tier.get(q, 0) for q in QUALITIES},
            "awaiting_variants": total_images - derived,
            "queued_jobs": pipeline().job_queue.qsize()
        },
        "error": None
    })


@routes_bp.route("/", methods=["GET"])
def health_check():
    return jsonify({
        "status": "success",
        "data": {
            "message": "Photo ingest API is running",
            "workers_running": pipeline().workers.running
        },
        "error": None
    })
