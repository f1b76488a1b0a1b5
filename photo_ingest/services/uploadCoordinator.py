"""Synchronous half of the ingestion pipeline.

Writes happen in the order blob -> rows -> job -> commit. Every failure after
the blob upload rolls the transaction back and deletes the blob; the caller
only sees success once the commit went through.
"""
from dataclasses import dataclass
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from .cleanup import delete_many
from .imageProcessing import decode_image, extract_exif, resolve_capture_time
from .jobQueue import ImageProcessingJob
from ..errors import DuplicateImageError, MetadataStoreError, MissingFieldError
from ..models.imageModel import Image, Variant, QUALITY_ORIGINAL
from ..utils.ids import new_id, new_object_key
from ..utils.logging import logger

ORIGINAL_COMPRESSION_QUALITY = 100


@dataclass(frozen=True)
class UploadRequest:
    filename: str
    last_modified: str
    data: bytes
    content_type: str = None

    def validate(self):
        for name in ("filename", "last_modified", "data"):
            if not getattr(self, name):
                raise MissingFieldError(name)


@dataclass(frozen=True)
class UploadResult:
    image_id: str
    filename: str
    captured_at: object
    original_object_name: str
    width: int
    height: int


class UploadCoordinator:
    def __init__(self, object_store, session_factory, job_queue):
        self._store = object_store
        self._session_factory = session_factory
        self._queue = job_queue

    def upload(self, account, request):
        request.validate()
        log = logger.bind(account_id=account.account_id, filename=request.filename)

        decoded = decode_image(request.data)
        exif = extract_exif(request.data)
        captured_at = resolve_capture_time(exif, request.last_modified)

        if self._exists(account.account_id, request.filename):
            log.warning(f"Duplicate upload of {request.filename} rejected")
            raise DuplicateImageError(f"{request.filename} was already uploaded")

        # blob before rows
        object_name = new_object_key()
        self._store.put(object_name, request.data, content_type=request.content_type or decoded.content_type)
        log.info(f"Stored original {object_name} ({len(request.data)} bytes)")

        image = Image(
            id=new_id(),
            account_id=account.account_id,
            filename=request.filename,
            captured_at=captured_at,
            aspect_ratio=decoded.aspect_ratio,
            image_metadata=exif,
        )
        image.variants.append(Variant(
            id=new_id(),
            object_name=object_name,
            width=decoded.width,
            height=decoded.height,
            compression_quality=ORIGINAL_COMPRESSION_QUALITY,
            quality=QUALITY_ORIGINAL,
            version=1,
        ))
        job = ImageProcessingJob(image_id=image.id, account_id=account.account_id, original_object_name=object_name)

        pending = None
        stage = "insert"
        db = self._session_factory()
        try:
            try:
                db.add(image)
                db.flush()
                stage = "enqueue"
                pending = self._queue.put(job)
                stage = "commit"
                db.commit()
            except IntegrityError as e:
                self._abort(db, object_name, pending, f"duplicate detected on {stage}: {e.orig}")
                raise DuplicateImageError(f"{request.filename} was already uploaded") from e
            except SQLAlchemyError as e:
                self._abort(db, object_name, pending, f"{stage} failed: {e}")
                raise MetadataStoreError(f"Could not record image ({stage}): {e}") from e
            except Exception as e:
                self._abort(db, object_name, pending, f"{stage} failed: {e}")
                raise
            pending.release()
        finally:
            if pending is not None and not pending.resolved:
                pending.discard()
            db.close()

        log.info(f"Image {image.id} recorded, variant job scheduled")
        return UploadResult(
            image_id=image.id,
            filename=image.filename,
            captured_at=captured_at,
            original_object_name=object_name,
            width=decoded.width,
            height=decoded.height,
        )

    def _exists(self, account_id, filename):
        db = self._session_factory()
        try:
            stmt = select(Image.id).where(Image.account_id == account_id, Image.filename == filename)
            return db.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            raise MetadataStoreError(f"Duplicate check failed: {e}") from e
        finally:
            db.close()

    def _abort(self, db, object_name, pending, reason):
        if pending is not None:
            pending.discard()
        logger.error(f"Upload aborted ({reason}); rolling back and deleting {object_name}")
        try:
            db.rollback()
        except SQLAlchemyError as e:
            logger.exception(f"Rollback failed: {e}")
        delete_many(self._store, [object_name])
