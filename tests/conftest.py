import io
import threading
import piexif
import pytest
from PIL import Image as PILImage
from sqlalchemy import func, select
from photo_ingest import create_app
from photo_ingest.auth import Account
from photo_ingest.errors import ObjectNotFoundError, StorageError
from photo_ingest.models.database import make_engine, make_session_factory, init_db
from photo_ingest.services.jobQueue import JobQueue
from photo_ingest.services.uploadCoordinator import UploadCoordinator, UploadRequest

LAST_MODIFIED_MS = "1700000000000"  # 2023-11-14T22:13:20Z


class FakeObjectStore:
    """In-memory bucket with S3 delete semantics and injectable failures."""

    def __init__(self):
        self.objects = {}
        self.puts = []
        self.deletes = []
        self.fail_put = None
        self.fail_get = False
        self.fail_delete = set()
        self._lock = threading.Lock()

    def put(self, key, data, content_type="application/octet-stream"):
        if self.fail_put and self.fail_put(key, data):
            raise StorageError(f"Upload of {key} rejected: 500")
        with self._lock:
            self.objects[key] = data
            self.puts.append(key)

    def get(self, key):
        if self.fail_get:
            raise StorageError(f"Download of {key} failed")
        if key not in self.objects:
            raise ObjectNotFoundError(f"Object {key} not found")
        return self.objects[key]

    def delete(self, key):
        with self._lock:
            self.deletes.append(key)
            if key in self.fail_delete:
                raise StorageError(f"Delete of {key} failed")
            self.objects.pop(key, None)

    def presign_get(self, key):
        return f"https://s3.test/photos/{key}?X-Amz-Signature=test"


def make_jpeg(width=400, height=300, color=(200, 120, 40), exif_datetime=None, edited_datetime=None):
    """``exif_datetime`` goes to DateTimeOriginal, ``edited_datetime`` to the IFD0 DateTime."""
    img = PILImage.new("RGB", (width, height), color)
    buf = io.BytesIO()
    if exif_datetime or edited_datetime:
        exif = {"0th": {}, "Exif": {}}
        if exif_datetime:
            exif["Exif"][piexif.ExifIFD.DateTimeOriginal] = exif_datetime.encode()
        if edited_datetime:
            exif["0th"][piexif.ImageIFD.DateTime] = edited_datetime.encode()
        img.save(buf, format="JPEG", exif=piexif.dump(exif))
    else:
        img.save(buf, format="JPEG")
    return buf.getvalue()


def jpeg_width(data):
    return PILImage.open(io.BytesIO(data)).width


def count_rows(session_factory, model, **filters):
    with session_factory() as db:
        stmt = select(func.count()).select_from(model).where(
            *(getattr(model, name) == value for name, value in filters.items())
        )
        return db.scalar(stmt)


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'photos.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def job_queue():
    return JobQueue()


@pytest.fixture
def coordinator(store, session_factory, job_queue):
    return UploadCoordinator(store, session_factory, job_queue)


@pytest.fixture
def account():
    return Account(account_id="acct-1", username="alice")


@pytest.fixture
def upload(coordinator, account):
    def _upload(filename="photo.jpg", data=None, last_modified=LAST_MODIFIED_MS, who=None):
        request = UploadRequest(filename=filename, last_modified=last_modified, data=data or make_jpeg())
        return coordinator.upload(who or account, request)
    return _upload


@pytest.fixture
def app(store, session_factory):
    app = create_app(
        config={"TESTING": True, "START_WORKERS": False, "WORKER_COUNT": 2},
        object_store=store,
        session_factory=session_factory,
    )
    yield app
    app.extensions["photo_ingest"].shutdown(timeout=1)


@pytest.fixture
def client(app):
    return app.test_client()
