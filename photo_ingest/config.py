import os


class Config:
    # --- Database ---
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///photo_ingest.db")

    # --- Object store (any S3-compatible endpoint) ---
    S3_BUCKET = os.getenv("S3_BUCKET", "photos")
    S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")
    S3_REGION = os.getenv("S3_REGION", "us-east-1")
    S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
    S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")
    PRESIGN_EXPIRY_SECONDS = int(os.getenv("PRESIGN_EXPIRY_SECONDS", "600"))

    # --- Workers ---
    START_WORKERS = os.getenv("START_WORKERS", "1") == "1"
    WORKER_COUNT = int(os.getenv("WORKER_COUNT", "4"))
    WORKER_RESTART_DELAY_SECONDS = float(os.getenv("WORKER_RESTART_DELAY_SECONDS", "5"))

    # --- Variants ---
    MEDIUM_QUALITY = int(os.getenv("MEDIUM_QUALITY", "80"))
    SMALL_QUALITY = int(os.getenv("SMALL_QUALITY", "80"))

    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(50 * 1024 * 1024)))  # 50 MB limit
