import atexit
from flask import Flask
from .config import Config
from .routes import routes_bp
from .models.database import make_engine, make_session_factory, init_db
from .services.objectStore import ObjectStore
from .services.pipeline import Pipeline
from .utils.logging import logger


def create_app(config=None, object_store=None, session_factory=None):
    # Create Flask app
    app = Flask(__name__)

    # --- Configuration ---
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    # --- Database setup ---
    if session_factory is None:
        engine = make_engine(app.config["DATABASE_URL"])
        init_db(engine)
        session_factory = make_session_factory(engine)
        logger.info("Database tables initialized")

    # --- Object store ---
    if object_store is None:
        object_store = ObjectStore.from_config(app.config)
        logger.info(f"Using bucket {object_store.bucket}")

    pipeline = Pipeline.build(app.config, object_store, session_factory)
    app.extensions["photo_ingest"] = pipeline

    # --- Register routes blueprint ---
    app.register_blueprint(routes_bp)

    # --- Start background workers ---
    if app.config["START_WORKERS"]:
        pipeline.start()
        atexit.register(pipeline.shutdown, 5)

    logger.info("Flask app created successfully")
    return app
