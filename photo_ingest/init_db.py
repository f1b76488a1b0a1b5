from .config import Config
from .models.database import make_engine, init_db

if __name__ == "__main__":
    print("Creating database tables...")
    init_db(make_engine(Config.DATABASE_URL))
    print("Database tables created successfully!")
