from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from shopbill import config

Base = declarative_base()

_engine_kwargs = {"pool_pre_ping": True}
if not config.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs.update(pool_size=10, max_overflow=20)

engine = create_engine(config.DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Create all tables. Models must be imported first so the metadata knows them."""
    import shopbill.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


# Dependency для FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
