from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session
from .config import settings
from .db import models  # noqa: F401  registers the tables on SQLModel.metadata

# Choose engine options based on database scheme
db_url = settings.DATABASE_URL
engine_kwargs = {}

if db_url.startswith("sqlite"):
    # Requests and scheduler jobs run on different threads
    engine_kwargs.update({
        "connect_args": {"check_same_thread": False}
    })
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every thread sees an empty database
        engine_kwargs["poolclass"] = StaticPool
else:
    # Better resiliency for managed Postgres
    engine_kwargs.update({
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
    })

engine = create_engine(db_url, echo=settings.DEBUG, **engine_kwargs)


def create_db_and_tables(bind=None):
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    with Session(engine) as session:
        yield session
