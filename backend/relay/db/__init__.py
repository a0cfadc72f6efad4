from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import OperationalError
from .models import Base
import time
from pathlib import Path


def make_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # sessions are handed between the request threadpool and the scheduler thread
        connect_args["check_same_thread"] = False
        if ":///" in database_url:
            db_path = database_url.split(":///", 1)[1]
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


def make_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def _wait_for_db(engine: Engine, max_tries: int = 60, delay: float = 1.0):
    tries = 0
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return
        except OperationalError:
            tries += 1
            if tries >= max_tries:
                raise
            time.sleep(delay)


def init_schema(engine: Engine, max_tries: int = 60):
    _wait_for_db(engine, max_tries=max_tries)
    Base.metadata.create_all(bind=engine)
