# HEARTH v1.0 - Database engine and sessions
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from store.models import Base
from utils.errors import StorageError


def _build_engine(url):
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(url, future=True, pool_pre_ping=True, connect_args=connect_args)


class Database:
    '''Engine plus session factory for one database URL'''

    def __init__(self, url):
        self.url = url
        self.engine = _build_engine(url)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False,
                                         expire_on_commit=False, future=True)

    def create_all(self):
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError("create schema in", self.url, e) from e

    @contextmanager
    def session(self):
        '''Session that commits on success and rolls back on error'''
        db: Session = self.SessionLocal()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError("query", self.url, e) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self):
        self.engine.dispose()


def open_database(url):
    '''Open a database and make sure the schema exists'''
    database = Database(url)
    database.create_all()
    return database
