"""
SQL хранилище на SQLAlchemy.

SQLite файл по умолчанию; ":memory:" для тестов (одно общее соединение).
Синхронные сессии выполняются в worker-потоках через asyncio.to_thread,
одна сессия на вызов, commit до возврата.
"""

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, TypeVar

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from perfbudget.core.errors import StorageError, ValidationError
from perfbudget.core.models import Build, BuildMetadata, Project, Run, as_utc, utcnow
from perfbudget.core.storage import StorageMethod
from perfbudget.infrastructure.metrics import storage_latency, storage_operations

logger = logging.getLogger(__name__)

T = TypeVar("T")

Base = declarative_base()


class ProjectModel(Base):
    __tablename__ = "projects"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False)
    name = Column(String(255), unique=True, nullable=False)
    external_url = Column(String, nullable=False, default="")
    token = Column(String(64), unique=True, nullable=False)
    read_token = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class BuildModel(Base):
    __tablename__ = "builds"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    branch = Column(String, nullable=False, default="")
    hash = Column(String(64), nullable=False, default="")
    commit_message = Column(Text, nullable=False, default="")
    author = Column(String, nullable=False, default="")
    external_build_url = Column(String, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_builds_project_created", "project_id", "created_at"),
    )


class RunModel(Base):
    __tablename__ = "runs"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    build_id = Column(String(36), ForeignKey("builds.id", ondelete="CASCADE"), nullable=False)
    url = Column(String, nullable=False)
    lhr = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_runs_build_created", "build_id", "created_at"),
    )


def _to_project(row: ProjectModel) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        external_url=row.external_url,
        token=row.token,
        read_token=row.read_token,
        created_at=as_utc(row.created_at),
    )


def _to_build(row: BuildModel) -> Build:
    return Build(
        id=row.id,
        project_id=row.project_id,
        branch=row.branch,
        hash=row.hash,
        commit_message=row.commit_message,
        author=row.author,
        external_build_url=row.external_build_url,
        created_at=as_utc(row.created_at),
    )


def _to_run(row: RunModel) -> Run:
    return Run(
        id=row.id,
        project_id=row.project_id,
        build_id=row.build_id,
        url=row.url,
        lhr=row.lhr,
        created_at=as_utc(row.created_at),
    )


def make_engine(database_path: str):
    if database_path == ":memory:":
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    else:
        engine = create_engine(
            f"sqlite:///{database_path}",
            connect_args={"check_same_thread": False},
            future=True,
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - driver specific
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class SqlStorageMethod(StorageMethod):
    """Хранилище Project/Build/Run в SQL базе."""

    def __init__(self, database_path: str = "perfbudget.db"):
        self.database_path = database_path
        self.engine = None
        self.session_factory: Optional[sessionmaker] = None

    async def initialize(self) -> None:
        def _init() -> None:
            self.engine = make_engine(self.database_path)
            Base.metadata.create_all(self.engine)
            self.session_factory = sessionmaker(
                bind=self.engine, class_=Session, expire_on_commit=False, future=True
            )

        try:
            await asyncio.to_thread(_init)
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize SQL storage at {self.database_path}: {e}", exc_info=True)
            raise StorageError(f"Failed to initialize SQL storage: {e}") from e
        logger.info(f"SQL storage ready: {self.database_path}")

    async def close(self) -> None:
        if self.engine is not None:
            await asyncio.to_thread(self.engine.dispose)
            self.engine = None

    async def _execute(self, operation: str, fn: Callable[[Session], T]) -> T:
        """Выполнить fn в отдельной сессии, переводя ошибки драйвера в StorageError."""
        if self.session_factory is None:
            raise StorageError("SQL storage is not initialized")

        def _run() -> T:
            with session_scope(self.session_factory) as session:
                return fn(session)

        start_time = time.perf_counter()
        try:
            result = await asyncio.to_thread(_run)
        except IntegrityError as e:
            storage_operations.labels(operation=operation, outcome="conflict").inc()
            raise ValidationError(f"Constraint violated during {operation}") from e
        except SQLAlchemyError as e:
            storage_operations.labels(operation=operation, outcome="error").inc()
            logger.error(f"SQL storage {operation} failed: {e}", exc_info=True)
            raise StorageError(f"Storage failure during {operation}") from e
        finally:
            storage_latency.labels(operation=operation).observe(time.perf_counter() - start_time)

        storage_operations.labels(operation=operation, outcome="ok").inc()
        return result

    async def ping(self) -> None:
        await self._execute("ping", lambda session: session.execute(text("SELECT 1")).scalar())

    # ==================== Projects ====================

    async def get_projects(self) -> List[Project]:
        def _query(session: Session) -> List[Project]:
            rows = session.scalars(select(ProjectModel).order_by(ProjectModel.seq)).all()
            return [_to_project(row) for row in rows]

        return await self._execute("get_projects", _query)

    async def get_project(self, project_id: str) -> Optional[Project]:
        def _query(session: Session) -> Optional[Project]:
            row = session.scalars(select(ProjectModel).where(ProjectModel.id == project_id)).first()
            return _to_project(row) if row else None

        return await self._execute("get_project", _query)

    async def find_project_by_name(self, name: str) -> Optional[Project]:
        def _query(session: Session) -> Optional[Project]:
            row = session.scalars(select(ProjectModel).where(ProjectModel.name == name)).first()
            return _to_project(row) if row else None

        return await self._execute("find_project_by_name", _query)

    async def find_project_by_token(self, token: str) -> Optional[Project]:
        def _query(session: Session) -> Optional[Project]:
            row = session.scalars(select(ProjectModel).where(ProjectModel.token == token)).first()
            return _to_project(row) if row else None

        return await self._execute("find_project_by_token", _query)

    async def create_project(self, project: Project) -> Project:
        def _insert(session: Session) -> Project:
            session.add(ProjectModel(
                id=project.id,
                name=project.name,
                external_url=project.external_url,
                token=project.token,
                read_token=project.read_token,
                created_at=project.created_at,
            ))
            return project

        return await self._execute("create_project", _insert)

    # ==================== Builds ====================

    async def get_builds(self, project_id: str) -> List[Build]:
        def _query(session: Session) -> List[Build]:
            rows = session.scalars(
                select(BuildModel)
                .where(BuildModel.project_id == project_id)
                .order_by(BuildModel.created_at.desc(), BuildModel.seq.desc())
            ).all()
            return [_to_build(row) for row in rows]

        return await self._execute("get_builds", _query)

    async def get_build(self, build_id: str) -> Optional[Build]:
        def _query(session: Session) -> Optional[Build]:
            row = session.scalars(select(BuildModel).where(BuildModel.id == build_id)).first()
            return _to_build(row) if row else None

        return await self._execute("get_build", _query)

    async def create_build(self, project_id: str, metadata: BuildMetadata) -> Build:
        def _insert(session: Session) -> Build:
            row = BuildModel(
                id=str(uuid.uuid4()),
                project_id=project_id,
                branch=metadata.branch,
                hash=metadata.hash,
                commit_message=metadata.commit_message,
                author=metadata.author,
                external_build_url=metadata.external_build_url,
                created_at=utcnow(),
            )
            session.add(row)
            session.flush()
            return _to_build(row)

        return await self._execute("create_build", _insert)

    # ==================== Runs ====================

    async def get_runs(self, build_id: str) -> List[Run]:
        def _query(session: Session) -> List[Run]:
            rows = session.scalars(
                select(RunModel)
                .where(RunModel.build_id == build_id)
                .order_by(RunModel.created_at.desc(), RunModel.seq.desc())
            ).all()
            return [_to_run(row) for row in rows]

        return await self._execute("get_runs", _query)

    async def create_run(self, build: Build, url: str, lhr: str) -> Run:
        def _insert(session: Session) -> Run:
            row = RunModel(
                id=str(uuid.uuid4()),
                project_id=build.project_id,
                build_id=build.id,
                url=url,
                lhr=lhr,
                created_at=utcnow(),
            )
            session.add(row)
            session.flush()
            return _to_run(row)

        return await self._execute("create_run", _insert)
