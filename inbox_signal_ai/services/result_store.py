"""SQL-backed store of analysis results keyed by message id."""

import asyncio
import datetime as _dt
import threading
from typing import List, Optional

from sqlalchemy import Column, Integer, String, Text, create_engine, or_, select
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import DATABASE_URL
from ..errors import PersistError
from ..schemas.enrichment_result import EnrichmentResult
from ..utils.logger import get_logger
from .interfaces import ResultStore

logger = get_logger(__name__)

Base = declarative_base()


def _utc_now_iso() -> str:
    return _dt.datetime.now(tz=_dt.timezone.utc).isoformat()


class EmailSummary(Base):
    __tablename__ = "email_summaries"
    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(String, nullable=True, index=True)
    category = Column(String, nullable=False)
    summary = Column(Text, nullable=False)
    company = Column(String, nullable=True)
    role = Column(String, nullable=True)
    payload_json = Column(Text, nullable=False)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


def _make_engine(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, future=True, **kwargs)
    return create_engine(url, echo=False, future=True)


class SqlResultStore(ResultStore):
    """
    SQLAlchemy store. Blocking calls run in worker threads via asyncio.to_thread
    and are serialized by a lock, so one instance can be shared by all workers.
    """

    def __init__(self, database_url: str = DATABASE_URL) -> None:
        self._engine = _make_engine(database_url)
        self._session_factory = sessionmaker(bind=self._engine, autoflush=False, future=True)
        self._lock = threading.Lock()
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    # Sync implementations

    def get_sync(self, message_id: str) -> Optional[EnrichmentResult]:
        with self._lock, self._session_factory() as session:
            row = session.execute(
                select(EmailSummary).where(EmailSummary.message_id == message_id)
            ).scalars().first()
            if row is None:
                return None
            return EnrichmentResult.model_validate_json(row.payload_json)

    def put_sync(self, message_id: str, result: EnrichmentResult, user_id: Optional[str] = None) -> None:
        stored = result.model_copy(update={"message_id": message_id})
        now = _utc_now_iso()
        with self._lock, self._session_factory() as session:
            row = session.execute(
                select(EmailSummary).where(EmailSummary.message_id == message_id)
            ).scalars().first()
            if row is None:
                row = EmailSummary(message_id=message_id, created_at=now)
                session.add(row)
            # first owner keeps the row in its history
            if row.user_id is None:
                row.user_id = user_id
            row.category = stored.category
            row.summary = stored.summary
            row.company = stored.company
            row.role = stored.role
            row.payload_json = stored.model_dump_json(by_alias=True)
            row.updated_at = now
            session.commit()

    def history_sync(self, user_id: str, query: str = "") -> List[EnrichmentResult]:
        stmt = select(EmailSummary).where(EmailSummary.user_id == user_id)
        q = (query or "").strip()
        if q:
            pattern = f"%{q}%"
            stmt = stmt.where(
                or_(
                    EmailSummary.summary.ilike(pattern),
                    EmailSummary.company.ilike(pattern),
                    EmailSummary.role.ilike(pattern),
                    EmailSummary.category.ilike(pattern),
                )
            )
        stmt = stmt.order_by(EmailSummary.id.desc())
        with self._lock, self._session_factory() as session:
            rows = session.execute(stmt).scalars().all()
            return [EnrichmentResult.model_validate_json(r.payload_json) for r in rows]

    # ResultStore contract

    async def get(self, message_id: str) -> Optional[EnrichmentResult]:
        return await asyncio.to_thread(self.get_sync, message_id)

    async def put(self, message_id: str, result: EnrichmentResult, user_id: Optional[str] = None) -> None:
        try:
            await asyncio.to_thread(self.put_sync, message_id, result, user_id)
        except Exception as e:
            raise PersistError(f"failed to save {message_id}: {e}") from e

    async def history(self, user_id: str, query: str = "") -> List[EnrichmentResult]:
        return await asyncio.to_thread(self.history_sync, user_id, query)
