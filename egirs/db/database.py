# db/database.py
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Iterable, List, Dict

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.exc import IntegrityError

from egirs.config import Settings
from egirs.db.models._base import Base
from egirs.db.models.submission import Submission
from egirs.db.models.response import Response
from egirs.db.models.subjective_score import SubjectiveScore
from egirs.db.models.chairman_scoring_submission import ChairmanScoringSubmission
from egirs.db.models.audit_log import AuditLog
from egirs.db.schemas.submission import SubmissionCreate, SubmissionRead, SubmissionUpdate
from egirs.db.schemas.response import ResponseSave, ResponseRead, ResponseReviewUpdate
from egirs.db.schemas.scoring import SubjectiveScoreCreate, SubjectiveScoreRead, ChairmanScoringSubmissionRead
from egirs.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from egirs.db.enums import SubmissionStatus
from egirs.utils.clock import utcnow
from egirs.utils.sentinels import provided_items


class DataBase():
    """
    Async SQLAlchemy store handle.

    Every workflow service receives one explicitly; nothing is cached between calls, so
    every accessor returns a fresh read.

    Usage:
        db = DataBase("postgresql+asyncpg://...")
        async with db.session() as s:
            sub = await db.get_submission_by_id(sub_id, session=s, for_update=True)
            ...

    Domain methods take an optional keyword ``session``. When given, the call joins the
    caller's transaction (commit/rollback belongs to the caller); otherwise the method
    opens and commits its own session.
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None) -> None:
        settings = Settings()
        url = url or settings.database_url
        echo = settings.db_echo if echo is None else echo
        self._engine: AsyncEngine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self._sessionmaker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self._engine,
            expire_on_commit=False,
            autoflush=False,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Provides an AsyncSession with safe commit/rollback semantics.
        """
        session: AsyncSession = self._sessionmaker()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @asynccontextmanager
    async def _use(self, session: Optional[AsyncSession]) -> AsyncIterator[AsyncSession]:
        if session is not None:
            yield session
            return
        async with self.session() as s:
            yield s

    # --- schema management helpers (optional) ---

    async def create_all(self) -> None:
        """
        Create tables based on Base metadata. Use only in dev/tests; prefer Alembic in prod.
        """
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    # ---------- Submission: reads ----------

    async def _load_submission(self, s: AsyncSession, sub_id: uuid.UUID, for_update: bool = False) -> Optional[Submission]:
        if for_update:
            return await s.get(Submission, sub_id, with_for_update=True, populate_existing=True)
        return await s.get(Submission, sub_id)

    async def get_submission_by_id(
        self,
        sub_id: uuid.UUID,
        *,
        session: Optional[AsyncSession] = None,
        for_update: bool = False,
    ) -> Optional[SubmissionRead]:
        """
        Fetch a single submission by id.

        ``for_update`` takes a row lock (``SELECT ... FOR UPDATE``) that serialises every
        workflow mutation on the same submission until the surrounding transaction ends.
        SQLite silently ignores the lock.
        """
        if not sub_id:
            return None
        async with self._use(session) as s:
            db_obj = await self._load_submission(s, sub_id, for_update)
            return SubmissionRead.model_validate(db_obj) if db_obj else None

    async def find_open_submission(
        self,
        unit_id: uuid.UUID,
        assessment_year_id: uuid.UUID,
        contributor_user_id: uuid.UUID,
        *,
        session: Optional[AsyncSession] = None,
    ) -> Optional[SubmissionRead]:
        """
        Return the most recent non-terminal submission of a (unit, year, contributor) triple.
        """
        async with self._use(session) as s:
            stmt = (
                select(Submission)
                .where(
                    Submission.unit_id == unit_id,
                    Submission.assessment_year_id == assessment_year_id,
                    Submission.contributor_user_id == contributor_user_id,
                    Submission.status != SubmissionStatus.SCORING_COMPLETE,
                )
                .order_by(Submission.created_at.desc())
                .limit(1)
            )
            row = (await s.execute(stmt)).scalar_one_or_none()
            return SubmissionRead.model_validate(row) if row is not None else None

    async def list_submissions(
        self,
        *,
        statuses: Iterable[SubmissionStatus] | None = None,
        unit_id: uuid.UUID | None = None,
        contributor_user_id: uuid.UUID | None = None,
        session: Optional[AsyncSession] = None,
    ) -> list[SubmissionRead]:
        """
        Submissions filtered by status / unit / contributor, most recently updated first.
        """
        async with self._use(session) as s:
            stmt = select(Submission).order_by(Submission.updated_at.desc(), Submission.id.desc())
            if statuses is not None:
                stmt = stmt.where(Submission.status.in_(list(statuses)))
            if unit_id is not None:
                stmt = stmt.where(Submission.unit_id == unit_id)
            if contributor_user_id is not None:
                stmt = stmt.where(Submission.contributor_user_id == contributor_user_id)
            rows: List[Submission] = (await s.execute(stmt)).scalars().all()
        return [SubmissionRead.model_validate(r) for r in rows]

    # ---------- Submission: writes ----------

    async def create_submission(self, data: SubmissionCreate, *, session: Optional[AsyncSession] = None) -> SubmissionRead:
        """
        Insert a new submission row in ``Draft``.
        """
        now = utcnow()
        async with self._use(session) as s:
            db_obj = Submission(
                unit_id=data.unit_id,
                assessment_year_id=data.assessment_year_id,
                contributor_user_id=data.contributor_user_id,
                submission_name=data.submission_name,
                status=SubmissionStatus.DRAFT,
                created_at=now,
                updated_at=now,
            )
            s.add(db_obj)
            try:
                await s.flush()
            except IntegrityError:
                raise
            await s.refresh(db_obj)
            return SubmissionRead.model_validate(db_obj)

    async def update_submission(self, data: SubmissionUpdate, *, session: Optional[AsyncSession] = None) -> SubmissionRead:
        """
        Partially update a submission by id; ``updated_at`` is always bumped.
        """
        async with self._use(session) as s:
            db_obj = await s.get(Submission, data.id)
            if db_obj is None:
                raise LookupError("Submission not found.")

            for field, value in provided_items(data):
                setattr(db_obj, field, value)
            db_obj.updated_at = utcnow()

            await s.flush()
            return SubmissionRead.model_validate(db_obj)

    # ---------- Response: reads ----------

    async def get_response_by_id(self, response_id: uuid.UUID, *, session: Optional[AsyncSession] = None) -> Optional[ResponseRead]:
        if not response_id:
            return None
        async with self._use(session) as s:
            db_obj = await s.get(Response, response_id)
            return ResponseRead.model_validate(db_obj) if db_obj else None

    async def get_response_by_sub_question(
        self,
        submission_id: uuid.UUID,
        sub_question_id: uuid.UUID,
        *,
        session: Optional[AsyncSession] = None,
    ) -> Optional[ResponseRead]:
        async with self._use(session) as s:
            stmt = select(Response).where(
                Response.submission_id == submission_id,
                Response.sub_question_id == sub_question_id,
            )
            row = (await s.execute(stmt)).scalar_one_or_none()
            return ResponseRead.model_validate(row) if row is not None else None

    async def list_responses_by_submission(
        self,
        submission_id: uuid.UUID,
        *,
        session: Optional[AsyncSession] = None,
    ) -> list[ResponseRead]:
        """
        All responses of a submission. Order is not significant; callers sort against
        the sub-question tree.
        """
        if not submission_id:
            return []
        async with self._use(session) as s:
            stmt = select(Response).where(Response.submission_id == submission_id)
            rows: List[Response] = (await s.execute(stmt)).scalars().all()
        return [ResponseRead.model_validate(r) for r in rows]

    # ---------- Response: writes ----------

    async def upsert_response(self, data: ResponseSave, *, session: Optional[AsyncSession] = None) -> ResponseRead:
        """
        Insert or overwrite the answer for (submission_id, sub_question_id).

        Only the answer columns are written; stage annotations keep their values. An empty
        ``response_value`` is a valid overwrite that clears a previous answer.
        """
        now = utcnow()
        async with self._use(session) as s:
            stmt = select(Response).where(
                Response.submission_id == data.submission_id,
                Response.sub_question_id == data.sub_question_id,
            )
            db_obj = (await s.execute(stmt)).scalar_one_or_none()
            if db_obj is None:
                db_obj = Response(
                    submission_id=data.submission_id,
                    sub_question_id=data.sub_question_id,
                    created_at=now,
                )
                s.add(db_obj)

            db_obj.response_value = data.response_value or ""
            db_obj.evidence_link = data.evidence_link or None
            db_obj.evidence_file_path = data.evidence_file_path or None
            db_obj.answered_at = now
            db_obj.updated_at = now

            parent = await s.get(Submission, data.submission_id)
            if parent is not None:
                parent.updated_at = now

            try:
                await s.flush()
            except IntegrityError:
                raise
            await s.refresh(db_obj)
            return ResponseRead.model_validate(db_obj)

    async def update_response_review(
        self,
        data: ResponseReviewUpdate,
        *,
        session: Optional[AsyncSession] = None,
    ) -> ResponseRead:
        """Partially update the stage annotations of a response by id."""
        async with self._use(session) as s:
            db_obj = await s.get(Response, data.id)
            if db_obj is None:
                raise LookupError("Response not found.")

            for field, value in provided_items(data):
                setattr(db_obj, field, value)
            db_obj.updated_at = utcnow()

            await s.flush()
            return ResponseRead.model_validate(db_obj)

    # ---------- Subjective scores ----------

    async def upsert_subjective_score(
        self,
        data: SubjectiveScoreCreate,
        *,
        session: Optional[AsyncSession] = None,
    ) -> SubjectiveScoreRead:
        """
        Insert or overwrite the score of one committee member for one response.
        Rows of other members are never touched.
        """
        now = utcnow()
        async with self._use(session) as s:
            stmt = select(SubjectiveScore).where(
                SubjectiveScore.response_id == data.response_id,
                SubjectiveScore.committee_member_id == data.committee_member_id,
            )
            db_obj = (await s.execute(stmt)).scalar_one_or_none()
            if db_obj is None:
                db_obj = SubjectiveScore(
                    response_id=data.response_id,
                    committee_member_id=data.committee_member_id,
                    created_at=now,
                )
                s.add(db_obj)
            db_obj.assigned_score = data.assigned_score
            db_obj.updated_at = now

            try:
                await s.flush()
            except IntegrityError:
                raise
            await s.refresh(db_obj)
            return SubjectiveScoreRead.model_validate(db_obj)

    async def list_scores_by_response(
        self,
        response_id: uuid.UUID,
        *,
        session: Optional[AsyncSession] = None,
    ) -> list[SubjectiveScoreRead]:
        if not response_id:
            return []
        async with self._use(session) as s:
            stmt = (
                select(SubjectiveScore)
                .where(SubjectiveScore.response_id == response_id)
                .order_by(SubjectiveScore.created_at.asc())
            )
            rows = (await s.execute(stmt)).scalars().all()
        return [SubjectiveScoreRead.model_validate(r) for r in rows]

    async def bulk_scores_by_response(
        self,
        response_ids: list[uuid.UUID],
        *,
        session: Optional[AsyncSession] = None,
    ) -> dict[uuid.UUID, list[SubjectiveScoreRead]]:
        """
        For many response ids return {response_id: [score, ...]} in one round trip.
        """
        mapping: Dict[uuid.UUID, list[SubjectiveScoreRead]] = {rid: [] for rid in response_ids if rid}
        if not mapping:
            return mapping
        async with self._use(session) as s:
            stmt = select(SubjectiveScore).where(SubjectiveScore.response_id.in_(list(mapping.keys())))
            for row in (await s.execute(stmt)).scalars().all():
                mapping[row.response_id].append(SubjectiveScoreRead.model_validate(row))
        return mapping

    # ---------- Chairman scoring records ----------

    async def record_chairman_scoring_submission(
        self,
        submission_id: uuid.UUID,
        committee_member_id: uuid.UUID,
        *,
        session: Optional[AsyncSession] = None,
    ) -> ChairmanScoringSubmissionRead:
        """
        Record that a member handed their scoring to the chairman. One row per member;
        a repeated call refreshes ``submitted_at``.
        """
        async with self._use(session) as s:
            stmt = select(ChairmanScoringSubmission).where(
                ChairmanScoringSubmission.submission_id == submission_id,
                ChairmanScoringSubmission.committee_member_id == committee_member_id,
            )
            db_obj = (await s.execute(stmt)).scalar_one_or_none()
            if db_obj is None:
                db_obj = ChairmanScoringSubmission(
                    submission_id=submission_id,
                    committee_member_id=committee_member_id,
                )
                s.add(db_obj)
            db_obj.submitted_at = utcnow()
            await s.flush()
            await s.refresh(db_obj)
            return ChairmanScoringSubmissionRead.model_validate(db_obj)

    async def list_chairman_scoring_submissions(
        self,
        submission_id: uuid.UUID,
        *,
        session: Optional[AsyncSession] = None,
    ) -> list[ChairmanScoringSubmissionRead]:
        async with self._use(session) as s:
            stmt = (
                select(ChairmanScoringSubmission)
                .where(ChairmanScoringSubmission.submission_id == submission_id)
                .order_by(ChairmanScoringSubmission.submitted_at.asc())
            )
            rows = (await s.execute(stmt)).scalars().all()
        return [ChairmanScoringSubmissionRead.model_validate(r) for r in rows]

    async def submission_ids_with_chairman_records(self, *, session: Optional[AsyncSession] = None) -> set[uuid.UUID]:
        async with self._use(session) as s:
            stmt = select(ChairmanScoringSubmission.submission_id).distinct()
            return set((await s.execute(stmt)).scalars().all())

    # ---------------------------------
    # Audit log helpers
    # ---------------------------------

    async def create_audit_log(self, payload: AuditLogCreate) -> AuditLogRead:
        """Persist a new audit log entry."""
        async with self.session() as s:
            record = AuditLog(
                actor_id=payload.actor_id,
                action=payload.action,
                payload=dict(payload.payload or {}),
            )
            s.add(record)
            await s.flush()
            await s.refresh(record)
            return AuditLogRead.model_validate(record)

    async def list_audit_logs(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        actor_id: uuid.UUID | None = None,
        action: str | None = None,
    ) -> tuple[list[AuditLogRead], int]:
        """Return paginated audit log entries filtered by actor/action."""
        limit = max(0, int(limit))
        offset = max(0, int(offset))

        async with self.session() as s:
            stmt = select(AuditLog).order_by(AuditLog.created_at.desc())
            count_stmt = select(func.count(AuditLog.id))
            if actor_id:
                stmt = stmt.where(AuditLog.actor_id == actor_id)
                count_stmt = count_stmt.where(AuditLog.actor_id == actor_id)
            if action:
                stmt = stmt.where(AuditLog.action == action)
                count_stmt = count_stmt.where(AuditLog.action == action)

            if limit:
                stmt = stmt.limit(limit)
            if offset:
                stmt = stmt.offset(offset)

            rows = (await s.execute(stmt)).scalars().all()
            total = int((await s.execute(count_stmt)).scalar_one())

        return [AuditLogRead.model_validate(row) for row in rows], total
