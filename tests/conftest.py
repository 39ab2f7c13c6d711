from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from egirs.db.database import DataBase
from egirs.db.enums import ActorRole, ResponseType, UnitType
from egirs.db.schemas.actor import ActorRead
from egirs.db.schemas.framework import DimensionRead, IndicatorRead, SubQuestionRead, UnitRead
from egirs.db.schemas.response import ResponseSave
from egirs.db.schemas.submission import SubmissionRead
from egirs.services.approval import ApprovalCoordinator
from egirs.services.events import SubmissionEventBus
from egirs.services.responses import ResponseStore
from egirs.services.scoring import SubjectiveScoringCoordinator
from egirs.services.submission import SubmissionService


class FakeFramework:
    """In-memory assessment framework."""

    def __init__(self) -> None:
        self.dimensions: List[DimensionRead] = []
        self.indicators: List[IndicatorRead] = []
        self.sub_questions: List[SubQuestionRead] = []

    def add_dimension(self, year_id: uuid.UUID, name: str) -> DimensionRead:
        dim = DimensionRead(dimension_id=uuid.uuid4(), assessment_year_id=year_id, dimension_name=name)
        self.dimensions.append(dim)
        return dim

    def add_indicator(self, dimension: DimensionRead, name: str, unit_type: UnitType) -> IndicatorRead:
        ind = IndicatorRead(
            indicator_id=uuid.uuid4(),
            dimension_id=dimension.dimension_id,
            indicator_name=name,
            applicable_unit_type=unit_type,
        )
        self.indicators.append(ind)
        return ind

    def add_sub_question(
        self,
        indicator: IndicatorRead,
        text: str,
        response_type: ResponseType = ResponseType.YES_NO,
        parent: Optional[SubQuestionRead] = None,
    ) -> SubQuestionRead:
        sq = SubQuestionRead(
            sub_question_id=uuid.uuid4(),
            parent_indicator_id=indicator.indicator_id,
            parent_sub_question_id=parent.sub_question_id if parent else None,
            sub_question_text=text,
            response_type=response_type,
        )
        self.sub_questions.append(sq)
        return sq

    async def get_dimensions_by_year(self, assessment_year_id):
        return [d for d in self.dimensions if d.assessment_year_id == assessment_year_id]

    async def get_indicators_by_dimension(self, dimension_id):
        return [i for i in self.indicators if i.dimension_id == dimension_id]

    async def get_sub_questions_by_indicator(self, indicator_id):
        return [sq for sq in self.sub_questions if sq.parent_indicator_id == indicator_id]

    async def get_sub_question_by_id(self, sub_question_id):
        for sq in self.sub_questions:
            if sq.sub_question_id == sub_question_id:
                return sq
        return None


class FakeUnitDirectory:
    def __init__(self) -> None:
        self.units: Dict[uuid.UUID, UnitRead] = {}

    def add(self, name: str, unit_type: UnitType, parent: Optional[UnitRead] = None) -> UnitRead:
        unit = UnitRead(
            unit_id=uuid.uuid4(),
            official_unit_name=name,
            unit_type=unit_type,
            parent_unit_id=parent.unit_id if parent else None,
        )
        self.units[unit.unit_id] = unit
        return unit

    async def get_unit_by_id(self, unit_id):
        return self.units.get(unit_id)

    async def list_units(self):
        return list(self.units.values())


@dataclass
class World:
    year_id: uuid.UUID
    framework: FakeFramework
    units: FakeUnitDirectory
    region: UnitRead
    zone: UnitRead
    woreda: UnitRead
    other_region: UnitRead
    q1: SubQuestionRead
    q2: SubQuestionRead
    q3: SubQuestionRead
    actors: Dict[str, ActorRead] = field(default_factory=dict)


def _actor(role: ActorRole, unit: Optional[UnitRead] = None, name: Optional[str] = None) -> ActorRead:
    return ActorRead(
        user_id=uuid.uuid4(),
        role=role,
        official_unit_id=unit.unit_id if unit else None,
        full_name=name,
    )


@pytest.fixture
def world() -> World:
    """
    A woreda inside a zone inside a region, answering three sub-questions:
    Q1 and Q2 (Yes/No, "Digital Services") and Q3 (free text, "Leadership").
    """
    year_id = uuid.uuid4()
    units = FakeUnitDirectory()
    region = units.add("Amhara Region", UnitType.REGION)
    zone = units.add("North Gondar Zone", UnitType.ZONE, region)
    woreda = units.add("Debark Woreda", UnitType.WOREDA, zone)
    other_region = units.add("Oromia Region", UnitType.REGION)

    fw = FakeFramework()
    digital = fw.add_dimension(year_id, "Digital Services")
    leadership = fw.add_dimension(year_id, "Leadership")
    portal = fw.add_indicator(digital, "Online portal", UnitType.WOREDA)
    strategy = fw.add_indicator(leadership, "ICT strategy", UnitType.WOREDA)
    regional_only = fw.add_indicator(digital, "Regional data center", UnitType.REGION)
    q1 = fw.add_sub_question(portal, "Does the woreda run an online portal?")
    q2 = fw.add_sub_question(portal, "Is the portal available in local languages?", parent=q1)
    q3 = fw.add_sub_question(strategy, "Describe the ICT strategy.", ResponseType.TEXT_EXPLANATION)
    fw.add_sub_question(regional_only, "Does the region operate a data center?")

    w = World(
        year_id=year_id,
        framework=fw,
        units=units,
        region=region,
        zone=zone,
        woreda=woreda,
        other_region=other_region,
        q1=q1,
        q2=q2,
        q3=q3,
    )
    w.actors = {
        "contributor": _actor(ActorRole.DATA_CONTRIBUTOR, woreda, "Abebe Kebede"),
        "other_contributor": _actor(ActorRole.DATA_CONTRIBUTOR, woreda),
        "approver": _actor(ActorRole.REGIONAL_APPROVER, region, "Almaz Tesfaye"),
        "outside_approver": _actor(ActorRole.REGIONAL_APPROVER, other_region),
        "validator": _actor(ActorRole.CENTRAL_COMMITTEE_MEMBER),
        "member_a": _actor(ActorRole.CENTRAL_COMMITTEE_MEMBER),
        "member_b": _actor(ActorRole.CENTRAL_COMMITTEE_MEMBER),
        "member_c": _actor(ActorRole.CENTRAL_COMMITTEE_MEMBER),
        "chairman": _actor(ActorRole.CHAIRMAN),
        "secretary": _actor(ActorRole.SECRETARY),
        "admin": _actor(ActorRole.SUPER_ADMIN),
    }
    return w


@pytest_asyncio.fixture
async def db(tmp_path):
    database = DataBase(f"sqlite+aiosqlite:///{tmp_path / 'egirs.db'}", echo=False)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def events() -> SubmissionEventBus:
    return SubmissionEventBus()


@pytest.fixture
def submissions(db, world, events) -> SubmissionService:
    return SubmissionService(db, world.framework, world.units, events, audit_enabled=False)


@pytest.fixture
def responses(db, world, events) -> ResponseStore:
    return ResponseStore(db, world.framework, world.units, events, enforce_lock=True, audit_enabled=False)


@pytest.fixture
def approval(db, world, events) -> ApprovalCoordinator:
    return ApprovalCoordinator(db, world.framework, world.units, events, audit_enabled=False)


@pytest.fixture
def scoring(db, world, events) -> SubjectiveScoringCoordinator:
    return SubjectiveScoringCoordinator(db, world.framework, world.units, events, audit_enabled=False)


async def _answer(store: ResponseStore, submission: SubmissionRead, actor: ActorRead, sub_question, value: str):
    return await store.save_response(
        ResponseSave(submission_id=submission.id, sub_question_id=sub_question.sub_question_id, response_value=value),
        actor,
    )


@pytest.fixture
def answer(responses):
    """Save one answer: ``await answer(submission, actor, sub_question, value)``."""

    async def _save(submission, actor, sub_question, value):
        return await _answer(responses, submission, actor, sub_question, value)

    return _save


@pytest_asyncio.fixture
async def draft(submissions, world) -> SubmissionRead:
    return await submissions.get_or_create_draft_submission(
        world.woreda.unit_id, world.year_id, world.actors["contributor"], "Debark 2024"
    )


@pytest_asyncio.fixture
async def pending_initial(submissions, responses, world, draft) -> SubmissionRead:
    contributor = world.actors["contributor"]
    await _answer(responses, draft, contributor, world.q1, "Yes")
    await _answer(responses, draft, contributor, world.q2, "No")
    await _answer(responses, draft, contributor, world.q3, "A five year ICT roadmap owned by the administrator.")
    return await submissions.submit_for_approval(draft.id, contributor)


@pytest.fixture
def response_for(responses):
    async def _get(submission, sub_question):
        return await responses.get_response_by_sub_question(submission.id, sub_question.sub_question_id)

    return _get


@pytest_asyncio.fixture
async def pending_central(approval, responses, world, pending_initial) -> SubmissionRead:
    approver = world.actors["approver"]
    await approval.approve_all_answered(pending_initial.id, approver)
    return await approval.submit_regional_approval(pending_initial.id, approver)


@pytest_asyncio.fixture
async def validated(approval, responses, world, pending_central) -> SubmissionRead:
    validator = world.actors["validator"]
    for r in await responses.get_responses_by_submission(pending_central.id):
        await approval.validate_response(r.id, validator, "Approved")
    return await approval.submit_central_validation(pending_central.id, validator)
