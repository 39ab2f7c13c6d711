from __future__ import annotations

import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from egirs.db.enums import SubmissionStatus
from egirs.db.schemas.submission import SubmissionCreate, SubmissionUpdate


def _create(world) -> SubmissionCreate:
    return SubmissionCreate(
        unit_id=world.woreda.unit_id,
        assessment_year_id=world.year_id,
        contributor_user_id=world.actors["contributor"].user_id,
        submission_name="Debark 2024",
    )


@pytest.mark.asyncio
async def test_partial_update_leaves_missing_fields(db, world) -> None:
    created = await db.create_submission(_create(world))
    assert created.status == SubmissionStatus.DRAFT

    updated = await db.update_submission(SubmissionUpdate(id=created.id, rejection_reason="Missing evidence"))
    assert updated.rejection_reason == "Missing evidence"
    assert updated.submission_name == "Debark 2024"
    assert updated.status == SubmissionStatus.DRAFT

    cleared = await db.update_submission(SubmissionUpdate(id=created.id, rejection_reason=None))
    assert cleared.rejection_reason is None


@pytest.mark.asyncio
async def test_update_unknown_submission(db) -> None:
    with pytest.raises(LookupError):
        await db.update_submission(SubmissionUpdate(id=uuid.uuid4(), submission_name="x"))


@pytest.mark.asyncio
async def test_open_submission_ignores_completed(db, world) -> None:
    created = await db.create_submission(_create(world))
    key = (world.woreda.unit_id, world.year_id, world.actors["contributor"].user_id)
    assert (await db.find_open_submission(*key)).id == created.id

    await db.update_submission(SubmissionUpdate(id=created.id, status=SubmissionStatus.SCORING_COMPLETE))
    assert await db.find_open_submission(*key) is None


@pytest.mark.asyncio
async def test_one_open_submission_per_owner(db, world) -> None:
    first = await db.create_submission(_create(world))
    with pytest.raises(IntegrityError):
        await db.create_submission(_create(world))

    await db.update_submission(SubmissionUpdate(id=first.id, status=SubmissionStatus.SCORING_COMPLETE))
    second = await db.create_submission(_create(world))
    assert second.id != first.id
    assert second.status == SubmissionStatus.DRAFT


@pytest.mark.asyncio
async def test_chairman_record_is_one_per_member(db, world) -> None:
    created = await db.create_submission(_create(world))
    member = world.actors["member_a"].user_id

    first = await db.record_chairman_scoring_submission(created.id, member)
    second = await db.record_chairman_scoring_submission(created.id, member)

    assert first.id == second.id
    assert second.submitted_at >= first.submitted_at
    assert len(await db.list_chairman_scoring_submissions(created.id)) == 1
    assert await db.submission_ids_with_chairman_records() == {created.id}
