import uuid

import pytest
from pydantic import ValidationError
from sqlalchemy import select

from conftest import answer_doc
from core.exceptions import InternalError, NotFoundError
from models.play_context import PlayContext
from services.answer_service import AnswerService, ActivityUserAnswerIn
from services.trial_service import (
    PlayContextIn,
    PlayContextLogStatus,
    TrialQuizPlayStatus,
    TrialService,
)


def _context(course_id, context_id="ctx-1", activities=("t1", "t2"), **extra):
    return PlayContextIn.model_validate({
        "contextId": context_id,
        "playType": "trialQuiz",
        "activities": list(activities),
        "course": str(course_id),
        **extra,
    })


async def _log_context(session_factory, user_id, context):
    async with session_factory() as db:
        return await TrialService(db).log_play_context(user_id, context)


async def _trial_status(session_factory, user_id, course_id):
    async with session_factory() as db:
        return await TrialService(db).check_trial_quiz_status(user_id, course_id)


async def _answer(session_factory, user_id, activity, context_id, timestamp):
    async with session_factory() as db:
        answer = ActivityUserAnswerIn.model_validate(answer_doc(activity=activity, playContextId=context_id, timestamp=timestamp))
        await AnswerService(db).record(user_id, answer)


def test_play_type_must_be_known():
    with pytest.raises(ValidationError):
        PlayContextIn.model_validate({"contextId": "ctx", "playType": "speedrun"})


async def test_play_context_logged_then_updated(session_factory, user_id):
    course_id = uuid.uuid4()

    first = await _log_context(session_factory, user_id, _context(course_id))
    second = await _log_context(session_factory, user_id, _context(course_id, activities=("t1", "t2", "t3"), logAnswers=False))

    assert first == PlayContextLogStatus.LOGGED
    assert second == PlayContextLogStatus.UPDATED
    async with session_factory() as db:
        stored = (await db.execute(select(PlayContext).filter(PlayContext.context_id == "ctx-1"))).scalar_one()
    assert stored.activity_ids == ["t1", "t2", "t3"]
    assert stored.log_answers is False


async def test_play_context_of_another_user_not_overwritten(session_factory, user_id):
    course_id = uuid.uuid4()
    await _log_context(session_factory, user_id, _context(course_id))

    with pytest.raises(InternalError):
        await _log_context(session_factory, uuid.uuid4(), _context(course_id))


async def test_course_without_trial_quiz(seed, session_factory, user_id):
    owner = await seed.course()

    status, remaining = await _trial_status(session_factory, user_id, owner.course.id)

    assert status == TrialQuizPlayStatus.NO_TRIAL_QUIZ
    assert remaining == []


async def test_trial_quiz_never_played(seed, session_factory, user_id):
    owner = await seed.course(trial_activities=["t1", "t2"])

    status, _ = await _trial_status(session_factory, user_id, owner.course.id)

    assert status == TrialQuizPlayStatus.NOT_PLAYED


async def test_trial_quiz_partially_then_fully_played(seed, session_factory, user_id):
    owner = await seed.course(trial_activities=["t1", "t2"])
    await _log_context(session_factory, user_id, _context(owner.course.id))
    await _answer(session_factory, user_id, "t1", "ctx-1", "2024-01-03T10:00:00Z")

    partial, remaining = await _trial_status(session_factory, user_id, owner.course.id)
    await _answer(session_factory, user_id, "t2", "ctx-1", "2024-01-03T10:01:00Z")
    played, _ = await _trial_status(session_factory, user_id, owner.course.id)

    assert partial == TrialQuizPlayStatus.NOT_PLAYED
    assert remaining == ["t2"]
    assert played == TrialQuizPlayStatus.PLAYED


async def test_unknown_course(session_factory, user_id):
    with pytest.raises(NotFoundError):
        await _trial_status(session_factory, user_id, uuid.uuid4())
