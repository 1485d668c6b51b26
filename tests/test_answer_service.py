import asyncio
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from conftest import answer_doc
from core.exceptions import InternalError, InvalidArgumentError, NotFoundError
from models.answer import ActivityUserAnswer
from services.answer_service import AnswerService, ActivityUserAnswerIn, AnswerLogStatus


async def _stored(session_factory, user_id):
    async with session_factory() as db:
        result = await db.execute(select(func.count(ActivityUserAnswer.id)).filter(ActivityUserAnswer.user_id == user_id))
        return result.scalar_one()


def _answer(**kwargs):
    return ActivityUserAnswerIn.model_validate(answer_doc(**kwargs))


class TestRecord:
    async def test_logs_then_reports_already_logged(self, seed, db, session_factory, user_id):
        sq = await seed.scheduled_quiz()
        service = AnswerService(db)

        first, saved = await service.record(user_id, _answer(scheduled_quiz=sq.id))
        again, none = await service.record(user_id, _answer(scheduled_quiz=sq.id))

        assert first == AnswerLogStatus.LOGGED
        assert saved.activity_id == "a1"
        assert saved.id is not None
        assert again == AnswerLogStatus.ALREADY_LOGGED
        assert none is None
        assert await _stored(session_factory, user_id) == 1

    async def test_one_answer_per_activity_within_scheduled_quiz(self, seed, db, session_factory, user_id):
        sq = await seed.scheduled_quiz()
        service = AnswerService(db)

        await service.record(user_id, _answer(scheduled_quiz=sq.id, timestamp="2024-01-03T10:05:00Z"))
        status, _ = await service.record(user_id, _answer(scheduled_quiz=sq.id, timestamp="2024-01-03T10:06:00Z"))

        assert status == AnswerLogStatus.ALREADY_LOGGED
        assert await _stored(session_factory, user_id) == 1

    async def test_practice_answers_keyed_by_timestamp(self, db, session_factory, user_id):
        service = AnswerService(db)

        await service.record(user_id, _answer(timestamp="2024-01-03T10:05:00Z"))
        status, _ = await service.record(user_id, _answer(timestamp="2024-01-03T10:06:00Z"))

        assert status == AnswerLogStatus.LOGGED
        assert await _stored(session_factory, user_id) == 2

    async def test_type_specific_fields_kept_as_payload(self, db, user_id):
        answer = _answer(choices=[{"text": "42", "isCorrect": True}], user="someone-else")

        _, saved = await AnswerService(db).record(user_id, answer)

        assert saved.payload == {"choices": [{"text": "42", "isCorrect": True}]}
        assert saved.user_id == user_id

    async def test_returned_answer_readable_after_duplicate_rollback(self, seed, db, user_id):
        sq = await seed.scheduled_quiz()
        service = AnswerService(db)

        _, saved = await service.record(user_id, _answer(activity="a3", scheduled_quiz=sq.id))
        await service.record(user_id, _answer(activity="a3", scheduled_quiz=sq.id))

        assert saved.activity_id == "a3"
        assert saved.scheduled_quiz_id == sq.id

    async def test_concurrent_resubmissions_store_one_answer(self, seed, session_factory, user_id):
        sq = await seed.scheduled_quiz()

        async def submit():
            async with session_factory() as db:
                status, _ = await AnswerService(db).record(user_id, _answer(scheduled_quiz=sq.id))
                return status

        statuses = await asyncio.gather(*(submit() for _ in range(6)))

        assert sorted(statuses) == [AnswerLogStatus.LOGGED] + [AnswerLogStatus.ALREADY_LOGGED] * 5
        assert await _stored(session_factory, user_id) == 1

    async def test_malformed_scheduled_quiz_id(self, db, user_id):
        with pytest.raises(InvalidArgumentError):
            await AnswerService(db).record(user_id, _answer(scheduled_quiz="not-an-id"))

    async def test_unknown_scheduled_quiz(self, db, user_id):
        with pytest.raises(NotFoundError):
            await AnswerService(db).record(user_id, _answer(scheduled_quiz=uuid.uuid4()))


class TestRecordMany:
    async def test_duplicates_do_not_block_siblings(self, seed, db, session_factory, user_id):
        sq = await seed.scheduled_quiz()
        await AnswerService(db).record(user_id, _answer(activity="a2", scheduled_quiz=sq.id, timestamp="2024-01-03T10:06:00Z"))

        async with session_factory() as batch_db:
            result = await AnswerService(batch_db).record_many(user_id, [
                _answer(activity="a1", scheduled_quiz=sq.id, timestamp="2024-01-03T10:05:00Z"),
                _answer(activity="a2", scheduled_quiz=sq.id, timestamp="2024-01-03T10:06:00Z"),
                _answer(activity="a3", scheduled_quiz=sq.id, timestamp="2024-01-03T10:07:00Z"),
            ])

        assert result.inserted_count == 2
        assert result.already_logged_timestamps == [datetime(2024, 1, 3, 10, 6, tzinfo=timezone.utc)]
        assert await _stored(session_factory, user_id) == 3

    async def test_answers_for_unknown_quizzes_skipped(self, seed, db, user_id):
        sq = await seed.scheduled_quiz()

        result = await AnswerService(db).record_many(user_id, [
            _answer(activity="a1", scheduled_quiz=sq.id),
            _answer(activity="a2", scheduled_quiz=uuid.uuid4()),
            _answer(activity="a3", scheduled_quiz="garbage"),
        ])

        assert result.inserted_count == 1
        assert result.skipped_count == 2

    async def test_storage_failure_rolls_back_whole_batch(self, seed, session_factory, user_id, monkeypatch):
        sq = await seed.scheduled_quiz()

        async with session_factory() as batch_db:
            real_flush = batch_db.sync_session.flush
            calls = []

            def flaky_flush(*args, **kwargs):
                calls.append(1)
                if len(calls) == 3:
                    raise OperationalError("INSERT INTO activity_user_answers", {}, Exception("disk I/O error"))
                return real_flush(*args, **kwargs)

            monkeypatch.setattr(batch_db.sync_session, "flush", flaky_flush)

            with pytest.raises(InternalError):
                await AnswerService(batch_db).record_many(user_id, [
                    _answer(activity="a1", scheduled_quiz=sq.id, timestamp="2024-01-03T10:05:00Z"),
                    _answer(activity="a2", scheduled_quiz=sq.id, timestamp="2024-01-03T10:06:00Z"),
                    _answer(activity="a3", scheduled_quiz=sq.id, timestamp="2024-01-03T10:07:00Z"),
                ])

        assert await _stored(session_factory, user_id) == 0

    async def test_nothing_to_log(self, db, user_id):
        with pytest.raises(NotFoundError):
            await AnswerService(db).record_many(user_id, [_answer(scheduled_quiz=uuid.uuid4())])
