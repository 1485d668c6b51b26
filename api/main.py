from fastapi import FastAPI, Depends, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from pydantic import BaseModel, Field, ValidationError
from typing import Any, List, Optional, Union
import json
import uuid
import structlog
from db.session import get_db, get_redis, get_session_factory
from services.answer_service import AnswerService, ActivityUserAnswerIn, AnswerLogStatus
from services.play_service import PlayService, PlayScheduledQuizStatus
from services.schedule_service import ScheduleService
from services.status_service import StatusService
from services.survey_service import SurveyService, SurveyLogStatus
from services.trial_service import TrialService, PlayContextIn, PlayContextLogStatus, TrialQuizPlayStatus
from core.config import settings
from core.exceptions import InternalError, InvalidArgumentError, NotFoundError
from core.logger import logger
from utils.validation import parse_id, parse_timestamp

# API Documentation
API_DESCRIPTION = """
## Scheduled Quiz Play API

Decides whether a user may start or continue a scheduled quiz, records the
one-time start of play and logs answers idempotently.

### Authentication

Authentication happens upstream. The gateway forwards the authenticated user
id in the `X-User-Id` header.

### Status codes

Besides the usual 200/400/500, play endpoints answer with 209, 210, 452 and 455
to describe the state of a scheduled quiz. `availablePlayTime` is in microseconds.
"""

TAGS_METADATA = [
    {
        "name": "play",
        "description": "Scheduled quiz status, start of play and trial quizzes.",
    },
    {
        "name": "log",
        "description": "Idempotent logging of answers, surveys and play contexts.",
    },
]

app = FastAPI(
    title="Scheduled Quiz Play API",
    description=API_DESCRIPTION,
    version="1.0.0",
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request.headers.get("X-Request-Id") or uuid.uuid4().hex,
        path=request.url.path,
    )
    response = await call_next(request)
    response.headers.setdefault("Cache-Control", "no-store")
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Pydantic Models with Documentation ===

class PlayScheduledQuizRequest(BaseModel):
    """Request body for starting or continuing a scheduled quiz."""
    scheduledQuizId: Optional[str] = Field(None, description="Scheduled quiz id")
    timestamp: Optional[str] = Field(None, description="Client start time, ISO 8601", examples=["2024-01-03T10:00:00Z"])


class LogActivityUserAnswerRequest(BaseModel):
    activityUserAnswer: Optional[Union[str, dict]] = Field(None, description="Answer document, JSON encoded or inline")


class LogActivityUserAnswersRequest(BaseModel):
    activityUserAnswers: Optional[Union[str, list]] = Field(None, description="List of answer documents, JSON encoded or inline")


class SurveyQuestionAnswer(BaseModel):
    question: str = Field(..., max_length=1000)
    questionType: str
    answer: str
    min: Optional[int] = None
    max: Optional[int] = None
    isMultipleChoice: Optional[bool] = None
    choices: Optional[List[str]] = None


class SurveyAnswerIn(BaseModel):
    scheduledQuiz: str
    answers: List[SurveyQuestionAnswer] = Field(..., min_length=1)


class LogSurveyAnswerRequest(BaseModel):
    surveyAnswer: Optional[Union[str, dict]] = None


class LogPlayContextRequest(BaseModel):
    playContext: Optional[Union[str, dict]] = None


def _reply(status_code: int, **content: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content)


def _decode(model, raw: Union[str, dict]):
    """Validate a JSON-encoded string or an inline object against a model."""
    if isinstance(raw, str):
        return model.model_validate_json(raw)
    return model.model_validate(raw)


def get_current_user(x_user_id: str = Header(None)) -> uuid.UUID:
    try:
        return parse_id(x_user_id, "user id")
    except InvalidArgumentError:
        logger.warning("Auth failed: missing or malformed user id")
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.post(
    "/play/scheduledQuiz",
    tags=["play"],
    summary="Start or continue a scheduled quiz",
    responses={
        200: {"description": "Can start or continue playing"},
        209: {"description": "All activities already answered"},
        210: {"description": "Play window has not opened yet"},
        400: {"description": "Missing or malformed arguments"},
        452: {"description": "Scheduled quiz id invalid or not found"},
        455: {"description": "Play window has closed"},
    },
)
async def play_scheduled_quiz(
    body: PlayScheduledQuizRequest,
    user_id: uuid.UUID = Depends(get_current_user),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    if not body.scheduledQuizId or not body.timestamp:
        logger.warning("Can't play scheduled quiz: missing arguments.")
        return _reply(int(PlayScheduledQuizStatus.MISSING_ARGUMENTS), message="Can't play scheduled quiz: missing arguments.")
    try:
        scheduled_quiz_id = parse_id(body.scheduledQuizId, "scheduledQuizId")
    except InvalidArgumentError:
        logger.warning("Invalid scheduledQuizId for play", scheduled_quiz_id=body.scheduledQuizId)
        return _reply(int(PlayScheduledQuizStatus.INVALID_SCHEDULED_QUIZ_ID), message="Can't play scheduled quiz: specified scheduled quiz id is not the right type.")
    try:
        client_timestamp = parse_timestamp(body.timestamp)
    except InvalidArgumentError:
        return _reply(int(PlayScheduledQuizStatus.MISSING_ARGUMENTS), message="Can't play scheduled quiz: timestamp is not a valid date.")

    service = PlayService(session_factory)
    try:
        result = await service.start_or_continue(scheduled_quiz_id, user_id, client_timestamp)
    except NotFoundError as e:
        return _reply(int(PlayScheduledQuizStatus.INVALID_SCHEDULED_QUIZ_ID), message=f"Can't play scheduled quiz: {e}")
    except InternalError:
        return _reply(int(PlayScheduledQuizStatus.INTERNAL_ERROR), message="Can't play scheduled quiz: internal error occurred.")
    except Exception as e:
        logger.exception("Unhandled error in play_scheduled_quiz", scheduled_quiz_id=str(scheduled_quiz_id), error=str(e))
        return _reply(int(PlayScheduledQuizStatus.INTERNAL_ERROR), message="Can't play scheduled quiz: internal error occurred.")

    return JSONResponse(status_code=int(result.code), content=result.model_dump(by_alias=True, mode="json", exclude_none=True))


@app.get(
    "/play/scheduledQuizzes",
    tags=["play"],
    summary="Status of all scheduled quizzes of the user's courses",
    responses={
        200: {"description": "Statuses keyed by course id, then scheduled quiz id"},
        209: {"description": "The user has no registered courses"},
        429: {"description": "Too many requests. Please wait."},
    },
)
async def check_scheduled_quizzes(
    user_id: uuid.UUID = Depends(get_current_user),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    redis = Depends(get_redis),
):
    # Bulk scans are expensive: fixed window rate limit per user
    rate_key = f"rl:statuses:{user_id}"
    current_count = await redis.get(rate_key)
    if current_count and int(current_count) >= settings.STATUS_SCAN_RATE_LIMIT:
        raise HTTPException(status_code=429, detail="Too many status checks. Please wait a minute.")

    try:
        # Released before the per-quiz evaluations open their own sessions
        async with session_factory() as db:
            courses = await ScheduleService(db).get_user_registered_courses(user_id)
        if not courses:
            return _reply(209, message="Can't check scheduled quiz status: user has no registered courses.")

        statuses = await StatusService(session_factory).evaluate_all([c.id for c in courses], user_id)
    except Exception as e:
        logger.error("Can't check scheduled quiz status", user_id=str(user_id), error=str(e))
        return _reply(500, message="Can't check scheduled quiz status: internal error.")

    await redis.incr(rate_key)
    if not current_count:
        await redis.expire(rate_key, settings.STATUS_SCAN_RATE_WINDOW_SECONDS)

    return _reply(
        200,
        message="Retrieved scheduled quiz statuses.",
        statuses={
            course_id: {sq_id: s.model_dump(by_alias=True, mode="json") for sq_id, s in course_statuses.items()}
            for course_id, course_statuses in statuses.items()
        },
    )


@app.get(
    "/play/scheduledQuiz/{scheduled_quiz_id}/survey",
    tags=["play"],
    summary="Survey status of a scheduled quiz",
    responses={
        200: {"description": "Survey available"},
        209: {"description": "Survey already taken"},
        452: {"description": "Scheduled quiz id invalid or not found"},
        455: {"description": "Survey period over"},
    },
)
async def check_scheduled_quiz_survey_status(
    scheduled_quiz_id: str,
    user_id: uuid.UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        sq_id = parse_id(scheduled_quiz_id, "scheduledQuizId")
        scheduled_quiz = await ScheduleService(db).resolve(sq_id)
    except (InvalidArgumentError, NotFoundError):
        return _reply(452, message="Can't check survey status: specified scheduled quiz could not be found.")

    try:
        survey = await SurveyService(db).status_for(user_id, scheduled_quiz)
    except Exception as e:
        logger.error("Can't check survey status", scheduled_quiz_id=scheduled_quiz_id, error=str(e))
        return _reply(500, message="Can't check survey status: an error occurred.")

    if survey.existing_answer:
        return _reply(209, message="The user has already taken the survey for this scheduled quiz.")
    if survey.questions:
        return _reply(200, message="The user can take a survey for this scheduled quiz.", availableSurveyQuestions=survey.questions)
    return _reply(455, message="The user can no longer take a survey for this scheduled quiz.")


@app.get(
    "/play/trialQuiz/{course_id}",
    tags=["play"],
    summary="Whether the user has played the course's trial quiz",
    responses={
        200: {"description": "Trial quiz played"},
        209: {"description": "Trial quiz not (fully) played"},
        210: {"description": "The course has no trial quiz"},
    },
)
async def check_trial_quiz_play_status(
    course_id: str,
    user_id: uuid.UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        course_uuid = parse_id(course_id, "courseId")
    except InvalidArgumentError:
        logger.error("Invalid courseId for trial quiz check", course_id=course_id)
        return _reply(400, message="Can't check trial quiz play status: missing argument.")

    try:
        status, remaining = await TrialService(db).check_trial_quiz_status(user_id, course_uuid)
    except Exception as e:
        logger.error("Error while checking trial quiz play status", course_id=course_id, error=str(e))
        return _reply(500, message="Failed to check trial quiz play status.")

    if status == TrialQuizPlayStatus.NO_TRIAL_QUIZ:
        return _reply(int(status), message="There is no trial quiz for this course.")
    if status == TrialQuizPlayStatus.PLAYED:
        return _reply(int(status), message="The user has played the trial quiz for this course.")
    if remaining:
        return _reply(int(status), message="The user has not yet fully played the trial quiz for this course.", remainingActivities=remaining)
    return _reply(int(status), message="The user has not yet played the trial quiz for this course.")


@app.post(
    "/play/logActivityUserAnswer",
    tags=["log"],
    summary="Log one activity answer",
    responses={
        200: {"description": "Logged"},
        209: {"description": "Already logged"},
        452: {"description": "Scheduled quiz id invalid or not found"},
        455: {"description": "Answer could not be deserialized"},
    },
)
async def log_activity_user_answer(
    body: LogActivityUserAnswerRequest,
    user_id: uuid.UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.activityUserAnswer:
        logger.warning("Activity answer logging failed: missing arguments.")
        return _reply(400, message="Activity answer logging failed: missing arguments.")
    try:
        answer = _decode(ActivityUserAnswerIn, body.activityUserAnswer)
    except ValidationError as e:
        logger.warning("Failed to parse activityUserAnswer payload", error=str(e))
        return _reply(455, message="Activity answer logging failed: activity user answer could not be deserialized.")

    try:
        status, saved = await AnswerService(db).record(user_id, answer)
    except (InvalidArgumentError, NotFoundError):
        return _reply(452, message="Activity answer logging failed: specified scheduled quiz could not be found.")
    except InternalError:
        return _reply(500, message="Activity answer logging failed: an internal error occurred while saving.")

    if status == AnswerLogStatus.ALREADY_LOGGED:
        return _reply(int(status), message="Failed to save user activity answer: it is already logged.", activityUserAnswer=None)
    return _reply(
        int(status),
        message="The user's activity answer has been logged.",
        activityUserAnswer={
            "id": str(saved.id),
            "activity": saved.activity_id,
            "scheduledQuiz": str(saved.scheduled_quiz_id) if saved.scheduled_quiz_id else None,
            "timestamp": saved.timestamp.isoformat(),
        },
    )


@app.post(
    "/play/logActivityUserAnswers",
    tags=["log"],
    summary="Log several activity answers in one transaction",
    responses={
        200: {"description": "Logged; duplicates reported in alreadyLoggedAnswerTimestamps"},
        452: {"description": "Nothing to log"},
    },
)
async def log_activity_user_answers(
    body: LogActivityUserAnswersRequest,
    user_id: uuid.UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.activityUserAnswers:
        logger.warning("Activity answers logging failed: missing arguments.")
        return _reply(400, message="Activity answers logging failed: missing arguments.")

    raw_answers = body.activityUserAnswers
    if isinstance(raw_answers, str):
        try:
            raw_answers = json.loads(raw_answers)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse activityUserAnswers payload", error=str(e))
            return _reply(400, message="Activity answers logging failed: invalid payload.")

    answers = []
    if isinstance(raw_answers, list):
        for raw in raw_answers:
            try:
                answers.append(ActivityUserAnswerIn.model_validate(raw))
            except ValidationError as e:
                logger.warning("Failed to decode activity user answer", error=str(e))

    if not answers:
        return _reply(452, message="Activity answers logging failed: activity user answers could not be deserialized.")

    try:
        result = await AnswerService(db).record_many(user_id, answers)
    except NotFoundError:
        return _reply(452, message="Activity answers logging failed: no answer refers to a known scheduled quiz.")
    except InternalError:
        return _reply(500, message="Failed to log activity answers.")

    return _reply(
        200,
        message="Activity answers logged.",
        insertedCount=result.inserted_count,
        alreadyLoggedAnswerTimestamps=[ts.isoformat() for ts in result.already_logged_timestamps],
    )


@app.post("/log/surveyAnswer", tags=["log"], summary="Log a survey answer")
async def log_survey_answer(
    body: LogSurveyAnswerRequest,
    user_id: uuid.UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.surveyAnswer:
        logger.warning("Survey answer logging failed: missing survey answer parameter.")
        return _reply(400, message="Survey answer logging failed: missing survey answer parameter.")
    try:
        survey_answer = _decode(SurveyAnswerIn, body.surveyAnswer)
        scheduled_quiz_id = parse_id(survey_answer.scheduledQuiz, "scheduledQuiz")
    except (ValidationError, InvalidArgumentError):
        return _reply(452, message="Survey answer logging failed: survey user answer could not be decoded.")

    try:
        status = await SurveyService(db).log_survey_answer(
            user_id,
            scheduled_quiz_id,
            [a.model_dump(exclude_none=True) for a in survey_answer.answers],
        )
    except NotFoundError:
        return _reply(452, message="Survey answer logging failed: specified scheduled quiz could not be found.")
    except InternalError:
        return _reply(500, message="Survey answer logging failed: failed to store answer.")

    if status == SurveyLogStatus.ALREADY_LOGGED:
        return _reply(int(status), message="Survey answer logging failed: this survey has already been answered by the user.")
    return _reply(int(status), message="Survey answer logged.")


@app.post("/log/playContext", tags=["log"], summary="Log or update a play context")
async def log_play_context(
    body: LogPlayContextRequest,
    user_id: uuid.UUID = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.playContext:
        return _reply(400, message="Play context logging failed: parameter missing.")
    try:
        context = _decode(PlayContextIn, body.playContext)
    except ValidationError:
        return _reply(400, message="Play context logging failed: play context could not be deserialized.")

    try:
        status = await TrialService(db).log_play_context(user_id, context)
    except InternalError:
        return _reply(500, message="Play context logging failed: play context could not be saved/updated.")

    if status == PlayContextLogStatus.UPDATED:
        return _reply(int(status), message="Play context updated.")
    return _reply(int(status), message="Play context logged.")


@app.get("/health", include_in_schema=False)
async def health():
    return {"status": "ok"}
