"""
Study session state machine.

A session moves through ``loading -> active(i) -> submitted(i) -> active(i+1)
-> ... -> finished``. The whole quiz state is one immutable ``StudyState``
value, and ``reduce`` computes the next state from an action.
``StudySessionService`` wraps the reducer with the storage writes that follow
each transition.
"""

import random
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import NamedTuple

from sqlalchemy.exc import SQLAlchemyError

from quizdeck.database import Database, DeckDAO, StudySessionDAO, UserProgressDAO
from quizdeck.logging_config import get_logger
from quizdeck.schemas import (
    QuestionReview,
    QuestionWithAnswers,
    StudyAnswerView,
    StudyQuestionView,
    StudyResults,
    StudyStateResponse,
)
from quizdeck.scoring import calculate_score, format_study_time

logger = get_logger("quizdeck.study")


class Phase(Enum):
    """Phases of a study session."""

    LOADING = "loading"
    ACTIVE = "active"
    SUBMITTED = "submitted"
    FINISHED = "finished"


class InvalidTransition(Exception):
    """The action is not allowed in the session's current phase."""


class StudyAnswer(NamedTuple):
    id: str
    text: str
    is_correct: bool


class StudyQuestion(NamedTuple):
    id: str
    text: str
    answers: tuple[StudyAnswer, ...]

    @classmethod
    def from_schema(cls, question: QuestionWithAnswers) -> "StudyQuestion":
        return cls(
            id=question.id,
            text=question.question_text,
            answers=tuple(StudyAnswer(a.id, a.answer_text, a.is_correct) for a in question.answers),
        )

    def find_answer(self, answer_id: str) -> StudyAnswer | None:
        return next((a for a in self.answers if a.id == answer_id), None)


class AnswerRecord(NamedTuple):
    answer_id: str
    is_correct: bool


@dataclass(frozen=True)
class StudyState:
    """Complete, immutable state of one study session."""

    deck_id: str
    user_id: str
    phase: Phase = Phase.LOADING
    session_id: str | None = None
    questions: tuple[StudyQuestion, ...] = ()
    index: int = 0
    selected_answer_id: str | None = None
    questions_answered: int = 0
    questions_correct: int = 0
    answers: Mapping[str, AnswerRecord] = field(default_factory=lambda: MappingProxyType({}))
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def current_question(self) -> StudyQuestion | None:
        if self.phase in (Phase.ACTIVE, Phase.SUBMITTED):
            return self.questions[self.index]
        return None

    @property
    def is_last_question(self) -> bool:
        return self.index >= len(self.questions) - 1

    @property
    def score(self) -> int:
        return calculate_score(self.questions_correct, self.questions_answered)


# Actions
class Loaded(NamedTuple):
    session_id: str
    questions: tuple[StudyQuestion, ...]
    start_time: datetime


class SelectAnswer(NamedTuple):
    answer_id: str


class SubmitAnswer(NamedTuple):
    pass


class Advance(NamedTuple):
    at: datetime


Action = Loaded | SelectAnswer | SubmitAnswer | Advance


def reduce(state: StudyState, action: Action) -> StudyState:
    """Return the state that follows ``action``; the input is never modified."""
    match action:
        case Loaded(session_id=session_id, questions=questions, start_time=start_time):
            _expect(state, Phase.LOADING, action)
            if not questions:
                raise InvalidTransition("No questions in deck")
            return replace(
                state,
                phase=Phase.ACTIVE,
                session_id=session_id,
                questions=tuple(questions),
                index=0,
                start_time=start_time,
            )

        case SelectAnswer(answer_id=answer_id):
            _expect(state, Phase.ACTIVE, action)
            if state.current_question.find_answer(answer_id) is None:
                raise InvalidTransition("Answer does not belong to the current question")
            return replace(state, selected_answer_id=answer_id)

        case SubmitAnswer():
            _expect(state, Phase.ACTIVE, action)
            if state.selected_answer_id is None:
                raise InvalidTransition("Select an answer before submitting")
            question = state.current_question
            is_correct = question.find_answer(state.selected_answer_id).is_correct
            answers = dict(state.answers)
            answers[question.id] = AnswerRecord(state.selected_answer_id, is_correct)
            return replace(
                state,
                phase=Phase.SUBMITTED,
                questions_answered=state.questions_answered + 1,
                questions_correct=state.questions_correct + (1 if is_correct else 0),
                answers=MappingProxyType(answers),
            )

        case Advance(at=at):
            _expect(state, Phase.SUBMITTED, action)
            if state.is_last_question:
                return replace(state, phase=Phase.FINISHED, selected_answer_id=None, end_time=at)
            return replace(
                state, phase=Phase.ACTIVE, index=state.index + 1, selected_answer_id=None
            )

    raise InvalidTransition(f"Unknown action {action!r}")


def _expect(state: StudyState, phase: Phase, action: Action) -> None:
    if state.phase is not phase:
        raise InvalidTransition(
            f"Cannot {type(action).__name__} while session is {state.phase.value}"
        )


def shuffle_questions(
    questions: list[StudyQuestion], rng: random.Random | None = None
) -> tuple[StudyQuestion, ...]:
    """Shuffle once per session; the order is kept for the whole session."""
    shuffled = list(questions)
    (rng or random).shuffle(shuffled)
    return tuple(shuffled)


# Views
def to_state_response(state: StudyState) -> StudyStateResponse:
    """Snapshot for the client; correctness stays hidden until the answer is submitted."""
    question = state.current_question
    question_view = None
    last_answer_correct = None
    if question is not None:
        revealed = state.phase is Phase.SUBMITTED
        question_view = StudyQuestionView(
            id=question.id,
            question_text=question.text,
            answers=[
                StudyAnswerView(
                    id=a.id, answer_text=a.text, is_correct=a.is_correct if revealed else None
                )
                for a in question.answers
            ],
        )
        if revealed:
            last_answer_correct = state.answers[question.id].is_correct

    return StudyStateResponse(
        session_id=state.session_id,
        deck_id=state.deck_id,
        phase=state.phase.value,
        question_number=min(state.index + 1, len(state.questions)),
        total_questions=len(state.questions),
        questions_answered=state.questions_answered,
        questions_correct=state.questions_correct,
        selected_answer_id=state.selected_answer_id,
        last_answer_correct=last_answer_correct,
        current_question=question_view,
    )


def build_results(state: StudyState) -> StudyResults:
    """Results summary with a per-question review, in session order."""
    if state.phase is not Phase.FINISHED:
        raise InvalidTransition("Study session is not finished")

    review = []
    for question in state.questions:
        record = state.answers.get(question.id)
        review.append(
            QuestionReview(
                question_id=question.id,
                question_text=question.text,
                answered=record is not None,
                selected_answer_id=record.answer_id if record else None,
                is_correct=record.is_correct if record else None,
                correct_answer_ids=[a.id for a in question.answers if a.is_correct],
            )
        )

    return StudyResults(
        session_id=state.session_id,
        deck_id=state.deck_id,
        score=state.score,
        questions_correct=state.questions_correct,
        questions_answered=state.questions_answered,
        study_time=format_study_time(state.start_time, state.end_time),
        review=review,
    )


class StudySessionService:
    """Drives study sessions and persists their progress."""

    def __init__(
        self,
        db: Database,
        shuffle: bool = True,
        rng: random.Random | None = None,
        finished_ttl: timedelta = timedelta(minutes=60),
    ):
        self.db = db
        self.shuffle = shuffle
        self.rng = rng or random.Random()
        self.finished_ttl = finished_ttl
        self.deck_dao = DeckDAO(db)
        self.session_dao = StudySessionDAO(db)
        self.progress_dao = UserProgressDAO(db)
        # Live sessions (in-memory), keyed by study_sessions.id
        self.sessions: dict[str, StudyState] = {}

    def get(self, session_id: str) -> StudyState | None:
        return self.sessions.get(session_id)

    def prune_finished(self, now: datetime) -> int:
        """Drop finished sessions whose results have been available for longer than the TTL."""
        expired = [
            session_id
            for session_id, state in self.sessions.items()
            if state.phase is Phase.FINISHED and now - state.end_time >= self.finished_ttl
        ]
        for session_id in expired:
            del self.sessions[session_id]
        if expired:
            logger.debug("Expired finished study sessions", count=len(expired))
        return len(expired)

    def start(self, deck_id: str, user_id: str) -> StudyState | None:
        """
        Start a study session for a deck.

        Returns:
            The active state, or None if the deck does not exist

        Raises:
            InvalidTransition: if the deck has no questions
        """
        deck = self.deck_dao.get_detail(deck_id)
        if deck is None:
            return None
        if not deck.questions:
            raise InvalidTransition("No questions in deck")

        start_time = datetime.now()
        self.prune_finished(start_time)
        row = self.session_dao.create(user_id=user_id, deck_id=deck_id, start_time=start_time)

        questions = [StudyQuestion.from_schema(q) for q in deck.questions]
        if self.shuffle:
            questions = shuffle_questions(questions, self.rng)

        state = reduce(
            StudyState(deck_id=deck_id, user_id=user_id),
            Loaded(session_id=row.id, questions=tuple(questions), start_time=start_time),
        )
        self.sessions[row.id] = state
        logger.info(
            "Study session started",
            session_id=row.id,
            deck_id=deck_id,
            user_id=user_id,
            questions=len(questions),
        )
        return state

    def select(self, state: StudyState, answer_id: str) -> StudyState:
        return self._store(reduce(state, SelectAnswer(answer_id)))

    def submit(self, state: StudyState) -> StudyState:
        """Record the selected answer and persist progress; storage errors are only logged."""
        question = state.current_question
        new_state = self._store(reduce(state, SubmitAnswer()))
        is_correct = new_state.answers[question.id].is_correct

        try:
            self.progress_dao.record_answer(
                new_state.user_id, question.id, is_correct, answered_at=datetime.now()
            )
            self.session_dao.update_counts(
                new_state.session_id,
                new_state.questions_answered,
                new_state.questions_correct,
            )
        except SQLAlchemyError as e:
            logger.error(
                "Error updating progress",
                session_id=new_state.session_id,
                question_id=question.id,
                error=str(e),
            )

        logger.debug(
            "Answer submitted",
            session_id=new_state.session_id,
            question_id=question.id,
            is_correct=is_correct,
        )
        return new_state

    def advance(self, state: StudyState) -> StudyState:
        """Move to the next question, or finish and stamp the end time."""
        new_state = self._store(reduce(state, Advance(at=datetime.now())))
        if new_state.phase is not Phase.FINISHED:
            return new_state

        try:
            self.session_dao.finish(new_state.session_id, new_state.end_time)
        except SQLAlchemyError as e:
            logger.error(
                "Error finishing study session", session_id=new_state.session_id, error=str(e)
            )

        logger.info(
            "Study session finished",
            session_id=new_state.session_id,
            score=new_state.score,
            questions_answered=new_state.questions_answered,
        )
        return new_state

    def _store(self, state: StudyState) -> StudyState:
        self.sessions[state.session_id] = state
        return state
