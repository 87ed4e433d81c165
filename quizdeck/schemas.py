"""
Pydantic schemas (DTOs) for API request/response validation.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# Answer schemas
class AnswerBase(BaseModel):
    """Base answer schema."""

    answer_text: str = Field(..., description="The answer option text")
    is_correct: bool = Field(False, description="Whether this option is correct")


class AnswerCreate(AnswerBase):
    """Schema for creating an answer."""

    pass


class Answer(AnswerBase):
    """Schema for answer response."""

    id: str
    question_id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Question schemas
class QuestionCreate(BaseModel):
    """Schema for creating a question together with its answer options."""

    question_text: str = Field(..., description="The question text")
    answers: list[AnswerCreate] = Field(default_factory=list)


class Question(BaseModel):
    """Schema for question response."""

    id: str
    deck_id: str
    question_text: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QuestionWithAnswers(Question):
    """Question with its nested answers."""

    answers: list[Answer] = Field(default_factory=list)


# Deck schemas
class DeckBase(BaseModel):
    """Base deck schema."""

    title: str = Field(..., description="Deck title")
    description: str | None = Field(None, description="Optional deck description")


class DeckCreate(DeckBase):
    """Schema for creating a deck with its questions."""

    questions: list[QuestionCreate] = Field(default_factory=list)


class DeckUpdate(BaseModel):
    """Schema for updating a deck's own fields."""

    title: str | None = Field(None, min_length=1, description="Updated deck title")
    description: str | None = Field(None, description="Updated deck description")


class Deck(DeckBase):
    """Schema for deck response."""

    id: str
    user_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeckSummary(Deck):
    """Deck as shown in the deck list."""

    question_count: int = 0


class DeckDetail(Deck):
    """Deck with nested questions and answers."""

    questions: list[QuestionWithAnswers] = Field(default_factory=list)


# Edit form schemas
class AnswerEdit(BaseModel):
    """An answer slot in the edit form.

    ``id`` is set for answers that already exist in storage; new answers carry
    only a client-generated ``local_key``.
    """

    id: str | None = None
    local_key: str | None = None
    answer_text: str = ""
    is_correct: bool = False


class QuestionEdit(BaseModel):
    """A question in the edit form."""

    id: str | None = None
    local_key: str | None = None
    question_text: str = ""
    answers: list[AnswerEdit] = Field(default_factory=list)


class DeckEdit(BaseModel):
    """Full edit form for an existing deck."""

    title: str = ""
    description: str | None = None
    questions: list[QuestionEdit] = Field(default_factory=list)


# Study session schemas
class StudySession(BaseModel):
    """Schema for a persisted study session row."""

    id: str
    user_id: str
    deck_id: str
    start_time: datetime
    end_time: datetime | None = None
    questions_answered: int = 0
    questions_correct: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserProgress(BaseModel):
    """Schema for a per-question progress row."""

    id: str
    user_id: str
    question_id: str
    times_correct: int = 0
    times_incorrect: int = 0
    last_answered_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AnswerSelection(BaseModel):
    """Request to select an answer for the current question."""

    answer_id: str = Field(..., min_length=1)


class StudyAnswerView(BaseModel):
    """An answer option as shown during study; correctness is hidden until submit."""

    id: str
    answer_text: str
    is_correct: bool | None = None


class StudyQuestionView(BaseModel):
    """The current question of a study session."""

    id: str
    question_text: str
    answers: list[StudyAnswerView]


class StudyStateResponse(BaseModel):
    """Snapshot of a study session's state."""

    session_id: str
    deck_id: str
    phase: str
    question_number: int
    total_questions: int
    questions_answered: int
    questions_correct: int
    selected_answer_id: str | None = None
    last_answer_correct: bool | None = None
    current_question: StudyQuestionView | None = None


class QuestionReview(BaseModel):
    """Per-question outcome shown on the results page."""

    question_id: str
    question_text: str
    answered: bool
    selected_answer_id: str | None = None
    is_correct: bool | None = None
    correct_answer_ids: list[str] = Field(default_factory=list)


class StudyResults(BaseModel):
    """Results summary of a finished study session."""

    session_id: str
    deck_id: str
    score: int = Field(..., ge=0, le=100, description="Score from 0-100")
    questions_correct: int
    questions_answered: int
    study_time: str
    review: list[QuestionReview] = Field(default_factory=list)


# Statistics schemas
class SessionSummary(BaseModel):
    """A row in the recent study sessions table."""

    id: str
    deck_id: str
    deck_title: str
    created_at: datetime
    score: int
    questions_correct: int
    questions_answered: int
    study_time: str


class UserStats(BaseModel):
    """Aggregate statistics over all of a user's study sessions."""

    total_sessions: int = 0
    total_questions_answered: int = 0
    total_correct_answers: int = 0
    average_score: int = 0
    total_study_time_minutes: int = 0
    total_study_time: str = "0 min"
    recent_sessions: list[SessionSummary] = Field(default_factory=list)


class Profile(BaseModel):
    """Profile summary for a user."""

    user_id: str
    decks_count: int = 0
    sessions_count: int = 0


# Config schemas
class ConfigResponse(BaseModel):
    """Non-secret runtime configuration."""

    app_name: str
    answer_slots: int
    shuffle_questions: bool
    recent_sessions_limit: int
