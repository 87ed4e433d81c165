"""
Deck form validation and edit reconciliation.

Questions and answers in a deck form are identified either by a client-side
local key (``Unsaved``) or by their storage id (``Saved``). Saving an edited
deck turns every ``Unsaved`` item into an insert and every ``Saved`` item into
an in-place update. Items removed from the form are not deleted in storage.
"""

import uuid
from dataclasses import dataclass, field
from typing import NamedTuple

from sqlalchemy.exc import SQLAlchemyError

from quizdeck.database import AnswerDAO, Database, DeckDAO, QuestionDAO
from quizdeck.logging_config import get_logger
from quizdeck.schemas import (
    AnswerCreate,
    AnswerEdit,
    Deck,
    DeckCreate,
    DeckDetail,
    DeckEdit,
    DeckUpdate,
    QuestionEdit,
)

logger = get_logger("quizdeck.editor")

DEFAULT_ANSWER_SLOTS = 4


class DeckValidationError(ValueError):
    """The deck form is invalid; nothing has been written."""


class DeckSaveError(Exception):
    """A storage write failed; writes issued before it are not rolled back."""


@dataclass(frozen=True)
class Unsaved:
    """Identity of an item that only exists in the form."""

    local_key: str


@dataclass(frozen=True)
class Saved:
    """Identity of an item that already has a storage row."""

    storage_id: str


Identity = Unsaved | Saved


@dataclass(frozen=True)
class AnswerDraft:
    identity: Identity
    text: str
    is_correct: bool = False


@dataclass(frozen=True)
class QuestionDraft:
    identity: Identity
    text: str
    answers: tuple[AnswerDraft, ...] = ()


@dataclass(frozen=True)
class DeckDraft:
    deck_id: str
    title: str
    description: str = ""
    questions: tuple[QuestionDraft, ...] = field(default_factory=tuple)


def new_local_key() -> str:
    return str(uuid.uuid4())


# Conversions between drafts and API payloads
def load_deck_draft(deck: DeckDetail) -> DeckDraft:
    """Build an edit draft from stored rows; every item is ``Saved``."""
    return DeckDraft(
        deck_id=deck.id,
        title=deck.title,
        description=deck.description or "",
        questions=tuple(
            QuestionDraft(
                identity=Saved(question.id),
                text=question.question_text,
                answers=tuple(
                    AnswerDraft(Saved(answer.id), answer.answer_text, answer.is_correct)
                    for answer in question.answers
                ),
            )
            for question in deck.questions
        ),
    )


def _identity_from_payload(storage_id: str | None, local_key: str | None, seen: set[str]) -> Identity:
    if storage_id:
        return Saved(storage_id)
    # Local keys must be unique so new answers attach to the right new question
    if not local_key or local_key in seen:
        local_key = new_local_key()
    seen.add(local_key)
    return Unsaved(local_key)


def draft_from_edit(deck_id: str, payload: DeckEdit) -> DeckDraft:
    """Turn an edit payload into a draft with explicit identities."""
    seen: set[str] = set()
    return DeckDraft(
        deck_id=deck_id,
        title=payload.title,
        description=payload.description or "",
        questions=tuple(
            QuestionDraft(
                identity=_identity_from_payload(question.id, question.local_key, seen),
                text=question.question_text,
                answers=tuple(
                    AnswerDraft(
                        identity=_identity_from_payload(answer.id, answer.local_key, seen),
                        text=answer.answer_text,
                        is_correct=answer.is_correct,
                    )
                    for answer in question.answers
                ),
            )
            for question in payload.questions
        ),
    )


def _edit_fields(identity: Identity) -> dict:
    # Saved items get a fresh local key for list keying on the client
    match identity:
        case Saved(storage_id=storage_id):
            return {"id": storage_id, "local_key": new_local_key()}
        case Unsaved(local_key=local_key):
            return {"id": None, "local_key": local_key}


def draft_to_edit(draft: DeckDraft) -> DeckEdit:
    """Render a draft as the edit form payload."""
    return DeckEdit(
        title=draft.title,
        description=draft.description,
        questions=[
            QuestionEdit(
                question_text=question.text,
                answers=[
                    AnswerEdit(
                        answer_text=answer.text,
                        is_correct=answer.is_correct,
                        **_edit_fields(answer.identity),
                    )
                    for answer in question.answers
                ],
                **_edit_fields(question.identity),
            )
            for question in draft.questions
        ],
    )


# Validation
def _check_answer_slots(answer_count: int, answer_slots: int) -> None:
    if answer_count > answer_slots:
        raise DeckValidationError(
            f"Each question can have at most {answer_slots} answer options"
        )


def validate_new_deck(deck: DeckCreate, answer_slots: int = DEFAULT_ANSWER_SLOTS) -> None:
    """
    Validate a deck-create form. Every question and answer must be filled in.

    Raises:
        DeckValidationError: with the first failing rule's message
    """
    if not deck.title.strip():
        raise DeckValidationError("Please enter a deck title")

    if not deck.questions:
        raise DeckValidationError("Please add at least one question")

    for question in deck.questions:
        if not question.question_text.strip():
            raise DeckValidationError("All questions must have text")

        if not any(answer.is_correct for answer in question.answers):
            raise DeckValidationError("Each question must have at least one correct answer")

        if any(not answer.answer_text.strip() for answer in question.answers):
            raise DeckValidationError("All answer options must have text")

        _check_answer_slots(len(question.answers), answer_slots)


def questions_with_content(draft: DeckDraft) -> list[QuestionDraft]:
    """Questions the edit flow persists; blank ones are ignored."""
    return [q for q in draft.questions if q.text.strip()]


def answers_with_content(question: QuestionDraft) -> list[AnswerDraft]:
    return [a for a in question.answers if a.text.strip()]


def validate_deck_edit(draft: DeckDraft, answer_slots: int = DEFAULT_ANSWER_SLOTS) -> None:
    """
    Validate an edited deck. Blank questions and blank answers are allowed and
    dropped on save.

    Raises:
        DeckValidationError: with the first failing rule's message
    """
    if not draft.title.strip():
        raise DeckValidationError("Please enter a deck title")

    questions = questions_with_content(draft)
    if not questions:
        raise DeckValidationError("Please add at least one question with content")

    for question in questions:
        if not any(answer.is_correct for answer in question.answers):
            raise DeckValidationError("Each question must have at least one correct answer")

        answers = answers_with_content(question)
        if len(answers) < 2:
            raise DeckValidationError("Each question must have at least two answer options")

        if not any(answer.is_correct for answer in answers):
            raise DeckValidationError(
                "Each question must have at least one correct answer with content"
            )

        _check_answer_slots(len(question.answers), answer_slots)


def check_deck_ownership(draft: DeckDraft, deck: DeckDetail) -> None:
    """
    Reject storage ids that do not belong to the deck being edited.

    A ``Saved`` question must be one of the deck's questions, and a ``Saved``
    answer must sit under its ``Saved`` parent question.

    Raises:
        DeckValidationError: for the first foreign id
    """
    owned = {q.id: {a.id for a in q.answers} for q in deck.questions}

    for question in questions_with_content(draft):
        match question.identity:
            case Saved(storage_id=question_id):
                if question_id not in owned:
                    raise DeckValidationError("Question does not belong to this deck")
                answer_ids = owned[question_id]
            case Unsaved():
                answer_ids = set()

        for answer in answers_with_content(question):
            match answer.identity:
                case Saved(storage_id=answer_id) if answer_id not in answer_ids:
                    raise DeckValidationError("Answer does not belong to its question")


# Reconciliation plan
class UpdateDeck(NamedTuple):
    deck_id: str
    title: str
    description: str


class InsertQuestion(NamedTuple):
    deck_id: str
    identity: Unsaved
    question_text: str


class UpdateQuestion(NamedTuple):
    question_id: str
    question_text: str


class InsertAnswer(NamedTuple):
    question: Identity
    answer_text: str
    is_correct: bool


class UpdateAnswer(NamedTuple):
    answer_id: str
    answer_text: str
    is_correct: bool


WriteOp = UpdateDeck | InsertQuestion | UpdateQuestion | InsertAnswer | UpdateAnswer


def plan_deck_edit(draft: DeckDraft) -> list[WriteOp]:
    """
    Compute the ordered writes that bring storage in line with an edited deck.

    The deck row comes first. Each question with content follows, and its
    non-blank answers come right after it.
    """
    ops: list[WriteOp] = [UpdateDeck(draft.deck_id, draft.title.strip(), draft.description)]

    for question in questions_with_content(draft):
        text = question.text.strip()
        match question.identity:
            case Saved(storage_id=question_id):
                ops.append(UpdateQuestion(question_id, text))
            case Unsaved() as identity:
                ops.append(InsertQuestion(draft.deck_id, identity, text))

        for answer in answers_with_content(question):
            text = answer.text.strip()
            match answer.identity:
                case Saved(storage_id=answer_id):
                    ops.append(UpdateAnswer(answer_id, text, answer.is_correct))
                case Unsaved():
                    ops.append(InsertAnswer(question.identity, text, answer.is_correct))

    return ops


class DeckWriter:
    """Runs deck writes one storage call at a time, stopping at the first failure."""

    def __init__(
        self,
        deck_dao: DeckDAO,
        question_dao: QuestionDAO,
        answer_dao: AnswerDAO,
        answer_slots: int = DEFAULT_ANSWER_SLOTS,
    ):
        self.deck_dao = deck_dao
        self.question_dao = question_dao
        self.answer_dao = answer_dao
        self.answer_slots = answer_slots

    @classmethod
    def from_db(cls, db: Database, answer_slots: int = DEFAULT_ANSWER_SLOTS) -> "DeckWriter":
        return cls(DeckDAO(db), QuestionDAO(db), AnswerDAO(db), answer_slots=answer_slots)

    def create_deck(self, deck_data: DeckCreate, user_id: str | None = None) -> Deck:
        """Validate and insert a new deck with its questions and answers."""
        validate_new_deck(deck_data, self.answer_slots)

        try:
            deck = self.deck_dao.create(deck_data.title.strip(), deck_data.description, user_id)
            for question_data in deck_data.questions:
                question = self.question_dao.create(deck.id, question_data.question_text.strip())
                self.answer_dao.create_many(
                    question.id,
                    [
                        AnswerCreate(answer_text=a.answer_text.strip(), is_correct=a.is_correct)
                        for a in question_data.answers
                    ],
                )
        except SQLAlchemyError as e:
            logger.error("Deck create failed", error=str(e), title=deck_data.title)
            raise DeckSaveError("Failed to create deck. Please try again.") from e

        logger.info("Deck created", deck_id=deck.id, questions=len(deck_data.questions))
        return deck

    def save_deck_edit(self, draft: DeckDraft) -> Deck:
        """Validate an edited deck and reconcile it against storage."""
        validate_deck_edit(draft, self.answer_slots)

        try:
            stored = self.deck_dao.get_detail(draft.deck_id)
        except SQLAlchemyError as e:
            logger.error("Deck update failed", error=str(e), deck_id=draft.deck_id)
            raise DeckSaveError("Failed to update deck. Please try again.") from e
        self._require(stored, "deck", draft.deck_id)
        check_deck_ownership(draft, stored)

        ops = plan_deck_edit(draft)
        deck = self.apply(ops)
        logger.info("Deck updated", deck_id=draft.deck_id, writes=len(ops))
        return deck

    def apply(self, ops: list[WriteOp]) -> Deck | None:
        """Execute planned writes in order and return the updated deck."""
        inserted_questions: dict[str, str] = {}
        deck = None

        try:
            for op in ops:
                match op:
                    case UpdateDeck(deck_id=deck_id, title=title, description=description):
                        deck = self.deck_dao.update(
                            deck_id, DeckUpdate(title=title, description=description)
                        )
                        self._require(deck, "deck", deck_id)
                    case InsertQuestion(deck_id=deck_id, identity=identity, question_text=text):
                        question = self.question_dao.create(deck_id, text)
                        inserted_questions[identity.local_key] = question.id
                    case UpdateQuestion(question_id=question_id, question_text=text):
                        self._require(
                            self.question_dao.update(question_id, text), "question", question_id
                        )
                    case InsertAnswer(question=parent, answer_text=text, is_correct=is_correct):
                        question_id = self._resolve(parent, inserted_questions)
                        self.answer_dao.create(
                            question_id, AnswerCreate(answer_text=text, is_correct=is_correct)
                        )
                    case UpdateAnswer(answer_id=answer_id, answer_text=text, is_correct=is_correct):
                        self._require(
                            self.answer_dao.update(answer_id, text, is_correct), "answer", answer_id
                        )
        except SQLAlchemyError as e:
            logger.error("Deck update failed", error=str(e), op=type(op).__name__)
            raise DeckSaveError("Failed to update deck. Please try again.") from e

        return deck

    @staticmethod
    def _require(row, kind: str, row_id: str) -> None:
        if row is None:
            logger.error("Deck update failed", error=f"{kind} not found", row_id=row_id)
            raise DeckSaveError("Failed to update deck. Please try again.")

    @staticmethod
    def _resolve(identity: Identity, inserted_questions: dict[str, str]) -> str:
        match identity:
            case Saved(storage_id=question_id):
                return question_id
            case Unsaved(local_key=local_key):
                if local_key not in inserted_questions:
                    logger.error("Deck update failed", error="unknown question", local_key=local_key)
                    raise DeckSaveError("Failed to update deck. Please try again.")
                return inserted_questions[local_key]
