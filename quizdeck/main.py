"""
FastAPI main application for the quiz deck app.
"""

from datetime import timedelta

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from quizdeck.auth import get_current_user_id
from quizdeck.config import Settings, get_settings
from quizdeck.database import Database, DeckDAO, StatsDAO
from quizdeck.editor import (
    DeckSaveError,
    DeckValidationError,
    DeckWriter,
    draft_from_edit,
    draft_to_edit,
    load_deck_draft,
)
from quizdeck.logging_config import LoggingMiddleware, setup_logging
from quizdeck.schemas import (
    AnswerSelection,
    ConfigResponse,
    DeckCreate,
    DeckDetail,
    DeckEdit,
    DeckSummary,
    Profile,
    StudyResults,
    StudyStateResponse,
    UserStats,
)
from quizdeck.study import (
    InvalidTransition,
    StudySessionService,
    StudyState,
    build_results,
    to_state_response,
)

settings = get_settings()
setup_logging(settings)

# Initialize FastAPI app
app = FastAPI(
    title="Quiz Deck App",
    description="Multiple-choice quiz decks with study sessions and progress stats",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)

# Global instances (will be replaced with dependency injection)
_db_instance: Database | None = None
_study_service_instance: StudySessionService | None = None


def get_db() -> Database:
    """Dependency to get database instance."""
    global _db_instance
    if _db_instance is None:
        _db_instance = Database(get_settings().database_url)
    return _db_instance


def get_study_service() -> StudySessionService:
    """Dependency to get the study session service."""
    global _study_service_instance
    if _study_service_instance is None:
        settings = get_settings()
        _study_service_instance = StudySessionService(
            get_db(),
            shuffle=settings.shuffle_questions,
            finished_ttl=timedelta(minutes=settings.finished_session_ttl_minutes),
        )
    return _study_service_instance


def get_deck_writer(
    db: Database = Depends(get_db), settings: Settings = Depends(get_settings)
) -> DeckWriter:
    """Dependency to get a deck writer bound to the database."""
    return DeckWriter.from_db(db, answer_slots=settings.answer_slots)


def get_study_state(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    study_service: StudySessionService = Depends(get_study_service),
) -> StudyState:
    """Dependency resolving a live study session owned by the caller."""
    state = study_service.get(session_id)
    if state is None or state.user_id != user_id:
        raise HTTPException(status_code=404, detail="Study session not found")
    return state


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


# Deck endpoints
@app.get("/api/decks", response_model=list[DeckSummary])
async def get_all_decks(
    db: Database = Depends(get_db), user_id: str = Depends(get_current_user_id)
):
    """List decks, newest first."""
    return DeckDAO(db).get_all()


@app.post("/api/decks", response_model=DeckDetail)
async def create_deck(
    deck_data: DeckCreate,
    writer: DeckWriter = Depends(get_deck_writer),
    db: Database = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Create a deck with its questions and answers."""
    try:
        deck = writer.create_deck(deck_data, user_id=user_id)
    except DeckValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except DeckSaveError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return DeckDAO(db).get_detail(deck.id)


@app.get("/api/decks/{deck_id}", response_model=DeckDetail)
async def get_deck(
    deck_id: str, db: Database = Depends(get_db), user_id: str = Depends(get_current_user_id)
):
    """Get a deck with its questions and answers."""
    deck = DeckDAO(db).get_detail(deck_id)
    if not deck:
        raise HTTPException(status_code=404, detail="Deck not found")
    return deck


@app.get("/api/decks/{deck_id}/edit", response_model=DeckEdit)
async def get_deck_edit_form(
    deck_id: str, db: Database = Depends(get_db), user_id: str = Depends(get_current_user_id)
):
    """Load a deck as an edit form, with storage ids on every existing item."""
    deck = DeckDAO(db).get_detail(deck_id)
    if not deck:
        raise HTTPException(status_code=404, detail="Deck not found")
    return draft_to_edit(load_deck_draft(deck))


@app.put("/api/decks/{deck_id}", response_model=DeckDetail)
async def update_deck(
    deck_id: str,
    deck_edit: DeckEdit,
    writer: DeckWriter = Depends(get_deck_writer),
    db: Database = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Save an edited deck: new items are inserted, existing ones updated in place."""
    deck_dao = DeckDAO(db)
    if not deck_dao.get_by_id(deck_id):
        raise HTTPException(status_code=404, detail="Deck not found")

    try:
        writer.save_deck_edit(draft_from_edit(deck_id, deck_edit))
    except DeckValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except DeckSaveError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return deck_dao.get_detail(deck_id)


# Study session endpoints
@app.post("/api/decks/{deck_id}/study", response_model=StudyStateResponse)
async def start_study_session(
    deck_id: str,
    study_service: StudySessionService = Depends(get_study_service),
    user_id: str = Depends(get_current_user_id),
):
    """Start a study session over a shuffled copy of the deck's questions."""
    try:
        state = study_service.start(deck_id, user_id)
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if state is None:
        raise HTTPException(status_code=404, detail="Deck not found")
    return to_state_response(state)


@app.get("/api/study/{session_id}", response_model=StudyStateResponse)
async def get_study_session(state: StudyState = Depends(get_study_state)):
    """Get the current state of a study session."""
    return to_state_response(state)


@app.post("/api/study/{session_id}/select", response_model=StudyStateResponse)
async def select_answer(
    selection: AnswerSelection,
    state: StudyState = Depends(get_study_state),
    study_service: StudySessionService = Depends(get_study_service),
):
    """Select an answer for the current question."""
    try:
        return to_state_response(study_service.select(state, selection.answer_id))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@app.post("/api/study/{session_id}/submit", response_model=StudyStateResponse)
async def submit_answer(
    state: StudyState = Depends(get_study_state),
    study_service: StudySessionService = Depends(get_study_service),
):
    """Submit the selected answer and record progress."""
    try:
        return to_state_response(study_service.submit(state))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@app.post("/api/study/{session_id}/next", response_model=StudyStateResponse)
async def next_question(
    state: StudyState = Depends(get_study_state),
    study_service: StudySessionService = Depends(get_study_service),
):
    """Advance to the next question, or finish after the last one."""
    try:
        return to_state_response(study_service.advance(state))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@app.get("/api/study/{session_id}/results", response_model=StudyResults)
async def get_study_results(state: StudyState = Depends(get_study_state)):
    """Results summary of a finished study session."""
    try:
        return build_results(state)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


# Statistics endpoints
@app.get("/api/stats", response_model=UserStats)
async def get_stats(
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user_id: str = Depends(get_current_user_id),
):
    """Aggregate statistics over the caller's study sessions."""
    return StatsDAO(db).get_user_stats(user_id, recent_limit=settings.recent_sessions_limit)


@app.get("/api/profile", response_model=Profile)
async def get_profile(db: Database = Depends(get_db), user_id: str = Depends(get_current_user_id)):
    """Profile counts for the caller."""
    return StatsDAO(db).get_profile(user_id)


# Configuration endpoint
@app.get("/api/config", response_model=ConfigResponse)
async def get_config(settings: Settings = Depends(get_settings)):
    """Get non-secret configuration."""
    return settings.to_config_response()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
