"""
Tests for FastAPI endpoints (integration tests).
"""
from datetime import datetime

from freezegun import freeze_time

from quizdeck.database import StudySessionDAO, UserProgressDAO


def create_deck(client, headers, payload):
    response = client.post("/api/decks", json=payload, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def single_question_payload(make_deck_payload):
    """One question with exactly two answer options."""
    return make_deck_payload(
        title="Tiny",
        questions=[
            {
                "question_text": "Is Python dynamically typed?",
                "answers": [
                    {"answer_text": "Yes", "is_correct": True},
                    {"answer_text": "No", "is_correct": False},
                ],
            }
        ],
    )


def pick(state, answer_text="Yes"):
    """Ids of the current question and of its answer with the given text."""
    question = state["current_question"]
    answer_id = next(a["id"] for a in question["answers"] if a["answer_text"] == answer_text)
    return question["id"], answer_id


# Health check test
def test_health_check(client):
    """Test the health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_missing_user_header_is_rejected(client):
    """Test that API routes require the caller's identity."""
    response = client.get("/api/decks")
    assert response.status_code == 401
    assert response.json()["detail"] == "Missing user identity"


# Deck endpoints
def test_create_deck(client, auth_headers, make_deck_payload):
    """Test creating a deck with questions and answers."""
    response = client.post("/api/decks", json=make_deck_payload(), headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Python Basics"
    assert data["description"] == "Core language questions"
    assert data["user_id"] == "user-1"
    assert len(data["questions"]) == 1
    answers = data["questions"][0]["answers"]
    assert len(answers) == 4
    assert [a["answer_text"] for a in answers if a["is_correct"]] == ["def"]


def test_create_deck_validation_error_writes_nothing(client, auth_headers, make_deck_payload):
    """Test that an invalid deck returns 400 and is not stored."""
    payload = make_deck_payload(
        questions=[
            {
                "question_text": "No correct answer here",
                "answers": [
                    {"answer_text": "a", "is_correct": False},
                    {"answer_text": "b", "is_correct": False},
                ],
            }
        ]
    )

    response = client.post("/api/decks", json=payload, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Each question must have at least one correct answer"
    assert client.get("/api/decks", headers=auth_headers).json() == []


def test_create_deck_without_title(client, auth_headers, make_deck_payload):
    response = client.post("/api/decks", json=make_deck_payload(title="  "), headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Please enter a deck title"


def test_create_deck_without_questions(client, auth_headers, make_deck_payload):
    response = client.post(
        "/api/decks", json=make_deck_payload(questions=[]), headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Please add at least one question"


def test_get_all_decks(client, auth_headers, make_deck_payload):
    """Test listing decks newest first with question counts."""
    with freeze_time("2025-01-15 12:00:00"):
        create_deck(client, auth_headers, make_deck_payload(title="Deck 1"))
    with freeze_time("2025-01-16 12:00:00"):
        create_deck(client, auth_headers, make_deck_payload(title="Deck 2"))

    response = client.get("/api/decks", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert [d["title"] for d in data] == ["Deck 2", "Deck 1"]
    assert all(d["question_count"] == 1 for d in data)


def test_get_deck_by_id(client, auth_headers, make_deck_payload):
    """Test getting a specific deck."""
    deck = create_deck(client, auth_headers, make_deck_payload())

    response = client.get(f"/api/decks/{deck['id']}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["id"] == deck["id"]
    assert response.json()["questions"][0]["question_text"] == "What keyword defines a function?"


def test_get_deck_not_found(client, auth_headers):
    """Test getting a non-existent deck."""
    response = client.get("/api/decks/nonexistent-id", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Deck not found"


def test_edit_form_carries_storage_ids(client, auth_headers, make_deck_payload):
    """Test that the edit form marks every existing item with its id."""
    deck = create_deck(client, auth_headers, make_deck_payload())

    response = client.get(f"/api/decks/{deck['id']}/edit", headers=auth_headers)

    assert response.status_code == 200
    form = response.json()
    question = form["questions"][0]
    assert question["id"] == deck["questions"][0]["id"]
    assert question["local_key"]
    assert {a["id"] for a in question["answers"]} == {
        a["id"] for a in deck["questions"][0]["answers"]
    }


def test_edit_deck_updates_existing_and_inserts_new(client, auth_headers, make_deck_payload):
    """Test saving an edit: existing rows are updated in place, new ones inserted."""
    deck = create_deck(client, auth_headers, make_deck_payload())
    form = client.get(f"/api/decks/{deck['id']}/edit", headers=auth_headers).json()

    form["title"] = "Python Basics v2"
    form["questions"][0]["question_text"] = "Which keyword defines a function?"
    form["questions"].append(
        {
            "local_key": "new-1",
            "question_text": "What does len('abc') return?",
            "answers": [
                {"local_key": "new-1-a", "answer_text": "3", "is_correct": True},
                {"local_key": "new-1-b", "answer_text": "2", "is_correct": False},
                {"local_key": "new-1-c", "answer_text": "", "is_correct": False},
            ],
        }
    )

    response = client.put(f"/api/decks/{deck['id']}", json=form, headers=auth_headers)

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["title"] == "Python Basics v2"
    assert len(data["questions"]) == 2
    edited = data["questions"][0]
    assert edited["id"] == deck["questions"][0]["id"]
    assert edited["question_text"] == "Which keyword defines a function?"
    new_question = data["questions"][1]
    assert new_question["id"] not in {q["id"] for q in deck["questions"]}
    assert {a["answer_text"] for a in new_question["answers"]} == {"3", "2"}


def test_edit_deck_removed_question_is_kept(client, auth_headers, make_deck_payload):
    """Test that dropping a question from the form does not delete it."""
    deck = create_deck(client, auth_headers, make_deck_payload())
    form = client.get(f"/api/decks/{deck['id']}/edit", headers=auth_headers).json()
    form["questions"] = [
        {
            "question_text": "Replacement?",
            "answers": [
                {"answer_text": "yes", "is_correct": True},
                {"answer_text": "no", "is_correct": False},
            ],
        }
    ]

    response = client.put(f"/api/decks/{deck['id']}", json=form, headers=auth_headers)

    assert response.status_code == 200
    assert len(response.json()["questions"]) == 2


def test_edit_deck_validation_error(client, auth_headers, make_deck_payload):
    deck = create_deck(client, auth_headers, make_deck_payload())
    form = client.get(f"/api/decks/{deck['id']}/edit", headers=auth_headers).json()
    for answer in form["questions"][0]["answers"][1:]:
        answer["answer_text"] = ""

    response = client.put(f"/api/decks/{deck['id']}", json=form, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Each question must have at least two answer options"
    stored = client.get(f"/api/decks/{deck['id']}", headers=auth_headers).json()
    assert len(stored["questions"][0]["answers"]) == 4


def test_edit_deck_not_found(client, auth_headers):
    response = client.put(
        "/api/decks/nonexistent-id", json={"title": "x", "questions": []}, headers=auth_headers
    )
    assert response.status_code == 404


def test_edit_deck_rejects_other_decks_rows(client, auth_headers, make_deck_payload):
    """Test that an edit cannot rewrite questions or answers of another deck."""
    deck_a = create_deck(client, auth_headers, make_deck_payload(title="Deck A"))
    deck_b = create_deck(client, auth_headers, make_deck_payload(title="Deck B"))
    form_a = client.get(f"/api/decks/{deck_a['id']}/edit", headers=auth_headers).json()
    form_b = client.get(f"/api/decks/{deck_b['id']}/edit", headers=auth_headers).json()

    foreign_question = form_b["questions"][0]
    foreign_question["question_text"] = "hijacked"
    form_a["questions"] = [foreign_question]
    response = client.put(f"/api/decks/{deck_a['id']}", json=form_a, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Question does not belong to this deck"

    form_a = client.get(f"/api/decks/{deck_a['id']}/edit", headers=auth_headers).json()
    form_a["questions"][0]["answers"][1]["id"] = form_b["questions"][0]["answers"][1]["id"]
    form_a["questions"][0]["answers"][1]["answer_text"] = "hijacked"
    response = client.put(f"/api/decks/{deck_a['id']}", json=form_a, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Answer does not belong to its question"

    stored_b = client.get(f"/api/decks/{deck_b['id']}", headers=auth_headers).json()
    assert stored_b["questions"][0]["question_text"] == "What keyword defines a function?"
    assert "hijacked" not in {a["answer_text"] for a in stored_b["questions"][0]["answers"]}
    assert client.get(f"/api/decks/{deck_a['id']}", headers=auth_headers).json()["title"] == "Deck A"


def test_edit_form_not_found(client, auth_headers):
    response = client.get("/api/decks/nonexistent-id/edit", headers=auth_headers)
    assert response.status_code == 404


# Study session endpoints
def test_start_study_session(client, auth_headers, make_deck_payload):
    """Test starting a study session hides correctness."""
    deck = create_deck(client, auth_headers, make_deck_payload())

    response = client.post(f"/api/decks/{deck['id']}/study", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["phase"] == "active"
    assert data["question_number"] == 1
    assert data["total_questions"] == 1
    assert data["questions_answered"] == 0
    assert all(a["is_correct"] is None for a in data["current_question"]["answers"])


def test_start_study_session_deck_not_found(client, auth_headers):
    response = client.post("/api/decks/nonexistent-id/study", headers=auth_headers)
    assert response.status_code == 404


def test_study_session_end_to_end(client, db, auth_headers, make_deck_payload):
    """Test a full one-question session and the rows it leaves behind."""
    deck = create_deck(client, auth_headers, single_question_payload(make_deck_payload))

    with freeze_time("2025-01-15 12:00:00"):
        state = client.post(f"/api/decks/{deck['id']}/study", headers=auth_headers).json()
    session_id = state["session_id"]
    question_id, answer_id = pick(state)

    response = client.post(
        f"/api/study/{session_id}/select", json={"answer_id": answer_id}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["selected_answer_id"] == answer_id

    response = client.post(f"/api/study/{session_id}/submit", headers=auth_headers)
    assert response.status_code == 200
    submitted = response.json()
    assert submitted["phase"] == "submitted"
    assert submitted["last_answer_correct"] is True
    assert {a["answer_text"]: a["is_correct"] for a in submitted["current_question"]["answers"]} == {
        "Yes": True,
        "No": False,
    }

    row = StudySessionDAO(db).get_by_id(session_id)
    assert row.questions_answered == 1
    assert row.questions_correct == 1
    progress = UserProgressDAO(db).get("user-1", question_id)
    assert progress.times_correct == 1
    assert progress.times_incorrect == 0

    with freeze_time("2025-01-15 12:00:45"):
        response = client.post(f"/api/study/{session_id}/next", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["phase"] == "finished"
    assert response.json()["current_question"] is None
    assert StudySessionDAO(db).get_by_id(session_id).end_time == datetime(2025, 1, 15, 12, 0, 45)

    response = client.get(f"/api/study/{session_id}/results", headers=auth_headers)
    assert response.status_code == 200
    results = response.json()
    assert results["score"] == 100
    assert results["questions_correct"] == 1
    assert results["questions_answered"] == 1
    assert results["study_time"] == "Less than a minute"
    assert results["review"][0]["selected_answer_id"] == answer_id


def test_study_wrong_answer(client, db, auth_headers, make_deck_payload):
    deck = create_deck(client, auth_headers, single_question_payload(make_deck_payload))
    state = client.post(f"/api/decks/{deck['id']}/study", headers=auth_headers).json()
    session_id = state["session_id"]
    question_id, answer_id = pick(state, "No")

    client.post(f"/api/study/{session_id}/select", json={"answer_id": answer_id}, headers=auth_headers)
    response = client.post(f"/api/study/{session_id}/submit", headers=auth_headers)

    assert response.json()["last_answer_correct"] is False
    assert UserProgressDAO(db).get("user-1", question_id).times_incorrect == 1
    assert StudySessionDAO(db).get_by_id(session_id).questions_correct == 0


def test_submit_without_selection_conflicts(client, auth_headers, make_deck_payload):
    """Test that out-of-order study actions return 409."""
    deck = create_deck(client, auth_headers, make_deck_payload())
    session_id = client.post(f"/api/decks/{deck['id']}/study", headers=auth_headers).json()[
        "session_id"
    ]

    response = client.post(f"/api/study/{session_id}/submit", headers=auth_headers)
    assert response.status_code == 409
    assert response.json()["detail"] == "Select an answer before submitting"

    response = client.post(f"/api/study/{session_id}/next", headers=auth_headers)
    assert response.status_code == 409

    response = client.get(f"/api/study/{session_id}/results", headers=auth_headers)
    assert response.status_code == 409


def test_select_unknown_answer_conflicts(client, auth_headers, make_deck_payload):
    deck = create_deck(client, auth_headers, make_deck_payload())
    session_id = client.post(f"/api/decks/{deck['id']}/study", headers=auth_headers).json()[
        "session_id"
    ]

    response = client.post(
        f"/api/study/{session_id}/select", json={"answer_id": "not-an-answer"}, headers=auth_headers
    )

    assert response.status_code == 409


def test_study_session_of_other_user_not_found(client, auth_headers, make_deck_payload):
    deck = create_deck(client, auth_headers, make_deck_payload())
    session_id = client.post(f"/api/decks/{deck['id']}/study", headers=auth_headers).json()[
        "session_id"
    ]

    response = client.get(f"/api/study/{session_id}", headers={"X-User-Id": "someone-else"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Study session not found"


def test_study_session_not_found(client, auth_headers):
    response = client.get("/api/study/nonexistent-id", headers=auth_headers)
    assert response.status_code == 404


# Statistics endpoints
def test_stats_after_session(client, auth_headers, make_deck_payload):
    """Test that a finished session shows up in the caller's stats."""
    deck = create_deck(client, auth_headers, single_question_payload(make_deck_payload))
    with freeze_time("2025-01-15 12:00:00"):
        state = client.post(f"/api/decks/{deck['id']}/study", headers=auth_headers).json()
    session_id = state["session_id"]
    _question_id, answer_id = pick(state)
    client.post(f"/api/study/{session_id}/select", json={"answer_id": answer_id}, headers=auth_headers)
    client.post(f"/api/study/{session_id}/submit", headers=auth_headers)
    with freeze_time("2025-01-15 12:05:00"):
        client.post(f"/api/study/{session_id}/next", headers=auth_headers)

    response = client.get("/api/stats", headers=auth_headers)

    assert response.status_code == 200
    stats = response.json()
    assert stats["total_sessions"] == 1
    assert stats["total_questions_answered"] == 1
    assert stats["total_correct_answers"] == 1
    assert stats["average_score"] == 100
    assert stats["total_study_time"] == "5 min"
    assert stats["recent_sessions"][0]["deck_title"] == "Tiny"
    assert stats["recent_sessions"][0]["study_time"] == "5 min"


def test_stats_empty(client, auth_headers):
    response = client.get("/api/stats", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["total_sessions"] == 0
    assert response.json()["total_study_time"] == "0 min"


def test_profile(client, auth_headers, make_deck_payload):
    """Test profile counts for the caller."""
    deck = create_deck(client, auth_headers, make_deck_payload())
    client.post(f"/api/decks/{deck['id']}/study", headers=auth_headers)

    response = client.get("/api/profile", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"user_id": "user-1", "decks_count": 1, "sessions_count": 1}


# Configuration endpoint
def test_get_config(client):
    """Test getting non-secret configuration."""
    response = client.get("/api/config")

    assert response.status_code == 200
    data = response.json()
    assert data["answer_slots"] == 4
    assert "database_url" not in data
