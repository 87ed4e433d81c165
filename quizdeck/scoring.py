"""
Score and study-time formulas shared by the results and stats pages.
"""

from datetime import datetime


def calculate_score(questions_correct: int, questions_answered: int) -> int:
    """
    Integer percentage of correct answers.

    Halves round up, so 1 of 8 correct (12.5%) scores 13.

    Args:
        questions_correct: Number of correct answers
        questions_answered: Number of answered questions

    Returns:
        Score from 0-100; 0 when nothing was answered
    """
    if questions_answered <= 0:
        return 0
    return (questions_correct * 200 + questions_answered) // (2 * questions_answered)


def elapsed_minutes(start_time: datetime, end_time: datetime) -> int:
    """Whole minutes between two timestamps, floor-rounded."""
    seconds = (end_time - start_time).total_seconds()
    return max(0, int(seconds // 60))


def format_study_time(start_time: datetime, end_time: datetime | None) -> str:
    """Study time label for the results summary."""
    if end_time is None:
        return "--"

    minutes = elapsed_minutes(start_time, end_time)
    if minutes < 1:
        return "Less than a minute"
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


def format_session_minutes(minutes: int) -> str:
    """Short study time label for a row in the sessions table."""
    if minutes < 1:
        return "< 1 min"
    return f"{minutes} min"


def format_total_study_time(minutes: int) -> str:
    """Total study time as ``N min`` below an hour, otherwise ``Xh Ym``."""
    if minutes < 60:
        return f"{minutes} min"
    hours, remaining_minutes = divmod(minutes, 60)
    return f"{hours}h {remaining_minutes}m"
