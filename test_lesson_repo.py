"""
Tests for the lesson repository against a throwaway SQLite database.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import text

from studycore import lesson_repo
from studycore.fsrs import database
from studycore.fsrs.constants import DifficultyLabel, Phase, ReviewGrade
from studycore.fsrs.legacy import LegacyFixedSchedule
from studycore.fsrs.memory_state import MemoryState, new_memory_state
from studycore.lesson_repo import LessonNotFoundError
from studycore.schemas import StudySettings


pytestmark = pytest.mark.usefixtures("db")

ADAPTIVE = StudySettings()
LEGACY = StudySettings(use_fsrs=False)


def add(title="Derivatives", now=None, settings=ADAPTIVE, **kwargs):
    return lesson_repo.add_lesson(title, "Math", "Calculus", settings, now=now, **kwargs)


# ---- CRUD ----

def test_add_adaptive_lesson(now):
    lesson = add(now=now)
    assert lesson.is_adaptive
    assert lesson.schedule.phase == Phase.NEW
    assert lesson.next_review_date == now + timedelta(days=1)
    assert lesson_repo.get_lesson(lesson.id) == lesson


def test_add_legacy_lesson(now):
    lesson = add(now=now, settings=LEGACY, custom_intervals=[2, 5, 9])
    assert lesson.schedule == LegacyFixedSchedule()
    assert lesson.next_review_date == now + timedelta(days=2)

    loaded = lesson_repo.get_lesson(lesson.id)
    assert loaded.custom_intervals == [2, 5, 9]
    assert loaded.intervals(LEGACY) == [2, 5, 9]


def test_missing_lesson_raises(now):
    with pytest.raises(LessonNotFoundError) as excinfo:
        lesson_repo.get_lesson("missing")
    assert excinfo.value.lesson_id == "missing"

    with pytest.raises(LessonNotFoundError):
        lesson_repo.review_lesson("missing", ReviewGrade.GOOD, ADAPTIVE, now=now)
    with pytest.raises(LessonNotFoundError):
        lesson_repo.delete_lesson("missing")


def test_delete_lesson(now):
    lesson = add(now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)
    lesson_repo.delete_lesson(lesson.id)

    with pytest.raises(LessonNotFoundError):
        lesson_repo.get_lesson(lesson.id)
    assert lesson_repo.get_review_history(lesson.id) == []


def test_duplicate_starts_fresh(now):
    original = add(now=now, difficulty=DifficultyLabel.HARD, custom_intervals=[3, 6])
    lesson_repo.review_lesson(original.id, ReviewGrade.EASY, ADAPTIVE, now=now)

    later = now + timedelta(hours=2)
    copy = lesson_repo.duplicate_lesson(original.id, ADAPTIVE, now=later)
    assert copy.id != original.id
    assert copy.title == "Derivatives (Copy)"
    assert copy.difficulty == DifficultyLabel.HARD
    assert copy.custom_intervals == [3, 6]
    assert copy.schedule.phase == Phase.NEW
    assert copy.review_history == []


def test_list_lessons_by_category(now):
    add("Limits", now=now)
    lesson_repo.add_lesson("Verbs", "Dutch", "Grammar", ADAPTIVE, now=now)
    assert [lesson.title for lesson in lesson_repo.list_lessons("Dutch")] == ["Verbs"]
    assert len(lesson_repo.list_lessons()) == 2


# ---- Reviews ----

def test_adaptive_review_is_saved(now):
    lesson = add(now=now - timedelta(days=1))
    reviewed = lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)

    assert reviewed.schedule.reps == 1
    assert reviewed.schedule.scheduled_days == 2
    assert reviewed.schedule.elapsed_days == 1
    assert reviewed.next_review_date == now + timedelta(days=2)
    assert reviewed.review_history == [now]

    loaded = lesson_repo.get_lesson(lesson.id)
    assert loaded.schedule == reviewed.schedule
    assert loaded.next_review_date == reviewed.next_review_date
    assert loaded.review_history == [now]


def test_review_events_are_logged(now):
    lesson = add(now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.FORGOT, ADAPTIVE, now=now + timedelta(days=2))

    events = lesson_repo.get_review_history(lesson.id)
    assert [event["grade"] for event in events] == [1, 3]
    assert events[0]["schedule_mode"] == "adaptive"
    assert events[0]["stability_before"] == pytest.approx(2.4)
    assert events[0]["scheduled_days"] == 1
    assert events[1]["stability_before"] is None
    assert len(lesson_repo.get_review_history(lesson.id, limit=1)) == 1


def test_legacy_review_walks_table(now):
    lesson = add(now=now, settings=LEGACY, custom_intervals=[1, 3])

    first = lesson_repo.review_lesson(lesson.id, ReviewGrade.FORGOT, LEGACY, now=now)
    assert first.schedule == LegacyFixedSchedule(current_stage=1)
    assert first.next_review_date == now + timedelta(days=3)

    later = now + timedelta(days=3)
    done = lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, LEGACY, now=later)
    assert done.completed
    assert done.next_review_date == first.next_review_date

    events = lesson_repo.get_review_history(lesson.id)
    assert [event["stage_after"] for event in events] == [1, 1]


def test_legacy_lesson_migrates_on_adaptive_review(now):
    lesson = add(now=now, settings=LEGACY)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, LEGACY, now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, LEGACY, now=now + timedelta(days=1))

    reviewed = lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now + timedelta(days=5))
    assert isinstance(reviewed.schedule, MemoryState)
    assert reviewed.schedule.reps == 3
    assert reviewed.schedule.elapsed_days == 4
    assert reviewed.schedule.phase == Phase.REVIEW
    assert len(reviewed.review_history) == 3


def test_adaptive_lesson_stays_adaptive(now):
    lesson = add(now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)
    reviewed = lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, LEGACY, now=now + timedelta(days=2))
    assert reviewed.is_adaptive
    assert reviewed.schedule.reps == 2


def test_review_preview(now):
    adaptive = add(now=now)
    options = lesson_repo.review_preview(adaptive, ADAPTIVE, now=now)
    assert options[ReviewGrade.GOOD].interval == 2

    legacy = add(now=now, settings=LEGACY)
    options = lesson_repo.review_preview(legacy, LEGACY, now=now)
    assert options[ReviewGrade.GOOD].interval == 1


def test_reviews_count_activity(now):
    lesson = add(now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.EASY, ADAPTIVE, now=now + timedelta(hours=1))
    assert database.load_activity() == [{"date": now.date(), "count": 2}]


def test_old_activity_is_pruned(now):
    database.record_activity(date(2022, 1, 1))
    database.record_activity(now.date())
    assert [row["date"] for row in database.load_activity()] == [now.date()]


# ---- Progress management ----

def test_reset_progress(now):
    lesson = add(now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.HARD, ADAPTIVE, now=now + timedelta(days=2))

    later = now + timedelta(days=3)
    reset = lesson_repo.reset_lesson_progress(lesson.id, ADAPTIVE, now=later)
    assert reset.schedule.phase == Phase.NEW
    assert reset.next_review_date == later + timedelta(days=1)

    loaded = lesson_repo.get_lesson(lesson.id)
    assert loaded.schedule.reps == 0
    assert loaded.review_history == []
    assert lesson_repo.get_review_history(lesson.id) == []


def test_migrate_all_to_fsrs(now):
    first = add("Limits", now=now, settings=LEGACY)
    add("Series", now=now, settings=LEGACY, difficulty=DifficultyLabel.HARD)
    add("Integrals", now=now)
    lesson_repo.review_lesson(first.id, ReviewGrade.GOOD, LEGACY, now=now)

    assert lesson_repo.migrate_all_to_fsrs(ADAPTIVE) == 2
    assert lesson_repo.migrate_all_to_fsrs(ADAPTIVE) == 0

    lessons = {lesson.title: lesson for lesson in lesson_repo.list_lessons()}
    assert all(lesson.is_adaptive for lesson in lessons.values())
    assert lessons["Limits"].schedule.reps == 1
    assert lessons["Limits"].schedule.last_reviewed_at == now
    assert lessons["Limits"].next_review_date == now + timedelta(days=1)
    assert lessons["Series"].schedule.phase == Phase.NEW
    assert lessons["Series"].schedule.difficulty == 7.0


# ---- Due lists ----

def test_due_and_missed(now):
    due = add("Due", now=now, start_date=now - timedelta(days=1))
    missed = add("Missed", now=now, start_date=now - timedelta(days=2))
    add("Later", now=now)

    assert [lesson.id for lesson in lesson_repo.get_due_today_lessons(now=now)] == [due.id]
    assert [lesson.id for lesson in lesson_repo.get_missed_lessons(now=now)] == [missed.id]


def test_completed_lessons_are_never_due(now):
    lesson = add(now=now, settings=LEGACY, custom_intervals=[1], start_date=now - timedelta(days=3))
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, LEGACY, now=now)
    assert lesson_repo.get_lesson(lesson.id).completed
    assert lesson_repo.get_missed_lessons(now=now) == []
    assert lesson_repo.get_due_today_lessons(now=now) == []


def test_cram_lessons_hardest_first(now):
    cram = StudySettings(use_fsrs=False, cram_mode=True)
    easy = add("Easy", now=now, settings=cram, difficulty=DifficultyLabel.EASY)
    hard = add("Hard", now=now, settings=cram, difficulty=DifficultyLabel.HARD)
    add("Far", now=now, settings=cram, custom_intervals=[10])

    lessons = lesson_repo.get_cram_mode_lessons(cram, now=now)
    assert [lesson.id for lesson in lessons] == [hard.id, easy.id]
    assert lesson_repo.get_cram_mode_lessons(LEGACY, now=now) == []


# ---- Editing ----

def test_update_lesson_details(now):
    lesson = add(now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)

    updated = lesson_repo.update_lesson(
        lesson.id,
        title="Chain rule",
        category="Analysis",
        difficulty="Hard",
        custom_intervals=[2, 4],
    )
    assert updated.difficulty == DifficultyLabel.HARD

    loaded = lesson_repo.get_lesson(lesson.id)
    assert (loaded.title, loaded.category, loaded.subject) == ("Chain rule", "Analysis", "Calculus")
    assert loaded.custom_intervals == [2, 4]
    assert loaded.schedule.reps == 1
    assert len(loaded.review_history) == 1
    assert "Analysis" in database.load_category_names()


def test_update_lesson_reschedules_and_clears_intervals(now):
    lesson = add(now=now, custom_intervals=[3])
    naive_due = (now + timedelta(days=5)).replace(tzinfo=None)

    updated = lesson_repo.update_lesson(lesson.id, next_review_date=naive_due, custom_intervals=None)
    assert updated.next_review_date == now + timedelta(days=5)
    assert lesson_repo.get_lesson(lesson.id).custom_intervals is None


@pytest.mark.parametrize("changes", [
    {"schedule": None},
    {"review_history": []},
    {"title": "  "},
    {"difficulty": "Impossible"},
    {"custom_intervals": [3, 0]},
    {"custom_intervals": []},
])
def test_update_lesson_rejects_bad_changes(now, changes):
    lesson = add(now=now)
    with pytest.raises(ValueError):
        lesson_repo.update_lesson(lesson.id, **changes)
    assert lesson_repo.get_lesson(lesson.id) == lesson


def test_update_missing_lesson(now):
    with pytest.raises(LessonNotFoundError):
        lesson_repo.update_lesson("missing", title="Nope")


# ---- Categories ----

def test_days_until_exam(now):
    add(now=now)
    today = now.date()
    assert lesson_repo.get_days_until_exam("Math", today=today) is None

    lesson_repo.set_category_exam_date("Math", today + timedelta(days=10))
    assert lesson_repo.get_days_until_exam("Math", today=today) == 10

    lesson_repo.set_category_exam_date("Math", None)
    assert lesson_repo.get_days_until_exam("Math", today=today) is None


def test_rename_category(now):
    lesson = add(now=now)
    add("Limits", now=now)
    lesson_repo.set_category_exam_date("Math", now.date() + timedelta(days=7))

    assert lesson_repo.rename_category("Math", " Calculus I ") == 2
    assert lesson_repo.get_lesson(lesson.id).category == "Calculus I"
    assert lesson_repo.get_days_until_exam("Calculus I", today=now.date()) == 7
    assert "Math" not in database.load_category_names()


def test_rename_onto_existing_category_merges(now):
    add(now=now)
    lesson_repo.add_lesson("Verbs", "Dutch", "Grammar", ADAPTIVE, now=now)
    lesson_repo.set_category_exam_date("Dutch", now.date() + timedelta(days=3))
    lesson_repo.set_category_exam_date("Math", now.date() + timedelta(days=9))

    lesson_repo.rename_category("Math", "Dutch")
    assert len(lesson_repo.list_lessons("Dutch")) == 2
    assert lesson_repo.get_days_until_exam("Dutch", today=now.date()) == 3
    assert database.load_category_names() == ["Dutch"]


def test_rename_category_rejects_empty_name(now):
    add(now=now)
    with pytest.raises(ValueError):
        lesson_repo.rename_category("Math", "   ")


def test_delete_category_moves_lessons(now):
    lesson = add(now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)

    assert lesson_repo.delete_category("Math") == 1
    moved = lesson_repo.get_lesson(lesson.id)
    assert moved.category == lesson_repo.UNCATEGORIZED
    assert moved.schedule.reps == 1
    assert database.load_category_names() == [lesson_repo.UNCATEGORIZED]


def test_delete_category_with_lessons(now):
    lesson = add(now=now)
    other = lesson_repo.add_lesson("Verbs", "Dutch", "Grammar", ADAPTIVE, now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)

    assert lesson_repo.delete_category("Math", delete_lessons=True) == 1
    with pytest.raises(LessonNotFoundError):
        lesson_repo.get_lesson(lesson.id)
    assert lesson_repo.get_review_history(lesson.id) == []
    assert [item.id for item in lesson_repo.list_lessons()] == [other.id]
    assert database.load_category_names() == ["Dutch"]


def test_delete_uncategorized_keeps_its_lessons(now):
    lesson = lesson_repo.add_lesson("Misc", lesson_repo.UNCATEGORIZED, "Notes", ADAPTIVE, now=now)
    lesson_repo.delete_category(lesson_repo.UNCATEGORIZED)
    assert lesson_repo.get_lesson(lesson.id).category == lesson_repo.UNCATEGORIZED
    assert database.load_category_names() == [lesson_repo.UNCATEGORIZED]


# ---- Naive timestamps ----

def test_naive_now_is_treated_as_utc(now):
    naive = now.replace(tzinfo=None)
    lesson = add(now=naive)
    assert lesson.date_added == now

    reviewed = lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=naive + timedelta(days=1))
    assert reviewed.schedule.elapsed_days == 1
    assert reviewed.next_review_date == now + timedelta(days=3)

    again = lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=naive + timedelta(days=3))
    assert again.schedule.elapsed_days == 2
    assert lesson_repo.review_preview(again, ADAPTIVE, now=naive)[ReviewGrade.FORGOT].interval == 1


def test_due_lists_accept_naive_now(now):
    naive = now.replace(tzinfo=None)
    cram = StudySettings(use_fsrs=False, cram_mode=True)
    due = add("Due", now=now, settings=cram, start_date=now - timedelta(days=1))
    missed = add("Missed", now=now, settings=cram, start_date=now - timedelta(days=2))

    assert [lesson.id for lesson in lesson_repo.get_due_today_lessons(now=naive)] == [due.id]
    assert [lesson.id for lesson in lesson_repo.get_missed_lessons(now=naive)] == [missed.id]
    assert len(lesson_repo.get_cram_mode_lessons(cram, now=naive)) == 2


# ---- Storage consistency ----

def test_failed_review_leaves_lesson_unchanged(now, monkeypatch):
    lesson = add(now=now)

    def failing_event(session, event):
        raise RuntimeError("disk full")

    monkeypatch.setattr(database, "_add_review_event", failing_event)
    with pytest.raises(RuntimeError):
        lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)

    loaded = lesson_repo.get_lesson(lesson.id)
    assert loaded.schedule.phase == Phase.NEW
    assert loaded.schedule.reps == 0
    assert loaded.review_history == []
    assert loaded.next_review_date == lesson.next_review_date
    assert database.load_activity() == []


def test_unknown_stored_phase_loads_as_new(now):
    lesson = add(now=now)
    lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now)
    with database.get_engine().begin() as conn:
        conn.execute(text("UPDATE lessons SET phase = 'bogus' WHERE id = :id"), {"id": lesson.id})

    assert lesson_repo.get_lesson(lesson.id).schedule == new_memory_state()

    reviewed = lesson_repo.review_lesson(lesson.id, ReviewGrade.GOOD, ADAPTIVE, now=now + timedelta(days=2))
    assert reviewed.schedule.phase == Phase.REVIEW
    assert reviewed.schedule.reps == 1
    assert reviewed.schedule.stability == pytest.approx(2.4)
