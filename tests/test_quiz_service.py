import pytest
from sqlalchemy import select, func

from core.exceptions import NotFoundError, ValidationError
from models.quiz import Question
from services.attempt_service import AttemptService
from services.quiz_service import QuizService, validate_question
from services.stats_service import StatsService

pytestmark = pytest.mark.asyncio


class TestValidateQuestion:
    async def test_normalizes_multiple_choice_list(self):
        cleaned = validate_question(0, {
            "type": "multiple_choice", "question": " Q? ", "options": ["a", "b"], "correct_answers": ["b"],
        })
        assert cleaned["correct_answers"] == "b"
        assert cleaned["question"] == "Q?"
        assert cleaned["points"] == 1

    async def test_short_answer_drops_options(self):
        cleaned = validate_question(0, {
            "type": "short_answer", "question": "Q", "options": ["x"], "correct_answers": "Paris",
        })
        assert cleaned["options"] is None
        assert cleaned["correct_answers"] == ["Paris"]

    @pytest.mark.parametrize("payload", [
        {"type": "essay", "question": "Q", "correct_answers": "x"},
        {"type": "short_answer", "question": "  ", "correct_answers": "x"},
        {"type": "short_answer", "question": "Q", "correct_answers": []},
        {"type": "multiple_choice", "question": "Q", "options": ["a"], "correct_answers": "a"},
        {"type": "multiple_choice", "question": "Q", "options": ["a", "b"], "correct_answers": "c"},
        {"type": "checkbox", "question": "Q", "options": ["a", "b"], "correct_answers": ["a", "z"]},
        {"type": "short_answer", "question": "Q", "correct_answers": "x", "points": 0},
        {"type": "short_answer", "question": "Q", "correct_answers": "x", "points": True},
    ])
    async def test_rejects(self, payload):
        with pytest.raises(ValidationError):
            validate_question(0, payload)


async def test_create_counts_and_awards_creator(db, sample_questions):
    service = QuizService(db)
    quiz, achievements = await service.create_quiz(
        "carol", "  Mixed bag ", sample_questions, description="All types", tags=["math", " geo ", "math"],
    )

    assert quiz.title == "Mixed bag"
    assert quiz.tags == ["geo", "math"]
    assert quiz.difficulty == "medium"
    assert quiz.is_published is False
    assert quiz.total_points == 0
    assert [a.type for a in achievements] == ["first_creator"]

    questions = await service.get_questions(quiz.id)
    assert [q.order for q in questions] == [0, 1, 2]
    assert [q.type for q in questions] == ["multiple_choice", "checkbox", "short_answer"]

    stat = await StatsService(db).get_user_stats("carol")
    assert stat.quizzes_created == 1
    assert stat.quizzes_taken == 0

    _, second_awards = await service.create_quiz("carol", "Again", sample_questions)
    assert second_awards == []
    assert (await StatsService(db).get_user_stats("carol")).quizzes_created == 2


async def test_create_rejects_bad_input(db, sample_questions):
    service = QuizService(db)
    with pytest.raises(ValidationError):
        await service.create_quiz("carol", " ", sample_questions)
    with pytest.raises(ValidationError):
        await service.create_quiz("carol", "Empty", [])
    with pytest.raises(ValidationError):
        await service.create_quiz("carol", "Hard", sample_questions, difficulty="extreme")
    assert await service.get_user_quizzes("carol") == []


async def test_publish_snapshots_total_points(db, sample_questions):
    service = QuizService(db)
    quiz, _ = await service.create_quiz("carol", "Draft", sample_questions)

    with pytest.raises(NotFoundError):
        await service.publish_quiz(quiz.id, user_id="mallory")

    published = await service.publish_quiz(quiz.id, user_id="carol")
    assert published.is_published is True
    assert published.total_points == 4
    assert [q.id for q in await service.get_published_quizzes()] == [quiz.id]


async def test_update_and_delete(db, sample_questions):
    service = QuizService(db)
    quiz, _ = await service.create_quiz("carol", "Old", sample_questions, publish=True)
    await AttemptService(db).submit(quiz.id, "dave", score=1, total_points=4, percentage=25, answers={})

    updated = await service.update_quiz(quiz.id, "carol", title="New", difficulty="hard")
    assert (updated.title, updated.difficulty) == ("New", "hard")

    with pytest.raises(ValidationError):
        await service.update_quiz(quiz.id, "carol", total_points=100)
    with pytest.raises(NotFoundError):
        await service.update_quiz(quiz.id, "mallory", title="Mine")
    with pytest.raises(NotFoundError):
        await service.delete_quiz(quiz.id, "mallory")

    assert await service.delete_quiz(quiz.id, "carol") is True
    assert await service.get_quiz(quiz.id) is None
    remaining = (await db.execute(select(func.count(Question.id)).filter(Question.quiz_id == quiz.id))).scalar()
    assert remaining == 0
    assert await AttemptService(db).get_quiz_attempts(quiz.id) == []


async def test_search(db, sample_questions):
    service = QuizService(db)
    algebra, _ = await service.create_quiz(
        "carol", "Algebra basics", sample_questions, tags=["Math"], publish=True,
    )
    capitals, _ = await service.create_quiz(
        "carol", "Capitals", sample_questions, description="World geography", tags=["geo"], publish=True,
    )
    await service.create_quiz("carol", "Algebra draft", sample_questions, tags=["math"])

    assert [q.id for q in await service.search_quizzes("ALGEBRA")] == [algebra.id]
    assert [q.id for q in await service.search_quizzes("geography")] == [capitals.id]
    assert [q.id for q in await service.search_quizzes("", tags=["math"])] == [algebra.id]
    assert await service.search_quizzes("algebra", tags=["geo"]) == []
    assert len(await service.search_quizzes()) == 2


async def test_analytics_and_dashboard(db, sample_questions):
    service = QuizService(db)
    quiz, _ = await service.create_quiz("carol", "Stats", sample_questions, publish=True)
    await service.create_quiz("carol", "Draft", sample_questions)

    attempts = AttemptService(db)
    await attempts.submit(quiz.id, "dave", score=4, total_points=4, percentage=100, answers={}, time_spent=10)
    await attempts.submit(quiz.id, "erin", score=1, total_points=4, percentage=25, answers={}, time_spent=15)
    await attempts.submit(quiz.id, "carol", score=2, total_points=4, percentage=50, answers={})

    analytics = await service.get_quiz_analytics(quiz.id)
    # (100 + 25 + 50) / 3 = 58.3, (10 + 15) / 2 = 12.5
    assert analytics == {"total_attempts": 3, "average_score": 58, "average_time": 13}
    assert await service.get_quiz_analytics(12345) == {"total_attempts": 0, "average_score": 0, "average_time": 0}

    dashboard = await service.get_dashboard_stats("carol")
    assert dashboard == {
        "total_quizzes_created": 2,
        "published_quizzes": 1,
        "total_attempts_on_my_quizzes": 3,
        "my_quizzes_taken": 1,
        "my_average_score": 50,
        "my_current_streak": 0,
    }


async def test_search_filters_and_sorting(db, sample_questions, four_point_questions):
    service = QuizService(db)
    easy, _ = await service.create_quiz(
        "carol", "Zoology", four_point_questions, difficulty="easy", tags=["animals"], publish=True,
    )
    hard, _ = await service.create_quiz(
        "carol", "Botany", sample_questions, difficulty="hard", tags=["plants"], publish=True,
    )
    medium, _ = await service.create_quiz("carol", "Anatomy", sample_questions, publish=True)

    assert [q.id for q in await service.search_quizzes(difficulty="hard")] == [hard.id]
    assert len(await service.search_quizzes(difficulty="all")) == 3

    assert [q.id for q in await service.search_quizzes()] == [medium.id, hard.id, easy.id]
    assert [q.id for q in await service.search_quizzes(sort_by="oldest")] == [easy.id, hard.id, medium.id]
    assert [q.title for q in await service.search_quizzes(sort_by="title")] == ["Anatomy", "Botany", "Zoology"]
    # 4 points for every quiz, id breaks the tie
    assert [q.id for q in await service.search_quizzes(sort_by="points")] == [medium.id, hard.id, easy.id]
    assert [q.id for q in await service.search_quizzes(sort_by="bogus")] == [medium.id, hard.id, easy.id]

    assert len(await service.search_quizzes(limit=2)) == 2
    assert [q.id for q in await service.search_quizzes(tags=["plants", "animals"], limit=1)] == [hard.id]


async def test_all_tags_and_counts(db, sample_questions):
    service = QuizService(db)
    await service.create_quiz("carol", "One", sample_questions, tags=["math", " geo "], publish=True)
    await service.create_quiz("carol", "Two", sample_questions, tags=["math", "art"], publish=True)
    await service.create_quiz("carol", "Draft", sample_questions, tags=["secret"])

    assert await service.get_all_tags() == ["art", "geo", "math"]
    assert await service.get_quiz_counts() == {"total": 3, "published": 2}


async def test_empty_catalogue(db):
    service = QuizService(db)
    assert await service.get_all_tags() == []
    assert await service.get_quiz_counts() == {"total": 0, "published": 0}
