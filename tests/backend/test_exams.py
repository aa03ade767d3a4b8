from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.school_backend.main import app


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_upcoming_exams_follow_current_class(school):
    async with _client() as ac:
        student = await ac.get("/api/v1/exams/upcoming", headers=school.headers("student-1"))
        parent = await ac.get("/api/v1/exams/upcoming", headers=school.headers("parent-1"))
        admin = await ac.get("/api/v1/exams/upcoming", params={"class_id": 3}, headers=school.headers("admin-1"))

    assert [e["id"] for e in student.json()["exams"]] == [2]
    assert [e["id"] for e in parent.json()["exams"]] == [2]
    assert [e["id"] for e in admin.json()["exams"]] == [3]


async def test_upcoming_exams_reject_foreign_class(school):
    async with _client() as ac:
        response = await ac.get("/api/v1/exams/upcoming", params={"class_id": 3}, headers=school.headers("teacher-1"))

    assert response.status_code == status.HTTP_403_FORBIDDEN


async def test_report_card_groups_by_subject(school):
    async with _client() as ac:
        response = await ac.get("/api/v1/exams/report-card", headers=school.headers("student-1"))

    assert response.status_code == status.HTTP_200_OK
    card = response.json()
    assert card["student_id"] == "student-1"
    assert card["current_class"] == "7A"
    subjects = {s["subject"]: s for s in card["subjects"]}
    assert subjects["Mathematics"]["average_score"] == 80
    assert len(subjects["Mathematics"]["exam_results"]) == 1
    assert len(subjects["English"]["assignment_results"]) == 1
    assert card["overall_average"] == 86


async def test_report_card_requires_student_for_other_roles(school):
    async with _client() as ac:
        missing = await ac.get("/api/v1/exams/report-card", headers=school.headers("parent-1"))
        foreign = await ac.get("/api/v1/exams/report-card", params={"student_id": "student-4"}, headers=school.headers("parent-1"))
        unknown = await ac.get("/api/v1/exams/report-card", params={"student_id": "nobody"}, headers=school.headers("admin-1"))

    assert missing.status_code == status.HTTP_400_BAD_REQUEST
    assert foreign.status_code == status.HTTP_403_FORBIDDEN
    assert unknown.status_code == status.HTTP_404_NOT_FOUND
