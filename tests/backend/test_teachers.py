from datetime import date

from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.school_backend.infra.db.wiring import get_repositories
from src.school_backend.main import app


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_teacher_classes_cover_supervised_and_taught(school):
    async with _client() as ac:
        response = await ac.get("/api/v1/teachers/classes", headers=school.headers("teacher-1"))

    assert response.status_code == status.HTTP_200_OK
    classes = {c["id"]: c for c in response.json()}
    assert set(classes) == {1, 2}
    assert classes[1]["is_supervisor"] is True
    assert classes[1]["student_count"] == 2
    assert classes[2]["is_supervisor"] is False


async def test_teacher_lessons_filtered_by_day(school):
    async with _client() as ac:
        response = await ac.get("/api/v1/teachers/lessons", params={"day": "monday"}, headers=school.headers("teacher-1"))

    assert [lesson["id"] for lesson in response.json()] == [1]


async def test_mark_attendance_creates_then_updates(school):
    headers = school.headers("teacher-1")
    payload = {
        "class_id": 1,
        "lesson_id": 1,
        "date": date.today().isoformat(),
        "records": [{"student_id": "student-1", "status": "present"}, {"student_id": "student-2", "status": "late"}],
    }
    async with _client() as ac:
        first = await ac.post("/api/v1/teachers/mark-attendance", json=payload, headers=headers)
        payload["records"] = [{"student_id": "student-1", "status": "ABSENT"}]
        second = await ac.post("/api/v1/teachers/mark-attendance", json=payload, headers=headers)

    assert first.status_code == status.HTTP_200_OK
    assert first.json()["date"] == date.today().isoformat()
    assert [r["status"] for r in first.json()["records"]] == ["PRESENT", "LATE"]

    assert second.status_code == status.HTTP_200_OK
    record = second.json()["records"][0]
    assert record["status"] == "ABSENT"
    assert record["id"] == first.json()["records"][0]["id"]
    todays = [r for r in school.store.attendance.values() if r.date == date.today() and r.student_id == "student-1"]
    assert len(todays) == 1


async def test_mark_attendance_rejects_students_outside_scope(school):
    payload = {"class_id": 1, "records": [{"student_id": "student-4", "status": "PRESENT"}]}
    async with _client() as ac:
        response = await ac.post("/api/v1/teachers/mark-attendance", json=payload, headers=school.headers("teacher-1"))

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert not any(r.student_id == "student-4" and r.date == date.today() for r in school.store.attendance.values())


async def test_mark_attendance_rejects_foreign_class(school):
    payload = {"class_id": 3, "records": [{"student_id": "student-1", "status": "PRESENT"}]}
    async with _client() as ac:
        response = await ac.post("/api/v1/teachers/mark-attendance", json=payload, headers=school.headers("teacher-1"))

    assert response.status_code == status.HTTP_403_FORBIDDEN


async def test_mark_attendance_rejects_lesson_of_another_class(school):
    payload = {"class_id": 1, "lesson_id": 2, "records": [{"student_id": "student-1", "status": "PRESENT"}]}
    async with _client() as ac:
        response = await ac.post("/api/v1/teachers/mark-attendance", json=payload, headers=school.headers("teacher-1"))

    assert response.status_code == status.HTTP_400_BAD_REQUEST


async def test_class_attendance_is_gated_by_class_scope(school):
    headers = school.headers("teacher-1")
    async with _client() as ac:
        own = await ac.get("/api/v1/teachers/class/1/attendance", headers=headers)
        foreign = await ac.get("/api/v1/teachers/class/3/attendance", headers=headers)

    assert own.status_code == status.HTTP_200_OK
    assert {s["id"] for s in own.json()["students"]} == {"student-1", "student-2"}
    assert foreign.status_code == status.HTTP_403_FORBIDDEN


async def test_teacher_attendance_defaults_to_full_percentage_when_empty(school):
    async with _client() as ac:
        response = await ac.get(
            "/api/v1/teachers/attendance",
            params={"start_date": "2000-01-01", "end_date": "2000-01-31"},
            headers=school.headers("teacher-1"),
        )

    assert response.json()["stats"]["percentage"] == 100


async def test_teacher_lessons_class_filter_is_gated(school):
    headers = school.headers("teacher-1")
    async with _client() as ac:
        own = await ac.get("/api/v1/teachers/lessons", params={"class_id": 2}, headers=headers)
        foreign = await ac.get("/api/v1/teachers/lessons", params={"class_id": 3}, headers=headers)

    assert [lesson["id"] for lesson in own.json()] == [2]
    assert foreign.status_code == status.HTTP_403_FORBIDDEN


async def test_mark_attendance_writes_whole_batch_through_one_call(school, monkeypatch):
    calls = []
    repository = type(get_repositories().attendance)
    original = repository.upsert_records

    def counting(self, **kwargs):
        calls.append(len(kwargs["entries"]))
        return original(self, **kwargs)

    monkeypatch.setattr(repository, "upsert_records", counting)
    payload = {
        "class_id": 1,
        "records": [
            {"student_id": "student-1", "status": "PRESENT"},
            {"student_id": "student-2", "status": "ABSENT"},
            {"student_id": "student-1", "status": "LATE"},
        ],
    }
    async with _client() as ac:
        response = await ac.post("/api/v1/teachers/mark-attendance", json=payload, headers=school.headers("teacher-1"))

    assert response.status_code == status.HTTP_200_OK
    assert calls == [3]
    todays = {r.student_id: r.status.value for r in school.store.attendance.values() if r.date == date.today()}
    assert todays == {"student-1": "LATE", "student-2": "ABSENT"}
