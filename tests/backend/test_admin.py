from datetime import date, timedelta

from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.school_backend.main import app


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_admin_lists(school):
    headers = school.headers("admin-1")
    async with _client() as ac:
        students = await ac.get("/api/v1/admin/students", headers=headers)
        teachers = await ac.get("/api/v1/admin/teachers", headers=headers)
        classes = await ac.get("/api/v1/admin/classes", headers=headers)

    assert students.status_code == status.HTTP_200_OK
    by_id = {s["student"]["id"]: s for s in students.json()}
    assert len(by_id) == 5
    assert by_id["student-5"]["current_class"]["name"] == "8A"
    assert by_id["student-4"]["parent"]["id"] == "parent-2"

    assert {t["teacher"]["id"]: t["class_ids"] for t in teachers.json()} == {"teacher-1": [1, 2], "teacher-2": [2, 3]}

    assert [c["name"] for c in classes.json()] == ["7A", "7B", "8A"]
    assert classes.json()[2]["student_count"] == 2


async def test_admin_stats(school):
    async with _client() as ac:
        response = await ac.get("/api/v1/admin/stats", headers=school.headers("admin-1"))

    assert response.json() == {
        "total_students": 5,
        "total_teachers": 2,
        "total_classes": 3,
        "total_fees": 4,
        "total_payments": 2,
    }


async def test_admin_routes_reject_accountant(school):
    async with _client() as ac:
        response = await ac.get("/api/v1/admin/students", headers=school.headers("accountant-1"))

    assert response.status_code == status.HTTP_403_FORBIDDEN


async def test_school_wide_admin_routes_reject_unprovisioned_admin(school):
    headers = school.headers("ghost-admin", role="admin")
    async with _client() as ac:
        teachers = await ac.get("/api/v1/admin/teachers", headers=headers)
        stats = await ac.get("/api/v1/admin/stats", headers=headers)
        dashboard = await ac.get("/api/v1/dashboard/admin", headers=headers)

    assert teachers.status_code == status.HTTP_403_FORBIDDEN
    assert stats.status_code == status.HTTP_403_FORBIDDEN
    assert dashboard.status_code == status.HTTP_403_FORBIDDEN


async def test_class_attendance_from_today(school):
    headers = school.headers("admin-1")
    since = (date.today() - timedelta(days=1)).isoformat()
    async with _client() as ac:
        today = await ac.get("/api/v1/admin/attendance/1", headers=headers)
        recent = await ac.get("/api/v1/admin/attendance/1", params={"since": since}, headers=headers)
        unknown = await ac.get("/api/v1/admin/attendance/99", headers=headers)

    assert today.status_code == status.HTTP_200_OK
    assert today.json() == []
    assert [r["id"] for r in recent.json()] == [3, 2]
    assert unknown.status_code == status.HTTP_403_FORBIDDEN


async def test_admin_marks_student_attendance(school):
    headers = school.headers("admin-1")
    body = {"student_id": "student-4", "class_id": 3, "status": "late"}
    async with _client() as ac:
        first = await ac.post("/api/v1/admin/attendance/mark", json=body, headers=headers)
        second = await ac.post("/api/v1/admin/attendance/mark", json={**body, "status": "PRESENT"}, headers=headers)
        wrong_class = await ac.post(
            "/api/v1/admin/attendance/mark", json={**body, "class_id": 1}, headers=headers
        )

    assert first.status_code == status.HTTP_200_OK
    assert first.json()["status"] == "LATE"
    assert first.json()["lesson_id"] is None
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["status"] == "PRESENT"
    assert wrong_class.status_code == status.HTTP_400_BAD_REQUEST
    todays = [r for r in school.store.attendance.values() if r.student_id == "student-4" and r.date == date.today()]
    assert len(todays) == 1


async def test_teacher_attendance_marking_and_listing(school):
    headers = school.headers("admin-1")
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    async with _client() as ac:
        marked = await ac.post(
            "/api/v1/admin/teacher-attendance/mark", json={"teacher_id": "teacher-1", "status": "absent"}, headers=headers
        )
        await ac.post(
            "/api/v1/admin/teacher-attendance/mark",
            json={"teacher_id": "teacher-2", "date": yesterday},
            headers=headers,
        )
        unknown = await ac.post(
            "/api/v1/admin/teacher-attendance/mark", json={"teacher_id": "teacher-9"}, headers=headers
        )
        today = await ac.get("/api/v1/admin/teacher-attendance", headers=headers)
        earlier = await ac.get("/api/v1/admin/teacher-attendance", params={"date": yesterday}, headers=headers)
        denied = await ac.get("/api/v1/admin/teacher-attendance", headers=school.headers("teacher-1"))

    assert marked.status_code == status.HTTP_200_OK
    assert marked.json()["status"] == "ABSENT"
    assert unknown.status_code == status.HTTP_404_NOT_FOUND
    assert [(r["teacher_id"], r["status"]) for r in today.json()] == [("teacher-1", "ABSENT")]
    assert [(r["teacher_id"], r["status"]) for r in earlier.json()] == [("teacher-2", "PRESENT")]
    assert denied.status_code == status.HTTP_403_FORBIDDEN
