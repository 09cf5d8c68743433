from datetime import date, timedelta

from tutor_center.models import Attendance, Fee


def test_generating_a_month_twice_bills_once(client, world, auth, db):
    admin = auth(world.admin_a)

    first = client.post("/api/fees/generate", headers=admin, json={"month": "2024-02"})
    assert first.status_code == 201
    rows = first.json()["data"]
    assert {row["student_id"] for row in rows} == {world.student_a1.id, world.student_a2.id}
    assert {row["due_date"] for row in rows} == {"2024-02-29"}
    assert {row["amount"] for row in rows} == {100, 50}
    assert all(row["status"] == "unpaid" for row in rows)

    second = client.post("/api/fees/generate", headers=admin, json={"month": "2024-02"})
    assert second.status_code == 201
    assert second.json()["data"] == []
    assert db.query(Fee).filter(Fee.month == "2024-02").count() == 2


def test_generate_rejects_bad_month(client, world, auth):
    response = client.post("/api/fees/generate", headers=auth(world.admin_a), json={"month": "2024-13"})

    assert response.status_code == 422
    assert "month" in response.json()["errors"]


def test_center_admin_cannot_bill_another_center(client, world, auth):
    response = client.post(
        "/api/fees/generate", headers=auth(world.admin_a), json={"month": "2024-02", "center_id": world.center_b.id}
    )

    assert response.status_code == 403


def test_pay_and_report(client, world, auth):
    admin = auth(world.admin_a)
    rows = client.post("/api/fees/generate", headers=admin, json={"month": "2024-03"}).json()["data"]
    fee_a1 = next(row for row in rows if row["student_id"] == world.student_a1.id)

    paid = client.put(
        f"/api/fees/{fee_a1['id']}/pay", headers=admin, json={"payment_method": "cash", "paid_date": "2024-03-05"}
    )
    assert paid.status_code == 200
    assert paid.json()["data"]["status"] == "paid"
    assert paid.json()["data"]["paid_date"] == "2024-03-05"

    report = client.get("/api/fees/report", headers=admin).json()["data"]
    by_status = {item["status"]: item for item in report["by_status"]}
    assert by_status["paid"]["count"] == 1
    assert by_status["unpaid"]["total_amount"] == 50
    assert round(report["fee_collection_rate"], 2) == 66.67

    collection = client.get("/api/reports/fee-collection", headers=admin).json()["data"]
    assert collection[0]["month"] == "2024-03"
    assert collection[0]["total_collected"] == 100


def test_future_paid_date_is_rejected(client, world, auth):
    admin = auth(world.admin_a)
    fee_id = client.post("/api/fees/generate", headers=admin, json={"month": "2024-03"}).json()["data"][0]["id"]
    tomorrow = (date.today() + timedelta(days=1)).isoformat()

    response = client.put(f"/api/fees/{fee_id}/pay", headers=admin, json={"payment_method": "card", "paid_date": tomorrow})

    assert response.status_code == 422


def test_mark_overdue_only_touches_past_due_unpaid(client, world, auth, db):
    admin = auth(world.admin_a)
    client.post("/api/fees/generate", headers=admin, json={"month": "2024-01"})

    response = client.post("/api/fees/mark-overdue", headers=admin)

    assert response.status_code == 200
    assert response.json()["data"] == {"updated_count": 2}
    outstanding = client.get("/api/fees/unpaid-overdue", headers=admin).json()["data"]
    assert {row["status"] for row in outstanding} == {"overdue"}


def test_fees_are_hidden_from_teachers_and_other_parents(client, world, auth):
    client.post("/api/fees/generate", headers=auth(world.super_admin), json={"month": "2024-02"})

    assert client.get("/api/fees", headers=auth(world.teacher_a)).status_code == 403
    assert client.get(f"/api/students/{world.student_a1.id}/fees", headers=auth(world.teacher_a)).status_code == 403
    mine = client.get("/api/parent/children-fees", headers=auth(world.parent_a)).json()["data"]
    assert [row["student_id"] for row in mine] == [world.student_a1.id]
    assert client.get(f"/api/students/{world.student_b1.id}/fees", headers=auth(world.parent_a)).status_code == 403


def test_marking_the_same_day_twice_updates_in_place(client, world, auth, db):
    teacher = auth(world.teacher_a)
    payload = {"date": "2024-03-01", "attendance": [{"student_id": world.student_a1.id, "status": "present"}]}

    first = client.post("/api/attendance/bulk", headers=teacher, json=payload)
    assert first.status_code == 200
    row = first.json()["data"][0]
    assert row["center_id"] == world.center_a.id
    assert row["marked_by"] == world.teacher_a.id

    payload["attendance"][0]["status"] = "absent"
    second = client.post("/api/attendance/bulk", headers=teacher, json=payload)
    assert second.status_code == 200
    assert second.json()["data"][0]["id"] == row["id"]
    assert second.json()["data"][0]["status"] == "absent"
    assert db.query(Attendance).count() == 1


def test_attendance_cannot_be_marked_ahead(client, world, auth):
    tomorrow = (date.today() + timedelta(days=1)).isoformat()

    response = client.post(
        "/api/attendance/bulk",
        headers=auth(world.admin_a),
        json={"date": tomorrow, "attendance": [{"student_id": world.student_a1.id, "status": "present"}]},
    )

    assert response.status_code == 422
    assert "date" in response.json()["errors"]


def test_teacher_cannot_mark_foreign_students(client, world, auth, db):
    response = client.post(
        "/api/attendance/bulk",
        headers=auth(world.teacher_a),
        json={"date": "2024-03-01", "attendance": [{"student_id": world.student_a2.id, "status": "present"}]},
    )

    assert response.status_code == 403
    assert db.query(Attendance).count() == 0


def test_attendance_summary_for_a_month(client, world, auth):
    admin = auth(world.admin_a)
    client.post(
        "/api/attendance/bulk",
        headers=admin,
        json={
            "date": "2024-03-01",
            "attendance": [
                {"student_id": world.student_a1.id, "status": "present"},
                {"student_id": world.student_a2.id, "status": "late"},
            ],
        },
    )
    client.post(
        "/api/attendance/bulk",
        headers=admin,
        json={"date": "2024-04-01", "attendance": [{"student_id": world.student_a1.id, "status": "absent"}]},
    )

    summary = client.get("/api/attendance/summary", headers=admin, params={"month": "2024-03"}).json()["data"]

    assert summary["center_id"] == world.center_a.id
    assert {item["status"]: item["count"] for item in summary["counts"]} == {"present": 1, "absent": 0, "late": 1}
    assert summary["attendance_rate"] == 50.0
    history = client.get("/api/attendance", headers=auth(world.parent_a), params={"month": "2024-04"}).json()["data"]
    assert [(row["student_id"], row["status"]) for row in history] == [(world.student_a1.id, "absent")]


def test_attendance_summary_needs_a_real_month(client, world, auth):
    response = client.get("/api/attendance/summary", headers=auth(world.admin_a), params={"month": "March"})

    assert response.status_code == 422


def test_filtering_by_a_foreign_child_is_forbidden(client, world, auth):
    client.post("/api/fees/generate", headers=auth(world.super_admin), json={"month": "2024-02"})
    parent = auth(world.parent_a)

    for path in ("/api/fees", "/api/attendance"):
        foreign = client.get(path, headers=parent, params={"student_id": world.student_b1.id})
        assert foreign.status_code == 403
        assert foreign.json()["status"] == "Error"
        assert client.get(path, headers=parent, params={"student_id": world.student_a1.id}).status_code == 200

    other_center = client.get("/api/fees", headers=auth(world.admin_a), params={"student_id": world.student_b1.id})
    assert other_center.status_code == 403
    missing = client.get("/api/attendance", headers=parent, params={"student_id": 4242})
    assert missing.status_code == 404


def test_teacher_attendance_filter_stays_on_own_students(client, world, auth):
    response = client.get("/api/attendance", headers=auth(world.teacher_a), params={"student_id": world.student_a2.id})

    assert response.status_code == 403
