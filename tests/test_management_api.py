from tutor_center.models import Student, Teacher, User


def _pdf(name="sheet.pdf"):
    return {"file": (name, b"%PDF-1.4 worksheet", "application/pdf")}


def test_student_lookups_respect_scope(client, world, auth):
    admin_a = auth(world.admin_a)

    listed = client.get("/api/students", headers=admin_a).json()["data"]
    assert [row["id"] for row in listed] == [world.student_a1.id, world.student_a2.id]
    assert client.get(f"/api/students/{world.student_b1.id}", headers=admin_a).status_code == 403
    assert client.get("/api/students", headers=admin_a, params={"center_id": world.center_b.id}).status_code == 403
    assert client.get("/api/students/99999", headers=admin_a).status_code == 404

    mine = client.get("/api/students", headers=auth(world.teacher_a)).json()["data"]
    assert [row["id"] for row in mine] == [world.student_a1.id]


def test_create_student_checks_its_links(client, world, auth, db):
    payload = {
        "name": "Fresh Student",
        "email": "fresh.student@example.com",
        "password": "secret123",
        "center_id": world.center_a.id,
        "teacher_id": world.teacher_b.id,
        "monthly_fee": 120,
    }

    wrong_center = client.post("/api/students", headers=auth(world.admin_a), json=payload)
    assert wrong_center.status_code == 422
    assert "teacher_id" in wrong_center.json()["errors"]

    payload["teacher_id"] = world.teacher_a.id
    payload["parent_id"] = world.parent_a.id
    created = client.post("/api/students", headers=auth(world.admin_a), json=payload)
    assert created.status_code == 201
    body = created.json()["data"]
    assert body["teacher_id"] == world.teacher_a.id
    assert body["user"]["role"] == "student"
    assert body["enrollment_date"] is not None

    login = client.post("/api/auth/login", json={"email": "fresh.student@example.com", "password": "secret123"})
    assert login.status_code == 200


def test_center_admin_cannot_create_in_another_center(client, world, auth):
    response = client.post(
        "/api/students",
        headers=auth(world.admin_a),
        json={
            "name": "Elsewhere",
            "email": "elsewhere@example.com",
            "password": "secret123",
            "center_id": world.center_b.id,
        },
    )

    assert response.status_code == 403


def test_teacher_routes_are_keyed_by_user_id(client, world, auth):
    admin_a = auth(world.admin_a)

    shown = client.get(f"/api/teachers/{world.teacher_a.id}", headers=admin_a)
    assert shown.status_code == 200
    assert shown.json()["data"]["user_id"] == world.teacher_a.id
    assert client.get(f"/api/teachers/{world.teacher_b.id}", headers=admin_a).status_code == 403

    students = client.get(f"/api/teachers/{world.teacher_a.id}/students", headers=auth(world.teacher_a))
    assert [row["id"] for row in students.json()["data"]] == [world.student_a1.id]
    other = client.get(f"/api/teachers/{world.teacher_b.id}/students", headers=auth(world.teacher_a))
    assert other.status_code == 403


def test_assigning_students_stays_inside_the_center(client, world, auth, db):
    admin = auth(world.super_admin)

    cross = client.post(
        "/api/teachers/assign-students",
        headers=admin,
        json={"teacher_user_id": world.teacher_a.id, "student_ids": [world.student_b1.id]},
    )
    assert cross.status_code == 422

    ok = client.post(
        "/api/teachers/assign-students",
        headers=admin,
        json={"teacher_user_id": world.teacher_a.id, "student_ids": [world.student_a2.id]},
    )
    assert ok.status_code == 200
    db.expire_all()
    assert db.get(Student, world.student_a2.id).teacher_id == world.teacher_a.id

    client.post("/api/teachers/unassign-students", headers=admin, json={"student_ids": [world.student_a2.id]})
    db.expire_all()
    assert db.get(Student, world.student_a2.id).teacher_id is None


def test_create_and_delete_teacher(client, world, auth, db):
    admin = auth(world.admin_b)
    created = client.post(
        "/api/teachers",
        headers=admin,
        json={
            "name": "New Teacher",
            "email": "new.teacher@example.com",
            "password": "secret123",
            "center_id": world.center_b.id,
            "employee_id": "EMP-A",
        },
    )
    assert created.status_code == 409

    deleted = client.delete(f"/api/teachers/{world.teacher_b.id}", headers=admin)
    assert deleted.status_code == 200
    db.expire_all()
    assert db.get(Student, world.student_b1.id).teacher_id is None
    assert client.get(f"/api/teachers/{world.teacher_b.id}", headers=admin).status_code == 404


def test_centers(client, world, auth):
    root = auth(world.super_admin)

    taken = client.post("/api/centers", headers=root, json={"name": "East", "admin_id": world.admin_a.id})
    assert taken.status_code == 409
    not_admin = client.post("/api/centers", headers=root, json={"name": "East", "admin_id": world.parent_a.id})
    assert not_admin.status_code == 422
    created = client.post("/api/centers", headers=root, json={"name": "East", "city": "Delhi"})
    assert created.status_code == 201

    own = client.get("/api/centers", headers=auth(world.admin_a)).json()["data"]
    assert [row["id"] for row in own] == [world.center_a.id]
    stats = client.get(f"/api/centers/{world.center_a.id}/stats", headers=auth(world.admin_a)).json()["data"]
    assert stats == {"total_centers": 1, "total_students": 2, "total_teachers": 1, "total_revenue": 0.0}
    assert client.get(f"/api/centers/{world.center_b.id}", headers=auth(world.admin_a)).status_code == 403
    assert client.post("/api/centers", headers=auth(world.admin_a), json={"name": "Mine"}).status_code == 403


def test_deleting_a_center_removes_member_accounts(client, world, auth, db):
    student_user_id = world.student_b1.user.id
    teacher_user_id = world.teacher_b.id
    teacher_email = world.teacher_b.email

    response = client.delete(f"/api/centers/{world.center_b.id}", headers=auth(world.super_admin))

    assert response.status_code == 200
    db.expire_all()
    assert db.get(User, student_user_id) is None
    assert db.get(User, teacher_user_id) is None
    assert db.query(Teacher).filter(Teacher.user_id == teacher_user_id).count() == 0
    assert db.get(User, world.parent_b.id) is not None
    assert db.get(User, world.admin_b.id) is not None
    login = client.post("/api/auth/login", json={"email": teacher_email, "password": "secret123"})
    assert login.status_code == 401


def test_worksheet_upload_and_download(client, world, auth):
    root = auth(world.super_admin)
    form = {"subject_id": str(world.math.id), "level_id": str(world.level_1.id), "title": "Fractions"}

    bad = client.post(
        "/api/worksheets", headers=root, data=form, files={"file": ("notes.txt", b"hello", "text/plain")}
    )
    assert bad.status_code == 422
    assert "file" in bad.json()["errors"]

    created = client.post("/api/worksheets", headers=root, data=form, files=_pdf())
    assert created.status_code == 201
    worksheet = created.json()["data"]
    assert worksheet["file_path"].startswith("worksheets/")

    download = client.get(f"/api/worksheets/{worksheet['id']}/download", headers=auth(world.student_a1.user))
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 worksheet"


def test_worksheet_level_must_belong_to_subject(client, world, auth, db):
    other = client.post("/api/subjects", headers=auth(world.super_admin), json={"name": "English"}).json()["data"]
    form = {"subject_id": str(other["id"]), "level_id": str(world.level_1.id), "title": "Mismatch"}

    response = client.post("/api/worksheets", headers=auth(world.super_admin), data=form, files=_pdf())

    assert response.status_code == 422
    assert "level_id" in response.json()["errors"]


def test_curriculum_conflicts(client, world, auth):
    root = auth(world.super_admin)

    assert client.post("/api/subjects", headers=root, json={"name": "Math"}).status_code == 409
    assert client.delete(f"/api/levels/{world.level_1.id}", headers=root).status_code == 409

    assignment = client.post(
        "/api/assignments",
        headers=auth(world.teacher_a),
        json={"worksheet_id": world.sheet_2.id, "student_ids": [world.student_a1.id]},
    )
    assert assignment.status_code == 201
    assert client.delete(f"/api/worksheets/{world.sheet_2.id}", headers=root).status_code == 409
    assert client.delete(f"/api/worksheets/{world.sheet_3.id}", headers=root).status_code == 200


def test_dashboard_and_detailed_report(client, world, auth):
    teacher = client.get("/api/dashboard/kpis", headers=auth(world.teacher_a)).json()["data"]
    assert teacher == {"role": "teacher", "stats": {"my_students": 1, "pending_grades": 0, "avg_student_score": 0.0}}

    report = client.get(f"/api/reports/student-detailed/{world.student_a1.id}", headers=auth(world.parent_a))
    assert report.status_code == 200
    body = report.json()["data"]
    assert body["attendance"]["attendance_rate"] == 100.0
    assert body["assignments"] == {"assigned": 0, "submitted": 0, "graded": 0, "returned": 0}
    assert client.get(
        f"/api/reports/student-detailed/{world.student_b1.id}", headers=auth(world.parent_a)
    ).status_code == 403

    performance = client.get("/api/reports/center-performance", headers=auth(world.admin_b)).json()["data"]
    assert performance["center_id"] == world.center_b.id
    assert client.get(
        "/api/reports/center-performance", headers=auth(world.admin_b), params={"center_id": world.center_a.id}
    ).status_code == 403
