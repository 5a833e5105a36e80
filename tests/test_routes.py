from app import create_app
from conftest import ADMIN_EMAIL, AppTestConfig, fixed_clock, login
from models import UserAccessInput


def test_healthz_is_public(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.get_json()["store"] == "mock"


def test_protected_pages_redirect_to_login(client):
    r = client.get("/finance")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/login")
    r = client.post("/finance", json={})
    assert r.status_code == 401
    assert r.get_json()["redirect"] == "/login"


def test_bad_credentials_rejected(client):
    r = login(client, password="nope-nope")
    assert r.status_code == 401
    assert r.get_json() == {"ok": False, "error": "Invalid email or password."}
    assert client.get("/session").get_json()["phase"] == "logged_out"


def test_admin_login_and_dashboard(client):
    r = login(client)
    assert r.status_code == 200
    body = r.get_json()
    assert body["redirect"] == "/"
    assert body["user"]["email"] == ADMIN_EMAIL

    session = client.get("/session").get_json()
    assert session["phase"] == "ready"
    assert [i["title"] for i in session["navItems"]][0] == "Dashboard"

    dash = client.get("/?month=2026-03").get_json()
    assert dash["month"] == "2026-03"
    assert dash["metrics"]["activeStudents"] == 5
    # Demo pending fee plus four generated dues
    assert dash["metrics"]["feesPending"] == 2500.0 + 4 * 3000.0
    assert len(client.get("/?month=all").get_json()["trend"]) == 6
    assert client.get("/?month=March").status_code == 400


def test_logout_ends_the_session(client):
    login(client)
    r = client.get("/students")
    assert r.status_code == 200
    assert client.get("/logout").get_json()["redirect"] == "/login"
    assert client.get("/students").status_code == 302


def test_finance_crud_and_errors(client):
    login(client)
    r = client.post("/finance", json={
        "transactionDate": "2026-03-19", "category": "Supplies", "type": "expense",
        "amount": "450", "status": "paid",
    })
    assert r.status_code == 201
    created = r.get_json()["transaction"]
    assert created["description"] == "Supplies transaction"
    assert created["studentId"] is None

    bad = client.post("/finance", json={"transactionDate": "2026-03-19", "category": "Rent",
                                        "type": "expense", "amount": "0", "status": "paid"})
    assert bad.status_code == 400
    assert bad.get_json()["ok"] is False

    toggled = client.post("/finance/fin-014/toggle").get_json()["transaction"]
    assert toggled["status"] == "paid"
    assert client.delete(f"/finance/{created['id']}").status_code == 200
    missing = client.delete("/finance/nope")
    assert missing.status_code == 404
    assert missing.get_json()["error"] == "Transaction not found."


def test_student_and_attendance_endpoints(client):
    login(client)
    r = client.post("/students", json={"name": "Tara", "phone": "77", "joinDate": "2026-03-18", "teacher": "Priya Nair"})
    assert r.status_code == 201
    student_id = r.get_json()["student"]["id"]

    fees = client.get(f"/students/{student_id}/transactions").get_json()["transactions"]
    assert len(fees) == 1 and fees[0]["status"] == "pending"

    paid = client.post(f"/students/{student_id}/transactions", json={
        "transactionDate": "2026-03-19", "amount": 3000, "status": "paid",
    })
    assert paid.status_code == 201
    assert paid.get_json()["transaction"]["category"] == "Student Fee"

    saved = client.post("/students/attendance", json={
        "date": "2026-03-21",
        "entries": [{"studentId": student_id, "status": "present"}],
    }).get_json()
    assert saved["records"][0]["studentName"] == "Tara"
    day = client.get("/students/attendance?date=2026-03-21").get_json()
    assert len(day["records"]) == 1

    assert client.post("/students/attendance", json={"date": "2026-03-21", "entries": "x"}).status_code == 400
    assert client.delete(f"/students/{student_id}").status_code == 200


def test_settings_require_confirmation_for_reset(client):
    login(client)
    assert client.post("/settings/reset", json={}).status_code == 400
    r = client.put("/settings/profile", json={"businessName": "Bright Minds", "ownerName": "Asha"})
    assert r.get_json()["profile"]["businessName"] == "Bright Minds"
    reset = client.post("/settings/reset", json={"confirm": "reset"}).get_json()
    assert len(reset["snapshot"]["students"]) == 6


def test_tutor_is_scoped_and_kept_on_students(client, service):
    service.create_user_access(
        "mock-owner", UserAccessInput("tutor@example.org", "tutor-pass", "students_only", ("Arjun Rao",))
    )
    r = login(client, "tutor@example.org", "tutor-pass")
    assert r.get_json()["redirect"] == "/students"

    home = client.get("/")
    assert home.status_code == 302 and home.headers["Location"].endswith("/students")
    assert client.post("/settings/reset", json={"confirm": "RESET"}).status_code == 403

    students = client.get("/students").get_json()["students"]
    assert {s["id"] for s in students} == {"stu-002", "stu-004"}
    assert client.get("/students/stu-001/transactions").status_code == 404
    assert client.get("/session").get_json()["navItems"] == [{"title": "Students", "href": "/students"}]


def test_account_without_role_is_refused(client, service):
    user = service.create_user_access("mock-owner", UserAccessInput("new@example.org", "new-pass", "admin"))
    service.delete_user_access("mock-owner", user.user_id, "access")
    r = login(client, "new@example.org", "new-pass")
    assert r.status_code == 403
    assert "no access role" in r.get_json()["error"]


def test_access_management_endpoints(client):
    login(client)
    created = client.post("/access-management/users", json={
        "email": "Helper@Example.org", "password": "helper1", "role": "students_only",
        "assignedTeachers": "Priya Nair, Arjun Rao",
    })
    assert created.status_code == 201
    user = created.get_json()["user"]
    assert user["email"] == "helper@example.org"
    assert user["assignedTeachers"] == ["Priya Nair", "Arjun Rao"]

    users = client.get("/access-management/users").get_json()["users"]
    owner = next(u for u in users if u["email"] == ADMIN_EMAIL)
    demote_self = client.put(f"/access-management/users/{owner['userId']}", json={"role": "students_only"})
    assert demote_self.status_code == 403
    assert demote_self.get_json()["error"] == "You cannot modify or delete your own account or access."

    assert client.put(f"/access-management/users/{user['userId']}", json={"role": "admin"}).status_code == 200
    bad_mode = client.delete(f"/access-management/users/{user['userId']}?mode=wipe")
    assert bad_mode.status_code == 400
    assert client.delete(f"/access-management/users/{user['userId']}?mode=user").status_code == 200


def test_auth_disabled_serves_everything_as_owner(service):
    class OpenConfig(AppTestConfig):
        AUTH_ENABLED = False

    app = create_app(OpenConfig, data_service=service)
    app.extensions["coaching_clock"] = fixed_clock
    with app.test_client() as c:
        assert c.get("/finance").status_code == 200
        assert c.get("/settings/profile").get_json()["profile"]["businessName"]
        assert len(c.get("/session").get_json()["navItems"]) == 5


def test_tutor_manages_monthly_fees_of_own_students(client, service):
    service.create_user_access(
        "mock-owner", UserAccessInput("priya@example.org", "tutor-pass", "students_only", ("Priya Nair",))
    )
    login(client, "priya@example.org", "tutor-pass")

    fees = client.get("/students/fees?month=2026-03").get_json()
    assert fees["monthOptions"][0]["value"] == "2026-03"
    rows = {r["student"]["id"]: r for r in fees["rows"]}
    assert set(rows) == {"stu-001", "stu-003"}
    assert rows["stu-003"]["primaryTransaction"]["id"] == "fin-014"
    assert rows["stu-003"]["isPaid"] is False
    assert rows["stu-001"]["primaryTransaction"] is None

    marked = client.put("/students/stu-003/fee-status", json={"month": "2026-03", "paid": True})
    assert marked.get_json()["transaction"]["id"] == "fin-014"
    assert marked.get_json()["transaction"]["status"] == "paid"

    created = client.put("/students/stu-001/fee-status", json={"month": "2026-02", "status": "paid"})
    row = created.get_json()["transaction"]
    assert row["transactionDate"] == "2026-02-01"
    assert row["description"] == "February 2026 fee status"
    feb = client.get("/students/fees?month=2026-02").get_json()["rows"]
    assert next(r for r in feb if r["student"]["id"] == "stu-001")["isPaid"] is True

    toggled = client.post("/students/stu-003/transactions/fin-014/toggle")
    assert toggled.get_json()["transaction"]["status"] == "pending"
    edited = client.put("/students/stu-003/transactions/fin-014", json={
        "transactionDate": "2026-03-05", "amount": 2600, "status": "paid",
    })
    assert edited.get_json()["transaction"]["amount"] == 2600.0
    assert edited.get_json()["transaction"]["studentId"] == "stu-003"

    fee = client.put("/students/stu-003/monthly-fee", json={"monthlyFee": 3200})
    assert fee.get_json()["student"]["monthlyFee"] == 3200.0

    assert client.put("/students/stu-002/fee-status", json={"paid": True}).status_code == 404
    assert client.post("/students/stu-001/transactions/fin-014/toggle").status_code == 404
    assert client.post("/finance/fin-014/toggle").status_code == 403
    assert client.get("/students/fees?month=March").status_code == 400


def test_attendance_batch_comes_from_the_student(client):
    login(client)
    saved = client.post("/students/attendance", json={
        "date": "2026-03-21", "entries": [{"studentId": "stu-002", "status": "present"}],
    }).get_json()
    assert saved["records"][0]["batch"] == "evening"

    missing = client.post("/students/attendance", json={
        "date": "2026-03-21", "entries": [{"studentId": "stu-404", "status": "present"}],
    })
    assert missing.status_code == 404
    assert missing.get_json()["error"] == "Student not found."


def test_announcements_endpoints(client):
    login(client)
    r = client.post("/announcements", json={"title": "Holiday", "message": "Closed Friday", "date": "2026-03-27"})
    assert r.status_code == 201
    created = r.get_json()["announcement"]

    missing = client.post("/announcements", json={"title": "Holiday"})
    assert missing.status_code == 400
    assert missing.get_json()["error"] == "Missing required fields: title, message, date"

    listed = client.get("/announcements").get_json()
    assert listed["count"] == 1
    assert client.get("/").get_json()["announcements"][0]["title"] == "Holiday"

    assert client.delete("/announcements").status_code == 400
    assert client.delete(f"/announcements?id={created['id']}").status_code == 200
    assert client.get("/announcements").get_json()["count"] == 0
    assert client.delete(f"/announcements/{created['id']}").status_code == 404
