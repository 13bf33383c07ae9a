import unittest
from dataclasses import replace
from datetime import date
from typing import Dict, List, Optional

from fastapi.testclient import TestClient

from gradetrackr.api import app, get_auth, get_store
from gradetrackr.core.models import AssessmentType, Grade, Profile, Subject
from gradetrackr.services.appwrite_service import StorageServiceError
from gradetrackr.services.auth_service import Anonymous, AuthResult, AuthServiceError, Authenticated


class FakeStore:
    """In-memory stand-in for AppwriteService, scoped per user."""

    def __init__(self) -> None:
        self.subjects: Dict[str, Dict[str, Subject]] = {}
        self.grades: Dict[str, Dict[str, Grade]] = {}
        self.profiles: Dict[str, Profile] = {}
        self._next = 0

    def _id(self, prefix: str) -> str:
        self._next += 1
        return f"{prefix}{self._next}"

    def ensure_profile(self, uid: str, display_name: Optional[str] = None) -> None:
        self.profiles.setdefault(uid, Profile(display_name=display_name))

    def get_profile(self, uid: str) -> Profile:
        return self.profiles.get(uid, Profile())

    def list_subjects(self, uid: str) -> List[Subject]:
        return sorted(self.subjects.get(uid, {}).values(), key=lambda s: s.name)

    def get_subject(self, uid: str, subject_id: str) -> Optional[Subject]:
        return self.subjects.get(uid, {}).get(subject_id)

    def create_subject(self, uid: str, *, name: str, color: str, target_grade: Optional[float] = None) -> Subject:
        subject = Subject(id=self._id("s"), name=name, color=color, target_grade=target_grade)
        self.subjects.setdefault(uid, {})[subject.id] = subject
        return subject

    def update_subject(self, uid: str, subject_id: str, **changes) -> Subject:
        subject = self.get_subject(uid, subject_id)
        if subject is None:
            raise StorageServiceError("Subject not found.")
        updated = replace(subject, **changes)
        self.subjects[uid][subject_id] = updated
        return updated

    def delete_subject(self, uid: str, subject_id: str) -> None:
        self.subjects.get(uid, {}).pop(subject_id, None)
        for grade_id, grade in list(self.grades.get(uid, {}).items()):
            if grade.subject_id == subject_id:
                del self.grades[uid][grade_id]

    def list_grades(self, uid: str, subject_id: Optional[str] = None) -> List[Grade]:
        grades = [
            grade
            for grade in self.grades.get(uid, {}).values()
            if subject_id is None or grade.subject_id == subject_id
        ]
        return sorted(grades, key=lambda g: g.test_date, reverse=True)

    def create_grade(self, uid: str, *, subject_id: str, **fields) -> Grade:
        if self.get_subject(uid, subject_id) is None:
            raise StorageServiceError("Subject not found for grade input.")
        grade = Grade(id=self._id("g"), subject_id=subject_id, **fields)
        self.grades.setdefault(uid, {})[grade.id] = grade
        return grade

    def update_grade(self, uid: str, grade_id: str, **changes) -> Grade:
        grade = self.grades.get(uid, {}).get(grade_id)
        if grade is None:
            raise StorageServiceError("Grade not found.")
        updated = replace(grade, **changes)
        self.grades[uid][grade_id] = updated
        return updated

    def delete_grade(self, uid: str, grade_id: str) -> None:
        self.grades.get(uid, {}).pop(grade_id, None)


class FakeAuth:
    def sign_up(self, email, password, name=None):
        if email == "taken@example.com":
            raise AuthServiceError("An account with this e-mail address already exists.")
        return AuthResult(uid="user-1", email=email, session_secret="secret", session_id="sess")

    def sign_in(self, email, password):
        if password != "geheim123":
            raise AuthServiceError("user_invalid_credentials")
        return AuthResult(uid="user-1", email=email, session_secret="secret", session_id="sess")

    def sign_out(self, session_secret):
        return None

    def current_user(self, session_secret):
        if session_secret == "secret":
            return Authenticated("user-1", "anna@example.com")
        return Anonymous()


HEADERS = {"x-user-id": "user-1"}


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.store = FakeStore()
        self.auth = FakeAuth()
        app.dependency_overrides[get_store] = lambda: self.store
        app.dependency_overrides[get_auth] = lambda: self.auth
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()

    def _subject(self, name="Wiskunde", target=None) -> str:
        res = self.client.post("/subjects", json={"name": name, "target_grade": target}, headers=HEADERS)
        self.assertEqual(res.status_code, 200, res.text)
        return res.json()["id"]

    def _grade(self, subject_id, value, weight=1.0, test_date="2024-03-01", test_type="SO"):
        res = self.client.post(
            "/grades",
            json={
                "subject_id": subject_id,
                "value": value,
                "weight": weight,
                "test_date": test_date,
                "test_type": test_type,
            },
            headers=HEADERS,
        )
        self.assertEqual(res.status_code, 200, res.text)
        return res.json()


class HealthAndAuthTests(ApiTestCase):
    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_signup_creates_profile(self):
        res = self.client.post("/auth/signup", json={"email": "anna@example.com", "password": "geheim123", "name": "Anna"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["uid"], "user-1")
        self.assertEqual(self.store.get_profile("user-1").display_name, "Anna")

    def test_signup_existing_account(self):
        res = self.client.post("/auth/signup", json={"email": "taken@example.com", "password": "geheim123"})
        self.assertEqual(res.status_code, 400)

    def test_login_failure(self):
        res = self.client.post("/auth/login", json={"email": "anna@example.com", "password": "fout"})
        self.assertEqual(res.status_code, 401)

    def test_me(self):
        self.assertEqual(self.client.get("/auth/me", headers={"x-session-secret": "secret"}).json()["uid"], "user-1")
        self.assertEqual(self.client.get("/auth/me").status_code, 401)

    def test_logout(self):
        res = self.client.post("/auth/logout", headers={"x-session-secret": "secret"})
        self.assertEqual(res.json(), {"status": "signed_out"})

    def test_missing_user_header(self):
        self.assertEqual(self.client.get("/subjects").status_code, 401)


class SubjectEndpointTests(ApiTestCase):
    def test_create_and_list(self):
        self._subject("Wiskunde", 7.5)
        self._subject("Biologie")
        names = [row["name"] for row in self.client.get("/subjects", headers=HEADERS).json()]
        self.assertEqual(names, ["Biologie", "Wiskunde"])

    def test_target_out_of_range(self):
        res = self.client.post("/subjects", json={"name": "Wiskunde", "target_grade": 11}, headers=HEADERS)
        self.assertEqual(res.status_code, 422)

    def test_blank_name(self):
        res = self.client.post("/subjects", json={"name": "   "}, headers=HEADERS)
        self.assertEqual(res.status_code, 400)

    def test_update_rejects_blank_name_and_null_color(self):
        subject_id = self._subject()
        for body in ({"name": "   "}, {"name": None}, {"color": None}):
            res = self.client.patch(f"/subjects/{subject_id}", json=body, headers=HEADERS)
            self.assertEqual(res.status_code, 422, body)
        subject = self.client.get(f"/subjects/{subject_id}", headers=HEADERS).json()
        self.assertEqual(subject["name"], "Wiskunde")
        self.assertIsNotNone(subject["color"])

    def test_update_trims_name(self):
        subject_id = self._subject()
        res = self.client.patch(f"/subjects/{subject_id}", json={"name": "  Wiskunde B "}, headers=HEADERS)
        self.assertEqual(res.json()["name"], "Wiskunde B")

    def test_unknown_subject(self):
        self.assertEqual(self.client.get("/subjects/nope", headers=HEADERS).status_code, 404)

    def test_update(self):
        subject_id = self._subject()
        res = self.client.patch(f"/subjects/{subject_id}", json={"target_grade": 8}, headers=HEADERS)
        self.assertEqual(res.json()["target_grade"], 8)
        self.assertEqual(res.json()["name"], "Wiskunde")

    def test_delete_removes_grades(self):
        subject_id = self._subject()
        self._grade(subject_id, 7)
        self.client.delete(f"/subjects/{subject_id}", headers=HEADERS)
        self.assertEqual(self.client.get("/grades", headers=HEADERS).json(), [])


class GradeEndpointTests(ApiTestCase):
    def test_grade_value_validated(self):
        subject_id = self._subject()
        for value, weight in ((0.5, 1), (10.5, 1), (7, 0), (7, -2)):
            res = self.client.post(
                "/grades", json={"subject_id": subject_id, "value": value, "weight": weight}, headers=HEADERS
            )
            self.assertEqual(res.status_code, 422)

    def test_unknown_test_type(self):
        subject_id = self._subject()
        res = self.client.post(
            "/grades", json={"subject_id": subject_id, "value": 7, "test_type": "Quiz"}, headers=HEADERS
        )
        self.assertEqual(res.status_code, 422)

    def test_grade_for_unknown_subject(self):
        res = self.client.post("/grades", json={"subject_id": "nope", "value": 7}, headers=HEADERS)
        self.assertEqual(res.status_code, 400)

    def test_create_filter_update_delete(self):
        math = self._subject("Wiskunde")
        bio = self._subject("Biologie")
        created = self._grade(math, 6.5, 2, test_type="PW")
        self._grade(bio, 8)

        self.assertEqual(created["test_type"], "PW")
        self.assertEqual(created["weight"], 2)
        only_math = self.client.get("/grades", params={"subject_id": math}, headers=HEADERS).json()
        self.assertEqual([row["id"] for row in only_math], [created["id"]])

        updated = self.client.patch(f"/grades/{created['id']}", json={"value": 7.2}, headers=HEADERS).json()
        self.assertEqual(updated["grade"], 7.2)
        self.assertEqual(updated["weight"], 2)

        self.client.delete(f"/grades/{created['id']}", headers=HEADERS)
        self.assertEqual(len(self.client.get("/grades", headers=HEADERS).json()), 1)

    def test_update_rejects_null_fields(self):
        subject_id = self._subject()
        created = self._grade(subject_id, 6.5, 2)
        for body in ({"value": None}, {"weight": None}, {"test_type": None}, {"value": None, "weight": None}):
            res = self.client.patch(f"/grades/{created['id']}", json=body, headers=HEADERS)
            self.assertEqual(res.status_code, 422, body)

        [stored] = self.client.get("/grades", headers=HEADERS).json()
        self.assertEqual(stored["grade"], 6.5)
        self.assertEqual(stored["weight"], 2)
        self.assertEqual(stored["test_type"], "SO")
        self.assertEqual(self.client.get("/stats", headers=HEADERS).status_code, 200)

    def test_default_date_is_today(self):
        subject_id = self._subject()
        res = self.client.post("/grades", json={"subject_id": subject_id, "value": 7}, headers=HEADERS)
        self.assertEqual(res.json()["test_date"], date.today().isoformat())


class StatsEndpointTests(ApiTestCase):
    def test_dashboard_without_grades(self):
        self._subject()
        res = self.client.get("/stats", headers=HEADERS)
        self.assertEqual(res.status_code, 200)
        self.assertIsNone(res.json())

    def test_dashboard(self):
        math = self._subject("Wiskunde")
        nl = self._subject("Nederlands")
        self._grade(math, 8, test_date="2024-02-01")
        self._grade(math, 6, test_date="2024-03-05")
        self._grade(nl, 5, 2, test_date="2024-03-10")

        stats = self.client.get("/stats", headers=HEADERS).json()
        self.assertAlmostEqual(stats["overall_average"], 6.0)
        self.assertEqual(stats["highest"], 8)
        self.assertEqual(stats["lowest"], 5)
        self.assertEqual(stats["grade_count"], 3)
        self.assertEqual([row["month"] for row in stats["monthly"]], ["2024-02-01", "2024-03-01"])
        self.assertEqual(len(stats["distribution"]), 10)
        self.assertEqual(sum(row["count"] for row in stats["distribution"]), 3)

    def test_subject_stats(self):
        math = self._subject("Wiskunde", target=8)
        self._grade(math, 6, test_date="2024-02-01")
        self._grade(math, 8, test_date="2024-01-01")

        stats = self.client.get(f"/subjects/{math}/stats", headers=HEADERS).json()
        self.assertAlmostEqual(stats["average"], 7)
        self.assertAlmostEqual(stats["pass_rate"], 100)
        self.assertEqual([row["grade"] for row in stats["timeline"]], [8, 6])
        self.assertFalse(stats["target_progress"]["achieved"])
        self.assertAlmostEqual(stats["target_progress"]["remaining"], 1)


class CalculatorEndpointTests(ApiTestCase):
    def test_required_grade(self):
        math = self._subject()
        self._grade(math, 6)
        self._grade(math, 8)
        res = self.client.post(
            "/calculator/required-grade",
            json={"subject_id": math, "target_average": 8, "next_weight": 1},
            headers=HEADERS,
        ).json()
        self.assertEqual(res["required_grade"], 10)
        self.assertEqual(res["verdict"], "attainable")
        self.assertAlmostEqual(res["current_average"], 7)

    def test_required_grade_without_history(self):
        math = self._subject()
        res = self.client.post(
            "/calculator/required-grade",
            json={"subject_id": math, "target_average": 7.5},
            headers=HEADERS,
        ).json()
        self.assertEqual(res["required_grade"], 7.5)
        self.assertIsNone(res["current_average"])

    def test_unreachable_target(self):
        math = self._subject()
        self._grade(math, 3, 3)
        res = self.client.post(
            "/calculator/required-grade",
            json={"subject_id": math, "target_average": 9},
            headers=HEADERS,
        ).json()
        self.assertEqual(res["verdict"], "not_achievable")

    def test_zero_weight_rejected(self):
        math = self._subject()
        res = self.client.post(
            "/calculator/required-grade",
            json={"subject_id": math, "target_average": 7, "next_weight": 0},
            headers=HEADERS,
        )
        self.assertEqual(res.status_code, 422)


if __name__ == "__main__":
    unittest.main()
