import uuid

from fastapi import HTTPException

from app.models.application import Application
from app.models.job import Job
from app.models.user import User
from app.services.query_executor import _coerce_filter_value, execute_query
from tests.base import DatabaseTestBase


class CoercionTests(DatabaseTestBase):
    def test_uuid_values_are_parsed(self):
        value = uuid.uuid4()
        self.assertEqual(_coerce_filter_value(Job.created_by_id, str(value)), value)

    def test_invalid_uuid_raises_400(self):
        with self.assertRaises(HTTPException) as ctx:
            _coerce_filter_value(Job.created_by_id, "not-a-uuid")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_numbers_accept_strings(self):
        self.assertEqual(_coerce_filter_value(Job.salary_min, "42"), 42)
        with self.assertRaises(HTTPException):
            _coerce_filter_value(Job.salary_min, "forty")
        with self.assertRaises(HTTPException):
            _coerce_filter_value(Job.salary_min, True)

    def test_text_columns_reject_non_strings(self):
        with self.assertRaises(HTTPException):
            _coerce_filter_value(Job.status, 5)


class ExecuteQueryTests(DatabaseTestBase):
    def setUp(self):
        super().setUp()
        self.recruiter_id = self._create_user("RECRUITER", email="rec@example.com", first_name="Rita")
        self.candidate_id = self._create_user("CANDIDATE", email="cand@example.com", first_name="Carlo")
        self.python_job = self._create_job(
            self.recruiter_id, title="Python Developer", location="Milano", salary_min=30000, salary_max=45000
        )
        self.draft_job = self._create_job(self.recruiter_id, status="DRAFT", title="Data 100%_Engineer", location="Roma")
        self.go_job = self._create_job(self.recruiter_id, title="Go Developer", location=None, salary_min=50000)
        self._create_application(self.python_job, self.candidate_id, score=5, workflow_status="INTERVIEW")

    def _run(self, model, query):
        with self.SessionLocal() as db:
            return execute_query(db, model, query)

    def test_count_ignores_window(self):
        rows, count = self._run(Job, {"skip": 1, "take": 1, "orderBy": {"created_at": "asc"}})
        self.assertEqual(count, 3)
        self.assertEqual([row["id"] for row in rows], [self.draft_job])

    def test_take_zero_returns_no_rows(self):
        rows, count = self._run(Job, {"take": 0})
        self.assertEqual(rows, [])
        self.assertEqual(count, 3)

    def test_insensitive_contains_and_comparisons(self):
        rows, _ = self._run(
            Job,
            {
                "where": {"title": {"contains": "DEVELOPER", "mode": "insensitive"}, "salary_min": {"gte": 40000}},
            },
        )
        self.assertEqual([row["id"] for row in rows], [self.go_job])

    def test_like_wildcards_are_literal(self):
        rows, _ = self._run(Job, {"where": {"title": {"contains": "100%_"}}})
        self.assertEqual([row["id"] for row in rows], [self.draft_job])
        rows, _ = self._run(Job, {"where": {"title": {"contains": "%"}}})
        self.assertEqual([row["id"] for row in rows], [self.draft_job])

    def test_null_filters(self):
        rows, _ = self._run(Job, {"where": {"location": None}})
        self.assertEqual([row["id"] for row in rows], [self.go_job])
        _, count = self._run(Job, {"where": {"location": {"not": None}}})
        self.assertEqual(count, 2)

    def test_composites(self):
        where = {"OR": [{"status": "DRAFT"}, {"salary_min": {"gt": 40000}}], "NOT": {"title": {"startsWith": "Data"}}}
        rows, _ = self._run(Job, {"where": where})
        self.assertEqual([row["id"] for row in rows], [self.go_job])

    def test_not_list_excludes_each_item(self):
        where = {"NOT": [{"status": "DRAFT"}, {"title": {"startsWith": "Python"}}]}
        rows, _ = self._run(Job, {"where": where})
        self.assertEqual([row["id"] for row in rows], [self.go_job])

    def test_relation_filters(self):
        rows, _ = self._run(Job, {"where": {"applications": {"some": {"score": {"gte": 4}}}}})
        self.assertEqual([row["id"] for row in rows], [self.python_job])
        _, count = self._run(Job, {"where": {"applications": {"none": {}}}})
        self.assertEqual(count, 2)
        rows, _ = self._run(Application, {"where": {"job": {"created_by_id": self.recruiter_id}}})
        self.assertEqual(len(rows), 1)
        _, count = self._run(Application, {"where": {"job": {"isNot": {"status": "PUBLISHED"}}}})
        self.assertEqual(count, 0)

    def test_include_and_select(self):
        rows, _ = self._run(
            Application,
            {
                "select": {"id": True, "score": True},
                "include": {"job": {"select": {"title": True}}, "user": True},
            },
        )
        self.assertEqual(set(rows[0]), {"id", "score", "job", "user"})
        self.assertEqual(rows[0]["job"], {"title": "Python Developer"})
        self.assertNotIn("password_hash", rows[0]["user"])
        self.assertEqual(rows[0]["user"]["email"], "cand@example.com")

    def test_include_level_where_filters_related_rows(self):
        other = self._create_user("CANDIDATE")
        self._create_application(self.python_job, other, score=1)
        rows, _ = self._run(
            Job,
            {
                "where": {"id": self.python_job},
                "include": {"applications": {"where": {"score": {"gte": 3}}}},
            },
        )
        self.assertEqual([item["score"] for item in rows[0]["applications"]], [5])

    def test_include_level_order_and_take(self):
        other = self._create_user("CANDIDATE")
        self._create_application(self.python_job, other, score=1)
        rows, _ = self._run(
            Job,
            {
                "where": {"id": self.python_job},
                "include": {"applications": {"orderBy": {"score": "asc"}, "take": 1}},
            },
        )
        self.assertEqual([item["score"] for item in rows[0]["applications"]], [1])

    def test_users_never_expose_password_hash(self):
        rows, _ = self._run(User, {})
        self.assertTrue(rows)
        for row in rows:
            self.assertNotIn("password_hash", row)

    def test_shape_violations_are_400(self):
        invalid = [
            (User, {"where": {"password_hash": {"startsWith": "$"}}}),
            (Job, {"where": {"created_by": {"password_hash": {"startsWith": "$"}}}}),
            (Job, {"where": {"unknown": 1}}),
            (Job, {"where": {"status": {"foo": 1}}}),
            (Job, {"where": {"salary_min": {"contains": "1"}}}),
            (Job, {"where": {"applications": {"is": {}}}}),
            (Job, {"orderBy": {"nope": "asc"}}),
            (Job, {"include": {"nope": True}}),
            (Job, {"select": {"created_by": True}}),
            (User, {"select": {"password_hash": True}}),
        ]
        for model, query in invalid:
            with self.subTest(query=query):
                with self.assertRaises(HTTPException) as ctx:
                    self._run(model, query)
                self.assertEqual(ctx.exception.status_code, 400)
