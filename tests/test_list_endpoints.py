from tests.base import *  # noqa: F401,F403


class ListEndpointTests(ApiTestBase):
    def setUp(self):
        super().setUp()
        self.admin_id = self._create_user("ADMIN")
        self.recruiter_id = self._create_user("RECRUITER")
        self.other_recruiter_id = self._create_user("RECRUITER")
        self.candidate_id = self._create_user("CANDIDATE")
        self.other_candidate_id = self._create_user("CANDIDATE")

        self.own_published = self._create_job(self.recruiter_id, title="Python Developer")
        self.own_draft = self._create_job(self.recruiter_id, status="DRAFT", title="Draft role")
        self.foreign_published = self._create_job(self.other_recruiter_id, title="Go Developer")
        self.foreign_draft = self._create_job(self.other_recruiter_id, status="DRAFT", title="Secret role")

        self.own_application = self._create_application(self.own_published, self.candidate_id, score=4, notes="strong")
        self.foreign_application = self._create_application(self.foreign_published, self.other_candidate_id, score=2)

    def _list(self, entity, body, role, sub):
        return self.client.post(f"/api/{entity}/list", json=body, headers=self._auth_headers(role, sub=sub))

    def test_requires_bearer_token(self):
        response = self.client.post("/api/jobs/list", json={})
        self.assertEqual(response.status_code, 401)
        response = self.client.post("/api/jobs/list", json={}, headers={"Authorization": "Bearer garbage"})
        self.assertEqual(response.status_code, 401)

    def test_recruiter_scope_end_to_end(self):
        response = self._list("jobs", {"where": {"OR": [{"status": "DRAFT"}]}, "take": 500}, "RECRUITER", self.recruiter_id)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["query"]["take"], 100)
        self.assertEqual(
            body["query"]["where"],
            {
                "AND": [
                    {"OR": [{"status": "DRAFT"}]},
                    {"OR": [{"status": "PUBLISHED"}, {"created_by_id": self.recruiter_id}]},
                ]
            },
        )
        self.assertEqual([row["id"] for row in body["data"]], [self.own_draft])
        self.assertEqual(body["count"], 1)

    def test_recruiter_sees_marketplace_and_own_jobs(self):
        body = self._list("jobs", {}, "RECRUITER", self.recruiter_id).json()
        self.assertEqual(
            {row["id"] for row in body["data"]},
            {self.own_published, self.own_draft, self.foreign_published},
        )
        self.assertEqual(body["query"]["skip"], 0)
        self.assertEqual(body["query"]["orderBy"], {"created_at": "desc"})

    def test_candidate_sees_published_only(self):
        body = self._list("jobs", {"where": {"status": "DRAFT"}}, "CANDIDATE", self.candidate_id).json()
        self.assertEqual({row["id"] for row in body["data"]}, {self.own_published, self.foreign_published})

    def test_admin_sees_everything(self):
        body = self._list("jobs", {"take": 2}, "ADMIN", self.admin_id).json()
        self.assertEqual(body["count"], 4)
        self.assertEqual(len(body["data"]), 2)

    def test_include_depth_is_bounded(self):
        body = self._list(
            "jobs",
            {"include": {"applications": {"include": {"user": True}}}},
            "ADMIN",
            self.admin_id,
        ).json()
        self.assertEqual(body["query"]["include"], {"applications": True})
        for row in body["data"]:
            for application in row["applications"]:
                self.assertNotIn("user", application)

    def test_candidate_only_sees_own_applications(self):
        body = self._list(
            "applications",
            {"where": {"user_id": self.other_candidate_id, "score": {"gte": 1}}},
            "CANDIDATE",
            self.candidate_id,
        ).json()
        self.assertEqual([row["id"] for row in body["data"]], [self.own_application])
        self.assertEqual(body["query"]["where"], {"user_id": self.candidate_id})

    def test_candidate_cannot_filter_on_notes_inside_or(self):
        response = self._list(
            "applications",
            {"where": {"OR": [{"notes": {"contains": "strong"}}]}},
            "CANDIDATE",
            self.candidate_id,
        )
        self.assertEqual(response.status_code, 403)

    def test_recruiter_applications_are_limited_to_own_jobs(self):
        body = self._list("applications", {}, "RECRUITER", self.recruiter_id).json()
        self.assertEqual([row["id"] for row in body["data"]], [self.own_application])
        response = self._list(
            "applications", {"where": {"job_id": self.foreign_published}}, "RECRUITER", self.recruiter_id
        )
        self.assertEqual(response.status_code, 403)

    def test_recruiter_cannot_read_foreign_applications_through_jobs(self):
        body = self._list(
            "jobs",
            {"where": {"id": self.foreign_published}, "include": {"applications": True}},
            "RECRUITER",
            self.recruiter_id,
        ).json()
        self.assertEqual(len(body["data"]), 1)
        self.assertEqual(body["data"][0]["applications"], [])

    def test_candidate_cannot_rank_other_candidates_through_jobs(self):
        for where in (
            {"applications": {"some": {"score": {"gte": 1}}}},
            {"applications": {"some": {"notes": {"contains": "strong"}}}},
        ):
            with self.subTest(where=where):
                response = self._list("jobs", {"where": where}, "CANDIDATE", self.candidate_id)
                self.assertEqual(response.status_code, 403)

    def test_candidate_relation_filter_only_matches_own_applications(self):
        body = self._list("jobs", {"where": {"applications": {"some": {}}}}, "CANDIDATE", self.candidate_id).json()
        self.assertEqual([row["id"] for row in body["data"]], [self.own_published])
        where = {"job": {"applications": {"some": {"user_id": self.other_candidate_id}}}}
        body = self._list("applications", {"where": where}, "CANDIDATE", self.candidate_id).json()
        self.assertEqual(body["count"], 0)

    def test_recruiter_relation_filters_ignore_foreign_applications(self):
        where = {"applications": {"some": {"score": {"lte": 2}}}}
        body = self._list("jobs", {"where": where}, "RECRUITER", self.recruiter_id).json()
        self.assertEqual(body["count"], 0)
        where = {"applications": {"every": {"score": {"gte": 3}}}}
        body = self._list("jobs", {"where": where}, "RECRUITER", self.recruiter_id).json()
        self.assertEqual(
            {row["id"] for row in body["data"]},
            {self.own_published, self.own_draft, self.foreign_published},
        )

    def test_recruiter_foreign_job_in_any_filter_shape_is_403(self):
        for where in (
            {"job_id": {"in": [self.foreign_published]}},
            {"OR": [{"job_id": self.foreign_published}]},
            {"job": {"id": self.foreign_published}},
        ):
            with self.subTest(where=where):
                response = self._list("applications", {"where": where}, "RECRUITER", self.recruiter_id)
                self.assertEqual(response.status_code, 403)
        body = self._list(
            "applications", {"where": {"job_id": {"in": [self.own_published]}}}, "RECRUITER", self.recruiter_id
        ).json()
        self.assertEqual([row["id"] for row in body["data"]], [self.own_application])

    def test_users_list_is_admin_only(self):
        self.assertEqual(self._list("users", {}, "RECRUITER", self.recruiter_id).status_code, 403)
        self.assertEqual(self._list("users", {}, "CANDIDATE", self.candidate_id).status_code, 403)
        body = self._list("users", {"take": 100}, "ADMIN", self.admin_id).json()
        self.assertEqual(body["count"], 5)
        self.assertTrue(all("password_hash" not in row for row in body["data"]))

    def test_descriptor_validation_is_422(self):
        invalid = [
            {"take": -1},
            {"take": "10"},
            {"skip": 1.5},
            {"where": {"status": {"in": "DRAFT"}}},
            {"orderBy": {"created_at": "sideways"}},
            {"unexpected": True},
        ]
        for body in invalid:
            with self.subTest(body=body):
                self.assertEqual(self._list("jobs", body, "ADMIN", self.admin_id).status_code, 422)

    def test_unknown_field_is_400(self):
        response = self._list("users", {"where": {"password_hash": {"contains": "a"}}}, "ADMIN", self.admin_id)
        self.assertEqual(response.status_code, 400)

    def test_data_never_exceeds_take(self):
        for take in (0, 1, 3, 1000):
            with self.subTest(take=take):
                body = self._list("jobs", {"take": take}, "ADMIN", self.admin_id).json()
                self.assertLessEqual(len(body["data"]), body["query"]["take"])
                self.assertEqual(body["count"], 4)
