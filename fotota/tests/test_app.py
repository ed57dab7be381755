import asyncio
import unittest

from fastapi.testclient import TestClient

from fotota.app import create_app
from fotota.account import AccountService
from fotota.dependencies import (
    get_account_service,
    get_auth_client,
    get_db_client,
    get_file_explorer,
    get_photo_storage,
    get_queue_client,
    get_registration_service,
    get_selfie_storage,
)
from fotota.explorer import FileExplorer
from fotota.photos import PhotoService
from fotota.registration import RegistrationService
from fotota.tests.testing_utils import Backends, image_bytes


class FototaApiTests(unittest.TestCase):
    def setUp(self):
        self.backends = Backends()
        app = create_app()
        app.dependency_overrides[get_auth_client] = lambda: self.backends.auth
        app.dependency_overrides[get_db_client] = lambda: self.backends.db
        app.dependency_overrides[get_photo_storage] = lambda: self.backends.photo_storage
        app.dependency_overrides[get_selfie_storage] = lambda: self.backends.selfie_storage
        app.dependency_overrides[get_queue_client] = lambda: self.backends.queue
        self.client = TestClient(app)
        self.backends.whitelist("budi@st.id", name="Budi Santoso")

    def _register(self, email="budi@st.id", name="Budi Santoso", password="rahasia1"):
        return self.client.post(
            "/api/auth/register",
            data={"name": name, "email": email, "password": password},
            files={"selfie": ("me.png", image_bytes(), "image/png")},
        )

    def _headers(self, token):
        return {"Authorization": f"Bearer {token}"}

    def _admin_headers(self):
        session = self.backends.auth.sign_up("admin@st.id", "admin123", "")
        return self._headers(session.access_token)

    def test_healthz(self):
        response = self.client.get("/api/healthz")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_validate_registration_requires_all_fields(self):
        response = self.client.post(
            "/api/auth/register/validate",
            json={"name": "", "email": "budi@st.id", "password": "rahasia1"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Please complete all fields")

    def test_validate_registration_rejects_short_password(self):
        response = self.client.post(
            "/api/auth/register/validate",
            json={"name": "Budi", "email": "budi@st.id", "password": "12345"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("at least 6", response.json()["detail"])

    def test_validate_registration_checks_whitelist(self):
        response = self.client.post(
            "/api/auth/register/validate",
            json={"name": "Eve", "email": "eve@gmail.com", "password": "rahasia1"},
        )
        self.assertEqual(response.status_code, 403)

        response = self.client.post(
            "/api/auth/register/validate",
            json={"name": "Budi", "email": "BUDI@ST.ID", "password": "rahasia1"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["next_step"], "selfie")

    def test_register_uploads_selfie_and_queues_match(self):
        response = self._register()
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        user_id = payload["user"]["id"]
        self.assertTrue(payload["access_token"])
        self.assertEqual(payload["user"]["full_name"], "Budi Santoso")
        self.assertEqual(payload["user"]["home"], "/dashboard")

        selfie_path = f"{user_id}/selfie-registrasi.png"
        self.assertTrue(self.backends.selfie_storage.exists(selfie_path))
        profile = self.backends.db.get_profile(user_id)
        self.assertEqual(profile.selfie_url, selfie_path)
        self.assertEqual(profile.email, "budi@st.id")
        self.assertEqual(len(self.backends.db.list_selfies(user_id)), 1)
        request = self.backends.queue.dequeue()
        self.assertEqual(request.user_id, user_id)
        self.assertEqual(request.reason, "registration")

    def test_register_requires_selfie(self):
        response = self.client.post(
            "/api/auth/register",
            data={"name": "Budi", "email": "budi@st.id", "password": "rahasia1"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("selfie", response.json()["detail"])

    def test_register_twice_conflicts(self):
        self.assertEqual(self._register().status_code, 201)
        response = self._register()
        self.assertEqual(response.status_code, 409)
        self.assertIn("already registered", response.json()["detail"])

    def test_login_and_session(self):
        self._register()
        bad = self.client.post(
            "/api/auth/login", json={"email": "budi@st.id", "password": "wrong-pass"}
        )
        self.assertEqual(bad.status_code, 401)

        response = self.client.post(
            "/api/auth/login", json={"email": "budi@st.id", "password": "rahasia1"}
        )
        self.assertEqual(response.status_code, 200)
        token = response.json()["access_token"]

        session = self.client.get("/api/auth/session", headers=self._headers(token))
        self.assertEqual(session.status_code, 200)
        self.assertEqual(session.json()["email"], "budi@st.id")
        self.assertFalse(session.json()["is_admin"])

        logout = self.client.post("/api/auth/logout", headers=self._headers(token))
        self.assertEqual(logout.status_code, 200)
        after = self.client.get("/api/auth/session", headers=self._headers(token))
        self.assertEqual(after.status_code, 401)

    def test_session_requires_bearer_token(self):
        self.assertEqual(self.client.get("/api/auth/session").status_code, 401)
        response = self.client.get(
            "/api/auth/session", headers={"Authorization": "Basic abc"}
        )
        self.assertEqual(response.status_code, 401)

    def test_photo_feed_confirm_and_reject(self):
        storage = self.backends.photo_storage
        storage.upload("a.jpg", b"a")
        storage.upload("b.jpg", b"b")
        storage.upload("event/c.jpg", b"c")
        token = self._register().json()["access_token"]
        headers = self._headers(token)

        feed = self.client.get("/api/photos", headers=headers).json()
        self.assertEqual(feed["counts"], {"total": 2, "pending": 2, "confirmed": 0})
        by_path = {photo["path"]: photo for photo in feed["photos"]}
        self.assertEqual(set(by_path), {"a.jpg", "b.jpg"})
        self.assertTrue(all(p["has_watermark"] for p in feed["photos"]))
        self.assertTrue(all(p["match_score"] == 95 for p in feed["photos"]))

        confirm = self.client.post(
            f"/api/photos/{by_path['a.jpg']['id']}/confirm", headers=headers
        )
        self.assertEqual(confirm.status_code, 200)
        reject = self.client.post(
            f"/api/photos/{by_path['b.jpg']['id']}/reject", headers=headers
        )
        self.assertEqual(reject.status_code, 200)

        feed = self.client.get("/api/photos", headers=headers).json()
        self.assertEqual(feed["counts"], {"total": 1, "pending": 0, "confirmed": 1})
        photo = feed["photos"][0]
        self.assertTrue(photo["is_confirmed"])
        self.assertFalse(photo["is_pending"])
        self.assertFalse(photo["has_watermark"])

        pending = self.client.get(
            "/api/photos", params={"filter": "pending"}, headers=headers
        ).json()
        self.assertEqual(pending["photos"], [])
        self.assertEqual(pending["filter"], "pending")

    def test_confirm_unknown_photo_is_404(self):
        token = self._register().json()["access_token"]
        response = self.client.post(
            "/api/photos/missing/confirm", headers=self._headers(token)
        )
        self.assertEqual(response.status_code, 404)

    def test_search_requires_selfie(self):
        session = self.backends.auth.sign_up("other@st.id", "rahasia1", "Other")
        response = self.client.post(
            "/api/photos/search", headers=self._headers(session.access_token)
        )
        self.assertEqual(response.status_code, 400)

        token = self._register().json()["access_token"]
        self.backends.queue.items.clear()
        response = self.client.post("/api/photos/search", headers=self._headers(token))
        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json()["reason"], "search")
        self.assertEqual(len(self.backends.queue.items), 1)

    def test_account_view_and_contact_update(self):
        session = self.backends.auth.sign_up("other@st.id", "rahasia1", "Other Person")
        headers = self._headers(session.access_token)

        account = self.client.get("/api/account", headers=headers)
        self.assertEqual(account.status_code, 200)
        self.assertEqual(account.json()["profile"]["full_name"], "Other Person")
        self.assertIsNone(account.json()["selfie_signed_url"])

        updated = self.client.patch(
            "/api/account",
            json={"phone": "0812-3456", "location": "   "},
            headers=headers,
        )
        self.assertEqual(updated.status_code, 200)
        profile = updated.json()["profile"]
        self.assertEqual(profile["phone"], "0812-3456")
        self.assertIsNone(profile["location"])

    def test_account_selfie_and_profile_photo(self):
        token = self._register().json()["access_token"]
        headers = self._headers(token)

        response = self.client.post(
            "/api/account/profile-photo",
            files={"file": ("avatar.jpg", image_bytes("JPEG"), "image/jpeg")},
            headers=headers,
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["profile"]["profile_photo_url"].endswith("/profile-photo.jpg"))
        self.assertIn("profile-photo.jpg", payload["profile_photo_signed_url"])

        too_big = self.client.post(
            "/api/account/profile-photo",
            files={"file": ("big.png", b"0" * (1024 * 1024 + 1), "image/png")},
            headers=headers,
        )
        self.assertEqual(too_big.status_code, 400)

        not_image = self.client.post(
            "/api/account/selfie",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=headers,
        )
        self.assertEqual(not_image.status_code, 400)

    def test_admin_routes_require_admin(self):
        token = self._register().json()["access_token"]
        response = self.client.get("/api/admin/files", headers=self._headers(token))
        self.assertEqual(response.status_code, 403)

    def test_admin_session_points_home_to_admin(self):
        response = self.client.get("/api/auth/session", headers=self._admin_headers())
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["is_admin"])
        self.assertEqual(response.json()["home"], "/admin")
        self.assertEqual(response.json()["display_name"], "admin")

    def test_storage_failure_is_502_and_logged_with_traceback(self):
        self.backends.photo_storage.fail_paths.add("broken.jpg")
        with self.assertLogs("fotota.routes", level="ERROR") as logs:
            response = self.client.get(
                "/api/admin/files/sign-url",
                params={"path": "broken.jpg"},
                headers=self._admin_headers(),
            )
        self.assertEqual(response.status_code, 502)
        self.assertEqual(len(logs.records), 1)
        self.assertIsNotNone(logs.records[0].exc_info)

    def test_admin_file_explorer(self):
        headers = self._admin_headers()
        storage = self.backends.photo_storage
        storage.upload("cover.png", b"x" * 2048)

        folder = self.client.post(
            "/api/admin/folders", json={"path": "", "name": "Event 2024"}, headers=headers
        )
        self.assertEqual(folder.status_code, 201)
        self.assertTrue(storage.exists("Event 2024/.keep"))

        blank = self.client.post(
            "/api/admin/folders", json={"path": "", "name": "  "}, headers=headers
        )
        self.assertEqual(blank.status_code, 400)

        rejected = self.client.post(
            "/api/admin/files",
            data={"path": "Event 2024"},
            files=[("files", ("clip.gif", b"gif", "image/gif"))],
            headers=headers,
        )
        self.assertEqual(rejected.status_code, 400)

        uploaded = self.client.post(
            "/api/admin/files",
            data={"path": "Event 2024"},
            files=[
                ("files", ("one.jpg", b"1", "image/jpeg")),
                ("files", ("two.PNG", b"2", "image/png")),
            ],
            headers=headers,
        )
        self.assertEqual(uploaded.status_code, 201)
        self.assertEqual(
            sorted(uploaded.json()["uploaded"]),
            ["Event 2024/one.jpg", "Event 2024/two.PNG"],
        )

        duplicate = self.client.post(
            "/api/admin/files",
            data={"path": "Event 2024"},
            files=[("files", ("one.jpg", b"1", "image/jpeg"))],
            headers=headers,
        )
        self.assertEqual(duplicate.status_code, 409)

        root = self.client.get("/api/admin/files", headers=headers).json()
        self.assertIsNone(root["parent_path"])
        items = {item["name"]: item for item in root["items"]}
        self.assertEqual(items["cover.png"]["type"], "file")
        self.assertEqual(items["cover.png"]["size_label"], "2.00 KB")
        self.assertEqual(items["Event 2024"]["type"], "folder")

        inside = self.client.get(
            "/api/admin/files", params={"path": "Event 2024", "q": "ONE"}, headers=headers
        ).json()
        self.assertEqual(inside["parent_path"], "")
        self.assertEqual([item["path"] for item in inside["items"]], ["Event 2024/one.jpg"])

        signed = self.client.get(
            "/api/admin/files/sign-url",
            params={"path": "Event 2024/one.jpg"},
            headers=headers,
        )
        self.assertEqual(signed.status_code, 200)
        self.assertIn("Event 2024/one.jpg", signed.json()["url"])

        deleted = self.client.post(
            "/api/admin/files/delete",
            json={"paths": ["Event 2024/one.jpg", "Event 2024/two.PNG"]},
            headers=headers,
        )
        self.assertEqual(deleted.json()["deleted"], 2)
        self.assertFalse(storage.exists("Event 2024/one.jpg"))



def _event_loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class _LoopRecorder:
    """Records whether each wrapped call ran on the event loop thread."""

    def __init__(self):
        self.calls = []

    def wrap(self, name, func):
        def _call(*args, **kwargs):
            self.calls.append((name, _event_loop_running()))
            return func(*args, **kwargs)

        return _call


class UploadRoutesOffloadTests(unittest.TestCase):
    """Upload routes are async; the blocking service work must not run on the loop."""

    def setUp(self):
        b = self.backends = Backends()
        b.whitelist("budi@st.id")
        self.recorder = _LoopRecorder()

        registration = RegistrationService(b.auth, b.db, b.selfie_storage, b.queue)
        registration.register = self.recorder.wrap("register", registration.register)
        photos = PhotoService(b.photo_storage, b.db, b.queue)
        account = AccountService(b.db, b.selfie_storage, photos, b.queue)
        account.update_selfie = self.recorder.wrap("update_selfie", account.update_selfie)
        account.update_profile_photo = self.recorder.wrap(
            "update_profile_photo", account.update_profile_photo
        )
        explorer = FileExplorer(b.photo_storage)
        explorer.upload_files = self.recorder.wrap("upload_files", explorer.upload_files)

        app = create_app()
        app.dependency_overrides[get_auth_client] = lambda: b.auth
        app.dependency_overrides[get_registration_service] = lambda: registration
        app.dependency_overrides[get_account_service] = lambda: account
        app.dependency_overrides[get_file_explorer] = lambda: explorer
        self.client = TestClient(app)

    def test_service_calls_run_in_worker_threads(self):
        response = self.client.post(
            "/api/auth/register",
            data={"name": "Budi", "email": "budi@st.id", "password": "rahasia1"},
            files={"selfie": ("me.png", image_bytes(), "image/png")},
        )
        self.assertEqual(response.status_code, 201)
        headers = {"Authorization": f"Bearer {response.json()['access_token']}"}

        for route in ("/api/account/selfie", "/api/account/profile-photo"):
            response = self.client.post(
                route,
                files={"file": ("me.png", image_bytes(), "image/png")},
                headers=headers,
            )
            self.assertEqual(response.status_code, 200)

        admin = self.backends.auth.sign_up("admin@st.id", "admin123", "")
        response = self.client.post(
            "/api/admin/files",
            data={"path": ""},
            files=[("files", ("one.jpg", b"1", "image/jpeg"))],
            headers={"Authorization": f"Bearer {admin.access_token}"},
        )
        self.assertEqual(response.status_code, 201)

        self.assertEqual(
            self.recorder.calls,
            [
                ("register", False),
                ("update_selfie", False),
                ("update_profile_photo", False),
                ("upload_files", False),
            ],
        )


if __name__ == "__main__":
    unittest.main()
