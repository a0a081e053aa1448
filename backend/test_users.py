"""
User management tests: admin-only listing, admin-or-self access,
role changes and cascading deletes.

Run: pytest backend/test_users.py -v
"""

from unittest.mock import patch

from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

from backend.db import PROPERTIES, USERS, VEHICLES
from backend.main import app

client = TestClient(app)

IMAGE_URL = "https://res.cloudinary.com/demo/image/upload/v1/Lokalqy/{}.jpg"


def create_property(headers, name="Casa Azul", address="Calle Mayor 1", image=None):
    body = {
        "name": name,
        "type": "apartment",
        "address": address,
        "status": "available",
        "monthly_rent": 800,
        "expenses": 50,
        "image": image,
    }
    response = client.post("/api/properties", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def create_vehicle(headers, plate="1234ABC", image=None):
    body = {
        "name": "Seat Ibiza",
        "type": "car",
        "plate": plate,
        "status": "available",
        "daily_rent": 40,
        "expenses": 5,
        "image": image,
    }
    response = client.post("/api/vehicles", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestListUsers:
    def test_admin_lists_all_users(self, admin, alice, bob):
        response = client.get("/api/users", headers=admin["headers"])

        assert response.status_code == 200
        names = {u["name"] for u in response.json()}
        assert names == {"root", "alice", "bob"}
        assert all("password" not in u for u in response.json())

    def test_non_admin_gets_403(self, alice):
        response = client.get("/api/users", headers=alice["headers"])

        assert response.status_code == 403
        assert response.json()["detail"] == "Access denied: insufficient permissions"

    def test_anonymous_gets_401(self):
        assert client.get("/api/users").status_code == 401

    def test_search_by_name(self, admin, alice, bob):
        response = client.get("/api/users", params={"q": "ALI"}, headers=admin["headers"])

        assert response.status_code == 200
        assert [u["name"] for u in response.json()] == ["alice"]

    def test_pagination(self, admin, alice, bob):
        response = client.get("/api/users", params={"limit": 2}, headers=admin["headers"])
        assert len(response.json()) == 2

        response = client.get("/api/users", params={"limit": 2, "offset": 2}, headers=admin["headers"])
        assert len(response.json()) == 1


class TestGetUser:
    def test_user_reads_self(self, alice):
        response = client.get(f"/api/users/{alice['id']}", headers=alice["headers"])

        assert response.status_code == 200
        assert response.json()["name"] == "alice"
        assert "password" not in response.json()

    def test_user_cannot_read_other_user(self, alice, bob):
        response = client.get(f"/api/users/{bob['id']}", headers=alice["headers"])
        assert response.status_code == 403

    def test_admin_reads_any_user(self, admin, bob):
        response = client.get(f"/api/users/{bob['id']}", headers=admin["headers"])

        assert response.status_code == 200
        assert response.json()["id"] == bob["id"]

    def test_invalid_id_returns_400(self, admin):
        response = client.get("/api/users/not-an-id", headers=admin["headers"])

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid id"

    def test_unknown_id_returns_404(self, admin):
        response = client.get(f"/api/users/{ObjectId()}", headers=admin["headers"])
        assert response.status_code == 404


class TestUpdateUser:
    def test_user_updates_own_name(self, db, alice):
        response = client.put(f"/api/users/{alice['id']}", json={"name": "  alicia "}, headers=alice["headers"])

        assert response.status_code == 200
        assert response.json()["name"] == "alicia"
        assert db[USERS].find_one({"_id": ObjectId(alice["id"])})["name"] == "alicia"

    def test_password_change_is_hashed_and_usable(self, db, alice):
        response = client.put(
            f"/api/users/{alice['id']}",
            json={"password": "brand-new-password"},
            headers=alice["headers"],
        )
        assert response.status_code == 200
        assert "password" not in response.json()

        stored = db[USERS].find_one({"_id": ObjectId(alice["id"])})
        assert stored["password"] != "brand-new-password"

        old = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "password123"})
        assert old.status_code == 400
        new = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "brand-new-password"})
        assert new.status_code == 200

    def test_user_cannot_update_other_user(self, alice, bob):
        response = client.put(f"/api/users/{bob['id']}", json={"name": "hacked"}, headers=alice["headers"])
        assert response.status_code == 403

    def test_user_cannot_change_own_role(self, db, alice):
        response = client.put(f"/api/users/{alice['id']}", json={"role": "admin"}, headers=alice["headers"])

        assert response.status_code == 403
        assert response.json()["detail"] == "You do not have permission to change the user role"
        assert db[USERS].find_one({"_id": ObjectId(alice["id"])})["role"] == "user"

    def test_admin_promotes_user(self, admin, bob):
        response = client.put(f"/api/users/{bob['id']}", json={"role": "admin"}, headers=admin["headers"])

        assert response.status_code == 200
        assert response.json()["role"] == "admin"

    def test_admin_cannot_demote_self(self, admin):
        response = client.put(f"/api/users/{admin['id']}", json={"role": "user"}, headers=admin["headers"])

        assert response.status_code == 403
        assert response.json()["detail"] == "You cannot change your own role from admin to user"

    def test_invalid_role_returns_400(self, admin, bob):
        response = client.put(f"/api/users/{bob['id']}", json={"role": "superuser"}, headers=admin["headers"])
        assert response.status_code == 400

    def test_empty_body_returns_400(self, alice):
        response = client.put(f"/api/users/{alice['id']}", json={}, headers=alice["headers"])

        assert response.status_code == 400
        assert response.json()["detail"] == "No fields to update"

    def test_duplicate_name_returns_409(self, alice, bob):
        response = client.put(f"/api/users/{alice['id']}", json={"name": "bob"}, headers=alice["headers"])

        assert response.status_code == 409
        assert response.json()["detail"] == "User with name bob already exists"

    def test_duplicate_email_returns_409(self, alice, bob):
        response = client.put(
            f"/api/users/{alice['id']}",
            json={"email": "BOB@example.com"},
            headers=alice["headers"],
        )

        assert response.status_code == 409
        assert response.json()["detail"] == "User with email bob@example.com already exists"

    def test_keeping_own_name_is_not_a_duplicate(self, alice):
        response = client.put(f"/api/users/{alice['id']}", json={"name": "alice"}, headers=alice["headers"])
        assert response.status_code == 200

    def test_index_race_names_the_conflicting_field(self, alice):
        error = DuplicateKeyError("E11000 duplicate key error", 11000, {"keyValue": {"name": "alicia"}})

        with patch("mongomock.collection.Collection.find_one_and_update", side_effect=error):
            response = client.put(f"/api/users/{alice['id']}", json={"name": "alicia"}, headers=alice["headers"])

        assert response.status_code == 409
        assert response.json()["detail"] == "User with name alicia already exists"

    def test_image_changed_in_body_removes_previous(self, make_user, auth_headers):
        user_id = make_user("dora", image=IMAGE_URL.format("old"))

        with patch("cloudinary.uploader.destroy", return_value={"result": "ok"}) as destroy:
            response = client.put(
                f"/api/users/{user_id}",
                json={"image": IMAGE_URL.format("new")},
                headers=auth_headers(user_id),
            )

        assert response.status_code == 200
        assert response.json()["image"] == IMAGE_URL.format("new")
        destroy.assert_called_once_with("Lokalqy/old")


class TestDeleteUser:
    def test_user_deletes_self(self, db, alice):
        response = client.delete(f"/api/users/{alice['id']}", headers=alice["headers"])

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "User deleted"
        assert data["user_deleted"]["id"] == alice["id"]
        assert db[USERS].find_one({"_id": ObjectId(alice["id"])}) is None

    def test_user_cannot_delete_other_user(self, db, alice, bob):
        response = client.delete(f"/api/users/{bob['id']}", headers=alice["headers"])

        assert response.status_code == 403
        assert db[USERS].find_one({"_id": ObjectId(bob["id"])}) is not None

    def test_delete_cascades_to_owned_items(self, db, admin, alice, bob):
        create_property(alice["headers"], image=IMAGE_URL.format("house"))
        create_vehicle(alice["headers"], image=IMAGE_URL.format("car"))
        create_property(bob["headers"])

        with patch("cloudinary.uploader.destroy", return_value={"result": "ok"}) as destroy:
            response = client.delete(f"/api/users/{alice['id']}", headers=admin["headers"])

        assert response.status_code == 200
        owner = ObjectId(alice["id"])
        assert db[PROPERTIES].count_documents({"owner": owner}) == 0
        assert db[VEHICLES].count_documents({"owner": owner}) == 0
        assert db[PROPERTIES].count_documents({"owner": ObjectId(bob["id"])}) == 1

        destroyed = {c.args[0] for c in destroy.call_args_list}
        assert destroyed == {"Lokalqy/house", "Lokalqy/car"}

    def test_unknown_user_returns_404(self, admin):
        response = client.delete(f"/api/users/{ObjectId()}", headers=admin["headers"])
        assert response.status_code == 404


class TestUserImage:
    def test_upload_sets_image(self, alice):
        uploaded = {"secure_url": IMAGE_URL.format("avatar"), "public_id": "Lokalqy/avatar"}

        with patch("cloudinary.uploader.upload", return_value=uploaded) as upload:
            response = client.put(
                f"/api/users/{alice['id']}/image",
                files={"image": ("avatar.png", b"fake-png-bytes", "image/png")},
                headers=alice["headers"],
            )

        assert response.status_code == 200
        assert response.json()["image"] == IMAGE_URL.format("avatar")
        assert upload.call_args.kwargs["folder"] == "Lokalqy"

    def test_replacing_image_removes_previous(self, make_user, auth_headers):
        user_id = make_user("dora", image=IMAGE_URL.format("old"))

        uploaded = {"secure_url": IMAGE_URL.format("new"), "public_id": "Lokalqy/new"}
        with patch("cloudinary.uploader.upload", return_value=uploaded), \
                patch("cloudinary.uploader.destroy", return_value={"result": "ok"}) as destroy:
            response = client.put(
                f"/api/users/{user_id}/image",
                files={"image": ("new.jpg", b"fake-jpg-bytes", "image/jpeg")},
                headers=auth_headers(user_id),
            )

        assert response.status_code == 200
        assert response.json()["image"] == IMAGE_URL.format("new")
        destroy.assert_called_once_with("Lokalqy/old")

    def test_other_user_cannot_upload(self, alice, bob):
        with patch("cloudinary.uploader.upload") as upload:
            response = client.put(
                f"/api/users/{bob['id']}/image",
                files={"image": ("avatar.png", b"fake-png-bytes", "image/png")},
                headers=alice["headers"],
            )

        assert response.status_code == 403
        upload.assert_not_called()
