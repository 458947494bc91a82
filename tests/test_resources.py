from bson import ObjectId


def upload(client, user, name="notes.pdf"):
    files = {"resource": (name, b"%PDF-1.4 data", "application/pdf")}
    return client.post("/resource/", files=files, headers=user["headers"])


class TestResources:
    def test_upload_and_list(self, client, make_user, uploads):
        alice = make_user("alice01")
        response = upload(client, alice)
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["resource_url"].startswith("https://cdn.test/")
        assert uploads["uploaded"] == [data["resource_id"]]

        listed = client.get("/resource/", headers=alice["headers"]).json()["data"]
        assert [item["_id"] for item in listed] == [data["id"]]

    def test_upload_requires_file(self, client, make_user, uploads):
        alice = make_user("alice01")
        response = client.post("/resource/", headers=alice["headers"])
        assert response.status_code == 400
        assert uploads["uploaded"] == []

    def test_listing_is_per_user(self, client, make_user):
        alice = make_user("alice01")
        bob = make_user("bobby01")
        upload(client, alice)
        assert client.get("/resource/", headers=bob["headers"]).json()["data"] == []

    def test_owner_deletes_resource(self, client, db, make_user, uploads):
        alice = make_user("alice01")
        data = upload(client, alice).json()["data"]

        response = client.delete(f"/resource/{data['id']}", headers=alice["headers"])
        assert response.status_code == 200
        assert uploads["destroyed"] == [data["resource_id"]]
        assert db["resources"].count_documents({}) == 0

    def test_stranger_can_not_delete(self, client, db, make_user, uploads):
        alice = make_user("alice01")
        bob = make_user("bobby01")
        data = upload(client, alice).json()["data"]

        assert client.delete(f"/resource/{data['id']}", headers=bob["headers"]).status_code == 403
        assert uploads["destroyed"] == []
        assert db["resources"].count_documents({}) == 1

    def test_delete_unknown_resource(self, client, make_user):
        alice = make_user("alice01")
        assert client.delete(f"/resource/{ObjectId()}", headers=alice["headers"]).status_code == 404

    def test_requires_session(self, client):
        assert client.get("/resource/").status_code == 401
