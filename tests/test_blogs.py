import io
import json

import pytest
from bson import ObjectId
from pydantic import ValidationError

import content
import storage
from errors import UpstreamError


def post_form(**overrides):
    form = {
        "title": "Hello",
        "content": "...",
        "tags": '["a", "b"]',
        "seoKeywords": "k",
        "metaDescription": "d",
    }
    form.update(overrides)
    return form


class TestCreate:
    def test_example_scenario_post_shows_in_trending(self, client, make_user):
        alice = make_user("alice01")
        response = client.post("/blogs/create", data=post_form(), headers=alice["headers"])
        assert response.status_code == 201
        post = response.json()["newBlog"]
        assert post["tags"] == ["a", "b"]
        assert post["author"] == alice["id"]
        assert post["likes"] == 0

        feed = client.get("/blogs/").json()["data"]
        assert post["_id"] in [p["_id"] for p in feed["trendingPosts"]]

    def test_json_body_is_accepted(self, client, make_user):
        alice = make_user("alice01")
        body = {
            "title": "Hello",
            "tags": ["a", "b"],
            "seoKeywords": "k",
            "metaDescription": "d",
            "content": {"blocks": [{"data": {"text": "..."}}]},
        }
        response = client.post("/blogs/create", json=body, headers=alice["headers"])
        assert response.status_code == 201, response.text
        post = response.json()["newBlog"]
        assert post["tags"] == ["a", "b"]
        assert post["content"] == body["content"]
        assert post["isPublished"] is True

    def test_json_body_missing_fields(self, client, make_user):
        alice = make_user("alice01")
        response = client.post("/blogs/create", json={"title": "Hello", "tags": ["a"]}, headers=alice["headers"])
        assert response.status_code == 400
        assert response.json()["message"] == "All fields are mandatory"

    def test_json_draft_flag(self, client, make_user):
        alice = make_user("alice01")
        body = {"title": "Draft", "tags": [], "seoKeywords": "k", "metaDescription": "d",
                "content": "text", "isPublished": False}
        response = client.post("/blogs/create", json=body, headers=alice["headers"])
        assert response.status_code == 201
        assert response.json()["newBlog"]["isPublished"] is False

    def test_post_is_added_to_author_list(self, client, db, make_user, make_post):
        alice = make_user("alice01")
        post = make_post(alice)
        assert ObjectId(post["_id"]) in db["users"].find_one({"_id": alice["_id"]})["blogs"]

    def test_slugs_are_unique(self, client, make_user, make_post):
        alice = make_user("alice01")
        first = make_post(alice, title="Same Title")
        second = make_post(alice, title="Same Title")
        assert first["slug"].startswith("same-title-")
        assert first["slug"] != second["slug"]

    def test_unverified_author_is_forbidden(self, client, db, make_user):
        bob = make_user("bobby01", verified=False)
        response = client.post("/blogs/create", data=post_form(), headers=bob["headers"])
        assert response.status_code == 403
        assert db["blogs"].count_documents({}) == 0

    def test_blocked_after_token_issue_is_forbidden(self, client, db, make_user):
        alice = make_user("alice01")
        db["users"].update_one({"_id": alice["_id"]}, {"$set": {"isBlocked": True}})
        response = client.post("/blogs/create", data=post_form(), headers=alice["headers"])
        assert response.status_code == 403
        assert db["blogs"].count_documents({}) == 0

    def test_unauthenticated_is_401(self, client, db):
        assert client.post("/blogs/create", data=post_form()).status_code == 401

    def test_missing_fields(self, client, make_user):
        alice = make_user("alice01")
        response = client.post("/blogs/create", data=post_form(seoKeywords=""), headers=alice["headers"])
        assert response.status_code == 400
        assert response.json()["message"] == "All fields are mandatory"

    @pytest.mark.parametrize("tags", ["not json", '{"a": 1}', "[1, 2]", json.dumps([str(i) for i in range(11)])])
    def test_bad_tags(self, client, make_user, tags):
        alice = make_user("alice01")
        response = client.post("/blogs/create", data=post_form(tags=tags), headers=alice["headers"])
        assert response.status_code == 400

    def test_image_is_uploaded_and_staging_removed(self, client, make_user, uploads):
        alice = make_user("alice01")
        files = {"image": ("cover.jpg", io.BytesIO(b"jpeg"), "image/jpeg")}
        response = client.post("/blogs/create", data=post_form(), files=files, headers=alice["headers"])
        assert response.status_code == 201
        image = response.json()["newBlog"]["public_image"]
        assert image["resource_id"] == uploads["uploaded"][0]
        assert image["resource_id"].startswith(storage.POST_IMAGE_FOLDER)

    def test_validation_happens_before_upload(self, client, make_user, uploads):
        alice = make_user("alice01")
        files = {"image": ("cover.jpg", io.BytesIO(b"jpeg"), "image/jpeg")}
        response = client.post("/blogs/create", data=post_form(tags="oops"), files=files,
                               headers=alice["headers"])
        assert response.status_code == 400
        assert uploads["uploaded"] == []


class TestPublishing:
    def test_draft_is_hidden_until_published(self, client, make_user, make_post):
        alice = make_user("alice01")
        post = make_post(alice, published="false")
        assert client.get(f"/blogs/{post['_id']}").status_code == 404
        assert client.get("/blogs/").json()["data"]["trendingPosts"] == []

        response = client.patch(f"/blogs/publish/{post['_id']}", headers=alice["headers"])
        assert response.status_code == 200
        assert client.get(f"/blogs/{post['_id']}").status_code == 200

        client.patch(f"/blogs/unpublish/{post['_id']}", headers=alice["headers"])
        assert client.get(f"/blogs/{post['_id']}").status_code == 404

    def test_only_author_or_admin_can_publish(self, client, make_user, make_post):
        alice = make_user("alice01")
        bob = make_user("bobby01")
        admin = make_user("admin001", role="admin")
        post = make_post(alice, published="false")
        assert client.patch(f"/blogs/publish/{post['_id']}", headers=bob["headers"]).status_code == 403
        assert client.patch(f"/blogs/publish/{post['_id']}", headers=admin["headers"]).status_code == 200

    def test_invalid_post_id(self, client, make_user):
        alice = make_user("alice01")
        assert client.patch("/blogs/publish/not-an-id", headers=alice["headers"]).status_code == 400
        assert client.patch(f"/blogs/publish/{ObjectId()}", headers=alice["headers"]).status_code == 404


class TestUpdate:
    def test_partial_update(self, client, make_user, make_post):
        alice = make_user("alice01")
        post = make_post(alice)
        response = client.put(f"/blogs/{post['_id']}", data={"title": "New title"}, headers=alice["headers"])
        assert response.status_code == 200
        updated = response.json()["updatedpost"]
        assert updated["title"] == "New title"
        assert updated["tags"] == post["tags"]
        assert updated["seoKeywords"] == "k"

    def test_json_update(self, client, make_user, make_post):
        alice = make_user("alice01")
        post = make_post(alice)
        response = client.put(f"/blogs/{post['_id']}", json={"title": "New title", "tags": ["x"]},
                              headers=alice["headers"])
        assert response.status_code == 200
        updated = response.json()["updatedpost"]
        assert updated["title"] == "New title"
        assert updated["tags"] == ["x"]

    def test_blank_fields_do_not_count_as_changes(self, client, make_user, make_post):
        alice = make_user("alice01")
        post = make_post(alice)
        response = client.put(f"/blogs/{post['_id']}", json={"title": "   "}, headers=alice["headers"])
        assert response.status_code == 400

    def test_update_model_strips_text(self):
        assert content.PostUpdate(title="  Spaced  ").title == "Spaced"
        with pytest.raises(ValidationError):
            content.PostUpdate(title="   ")
        with pytest.raises(ValidationError):
            content.PostUpdate(seoKeywords="  ")

    def test_update_needs_a_field(self, client, make_user, make_post):
        alice = make_user("alice01")
        post = make_post(alice)
        assert client.put(f"/blogs/{post['_id']}", data={}, headers=alice["headers"]).status_code == 400

    def test_stranger_can_not_update(self, client, make_user, make_post):
        alice = make_user("alice01")
        bob = make_user("bobby01")
        post = make_post(alice)
        response = client.put(f"/blogs/{post['_id']}", data={"title": "Mine now"}, headers=bob["headers"])
        assert response.status_code == 403

    def test_blocked_author_can_not_update(self, client, db, make_user, make_post):
        alice = make_user("alice01")
        post = make_post(alice)
        db["users"].update_one({"_id": alice["_id"]}, {"$set": {"isBlocked": True}})
        response = client.put(f"/blogs/{post['_id']}", data={"title": "x"}, headers=alice["headers"])
        assert response.status_code == 403

    def test_new_image_replaces_old(self, client, make_user, make_post, uploads):
        alice = make_user("alice01")
        first = {"image": ("a.png", io.BytesIO(b"a"), "image/png")}
        response = client.post("/blogs/create", data=post_form(), files=first, headers=alice["headers"])
        post = response.json()["newBlog"]
        old_id = post["public_image"]["resource_id"]

        second = {"image": ("b.png", io.BytesIO(b"b"), "image/png")}
        response = client.put(f"/blogs/{post['_id']}", files=second, headers=alice["headers"])
        assert response.status_code == 200
        assert response.json()["updatedpost"]["public_image"]["resource_id"] != old_id
        assert uploads["destroyed"] == [old_id]


class TestDelete:
    def test_delete_cascades(self, client, db, make_user, make_post, uploads):
        alice = make_user("alice01")
        bob = make_user("bobby01")
        files = {"image": ("a.png", io.BytesIO(b"a"), "image/png")}
        post = client.post("/blogs/create", data=post_form(), files=files,
                           headers=alice["headers"]).json()["newBlog"]
        other = make_post(alice, title="Keep me")

        client.post("/comments/", json={"blogId": post["_id"], "comment": "Nice"}, headers=bob["headers"])
        client.post("/comments/", json={"blogId": other["_id"], "comment": "Also nice"}, headers=bob["headers"])
        client.post(f"/like/{post['_id']}", headers=bob["headers"])
        client.post("/follower/follow", json={"authorId": alice["id"], "blogId": post["_id"]},
                    headers=bob["headers"])

        response = client.delete(f"/blogs/{post['_id']}", headers=alice["headers"])
        assert response.status_code == 200

        oid = ObjectId(post["_id"])
        assert db["blogs"].find_one({"_id": oid}) is None
        assert db["comments"].count_documents({"blog": oid}) == 0
        assert db["likes"].count_documents({"blog": oid}) == 0
        assert db["comments"].count_documents({"blog": ObjectId(other["_id"])}) == 1
        assert oid not in db["users"].find_one({"_id": alice["_id"]})["blogs"]
        assert post["public_image"]["resource_id"] in uploads["destroyed"]
        # the follow itself survives, only its source post is detached
        relation = db["followers"].find_one({"user": bob["_id"]})
        assert relation["blog"] is None

    def test_stranger_can_not_delete(self, client, db, make_user, make_post):
        alice = make_user("alice01")
        bob = make_user("bobby01")
        post = make_post(alice)
        assert client.delete(f"/blogs/{post['_id']}", headers=bob["headers"]).status_code == 403
        assert db["blogs"].count_documents({}) == 1

    def test_admin_can_delete(self, client, db, make_user, make_post):
        alice = make_user("alice01")
        admin = make_user("admin001", role="admin")
        post = make_post(alice)
        assert client.delete(f"/blogs/{post['_id']}", headers=admin["headers"]).status_code == 200
        assert db["blogs"].count_documents({}) == 0

    def test_failed_cascade_is_reported_and_retryable(self, client, db, make_user, monkeypatch):
        alice = make_user("alice01")
        files = {"image": ("a.png", io.BytesIO(b"a"), "image/png")}
        post = client.post("/blogs/create", data=post_form(), files=files,
                           headers=alice["headers"]).json()["newBlog"]

        def broken_destroy(resource_id):
            raise UpstreamError("storage down")

        monkeypatch.setattr(storage, "destroy", broken_destroy)
        response = client.delete(f"/blogs/{post['_id']}", headers=alice["headers"])
        assert response.status_code == 500
        assert "image" in response.json()["message"]
        remaining = db["blogs"].find_one({"_id": ObjectId(post["_id"])})
        assert remaining is not None
        assert remaining["isPublished"] is False

        monkeypatch.setattr(storage, "destroy", lambda resource_id: None)
        assert client.delete(f"/blogs/{post['_id']}", headers=alice["headers"]).status_code == 200
        assert db["blogs"].count_documents({}) == 0


class TestListings:
    def test_search_by_tag_and_title(self, client, make_user, make_post):
        alice = make_user("alice01")
        make_post(alice, title="Learning Rust", tags='["systems"]')
        make_post(alice, title="Cooking", tags='["Food"]')

        by_tag = client.post("/blogs/tag", json={"tagsearch": "food"})
        assert by_tag.status_code == 200
        assert [p["title"] for p in by_tag.json()["posts"]] == ["Cooking"]

        by_title = client.post("/blogs/tag", json={"tagsearch": "rust"})
        assert [p["title"] for p in by_title.json()["posts"]] == ["Learning Rust"]

    def test_search_pagination(self, client, make_user, make_post):
        alice = make_user("alice01")
        for i in range(12):
            make_post(alice, title=f"Python tips {i}")
        first = client.post("/blogs/tag", json={"tagsearch": "python"}).json()
        assert len(first["posts"]) == 10
        assert first["more"] is True
        second = client.post("/blogs/tag", json={"tagsearch": "python", "skip": 10}).json()
        assert len(second["posts"]) == 2
        assert second["more"] is False

    def test_search_regex_characters_are_literal(self, client, make_user, make_post):
        alice = make_user("alice01")
        make_post(alice, title="C++ basics", tags='["c++"]')
        response = client.post("/blogs/tag", json={"tagsearch": "c++"})
        assert response.status_code == 200

    def test_search_without_match_is_404(self, client, db):
        assert client.post("/blogs/tag", json={"tagsearch": "nothing"}).status_code == 404

    def test_blocked_authors_are_excluded(self, client, db, make_user, make_post):
        alice = make_user("alice01")
        bob = make_user("bobby01")
        make_post(alice, title="Alice on python")
        post = make_post(bob, title="Bob on python")
        db["users"].update_one({"_id": bob["_id"]}, {"$set": {"isBlocked": True}})

        titles = [p["title"] for p in client.post("/blogs/tag", json={"tagsearch": "python"}).json()["posts"]]
        assert titles == ["Alice on python"]
        feed = client.get("/blogs/").json()["data"]
        assert post["_id"] not in [p["_id"] for p in feed["trendingPosts"]]
        assert post["_id"] not in [p["_id"] for p in feed["popularAuthorPosts"]]
        assert client.get(f"/blogs/{post['_id']}").status_code == 404

    def test_trending_orders_by_likes(self, client, db, make_user, make_post):
        alice = make_user("alice01")
        quiet = make_post(alice, title="Quiet")
        loud = make_post(alice, title="Loud")
        db["blogs"].update_one({"_id": ObjectId(loud["_id"])}, {"$set": {"likes": 5}})
        trending = client.get("/blogs/").json()["data"]["trendingPosts"]
        assert [p["_id"] for p in trending] == [loud["_id"], quiet["_id"]]

    def test_post_details_include_author_and_comments(self, client, make_user, make_post):
        alice = make_user("alice01")
        bob = make_user("bobby01")
        post = make_post(alice)
        client.post("/comments/", json={"blogId": post["_id"], "comment": "First!"}, headers=bob["headers"])
        body = client.get(f"/blogs/{post['_id']}").json()
        assert body["postDetails"]["author"]["username"] == "alice01"
        assert body["comments"][0]["content"] == "First!"
        assert body["comments"][0]["commentAuthor"]["username"] == "bobby01"

    def test_summary_falls_back_without_ai(self, client, make_user, make_post):
        alice = make_user("alice01")
        post = make_post(alice, title="Summarize me")
        body = client.get(f"/blogs/{post['_id']}/summary").json()
        assert body["success"] is True
        assert 'Summary of "Summarize me"' in body["summary"]
        assert "Some body text" in body["summary"]
