"""
Video endpoints: listing (filter, search, sort, paging) and single-video CRUD.
"""

import os

from bson import ObjectId

import storage
from conftest import auth, seed_comments, seed_videos


def titles(response):
    return [video["title"] for video in response.json()["data"]]


class TestListVideos:

    def test_empty_listing_is_success(self, client):
        response = client.get("/api/videos")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == 200
        assert body["data"] == []
        assert body["message"] == "Videos fetched successfully"

    def test_default_sort_is_newest_first(self, client, mongo_db, alice):
        seed_videos(mongo_db, alice, ["first", "second", "third"])
        response = client.get("/api/videos")
        assert titles(response) == ["third", "second", "first"]

    def test_page_three_of_twenty_five(self, client, mongo_db, alice):
        seed_videos(mongo_db, alice, [f"Video {i:02d}" for i in range(25)])
        response = client.get("/api/videos", params={"page": 3, "limit": 10})
        assert response.status_code == 200
        assert titles(response) == ["Video 04", "Video 03", "Video 02", "Video 01", "Video 00"]

    def test_pages_are_disjoint_and_exhaustive(self, client, mongo_db, alice):
        seed_videos(mongo_db, alice, [f"Video {i:02d}" for i in range(23)])
        full = titles(client.get("/api/videos", params={"limit": 100}))
        assert len(full) == 23

        collected = []
        page = 1
        while True:
            chunk = titles(client.get("/api/videos", params={"page": page, "limit": 7}))
            if not chunk:
                break
            collected.extend(chunk)
            page += 1
        assert collected == full
        assert page == 5

    def test_malformed_paging_uses_defaults(self, client, mongo_db, alice):
        seed_videos(mongo_db, alice, [f"Video {i:02d}" for i in range(12)])
        response = client.get("/api/videos", params={"page": "abc", "limit": "-4"})
        assert response.status_code == 200
        assert len(response.json()["data"]) == 10
        assert titles(response)[0] == "Video 11"

    def test_sort_by_title_ascending(self, client, mongo_db, alice):
        seed_videos(mongo_db, alice, ["banana", "cherry", "apple"])
        response = client.get("/api/videos", params={"sortBy": "title", "sortType": "asc"})
        assert titles(response) == ["apple", "banana", "cherry"]

    def test_unknown_sort_field_behaves_like_default(self, client, mongo_db, alice):
        seed_videos(mongo_db, alice, ["banana", "cherry", "apple"])
        default = titles(client.get("/api/videos"))
        unknown = titles(client.get("/api/videos", params={"sortBy": "owner.email", "sortType": "asc"}))
        assert unknown == default == ["apple", "cherry", "banana"]

    def test_owner_and_query_combine_with_and(self, client, mongo_db, alice, bob):
        seed_videos(mongo_db, alice, ["Cooking pasta", "Gardening"], description="weekend")
        seed_videos(mongo_db, alice, ["Travel"], description="cooking abroad")
        seed_videos(mongo_db, bob, ["Cooking eggs"])

        response = client.get("/api/videos", params={"userId": str(alice["_id"]), "query": "COOK"})
        assert sorted(titles(response)) == ["Cooking pasta", "Travel"]

    def test_owner_only(self, client, mongo_db, alice, bob):
        seed_videos(mongo_db, alice, ["a1", "a2"])
        seed_videos(mongo_db, bob, ["b1"])
        response = client.get("/api/videos", params={"userId": str(bob["_id"])})
        assert titles(response) == ["b1"]

    def test_invalid_owner_id_is_ignored_in_listing(self, client, mongo_db, alice, bob):
        seed_videos(mongo_db, alice, ["Cooking pasta", "Gardening"])
        seed_videos(mongo_db, bob, ["Cooking eggs"])
        response = client.get("/api/videos", params={"userId": "not-a-valid-id", "query": "cooking"})
        assert response.status_code == 200
        assert sorted(titles(response)) == ["Cooking eggs", "Cooking pasta"]

    def test_query_is_a_literal_substring(self, client, mongo_db, alice):
        seed_videos(mongo_db, alice, ["Learn C++ fast", "Learn C fast"])
        response = client.get("/api/videos", params={"query": "c++"})
        assert titles(response) == ["Learn C++ fast"]

    def test_unpublished_videos_are_hidden(self, client, mongo_db, alice):
        seed_videos(mongo_db, alice, ["public"])
        seed_videos(mongo_db, alice, ["draft"], published=False)
        response = client.get("/api/videos", params={"userId": str(alice["_id"])})
        assert titles(response) == ["public"]

    def test_owner_is_embedded_summary(self, client, mongo_db, alice):
        seed_videos(mongo_db, alice, ["clip"])
        video = client.get("/api/videos").json()["data"][0]
        assert video["owner"] == {
            "id": str(alice["_id"]),
            "username": "alice",
            "full_name": "Alice",
            "avatar": "https://cdn.example.com/alice.png",
        }
        assert "content_type" not in video


class TestGetVideo:

    def test_malformed_id_is_rejected(self, client):
        response = client.get("/api/videos/not-a-valid-id")
        assert response.status_code == 400
        assert response.json() == {"status": 400, "message": "Invalid video id"}

    def test_missing_video_is_404(self, client):
        response = client.get(f"/api/videos/{ObjectId()}")
        assert response.status_code == 404
        assert response.json()["message"] == "Video does not exist"

    def test_fetch_increments_views(self, client, mongo_db, alice):
        [video_id] = seed_videos(mongo_db, alice, ["clip"])
        client.get(f"/api/videos/{video_id}")
        response = client.get(f"/api/videos/{video_id}")
        assert response.status_code == 200
        assert response.json()["data"]["views"] == 2
        assert response.json()["data"]["id"] == str(video_id)


class TestPublishVideo:

    def files(self, video_type="video/mp4"):
        return {
            "video_file": ("clip.mp4", b"\x00\x01video", video_type),
            "thumbnail": ("thumb.png", b"\x89PNG", "image/png"),
        }

    def test_requires_current_user(self, client):
        response = client.post("/api/videos", files=self.files(), data={"title": "t", "description": "d"})
        assert response.status_code == 401

    def test_publish_stores_files_and_metadata(self, client, mongo_db, alice):
        response = client.post(
            "/api/videos",
            files=self.files(),
            data={"title": "My clip", "description": "About it"},
            headers=auth(alice),
        )
        assert response.status_code == 201
        video = response.json()["data"]
        assert video["owner"] == str(alice["_id"])
        assert video["size"] == len(b"\x00\x01video")
        assert os.path.exists(storage.file_path(video["video_file"]))
        assert os.path.exists(storage.file_path(video["thumbnail"]))
        assert mongo_db["videos"].count_documents({}) == 1

    def test_rejects_non_video_upload(self, client, alice):
        response = client.post(
            "/api/videos",
            files=self.files(video_type="text/plain"),
            data={"title": "x", "description": "y"},
            headers=auth(alice),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Only video files are allowed"

    def test_blank_title_is_rejected(self, client, alice):
        response = client.post(
            "/api/videos",
            files=self.files(),
            data={"title": "   ", "description": "y"},
            headers=auth(alice),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "All fields are required"


class TestUpdateAndDeleteVideo:

    def test_only_owner_may_update(self, client, mongo_db, alice, bob):
        [video_id] = seed_videos(mongo_db, alice, ["clip"])
        response = client.patch(f"/api/videos/{video_id}", data={"title": "new"}, headers=auth(bob))
        assert response.status_code == 403

    def test_update_title(self, client, mongo_db, alice):
        [video_id] = seed_videos(mongo_db, alice, ["clip"])
        response = client.patch(f"/api/videos/{video_id}", data={"title": "renamed"}, headers=auth(alice))
        assert response.status_code == 200
        assert response.json()["data"]["title"] == "renamed"

    def test_update_without_changes(self, client, mongo_db, alice):
        [video_id] = seed_videos(mongo_db, alice, ["clip"])
        response = client.patch(f"/api/videos/{video_id}", headers=auth(alice))
        assert response.status_code == 400

    def test_toggle_publish(self, client, mongo_db, alice):
        [video_id] = seed_videos(mongo_db, alice, ["clip"])
        response = client.patch(f"/api/videos/toggle/publish/{video_id}", headers=auth(alice))
        assert response.json()["data"]["is_published"] is False
        assert client.get("/api/videos").json()["data"] == []

    def test_delete_removes_comments_and_likes(self, client, mongo_db, alice, bob):
        [video_id] = seed_videos(mongo_db, alice, ["clip"])
        [comment_id] = seed_comments(mongo_db, bob, video_id, ["nice"])
        mongo_db["likes"].insert_many([
            {"video": video_id, "liked_by": bob["_id"]},
            {"comment": comment_id, "liked_by": alice["_id"]},
        ])

        assert client.delete(f"/api/videos/{video_id}", headers=auth(bob)).status_code == 403

        response = client.delete(f"/api/videos/{video_id}", headers=auth(alice))
        assert response.status_code == 200
        assert response.json()["data"] == {}
        assert mongo_db["videos"].count_documents({}) == 0
        assert mongo_db["comments"].count_documents({}) == 0
        assert mongo_db["likes"].count_documents({}) == 0
