from conftest import auth


def links(n):
    return [{"label": f"Link {i}", "url": f"example.com/{i}"} for i in range(n)]


def test_me_requires_identity(client):
    assert client.get("/api/me").status_code == 401


def test_me_provisions_profile_on_first_call(client, db):
    r = client.get("/api/me", headers=auth("u1", "u1@example.com"))
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == "u1"
    assert body["onboarding_complete"] is False
    assert body["plan_type"] == "free"
    assert body["plan"]["max_links"] == 7
    assert db["profiles"].count_documents({}) == 1

    client.get("/api/me", headers=auth("u1"))
    assert db["profiles"].count_documents({}) == 1


def test_save_profile_normalizes_links_and_records_slug(client, db):
    r = client.put("/api/profile", headers=auth("u1"), json={
        "slug": "janedoe", "name": "Jane Doe", "bio": "Designer", "links": links(2),
    })
    assert r.status_code == 200
    body = r.json()
    assert body["slug"] == "janedoe"
    assert body["links"][0]["url"] == "https://example.com/0"
    assert db["username_history"].find_one({"user_id": "u1", "is_current": True})["username"] == "janedoe"


def test_save_rejects_slug_held_by_someone_else(client, make_profile):
    make_profile("other", slug="janedoe")
    r = client.put("/api/profile", headers=auth("u1"), json={"slug": "janedoe", "name": "Jane"})
    assert r.status_code == 409
    assert r.json()["code"] == "username_taken"


def test_save_keeps_own_slug(client, make_profile):
    make_profile("u1", slug="janedoe")
    r = client.put("/api/profile", headers=auth("u1"), json={"slug": "janedoe", "name": "Jane D."})
    assert r.status_code == 200
    assert r.json()["name"] == "Jane D."


def test_save_rejects_bad_username_format(client):
    r = client.put("/api/profile", headers=auth("u1"), json={"slug": "1jane", "name": "Jane"})
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


def test_username_length_limit_message(client):
    r = client.put("/api/profile", headers=auth("u1"), json={"slug": "a" * 31, "name": "Jane"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Username must be 30 characters or fewer"
    r = client.put("/api/profile", headers=auth("u1"), json={"slug": "a" * 30, "name": "Jane"})
    assert r.status_code == 200


def test_slug_index_is_unique(db):
    index = db["profiles"].index_information()["profiles_slug_unique"]
    assert index["unique"] is True


def test_save_losing_slug_race_reports_taken(client, make_profile, db, monkeypatch):
    make_profile("other", slug="janedoe")
    make_profile("u1", slug="jane")
    # availability check passes, as it would for a writer that read before the other commit
    monkeypatch.setattr("scan2tap.profiles.is_username_available", lambda *a, **kw: True)
    r = client.put("/api/profile", headers=auth("u1"), json={"slug": "janedoe", "name": "Jane"})
    assert r.status_code == 409
    assert r.json()["code"] == "username_taken"
    assert db["profiles"].find_one({"_id": "u1"})["slug"] == "jane"
    assert db["profiles"].count_documents({"slug": "janedoe"}) == 1


def test_new_profile_losing_slug_race_is_not_inserted(client, make_profile, db, monkeypatch):
    make_profile("other", slug="janedoe")
    monkeypatch.setattr("scan2tap.profiles.is_username_available", lambda *a, **kw: True)
    r = client.put("/api/profile", headers=auth("u2"), json={"slug": "janedoe", "name": "Jane"})
    assert r.status_code == 409
    assert db["profiles"].find_one({"_id": "u2"}) is None
    assert db["username_history"].count_documents({"user_id": "u2"}) == 0


def test_free_plan_cannot_save_eight_links(client, make_profile, db):
    make_profile("u1", slug="janedoe")
    r = client.put("/api/profile", headers=auth("u1"), json={"slug": "janedoe", "name": "Jane", "links": links(8)})
    assert r.status_code == 403
    assert r.json()["upgrade"] is True
    assert db["profiles"].find_one({"_id": "u1"})["links"] == []


def test_pro_plan_can_save_eight_links_and_grid(client, make_profile):
    make_profile("u1", slug="janedoe", plan_type="pro")
    r = client.put("/api/profile", headers=auth("u1"), json={
        "slug": "janedoe", "name": "Jane", "links": links(8), "social_layout_style": "grid",
    })
    assert r.status_code == 200
    assert len(r.json()["links"]) == 8


def test_free_plan_cannot_use_grid_layout(client, make_profile):
    make_profile("u1", slug="janedoe")
    r = client.put("/api/profile", headers=auth("u1"), json={
        "slug": "janedoe", "name": "Jane", "social_layout_style": "grid",
    })
    assert r.status_code == 403


def test_bio_over_160_characters_is_rejected(client, make_profile):
    make_profile("u1", slug="janedoe")
    r = client.put("/api/profile", headers=auth("u1"), json={"slug": "janedoe", "name": "Jane", "bio": "x" * 161})
    assert r.status_code == 400


def test_add_social_link_until_free_cap(client, make_profile, db):
    make_profile("u1", slug="janedoe", links=[{"label": f"L{i}", "url": f"https://e.com/{i}"} for i in range(6)])
    r = client.post("/api/profile/links/social", headers=auth("u1"), json={"platform": "instagram", "value": "@alice"})
    assert r.status_code == 200
    assert r.json()["links"][-1] == {"label": "Instagram", "url": "https://instagram.com/alice"}
    assert r.json()["username"] == "alice"

    r = client.post("/api/profile/links/social", headers=auth("u1"), json={"platform": "x", "value": "@jack"})
    assert r.status_code == 403
    assert len(db["profiles"].find_one({"_id": "u1"})["links"]) == 7


def test_add_social_link_with_invalid_input(client, make_profile):
    make_profile("u1", slug="janedoe")
    r = client.post("/api/profile/links/social", headers=auth("u1"), json={"platform": "whatsapp", "value": "call me"})
    assert r.status_code == 400


def test_add_custom_link_and_remove_it(client, make_profile, db):
    make_profile("u1", slug="janedoe")
    r = client.post("/api/profile/links/custom", headers=auth("u1"), data={"label": "Shop", "url": "shop.example.com"})
    assert r.status_code == 200
    assert r.json()["links"] == [{"label": "Shop", "url": "https://shop.example.com"}]

    r = client.delete("/api/profile/links/0", headers=auth("u1"))
    assert r.status_code == 200
    assert db["profiles"].find_one({"_id": "u1"})["links"] == []

    assert client.delete("/api/profile/links/3", headers=auth("u1")).status_code == 404


def test_privacy_flags_control_public_view(client, make_profile):
    make_profile("u1", slug="janedoe", email="jane@example.com", phone="+233241234567", name="Jane")
    public = client.get("/api/p/janedoe").json()
    assert public["email"] is None
    assert public["phone"] is None

    r = client.patch("/api/profile/privacy", headers=auth("u1"), json={"show_email": True})
    assert r.status_code == 200
    public = client.get("/api/p/janedoe").json()
    assert public["email"] == "jane@example.com"
    assert public["phone"] is None


def test_username_availability(client, make_profile):
    make_profile("other", slug="taken")
    assert client.get("/api/username/taken/available").json()["available"] is False
    assert client.get("/api/username/taken/available", headers=auth("other")).json()["available"] is True
    assert client.get("/api/username/free123/available").json()["available"] is True
    body = client.get("/api/username/ab/available").json()
    assert body["valid"] is False


def test_retired_slug_still_resolves(client, make_profile):
    client.put("/api/profile", headers=auth("u1"), json={"slug": "oldname", "name": "Jane"})
    client.put("/api/profile", headers=auth("u1"), json={"slug": "newname", "name": "Jane"})
    r = client.get("/api/p/oldname")
    assert r.status_code == 200
    assert r.json()["slug"] == "newname"


def test_public_profile_by_user_id_and_missing(client, make_profile):
    make_profile("u1", slug="janedoe", name="Jane")
    assert client.get("/api/u/u1").json()["name"] == "Jane"
    assert client.get("/api/p/nobody").status_code == 404


def test_vcard_is_a_pro_feature(client, make_profile):
    make_profile("u1", slug="janedoe", name="Jane Doe", email="jane@example.com", show_email=True)
    assert client.get("/api/p/janedoe/vcf").status_code == 403

    make_profile("u2", slug="prouser", plan_type="pro", name="Pro User")
    r = client.get("/api/p/prouser/vcf")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/vcard")
    assert "FN:Pro User" in r.text


def test_avatar_upload_is_served_back(client, make_profile):
    import mongomock.gridfs
    mongomock.gridfs.enable_gridfs_integration()

    make_profile("u1", slug="janedoe")
    r = client.post(
        "/api/uploads/avatar",
        headers=auth("u1"),
        files={"file": ("me.png", b"\x89PNG fake", "image/png")},
    )
    assert r.status_code == 200
    url = r.json()["url"]
    served = client.get(url)
    assert served.status_code == 200
    assert served.content == b"\x89PNG fake"


def test_avatar_upload_rejects_non_images(client, make_profile):
    make_profile("u1", slug="janedoe")
    r = client.post(
        "/api/uploads/avatar",
        headers=auth("u1"),
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert r.status_code == 400
