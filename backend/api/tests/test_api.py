from conftest import OWNER, TEAM_ID, role_by_name

AS_OWNER = {"X-Actor-Id": OWNER}


def _create(client, title="Launch announcement", headers=AS_OWNER):
    return client.post("/content", json={"space_id": "space-blog", "title": title}, headers=headers)


def test_healthz(client) -> None:
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_readyz_pings_database(client) -> None:
    r = client.get("/readyz")
    assert r.status_code == 200
    assert r.json()["db"] == "ok"


def test_missing_actor_is_unauthorized(client, space) -> None:
    r = client.post("/content", json={"space_id": space, "title": "Anonymous"})
    assert r.status_code == 401


def test_permission_catalog(client) -> None:
    r = client.get("/permissions")
    assert r.status_code == 200
    ids = [p["id"] for p in r.json()]
    assert "content:approve" in ids
    assert len(ids) == len(set(ids))


def test_workflow_definition(client) -> None:
    body = client.get("/workflow").json()
    assert body["states"][0] == "draft"
    assert {"from_status": "draft", "to_status": "review", "permissions": ["content:create"]} in body["edges"]


def test_create_and_transition_content(client, space) -> None:
    created = _create(client)
    assert created.status_code == 201
    item = created.json()
    assert item["status"] == "draft"

    r = client.post(
        f"/content/{item['id']}/transition",
        json={"to_status": "review", "expected_version": item["version"]},
        headers=AS_OWNER,
    )
    assert r.status_code == 200
    assert r.json()["status"] == "review"

    stale = client.post(
        f"/content/{item['id']}/transition",
        json={"to_status": "approval", "expected_version": item["version"]},
        headers=AS_OWNER,
    )
    assert stale.status_code == 409
    assert stale.json()["kind"] == "conflict"


def test_error_kinds_map_to_status_codes(client, space, make_member) -> None:
    make_member("user-editor", ["content:create", "content:view"])
    editor = {"X-Actor-Id": "user-editor"}
    item = _create(client, headers=editor).json()

    invalid = client.post(f"/content/{item['id']}/transition", json={"to_status": "published"}, headers=editor)
    assert (invalid.status_code, invalid.json()["kind"]) == (409, "invalid_state")

    unknown = client.post(f"/content/{item['id']}/transition", json={"to_status": "shipped"}, headers=editor)
    assert (unknown.status_code, unknown.json()["kind"]) == (404, "not_found")

    client.post(f"/content/{item['id']}/next", json={}, headers=editor)
    forbidden = client.post(f"/content/{item['id']}/transition", json={"to_status": "approval"}, headers=editor)
    assert (forbidden.status_code, forbidden.json()["kind"]) == (403, "forbidden")

    bad_comment = client.post(
        f"/content/{item['id']}/comments", json={"type": "praise", "text": "Nice"}, headers=AS_OWNER
    )
    assert (bad_comment.status_code, bad_comment.json()["kind"]) == (422, "validation_error")


def test_reads_require_view_permission(client, space, make_member) -> None:
    make_member("user-outsider", [])
    item = _create(client).json()

    assert client.get(f"/content/{item['id']}", headers=AS_OWNER).status_code == 200
    assert client.get(f"/content/{item['id']}", headers={"X-Actor-Id": "user-outsider"}).status_code == 403
    assert client.get("/content/content-missing", headers=AS_OWNER).status_code == 403


def test_allowed_transitions_endpoint(client, space) -> None:
    item = _create(client).json()

    body = client.get(f"/content/{item['id']}/allowed", headers=AS_OWNER).json()
    assert body["from_status"] == "draft"
    assert sorted(body["allowed"]) == ["archived", "review"]


def test_permission_check_endpoint(client, space, make_member) -> None:
    make_member("user-editor", ["content:create"])

    def check(actor, permission):
        r = client.get(
            "/permissions/check",
            params={"permission": permission, "resource_type": "space", "resource_id": space},
            headers={"X-Actor-Id": actor},
        )
        assert r.status_code == 200
        return r.json()["has_permission"]

    assert check("user-editor", "content:create") is True
    assert check("user-editor", "content:publish") is False
    assert check("user-stranger", "content:create") is False


def test_role_group_toggle_endpoints(client, team, engine) -> None:
    created = client.post(
        f"/teams/{TEAM_ID}/roles", json={"name": "Reviewer", "grants": ["content:view"]}, headers=AS_OWNER
    )
    assert created.status_code == 201
    role = created.json()

    r = client.put(f"/roles/{role['id']}/groups/content", json={"granted": True}, headers=AS_OWNER)
    assert r.status_code == 200
    assert r.json()["version"] == role["version"] + 1

    view = client.get(f"/roles/{role['id']}/permissions", headers=AS_OWNER).json()
    groups = {g["namespace"]: g for g in view["groups"]}
    assert groups["content"]["fully_enabled"] is True
    assert groups["team"]["fully_enabled"] is False

    single = client.put(
        f"/roles/{role['id']}/permissions/content:publish",
        json={"granted": False, "expected_version": role["version"]},
        headers=AS_OWNER,
    )
    assert single.status_code == 409

    owner_role = role_by_name(engine, team, "Owner")
    locked = client.put(f"/roles/{owner_role.id}/groups/content", json={"granted": False}, headers=AS_OWNER)
    assert (locked.status_code, locked.json()["kind"]) == (403, "forbidden")


def test_delete_role_with_members_needs_reassignment(client, team, make_member) -> None:
    doomed = make_member("user-temp", ["content:view"], name="Temp")
    fallback = client.post(f"/teams/{TEAM_ID}/roles", json={"name": "Fallback"}, headers=AS_OWNER).json()

    assert client.delete(f"/roles/{doomed.id}", headers=AS_OWNER).status_code == 409

    r = client.delete(f"/roles/{doomed.id}", params={"reassign_to": fallback["id"]}, headers=AS_OWNER)
    assert r.status_code == 200
    assert r.json()["deleted_role_id"] == doomed.id

    members = client.get(f"/teams/{TEAM_ID}/members", headers=AS_OWNER).json()
    assert {"user_id": "user-temp", "team_id": TEAM_ID, "role_id": fallback["id"]} in members


def test_comments_and_activity_pages(client, space) -> None:
    item = _create(client).json()
    for n in range(3):
        r = client.post(f"/content/{item['id']}/comments", json={"text": f"note {n}"}, headers=AS_OWNER)
        assert r.status_code == 201

    first = client.get(f"/content/{item['id']}/activity", params={"limit": 3}, headers=AS_OWNER).json()
    assert [e["sequence"] for e in first["items"]] == [4, 3, 2]

    rest = client.get(
        f"/content/{item['id']}/activity",
        params={"limit": 3, "cursor": first["next_cursor"]},
        headers=AS_OWNER,
    ).json()
    assert [e["type"] for e in rest["items"]] == ["content_created"]
    assert rest["next_cursor"] is None

    listed = client.get(f"/content/{item['id']}/comments", headers=AS_OWNER).json()
    assert client.delete(f"/comments/{listed[0]['id']}", headers=AS_OWNER).status_code == 204


def test_delete_content_archives(client, space) -> None:
    item = _create(client).json()

    r = client.delete(f"/content/{item['id']}", headers=AS_OWNER)
    assert r.status_code == 200
    assert r.json()["status"] == "archived"

    again = client.delete(f"/content/{item['id']}", headers=AS_OWNER)
    assert again.json()["kind"] == "invalid_state"


def test_list_team_content(client, space) -> None:
    _create(client, title="Alpha")
    _create(client, title="Beta")

    body = client.get(f"/teams/{TEAM_ID}/content", params={"sort": "title_asc"}, headers=AS_OWNER).json()
    assert body["total"] == 2
    assert [i["title"] for i in body["items"]] == ["Alpha", "Beta"]
