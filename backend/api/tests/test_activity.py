import base64
import json

import pytest

from contentflow import activity, comments, content
from contentflow.errors import NotFound, ValidationError

from conftest import OWNER


def _cursor_for(data) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode()


def _comment(engine, content_id, body):
    return comments.add_comment(engine, content_id, OWNER, "general", body)


def test_events_are_newest_first_with_sequences(engine, draft) -> None:
    content.transition_status(engine, draft.id, "review", OWNER)
    _comment(engine, draft.id, "Please check the dates")

    page = activity.list_activity(engine, draft.id)

    assert [e.type for e in page.items] == ["comment_added", "status_change", "content_created"]
    assert [e.sequence for e in page.items] == [3, 2, 1]
    assert page.items[1].payload == {"from_status": "draft", "to_status": "review"}
    assert page.next_cursor is None


def test_pages_stay_stable_when_events_arrive_between_reads(engine, draft) -> None:
    for n in range(4):
        _comment(engine, draft.id, f"note {n}")

    first = activity.list_activity(engine, draft.id, limit=2)
    assert [e.sequence for e in first.items] == [5, 4]
    assert first.next_cursor

    _comment(engine, draft.id, "late arrival")
    _comment(engine, draft.id, "another late arrival")

    second = activity.list_activity(engine, draft.id, limit=2, cursor=first.next_cursor)
    third = activity.list_activity(engine, draft.id, limit=2, cursor=second.next_cursor)

    assert [e.sequence for e in second.items] == [3, 2]
    assert [e.sequence for e in third.items] == [1]
    assert third.next_cursor is None


def test_iter_activity_walks_whole_history(engine, draft) -> None:
    for n in range(6):
        _comment(engine, draft.id, f"note {n}")

    sequences = [e.sequence for e in activity.iter_activity(engine, draft.id, page_size=4)]

    assert sequences == list(range(7, 0, -1))


@pytest.mark.parametrize("limit", [0, -1, 101])
def test_limit_out_of_bounds(engine, draft, limit) -> None:
    with pytest.raises(ValidationError):
        activity.list_activity(engine, draft.id, limit=limit)


@pytest.mark.parametrize(
    "cursor",
    [
        "not a cursor",
        _cursor_for({"x": 1}),
        _cursor_for([1, 2]),
        _cursor_for({"c": "yesterday", "s": 1}),
        _cursor_for({"c": "2026-01-01T00:00:00.000000Z", "s": "one"}),
    ],
)
def test_malformed_cursor_rejected(engine, draft, cursor) -> None:
    with pytest.raises(ValidationError):
        activity.list_activity(engine, draft.id, cursor=cursor)


def test_unknown_content_has_no_log(engine, team) -> None:
    with pytest.raises(NotFound):
        activity.list_activity(engine, "content-missing")


def test_append_rejects_unknown_type(engine, draft) -> None:
    with engine.begin() as conn:
        with pytest.raises(ValidationError):
            activity.append(conn, draft.id, OWNER, "content_rated", {})


def test_append_to_unknown_content(engine, team) -> None:
    with engine.begin() as conn:
        with pytest.raises(NotFound):
            activity.append(conn, "content-missing", OWNER, "status_change", {})


def test_created_at_never_goes_backwards(engine, draft, monkeypatch) -> None:
    monkeypatch.setattr(activity, "utc_now", lambda: "2000-01-01T00:00:00.000000Z")

    _comment(engine, draft.id, "clock skew")

    newest, oldest = activity.list_activity(engine, draft.id).items
    assert newest.type == "comment_added"
    assert newest.created_at >= oldest.created_at
    assert newest.sequence > oldest.sequence
