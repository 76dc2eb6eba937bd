import pytest

from travelai.errors import InvalidPayload, Unauthorized
from travelai.events import (
    FlatCreator,
    Location,
    NestedCreator,
    creator_variant,
    normalize_submission,
    normalize_updates,
    parse_location,
    resolve_creator,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("12.5,-3", Location(12.5, -3.0)),
        (" 1 , 2 ", Location(1.0, 2.0)),
        ({"lat": 1, "lng": 2.5}, Location(1.0, 2.5)),
        ({"lat": 1}, None),
        ({"lat": True, "lng": 2}, None),
        ({"lat": float("nan"), "lng": 2}, None),
        ("north", None),
        (None, None),
    ],
)
def test_parse_location(raw, expected):
    assert parse_location(raw) == expected


def test_creator_variants():
    assert isinstance(creator_variant({"creator": {"uid": "c1"}}), NestedCreator)
    assert isinstance(creator_variant({"creatorName": "Flat"}), FlatCreator)


def test_nested_creator_wins_over_flat():
    data = {"creator": {"uid": "c1", "name": "Nested"}, "creatorName": "Flat", "creatorProfileImageUrl": "https://i/x"}
    creator = resolve_creator(creator_variant(data), "u1", data)
    assert creator.to_dict() == {"uid": "c1", "name": "Nested", "profileImageUrl": "https://i/x"}


def test_flat_creator_uses_submitting_user():
    data = {"creatorName": "Flat"}
    assert resolve_creator(creator_variant(data), "u1", data).to_dict() == {"uid": "u1", "name": "Flat"}


def test_normalize_submission_collects_extra_and_tags():
    event = normalize_submission(
        {
            "userId": " u1 ",
            "title": "T",
            "description": "D",
            "location": "1,2",
            "tags": ["a", " ", 3, "b "],
            "apiKey": "k",
            "venue": "Hall",
        }
    )
    assert event.user_id == "u1"
    assert event.tags == ["a", "b"]
    assert event.extra == {"venue": "Hall"}
    assert event.consent_given is True


def test_normalize_submission_errors():
    with pytest.raises(InvalidPayload):
        normalize_submission({"consentGiven": False, "userId": "u1"})
    with pytest.raises(Unauthorized):
        normalize_submission({"title": "T"})
    with pytest.raises(InvalidPayload) as ei:
        normalize_submission({"userId": "u1", "title": " "})
    assert [p["name"] for p in ei.value.invalid_params] == ["title", "description", "location"]


def test_normalize_updates():
    out = normalize_updates({"title": " New ", "tags": ["x"], "location": {"lat": 1, "lng": 2}, "color": "red"})
    assert out == {"title": "New", "tags": ["x"], "lat": 1.0, "lng": 2.0, "extra": {"color": "red"}}
    with pytest.raises(InvalidPayload):
        normalize_updates({})
    with pytest.raises(InvalidPayload) as ei:
        normalize_updates({"tags": "x", "createdBy": "me"})
    assert {p["name"] for p in ei.value.invalid_params} == {"updates.tags", "updates.createdBy"}


def test_title_length_limit():
    base = {"userId": "u1", "description": "D", "location": "1,2"}
    with pytest.raises(InvalidPayload) as ei:
        normalize_submission({**base, "title": "x" * 201})
    assert ei.value.invalid_params[0]["name"] == "title"
    with pytest.raises(InvalidPayload) as ei:
        normalize_updates({"title": "y" * 201})
    assert ei.value.invalid_params[0]["name"] == "updates.title"
