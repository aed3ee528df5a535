import pytest

from tutti.realtime.events import (
    CreateRoom,
    InvalidPayload,
    JoinRoom,
    RejoinRequest,
    RoomAction,
    SubmitAnswers,
    SubmitVotes,
)


def test_create_room_requires_name_and_id():
    event = CreateRoom.parse({"playerName": "  Ana ", "playerId": "p-1"})
    assert event == CreateRoom(player_id="p-1", player_name="Ana")

    for bad in (None, {}, {"playerName": "Ana"}, {"playerId": "p-1", "playerName": ""}, "Ana"):
        with pytest.raises(InvalidPayload):
            CreateRoom.parse(bad)


@pytest.mark.parametrize("name", ["<b>Ana</b>", "A" * 21, "Ana\x07"])
def test_player_names_are_validated(name):
    with pytest.raises(InvalidPayload):
        JoinRoom.parse({"code": "ABCDE", "playerName": name, "playerId": "p-1"})


def test_room_codes_are_normalised():
    assert JoinRoom.parse({"code": " abcde ", "playerName": "Ana", "playerId": "p"}).code == "ABCDE"
    assert RoomAction.parse({"code": "xy12z"}).code == "XY12Z"


def test_rejoin_name_is_optional():
    event = RejoinRequest.parse({"roomCode": "ABCDE", "playerId": "p"})
    assert event.player_name == ""


def test_submit_answers_accepts_blank_and_null_words():
    event = SubmitAnswers.parse({"code": "ABCDE", "answers": {"Animal": " Buho ", "Color": None}})
    assert event.answers == {"Animal": "Buho", "Color": ""}

    with pytest.raises(InvalidPayload):
        SubmitAnswers.parse({"code": "ABCDE", "answers": {"Animal": 3}})
    with pytest.raises(InvalidPayload):
        SubmitAnswers.parse({"code": "ABCDE", "answers": ["Buho"]})


def test_submit_votes_requires_booleans():
    event = SubmitVotes.parse({"code": "ABCDE", "targetPlayerId": "p", "votes": {"Animal": True}})
    assert event.votes == {"Animal": True}
    assert event.target_player_id == "p"

    with pytest.raises(InvalidPayload):
        SubmitVotes.parse({"code": "ABCDE", "targetPlayerId": "p", "votes": {"Animal": "yes"}})
    with pytest.raises(InvalidPayload):
        SubmitVotes.parse({"code": "ABCDE", "votes": {"Animal": True}})
