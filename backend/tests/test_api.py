def test_health(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.get_json() == {"ok": True}


def test_unknown_room(client):
    res = client.get("/api/rooms/NOPE1")
    assert res.status_code == 404
    assert res.get_json() == {"error": "room_not_found"}


def test_room_snapshot(client, connect, drain):
    host = connect()
    host.emit("create_room", {"playerName": "Ana", "playerId": "a"})
    code = drain(host)["room_created"][0]["code"]

    res = client.get(f"/api/rooms/{code.lower()}")
    assert res.status_code == 200
    state = res.get_json()
    assert state["code"] == code
    assert state["phase"] == "LOBBY"
    assert state["hostId"] == "a"
    assert state["maxRounds"] == 5
    assert state["players"] == [{"id": "a", "name": "Ana", "score": 0, "connected": True}]
