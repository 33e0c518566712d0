from fastapi.testclient import TestClient

from parley.config import AppConfig
from parley.http.api import create_app
from parley.store import JsonStore
from parley.topics import TopicRouter


def _client(db_path):
    app = create_app(AppConfig(), store=JsonStore(db_path), router=TopicRouter())
    return TestClient(app)


def test_health_and_ping(db_path):
    with _client(db_path) as client:
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/api/ping").status_code == 200
        assert client.head("/api/ping").status_code == 200


def test_timeline_roundtrip(db_path):
    with _client(db_path) as client:
        resp = client.post("/api/timeline", json={"author": "Alice", "text": "hi"})
        assert resp.status_code == 200
        post = resp.json()
        assert post["author"] == "Alice" and post["text"] == "hi"
        assert isinstance(post["id"], int) and post["createdAt"]
        client.post("/api/timeline", json={"text": "later"})
        listed = client.get("/api/timeline").json()
        assert [p["text"] for p in listed] == ["later", "hi"]
        assert listed[0]["author"] == "Anonymous"


def test_servers_and_messages(db_path):
    with _client(db_path) as client:
        server = client.post("/api/servers", json={"name": "Gaming"}).json()
        assert server["channels"] == [{"id": "general", "name": "general"}]
        assert server["messages"] == []
        assert [s["id"] for s in client.get("/api/servers").json()] == [server["id"]]

        resp = client.post(
            f"/api/servers/{server['id']}/messages", json={"text": "hello"}
        )
        assert resp.status_code == 200
        msg = resp.json()
        assert msg["channelId"] == "general" and msg["author"] == "anonymous"

        fetched = client.get(f"/api/servers/{server['id']}").json()
        assert fetched["messages"] == [msg]


def test_default_server_name(db_path):
    with _client(db_path) as client:
        assert client.post("/api/servers", json={}).json()["name"] == "New Server"


def test_not_found_and_validation_errors(db_path):
    with _client(db_path) as client:
        resp = client.get("/api/servers/nope")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "server not found"}
        resp = client.post("/api/servers/nope/messages", json={"text": "x"})
        assert resp.status_code == 404
        assert client.get("/api/dms/a-b").status_code == 404

        resp = client.post("/api/users", json={"name": "  "})
        assert resp.status_code == 400
        assert resp.json() == {"detail": "name required"}
        assert client.post("/api/users", json={}).status_code == 400
        assert client.post("/api/dms", json={"from": "u1", "to": "u2"}).status_code == 400
        assert client.post("/api/timeline", content=b"not json").status_code == 400


def test_users(db_path):
    with _client(db_path) as client:
        user = client.post("/api/users", json={"name": " Alice "}).json()
        assert user["name"] == "Alice"
        assert client.get("/api/users").json() == [user]


def test_dm_thread_via_rest(db_path):
    with _client(db_path) as client:
        first = client.post("/api/dms", json={"from": "u1", "to": "u2", "text": "hey"})
        second = client.post("/api/dms", json={"from": "u2", "to": "u1", "text": "yo"})
        assert first.status_code == 200 and second.status_code == 200
        assert first.json()["from"] == "u1"
        thread = client.get("/api/dms/u1-u2").json()
        assert thread["participants"] == ["u1", "u2"]
        assert [m["text"] for m in thread["messages"]] == ["hey", "yo"]
        assert [t["id"] for t in client.get("/api/dms").json()] == ["u1-u2"]


def test_persistence_failure_is_a_server_error(db_path):
    store = JsonStore(db_path)
    app = create_app(AppConfig(), store=store, router=TopicRouter())
    with TestClient(app) as client:
        server = client.post("/api/servers", json={"name": "Gaming"}).json()

        def broken_write(document):
            from parley.errors import PersistenceError

            raise PersistenceError("failed to persist changes")

        store._write = broken_write
        resp = client.post(f"/api/servers/{server['id']}/messages", json={"text": "x"})
        assert resp.status_code == 500
        assert resp.json() == {"detail": "failed to persist changes"}
        assert client.get(f"/api/servers/{server['id']}").json()["messages"] == []


def test_ws_join_and_receive_server_message(db_path):
    with _client(db_path) as client:
        server = client.post("/api/servers", json={"name": "Gaming"}).json()
        with client.websocket_connect("/ws") as member, client.websocket_connect("/ws") as other:
            member.send_json({"op": "join", "d": {"kind": "server", "id": server["id"]}})
            assert member.receive_json() == {
                "op": "ack",
                "d": {"kind": "server", "id": server["id"], "joined": True},
            }
            other.send_json({"op": "join", "d": {"kind": "dm", "id": server["id"]}})
            assert other.receive_json()["op"] == "ack"

            client.post(f"/api/servers/{server['id']}/messages", json={"text": "hello"})
            frame = member.receive_json()
            assert frame["op"] == "server-message"
            assert frame["d"]["serverId"] == server["id"]
            assert frame["d"]["msg"]["text"] == "hello"

            # A timeline post reaches everyone; it must be the next frame for
            # the connection that never joined the server topic.
            client.post("/api/timeline", json={"text": "broadcast"})
            assert other.receive_json()["op"] == "new-timeline-post"
            assert member.receive_json()["op"] == "new-timeline-post"


def test_ws_submit_matches_rest_result(db_path):
    with _client(db_path) as client:
        server = client.post("/api/servers", json={"name": "Gaming"}).json()
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"op": "join", "d": {"kind": "server", "id": server["id"]}})
            ws.receive_json()
            ws.send_json(
                {
                    "op": "submit-server-message",
                    "d": {"serverId": server["id"], "author": "Alice", "text": "via ws"},
                }
            )
            frame = ws.receive_json()
            assert frame["op"] == "server-message"
            pushed = frame["d"]["msg"]

        stored = client.get(f"/api/servers/{server['id']}").json()["messages"]
        assert stored == [pushed]
        assert pushed["author"] == "Alice" and pushed["channelId"] == "general"


def test_ws_errors_keep_connection_open(db_path):
    with _client(db_path) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"op": "submit-server-message", "d": {"serverId": "nope", "text": "x"}})
            assert ws.receive_json() == {
                "op": "error",
                "d": {"status": 404, "detail": "server not found"},
            }
            ws.send_json({"op": "join", "d": {"kind": "room", "id": "1"}})
            assert ws.receive_json()["d"]["status"] == 400
            ws.send_text("not json")
            assert ws.receive_json()["d"]["detail"] == "invalid JSON"
            ws.send_bytes(b"\x00\x01")
            assert ws.receive_json()["d"]["detail"] == "invalid JSON"
            ws.send_json({"op": "leave", "d": {"kind": "dm", "id": "a-b"}})
            assert ws.receive_json() == {
                "op": "ack",
                "d": {"kind": "dm", "id": "a-b", "joined": False},
            }


def test_ws_dm_delivery_and_leave(db_path):
    with _client(db_path) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"op": "join", "d": {"kind": "dm", "id": "u1-u2"}})
            ws.receive_json()
            client.post("/api/dms", json={"from": "u2", "to": "u1", "text": "yo"})
            frame = ws.receive_json()
            assert frame == {
                "op": "dm-message",
                "d": {"threadId": "u1-u2", "msg": frame["d"]["msg"]},
            }
            assert frame["d"]["msg"]["from"] == "u2"

            ws.send_json({"op": "leave", "d": {"kind": "dm", "id": "u1-u2"}})
            assert ws.receive_json()["d"]["joined"] is False
            client.post("/api/dms", json={"from": "u1", "to": "u2", "text": "gone"})
            client.post("/api/timeline", json={"text": "marker"})
            assert ws.receive_json()["op"] == "new-timeline-post"
