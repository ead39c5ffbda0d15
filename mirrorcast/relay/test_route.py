"""
End-to-end tests for the WebSocket relay through the FastAPI app.

Absence of a delivery is asserted through ordering: each endpoint's next
frame is checked to be the one it should get, so a leaked frame would show
up first.
"""

import pytest

from mirrorcast.relay.messages import Role


@pytest.fixture
def room_registry(test_client):
    return test_client.app.state.room_registry


def ws_url(role=None, room=None, path="/"):
    params = []
    if role is not None:
        params.append(f"type={role}")
    if room is not None:
        params.append(f"room={room}")
    return path + ("?" + "&".join(params) if params else "")


def test_fan_out_between_roles(test_client):
    with test_client.websocket_connect(ws_url("viewer", "r")) as v1, \
            test_client.websocket_connect(ws_url("viewer", "r")) as v2, \
            test_client.websocket_connect(ws_url("controller", "r")) as c1, \
            test_client.websocket_connect(ws_url("controller", "r")) as c2:
        c1.send_text('{"action":"navigate","url":"https://example.com"}')

        assert v1.receive_text() == '{"action":"navigate","url":"https://example.com"}'
        assert v2.receive_text() == '{"action":"navigate","url":"https://example.com"}'

        v1.send_text("loaded")

        # C2 never saw C1's command: its first frame is the viewer envelope
        assert c1.receive_json() == {"from": "viewer", "payload": "loaded"}
        assert c2.receive_json() == {"from": "viewer", "payload": "loaded"}

        c2.send_text("next")

        # V2 never saw V1's status message
        assert v2.receive_text() == "next"
        assert v1.receive_text() == "next"


def test_cross_room_isolation(test_client):
    with test_client.websocket_connect(ws_url("controller", "a")) as controller_a, \
            test_client.websocket_connect(ws_url("viewer", "a")) as viewer_a, \
            test_client.websocket_connect(ws_url("controller", "b")) as controller_b, \
            test_client.websocket_connect(ws_url("viewer", "b")) as viewer_b:
        controller_a.send_text("for-a")
        assert viewer_a.receive_text() == "for-a"

        controller_b.send_text("for-b")
        assert viewer_b.receive_text() == "for-b"

        viewer_b.send_text("status-b")
        assert controller_b.receive_json()["payload"] == "status-b"

        viewer_a.send_text("status-a")
        assert controller_a.receive_json()["payload"] == "status-a"


def test_binary_frames(test_client):
    with test_client.websocket_connect(ws_url("viewer", "bin")) as viewer, \
            test_client.websocket_connect(ws_url("controller", "bin")) as controller:
        controller.send_bytes(b"\x00\x01\xfe\xff")
        assert viewer.receive_bytes() == b"\x00\x01\xfe\xff"

        viewer.send_bytes("déjà vu".encode("utf-8"))
        assert controller.receive_json() == {"from": "viewer", "payload": "déjà vu"}


def test_defaults_to_controller_in_default_room(test_client, room_registry):
    with test_client.websocket_connect("/"):
        room = room_registry.get("default")
        assert room is not None
        assert len(room.controllers) == 1
        assert len(room.viewers) == 0

    assert "default" not in room_registry


def test_empty_params_use_defaults(test_client, room_registry):
    with test_client.websocket_connect("/?type=&room="):
        assert len(room_registry.recipients("default", Role.CONTROLLER)) == 1


def test_unknown_role_acts_as_controller(test_client):
    with test_client.websocket_connect(ws_url("viewer", "r")) as viewer, \
            test_client.websocket_connect(ws_url("admin", "r")) as admin:
        admin.send_text("hello")
        assert viewer.receive_text() == "hello"


def test_any_path_accepted(test_client):
    with test_client.websocket_connect(ws_url("viewer", "p", path="/ws")) as viewer, \
            test_client.websocket_connect(
                ws_url("controller", "p", path="/some/deep/path")
            ) as controller:
        controller.send_text("ping")
        assert viewer.receive_text() == "ping"


def test_room_removed_after_last_member_leaves(test_client, room_registry):
    with test_client.websocket_connect(ws_url("viewer", "life")):
        with test_client.websocket_connect(ws_url("controller", "life")):
            room = room_registry.get("life")
            assert len(room.viewers) == 1
            assert len(room.controllers) == 1

        room = room_registry.get("life")
        assert room is not None
        assert len(room.controllers) == 0
        assert len(room.viewers) == 1

    assert room_registry.get("life") is None
    assert len(room_registry) == 0


def test_disconnected_viewer_no_longer_receives(test_client, room_registry):
    with test_client.websocket_connect(ws_url("viewer", "r")) as staying, \
            test_client.websocket_connect(ws_url("controller", "r")) as controller:
        with test_client.websocket_connect(ws_url("viewer", "r")):
            pass

        assert len(room_registry.recipients("r", Role.VIEWER)) == 1

        controller.send_text("after-leave")
        assert staying.receive_text() == "after-leave"
