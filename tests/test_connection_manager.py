"""
Tests for the WebSocket fan-out bus.
"""

from starlette.websockets import WebSocketState

from conftest import FakeWebSocket, run


async def _connected(manager, *names, fail_on=()):
    sockets = []
    for name in names:
        ws = FakeWebSocket(name, fail=name in fail_on)
        await manager.connect(ws, name)
        sockets.append(ws)
    return sockets


class TestSubscriptions:
    def test_subscribe_replaces_previous(self, manager):
        async def scenario():
            (ws,) = await _connected(manager, "alice")
            manager.subscribe(ws, "net-a")
            manager.subscribe(ws, "net-b")
            return ws

        ws = run(scenario())
        assert manager.subscribed_net(ws) == "net-b"
        assert manager.subscriber_count("net-a") == 0
        assert manager.subscriber_count("net-b") == 1
        assert "net-a" not in manager.nets

    def test_unsubscribe_when_idle_is_noop(self, manager):
        async def scenario():
            (ws,) = await _connected(manager, "alice")
            manager.unsubscribe(ws)
            manager.unsubscribe(ws)
            return ws

        ws = run(scenario())
        assert manager.subscribed_net(ws) is None
        assert ws in manager.connection_nets

    def test_subscribe_after_disconnect_ignored(self, manager):
        async def scenario():
            (ws,) = await _connected(manager, "alice")
            manager.disconnect(ws)
            manager.disconnect(ws)
            manager.subscribe(ws, "net-a")

        run(scenario())
        assert manager.nets == {}
        assert manager.connection_nets == {}

    def test_nets_info(self, manager):
        async def scenario():
            a, b, c = await _connected(manager, "a", "b", "c")
            manager.subscribe(a, "net-a")
            manager.subscribe(b, "net-a")
            manager.subscribe(c, "net-b")

        run(scenario())
        assert manager.get_nets_info() == {"net-a": 2, "net-b": 1}


class TestPublish:
    def test_envelope_reaches_only_subscribers(self, manager):
        async def scenario():
            a, b, idle = await _connected(manager, "a", "b", "idle")
            manager.subscribe(a, "net-a")
            manager.subscribe(b, "net-b")
            delivered = await manager.publish("net-a", "net:participant:join", {"user_id": "u1"})
            return delivered, a, b, idle

        delivered, a, b, idle = run(scenario())
        assert delivered == 1
        assert a.sent == [{"eventType": "net:participant:join", "payload": {"user_id": "u1"}, "netId": "net-a"}]
        assert b.sent == []
        assert idle.sent == []

    def test_no_subscribers(self, manager):
        assert run(manager.publish("nobody", "net:message", {})) == 0

    def test_global_reaches_everyone(self, manager):
        async def scenario():
            a, idle = await _connected(manager, "a", "idle")
            manager.subscribe(a, "net-a")
            await manager.broadcast_global("net:ended", {"net_id": "net-a"})
            return a, idle

        a, idle = run(scenario())
        expected = {"eventType": "net:ended", "payload": {"net_id": "net-a"}}
        assert a.sent == [expected]
        assert idle.sent == [expected]

    def test_failed_socket_dropped_others_served(self, manager):
        async def scenario():
            good, bad = await _connected(manager, "good", "bad", fail_on=("bad",))
            manager.subscribe(good, "net-a")
            manager.subscribe(bad, "net-a")
            delivered = await manager.publish("net-a", "net:message", {"content": "hi"})
            return delivered, good, bad

        delivered, good, bad = run(scenario())
        assert delivered == 1
        assert len(good.sent) == 1
        assert bad not in manager.connection_nets
        assert manager.subscriber_count("net-a") == 1

    def test_closed_socket_skipped(self, manager):
        async def scenario():
            (ws,) = await _connected(manager, "gone")
            manager.subscribe(ws, "net-a")
            ws.client_state = WebSocketState.DISCONNECTED
            return await manager.publish("net-a", "net:message", {}), ws

        delivered, ws = run(scenario())
        assert delivered == 0
        assert ws.sent == []
        assert manager.nets == {}

    def test_events_arrive_in_publish_order(self, manager):
        async def scenario():
            (ws,) = await _connected(manager, "a")
            manager.subscribe(ws, "net-a")
            for n in range(5):
                await manager.publish("net-a", "net:message", {"n": n})
            return ws

        ws = run(scenario())
        assert [m["payload"]["n"] for m in ws.sent] == [0, 1, 2, 3, 4]
        assert manager.events_published == 5
