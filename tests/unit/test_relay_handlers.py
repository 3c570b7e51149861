import pytest
from unittest.mock import AsyncMock, patch

from chatrelay.core.config import settings
from chatrelay.utils.auth import create_user_token
from chatrelay.websockets.handlers import RelayEventHandler


def setup_frame(user_id, token=None):
    data = {"_id": user_id, "username": user_id, "email": f"{user_id}@example.com"}
    if token is not None:
        data["token"] = token
    return {"event": "setup", "data": {"success": True, "data": data}}


def new_message_frame(sender, users, chat_id="chat42", content="hi"):
    return {
        "event": "new message",
        "data": {
            "_id": "m1",
            "chat": {"_id": chat_id, "users": users},
            "sender": {"_id": sender},
            "content": content
        }
    }


class TestSetup:
    """setup 이벤트 테스트"""

    @pytest.mark.asyncio
    async def test_setup_emits_connected(self, relay, manager, connect):
        """setup 후 connected 전송 + presence 등록"""
        connection = connect()

        await relay.handle_frame(connection, setup_frame("u1"))

        assert connection.websocket.events() == ["connected"]
        assert connection.user_id == "u1"
        assert manager.is_user_connected("u1")
        assert "u1" in connection.rooms

    @pytest.mark.asyncio
    async def test_setup_malformed_payload_dropped(self, relay, manager, connect):
        """_id 가 없는 setup 은 버려짐"""
        connection = connect()

        await relay.handle_frame(connection, {"event": "setup", "data": {"data": {}}})
        await relay.handle_frame(connection, {"event": "setup", "data": None})

        assert connection.websocket.frames == []
        assert not connection.is_identified
        assert manager.get_online_users() == []

    @pytest.mark.asyncio
    async def test_setup_twice_last_wins(self, relay, manager, connect):
        """같은 identity 의 두 번째 setup 이 전달 대상이 됨"""
        first = connect()
        second = connect()

        await relay.handle_frame(first, setup_frame("u1"))
        await relay.handle_frame(second, setup_frame("u1"))
        await manager.emit_to_room("u1", "message received", {"content": "hi"})

        assert manager.presence.lookup("u1") is second
        assert first.websocket.events() == ["connected"]
        assert second.websocket.events() == ["connected", "message received"]

    @pytest.mark.asyncio
    async def test_setup_with_token_verification(self, relay, connect, monkeypatch):
        """토큰 검증이 켜져 있으면 subject 가 _id 와 같아야 함"""
        monkeypatch.setattr(settings, "ws_verify_setup_token", True)
        forged = connect()
        missing = connect()
        valid = connect()

        await relay.handle_frame(forged, setup_frame("u1", token=create_user_token("u2")))
        await relay.handle_frame(missing, setup_frame("u1"))
        await relay.handle_frame(valid, setup_frame("u1", token=create_user_token("u1")))

        assert not forged.is_identified
        assert not missing.is_identified
        assert valid.user_id == "u1"
        assert valid.websocket.events() == ["connected"]


class TestEventsBeforeSetup:
    """anonymous 연결의 이벤트 처리 테스트"""

    @pytest.mark.asyncio
    async def test_events_before_setup_are_dropped(self, relay, manager, connect):
        """setup 이전 이벤트는 출력도 상태 변화도 없음"""
        member = connect("u2")
        manager.join(member, "chat42")
        anonymous = connect()

        await relay.handle_frame(anonymous, {"event": "join chat", "data": "chat42"})
        await relay.handle_frame(anonymous, {"event": "typing", "data": "chat42"})
        await relay.handle_frame(anonymous, new_message_frame("u1", ["u1", "u2"]))

        assert anonymous.websocket.frames == []
        assert anonymous.rooms == set()
        assert member.websocket.frames == []
        assert manager.get_connection_count_in_room("chat42") == 1

    @pytest.mark.asyncio
    async def test_ping_allowed_before_setup(self, relay, connect):
        """ping 은 setup 없이도 pong 응답"""
        connection = connect()

        await relay.handle_frame(connection, {"event": "ping"})

        assert connection.websocket.events() == ["pong"]

    @pytest.mark.asyncio
    async def test_unknown_event_and_malformed_frame(self, relay, connect):
        """알 수 없는 이벤트 / 잘못된 프레임은 무시"""
        connection = connect("u1")

        await relay.handle_frame(connection, {"event": "dance", "data": {}})
        await relay.handle_frame(connection, {"data": "no event"})
        await relay.handle_frame(connection, ["not", "an", "object"])

        assert connection.websocket.frames == []


class TestRooms:
    """join chat / leave chat 테스트"""

    @pytest.mark.asyncio
    async def test_join_chat(self, relay, manager, connect):
        """join chat 은 방 구독 + connected 응답"""
        connection = connect("u1")

        await relay.handle_frame(connection, {"event": "join chat", "data": "chat42"})

        assert "chat42" in connection.rooms
        assert manager.get_room_users("chat42") == ["u1"]
        assert connection.websocket.events() == ["connected"]

    @pytest.mark.asyncio
    async def test_leave_chat(self, relay, manager, connect):
        """leave chat 은 응답 없이 구독 해제"""
        connection = connect("u1")
        await relay.handle_frame(connection, {"event": "join chat", "data": "chat42"})

        await relay.handle_frame(connection, {"event": "leave chat", "data": "chat42"})

        assert "chat42" not in connection.rooms
        assert connection.websocket.events() == ["connected"]

    @pytest.mark.asyncio
    async def test_join_chat_invalid_room(self, relay, connect):
        """방 ID 가 문자열이 아니면 버려짐"""
        connection = connect("u1")

        await relay.handle_frame(connection, {"event": "join chat", "data": {"room": "chat42"}})
        await relay.handle_frame(connection, {"event": "join chat", "data": ""})

        assert connection.rooms == {"u1"}
        assert connection.websocket.frames == []


class TestNewMessage:
    """new message 릴레이 테스트"""

    @pytest.mark.asyncio
    async def test_two_user_scenario(self, relay, manager, connect):
        """u1, u2 가 chat42 에 있을 때 u1 의 메시지는 u2 에게만 전달"""
        c1 = connect()
        c2 = connect()

        await relay.handle_frame(c1, setup_frame("u1"))
        await relay.handle_frame(c1, {"event": "join chat", "data": "chat42"})
        assert c1.websocket.events() == ["connected", "connected"]

        await relay.handle_frame(c2, setup_frame("u2"))
        await relay.handle_frame(c2, {"event": "join chat", "data": "chat42"})

        frame = {
            "event": "new message",
            "data": {"chat": {"users": ["u1", "u2"]}, "sender": {"_id": "u1"}, "content": "hi"}
        }
        await relay.handle_frame(c1, frame)

        assert c1.websocket.events() == ["connected", "connected"]
        assert c2.websocket.frames[-1] == {"event": "message received", "data": frame["data"]}
        assert c2.websocket.events().count("message received") == 1

    @pytest.mark.asyncio
    async def test_populated_users_and_duplicates(self, relay, connect):
        """populate 된 사용자 객체와 중복 ID 도 한 번만 전달"""
        sender = connect("u1")
        receiver = connect("u2")

        users = [{"_id": "u1", "username": "alice"}, {"_id": "u2", "username": "bob"}, "u2"]
        await relay.handle_frame(sender, new_message_frame("u1", users))

        assert receiver.websocket.events() == ["message received"]
        assert sender.websocket.frames == []

    @pytest.mark.asyncio
    async def test_offline_recipient_is_skipped(self, relay, connect):
        """오프라인 수신자는 조용히 건너뜀"""
        sender = connect("u1")
        online = connect("u3")

        await relay.handle_frame(sender, new_message_frame("u1", ["u1", "u2", "u3"]))

        assert online.websocket.events() == ["message received"]
        assert sender.websocket.frames == []

    @pytest.mark.asyncio
    async def test_recipients_emitted_in_one_fan_out(self, relay, manager, connect):
        """수신자 identity 방들에 한 번에 전달, 같은 사용자의 마지막 연결만 수신"""
        sender = connect("u1")
        tabs = [connect("u2"), connect("u2")]
        frame = new_message_frame("u1", ["u1", "u2", "u3", "u2"])

        with patch.object(manager, "emit_to_rooms", AsyncMock(wraps=manager.emit_to_rooms)) as emit:
            await relay.handle_frame(sender, frame)

        emit.assert_awaited_once_with(["u2", "u3"], "message received", frame["data"])
        assert [tab.websocket.events() for tab in tabs] == [[], ["message received"]]

    @pytest.mark.asyncio
    async def test_missing_chat_users_dropped(self, relay, connect):
        """chat.users 가 없으면 아무에게도 전달하지 않음"""
        sender = connect("u1")
        receiver = connect("u2")

        await relay.handle_frame(sender, {
            "event": "new message",
            "data": {"chat": {"_id": "chat42"}, "sender": {"_id": "u1"}}
        })

        assert receiver.websocket.frames == []

    @pytest.mark.asyncio
    async def test_verified_membership_uses_stored_chat(self, manager, message_store, chat_store, connect):
        """멤버십 검증 모드에서는 저장된 Chat.users 로 수신자를 재계산"""
        relay = RelayEventHandler(
            manager,
            store=message_store,
            chat_store=chat_store,
            verify_membership=True
        )
        chat_store.add("chat42", ["u1", "u2"])
        sender = connect("u1")
        member = connect("u2")
        outsider = connect("u3")

        # 페이로드에 u3 를 끼워 넣어도 전달되지 않음
        await relay.handle_frame(sender, new_message_frame("u1", ["u1", "u2", "u3"]))

        assert member.websocket.events() == ["message received"]
        assert outsider.websocket.frames == []

    @pytest.mark.asyncio
    async def test_verified_membership_rejects_forged_sender(self, manager, message_store, chat_store, connect):
        """검증 모드에서 sender 가 연결 identity 와 다르면 버려짐"""
        relay = RelayEventHandler(
            manager,
            store=message_store,
            chat_store=chat_store,
            verify_membership=True
        )
        chat_store.add("chat42", ["u1", "u2"])
        forger = connect("u3")
        member = connect("u2")

        await relay.handle_frame(forger, new_message_frame("u1", ["u1", "u2"]))

        assert member.websocket.frames == []


class TestMessageRead:
    """message read 테스트"""

    @pytest.mark.asyncio
    async def test_read_broadcasts_to_chat_room(self, relay, manager, message_store, connect):
        """읽음 처리 후 채팅방 전체(보낸 사람 포함)에 갱신 전송"""
        message_store.add("m1", read_by=["u1"])
        reader = connect("u2")
        author = connect("u1")
        manager.join(reader, "chat42")
        manager.join(author, "chat42")

        await relay.handle_frame(reader, {
            "event": "message read",
            "data": {"messageId": "m1", "userId": "u2", "chatId": "chat42"}
        })

        expected = {
            "event": "message read update",
            "data": {"messageId": "m1", "readBy": ["u1", "u2"]}
        }
        assert author.websocket.frames == [expected]
        assert reader.websocket.frames == [expected]

    @pytest.mark.asyncio
    async def test_read_twice_is_idempotent(self, relay, message_store, connect):
        """같은 읽음 처리를 두 번 해도 readBy 에는 한 번만 포함"""
        message_store.add("m1", read_by=["u1"])
        reader = connect("u2")
        frame = {
            "event": "message read",
            "data": {"messageId": "m1", "userId": "u2", "chatId": "chat42"}
        }

        await relay.handle_frame(reader, frame)
        await relay.handle_frame(reader, frame)

        assert message_store.messages["m1"].read_by.count("u2") == 1
        assert message_store.update_calls == 2

    @pytest.mark.asyncio
    async def test_read_unknown_message_no_broadcast(self, relay, manager, connect):
        """존재하지 않는 메시지는 브로드캐스트 없이 무시"""
        reader = connect("u2")
        manager.join(reader, "chat42")

        await relay.handle_frame(reader, {
            "event": "message read",
            "data": {"messageId": "missing", "userId": "u2", "chatId": "chat42"}
        })

        assert reader.websocket.frames == []

    @pytest.mark.asyncio
    async def test_read_store_failure_is_swallowed(self, relay, manager, message_store, connect):
        """저장소 오류는 로그만 남고 호출자에게 전달되지 않음"""
        message_store.add("m1", read_by=["u1"])
        message_store.fail = True
        reader = connect("u2")
        manager.join(reader, "chat42")

        await relay.handle_frame(reader, {
            "event": "message read",
            "data": {"messageId": "m1", "userId": "u2", "chatId": "chat42"}
        })

        assert reader.websocket.frames == []
        assert message_store.messages["m1"].read_by == ["u1"]

    @pytest.mark.asyncio
    async def test_read_missing_fields_dropped(self, relay, message_store, connect):
        """필수 필드가 없으면 저장소를 호출하지 않음"""
        reader = connect("u2")

        await relay.handle_frame(reader, {"event": "message read", "data": {"messageId": "m1"}})

        assert message_store.update_calls == 0


class TestTyping:
    """typing / stop typing 테스트"""

    @pytest.mark.asyncio
    async def test_typing_reaches_others_not_sender(self, relay, manager, connect):
        """typing 은 방의 다른 구성원에게만 전달"""
        typist = connect("u1")
        other = connect("u2")
        outsider = connect("u3")
        manager.join(typist, "chat42")
        manager.join(other, "chat42")

        await relay.handle_frame(typist, {"event": "typing", "data": "chat42"})
        await relay.handle_frame(typist, {"event": "stop typing", "data": "chat42"})

        assert typist.websocket.frames == []
        assert other.websocket.frames == [
            {"event": "typing", "data": None},
            {"event": "stop typing", "data": None}
        ]
        assert outsider.websocket.frames == []


class TestDisconnect:
    """disconnect 처리 테스트"""

    @pytest.mark.asyncio
    async def test_disconnect_cleans_up(self, relay, manager, connect):
        """disconnect 후에는 방/presence 모두 정리"""
        connection = connect()
        await relay.handle_frame(connection, setup_frame("u1"))
        await relay.handle_frame(connection, {"event": "join chat", "data": "chat42"})

        await relay.handle_disconnect(connection)
        await relay.handle_disconnect(connection)

        assert not manager.is_user_connected("u1")
        assert manager.rooms == {}
        assert connection.user_id is None
