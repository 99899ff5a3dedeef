from datetime import datetime, timezone

from medride.sockets.realtime_socket import dispatch
from tests.fakes import EPOCH, open_connection


async def _join(hub, user_id, role="patient", chat_id=None):
    connection, websocket = await open_connection(hub)
    await dispatch(hub, connection, {"event_type": "user_join", "userId": user_id, "role": role})
    if chat_id is not None:
        await dispatch(
            hub, connection, {"event_type": "join_chat", "chatId": chat_id, "userId": user_id}
        )
    return connection, websocket


class TestJoin:
    async def test_user_join_registers_presence(self, hub):
        connection, websocket = await _join(hub, 1)

        joined = websocket.last()
        assert joined["event_type"] == "joined"
        assert joined["userId"] == "1"
        assert joined["connectionId"] == connection.connection_id
        assert hub.manager.presence.lookup("1") == connection.connection_id

    async def test_join_chat_as_participant(self, hub):
        connection, websocket = await _join(hub, 1, chat_id=42)

        assert websocket.last() == {"event_type": "chat_joined", "chatId": "42", "userId": "1"}
        assert hub.manager.rooms.is_member(connection.connection_id, "chat_42")

    async def test_join_chat_as_outsider_is_rejected(self, hub):
        connection, websocket = await _join(hub, 3, chat_id=42)

        error = websocket.last()
        assert error["event_type"] == "message_error"
        assert error["code"] == "unauthorized"
        assert error["event"] == "join_chat"
        assert not hub.manager.rooms.is_member(connection.connection_id, "chat_42")

    async def test_join_unknown_chat(self, hub):
        _, websocket = await _join(hub, 1, chat_id=999)
        assert websocket.last()["code"] == "not_found"

    async def test_join_chat_before_user_join(self, hub):
        connection, websocket = await open_connection(hub)
        await dispatch(hub, connection, {"event_type": "join_chat", "chatId": 42, "userId": 1})

        assert websocket.last()["code"] == "validation_failure"
        assert hub.manager.rooms.room_count == 0

    async def test_leave_chat(self, hub):
        connection, websocket = await _join(hub, 1, chat_id=42)
        await dispatch(hub, connection, {"event_type": "leave_chat", "chatId": 42})

        assert websocket.last() == {"event_type": "chat_left", "chatId": "42"}
        assert not hub.manager.rooms.is_member(connection.connection_id, "chat_42")
        assert hub.manager.presence.lookup("1") == connection.connection_id

    async def test_missing_user_id_uses_joined_identity(self, hub):
        connection, websocket = await _join(hub, 1)
        await dispatch(hub, connection, {"event_type": "join_chat", "chatId": 42})

        assert websocket.last()["event_type"] == "chat_joined"
        assert websocket.last()["userId"] == "1"


class TestSendMessage:
    async def test_message_reaches_both_participants(self, hub, store):
        patient, ws_patient = await _join(hub, 1, chat_id=42)
        _, ws_doctor = await _join(hub, 2, role="doctor", chat_id=42)

        await dispatch(
            hub,
            patient,
            {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": "hello"},
        )

        for websocket in (ws_patient, ws_doctor):
            message = websocket.events("new_message")[-1]
            assert message["content"] == "hello"
            assert message["sender_id"] == "1"
            assert message["chatId"] == "42"
            assert message["sender_first_name"] == "Abebe"
            assert message["sender_last_name"] == "Kebede"
        assert len(store.messages) == 1
        assert store.chats["42"]["updated_at"] > EPOCH

    async def test_nonparticipant_sender_is_rejected(self, hub, store):
        outsider, ws_outsider = await _join(hub, 3)
        _, ws_doctor = await _join(hub, 2, role="doctor", chat_id=42)

        await dispatch(
            hub,
            outsider,
            {"event_type": "send_message", "chatId": 42, "senderId": 3, "content": "hi"},
        )

        error = ws_outsider.last()
        assert error["event_type"] == "message_error"
        assert error["code"] == "unauthorized"
        assert store.messages == []
        assert ws_doctor.events("new_message") == []

    async def test_failed_insert_broadcasts_nothing(self, hub, store):
        patient, ws_patient = await _join(hub, 1, chat_id=42)
        _, ws_doctor = await _join(hub, 2, role="doctor", chat_id=42)
        store.fail_on.add("insert_message")

        await dispatch(
            hub,
            patient,
            {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": "hello"},
        )

        assert ws_patient.last()["event_type"] == "message_error"
        assert ws_patient.last()["code"] == "persistence_failure"
        assert ws_doctor.events("new_message") == []

    async def test_failed_watermark_still_delivers(self, hub, store):
        patient, _ = await _join(hub, 1, chat_id=42)
        _, ws_doctor = await _join(hub, 2, role="doctor", chat_id=42)
        store.fail_on.add("touch_chat")

        await dispatch(
            hub,
            patient,
            {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": "hello"},
        )

        assert len(ws_doctor.events("new_message")) == 1
        assert store.chats["42"]["updated_at"] == EPOCH

    async def test_offline_recipient_goes_to_notification_sink(self, hub, notifier):
        patient, _ = await _join(hub, 1, chat_id=42)

        await dispatch(
            hub,
            patient,
            {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": "hello"},
        )

        assert len(notifier.calls) == 1
        user_id, payload = notifier.calls[0]
        assert user_id == "2"
        assert payload["event_type"] == "new_message"

    async def test_online_recipient_skips_notification_sink(self, hub, notifier):
        patient, _ = await _join(hub, 1, chat_id=42)
        await _join(hub, 2, role="doctor")

        await dispatch(
            hub,
            patient,
            {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": "hello"},
        )

        assert notifier.calls == []

    async def test_room_of_another_chat_is_not_reached(self, hub):
        patient, _ = await _join(hub, 1, chat_id=42)
        _, ws_other = await _join(hub, 3, chat_id=43)

        await dispatch(
            hub,
            patient,
            {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": "hello"},
        )

        assert ws_other.events("new_message") == []

    async def test_empty_content_is_rejected(self, hub, store):
        patient, ws_patient = await _join(hub, 1, chat_id=42)

        await dispatch(
            hub,
            patient,
            {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": "   "},
        )

        assert ws_patient.last()["code"] == "validation_failure"
        assert store.messages == []


class TestTypingAndReceipts:
    async def test_typing_excludes_sender(self, hub):
        patient, ws_patient = await _join(hub, 1, chat_id=42)
        _, ws_doctor = await _join(hub, 2, role="doctor", chat_id=42)

        await dispatch(hub, patient, {"event_type": "typing", "chatId": 42, "userId": 1})
        await dispatch(hub, patient, {"event_type": "stop_typing", "chatId": 42, "userId": 1})

        assert ws_doctor.events("user_typing") == [
            {"event_type": "user_typing", "chatId": "42", "userId": "1"}
        ]
        assert len(ws_doctor.events("user_stop_typing")) == 1
        assert ws_patient.events("user_typing") == []

    async def test_typing_by_outsider_is_rejected(self, hub):
        outsider, ws_outsider = await _join(hub, 3)
        _, ws_doctor = await _join(hub, 2, role="doctor", chat_id=42)

        await dispatch(hub, outsider, {"event_type": "typing", "chatId": 42, "userId": 3})

        assert ws_outsider.last()["code"] == "unauthorized"
        assert ws_doctor.events("user_typing") == []

    async def test_mark_read_flags_counterpart_messages(self, hub, store):
        patient, _ = await _join(hub, 1, chat_id=42)
        doctor, ws_doctor = await _join(hub, 2, role="doctor", chat_id=42)
        for content in ("one", "two"):
            await dispatch(
                hub,
                patient,
                {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": content},
            )
        await dispatch(
            hub,
            doctor,
            {"event_type": "send_message", "chatId": 42, "senderId": 2, "content": "reply"},
        )

        await dispatch(hub, doctor, {"event_type": "mark_read", "chatId": 42, "userId": 2})

        receipt = ws_doctor.events("messages_read")[-1]
        assert receipt == {"event_type": "messages_read", "chatId": "42", "userId": "2", "count": 2}
        flags = {m["content"]: m["read_flag"] for m in store.messages}
        assert flags == {"one": True, "two": True, "reply": False}


class TestAvailability:
    async def test_availability_reaches_every_connection(self, hub, store):
        doctor, ws_doctor = await _join(hub, 2, role="doctor")
        _, ws_anonymous = await open_connection(hub)

        await dispatch(
            hub,
            doctor,
            {"event_type": "update_availability", "doctorId": 2, "isAvailable": True},
        )

        expected = {"event_type": "doctor_availability_changed", "doctorId": "2", "isAvailable": True}
        assert ws_doctor.events("doctor_availability_changed") == [expected]
        assert ws_anonymous.events("doctor_availability_changed") == [expected]
        assert store.doctors["2"]["is_available"] is True

    async def test_unknown_doctor(self, hub):
        connection, websocket = await open_connection(hub)

        await dispatch(
            hub,
            connection,
            {"event_type": "update_availability", "doctorId": 77, "isAvailable": True},
        )

        assert websocket.last()["event_type"] == "error"
        assert websocket.last()["code"] == "not_found"

    async def test_token_pins_doctor_identity(self, hub, store):
        connection, websocket = await open_connection(hub)
        connection.verified_user_id = "9"

        await dispatch(
            hub,
            connection,
            {"event_type": "update_availability", "doctorId": 2, "isAvailable": True},
        )

        assert websocket.last()["code"] == "unauthorized"
        assert store.doctors["2"]["is_available"] is False


class TestVerifiedConnection:
    async def _verified(self, hub, user_id, chat_id=None):
        connection, websocket = await open_connection(hub)
        connection.verified_user_id = user_id
        await dispatch(hub, connection, {"event_type": "user_join", "userId": user_id})
        if chat_id is not None:
            await dispatch(hub, connection, {"event_type": "join_chat", "chatId": chat_id})
        return connection, websocket

    async def test_cannot_send_as_another_participant(self, hub, store):
        intruder, ws_intruder = await self._verified(hub, "3")
        _, ws_doctor = await _join(hub, 2, role="doctor", chat_id=42)

        await dispatch(
            hub,
            intruder,
            {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": "spoofed"},
        )

        assert ws_intruder.last()["event_type"] == "message_error"
        assert ws_intruder.last()["code"] == "unauthorized"
        assert store.messages == []
        assert ws_doctor.events("new_message") == []

    async def test_cannot_mark_read_as_another_participant(self, hub, store):
        patient, _ = await _join(hub, 1, chat_id=42)
        await dispatch(
            hub,
            patient,
            {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": "hello"},
        )
        intruder, ws_intruder = await self._verified(hub, "3")

        await dispatch(hub, intruder, {"event_type": "mark_read", "chatId": 42, "userId": 2})

        assert ws_intruder.last()["event_type"] == "message_error"
        assert ws_intruder.last()["code"] == "unauthorized"
        assert store.messages[0]["read_flag"] is False

    async def test_cannot_type_as_another_participant(self, hub):
        intruder, ws_intruder = await self._verified(hub, "3")
        _, ws_doctor = await _join(hub, 2, role="doctor", chat_id=42)

        await dispatch(hub, intruder, {"event_type": "typing", "chatId": 42, "userId": 1})

        assert ws_intruder.last()["code"] == "unauthorized"
        assert ws_doctor.events("user_typing") == []

    async def test_own_identity_is_accepted(self, hub, store):
        patient, _ = await self._verified(hub, "1", chat_id=42)
        _, ws_doctor = await _join(hub, 2, role="doctor", chat_id=42)

        await dispatch(
            hub,
            patient,
            {"event_type": "send_message", "chatId": 42, "senderId": 1, "content": "hello"},
        )

        assert len(store.messages) == 1
        assert ws_doctor.events("new_message")[-1]["content"] == "hello"


class TestDispatch:
    async def test_unknown_event_type(self, hub):
        connection, websocket = await open_connection(hub)
        await dispatch(hub, connection, {"event_type": "fly_away"})

        assert websocket.last()["event_type"] == "error"
        assert websocket.last()["code"] == "validation_failure"

    async def test_missing_event_type(self, hub):
        connection, websocket = await open_connection(hub)
        await dispatch(hub, connection, {"chatId": 42})

        assert websocket.last()["message"] == "Missing event_type"

    async def test_type_key_is_accepted(self, hub):
        connection, websocket = await open_connection(hub)
        await dispatch(hub, connection, {"type": "ping"})

        pong = websocket.last()
        assert pong["event_type"] == "pong"
        assert datetime.fromisoformat(pong["timestamp"]) <= datetime.now(timezone.utc)

    async def test_unexpected_handler_error_becomes_server_error(self, hub, store, monkeypatch):
        async def explode(chat_id):
            raise KeyError(chat_id)

        monkeypatch.setattr(store, "get_chat", explode)
        connection, websocket = await _join(hub, 1)
        await dispatch(hub, connection, {"event_type": "join_chat", "chatId": 42})

        assert websocket.last()["event_type"] == "message_error"
        assert websocket.last()["code"] == "server_error"
