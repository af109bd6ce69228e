import asyncio
import dataclasses
import logging
import re

import pytest

from controllers.command_controller import PING_RESPONSES
from models.retry_policy import RetryPolicy
from models.session import SessionState
from models.session_event import EventKind, SessionEvent
from services.protocol_client import ConnectError


async def stop(manager, run_task):
    await manager.shutdown()
    return await asyncio.wait_for(run_task, timeout=2.0)


@pytest.mark.asyncio
async def test_login_reaches_connected(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)

    assert manager.state is SessionState.CONNECTED
    assert manager.attempt_count == 0
    assert manager.scheduler.running
    assert manager.dispatcher.bound
    assert client.open_calls == [("localhost", 25565, "TestBot", "offline")]

    assert await stop(manager, run_task) == 0
    assert manager.state is SessionState.DISCONNECTED
    assert client.current.closed_with is not None


@pytest.mark.asyncio
async def test_join_message_is_sent(make_manager, client_factory, bot_config, eventually):
    client = client_factory()
    config = dataclasses.replace(bot_config, join_message="Bot connected! Type !help for commands.")
    manager = make_manager(client, config=config)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: client.sessions and client.current.chat)

    assert client.current.chat == ["Bot connected! Type !help for commands."]
    await stop(manager, run_task)


@pytest.mark.asyncio
async def test_first_connect_failure_exits_with_1(make_manager, client_factory):
    client = client_factory(default="refused")
    manager = make_manager(client, retry_policy=RetryPolicy(max_attempts=3, base_delay=0.01))

    exit_code = await asyncio.wait_for(manager.run(), timeout=2.0)

    assert exit_code == 1
    assert len(client.open_calls) == 1
    assert manager.attempt_count == 0
    assert manager.terminated
    assert manager.state is SessionState.DISCONNECTED
    assert client.current.closed_with is not None


@pytest.mark.asyncio
async def test_first_open_failure_exits_with_1(make_manager, client_factory):
    client = client_factory(outcomes=["raise"], default="login")
    manager = make_manager(client)

    assert await asyncio.wait_for(manager.run(), timeout=2.0) == 1
    assert len(client.open_calls) == 1
    assert client.sessions == []


@pytest.mark.asyncio
async def test_reconnects_stop_after_budget(make_manager, client_factory, eventually, caplog):
    client = client_factory(outcomes=["login"], default="refused")
    manager = make_manager(client, retry_policy=RetryPolicy(max_attempts=3, base_delay=0.01))

    with caplog.at_level(logging.INFO, logger="mc-session-bot"):
        run_task = asyncio.create_task(manager.run())
        await eventually(lambda: manager.connected)
        client.current.emit(EventKind.SESSION_ENDED, reason="socketClosed")
        exit_code = await asyncio.wait_for(run_task, timeout=5.0)

    assert exit_code == 1
    # The login plus exactly three reconnect attempts
    assert len(client.open_calls) == 4
    assert manager.attempt_count == 3
    assert manager.state is SessionState.DISCONNECTED
    assert all(session.closed_with is not None for session in client.sessions)

    scheduled = re.findall(
        r"Attempting to reconnect in ([\d.]+) seconds\.\.\. \(Attempt (\d+)/3\)", caplog.text
    )
    assert scheduled == [("0.01", "1"), ("0.02", "2"), ("0.03", "3")]
    assert "Max reconnection attempts (3) reached" in caplog.text


@pytest.mark.asyncio
async def test_zero_budget_exits_on_first_loss(make_manager, client_factory, eventually):
    client = client_factory(outcomes=["login"], default="refused")
    manager = make_manager(client, retry_policy=RetryPolicy(max_attempts=0, base_delay=0.01))
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    client.current.emit(EventKind.KICKED, reason="Server closed", logged_in=True)

    assert await asyncio.wait_for(run_task, timeout=2.0) == 1
    assert len(client.open_calls) == 1


@pytest.mark.asyncio
async def test_successful_login_resets_attempt_count(make_manager, client_factory, eventually):
    client = client_factory(outcomes=["login", "refused", "refused", "login"])
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    client.current.emit(EventKind.SESSION_ENDED, reason="socketClosed")

    await eventually(lambda: len(client.sessions) == 4 and manager.connected)
    assert manager.attempt_count == 0

    # Keep the next reconnect pending so the state can be observed
    manager.retry_policy = RetryPolicy(max_attempts=3, base_delay=10.0)
    client.current.emit(EventKind.SESSION_ENDED, reason="socketClosed")

    await eventually(lambda: manager.state is SessionState.RECONNECTING)
    assert manager.attempt_count == 1

    assert await stop(manager, run_task) == 0
    assert manager.state is SessionState.DISCONNECTED
    assert len(client.sessions) == 4


@pytest.mark.asyncio
async def test_open_failure_during_reconnect_is_retried(make_manager, client_factory, eventually):
    client = client_factory(outcomes=["login", "raise", "login"])
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    client.current.emit(EventKind.SESSION_ENDED, reason="socketClosed")

    await eventually(lambda: len(client.open_calls) == 3 and manager.connected)

    assert len(client.sessions) == 2
    await stop(manager, run_task)


@pytest.mark.asyncio
async def test_login_timeout_during_reconnect_is_retried(make_manager, client_factory, bot_config, eventually):
    client = client_factory(outcomes=["login", "silent", "login"])
    manager = make_manager(client, config=dataclasses.replace(bot_config, connect_timeout=0.05))
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    client.current.emit(EventKind.SESSION_ENDED, reason="socketClosed")

    await eventually(lambda: len(client.sessions) == 3 and manager.connected)

    assert client.sessions[1].closed_with is not None
    await stop(manager, run_task)


@pytest.mark.asyncio
async def test_kicked_before_login_is_retried(make_manager, client_factory, eventually):
    client = client_factory(outcomes=["login", "kicked", "login"])
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    client.current.emit(EventKind.SESSION_ENDED, reason="socketClosed")

    await eventually(lambda: len(client.sessions) == 3 and manager.connected)

    assert manager.attempt_count == 0
    await stop(manager, run_task)


@pytest.mark.asyncio
async def test_connect_while_reconnect_pending_is_rejected(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client, retry_policy=RetryPolicy(max_attempts=3, base_delay=10.0))
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    client.current.emit(EventKind.SESSION_ENDED, reason="socketClosed")
    await eventually(lambda: manager.state is SessionState.RECONNECTING)

    with pytest.raises(ConnectError):
        await manager.connect()

    assert manager.state is SessionState.RECONNECTING
    assert manager.attempt_count == 1
    assert len(client.sessions) == 1

    assert await stop(manager, run_task) == 0


@pytest.mark.asyncio
async def test_stale_events_are_ignored(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    old = client.current
    old_id = manager.session.session_id
    old_handle = manager.session.handle

    old.emit(EventKind.SESSION_ENDED, reason="socketClosed")
    await eventually(lambda: len(client.sessions) == 2 and manager.connected)
    assert old_handle.revoked

    # Late events of the first session
    old.emit(EventKind.CHAT, sender="Steve", message="!ping")
    old.emit(EventKind.SESSION_ENDED, reason="late")
    await eventually(lambda: manager.stats["stale_events"] >= 2)

    assert manager.connected
    assert manager.attempt_count == 0
    assert manager.session.session_id != old_id
    assert client.current.chat == []
    assert old.chat == []

    await stop(manager, run_task)


@pytest.mark.asyncio
async def test_kicked_then_end_counts_once(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client, retry_policy=RetryPolicy(max_attempts=3, base_delay=10.0))
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    client.current.emit(EventKind.KICKED, reason="Kicked by an operator", logged_in=True)
    client.current.emit(EventKind.SESSION_ENDED, reason="socketClosed")

    await eventually(lambda: manager.stats["stale_events"] == 1)

    assert manager.attempt_count == 1
    assert manager.state is SessionState.RECONNECTING
    await eventually(lambda: not manager.scheduler.running)
    assert not manager.dispatcher.bound

    assert await stop(manager, run_task) == 0


@pytest.mark.asyncio
async def test_non_transient_error_keeps_session(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    event = SessionEvent(
        EventKind.ERROR, manager.session.session_id, {"code": "EPROTO", "message": "bad packet"}
    )

    assert await manager.handle_event(event) is True
    assert manager.connected
    assert manager.attempt_count == 0
    assert len(client.sessions) == 1

    await stop(manager, run_task)


@pytest.mark.asyncio
async def test_transient_error_reconnects(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    first = client.current
    first.emit(EventKind.ERROR, code="ECONNRESET", message="read ECONNRESET")

    await eventually(lambda: len(client.sessions) == 2 and manager.connected)

    assert first.closed_with is not None
    await stop(manager, run_task)


@pytest.mark.asyncio
async def test_shutdown_while_reconnecting(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client, retry_policy=RetryPolicy(max_attempts=3, base_delay=10.0))
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    client.current.emit(EventKind.SESSION_ENDED, reason="socketClosed")
    await eventually(lambda: manager.state is SessionState.RECONNECTING)

    assert await stop(manager, run_task) == 0
    assert manager.state is SessionState.DISCONNECTED
    assert len(client.sessions) == 1


@pytest.mark.asyncio
async def test_shutdown_while_connecting(make_manager, client_factory, eventually):
    client = client_factory(default="silent")
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.state is SessionState.CONNECTING and client.sessions)

    assert await stop(manager, run_task) == 0
    assert manager.state is SessionState.DISCONNECTED
    assert client.current.closed_with is not None
    assert len(client.sessions) == 1


@pytest.mark.asyncio
async def test_shutdown_is_idempotent(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    await manager.shutdown()
    await manager.shutdown()

    assert await asyncio.wait_for(run_task, timeout=2.0) == 0
    assert manager.exit_code == 0


@pytest.mark.asyncio
async def test_events_after_shutdown_are_ignored(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    session_id = manager.session.session_id
    await stop(manager, run_task)

    event = SessionEvent(EventKind.LOGIN, session_id, {})
    assert await manager.handle_event(event) is False
    assert manager.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_while_connected_is_rejected(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)

    with pytest.raises(ConnectError):
        await manager.connect()
    assert len(client.sessions) == 1

    await stop(manager, run_task)


@pytest.mark.asyncio
async def test_chat_command_gets_reply(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    client.current.emit(EventKind.CHAT, sender="TestBot", message="!ping")
    client.current.emit(EventKind.CHAT, sender="Steve", message="!ping")

    await eventually(lambda: client.current.chat)

    assert len(client.current.chat) == 1
    assert client.current.chat[0] in PING_RESPONSES
    await stop(manager, run_task)


@pytest.mark.asyncio
async def test_player_join_and_death(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    client.current.emit(EventKind.PLAYER_JOINED, username="Alex")
    client.current.emit(EventKind.DIED)

    await eventually(lambda: client.current.respawned == 1)

    assert client.current.chat == ["Welcome Alex! 👋"]
    await stop(manager, run_task)


@pytest.mark.asyncio
async def test_stats(make_manager, client_factory, eventually):
    client = client_factory()
    manager = make_manager(client)
    run_task = asyncio.create_task(manager.run())

    await eventually(lambda: manager.connected)
    stats = manager.stats

    assert stats["state"] == "connected"
    assert stats["server"] == "localhost:25565"
    assert stats["total_connects"] == 1
    assert stats["max_attempts"] == 3
    assert stats["scheduler"]["running"] is True

    await stop(manager, run_task)
