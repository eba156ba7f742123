import asyncio

import pytest

from vitalwatch.client import PatientStreamClient


class FakeConnection:
    def __init__(self, messages, hold=False):
        self.messages = list(messages)
        self.hold = hold
        self.sent = []
        self.closed = False

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for m in self.messages:
            yield m
        if self.hold:
            await asyncio.Event().wait()

    async def send(self, message):
        self.sent.append(message)

    async def close(self):
        self.closed = True


def scripted(*outcomes):
    calls = []
    queue = list(outcomes)

    async def connect(uri):
        calls.append(uri)
        outcome = queue.pop(0) if queue else OSError("no more scripted connections")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return connect, calls


@pytest.mark.asyncio
async def test_reconnects_after_refusal_and_close(store):
    held = FakeConnection(["1,2000,HeartRate,82.0"], hold=True)
    connect, calls = scripted(
        OSError("connection refused"),
        FakeConnection(["1,1000,HeartRate,80.0", "garbage"]),
        held,
    )
    seen = []
    client = PatientStreamClient("ws://monitor", store, reconnect_delay=0, connect=connect, on_message=seen.append)
    client.start()

    assert await client.wait_connected(timeout=1)
    for _ in range(100):
        if len(store.query(1, 0, 10_000)) == 2:
            break
        await asyncio.sleep(0.01)

    assert [r.value for r in store.query(1, 0, 10_000, ordered=True)] == [80.0, 82.0]
    assert client.connections == 2
    assert len(calls) == 3
    assert seen == ["1,1000,HeartRate,80.0", "garbage", "1,2000,HeartRate,82.0"]

    assert await client.send("3,3000,Saturation,97.0") is True
    assert held.sent == ["3,3000,Saturation,97.0"]

    await client.stop()
    assert held.closed
    assert not client.connected


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(store):
    connect, calls = scripted()
    client = PatientStreamClient("ws://monitor", store, reconnect_delay=0, max_reconnect_attempts=2, connect=connect)
    task = client.start()
    await asyncio.wait_for(task, timeout=1)
    assert len(calls) == 3
    assert client.running is False
    assert client.connections == 0


@pytest.mark.asyncio
async def test_send_while_disconnected(store):
    client = PatientStreamClient("ws://monitor", store)
    assert await client.send("1,1,HeartRate,60") is False


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_client(store, caplog):
    held = FakeConnection(["1,1000,HeartRate,80.0", "1,2000,HeartRate,82.0"], hold=True)
    connect, calls = scripted(held)

    def explode(message):
        raise RuntimeError("display went away")

    client = PatientStreamClient("ws://monitor", store, reconnect_delay=0, connect=connect, on_message=explode)
    task = client.start()
    for _ in range(100):
        if len(store.query(1, 0, 10_000)) == 2:
            break
        await asyncio.sleep(0.01)

    assert len(store.query(1, 0, 10_000)) == 2
    assert not task.done()
    assert client.connected
    assert "on_message callback failed" in caplog.text
    await client.stop()
