import asyncio

import pytest

from archiver.core.errors import ServerBusyError
from archiver.services.gate import AdmissionGate


def test_try_acquire_until_busy():
    gate = AdmissionGate(2)
    gate.try_acquire()
    gate.try_acquire()
    assert gate.available == 0
    with pytest.raises(ServerBusyError):
        gate.try_acquire()
    gate.release()
    assert gate.available == 1
    gate.try_acquire()


def test_release_without_slot_is_rejected():
    gate = AdmissionGate(1)
    with pytest.raises(ValueError):
        gate.release()
    assert gate.available == 1


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        AdmissionGate(0)


def test_acquire_waits_for_release():
    gate = AdmissionGate(1)
    gate.try_acquire()

    async def scenario() -> bool:
        waiter = asyncio.create_task(gate.acquire())
        await asyncio.sleep(0.05)
        blocked = not waiter.done()
        gate.release()
        await asyncio.wait_for(waiter, timeout=2)
        return blocked

    assert asyncio.run(scenario()) is True
    assert gate.available == 0
