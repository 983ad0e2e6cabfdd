import pytest

from quantumvm.runtime import AccessMode, Event, Runtime, TransactionContext
from quantumvm.types import ObjectID, SilverAddress


@pytest.fixture
def obj_id():
    return ObjectID(bytes([1]) * 64)


def test_runtime_creation():
    runtime = Runtime()
    assert len(runtime.events) == 0
    assert len(runtime.accessed_objects) == 0
    assert runtime.tx_context.sender == SilverAddress(bytes(64))
    assert runtime.tx_context.timestamp == 0


def test_event_emission():
    runtime = Runtime()
    runtime.emit_event("test_event", bytes([1, 2, 3]))
    assert len(runtime.events) == 1
    assert runtime.events[0].event_type == "test_event"
    assert runtime.events[0].data == bytes([1, 2, 3])


def test_event_carries_context_sender():
    sender = SilverAddress(bytes([5]) * 64)
    runtime = Runtime.with_context(TransactionContext(sender=sender, timestamp=77))
    runtime.emit_event("transfer", b"\x09")
    assert runtime.events == [Event("transfer", b"\x09", sender)]
    assert runtime.tx_context.timestamp == 77


def test_object_access_tracking(obj_id):
    runtime = Runtime()
    runtime.record_object_access(obj_id, AccessMode.READ)
    assert len(runtime.accessed_objects) == 1
    assert runtime.accessed_objects[obj_id] is AccessMode.READ

    runtime.record_object_access(obj_id, AccessMode.WRITE)
    assert runtime.accessed_objects[obj_id] is AccessMode.WRITE


def test_write_access_not_downgraded(obj_id):
    runtime = Runtime()
    runtime.record_object_access(obj_id, AccessMode.WRITE)
    runtime.record_object_access(obj_id, AccessMode.READ)
    assert runtime.accessed_objects[obj_id] is AccessMode.WRITE


def test_object_read_write(obj_id):
    runtime = Runtime()
    data = bytes([1, 2, 3, 4, 5])
    runtime.write_object(obj_id, data)
    assert runtime.object_exists(obj_id)
    assert runtime.read_object(obj_id) == data
    assert runtime.accessed_objects[obj_id] is AccessMode.WRITE


def test_read_missing_object_records_read(obj_id):
    runtime = Runtime()
    assert runtime.read_object(obj_id) is None
    assert runtime.accessed_objects == {obj_id: AccessMode.READ}


def test_object_deletion(obj_id):
    runtime = Runtime()
    data = bytes([1, 2, 3])
    runtime.write_object(obj_id, data)
    assert runtime.object_exists(obj_id)
    assert runtime.delete_object(obj_id) == data
    assert not runtime.object_exists(obj_id)


def test_delete_missing_object(obj_id):
    runtime = Runtime()
    assert runtime.delete_object(obj_id) is None
    assert runtime.accessed_objects[obj_id] is AccessMode.WRITE


def test_runtime_clear(obj_id):
    runtime = Runtime()
    runtime.emit_event("test", bytes([1, 2, 3]))
    runtime.write_object(obj_id, bytes([4, 5, 6]))
    assert len(runtime.events) == 1
    assert len(runtime.object_store) == 1

    runtime.clear()

    assert len(runtime.events) == 0
    assert len(runtime.object_store) == 0
    assert len(runtime.accessed_objects) == 0


def test_context_rejects_bad_digest():
    with pytest.raises(ValueError, match="digest"):
        TransactionContext(digest=bytes(10))