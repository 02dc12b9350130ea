import pytest

from lidarmap.callback_slot import CallbackSlot


def test_empty_slot_is_false_and_call_is_noop():
    slot = CallbackSlot()
    assert not slot
    slot.call(1, 2)
    assert bool(slot) is False


def test_add_returns_sequential_ids():
    slot = CallbackSlot()
    assert slot.add(lambda: None) == 0
    assert slot.add(lambda: None) == 1
    assert slot


def test_call_invokes_all_in_order_with_args():
    slot = CallbackSlot()
    calls = []
    slot.add(lambda a, b: calls.append(("first", a, b)))
    slot.add(lambda a, b: calls.append(("second", a, b)))
    slot(3, "x")
    assert calls == [("first", 3, "x"), ("second", 3, "x")]


def test_remove_disables_callback():
    slot = CallbackSlot()
    calls = []
    first = slot.add(lambda: calls.append("a"))
    second = slot.add(lambda: calls.append("b"))
    slot.remove(first)
    slot.call()
    assert calls == ["b"]
    slot.remove(second)
    assert not slot


def test_remove_unknown_id_raises():
    slot = CallbackSlot()
    with pytest.raises(IndexError):
        slot.remove(5)