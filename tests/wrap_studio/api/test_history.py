import logging

import pytest

from wrap_studio.api.history import History
from wrap_studio.api.layers import make_layer
from wrap_studio.errors import ValidationError

logger = logging.getLogger(__name__)


def states(count):
    layers = [make_layer({"type": "rect", "x": i}, "rect-%d" % i) for i in range(count)]
    return [tuple(layers[:i]) for i in range(count + 1)]


def test_initial_state():
    history = History()
    assert len(history) == 1
    assert history.cursor == 0
    assert history.current.layers == ()
    assert not history.can_undo
    assert not history.can_redo
    assert history.undo() is None
    assert history.redo() is None


def test_undo_redo():
    s = states(3)
    history = History(s[0])
    for state in s[1:]:
        history.commit(state)
    assert history.current.layers == s[3]

    assert history.undo() == s[2]
    assert history.undo() == s[1]
    assert history.redo() == s[2]
    assert history.current.layers == s[2]
    assert history.can_undo and history.can_redo


@pytest.mark.parametrize("count", [1, 2, 5])
def test_undo_restores_previous_state(count):
    s = states(count)
    history = History(s[0])
    for index in range(1, count + 1):
        history.commit(s[index])
        assert history.undo() == s[index - 1]
        assert history.redo() == s[index]


def test_undo_at_start_is_noop():
    s = states(1)
    history = History(s[0])
    history.commit(s[1])
    history.undo()
    assert history.undo() is None
    assert history.cursor == 0
    assert history.current.layers == s[0]


def test_branch_truncation():
    s = states(4)
    history = History(s[0])
    for state in s[1:3]:
        history.commit(state)
    history.undo()
    history.undo()
    dropped = history.commit(s[3])
    assert [entry.layers for entry in dropped] == [s[1], s[2]]
    assert not history.can_redo
    assert history.redo() is None
    assert [entry.layers for entry in history.entries] == [s[0], s[3]]


def test_sequence_is_monotonic():
    s = states(3)
    history = History(s[0])
    history.commit(s[1])
    history.undo()
    history.commit(s[2])
    indices = [entry.index for entry in history.entries]
    assert indices == sorted(indices)
    assert indices == [0, 2]


def test_three_adds_two_undos_one_redo():
    s = states(3)
    history = History(s[0])
    for state in s[1:]:
        history.commit(state)
    history.undo()
    history.undo()
    history.redo()
    assert len(history.current.layers) == 2


def test_reset():
    s = states(2)
    history = History(s[0])
    history.commit(s[1])
    history.commit(s[2])
    dropped = history.reset(s[1])
    assert len(dropped) == 3
    assert len(history) == 1
    assert history.current.layers == s[1]
    assert not history.can_undo


def test_limit_evicts_oldest():
    s = states(5)
    history = History(s[0], limit=3)
    evicted = []
    for state in s[1:]:
        evicted.extend(history.commit(state))
    assert len(history) == 3
    assert [entry.layers for entry in history.entries] == [s[3], s[4], s[5]]
    assert [entry.layers for entry in evicted] == [s[0], s[1], s[2]]
    assert history.current.layers == s[5]
    assert history.undo() == s[4]
    assert history.undo() == s[3]
    assert history.undo() is None


def test_invalid_limit():
    with pytest.raises(ValidationError):
        History(limit=0)
