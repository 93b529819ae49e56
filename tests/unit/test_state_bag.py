"""StateBag contract tests."""

from __future__ import annotations

import pytest

from provisioner.state_bag import MissingStateError, StateBag, StateTypeError


class TestReadsAndWrites:
    def test_put_then_get(self):
        bag = StateBag()
        bag.put('resource.allocationId', 'a-1')
        assert bag.get('resource.allocationId') == 'a-1'

    def test_last_write_wins(self):
        bag = StateBag({'k': 1})
        bag.put('k', 2)
        assert bag.get('k') == 2
        assert len(bag) == 1

    def test_seeded_values_are_copied(self):
        seed = {'k': 'v'}
        bag = StateBag(seed)
        bag.put('other', 1)
        assert 'other' not in seed

    def test_falsy_values_are_present(self):
        bag = StateBag({'empty': '', 'none': None})
        assert bag.get('empty') == ''
        assert bag.get('none') is None
        assert 'none' in bag


class TestRequiredKeys:
    def test_missing_key_raises(self):
        bag = StateBag()
        with pytest.raises(MissingStateError) as exc_info:
            bag.get('target.descriptor')
        assert exc_info.value.key == 'target.descriptor'

    def test_missing_key_is_lookup_error(self):
        with pytest.raises(LookupError):
            StateBag().get('anything')

    def test_wrong_type_raises(self):
        bag = StateBag({'ssh.privateKey': 42})
        with pytest.raises(StateTypeError) as exc_info:
            bag.get('ssh.privateKey', str)
        assert exc_info.value.expected is str
        assert exc_info.value.actual is int

    def test_expected_type_passes(self):
        bag = StateBag({'ssh.privateKey': 'pem'})
        assert bag.get('ssh.privateKey', str) == 'pem'


class TestOptionalKeys:
    def test_find_returns_default(self):
        bag = StateBag()
        assert bag.find('resource.publicIp') is None
        assert bag.find('resource.publicIp', 'fallback') == 'fallback'

    def test_delete_is_noop_when_absent(self):
        bag = StateBag({'a': 1})
        bag.delete('b')
        bag.delete('a')
        assert 'a' not in bag
        assert len(bag) == 0


def test_snapshot_is_read_only_copy():
    bag = StateBag({'a': 1})
    snap = bag.snapshot()
    bag.put('b', 2)
    assert dict(snap) == {'a': 1}
    with pytest.raises(TypeError):
        snap['c'] = 3  # type: ignore[index]


def test_keys_and_iteration():
    bag = StateBag({'a': 1, 'b': 2})
    assert sorted(bag.keys()) == ['a', 'b']
    assert sorted(bag) == ['a', 'b']
