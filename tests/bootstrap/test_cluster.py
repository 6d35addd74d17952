import pytest

from rescueboot.bootstrap.cluster import ClusterJoinError, JoinCredential, JoinHandoff, partition
from rescueboot.errors import ConfigurationError


def test_handoff_is_write_once():
    h = JoinHandoff()
    assert not h.published
    with pytest.raises(ClusterJoinError):
        h.credential

    h.publish(JoinCredential("SWMTKN-1", "10.0.0.1"))
    assert h.published
    assert h.wait(timeout=0) == JoinCredential("SWMTKN-1", "10.0.0.1")

    with pytest.raises(ClusterJoinError):
        h.publish(JoinCredential("other", "10.0.0.9"))
    assert h.credential.token == "SWMTKN-1"


def test_partition_flagged_manager(make_target):
    a = make_target("10.0.0.1")
    b = make_target("10.0.0.2", is_manager=True)
    c = make_target("10.0.0.3")
    manager, workers = partition([a, b, c])
    assert manager is b
    assert workers == [a, c]


def test_partition_promotes_first_when_none_flagged(make_target):
    a, b = make_target("10.0.0.1"), make_target("10.0.0.2")
    manager, workers = partition([a, b])
    assert manager is a and a.is_manager
    assert workers == [b]


def test_partition_rejects_two_managers(make_target):
    with pytest.raises(ConfigurationError):
        partition([make_target("10.0.0.1", is_manager=True), make_target("10.0.0.2", is_manager=True)])


def test_partition_rejects_empty():
    with pytest.raises(ConfigurationError):
        partition([])
