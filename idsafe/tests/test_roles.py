import pytest

from idsafe.errors import InvalidArgument, NotFound, ThresholdViolation, Unauthorized
from idsafe.roles import RoleRegistry
from idsafe.threshold import ThresholdPolicy


@pytest.fixture
def roles():
    return RoleRegistry("Admin", ["NGO1", "ngo2", " ngo1 "])


def test_identifiers_are_normalised_and_unique(roles):
    assert roles.admin == "admin"
    assert roles.validators() == ["ngo1", "ngo2"]
    assert roles.is_admin("ADMIN")
    assert roles.is_validator("Ngo2")
    assert not roles.is_validator("user")


def test_null_admin_rejected():
    with pytest.raises(InvalidArgument):
        RoleRegistry("", ["ngo1"])
    with pytest.raises(InvalidArgument):
        RoleRegistry("0x" + "0" * 40, ["ngo1"])


def test_null_validator_rejected():
    with pytest.raises(InvalidArgument):
        RoleRegistry("admin", ["ngo1", ""])


def test_change_admin(roles):
    previous = roles.change_admin("admin", "newAdmin")
    assert previous == "admin"
    assert roles.is_admin("newadmin")
    assert not roles.is_admin("admin")
    with pytest.raises(Unauthorized):
        roles.add_validator("admin", "ngo3")


def test_change_admin_requires_admin(roles):
    with pytest.raises(Unauthorized):
        roles.change_admin("ngo1", "ngo1")
    assert roles.admin == "admin"


def test_change_admin_to_null_rejected(roles):
    with pytest.raises(InvalidArgument):
        roles.change_admin("admin", "0x0000000000000000000000000000000000000000")
    assert roles.admin == "admin"


def test_add_validator(roles):
    assert roles.add_validator("admin", "ngo3") is True
    assert roles.is_validator("ngo3")
    assert roles.add_validator("admin", "NGO3") is False
    assert roles.validator_count() == 3


def test_add_validator_requires_admin(roles):
    with pytest.raises(Unauthorized):
        roles.add_validator("ngo1", "ngo3")
    assert not roles.is_validator("ngo3")


def test_remove_validator(roles):
    roles.remove_validator("admin", "ngo1", threshold=1)
    assert not roles.is_validator("ngo1")
    assert roles.validators() == ["ngo2"]


def test_remove_validator_errors(roles):
    with pytest.raises(Unauthorized):
        roles.remove_validator("ngo2", "ngo1", threshold=1)
    with pytest.raises(NotFound):
        roles.remove_validator("admin", "user", threshold=1)
    with pytest.raises(ThresholdViolation):
        roles.remove_validator("admin", "ngo1", threshold=2)
    assert roles.validators() == ["ngo1", "ngo2"]


def test_unauthorized_is_checked_before_membership(roles):
    with pytest.raises(Unauthorized):
        roles.remove_validator("user", "nobody", threshold=1)


def test_threshold_bounds(roles):
    with pytest.raises(InvalidArgument):
        ThresholdPolicy(roles, 0)
    with pytest.raises(InvalidArgument):
        ThresholdPolicy(roles, 3)
    with pytest.raises(InvalidArgument):
        ThresholdPolicy(roles, True)
    assert ThresholdPolicy(roles, 2).threshold == 2


def test_change_threshold(roles):
    policy = ThresholdPolicy(roles, 2)
    assert policy.change_threshold("admin", 1) == 2
    assert policy.threshold == 1
    with pytest.raises(Unauthorized):
        policy.change_threshold("ngo1", 2)
    with pytest.raises(InvalidArgument):
        policy.change_threshold("admin", 0)
    with pytest.raises(InvalidArgument):
        policy.change_threshold("admin", 3)
    assert policy.threshold == 1


def test_is_quorum(roles):
    policy = ThresholdPolicy(roles, 2)
    assert not policy.is_quorum(0)
    assert not policy.is_quorum(1)
    assert policy.is_quorum(2)
    assert policy.is_quorum(3)
