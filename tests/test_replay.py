import pytest

from pfpk_core.errors import InvalidNonceError
from pfpk_core.storage.models import Profile


def test_unknown_key_nonce_is_zero(directory, keys):
    assert directory.replay.get_nonce(keys[0]) == 0
    directory.replay.verify_nonce(keys[0], 0)


def test_increment_n_times(directory, keys):
    alice = directory.profiles.save(keys[0], Profile(name="alice"))
    seen = [directory.replay.get_nonce(keys[0])]
    for _ in range(7):
        directory.replay.increment_profile_nonce(alice.id)
        seen.append(directory.replay.get_nonce(keys[0]))

    assert seen == list(range(8))


def test_nonce_shared_by_all_keys_of_profile(directory, keys):
    alice = directory.profiles.save(keys[0], Profile(name="alice"))
    directory.ownership.add_public_key(alice.id, keys[1])
    directory.replay.increment_profile_nonce(alice.id)
    assert directory.replay.get_nonce(keys[1]) == 1


def test_verify_nonce(directory, keys):
    alice = directory.profiles.save(keys[0], Profile(name="alice"))
    directory.replay.increment_profile_nonce(alice.id)

    directory.replay.verify_nonce(keys[0], 1)
    with pytest.raises(InvalidNonceError) as exc:
        directory.replay.verify_nonce(keys[0], 0)
    assert exc.value.status_code == 401
    assert exc.value.to_dict()["field"] == "nonce"


def test_nonce_restarts_after_profile_recreated(directory, keys):
    alice = directory.profiles.save(keys[0], Profile(name="alice"))
    directory.replay.increment_profile_nonce(alice.id)
    directory.ownership.remove_public_keys(alice.id, [keys[0]])

    directory.profiles.save(keys[0], Profile(name="alice"))
    assert directory.replay.get_nonce(keys[0]) == 0
