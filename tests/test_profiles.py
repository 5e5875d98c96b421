import pytest

from pfpk_core.errors import ConflictError, InvalidInputError
from pfpk_core.storage.models import NftReference, Profile


def test_unknown_key_defaults(directory, keys):
    k = keys[0]
    profiles = directory.profiles
    assert profiles.get_nonce(k) == 0
    assert profiles.get_by_public_key(k) is None
    assert profiles.get_by_name("alice") is None
    assert profiles.get_by_hash(directory.resolver.derive_hash(k)) is None
    assert profiles.get_public_key_for_hash(directory.resolver.derive_hash(k)) is None


def test_save_creates_profile_with_preferences(directory, keys):
    k1 = keys[0]
    profiles = directory.profiles
    saved = profiles.save(k1, Profile(name="alice", nonce=0), ["neutron-1", "juno-1"])

    assert saved.id is not None
    assert saved.created_at and saved.updated_at
    assert profiles.get_by_public_key(k1).name == "alice"
    assert profiles.get_by_name("alice").id == saved.id

    for chain_id in ("neutron-1", "juno-1"):
        preferred = profiles.get_preferred_key(saved.id, chain_id)
        assert preferred.public_key == k1
        assert preferred.bech32_hash == directory.resolver.derive_hash(k1)

    assert profiles.get_preferred_key(saved.id, "osmosis-1") is None
    per_chain = profiles.list_preferred_key_per_chain(saved.id)
    assert sorted(c.chain_id for c in per_chain) == ["juno-1", "neutron-1"]
    assert {c.public_key for c in per_chain} == {k1}


def test_hash_lookups(directory, keys):
    k1 = keys[0]
    profiles = directory.profiles
    saved = profiles.save(k1, Profile(name="alice"))
    h = directory.resolver.derive_hash(k1)

    assert profiles.get_by_hash(h).id == saved.id
    assert profiles.get_public_key_for_hash(h) == k1
    bindings = profiles.list_bindings(saved.id)
    assert [b.public_key for b in bindings] == [k1]
    assert bindings[0].bech32_hash == h


def test_save_updates_existing_profile(directory, keys):
    k1 = keys[0]
    profiles = directory.profiles
    created = profiles.save(k1, Profile(name="alice"))

    nft = NftReference(chain_id="stargaze-1", collection_address="stars1abc", token_id="42")
    updated = profiles.save(k1, Profile(name="alicia", nonce=0, nft=nft), ["juno-1"])

    assert updated.id == created.id
    assert updated.name == "alicia"
    assert updated.nft == nft
    assert profiles.get_by_name("alice") is None
    # chain ids only apply on creation
    assert profiles.get_preferred_key(created.id, "juno-1") is None


def test_save_rejects_nonce_decrease(directory, keys):
    k1 = keys[0]
    profiles = directory.profiles
    saved = profiles.save(k1, Profile(name="alice"))
    profiles.increment_nonce(saved.id)

    with pytest.raises(InvalidInputError) as exc:
        profiles.save(k1, Profile(name="alice", nonce=0))
    assert exc.value.field == "nonce"

    with pytest.raises(InvalidInputError):
        profiles.save(keys[1], Profile(name="bob", nonce=-1))


def test_duplicate_name_is_conflict(directory, keys):
    profiles = directory.profiles
    profiles.save(keys[0], Profile(name="alice"))

    with pytest.raises(ConflictError):
        profiles.save(keys[1], Profile(name="alice"))

    # failed creation leaves nothing behind
    assert profiles.get_by_public_key(keys[1]) is None


def test_nameless_profiles_coexist(directory, keys):
    profiles = directory.profiles
    a = profiles.save(keys[0], Profile())
    b = profiles.save(keys[1], Profile())
    assert a.id != b.id
    assert a.name is None and b.name is None


def test_invalid_public_key_rejected_before_write(directory):
    with pytest.raises(InvalidInputError):
        directory.profiles.save("not-hex", Profile(name="mallory"))
    assert directory.profiles.get_by_name("mallory") is None


def test_increment_nonce(directory, keys):
    k1 = keys[0]
    profiles = directory.profiles
    saved = profiles.save(k1, Profile(name="alice"))

    for expected in range(1, 6):
        profiles.increment_nonce(saved.id)
        assert profiles.get_nonce(k1) == expected


def test_increment_nonce_missing_profile_is_noop(directory):
    directory.profiles.increment_nonce(12345)


def test_partial_nft_reads_as_none(storage, keys):
    from pfpk_core.profiles import ProfileStore

    profiles = ProfileStore(storage)
    saved = profiles.save(keys[0], Profile(name="alice", nft=NftReference("juno-1", "", "1")))
    assert saved.nft is None


class TestSearch:
    def _seed(self, directory, make_key, names, chain_id="neutron-1"):
        out = {}
        for name in names:
            k = make_key()
            out[name] = (k, directory.profiles.save(k, Profile(name=name), [chain_id]))
        return out

    def test_caps_at_five_sorted(self, directory, keys, make_key):
        self._seed(directory, make_key, ["alz", "alf", "alb", "ala", "ale", "alc", "ald", "bob"])

        results = directory.profiles.search_by_name_prefix("al", "neutron-1")
        names = [r.profile.name for r in results]
        assert names == ["ala", "alb", "alc", "ald", "ale"]
        assert names == sorted(names)

    def test_only_profiles_with_chain_preference(self, directory, keys, make_key):
        self._seed(directory, make_key, ["alice"], chain_id="juno-1")
        self._seed(directory, make_key, ["alina"], chain_id="neutron-1")

        results = directory.profiles.search_by_name_prefix("ali", "neutron-1")
        assert [r.profile.name for r in results] == ["alina"]

    def test_returns_chain_preferred_key(self, directory, keys, make_key):
        seeded = self._seed(directory, make_key, ["alice"])
        k1, alice = seeded["alice"]
        k2 = keys[1]
        directory.ownership.add_public_key(alice.id, k2, ["juno-1"])

        (neutron,) = directory.profiles.search_by_name_prefix("alice", "neutron-1")
        (juno,) = directory.profiles.search_by_name_prefix("alice", "juno-1")
        assert neutron.public_key == k1
        assert juno.public_key == k2
        assert juno.bech32_hash == directory.resolver.derive_hash(k2)
        assert juno.profile_id == alice.id

    def test_wildcards_are_literal(self, directory, keys, make_key):
        self._seed(directory, make_key, ["a_b", "axb"])
        results = directory.profiles.search_by_name_prefix("a_", "neutron-1")
        assert [r.profile.name for r in results] == ["a_b"]
        assert directory.profiles.search_by_name_prefix("%", "neutron-1") == []

    def test_case_insensitive_prefix(self, directory, keys, make_key):
        self._seed(directory, make_key, ["Alice"])
        results = directory.profiles.search_by_name_prefix("al", "neutron-1")
        assert [r.profile.name for r in results] == ["Alice"]

    def test_only_ascii_letters_fold(self, directory, keys, make_key):
        self._seed(directory, make_key, ["Élodie"])
        search = directory.profiles.search_by_name_prefix
        assert [r.profile.name for r in search("É", "neutron-1")] == ["Élodie"]
        assert [r.profile.name for r in search("ÉL", "neutron-1")] == ["Élodie"]
        assert search("é", "neutron-1") == []


def _spaced(public_key):
    return " ".join(public_key[i:i + 2] for i in range(0, len(public_key), 2))


@pytest.mark.parametrize("respell", [str.upper, _spaced])
def test_same_point_cannot_create_second_profile(directory, keys, respell):
    k = keys[0]
    profiles = directory.profiles
    alice = profiles.save(k, Profile(name="alice"))

    with pytest.raises(InvalidInputError):
        profiles.save(respell(k), Profile(name="bob"))

    assert profiles.get_by_name("bob") is None
    h = directory.resolver.derive_hash(k)
    assert profiles.get_by_hash(h).id == alice.id
    assert profiles.get_public_key_for_hash(h) == k
