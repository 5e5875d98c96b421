import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from pfpk_core.directory import ProfileDirectory
from pfpk_core.storage import InMemoryStorage, SQLiteStorage


def make_public_key() -> str:
    sk = ec.generate_private_key(ec.SECP256K1())
    return sk.public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.CompressedPoint,
    ).hex()


@pytest.fixture(params=["sqlite", "memory"])
def storage(request, tmp_path):
    if request.param == "sqlite":
        s = SQLiteStorage(str(tmp_path / "pfpk.db"))
    else:
        s = InMemoryStorage()
    yield s
    s.close()


@pytest.fixture
def directory(storage):
    return ProfileDirectory(storage=storage)


@pytest.fixture
def make_key():
    return make_public_key


@pytest.fixture
def keys():
    return [make_public_key() for _ in range(4)]
