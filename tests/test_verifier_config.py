import pytest

from khafi.verifier_config import VerifierConfig, image_id_to_bytes


def test_config_from_env(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    config = VerifierConfig.from_env([0] * 8)
    assert len(config.image_id) == 32
    assert config.redis_url == "redis://localhost:6379"


def test_config_reads_redis_url(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache.example.com:6380")
    config = VerifierConfig.from_env(range(1, 9))
    assert config.redis_url == "redis://cache.example.com:6380"


def test_image_id_conversion():
    data = image_id_to_bytes([1, 2, 3, 4, 5, 6, 7, 8])
    assert len(data) == 32
    assert data[0] == 1
    assert data[1] == 0
    assert data[2] == 0
    assert data[3] == 0


def test_image_id_round_trip():
    words = [0xFFFFFFFF, 0, 0x01020304, 7, 8, 9, 10, 11]
    data = image_id_to_bytes(words)
    back = [int.from_bytes(data[i : i + 4], "little") for i in range(0, 32, 4)]
    assert back == words


@pytest.mark.parametrize("words", [[1] * 7, [1] * 9, [1 << 32] + [0] * 7, [-1] + [0] * 7])
def test_image_id_rejects_bad_words(words):
    with pytest.raises(ValueError):
        image_id_to_bytes(words)