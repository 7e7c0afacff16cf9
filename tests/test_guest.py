import pytest

from khafi.guest import execute_business_logic, verify_zcash_payment


def test_long_key_gives_its_prefix():
    key = bytes(range(40))
    assert verify_zcash_payment(key) == key[:32]


def test_exact_key_is_returned_whole():
    key = bytes([7]) * 32
    assert verify_zcash_payment(key) == key


@pytest.mark.parametrize("key", [b"", bytes([1, 2, 3]), bytes(range(31))])
def test_short_key_gives_zero_nullifier(key):
    result = verify_zcash_payment(key)
    assert len(result) == 32
    assert set(result) == {0}


@pytest.mark.parametrize(
    "private_data, public_params, expected",
    [
        (bytes([10, 11, 12]), bytes([13, 14, 15]), True),
        (b"", bytes([13, 14, 15]), False),
        (bytes([10, 11, 12]), b"", False),
        (b"", b"", False),
    ],
)
def test_business_logic(private_data, public_params, expected):
    assert execute_business_logic(private_data, public_params) is expected