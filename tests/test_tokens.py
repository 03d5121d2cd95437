import pytest

from services.tokens import BORROW_KEY_ALPHABET, generate_borrow_key


def test_default_key_shape():
    key = generate_borrow_key()
    assert len(key) == 10
    assert set(key) <= set(BORROW_KEY_ALPHABET)


def test_keys_do_not_repeat():
    keys = {generate_borrow_key() for _ in range(2000)}
    assert len(keys) == 2000


def test_custom_length():
    assert len(generate_borrow_key(21)) == 21


def test_rejects_non_positive_length():
    with pytest.raises(ValueError):
        generate_borrow_key(0)
