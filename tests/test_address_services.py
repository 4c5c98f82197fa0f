from paychat.services.address import (
    ZERO_ADDRESS,
    address_or_zero,
    is_evm_address,
    resolve_recipient_address,
)

ADDRESS = "0x1234567890abcdef1234567890ABCDEF12345678"
FALLBACK = "0x" + "ab" * 20


def test_evm_address_validation():
    assert is_evm_address(ADDRESS) is True
    assert is_evm_address(ADDRESS[:-1]) is False
    assert is_evm_address(ADDRESS + "0") is False
    assert is_evm_address("1234567890abcdef1234567890ABCDEF1234567800") is False
    assert is_evm_address("0x" + "g" * 40) is False
    assert is_evm_address(None) is False
    assert is_evm_address("") is False


def test_address_label_passes_through_verbatim():
    assert resolve_recipient_address(ADDRESS, FALLBACK) == ADDRESS


def test_name_label_uses_fallback():
    assert resolve_recipient_address("Budi", FALLBACK) == FALLBACK


def test_name_label_without_usable_fallback():
    assert resolve_recipient_address("Budi") == ZERO_ADDRESS
    assert resolve_recipient_address("Budi", "0x123") == ZERO_ADDRESS


def test_address_or_zero():
    assert address_or_zero(ADDRESS) == ADDRESS
    assert address_or_zero("") == ZERO_ADDRESS
    assert address_or_zero(None) == ZERO_ADDRESS
