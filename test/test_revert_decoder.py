"""Tests for revert reason decoding."""

import logging
from types import MappingProxyType

import pytest
from eth_abi import encode

from cast_interop.utils.revert_decoder import (
    CUSTOM_ERRORS,
    ERROR_SELECTORS,
    decode_revert_data,
    decode_revert_reason,
    extract_revert_data,
    revert_reason_from_exception,
)

# Selectors as published with the handler's custom errors
KNOWN_SELECTORS = {
    "AttributeAlreadySet": "9031f751",
    "AttributeViolatesRestriction": "bcb41ec7",
    "BundleAlreadyProcessed": "5bba5111",
    "BundleVerifiedAlready": "a43d2953",
    "CallAlreadyExecuted": "d5c7a376",
    "CallNotExecutable": "c087b727",
    "CanNotUnbundle": "f729f26d",
    "ExecutingNotAllowed": "e845be4c",
    "IndirectCallValueMismatch": "62d214aa",
    "InteroperableAddressChainReferenceNotEmpty": "fe8b1b16",
    "InteroperableAddressNotEmpty": "884f49ba",
    "InvalidInteropBundleVersion": "eae192ef",
    "InvalidInteropCallVersion": "d5f13973",
    "MessageNotIncluded": "32c2e156",
    "UnauthorizedMessageSender": "89fd2c76",
    "UnbundlingNotAllowed": "0345c281",
    "WrongCallStatusLength": "801534e9",
    "WrongDestinationChainId": "4534e972",
    "WrongSourceChainId": "534ab1b2",
}


class TestErrorTable:
    """The custom error table is fixed at import."""

    def test_all_errors_present(self):
        assert len(CUSTOM_ERRORS) == 19
        assert {e.name for e in CUSTOM_ERRORS} == set(KNOWN_SELECTORS)

    @pytest.mark.parametrize("name,selector", sorted(KNOWN_SELECTORS.items()))
    def test_selector(self, name, selector):
        assert ERROR_SELECTORS[bytes.fromhex(selector)].name == name

    def test_table_is_read_only(self):
        assert isinstance(CUSTOM_ERRORS, tuple)
        assert isinstance(ERROR_SELECTORS, MappingProxyType)
        with pytest.raises(TypeError):
            ERROR_SELECTORS[b"\x00\x00\x00\x00"] = None


class TestExtraction:
    """Hex run extraction from transport messages."""

    def test_first_hex_run(self):
        message = 'execution reverted: {"code":3,"data":"0xa43d2953abcd"} then 0xffff'
        assert extract_revert_data(message) == bytes.fromhex("a43d2953abcd")

    def test_no_hex(self):
        assert extract_revert_data("execution reverted") is None

    def test_odd_length(self):
        assert extract_revert_data("data: 0xabc") is None


class TestDecoding:
    """Decoding of revert payloads."""

    def test_error_string(self):
        data = bytes.fromhex("08c379a0") + encode(["string"], ["bundle not ready"])
        assert decode_revert_data(data) == "bundle not ready"

    def test_panic(self):
        data = bytes.fromhex("4e487b71") + (0x11).to_bytes(32, "big")
        assert decode_revert_data(data) == "panic(17)"

    def test_truncated_panic(self):
        data = bytes.fromhex("4e487b71") + b"\x11"
        assert decode_revert_data(data) is None
        assert decode_revert_reason("execution reverted: 0x4e487b71") is None

    def test_custom_error(self):
        data = bytes.fromhex("a43d2953") + bytes(32)
        assert decode_revert_data(data) == "revert: BundleVerifiedAlready"

    def test_custom_error_without_arguments(self):
        assert decode_revert_data(bytes.fromhex("32c2e156")) == "revert: MessageNotIncluded"

    def test_too_short(self):
        assert decode_revert_data(b"\x01\x02") is None

    def test_unknown_selector_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert decode_revert_data(bytes.fromhex("deadbeef")) is None
        assert "unknown revert selector 0xdeadbeef" in caplog.text

    def test_reason_from_message(self):
        message = "execution reverted, data: 0x801534e9" + "00" * 64
        assert decode_revert_reason(message) == "revert: WrongCallStatusLength"

    def test_reason_without_data(self):
        assert decode_revert_reason("connection refused") is None


class TestFromException:
    """Revert reasons carried by web3 exceptions."""

    def test_uses_data_attribute(self):
        class RevertError(Exception):
            def __init__(self, message, data):
                super().__init__(message)
                self.data = data

        exc = RevertError("execution reverted", "0xa43d2953" + "11" * 32)
        assert revert_reason_from_exception(exc) == "revert: BundleVerifiedAlready"

    def test_falls_back_to_message(self):
        exc = RuntimeError("call failed: 0x4534e972" + "00" * 96)
        assert revert_reason_from_exception(exc) == "revert: WrongDestinationChainId"
