"""
Tests for the Error Classifier

Rule table ordering, revert decoding, backoff and totality on malformed input.
"""

import asyncio

import httpx
import pytest
from eth_abi import encode

from onft_bridge.core.recovery.errors import (
    ERROR_STRING_SELECTOR,
    INVALID_PEER_SELECTOR,
    NO_PEER_SELECTOR,
    NOT_ENOUGH_NATIVE_SELECTOR,
    PANIC_SELECTOR,
    ApprovalRequiredError,
    BridgeError,
    ClassifiedError,
    ErrorKind,
    PeerNotConfiguredError,
    QuoteUnavailableError,
    classify_error,
    compute_backoff_ms,
)
from onft_bridge.providers.rpc import RpcError
from onft_bridge.providers.signer import ReceiptTimeoutError


def _revert_data(selector: str, types, values) -> str:
    return selector + encode(types, values).hex()


# =============================================================================
# Message and code rules
# =============================================================================

class TestMessageRules:
    """Tests for message and provider-code matching."""

    def test_user_rejected_by_code(self):
        classified = classify_error({"code": 4001, "message": "MetaMask Tx Signature: User denied transaction signature."})

        assert classified.kind == ErrorKind.USER_REJECTED
        assert classified.kind == "UserRejected"
        assert classified.retryable is True
        assert classified.requires_user_action is True
        assert classified.can_auto_retry is False

    def test_insufficient_funds_before_gas(self):
        classified = classify_error(Exception("insufficient funds for gas * price + value"))

        assert classified.kind == ErrorKind.INSUFFICIENT_FUNDS
        assert classified.retryable is False
        assert classified.suggested_delay_ms is None

    def test_insufficient_gas(self):
        classified = classify_error(RuntimeError("out of gas"))

        assert classified.kind == ErrorKind.INSUFFICIENT_GAS
        assert classified.retryable is True
        assert classified.max_retries == 2
        assert classified.suggested_delay_ms == 5_000

    def test_replacement_underpriced_is_nonce_conflict(self):
        classified = classify_error("replacement transaction underpriced")

        assert classified.kind == ErrorKind.NONCE_CONFLICT
        assert classified.suggested_delay_ms == 1_000

    def test_nonce_too_low(self):
        assert classify_error(RpcError("nonce too low", code=-32000)).kind == ErrorKind.NONCE_CONFLICT

    def test_quote_stale_by_message(self):
        classified = classify_error("LayerZero: insufficient fee")

        assert classified.kind == ErrorKind.QUOTE_STALE
        assert classified.retryable is True

    def test_approval_required_revert_message(self):
        classified = classify_error("execution reverted: ERC721: caller is not token owner or approved")

        assert classified.kind == ErrorKind.APPROVAL_REQUIRED
        assert classified.requires_user_action is True

    def test_service_unavailable_status(self):
        request = httpx.Request("POST", "https://rpc.example")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("Server error '503 Service Unavailable'", request=request, response=response)

        classified = classify_error(error)

        assert classified.kind == ErrorKind.RPC_UNAVAILABLE
        assert classified.code == "503"


# =============================================================================
# Exception types
# =============================================================================

class TestExceptionTypes:
    """Tests for classification by exception type."""

    def test_asyncio_timeout(self):
        classified = classify_error(asyncio.TimeoutError())

        assert classified.kind == ErrorKind.NETWORK_TIMEOUT
        assert classified.retryable is True
        assert classified.suggested_delay_ms > 0

    def test_timeout_after_broadcast_is_transaction_pending(self):
        classified = classify_error(ReceiptTimeoutError("0xfeed", 300))

        assert classified.kind == ErrorKind.TRANSACTION_PENDING
        assert classified.retryable is False
        assert classified.requires_user_action is True
        assert classified.can_auto_retry is False

    def test_httpx_read_timeout_is_timeout_not_connection(self):
        classified = classify_error(httpx.ReadTimeout("read timed out"))

        assert classified.kind == ErrorKind.NETWORK_TIMEOUT

    def test_httpx_connect_error(self):
        classified = classify_error(httpx.ConnectError("All connection attempts failed"))

        assert classified.kind == ErrorKind.RPC_UNAVAILABLE
        assert classified.max_retries == 3

    def test_builtin_connection_error(self):
        assert classify_error(ConnectionResetError()).kind == ErrorKind.RPC_UNAVAILABLE


# =============================================================================
# Revert data
# =============================================================================

class TestRevertData:
    """Tests for selector matching and revert reason decoding."""

    def test_error_string_reason_decoded(self):
        data = _revert_data(ERROR_STRING_SELECTOR, ["string"], ["ONFT: paused"])
        classified = classify_error(RpcError("execution reverted", code=3, data=data))

        assert classified.kind == ErrorKind.CONTRACT_REVERT
        assert classified.revert_reason == "ONFT: paused"
        assert classified.code == ERROR_STRING_SELECTOR
        assert classified.retryable is False

    def test_panic_named(self):
        data = _revert_data(PANIC_SELECTOR, ["uint256"], [0x11])
        classified = classify_error({"message": "execution reverted", "data": data})

        assert classified.kind == ErrorKind.CONTRACT_REVERT
        assert classified.revert_reason.startswith("Panic(0x11)")

    def test_reason_from_message_without_data(self):
        classified = classify_error("execution reverted: Bridge: paused")

        assert classified.kind == ErrorKind.CONTRACT_REVERT
        assert classified.revert_reason == "Bridge: paused"

    def test_no_peer_custom_error(self):
        data = _revert_data(NO_PEER_SELECTOR, ["uint32"], [40245])
        classified = classify_error(RpcError("execution reverted", code=3, data=data))

        assert classified.kind == ErrorKind.PEER_NOT_CONFIGURED
        assert classified.retryable is False

    def test_invalid_peer_selector(self):
        data = INVALID_PEER_SELECTOR + "00" * 64
        classified = classify_error({"error": {"code": 3, "message": "execution reverted", "data": data}})

        assert classified.kind == ErrorKind.PEER_NOT_CONFIGURED

    def test_not_enough_native_is_quote_stale(self):
        data = _revert_data(NOT_ENOUGH_NATIVE_SELECTOR, ["uint256"], [12345])
        classified = classify_error(RpcError("execution reverted", data=data))

        assert classified.kind == ErrorKind.QUOTE_STALE

    def test_unknown_custom_error(self):
        classified = classify_error(RpcError("execution reverted", data="0xdeadbeef" + "00" * 32))

        assert classified.kind == ErrorKind.CONTRACT_REVERT
        assert classified.revert_reason == "custom error 0xdeadbeef"


# =============================================================================
# Backoff
# =============================================================================

class TestBackoff:
    """Tests for exponential backoff with a ceiling."""

    def test_doubles_per_attempt(self):
        assert compute_backoff_ms(2_000, 0, 30_000) == 2_000
        assert compute_backoff_ms(2_000, 1, 30_000) == 4_000
        assert compute_backoff_ms(2_000, 2, 30_000) == 8_000

    def test_capped_at_ceiling(self):
        assert compute_backoff_ms(5_000, 3, 30_000) == 30_000
        assert compute_backoff_ms(5_000, 10, 30_000) == 30_000

    def test_no_base_delay(self):
        assert compute_backoff_ms(None, 4) is None

    def test_attempt_passed_to_classifier(self):
        classified = classify_error(asyncio.TimeoutError(), attempt=2, ceiling_ms=30_000)

        assert classified.attempt == 2
        assert classified.suggested_delay_ms == 8_000

    def test_for_attempt_recomputes(self):
        classified = classify_error("nonce too low")

        assert classified.for_attempt(3, ceiling_ms=30_000).suggested_delay_ms == 8_000
        assert classified.suggested_delay_ms == 1_000


# =============================================================================
# Totality and idempotence
# =============================================================================

class _Unprintable:
    def __str__(self):
        raise RuntimeError("no str for you")

    def __repr__(self):
        raise RuntimeError("no repr either")


class _ExplodingAttributes:
    def __getattr__(self, name):
        raise RuntimeError(f"cannot read {name}")


class TestTotality:
    """classify_error never raises and is a pure function."""

    # Built inside the test: pytest reads attributes of parametrize values
    # when generating ids, which these objects refuse.
    @pytest.mark.parametrize(
        "make_raw",
        [
            lambda: None,
            lambda: "",
            lambda: 42,
            lambda: 3.5,
            lambda: b"\x00\x01",
            lambda: [1, 2, 3],
            lambda: {},
            lambda: {"message": None, "code": None, "data": None},
            lambda: {"data": {"data": "0x12"}},
            lambda: {"error": "not a dict"},
            lambda: Exception(),
            lambda: _Unprintable(),
            lambda: _ExplodingAttributes(),
            lambda: object(),
        ],
        ids=[
            "none", "empty-str", "int", "float", "bytes", "list", "empty-dict",
            "null-fields", "nested-short-data", "error-not-dict", "bare-exception",
            "unprintable", "exploding-attributes", "object",
        ],
    )
    def test_never_raises(self, make_raw):
        classified = classify_error(make_raw())

        assert isinstance(classified, ClassifiedError)
        assert isinstance(classified.kind, ErrorKind)

    def test_unmatched_is_unknown_not_retryable(self):
        classified = classify_error(ValueError("something odd happened"))

        assert classified.kind == ErrorKind.UNKNOWN
        assert classified.retryable is False

    @pytest.mark.parametrize(
        "raw",
        [
            RuntimeError("out of gas"),
            {"code": 4001, "message": "User rejected"},
            asyncio.TimeoutError(),
            "execution reverted: nope",
            None,
        ],
    )
    def test_idempotent(self, raw):
        assert classify_error(raw) == classify_error(raw)

    def test_bridge_error_keeps_its_classification(self):
        error = PeerNotConfiguredError("No peer set for eid 40245")

        assert classify_error(error) is error.classified
        assert classify_error(error).kind == ErrorKind.PEER_NOT_CONFIGURED

    def test_bridge_error_subclass_kind(self):
        error = ApprovalRequiredError("adapter not approved")

        assert isinstance(error, BridgeError)
        assert error.classified.kind == ErrorKind.APPROVAL_REQUIRED
        assert error.classified.retryable is True
        assert error.classified.requires_user_action is True

    def test_quote_unavailable_carries_cause_classification(self):
        error = QuoteUnavailableError(asyncio.TimeoutError())

        classified = classify_error(error)
        assert classified.kind == ErrorKind.NETWORK_TIMEOUT
        assert classified.retryable is True
        assert classified.suggested_delay_ms > 0
