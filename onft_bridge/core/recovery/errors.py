"""
Error Classification

Maps raw failures from the chain, wallet and messaging-protocol call surface
into typed ``ClassifiedError`` values carrying a retryability verdict and a
suggested backoff. Classification is table driven: rules are evaluated in
order and the first match wins.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
from eth_abi import decode as abi_decode
from eth_utils import function_signature_to_4byte_selector

from ...config import settings

logger = logging.getLogger(__name__)


def _selector(signature: str) -> str:
    return "0x" + function_signature_to_4byte_selector(signature).hex()


# Revert selectors (first four bytes of revert data)
ERROR_STRING_SELECTOR = "0x08c379a0"       # Error(string)
PANIC_SELECTOR = "0x4e487b71"              # Panic(uint256)
INVALID_PEER_SELECTOR = "0x6592671c"       # InvalidPeer, as reported by deployed adapters
NO_PEER_SELECTOR = _selector("NoPeer(uint32)")
NOT_ENOUGH_NATIVE_SELECTOR = _selector("NotEnoughNative(uint256)")
ERC721_INSUFFICIENT_APPROVAL_SELECTOR = _selector("ERC721InsufficientApproval(address,uint256)")
ERC721_INCORRECT_OWNER_SELECTOR = _selector("ERC721IncorrectOwner(address,uint256,address)")

PANIC_REASONS: Dict[int, str] = {
    0x01: "assertion failed",
    0x11: "arithmetic overflow or underflow",
    0x12: "division by zero",
    0x21: "invalid enum value",
    0x32: "array index out of bounds",
    0x41: "out of memory",
    0x51: "call to uninitialized function",
}


class ErrorKind(str, Enum):
    """Kinds of bridging failures."""

    INSUFFICIENT_FUNDS = "InsufficientFunds"
    INSUFFICIENT_GAS = "InsufficientGas"
    USER_REJECTED = "UserRejected"
    NETWORK_TIMEOUT = "NetworkTimeout"
    TRANSACTION_PENDING = "TransactionPending"
    RPC_UNAVAILABLE = "RpcUnavailable"
    NONCE_CONFLICT = "NonceConflict"
    CONTRACT_REVERT = "ContractRevert"
    PEER_NOT_CONFIGURED = "PeerNotConfigured"
    QUOTE_STALE = "QuoteStale"
    APPROVAL_REQUIRED = "ApprovalRequired"
    NOT_TOKEN_OWNER = "NotTokenOwner"
    INVALID_REQUEST = "InvalidRequest"
    CANCELLED = "Cancelled"
    UNKNOWN = "Unknown"


def compute_backoff_ms(
    base_delay_ms: Optional[int],
    attempt: int,
    ceiling_ms: Optional[int] = None,
) -> Optional[int]:
    """Exponential backoff ``base * 2**attempt`` capped at the ceiling."""
    if base_delay_ms is None:
        return None
    ceiling = settings.backoff_ceiling_ms if ceiling_ms is None else ceiling_ms
    delay = base_delay_ms * (2 ** max(attempt, 0))
    return int(min(delay, ceiling))


@dataclass(frozen=True)
class ClassifiedError:
    """A normalized failure. Immutable once created."""

    kind: ErrorKind
    message: str
    retryable: bool
    max_retries: int
    suggested_delay_ms: Optional[int] = None
    raw_cause: Any = field(default=None, compare=False, repr=False)

    revert_reason: Optional[str] = None
    code: Optional[str] = None
    requires_user_action: bool = False
    user_message: str = ""
    recovery: Tuple[str, ...] = ()

    base_delay_ms: Optional[int] = None
    attempt: int = 0

    def for_attempt(self, attempt: int, ceiling_ms: Optional[int] = None) -> "ClassifiedError":
        """Same classification with the backoff recomputed for ``attempt``."""
        return replace(
            self,
            attempt=attempt,
            suggested_delay_ms=compute_backoff_ms(self.base_delay_ms, attempt, ceiling_ms),
        )

    @property
    def can_auto_retry(self) -> bool:
        return self.retryable and self.max_retries > 0 and not self.requires_user_action

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "maxRetries": self.max_retries,
            "suggestedDelayMs": self.suggested_delay_ms,
            "revertReason": self.revert_reason,
            "code": self.code,
            "requiresUserAction": self.requires_user_action,
            "userMessage": self.user_message,
            "recovery": list(self.recovery),
        }


@dataclass(frozen=True)
class _ErrorFacts:
    """Normalized view of a raw failure used by the rule matchers."""

    message: str
    text: str
    code: Optional[str] = None
    data: Optional[str] = None
    selector: Optional[str] = None
    is_timeout: bool = False
    is_connection: bool = False
    tx_hash: Optional[str] = None

    def contains(self, *patterns: str) -> bool:
        return any(p in self.text for p in patterns)


Matcher = Callable[[_ErrorFacts], bool]


@dataclass(frozen=True)
class ClassificationRule:
    matcher: Matcher
    kind: ErrorKind
    retryable: bool
    max_retries: int
    base_delay_ms: Optional[int] = None
    requires_user_action: bool = False
    user_message: str = ""
    recovery: Tuple[str, ...] = ()


def _code_in(*codes: Any) -> Matcher:
    wanted = {str(c) for c in codes}
    return lambda f: f.code is not None and f.code in wanted


def _selector_in(*selectors: str) -> Matcher:
    wanted = set(selectors)
    return lambda f: f.selector is not None and f.selector in wanted


def _text_has(*patterns: str) -> Matcher:
    return lambda f: f.contains(*patterns)


def _any(*matchers: Matcher) -> Matcher:
    return lambda f: any(m(f) for m in matchers)


_USER_REJECTED = ClassificationRule(
    matcher=_any(
        _code_in(4001, "ACTION_REJECTED"),
        _text_has("user rejected", "user denied", "rejected by user", "request rejected"),
    ),
    kind=ErrorKind.USER_REJECTED,
    retryable=True,
    max_retries=3,
    requires_user_action=True,
    user_message="Transaction was cancelled in the wallet. No changes were made.",
    recovery=(
        "Try again when ready",
        "Approve the transaction in your wallet",
    ),
)

_INSUFFICIENT_FUNDS = ClassificationRule(
    matcher=_any(
        _code_in("INSUFFICIENT_FUNDS"),
        _text_has("insufficient funds", "insufficient balance", "exceeds balance", "balance too low"),
    ),
    kind=ErrorKind.INSUFFICIENT_FUNDS,
    retryable=False,
    max_retries=0,
    requires_user_action=True,
    user_message="Insufficient funds for gas and messaging fees. Add native tokens to the wallet.",
    recovery=(
        "Add more native tokens to the wallet",
        "Check the wallet balance on the source chain",
        "Use a wallet with enough funds",
    ),
)

_APPROVAL_REQUIRED = ClassificationRule(
    matcher=_any(
        _selector_in(ERC721_INSUFFICIENT_APPROVAL_SELECTOR),
        _text_has("not token owner or approved", "erc721insufficientapproval", "not approved"),
    ),
    kind=ErrorKind.APPROVAL_REQUIRED,
    retryable=True,
    max_retries=1,
    requires_user_action=True,
    user_message="The adapter is not approved to transfer this NFT.",
    recovery=(
        "Approve the adapter contract for this token or the whole collection",
        "Retry the bridge after the approval is confirmed",
    ),
)

_NOT_TOKEN_OWNER = ClassificationRule(
    matcher=_any(
        _selector_in(ERC721_INCORRECT_OWNER_SELECTOR),
        _text_has("erc721incorrectowner", "don't own nft", "no longer own nft", "not the token owner"),
    ),
    kind=ErrorKind.NOT_TOKEN_OWNER,
    retryable=False,
    max_retries=0,
    user_message="The connected wallet does not own this NFT.",
    recovery=("Switch to the wallet that owns the token",),
)

_PEER_NOT_CONFIGURED = ClassificationRule(
    matcher=_any(
        _selector_in(INVALID_PEER_SELECTOR, NO_PEER_SELECTOR),
        _text_has("no peer set", "peer not configured", "invalid peer", "nopeer"),
    ),
    kind=ErrorKind.PEER_NOT_CONFIGURED,
    retryable=False,
    max_retries=0,
    user_message="Peer connection not configured between the source and destination chains.",
    recovery=(
        "Check that the ONFT contract is deployed on the destination chain",
        "Configure the peer between source and destination contracts",
        "Retry after the peer configuration is confirmed",
    ),
)

_QUOTE_STALE = ClassificationRule(
    matcher=_any(
        _selector_in(NOT_ENOUGH_NATIVE_SELECTOR),
        _text_has("insufficient fee", "fee too low", "not enough fee", "notenoughnative", "quote expired", "stale quote"),
    ),
    kind=ErrorKind.QUOTE_STALE,
    retryable=True,
    max_retries=2,
    base_delay_ms=5_000,
    user_message="The messaging fee changed since it was quoted. Retry to fetch a fresh quote.",
    recovery=(
        "The fee may have changed, try again",
        "Make sure the wallet holds enough native tokens for the fee",
    ),
)

_NONCE_CONFLICT = ClassificationRule(
    matcher=_any(
        _code_in("NONCE_EXPIRED", "REPLACEMENT_UNDERPRICED"),
        _text_has(
            "nonce too low",
            "nonce too high",
            "invalid nonce",
            "nonce has already been used",
            "replacement transaction underpriced",
            "already known",
        ),
    ),
    kind=ErrorKind.NONCE_CONFLICT,
    retryable=True,
    max_retries=3,
    base_delay_ms=1_000,
    user_message="Another transaction from this wallet is pending. Retrying with a fresh nonce.",
    recovery=(
        "Wait for pending transactions to confirm",
        "Avoid submitting from the same wallet in parallel",
    ),
)

_INSUFFICIENT_GAS = ClassificationRule(
    matcher=_any(
        _code_in("UNPREDICTABLE_GAS_LIMIT"),
        _text_has(
            "out of gas",
            "intrinsic gas too low",
            "gas required exceeds",
            "cannot estimate gas",
            "gas estimation failed",
            "max fee per gas less than block base fee",
            "transaction underpriced",
        ),
    ),
    kind=ErrorKind.INSUFFICIENT_GAS,
    retryable=True,
    max_retries=2,
    base_delay_ms=5_000,
    user_message="Gas limit or gas price was too low for this transaction.",
    recovery=(
        "Retry with a higher gas limit",
        "Check that the destination chain is configured",
    ),
)

# A timeout that carries a transaction hash happened after broadcast. The
# transaction may still be mined, so resending would pay for a second send.
_TRANSACTION_PENDING = ClassificationRule(
    matcher=lambda f: f.is_timeout and f.tx_hash is not None,
    kind=ErrorKind.TRANSACTION_PENDING,
    retryable=False,
    max_retries=0,
    requires_user_action=True,
    user_message="The transaction was broadcast but not confirmed in time. It may still be mined.",
    recovery=(
        "Look up the transaction hash on the source chain explorer",
        "Bridge again only if the transaction was dropped",
    ),
)

_NETWORK_TIMEOUT = ClassificationRule(
    matcher=_any(
        lambda f: f.is_timeout,
        _code_in("TIMEOUT"),
        _text_has("timeout", "timed out", "deadline exceeded"),
    ),
    kind=ErrorKind.NETWORK_TIMEOUT,
    retryable=True,
    max_retries=3,
    base_delay_ms=2_000,
    user_message="The network did not respond in time. Retrying shortly.",
    recovery=(
        "Check your internet connection",
        "Wait a moment and try again",
    ),
)

_RPC_UNAVAILABLE = ClassificationRule(
    matcher=_any(
        lambda f: f.is_connection,
        _code_in("NETWORK_ERROR", "SERVER_ERROR", -32005, 429, 502, 503, 504),
        _text_has(
            "connection refused",
            "connection reset",
            "connection error",
            "service unavailable",
            "bad gateway",
            "too many requests",
            "rate limit",
            "underlying network changed",
            "network error",
            "no rpc url",
        ),
    ),
    kind=ErrorKind.RPC_UNAVAILABLE,
    retryable=True,
    max_retries=3,
    base_delay_ms=3_000,
    user_message="The RPC endpoint is unavailable. Retrying shortly.",
    recovery=(
        "Verify the RPC endpoint for the source chain",
        "Switch networks and back",
        "Wait a moment and try again",
    ),
)

_CONTRACT_REVERT = ClassificationRule(
    matcher=_any(
        lambda f: f.selector is not None,
        _code_in("CALL_EXCEPTION", 3),
        _text_has("revert", "call exception", "transaction failed"),
    ),
    kind=ErrorKind.CONTRACT_REVERT,
    retryable=False,
    max_retries=0,
    user_message="The contract rejected the transaction.",
    recovery=(
        "Check the revert reason for details",
        "Verify contract state and parameters",
    ),
)

# Evaluated in order, first match wins. A broadcast timeout goes first. Funds
# before gas ("insufficient funds for gas"), nonce before gas ("replacement
# transaction underpriced"), timeout before connectivity, and every specific
# revert before the generic one.
CLASSIFICATION_RULES: Tuple[ClassificationRule, ...] = (
    _TRANSACTION_PENDING,
    _USER_REJECTED,
    _INSUFFICIENT_FUNDS,
    _APPROVAL_REQUIRED,
    _NOT_TOKEN_OWNER,
    _PEER_NOT_CONFIGURED,
    _QUOTE_STALE,
    _NONCE_CONFLICT,
    _INSUFFICIENT_GAS,
    _NETWORK_TIMEOUT,
    _RPC_UNAVAILABLE,
    _CONTRACT_REVERT,
)

_UNKNOWN = ClassificationRule(
    matcher=lambda f: True,
    kind=ErrorKind.UNKNOWN,
    retryable=False,
    max_retries=0,
    user_message="An unexpected error occurred.",
    recovery=(
        "Try the operation again",
        "Verify you are on the correct chain",
    ),
)

_INVALID_REQUEST = ClassificationRule(
    matcher=lambda f: False,
    kind=ErrorKind.INVALID_REQUEST,
    retryable=False,
    max_retries=0,
    user_message="The bridge request is invalid.",
    recovery=("Check the token id and addresses",),
)

_CANCELLED = ClassificationRule(
    matcher=lambda f: False,
    kind=ErrorKind.CANCELLED,
    retryable=True,
    max_retries=1,
    user_message="Cancelled before submission. Nothing was sent on-chain.",
    recovery=("Start a new run for the remaining items",),
)

RULES_BY_KIND: Dict[ErrorKind, ClassificationRule] = {
    rule.kind: rule
    for rule in (*CLASSIFICATION_RULES, _UNKNOWN, _INVALID_REQUEST, _CANCELLED)
}


def build_classified(
    kind: ErrorKind,
    message: str,
    *,
    raw_cause: Any = None,
    revert_reason: Optional[str] = None,
    code: Optional[str] = None,
    attempt: int = 0,
    ceiling_ms: Optional[int] = None,
) -> ClassifiedError:
    """Build a ClassifiedError from the rule registered for ``kind``."""
    rule = RULES_BY_KIND[kind]
    return ClassifiedError(
        kind=kind,
        message=message,
        retryable=rule.retryable,
        max_retries=rule.max_retries,
        suggested_delay_ms=compute_backoff_ms(rule.base_delay_ms, attempt, ceiling_ms),
        raw_cause=raw_cause,
        revert_reason=revert_reason,
        code=code,
        requires_user_action=rule.requires_user_action,
        user_message=rule.user_message,
        recovery=rule.recovery,
        base_delay_ms=rule.base_delay_ms,
        attempt=attempt,
    )


class BridgeError(Exception):
    """Exception that already knows its classification."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        kind: Optional[ErrorKind] = None,
        classified: Optional[ClassifiedError] = None,
        revert_reason: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if classified is None:
            classified = build_classified(
                kind or self.kind,
                message,
                raw_cause=self,
                revert_reason=revert_reason,
            )
        self.classified = classified


class InvalidTransferError(BridgeError):
    kind = ErrorKind.INVALID_REQUEST


class NotTokenOwnerError(BridgeError):
    kind = ErrorKind.NOT_TOKEN_OWNER


class PeerNotConfiguredError(BridgeError):
    kind = ErrorKind.PEER_NOT_CONFIGURED


class ApprovalRequiredError(BridgeError):
    kind = ErrorKind.APPROVAL_REQUIRED


class TransactionRevertedError(BridgeError):
    """Transaction was mined with status 0."""

    kind = ErrorKind.CONTRACT_REVERT

    def __init__(self, message: str = "Transaction reverted", tx_hash: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message, revert_reason=reason)
        self.tx_hash = tx_hash


class QuoteUnavailableError(BridgeError):
    """The protocol fee quote could not be obtained."""

    def __init__(self, cause: Any):
        classified = classify_error(cause)
        super().__init__(f"Fee quote unavailable: {classified.message}", classified=classified)
        self.cause = cause


# ---------------------------------------------------------------------------
# Fact extraction
# ---------------------------------------------------------------------------

def _lookup(obj: Any, key: str) -> Any:
    try:
        if isinstance(obj, Mapping):
            return obj.get(key)
        if isinstance(obj, (str, bytes, int, float)) or obj is None:
            return None
        return getattr(obj, key, None)
    except Exception:
        return None


def _as_hex(value: Any) -> Optional[str]:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex() if value else None
    if isinstance(value, str) and value.startswith("0x") and len(value) >= 10:
        return value.lower()
    return None


def _find_revert_data(raw: Any) -> Optional[str]:
    candidates = [
        _lookup(raw, "data"),
        _lookup(_lookup(raw, "error"), "data"),
        _lookup(_lookup(_lookup(_lookup(raw, "error"), "data"), "originalError"), "data"),
    ]
    for candidate in candidates:
        if isinstance(candidate, Mapping):
            candidate = candidate.get("data")
        found = _as_hex(candidate)
        if found:
            return found
    return None


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return f"<unprintable {type(value).__name__}>"


def _message_of(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, Mapping):
        parts = [raw.get("message"), raw.get("reason"), _lookup(raw.get("error"), "message")]
        text = " ".join(_safe_str(p) for p in parts if p)
        return text or _safe_str(dict(raw))
    if isinstance(raw, BaseException):
        text = _safe_str(raw)
        reason = _lookup(raw, "reason")
        if reason and _safe_str(reason) not in text:
            text = f"{text} {_safe_str(reason)}".strip()
        return text or type(raw).__name__
    return _safe_str(raw)


def _code_of(raw: Any) -> Optional[str]:
    code = _lookup(raw, "code")
    if code is None:
        code = _lookup(_lookup(raw, "error"), "code")
    if code is None and isinstance(raw, httpx.HTTPStatusError):
        try:
            code = raw.response.status_code
        except Exception:
            code = None
    if code is None:
        return None
    return _safe_str(code)


def _tx_hash_of(raw: Any) -> Optional[str]:
    tx_hash = _lookup(raw, "tx_hash")
    return tx_hash if isinstance(tx_hash, str) and tx_hash else None


def _extract_facts(raw: Any) -> _ErrorFacts:
    message = _message_of(raw)
    data = _find_revert_data(raw)
    return _ErrorFacts(
        message=message,
        text=message.lower(),
        code=_code_of(raw),
        data=data,
        selector=data[:10] if data else None,
        is_timeout=isinstance(raw, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)),
        is_connection=isinstance(raw, (ConnectionError, httpx.TransportError)),
        tx_hash=_tx_hash_of(raw),
    )


def decode_revert_reason(data: Optional[str], message: str = "") -> Optional[str]:
    """Best-effort revert reason from revert data or a node error message."""
    if data:
        selector, payload = data[:10], data[10:]
        try:
            if selector == ERROR_STRING_SELECTOR and payload:
                (reason,) = abi_decode(["string"], bytes.fromhex(payload))
                return reason
            if selector == PANIC_SELECTOR and payload:
                (panic_code,) = abi_decode(["uint256"], bytes.fromhex(payload))
                return f"Panic(0x{panic_code:02x}): {PANIC_REASONS.get(panic_code, 'unknown panic')}"
        except Exception:
            logger.debug(f"Could not decode revert data {data[:74]}")
        return f"custom error {selector}"
    marker = "execution reverted:"
    lowered = message.lower()
    if marker in lowered:
        start = lowered.index(marker) + len(marker)
        reason = message[start:].strip()
        return reason or None
    return None


def classify_error(raw: Any, attempt: int = 0, *, ceiling_ms: Optional[int] = None) -> ClassifiedError:
    """
    Classify any raised value into a ClassifiedError.

    Pure and total: always returns a value, for exceptions, JSON-RPC error
    payloads, strings, ``None`` or arbitrary objects.
    """
    try:
        if isinstance(raw, ClassifiedError):
            return raw.for_attempt(attempt, ceiling_ms) if attempt else raw
        if isinstance(raw, BridgeError):
            classified = raw.classified
            return classified.for_attempt(attempt, ceiling_ms) if attempt else classified

        facts = _extract_facts(raw)
        rule = next((r for r in CLASSIFICATION_RULES if r.matcher(facts)), _UNKNOWN)

        revert_reason = None
        if rule.kind == ErrorKind.CONTRACT_REVERT:
            revert_reason = decode_revert_reason(facts.data, facts.message)

        return ClassifiedError(
            kind=rule.kind,
            message=facts.message or rule.user_message,
            retryable=rule.retryable,
            max_retries=rule.max_retries,
            suggested_delay_ms=compute_backoff_ms(rule.base_delay_ms, attempt, ceiling_ms),
            raw_cause=raw,
            revert_reason=revert_reason,
            code=facts.selector or facts.code,
            requires_user_action=rule.requires_user_action,
            user_message=rule.user_message,
            recovery=rule.recovery,
            base_delay_ms=rule.base_delay_ms,
            attempt=attempt,
        )
    except Exception as exc:  # pragma: no cover - classification must be total
        logger.warning(f"Error classification failed: {exc!r}")
        return ClassifiedError(
            kind=ErrorKind.UNKNOWN,
            message=_safe_str(raw),
            retryable=False,
            max_retries=0,
            raw_cause=raw,
            user_message=_UNKNOWN.user_message,
            recovery=_UNKNOWN.recovery,
        )
