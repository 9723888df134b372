"""
mintforge Validation and Hardening Module

Error kinds, input validation, invariant enforcement and thread-safety
helpers shared by every issuance component. It addresses:

1. A single exception hierarchy with stable error codes
2. Input validation with sanitization (identities, amounts, quantities)
3. Invariant enforcement for counters and balances
4. Thread-safety primitives

Security Model:
    - All inputs are untrusted until validated
    - All state mutations run under the engine lock
    - All counters are integers in the smallest currency unit

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, List, Optional, TypeVar


# =============================================================================
# ERROR KINDS
# =============================================================================

class IssuanceError(Exception):
    """Base class for every failure reported by the issuance core."""

    code = "IssuanceError"


class Unauthorized(IssuanceError):
    """Caller lacks the role required for the attempted operation."""

    code = "Unauthorized"

    def __init__(self, caller: str, action: str):
        self.caller = caller
        self.action = action
        super().__init__(f"{caller} is not authorized to {action}")


class InvalidPhase(IssuanceError):
    """Requested phase is not one of the defined values."""

    code = "InvalidPhase"

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Invalid phase: {value!r}")


class InvalidQuantity(IssuanceError):
    """Claim quantity is not a positive integer."""

    code = "InvalidQuantity"

    def __init__(self, quantity: Any):
        self.quantity = quantity
        super().__init__(f"Claim quantity must be a positive integer, got {quantity!r}")


class SupplyExceeded(IssuanceError):
    """Claim would push the issued total above the supply cap."""

    code = "SupplyExceeded"

    def __init__(self, issued: int, quantity: int, max_supply: int):
        self.issued = issued
        self.quantity = quantity
        self.max_supply = max_supply
        super().__init__(
            f"Claiming {quantity} would exceed max supply {max_supply} "
            f"({issued} already issued)"
        )


class InsufficientPayment(IssuanceError):
    """Attached payment is below the computed price."""

    code = "InsufficientPayment"

    def __init__(self, payment: int, price: int):
        self.payment = payment
        self.price = price
        super().__init__(f"Payment {payment} is below required price {price}")


class QuotaExceeded(IssuanceError):
    """Requester's remaining allowance is below the requested quantity."""

    code = "QuotaExceeded"

    def __init__(self, identity: str, phase: Any, remaining: int, quantity: int):
        self.identity = identity
        self.phase = phase
        self.remaining = remaining
        self.quantity = quantity
        super().__init__(
            f"{identity} may claim {remaining} more in phase {getattr(phase, 'label', phase)}, "
            f"requested {quantity}"
        )


class ArityMismatch(IssuanceError):
    """Bulk input sequences differ in length."""

    code = "ArityMismatch"

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"Input lengths differ: {left} identities, {right} limits")


class NothingToWithdraw(IssuanceError):
    """Treasury balance is zero."""

    code = "NothingToWithdraw"

    def __init__(self) -> None:
        super().__init__("Treasury balance is zero")


class TransferFailed(IssuanceError):
    """Payout recipient did not accept the funds."""

    code = "TransferFailed"

    def __init__(self, recipient: str, amount: int, reason: str = ""):
        self.recipient = recipient
        self.amount = amount
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Transfer of {amount} to {recipient} failed{detail}")


class IssuanceFailed(IssuanceError):
    """Item registry refused an issuance; the claim was rolled back."""

    code = "IssuanceFailed"

    def __init__(self, item_id: int, reason: str):
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"Issuance of item #{item_id} failed: {reason}")


class ValidationError(IssuanceError):
    """Input failed validation."""

    code = "ValidationError"

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class InvariantViolation(IssuanceError):
    """State invariant violated."""

    code = "InvariantViolation"


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise the first ValidationError if validation failed."""
        if not self.is_valid:
            raise self.errors[0]

    def unwrap(self) -> Any:
        self.raise_if_invalid()
        return self.sanitized_value

    @classmethod
    def success(cls, sanitized_value: Any = None) -> 'ValidationResult':
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> 'ValidationResult':
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    # Patterns
    IDENTITY_PATTERN = re.compile(r'^[A-Za-z0-9:._@-]+$')
    HEX40_PATTERN = re.compile(r'^0x[a-f0-9]{40}$')

    # Limits
    MAX_IDENTITY_LENGTH = 256
    MAX_URI_LENGTH = 2048

    @classmethod
    def validate_identity(cls, value: Any, field_name: str = "identity") -> ValidationResult:
        """Validate a requester identity.

        0x-prefixed 40-hex addresses are normalized to lowercase so that
        checksum-cased and lowercase spellings map to the same quota entry.
        """
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])

        sanitized = value.strip().replace('\x00', '')
        if not sanitized:
            return ValidationResult.failure([ValidationError(field_name, "Cannot be empty", value)])

        if len(sanitized) > cls.MAX_IDENTITY_LENGTH:
            return ValidationResult.failure([
                ValidationError(field_name, f"Too long (max {cls.MAX_IDENTITY_LENGTH} chars)", value)
            ])

        if not cls.IDENTITY_PATTERN.match(sanitized):
            return ValidationResult.failure([
                ValidationError(field_name, "Contains invalid characters", value)
            ])

        if cls.HEX40_PATTERN.match(sanitized.lower()):
            sanitized = sanitized.lower()

        return ValidationResult.success(sanitized)

    @classmethod
    def validate_amount(cls, value: Any, field_name: str = "amount") -> ValidationResult:
        """Validate a non-negative integer amount in the smallest currency unit."""
        # bool is an int subclass; True is not a price
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected integer, got {type(value).__name__}", value)
            ])
        if value < 0:
            return ValidationResult.failure([ValidationError(field_name, "Cannot be negative", value)])
        return ValidationResult.success(value)

    @classmethod
    def validate_uri(cls, value: Any, field_name: str = "uri") -> ValidationResult:
        """Validate a metadata location string. Empty is allowed."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])
        sanitized = value.strip().replace('\x00', '')
        if len(sanitized) > cls.MAX_URI_LENGTH:
            return ValidationResult.failure([
                ValidationError(field_name, f"Too long (max {cls.MAX_URI_LENGTH} chars)", value)
            ])
        return ValidationResult.success(sanitized)


def require_identity(value: Any, field_name: str = "identity") -> str:
    return Validators.validate_identity(value, field_name).unwrap()


def require_amount(value: Any, field_name: str = "amount") -> int:
    return Validators.validate_amount(value, field_name).unwrap()


def require_quantity(value: Any) -> int:
    """Return ``value`` if it is a positive int, else raise InvalidQuantity."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidQuantity(value)
    return value


# =============================================================================
# THREAD SAFETY
# =============================================================================

class AtomicCounter:
    """Thread-safe counter."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def increment(self, delta: int = 1) -> int:
        """Atomically increment and return new value."""
        with self._lock:
            self._value += delta
            return self._value

    def get(self) -> int:
        """Get current value."""
        with self._lock:
            return self._value

    def reset(self, value: int = 0) -> None:
        """Atomically reset the counter to the given value."""
        with self._lock:
            self._value = value


F = TypeVar('F', bound=Callable[..., Any])


def synchronized(method: F) -> F:
    """Run a method while holding ``self._lock``."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper  # type: ignore[return-value]


# =============================================================================
# STATE INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces counter and balance invariants."""

    @staticmethod
    def check_monotonic_increase(field_name: str, old_value: int, new_value: int) -> None:
        """Ensure value only increases."""
        if new_value < old_value:
            raise InvariantViolation(
                f"{field_name} must be monotonically increasing: "
                f"cannot go from {old_value} to {new_value}"
            )

    @staticmethod
    def check_non_negative(field_name: str, value: int) -> None:
        """Ensure value is non-negative."""
        if value < 0:
            raise InvariantViolation(f"{field_name} cannot be negative: {value}")

    @staticmethod
    def check_ceiling(field_name: str, value: int, ceiling: Optional[int]) -> None:
        """Ensure value does not exceed ceiling."""
        if ceiling is not None and value > ceiling:
            raise InvariantViolation(f"{field_name} {value} exceeds ceiling {ceiling}")
