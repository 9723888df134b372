"""
Validation, invariant and logging infrastructure tests.
"""

import io
import json
import logging
import threading

import pytest

from mintforge.core import canonical_json_bytes, sha256_bytes, write_canonical_json
from mintforge.hardening import (
    AtomicCounter,
    InsufficientPayment,
    InvalidQuantity,
    InvariantChecker,
    InvariantViolation,
    IssuanceError,
    QuotaExceeded,
    ValidationError,
    Validators,
    require_quantity,
    synchronized,
)
from mintforge.observability import (
    Layer,
    configure_logging,
    get_logger,
    timed_operation,
)
from mintforge.phases import Phase


# =============================================================================
# ERROR KINDS
# =============================================================================

class TestErrorKinds:

    def test_codes_match_class_names(self):
        for cls in IssuanceError.__subclasses__():
            assert cls.code == cls.__name__

    def test_messages(self):
        assert "below required price 10" in str(InsufficientPayment(9, 10))
        exc = QuotaExceeded("alice", Phase.ALLOW_LISTED, 1, 2)
        assert "allow_listed" in str(exc)


# =============================================================================
# VALIDATORS
# =============================================================================

class TestValidators:

    @pytest.mark.parametrize("value", ["did:key:z6Mk", "alice@example.com", "user-001", "0x" + "f" * 40])
    def test_valid_identities(self, value):
        assert Validators.validate_identity(value).is_valid

    @pytest.mark.parametrize("value", ["", "   ", "a b", "semi;colon", "x" * 257, 42, None])
    def test_invalid_identities(self, value):
        result = Validators.validate_identity(value)
        assert not result.is_valid
        with pytest.raises(ValidationError):
            result.raise_if_invalid()

    def test_hex_address_lowercased(self):
        mixed = "0xABCDEF" + "0" * 34
        assert Validators.validate_identity(mixed).sanitized_value == mixed.lower()

    def test_non_hex_identity_keeps_case(self):
        assert Validators.validate_identity("Alice").sanitized_value == "Alice"

    @pytest.mark.parametrize("value", [-1, 1.5, "3", True])
    def test_invalid_amounts(self, value):
        assert not Validators.validate_amount(value).is_valid

    def test_uri_length(self):
        assert Validators.validate_uri("ipfs://x/").is_valid
        assert Validators.validate_uri("").is_valid
        assert not Validators.validate_uri("x" * 2049).is_valid

    @pytest.mark.parametrize("value", [0, -3, False, 2.0])
    def test_require_quantity(self, value):
        with pytest.raises(InvalidQuantity):
            require_quantity(value)


# =============================================================================
# INVARIANTS AND THREAD SAFETY
# =============================================================================

class TestInvariants:

    def test_checks(self):
        InvariantChecker.check_ceiling("supply", 10, 10)
        with pytest.raises(InvariantViolation):
            InvariantChecker.check_ceiling("supply", 11, 10)
        with pytest.raises(InvariantViolation):
            InvariantChecker.check_non_negative("quota", -1)
        with pytest.raises(InvariantViolation):
            InvariantChecker.check_monotonic_increase("received", 5, 4)


class TestThreadSafety:

    def test_atomic_counter(self):
        counter = AtomicCounter()

        def bump():
            for _ in range(1000):
                counter.increment()

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert counter.get() == 8000

    def test_synchronized_uses_instance_lock(self):
        class Box:
            def __init__(self):
                self._lock = threading.RLock()
                self.held = None

            @synchronized
            def check_lock(self):
                self.held = self._lock._is_owned()

        box = Box()
        box.check_lock()
        assert box.held is True


# =============================================================================
# CANONICAL JSON
# =============================================================================

class TestCanonicalJson:

    def test_sorted_compact(self):
        assert canonical_json_bytes({"b": 1, "a": [2, 3]}) == b'{"a":[2,3],"b":1}'

    def test_floats_rejected(self):
        with pytest.raises(ValueError, match="a.b"):
            canonical_json_bytes({"a": {"b": 0.5}})

    def test_write_returns_digest(self, tmp_path):
        path = tmp_path / "x.json"
        digest = write_canonical_json(path, {"a": 1})
        assert digest == sha256_bytes(b'{"a":1}')


# =============================================================================
# STRUCTURED LOGGING
# =============================================================================

class TestStructuredLogging:

    def _records(self, stream):
        return [json.loads(line) for line in stream.getvalue().splitlines()]

    def test_json_records(self):
        stream = io.StringIO()
        configure_logging(level="debug", fmt="json", stream=stream)
        get_logger("test", Layer.ENGINE).warning("Claim rejected", error_code="QuotaExceeded", caller="alice")

        record = self._records(stream)[0]
        assert record["level"] == "warning"
        assert record["logger"] == "mintforge.engine.test"
        assert record["layer"] == "engine"
        assert record["error_code"] == "QuotaExceeded"
        assert record["context"] == {"caller": "alice"}

    def test_level_filtering(self):
        stream = io.StringIO()
        configure_logging(level="warning", fmt="json", stream=stream)
        logger = get_logger("test", Layer.QUOTA)
        logger.info("quiet")
        logger.error("loud")
        assert [r["message"] for r in self._records(stream)] == ["loud"]

    def test_text_format(self):
        stream = io.StringIO()
        configure_logging(level="info", fmt="text", stream=stream)
        get_logger("test", Layer.TREASURY).warning("Transfer failed", error_code="TransferFailed", amount=5)
        line = stream.getvalue().strip()
        assert line.startswith("warning")
        assert "[TransferFailed]" in line
        assert "amount=5" in line

    def test_reconfigure_replaces_handler(self):
        configure_logging(stream=io.StringIO())
        root = configure_logging(stream=io.StringIO())
        assert len(root.handlers) == 1
        assert root.level == logging.INFO

    def test_timed_operation(self):
        stream = io.StringIO()
        configure_logging(level="info", fmt="json", stream=stream)
        logger = get_logger("test", Layer.ENGINE)

        @timed_operation(logger, "work")
        def work(fail):
            if fail:
                raise QuotaExceeded("alice", Phase.PUBLIC, 0, 1)
            return 7

        assert work(False) == 7
        with pytest.raises(QuotaExceeded):
            work(True)

        ok, failed = self._records(stream)
        assert ok["operation"] == "work" and ok["level"] == "info"
        assert "duration_ms" in ok
        assert failed["level"] == "warning"
        assert failed["error_code"] == "QuotaExceeded"
