"""
Tests for the Generation Adapter

Covers the adapter's own deadline, retry/backoff policy and cancellation.
"""

import threading
import time
from unittest.mock import Mock

import pytest


class SlowGenerator:
    """Blocks until released (or for at most ``hold`` seconds)"""

    def __init__(self, hold=5.0, reply="late"):
        self.hold = hold
        self.reply = reply
        self.release = threading.Event()
        self.calls = 0

    def generate(self, model, prompt, *, timeout):
        self.calls += 1
        self.release.wait(self.hold)
        return self.reply


@pytest.fixture
def slow_generator():
    generator = SlowGenerator()
    yield generator
    generator.release.set()


def _adapter(generator, **kwargs):
    from notary.answerer.generation import GenerationAdapter

    kwargs.setdefault("backoff_base_seconds", 0)
    return GenerationAdapter(generator, **kwargs)


class TestGenerationSuccess:
    def test_returns_generator_output(self):
        generator = Mock()
        generator.generate.return_value = "Paris [1]."

        assert _adapter(generator).generate("m", "prompt") == "Paris [1]."
        generator.generate.assert_called_once_with("m", "prompt", timeout=60.0)

    def test_recovers_after_transient_network_error(self):
        from notary.common.errors import NetworkError

        generator = Mock()
        generator.generate.side_effect = [NetworkError("reset"), "ok"]

        assert _adapter(generator).generate("m", "p") == "ok"
        assert generator.generate.call_count == 2

    def test_retries_server_errors(self):
        from notary.common.errors import HttpStatusError

        generator = Mock()
        generator.generate.side_effect = [HttpStatusError(502), HttpStatusError(503), "ok"]

        assert _adapter(generator, max_retries=2).generate("m", "p") == "ok"
        assert generator.generate.call_count == 3


class TestGenerationFailure:
    def test_exhausted_retries_report_kind_and_attempts(self):
        from notary.common.errors import GenerationFailed, GenerationFailureKind, NetworkError

        generator = Mock()
        generator.generate.side_effect = NetworkError("down")

        with pytest.raises(GenerationFailed) as exc:
            _adapter(generator, max_retries=2).generate("m", "p")

        assert exc.value.kind == GenerationFailureKind.NETWORK
        assert exc.value.attempts == 3
        assert generator.generate.call_count == 3

    def test_client_error_is_not_retried(self):
        from notary.common.errors import GenerationFailed, GenerationFailureKind, HttpStatusError

        generator = Mock()
        generator.generate.side_effect = HttpStatusError(404)

        with pytest.raises(GenerationFailed) as exc:
            _adapter(generator, max_retries=3).generate("m", "p")

        assert exc.value.kind == GenerationFailureKind.HTTP
        assert exc.value.status_code == 404
        assert exc.value.attempts == 1

    def test_provider_error_is_not_retried(self):
        from notary.common.errors import GenerationFailed, ProviderError

        generator = Mock()
        generator.generate.side_effect = ProviderError("no response field")

        with pytest.raises(GenerationFailed) as exc:
            _adapter(generator).generate("m", "p")

        assert exc.value.attempts == 1

    def test_generator_timeout_is_retried(self):
        from notary.common.errors import GenerationFailed, GenerationFailureKind, GenerationTimeout

        generator = Mock()
        generator.generate.side_effect = GenerationTimeout("slow")

        with pytest.raises(GenerationFailed) as exc:
            _adapter(generator, max_retries=1).generate("m", "p")

        assert exc.value.kind == GenerationFailureKind.TIMEOUT
        assert exc.value.attempts == 2

    def test_zero_retries_means_single_attempt(self):
        from notary.common.errors import GenerationFailed, NetworkError

        generator = Mock()
        generator.generate.side_effect = NetworkError("down")

        with pytest.raises(GenerationFailed) as exc:
            _adapter(generator, max_retries=0).generate("m", "p")

        assert exc.value.attempts == 1

    def test_retry_logs_warning(self, caplog):
        import logging
        from notary.common.errors import NetworkError

        generator = Mock()
        generator.generate.side_effect = [NetworkError("reset"), "ok"]

        with caplog.at_level(logging.WARNING, logger="notary.answerer.generation"):
            _adapter(generator).generate("m", "p")

        assert "retrying" in caplog.text


class TestDeadline:
    def test_slow_generator_bounded_by_timeout(self, slow_generator):
        from notary.common.errors import GenerationFailed, GenerationFailureKind

        adapter = _adapter(slow_generator, timeout_seconds=0.2, max_retries=1)

        started = time.monotonic()
        with pytest.raises(GenerationFailed) as exc:
            adapter.generate("m", "p")
        elapsed = time.monotonic() - started

        assert exc.value.kind == GenerationFailureKind.TIMEOUT
        assert exc.value.attempts == 2
        # (max_retries + 1) * timeout plus backoff, with scheduling slack
        assert elapsed < 2 * 0.2 + 1.0

    def test_backoff_is_exponential(self):
        adapter = _adapter(Mock(), backoff_base_seconds=1.0)

        assert [adapter.backoff_delay(a) for a in range(3)] == [1.0, 2.0, 4.0]


class TestCancellation:
    def test_cancel_during_call(self, slow_generator):
        from notary.common.errors import GenerationFailed, GenerationFailureKind

        cancel = threading.Event()
        adapter = _adapter(slow_generator, timeout_seconds=5.0)
        threading.Timer(0.1, cancel.set).start()

        started = time.monotonic()
        with pytest.raises(GenerationFailed) as exc:
            adapter.generate("m", "p", cancel=cancel)

        assert exc.value.kind == GenerationFailureKind.CANCELLED
        assert time.monotonic() - started < 2.0

    def test_already_cancelled_makes_no_call(self):
        from notary.common.errors import GenerationFailed, GenerationFailureKind

        generator = Mock()
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(GenerationFailed) as exc:
            _adapter(generator).generate("m", "p", cancel=cancel)

        assert exc.value.kind == GenerationFailureKind.CANCELLED
        assert exc.value.attempts == 0
        generator.generate.assert_not_called()

    def test_cancel_during_backoff(self):
        from notary.answerer.generation import GenerationAdapter
        from notary.common.errors import GenerationFailed, GenerationFailureKind, NetworkError

        generator = Mock()
        generator.generate.side_effect = NetworkError("down")
        cancel = threading.Event()
        adapter = GenerationAdapter(generator, max_retries=3, backoff_base_seconds=10.0)
        threading.Timer(0.1, cancel.set).start()

        with pytest.raises(GenerationFailed) as exc:
            adapter.generate("m", "p", cancel=cancel)

        assert exc.value.kind == GenerationFailureKind.CANCELLED
        assert generator.generate.call_count == 1
