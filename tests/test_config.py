"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from booking_admission.config import (
    AdmissionConfig,
    AppConfig,
    DispatcherConfig,
    ServerConfig,
    StoreConfig,
    _safe_float,
    _safe_int,
    _split_csv,
    _validate_config,
)


def _with(**sections) -> AppConfig:
    return replace(AppConfig(), **sections)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        _validate_config(AppConfig())  # should not raise

    def test_default_admission_thresholds(self):
        admission = AdmissionConfig()
        assert admission.date_capacity == 10
        assert admission.min_lead_days == 14
        assert admission.max_horizon_months == 3

    def test_zero_capacity(self):
        config = _with(admission=replace(AdmissionConfig(), date_capacity=0))
        with pytest.raises(ValueError, match="DATE_CAPACITY"):
            _validate_config(config)

    def test_retention_shorter_than_suppression(self):
        config = _with(
            admission=replace(AdmissionConfig(), suppression_seconds=60, retention_seconds=30)
        )
        with pytest.raises(ValueError, match="DEDUP_RETENTION_SECONDS"):
            _validate_config(config)

    def test_non_positive_suppression(self):
        config = _with(admission=replace(AdmissionConfig(), suppression_seconds=0))
        with pytest.raises(ValueError, match="DEDUP_SUPPRESSION_SECONDS"):
            _validate_config(config)

    def test_negative_lead_days(self):
        config = _with(admission=replace(AdmissionConfig(), min_lead_days=-1))
        with pytest.raises(ValueError, match="MIN_LEAD_DAYS"):
            _validate_config(config)

    def test_zero_horizon(self):
        config = _with(admission=replace(AdmissionConfig(), max_horizon_months=0))
        with pytest.raises(ValueError, match="MAX_HORIZON_MONTHS"):
            _validate_config(config)

    def test_zero_retry_attempts(self):
        config = _with(dispatcher=replace(DispatcherConfig(), notify_retry_attempts=0))
        with pytest.raises(ValueError, match="NOTIFY_RETRY_ATTEMPTS"):
            _validate_config(config)

    def test_zero_store_timeout(self):
        config = _with(store=replace(StoreConfig(), timeout_seconds=0))
        with pytest.raises(ValueError, match="STORE_TIMEOUT_SECONDS"):
            _validate_config(config)

    def test_port_out_of_range(self):
        config = _with(server=replace(ServerConfig(), port=70000))
        with pytest.raises(ValueError, match="PORT"):
            _validate_config(config)


class TestParsing:
    def test_safe_int_parsing(self):
        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_float_parsing(self):
        assert _safe_float("NONEXISTENT_VAR_12345", "3.14") == pytest.approx(3.14)

    def test_safe_int_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("BOOKING_TEST_INT", "ten")
        with pytest.raises(ValueError, match="BOOKING_TEST_INT"):
            _safe_int("BOOKING_TEST_INT", "10")

    def test_split_csv(self):
        assert _split_csv(" a, b ,,c ") == ("a", "b", "c")
        assert _split_csv("") == ()
