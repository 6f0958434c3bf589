"""Environment parsing helpers."""

import pytest

from portal_gateway.core.config import _env_bool, _env_float, _env_int


class TestEnvHelpers:
    def test_float_default_and_value(self, monkeypatch):
        monkeypatch.delenv("PORTAL_TEST_TIMEOUT", raising=False)
        assert _env_float("PORTAL_TEST_TIMEOUT", 10.0) == 10.0
        monkeypatch.setenv("PORTAL_TEST_TIMEOUT", "2.5")
        assert _env_float("PORTAL_TEST_TIMEOUT", 10.0) == 2.5
        monkeypatch.setenv("PORTAL_TEST_TIMEOUT", "  ")
        assert _env_float("PORTAL_TEST_TIMEOUT", 10.0) == 10.0

    @pytest.mark.parametrize("helper", [_env_float, _env_int])
    def test_malformed_number_is_a_configuration_error(self, monkeypatch, helper):
        monkeypatch.setenv("PORTAL_TEST_NUMBER", "ten seconds")
        with pytest.raises(RuntimeError, match="PORTAL_TEST_NUMBER"):
            helper("PORTAL_TEST_NUMBER", 1)

    def test_bool(self, monkeypatch):
        monkeypatch.setenv("PORTAL_TEST_FLAG", "Yes")
        assert _env_bool("PORTAL_TEST_FLAG") is True
        monkeypatch.setenv("PORTAL_TEST_FLAG", "0")
        assert _env_bool("PORTAL_TEST_FLAG", True) is False
