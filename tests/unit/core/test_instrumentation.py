"""
Unit tests for OpenTelemetry setup.
"""
import os

from opentelemetry import trace

from core import instrumentation


def test_test_settings_disable_sdk():
    assert os.environ["OTEL_SDK_DISABLED"] == "true"


def test_disabled_sdk_installs_nothing(monkeypatch):
    """Test setup leaves the tracer provider and metrics server alone when disabled."""
    monkeypatch.setenv("OTEL_SDK_DISABLED", "true")
    calls = []
    monkeypatch.setattr(trace, "set_tracer_provider", lambda provider: calls.append(provider))
    monkeypatch.setattr(instrumentation, "start_http_server", lambda *a, **kw: calls.append(a))

    instrumentation.setup_opentelemetry()

    assert calls == []
