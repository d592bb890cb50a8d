import pytest

from lambda_trace_context.config import config


@pytest.fixture(autouse=True)
def reset_config():
    config._reset()
    yield
    config._reset()


@pytest.fixture(autouse=True)
def clean_xray_env(monkeypatch):
    monkeypatch.delenv("_X_AMZN_TRACE_ID", raising=False)
    monkeypatch.delenv("AWS_XRAY_DAEMON_ADDRESS", raising=False)
    monkeypatch.delenv("DD_TRACE_EXTRACTOR", raising=False)
    monkeypatch.delenv("DD_DECODE_AUTHORIZER_CONTEXT", raising=False)
