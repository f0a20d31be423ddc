from unittest.mock import patch

import structlog

from spendlens.shared.core.config import Settings
from spendlens.shared.core.logging import redact_sensitive_fields, setup_logging


def test_redactor_masks_nested_credentials():
    """Resolver credentials must never reach the log sink."""
    event_dict = {
        "event": "tag_resolution_batch_failed",
        "provider": "aws",
        "resolver": {"api_key": "abc", "region": "us-east-1"},
        "attempts": [{"access-token": "t0k3n"}, "plain"],
        "client_secret": "shh",
    }

    redacted = redact_sensitive_fields(None, "warning", event_dict)

    assert redacted["provider"] == "aws"
    assert redacted["resolver"]["api_key"] == "[REDACTED]"
    assert redacted["resolver"]["region"] == "us-east-1"
    assert redacted["attempts"][0]["access-token"] == "[REDACTED]"
    assert redacted["attempts"][1] == "plain"
    assert redacted["client_secret"] == "[REDACTED]"


def test_redactor_leaves_billing_fields_alone():
    event_dict = {"event": "billing_render_completed", "tag_key": "org", "visible_groups": 3}
    assert redact_sensitive_fields(None, "info", event_dict) == event_dict


def test_setup_logging_picks_renderer_from_debug_flag():
    with patch(
        "spendlens.shared.core.logging.get_settings",
        return_value=Settings(DEBUG=True, _env_file=None),
    ), patch("structlog.configure") as configure:
        setup_logging()
    processors = configure.call_args.kwargs["processors"]
    assert redact_sensitive_fields in processors
    assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    with patch(
        "spendlens.shared.core.logging.get_settings",
        return_value=Settings(DEBUG=False, _env_file=None),
    ), patch("structlog.configure") as configure:
        setup_logging()
    processors = configure.call_args.kwargs["processors"]
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)
