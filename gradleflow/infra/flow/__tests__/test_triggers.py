"""
Tests for trigger defaults, cron validation and trigger descriptions.
"""
import pytest

from gradleflow.infra.flow.models import FileWatchTrigger, ManualTrigger, ScheduleTrigger, WebhookTrigger
from gradleflow.infra.flow.triggers import (
    CRON_PRESETS,
    create_trigger,
    describe_cron,
    describe_trigger,
    is_trigger_active,
    validate_cron,
)


def test_create_trigger_defaults():
    assert isinstance(create_trigger("fileWatch"), FileWatchTrigger)
    assert create_trigger("schedule").cron == "0 * * * *"
    assert create_trigger("webhook").methods == ("POST",)
    assert create_trigger("bogus") == ManualTrigger()


def test_every_preset_is_valid():
    for preset in CRON_PRESETS:
        assert validate_cron(preset.cron).valid, preset.label


@pytest.mark.parametrize("cron, error", [
    ("* * * *", "Cron expression must have 5 parts"),
    ("*/0 * * * *", "Invalid step value for minute"),
    ("0 24 * * *", "hour must be between 0 and 23"),
    ("0 0 0 * *", "day of month must be between 1 and 31"),
    ("0 0 * 1-3 *", "Invalid value for month"),
])
def test_invalid_cron(cron, error):
    result = validate_cron(cron)
    assert not result.valid
    assert result.error == error


@pytest.mark.parametrize("cron, description", [
    ("0 0 * * 0", "Runs at midnight every Sunday"),
    ("*/10 * * * *", "Every 10 minutes"),
    ("0 */3 * * *", "Every 3 hours"),
    ("30 7 * * *", "Daily at 07:30"),
    ("0 0 1 1 *", "Custom schedule"),
    ("nonsense", "Custom schedule"),
])
def test_describe_cron(cron, description):
    assert describe_cron(cron) == description


def test_describe_trigger():
    assert describe_trigger(None) == "Manual execution"
    assert describe_trigger(ScheduleTrigger(cron="*/10 * * * *")) == "Every 10 minutes (UTC)"
    assert describe_trigger(WebhookTrigger(endpoint="/hooks/ci", methods=("GET", "POST"))) == "GET/POST /hooks/ci"
    watch = FileWatchTrigger(patterns=("*.java",), directories=("src", "lib"), events=("modify",))
    assert describe_trigger(watch) == "Watching src, lib for *.java (modify)"


def test_is_trigger_active():
    assert not is_trigger_active(ManualTrigger())
    assert not is_trigger_active(ScheduleTrigger(enabled=False))
    assert is_trigger_active(WebhookTrigger())
