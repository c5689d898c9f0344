# gradleflow/infra/flow/triggers.py
"""
Trigger metadata helpers.

Triggers are descriptive only: they are stored on nodes and shown to users,
but nothing in this package fires them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from gradleflow.infra.flow.models import (
    FileWatchTrigger,
    ManualTrigger,
    ScheduleTrigger,
    Trigger,
    WebhookTrigger,
)


@dataclass(frozen=True)
class CronPreset:
    label: str
    cron: str
    description: str


CRON_PRESETS: List[CronPreset] = [
    CronPreset("Every minute", "* * * * *", "Runs every minute"),
    CronPreset("Every 5 minutes", "*/5 * * * *", "Runs every 5 minutes"),
    CronPreset("Every 15 minutes", "*/15 * * * *", "Runs every 15 minutes"),
    CronPreset("Every hour", "0 * * * *", "Runs at the start of every hour"),
    CronPreset("Every 6 hours", "0 */6 * * *", "Runs every 6 hours"),
    CronPreset("Daily at midnight", "0 0 * * *", "Runs at midnight every day"),
    CronPreset("Daily at noon", "0 12 * * *", "Runs at noon every day"),
    CronPreset("Weekly (Sunday)", "0 0 * * 0", "Runs at midnight every Sunday"),
    CronPreset("Weekly (Monday)", "0 0 * * 1", "Runs at midnight every Monday"),
    CronPreset("Monthly", "0 0 1 * *", "Runs at midnight on the 1st of every month"),
]

_CRON_FIELDS = (
    (0, 59, "minute"),
    (0, 23, "hour"),
    (1, 31, "day of month"),
    (1, 12, "month"),
    (0, 7, "day of week"),
)


@dataclass(frozen=True)
class CronValidation:
    valid: bool
    error: Optional[str] = None


def create_trigger(trigger_type: str) -> Trigger:
    """
    Build a trigger of the given type with its default settings.

    Unknown types fall back to a manual trigger.
    """
    if trigger_type == "fileWatch":
        return FileWatchTrigger(patterns=("**/*",), directories=("src",))
    if trigger_type == "schedule":
        return ScheduleTrigger(cron="0 * * * *", description="Runs every hour", timezone="UTC")
    if trigger_type == "webhook":
        return WebhookTrigger(endpoint="/hooks/task")
    return ManualTrigger()


def describe_cron(cron: str) -> str:
    """
    Human-readable description of a five-field cron expression.

    Presets and a few common shapes are recognized; anything else is
    described as "Custom schedule".
    """
    for preset in CRON_PRESETS:
        if preset.cron == cron:
            return preset.description

    parts = cron.split(" ")
    if len(parts) != 5:
        return "Custom schedule"
    minute, hour, day_of_month, month, day_of_week = parts

    if all(p == "*" for p in parts):
        return "Every minute"
    if minute.startswith("*/") and hour == "*":
        return f"Every {minute[2:]} minutes"
    if minute == "0" and hour.startswith("*/"):
        return f"Every {hour[2:]} hours"
    if day_of_month == "*" and month == "*" and day_of_week == "*" and hour != "*" and minute != "*":
        return f"Daily at {hour.rjust(2, '0')}:{minute.rjust(2, '0')}"
    return "Custom schedule"


def validate_cron(cron: str) -> CronValidation:
    """
    Validate a cron expression.

    Each of the five fields must be ``*``, a step ``*/N`` (N >= 1) or a single
    value within the field's range. Lists and ranges are rejected.
    """
    parts = cron.split()
    if len(parts) != 5:
        return CronValidation(False, "Cron expression must have 5 parts")

    for part, (low, high, name) in zip(parts, _CRON_FIELDS):
        if part == "*":
            continue
        if part.startswith("*/"):
            step = part[2:]
            if not step.isdigit() or int(step) < 1:
                return CronValidation(False, f"Invalid step value for {name}")
            continue
        if part.isdigit():
            value = int(part)
            if value < low or value > high:
                return CronValidation(False, f"{name} must be between {low} and {high}")
            continue
        return CronValidation(False, f"Invalid value for {name}")

    return CronValidation(True)


def describe_trigger(trigger: Optional[Trigger]) -> str:
    if trigger is None or isinstance(trigger, ManualTrigger):
        return "Manual execution"
    if isinstance(trigger, FileWatchTrigger):
        events = "/".join(trigger.events)
        return f"Watching {', '.join(trigger.directories)} for {', '.join(trigger.patterns)} ({events})"
    if isinstance(trigger, ScheduleTrigger):
        if trigger.description:
            return trigger.description
        return f"{describe_cron(trigger.cron)} ({trigger.timezone or 'UTC'})"
    if isinstance(trigger, WebhookTrigger):
        return f"{'/'.join(trigger.methods)} {trigger.endpoint}"
    return "Unknown trigger"


def is_trigger_active(trigger: Optional[Trigger]) -> bool:
    """Manual triggers are never active; schedules are active when enabled."""
    if trigger is None or isinstance(trigger, ManualTrigger):
        return False
    if isinstance(trigger, ScheduleTrigger):
        return trigger.enabled
    return True
