"""Shared utilities for the Stamjer calendar scripts."""

import dataclasses
import sys
from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True)
class FeedConfig:
    """Named settings of the generated feed."""

    timezone: str = "Europe/Amsterdam"
    uid_domain: str = "stamjer.nl"
    prodid: str = "-//Stamjer//Stamjer Agenda//NL"
    calendar_name: str = "Stamjer Agenda"
    calendar_description: str = "Stamjer evenementen en opkomsten"
    filename: str = "stamjer.ics"


DEFAULT_CONFIG = FeedConfig()


def load_feed_config(config_path: str | Path | None) -> FeedConfig:
    """Load feed settings from a YAML mapping; missing keys keep their defaults."""
    if config_path is None:
        return DEFAULT_CONFIG

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: expected a mapping of feed settings")

    known = {field.name for field in dataclasses.fields(FeedConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{config_path}: unknown setting(s): {', '.join(unknown)}")

    return FeedConfig(**{key: str(value) for key, value in data.items()})


def load_events(events_path: str | Path) -> list:
    """Load event records from a YAML (or JSON) file.

    The file may hold several YAML documents, each either a list of records
    or a single record. Entries are returned as they are; malformed ones are
    left for the generator to reject individually.
    """
    with open(events_path, "r", encoding="utf-8") as f:
        content = f.read()

    events = []
    for doc in yaml.safe_load_all(content):
        if isinstance(doc, list):
            events.extend(doc)
        elif doc is not None:
            events.append(doc)

    return events


def get_default_events_path() -> Path:
    """Return the default path to events.yaml."""
    return Path(__file__).parent.parent / "data" / "events.yaml"


REQUIRED_FIELDS = ["id", "start"]


def validate_event(event) -> list[str]:
    """Validate a single event record and return a list of warnings."""
    if not isinstance(event, dict):
        return [f"<not a record>: expected a mapping, got {type(event).__name__}"]

    warnings = []
    event_id = event.get("id", "<no id>")

    for field in REQUIRED_FIELDS:
        if event.get(field) in (None, ""):
            warnings.append(f"{event_id}: missing required field '{field}'")

    all_day = event.get("allDay")
    if all_day is not None and not isinstance(all_day, bool):
        warnings.append(f"{event_id}: 'allDay' should be true or false")

    sequence = event.get("sequence")
    if sequence is not None and (
        isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 0
    ):
        warnings.append(f"{event_id}: 'sequence' should be a non-negative integer")

    if event.get("isOpkomst") and not event.get("opkomstmakers"):
        warnings.append(f"{event_id}: opkomst without opkomstmakers")

    return warnings


def validate_all_events(events: list, quiet: bool = False) -> list[str]:
    """Validate all events and print warnings to stderr. Returns all warnings."""
    all_warnings = []
    for event in events:
        all_warnings.extend(validate_event(event))

    if all_warnings and not quiet:
        print(f"Validation: {len(all_warnings)} warning(s) in {len(events)} events",
              file=sys.stderr)
        for w in all_warnings:
            print(f"  WARNING: {w}", file=sys.stderr)

    return all_warnings
