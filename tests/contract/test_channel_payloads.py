from __future__ import annotations

import json
from pathlib import Path

import pytest

FIXTURE_DIR = Path(__file__).resolve().parent.parent / "unit" / "channels" / "fixtures"

pytestmark = pytest.mark.contract


@pytest.mark.parametrize(
    ("fixture_name", "webhook_object", "container"),
    [
        ("whatsapp_message", "whatsapp_business_account", "changes"),
        ("whatsapp_status", "whatsapp_business_account", "changes"),
        ("messenger_message", "page", "messaging"),
        ("messenger_comment", "page", "changes"),
        ("instagram_message", "instagram", "messaging"),
        ("instagram_comment", "instagram", "changes"),
    ],
)
def test_fixture_matches_meta_envelope(
    fixture_name: str, webhook_object: str, container: str
) -> None:
    payload = json.loads((FIXTURE_DIR / f"{fixture_name}.json").read_text())

    assert payload["object"] == webhook_object
    assert payload["entry"], f"{fixture_name} has no entries"
    for entry in payload["entry"]:
        assert entry.get("id"), f"{fixture_name} entry is missing its id"
        assert isinstance(entry.get(container), list), f"{fixture_name} lacks entry.{container}"


@pytest.mark.parametrize("fixture_name", ["whatsapp_message", "whatsapp_status"])
def test_whatsapp_changes_carry_phone_number_id(fixture_name: str) -> None:
    payload = json.loads((FIXTURE_DIR / f"{fixture_name}.json").read_text())

    for entry in payload["entry"]:
        for change in entry["changes"]:
            assert change["field"] == "messages"
            assert change["value"]["metadata"]["phone_number_id"]


def test_every_fixture_is_covered() -> None:
    names = {path.stem for path in FIXTURE_DIR.glob("*.json")}

    assert names == {
        "whatsapp_message",
        "whatsapp_status",
        "messenger_message",
        "messenger_comment",
        "instagram_message",
        "instagram_comment",
    }
