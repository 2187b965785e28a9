import json

import pytest

USERNAME_SELECTORS = [["aria/Username"], ["#username"]]
CURRENT_PASSWORD_SELECTORS = [["aria/Current password"], ["#current-password"]]
NEW_PASSWORD_SELECTORS = [["aria/New password"], ["#new-password"]]


def make_recording(*extra_steps, title="Rotate password"):
    """Recorder export of a password-change form: three change steps among other steps."""
    steps = [
        {"type": "setViewport", "width": 1280, "height": 720},
        {"type": "navigate", "url": "https://example.test/account/password"},
        {"type": "click", "selectors": USERNAME_SELECTORS, "offsetX": 10, "offsetY": 5},
        {"type": "change", "selectors": USERNAME_SELECTORS, "value": "alice@example.test"},
        {"type": "change", "selectors": CURRENT_PASSWORD_SELECTORS, "value": "old-secret"},
        {"type": "change", "selectors": NEW_PASSWORD_SELECTORS, "value": "N3w-secret!"},
        {"type": "click", "selectors": [["aria/Save"], ["button[type=submit]"]]},
    ]
    steps.extend(extra_steps)
    return {"title": title, "steps": steps}


def field_id(selectors):
    return json.dumps(selectors, separators=(",", ":"), ensure_ascii=False)


@pytest.fixture
def recording_doc():
    return make_recording()


@pytest.fixture
def recording_bytes(recording_doc):
    return json.dumps(recording_doc).encode("utf-8")
