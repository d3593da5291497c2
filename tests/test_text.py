from __future__ import annotations

import pytest
from pydantic import ValidationError

from recipe_feed.schemas import ActivityPayload
from recipe_feed.text import extract_preview, slugify


@pytest.mark.parametrize(
    "title, entity_id, expected",
    [
        ("Grandma's Apple Pie!", "r42", "grandma-s-apple-pie-r42"),
        ("  Spicy   Ramen  ", "abc", "spicy-ramen-abc"),
        ("Crème brûlée", None, "cr-me-br-l-e"),
        ("!!!", "x1", "x1"),
    ],
)
def test_slugify(title, entity_id, expected):
    assert slugify(title, entity_id) == expected


def test_extract_preview_strips_markdown():
    content = "## Steps\n\n1. Whisk *eggs*\n2. Add `flour` per [this guide](http://e.x)"
    assert extract_preview(content) == "Steps 1. Whisk eggs 2. Add flour per this guide"


def test_extract_preview_truncates():
    assert extract_preview("a" * 200) == "a" * 150 + "..."
    assert extract_preview(None) == ""


def test_payload_derives_slug_and_preview():
    payload = ActivityPayload(
        kind="menu_created",
        entity_id="m7",
        entity_title=" Sunday Brunch ",
        content="**Eggs** and toast",
    )
    assert payload.entity_title == "Sunday Brunch"
    assert payload.entity_slug == "sunday-brunch-m7"
    assert payload.preview == "Eggs and toast"
    assert "content" not in payload.model_dump()


def test_payload_keeps_explicit_slug():
    payload = ActivityPayload(
        kind="collection_created", entity_id="c1", entity_title="Soups", entity_slug="my-soups"
    )
    assert payload.entity_slug == "my-soups"


@pytest.mark.parametrize("title", ["", "   ", "Untitled Recipe", "my untitled menu"])
def test_payload_rejects_blank_or_placeholder_title(title):
    with pytest.raises(ValidationError):
        ActivityPayload(kind="recipe_created", entity_id="r1", entity_title=title)


def test_payload_limits_author_display_name():
    fields = {"kind": "recipe_created", "entity_id": "r1", "entity_title": "Soup"}
    assert ActivityPayload(author_display_name="x" * 255, **fields).author_display_name
    with pytest.raises(ValidationError):
        ActivityPayload(author_display_name="x" * 256, **fields)
