"""Tests for the in-process template registry and interpolation."""

import logging

import pytest

from courier.errors import TemplateNotFoundError
from courier.schemas.notifications import NotificationButton
from courier.templates.booking_templates import BOOKING_TEMPLATES
from courier.templates.engine import NotificationTemplate, TemplateEngine, interpolate


def test_render_substitutes_known_variables():
    engine = TemplateEngine()
    engine.register(NotificationTemplate(key="greet", body="Hello {{name}}"))

    rendered = engine.render("greet", {"name": "Alice"})

    assert rendered.text == "Hello Alice"
    assert rendered.template_key == "greet"
    assert rendered.buttons is None


def test_unknown_token_is_preserved_and_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="courier.templates.engine"):
        text = interpolate("Hi {{name}}, see {{unknown}}", {"name": "Bob"})

    assert text == "Hi Bob, see {{unknown}}"
    assert "unknown" in caplog.text


def test_numbers_use_plain_decimal_formatting():
    assert interpolate("{{a}}/{{b}}/{{c}}", {"a": 3, "b": 2.5, "c": 1200.0}) == "3/2.5/1200"


def test_buttons_are_interpolated():
    engine = TemplateEngine()
    engine.register(
        NotificationTemplate(
            key="offer",
            body="Offer {{id}}",
            buttons=[NotificationButton(label="Open {{id}}", callback_data="offer:{{id}}")],
        )
    )

    rendered = engine.render("offer", {"id": 7})

    assert rendered.buttons == [NotificationButton(label="Open 7", callback_data="offer:7")]


def test_register_is_last_write_wins():
    engine = TemplateEngine()
    engine.register_all([
        NotificationTemplate(key="k", body="first"),
        NotificationTemplate(key="k", body="second"),
    ])

    assert engine.registered_keys() == ["k"]
    assert engine.render("k", {}).text == "second"


def test_render_unknown_key_raises():
    engine = TemplateEngine()

    assert engine.has("missing") is False
    with pytest.raises(TemplateNotFoundError):
        engine.render("missing", {})


def test_booking_templates_render_without_missing_tokens():
    engine = TemplateEngine()
    engine.register_all(BOOKING_TEMPLATES)
    variables = {
        "agencyName": "Ararat Travel",
        "destination": "Yerevan",
        "price": 1200,
        "currency": "USD",
        "shortBookingId": "a1b2c3",
    }

    for template in BOOKING_TEMPLATES:
        assert "{{" not in engine.render(template.key, variables).text
