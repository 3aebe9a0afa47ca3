import base64

from inbox_signal_ai.services.gmail_service import parse_gmail_message
from inbox_signal_ai.utils.helpers import (
    decode_base64url,
    deduplicate_ids,
    extract_body,
    header_value,
)
from inbox_signal_ai.utils.text_cleaner import html_to_text, truncate_body


def b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def test_decode_base64url_handles_missing_padding_and_garbage():
    assert decode_base64url(b64("hello world?")) == "hello world?"
    assert decode_base64url("") == ""
    assert decode_base64url("!!!") == ""


def test_header_lookup_case_insensitive():
    headers = [{"name": "subject", "value": "first"}, {"name": "SUBJECT", "value": "second"}]
    assert header_value(headers, "Subject") == "second"
    assert header_value(headers, "From") == ""


def test_extract_body_prefers_plain_text_in_nested_parts():
    payload = {
        "mimeType": "multipart/mixed",
        "parts": [
            {
                "mimeType": "multipart/alternative",
                "parts": [
                    {"mimeType": "text/html", "body": {"data": b64("<p>html</p>")}},
                    {"mimeType": "text/plain", "body": {"data": b64("plain   text")}},
                ],
            }
        ],
    }
    assert extract_body(payload) == "plain text"


def test_extract_body_falls_back_to_html():
    payload = {"mimeType": "text/html", "body": {"data": b64("<div>Apply <b>now</b></div><script>x()</script>")}}
    assert extract_body(payload) == "Apply now"


def test_extract_body_depth_limit():
    payload = {"mimeType": "text/plain", "body": {"data": b64("deep")}}
    for _ in range(12):
        payload = {"mimeType": "multipart/mixed", "parts": [payload]}
    assert extract_body(payload) == ""


def test_html_to_text_unescapes_entities():
    assert html_to_text("<p>A&amp;B&nbsp;Ltd</p>") == "A&B Ltd"


def test_truncate_body():
    assert truncate_body("abcdef", 3) == "abc..."
    assert truncate_body("abc", 3) == "abc"


def test_deduplicate_ids_keeps_first_seen_order():
    assert deduplicate_ids(["b", "a", " b ", "", "c", "a"]) == ["b", "a", "c"]


def test_parse_gmail_message():
    data = {
        "id": "18c",
        "snippet": "Registration closes Friday",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "Subject", "value": "Amazon SDE internship"},
                {"name": "From", "value": "placements@vit.ac.in"},
                {"name": "Date", "value": "Mon, 1 Jan 2024 10:00:00 +0530"},
            ],
            "parts": [{"mimeType": "text/plain", "body": {"data": b64("Register by Friday")}}],
        },
    }
    msg = parse_gmail_message(data)
    assert msg.id == "18c"
    assert msg.subject == "Amazon SDE internship"
    assert msg.sender == "placements@vit.ac.in"
    assert msg.snippet == "Registration closes Friday"
    assert msg.body == "Register by Friday"
    assert msg.received_at == "Mon, 1 Jan 2024 10:00:00 +0530"
