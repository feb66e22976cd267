"""Tests for repairing near-JSON oracle output."""

import pytest

from crowdcast.services.oracle import OracleParseError
from crowdcast.services.oracle.parsing import parse_json_object


def test_plain_object() -> None:
    assert parse_json_object('{"a": 1}') == {"a": 1}


def test_code_fence_is_stripped() -> None:
    raw = 'Here you go:\n```json\n{"Shark": {"actions": []}}\n```\nGood luck!'

    assert parse_json_object(raw) == {"Shark": {"actions": []}}


def test_trailing_commas_and_comments() -> None:
    raw = """{
      // who is betting
      "Shark": {
        "reasoning": "value on Yes", // trailing note
        "actions": [
          {"type": "bet", "marketId": 3, "outcome": 0, "amount": 1.5},
        ],
      },
    }"""

    parsed = parse_json_object(raw)

    assert parsed["Shark"]["reasoning"] == "value on Yes"
    assert parsed["Shark"]["actions"][0]["amount"] == 1.5


def test_urls_inside_strings_survive() -> None:
    parsed = parse_json_object('{"sources": "https://example.com/odds"}')

    assert parsed["sources"] == "https://example.com/odds"


def test_prose_around_object() -> None:
    raw = 'Sure! {"MaxBet": {"reasoning": "all in", "actions": []}} Hope that helps.'

    assert parse_json_object(raw) == {"MaxBet": {"reasoning": "all in", "actions": []}}


@pytest.mark.parametrize("raw", ["", "no json here", "{broken", "[1, 2, 3]", '"text"'])
def test_unrepairable_output(raw: str) -> None:
    with pytest.raises(OracleParseError) as exc_info:
        parse_json_object(raw)

    assert exc_info.value.raw_text == raw
