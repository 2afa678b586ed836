"""Structured response extraction tests."""

import pytest

from intentflow.exceptions import StructuredResponseError
from intentflow.parsing import (
    clean_json,
    extract_labeled_fields,
    extract_structured_fields,
    parse_structured_response,
)


def test_fenced_block_preferred_over_inline_object():
    content = (
        'Draft: {"steps": [{"type": "analysis"}]}\n'
        "Final plan:\n"
        "```json\n"
        '{"steps": [{"type": "tool_call", "tool": "job_search"}]}\n'
        "```"
    )
    data = parse_structured_response(content, required_key="steps")
    assert data["steps"][0]["type"] == "tool_call"


def test_balanced_object_with_required_key_is_found_in_prose():
    content = (
        'Some context {"note": "ignore me"} and then the plan '
        '{"steps": [{"type": "notification", "description": "uses {braces} in text"}]} done.'
    )
    data = parse_structured_response(content, required_key="steps")
    assert data["steps"][0]["description"] == "uses {braces} in text"


def test_comments_and_trailing_commas_are_stripped():
    content = """```json
    {
      // the plan
      "steps": [
        {"type": "tool_call", "tool": "web_scraper", "parameters": {"url": "https://example.com/a"},},
        /* second step */
        {"type": "notification", "description": "done",},
      ],
    }
    ```"""
    data = parse_structured_response(content, required_key="steps")
    assert len(data["steps"]) == 2
    assert data["steps"][0]["parameters"]["url"] == "https://example.com/a"


def test_clean_json_keeps_comment_markers_inside_strings():
    cleaned = clean_json('{"a": "x // y /* z */", "b": [1, 2,],}')
    assert cleaned == '{"a": "x // y /* z */", "b": [1, 2]}'


def test_missing_required_key_raises_deterministic_error():
    with pytest.raises(StructuredResponseError):
        parse_structured_response('{"plan": []}', required_key="steps")

    with pytest.raises(StructuredResponseError):
        parse_structured_response("I cannot help with that.")


def test_labeled_field_scraping_patterns():
    content = (
        "Here is what I found:\n"
        "**Company Name:** ACME GmbH\n"
        "- job_title: Backend Developer\n"
        'and "job_url": "https://jobs.example/1"\n'
    )
    fields = extract_labeled_fields(content, ["company_name", "job_title", "job_url", "salary"])
    assert fields == {
        "company_name": "ACME GmbH",
        "job_title": "Backend Developer",
        "job_url": "https://jobs.example/1",
    }


def test_structured_fields_patch_partial_json_from_labels():
    content = 'Result {"job_title": "Engineer"}\nCompany: Initech'
    data = extract_structured_fields(content, ["job_title", "company"])
    assert data == {"job_title": "Engineer", "company": "Initech"}


def test_structured_fields_empty_when_nothing_matches():
    assert extract_structured_fields("nothing useful here", ["resume_id"]) == {}
