from __future__ import annotations

from workflow_interpreter.core.json_markdown import parse_json_from_markdown


def test_parse_json_from_markdown_examples():
    examples = [
        ('{"a": 1}', (True, {"a": 1})),
        ("[1, 2]", (True, [1, 2])),
        ('Here you go:\n```json\n{"files": ["a.py"]}\n```\nDone.', (True, {"files": ["a.py"]})),
        ('```\n{"bare": true}\n```', (True, {"bare": True})),
        ('```python\nprint(1)\n```\n```json\n{"second": 2}\n```', (True, {"second": 2})),
        ('The result is {"ok": true} as requested.', (True, {"ok": True})),
        ("Items: [1, 2, 3].", (True, [1, 2, 3])),
        ("no json here", (False, None)),
        ("", (False, None)),
        (None, (False, None)),
    ]

    for text, expected in examples:
        assert parse_json_from_markdown(text) == expected, f"text={text!r}"


def test_invalid_fenced_block_falls_back_to_span():
    text = '```json\n{broken\n```\nActual: {"value": 3}'
    # the outermost {...} span starts at the broken block, so nothing parses
    assert parse_json_from_markdown(text) == (False, None)
    assert parse_json_from_markdown('```json\n{broken\n```\nActual: ["x"]') == (True, ["x"])
