"""
Unit tests for snippet language detection.
"""

import pytest

from devhub.services.code_utils import (
    detect_code_language,
    detect_language_and_type,
    format_code_as_markdown,
)


@pytest.mark.parametrize(
    "snippet, expected",
    [
        ("public class AccountService {}", "apex"),
        ("@IsTest\nprivate class AccountServiceTest {}", "apex"),
        ("<template><div></div></template>", "html"),
        ("<aura:component></aura:component>", "html"),
        ("import { LightningElement } from 'lwc';", "javascript"),
        ("const total = items.length;", "javascript"),
        ("SELECT Id FROM Account", "apex"),
    ],
)
def test_detect_code_language(snippet: str, expected: str) -> None:
    assert detect_code_language(snippet) == expected


def test_apex_markers_win_over_markup() -> None:
    snippet = "<template></template>\npublic class Controller {}"
    assert detect_code_language(snippet) == "apex"


def test_markup_without_closing_tag_is_not_html() -> None:
    assert detect_code_language("<template") == "apex"


def test_format_code_as_markdown_uses_detected_language() -> None:
    assert format_code_as_markdown("const a = 1;") == "\n```javascript\nconst a = 1;\n```\n"
    assert format_code_as_markdown("x", "python") == "\n```python\nx\n```\n"


@pytest.mark.parametrize(
    "filename, language",
    [
        ("AccountController.cls", "apex"),
        ("app.JS", "javascript"),
        ("README.md", "markdown"),
        ("Makefile", "plaintext"),
        ("archive.tar.gz", "plaintext"),
    ],
)
def test_detect_language_and_type(filename: str, language: str) -> None:
    assert detect_language_and_type(filename) == {"language": language, "type": "file"}
