"""
Lightweight language detection for code snippets and file names.
"""

from typing import Optional

from devhub.core.constants import DEFAULT_CODE_LANGUAGE, EXTENSION_LANGUAGES

_APEX_MARKERS = ("public class", "private class", "@IsTest", "System.assert", "trigger ", "Apex")
_MARKUP_OPENERS = ("<template", "<aura:")
_JS_MARKERS = ("function", "const ", "let ", "import ")


def detect_code_language(content: str) -> str:
    """
    Guess the language of a snippet returned by the chat backend.

    Checks are ordered: Apex, then Lightning markup, then JavaScript.
    Anything unrecognised is assumed to be Apex.
    """
    if any(marker in content for marker in _APEX_MARKERS):
        return "apex"
    if any(opener in content for opener in _MARKUP_OPENERS) and "</" in content:
        return "html"
    if any(marker in content for marker in _JS_MARKERS):
        return "javascript"
    return DEFAULT_CODE_LANGUAGE


def format_code_as_markdown(content: str, language: Optional[str] = None) -> str:
    """Wrap a snippet in a fenced code block."""
    lang = language or detect_code_language(content)
    return f"\n```{lang}\n{content}\n```\n"


def detect_language_and_type(filename: str) -> dict[str, str]:
    """Map a file name to its highlighting language by extension."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return {
        "language": EXTENSION_LANGUAGES.get(extension, "plaintext"),
        "type": "file",
    }
