"""Per-language split markers and identifier patterns.

Separators are ordered strongest first: the splitter tries them in order and
falls back to the next one for fragments that are still too large.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n")

SEPARATORS: dict[str, tuple[str, ...]] = {
    "typescript": (
        "\nexport class ",
        "\nexport interface ",
        "\nexport function ",
        "\nexport const ",
        "\nexport default ",
        "\nclass ",
        "\ninterface ",
        "\nfunction ",
        "\nconst ",
        "\n}\n",
    ),
    "javascript": (
        "\nexport class ",
        "\nexport function ",
        "\nexport const ",
        "\nexport default ",
        "\nclass ",
        "\nfunction ",
        "\nconst ",
        "\n}\n",
    ),
    "java": (
        "\npublic class ",
        "\nprivate class ",
        "\nclass ",
        "\npublic interface ",
        "\ninterface ",
        "\npublic void ",
        "\nprivate void ",
        "\npublic static ",
        "\n    public ",
        "\n    private ",
        "\n}\n",
    ),
    "go": ("\nfunc ", "\ntype ", "\nvar ", "\nconst ", "\n}\n"),
    "python": ("\nclass ", "\ndef ", "\nasync def ", "\n\n"),
    "markdown": ("\n## ", "\n### ", "\n#### ", "\n---\n", "\n\n\n"),
}

EXTENSIONS: dict[str, str] = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".java": "java",
    ".go": "go",
    ".py": "python",
    ".md": "markdown",
    ".markdown": "markdown",
}

_JS_FUNCTION = re.compile(
    r"\b(?:function|const|let|var)\s+(\w+)|(\w+)\s*[=:]\s*(?:async\s*)?\("
)

_FUNCTION_PATTERNS: dict[str, re.Pattern[str]] = {
    "typescript": _JS_FUNCTION,
    "javascript": _JS_FUNCTION,
    "java": re.compile(
        r"\b(?:public|private|protected)\s+(?:static\s+)?(?:final\s+)?"
        r"(?:[\w<>\[\],]+\s+)?(\w+)\s*\("
    ),
    "go": re.compile(r"\bfunc\s+(?:\([^)]*\)\s*)?(\w+)"),
    "python": re.compile(r"\bdef\s+(\w+)"),
}

_CLASS_RE = re.compile(r"\bclass\s+(\w+)")

_CLASS_PATTERNS: dict[str, re.Pattern[str]] = {
    "typescript": _CLASS_RE,
    "javascript": _CLASS_RE,
    "java": _CLASS_RE,
    "python": _CLASS_RE,
    "go": re.compile(r"\btype\s+(\w+)\s+(?:struct|interface)\b"),
}


def detect_language(path: str) -> str:
    """Return the language tag for *path* from its extension ("text" if unknown)."""
    return EXTENSIONS.get(PurePosixPath(path).suffix.lower(), "text")


def separators_for(language: str) -> tuple[str, ...]:
    """Language markers first, then paragraph and line breaks."""
    specific = SEPARATORS.get(language, ())
    return specific + tuple(s for s in DEFAULT_SEPARATORS if s not in specific)


def extract_identifiers(text: str, language: str) -> tuple[str | None, str | None]:
    """Return (function_name, class_name) for the first matches in *text*.

    Best effort: either value is None when the language has no pattern or
    nothing matches.
    """
    function_name = None
    class_name = None

    func_re = _FUNCTION_PATTERNS.get(language)
    if func_re is not None:
        match = func_re.search(text)
        if match:
            function_name = next((g for g in match.groups() if g), None)

    class_re = _CLASS_PATTERNS.get(language)
    if class_re is not None:
        match = class_re.search(text)
        if match:
            class_name = match.group(1)

    return function_name, class_name
