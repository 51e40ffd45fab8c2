"""Expression Guard — allow-list validation for field paths and templates.

Invariants:
    - Runs BEFORE any path resolution, template substitution or query dispatch
    - Paths: ^[a-zA-Z_][a-zA-Z0-9_.]*$ with no empty segments
    - Templates: every {{placeholder}} is a valid path; literal text passes the deny-list
    - Rejection raises MalformedExpressionError whose detail never echoes the input
    - PURE: no IO, no logging of the rejected text

Design Decisions:
    - Allow-list grammar first, deny-list second: the grammar already excludes
      whitespace and punctuation, the deny-list covers uppercase keywords that
      the grammar admits and the literal text of templates
"""

import re

from hera_core.core.errors import MalformedExpressionError

PATH_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_.]*$")
PLACEHOLDER_PATTERN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

STORE_KEYWORDS = frozenset({
    "DROP", "DELETE", "INSERT", "UPDATE", "ALTER",
    "TRUNCATE", "EXEC", "UNION", "SELECT",
})
FORBIDDEN_SEQUENCES = (";", "--", "${", "../", "..\\", "process.env", "/*", "*/")

MAX_EXPRESSION_LENGTH = 512


def _has_forbidden_content(text: str) -> bool:
    if _CONTROL_CHARS.search(text):
        return True
    if any(seq in text for seq in FORBIDDEN_SEQUENCES):
        return True
    return any(keyword in text for keyword in STORE_KEYWORDS)


def is_valid_path(path: object) -> bool:
    """True iff path passes the allow-list grammar and the deny-list."""
    if not isinstance(path, str) or not path or len(path) > MAX_EXPRESSION_LENGTH:
        return False
    if not PATH_PATTERN.match(path):
        return False
    if any(segment == "" for segment in path.split(".")):
        return False
    return not _has_forbidden_content(path)


def check_path(path: object) -> str:
    """Return path unchanged or raise MalformedExpressionError."""
    if not is_valid_path(path):
        raise MalformedExpressionError()
    return path


def is_template(value: object) -> bool:
    return isinstance(value, str) and ("{{" in value or "}}" in value)


def template_placeholders(template: str) -> list[str]:
    """Validated placeholder paths of a template, in order of appearance."""
    if not isinstance(template, str) or len(template) > MAX_EXPRESSION_LENGTH:
        raise MalformedExpressionError()
    literal = PLACEHOLDER_PATTERN.sub("", template)
    if "{{" in literal or "}}" in literal:
        raise MalformedExpressionError()
    if _has_forbidden_content(literal):
        raise MalformedExpressionError()
    return [
        check_path(raw.strip())
        for raw in PLACEHOLDER_PATTERN.findall(template)
    ]


def check_template(template: object) -> str:
    """Return template unchanged or raise MalformedExpressionError."""
    template_placeholders(template)
    return template
