# signal_wizard/grammar.py
"""
Boolean Query Grammar

Tokenizes free-text boolean queries for highlighting and flags structural problems.

Keywords are case-sensitive: ``AND``, ``OR``, ``NOT`` and ``AND NOT``. ``*`` is a
wildcard. Double-quoted phrases are literal, so keywords inside them are terms.
Parentheses and square brackets are paired for the colorizer.

Unbalanced brackets and quotes are reported as warnings only. Operator misuse
(missing operands, doubled operators, empty groups) makes the query invalid.

Usage:
    from signal_wizard.grammar import tokenize, validate

    result = validate('mentions of Acme AND NOT spam')
    assert result.valid and not result.error_spans
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class TokenKind(Enum):
    """Token categories used by the highlighter."""
    AND = "and"
    OR = "or"
    NOT = "not"
    AND_NOT = "and_not"
    WILDCARD = "wildcard"
    PHRASE = "phrase"
    OPEN = "open"
    CLOSE = "close"
    TERM = "term"
    SPACE = "space"


class Severity(Enum):
    WARNING = "warning"
    ERROR = "error"


BINARY_OPERATORS = frozenset({TokenKind.AND, TokenKind.OR, TokenKind.AND_NOT})
OPERATORS = BINARY_OPERATORS | {TokenKind.NOT}
BRACKET_PAIRS = {"(": ")", "[": "]"}

# Alternation order matters: AND NOT must win over AND.
TOKEN_PATTERN = re.compile(
    r"""
    (?P<and_not>\bAND\s+NOT\b)
    |(?P<and>\bAND\b)
    |(?P<or>\bOR\b)
    |(?P<not>\bNOT\b)
    |(?P<phrase>"[^"]*"?)
    |(?P<open>[(\[])
    |(?P<close>[)\]])
    |(?P<wildcard>\*)
    |(?P<term>[^\s()\[\]"*]+)
    |(?P<space>\s+)
    """,
    re.VERBOSE,
)


@dataclass
class Token:
    """A lexical token with its position and bracket nesting."""
    kind: TokenKind
    text: str
    start: int
    end: int
    depth: int = 0
    pair: Optional[int] = None  # index of the matching bracket token

    @property
    def is_operator(self) -> bool:
        return self.kind in OPERATORS


@dataclass
class Span:
    """A flagged region of the query text."""
    start: int
    end: int
    code: str
    message: str
    severity: Severity = Severity.ERROR


@dataclass
class GrammarResult:
    """Outcome of ``validate``."""
    valid: bool
    error_spans: List[Span] = field(default_factory=list)

    @property
    def warnings(self) -> List[Span]:
        return [s for s in self.error_spans if s.severity is Severity.WARNING]

    @property
    def errors(self) -> List[Span]:
        return [s for s in self.error_spans if s.severity is Severity.ERROR]


def tokenize(text: str) -> List[Token]:
    """
    Split a query into tokens, pairing brackets.

    Every character of ``text`` belongs to exactly one token. Bracket tokens
    that find a partner carry its index in ``pair``; both share a ``depth``.
    """
    tokens: List[Token] = []
    stack: List[int] = []

    for match in TOKEN_PATTERN.finditer(text):
        kind = TokenKind(match.lastgroup)
        token = Token(kind=kind, text=match.group(), start=match.start(), end=match.end())
        index = len(tokens)

        if kind is TokenKind.OPEN:
            token.depth = len(stack)
            stack.append(index)
        elif kind is TokenKind.CLOSE:
            if stack and BRACKET_PAIRS[tokens[stack[-1]].text] == token.text:
                opener = stack.pop()
                token.pair = opener
                token.depth = len(stack)
                tokens[opener].pair = index
            else:
                token.depth = len(stack)
        else:
            token.depth = len(stack)

        tokens.append(token)

    return tokens


def _bracket_spans(tokens: List[Token]) -> List[Span]:
    spans = []
    for token in tokens:
        if token.kind is TokenKind.OPEN and token.pair is None:
            spans.append(Span(token.start, token.end, "unclosed_bracket",
                              f"'{token.text}' is never closed", Severity.WARNING))
        elif token.kind is TokenKind.CLOSE and token.pair is None:
            spans.append(Span(token.start, token.end, "unmatched_bracket",
                              f"'{token.text}' has no opening bracket", Severity.WARNING))
        elif token.kind is TokenKind.PHRASE and (len(token.text) == 1 or not token.text.endswith('"')):
            spans.append(Span(token.start, token.end, "unclosed_quote",
                              "Quoted phrase is never closed", Severity.WARNING))
    return spans


def _operator_spans(tokens: List[Token]) -> List[Span]:
    spans = []
    significant = [t for t in tokens if t.kind is not TokenKind.SPACE]

    for i, token in enumerate(significant):
        prev = significant[i - 1] if i > 0 else None
        nxt = significant[i + 1] if i + 1 < len(significant) else None

        if token.kind in BINARY_OPERATORS:
            if prev is None or prev.kind is TokenKind.OPEN:
                spans.append(Span(token.start, token.end, "missing_left_operand",
                                  f"'{token.text}' needs something before it"))
            elif prev.is_operator:
                spans.append(Span(token.start, token.end, "consecutive_operators",
                                  f"'{prev.text}' cannot be followed by '{token.text}'"))

        if token.is_operator and (nxt is None or nxt.kind is TokenKind.CLOSE):
            spans.append(Span(token.start, token.end, "missing_right_operand",
                              f"'{token.text}' needs something after it"))

        if token.kind is TokenKind.OPEN and token.pair is not None and tokens[token.pair] is nxt:
            spans.append(Span(token.start, nxt.end, "empty_group", "Brackets are empty"))

    return spans


def validate(text: str) -> GrammarResult:
    """
    Check a boolean query.

    Returns ``valid=False`` only for operator misuse; bracket and quote
    imbalance is reported as warning spans and leaves the query valid.
    """
    tokens = tokenize(text)
    spans = _operator_spans(tokens) + _bracket_spans(tokens)
    spans.sort(key=lambda s: (s.start, s.end))
    valid = not any(s.severity is Severity.ERROR for s in spans)
    return GrammarResult(valid=valid, error_spans=spans)


class BooleanQueryGrammar:
    """Object wrapper so the grammar can be injected into the query step."""

    def tokenize(self, text: str) -> List[Token]:
        return tokenize(text)

    def validate(self, text: str) -> GrammarResult:
        return validate(text)
