"""
Recover a PubMed Boolean expression from free-form LLM text.

The model is asked for a search strategy but answers in prose: a PICO
breakdown, a labeled strategy section, sometimes several alternatives.
Parsers are tried in order and each returns a candidate or None:

  1. whole       — the text already is a single-line expression
  2. labeled     — the group chain following a section label
  3. freestanding — the longest group chain anywhere in the text
  4. line        — the first long line with a field tag and an operator

The chosen candidate goes through ``repair`` (whitespace, parentheses,
quotes, operator case). ``extract(extract(x)) == extract(x)`` holds for
any input.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum

from scientific_query.constants import (
    MIN_STRATEGY_LENGTH,
    MIN_STRATEGY_LINE_LENGTH,
    PUBMED_FIELD_TAGS,
    STRATEGY_PREFIXES,
    STRATEGY_SECTION_LABELS,
)

logger = logging.getLogger(__name__)

LABELED_WINDOW_CHARS = 2000

_OPERATOR_RE = re.compile(r"\b(AND|OR|NOT)\b", re.IGNORECASE)
_CONTINUATION_RE = re.compile(r"\s*\b(AND|OR|NOT)\b\s*(?=[(\"])", re.IGNORECASE)
_SPACED_OPERATOR_RE = re.compile(r"(?<=\s)(and|or|not)(?=\s)", re.IGNORECASE)
_TERM_RE = re.compile(r'"[^"\n]+"(\[[^\]\n]+\])?')
_WS_RE = re.compile(r"\s+")


class CandidateSource(str, Enum):
    WHOLE = "whole"
    LABELED = "labeled"
    FREESTANDING = "freestanding"
    LINE = "line"


@dataclass(frozen=True)
class StrategyCandidate:
    source: CandidateSource
    text: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _has_operator(text: str) -> bool:
    return bool(_OPERATOR_RE.search(text))


def _has_field_tag(text: str) -> bool:
    lowered = text.lower()
    return any(tag in lowered for tag in PUBMED_FIELD_TAGS)


def _trim(text: str) -> str:
    """Cut to start at the first ``(`` or ``"`` and end at the last ``)``, ``]`` or ``"``."""
    starts = [i for i in (text.find("("), text.find('"')) if i >= 0]
    if not starts:
        return ""
    text = text[min(starts) :]
    end = max(text.rfind(")"), text.rfind("]"), text.rfind('"'))
    return text[: end + 1] if end >= 0 else ""


def _balanced_group_end(text: str, start: int) -> int | None:
    """Index just past the group opened at ``text[start] == '('``; None if unclosed."""
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _chain_end(text: str, start: int) -> int | None:
    """End of ``(group) (AND|OR|NOT (group|"term"[field]))*`` starting at ``start``.

    None when any group in the chain is never closed.
    """
    end = _balanced_group_end(text, start)
    if end is None:
        return None
    while True:
        match = _CONTINUATION_RE.match(text, end)
        if not match:
            return end
        nxt = match.end()
        if text[nxt] == "(":
            group_end = _balanced_group_end(text, nxt)
            if group_end is None:
                return None
        else:
            term = _TERM_RE.match(text, nxt)
            if term is None:
                return end
            group_end = term.end()
        end = group_end


def _viable(text: str) -> str | None:
    text = _collapse(_trim(text))
    if len(text) < MIN_STRATEGY_LENGTH or not _has_operator(text):
        return None
    return text


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


def _parse_whole(text: str) -> StrategyCandidate | None:
    if "\n" in text.strip():
        return None
    collapsed = _collapse(text)
    if (
        len(collapsed) >= MIN_STRATEGY_LENGTH
        and collapsed[0] in '("'
        and collapsed[-1] in ')]"'
        and _has_operator(collapsed)
    ):
        return StrategyCandidate(CandidateSource.WHOLE, collapsed)
    return None


def _parse_labeled(text: str) -> StrategyCandidate | None:
    pattern = "|".join(re.escape(label) for label in STRATEGY_SECTION_LABELS)
    for label in re.finditer(pattern, text, re.IGNORECASE):
        window = text[label.end() : label.end() + LABELED_WINDOW_CHARS]
        start = window.find("(")
        if start < 0:
            continue
        end = _chain_end(window, start)
        if end is None:
            # Unclosed group: take the paragraph and let repair balance it
            paragraph_end = window.find("\n\n", start)
            end = paragraph_end if paragraph_end >= 0 else len(window)
        candidate = _viable(window[start:end])
        if candidate and ("[" in candidate or '"' in candidate):
            return StrategyCandidate(CandidateSource.LABELED, candidate)
    return None


def _parse_freestanding(text: str) -> StrategyCandidate | None:
    best: str | None = None
    pos = text.find("(")
    while pos >= 0:
        end = _chain_end(text, pos)
        if end is None:
            pos = text.find("(", pos + 1)
            continue
        candidate = _viable(text[pos:end])
        if candidate and _has_field_tag(candidate) and (best is None or len(candidate) > len(best)):
            best = candidate
        pos = text.find("(", end)
    if best is None:
        return None
    return StrategyCandidate(CandidateSource.FREESTANDING, best)


def _parse_line(text: str) -> StrategyCandidate | None:
    for line in text.splitlines():
        line = line.strip()
        if (
            len(line) >= MIN_STRATEGY_LINE_LENGTH
            and _has_field_tag(line)
            and _has_operator(line)
            and "(" in line
            and ")" in line
        ):
            candidate = _viable(line)
            if candidate:
                return StrategyCandidate(CandidateSource.LINE, candidate)
    return None


_PARSERS = (_parse_whole, _parse_labeled, _parse_freestanding, _parse_line)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def is_passthrough(text: str) -> bool:
    """Text too short or too unstructured to hold a Boolean expression."""
    if len(text) < MIN_STRATEGY_LENGTH:
        return True
    if not any(ch in text for ch in '"[('):
        return True
    return "AND" not in text and "OR" not in text


def strip_prefixes(text: str) -> str:
    text = text.strip()
    changed = True
    while changed:
        changed = False
        for prefix in STRATEGY_PREFIXES:
            if text.lower().startswith(prefix.lower()):
                text = text[len(prefix) :].strip()
                changed = True
    return text


def find_candidate(text: str) -> StrategyCandidate | None:
    """Run the parsers in order and return the first candidate."""
    for parser in _PARSERS:
        candidate = parser(text)
        if candidate is not None:
            logger.debug("Strategy candidate from %s parser", candidate.source.value)
            return candidate
    return None


def repair(expression: str) -> str:
    """Balance parentheses and quotes and uppercase Boolean operators."""
    text = _collapse(expression)

    opened, closed = text.count("("), text.count(")")
    if opened > closed:
        text += ")" * (opened - closed)
    elif closed > opened:
        text = "(" * (closed - opened) + text

    if text.count('"') % 2:
        text += '"'

    return _SPACED_OPERATOR_RE.sub(lambda m: m.group(1).upper(), text)


def extract(raw_text: str | None) -> str | None:
    """Return the canonical PubMed expression in ``raw_text``.

    Short or unstructured input is returned unchanged. Returns None when
    no parser finds an expression.
    """
    if raw_text is None:
        return None
    if is_passthrough(raw_text):
        return raw_text

    candidate = find_candidate(strip_prefixes(raw_text))
    if candidate is None:
        logger.info("No search expression found in %d chars of LLM output", len(raw_text))
        return None
    return repair(candidate.text)
