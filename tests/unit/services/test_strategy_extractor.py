"""Unit tests for strategy_extractor."""

import pytest

from scientific_query.services.strategy_extractor import (
    CandidateSource,
    extract,
    find_candidate,
    is_passthrough,
    repair,
    strip_prefixes,
)

EXPRESSION = (
    '("Methotrexate"[Mesh] OR methotrexate[tiab]) AND '
    '("Retinal Detachment"[Mesh] OR "retinal detachment"[tiab])'
)

LABELED_RESPONSE = f"""1. ANÁLISIS PICO:
   - P: pacientes con desprendimiento de retina - Relevancia: 5
   - I: metotrexato intravítreo - Relevancia: 5

3. ESTRATEGIA PRINCIPAL:
{EXPRESSION}

4. ESTIMACIÓN CUANTITATIVA:
   - Precisión estimada: 80%
   - Sensibilidad estimada: 75%
"""

FREESTANDING_RESPONSE = """Propuesta para PubMed

Se recomienda usar ("Methotrexate"[Mesh] OR MTX[tiab]) AND ("Vitreoretinopathy, Proliferative"[Mesh]) para maximizar la precisión.
"""


# ── Passthrough ───────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "text",
    [
        "diabetes",
        "metformin AND type 2 diabetes in elderly patients",
        '"metformin"[tiab] with a very long but operator free tail',
    ],
)
def test_passthrough_inputs_returned_unchanged(text):
    assert is_passthrough(text)
    assert extract(text) == text


def test_none_input():
    assert extract(None) is None


# ── Parsers ───────────────────────────────────────────────────────────────────


def test_whole_expression_is_kept():
    assert find_candidate(EXPRESSION).source is CandidateSource.WHOLE
    assert extract(EXPRESSION) == EXPRESSION


def test_labeled_section_is_extracted():
    candidate = find_candidate(LABELED_RESPONSE)
    assert candidate.source is CandidateSource.LABELED
    assert extract(LABELED_RESPONSE) == EXPRESSION


def test_labeled_section_with_unclosed_group_is_repaired():
    text = (
        "Análisis previo de la pregunta.\n\n"
        "ESTRATEGIA DE BÚSQUEDA COMPLETA:\n"
        '("Methotrexate"[Mesh] OR methotrexate[tiab]) AND '
        '("Retinal Detachment"[Mesh] OR "retinal detachment"[tiab]\n\n'
        "Notas finales."
    )
    assert extract(text) == EXPRESSION


def test_freestanding_expression_is_found():
    candidate = find_candidate(FREESTANDING_RESPONSE)
    assert candidate.source is CandidateSource.FREESTANDING
    assert extract(FREESTANDING_RESPONSE) == (
        '("Methotrexate"[Mesh] OR MTX[tiab]) AND ("Vitreoretinopathy, Proliferative"[Mesh])'
    )


def test_no_expression_returns_none():
    text = "Lo siento, no tengo una estrategia (todavía) para esta pregunta AND otra cosa."
    assert extract(text) is None


def test_prefixes_are_stripped_repeatedly():
    assert strip_prefixes("Análisis PICO: Estrategia refinada: (a OR b)") == "(a OR b)"


# ── Repair ────────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(a OR b AND (c", "(a OR b AND (c))"),
        ("a OR b)", "(a OR b)"),
        ('("x"[tiab] or "y"[tiab]) and z', '("x"[tiab] OR "y"[tiab]) AND z'),
        ('"retinal detachment', '"retinal detachment"'),
        ("(a   OR\n b)", "(a OR b)"),
    ],
)
def test_repair(raw, expected):
    assert repair(raw) == expected


# ── Idempotence ───────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "text",
    [EXPRESSION, LABELED_RESPONSE, FREESTANDING_RESPONSE, "diabetes", "(a or b) and (c or d) and more"],
)
def test_extract_is_idempotent(text):
    once = extract(text)
    assert extract(once) == once
