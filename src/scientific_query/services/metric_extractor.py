"""Extract estimated search-strategy metrics from LLM prose."""

import logging
import math
import re

from scientific_query.constants import DEFAULT_STRATEGY_METRICS
from scientific_query.models.model_strategy import StrategyMetrics

logger = logging.getLogger(__name__)

_APPROX = r"(?:~|aprox\.?|aproximadamente)?"
_PERCENT_LINE_RE = re.compile(r"(\d+)%")


def _percent_patterns(label: str, leading: bool = True) -> list[re.Pattern]:
    patterns = [
        rf"{label}(?:\sestimada)?:?\s*{_APPROX}\s*(\d+)[%\s]",
        rf"(\d+)%\s+(?:de\s+)?{label}",
        rf"{label}(?:[^\n:]*):?\s*(\d+)%",
        rf"{label}\s+estimada:\s*(\d+)%",
    ]
    if not leading:
        patterns.pop(1)
    return [re.compile(p, re.IGNORECASE) for p in patterns]


SENSITIVITY_PATTERNS = _percent_patterns("sensibilidad")
PRECISION_PATTERNS = _percent_patterns("precisi[óo]n")
SPECIFICITY_PATTERNS = _percent_patterns("especificidad")
SATURATION_PATTERNS = _percent_patterns("saturaci[óo]n", leading=False)
NNR_PATTERNS = [
    re.compile(rf"NNR(?:\sestimado)?:?\s*{_APPROX}\s*(\d+(?:\.\d+)?)", re.IGNORECASE),
    re.compile(
        r"n[úu]mero\s+necesario\s+(?:a|para)\s+leer:?\s*(\d+(?:\.\d+)?)", re.IGNORECASE
    ),
    re.compile(r"NNR(?:[^\n:]*):?\s*(\d+(?:\.\d+)?)", re.IGNORECASE),
]

# Words that mark a line as talking about each metric in the line-scan fallback
LINE_CUES: dict[str, tuple[str, ...]] = {
    "sensitivity": ("sensibilidad",),
    "precision": ("precisión", "precision"),
    "specificity": ("especificidad",),
    "saturation": ("saturación", "saturacion"),
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _first_match(text: str, patterns: list[re.Pattern]) -> float | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return float(match.group(1))
    return None


def _scan_lines(text: str, cues: tuple[str, ...]) -> float | None:
    for line in text.splitlines():
        lowered = line.lower()
        if any(cue in lowered for cue in cues):
            match = _PERCENT_LINE_RE.search(line)
            if match:
                return float(match.group(1))
    return None


def _clamp_percent(value: float | None) -> int | None:
    if value is None:
        return None
    return max(0, min(100, _round_half_up(value)))


def extract(raw_text: str | None) -> StrategyMetrics:
    """Return the metrics stated in ``raw_text``, estimating or defaulting the rest."""
    text = raw_text or ""

    sensitivity = _first_match(text, SENSITIVITY_PATTERNS)
    precision = _first_match(text, PRECISION_PATTERNS)
    specificity = _first_match(text, SPECIFICITY_PATTERNS)

    if not sensitivity:
        sensitivity = _scan_lines(text, LINE_CUES["sensitivity"])
    if not precision:
        precision = _scan_lines(text, LINE_CUES["precision"])
    if not specificity:
        specificity = _scan_lines(text, LINE_CUES["specificity"])

    if not specificity and precision:
        specificity = min(95, _round_half_up(precision * 1.1))

    nnr = _first_match(text, NNR_PATTERNS)
    if not nnr and precision:
        nnr = math.floor(100 / precision * 10 + 0.5) / 10

    saturation = _first_match(text, SATURATION_PATTERNS)
    if not saturation:
        saturation = _scan_lines(text, LINE_CUES["saturation"])
    if not saturation and sensitivity:
        saturation = min(99, _round_half_up(sensitivity * 1.15))

    found = {
        "sensitivity": sensitivity,
        "specificity": specificity,
        "precision": precision,
        "nnr": nnr,
        "saturation": saturation,
    }
    defaulted = [name for name, value in found.items() if not value]
    if defaulted:
        logger.info("Strategy metrics defaulted: %s", ", ".join(defaulted))
    values = {
        name: value if value else DEFAULT_STRATEGY_METRICS[name]
        for name, value in found.items()
    }

    return StrategyMetrics(
        sensitivity=_clamp_percent(values["sensitivity"]),
        specificity=_clamp_percent(values["specificity"]),
        precision=_clamp_percent(values["precision"]),
        nnr=float(values["nnr"]),
        saturation=_clamp_percent(values["saturation"]),
    )
