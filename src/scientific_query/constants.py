"""Project-wide constants."""

# -- Base client defaults ---------------------------------------------------
DEFAULT_TIMEOUT: float = 30.0
DEFAULT_MAX_RETRIES: int = 3

# -- PubMed / NCBI ----------------------------------------------------------
PUBMED_SEARCH_PATH: str = "esearch.fcgi"
PUBMED_SUMMARY_PATH: str = "esummary.fcgi"
PUBMED_FETCH_PATH: str = "efetch.fcgi"
PUBMED_ARTICLE_URL: str = "https://pubmed.ncbi.nlm.nih.gov/{pmid}/"
ABSTRACT_BATCH_SIZE: int = 10
ABSTRACT_BATCH_PAUSE_SECONDS: float = 1.0

# -- iCite ------------------------------------------------------------------
ICITE_PUBS_PATH: str = "pubs"
ICITE_MAX_PMIDS_PER_CALL: int = 1000

# -- LLM --------------------------------------------------------------------
LLM_BASE_DELAY_MS: int = 2_000
LLM_MAX_DELAY_MS: int = 120_000
RETRY_AFTER_PADDING_MS: int = 5_000
ANALYSIS_MAX_TOKENS: int = 2_500
ANALYSIS_TEMPERATURE: float = 0.2
SYNTHESIS_MAX_TOKENS: int = 4_096
SYNTHESIS_TEMPERATURE: float = 0.3

# -- Article validation -----------------------------------------------------
MIN_ABSTRACT_LENGTH: int = 50
MIN_TITLE_LENGTH: int = 5
TITLE_PLACEHOLDER: str = "Artículo científico (título completo no disponible)"

# Titles that carry no information about the article itself.
GENERIC_TITLES: frozenset[str] = frozenset(
    {
        "sin título",
        "sin titulo",
        "untitled",
        "no title",
        "n/a",
        "na",
        "retinal detachment",
        "desprendimiento de retina",
    }
)

# -- Strategy extraction ----------------------------------------------------
MIN_STRATEGY_LENGTH: int = 30
MIN_STRATEGY_LINE_LENGTH: int = 50

STRATEGY_PREFIXES: tuple[str, ...] = (
    "La estrategia refinada sería:",
    "La estrategia de búsqueda refinada sería:",
    "La estrategia sería:",
    "Estrategia refinada:",
    "Estrategia de búsqueda:",
    "Estrategia de busqueda:",
    "Análisis PICO:",
    "Analisis PICO:",
    "Search strategy:",
)

STRATEGY_SECTION_LABELS: tuple[str, ...] = (
    "ESTRATEGIA PRINCIPAL",
    "ESTRATEGIA DE BÚSQUEDA COMPLETA",
    "ESTRATEGIA DE BÚSQUEDA",
    "ESTRATEGIA CALIBRADA",
    "PUBMED SEARCH STRATEGY",
)

PUBMED_FIELD_TAGS: tuple[str, ...] = ("[mesh", "[tiab]", "[majr", "[ti]")

# -- Strategy metrics -------------------------------------------------------
DEFAULT_STRATEGY_METRICS: dict[str, float] = {
    "sensitivity": 70,
    "specificity": 85,
    "precision": 75,
    "nnr": 4,
    "saturation": 80,
}

# -- Relevance scoring ------------------------------------------------------
# Checked in order; the first phrase found in the title decides the study type.
STUDY_TYPE_RULES: tuple[tuple[tuple[str, ...], int, str], ...] = (
    (("meta-analysis", "metaanalysis", "meta analysis", "metanálisis"), 15, "meta-analysis"),
    (("systematic review", "revisión sistemática"), 12, "systematic review"),
    (("randomized", "randomised", "aleatorizado"), 10, "randomized trial"),
    (("review", "revisión"), 7, "narrative review"),
    (("cohort", "case-control", "caso-control"), 5, "cohort/case-control"),
)

MESH_QUALITY_INDICATORS: tuple[str, ...] = (
    "double-blind",
    "placebo-controlled",
    "multicenter",
)

PRESTIGIOUS_JOURNALS: tuple[str, ...] = (
    "nejm",
    "new england",
    "lancet",
    "jama",
    "bmj",
    "british medical",
    "annals of internal medicine",
    "nature",
    "science",
    "cell",
    "circulation",
    "ophthalmology",
    "journal of clinical",
    "american journal",
    "journal of",
    "archives of",
)

MIN_KEYWORD_LENGTH: int = 4

# -- Analysis output --------------------------------------------------------
NOT_SELECTED_NOTE: str = (
    "Este artículo no fue seleccionado para análisis detallado debido a su "
    "menor relevancia para la consulta."
)
INVALID_ARTICLE_MESSAGE: str = (
    "El artículo no contiene suficiente información para ser analizado. Se "
    "requiere un título válido, un abstract extenso y un identificador."
)

# The frontend recognises a failed analysis by the "badge type" Error span.
ERROR_CARD_TEMPLATE: str = """<div class="card-analysis">
  <div class="card-header">
    <h3>ANÁLISIS NO DISPONIBLE</h3>
    <div class="badges">
      <span class="badge quality">★☆☆☆☆</span>
      <span class="badge type">Error</span>
    </div>
  </div>
  <div class="card-section">
    <h4>ERROR DE ANÁLISIS</h4>
    <p>{message}</p>
  </div>
</div>"""

# -- Synthesis --------------------------------------------------------------
SYNTHESIS_ABSTRACT_CHARS: int = 300
SYNTHESIS_ANALYSIS_CHARS: int = 500
