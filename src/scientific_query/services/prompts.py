"""Prompt templates for the LLM stages.

Templates are filled with ``str.format``; literal braces must be doubled.
"""

SEARCH_STRATEGY_PROMPT = """Eres un experto en investigación biomédica y en estrategias de búsqueda bibliográfica de alta precisión.

Desarrolla una estrategia de búsqueda OPTIMIZADA para PubMed que devuelva entre 30 y 70 resultados muy relevantes para la pregunta clínica, minimizando el NNR (número necesario a leer).

INSTRUCCIONES:

1. ANÁLISIS PICO:
   - Identifica Población, Intervención, Comparador y Resultados.
   - Asigna a cada componente una relevancia de 1 a 5.

2. TÉRMINOS PRECISOS:
   - Para cada concepto, los 2-3 términos MeSH más específicos y 3-5 términos de texto libre [tiab].
   - Solo abreviaturas estándar. Prioriza precisión sobre exhaustividad.

3. ESTRATEGIA PRINCIPAL:
   - Bloques de sinónimos unidos con OR, entre paréntesis, y bloques unidos con AND.
   - Usa comillas en frases y etiquetas de campo ([Mesh], [Majr], [tiab], [ti]).
   - Escribe la estrategia completa justo después del rótulo "ESTRATEGIA PRINCIPAL:".

4. ESTIMACIÓN CUANTITATIVA de la estrategia principal:
   - Precisión estimada: N%
   - Sensibilidad estimada: N%
   - Especificidad estimada: N%
   - NNR estimado: N
   - Saturación estimada: N%

Ejemplo de formato (otra pregunta):

ESTRATEGIA PRINCIPAL:
("Methotrexate"[Mesh] OR methotrexate[ti] OR MTX[ti]) AND ("Retinal Detachment"[Majr] OR "retinal detachment"[ti]) AND ("Vitreoretinopathy, Proliferative"[Mesh] OR "proliferative vitreoretinopathy"[ti])

Precisión estimada: 80%
Sensibilidad estimada: 75%
Especificidad estimada: 90%
NNR estimado: 1.25
Saturación estimada: 85%

Pregunta clínica: {question}"""


FILTER_BY_TITLES_PROMPT = """Eres un asistente médico que ayuda a encontrar la literatura más relevante para una pregunta clínica.

PREGUNTA CLÍNICA:
{question}

TAREA:
Selecciona hasta {limit} artículos de la lista siguiente que parezcan más relevantes para responder la pregunta, basándote ÚNICAMENTE en sus títulos.

CRITERIOS:
- Relevancia directa para la pregunta
- Especificidad para la condición o intervención
- Preferencia por ensayos clínicos, meta-análisis y revisiones sistemáticas

LISTA DE ARTÍCULOS:
{articles}

FORMATO DE RESPUESTA:
Responde ÚNICAMENTE con los PMID seleccionados, uno por línea, sin ningún otro texto.
Ejemplo:
12345678
87654321"""


ARTICLE_HEADER = """Pregunta clínica: {question}

Información del artículo:
Título: {title}
Autores: {authors}
Fecha de publicación: {publication_date}
Revista: {journal}
DOI: {doi}
PMID: {pmid}
Términos MeSH: {mesh_terms}

Abstract: {abstract}"""


ANALYZE_ARTICLE_PROMPT = """Eres un experto en análisis crítico de literatura biomédica.

Analiza el siguiente artículo en relación con la pregunta clínica.

""" + ARTICLE_HEADER + """

INSTRUCCIONES:
Presenta el análisis como una TARJETA HTML con exactamente esta estructura:

<div class="card-analysis">
  <div class="card-header">
    <h3>ANÁLISIS DE EVIDENCIA</h3>
    <div class="badges">
      <span class="badge quality">★★★★☆</span>
      <span class="badge type">Ensayo clínico</span>
    </div>
  </div>
  <div class="card-section">
    <h4>RESUMEN CLÍNICO</h4>
    <p>Resumen breve y relevancia para la pregunta.</p>
  </div>
  <div class="card-section">
    <h4>METODOLOGÍA</h4>
    <ul>
      <li><strong>Diseño:</strong> tipo de estudio</li>
      <li><strong>Muestra:</strong> número y características</li>
      <li><strong>Duración:</strong> seguimiento</li>
    </ul>
  </div>
  <div class="card-section">
    <h4>HALLAZGOS CLAVE</h4>
    <ul><li>Hallazgo 1</li><li>Hallazgo 2</li></ul>
  </div>
  <div class="card-section">
    <h4>EVALUACIÓN CRÍTICA</h4>
    <div class="evaluation-grid">
      <div class="evaluation-item"><span class="label">FORTALEZAS</span><ul><li>...</li></ul></div>
      <div class="evaluation-item"><span class="label">LIMITACIONES</span><ul><li>...</li></ul></div>
    </div>
  </div>
  <div class="card-section">
    <h4>ANÁLISIS PICO</h4>
    <ul>
      <li>P: población - descripción - Relevancia: # (1-5)</li>
      <li>I: intervención - descripción - Relevancia: # (1-5)</li>
      <li>C: comparador - descripción - Relevancia: # (1-5)</li>
      <li>O: resultado - descripción - Relevancia: # (1-5)</li>
    </ul>
  </div>
  <div class="card-section">
    <h4>RELEVANCIA CLÍNICA</h4>
    <p>Aplicabilidad de los resultados a la práctica.</p>
  </div>
</div>

IMPORTANTE:
1. Usa EXACTAMENTE esta estructura de divs y clases.
2. La calidad va de ★☆☆☆☆ a ★★★★★ en el badge "quality" según calidad y relevancia.
3. El tipo de estudio va en el badge "type". Nunca uses la palabra "Error" como tipo.
4. Responde solo con el HTML, sin texto antes ni después."""


ANALYZE_ARTICLE_SIMPLE_PROMPT = """Analiza brevemente este artículo en relación con la pregunta clínica.

""" + ARTICLE_HEADER + """

Responde solo con este HTML, completando cada sección en una o dos frases:

<div class="card-analysis">
  <div class="card-header">
    <h3>ANÁLISIS DE EVIDENCIA</h3>
    <div class="badges">
      <span class="badge quality">★★★☆☆</span>
      <span class="badge type">Tipo de estudio</span>
    </div>
  </div>
  <div class="card-section">
    <h4>RESUMEN CLÍNICO</h4>
    <p>...</p>
  </div>
  <div class="card-section">
    <h4>RELEVANCIA CLÍNICA</h4>
    <p>...</p>
  </div>
</div>"""


SYNTHESIS_ARTICLE_BLOCK = """ARTÍCULO {number}:
Título: {title}
Autores: {authors}
Fecha: {publication_date}
PMID: {pmid}
Abstract: {abstract}
Análisis previo: {analysis}"""


SYNTHESIS_PROMPT = """Eres un experto en medicina basada en evidencia y meta-análisis. Elabora una síntesis de la evidencia con enfoque meta-analítico que contraste a los autores para responder:

PREGUNTA CLÍNICA: "{question}"

INFORMACIÓN DE ARTÍCULOS:
{articles}

INSTRUCCIONES:

1. HETEROGENEIDAD: estima e interpreta I² (<25% baja, 25-50% moderada, >50% alta) y Q de Cochran, e indica si un meta-análisis es adecuado.

2. SÍNTESIS CUANTITATIVA: efectos combinados con IC 95% y pesos por estudio cuando los datos lo permitan.

3. ANÁLISIS CUALITATIVO: organiza por temas, no por artículo; contrasta explícitamente posturas divergentes entre autores y evalúa la certeza con GRADE. Cita como (Autor et al., año).

4. CONTROVERSIAS Y DEBATE: una sección con argumentos y contraargumentos, y las diferencias metodológicas que expliquen resultados contradictorios.

5. FORMATO HTML:
   <div class="heterogeneity-stats">
     <div class="heterogeneity-stat"><span class="stat-name">I²</span><span class="stat-value">42%</span><span class="stat-interpretation">Heterogeneidad moderada</span></div>
   </div>
   <table class="meta-table">
     <tr><th>Estudio</th><th>Año</th><th>OR [IC 95%]</th><th>Peso</th></tr>
   </table>

Genera una síntesis HTML concisa (máximo 1500 palabras) con conclusiones balanceadas basadas en GRADE."""
