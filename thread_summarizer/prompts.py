from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from string import Template
from typing import Iterable, Literal, Sequence

from .config_schema import Provider
from .extract import format_posts_for_prompt
from .post import ExtractedPost, PageData

PromptType = Literal["batch", "meta"]

STATS_TOP_N = 10

SUMMARY_JSON_STRUCTURE = (
    '{"topic":"string","keyPoints":["string"],'
    '"participants":[{"name":"string","contribution":"string"}],"status":"string"}'
)


@dataclass(frozen=True)
class ScaledLimits:
    max_key_points: int
    max_participants: int


def scaled_limits(page_count: int) -> ScaledLimits:
    """Longer ranges get richer summaries, up to a fixed ceiling."""
    if page_count <= 3:
        return ScaledLimits(5, 5)
    if page_count <= 7:
        return ScaledLimits(7, 8)
    if page_count <= 15:
        return ScaledLimits(9, 10)
    if page_count <= 25:
        return ScaledLimits(12, 14)
    return ScaledLimits(15, 16)


_BATCH_GEMINI = Template(
    """\
Eres un analista de foros. Tu trabajo es resumir MULTIPLES PAGINAS de un hilo de Mediavida y devolver un objeto JSON valido.

FORMATO DE SALIDA (JSON estrictamente valido):
{
  "topic": "Una frase concisa explicando el tema principal del hilo en estas paginas.",
  "keyPoints": [
    "Punto clave 1",
    "Punto clave 2",
    "... (hasta $max_key_points puntos clave)"
  ],
  "participants": [
    { "name": "Usuario1", "contribution": "Resumen breve de su postura o aporte principal" },
    { "name": "Usuario2", "contribution": "Resumen breve de su postura o aporte principal" },
    "... (hasta $max_participants participantes destacados)"
  ],
  "status": "Una frase descriptiva sobre el estado general del debate en estas paginas."
}

REGLAS ESTRICTAS:
- Devuelve SOLO el JSON. No incluyas bloques de codigo markdown.
- El JSON debe ser valido.
- Resume TODOS los posts que te paso, dando una vision global.
- Ignora posts sin contenido ("pole", "+1").
- Incluye también el contenido dentro de spoilers cuando aporte contexto al debate.
- Identifica los temas principales y como evolucionan entre paginas.
- Incluye hasta $max_participants participantes, priorizando los mas activos y relevantes.
- Si hay autores suficientes, devuelve EXACTAMENTE $max_participants participantes. Solo devuelve menos si en los posts no hay suficientes autores unicos con contenido relevante.
- AGRUPACIÓN: Si varios usuarios comparten exactamente la misma postura, agrúpalos en una sola entrada separando los nombres por comas (ej: "Pepito, Juanito").
- OP: Si identificas al creador del hilo (OP), mantén la etiqueta (OP) junto a su nombre.
- Los posts marcados con [👍N] tienen N votos de la comunidad. Los posts muy votados suelen contener opiniones o informacion especialmente relevante. Tenlos en cuenta para los puntos clave y participantes.
- Usa las ESTADISTICAS DEL HILO como referencia objetiva para seleccionar participantes destacados, pero no te limites solo a los que mas postean: alguien con pocos posts pero muy votados puede ser mas relevante.
- Escribe como alguien que ha leído el hilo completo: natural, claro y con matiz humano.
- Refleja el tono real del debate (ironía, tensión, consenso o cachondeo) cuando aporte contexto.
- Detecta ironía/sarcasmo y no la traduzcas como apoyo literal.
- Si una postura es irónica o ambigua, descríbela como "ironiza con..." o "crítica sarcástica a...".
- No uses verbos de apoyo ("defiende", "apoya", "celebra") salvo evidencia explícita y literal.
- Si no hay certeza total de postura, usa verbos neutrales: "plantea", "argumenta", "cuestiona" o "ironiza".
- Evita lenguaje de informe automático y frases clónicas repetidas (muletillas como "En conclusión", "Cabe destacar").
- Prioriza la precisión factual: no inventes cifras ni mezcles rangos contradictorios. Si un dato numérico no está claro, descríbelo sin número exacto.
- Identifica correctamente QUIÉN critica a QUIÉN: lee el contexto completo de cada post antes de atribuir posturas. No confundas el objeto de la crítica.
- No confundas apodos/rangos/títulos visuales junto al nick con el nombre del usuario: usa solo el nick real (salvo la etiqueta OP).
- Si un post solo incluye media/embed/enlace (tweet, vídeo, etc.) sin comentario propio del autor, NO lo uses para atribuir postura personal.
- No mezcles hechos de contextos o periodos distintos. Si el hilo compara etapas diferentes, acláralo explícitamente.
- Incluye hasta $max_key_points puntos clave.
- En cada punto clave, prioriza conflicto, argumentos y giros del hilo; evita frases genéricas.
- En cada participante, resume postura y por qué destaca (actividad, votos o impacto en la discusión).
- "status" debe ser una frase descriptiva (minimo 12 palabras) sobre el clima y la direccion del debate. Sé directo y evita empezar siempre con "El hilo..." o "El debate...".
- Responde en espanol.
- IMPORTANTE: El bloque JSON final debe ser válido y contener toda la información solicitada."""
)

_META_GEMINI = Template(
    """\
Eres un analista de foros. Te voy a dar RESUMENES PARCIALES de diferentes secciones de un hilo largo de Mediavida. Tu trabajo es crear UN UNICO RESUMEN GLOBAL coherente combinando todos los parciales.

FORMATO DE SALIDA (JSON estrictamente valido):
{
  "topic": "El tema principal del hilo completo.",
  "keyPoints": [
    "Punto clave 1 (los mas importantes de todo el hilo)",
    "Punto clave 2",
    "... (hasta $max_key_points puntos clave)"
  ],
  "participants": [
    { "name": "Usuario1", "contribution": "Su aportacion general al hilo" },
    { "name": "Usuario2", "contribution": "Su aportacion general al hilo" },
    "... (hasta $max_participants participantes destacados)"
  ],
  "status": "Estado final del debate considerando toda la evolucion del hilo."
}

REGLAS ESTRICTAS:
- Devuelve SOLO el JSON. No incluyas bloques de codigo markdown.
- El JSON debe ser valido.
- Combina los resumenes parciales en UN UNICO resumen coherente.
- No repitas informacion redundante entre secciones.
- Conserva el contenido relevante que provenga de spoilers.
- Prioriza los puntos mas relevantes e impactantes.
- Si un tema evoluciona entre secciones, describe la evolucion.
- Los participantes deben ser los MAS destacados en todo el hilo (hasta $max_participants).
- AGRUPACIÓN: Si varios usuarios comparten la misma postura, mantenlos agrupados (ej: "Pepito, Juanito").
- OP: Mantén la etiqueta (OP) si aparece.
- Si hay autores suficientes, devuelve EXACTAMENTE $max_participants participantes. Solo devuelve menos si no hay suficientes autores unicos relevantes.
- Usa las ESTADISTICAS DEL HILO como referencia objetiva. Alguien con pocos posts pero muy votados puede ser mas relevante que alguien que postea mucho sin impacto.
- Escribe como alguien que ha leído el hilo completo: natural, claro y con matiz humano.
- Refleja el tono real del debate (ironía, tensión, consenso o cachondeo) cuando aporte contexto.
- Detecta ironía/sarcasmo y no la traduzcas como apoyo literal.
- Si una postura es irónica o ambigua, descríbela como "ironiza con..." o "crítica sarcástica a...".
- No uses verbos de apoyo ("defiende", "apoya", "celebra") salvo evidencia explícita y literal.
- Si no hay certeza total de postura, usa verbos neutrales: "plantea", "argumenta", "cuestiona" o "ironiza".
- Evita lenguaje de informe automático y frases clónicas repetidas (muletillas como "En conclusión", "Cabe destacar").
- Prioriza la precisión factual: no inventes cifras ni mezcles rangos contradictorios. Si un dato numérico no está claro, descríbelo sin número exacto.
- Identifica correctamente QUIÉN critica a QUIÉN: lee el contexto completo de cada post antes de atribuir posturas. No confundas el objeto de la crítica.
- No confundas apodos/rangos/títulos visuales junto al nick con el nombre del usuario: usa solo el nick real.
- Si un post solo incluye media/embed/enlace (tweet, vídeo, etc.) sin comentario propio del autor, NO lo uses para atribuir postura personal.
- No mezcles hechos de contextos o periodos distintos. Si el hilo compara etapas diferentes, acláralo explícitamente.
- En cada punto clave, prioriza conflicto, argumentos y giros del hilo; evita frases genéricas.
- En cada participante, resume postura y por qué destaca (actividad, votos o impacto en la discusión).
- "status" debe ser una frase descriptiva (minimo 12 palabras) sobre el clima final del debate. Sé directo y evita empezar siempre con "El hilo..." o "El debate...".
- Responde en espanol.
- IMPORTANTE: El bloque JSON final debe ser válido."""
)

_BATCH_GROQ = Template(
    """\
Analiza varias páginas de un hilo de Mediavida y devuelve SOLO JSON válido.

SALIDA:
{
  "topic": "Una frase concisa explicando el tema principal.",
  "keyPoints": [
    "Punto clave 1 — 1-3 frases breves con contexto concreto.",
    "... hasta $max_key_points"
  ],
  "participants": [
    { "name": "Usuario1", "contribution": "2-3 frases breves: postura, a qué responde y por qué destaca. Termina con punto." },
    "... hasta $max_participants"
  ],
  "status": "Frase ORIGINAL de 15-40 palabras sobre el clima del debate. Ejemplo: 'Alta tensión y fragmentación, con el foro partido en bandos personales y un pesimismo generalizado sobre el futuro.'"
}

REGLAS CRITICAS (cumple TODAS):
- SOLO JSON, sin markdown ni texto extra. Empieza con "{" y termina con "}".
- DETALLE: Cada "contribution" en 2-3 frases breves (aprox. 20-55 palabras). Cada punto clave en 1-3 frases breves. Distribuye el espacio EQUITATIVAMENTE entre TODOS los participantes.
- Cada "contribution" y cada punto clave DEBE terminar con punto (.).
- AGRUPACIÓN: Si varios usuarios comparten la misma postura, AGRÚPALOS (ej: "Pepito, Juanito").
- OP: Mantén la etiqueta (OP) si identificas al creador del hilo.
- PROHIBIDO usar frases genéricas como "participó activamente en el debate", "aportando argumentos", "cabe destacar" o "en conclusión".
- Si hay material suficiente, devuelve EXACTAMENTE $max_key_points puntos clave y EXACTAMENTE $max_participants participantes. Solo devuelve menos si realmente no hay contenido o autores suficientes.
- El "status" DEBE ser una frase descriptiva y original. Evita empezar siempre con "El debate..." o "El hilo...". Sé directo.

REGLAS DE CONTENIDO:
- Resume todo el bloque con visión global. Ignora posts vacíos ("pole", "+1"). Incluye spoilers relevantes.
- Escribe con tono natural, periodístico-informal. Refleja ironía, tensión, consenso o cachondeo.
- En cada punto clave: prioriza conflictos, argumentos concretos y giros del hilo.
- En cada participante: resume su postura CONCRETA y por qué destaca.
- Participantes: prioriza actividad + impacto + votos [👍N]. Si hay suficientes, devuelve EXACTAMENTE $max_participants.
- Usa las ESTADISTICAS DEL HILO como referencia. Alguien con pocos posts pero muy votados puede ser más relevante.
- Identifica correctamente QUIÉN critica a QUIÉN leyendo el contexto completo de cada post.
- No confundas apodos/rangos/títulos visuales junto al nick con el nombre del usuario: usa solo el nick real (salvo OP).
- Si un post solo incluye media/embed/enlace (tweet, vídeo, etc.) sin comentario propio del autor, NO lo uses para atribuir postura personal.
- Detecta ironía/sarcasmo y evita invertir la postura real.
- Precisión factual: no inventes cifras ni mezcles contextos.
- Responde 100% en español."""
)

_META_GROQ = Template(
    """\
Te paso resúmenes parciales de un hilo largo. Devuelve UN ÚNICO resumen global en JSON válido.

SALIDA:
{
  "topic": "Tema principal global en una frase concisa.",
  "keyPoints": [
    "Punto clave 1 — 1-3 frases breves con contexto concreto.",
    "... hasta $max_key_points"
  ],
  "participants": [
    { "name": "Usuario1", "contribution": "2-3 frases breves: postura, a qué responde y por qué destaca. Termina con punto." },
    "... hasta $max_participants"
  ],
  "status": "Frase ORIGINAL de 15-40 palabras sobre el clima final del debate. Ejemplo: 'Se cierra con pesimismo generalizado y una fractura total entre facciones que priorizan a sus favoritos sobre el bien colectivo.'"
}

REGLAS CRITICAS (cumple TODAS):
- SOLO JSON, sin markdown ni texto extra. Empieza con "{" y termina con "}".
- DETALLE: Cada "contribution" en 2-3 frases breves (aprox. 20-55 palabras) y cada punto clave en 1-3 frases breves. Distribuye el espacio EQUITATIVAMENTE entre TODOS los participantes.
- Cada "contribution" y cada punto clave DEBE terminar con punto (.).
- AGRUPACIÓN: Si varios usuarios comparten la misma postura, AGRÚPALOS.
- OP: Mantén la etiqueta (OP) si aparece.
- PROHIBIDO usar frases genéricas como "participó activamente", "cabe destacar" o "en resumen". Si no tienes información concreta, NO incluyas al usuario.
- Si hay material suficiente, devuelve EXACTAMENTE $max_key_points puntos clave y EXACTAMENTE $max_participants participantes. Solo devuelve menos si realmente faltan datos.
- El "status" DEBE ser una frase ORIGINAL. Evita empezar siempre con "El debate..." o "El hilo...".

REGLAS DE CONTENIDO:
- Combina parciales sin repetir y conserva la evolución entre tramos.
- Escribe con tono natural y humano.
- En cada punto clave: prioriza conflictos, argumentos y giros concretos.
- En cada participante: resume su postura CONCRETA y por qué destaca.
- Participantes: actividad + impacto + votos. Si hay suficientes, devuelve EXACTAMENTE $max_participants.
- Usa las ESTADISTICAS DEL HILO como referencia objetiva.
- No confundas apodos/rangos/títulos visuales junto al nick con el nombre del usuario: usa solo el nick real.
- Si un post solo incluye media/embed/enlace (tweet, vídeo, etc.) sin comentario propio del autor, NO lo uses para atribuir postura personal.
- Preserva el sentido real de mensajes irónicos/sarcásticos; no los resumas como apoyo literal.
- Precisión factual: sin inventar cifras ni mezclar contextos.
- Responde 100% en español."""
)

_TEMPLATES: dict[tuple[str, str], Template] = {
    ("gemini", "batch"): _BATCH_GEMINI,
    ("gemini", "meta"): _META_GEMINI,
    ("groq", "batch"): _BATCH_GROQ,
    ("groq", "meta"): _META_GROQ,
}

SINGLE_PAGE_INSTRUCTION = """\
Eres un analista de foros. Tu trabajo es resumir la pagina actual de un hilo de Mediavida y devolver un objeto JSON valido.

FORMATO DE SALIDA (JSON estrictamente valido):
{
  "topic": "Una frase concisa explicando el tema principal discutido en esta pagina.",
  "keyPoints": [
    "Punto clave 1",
    "Punto clave 2",
    "Punto clave 3 (maximo 5 puntos)"
  ],
  "participants": [
    { "name": "Usuario1", "contribution": "Resumen muy breve de su postura o aporte" },
    { "name": "Usuario2", "contribution": "Resumen muy breve de su postura o aporte" }
  ],
  "status": "Una frase ORIGINAL sobre el estado del debate. Ejemplo: 'Debate fragmentado y tenso, con discusiones circulares sobre [Tema] sin llegar a consenso.'"
}

REGLAS ESTRICTAS:
- Devuelve SOLO el JSON. No incluyas bloques de codigo markdown (```json).
- El JSON debe ser valido.
- Resume SOLO los posts que te paso.
- Ignora posts sin contenido ("pole", "+1").
- Incluye también el contenido que venga dentro de spoilers cuando aporte contexto.
- AGRUPACIÓN: Si varios usuarios comparten la misma postura, AGRÚPALOS (ej: "Pepito, Juanito").
- OP: Mantén la etiqueta (OP) si identificas al creador del hilo.
- No confundas apodos/rangos/títulos visuales junto al nick con el nombre del usuario: usa solo el nick real (salvo OP).
- Si un post solo incluye media/embed/enlace (tweet, vídeo, etc.) sin comentario propio del autor, NO lo uses para atribuir postura personal.
- Detecta ironía/sarcasmo y no la traduzcas como apoyo literal.
- Si una postura es irónica o ambigua, descríbela como "ironiza con..." o "crítica sarcástica a...".
- No uses verbos de apoyo ("defiende", "apoya", "celebra") salvo evidencia explícita y literal.
- Si no hay certeza total de postura, usa verbos neutrales: "plantea", "argumenta", "cuestiona" o "ironiza".
- Evita muletillas de IA como "En conclusión", "Cabe destacar" o "Es importante notar". Sé directo.
- Responde en espanol.
- IMPORTANTE: Tu respuesta debe empezar con { y terminar con }. Sin texto antes ni despues."""


def build_summary_prompt(provider: Provider, prompt_type: PromptType, page_count: int) -> str:
    """Instruction block for a batch (raw posts) or meta (partial summaries) generation."""
    template = _TEMPLATES.get((provider, prompt_type))
    if template is None:
        raise ValueError(f"Unknown prompt variant: provider={provider!r} type={prompt_type!r}")
    limits = scaled_limits(page_count)
    return template.substitute(
        max_key_points=limits.max_key_points,
        max_participants=limits.max_participants,
    )


def build_stats_block(pages: Iterable[PageData]) -> str:
    """Top posters and most-voted posts across every fetched page."""
    post_counts: Counter[str] = Counter()
    voted: list[ExtractedPost] = []

    for page in pages:
        for post in page.posts:
            post_counts[post.author] += 1
            if post.votes:
                voted.append(post)

    # Counter.most_common and sorted() are both stable, so ties keep first-seen order.
    top_posters = ", ".join(f"{author} ({count})" for author, count in post_counts.most_common(STATS_TOP_N))
    top_voted = ", ".join(
        f"#{p.number} por {p.author} ({p.votes} votos)"
        for p in sorted(voted, key=lambda p: p.votes or 0, reverse=True)[:STATS_TOP_N]
    )

    block = f"ESTADISTICAS DEL HILO:\n- Usuarios mas activos (por nº de posts): {top_posters}"
    if top_voted:
        block += f"\n- Posts mas votados por la comunidad: {top_voted}"
    return block


def page_range_label(pages: Sequence[PageData]) -> str:
    if len(pages) == 1:
        return f"Pagina {pages[0].page_number}"
    return f"Paginas {pages[0].page_number}-{pages[-1].page_number}"


def format_batch_content(pages: Sequence[PageData], *, max_chars: int) -> str:
    content = "".join(
        f"\n--- PAGINA {page.page_number} ({page.post_count} posts) ---\n{format_posts_for_prompt(page.posts)}\n"
        for page in pages
    )
    if len(content) > max_chars:
        content = content[:max_chars] + "\n[...contenido truncado]"
    return content


def build_batch_prompt(
    *,
    provider: Provider,
    thread_title: str,
    pages: Sequence[PageData],
    stats_block: str,
    content: str,
) -> str:
    instructions = build_summary_prompt(provider, "batch", len(pages))
    stats_section = f"\n{stats_block}\n" if stats_block else ""
    return (
        f"{instructions}\n\n---\n"
        f"TITULO DEL HILO: {thread_title} ({page_range_label(pages)})\n"
        f"{stats_section}\n"
        f"POSTS:\n{content}"
    )


def build_meta_prompt(
    *,
    provider: Provider,
    thread_title: str,
    partial_summaries: Sequence[str],
    range_labels: Sequence[str],
    from_page: int,
    to_page: int,
    page_count: int,
    stats_block: str,
) -> str:
    sections = []
    for i, summary in enumerate(partial_summaries):
        label = range_labels[i] if i < len(range_labels) else f"Seccion {i + 1}"
        sections.append(f"--- {label} ---\n{summary}")

    instructions = build_summary_prompt(provider, "meta", page_count)
    return (
        f"{instructions}\n\n---\n"
        f"TITULO DEL HILO: {thread_title}\n"
        f"RANGO DE PAGINAS: {from_page} a {to_page}\n\n"
        f"{stats_block}\n\n"
        f"RESUMENES PARCIALES:\n" + "\n\n".join(sections)
    )


def build_single_page_prompt(*, thread_title: str, page_number: int, formatted_posts: str, post_count: int) -> str:
    page_info = f"(Pagina {page_number} del hilo)" if page_number > 1 else "(Primera pagina del hilo)"
    return (
        f"{SINGLE_PAGE_INSTRUCTION}\n\n---\n"
        f"TITULO DEL HILO: {thread_title} {page_info}\n\n"
        f"POSTS DE ESTA PAGINA ({post_count} posts):\n{formatted_posts}"
    )


def build_repair_prompt(raw: str, structure_hint: str = SUMMARY_JSON_STRUCTURE) -> str:
    return (
        "Devuelve SOLO JSON válido (sin markdown) corrigiendo comas, comillas y texto extra.\n"
        "No inventes datos.\n"
        "Estructura exacta:\n"
        f"{structure_hint}\n"
        "Contenido:\n"
        f"{raw}"
    )
