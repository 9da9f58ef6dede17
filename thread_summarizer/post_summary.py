from __future__ import annotations

import random
import re

from bs4 import Tag

from .clean import clean_post_content
from .errors import ConfigError
from .llm import TextGenerator
from .llm_schema import PostSummary
from .run_log import RunLogger
from .summarize import MSG_NOT_CONFIGURED
from .tolerant_json import parse_ai_json_response

MIN_POST_LENGTH = 150

SHORT_POST_MESSAGES: tuple[str, ...] = (
    "¿Resumir esto? Hasta mi loro lo lee en 2 segundos 🦜",
    "Esto es más corto que la paciencia de un mod 😅",
    "Post más escueto que las instrucciones de IKEA",
    "Ni ChatGPT puede resumir menos esto",
    "TL;DR: Ya era TL;DR de por sí",
    "¿Resumen? Bro, son 3 palabras",
    "Esto ya es un haiku, imposible acortar más",
    "Mi abuela resume más largo los buenos días",
    "¿Resumir? Literalmente puedes leerlo en lo que pestañeas 👀",
    "Error 404: Contenido suficiente no encontrado",
)

FALLBACK_SUMMARY = "No se pudo generar el resumen."
FALLBACK_TONE = "Neutro"
ERROR_SUMMARY = "Error al procesar la respuesta de la IA."
ERROR_TONE = "Error"

_WS_RE = re.compile(r"\s+")

_POST_PROMPT = """\
Eres un asistente experto en resumir contenido de foros (Mediavida) en español.

TAREA:
Analiza el post y devuelve SOLO un JSON válido con "summary" y "tone".

EJEMPLO DE SALIDA:
{{"summary": "El usuario explica cómo configurar Docker en Windows, incluyendo los pasos para WSL2 y las opciones de virtualización recomendadas.", "tone": "Didáctico y detallado"}}

ADAPTACIÓN DE LONGITUD (proporcional al post original):
- Post CORTO (<300 caracteres): 1 frase directa.
- Post MEDIO (300-800 caracteres): 2-3 frases capturando los puntos principales.
- Post LARGO (>800 caracteres): 4-6 frases que capturen TODOS los puntos clave, matices y argumentos importantes. No sacrifiques detalle por brevedad.

REGLAS CRÍTICAS:
- SOLO JSON válido. Empieza con "{{" y termina con "}}". Sin markdown ni texto extra.
- Idioma: Español.
- El "tone" DEBE empezar con mayúscula y ser conciso (ej: "Informativo", "Crítico y frustrado", "Irónico pero constructivo").
- Detecta ironía/sarcasmo y refléjalo en el tono si aplica. No interpretes sarcasmo como apoyo literal.
- Si el post solo tiene media/embed/enlace sin comentario propio, indica "Comparte contenido sin comentario" en el summary.
- Evita frases genéricas. Sé específico sobre el contenido real del post.
- Incluye el contenido de SPOILERS si aporta contexto.
- NO uses BBCode en tu respuesta.

POST A RESUMIR:
"{text}\""""


def is_post_long_enough(text: str) -> bool:
    return len(_WS_RE.sub(" ", (text or "").strip())) >= MIN_POST_LENGTH


def short_post_message(rng: random.Random | None = None) -> str:
    return (rng or random).choice(SHORT_POST_MESSAGES)


def extract_post_text(post_body: Tag | str) -> str:
    """Post text with quotes and code removed; spoiler content stays, only its toggle goes."""
    return clean_post_content(post_body, keep_spoilers=True, remove_code_blocks=True)


def build_post_prompt(text: str) -> str:
    return _POST_PROMPT.format(text=text)


def summarize_post(
    text: str,
    generator: TextGenerator | None,
    *,
    logger: RunLogger | None = None,
) -> PostSummary:
    """
    Summarize a single post into {summary, tone}.

    Raises ConfigError without a generator. Any generation or decoding failure is
    folded into a fixed error summary.
    """
    if generator is None:
        raise ConfigError(MSG_NOT_CONFIGURED)

    try:
        raw = generator.generate(build_post_prompt(text))
        data = parse_ai_json_response(raw)
    except Exception as e:
        if logger is not None:
            logger.error("post_summary_failed", location="post_summary", error=str(e))
        return PostSummary(summary=ERROR_SUMMARY, tone=ERROR_TONE, error=str(e) or type(e).__name__)

    if not isinstance(data, dict):
        data = {}

    summary = data.get("summary")
    tone = data.get("tone")
    return PostSummary(
        summary=summary.strip() if isinstance(summary, str) and summary.strip() else FALLBACK_SUMMARY,
        tone=tone.strip() if isinstance(tone, str) and tone.strip() else FALLBACK_TONE,
    )
