from __future__ import annotations

from dataclasses import dataclass, field
from html import escape
from typing import Sequence

from .errors import FetchError

_OFFLINE_AUTHORS: tuple[str, ...] = ("Ferran", "AnaMaria89", "kaiserxxx", "Txema", "sirOtto")

_OFFLINE_BODIES: tuple[str, ...] = (
    "Llevo una semana probando la build nueva y el rendimiento en portátil ha mejorado bastante.",
    "No estoy de acuerdo, en mi equipo sigue petando con el último parche y el soporte no contesta.",
    "Alguien ha probado a desactivar el overlay? A mí me arregló los tirones en menos de cinco minutos.",
    "El problema es el netcode, no el cliente. Lo dijeron en el último directo de los desarrolladores.",
    "Pues yo con la beta no he tenido ni un crash, así que algo habrán tocado entre versiones.",
)

# Near-JSON with the defects models typically produce: three missing commas and a trailing one.
_OFFLINE_SUMMARY = """\
```json
{
  "topic": "Rendimiento del último parche y posibles soluciones a los tirones"
  "keyPoints": [
    "Varios usuarios notan mejoras de rendimiento en portátil"
    "Otros siguen sufriendo cierres tras el último parche",
    "Desactivar el overlay aparece como solución rápida",
  ],
  "participants": [
    {"name": "Ferran", "contribution": "Comparte su experiencia positiva con la build nueva"}
    {"name": "AnaMaria", "contribution": "Critica que el soporte no responda"}
  ],
  "status": "Debate dividido entre quienes ven mejoras claras y quienes siguen esperando un arreglo definitivo."
}
```"""

_OFFLINE_POST_SUMMARY = '{"summary": "El usuario describe mejoras de rendimiento tras el parche.", "tone": "Informativo"}'


def _render_post(number: int, author: str, body: str, votes: int) -> str:
    votes_html = f'<div class="btnmola"><span>{votes}</span></div>' if votes else ""
    return (
        f'<div class="post" data-num="{number}" id="post-{number}">'
        f'<div class="post-avatar"><img src="//cdn.example.com/avatars/{escape(author.lower())}.jpg"></div>'
        f'<div class="post-header"><a class="autor" href="/id/{escape(author)}">{escape(author)}</a></div>'
        f'<time datetime="2025-01-{(number % 28) + 1:02d}T12:00:00Z">hace {number} min</time>'
        f'<div class="post-contents"><div class="body"><p>{escape(body)}</p>'
        f"<blockquote>Cita que no debe aparecer</blockquote></div></div>"
        f"{votes_html}"
        "</div>"
    )


@dataclass
class OfflinePageSource:
    """
    Network-free page source for `--offline` smoke runs.

    Renders deterministic thread pages in the forum's markup; pages listed in
    `failing_pages` raise FetchError.
    """

    title: str = "Hilo de pruebas offline"
    posts_per_page: int = 15
    failing_pages: frozenset[int] = frozenset()
    requested: list[int] = field(default_factory=list)

    def render_page(self, page_number: int) -> str:
        first = (page_number - 1) * self.posts_per_page + 1
        posts = []
        for i in range(self.posts_per_page):
            number = first + i
            author = _OFFLINE_AUTHORS[number % len(_OFFLINE_AUTHORS)]
            body = _OFFLINE_BODIES[number % len(_OFFLINE_BODIES)]
            posts.append(_render_post(number, author, f"{body} (#{number})", votes=number % 7))

        return (
            f"<html><head><title>{escape(self.title)} - Mediavida</title></head><body>"
            f'<div id="topic"><h1>{escape(self.title)}</h1></div>'
            f'<div class="pg"><em class="current">{page_number}</em></div>'
            + "".join(posts)
            + "</body></html>"
        )

    def fetch_page(self, page_number: int) -> str:
        self.requested.append(page_number)
        if page_number in self.failing_pages:
            raise FetchError(f"offline page {page_number} unavailable")
        return self.render_page(page_number)


@dataclass
class OfflineGenerator:
    """
    Deterministic text generator for `--offline` runs.

    Thread prompts get a fenced, slightly malformed summary that the tolerant
    decoder repairs; post prompts get a small valid object.
    """

    responses: Sequence[str] = ()
    prompts: list[str] = field(default_factory=list)
    last_model_used: str | None = None

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        self.last_model_used = "offline"

        if self.responses:
            return self.responses[min(len(self.prompts), len(self.responses)) - 1]
        if "POST A RESUMIR" in prompt:
            return _OFFLINE_POST_SUMMARY
        return _OFFLINE_SUMMARY
