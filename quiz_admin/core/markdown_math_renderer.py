"""Markdown rendering of question content for the browser client.

Question and option text may contain markdown and ``$...$`` LaTeX. The server
renders markdown to HTML fragments and leaves the math delimiters untouched
for MathJax on the student page. Secondary-locale text is rendered as a
separate fragment so the client can place it under the primary text.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt

from quiz_admin.core.models import Question


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math into HTML fragments."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str | None) -> str:
        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return ""
        return self._markdown.render(sanitized)

    def render_inline(self, markdown_text: str | None) -> str:
        """Render a single option label without the surrounding paragraph."""
        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return ""
        return self._markdown.renderInline(sanitized)

    def render_question(self, question: Question) -> dict[str, object]:
        secondary_options = question.secondary_options or []
        return {
            "html": self.render_fragment(question.text),
            "secondary_html": self.render_fragment(question.secondary_text) or None,
            "options": [
                {
                    "index": index,
                    "html": self.render_inline(option),
                    "secondary_html": (
                        self.render_inline(secondary_options[index]) or None
                        if index < len(secondary_options)
                        else None
                    ),
                }
                for index, option in enumerate(question.options)
            ],
            "image_url": question.image_url,
        }


# Shared instance; MarkdownIt is safe for concurrent read-only renders
renderer = MarkdownMathRenderer()
