"""Instruction text for every provider request, rendered from jinja2 templates."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


def _render_prompt(template_name: str, **kwargs: Any) -> str:
    env = Environment(loader=FileSystemLoader(str(PROMPTS_DIR)), keep_trailing_newline=False)
    return env.get_template(template_name).render(**kwargs).strip()


def topic_instruction(topic: str, language: str) -> str:
    return _render_prompt("topic_post.j2", topic=topic, language=language)


def website_instruction(url: str, language: str, page_text: str = "") -> str:
    return _render_prompt("website_post.j2", url=url, language=language, page_text=page_text)


def image_instruction(language: str) -> str:
    return _render_prompt("image_post.j2", language=language)


def regenerate_text_instruction(title: str, content: str, topic: str | None) -> str:
    return _render_prompt("regenerate_text.j2", title=title, content=content, topic=topic)


def regenerate_image_prompt_instruction(
    title: str,
    content: str,
    image_prompt: str | None,
    topic: str | None,
    suffix: str | None,
) -> str:
    return _render_prompt(
        "regenerate_image_prompt.j2",
        title=title,
        content=content,
        image_prompt=image_prompt,
        topic=topic,
        suffix=suffix,
    )
