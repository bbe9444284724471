"""Hint tool - short text clues stored with a page for later reconstruction."""

from ..models.page_record import ExtractedFields

INTRO_HINT_CHARS = 120


def generate_hints(fields: ExtractedFields) -> list[str]:
    """One hint per non-empty field, in a fixed order."""
    hints: list[str] = []
    if fields.keywords:
        hints.append(f"Keywords: {fields.keywords}")
    if fields.headings:
        hints.append(f"Main topics: {' | '.join(fields.headings)}")
    intro = " ".join(fields.intro_paragraphs)
    if intro:
        hints.append(f"Intro context: {intro[:INTRO_HINT_CHARS]}...")
    if fields.meta_description:
        hints.append(f"Meta description: {fields.meta_description}")
    return hints
