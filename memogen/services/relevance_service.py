"""Ranks source documents against template sections.

Scoring per (section, document) pair:

* +5 when the document text contains the section title (case-insensitive);
* +1 for every keyword of the section body found in the document text.

Documents scoring zero are left out of a section's ranking; the section
generator falls back to them when a section has too few matches.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from collections.abc import Sequence

from memogen.models.memo_models import SourceDocument
from memogen.models.memo_models import TemplateSection
from memogen.models.memo_models import TemplateStructure

logger = logging.getLogger(__name__)

TITLE_MATCH_SCORE = 5
KEYWORD_MATCH_SCORE = 1
MIN_KEYWORD_LENGTH = 4

STOP_WORDS = frozenset(
    {
        "this",
        "that",
        "these",
        "those",
        "there",
        "their",
        "they",
        "with",
        "from",
        "have",
        "will",
        "would",
        "should",
        "could",
        "about",
    }
)

_NON_WORD_RE = re.compile(r"[^\w\s]")


def extract_keywords(text: str) -> list[str]:
    """Lowercased, de-duplicated body words longer than three characters, minus stop words."""
    words = _NON_WORD_RE.sub(" ", text.lower()).split()
    # dict keeps first-seen order
    unique = dict.fromkeys(word for word in words if len(word) >= MIN_KEYWORD_LENGTH)
    return [word for word in unique if word not in STOP_WORDS]


def score_document(section: TemplateSection, document: SourceDocument, keywords: Sequence[str] | None = None) -> int:
    text = document.content.lower()
    score = 0
    if section.title.lower() in text:
        score += TITLE_MATCH_SCORE
    if keywords is None:
        keywords = extract_keywords(section.content)
    score += KEYWORD_MATCH_SCORE * sum(1 for keyword in keywords if keyword in text)
    return score


def iter_sections(sections: Sequence[TemplateSection]) -> Iterator[TemplateSection]:
    """Depth-first walk over a section forest."""
    for section in sections:
        yield section
        yield from iter_sections(section.children)


def rank_documents(section: TemplateSection, documents: Sequence[SourceDocument]) -> list[str]:
    keywords = extract_keywords(section.content)
    scored = [(document.id, score_document(section, document, keywords)) for document in documents]
    # sorted() is stable, so equal scores keep input order
    ranked = sorted(scored, key=lambda item: item[1], reverse=True)
    return [doc_id for doc_id, score in ranked if score > 0]


def match_documents_to_sections(
    structure: TemplateStructure | None,
    documents: Sequence[SourceDocument],
) -> dict[str, list[str]]:
    """Map every section id of *structure* to its relevant document ids, best first."""
    if structure is None:
        return {}
    matches = {section.id: rank_documents(section, documents) for section in iter_sections(structure.sections)}
    logger.debug(
        "Matched %d documents against %d sections (%d sections with at least one match)",
        len(documents),
        len(matches),
        sum(1 for ranked in matches.values() if ranked),
    )
    return matches
