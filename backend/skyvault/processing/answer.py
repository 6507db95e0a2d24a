"""
Heuristic answer synthesis — keyword overlap over sentences.

No model is involved: the document text is split into sentences, each
sentence is scored by how often the question's keywords occur in it, and
the best few sentences are returned as supporting snippets.

Matching is literal substring counting without word boundaries, so the
keyword "boil" scores inside "boils" and "art" scores inside "start".

Pure and deterministic: identical inputs always give identical output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

MAX_KEYWORDS = 25
MAX_SNIPPETS = 5
MIN_KEYWORD_LENGTH = 3
LONG_KEYWORD_LENGTH = 6   # keywords longer than this weigh double

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_KEYWORD = re.compile(r"[a-z0-9]{%d,}" % MIN_KEYWORD_LENGTH)

NO_MATCH_ANSWER = (
    "I couldn't find anything in this document that matches your question. "
    "Try rephrasing it with words that are likely to appear in the file."
)
ANSWER_HEADER = "Here are the passages from the document most relevant to your question:"
HEURISTIC_DISCLAIMER = (
    "Note: these passages were selected by keyword matching. "
    "This is a heuristic summary, not a full AI-generated answer."
)


@dataclass(frozen=True)
class AnswerResult:
    answer_text: str
    supporting_snippets: list[str] = field(default_factory=list)


def split_sentences(text: str) -> list[str]:
    """Split on whitespace following . ! or ?, collapse inner whitespace, drop empties."""
    sentences = []
    for candidate in _SENTENCE_BOUNDARY.split(text):
        normalized = " ".join(candidate.split())
        if normalized:
            sentences.append(normalized)
    return sentences


def extract_keywords(question: str) -> list[str]:
    """Distinct alphanumeric runs of at least 3 chars, first-seen order, capped."""
    keywords: list[str] = []
    seen: set[str] = set()
    for match in _KEYWORD.findall(question.lower()):
        if match in seen:
            continue
        seen.add(match)
        keywords.append(match)
        if len(keywords) == MAX_KEYWORDS:
            break
    return keywords


def score_sentence(sentence: str, keywords: list[str]) -> int:
    lowered = sentence.lower()
    score = 0
    for keyword in keywords:
        weight = 2 if len(keyword) > LONG_KEYWORD_LENGTH else 1
        score += lowered.count(keyword) * weight
    return score


def render_answer(snippets: list[str]) -> str:
    bullets = "\n".join(f"• {snippet}" for snippet in snippets)
    return f"{ANSWER_HEADER}\n\n{bullets}\n\n{HEURISTIC_DISCLAIMER}"


def answer_from_sentences(question: str, sentences: list[str]) -> AnswerResult:
    keywords = extract_keywords(question)
    scored = []
    for sentence in sentences:
        score = score_sentence(sentence, keywords)
        if score > 0:
            scored.append((score, sentence))
    # sorted() is stable: equal scores keep document order
    ranked = sorted(scored, key=lambda item: -item[0])[:MAX_SNIPPETS]

    if not ranked:
        return AnswerResult(answer_text=NO_MATCH_ANSWER, supporting_snippets=[])

    snippets = [sentence for _, sentence in ranked]
    return AnswerResult(answer_text=render_answer(snippets), supporting_snippets=snippets)


def synthesize(question: str, document_text: str) -> AnswerResult:
    return answer_from_sentences(question, split_sentences(document_text))
