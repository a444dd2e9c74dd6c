"""Prompt templates for the similar-answer and answer flows."""

from __future__ import annotations

from collections.abc import Sequence

from answer_relay.types import RetrievalHit

SIMILAR_SYSTEM_PROMPT = """
You are an assistant that finds previously answered questions that are closely related to a new question.

Output format:
- Return a JSON array with at most 3 objects, each with the fields "question", "answer" and "relevanceScore".
- "relevanceScore" is a number between 0 and 1 describing how closely the item matches the new question.
- Only use question and answer pairs that appear in the provided context.
- Do not use markdown and do not add any text before or after the array.

If no closely related questions or answers are found, return:
[{"question": "No closely related questions or answers found", "answer": "Please try rephrasing your question or ask something else."}]
""".strip()

SIMILAR_USER_PROMPT = """
Find the top 3 most relevant questions and answers similar to: '{question}'
All results must agree in subject and context with the question.
""".strip()

ANSWER_SYSTEM_PROMPT = """
You are an experienced medical professional providing accurate, accessible health information.

Response criteria:
- Answer at a 7th-grade reading level and in the language of the question.
- Focus exclusively on medical, health, legal, or psychological topics; otherwise say you can only answer those.
- Replace technical terms with plain language and use common brand and generic drug names instead of drug classes.
- Recommend seeking professional medical advice when appropriate.
- Never give investment advice, diagnostic conclusions, treatment prescriptions or dosage recommendations.
- Censor inappropriate language with asterisks.
""".strip()

SUMMARY_PROMPT = """
Combine the three answers to the question below into a concise, clear, and readable summary.

Question: {question}

Answer 1: {docs}

Answer 2: {general}

Answer 3: {pma}

The summary should be readable at a 7th grade reading level and explain any jargon that may need clarification.
If the summary contains any fringe research, homeopathic medicine, or medically untested information, annotate it as such.
""".strip()

NO_DOCUMENTS_CONTEXT = "No relevant documents found."


def format_context(hits: Sequence[RetrievalHit]) -> str:
    blocks = [f"{hit.content}\nSource: {hit.title or 'Unknown'}" for hit in hits if hit.content]
    if not blocks:
        return NO_DOCUMENTS_CONTEXT
    return "\n\n".join(blocks)


def documents_prompt(question: str, hits: Sequence[RetrievalHit]) -> str:
    return f"Context:\n{format_context(hits)}\n\nQuestion: {question}"


def similar_prompt(question: str, hits: Sequence[RetrievalHit]) -> str:
    return documents_prompt(SIMILAR_USER_PROMPT.replace("{question}", question), hits)


def summary_prompt(question: str, docs: str, general: str, pma: str) -> str:
    return (
        SUMMARY_PROMPT.replace("{question}", question)
        .replace("{docs}", docs)
        .replace("{general}", general)
        .replace("{pma}", pma)
    )
