"""Prompt text and fixed user-facing replies for the answer engine."""

from __future__ import annotations

from typing import Iterable

from lecture_qa.services.retrieval import Passage

SECTION_SEPARATOR = "----------------"

ROLE_FRAMING = (
    "The user is currently watching a lecture video and will ask you questions about the "
    "lecture and the lecture slides.\n"
    "Use the following pieces of context to answer the question at the end. If you don't know "
    "the answer based on the context, use your general knowledge to provide a helpful response."
)

TRANSCRIPT_HEADER = "CONTEXT OF VIDEO TRANSCRIPT:"
SLIDES_HEADER = "CONTEXT OF LECTURE SLIDES:"
HISTORY_HEADER = "CHAT HISTORY:"
QUESTION_HEADER = "QUESTION:"
ANSWER_CUE = "Helpful Answer:"

# -------------------------------------------------------------- #
# Degraded Context
# -------------------------------------------------------------- #

NO_TRANSCRIPT_FOUND = "No relevant transcript content found."
TRANSCRIPT_UNAVAILABLE = (
    "Cannot access video transcript content. I can try to answer your question based on "
    "general knowledge, but cannot provide answers specific to the video content."
)
NO_SLIDES_FOUND = "No relevant slides content found."
SLIDES_UNAVAILABLE = (
    "Cannot access slides content. I can try to answer your question based on video transcript "
    "and general knowledge, but cannot provide answers specific to the slides content."
)

# -------------------------------------------------------------- #
# Image and Screenshot Notes
# -------------------------------------------------------------- #

IMAGE_TEXT_TEMPLATE = "\nIMAGE TEXT CONTENT: {text}\n"
IMAGE_NO_TEXT = (
    "\nIMAGE CONTENT: The image was provided but no text could be extracted from it. "
    "I will try to answer based on the other context available.\n"
)
IMAGE_ERROR = (
    "\nIMAGE CONTENT: An image was provided but I encountered an error processing it. "
    "I will try to answer based on the other context available.\n"
)
NO_IMAGE = "\nNo image was provided with this question.\n"
SCREENSHOT_NOTE = (
    "\n[Note: A screenshot of the current slide has been captured. "
    "I'll try to answer based on the video transcript and slide content.]"
)

# -------------------------------------------------------------- #
# Fixed Replies
# -------------------------------------------------------------- #

CONTEXT_NOT_READY = (
    "I'm sorry, I cannot answer your question right now. The system is preparing learning "
    "content, please try again later or refresh the page to restart."
)
MODEL_UNREACHABLE = (
    "Sorry, I cannot connect to the language model service at the moment. "
    "Please try again later or contact the administrator."
)
GENERATION_FAILED = (
    "I'm sorry, I'm having trouble processing your request right now. Please try again later."
)
TECHNICAL_ISSUE = (
    "I'm sorry, there was a technical issue processing your question. Please try again later."
)

# -------------------------------------------------------------- #
# Placeholder Context
# -------------------------------------------------------------- #

PLACEHOLDER_SOURCE_URL = "https://www.youtube.com/watch?v=_uQrJ0TkZlc"
PLACEHOLDER_SEGMENTS = [
    {"text": "This is a sample lecture content.", "offset": 0, "duration": 5000},
    {
        "text": (
            "The system has automatically created temporary context to respond to your question."
        ),
        "offset": 5000,
        "duration": 5000,
    },
]


def sanitize_question(question: str | None) -> str:
    """Trim the question and replace its first newline with a space."""
    return (question or "").strip().replace("\n", " ", 1)


def format_passages(passages: Iterable[Passage]) -> str:
    return "\n\n".join(passage.text for passage in passages)


def build_prompt(
    transcript_context: str,
    chat_history: str,
    question: str,
    slides_context: str | None = None,
) -> str:
    """
    Assemble the answer prompt.

    The slides section is left out entirely when `slides_context` is None,
    which is different from rendering it with a "no slides found" note.
    """
    sections = [ROLE_FRAMING, f"{TRANSCRIPT_HEADER} {transcript_context}"]
    if slides_context is not None:
        sections.append(f"{SLIDES_HEADER} {slides_context}")
    sections.extend(
        [
            f"{HISTORY_HEADER} {chat_history}",
            f"{QUESTION_HEADER} {question}",
            ANSWER_CUE,
        ]
    )
    return f"\n{SECTION_SEPARATOR}\n".join(sections)
