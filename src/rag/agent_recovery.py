"""
Best-effort recovery of answers from agent output-parsing errors.

The ReAct loop sometimes produces a usable answer wrapped in a format
violation. These rules inspect the raw error text and try to salvage it.
They match on the wording of LangChain's parser errors and are therefore
brittle against changes to that wording; a miss degrades to the generic
failure answer, never to a wrong answer being invented.
"""

import re
from enum import Enum
from typing import NamedTuple, Optional


FINAL_ANSWER_MARKER = "Final Answer:"

# "Parsing LLM output produced both a final answer and a parse-able action:: ..."
BOTH_ANSWER_AND_ACTION_PATTERN = re.compile(r"both a final answer and a parse-?able action", re.IGNORECASE)
UNPARSABLE_OUTPUT_PATTERN = re.compile(r"Could not parse LLM output:", re.IGNORECASE)
UNPARSABLE_TEXT_PATTERN = re.compile(r"Could not parse LLM output:\s*`(.*)`", re.DOTALL | re.IGNORECASE)

DIAGNOSTIC_FOOTER_PATTERN = re.compile(
    r"\s*(?:Troubleshooting URL:|For troubleshooting, visit:).*\Z", re.DOTALL | re.IGNORECASE
)
DIAGNOSTIC_PREFIX_PATTERNS = (
    re.compile(r"\A.*?This is the error:\s*", re.DOTALL),
    re.compile(r"\A\s*An output parsing error occurred\.?\s*", re.IGNORECASE),
    re.compile(r"\A\s*Could not parse LLM output:\s*", re.IGNORECASE),
)
STRUCTURAL_MARKER_PATTERN = re.compile(
    r"^\s*(?:Action(?:\s*Input)?|Thought|Observation)\s*\d*\s*:", re.IGNORECASE | re.MULTILINE
)
BLANK_LINES_PATTERN = re.compile(r"\n\s*\n+")
WORD_PATTERN = re.compile(r"[^\W\d_]+", re.UNICODE)

# Common function words; a real answer almost always contains at least one.
PLAUSIBILITY_KEYWORDS = frozenset(
    {
        "a", "an", "the", "is", "are", "was", "to", "of", "in", "on", "for", "and", "or", "it",
        "you", "your", "use", "can", "with", "this", "that", "not", "be", "by", "from", "as",
        "o", "os", "um", "uma", "de", "do", "da", "que", "para", "com", "no", "na", "em", "seu", "sua",
    }
)
MIN_PLAUSIBLE_WORDS = 3


class RecoveryKind(str, Enum):
    RECOVERED_FINAL_ANSWER = "recovered_final_answer"
    RECOVERED_FREE_TEXT = "recovered_free_text"
    UNRECOVERABLE = "unrecoverable"


class Recovery(NamedTuple):
    kind: RecoveryKind
    answer: Optional[str] = None


def collapse_blank_lines(text: str) -> str:
    return BLANK_LINES_PATTERN.sub("\n\n", text).strip()


def strip_diagnostics(text: str) -> str:
    """Remove known diagnostic prefixes and footers around model output."""
    cleaned = DIAGNOSTIC_FOOTER_PATTERN.sub("", text)
    for pattern in DIAGNOSTIC_PREFIX_PATTERNS:
        cleaned = pattern.sub("", cleaned, count=1)
    return cleaned.strip().strip("`").strip()


def extract_final_answer(raw_error: str) -> Optional[str]:
    """Text after the last 'Final Answer:' marker, up to any diagnostic footer."""
    idx = raw_error.rfind(FINAL_ANSWER_MARKER)
    if idx < 0:
        return None
    tail = raw_error[idx + len(FINAL_ANSWER_MARKER):]
    tail = DIAGNOSTIC_FOOTER_PATTERN.sub("", tail)
    # An action emitted after the answer is not part of it.
    marker = STRUCTURAL_MARKER_PATTERN.search(tail)
    if marker:
        tail = tail[: marker.start()]
    answer = collapse_blank_lines(tail.strip().strip("`"))
    return answer or None


def extract_unparsed_text(raw_error: str) -> Optional[str]:
    """The model output the parser rejected, without diagnostics."""
    match = UNPARSABLE_TEXT_PATTERN.search(raw_error)
    text = match.group(1) if match else strip_diagnostics(raw_error)
    text = collapse_blank_lines(strip_diagnostics(text))
    return text or None


def looks_like_answer(text: str, min_length: int = 20) -> bool:
    """Heuristic: long enough, no leftover ReAct markers, reads like prose."""
    if len(text) < min_length:
        return False
    if STRUCTURAL_MARKER_PATTERN.search(text):
        return False
    words = [word.lower() for word in WORD_PATTERN.findall(text)]
    if sum(1 for word in words if len(word) > 1) < MIN_PLAUSIBLE_WORDS:
        return False
    return any(word in PLAUSIBILITY_KEYWORDS for word in words)


def recover_answer(raw_error: str, min_length: int = 20) -> Recovery:
    """
    Apply the recovery rules in order.

    1. Both a final answer and an action in one step: keep the final answer.
    2. Unparsable output: keep it if it reads like a genuine answer.
    3. Anything else is unrecoverable.
    """
    if not raw_error:
        return Recovery(RecoveryKind.UNRECOVERABLE)

    if BOTH_ANSWER_AND_ACTION_PATTERN.search(raw_error) or (
        FINAL_ANSWER_MARKER in raw_error and not UNPARSABLE_OUTPUT_PATTERN.search(raw_error)
    ):
        answer = extract_final_answer(raw_error)
        if answer:
            return Recovery(RecoveryKind.RECOVERED_FINAL_ANSWER, answer)

    if UNPARSABLE_OUTPUT_PATTERN.search(raw_error):
        text = extract_unparsed_text(raw_error)
        if text and looks_like_answer(text, min_length):
            return Recovery(RecoveryKind.RECOVERED_FREE_TEXT, text)

    return Recovery(RecoveryKind.UNRECOVERABLE)
