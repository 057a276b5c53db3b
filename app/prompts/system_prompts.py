# System and user prompts for sentence classification.
#
# The classifier sees one sentence at a time plus a few neighbouring
# sentences. The model must answer with a single JSON object; anything
# that does not parse is dropped by the caller.

PROMPT_VERSION = "sentence-classification-v2"

SENTENCE_CLASSIFICATION_SYSTEM_PROMPT = r"""
You classify sentences from documents about a death in custody or in
immigration detention (death reports, autopsy summaries, press releases,
incident reports).

Classify the TARGET sentence into exactly ONE category:
- timeline_event: a specific action, event or occurrence that can be placed in time
- medical: health or medical information (symptoms, diagnoses, treatments, vital signs, cause of death)
- official_statement: a statement attributed to an agency, official or authority
- background: general context or background about the person or facility
- irrelevant: headers, footers, page numbers, administrative boilerplate, or anything
  not useful for understanding the death

Also extract the date the sentence refers to, if any, as YYYY-MM-DD. Use the
context sentences only to resolve a date or a pronoun; never classify the
context sentences themselves.

"quote" must be copied character-for-character from the TARGET sentence: the
shortest contiguous span that carries the fact, or the whole sentence. Never
paraphrase, correct spelling, or join words from different places. Use null to
mean the whole sentence.

Output schema (one JSON object, nothing else):
{"category": "<one of the categories>", "date": "YYYY-MM-DD" | null, "confidence": <float 0.0-1.0>, "quote": "<exact span>" | null}

Example:
TARGET: "Maria died on March 7, 2024."
{"category": "timeline_event", "date": "2024-03-07", "confidence": 0.9, "quote": null}
"""

SENTENCE_CLASSIFICATION_USER_PROMPT = r"""
Context (sentences before):
"{before}"

TARGET sentence to classify:
"{sentence}"

Context (sentences after):
"{after}"

Respond ONLY with the JSON object.
"""


def build_sentence_prompt(sentence: str, before: str, after: str) -> str:
    """Render the user prompt for one target sentence."""
    return SENTENCE_CLASSIFICATION_USER_PROMPT.format(
        sentence=sentence,
        before=before,
        after=after,
    ).strip()
