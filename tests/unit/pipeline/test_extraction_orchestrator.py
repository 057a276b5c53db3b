"""Unit tests for ExtractionOrchestrator with a stub model and in-memory storage."""

import asyncio
import json
import re
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.core.config import ExtractionSettings
from app.core.exceptions import (
    APIClientError,
    DatabaseError,
    DocumentNotFoundError,
    NoModelAvailableError,
)
from app.core.unified_llm import ProviderChain
from app.schemas.quote import BoundingBox, QuoteCategory
from app.services.extraction.extraction_orchestrator import ExtractionOrchestrator, RunState
from app.services.extraction.pdf_text_extractor import TextRun

MARIA_TEXT = "Maria died on March 7, 2024. Officials said nothing."
IRRELEVANT = '{"category": "irrelevant", "date": null, "confidence": 0.9}'
TARGET_MARKER = 'TARGET sentence to classify:\n"'


def target_of(user_prompt: str) -> str:
    start = user_prompt.index(TARGET_MARKER) + len(TARGET_MARKER)
    return user_prompt[start:user_prompt.index('"\n', start)]


def answer(category, confidence, date=None, quote=None) -> str:
    return json.dumps({"category": category, "date": date, "confidence": confidence, "quote": quote})


class StubModel:
    """Deterministic model keyed by target sentence."""

    model_name = "stub:deterministic"

    def __init__(self, responses=None, default=IRRELEVANT, errors=(), slow=(), delay=0.0):
        self.responses = responses or {}
        self.default = default
        self.errors = set(errors)
        self.slow = set(slow)
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def complete(self, system_prompt, user_prompt, temperature=0.0):
        target = target_of(user_prompt)
        self.calls.append(target)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if target in self.slow:
                await asyncio.sleep(10)
            if self.delay:
                await asyncio.sleep(self.delay)
            if target in self.errors:
                raise APIClientError(f"provider failed for {target[:10]}")
            return self.responses.get(target, self.default)
        finally:
            self.in_flight -= 1


class InMemoryStorage:
    """Implements the extraction storage capability over dicts."""

    def __init__(self):
        self.documents = {}
        self.quotes = {}
        self.replace_calls = 0
        self.fail_on_replace = False

    def add(self, document):
        document_id = uuid4()
        self.documents[document_id] = document
        return document_id

    async def get_document(self, document_id):
        return self.documents.get(document_id)

    async def replace_quotes(self, document_id, candidates, case_id, extraction_model):
        self.replace_calls += 1
        if self.fail_on_replace:
            raise DatabaseError("connection lost")

        rows = [
            SimpleNamespace(
                document_id=document_id,
                case_id=case_id,
                quote_text=c.quote_text,
                char_start=c.char_start,
                char_end=c.char_end,
                page_number=c.page_number,
                bounding_boxes=[b.model_dump() for b in c.bounding_boxes],
                category=c.category.value,
                event_date=c.event_date,
                confidence_score=c.confidence,
                extracted_by=extraction_model,
            )
            for c in candidates
        ]
        self.quotes[document_id] = rows
        document = self.documents[document_id]
        document.processed = True
        document.extraction_model = extraction_model
        return rows


def runs_for(text, page_offsets):
    """Word runs with fake boxes, one line per page."""
    runs = []
    for match in re.finditer(r"\S+", text):
        page = sum(1 for offset in page_offsets if offset <= match.start())
        runs.append(TextRun(
            text=match.group(0),
            char_start=match.start(),
            char_end=match.end(),
            page=page,
            bbox=BoundingBox(x0=float(match.start()), y0=700.0, x1=float(match.end()), y1=712.0),
        ).to_dict())
    return runs


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def extraction_settings():
    return ExtractionSettings(
        batch_size=5,
        min_confidence=0.5,
        min_sentence_length=20,
        context_sentences=2,
        call_timeout_seconds=0.5,
        run_timeout_seconds=30.0,
        temperature=0.0,
    )


def maria_model(**kwargs):
    return StubModel(
        responses={
            "Maria died on March 7, 2024.": answer("timeline_event", 0.9, date="2024-03-07"),
            "Officials said nothing.": answer("official_statement", 0.6),
        },
        **kwargs,
    )


@pytest.mark.asyncio
async def test_maria_scenario(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(MARIA_TEXT, case_id="case-1"))
    orchestrator = ExtractionOrchestrator(maria_model(), storage, extraction_settings)

    result = await orchestrator.run(document_id)

    assert result.state == RunState.DONE
    assert result.sentences_found == 2
    assert result.sentences_classified == 2
    assert result.quotes_persisted == 2

    first, second = result.quotes
    assert (first.char_start, first.char_end) == (0, 28)
    assert first.quote_text == "Maria died on March 7, 2024."
    assert first.category == QuoteCategory.TIMELINE_EVENT.value
    assert first.event_date == "2024-03-07"
    assert first.confidence_score == 0.9
    assert first.case_id == "case-1"

    assert (second.char_start, second.char_end) == (29, 52)
    assert second.category == QuoteCategory.OFFICIAL_STATEMENT.value
    assert second.event_date is None

    document = storage.documents[document_id]
    assert document.processed is True
    assert document.extraction_model == "stub:deterministic"


@pytest.mark.asyncio
async def test_persisted_quotes_reproduce_source_text(storage, extraction_settings, document_factory):
    text = (
        "The detainee was booked on January 3, 2023. He reported chest pain twice that week. "
        "Staff did not call a doctor. He was found unresponsive on January 9, 2023."
    )
    document_id = storage.add(document_factory(text))
    model = StubModel(default=answer("timeline_event", 0.8))

    result = await ExtractionOrchestrator(model, storage, extraction_settings).run(document_id)

    assert result.quotes_persisted == 4
    for quote in result.quotes:
        assert text[quote.char_start:quote.char_end].strip() == quote.quote_text.strip()


@pytest.mark.asyncio
async def test_fabricated_quote_is_rejected(storage, extraction_settings, document_factory):
    text = MARIA_TEXT + " The family was not informed."
    document_id = storage.add(document_factory(text))
    model = maria_model()
    model.responses["The family was not informed."] = answer(
        "timeline_event", 0.95, quote="Maria was killed"
    )

    result = await ExtractionOrchestrator(model, storage, extraction_settings).run(document_id)

    assert result.candidates == 3
    assert result.quotes_validated == 2
    assert [q.quote_text for q in result.quotes] == [
        "Maria died on March 7, 2024.",
        "Officials said nothing.",
    ]
    assert len(result.rejections) == 1
    assert result.rejections[0].expected_prefix == "Maria was killed"


@pytest.mark.asyncio
async def test_quote_span_inside_sentence(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(MARIA_TEXT))
    model = StubModel(responses={
        "Maria died on March 7, 2024.": answer("timeline_event", 0.9, quote="died on March 7, 2024"),
    })

    result = await ExtractionOrchestrator(model, storage, extraction_settings).run(document_id)

    (quote,) = result.quotes
    assert (quote.char_start, quote.char_end) == (6, 27)
    assert MARIA_TEXT[6:27] == quote.quote_text


@pytest.mark.asyncio
async def test_rerun_replaces_instead_of_accumulating(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(MARIA_TEXT))
    orchestrator = ExtractionOrchestrator(maria_model(), storage, extraction_settings)

    first = await orchestrator.run(document_id)
    second = await orchestrator.run(document_id)

    def snapshot(quotes):
        return [(q.quote_text, q.char_start, q.char_end, q.category) for q in quotes]

    assert storage.replace_calls == 2
    assert snapshot(first.quotes) == snapshot(second.quotes)
    assert len(storage.quotes[document_id]) == 2


@pytest.mark.asyncio
async def test_short_sentence_never_sent(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory("Too short. " + MARIA_TEXT))
    model = maria_model()

    result = await ExtractionOrchestrator(model, storage, extraction_settings).run(document_id)

    assert "Too short." not in model.calls
    assert all(q.quote_text != "Too short." for q in result.quotes)
    assert result.sentences_found == 3


@pytest.mark.asyncio
async def test_malformed_json_in_batch_of_five(storage, extraction_settings, document_factory):
    sentences = [f"Sentence number {n} describes an event in detail." for n in range(1, 6)]
    document_id = storage.add(document_factory(" ".join(sentences)))
    model = StubModel(
        responses={sentences[2]: '{"category": "timeline_event", "confidence": '},
        default=answer("timeline_event", 0.9),
    )

    result = await ExtractionOrchestrator(model, storage, extraction_settings).run(document_id)

    assert len(model.calls) == 5
    assert result.candidates == 4
    assert result.quotes_persisted == 4
    assert sentences[2] not in [q.quote_text for q in result.quotes]


@pytest.mark.asyncio
async def test_timed_out_sentence_is_dropped(storage, extraction_settings, document_factory):
    sentences = [f"Witness number {n} gave a statement to investigators." for n in range(1, 7)]
    document_id = storage.add(document_factory(" ".join(sentences)))
    model = StubModel(default=answer("official_statement", 0.8), slow={sentences[3]})
    settings = extraction_settings.model_copy(update={"call_timeout_seconds": 0.1})

    result = await ExtractionOrchestrator(model, storage, settings).run(document_id)

    assert result.state == RunState.DONE
    assert result.quotes_persisted == 5
    assert sentences[3] not in [q.quote_text for q in result.quotes]


@pytest.mark.asyncio
async def test_batches_bound_concurrency(storage, extraction_settings, document_factory):
    sentences = [f"Guard number {n} checked the cell during the night." for n in range(1, 8)]
    document_id = storage.add(document_factory(" ".join(sentences)))
    model = StubModel(default=answer("timeline_event", 0.9), delay=0.01)
    settings = extraction_settings.model_copy(update={"batch_size": 2})

    result = await ExtractionOrchestrator(model, storage, settings).run(document_id)

    assert model.max_in_flight == 2
    assert [q.quote_text for q in result.quotes] == sentences


@pytest.mark.asyncio
async def test_run_deadline_skips_remaining_sentences(storage, extraction_settings, document_factory):
    sentences = [f"Report entry {n} was written by the duty officer." for n in range(1, 5)]
    document_id = storage.add(document_factory(" ".join(sentences)))
    model = StubModel(default=answer("timeline_event", 0.9), delay=0.05)
    settings = extraction_settings.model_copy(
        update={"batch_size": 1, "run_timeout_seconds": 0.08}
    )

    result = await ExtractionOrchestrator(model, storage, settings).run(document_id)

    assert result.state == RunState.DONE
    assert 0 < result.sentences_skipped < 4
    assert result.quotes_persisted == 4 - result.sentences_skipped
    assert storage.documents[document_id].processed is True


@pytest.mark.asyncio
async def test_pages_and_boxes_attached(storage, extraction_settings, document_factory):
    text = "Maria died on March 7, 2024.\n\nOfficials said nothing."
    page_offsets = [0, 30]
    document_id = storage.add(document_factory(
        text, page_offsets=page_offsets, text_runs=runs_for(text, page_offsets)
    ))

    result = await ExtractionOrchestrator(maria_model(), storage, extraction_settings).run(document_id)

    first, second = result.quotes
    assert first.page_number == 1
    assert second.page_number == 2
    assert [p["page_number"] for p in second.bounding_boxes] == [2]
    assert len(second.bounding_boxes[0]["boxes"]) == 3


@pytest.mark.asyncio
async def test_case_id_override(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(MARIA_TEXT, case_id="original"))

    result = await ExtractionOrchestrator(maria_model(), storage, extraction_settings).run(
        document_id, case_id="override"
    )

    assert {q.case_id for q in result.quotes} == {"override"}


@pytest.mark.asyncio
async def test_empty_provider_chain_fails_run(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(MARIA_TEXT))

    with pytest.raises(NoModelAvailableError):
        await ExtractionOrchestrator(ProviderChain([]), storage, extraction_settings).run(document_id)

    assert storage.replace_calls == 0
    assert storage.documents[document_id].processed is False


@pytest.mark.asyncio
async def test_every_call_failing_fails_run(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(MARIA_TEXT))
    model = StubModel(errors={"Maria died on March 7, 2024.", "Officials said nothing."})

    with pytest.raises(NoModelAvailableError):
        await ExtractionOrchestrator(model, storage, extraction_settings).run(document_id)

    assert storage.documents[document_id].processed is False


@pytest.mark.asyncio
async def test_single_provider_failure_is_not_fatal(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(MARIA_TEXT))
    model = maria_model(errors={"Officials said nothing."})

    result = await ExtractionOrchestrator(model, storage, extraction_settings).run(document_id)

    assert [q.quote_text for q in result.quotes] == ["Maria died on March 7, 2024."]


@pytest.mark.asyncio
async def test_persistence_failure_leaves_document_unprocessed(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(MARIA_TEXT))
    storage.fail_on_replace = True

    with pytest.raises(DatabaseError):
        await ExtractionOrchestrator(maria_model(), storage, extraction_settings).run(document_id)

    assert storage.documents[document_id].processed is False


@pytest.mark.asyncio
async def test_missing_document(storage, extraction_settings):
    with pytest.raises(DocumentNotFoundError):
        await ExtractionOrchestrator(maria_model(), storage, extraction_settings).run(uuid4())


@pytest.mark.asyncio
async def test_document_without_text(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(""))
    model = maria_model()

    result = await ExtractionOrchestrator(model, storage, extraction_settings).run(document_id)

    assert result.sentences_found == 0
    assert result.quotes == []
    assert model.calls == []
    assert storage.documents[document_id].processed is True


class HungModel:
    """Provider that never answers in time."""

    model_name = "stub:hung"

    def __init__(self):
        self.calls = 0

    async def complete(self, system_prompt, user_prompt, temperature=0.0):
        self.calls += 1
        await asyncio.sleep(10)
        return IRRELEVANT


@pytest.mark.asyncio
async def test_hung_primary_falls_back_to_secondary(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(MARIA_TEXT))
    primary = HungModel()
    secondary = maria_model()
    chain = ProviderChain([primary, secondary], provider_timeout_seconds=0.1)
    settings = extraction_settings.model_copy(update={"call_timeout_seconds": 0.1})

    result = await ExtractionOrchestrator(chain, storage, settings).run(document_id)

    assert result.state == RunState.DONE
    assert primary.calls == 2
    assert len(secondary.calls) == 2
    assert [q.quote_text for q in result.quotes] == [
        "Maria died on March 7, 2024.",
        "Officials said nothing.",
    ]
    assert result.model == "stub:deterministic"


@pytest.mark.asyncio
async def test_every_call_timing_out_fails_run(storage, extraction_settings, document_factory):
    document_id = storage.add(document_factory(MARIA_TEXT))
    storage.quotes[document_id] = ["previous quote"]
    model = StubModel(slow={"Maria died on March 7, 2024.", "Officials said nothing."})
    settings = extraction_settings.model_copy(update={"call_timeout_seconds": 0.1})

    with pytest.raises(NoModelAvailableError):
        await ExtractionOrchestrator(model, storage, settings).run(document_id)

    assert storage.replace_calls == 0
    assert storage.quotes[document_id] == ["previous quote"]
    assert storage.documents[document_id].processed is False


@pytest.mark.asyncio
async def test_in_flight_batch_stops_at_run_deadline(storage, extraction_settings, document_factory):
    sentences = [f"Cell check number {n} was logged at midnight." for n in range(1, 4)]
    document_id = storage.add(document_factory(" ".join(sentences)))
    model = StubModel(slow=set(sentences))
    settings = extraction_settings.model_copy(
        update={"call_timeout_seconds": 5.0, "run_timeout_seconds": 0.1}
    )

    started = asyncio.get_running_loop().time()
    result = await ExtractionOrchestrator(model, storage, settings).run(document_id)
    elapsed = asyncio.get_running_loop().time() - started

    assert elapsed < 1.0
    assert result.state == RunState.DONE
    assert result.sentences_skipped == 3
    assert result.quotes == []
