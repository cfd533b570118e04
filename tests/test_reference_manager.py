import asyncio
import gc
from datetime import date

import pytest

from reference_engine.core.models import AddReferenceOptions, DuplicateHandling, SearchResult
from reference_engine.exceptions import StoreError
from reference_engine.services.reference_manager import (
    PROMPT_MESSAGE,
    ConversationLocks,
    SKIP_MESSAGE,
    SuggestionReferenceManager,
)
from reference_engine.storage import InMemoryReferenceStore, ReferenceListResponse
from reference_engine.storage.models import ReferenceInput, ReferenceType


def _result(title="Attention is all you need", authors=("Ashish Vaswani", "Noam Shazeer"), **kwargs):
    kwargs.setdefault("confidence", 0.9)
    return SearchResult(title=title, authors=authors, **kwargs)


def _run(coro):
    return asyncio.run(coro)


class FailingCreateStore(InMemoryReferenceStore):
    def __init__(self, failing_titles=()):
        super().__init__()
        self.failing_titles = set(failing_titles)

    async def create_reference(self, data):
        if not self.failing_titles or data.title in self.failing_titles:
            raise StoreError("database unavailable")
        return await super().create_reference(data)


class UnreadableStore(InMemoryReferenceStore):
    async def get_references_for_conversation(self, conversation_id):
        return ReferenceListResponse(success=False, error="permission denied")


class SlowStore(InMemoryReferenceStore):
    async def get_references_for_conversation(self, conversation_id):
        await asyncio.sleep(0)
        return await super().get_references_for_conversation(conversation_id)

    async def create_reference(self, data):
        await asyncio.sleep(0)
        return await super().create_reference(data)


@pytest.fixture
def store():
    return InMemoryReferenceStore()


@pytest.fixture
def manager(store):
    return SuggestionReferenceManager(store)


def test_adds_reference_when_library_is_empty(manager, store):
    outcome = _run(manager.add_from_search_result(_result(journal="NeurIPS", year=2017), "c1"))

    assert outcome.success is True
    assert outcome.is_duplicate is False
    assert outcome.reference.conversation_id == "c1"
    assert outcome.reference.journal == "NeurIPS"
    assert outcome.reference.publication_date == date(2017, 1, 1)
    assert outcome.reference.type is ReferenceType.JOURNAL_ARTICLE
    assert outcome.reference.metadata_confidence == pytest.approx(0.9)
    assert len(store) == 1


def test_low_confidence_is_rejected_before_touching_the_store(manager, store):
    outcome = _run(manager.add_from_search_result(_result(confidence=0.3), "c1", {"minConfidence": 0.5}))

    assert outcome.success is False
    assert "confidence" in outcome.error
    assert "below minimum threshold" in outcome.error
    assert len(store) == 0


def test_merge_fills_missing_doi_on_existing_reference(manager, store):
    first = _run(manager.add_from_search_result(_result(), "c1"))

    outcome = _run(
        manager.add_from_search_result(
            _result(doi="10.1234/x"), "c1", {"duplicate_handling": "merge"}
        )
    )

    assert outcome.success is True
    assert outcome.is_duplicate is True
    assert outcome.reference.id == first.reference.id
    assert outcome.reference.doi == "10.1234/x"
    assert outcome.duplicate_reference.doi is None
    assert outcome.merge_options.conflict_for("doi") is not None
    assert len(store) == 1


def test_merge_without_differences_returns_existing_reference(manager, store):
    first = _run(manager.add_from_search_result(_result(), "c1"))

    outcome = _run(manager.add_from_search_result(_result(), "c1", {"duplicateHandling": "merge"}))

    assert outcome.success is True
    assert outcome.reference == first.reference
    assert outcome.merge_options.conflicts == []


def test_batch_collapses_in_batch_duplicates(manager, store):
    results = [
        _result(),
        _result(title="A completely different paper", authors=("Someone Else",)),
        _result(),
    ]

    outcomes = _run(manager.add_multiple_from_search_results(results, "c1"))

    assert len(store) == 2
    assert len(outcomes) == 2
    assert all(outcome.success for outcome in outcomes)
    assert [outcome.reference.title for outcome in outcomes] == [
        "Attention is all you need",
        "A completely different paper",
    ]


def test_prompt_user_reports_conflicts_without_writing(manager, store):
    _run(manager.add_from_search_result(_result(journal="NeurIPS"), "c1"))

    outcome = _run(manager.add_from_search_result(_result(journal="arXiv"), "c1"))

    assert outcome.success is False
    assert outcome.is_duplicate is True
    assert outcome.error == PROMPT_MESSAGE
    assert outcome.duplicate_reference.journal == "NeurIPS"
    assert len(outcome.merge_options.conflicts) >= 1
    assert outcome.merge_options.conflict_for("journal").new_value == "arXiv"
    assert len(store) == 1


def test_skip_is_idempotent(manager, store):
    options = AddReferenceOptions(duplicate_handling=DuplicateHandling.SKIP)
    first = _run(manager.add_from_search_result(_result(), "c1", options))

    second = _run(manager.add_from_search_result(_result(), "c1", options))
    third = _run(manager.add_from_search_result(_result(), "c1", options))

    assert first.success is True
    for outcome in (second, third):
        assert outcome.success is False
        assert outcome.is_duplicate is True
        assert outcome.error == SKIP_MESSAGE
        assert outcome.duplicate_reference.id == first.reference.id
    assert len(store) == 1


def test_add_anyway_stores_a_second_copy(manager, store):
    _run(manager.add_from_search_result(_result(), "c1"))

    outcome = _run(manager.add_from_search_result(_result(), "c1", {"duplicate_handling": "add-anyway"}))

    assert outcome.success is True
    assert outcome.is_duplicate is False
    assert len(store) == 2


def test_duplicates_are_scoped_to_conversation(manager, store):
    _run(manager.add_from_search_result(_result(), "c1"))

    outcome = _run(manager.add_from_search_result(_result(), "c2"))

    assert outcome.success is True
    assert len(store) == 2


def test_duplicate_check_can_be_disabled(manager, store):
    _run(manager.add_from_search_result(_result(), "c1"))

    outcome = _run(manager.add_from_search_result(_result(), "c1", {"check_duplicates": False}))

    assert outcome.success is True
    assert len(store) == 2


def test_store_failure_becomes_error_result():
    manager = SuggestionReferenceManager(FailingCreateStore())

    outcome = _run(manager.add_from_search_result(_result(), "c1"))

    assert outcome.success is False
    assert outcome.error == "database unavailable"


def test_batch_continues_past_individual_failures():
    store = FailingCreateStore(failing_titles={"Broken paper"})
    manager = SuggestionReferenceManager(store)
    results = [
        _result(title="First paper", authors=("A",)),
        _result(title="Broken paper", authors=("B",)),
        {"title": "Third paper", "authors": ["C"]},
        42,
    ]

    outcomes = _run(manager.add_multiple_from_search_results(results, "c1"))

    assert [outcome.success for outcome in outcomes] == [True, False, True, False]
    assert outcomes[1].error == "database unavailable"
    assert "Unsupported search result shape" in outcomes[3].error
    assert len(store) == 2


def test_unreadable_library_still_creates_reference():
    store = UnreadableStore()
    manager = SuggestionReferenceManager(store)

    outcome = _run(manager.add_from_search_result(_result(), "c1"))

    assert outcome.success is True
    assert outcome.is_duplicate is False
    assert len(store) == 1


def test_auto_populate_disabled_keeps_core_fields_only(manager):
    result = _result(journal="Nature", doi="10.1234/x", url="https://example.org", year=2020)

    outcome = _run(manager.add_from_search_result(result, "c1", {"autoPopulateMetadata": False}))

    reference = outcome.reference
    assert reference.title == "Attention is all you need"
    assert reference.authors == ["Ashish Vaswani", "Noam Shazeer"]
    assert reference.type is ReferenceType.JOURNAL_ARTICLE
    assert reference.journal is None
    assert reference.doi is None
    assert reference.url is None
    assert reference.publication_date is None


def test_metadata_mapping_defaults_to_accepted_confidence(manager):
    metadata = {
        "title": "On computable numbers",
        "authors": [{"firstName": "Alan", "lastName": "Turing"}],
        "publicationDate": "1936-11-12",
        "journal": "Proceedings of the London Mathematical Society",
    }

    outcome = _run(manager.add_from_search_result(metadata, "c1"))

    assert outcome.success is True
    assert outcome.reference.authors == ["Alan Turing"]
    assert outcome.reference.metadata_confidence == pytest.approx(0.8)
    assert outcome.reference.publication_date == date(1936, 11, 12)


def test_unknown_option_is_reported(manager, store):
    outcome = _run(manager.add_from_search_result(_result(), "c1", {"bogus": True}))

    assert outcome.success is False
    assert outcome.error == "Unknown option: bogus"
    assert len(store) == 0


def test_options_fall_back_to_configured_defaults(manager):
    options = manager.resolve_options({"minConfidence": None, "duplicateHandling": "skip"})

    assert options.min_confidence == 0.5
    assert options.duplicate_handling is DuplicateHandling.SKIP
    assert options.check_duplicates is True


def test_concurrent_adds_for_one_conversation_store_a_single_record():
    store = SlowStore()
    manager = SuggestionReferenceManager(store)
    options = {"duplicate_handling": "skip"}

    async def add_twice():
        return await asyncio.gather(
            manager.add_from_search_result(_result(), "c1", options),
            manager.add_from_search_result(_result(), "c1", options),
        )

    outcomes = _run(add_twice())

    assert len(store) == 1
    assert sorted(outcome.success for outcome in outcomes) == [False, True]


def test_find_existing_duplicate_prefers_direct_match(manager, store):
    async def scenario():
        await store.create_reference(
            ReferenceInput(conversation_id="c1", title="Unrelated", authors=["Z"], doi="10.1234/x")
        )
        target = await store.create_reference(
            ReferenceInput(conversation_id="c1", title="Attention is all you need", authors=["Ashish Vaswani", "Noam Shazeer"])
        )
        found = await manager.find_existing_duplicate(_result(), "c1")
        return target, found

    target, found = _run(scenario())

    assert found.id == target.id


def test_string_min_confidence_from_web_client_is_converted(manager, store):
    outcome = _run(manager.add_from_search_result(_result(confidence=0.4), "c1", {"minConfidence": "0.5"}))

    assert outcome.success is False
    assert "below minimum threshold (0.5)" in outcome.error
    assert len(store) == 0


@pytest.mark.parametrize("value", ["high", [0.5], 1.5, True])
def test_invalid_min_confidence_is_reported_not_raised(manager, store, value):
    outcome = _run(manager.add_from_search_result(_result(), "c1", {"minConfidence": value}))

    assert outcome.success is False
    assert "confidence" in outcome.error.lower()
    assert len(store) == 0


def test_invalid_duplicate_handling_is_reported(manager):
    outcome = _run(manager.add_from_search_result(_result(), "c1", {"duplicateHandling": "ignore"}))

    assert outcome.success is False
    assert outcome.error == "Invalid duplicate handling: 'ignore'"


def test_conversation_lock_is_shared_while_held_and_dropped_when_idle():
    locks = ConversationLocks()

    async def scenario():
        lock = locks.lock_for("c1")
        async with lock:
            same = locks.lock_for("c1") is lock
        other = locks.lock_for("c2") is lock
        del lock
        gc.collect()
        return same, other, len(locks._locks[asyncio.get_running_loop()])

    same, other, remaining = _run(scenario())

    assert same is True
    assert other is False
    assert remaining == 0
