import asyncio

import pytest

from assembler.chunk_store import ChunkStore

from conftest import FakeOracle, settle_soon


@pytest.fixture
def store(oracle):
    return ChunkStore(oracle)


class TestIngestion:
    def test_blank_text_is_ignored(self, store):
        assert store.add_chunk("", True) is None
        assert store.add_chunk("   ", False) is None
        assert store.get_stats().total_chunks == 0

    @pytest.mark.asyncio
    async def test_raw_transcript_ends_with_new_text(self, store):
        store.add_chunk("hello there", False)
        store.add_chunk("  general kenobi  ", False)
        assert store.get_raw_transcript() == "hello there general kenobi"
        assert store.get_raw_transcript().endswith("general kenobi")
        await store.wait_settled()

    @pytest.mark.asyncio
    async def test_short_interim_stays_pending(self, store, oracle):
        store.add_chunk("hi there", False)
        await store.wait_settled()
        assert oracle.calls == []
        assert store.get_stats().processed_chunks == 0

    @pytest.mark.asyncio
    async def test_long_interim_triggers_correction(self, store, oracle):
        store.add_chunk("this is long enough", False)
        await store.wait_settled()
        assert [text for text, _ in oracle.calls] == ["this is long enough"]

    @pytest.mark.asyncio
    async def test_final_short_chunk_triggers_correction(self, store, oracle):
        chunk_id = store.add_chunk("ok", True)
        await store.wait_settled()
        chunk = store.get_chunks()[0]
        assert chunk.id == chunk_id
        assert chunk.corrected == "OK"
        assert chunk.is_processing is False

    @pytest.mark.asyncio
    async def test_ids_unique_and_timestamps_non_decreasing(self, store):
        for word in ["a", "b", "c", "d"]:
            store.add_chunk(word)
        chunks = store.get_chunks()
        assert len({c.id for c in chunks}) == 4
        stamps = [c.timestamp for c in chunks]
        assert stamps == sorted(stamps)

    @pytest.mark.asyncio
    async def test_get_chunks_returns_copies(self, store):
        store.add_chunk("abc")
        store.get_chunks()[0].text = "mutated"
        assert store.get_raw_transcript() == "abc"


class TestProcessing:
    @pytest.mark.asyncio
    async def test_duplicate_triggers_call_oracle_once(self, store, oracle):
        chunk_id = store.add_chunk("hi", False)
        await asyncio.gather(store.process_chunk(chunk_id), store.process_chunk(chunk_id))
        await store.process_chunk(chunk_id)
        assert len(oracle.calls) == 1

    @pytest.mark.asyncio
    async def test_second_call_sees_in_flight_chunk(self, store, oracle):
        oracle.gates["hi"] = asyncio.Event()
        chunk_id = store.add_chunk("hi", False)
        first = asyncio.create_task(store.process_chunk(chunk_id))
        await settle_soon()
        assert store.get_stats().processing_chunks == 1
        await store.process_chunk(chunk_id)
        oracle.gates["hi"].set()
        await first
        assert len(oracle.calls) == 1

    @pytest.mark.asyncio
    async def test_oracle_failure_falls_back_to_raw_text(self):
        def explode(text, context):
            raise RuntimeError("oracle down")

        store = ChunkStore(FakeOracle(respond=explode))
        store.add_chunk("keep this text", True)
        await store.wait_settled()

        chunk = store.get_chunks()[0]
        assert chunk.corrected == "keep this text"
        assert chunk.confidence == 0
        assert chunk.is_processing is False
        assert store.get_stats().processed_chunks == 1

    @pytest.mark.asyncio
    async def test_context_contains_prior_chunks_in_order(self, store, oracle):
        store.add_chunk("alpha", True)
        await store.wait_settled()
        store.add_chunk("beta", False)
        store.add_chunk("gamma", True)
        await store.wait_settled()

        text, context = oracle.calls[-1]
        assert text == "gamma"
        assert context == ["ALPHA", "beta"]

    @pytest.mark.asyncio
    async def test_context_cap_keeps_most_recent(self, oracle):
        store = ChunkStore(oracle, context_max_chars=13)
        for text in ["first part", "second", "third"]:
            store.add_chunk(text, False)
        store.add_chunk("fourth", True)
        await store.wait_settled()
        assert oracle.calls[-1] == ("fourth", ["second", "third"])

    @pytest.mark.asyncio
    async def test_change_hook_fires_on_start_and_completion(self, oracle):
        seen = []
        store = ChunkStore(oracle, on_change=lambda: seen.append(store.get_stats().processing_chunks))
        store.add_chunk("ready", True)
        await store.wait_settled()
        assert seen == [1, 0]


class TestStaleCompletions:
    @pytest.mark.asyncio
    async def test_result_after_clear_is_discarded(self, store, oracle):
        oracle.gates["slow chunk"] = asyncio.Event()
        store.add_chunk("slow chunk", True)
        await settle_soon()
        assert store.get_stats().processing_chunks == 1

        store.clear()
        oracle.gates["slow chunk"].set()
        await store.wait_settled()

        assert store.get_stats().total_chunks == 0
        assert store.get_processed_transcript() == ""
        assert store.get_raw_transcript() == ""

    @pytest.mark.asyncio
    async def test_result_after_clear_does_not_touch_new_chunks(self, store, oracle):
        oracle.gates["slow chunk"] = asyncio.Event()
        store.add_chunk("slow chunk", True)
        await settle_soon()
        store.clear()
        store.add_chunk("fresh", False)
        oracle.gates["slow chunk"].set()
        await store.wait_settled()

        assert store.get_processed_transcript() == "fresh"
        assert store.get_stats().processed_chunks == 0

    @pytest.mark.asyncio
    async def test_out_of_order_completion_settles_on_latest_chunk(self):
        oracle = FakeOracle(respond=lambda text, context: " ".join([*context, text]).capitalize())
        store = ChunkStore(oracle)
        oracle.gates["one two"] = asyncio.Event()
        oracle.gates["three"] = asyncio.Event()
        store.add_chunk("one two", True)
        store.add_chunk("three", True)
        await settle_soon()

        oracle.gates["three"].set()
        await settle_soon()
        assert store.get_processed_transcript() == "One two three"

        oracle.gates["one two"].set()
        await store.wait_settled()
        assert store.get_processed_transcript() == "One two three"


class TestTranscripts:
    @pytest.mark.asyncio
    async def test_processed_falls_back_to_raw(self, store):
        store.add_chunk("one", False)
        store.add_chunk("two", False)
        assert store.get_processed_transcript() == "one two"

    @pytest.mark.asyncio
    async def test_processed_uses_latest_correction_plus_pending_tail(self):
        oracle = FakeOracle(respond=lambda text, context: "In the meeting, we decided to buy 100 GPUs.")
        store = ChunkStore(oracle)
        store.add_chunk("in meeting we dccided to buy 500 gpus", True)
        store.add_chunk("sorry 100 gpus", True)
        await store.wait_settled()
        store.add_chunk("and", False)

        assert store.get_processed_transcript() == "In the meeting, we decided to buy 100 GPUs. and"

    @pytest.mark.asyncio
    async def test_clear_is_total(self, store):
        store.add_chunk("something said", True)
        await store.wait_settled()
        store.clear()
        assert store.get_stats().total_chunks == 0
        assert store.get_processed_transcript() == ""
        assert store.get_raw_transcript() == ""

    @pytest.mark.asyncio
    async def test_stats(self):
        answers = {"exact": "exact", "fix me": "totally different"}
        store = ChunkStore(FakeOracle(respond=lambda text, context: answers[text]))
        store.add_chunk("exact", True)
        store.add_chunk("fix me", True)
        store.add_chunk("pending", False)
        await store.wait_settled()

        stats = store.get_stats()
        assert stats.total_chunks == 3
        assert stats.processed_chunks == 2
        assert stats.processing_chunks == 0
        assert stats.average_confidence == pytest.approx((1.0 + 0.3) / 2)

    @pytest.mark.asyncio
    async def test_average_confidence_zero_without_scores(self, store):
        store.add_chunk("pending")
        assert store.get_stats().average_confidence == 0

    @pytest.mark.asyncio
    async def test_reprocess_all_runs_in_order(self, store, oracle):
        store.add_chunk("first", False)
        store.add_chunk("second", True)
        await store.wait_settled()
        oracle.calls.clear()

        await store.reprocess_all()

        assert [text for text, _ in oracle.calls] == ["first", "second"]
        assert oracle.calls[1][1] == ["FIRST"]
        assert store.get_stats().processed_chunks == 2

    @pytest.mark.asyncio
    async def test_reprocess_all_supersedes_scheduled_corrections(self, store, oracle):
        store.add_chunk("alpha", True)
        store.add_chunk("beta", True)

        await store.reprocess_all()

        assert oracle.calls == [("alpha", []), ("beta", ["ALPHA"])]
        stats = store.get_stats()
        assert stats.processing_chunks == 0
        assert stats.processed_chunks == 2

    @pytest.mark.asyncio
    async def test_reprocess_all_discards_in_flight_correction(self):
        oracle = FakeOracle(respond=lambda text, context: " ".join([*context, text]).upper())
        store = ChunkStore(oracle)
        oracle.gates["beta"] = asyncio.Event()
        store.add_chunk("alpha", True)
        store.add_chunk("beta", True)
        await settle_soon()
        assert store.get_stats().processing_chunks == 1

        oracle.gates["beta"].set()
        await store.reprocess_all()
        await store.wait_settled()

        assert oracle.calls[-2:] == [("alpha", []), ("beta", ["ALPHA"])]
        assert store.get_stats().processing_chunks == 0
        assert store.get_processed_transcript() == "ALPHA BETA"

    @pytest.mark.asyncio
    async def test_process_batch_corrects_each_chunk_once(self, store, oracle):
        await store.process_batch(["one", "two", "", "three"])
        await store.wait_settled()

        assert sorted(text for text, _ in oracle.calls) == ["one", "three", "two"]
        chunks = store.get_chunks()
        assert [c.is_final for c in chunks] == [False, False, True]
        assert all(c.corrected is not None for c in chunks)

    @pytest.mark.asyncio
    async def test_is_service_available_delegates(self):
        assert await ChunkStore(FakeOracle(available=False)).is_service_available() is False
