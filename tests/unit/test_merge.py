"""Unit tests for the items reducer."""

from __future__ import annotations

import pytest

from pool_agent.agents.merge import is_empty, merge_item, merge_items
from pool_agent.agents.state import (
    Evidence,
    Pool,
    PoolItem,
    PostItem,
    SkipReason,
    TruthSocialPost,
    mark_ineligible,
)


def _post(post_id: str = "1", **fields) -> PostItem:
    return PostItem(id=post_id, payload=TruthSocialPost(id=post_id, content=f"post {post_id}"), **fields)


class TestIsEmpty:
    @pytest.mark.parametrize("value", [None, "", False, [], {}, frozenset()])
    def test_empty_values(self, value):
        assert is_empty(value)

    @pytest.mark.parametrize("value", ["x", True, 0, ["a"], {"k": 1}])
    def test_populated_values(self, value):
        assert not is_empty(value)


class TestMergeItem:
    def test_later_non_empty_value_wins(self):
        merged = merge_item(_post(betting_pool_idea="Old?"), _post(betting_pool_idea="New?"))
        assert merged.betting_pool_idea == "New?"

    def test_empty_update_keeps_current(self):
        merged = merge_item(_post(image_url="https://img/1.png"), _post())
        assert merged.image_url == "https://img/1.png"

    def test_payload_never_replaced(self):
        current = _post()
        update = PostItem(id="1", payload=TruthSocialPost(id="1", content="edited"))
        assert merge_item(current, update).payload.content == "post 1"

    def test_sticky_fields_keep_first_value(self):
        current = _post(transaction_hash="0xabc", pool_id="5")
        merged = merge_item(current, _post(transaction_hash="0xdef", pool_id="9"))
        assert merged.transaction_hash == "0xabc"
        assert merged.pool_id == "5"

    def test_sticky_fields_fill_when_empty(self):
        merged = merge_item(_post(), _post(transaction_hash="0xabc", pool_id="5"))
        assert (merged.transaction_hash, merged.pool_id) == ("0xabc", "5")

    def test_eligibility_never_restored(self):
        failed = mark_ineligible(_post(), SkipReason.FAILED_IDEA_GENERATION)
        merged = merge_item(failed, _post(betting_pool_idea="Late?"))
        assert merged.eligible is False
        assert merged.skip_reason == SkipReason.FAILED_IDEA_GENERATION

    def test_first_skip_reason_sticks(self):
        current = mark_ineligible(_post(), SkipReason.ALREADY_PROCESSED)
        update = mark_ineligible(_post(), SkipReason.BATCH_LIMIT)
        assert merge_item(current, update).skip_reason == SkipReason.ALREADY_PROCESSED

    def test_cleared_fields_reset_to_update_value(self):
        pool = Pool(id="7", question="Q?")
        current = PoolItem(id="7", payload=pool, evidence=[Evidence(url="u", summary="s")])
        update = PoolItem(id="7", payload=pool, evidence=[], cleared_fields=frozenset({"evidence"}))
        merged = merge_item(current, update)
        assert merged.evidence == []
        assert merged.cleared_fields == frozenset()

    def test_id_mismatch_raises(self):
        with pytest.raises(ValueError):
            merge_item(_post("1"), _post("2"))


class TestMergeItems:
    def test_new_ids_inserted_and_absent_ids_kept(self):
        current = {"1": _post("1")}
        merged = merge_items(current, {"2": _post("2")})
        assert set(merged) == {"1", "2"}
        assert merged["1"] is current["1"]

    def test_none_inputs(self):
        assert merge_items(None, None) == {}
        assert set(merge_items(None, {"1": _post("1")})) == {"1"}

    def test_key_must_match_item_id(self):
        with pytest.raises(ValueError):
            merge_items({}, {"1": _post("2")})

    def test_current_collection_not_mutated(self):
        current = {"1": _post("1")}
        merge_items(current, {"1": _post("1", betting_pool_idea="Q?")})
        assert current["1"].betting_pool_idea == ""

    def test_idempotent(self):
        current = {"1": _post("1"), "2": _post("2", transaction_hash="0x1")}
        update = {
            "1": _post("1", related_news=["headline"]),
            "2": mark_ineligible(_post("2"), SkipReason.ALREADY_PROCESSED),
        }
        once = merge_items(current, update)
        twice = merge_items(once, update)
        assert once == twice

    def test_parallel_research_updates_combine(self):
        current = {"1": _post("1")}
        news = {"1": _post("1", news_search_query="q1", related_news=["n"])}
        web = {"1": _post("1", web_search_query="q2", related_search_results=["w"])}
        merged = merge_items(merge_items(current, news), web)
        assert merged["1"].related_news == ["n"]
        assert merged["1"].related_search_results == ["w"]

    def test_sticky_fields_never_regress_across_stages(self):
        items = {"1": _post("1")}
        items = merge_items(items, {"1": _post("1", transaction_hash="0xabc", pool_id="3")})
        for later in (_post("1"), _post("1", betting_pool_idea="Q?"), mark_ineligible(_post("1"), SkipReason.TOO_OLD)):
            items = merge_items(items, {"1": later})
            assert items["1"].transaction_hash == "0xabc"
            assert items["1"].pool_id == "3"
