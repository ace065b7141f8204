"""Tests for feedback storage and preference learning."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from ops_assistant.core.errors import ValidationError
from ops_assistant.core.feedback_learner import FeedbackLearner, normalize_verdict
from ops_assistant.core.schemas_feedback import Verdict


@pytest.fixture
def learner(store, clock):
    return FeedbackLearner(store, profile_ttl_seconds=300, clock=clock)


def test_normalize_verdict():
    assert normalize_verdict("Edited") == Verdict.EDITED
    assert normalize_verdict(Verdict.REJECTED) == Verdict.REJECTED
    assert normalize_verdict("thumbs-up") == Verdict.APPROVED
    assert normalize_verdict(None) == Verdict.APPROVED


def test_store_feedback_requires_summary_id(learner):
    with pytest.raises(ValidationError):
        learner.store_feedback("", "approved")
    with pytest.raises(ValidationError):
        learner.store_feedback("   ", "approved")


def test_unknown_verdict_stored_as_approved(learner, store):
    summary = store.add_summary("slack", "Daily digest")

    record = learner.store_feedback(summary["id"], "maybe")

    assert record.rating == Verdict.APPROVED
    assert store.tables["feedback"][0]["rating"] == "approved"


def test_store_feedback_writes_pattern_and_analytics(learner, store):
    summary = store.add_summary("zendesk", "Two urgent tickets")

    record = learner.store_feedback(summary["id"], "approved", user_id="op-1")

    assert record.id is not None
    assert record.user_id == "op-1"
    pattern = store.tables["feedback_patterns"][0]
    assert pattern["pattern_type"] == "approval"
    assert pattern["source"] == "zendesk"
    event = store.tables["feedback_analytics"][0]
    assert event["event_type"] == "feedback"
    assert event["rating"] == "approved"
    assert event["has_comment"] is False
    assert event["source"] == "zendesk"


def test_analytics_event_flags_comment(learner, store):
    summary = store.add_summary("slack", "Digest")

    learner.store_feedback(summary["id"], "rejected", comment="Missed the outage")

    event = store.tables["feedback_analytics"][0]
    assert event["rating"] == "rejected"
    assert event["has_comment"] is True


def test_edited_verdict_records_edit_analysis(learner, store):
    summary = store.add_summary("email", "Therefore, the invoice must be paid.")

    learner.store_feedback(summary["id"], "edited", comment="Hey, cool, thanks for paying the invoice!")

    analysis = store.tables["edit_analyses"][0]
    assert analysis["summary_id"] == summary["id"]
    assert analysis["tone_change"] == "formal to casual"


def test_edited_without_comment_skips_analysis(learner, store):
    summary = store.add_summary("email", "Body")

    learner.store_feedback(summary["id"], "edited")

    assert store.tables["edit_analyses"] == []


def test_rejection_counts_similar_rejections(learner, store):
    older = store.add_summary("slack", "Older digest")
    store.tables["feedback"].append(
        {
            "id": "f0",
            "summary_id": older["id"],
            "rating": "rejected",
            "created_at": older["created_at"],
        }
    )
    summary = store.add_summary("slack", "Newest digest")

    learner.store_feedback(summary["id"], "rejected", comment="Not useful")

    rejection = store.tables["rejection_analyses"][0]
    assert rejection["source"] == "slack"
    assert rejection["similar_rejections"] == 1


def test_primary_write_failure_returns_none(learner, store):
    summary = store.add_summary("slack", "Digest")
    store.fail("insert_feedback")

    assert learner.store_feedback(summary["id"], "approved") is None
    assert store.tables["feedback_patterns"] == []


def test_missing_derived_tables_are_skipped(learner, store):
    summary = store.add_summary("email", "Therefore we proceed.")
    store.drop_table("feedback_patterns")
    store.drop_table("edit_analyses")
    store.drop_table("feedback_analytics")

    record = learner.store_feedback(summary["id"], "edited", comment="Cool, let's go!")

    assert record is not None
    assert store.tables["feedback"]


def test_side_effect_failure_does_not_fail_write(learner, store):
    summary = store.add_summary("email", "Body")
    store.fail("insert_analytics_event")

    record = learner.store_feedback(summary["id"], "approved")

    assert record is not None


def test_feedback_for_unknown_summary_still_stored(learner, store):
    record = learner.store_feedback("missing-summary", "approved")

    assert record is not None
    assert store.tables["feedback_patterns"] == []


def test_feedback_history(learner, store):
    summary = store.add_summary("slack", "Digest")
    learner.store_feedback(summary["id"], "approved")
    learner.store_feedback(summary["id"], "rejected")

    history = learner.get_feedback_history(summary["id"])

    assert [r.rating for r in history] == [Verdict.REJECTED, Verdict.APPROVED]
    assert learner.get_feedback_history("") == []


def test_feedback_stats(learner, store):
    slack = store.add_summary("slack", "Digest")
    email = store.add_summary("email", "Inbox")
    learner.store_feedback(slack["id"], "approved")
    learner.store_feedback(slack["id"], "approved")
    learner.store_feedback(email["id"], "edited", comment="Shorter")
    learner.store_feedback(email["id"], "rejected")

    stats = learner.get_feedback_stats(30)

    assert stats.total == 4
    assert stats.approved == 2
    assert stats.approval_rate == 50.0
    assert stats.edit_rate == 25.0
    assert stats.rejection_rate == 25.0
    assert stats.sources == {"slack": 2, "email": 2}
    assert sum(stats.time_distribution.values()) == 4
    assert store.call_count("get_summaries_by_ids") == 1


def test_feedback_stats_zero_day_window(learner, store):
    summary = store.add_summary("slack", "Digest")
    two_days_ago = (datetime.now(timezone.utc) - timedelta(days=2)).isoformat()
    store.tables["feedback"].append(
        {"id": "f-old", "summary_id": summary["id"], "rating": "approved", "created_at": two_days_ago}
    )

    assert learner.get_feedback_stats(0).total == 0
    assert learner.get_feedback_stats().total == 1


def test_feedback_stats_empty_on_store_failure(learner, store):
    store.fail("list_feedback")

    stats = learner.get_feedback_stats()

    assert stats.total == 0
    assert stats.approval_rate == 0.0


def test_profile_defaults_with_no_history(learner):
    profile = learner.get_preference_profile()

    assert (profile.tone, profile.length, profile.style) == ("neutral", "medium", "professional")
    assert profile.analyses_considered == 0


def test_profile_cached_within_ttl(learner, store, clock):
    learner.get_preference_profile()
    clock.advance(299)
    learner.get_preference_profile()

    assert learner.recompute_count == 1
    assert store.call_count("list_edit_analyses") == 1

    clock.advance(2)
    learner.get_preference_profile()
    assert learner.recompute_count == 2


def test_new_feedback_invalidates_profile(learner, store):
    summary = store.add_summary("email", "Therefore, the invoice is due.")
    first = learner.get_preference_profile()
    assert first.tone == "neutral"

    learner.store_feedback(summary["id"], "edited", comment="Hey, thanks, cheers for the payment!")
    second = learner.get_preference_profile()

    assert learner.recompute_count == 2
    assert second.tone == "casual"
    assert second.analyses_considered == 1


def test_profile_learns_conciseness(learner, store):
    for i in range(3):
        summary = store.add_summary("slack", f"A very long and winding summary number {i} " * 5)
        learner.store_feedback(summary["id"], "edited", comment=f"Short {i}.")

    assert learner.get_preference_profile().length == "concise"


def test_missing_edit_analyses_table_uses_defaults(learner, store):
    store.drop_table("edit_analyses")

    profile = learner.get_preference_profile()

    assert profile.style == "professional"


def test_invalidation_during_recompute_is_not_cached(store, clock):
    learner = FeedbackLearner(store, clock=clock)
    entered = threading.Event()
    release = threading.Event()
    original = store.list_edit_analyses

    def slow_list(limit: int = 20):
        entered.set()
        release.wait(timeout=5)
        return original(limit)

    store.list_edit_analyses = slow_list

    worker = threading.Thread(target=learner.get_preference_profile)
    worker.start()
    assert entered.wait(timeout=5)
    learner.invalidate_preferences()
    release.set()
    worker.join(timeout=5)

    store.list_edit_analyses = original
    learner.get_preference_profile()

    # The stale result was discarded, so the second call recomputed
    assert learner.recompute_count == 2
