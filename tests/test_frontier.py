from __future__ import annotations

import pytest

from imgcrawl import EnqueueStatus, Frontier, FrontierLoopDetected


def test_seed_is_depth_one_and_fifo_order() -> None:
    frontier = Frontier(max_depth=3)

    frontier.seed("https://example.com/")
    frontier.enqueue_many(["https://example.com/a", "https://example.com/b"], depth=2)

    items = [frontier.dequeue() for _ in range(3)]
    assert [(item.key, item.depth) for item in items] == [
        ("https://example.com", 1),
        ("https://example.com/a", 2),
        ("https://example.com/b", 2),
    ]
    assert frontier.dequeue() is None


def test_item_keeps_fetch_url_case() -> None:
    frontier = Frontier(max_depth=2)

    result = frontier.enqueue("https://example.com/Gallery/Page.html#top", depth=1, referrer="https://example.com")

    assert result.accepted
    assert result.item.key == "https://example.com/gallery/page.html"
    assert result.item.url == "https://example.com/Gallery/Page.html"
    assert result.item.referrer == "https://example.com"


def test_rejects_pending_in_flight_and_visited_duplicates() -> None:
    frontier = Frontier(max_depth=3)
    frontier.seed("https://example.com")
    frontier.enqueue("https://example.com/a", depth=2)

    assert frontier.enqueue("https://EXAMPLE.com/a/", depth=2).status == EnqueueStatus.SKIPPED_PENDING

    seed = frontier.dequeue()
    assert frontier.enqueue("https://example.com/", depth=2).status == EnqueueStatus.SKIPPED_VISITED

    assert frontier.mark_visited(seed.key)
    assert not frontier.mark_visited(seed.key)
    assert frontier.is_visited("https://example.com/#x")
    assert frontier.enqueue("https://example.com", depth=2).status == EnqueueStatus.SKIPPED_VISITED
    assert len(frontier) == 1


def test_depth_and_invalid_urls_are_dropped() -> None:
    frontier = Frontier(max_depth=2)

    assert frontier.enqueue("https://example.com/deep", depth=3).status == EnqueueStatus.SKIPPED_DEPTH
    assert frontier.enqueue("mailto:x@example.com", depth=1).status == EnqueueStatus.SKIPPED_INVALID_URL
    assert frontier.enqueue("/relative", depth=1).status == EnqueueStatus.SKIPPED_INVALID_URL
    assert frontier.empty()

    counters = frontier.snapshot()
    assert counters["skipped_depth"] == 1
    assert counters["skipped_invalid"] == 2


def test_max_depth_must_be_positive() -> None:
    with pytest.raises(ValueError):
        Frontier(max_depth=0)


def test_closed_frontier_refuses_enqueue() -> None:
    frontier = Frontier(max_depth=2)
    frontier.close()

    assert frontier.closed
    assert frontier.seed("https://example.com").status == EnqueueStatus.SKIPPED_CLOSED


def test_clear_drops_pending_but_keeps_visited() -> None:
    frontier = Frontier(max_depth=2)
    frontier.seed("https://example.com")
    frontier.mark_visited(frontier.dequeue().key)
    frontier.enqueue_many([f"https://example.com/{n}" for n in range(4)], depth=2)

    assert frontier.clear() == 4
    assert frontier.empty()
    assert frontier.visited_count == 1
    assert frontier.visited_urls() == {"https://example.com"}
    # Cleared keys may be discovered again.
    assert frontier.enqueue("https://example.com/0", depth=2).accepted


def test_suppress_loops_is_noop_for_small_or_diverse_queues() -> None:
    small = Frontier(max_depth=2, loop_threshold=10)
    small.enqueue_many([f"https://example.com/?p={n}" for n in range(10)], depth=2)
    assert small.suppress_loops() is None
    assert len(small) == 10

    diverse = Frontier(max_depth=2, loop_threshold=10)
    diverse.enqueue_many([f"https://example.com/page{n}" for n in range(15)], depth=2)
    assert diverse.suppress_loops() is None
    assert len(diverse) == 15


def test_suppress_loops_clears_single_signature_explosion() -> None:
    frontier = Frontier(max_depth=2)
    frontier.enqueue_many([f"https://example.com/?p={n}" for n in range(12)], depth=2)

    suppression = frontier.suppress_loops()

    assert suppression is not None
    assert suppression.cleared
    assert (suppression.size_before, suppression.size_after, suppression.unique_entries) == (12, 0, 1)
    assert frontier.empty()
    assert isinstance(suppression.to_error(), FrontierLoopDetected)
    assert "cleared" in str(suppression.to_error())


def test_suppress_loops_keeps_first_entry_per_signature() -> None:
    frontier = Frontier(max_depth=2)
    urls = [f"https://example.com/list?page={n}" for n in range(8)]
    urls += [f"https://example.com/tag?t={n}" for n in range(4)]
    frontier.enqueue_many(urls, depth=2)

    suppression = frontier.suppress_loops()

    assert suppression is not None
    assert not suppression.cleared
    assert [item.key for item in frontier.pending()] == [
        "https://example.com/list?page=0",
        "https://example.com/tag?t=0",
    ]
    assert frontier.snapshot()["loop_dropped"] == 10


def test_redirect_target_is_rejected_and_dropped_from_queue() -> None:
    frontier = Frontier(max_depth=3)
    frontier.seed("https://example.com")
    frontier.enqueue_many(["https://example.com/old", "https://example.com/new"], depth=2)
    frontier.mark_visited(frontier.dequeue().key)
    old = frontier.dequeue()
    frontier.mark_visited(old.key)

    assert frontier.mark_redirected("https://example.com/NEW/") == "https://example.com/new"

    assert frontier.empty()
    assert frontier.enqueue("https://example.com/new", depth=3).status == EnqueueStatus.SKIPPED_VISITED
    assert frontier.visited_count == 2
    assert not frontier.is_visited("https://example.com/new")
    assert frontier.snapshot()["redirects"] == 1


def test_redirect_to_visited_page_is_not_recorded() -> None:
    frontier = Frontier(max_depth=2)
    frontier.seed("https://example.com")
    frontier.mark_visited(frontier.dequeue().key)

    assert frontier.mark_redirected("https://example.com/") == "https://example.com"
    assert frontier.snapshot()["redirects"] == 0
    assert frontier.mark_redirected("not a url") is None
