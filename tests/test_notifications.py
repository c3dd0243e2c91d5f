"""Tests for services/notifications.py: the toast sink."""

from services.notifications import NotificationCenter, NotificationLevel


def test_error_is_queued_until_drained(notifier):
    note = notifier.error("Error saving content block")

    assert note.level is NotificationLevel.ERROR
    assert notifier.pending() == [note]
    assert notifier.drain() == [note]
    assert notifier.pending() == []


def test_notify_keeps_order_and_level(notifier):
    notifier.notify(NotificationLevel.INFO, "Generating more blocks")
    notifier.error("Couldn't load more content. Scroll to try again.")

    assert [n.level for n in notifier.pending()] == [NotificationLevel.INFO, NotificationLevel.ERROR]


def test_oldest_dropped_beyond_capacity():
    center = NotificationCenter()
    for i in range(NotificationCenter.MAX_PENDING + 5):
        center.error(f"failure {i}")

    pending = center.pending()
    assert len(pending) == NotificationCenter.MAX_PENDING
    assert pending[0].message == "failure 5"
