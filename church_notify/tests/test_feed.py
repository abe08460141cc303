import random

import pytest

from church_notify.categories import DEFAULT_ROUTE, STREAMS, Category, Severity
from church_notify.feed import NotificationFeed, build_notification


def recount(feed):
    return sum(1 for n in feed.notifications if not n.is_read)


def donation(i):
    return {'id': f'd{i}', 'amount': i, 'donor_first_name': f'Donor {i}'}


class TestFeedBasics:

    def test_starts_empty(self):
        feed = NotificationFeed()
        assert feed.notifications == []
        assert feed.unread_count == 0

    def test_end_to_end_scenario(self):
        feed = NotificationFeed()

        feed.on_event('donations', {'id': 'd1', 'amount': 50, 'donor_first_name': 'Amina'})
        assert len(feed) == 1
        first = feed.notifications[0]
        assert first.category == Category.DONATION
        assert first.id == 'donation-d1'
        assert '50' in first.message and 'Amina' in first.message
        assert feed.unread_count == 1

        feed.on_event('prayer_requests', {'id': 'p1', 'first_name': 'John', 'subject': 'Healing'})
        assert [n.category for n in feed.notifications] == [Category.PRAYER, Category.DONATION]
        assert feed.unread_count == 2

        assert feed.mark_as_read('prayer-p1') is True
        assert feed.unread_count == 1
        prayer, gift = feed.notifications
        assert prayer.is_read is True
        assert gift.is_read is False

        feed.clear()
        assert feed.notifications == []
        assert feed.unread_count == 0

    def test_anonymous_donor_message(self):
        feed = NotificationFeed()
        n = feed.on_event('donations', {'id': 'd9', 'amount': 20})
        assert 'undefined' not in n.message
        assert 'null' not in n.message
        assert 'None' not in n.message
        assert not n.message.rstrip().endswith('from')
        assert n.message == 'New donation of $20 received'

    def test_title_and_payload_kept(self):
        record = {'id': 's1', 'title': 'Grace', 'preacher': 'Pastor Ruth', 'created_at': '2024-05-01T10:00:00Z'}
        n = NotificationFeed().on_event('sermons', record)
        assert n.title == 'New Sermon Added'
        assert n.source_payload == record
        assert n.source_created_at == '2024-05-01T10:00:00Z'
        assert n.is_read is False

    def test_unknown_stream_is_ignored(self):
        feed = NotificationFeed()
        assert feed.on_event('tithes', {'id': 't1'}) is None
        assert len(feed) == 0
        assert feed.unread_count == 0

    def test_non_mapping_record_is_ignored(self):
        feed = NotificationFeed()
        assert feed.on_event('donations', ['not', 'a', 'row']) is None
        assert feed.unread_count == 0

    def test_record_without_id_gets_unique_ids(self):
        feed = NotificationFeed()
        feed.on_event('events', {'title': 'Picnic'})
        feed.on_event('events', {'title': 'Picnic'})
        ids = [n.id for n in feed.notifications]
        assert len(ids) == 2 and len(set(ids)) == 2
        assert all(i.startswith('event-') for i in ids)


class TestCapacity:

    def test_cap_keeps_most_recent_fifty(self):
        feed = NotificationFeed()
        for i in range(120):
            feed.on_event('donations', donation(i))
            assert len(feed) <= 50
        ids = [n.id for n in feed.notifications]
        assert ids == [f'donation-d{i}' for i in range(119, 69, -1)]
        assert feed.unread_count == 50

    def test_eviction_of_unread_entries_updates_counter(self):
        feed = NotificationFeed(capacity=3)
        for i in range(3):
            feed.on_event('donations', donation(i))
        feed.mark_as_read('donation-d2')
        assert feed.unread_count == 2
        feed.on_event('donations', donation(3))
        # d0 (unread) evicted
        assert [n.id for n in feed.notifications] == ['donation-d3', 'donation-d2', 'donation-d1']
        assert feed.unread_count == recount(feed) == 2

    def test_evicted_id_can_arrive_again(self):
        feed = NotificationFeed(capacity=2)
        for i in range(3):
            feed.on_event('donations', donation(i))
        assert feed.on_event('donations', donation(0)) is not None
        assert feed.notifications[0].id == 'donation-d0'


class TestReadState:

    def test_mark_unknown_id_is_noop(self):
        feed = NotificationFeed()
        feed.on_event('donations', donation(1))
        before = feed.snapshot()
        assert feed.mark_as_read('nonexistent-id') is False
        assert feed.snapshot() == before
        assert feed.unread_count == 1

    def test_mark_read_twice_only_decrements_once(self):
        feed = NotificationFeed()
        feed.on_event('donations', donation(1))
        feed.on_event('donations', donation(2))
        feed.mark_as_read('donation-d1')
        feed.mark_as_read('donation-d1')
        assert feed.unread_count == 1

    def test_mark_all_as_read_is_idempotent(self):
        feed = NotificationFeed()
        for i in range(5):
            feed.on_event('donations', donation(i))
        feed.mark_all_as_read()
        once = feed.snapshot()
        feed.mark_all_as_read()
        assert feed.snapshot() == once
        assert feed.unread_count == 0
        assert all(n.is_read for n in feed.notifications)

    def test_clear_is_idempotent(self):
        feed = NotificationFeed()
        feed.on_event('donations', donation(1))
        feed.clear()
        feed.clear()
        assert feed.snapshot() == {'notifications': [], 'unread_count': 0}

    def test_returned_entries_are_copies(self):
        feed = NotificationFeed()
        feed.on_event('donations', donation(1))
        feed.notifications[0].is_read = True
        assert feed.unread_count == recount(feed) == 1

    def test_select_marks_read_and_returns_route(self):
        feed = NotificationFeed()
        feed.on_event('church_members', {'id': 'm1', 'first_name': 'Ada', 'last_name': 'Obi'})
        assert feed.select('member-m1') == '/admin/church-members'
        assert feed.unread_count == 0
        assert feed.select('member-missing') is None

    def test_counter_matches_recount_after_random_operations(self):
        rng = random.Random(7)
        feed = NotificationFeed(capacity=10)
        seen = []
        for step in range(500):
            op = rng.random()
            if op < 0.55:
                stream = rng.choice(STREAMS)
                record = {'id': str(rng.randint(0, 40)), 'first_name': 'X', 'title': 'T', 'amount': 1}
                n = feed.on_event(stream, record)
                if n:
                    seen.append(n.id)
            elif op < 0.8 and seen:
                feed.mark_as_read(rng.choice(seen + ['missing']))
            elif op < 0.9:
                feed.mark_all_as_read()
            else:
                feed.clear()
            assert feed.unread_count == recount(feed), f'step {step}'
            assert len(feed) <= 10


class TestDeduplication:

    def test_redelivery_is_dropped(self):
        toasts = []
        feed = NotificationFeed(toast=lambda severity, message: toasts.append(message))
        feed.on_event('donations', donation(1))
        assert feed.on_event('donations', donation(1)) is None
        assert len(feed) == 1
        assert feed.unread_count == 1
        assert len(toasts) == 1

    def test_same_source_id_on_different_streams_is_kept(self):
        feed = NotificationFeed()
        feed.on_event('events', {'id': '1', 'title': 'A'})
        feed.on_event('sermons', {'id': '1', 'title': 'B'})
        assert len(feed) == 2

    def test_cleared_ids_can_arrive_again(self):
        feed = NotificationFeed()
        feed.on_event('donations', donation(1))
        feed.clear()
        assert feed.on_event('donations', donation(1)) is not None


class TestSideEffects:

    @pytest.mark.parametrize('stream, severity', [
        ('donations', Severity.SUCCESS),
        ('church_members', Severity.SUCCESS),
        ('volunteer_submissions', Severity.SUCCESS),
        ('prayer_requests', Severity.INFO),
        ('contact_submissions', Severity.INFO),
        ('events', Severity.INFO),
        ('sermons', Severity.INFO),
    ])
    def test_toast_severity_per_category(self, stream, severity):
        toasts = []
        feed = NotificationFeed(toast=lambda s, m: toasts.append((s, m)))
        n = feed.on_event(stream, {'id': '1', 'first_name': 'A', 'title': 'B'})
        assert toasts == [(severity, n.message)]

    def test_listener_sees_new_notification(self):
        seen = []
        feed = NotificationFeed(listener=seen.append)
        feed.on_event('events', {'id': 'e1', 'title': 'Harvest'})
        assert [n.id for n in seen] == ['event-e1']

    def test_failing_toast_does_not_break_feed(self):
        def broken(severity, message):
            raise RuntimeError('toast service down')

        feed = NotificationFeed(toast=broken)
        assert feed.on_event('events', {'id': 'e1', 'title': 'Harvest'}) is not None
        assert feed.unread_count == 1


class TestRoutes:

    def test_every_category_has_a_route(self):
        for category in Category:
            n = build_notification(category, {'id': '1'})
            route = NotificationFeed.resolve_target_route(n)
            assert route and route.startswith('/admin/')
            assert route != DEFAULT_ROUTE

    def test_route_by_category_value(self):
        assert NotificationFeed.resolve_target_route('volunteer') == '/admin/volunteers'
        assert NotificationFeed.resolve_target_route(Category.DONATION) == '/admin/donations'

    def test_unknown_category_falls_back(self):
        assert NotificationFeed.resolve_target_route('tithe') == DEFAULT_ROUTE

    def test_serialized_entry(self):
        n = build_notification(Category.CONTACT, {'id': 'c1', 'first_name': 'Li', 'last_name': 'Wei', 'subject': 'Hi'})
        data = n.to_dict()
        assert data['category'] == 'contact'
        assert data['route'] == '/admin/contact'
        assert data['icon'] == 'mail'
        assert data['data']['subject'] == 'Hi'
