#!/usr/bin/env python3
"""
Tests for the service layer (rating aggregation, moderation, catalog,
accounts, favorites, analytics).

Run with:
    python -m pytest tests/test_services.py
"""
import datetime
import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from topgames.errors import DuplicateError, SelfDeletionError, ValidationError
from topgames.repositories import MemoryStorage
from topgames.security import is_supported_credential, verify_password
from topgames.services import (
    AnalyticsService, CatalogService, FavoritesService, ReviewService, UserService,
    average_rating, should_track,
)


def _game_data(title='Nova', **extra):
    data = {
        'title': title,
        'description': 'A game',
        'genre': 'rpg',
        'developer': 'Studio',
        'image_url': 'https://img.example.com/n.png',
    }
    data.update(extra)
    return data


def _user_data(name='player', **extra):
    data = {'username': name, 'password': 'hashed-secret', 'email': f'{name}@example.com'}
    data.update(extra)
    return data


# ---------------------------------------------------------------------------
# Rating aggregation
# ---------------------------------------------------------------------------

class TestAverageRating(unittest.TestCase):

    def test_empty_is_zero(self):
        self.assertEqual(average_rating([]), 0.0)

    def test_exact_mean(self):
        self.assertEqual(average_rating([5, 4, 3]), 4.0)

    def test_rounds_half_up(self):
        self.assertEqual(average_rating([5, 4, 4, 4]), 4.3)
        self.assertEqual(average_rating([4, 5]), 4.5)

    def test_one_decimal(self):
        self.assertEqual(average_rating([5, 5, 4]), 4.7)
        self.assertEqual(average_rating([1, 2, 2]), 1.7)


class TestRatingAggregator(unittest.TestCase):

    def setUp(self):
        self.storage = MemoryStorage(seed=False)
        self.user = self.storage.create_user(_user_data())
        self.game = self.storage.create_game(_game_data())

    def test_recompute_missing_game_returns_none(self):
        self.assertIsNone(self.storage.ratings.recompute(999))

    def test_recompute_repairs_drift(self):
        review = self.storage.create_review({'content': 'ok', 'rating': 4,
                                             'game_id': self.game.id, 'user_id': self.user.id})
        self.storage.update_review(review.id, {'is_approved': True})
        self.storage._write_game_rating(self.game.id, 1.0)
        self.assertEqual(self.storage.ratings.recompute(self.game.id), 4.0)
        self.assertEqual(self.storage.get_game(self.game.id).rating, 4.0)


# ---------------------------------------------------------------------------
# Review moderation
# ---------------------------------------------------------------------------

class TestReviewService(unittest.TestCase):

    def setUp(self):
        self.storage = MemoryStorage(seed=False)
        self.service = ReviewService(self.storage)
        self.admin = self.storage.create_user(_user_data('admin', is_admin=True))
        self.user = self.storage.create_user(_user_data('nova'))
        self.game = self.storage.create_game(_game_data())

    def _actions(self):
        return [log.action for log in self.storage.get_recent_activity_logs(50)]

    def test_submit_creates_pending_review(self):
        review = self.service.submit(self.user.id, self.game.id, 5, 'Loved it')
        self.assertEqual(review.status, 'pending')
        self.assertEqual([r.id for r in self.service.pending()], [review.id])
        self.assertEqual(self.service.for_game(self.game.id), [])
        self.assertEqual(self._actions(), ['Review Submitted'])

    def test_submit_rejects_out_of_range_rating(self):
        with self.assertRaises(ValidationError):
            self.service.submit(self.user.id, self.game.id, 9, 'Too good')

    def test_approve_updates_rating_and_logs(self):
        review = self.service.submit(self.user.id, self.game.id, 4, 'Solid')
        approved = self.service.approve(review.id, actor_id=self.admin.id)

        self.assertTrue(approved.is_approved)
        self.assertEqual(self.storage.get_game(self.game.id).rating, 4.0)
        self.assertEqual(self.service.pending(), [])
        latest = self.storage.get_recent_activity_logs(1)[0]
        self.assertEqual(latest.action, 'Review Approved')
        self.assertEqual(latest.user_id, self.admin.id)
        self.assertEqual(latest.details, f'Review Approved: Review ID {review.id}')

    def test_reject_approved_review_drops_it_from_rating(self):
        keep = self.service.submit(self.user.id, self.game.id, 5, 'Great')
        drop = self.service.submit(self.user.id, self.game.id, 1, 'Awful')
        self.service.approve(keep.id, self.admin.id)
        self.service.approve(drop.id, self.admin.id)
        self.assertEqual(self.storage.get_game(self.game.id).rating, 3.0)

        rejected = self.service.reject(drop.id, self.admin.id)
        self.assertEqual(rejected.status, 'pending')
        self.assertEqual(self.storage.get_game(self.game.id).rating, 5.0)
        self.assertIsNotNone(self.storage.get_review(drop.id))
        self.assertEqual(self._actions()[0], 'Review Rejected')

    def test_moderating_missing_review(self):
        self.assertIsNone(self.service.approve(999, self.admin.id))
        self.assertIsNone(self.service.reject(999, self.admin.id))
        self.assertFalse(self.service.delete(999, self.admin.id))
        self.assertEqual(self._actions(), [])

    def test_delete_logs_and_rerates(self):
        review = self.service.submit(self.user.id, self.game.id, 3, 'Fine')
        self.service.approve(review.id, self.admin.id)
        with self.assertLogs('topgames.services.review', 'INFO'):
            self.assertTrue(self.service.delete(review.id, self.admin.id))
        self.assertEqual(self.storage.get_game(self.game.id).rating, 0)
        self.assertEqual(self._actions()[0], 'Review Deleted')

    def test_all_with_context(self):
        review = self.service.submit(self.user.id, self.game.id, 4, 'Solid')
        entries = self.service.all_with_context()
        self.assertEqual(len(entries), 1)
        entry = entries[0]
        self.assertEqual(entry['id'], review.id)
        self.assertEqual(entry['status'], 'pending')
        self.assertEqual(entry['game'].title, 'Nova')
        self.assertEqual(entry['user']['username'], 'nova')
        self.assertNotIn('password', entry['user'])


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class TestCatalogService(unittest.TestCase):

    def setUp(self):
        self.storage = MemoryStorage(seed=False)
        self.service = CatalogService(self.storage)

    def test_add_update_delete_are_logged(self):
        game = self.service.add_game(_game_data(rating=5), actor_id=1)
        self.assertEqual(game.rating, 0)
        self.service.update_game(game.id, {'is_trending': True}, actor_id=1)
        self.assertTrue(self.service.delete_game(game.id, actor_id=1))

        logs = self.storage.get_recent_activity_logs(10)
        self.assertEqual([log.action for log in logs],
                         ['Game Deleted', 'Game Updated', 'Game Added'])
        self.assertEqual(logs[0].details, 'Deleted game: Nova')

    def test_missing_game_not_logged(self):
        self.assertIsNone(self.service.update_game(999, {'title': 'x'}))
        self.assertFalse(self.service.delete_game(999))
        self.assertEqual(self.storage.get_recent_activity_logs(), [])


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

class TestUserService(unittest.TestCase):

    def setUp(self):
        self.storage = MemoryStorage(seed=False)
        self.analytics = AnalyticsService(self.storage)
        self.service = UserService(self.storage, analytics=self.analytics)

    def test_register_is_never_admin(self):
        user = self.service.register(_user_data('nova', is_admin=True))
        self.assertFalse(user.is_admin)

    def test_register_counts_new_user(self):
        self.service.register(_user_data('nova'))
        self.assertEqual(self.analytics.totals(1)['new_users'], 1)

    def test_register_duplicate_username(self):
        self.service.register(_user_data('nova'))
        with self.assertRaises(DuplicateError) as ctx:
            self.service.register(_user_data('NOVA', email='other@example.com'))
        self.assertEqual(str(ctx.exception), 'Username already exists')

    def test_register_duplicate_email(self):
        self.service.register(_user_data('nova'))
        with self.assertRaises(DuplicateError) as ctx:
            self.service.register(_user_data('other', email='NOVA@example.com'))
        self.assertEqual(str(ctx.exception), 'Email already exists')

    def test_register_stores_hashed_password(self):
        user = self.service.register(_user_data('nova', password='s3cret!!'))
        stored = self.storage.get_user(user.id).password
        self.assertNotEqual(stored, 's3cret!!')
        self.assertTrue(is_supported_credential(stored))
        self.assertTrue(verify_password('s3cret!!', stored))

    def test_register_short_password_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.register(_user_data('nova', password='abc'))
        self.assertIsNone(self.storage.get_user_by_username('nova'))

    def test_update_hashes_new_password(self):
        user = self.service.register(_user_data('nova', password='s3cret!!'))
        self.service.update(user.id, {'password': 'n3w-pass'}, actor_id=1)
        stored = self.storage.get_user(user.id).password
        self.assertTrue(is_supported_credential(stored))
        self.assertTrue(verify_password('n3w-pass', stored))
        with self.assertRaises(ValidationError):
            self.service.update(user.id, {'password': 'abc'}, actor_id=1)

    def test_update_without_password_keeps_credential(self):
        user = self.service.register(_user_data('nova', password='s3cret!!'))
        before = self.storage.get_user(user.id).password
        self.service.update(user.id, {'full_name': 'Nova'}, actor_id=1)
        self.assertEqual(self.storage.get_user(user.id).password, before)

    def test_admin_cannot_delete_self(self):
        admin = self.storage.create_user(_user_data('admin', is_admin=True))
        with self.assertRaises(SelfDeletionError):
            self.service.delete(admin.id, actor_id=admin.id)
        self.assertIsNotNone(self.storage.get_user(admin.id))

    def test_delete_other_user_logged(self):
        admin = self.storage.create_user(_user_data('admin', is_admin=True))
        user = self.service.register(_user_data('nova'))
        self.assertTrue(self.service.delete(user.id, actor_id=admin.id))
        self.assertFalse(self.service.delete(user.id, actor_id=admin.id))
        log = self.storage.get_recent_activity_logs(1)[0]
        self.assertEqual((log.action, log.details), ('User Deleted', 'Deleted user: nova'))

    def test_update_logged(self):
        user = self.service.register(_user_data('nova'))
        updated = self.service.update(user.id, {'full_name': 'Nova P'}, actor_id=1)
        self.assertEqual(updated.full_name, 'Nova P')
        self.assertEqual(self.storage.get_recent_activity_logs(1)[0].action, 'User Updated')
        self.assertIsNone(self.service.update(999, {'full_name': 'x'}))

    def test_recent_activity_attaches_public_user(self):
        user = self.service.register(_user_data('nova'))
        self.storage.create_activity_log({'action': 'Login', 'user_id': user.id})
        self.storage.create_activity_log({'action': 'System Task'})
        entries = self.service.recent_activity(5)
        self.assertEqual(entries[0]['action'], 'System Task')
        self.assertNotIn('user', entries[0])
        self.assertEqual(entries[1]['user']['username'], 'nova')
        self.assertNotIn('password', entries[1]['user'])


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------

class TestFavoritesService(unittest.TestCase):

    def setUp(self):
        self.storage = MemoryStorage(seed=False)
        self.service = FavoritesService(self.storage)
        self.user = self.storage.create_user(_user_data())
        self.game = self.storage.create_game(_game_data())

    def test_add_and_list(self):
        self.service.add(self.user.id, self.game.id)
        self.assertTrue(self.service.contains(self.user.id, self.game.id))
        entries = self.service.list_with_games(self.user.id)
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0]['game'].title, 'Nova')

    def test_add_unknown_game(self):
        self.assertIsNone(self.service.add(self.user.id, 999))

    def test_add_twice_raises(self):
        self.service.add(self.user.id, self.game.id)
        with self.assertRaises(DuplicateError):
            self.service.add(self.user.id, self.game.id)

    def test_remove(self):
        self.service.add(self.user.id, self.game.id)
        self.assertTrue(self.service.remove(self.user.id, self.game.id))
        self.assertFalse(self.service.remove(self.user.id, self.game.id))
        self.assertFalse(self.service.contains(self.user.id, self.game.id))


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

class TestAnalyticsService(unittest.TestCase):

    def setUp(self):
        self.storage = MemoryStorage(seed=False)
        self.service = AnalyticsService(self.storage)

    def test_should_track(self):
        self.assertTrue(should_track('/'))
        self.assertTrue(should_track('/games/12'))
        self.assertFalse(should_track('/api/games'))
        self.assertFalse(should_track('/assets/app.js'))
        self.assertFalse(should_track(''))

    def test_record_visit_skips_untracked(self):
        self.assertIsNone(self.service.record_visit('/api/games'))
        self.assertEqual(self.storage.get_analytics(1), [])

    def test_counters_share_one_daily_row(self):
        now = datetime.datetime.now()
        self.service.record_visit('/', now=now)
        self.service.record_visit('/games', now=now)
        self.service.record_registration(now=now)
        row = self.service.record_login(now=now)
        self.assertEqual((row.total_visits, row.new_users, row.active_users), (2, 1, 1))
        self.assertEqual(len(self.service.last_days(7)), 1)
        self.assertEqual(self.service.totals(7)['total_visits'], 2)

    def test_invalid_day_rejected(self):
        with self.assertRaises(ValidationError):
            self.storage.update_daily_analytics('not-a-date', {'total_visits': 1})


if __name__ == '__main__':
    unittest.main()
