#!/usr/bin/env python3
"""
Tests for the SQLAlchemy backend: seeding, legacy credential repair and
error propagation.

Run with:
    python -m pytest tests/test_database.py
"""
import datetime
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import OperationalError

from topgames.database import UserRow, normalize_url
from topgames.models import utcnow
from topgames.repositories import DatabaseStorage
from topgames.security import hash_password, is_supported_credential, verify_password
from topgames.services import CatalogService, UserService


class TestDatabaseSeeding(unittest.TestCase):

    def setUp(self):
        self.storage = DatabaseStorage('sqlite:///:memory:')

    def tearDown(self):
        self.storage.engine.dispose()

    def _insert_raw_user(self, username, password):
        db = self.storage._Session()
        try:
            db.add(UserRow(username=username, password=password,
                           email=f'{username}@example.com', is_admin=False,
                           created_at=utcnow()))
            db.commit()
        finally:
            db.close()

    def test_seed_creates_verifiable_admin(self):
        self.assertTrue(self.storage.seed_initial_data())
        admin = self.storage.get_user_by_username('admin')
        self.assertTrue(admin.is_admin)
        self.assertTrue(is_supported_credential(admin.password))
        self.assertTrue(verify_password('admin123', admin.password))
        self.assertFalse(verify_password('wrong', admin.password))

    def test_seed_skipped_when_populated(self):
        self.storage.create_user({'username': 'nova', 'password': hash_password('secret1'),
                                  'email': 'nova@example.com'})
        self.assertFalse(self.storage.seed_initial_data())
        self.assertEqual(self.storage.get_all_games(), [])

    def test_seed_games_start_unrated(self):
        self.storage.seed_initial_data()
        self.assertTrue(all(g.rating == 0 for g in self.storage.get_all_games()))

    def test_legacy_credentials_trigger_wipe_and_reseed(self):
        self._insert_raw_user('olduser', 'plaintext-password')
        self.storage.create_activity_log({'action': 'Old Entry'})
        self.assertEqual(self.storage.count_legacy_credentials(), 1)

        with self.assertLogs('topgames.storage.sql', 'WARNING') as logs:
            self.assertTrue(self.storage.seed_initial_data())

        self.assertTrue(any('legacy credential' in line for line in logs.output))
        self.assertIsNone(self.storage.get_user_by_username('olduser'))
        self.assertEqual(self.storage.get_recent_activity_logs(), [])
        self.assertEqual([u.username for u in self.storage.get_all_users()], ['admin'])
        self.assertEqual(len(self.storage.get_all_games()), 7)
        self.assertEqual(self.storage.count_legacy_credentials(), 0)

    def test_wipe_leaves_sessions(self):
        self.storage.seed_initial_data()
        self.storage.session_store.set('sid-1', {'user_id': 1})
        self.storage.wipe()
        self.assertEqual(self.storage.get_all_users(), [])
        self.assertEqual(self.storage.session_store.get('sid-1'), {'user_id': 1})

    def test_data_survives_new_storage_on_same_engine(self):
        self.storage.create_user({'username': 'nova', 'password': hash_password('secret1'),
                                  'email': 'nova@example.com'})
        again = DatabaseStorage(engine=self.storage.engine)
        self.assertEqual(again.get_user_by_username('nova').email, 'nova@example.com')


class TestDatabaseErrors(unittest.TestCase):

    def setUp(self):
        self.storage = DatabaseStorage('sqlite:///:memory:')
        self.user = self.storage.create_user({'username': 'nova', 'password': 'hashed-secret',
                                              'email': 'nova@example.com'})
        self.game = self.storage.create_game({'title': 'Nova', 'description': 'd',
                                              'genre': 'rpg', 'developer': 'Studio',
                                              'image_url': 'https://img.example.com/n.png'})

    def tearDown(self):
        self.storage.engine.dispose()

    def test_rating_write_failure_propagates(self):
        failure = OperationalError('UPDATE games', {}, Exception('database is locked'))
        with patch.object(self.storage, '_write_game_rating', side_effect=failure):
            with self.assertRaises(OperationalError):
                self.storage.create_review({'content': 'great', 'rating': 5,
                                            'game_id': self.game.id,
                                            'user_id': self.user.id})

    def test_requires_url_or_engine(self):
        with self.assertRaises(ValueError):
            DatabaseStorage()

    def test_review_for_missing_game_leaves_no_rating(self):
        review = self.storage.create_review({'content': 'ghost', 'rating': 3,
                                             'game_id': 999, 'user_id': self.user.id})
        self.assertEqual(review.game_id, 999)
        self.assertIsNone(self.storage.ratings.recompute(999))


class TestDatabaseRestart(unittest.TestCase):
    """Data written through the services must survive a restart that seeds."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.url = 'sqlite:///' + os.path.join(self.tmpdir, 'topgames.db')

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _open(self):
        return DatabaseStorage(self.url)

    def test_registered_user_survives_reseed(self):
        storage = self._open()
        storage.seed_initial_data()
        UserService(storage).register({'username': 'bob', 'password': 's3cret!!',
                                       'email': 'bob@example.com'})
        CatalogService(storage).add_game({'title': 'Nova', 'description': 'd',
                                          'genre': 'action', 'developer': 'Studio',
                                          'image_url': 'https://img.example.com/n.png'})
        storage.engine.dispose()

        reopened = self._open()
        try:
            self.assertEqual(reopened.count_legacy_credentials(), 0)
            self.assertFalse(reopened.seed_initial_data())
            self.assertIsNotNone(reopened.get_user_by_username('bob'))
            self.assertIsNotNone(reopened.get_game_by_title('Nova'))
            self.assertEqual(len(reopened.get_all_games()), 8)
        finally:
            reopened.engine.dispose()

    def test_password_change_survives_reseed(self):
        storage = self._open()
        service = UserService(storage)
        user = service.register({'username': 'bob', 'password': 's3cret!!',
                                 'email': 'bob@example.com'})
        service.update(user.id, {'password': 'an0ther-pass'})
        storage.engine.dispose()

        reopened = self._open()
        try:
            self.assertFalse(reopened.seed_initial_data())
            stored = reopened.get_user_by_username('bob').password
            self.assertTrue(verify_password('an0ther-pass', stored))
        finally:
            reopened.engine.dispose()


class TestAnalyticsRace(unittest.TestCase):
    """The day lookup and the insert are separate units of work.

    Two writers that both miss the lookup each insert a row for the same
    day.  This is an accepted limitation of the database backend.
    """

    def setUp(self):
        self.storage = DatabaseStorage('sqlite:///:memory:')

    def tearDown(self):
        self.storage.engine.dispose()

    def test_two_missed_lookups_insert_two_rows(self):
        day = datetime.date(2024, 1, 1)
        with patch.object(self.storage, '_find_analytics_for_day', return_value=None):
            self.storage.update_daily_analytics(day, {'total_visits': 1})
            self.storage.update_daily_analytics(day, {'total_visits': 1})
        rows = self.storage.get_analytics(0, today=day)
        self.assertEqual(len(rows), 2)
        self.assertEqual([r.date for r in rows], [day, day])

    def test_interleaved_rating_writes_last_one_wins(self):
        user = self.storage.create_user({'username': 'nova', 'password': 'hashed-secret',
                                         'email': 'nova@example.com'})
        game = self.storage.create_game({'title': 'Nova', 'description': 'd',
                                         'genre': 'rpg', 'developer': 'Studio',
                                         'image_url': 'https://img.example.com/n.png'})
        review = self.storage.create_review({'content': 'ok', 'rating': 5,
                                             'game_id': game.id, 'user_id': user.id})
        # A slower writer that read the approved set before approval lands last.
        stale = []
        with patch.object(self.storage, '_approved_review_ratings', return_value=stale):
            self.storage.update_review(review.id, {'is_approved': True})
        self.assertEqual(self.storage.get_game(game.id).rating, 0)
        self.assertEqual(self.storage.ratings.recompute(game.id), 5.0)


class TestNormalizeUrl(unittest.TestCase):

    def test_heroku_style_scheme_rewritten(self):
        self.assertEqual(normalize_url('postgres://u:p@host/db'), 'postgresql://u:p@host/db')

    def test_other_urls_untouched(self):
        self.assertEqual(normalize_url('sqlite:///:memory:'), 'sqlite:///:memory:')


if __name__ == '__main__':
    unittest.main()
