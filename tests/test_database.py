# -*- coding: utf-8 -*-

from os import path
import sys
filepath = path.split(path.split(path.realpath(__file__))[0])[0]
sys.path.append(filepath)   # add project directory to Python path

from unittest.mock import MagicMock
import json
import sqlite3

from twisted.logger import LogLevel, formatEvent, globalLogPublisher
from twisted.trial.unittest import TestCase
from zope.interface.verify import verifyClass

from database import (Ballot, Candidate, Database, Persistence, Validations,
    VoteState, STUDENTS_KEY, VOTERS_KEY, VOTES_KEY)
from errors import ValidationError
from interfaces import IPersistence, IStorage

def sample_state():
    alice = Candidate(1700000000000, 'Alice', '101')
    bob = Candidate(1700000000001, 'Bob', '102')
    carol = Candidate(1700000000002, 'Carol', '103')
    ballots = [
        Ballot((alice.id, bob.id), '2024-03-01T09:30:00.000Z',
            voter_id=carol.id, name='Carol', number='103'),
        Ballot((bob.id, carol.id), '2024-03-01T09:31:00.000Z', grade='3')]
    tally = {alice.id: 1, bob.id: 2, carol.id: 1}
    return VoteState([alice, bob, carol], tally, ballots)

class TestValidations(TestCase):
    validate = Validations()

    def test_text_is_trimmed(self):
        self.assertEqual(self.validate.validate_text('  Alice ', 'required'), 'Alice')

    def test_blank_text(self):
        """ Missing, empty and whitespace only values raise with the given message """
        for invalid in [None, '', '   ', '\t\n']:
            error = self.assertRaises(ValidationError, self.validate.validate_text, invalid, 'Name required')
            self.assertEqual(str(error), 'Name required')

    def test_candidate_id_from_string(self):
        self.assertEqual(self.validate.validate_candidate_id('1700000000000'), 1700000000000)
        self.assertEqual(self.validate.validate_candidate_id(' 42 '), 42)
        self.assertEqual(self.validate.validate_candidate_id(0), 0)

    def test_candidate_id_missing(self):
        for missing in [None, '']:
            error = self.assertRaises(ValidationError, self.validate.validate_candidate_id, missing, 'Pick one')
            self.assertEqual(str(error), 'Pick one')

    def test_candidate_id_not_int(self):
        """ Only integers or their string form are allowed """
        for invalid in ['one', '1 hundred', 1.5, True, '1.0']:
            error = self.assertRaises(ValidationError, self.validate.validate_candidate_id, invalid)
            self.assertEqual(str(error), 'Candidate id must be an integer')

    def test_negative_candidate_ids(self):
        for invalid in [-1, -100, '-5']:
            self.assertRaises(ValidationError, self.validate.validate_candidate_id, invalid)

class TestRecords(TestCase):

    def test_identity_ballot_record(self):
        ballot = Ballot((1, 2), '2024-03-01T09:30:00.000Z', voter_id=3, name='Carol', number='103')
        self.assertEqual(ballot.to_record(), {
            'voterId': 3,
            'name': 'Carol',
            'number': '103',
            'timestamp': '2024-03-01T09:30:00.000Z',
            'choices': [1, 2]})
        self.assertEqual(ballot.label, 'Carol')

    def test_grade_ballot_record(self):
        ballot = Ballot((1, 2), '2024-03-01T09:30:00.000Z', grade='2')
        self.assertEqual(ballot.to_record(), {
            'grade': '2',
            'timestamp': '2024-03-01T09:30:00.000Z',
            'choices': [1, 2]})
        self.assertEqual(ballot.label, '2')

    def test_browser_records(self):
        """ Records saved by the browser version hold ids as strings """
        record = {
            'voterId': '1700000000002',
            'name': 'Carol',
            'number': '103',
            'timestamp': '2024-03-01T09:30:00.000Z',
            'choices': ['1700000000000', '1700000000001']}
        ballot = Ballot.from_record(record)
        self.assertEqual(ballot.voter_id, 1700000000002)
        self.assertEqual(ballot.choices, (1700000000000, 1700000000001))

    def test_ballot_needs_two_choices(self):
        record = {'grade': '1', 'timestamp': 'now', 'choices': [1]}
        self.assertRaises(ValueError, Ballot.from_record, record)

    def test_ballot_choices_differ(self):
        record = {'grade': '1', 'timestamp': 'now', 'choices': [5, 5]}
        self.assertRaises(ValueError, Ballot.from_record, record)

    def test_ballot_choices_must_be_a_list(self):
        record = {'grade': '1', 'timestamp': 'now', 'choices': '12'}
        self.assertRaises(ValueError, Ballot.from_record, record)

class TestDatabase(TestCase):

    def setUp(self):
        self.db = Database(':memory:')
        self.addCleanup(self.db.close)

    def test_contract(self):
        """ Validate interface contract is fulfilled """
        assert verifyClass(IStorage, Database), 'IStorage contract not fulfilled'

    def test_missing_key(self):
        self.assertIsNone(self.db.get_item('students'))

    def test_set_and_replace(self):
        self.db.set_item('students', '[]')
        self.assertEqual(self.db.get_item('students'), '[]')
        self.db.set_item('students', '[1]')
        self.assertEqual(self.db.get_item('students'), '[1]')

    def test_remove_item(self):
        self.db.set_item('votes', '{}')
        self.db.set_item('voters', '[]')
        self.db.remove_item('votes')
        self.db.remove_item('never-set')
        self.assertIsNone(self.db.get_item('votes'))
        self.assertEqual(self.db.get_item('voters'), '[]')

    def test_clear(self):
        for key in [STUDENTS_KEY, VOTES_KEY, VOTERS_KEY]:
            self.db.set_item(key, '[]')
        self.db.clear()
        for key in [STUDENTS_KEY, VOTES_KEY, VOTERS_KEY]:
            self.assertIsNone(self.db.get_item(key))

    def test_values_survive_reconnect(self):
        db_path = self.mktemp()
        db = Database(db_path)
        db.set_item('students', '["Türkçe"]')
        db.close()

        db = Database(db_path)
        self.addCleanup(db.close)
        self.assertEqual(db.get_item('students'), '["Türkçe"]')

class TestPersistence(TestCase):

    def setUp(self):
        self.db = Database(':memory:')
        self.addCleanup(self.db.close)
        self.persistence = Persistence(self.db)

    def test_contract(self):
        assert verifyClass(IPersistence, Persistence), 'IPersistence contract not fulfilled'

    def test_round_trip(self):
        state = sample_state()
        self.assertTrue(self.persistence.save(state))
        self.assertEqual(self.persistence.load(), state)

    def test_layout(self):
        """ The three blobs match the browser's localStorage layout """
        self.persistence.save(sample_state())
        students = json.loads(self.db.get_item(STUDENTS_KEY))
        votes = json.loads(self.db.get_item(VOTES_KEY))
        voters = json.loads(self.db.get_item(VOTERS_KEY))

        self.assertEqual(students[0], {'id': 1700000000000, 'name': 'Alice', 'number': '101'})
        self.assertEqual(votes, {'1700000000000': 1, '1700000000001': 2, '1700000000002': 1})
        self.assertEqual(voters[0]['voterId'], 1700000000002)
        self.assertEqual(voters[1]['grade'], '3')

    def test_load_empty_store(self):
        self.assertEqual(self.persistence.load(), VoteState())

    def test_malformed_blob_is_empty(self):
        """ A broken blob only empties its own container """
        state = sample_state()
        self.persistence.save(state)
        self.db.set_item(VOTERS_KEY, '{not json')

        loaded = self.persistence.load()
        self.assertEqual(loaded.candidates, state.candidates)
        self.assertEqual(loaded.tally, state.tally)
        self.assertEqual(loaded.ballots, [])

    def test_wrong_shapes_are_empty(self):
        self.db.set_item(STUDENTS_KEY, '{"id": 1}')
        self.db.set_item(VOTES_KEY, '{"1": -3}')
        self.db.set_item(VOTERS_KEY, '[{"grade": "1"}]')
        self.assertEqual(self.persistence.load(), VoteState())

    def test_malformed_choices_are_empty(self):
        """ Choices must be a list of two different ids """
        for choices in ['"12"', '[5, 5]', '[1, 2, 3]', '{"1": 2}']:
            good = '{"grade": "1", "timestamp": "t", "choices": [1, 2]}'
            bad = '{"grade": "1", "timestamp": "t", "choices": %s}' % (choices)
            self.db.set_item(VOTERS_KEY, '[%s, %s]' % (good, bad))
            self.assertEqual(self.persistence.load().ballots, [], choices)

    def test_missing_tally_entries_restored(self):
        state = sample_state()
        self.persistence.save(state)
        self.db.remove_item(VOTES_KEY)

        loaded = self.persistence.load()
        self.assertEqual(loaded.tally, dict((c.id, 0) for c in state.candidates))

    def test_unreadable_storage(self):
        storage = MagicMock()
        storage.get_item.side_effect = sqlite3.OperationalError('disk I/O error')
        self.assertEqual(Persistence(storage).load(), VoteState())

    def test_failed_save(self):
        storage = MagicMock()
        storage.set_item.side_effect = sqlite3.OperationalError('database is locked')
        events = []
        observer = events.append
        globalLogPublisher.addObserver(observer)
        self.addCleanup(globalLogPublisher.removeObserver, observer)

        self.assertFalse(Persistence(storage).save(sample_state()))
        warnings = [e for e in events if e.get('log_level') == LogLevel.warn]
        self.assertEqual(len(warnings), 1)
        self.assertIn('database is locked', formatEvent(warnings[0]))

    def test_failed_reset_all(self):
        storage = MagicMock()
        storage.clear.side_effect = sqlite3.OperationalError('disk full')
        state = sample_state()
        self.assertFalse(Persistence(storage).reset_all(state))
        self.assertEqual(state, VoteState())

    def test_reset_all(self):
        state = sample_state()
        self.persistence.save(state)

        self.assertTrue(self.persistence.reset_all(state))
        self.assertEqual(state, VoteState())
        for key in [STUDENTS_KEY, VOTES_KEY, VOTERS_KEY]:
            self.assertIsNone(self.db.get_item(key))

    def test_reset_all_is_idempotent(self):
        state = sample_state()
        self.persistence.save(state)
        self.persistence.reset_all(state)
        self.assertTrue(self.persistence.reset_all(state))
        self.assertEqual(self.persistence.load(), VoteState())
