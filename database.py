from numbers import Integral
import json
import sqlite3

from twisted.logger import Logger
from zope.interface import implementer

from errors import ValidationError
from interfaces import IPersistence, IStorage

STUDENTS_KEY = 'students'
VOTES_KEY = 'votes'
VOTERS_KEY = 'voters'

class Validations(object):
    def validate_text(self, value, message):
        if value is None:
            raise ValidationError(message)
        value = value.strip()
        if len(value) == 0:
            raise ValidationError(message)
        return value

    def validate_candidate_id(self, candidate_id, message='Candidate id is required'):
        """
        Accept an integer or its string form, as sent by a form field.
        """
        if candidate_id is None or candidate_id == '':
            raise ValidationError(message)
        if isinstance(candidate_id, bool):
            raise ValidationError('Candidate id must be an integer')
        if not isinstance(candidate_id, Integral):
            try:
                candidate_id = int(candidate_id.strip())
            except (AttributeError, ValueError):
                raise ValidationError('Candidate id must be an integer')
        if candidate_id < 0:
            raise ValidationError('Candidate id must not be negative')
        return int(candidate_id)

def record_id(value):
    """
    Ids written by the browser version are sometimes strings.
    """
    if isinstance(value, bool):
        raise ValueError('%r is not an id' % (value,))
    if isinstance(value, Integral):
        return int(value)
    if isinstance(value, str) and value.isdigit():
        return int(value)
    raise ValueError('%r is not an id' % (value,))

def record_text(value):
    if not isinstance(value, str):
        raise ValueError('%r is not a string' % (value,))
    return value

class Candidate(object):
    def __init__(self, candidate_id, name, number):
        self.id = candidate_id
        self.name = name
        self.number = number

    def __eq__(self, other):
        if not isinstance(other, Candidate):
            return NotImplemented
        return (self.id, self.name, self.number) == (other.id, other.name, other.number)

    def __repr__(self):
        return 'Candidate(%r, %r, %r)' % (self.id, self.name, self.number)

    def to_record(self):
        return {'id': self.id, 'name': self.name, 'number': self.number}

    @classmethod
    def from_record(cls, record):
        return cls(
            record_id(record['id']),
            record_text(record['name']),
            record_text(record['number']))

class Ballot(object):
    """
    One voter's pair of choices. Identity ballots carry the voter's id plus a
    snapshot of their name and number; grade ballots carry only the grade.
    """

    def __init__(self, choices, timestamp, voter_id=None, name=None, number=None, grade=None):
        self.choices = tuple(choices)
        self.timestamp = timestamp
        self.voter_id = voter_id
        self.name = name
        self.number = number
        self.grade = grade

    def __eq__(self, other):
        if not isinstance(other, Ballot):
            return NotImplemented
        return self.to_record() == other.to_record()

    def __repr__(self):
        return 'Ballot(%r)' % (self.to_record(),)

    @property
    def label(self):
        if self.voter_id is not None:
            return self.name
        return self.grade

    def to_record(self):
        if self.voter_id is not None:
            record = {
                'voterId': self.voter_id,
                'name': self.name,
                'number': self.number}
        else:
            record = {'grade': self.grade}
        record['timestamp'] = self.timestamp
        record['choices'] = list(self.choices)
        return record

    @classmethod
    def from_record(cls, record):
        if not isinstance(record['choices'], list) or len(record['choices']) != 2:
            raise ValueError('A ballot holds exactly two choices')
        choices = [record_id(choice) for choice in record['choices']]
        if choices[0] == choices[1]:
            raise ValueError('A ballot holds two different choices')
        timestamp = record_text(record['timestamp'])
        if 'voterId' in record:
            return cls(
                choices, timestamp,
                voter_id=record_id(record['voterId']),
                name=record_text(record['name']),
                number=record_text(record['number']))
        return cls(choices, timestamp, grade=record_text(record['grade']))

class VoteState(object):
    """
    The roster, the tally and the ballot log. A single instance is shared by
    the roster, the voting session and the results.
    """

    def __init__(self, candidates=None, tally=None, ballots=None):
        self.candidates = candidates if candidates is not None else []
        self.tally = tally if tally is not None else {}
        self.ballots = ballots if ballots is not None else []

    def __eq__(self, other):
        if not isinstance(other, VoteState):
            return NotImplemented
        return (self.candidates == other.candidates
            and self.tally == other.tally
            and self.ballots == other.ballots)

    def __repr__(self):
        return 'VoteState(%r, %r, %r)' % (self.candidates, self.tally, self.ballots)

    def clear(self):
        del self.candidates[:]
        self.tally.clear()
        del self.ballots[:]

@implementer(IStorage)
class Database(object):
    """
    A string key-value store kept in a single sqlite table.
    """

    table_name = 'storage'

    def __init__(self, dbpath):
        self.dbpath = dbpath
        self.connection = sqlite3.connect(dbpath, check_same_thread=False)
        self.create_table()

    def execute(self, sql_stmt, params=()):
        with self.connection:
            return self.connection.execute(sql_stmt, params).fetchall()

    def create_table(self):
        stmt = "create table if not exists %s (" \
            "key text primary key, " \
            "value text not null)" % (self.table_name)
        self.execute(stmt)

    def get_item(self, key):
        query = self.execute('select value from %s where key=?' % (self.table_name), (key,))
        if len(query) == 0:
            return None
        return query[0][0]

    def set_item(self, key, value):
        stmt = 'insert or replace into %s (key, value) values (?, ?)' % (self.table_name)
        self.execute(stmt, (key, value))

    def remove_item(self, key):
        self.execute('delete from %s where key=?' % (self.table_name), (key,))

    def clear(self):
        self.execute('delete from %s' % (self.table_name))

    def close(self):
        self.connection.close()

def parse_candidates(data):
    if not isinstance(data, list):
        raise ValueError('Expected a list of candidates')
    return [Candidate.from_record(record) for record in data]

def parse_tally(data):
    if not isinstance(data, dict):
        raise ValueError('Expected a mapping of vote counts')
    tally = {}
    for key, count in data.items():
        if isinstance(count, bool) or not isinstance(count, Integral) or count < 0:
            raise ValueError('Invalid vote count %r' % (count,))
        tally[record_id(key)] = count
    return tally

def parse_ballots(data):
    if not isinstance(data, list):
        raise ValueError('Expected a list of ballots')
    return [Ballot.from_record(record) for record in data]

@implementer(IPersistence)
class Persistence(object):

    log = Logger()

    def __init__(self, storage):
        self.storage = storage

    def load(self):
        state = VoteState(
            candidates=self.read(STUDENTS_KEY, parse_candidates, list),
            tally=self.read(VOTES_KEY, parse_tally, dict),
            ballots=self.read(VOTERS_KEY, parse_ballots, list))

        # every registered candidate keeps a tally entry
        for candidate in state.candidates:
            state.tally.setdefault(candidate.id, 0)

        self.log.info(
            'Loaded {candidates} candidates and {ballots} ballots',
            candidates=len(state.candidates),
            ballots=len(state.ballots))
        return state

    def read(self, key, parse, empty):
        try:
            blob = self.storage.get_item(key)
        except sqlite3.Error as error:
            self.log.warn('Could not read "{key}": {error}', key=key, error=error)
            return empty()

        if blob is None:
            return empty()

        try:
            return parse(json.loads(blob))
        except (ValueError, TypeError, KeyError) as error:
            self.log.warn('Ignoring malformed "{key}": {error}', key=key, error=error)
            return empty()

    def save(self, state):
        blobs = [
            (STUDENTS_KEY, [candidate.to_record() for candidate in state.candidates]),
            (VOTES_KEY, dict((str(key), count) for key, count in state.tally.items())),
            (VOTERS_KEY, [ballot.to_record() for ballot in state.ballots])]
        try:
            for key, value in blobs:
                self.storage.set_item(key, json.dumps(value, ensure_ascii=False))
        except sqlite3.Error as error:
            # memory and storage disagree until the next successful save
            self.log.warn('Could not save state: {error}', error=error)
            return False
        return True

    def reset_all(self, state):
        state.clear()
        try:
            self.storage.clear()
        except sqlite3.Error as error:
            self.log.warn('Could not erase stored state: {error}', error=error)
            return False
        self.log.info('Erased all candidates, votes and ballots')
        return True
