from datetime import datetime, timezone
import time
import warnings

from twisted.logger import Logger
from zope.interface import implementer

from database import Ballot, Candidate, Validations
from errors import (DanglingReferenceWarning, DuplicateError,
    DuplicateVoteError, NotFoundError, ValidationError)
from interfaces import IResults, IRoster, IVotingSession

IDENTITY = 'identity'
GRADE = 'grade'
VARIANTS = (IDENTITY, GRADE)

MINIMUM_CANDIDATES = 2
UNKNOWN_CANDIDATE = 'unknown'

def iso_timestamp(seconds):
    """
    UTC time with millisecond precision, e.g. ``2024-03-01T09:30:00.250Z``.
    """
    moment = datetime.fromtimestamp(seconds, timezone.utc)
    return '%s.%03dZ' % (moment.strftime('%Y-%m-%dT%H:%M:%S'), moment.microsecond // 1000)

@implementer(IRoster)
class Roster(object):

    log = Logger()
    validate = Validations()

    def __init__(self, state, persistence, now=time.time):
        self.state = state
        self.persistence = persistence
        self.now = now
        self.last_id = 0
        self.saved = True

    def next_id(self):
        """
        Milliseconds since the epoch, bumped past every id seen so far so
        that a removed candidate's id is never handed out again.
        """
        seen = [self.last_id]
        seen.extend(candidate.id for candidate in self.state.candidates)
        for ballot in self.state.ballots:
            seen.extend(ballot.choices)
            if ballot.voter_id is not None:
                seen.append(ballot.voter_id)
        self.last_id = max(int(self.now() * 1000), max(seen) + 1)
        return self.last_id

    def add_candidate(self, name, number):
        name = self.validate.validate_text(name, 'Enter both a name and a number')
        number = self.validate.validate_text(number, 'Enter both a name and a number')

        for candidate in self.state.candidates:
            if candidate.name == name or candidate.number == number:
                raise DuplicateError('That name or number is already registered')

        candidate = Candidate(self.next_id(), name, number)
        self.state.candidates.append(candidate)
        self.state.tally[candidate.id] = 0
        self.saved = self.persistence.save(self.state)
        self.log.info(
            'Registered candidate {name} ({number}) as {id}',
            name=name, number=number, id=candidate.id)
        return candidate

    def remove_candidate(self, candidate_id):
        candidate = self.get_candidate(candidate_id)
        self.state.candidates[:] = [c for c in self.state.candidates if c.id != candidate.id]
        self.state.tally.pop(candidate.id, None)
        self.saved = self.persistence.save(self.state)
        self.log.info('Removed candidate {name} ({id})', name=candidate.name, id=candidate.id)

    def find_candidate(self, candidate_id):
        for candidate in self.state.candidates:
            if candidate.id == candidate_id:
                return candidate
        return None

    def get_candidate(self, candidate_id):
        candidate_id = self.validate.validate_candidate_id(candidate_id)
        candidate = self.find_candidate(candidate_id)
        if candidate is None:
            raise NotFoundError('No candidate found')
        return candidate

    def all_candidates(self):
        return list(self.state.candidates)

@implementer(IVotingSession)
class VotingSession(object):
    """
    Collects ballots of two distinct choices each.

    With the ``identity`` variant the voter picks themself from the roster
    and may vote only once. With the ``grade`` variant the voter only states
    a grade and nothing stops them from voting again.
    """

    log = Logger()
    validate = Validations()

    def __init__(self, state, persistence, roster, variant=IDENTITY, now=time.time):
        if variant not in VARIANTS:
            raise ValueError('Unknown ballot variant %r' % (variant,))
        self.state = state
        self.persistence = persistence
        self.roster = roster
        self.variant = variant
        self.now = now
        self.active = False
        self.saved = True

    def begin(self):
        if len(self.state.candidates) < MINIMUM_CANDIDATES:
            raise ValidationError('Register at least %d candidates before voting' % (MINIMUM_CANDIDATES))
        self.active = True
        self.log.info(
            'Voting started with {count} candidates ({variant} ballots)',
            count=len(self.state.candidates), variant=self.variant)

    def eligible_choices(self, exclude_id=None):
        if exclude_id is None or exclude_id == '':
            return self.roster.all_candidates()
        exclude_id = self.validate.validate_candidate_id(exclude_id)
        return [c for c in self.state.candidates if c.id != exclude_id]

    def submit_ballot(self, first_choice, second_choice, voter=None, grade=None):
        if not self.active:
            raise ValidationError('Voting has not started')

        voter_candidate = None
        if self.variant == IDENTITY:
            voter_id = self.validate.validate_candidate_id(voter, 'Select yourself before voting')
            voter_candidate = self.roster.find_candidate(voter_id)
            if voter_candidate is None:
                raise ValidationError('Select yourself before voting')
        else:
            grade = self.validate.validate_text(grade, 'Enter your grade before voting')

        first_choice = self.validate.validate_candidate_id(first_choice, 'Select two candidates')
        second_choice = self.validate.validate_candidate_id(second_choice, 'Select two candidates')
        if first_choice == second_choice:
            raise ValidationError('Select two different candidates')

        for choice in (first_choice, second_choice):
            if self.roster.find_candidate(choice) is None:
                raise ValidationError('Candidate %d is not registered' % (choice))

        if voter_candidate is not None:
            for ballot in self.state.ballots:
                if ballot.voter_id == voter_candidate.id:
                    raise DuplicateVoteError('You have already voted')

        timestamp = iso_timestamp(self.now())
        if voter_candidate is not None:
            ballot = Ballot(
                (first_choice, second_choice), timestamp,
                voter_id=voter_candidate.id,
                name=voter_candidate.name,
                number=voter_candidate.number)
        else:
            ballot = Ballot((first_choice, second_choice), timestamp, grade=grade)

        for choice in ballot.choices:
            self.state.tally[choice] = self.state.tally.get(choice, 0) + 1
        self.state.ballots.append(ballot)
        self.saved = self.persistence.save(self.state)
        self.log.info('Ballot {number} recorded', number=len(self.state.ballots))
        return ballot

@implementer(IResults)
class Results(object):

    def __init__(self, state, roster):
        self.state = state
        self.roster = roster

    def ranked_results(self):
        ranking = [(c, self.state.tally.get(c.id, 0)) for c in self.state.candidates]
        # stable, so ties keep registration order
        ranking.sort(key=lambda item: item[1], reverse=True)
        return ranking

    def winners(self, count=2):
        return self.ranked_results()[:count]

    def summary_stats(self):
        return {
            'totalVoters': len(self.state.ballots),
            'totalVotes': sum(self.state.tally.values())}

    def choice_name(self, ballot, candidate_id):
        candidate = self.roster.find_candidate(candidate_id)
        if candidate is None:
            warnings.warn(
                'Ballot cast at %s references removed candidate %d' % (ballot.timestamp, candidate_id),
                DanglingReferenceWarning)
            return UNKNOWN_CANDIDATE
        return candidate.name

    def ballot_detail(self):
        detail = []
        for ballot in self.state.ballots:
            first_choice, second_choice = ballot.choices
            detail.append((
                ballot.label,
                self.choice_name(ballot, first_choice),
                self.choice_name(ballot, second_choice)))
        return detail
