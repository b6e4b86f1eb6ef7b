import hmac
import json

from klein import Klein
from werkzeug.exceptions import NotFound

from election import IDENTITY, Results, Roster, VotingSession
from errors import AuthenticationError
from middleware import Jsonify, form_value

DEFAULT_PASSWORD = '1234'

def with_save_status(response, saved):
    """
    Tell the caller whether the change reached the store.
    """
    response['saved'] = bool(saved)
    if not saved:
        response['warning'] = 'Changes could not be saved'
    return response

def candidate_to_json(candidate):
    return {'id': candidate.id, 'name': candidate.name, 'number': candidate.number}

class VoteApi(object):

    router = Klein()
    jsonify = Jsonify(router)

    def __init__(self, persistence, variant=IDENTITY, password=DEFAULT_PASSWORD):
        self.persistence = persistence
        self.password = password
        self.state = persistence.load()
        self.roster = Roster(self.state, persistence)
        self.session = VotingSession(self.state, persistence, self.roster, variant)
        self.results = Results(self.state, self.roster)

    def resource(self):
        return self.router.resource()

    def authorize(self, request):
        password = form_value(request, 'password') or ''
        if not hmac.compare_digest(password.encode('utf-8'), self.password.encode('utf-8')):
            raise AuthenticationError('Wrong password')

    @router.handle_errors(NotFound)
    def page_not_found(self, request, failure):
        request.setResponseCode(404)
        request.setHeader('Content-Type', 'application/json')
        response = {'status': 'Resource Not Available'}
        return json.dumps(response)

    @jsonify.route('/candidates', methods=['GET'])
    def get_candidates(self, request):
        """
        Get the registered candidates in registration order.

        :return: `{candidates: [], count: n}`
        """
        candidates = [candidate_to_json(c) for c in self.roster.all_candidates()]
        return {'candidates': candidates, 'count': len(candidates)}

    @jsonify.route('/candidate', methods=['POST'])
    def add_candidate(self, request):
        """
        Register a candidate.

        :param name: Name of the candidate.
        :param number: Student number of the candidate.
        :return: `{"status": "Created", "candidate": {...}}`
        """
        candidate = self.roster.add_candidate(
            form_value(request, 'name'),
            form_value(request, 'number'))
        request.setResponseCode(201)
        return with_save_status(
            {'status': 'Created', 'candidate': candidate_to_json(candidate)},
            self.roster.saved)

    @jsonify.route('/candidate/<int:candidate_id>', methods=['DELETE'])
    def remove_candidate(self, request, candidate_id):
        """
        Remove a candidate. Ballots already cast are kept.
        """
        self.roster.remove_candidate(candidate_id)
        return with_save_status({'status': 'Removed'}, self.roster.saved)

    @jsonify.route('/session', methods=['POST'])
    def begin_voting(self, request):
        self.session.begin()
        return {'status': 'Voting Started', 'variant': self.session.variant}

    @jsonify.route('/choices', methods=['GET'])
    def get_choices(self, request):
        """
        Candidates to offer as first and second choice.

        :param exclude: Candidate id to leave out, usually the voter.
        :return: `{candidates: []}`
        """
        choices = self.session.eligible_choices(form_value(request, 'exclude'))
        return {'candidates': [candidate_to_json(c) for c in choices]}

    @jsonify.route('/vote', methods=['POST'])
    def vote_for(self, request):
        """
        Cast a ballot.

        :param voter: Candidate id of the voter (identity ballots).
        :param grade: Grade of the voter (grade ballots).
        :param first: Candidate id of the first choice.
        :param second: Candidate id of the second choice.
        :return: `{"status": "message"}`
        """
        self.session.submit_ballot(
            form_value(request, 'first'),
            form_value(request, 'second'),
            voter=form_value(request, 'voter'),
            grade=form_value(request, 'grade'))
        request.setResponseCode(201)
        return with_save_status({'status': 'Success'}, self.session.saved)

    @jsonify.route('/results', methods=['POST'])
    def get_results(self, request):
        """
        Rankings, totals and every ballot. Requires the admin password.
        """
        self.authorize(request)
        if len(self.state.ballots) == 0:
            request.setResponseCode(409)
            return {'status': 'No Votes Cast'}

        def ranked(pairs):
            return [dict(candidate_to_json(c), votes=votes) for c, votes in pairs]

        response = {
            'winners': ranked(self.results.winners()),
            'results': ranked(self.results.ranked_results()),
            'ballots': [
                {'voter': voter, 'choices': [first, second]}
                for voter, first, second in self.results.ballot_detail()]}
        response.update(self.results.summary_stats())
        return response

    @jsonify.route('/reset', methods=['POST'])
    def reset(self, request):
        """
        Erase every candidate, vote and ballot. Requires the admin password.
        """
        self.authorize(request)
        erased = self.persistence.reset_all(self.state)
        self.session.active = False
        if not erased:
            request.setResponseCode(503)
            return {'status': 'Stored Data Not Erased', 'saved': False}
        return {'status': 'Reset', 'saved': True}
