from zope.interface import Interface, Attribute

class IStorage(Interface):
    def get_item(key):
        """
        Return the string stored under key, or None when the key is absent.
        """

    def set_item(key, value):
        """
        Store a string under key, replacing any previous value.
        """

    def remove_item(key):
        """
        Delete key. Deleting an absent key is not an error.
        """

    def clear():
        """
        Delete every key.
        """

class IPersistence(Interface):
    storage = Attribute('The IStorage provider holding the serialized blobs.')

    def load():
        """
        Read the roster, tally and ballot log into a new VoteState.
        Absent or malformed blobs load as empty containers.
        """

    def save(state):
        """
        Write all three containers of state. Returns True on success and
        False when the storage failed.
        """

    def reset_all(state):
        """
        Empty state in place and erase every persisted blob.
        """

class IRoster(Interface):
    def add_candidate(name, number):
        """
        Register a candidate with a unique name and number.
        """

    def remove_candidate(candidate_id):
        """
        Remove a candidate and its tally entry. Ballots are left untouched.
        """

    def get_candidate(candidate_id):
        """
        Retrieve a single candidate via the candidate id number.
        """

    def all_candidates():
        """
        All registered candidates in registration order.
        """

class IVotingSession(Interface):
    def begin():
        """
        Open the session. At least two candidates must be registered.
        """

    def eligible_choices(exclude_id=None):
        """
        Candidates a voter may pick, optionally leaving one out.
        """

    def submit_ballot(first_choice, second_choice, voter=None, grade=None):
        """
        Record one ballot with two distinct choices and count both.
        """

class IResults(Interface):
    def ranked_results():
        """
        Every candidate paired with its vote count, most votes first.
        """

    def winners(count=2):
        """
        The top of the ranking.
        """

    def summary_stats():
        """
        Number of voters and total number of votes cast.
        """

    def ballot_detail():
        """
        Voter label and the names of both choices, for every ballot in order.
        """
