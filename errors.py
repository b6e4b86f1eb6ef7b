class VoteError(Exception):
    """
    Base class for failures of a voting operation. The message is meant to be
    shown to the user as is.
    """

class ValidationError(VoteError):
    """ A required field is missing, blank or malformed. """

class DuplicateError(VoteError):
    """ A candidate with the same name or number is already registered. """

class DuplicateVoteError(VoteError):
    """ The voter has already cast a ballot. """

class NotFoundError(VoteError):
    """ No candidate is registered under the requested id. """

class AuthenticationError(VoteError):
    """ The administrator password did not match. """

class DanglingReferenceWarning(UserWarning):
    """ A ballot references a candidate that has since been removed. """
