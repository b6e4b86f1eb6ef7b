from functools import wraps
import json

from twisted.internet import defer
from twisted.logger import Logger

from errors import (AuthenticationError, DuplicateError, DuplicateVoteError,
    NotFoundError, ValidationError)

ERROR_CODES = [
    (ValidationError, 412),
    (DuplicateError, 409),
    (DuplicateVoteError, 409),
    (NotFoundError, 404),
    (AuthenticationError, 401),
]

def form_value(request, name):
    """
    First value of a query or form field, decoded, or None when missing.
    """
    values = request.args.get(name.encode('utf-8'))
    if not values:
        return None
    return values[0].decode('utf-8')

class Jsonify(object):

    log = Logger()

    def __init__(self, router):
        self.router = router

    def jsonify(self, f):
        @wraps(f)
        def deco(*args, **kwargs):
            request = args[1]
            result = defer.maybeDeferred(f, *args, **kwargs)
            result.addCallback(self.stringify, request)
            result.addErrback(self.stringify_failure, request)
            return result
        return deco

    def stringify(self, value, request):
        request.setHeader('Content-Type', 'application/json')
        if value is not None:
            return json.dumps(value)

    def stringify_failure(self, failure, request):
        request.setHeader('Content-Type', 'application/json')
        for error_type, code in ERROR_CODES:
            if failure.check(error_type):
                request.setResponseCode(code)
                return json.dumps({'status': str(failure.value)})

        self.log.failure('Unhandled error in {uri}', failure, uri=request.uri)
        request.setResponseCode(500)
        return json.dumps({'status': 'Internal Issues'})

    def route(self, url, *args, **kwargs):
        def deco(f):
            return self.router.route(url, *args, **kwargs)(self.jsonify(f))
        return deco
