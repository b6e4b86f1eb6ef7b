import json

from klein import Klein

from controllers import DEFAULT_PASSWORD, VoteApi
from database import Persistence
from election import IDENTITY

class Application(object):

    router = Klein()

    def __init__(self, storage, variant=IDENTITY, password=DEFAULT_PASSWORD):
        self.persistence = Persistence(storage)
        self.vote_api = VoteApi(self.persistence, variant, password)

    def run(self, *args, **kwargs):
        self.router.run(*args, **kwargs)

    @router.route('/')
    def welcome(self, request):
        message = 'Welcome to the Class Vote'
        content_types = request.requestHeaders.getRawHeaders('Content-Type') or []
        if 'application/json' in content_types:
            request.setHeader('Content-Type', 'application/json')
            return json.dumps({'message': message})
        request.setHeader('Content-Type', 'text/html')
        return '<h1>%s</h1>' % (message)

    @router.route('/api', branch=True)
    def vote_rsrc(self, request):
        return self.vote_api.resource()
