import sys

from twisted.python.usage import Options, UsageError

from controllers import DEFAULT_PASSWORD
from database import Database, Persistence
from election import IDENTITY, VARIANTS
from main import Application

class CLI(Options):

    optParameters = [
        ['db', 'D', 'votes.sqlite', 'Path to the sqlite store.'],
        ['host', 'H', '127.0.0.1', 'Hostname'],
        ['port', 'P', 8000, 'Port number', int],
        ['logpath', 'L', None, 'File path to log'],
        ['variant', 'V', IDENTITY, 'Ballot variant: %s' % (' or '.join(VARIANTS))],
        ['password', 'W', DEFAULT_PASSWORD, 'Administrator password for results and reset'],
    ]

    optFlags = [
        ['runserver', 'R', 'Run the Klein application'],
        ['reset', 'C', 'Erase every candidate, vote and ballot'],
    ]

    def postOptions(self):
        if self['variant'] not in VARIANTS:
            raise UsageError('Unknown variant "%s"' % (self['variant']))

def reset_store(dbpath, confirm=input):
    answer = confirm('Erase all candidates and votes in %s? [yes/no]: ' % (dbpath))
    if answer.lower() not in ['yes', 'y']:
        print('Nothing was erased')
        return False

    db = Database(dbpath)
    persistence = Persistence(db)
    erased = persistence.reset_all(persistence.load())
    db.close()
    print('[x] Erased %s' % (dbpath) if erased else '[ ] Could not erase %s' % (dbpath))
    return erased

def runserver(dbpath, host, port, logpath, variant, password):
    app = Application(Database(dbpath), variant, password)
    print('Database: %s' % (dbpath))
    print('Ballots: %s' % (variant))

    if logpath:
        logfile = open(logpath, 'a')
        print('Log File: %s' % (logpath))
    else:
        logfile = None

    print('Host: %s\nPort: %d\n' % (host, port))
    app.run(host, port, logfile)


if __name__=='__main__':
    cli = CLI()
    try:
        cli.parseOptions()
    except UsageError as error:
        print('%s: %s' % (sys.argv[0], error))
        print(cli)
        sys.exit(1)

    if cli['reset']:
        reset_store(cli['db'])

    if cli['runserver']:
        runserver(
            dbpath=cli['db'],
            host=cli['host'],
            port=cli['port'],
            logpath=cli['logpath'],
            variant=cli['variant'],
            password=cli['password'])
