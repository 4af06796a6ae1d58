import threading

import audioscrobbler_client as asc

TOKEN = "0123456789abcdef0123456789abcdef"
HANDSHAKE_OK = (
    "OK\n"
    + TOKEN
    + "\nhttp://post.audioscrobbler.com:80/np_1.2\n"
    + "http://post2.audioscrobbler.com:8080/protocol_1.2\n"
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeTransport:
    """Scripted server: each entry is a body to return or an exception to raise."""

    def __init__(self, handshakes=(HANDSHAKE_OK,), submissions=("OK\n",)):
        self.handshakes = list(handshakes)
        self.submissions = list(submissions)
        self.gets = []
        self.posts = []
        self.posted = threading.Event()

    @staticmethod
    def _next(responses):
        r = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(r, Exception):
            raise r
        return r

    def get(self, url):
        self.gets.append(url)
        return self._next(self.handshakes)

    def post(self, host, port, path, body):
        self.posts.append((host, port, path, body))
        self.posted.set()
        return self._next(self.submissions)


def make_record(i=0, **kwargs):
    fields = dict(
        artist=f"Artist{i}",
        title=f"Title{i}",
        album="Album",
        track_number=str(i + 1),
        duration=200,
        mbid="",
        started_at=1200000000 + i * 300,
    )
    fields.update(kwargs)
    return asc.PlayRecord(**fields)


def credentials():
    return "user", "secret"
