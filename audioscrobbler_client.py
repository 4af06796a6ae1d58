#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Audioscrobbler 1.2 submission engine.

Highlights:
- Handshake token is md5(md5(password) + timestamp); the session token and the
  submission endpoint come back in a line-oriented text response.
- Bounded play queue (50 plays, play order kept). A full queue drops new plays,
  it never evicts queued ones.
- One worker thread submits the whole queue per request and only forgets the
  plays the server acknowledged; plays queued during the request stay queued.
- Exponential backoff between network attempts (1, 2, 4 ... 120 minutes),
  reset by any successful handshake or submission.
- BADSESSION and transport errors go back through the handshake; BADAUTH,
  BANNED and BADTIME stop the engine for good.
"""

from __future__ import annotations

import dataclasses
import enum
import hashlib
import logging
import re
import threading
import time
import urllib.parse
from typing import Callable, Dict, List, Optional, Tuple, Union

import requests

logger = logging.getLogger(__name__)

HANDSHAKE_URL = "http://post.audioscrobbler.com/"
PROTOCOL_VERSION = "1.2"
CLIENT_ID = "tst"
CLIENT_VERSION = "1.0"
USER_AGENT = f"audioscrobbler-client/{CLIENT_VERSION}"
HTTP_TIMEOUT = 30

QUEUE_MAX = 50
MAX_INTERVAL = 120  # minutes
MIN_LISTEN = 240  # seconds
MIN_DURATION = 30  # seconds

SESSION = requests.Session()
SESSION.headers.update({"User-Agent": USER_AGENT})

# ---------------------------
# Utilities
# ---------------------------

def md5_hex(s: str) -> str:
    return hashlib.md5(s.encode("utf-8")).hexdigest()


def encode_field(value: object) -> str:
    """Percent-encode a metadata value the way encodeURIComponent does."""
    if value is None:
        return ""
    return urllib.parse.quote(str(value), safe="-_.!~*'()")


_SECRET_PARAMS = re.compile(r"(^|[?&])([sa])=[^&\s]*")


def redact(text: str) -> str:
    """Hide the session token (s=) and the handshake auth token (a=)."""
    return _SECRET_PARAMS.sub(r"\1\2=***", text)


class ScrobblerError(Exception):
    pass


class ProtocolError(ScrobblerError):
    """The server answered something we can't make sense of."""


class MissingCredentialsError(ScrobblerError):
    pass


class FatalReason(enum.Enum):
    AUTH_FAILED = "Authentication failed: the username or password is incorrect."
    BANNED = "This client has been banned by the server. Upgrade it or disable scrobbling."
    CLOCK_SKEW = "Handshake refused: the system clock is too far off. Correct it and restart."
    MISSING_CREDENTIALS = "Username or password not set."

    @property
    def message(self) -> str:
        return self.value

# ---------------------------
# Data model
# ---------------------------

@dataclasses.dataclass(frozen=True)
class PlayRecord:
    """One finished play. Text fields are already percent-encoded."""

    artist: str
    title: str
    album: str = ""
    track_number: str = ""
    duration: int = 0
    mbid: str = ""
    started_at: int = 0

    def is_submittable(self) -> bool:
        return bool(self.artist) and bool(self.title)


@dataclasses.dataclass(frozen=True)
class Unauthenticated:
    pass


@dataclasses.dataclass(frozen=True)
class Authenticated:
    session_token: str
    submit_host: str
    submit_port: int
    submit_path: str


SessionState = Union[Unauthenticated, Authenticated]
UNAUTHENTICATED = Unauthenticated()


@dataclasses.dataclass(frozen=True)
class BackoffState:
    next_allowed: float = 0.0  # monotonic seconds
    interval: int = 0  # minutes

# ---------------------------
# Eligibility
# ---------------------------

@dataclasses.dataclass(frozen=True)
class Verdict:
    accepted: bool
    reason: str = ""


ACCEPT = Verdict(True)


def evaluate(record: PlayRecord, listened_seconds: Union[int, float]) -> Verdict:
    """
    Conditions, first failure wins:
    - listened for 240s or at least half the track
    - track is at least 30s long
    - artist and title are both set
    """
    listened = int(listened_seconds)
    if listened < MIN_LISTEN and listened < record.duration // 2:
        return Verdict(False, "not listened long enough")
    if record.duration < MIN_DURATION:
        return Verdict(False, f"too short (< {MIN_DURATION}s)")
    if not record.is_submittable():
        return Verdict(False, "missing artist or title")
    return ACCEPT

# ---------------------------
# Play queue
# ---------------------------

class EnqueueResult(enum.Enum):
    ACCEPTED = "accepted"
    DROPPED = "dropped"
    REJECTED = "rejected"


class PlayQueue:
    """Bounded FIFO of plays waiting for submission.

    Not thread-safe on its own: the engine guards it with its lock.
    """

    def __init__(self, capacity: int = QUEUE_MAX):
        if capacity < 1:
            raise ValueError("queue capacity must be at least 1")
        self.capacity = capacity
        self._items: List[PlayRecord] = []

    def __len__(self) -> int:
        return len(self._items)

    def enqueue(self, record: PlayRecord) -> EnqueueResult:
        if len(self._items) >= self.capacity:
            return EnqueueResult.DROPPED
        self._items.append(record)
        return EnqueueResult.ACCEPTED

    def snapshot(self) -> List[PlayRecord]:
        return list(self._items)

    def clear(self, snapshot: List[PlayRecord]) -> None:
        """Forget the plays of `snapshot`; anything queued since stays, in order."""
        # enqueue only appends, so what was sent is a prefix of the queue
        n = len(snapshot)
        head = self._items[:n]
        if len(head) == n and all(a is b for a, b in zip(head, snapshot)):
            del self._items[:n]
            return
        for record in snapshot:
            for i, queued in enumerate(self._items):
                if queued is record:
                    del self._items[i]
                    break

# ---------------------------
# Protocol codec
# ---------------------------

def auth_token(password_md5: str, timestamp: int) -> str:
    return md5_hex(password_md5 + str(int(timestamp)))


def build_handshake_url(
    username: str,
    password_md5: str,
    client_id: str,
    client_version: str,
    timestamp: int,
    base_url: str = HANDSHAKE_URL,
) -> str:
    query = "&".join([
        "hs=true",
        "p=" + PROTOCOL_VERSION,
        "c=" + urllib.parse.quote(client_id, safe=""),
        "v=" + urllib.parse.quote(client_version, safe=""),
        "u=" + urllib.parse.quote(username, safe=""),
        "t=" + str(int(timestamp)),
        "a=" + auth_token(password_md5, timestamp),
    ])
    return base_url + "?" + query


class HandshakeStatus(enum.Enum):
    OK = "ok"
    RETRY = "retry"
    FATAL = "fatal"


@dataclasses.dataclass(frozen=True)
class HandshakeOutcome:
    status: HandshakeStatus
    session: Optional[Authenticated] = None
    fatal: Optional[FatalReason] = None
    message: str = ""


_HANDSHAKE_FATAL = (
    ("BADAUTH", FatalReason.AUTH_FAILED),
    ("BANNED", FatalReason.BANNED),
    ("BADTIME", FatalReason.CLOCK_SKEW),
)


def parse_url(url: str) -> Tuple[str, int, str]:
    """
    Split an endpoint into (host, port, path).
    "http://62.216.251.205:80/protocol_1.2" -> ("62.216.251.205", 80, "protocol_1.2")
    """
    parts = urllib.parse.urlsplit(url.strip())
    if parts.scheme != "http" or not parts.hostname:
        raise ProtocolError(f"unusable endpoint URL: {url!r}")
    try:
        port = parts.port
    except ValueError as exc:
        raise ProtocolError(f"bad port in endpoint URL: {url!r}") from exc
    if port is None:
        port = 80
    elif port <= 0:
        raise ProtocolError(f"bad port in endpoint URL: {url!r}")
    path = parts.path.lstrip("/")
    if parts.query:
        path += "?" + parts.query
    return parts.hostname, port, path


def _parse_handshake_ok(body: str) -> Authenticated:
    pos = body.find("OK")
    if pos == -1:
        raise ProtocolError("no OK in handshake response")
    lines = [line.strip() for line in body[pos:].split("\n")]
    if len(lines) < 2 or not lines[1]:
        raise ProtocolError("handshake response has no session token")
    token = lines[1]
    urls = [line for line in lines[2:] if line.startswith("http://")]
    # first URL is the now-playing endpoint, which we don't use
    if len(urls) < 2:
        raise ProtocolError("handshake response has no submission URL")
    host, port, path = parse_url(urls[1])
    return Authenticated(token, host, port, path)


def parse_handshake_response(body: str) -> HandshakeOutcome:
    pos = body.find("FAILED ")
    if pos != -1:
        message = body[pos + len("FAILED "):].split("\n", 1)[0].strip()
        return HandshakeOutcome(HandshakeStatus.RETRY, message=message)
    for marker, reason in _HANDSHAKE_FATAL:
        if marker in body:
            return HandshakeOutcome(HandshakeStatus.FATAL, fatal=reason, message=marker)
    try:
        session = _parse_handshake_ok(body)
    except ProtocolError as exc:
        return HandshakeOutcome(HandshakeStatus.RETRY, message=str(exc))
    return HandshakeOutcome(HandshakeStatus.OK, session=session)


_SUBMISSION_KEYS = ("a", "t", "i", "o", "r", "l", "b", "n", "m")


def build_submission_body(session_token: str, records: List[PlayRecord]) -> str:
    parts = ["s=" + session_token]
    for i, rec in enumerate(records):
        values = (
            rec.artist,
            rec.title,
            str(int(rec.started_at)),
            "P",  # source: chosen by the user
            "",  # rating
            str(int(rec.duration)),
            rec.album,
            rec.track_number,
            rec.mbid,
        )
        for key, value in zip(_SUBMISSION_KEYS, values):
            parts.append(f"{key}%5B{i}%5D={value}")
    return "&".join(parts)


def build_submission_request(session: Authenticated, records: List[PlayRecord]) -> Tuple[str, str]:
    return session.submit_path, build_submission_body(session.session_token, records)


class SubmissionStatus(enum.Enum):
    SUCCESS = "success"
    BAD_SESSION = "bad_session"
    FAILURE = "failure"


@dataclasses.dataclass(frozen=True)
class SubmissionOutcome:
    status: SubmissionStatus
    message: str = ""


def parse_submission_response(body: str) -> SubmissionOutcome:
    pos = body.find("FAILED")
    if pos != -1:
        return SubmissionOutcome(SubmissionStatus.FAILURE, body[pos:].strip())
    if "BADSESSION" in body:
        return SubmissionOutcome(SubmissionStatus.BAD_SESSION, "BADSESSION")
    if "OK" in body:
        return SubmissionOutcome(SubmissionStatus.SUCCESS)
    return SubmissionOutcome(SubmissionStatus.FAILURE, body.strip())

# ---------------------------
# Backoff
# ---------------------------

def on_failure(state: BackoffState, now: float) -> BackoffState:
    interval = 1 if state.interval == 0 else min(MAX_INTERVAL, state.interval * 2)
    return BackoffState(next_allowed=now + interval * 60, interval=interval)


def on_success(state: BackoffState, now: float) -> BackoffState:
    return BackoffState(next_allowed=now, interval=0)

# ---------------------------
# Transport
# ---------------------------

class HttpTransport:
    """GET for the handshake, POST for submissions. Raises requests.RequestException."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = HTTP_TIMEOUT):
        self.session = session or SESSION
        self.timeout = timeout

    def get(self, url: str) -> str:
        r = self.session.get(url, timeout=self.timeout)
        r.raise_for_status()
        return r.text

    def post(self, host: str, port: int, path: str, body: str) -> str:
        headers = {
            "Content-type": "application/x-www-form-urlencoded",
            "Accept-Encoding": "identity",
            "Connection": "close",
        }
        url = f"http://{host}:{port}/{path}"
        r = self.session.post(url, data=body.encode("utf-8"), headers=headers, timeout=self.timeout)
        r.raise_for_status()
        return r.text

# ---------------------------
# Session
# ---------------------------

Credentials = Callable[[], Tuple[Optional[str], Optional[str]]]


class Session:
    """Authentication state plus the handshake that changes it.

    `handshake()` only does the network round trip; the engine applies the
    outcome with `apply()` while holding its lock.
    """

    def __init__(
        self,
        credentials: Credentials,
        transport,
        client_id: str = CLIENT_ID,
        client_version: str = CLIENT_VERSION,
        handshake_url: str = HANDSHAKE_URL,
        hashed_password: bool = False,
    ):
        self.credentials = credentials
        self.hashed_password = hashed_password
        self.transport = transport
        self.client_id = client_id
        self.client_version = client_version
        self.handshake_url = handshake_url
        self.state: SessionState = UNAUTHENTICATED

    @property
    def authenticated(self) -> bool:
        return isinstance(self.state, Authenticated)

    def has_credentials(self) -> bool:
        username, password = self.credentials()
        return bool(username) and bool(password)

    def handshake(self, timestamp: int) -> HandshakeOutcome:
        username, password = self.credentials()
        if not username or not password:
            return HandshakeOutcome(HandshakeStatus.FATAL, fatal=FatalReason.MISSING_CREDENTIALS)
        password_md5 = password if self.hashed_password else md5_hex(password)
        url = build_handshake_url(
            username, password_md5, self.client_id, self.client_version, timestamp, self.handshake_url
        )
        logger.debug("Handshake request: %s", redact(url))
        try:
            body = self.transport.get(url)
        except requests.RequestException as exc:
            # the exception text repeats the URL, auth token included
            logger.debug("Handshake transport error: %s", redact(str(exc)))
            return HandshakeOutcome(HandshakeStatus.RETRY, message=exc.__class__.__name__)
        logger.debug("Handshake response: %r", body[:1024])
        return parse_handshake_response(body)

    def apply(self, outcome: HandshakeOutcome) -> None:
        if outcome.status is HandshakeStatus.OK:
            self.state = outcome.session
        else:
            self.state = UNAUTHENTICATED

    def invalidate(self) -> None:
        self.state = UNAUTHENTICATED

# ---------------------------
# Current item tracking
# ---------------------------

class PlayTracker:
    """The item playing right now: metadata collected so far and time spent paused."""

    IDLE, ACTIVE, SKIPPED = "idle", "active", "skipped"

    def __init__(self):
        self.status = self.IDLE
        self.fields: Dict[str, object] = {}
        self.started_at = 0.0
        self.paused_at: Optional[float] = None
        self.total_pauses = 0.0

    def begin(self, started_at: float, skip: bool = False) -> None:
        self.status = self.SKIPPED if skip else self.ACTIVE
        self.fields = {}
        self.started_at = started_at
        self.paused_at = None
        self.total_pauses = 0.0

    def finish(self) -> None:
        self.status = self.IDLE
        self.fields = {}

    def pause(self, now: float) -> None:
        if self.paused_at is None:
            self.paused_at = now

    def resume(self, now: float) -> None:
        if self.paused_at is not None:
            self.total_pauses += now - self.paused_at
            self.paused_at = None

    def listened(self, now: float) -> int:
        pauses = self.total_pauses
        if self.paused_at is not None:
            pauses += now - self.paused_at
        return int(now - self.started_at - pauses)

    def record(self) -> PlayRecord:
        f = self.fields
        return PlayRecord(
            artist=f.get("artist", ""),
            title=f.get("title", ""),
            album=f.get("album", ""),
            track_number=f.get("track_number", ""),
            duration=int(f.get("duration", 0)),
            mbid=f.get("mbid", ""),
            started_at=int(f.get("started_at", self.started_at)),
        )

# ---------------------------
# Engine
# ---------------------------

class Scrobbler:
    """
    Owns the play queue, the session and the backoff schedule. Hosts feed it
    playback events from any thread; a single worker thread talks to the server.

    With `hashed_password` the credentials callable returns md5(password)
    instead of the password itself.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        transport=None,
        on_fatal: Optional[Callable[[FatalReason], None]] = None,
        on_diagnostic: Optional[Callable[[str], None]] = None,
        client_id: str = CLIENT_ID,
        client_version: str = CLIENT_VERSION,
        handshake_url: str = HANDSHAKE_URL,
        hashed_password: bool = False,
        capacity: int = QUEUE_MAX,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.transport = transport or HttpTransport()
        self.session = Session(
            credentials, self.transport, client_id, client_version, handshake_url, hashed_password
        )
        self.queue = PlayQueue(capacity)
        self._backoff = BackoffState()
        self.on_fatal = on_fatal
        self.on_diagnostic = on_diagnostic
        self.fatal_reason: Optional[FatalReason] = None
        self._clock = clock
        self._wall_clock = wall_clock
        self._cond = threading.Condition()
        self._tracker = PlayTracker()
        self._stopping = False
        self._thread: Optional[threading.Thread] = None

    # -------- lifecycle --------

    def start(self) -> None:
        if not self.session.has_credentials():
            self._fatal(FatalReason.MISSING_CREDENTIALS)
            raise MissingCredentialsError(FatalReason.MISSING_CREDENTIALS.message)
        with self._cond:
            if self._thread is not None:
                raise ScrobblerError("engine already started")
            self._thread = threading.Thread(target=self._run, name="audioscrobbler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Ask the worker to exit; an in-flight request is abandoned, not awaited."""
        with self._cond:
            self._stopping = True
            self._cond.notify_all()

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def state(self) -> SessionState:
        with self._cond:
            return self.session.state

    @property
    def backoff(self) -> BackoffState:
        with self._cond:
            return self._backoff

    @property
    def stopping(self) -> bool:
        with self._cond:
            return self._stopping

    def pending(self) -> int:
        with self._cond:
            return len(self.queue)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the queue is empty or the engine stops. True if the queue drained."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while len(self.queue) and not self._stopping:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)
            return not len(self.queue)

    # -------- inbound events --------

    def notify_item_changed(
        self, started_at: Optional[float] = None, is_audio: bool = True, is_network: bool = False
    ) -> None:
        """A new item started. Video and network streams are never submitted."""
        skip = not is_audio or is_network
        if skip:
            logger.debug("Not an audio local file, not submitting")
        with self._cond:
            self._tracker.begin(self._wall_clock() if started_at is None else started_at, skip=skip)

    def notify_metadata_available(
        self,
        artist: Optional[str] = None,
        title: Optional[str] = None,
        album: Optional[str] = None,
        track_number: Optional[object] = None,
        duration: Optional[int] = None,
        mbid: Optional[str] = None,
        started_at: Optional[int] = None,
    ) -> None:
        """Fill in the current play. Fields left as None are kept as they are."""
        updates: Dict[str, object] = {}
        for key, value in (("artist", artist), ("title", title), ("album", album),
                           ("track_number", track_number), ("mbid", mbid)):
            if value is not None:
                updates[key] = encode_field(value)
        if duration is not None:
            updates["duration"] = max(0, int(duration))
        with self._cond:
            tracker = self._tracker
            if tracker.status == PlayTracker.SKIPPED:
                return
            if tracker.status == PlayTracker.IDLE:
                tracker.begin(self._wall_clock() if started_at is None else started_at)
            if started_at is not None:
                tracker.started_at = started_at
                updates["started_at"] = int(started_at)
            tracker.fields.update(updates)
        logger.debug("Meta data registered")

    def notify_paused(self) -> None:
        with self._cond:
            self._tracker.pause(self._wall_clock())

    def notify_resumed(self) -> None:
        with self._cond:
            self._tracker.resume(self._wall_clock())

    def notify_playback_ended(self, listened_seconds: Optional[float] = None) -> EnqueueResult:
        """
        The current play is over: queue it if it counts. Without
        `listened_seconds` the time since start minus pauses is used.
        """
        with self._cond:
            tracker = self._tracker
            if tracker.status != PlayTracker.ACTIVE or not tracker.fields:
                tracker.finish()
                logger.debug("Nothing to submit for this item")
                return EnqueueResult.REJECTED
            record = tracker.record()
            if listened_seconds is None:
                listened_seconds = tracker.listened(self._wall_clock())
            tracker.finish()
        return self.add_play(record, listened_seconds)

    def add_play(self, record: PlayRecord, listened_seconds: Union[int, float]) -> EnqueueResult:
        verdict = evaluate(record, listened_seconds)
        if not verdict.accepted:
            logger.debug("Not submitting %s - %s: %s", record.artist, record.title, verdict.reason)
            return EnqueueResult.REJECTED
        with self._cond:
            result = self.queue.enqueue(record)
            if result is EnqueueResult.ACCEPTED:
                self._cond.notify_all()
        if result is EnqueueResult.DROPPED:
            logger.warning("Submission queue is full, not submitting %s - %s", record.artist, record.title)
        else:
            logger.debug("Song will be submitted: %s - %s", record.artist, record.title)
        return result

    # -------- worker --------

    def _run(self) -> None:
        logger.debug("Submission worker started")
        while True:
            with self._cond:
                if not self._wait_for_work():
                    break
            if not self.run_once():
                break
        logger.debug("Submission worker is stopping")

    def _wait_for_work(self) -> bool:
        # caller holds the lock
        while not self._stopping:
            now = self._clock()
            if now < self._backoff.next_allowed:
                self._cond.wait(self._backoff.next_allowed - now)
            elif len(self.queue):
                return True
            else:
                self._cond.wait()
        return False

    def run_once(self) -> bool:
        """
        One handshake-if-needed plus submission cycle, regardless of the
        backoff schedule. Returns False once the engine has to stop.
        """
        with self._cond:
            if self._stopping:
                return False
            state = self.session.state

        if not isinstance(state, Authenticated):
            self._diagnostic(logging.DEBUG, "Handshaking with %s ..." % self.session.handshake_url)
            outcome = self.session.handshake(int(self._wall_clock()))
            with self._cond:
                self.session.apply(outcome)
                if outcome.status is HandshakeStatus.OK:
                    self._backoff = on_success(self._backoff, self._clock())
                elif outcome.status is HandshakeStatus.RETRY:
                    self._backoff = on_failure(self._backoff, self._clock())
                backoff = self._backoff
            if outcome.status is HandshakeStatus.FATAL:
                self._fatal(outcome.fatal)
                return False
            if outcome.status is HandshakeStatus.RETRY:
                self._diagnostic(
                    logging.WARNING,
                    "Handshake failed (%s), retrying in %d min" % (outcome.message, backoff.interval),
                )
                return True
            self._diagnostic(logging.INFO, "Handshake successful")
            state = outcome.session

        with self._cond:
            if self._stopping:
                return False
            snapshot = self.queue.snapshot()
        if not snapshot:
            return True

        path, body = build_submission_request(state, snapshot)
        logger.debug("Submitting %d play(s) to %s:%d/%s: %s",
                     len(snapshot), state.submit_host, state.submit_port, path, redact(body)[:6000])
        try:
            response = self.transport.post(state.submit_host, state.submit_port, path, body)
        except requests.RequestException as exc:
            with self._cond:
                self._backoff = on_failure(self._backoff, self._clock())
                self.session.invalidate()
                backoff = self._backoff
            self._diagnostic(
                logging.WARNING,
                "Submission failed (%s), handshaking again in %d min" % (exc.__class__.__name__, backoff.interval),
            )
            return True

        logger.debug("Submission response: %r", response[:1024])
        outcome = parse_submission_response(response)
        with self._cond:
            if outcome.status is SubmissionStatus.SUCCESS:
                self.queue.clear(snapshot)
                self._backoff = on_success(self._backoff, self._clock())
                self._cond.notify_all()
            else:
                self._backoff = on_failure(self._backoff, self._clock())
                if outcome.status is SubmissionStatus.BAD_SESSION:
                    self.session.invalidate()
            backoff = self._backoff

        if outcome.status is SubmissionStatus.SUCCESS:
            self._diagnostic(logging.INFO, "Submission successful: %d play(s)" % len(snapshot))
        elif outcome.status is SubmissionStatus.BAD_SESSION:
            self._diagnostic(
                logging.ERROR,
                "Session rejected (BADSESSION), is another program using this account? "
                "Handshaking again in %d min" % backoff.interval,
            )
        else:
            self._diagnostic(
                logging.WARNING,
                "Submission failed (%s), retrying in %d min" % (outcome.message, backoff.interval),
            )
        return True

    # -------- outbound notifications --------

    def _fatal(self, reason: FatalReason) -> None:
        with self._cond:
            self.fatal_reason = reason
            self._stopping = True
            self._cond.notify_all()
        logger.error("%s Scrobbling stopped.", reason.message)
        if self.on_fatal is not None:
            self.on_fatal(reason)

    def _diagnostic(self, level: int, message: str) -> None:
        logger.log(level, message)
        if self.on_diagnostic is None:
            return
        try:
            self.on_diagnostic(message)
        except Exception:
            logger.exception("Diagnostic callback failed")
