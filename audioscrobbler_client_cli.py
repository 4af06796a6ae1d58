#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Audioscrobbler client (CLI)

Feeds play logs (JSON) through the submission engine the same way a media
player would: item changed -> metadata available -> playback ended.

- Credentials from --username/--password, AUDIOSCROBBLER_USERNAME/_PASSWORD,
  the cached config file, or an interactive prompt (in that order).
- Plays are fed in chunks of the queue size; each chunk is left to drain
  (backoff included) before the next one goes in.
- --dry-run prints the verdicts and the request body without any network.
- --probe sends a single test play; --auth-reset forgets cached credentials.
- --debug writes scrobble_debug.log (session tokens redacted).
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import os
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import audioscrobbler_client as asc

CONFIG_FILE = Path.home() / ".audioscrobbler_client_config.json"
DEBUG_LOG = Path("scrobble_debug.log")
DRY_RUN_TOKEN = "DRYRUN"

# ---------------------------
# Config
# ---------------------------

def load_config(path: Optional[Path] = None) -> Dict[str, str]:
    path = path or CONFIG_FILE
    if path.exists():
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
    return {}


def save_config(cfg: Dict[str, str], path: Optional[Path] = None) -> None:
    path = path or CONFIG_FILE
    path.write_text(json.dumps(cfg, ensure_ascii=False, indent=2), encoding="utf-8")


def delete_config(path: Optional[Path] = None) -> None:
    path = path or CONFIG_FILE
    if path.exists():
        path.unlink()


def resolve_credentials(args: argparse.Namespace, cfg: Dict[str, str], interactive: bool = True):
    """(username, md5 of the password). Only the hash is ever cached."""
    username = args.username or os.getenv("AUDIOSCROBBLER_USERNAME") or cfg.get("username")
    password = args.password or os.getenv("AUDIOSCROBBLER_PASSWORD")
    password_md5 = asc.md5_hex(password) if password else cfg.get("password_md5")
    if interactive and not username:
        username = input("Enter your Last.fm username: ").strip()
    if interactive and not password_md5:
        password = getpass.getpass("Enter your Last.fm password: ")
        password_md5 = asc.md5_hex(password) if password else None
    return username or None, password_md5 or None


def setup_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    if debug:
        handler = logging.FileHandler(DEBUG_LOG, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root = logging.getLogger()
        root.addHandler(handler)
        root.setLevel(logging.DEBUG)
        for h in root.handlers:
            if h is not handler:
                h.setLevel(logging.INFO)

# ---------------------------
# Play logs
# ---------------------------

def load_plays(paths: Iterable[Path]) -> List[Dict[str, object]]:
    """
    Load and flatten play logs. Accepts .json files (a list of plays) or
    directories, which are searched recursively.
    """
    entries: List[Dict[str, object]] = []
    for p in paths:
        files = sorted(p.rglob("*.json")) if p.is_dir() else [p]
        for file in files:
            if file.suffix.lower() != ".json" or not file.is_file():
                print(f"Warning: {file} not found or unsupported, skipped.")
                continue
            try:
                data = json.loads(file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                print(f"Error reading {file}: {exc}")
                continue
            if isinstance(data, list):
                entries.extend(e for e in data if isinstance(e, dict))
    return entries


def entry_started_at(entry: Dict[str, object]) -> int:
    try:
        return int(entry.get("started_at") or 0) or int(time.time())
    except (TypeError, ValueError):
        return int(time.time())


def entry_duration(entry: Dict[str, object]) -> int:
    try:
        return int(entry.get("duration") or 0)
    except (TypeError, ValueError):
        return 0


def entry_listened(entry: Dict[str, object]) -> int:
    """Seconds listened; plays logged without it count as fully listened."""
    raw = entry.get("listened")
    if raw is None:
        raw = entry.get("duration")
    try:
        return int(raw or 0)
    except (TypeError, ValueError):
        return 0


def entry_to_record(entry: Dict[str, object]) -> asc.PlayRecord:
    """Same encoding the engine applies to metadata events, for --dry-run."""
    return asc.PlayRecord(
        artist=asc.encode_field(entry.get("artist")),
        title=asc.encode_field(entry.get("title")),
        album=asc.encode_field(entry.get("album")),
        track_number=asc.encode_field(entry.get("track_number")),
        duration=entry_duration(entry),
        mbid=asc.encode_field(entry.get("mbid")),
        started_at=entry_started_at(entry),
    )


def feed_play(engine: asc.Scrobbler, entry: Dict[str, object]) -> asc.EnqueueResult:
    started_at = entry_started_at(entry)
    engine.notify_item_changed(started_at=started_at)
    engine.notify_metadata_available(
        artist=entry.get("artist"),
        title=entry.get("title"),
        album=entry.get("album"),
        track_number=entry.get("track_number"),
        duration=entry_duration(entry),
        mbid=entry.get("mbid"),
        started_at=started_at,
    )
    return engine.notify_playback_ended(entry_listened(entry))

# ---------------------------
# Runs
# ---------------------------

def run_dry(plays: List[Dict[str, object]], capacity: int = asc.QUEUE_MAX) -> int:
    accepted: List[asc.PlayRecord] = []
    for entry in plays:
        record = entry_to_record(entry)
        verdict = asc.evaluate(record, entry_listened(entry))
        if verdict.accepted:
            accepted.append(record)
        else:
            print(f"[dry-run] skip {entry.get('artist')} - {entry.get('title')}: {verdict.reason}")
    for i in range(0, len(accepted), capacity):
        batch = accepted[i : i + capacity]
        print(f"[dry-run] batch {i // capacity + 1}: {len(batch)} play(s)")
        print(asc.build_submission_body(DRY_RUN_TOKEN, batch))
    print(f"Finished. {len(accepted)} of {len(plays)} plays would be submitted (dry-run).")
    return 0


def submit_plays(engine: asc.Scrobbler, plays: List[Dict[str, object]], timeout: float) -> int:
    capacity = engine.queue.capacity
    queued = 0
    for entry in plays:
        if engine.stopping:
            break
        if engine.pending() >= capacity:
            print(f"Queue full, waiting for {capacity} plays to be submitted...")
            if not engine.wait_idle(timeout):
                break
        if feed_play(engine, entry) is asc.EnqueueResult.ACCEPTED:
            queued += 1

    if not engine.stopping:
        engine.wait_idle(timeout)
    left = engine.pending()
    engine.stop()

    if engine.fatal_reason is not None:
        return 1
    if left:
        print(f"Warning: {left} play(s) still unsubmitted after {timeout:.0f}s, giving up.")
        return 1
    print(f"Finished. {queued} of {len(plays)} plays submitted.")
    return 0


def probe_play() -> Dict[str, object]:
    return {
        "artist": "Nirvana",
        "title": "Smells Like Teen Spirit",
        "album": "Nevermind",
        "track_number": "1",
        "duration": 301,
        "listened": 301,
        "started_at": int(time.time()) - 320,
    }


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(
        description="Submit played tracks to an Audioscrobbler 1.2 service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--input", nargs="+", help="One or more play-log JSON files or directories.")
    p.add_argument("--username", help="Last.fm username")
    p.add_argument("--password", help="Last.fm password")
    p.add_argument("--client-id", help=f"Protocol client id (default: {asc.CLIENT_ID})")
    p.add_argument("--client-version", help=f"Protocol client version (default: {asc.CLIENT_VERSION})")
    p.add_argument("--handshake-url", default=asc.HANDSHAKE_URL, help="Handshake endpoint")
    p.add_argument("--timeout", type=float, default=600.0, help="Seconds to wait for each batch to be submitted")
    p.add_argument("--dry-run", action="store_true", help="Evaluate plays and print request bodies, no network")
    p.add_argument("--debug", action="store_true", help="Write scrobble_debug.log (redacted)")
    p.add_argument("--probe", action="store_true", help="Send a one-track test play")
    p.add_argument("--auth-reset", action="store_true", help="Forget cached credentials")

    args = p.parse_args(argv)
    setup_logging(args.debug)

    if args.auth_reset:
        delete_config()
        print("Cleared cached credentials.")

    if args.probe:
        plays = [probe_play()]
    elif args.input:
        inputs: List[Path] = []
        for s in args.input:
            pth = Path(s).expanduser()
            if not pth.exists():
                print(f"Warning: {s} not found; skipped")
                continue
            inputs.append(pth)
        if not inputs:
            print("Error: no valid inputs")
            return 2
        plays = load_plays(inputs)
        print(f"Loaded {len(plays)} play(s).")
    else:
        print("Error: --input is required (or use --probe)")
        return 2

    if args.dry_run:
        return run_dry(plays)

    cfg = load_config()
    username, password_md5 = resolve_credentials(args, cfg)

    def on_fatal(reason: asc.FatalReason) -> None:
        print(f"Error: {reason.message}")

    engine = asc.Scrobbler(
        lambda: (username, password_md5),
        hashed_password=True,
        on_fatal=on_fatal,
        client_id=args.client_id or cfg.get("client_id") or asc.CLIENT_ID,
        client_version=args.client_version or cfg.get("client_version") or asc.CLIENT_VERSION,
        handshake_url=args.handshake_url,
    )
    try:
        engine.start()
    except asc.MissingCredentialsError:
        return 1

    code = submit_plays(engine, plays, args.timeout)
    if code == 0:
        cfg.pop("password", None)
        cfg.update({"username": username, "password_md5": password_md5})
        save_config(cfg)
    return code


if __name__ == "__main__":
    raise SystemExit(main())
