"""Per-library sync cycle state machine.

One instance per library per cycle. The orchestrator drives it so that an
out-of-order step (committing before applying, applying after a failed
fetch) raises ``TransitionNotAllowed`` instead of silently moving the
cursor past unapplied data.
"""

from __future__ import annotations

from statemachine import State, StateMachine


class LibrarySyncSM(StateMachine):
    """Eight-state lifecycle of one library's sync cycle.

    States:
        idle           -- Nothing done yet.
        reading_cursor -- Loading the stored version.
        fetching       -- Items and deleted keys in flight.
        empty          -- Nothing changed; no index mutation needed.
        applying       -- Upserts then deletes being written to the index.
        committing     -- Index writes returned; persisting the new cursor.
        done           -- Cursor committed.
        failed         -- Aborted; stored cursor untouched.
    """

    idle = State("idle", initial=True, value="idle")
    reading_cursor = State("reading_cursor", value="reading_cursor")
    fetching = State("fetching", value="fetching")
    empty = State("empty", value="empty")
    applying = State("applying", value="applying")
    committing = State("committing", value="committing")
    done = State("done", final=True, value="done")
    failed = State("failed", final=True, value="failed")

    read_cursor = idle.to(reading_cursor)
    fetch = reading_cursor.to(fetching)
    found_nothing = fetching.to(empty)
    found_changes = fetching.to(applying)
    commit = empty.to(committing) | applying.to(committing)
    finish = committing.to(done)
    fail = fetching.to(failed) | applying.to(failed) | committing.to(failed)
