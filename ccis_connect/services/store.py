"""Process-wide ledger store bound to a Flask app."""

from __future__ import annotations

import threading
import traceback
from dataclasses import dataclass, field

from flask import Flask, current_app

from ..data_access import seed, snapshot_dao
from .ledger import Ledger

EXTENSION_KEY = "ccis_ledger"


@dataclass
class LedgerState:
    ledger: Ledger
    loaded: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock)


def _new_ledger(app: Flask) -> Ledger:
    return seed.default_ledger(
        release_delay_seconds=app.config["AUTO_RELEASE_SECONDS"],
        class_hours=(app.config["CLASS_HOURS_START"], app.config["CLASS_HOURS_END"]),
    )


def _persist(app: Flask, ledger: Ledger) -> None:
    """Mirror the ledger to the snapshot store.

    Runs on request threads and release timer threads after the transition is
    applied, so a failed write is logged and never raised to the caller.
    """

    with app.app_context():
        try:
            snapshot_dao.save_ledger(ledger)
        except Exception as exc:  # pylint: disable=broad-except
            app.logger.error(f"Failed to persist ledger snapshot: {exc}\n{traceback.format_exc()}")


def init_app(app: Flask) -> None:
    """Attach a seeded ledger; stored snapshots are loaded on first use."""

    ledger = _new_ledger(app)
    ledger.subscribe(lambda changed: _persist(app, changed))
    app.extensions[EXTENSION_KEY] = LedgerState(ledger)


def get_ledger(app: Flask | None = None) -> Ledger:
    """Return the app's ledger, loading the persisted snapshot once."""

    app = app or current_app._get_current_object()  # type: ignore[attr-defined]
    state: LedgerState = app.extensions[EXTENSION_KEY]
    with state.lock:
        if not state.loaded:
            with app.app_context():
                if snapshot_dao.load_into(state.ledger):
                    app.logger.info("Loaded ledger snapshot")
                else:
                    app.logger.info("No ledger snapshot stored; starting from seed data")
                    snapshot_dao.save_ledger(state.ledger)
            state.loaded = True
    return state.ledger


def reset_ledger(app: Flask | None = None) -> Ledger:
    """Discard stored snapshots and return the ledger to seed state."""

    app = app or current_app._get_current_object()  # type: ignore[attr-defined]
    state: LedgerState = app.extensions[EXTENSION_KEY]
    with state.lock:
        with app.app_context():
            snapshot_dao.clear()
        state.loaded = True
    state.ledger.replace_state(_new_ledger(app))
    return state.ledger
