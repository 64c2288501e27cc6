"""Turn ledger outcomes into flashed messages."""

from __future__ import annotations

from flask import current_app, flash

from ..models.entities import FailureKind, Outcome

_CATEGORIES = {
    FailureKind.VALIDATION: "danger",
    FailureKind.AVAILABILITY: "warning",
    FailureKind.AUTHORIZATION: "danger",
    FailureKind.NOT_FOUND: "danger",
}


def flash_outcome(outcome: Outcome) -> Outcome:
    if outcome.success:
        flash(outcome.message, "success")
    else:
        current_app.logger.info(f"Refused ({outcome.failure.value}): {outcome.message}")
        flash(outcome.message, _CATEGORIES[outcome.failure])
    return outcome
