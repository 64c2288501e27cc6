"""Administrative dashboard, approvals and inventory routes."""

from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, redirect, render_template, url_for
from flask_login import current_user
from flask_wtf import FlaskForm
from wtforms import BooleanField, IntegerField, SelectField, SelectMultipleField, StringField, SubmitField
from wtforms.validators import InputRequired, Length, Optional

from ..models.entities import RequestStatus
from ..services.store import get_ledger
from .auth import admin_required
from .outcomes import flash_outcome

bp = Blueprint("admin", __name__, url_prefix="/admin", template_folder="../views")

STATUS_CHOICES = ("Available", "Unavailable", "Under Maintenance", "Reserved")


class RejectForm(FlaskForm):
    reason = StringField("Reason", validators=[Optional(), Length(max=300)])
    submit = SubmitField("Reject")


class ReturnForm(FlaskForm):
    """Mark units returned, optionally taking them out of a room."""

    equipment_id = SelectField(
        "Equipment",
        choices=[],
        validators=[InputRequired(message="Please select equipment to return.")],
    )
    room_id = SelectField("Room", choices=[], validators=[Optional()])
    quantity = IntegerField("Quantity", default=1, validators=[InputRequired()])
    submit = SubmitField("Mark Return")


class MoveForm(FlaskForm):
    """Move assigned units between rooms."""

    source = SelectField("From", choices=[], validators=[InputRequired()])
    destination = SelectField("To", choices=[], validators=[InputRequired()])
    equipment_id = SelectField("Item", choices=[], validators=[InputRequired()])
    quantity = IntegerField("Quantity", default=1, validators=[InputRequired()])
    submit = SubmitField("Move")


class StatusUpdateForm(FlaskForm):
    """Administrative override of an equipment type's status."""

    status = SelectField("Status", choices=[(label, label) for label in STATUS_CHOICES])
    available = BooleanField("Available for borrowing")
    quantity = IntegerField("Quantity", validators=[Optional()])
    reason = StringField("Reason", validators=[Length(max=300)])
    submit = SubmitField("Update Status")


class BulkStatusForm(FlaskForm):
    equipment_ids = SelectMultipleField("Equipment", choices=[])
    status = SelectField("Status", choices=[("", "Choose status")] + [(label, label) for label in STATUS_CHOICES])
    submit = SubmitField("Apply to selected")


def _bind_choices(form: FlaskForm) -> FlaskForm:
    """Populate room and equipment select fields from the ledger."""

    ledger = get_ledger()
    rooms = [(room.room_id, room.room_id) for room in ledger.rooms.values()]
    equipment = [(eq.equipment_id, eq.name) for eq in ledger.equipment.values()]
    for name in ("room_id", "source", "destination"):
        if name in form:
            form[name].choices = ([("", "Inventory only")] if name == "room_id" else []) + rooms
    if "equipment_id" in form:
        form["equipment_id"].choices = equipment
    if "equipment_ids" in form:
        form["equipment_ids"].choices = equipment
    return form


def _flash_form_errors(form: FlaskForm) -> None:
    for errors in form.errors.values():
        for error in errors:
            flash(error, "danger")


@bp.route("/")
@admin_required
def dashboard():
    """Render admin overview metrics."""

    ledger = get_ledger()
    rooms = list(ledger.rooms.values())
    counts = ledger.status_counts()
    stats = ledger.equipment_stats()
    return render_template(
        "admin_dashboard.html",
        metrics={
            "pending": counts[RequestStatus.PENDING.value],
            "approved": counts[RequestStatus.APPROVED.value],
            "rejected": counts[RequestStatus.REJECTED.value],
            "overdue": counts[RequestStatus.OVERDUE.value],
            "available_rooms": sum(1 for room in rooms if room.available),
            "occupied_rooms": sum(1 for room in rooms if not room.available),
            "total_units": stats["total"],
            "unavailable_types": stats["borrowed_types"],
        },
        recent_requests=ledger.recent_requests(current_app.config["RECENT_REQUESTS_LIMIT"]),
    )


@bp.route("/requests")
@admin_required
def requests():
    """Pending queue with approval checks, plus request history."""

    ledger = get_ledger()
    pending = [
        {
            "request": req,
            "equipment": ledger.get_equipment(req.equipment_id),
            "check": ledger.validate_for_approval(req.request_id),
        }
        for req in ledger.pending_requests()
    ]
    history = {
        status.value: ledger.list_requests(status)[:10]
        for status in RequestStatus
        if status != RequestStatus.PENDING
    }
    return render_template(
        "admin_requests.html",
        pending=pending,
        history=history,
        counts=ledger.status_counts(),
        reject_form=RejectForm(),
    )


@bp.route("/requests/<request_id>/approve", methods=["POST"])
@admin_required
def approve_request(request_id: str):
    """Approve a pending request against current stock."""

    flash_outcome(get_ledger().approve_request(current_user.actor, request_id))
    return redirect(url_for("admin.requests"))


@bp.route("/requests/<request_id>/reject", methods=["POST"])
@admin_required
def reject_request(request_id: str):
    """Reject a pending request."""

    form = RejectForm()
    reason = form.reason.data if form.validate_on_submit() else None
    flash_outcome(get_ledger().reject_request(current_user.actor, request_id, reason))
    return redirect(url_for("admin.requests"))


@bp.route("/requests/<request_id>/return", methods=["POST"])
@admin_required
def return_request(request_id: str):
    """Close an approved request as returned."""

    flash_outcome(get_ledger().return_request(current_user.actor, request_id))
    return redirect(url_for("admin.requests"))


@bp.route("/overdue", methods=["POST"])
@admin_required
def refresh_overdue():
    """Flag approved requests past their return date."""

    flagged = get_ledger().mark_overdue()
    flash(f"{flagged} request(s) marked overdue.", "info")
    return redirect(url_for("admin.requests"))


@bp.route("/inventory")
@admin_required
def inventory():
    """Room assignments with the return and move panels."""

    ledger = get_ledger()
    return render_template(
        "admin_inventory.html",
        rooms=list(ledger.rooms.values()),
        equipment=list(ledger.equipment.values()),
        return_form=_bind_choices(ReturnForm()),
        move_form=_bind_choices(MoveForm()),
    )


@bp.route("/return", methods=["POST"])
@admin_required
def mark_return():
    """Put units back into inventory, clamped to the room's assignment."""

    form = _bind_choices(ReturnForm())
    if form.validate_on_submit():
        flash_outcome(
            get_ledger().return_equipment(
                current_user.actor,
                form.equipment_id.data,
                form.quantity.data,
                room_id=form.room_id.data or None,
            )
        )
    else:
        _flash_form_errors(form)
    return redirect(url_for("admin.inventory"))


@bp.route("/move", methods=["POST"])
@admin_required
def move_items():
    """Move assigned units between two rooms."""

    form = _bind_choices(MoveForm())
    if form.validate_on_submit():
        flash_outcome(
            get_ledger().move_items(
                current_user.actor,
                form.source.data,
                form.destination.data,
                form.equipment_id.data,
                form.quantity.data,
            )
        )
    else:
        _flash_form_errors(form)
    return redirect(url_for("admin.inventory"))


@bp.route("/equipment")
@admin_required
def equipment():
    """Equipment status management."""

    ledger = get_ledger()
    items = [
        {
            "equipment": eq,
            "pending": ledger.pending_count_for(eq.equipment_id),
            "form": StatusUpdateForm(
                prefix=eq.equipment_id,
                formdata=None,
                status=eq.status,
                available=eq.available,
                quantity=eq.quantity,
            ),
        }
        for eq in ledger.equipment.values()
    ]
    return render_template(
        "admin_equipment.html",
        items=items,
        bulk_form=_bind_choices(BulkStatusForm()),
        audit_log=ledger.audit_log[:10],
    )


@bp.route("/equipment/<equipment_id>/status", methods=["POST"])
@admin_required
def update_status(equipment_id: str):
    """Apply an administrative status change with a mandatory reason."""

    ledger = get_ledger()
    if ledger.get_equipment(equipment_id) is None:
        abort(404)
    form = StatusUpdateForm(prefix=equipment_id)
    if not form.validate_on_submit():
        _flash_form_errors(form)
        return redirect(url_for("admin.equipment"))
    pending = ledger.pending_count_for(equipment_id)
    outcome = flash_outcome(
        ledger.update_equipment_status(
            current_user.actor,
            equipment_id,
            status=form.status.data,
            available=form.available.data,
            reason=form.reason.data or "",
            quantity=form.quantity.data,
        )
    )
    if outcome.success and pending and not form.available.data:
        flash(f"Warning: this equipment has {pending} pending request(s) that can no longer be approved.", "warning")
    return redirect(url_for("admin.equipment"))


@bp.route("/equipment/bulk-status", methods=["POST"])
@admin_required
def bulk_status():
    """Apply one status label to several equipment types."""

    form = _bind_choices(BulkStatusForm())
    if not form.validate_on_submit():
        _flash_form_errors(form)
        return redirect(url_for("admin.equipment"))
    flash_outcome(get_ledger().bulk_update_status(current_user.actor, form.equipment_ids.data or [], form.status.data))
    return redirect(url_for("admin.equipment"))


@bp.route("/audit")
@admin_required
def audit():
    """Full equipment status audit trail."""

    return render_template("admin_audit.html", audit_log=list(get_ledger().audit_log))
