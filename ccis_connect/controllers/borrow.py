"""Equipment catalog and borrow request routes."""

from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from wtforms import DateField, IntegerField, SelectField, StringField, SubmitField, TextAreaField
from wtforms.validators import InputRequired, Length, NumberRange, Optional, ValidationError

from ..models.entities import Role
from ..services.ledger import EQUIPMENT_FILTERS
from ..services.store import get_ledger
from .auth import capability_required
from .outcomes import flash_outcome

bp = Blueprint("borrow", __name__, url_prefix="/equipment", template_folder="../views")


class BorrowRequestForm(FlaskForm):
    """Form to request equipment, optionally for a room."""

    quantity = IntegerField(
        "Quantity",
        default=1,
        validators=[InputRequired(), NumberRange(min=1, message="Quantity must be greater than 0")],
    )
    room_id = SelectField("Room", choices=[], validators=[Optional()])
    purpose = StringField("Purpose", validators=[InputRequired(message="Purpose is required"), Length(max=300)])
    duration = StringField("Duration", validators=[InputRequired(message="Duration is required"), Length(max=100)])
    return_date = DateField("Return date", validators=[InputRequired(message="Return date is required")])
    educational_purpose = TextAreaField("Educational purpose", validators=[Length(max=1000)])
    submit = SubmitField("Submit Request")

    def validate_return_date(self, field) -> None:
        if field.data and field.data < date.today():
            raise ValidationError("Return date cannot be in the past")

    def validate_educational_purpose(self, field) -> None:
        if current_user.role == Role.FACULTY and not (field.data or "").strip():
            raise ValidationError("Educational purpose details are required for faculty requests")


def _room_choices() -> list[tuple[str, str]]:
    rooms = get_ledger().rooms.values()
    return [("", "No room")] + [(room.room_id, f"{room.room_id} - {room.name}") for room in rooms]


@bp.route("/")
def catalog():
    """Browse equipment by availability, search text, or location."""

    availability = request.args.get("filter", "all")
    if availability not in EQUIPMENT_FILTERS:
        availability = "all"
    query = (request.args.get("q") or "").strip()
    view_mode = "status" if request.args.get("view") == "status" else "list"
    ledger = get_ledger()
    own_requests = []
    if current_user.is_authenticated and current_user.capabilities.can_borrow:
        own_requests = ledger.requests_for(current_user.actor.key)
    return render_template(
        "equipment.html",
        equipment=ledger.filter_equipment(availability, query),
        by_location=ledger.equipment_by_location(),
        stats=ledger.equipment_stats(),
        active_filter=availability,
        query=query,
        view_mode=view_mode,
        own_requests=own_requests[:5],
        own_pending=sum(1 for req in own_requests if req.is_pending),
    )


def _borrower_block_reason() -> str | None:
    """Explain why the current user may not submit another request."""

    if not current_app.config["ENFORCE_BORROWER_LIMITS"]:
        return None
    ledger = get_ledger()
    unreturned = ledger.outstanding_for(current_user.actor.key)
    if unreturned:
        names = ", ".join(req.equipment_name for req in unreturned)
        return f"You have unreturned equipment: {names}. Submit is disabled until items are returned."
    if any(req.is_pending for req in ledger.requests_for(current_user.actor.key)):
        return "You already have pending request(s). Submit is disabled until they are approved or rejected."
    return None


@bp.route("/<equipment_id>/request", methods=["GET", "POST"])
@capability_required("can_borrow")
def request_equipment(equipment_id: str):
    """Show and handle the borrow form for one equipment type."""

    ledger = get_ledger()
    equipment = ledger.get_equipment(equipment_id)
    if equipment is None:
        abort(404)

    form = BorrowRequestForm()
    form.room_id.choices = _room_choices()
    if request.method == "GET" and request.args.get("room"):
        form.room_id.data = request.args["room"]
    blocked_reason = _borrower_block_reason()

    if form.validate_on_submit():
        if blocked_reason:
            flash(blocked_reason, "warning")
            return redirect(url_for("borrow.catalog"))
        outcome = flash_outcome(
            ledger.submit_request(
                current_user.actor,
                equipment_id,
                form.quantity.data,
                room_id=form.room_id.data or None,
                purpose=form.purpose.data.strip(),
                duration=form.duration.data.strip(),
                return_date=form.return_date.data.isoformat(),
                educational_purpose=(form.educational_purpose.data or "").strip() or None,
            )
        )
        if outcome.success:
            return redirect(url_for("borrow.my_requests"))
    elif request.method == "POST":
        flash("Please complete all required fields correctly before submission.", "danger")

    return render_template(
        "equipment_request.html",
        form=form,
        equipment=equipment,
        blocked_reason=blocked_reason,
    )


@bp.route("/requests/mine")
@login_required
def my_requests():
    """Display requests submitted by the current user."""

    return render_template("requests_my.html", requests=get_ledger().requests_for(current_user.actor.key))
