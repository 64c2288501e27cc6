"""Room availability routes: listing, toggling and QR check-in."""

from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user
from flask_wtf import FlaskForm
from wtforms import RadioField, StringField, SubmitField
from wtforms.validators import InputRequired, Length

from ..services.ledger import ROOM_ACTIONS, ROOM_FILTERS
from ..services.store import get_ledger
from .auth import capability_required
from .outcomes import flash_outcome

bp = Blueprint("rooms", __name__, url_prefix="/rooms", template_folder="../views")


class RoomScanForm(FlaskForm):
    """Room code read from the QR sticker at the classroom door."""

    room_code = StringField(
        "Room code",
        validators=[InputRequired(message="Please scan a QR code first"), Length(max=32)],
    )
    action = RadioField(
        "Action",
        choices=[("entering", "Entering (class starts)"), ("leaving", "Leaving (class ends)")],
        default="entering",
        validators=[InputRequired()],
    )
    submit = SubmitField("Update Room Status")


@bp.route("/")
def list_rooms():
    """Show rooms with an availability filter."""

    occupancy = request.args.get("filter", "all")
    if occupancy not in ROOM_FILTERS:
        occupancy = "all"
    ledger = get_ledger()
    rooms = list(ledger.rooms.values())
    return render_template(
        "rooms.html",
        rooms=ledger.filter_rooms(occupancy),
        active_filter=occupancy,
        available_count=sum(1 for room in rooms if room.available),
        occupied_count=sum(1 for room in rooms if not room.available),
        scan_form=RoomScanForm(),
    )


@bp.route("/<room_id>/toggle", methods=["POST"])
@capability_required("can_update_rooms")
def toggle(room_id: str):
    """Flip a room between Available and Occupied."""

    flash_outcome(get_ledger().toggle_room(current_user.actor, room_id))
    return redirect(url_for("rooms.list_rooms"))


@bp.route("/scan", methods=["POST"])
@capability_required("can_update_rooms")
def scan():
    """Apply a scanned room code as a check-in or check-out."""

    form = RoomScanForm()
    if not form.validate_on_submit():
        for errors in form.errors.values():
            for error in errors:
                flash(error, "danger")
        return redirect(url_for("rooms.list_rooms"))

    action = form.action.data if form.action.data in ROOM_ACTIONS else "entering"
    room_code = form.room_code.data.strip().upper()
    flash_outcome(get_ledger().check_in(current_user.actor, room_code, action))
    return redirect(url_for("rooms.list_rooms"))
