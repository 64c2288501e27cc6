"""Authentication blueprint handling registration, login, and logout."""

from __future__ import annotations

from functools import wraps
from typing import Callable

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from wtforms import PasswordField, SelectField, StringField, SubmitField
from wtforms.validators import Email, EqualTo, InputRequired, Length

from ..data_access import users_dao
from ..models.entities import Role

bp = Blueprint("auth", __name__, url_prefix="/auth", template_folder="../views")

SELF_SERVICE_ROLES = (Role.STUDENT.value, Role.FACULTY.value)


class RegistrationForm(FlaskForm):
    """Registration form for new campus users."""

    name = StringField("Full Name", validators=[InputRequired(message="Please enter your name"), Length(max=120)])
    email = StringField("Email", validators=[InputRequired(), Email(), Length(max=255)])
    password = PasswordField(
        "Password",
        validators=[InputRequired(), Length(min=6, max=128, message="Password must be at least 6 characters")],
    )
    confirm_password = PasswordField(
        "Confirm Password",
        validators=[InputRequired(), EqualTo("password", message="Passwords do not match")],
    )
    role = SelectField(
        "Role",
        choices=[(role, role.title()) for role in SELF_SERVICE_ROLES],
        validators=[InputRequired()],
        default=Role.STUDENT.value,
    )
    submit = SubmitField("Sign Up")


class LoginForm(FlaskForm):
    """Basic credential form."""

    email = StringField("Email", validators=[InputRequired(), Email()])
    password = PasswordField("Password", validators=[InputRequired()])
    submit = SubmitField("Log In")


def capability_required(capability: str) -> Callable:
    """Decorator allowing only sessions whose role grants ``capability``."""

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if not getattr(current_user.capabilities, capability):
                abort(403)
            return view(*args, **kwargs)

        return wrapped

    return decorator


def admin_required(view: Callable) -> Callable:
    return capability_required("can_admin")(view)


@bp.route("/register", methods=["GET", "POST"])
def register():
    """Handle new user registration."""

    if current_user.is_authenticated:
        flash("You are already signed in.", "info")
        return redirect(url_for("index"))

    form = RegistrationForm()
    if form.validate_on_submit():
        existing = users_dao.get_user_by_email(form.email.data)
        if existing:
            form.email.errors.append("User with this email already exists")
        else:
            user = users_dao.create_user(
                name=form.name.data,
                email=form.email.data,
                password_hash=users_dao.hash_password(form.password.data),
                role=form.role.data,
            )
            login_user(user)
            flash("Welcome to CCIS Connect!", "success")
            return redirect(url_for("index"))
    return render_template("auth_register.html", form=form)


@bp.route("/login", methods=["GET", "POST"])
def login():
    """Authenticate an existing user."""

    if current_user.is_authenticated:
        flash("You are already signed in.", "info")
        return redirect(url_for("index"))

    form = LoginForm()
    if form.validate_on_submit():
        try:
            user = users_dao.get_user_by_email(form.email.data)
        except users_dao.StaleUserError:
            user = None
        if not user or not users_dao.verify_password(user.password_hash, form.password.data):
            form.email.errors.append("Invalid email or password")
        elif not user.is_active:
            form.email.errors.append("This account has been deactivated. Contact support.")
        else:
            login_user(user)
            flash("Signed in successfully.", "success")
            next_url = request.args.get("next")
            if user.is_admin and not next_url:
                return redirect(url_for("admin.dashboard"))
            return redirect(next_url or url_for("index"))
    return render_template("auth_login.html", form=form)


@bp.route("/logout")
@login_required
def logout():
    """Log out the current user."""

    logout_user()
    flash("You have been signed out.", "info")
    return redirect(url_for("auth.login"))
