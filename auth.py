"""
User Authentication: Flask-Login blueprint.

Provides signup, login, logout, password reset and profile routes (JSON).
Uses werkzeug.security for password hashing. Account rows live in the
SQLite `users` table; the profile itself is a document in `users/<uid>`.
Signing in opens the user's SessionContext and signing out closes it.
"""

from __future__ import annotations

import math
import secrets
import uuid
from datetime import datetime, timedelta, timezone

from flask import Blueprint, current_app, jsonify, request
from flask_login import LoginManager, UserMixin, current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash
from werkzeug.utils import secure_filename

from audit import log_event
from database import get_db
from db_stores import ProfileStore
from email_service import EmailService
from errors import AuthError, DuplicateAccountError, NotFoundError, ValidationError
from extensions import get_object_store, get_sessions, get_store, limiter
from models import UserProfile
from object_storage import profile_picture_path, validate_image
from schemas import LoginIn, ProfileUpdate, SignupIn, changes, parse

LOCKOUT_THRESHOLD = 5
LOCKOUT_MINUTES = 15
MIN_PASSWORD_LENGTH = 6
RESET_TOKEN_HOURS = 1

RESET_SENT_MESSAGE = "If an account exists with that email, a reset link has been sent."
INVALID_RESET_LINK = "Invalid or expired reset link."

auth_bp = Blueprint("auth", __name__)
login_manager = LoginManager()


class User(UserMixin):
    """Wraps a DB user row for Flask-Login."""

    def __init__(self, id: str, email: str):
        self.id = id
        self.email = email

    @staticmethod
    def get(user_id: str):
        db = get_db()
        row = db.execute("SELECT id, email FROM users WHERE id = ?", (user_id,)).fetchone()
        if row:
            return User(row["id"], row["email"])
        return None

    @staticmethod
    def get_by_email(email: str):
        db = get_db()
        return db.execute(
            "SELECT id, email, password_hash, login_attempts, locked_until "
            "FROM users WHERE email = ?", (email,),
        ).fetchone()


@login_manager.user_loader
def load_user(user_id):
    return User.get(user_id)


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "User not authenticated"}), 401


def current_user_id() -> str | None:
    return current_user.id if current_user.is_authenticated else None


def current_session():
    """The signed-in user's SessionContext, opened on first use."""
    return get_sessions().get_or_open(current_user.id)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _profiles() -> ProfileStore:
    return ProfileStore(get_store())


def _profile_json(uid: str) -> dict:
    profile = _profiles().get(uid)
    if profile is None:
        raise NotFoundError("Profile not found")
    return profile.to_dict()


@auth_bp.route("/signup", methods=["POST"])
@limiter.limit("10 per hour")
def signup():
    form = parse(SignupIn, request.get_json(silent=True))
    email = form.email.lower()

    if User.get_by_email(email):
        raise DuplicateAccountError("An account with this email already exists.")

    uid = uuid.uuid4().hex
    db = get_db()
    db.execute(
        "INSERT INTO users (id, email, password_hash, created_at) VALUES (?, ?, ?, ?)",
        (uid, email, generate_password_hash(form.password), _now().isoformat()),
    )
    db.commit()

    profile = UserProfile(
        uid=uid,
        email=email,
        first_name=form.firstName,
        last_name=form.lastName,
        profession=form.profession,
        class_name=form.className or "",
        college_name=form.collegeName or "",
    )
    try:
        _profiles().create(profile)
    except Exception:
        db.execute("DELETE FROM users WHERE id = ?", (uid,))
        db.commit()
        raise

    log_event("signup", uid, f"email={email}")
    login_user(User(uid, email), remember=True)
    current_session()
    return jsonify({"user": profile.to_dict()}), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per 15 minutes")
def login():
    form = parse(LoginIn, request.get_json(silent=True))
    email = form.email.lower()

    row = User.get_by_email(email)
    if not row:
        raise AuthError("Invalid email or password.")

    # Check account lockout
    if row["locked_until"]:
        try:
            remaining = (datetime.fromisoformat(row["locked_until"]) - _now()).total_seconds()
        except (ValueError, TypeError):
            remaining = 0
        if remaining > 0:
            mins = math.ceil(remaining / 60)
            log_event("login_locked", row["id"], f"email={email}")
            raise AuthError(f"Account temporarily locked. Try again in {mins} minute(s).")

    db = get_db()
    if not row["password_hash"] or not check_password_hash(row["password_hash"], form.password):
        attempts = (row["login_attempts"] or 0) + 1
        if attempts >= LOCKOUT_THRESHOLD:
            db.execute(
                "UPDATE users SET login_attempts=?, locked_until=? WHERE id=?",
                (attempts, (_now() + timedelta(minutes=LOCKOUT_MINUTES)).isoformat(), row["id"]),
            )
        else:
            db.execute("UPDATE users SET login_attempts=? WHERE id=?", (attempts, row["id"]))
        db.commit()
        log_event("login_failed", row["id"], f"email={email} attempts={attempts}")
        raise AuthError("Invalid email or password.")

    # Success, reset lockout fields
    db.execute("UPDATE users SET login_attempts=0, locked_until='' WHERE id=?", (row["id"],))
    db.commit()

    login_user(User(row["id"], row["email"]), remember=True)
    current_session()
    log_event("login_success", row["id"])
    return jsonify({"user": _profile_json(row["id"])})


@auth_bp.route("/logout", methods=["POST"])
def logout():
    uid = current_user_id()
    if uid is not None:
        get_sessions().close(uid)
    log_event("logout", uid)
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/password-reset", methods=["POST"])
@limiter.limit("3 per hour")
def password_reset():
    payload = request.get_json(silent=True) or {}
    email = str(payload.get("email", "")).strip().lower()
    row = User.get_by_email(email) if email else None

    if row:
        token = secrets.token_urlsafe(32)
        expires = (_now() + timedelta(hours=RESET_TOKEN_HOURS)).isoformat()
        db = get_db()
        db.execute(
            "UPDATE users SET reset_token=?, reset_token_expires=? WHERE id=?",
            (generate_password_hash(token), expires, row["id"]),
        )
        db.commit()

        base = current_app.config.get("BASE_URL", "http://localhost:5001")
        EmailService.send_password_reset(email, f"{base}/reset-password/{row['id']}/{token}")
        log_event("password_reset_request", row["id"])

    return jsonify({"message": RESET_SENT_MESSAGE})


@auth_bp.route("/reset-password/<user_id>/<token>", methods=["POST"])
def reset_password(user_id, token):
    db = get_db()
    row = db.execute(
        "SELECT id, reset_token, reset_token_expires FROM users WHERE id=?",
        (user_id,),
    ).fetchone()

    if not row or not row["reset_token"] or not check_password_hash(row["reset_token"], token):
        raise AuthError(INVALID_RESET_LINK)

    try:
        expired = _now() > datetime.fromisoformat(row["reset_token_expires"])
    except (ValueError, TypeError):
        expired = True
    if expired:
        raise AuthError("This reset link has expired.")

    password = str((request.get_json(silent=True) or {}).get("password", ""))
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

    db.execute(
        "UPDATE users SET password_hash=?, reset_token='', reset_token_expires='', "
        "login_attempts=0, locked_until='' WHERE id=?",
        (generate_password_hash(password), user_id),
    )
    db.commit()
    log_event("password_reset_complete", user_id)
    return jsonify({"success": True})


# ── Profile ───────────────────────────────────────────────────


@auth_bp.route("/api/profile")
@login_required
def get_profile():
    return jsonify({"user": _profile_json(current_user.id)})


@auth_bp.route("/api/profile", methods=["PATCH"])
@login_required
def update_profile():
    updates = changes(parse(ProfileUpdate, request.get_json(silent=True)))
    profile = _profiles().update(current_user.id, updates)
    return jsonify({"user": profile.to_dict()})


@auth_bp.route("/api/profile/picture", methods=["POST"])
@login_required
def upload_profile_picture():
    file = request.files.get("file")
    if file is None or not file.filename:
        raise ValidationError("No file provided")

    filename = secure_filename(file.filename)
    data = file.read()
    content_type = validate_image(filename, data)

    uid = current_user.id
    url = get_object_store().upload(profile_picture_path(uid, filename), data, content_type)
    profile = _profiles().update(uid, {"photoURL": url})
    log_event("profile_picture_update", uid)
    return jsonify({"photoURL": url, "user": profile.to_dict()})
