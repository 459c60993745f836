"""Daydrop Blueprints: the viewer JSON API and the admin content API."""

from __future__ import annotations

from datetime import timedelta
from typing import Callable, Optional

from flask import Blueprint, current_app, jsonify, request, send_from_directory

from . import identity as identity_service
from .errors import DaydropError, Forbidden, Unauthenticated
from .identity import Identity, is_admin
from .media import FileUpload
from .recorder import deduplicate_all_views, deduplicate_views, record_response, record_view
from .repository import CHALLENGES, get_content_repository
from .service import (
    calendar_month,
    create_challenge,
    create_message,
    day_detail,
    get_clock,
    get_config,
    get_policy,
    list_content,
    parse_month,
    serialize_challenge,
)
from .storage import get_object_store

NOTIFICATION_AUTO_HIDE_MS = 5000

UserProvider = Callable[[], Optional[Identity]]


def create_daydrop_blueprint(current_user_provider: UserProvider = identity_service.current_user) -> Blueprint:
    """Viewer routes; every endpoint except sign-in needs a signed-in identity."""

    bp = Blueprint("daydrop", __name__)
    bp.register_error_handler(DaydropError, error_response)

    def _require_user() -> Identity:
        user = current_user_provider()
        if user is None:
            raise Unauthenticated("Please sign in first.")
        return user

    @bp.post("/auth/session")
    def sign_in():
        payload = request.get_json(silent=True) or {}
        token = payload.get("access_token") or request.form.get("access_token") or ""
        user = identity_service.sign_in(token)
        return jsonify(_me_payload(user))

    @bp.post("/auth/logout")
    def sign_out():
        identity_service.sign_out()
        return jsonify({"status": "ok"})

    @bp.get("/api/me")
    def me():
        return jsonify(_me_payload(_require_user()))

    @bp.get("/api/calendar")
    def calendar():
        _require_user()
        policy = get_policy()
        year, month = parse_month(request.args.get("month"), policy.clock.reference_day())
        data = calendar_month(get_content_repository(), policy, year, month)
        return jsonify({"status": "ok", **data})

    @bp.get("/api/days/<day>")
    def view_day(day: str):
        user = _require_user()
        data = day_detail(get_content_repository(), get_policy(), day, user)
        return jsonify({"status": "ok", **data})

    @bp.post("/api/messages/<message_id>/views")
    def mark_viewed(message_id: str):
        user = _require_user()
        payload = request.get_json(silent=True) or {}
        token = (payload.get("token") or request.form.get("token") or "").strip() or None
        config = get_config()
        recorded = record_view(
            get_content_repository(),
            message_id,
            user,
            now=get_clock().now_utc(),
            window=timedelta(seconds=config.view_dedup_seconds),
            token=token,
        )
        return jsonify({"status": "ok" if recorded else "error", "recorded": recorded})

    @bp.post("/api/challenges/<challenge_id>/responses")
    def respond(challenge_id: str):
        user = current_user_provider()
        payload = request.get_json(silent=True) or {}
        text = request.form.get("text", payload.get("text"))
        upload = FileUpload.from_file_storage(request.files.get("file"))
        repository = get_content_repository()
        store = get_object_store() if upload is not None else None
        response = record_response(
            repository,
            store,
            challenge_id,
            user,
            text,
            upload,
            now=get_clock().now_utc(),
        )
        try:
            challenge = repository.get_by_id(CHALLENGES, challenge_id)
        except DaydropError as exc:
            # The response is already saved; report it without the refreshed challenge.
            current_app.logger.warning("Could not reload challenge %s after a response: %s", challenge_id, exc)
            challenge = None
        challenge = challenge or {"id": challenge_id, "responses": {user.uid: response}}
        return jsonify(
            {
                "status": "ok",
                "response": response,
                "challenge": serialize_challenge(challenge, user),
                "notification": _notification("Response saved!", "success"),
            }
        )

    @bp.get("/uploads/<path:path>")
    def uploaded_file(path: str):
        _require_user()
        return send_from_directory(current_app.config["UPLOAD_FOLDER"], path)

    return bp


def create_admin_daydrop_blueprint(
    current_admin_provider: UserProvider,
    current_user_provider: UserProvider = identity_service.current_user,
) -> Blueprint:
    """Admin routes; the allow-list check is convenience, row level security is the gate."""

    bp = Blueprint("admin_daydrop", __name__, url_prefix="/admin")
    bp.register_error_handler(DaydropError, error_response)

    @bp.before_request
    def _require_admin():
        if current_admin_provider():
            return None
        if current_user_provider() is None:
            raise Unauthenticated("Please sign in first.")
        raise Forbidden("Admins only!")

    @bp.get("/content")
    def content():
        return jsonify({"status": "ok", **list_content(get_content_repository())})

    @bp.post("/messages")
    def new_message():
        form = _form_payload()
        media = FileUpload.from_file_storage(request.files.get("media"))
        repository = get_content_repository()
        store = get_object_store() if media is not None else None
        message_id = create_message(
            repository,
            store,
            get_config(),
            text=form.get("text"),
            day=form.get("date"),
            message_type=form.get("type"),
            media=media,
            now=get_clock().now_utc(),
        )
        current_app.logger.info("Daydrop message %s created", message_id)
        return (
            jsonify(
                {
                    "status": "ok",
                    "id": message_id,
                    "notification": _notification("Message created successfully", "success"),
                }
            ),
            201,
        )

    @bp.post("/challenges")
    def new_challenge():
        form = _form_payload()
        challenge_id = create_challenge(
            get_content_repository(),
            get_config(),
            prompt=form.get("prompt"),
            day=form.get("date"),
            now=get_clock().now_utc(),
        )
        current_app.logger.info("Daydrop challenge %s created", challenge_id)
        return (
            jsonify(
                {
                    "status": "ok",
                    "id": challenge_id,
                    "notification": _notification("Challenge created successfully", "success"),
                }
            ),
            201,
        )

    @bp.post("/messages/<message_id>/dedupe-views")
    def dedupe_message_views(message_id: str):
        views = deduplicate_views(get_content_repository(), message_id)
        return jsonify({"status": "ok", "id": message_id, "views": views})

    @bp.post("/messages/dedupe-views")
    def dedupe_all_message_views():
        summary = deduplicate_all_views(get_content_repository())
        current_app.logger.info("Daydrop view cleanup: %s", summary)
        return jsonify({"status": "ok", **summary})

    return bp


def error_response(exc: DaydropError):
    body = {
        **exc.payload,
        "status": "error",
        "reason": exc.message,
        "notification": _notification(exc.message, "error"),
    }
    return jsonify(body), exc.status_code


def _notification(message: str, severity: str) -> dict:
    return {
        "message": message,
        "severity": severity,
        "dismissible": True,
        "auto_hide_ms": NOTIFICATION_AUTO_HIDE_MS,
    }


def _me_payload(user: Identity) -> dict:
    return {
        "status": "ok",
        "user": user.to_dict(),
        "is_admin": is_admin(user, get_config().admin_emails),
    }


def _form_payload() -> dict:
    if request.form:
        return request.form.to_dict()
    return request.get_json(silent=True) or {}
