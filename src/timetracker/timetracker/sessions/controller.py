from __future__ import annotations

from typing import Optional

from flask import Flask, jsonify

from ..common.web import current_user_id, error_response, login_required, payload
from ..container import Container
from .model import WorkSession


def session_json(s: Optional[WorkSession]) -> Optional[dict]:
    if s is None:
        return None
    return {"id": s.session_id, **s.to_document()}


def register(app: Flask, container: Container) -> None:
    engine = container.session_engine

    @app.route("/api/session/start", methods=["POST"], endpoint="session_start")
    @login_required
    async def session_start():
        try:
            s = await engine.start_session(current_user_id(), payload().get("work_location"))
        except Exception as e:
            return error_response(e)
        return jsonify({
            "success": True,
            "message": f"Clocked in at {s.start_time.strftime('%H:%M:%S')}!",
            "session": session_json(s),
        }), 201

    @app.route("/api/session/stop", methods=["POST"], endpoint="session_stop")
    @login_required
    async def session_stop():
        try:
            result = await engine.stop_session(current_user_id())
        except Exception as e:
            return error_response(e)

        hours = round(result.elapsed_ms / 3_600_000, 2)
        body = {
            "success": True,
            "message": f"Clocked out at {result.session.end_time.strftime('%H:%M:%S')}! Total: {hours} hours",
            "elapsed_ms": result.elapsed_ms,
            "session": session_json(result.session),
        }
        if result.partial:
            # Clock-out stands; the failed writes are queued and retried later.
            body["warnings"] = [str(e) for e in result.errors]
        return jsonify(body), 200

    @app.route("/api/session/break/start", methods=["POST"], endpoint="session_break_start")
    @login_required
    async def session_break_start():
        try:
            s = await engine.start_break(current_user_id(), payload().get("reason"))
        except Exception as e:
            return error_response(e)
        return jsonify({"success": True, "message": "Break started", "session": session_json(s)}), 200

    @app.route("/api/session/break/end", methods=["POST"], endpoint="session_break_end")
    @login_required
    async def session_break_end():
        try:
            s = await engine.end_break(current_user_id())
        except Exception as e:
            return error_response(e)
        return jsonify({"success": True, "message": "Break ended, back to work!", "session": session_json(s)}), 200

    @app.route("/api/session/status", methods=["GET"], endpoint="session_status")
    @login_required
    async def session_status():
        """Polled by the dashboard timer; every call re-derives the display value."""
        user_id = current_user_id()
        try:
            s = await engine.load_today(user_id)
        except Exception as e:
            return error_response(e)
        return jsonify({
            "success": True,
            "status": engine.current_status(user_id).value,
            "elapsed": engine.get_elapsed(user_id),
            "display": engine.display_elapsed(user_id),
            "current_break_seconds": engine.current_break_seconds(user_id),
            "pending_writes": engine.pending.pending_for(user_id),
            "session": session_json(s),
        }), 200

    @app.route("/api/session/retry", methods=["POST"], endpoint="session_retry")
    @login_required
    async def session_retry():
        try:
            remaining = await engine.retry_pending()
        except Exception as e:
            return error_response(e)
        return jsonify({"success": remaining == 0, "pending": remaining}), 200
