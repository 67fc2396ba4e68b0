from __future__ import annotations

import csv
import io

from flask import Flask, jsonify, request

from ..common.datetime_utils import parse_iso_date
from ..common.validators import parse_choice
from ..common.web import current_user_id, error_response, login_required, roles_required
from ..container import Container
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import AttendanceStatus, Role
from ..core.exceptions import ValidationError
from .model import AttendanceSummary
from .service import EXPORT_FIELDS


def summary_json(r: AttendanceSummary) -> dict:
    return {"id": r.attendance_id, **r.to_document()}


def register(app: Flask, container: Container) -> None:
    service = container.attendance_service

    def _date_arg():
        value = request.args.get("date")
        if not value:
            return service.current_date()
        try:
            return parse_iso_date(value)
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD") from None

    @app.route("/api/attendance/me", methods=["GET"], endpoint="attendance_me")
    @login_required
    async def attendance_me():
        try:
            limit = int(request.args.get("limit") or DEFAULT_HISTORY_LIMIT)
            user_id = current_user_id()
            records = await service.history(user_id, limit=limit)
            today = await service.today(user_id)
        except ValueError:
            return error_response(ValidationError("limit must be a number"))
        except Exception as e:
            return error_response(e)
        return jsonify({
            "success": True,
            "today": summary_json(today) if today else None,
            "records": [summary_json(r) for r in records],
        }), 200

    @app.route("/api/attendance/me/overview", methods=["GET"], endpoint="attendance_me_overview")
    @login_required
    async def attendance_me_overview():
        try:
            overview = await service.hours_overview(current_user_id())
        except Exception as e:
            return error_response(e)
        return jsonify({
            "success": True,
            "week_hours": overview.week_hours,
            "month_hours": overview.month_hours,
            "attendance_rate": overview.attendance_rate,
        }), 200

    @app.route("/api/attendance/day", methods=["GET"], endpoint="attendance_day")
    @roles_required(Role.ADMIN, Role.MANAGER)
    async def attendance_day():
        try:
            work_date = _date_arg()
            status = None
            if request.args.get("status") not in (None, "", "all"):
                status = parse_choice(request.args.get("status"), AttendanceStatus, "status")
            records = await service.for_date(work_date, status=status)
        except Exception as e:
            return error_response(e)
        return jsonify({
            "success": True,
            "date": work_date.isoformat(),
            "records": [summary_json(r) for r in records],
        }), 200

    @app.route("/api/attendance/day/stats", methods=["GET"], endpoint="attendance_day_stats")
    @roles_required(Role.ADMIN, Role.MANAGER)
    async def attendance_day_stats():
        try:
            work_date = _date_arg()
            employees = int(request.args.get("employees") or 0)
            stats = await service.day_stats(work_date, employee_count=employees)
        except ValueError:
            return error_response(ValidationError("employees must be a number"))
        except Exception as e:
            return error_response(e)
        return jsonify({
            "success": True,
            "date": stats.work_date.isoformat(),
            "present": stats.present,
            "late": stats.late,
            "absent": stats.absent,
            "average_hours": stats.average_hours,
        }), 200

    @app.route("/api/attendance/day.csv", methods=["GET"], endpoint="attendance_day_csv")
    @roles_required(Role.ADMIN, Role.MANAGER)
    async def attendance_day_csv():
        try:
            work_date = _date_arg()
            rows = await service.export_rows(work_date)
        except Exception as e:
            return error_response(e)

        out = io.StringIO()
        writer = csv.DictWriter(out, fieldnames=EXPORT_FIELDS)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)

        filename = f"attendance_{work_date.strftime('%Y%m%d')}.csv"
        return app.response_class(
            out.getvalue().encode("utf-8-sig"),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
