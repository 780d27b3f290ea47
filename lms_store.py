"""lms_store.py - read models over the LMS (Moodle-style) schema.

Tables used (all behind DB_PREFIX):
- user, course, course_categories
- enrol, user_enrolments, course_completions
- grade_items, grade_grades
- logstore_standard_log

Conventions:
- user input is always bound (:params); only the table prefix and clamped
  LIMIT/OFFSET integers are formatted into the SQL text
- derived numbers (completion rate, pagination) are computed here, not in SQL
- day buckets are day numbers in the report timezone, mapped to dates in Python
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from config import (
    DB_PREFIX,
    DEFAULT_PAGE_LIMIT,
    LOGIN_ACTIVITY_MAX_DAYS,
    MAX_PAGE_LIMIT,
    MAX_RECENT_LOGS,
    OVERVIEW_CACHE_TTL_SECONDS,
    REPORT_TZ_OFFSET_HOURS,
)
from db import require_rows, require_scalar, run_query, table
from query_guard import coerce_int
from redis_store import cache_key
from redis_store import get_json as redis_get_json
from redis_store import setex_json as redis_setex_json

logger = logging.getLogger("lms_dashboard.lms_store")

_EPOCH = date(1970, 1, 1)

# Moodle logs logins under a few shapes depending on version/logstore.
LOGIN_PREDICATE = "(l.action = 'loggedin' OR l.eventname LIKE :login_event)"
LOGIN_EVENT_PATTERN = "%loggedin%"


# ----------------------
# Arithmetic helpers
# ----------------------
def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def completion_rate(enrolled: Any, completed: Any) -> int:
    """Percentage 0..100; 0 when nobody is enrolled."""
    try:
        enrolled_n = int(enrolled or 0)
        completed_n = int(completed or 0)
    except (TypeError, ValueError):
        return 0
    if enrolled_n <= 0:
        return 0
    rate = round_half_up(completed_n / enrolled_n * 100)
    return max(0, min(100, rate))


def page_params(page: Any, limit: Any) -> Tuple[int, int, int]:
    page_n = coerce_int(page, 1, minimum=1)
    limit_n = coerce_int(limit, DEFAULT_PAGE_LIMIT, minimum=1, maximum=MAX_PAGE_LIMIT)
    return page_n, limit_n, (page_n - 1) * limit_n


def build_pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def search_pattern(term: str) -> str:
    return f"%{term}%"


# ----------------------
# Report timezone / day buckets
# ----------------------
def tz_offset_seconds() -> int:
    return int(REPORT_TZ_OFFSET_HOURS * 3600)


def report_tz() -> timezone:
    return timezone(timedelta(seconds=tz_offset_seconds()))


def local_now() -> datetime:
    return datetime.now(report_tz())


def local_today() -> date:
    return local_now().date()


def day_start_ts(d: date) -> int:
    """Unix timestamp of local midnight starting day ``d``."""
    return (d - _EPOCH).days * 86400 - tz_offset_seconds()


def day_end_ts(d: date) -> int:
    return day_start_ts(d) + 86400 - 1


def day_bucket_sql(column: str) -> str:
    # Integer day number in the report timezone; dialect-neutral.
    return f"FLOOR(({column} + :tz_offset) / 86400)"


def weekday_sql(column: str) -> str:
    # 1 = Sunday .. 7 = Saturday; day number 0 (1970-01-01) was a Thursday.
    return f"(MOD(FLOOR(({column} + :tz_offset) / 86400) + 4, 7) + 1)"


def hour_sql(column: str) -> str:
    return f"FLOOR(MOD({column} + :tz_offset, 86400) / 3600)"


def day_from_number(n: Any) -> date:
    return _EPOCH + timedelta(days=int(n))


def fill_daily_series(rows: List[Dict[str, Any]], start: date, days: int) -> List[Dict[str, Any]]:
    """One {date, login_count, unique_users} per day from ``start``; gaps are zero."""
    by_day: Dict[str, Dict[str, Any]] = {}
    for r in rows:
        if r.get("day_number") is None:
            continue
        key = day_from_number(r["day_number"]).isoformat()
        by_day[key] = {
            "date": key,
            "login_count": int(r.get("login_count") or 0),
            "unique_users": int(r.get("unique_users") or 0),
        }

    out = []
    for i in range(days):
        key = (start + timedelta(days=i)).isoformat()
        out.append(by_day.get(key) or {"date": key, "login_count": 0, "unique_users": 0})
    return out


# ----------------------
# Dashboard
# ----------------------
def _overview_cache_key() -> str:
    return cache_key("overview", DB_PREFIX or "-")


def get_overview(today: Optional[date] = None) -> Dict[str, int]:
    cached = redis_get_json(_overview_cache_key()) if today is None else None
    if cached:
        return cached

    today = today or local_today()

    users_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('user')}
        WHERE deleted = 0 AND confirmed = 1 AND suspended = 0
    """
    courses_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('course')}
        WHERE visible = 1 AND id != 1
    """
    activities_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('logstore_standard_log')}
        WHERE timecreated >= :since
    """
    enrollments_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('user_enrolments')} ue
        JOIN {table('enrol')} e ON ue.enrolid = e.id
        WHERE ue.status = 0
    """

    msg = "Failed to fetch dashboard data"
    out = {
        "totalUsers": require_scalar(run_query(users_sql), msg),
        "totalCourses": require_scalar(run_query(courses_sql), msg),
        "todayActivities": require_scalar(run_query(activities_sql, {"since": day_start_ts(today)}), msg),
        "totalEnrollments": require_scalar(run_query(enrollments_sql), msg),
    }
    redis_setex_json(_overview_cache_key(), OVERVIEW_CACHE_TTL_SECONDS, out)
    return out


# ----------------------
# Courses
# ----------------------
def list_courses(page: Any = 1, limit: Any = DEFAULT_PAGE_LIMIT, search: Optional[str] = None) -> Dict[str, Any]:
    page_n, limit_n, offset = page_params(page, limit)
    term = (search or "").strip()

    where = "c.id != 1"
    params: Dict[str, Any] = {}
    if term:
        where += " AND (c.fullname LIKE :search OR c.shortname LIKE :search)"
        params["search"] = search_pattern(term)

    courses_sql = f"""
        SELECT
            c.id,
            c.fullname,
            c.shortname,
            c.visible,
            c.timecreated,
            cat.name AS category_name,
            (
                SELECT COUNT(DISTINCT ue.userid)
                FROM {table('enrol')} e
                JOIN {table('user_enrolments')} ue ON e.id = ue.enrolid
                WHERE e.courseid = c.id AND ue.status = 0
            ) AS enrolled_count,
            (
                SELECT COUNT(DISTINCT cc.userid)
                FROM {table('course_completions')} cc
                WHERE cc.course = c.id AND cc.timecompleted IS NOT NULL
            ) AS completed_count
        FROM {table('course')} c
        LEFT JOIN {table('course_categories')} cat ON c.category = cat.id
        WHERE {where}
        ORDER BY c.fullname ASC
        LIMIT {limit_n} OFFSET {offset}
    """
    count_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('course')} c
        WHERE {where}
    """

    rows = require_rows(run_query(courses_sql, params), "Failed to fetch courses")
    total = require_scalar(run_query(count_sql, params), "Failed to fetch courses")

    courses = []
    for r in rows:
        course = dict(r)
        course["enrolled_count"] = int(course.get("enrolled_count") or 0)
        course["completed_count"] = int(course.get("completed_count") or 0)
        course["completion_rate"] = completion_rate(course["enrolled_count"], course["completed_count"])
        courses.append(course)

    return {"courses": courses, "pagination": build_pagination(page_n, limit_n, total)}


def get_course(course_id: int) -> Optional[Dict[str, Any]]:
    sql = f"""
        SELECT
            c.id,
            c.fullname,
            c.shortname,
            c.summary,
            c.visible,
            c.startdate,
            c.enddate,
            c.timecreated,
            cat.name AS category_name
        FROM {table('course')} c
        LEFT JOIN {table('course_categories')} cat ON c.category = cat.id
        WHERE c.id = :course_id
    """
    rows = require_rows(run_query(sql, {"course_id": course_id}), "Failed to fetch course")
    return rows[0] if rows else None


# ----------------------
# Users
# ----------------------
def search_users(q: Optional[str], page: Any = 1, limit: Any = DEFAULT_PAGE_LIMIT) -> Dict[str, Any]:
    page_n, limit_n, offset = page_params(page, limit)
    term = (q or "").strip()
    if len(term) < 2:
        return {"users": [], "pagination": build_pagination(1, limit_n, 0)}

    where = f"""
        u.deleted = 0
        AND u.confirmed = 1
        AND (
            u.username LIKE :term
            OR u.firstname LIKE :term
            OR u.lastname LIKE :term
            OR u.email LIKE :term
            OR CONCAT(u.firstname, ' ', u.lastname) LIKE :term
        )
    """
    users_sql = f"""
        SELECT
            u.id,
            u.username,
            u.firstname,
            u.lastname,
            u.email,
            u.lastaccess,
            u.timecreated
        FROM {table('user')} u
        WHERE {where}
        ORDER BY u.lastname, u.firstname
        LIMIT {limit_n} OFFSET {offset}
    """
    count_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('user')} u
        WHERE {where}
    """
    params = {"term": search_pattern(term)}

    users = require_rows(run_query(users_sql, params), "Failed to search users")
    total = require_scalar(run_query(count_sql, params), "Failed to search users")
    return {"users": users, "pagination": build_pagination(page_n, limit_n, total)}


def get_user_grades(user_id: int) -> Optional[Dict[str, Any]]:
    """User + course grades + enrolled courses; None if missing or soft-deleted."""
    user_sql = f"""
        SELECT id, username, firstname, lastname, email
        FROM {table('user')}
        WHERE id = :user_id AND deleted = 0
    """
    users = require_rows(run_query(user_sql, {"user_id": user_id}), "Failed to fetch user")
    if not users:
        return None

    grades_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS course_name,
            c.shortname AS course_shortname,
            gi.itemname AS grade_item,
            gg.finalgrade,
            gi.grademax,
            gi.grademin,
            CASE
                WHEN gi.grademax > 0 THEN ROUND((gg.finalgrade / gi.grademax) * 100, 2)
                ELSE 0
            END AS percentage,
            gg.timemodified AS graded_at,
            cc.timecompleted AS completed_at
        FROM {table('grade_grades')} gg
        JOIN {table('grade_items')} gi ON gg.itemid = gi.id
        JOIN {table('course')} c ON gi.courseid = c.id
        LEFT JOIN {table('course_completions')} cc ON cc.course = c.id AND cc.userid = gg.userid
        WHERE gg.userid = :user_id
            AND gi.itemtype = 'course'
            AND gg.finalgrade IS NOT NULL
        ORDER BY c.fullname
    """
    enrolled_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS course_name,
            c.shortname AS course_shortname,
            ue.timestart AS enrolled_at,
            cc.timecompleted AS completed_at
        FROM {table('user_enrolments')} ue
        JOIN {table('enrol')} e ON ue.enrolid = e.id
        JOIN {table('course')} c ON e.courseid = c.id
        LEFT JOIN {table('course_completions')} cc ON cc.course = c.id AND cc.userid = ue.userid
        WHERE ue.userid = :user_id AND ue.status = 0
        ORDER BY c.fullname
    """
    grades = require_rows(run_query(grades_sql, {"user_id": user_id}), "Failed to fetch grades")
    enrolled = require_rows(run_query(enrolled_sql, {"user_id": user_id}), "Failed to fetch enrolled courses")
    return {"user": users[0], "grades": grades, "enrolledCourses": enrolled}


# ----------------------
# Logs
# ----------------------
def login_activity(days: Any = 7, today: Optional[date] = None) -> Dict[str, Any]:
    days_n = coerce_int(days, 7, minimum=1, maximum=LOGIN_ACTIVITY_MAX_DAYS)
    today = today or local_today()
    start = today - timedelta(days=days_n - 1)

    bucket = day_bucket_sql("l.timecreated")
    sql = f"""
        SELECT
            {bucket} AS day_number,
            COUNT(*) AS login_count,
            COUNT(DISTINCT l.userid) AS unique_users
        FROM {table('logstore_standard_log')} l
        WHERE l.timecreated >= :since
            AND {LOGIN_PREDICATE}
        GROUP BY day_number
        ORDER BY day_number ASC
    """
    params = {
        "since": day_start_ts(start),
        "tz_offset": tz_offset_seconds(),
        "login_event": LOGIN_EVENT_PATTERN,
    }
    rows = require_rows(run_query(sql, params), "Failed to fetch login activity")
    return {"period": f"Last {days_n} days", "data": fill_daily_series(rows, start, days_n)}


def recent_logs(limit: Any = 50) -> List[Dict[str, Any]]:
    limit_n = coerce_int(limit, 50, minimum=1, maximum=MAX_RECENT_LOGS)
    sql = f"""
        SELECT
            l.id,
            l.timecreated,
            l.action,
            l.target,
            l.objecttable,
            l.component,
            u.firstname,
            u.lastname,
            c.fullname AS course_name
        FROM {table('logstore_standard_log')} l
        LEFT JOIN {table('user')} u ON l.userid = u.id
        LEFT JOIN {table('course')} c ON l.courseid = c.id
        ORDER BY l.timecreated DESC
        LIMIT {limit_n}
    """
    return require_rows(run_query(sql), "Failed to fetch logs")


def describe_log_entry(log: Dict[str, Any]) -> Tuple[str, str]:
    """(type, message) for the activity feed."""
    first, last = log.get("firstname"), log.get("lastname")
    user = f"{first} {last}" if first and last else "System"
    action = log.get("action") or ""
    target = log.get("target") or ""
    eventname = log.get("eventname") or ""
    course = log.get("course_name") or "Unknown"
    is_module = target == "course_module" or log.get("objecttable") == "course_modules"

    if action == "loggedin" or "loggedin" in eventname:
        return "login", f"User '{user}' logged in from {log.get('ip') or 'unknown IP'}"
    if action == "loggedout" or "loggedout" in eventname:
        return "login", f"User '{user}' logged out"
    if action == "created":
        if is_module:
            return "update", f"User '{user}' created a new module in course '{course}'"
        if target == "user":
            return "update", f"New user '{user}' was created"
        return "update", f"User '{user}' created {target or 'content'}"
    if action == "updated":
        if is_module:
            return "update", f"User '{user}' updated a module in course '{course}'"
        if target == "course":
            return "update", f"User '{user}' updated course '{course}'"
        return "update", f"User '{user}' updated {target or 'content'}"
    if action in ("assigned", "unassigned"):
        return "permission", f"Role {action} for user '{user}'"
    if action == "viewed":
        if target == "course":
            return "login", f"User '{user}' viewed course '{course}'"
        return "login", f"User '{user}' viewed {target or 'content'}"
    if log.get("component") == "tool_recyclebin" or action == "deleted":
        return "backup", f"User '{user}' deleted {target or 'content'}"
    return "login", f"User '{user}' performed {action} on {target or 'system'}"


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'s' if n > 1 else ''} ago"


def relative_time(timestamp: Any, now: Optional[datetime] = None) -> str:
    now = now or local_now()
    ts = int(timestamp or 0)
    diff = int(now.timestamp()) - ts
    minutes = diff // 60
    hours = diff // 3600
    days = diff // 86400

    when = datetime.fromtimestamp(ts, tz=report_tz())
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return _plural(minutes, "minute")
    if hours < 24:
        return _plural(hours, "hour")
    if days == 1:
        return f"Yesterday, {when:%I:%M %p}"
    if days < 7:
        return _plural(days, "day")
    return f"{when:%b} {when.day}, {when.year}"


def recent_activity(limit: Any = 10, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    limit_n = coerce_int(limit, 10, minimum=1, maximum=MAX_RECENT_LOGS)
    sql = f"""
        SELECT
            l.id,
            l.timecreated,
            l.action,
            l.target,
            l.objecttable,
            l.component,
            l.eventname,
            l.ip,
            u.firstname,
            u.lastname,
            c.fullname AS course_name
        FROM {table('logstore_standard_log')} l
        LEFT JOIN {table('user')} u ON l.userid = u.id
        LEFT JOIN {table('course')} c ON l.courseid = c.id
        WHERE l.userid > 0
        ORDER BY l.timecreated DESC
        LIMIT {limit_n}
    """
    rows = require_rows(run_query(sql), "Failed to fetch recent activity")

    now = now or local_now()
    activities = []
    for log in rows:
        kind, message = describe_log_entry(log)
        activities.append(
            {
                "id": log.get("id"),
                "type": kind,
                "message": message,
                "time": relative_time(log.get("timecreated"), now),
                "timestamp": log.get("timecreated"),
            }
        )
    return activities
