"""report_stats_store.py - date-ranged statistics reports.

- user statistics: registrations, roles, logins, never-logged-in accounts
- course activity: per-course activity, enrolment trend, completion rates
- teacher / student activity: per-user log counts by kind of action
- teacher compliance: monthly per-course content activity, plus an export feed
- executive summary: school-wide KPIs
- teacher / student detail: master lists with status colours and drill-downs

Range boundaries are local days in the report timezone and are always bound
as :start_ts / :end_ts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import lms_store
from config import DEFAULT_REPORT_RANGE_DAYS
from db import require_rows, require_scalar, run_query, table
from lms_store import (
    LOGIN_EVENT_PATTERN,
    LOGIN_PREDICATE,
    completion_rate,
    day_bucket_sql,
    day_end_ts,
    day_from_number,
    day_start_ts,
    hour_sql,
    local_now,
    local_today,
    round_half_up,
    tz_offset_seconds,
    weekday_sql,
)

logger = logging.getLogger("lms_dashboard.report_stats_store")


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    @property
    def start_ts(self) -> int:
        return day_start_ts(self.start)

    @property
    def end_ts(self) -> int:
        return day_end_ts(self.end)

    def params(self) -> Dict[str, Any]:
        return {"start_ts": self.start_ts, "end_ts": self.end_ts, "tz_offset": tz_offset_seconds()}

    def as_period(self) -> Dict[str, str]:
        return {"startDate": self.start.isoformat(), "endDate": self.end.isoformat()}


def _parse_day(raw: Optional[str], field: str) -> Optional[date]:
    v = (raw or "").strip()
    if not v:
        return None
    try:
        return date.fromisoformat(v[:10])
    except ValueError:
        raise ValueError(f"{field} must be a date in YYYY-MM-DD format")


def resolve_date_range(start_date: Optional[str], end_date: Optional[str], today: Optional[date] = None) -> DateRange:
    """Default: the DEFAULT_REPORT_RANGE_DAYS days up to today."""
    end = _parse_day(end_date, "endDate") or today or local_today()
    start = _parse_day(start_date, "startDate") or end - timedelta(days=DEFAULT_REPORT_RANGE_DAYS)
    if start > end:
        raise ValueError("startDate must not be after endDate")
    return DateRange(start=start, end=end)


def _daily_counts(rows: List[Dict[str, Any]], value_key: str) -> List[Dict[str, Any]]:
    out = []
    for r in rows:
        if r.get("day_number") is None:
            continue
        out.append({"date": day_from_number(r["day_number"]).isoformat(), value_key: int(r.get(value_key) or 0)})
    return out


def _first_int(rows: List[Dict[str, Any]], key: str = "total") -> int:
    if not rows:
        return 0
    return int(rows[0].get(key) or 0)


def _pct(part: Any, whole: Any) -> int:
    """Unclamped round_half_up(part / whole * 100); 0 when whole is 0."""
    whole_n = float(whole or 0)
    if whole_n == 0:
        return 0
    return round_half_up(float(part or 0) / whole_n * 100)


def _now_ts(now: Optional[datetime]) -> int:
    return int((now or local_now()).timestamp())


# Role and module names are fixed vocabulary, never request input.
STAFF_ROLES_SQL = "('teacher', 'editingteacher', 'manager', 'coursecreator')"
TEACHER_ROLES_SQL = "('teacher', 'editingteacher')"
STATIC_MODULES_SQL = "('resource', 'page', 'url', 'folder', 'book', 'label')"
INTERACTIVE_MODULES_SQL = "('quiz', 'assign', 'forum', 'chat', 'workshop', 'lesson', 'choice', 'feedback')"
COURSE_CONTEXT = 50
MODULE_CONTEXT = 70

PER_USER_ROW_CAP = 50
EXPORT_TEACHER_ROW_CAP = 200

COMPLIANCE_TARGET = 4
PASSING_GRADE = 60
WARNING_GRADE = 70
GRADING_FOLLOW_UP_BELOW = 70

DAY_SECONDS = 86400
WEEKDAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


def _weekly_heatmap(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """168 cells (Sunday first, hours 0-23); hours without activity count 0."""
    counts: Dict[Tuple[int, int], int] = {}
    for r in rows:
        try:
            key = (int(r["day_of_week"]), int(r["hour_of_day"]))
        except (KeyError, TypeError, ValueError):
            continue
        counts[key] = counts.get(key, 0) + int(r.get("activity_count") or 0)

    cells = []
    for day in range(1, 8):
        for hour in range(24):
            cells.append({
                "day": WEEKDAY_NAMES[day - 1],
                "dayIndex": day,
                "hour": hour,
                "count": counts.get((day, hour), 0),
            })
    return cells


def _heatmap_sql() -> str:
    return f"""
        SELECT
            {weekday_sql("l.timecreated")} AS day_of_week,
            {hour_sql("l.timecreated")} AS hour_of_day,
            COUNT(*) AS activity_count
        FROM {table('logstore_standard_log')} l
        WHERE l.userid = :user_id
            AND l.timecreated BETWEEN :start_ts AND :end_ts
        GROUP BY day_of_week, hour_of_day
        ORDER BY day_of_week, hour_of_day
    """


def _categories_sql() -> str:
    return f"""
        SELECT DISTINCT cat.id, cat.name
        FROM {table('course_categories')} cat
        INNER JOIN {table('course')} c ON cat.id = c.category
        WHERE c.visible = 1 AND c.id > 1
        ORDER BY cat.name
    """


def _role_count_sql(roles_sql: str) -> str:
    return f"""
        SELECT COUNT(DISTINCT u.id) AS total
        FROM {table('user')} u
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        WHERE u.deleted = 0 AND r.shortname IN {roles_sql}
    """


def _user_info_sql() -> str:
    return f"""
        SELECT u.id, u.firstname, u.lastname, u.email, u.lastaccess
        FROM {table('user')} u
        WHERE u.id = :user_id AND u.deleted = 0
    """


def resolve_month(month: Optional[str], today: Optional[date] = None) -> DateRange:
    """Whole calendar month from ``YYYY-MM``; default is the current month."""
    v = (month or "").strip()
    if v:
        try:
            year_s, month_s = v.split("-")
            first = date(int(year_s), int(month_s), 1)
        except ValueError:
            raise ValueError("month must be in YYYY-MM format")
    else:
        first = (today or local_today()).replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    return DateRange(start=first, end=next_first - timedelta(days=1))


def previous_month(rng: DateRange) -> DateRange:
    last = rng.start - timedelta(days=1)
    return DateRange(start=last.replace(day=1), end=last)


# ----------------------
# User statistics
# ----------------------
def user_statistics(rng: DateRange) -> Dict[str, Any]:
    msg = "Failed to generate user statistics report"
    p = rng.params()
    active_user = "u.deleted = 0 AND u.confirmed = 1"

    total_registered_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('user')} u
        WHERE {active_user}
    """
    by_role_sql = f"""
        SELECT
            r.shortname AS role,
            r.name AS role_name,
            COUNT(DISTINCT u.id) AS total
        FROM {table('role')} r
        LEFT JOIN {table('role_assignments')} ra ON r.id = ra.roleid
        LEFT JOIN {table('user')} u ON ra.userid = u.id AND u.deleted = 0 AND u.suspended = 0
        GROUP BY r.id, r.shortname, r.name
        ORDER BY total DESC
    """
    bucket = day_bucket_sql("u.timecreated")
    new_users_sql = f"""
        SELECT
            {bucket} AS day_number,
            COUNT(*) AS new_users
        FROM {table('user')} u
        WHERE {active_user}
            AND u.timecreated BETWEEN :start_ts AND :end_ts
        GROUP BY day_number
        ORDER BY day_number ASC
    """
    recent_logins_sql = f"""
        SELECT
            u.id,
            u.username,
            u.firstname,
            u.lastname,
            u.email,
            u.lastaccess AS last_access
        FROM {table('user')} u
        WHERE {active_user}
            AND u.lastaccess > 0
        ORDER BY u.lastaccess DESC
        LIMIT 20
    """
    never_logged_where = f"{active_user} AND (u.lastaccess = 0 OR u.lastaccess IS NULL)"
    never_logged_sql = f"""
        SELECT
            u.id,
            u.username,
            u.firstname,
            u.lastname,
            u.email,
            u.timecreated AS created_at
        FROM {table('user')} u
        WHERE {never_logged_where}
        ORDER BY u.timecreated DESC
        LIMIT 50
    """
    never_logged_count_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('user')} u
        WHERE {never_logged_where}
    """
    per_course_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS course_name,
            c.shortname AS course_shortname,
            COUNT(DISTINCT ue.userid) AS enrolled_users
        FROM {table('course')} c
        LEFT JOIN {table('enrol')} e ON c.id = e.courseid
        LEFT JOIN {table('user_enrolments')} ue ON e.id = ue.enrolid AND ue.status = 0
        WHERE c.id != 1
        GROUP BY c.id, c.fullname, c.shortname
        ORDER BY enrolled_users DESC
        LIMIT 10
    """

    return {
        "period": rng.as_period(),
        "summary": {
            "totalRegistered": _first_int(require_rows(run_query(total_registered_sql), msg)),
            "neverLoggedIn": _first_int(require_rows(run_query(never_logged_count_sql), msg)),
        },
        "usersByRole": require_rows(run_query(by_role_sql), msg),
        "newUsersOverTime": _daily_counts(require_rows(run_query(new_users_sql, p), msg), "new_users"),
        "recentLogins": require_rows(run_query(recent_logins_sql), msg),
        "neverLoggedInUsers": require_rows(run_query(never_logged_sql), msg),
        "usersPerCourse": require_rows(run_query(per_course_sql), msg),
    }


# ----------------------
# Course activity
# ----------------------
def course_activity(rng: DateRange) -> Dict[str, Any]:
    msg = "Failed to generate course activity report"
    p = rng.params()

    summary_sql = f"""
        SELECT
            (SELECT COUNT(*) FROM {table('course')} WHERE id != 1) AS total_courses,
            (SELECT COUNT(*) FROM {table('course')} WHERE id != 1 AND visible = 1) AS visible_courses,
            (
                SELECT COUNT(DISTINCT cc.course)
                FROM {table('course_completions')} cc
                WHERE cc.timecompleted IS NOT NULL
            ) AS courses_with_completions
    """
    log_bucket = day_bucket_sql("l.timecreated")
    per_course_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS course_name,
            c.shortname AS course_shortname,
            COUNT(l.id) AS total_activities,
            COUNT(DISTINCT l.userid) AS unique_users,
            COUNT(DISTINCT {log_bucket}) AS active_days
        FROM {table('course')} c
        LEFT JOIN {table('logstore_standard_log')} l ON c.id = l.courseid
            AND l.timecreated BETWEEN :start_ts AND :end_ts
        WHERE c.id != 1
        GROUP BY c.id, c.fullname, c.shortname
        ORDER BY total_activities DESC
        LIMIT 20
    """
    enrol_bucket = day_bucket_sql("ue.timecreated")
    enrolment_trend_sql = f"""
        SELECT
            {enrol_bucket} AS day_number,
            COUNT(*) AS new_enrollments
        FROM {table('user_enrolments')} ue
        WHERE ue.timecreated BETWEEN :start_ts AND :end_ts
        GROUP BY day_number
        ORDER BY day_number ASC
    """
    completion_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS course_name,
            c.shortname AS course_shortname,
            COUNT(DISTINCT ue.userid) AS enrolled_count,
            COUNT(DISTINCT cc.userid) AS completed_count
        FROM {table('course')} c
        LEFT JOIN {table('enrol')} e ON c.id = e.courseid
        LEFT JOIN {table('user_enrolments')} ue ON e.id = ue.enrolid AND ue.status = 0
        LEFT JOIN {table('course_completions')} cc
            ON c.id = cc.course AND ue.userid = cc.userid AND cc.timecompleted IS NOT NULL
        WHERE c.id != 1
        GROUP BY c.id, c.fullname, c.shortname
        HAVING COUNT(DISTINCT ue.userid) > 0
    """
    most_active_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS course_name,
            c.shortname AS course_shortname,
            cat.name AS category_name,
            COUNT(*) AS total_activities,
            COUNT(DISTINCT l.userid) AS unique_users
        FROM {table('logstore_standard_log')} l
        INNER JOIN {table('course')} c ON l.courseid = c.id
        LEFT JOIN {table('course_categories')} cat ON c.category = cat.id
        WHERE l.timecreated BETWEEN :start_ts AND :end_ts
            AND c.id != 1
        GROUP BY c.id, c.fullname, c.shortname, cat.name
        ORDER BY total_activities DESC
        LIMIT 10
    """

    summary_rows = require_rows(run_query(summary_sql), msg)

    completion_rows = []
    for r in require_rows(run_query(completion_sql), msg):
        row = dict(r)
        row["completion_rate"] = completion_rate(row.get("enrolled_count"), row.get("completed_count"))
        completion_rows.append(row)
    completion_rows.sort(key=lambda r: r["completion_rate"], reverse=True)

    return {
        "period": rng.as_period(),
        "summary": summary_rows[0] if summary_rows else {},
        "courseActivity": require_rows(run_query(per_course_sql, p), msg),
        "enrollmentTrends": _daily_counts(require_rows(run_query(enrolment_trend_sql, p), msg), "new_enrollments"),
        "completionRates": completion_rows[:20],
        "mostActiveCourses": require_rows(run_query(most_active_sql, p), msg),
    }


# ----------------------
# Teacher / student activity
# ----------------------
def _login_frequency_sql(roles_predicate: str) -> str:
    day = day_bucket_sql("l.timecreated")
    return f"""
        SELECT
            u.id AS user_id,
            u.firstname,
            u.lastname,
            u.email,
            COUNT(DISTINCT {day}) AS login_days,
            COUNT(DISTINCT l.id) AS total_logins,
            MAX(l.timecreated) AS last_login
        FROM {table('user')} u
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        LEFT JOIN {table('logstore_standard_log')} l ON u.id = l.userid
            AND l.timecreated BETWEEN :start_ts AND :end_ts
            AND {LOGIN_PREDICATE}
        WHERE u.deleted = 0
            AND {roles_predicate}
        GROUP BY u.id, u.firstname, u.lastname, u.email
        ORDER BY total_logins DESC
        LIMIT {PER_USER_ROW_CAP}
    """


def _log_counts_sql(roles_predicate: str, predicate: str, count_alias: str, by_component: bool = False) -> str:
    """Per-user count of range log entries matching ``predicate``."""
    extra_cols = "\n            l.component,\n            l.objecttable," if by_component else ""
    extra_group = ", l.component, l.objecttable" if by_component else ""
    return f"""
        SELECT
            u.id AS user_id,
            u.firstname,
            u.lastname,{extra_cols}
            COUNT(DISTINCT l.id) AS {count_alias}
        FROM {table('logstore_standard_log')} l
        INNER JOIN {table('user')} u ON l.userid = u.id
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        WHERE l.timecreated BETWEEN :start_ts AND :end_ts
            AND ({predicate})
            AND {roles_predicate}
            AND u.deleted = 0
        GROUP BY u.id, u.firstname, u.lastname{extra_group}
        ORDER BY {count_alias} DESC
        LIMIT {PER_USER_ROW_CAP}
    """


def _activity_totals_sql(roles_predicate: str) -> str:
    day = day_bucket_sql("l.timecreated")
    return f"""
        SELECT
            u.id AS user_id,
            u.firstname,
            u.lastname,
            u.email,
            COUNT(DISTINCT l.id) AS total_activities,
            COUNT(DISTINCT {day}) AS active_days
        FROM {table('logstore_standard_log')} l
        INNER JOIN {table('user')} u ON l.userid = u.id
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        WHERE l.timecreated BETWEEN :start_ts AND :end_ts
            AND {roles_predicate}
            AND u.deleted = 0
        GROUP BY u.id, u.firstname, u.lastname, u.email
        ORDER BY total_activities DESC
        LIMIT {PER_USER_ROW_CAP}
    """


def teacher_activity(rng: DateRange) -> Dict[str, Any]:
    msg = "Failed to generate teacher activity report"
    p = {**rng.params(), "login_event": LOGIN_EVENT_PATTERN}
    staff = f"r.shortname IN {STAFF_ROLES_SQL}"

    uploads_sql = _log_counts_sql(
        staff,
        "l.action = 'created' AND (l.component LIKE '%resource%' OR l.component LIKE '%mod_folder%'"
        " OR l.component LIKE '%mod_url%')",
        "uploads",
        by_component=True,
    )
    assignments_sql = _log_counts_sql(
        staff, "l.action = 'created' AND (l.component = 'mod_assign' OR l.objecttable = 'assign')", "assignments_created"
    )
    quizzes_sql = _log_counts_sql(
        staff, "l.action = 'created' AND (l.component = 'mod_quiz' OR l.objecttable = 'quiz')", "quizzes_created"
    )
    grading_sql = _log_counts_sql(
        staff, "l.action = 'graded' OR l.target = 'grade' OR l.component = 'core_grades'", "grades_given"
    )

    return {
        "period": rng.as_period(),
        "teacherLogins": require_rows(run_query(_login_frequency_sql(staff), p), msg),
        "materialUploads": require_rows(run_query(uploads_sql, p), msg),
        "assignmentsCreated": require_rows(run_query(assignments_sql, p), msg),
        "quizzesCreated": require_rows(run_query(quizzes_sql, p), msg),
        "gradingActivity": require_rows(run_query(grading_sql, p), msg),
        "totalActivitySummary": require_rows(run_query(_activity_totals_sql(staff), p), msg),
    }


def student_activity(rng: DateRange) -> Dict[str, Any]:
    msg = "Failed to generate student activity report"
    p = {**rng.params(), "login_event": LOGIN_EVENT_PATTERN}
    student = "r.shortname = 'student'"

    submissions_sql = _log_counts_sql(
        student,
        "l.action = 'submitted' OR l.target = 'submission' OR (l.component = 'mod_assign' AND l.action = 'created')",
        "submissions",
    )
    quiz_attempts_sql = _log_counts_sql(
        student,
        "l.component = 'mod_quiz' AND (l.action IN ('attempted', 'submitted') OR l.target = 'attempt')",
        "quiz_attempts",
    )
    progress_sql = f"""
        SELECT
            u.id AS user_id,
            u.firstname,
            u.lastname,
            u.email,
            COUNT(DISTINCT cc.course) AS courses_completed,
            COUNT(DISTINCT ue.enrolid) AS courses_enrolled
        FROM {table('user')} u
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        LEFT JOIN {table('user_enrolments')} ue ON u.id = ue.userid AND ue.status = 0
        LEFT JOIN {table('course_completions')} cc ON u.id = cc.userid AND cc.timecompleted IS NOT NULL
        WHERE u.deleted = 0
            AND {student}
        GROUP BY u.id, u.firstname, u.lastname, u.email
        HAVING COUNT(DISTINCT ue.enrolid) > 0
        ORDER BY courses_completed DESC
        LIMIT {PER_USER_ROW_CAP}
    """
    grades_sql = f"""
        SELECT
            u.id AS user_id,
            u.firstname,
            u.lastname,
            COUNT(DISTINCT gi.courseid) AS courses_with_grades,
            ROUND(AVG(CASE WHEN gi.grademax > 0 THEN gg.finalgrade / gi.grademax * 100 ELSE 0 END), 2)
                AS average_percentage
        FROM {table('user')} u
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        INNER JOIN {table('grade_grades')} gg ON u.id = gg.userid
        INNER JOIN {table('grade_items')} gi ON gg.itemid = gi.id AND gi.itemtype = 'course'
        WHERE u.deleted = 0
            AND {student}
            AND gg.finalgrade IS NOT NULL
        GROUP BY u.id, u.firstname, u.lastname
        ORDER BY average_percentage DESC
        LIMIT {PER_USER_ROW_CAP}
    """

    return {
        "period": rng.as_period(),
        "studentLogins": require_rows(run_query(_login_frequency_sql(student), p), msg),
        "assignmentSubmissions": require_rows(run_query(submissions_sql, p), msg),
        "quizAttempts": require_rows(run_query(quiz_attempts_sql, p), msg),
        "courseProgress": require_rows(run_query(progress_sql), msg),
        "gradeSummary": require_rows(run_query(grades_sql), msg),
        "totalActivitySummary": require_rows(run_query(_activity_totals_sql(student), p), msg),
    }


# ----------------------
# Teacher compliance
# ----------------------
def compliance_status(activity_count: Any) -> Tuple[str, str]:
    n = int(activity_count or 0)
    if n >= COMPLIANCE_TARGET:
        return "green", "Meets target"
    if n >= 1:
        return "yellow", "Needs improvement"
    return "red", "Inactive"


def interaction_change(current: int, previous: int) -> int:
    """Percent change against the previous month; 100 when activity starts from zero."""
    if previous:
        return _pct(current - previous, previous)
    return 100 if current else 0


def _student_interactions_sql() -> str:
    return f"""
        SELECT COUNT(DISTINCT l.id) AS total
        FROM {table('logstore_standard_log')} l
        INNER JOIN {table('user')} u ON l.userid = u.id
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        INNER JOIN {table('context')} ctx ON ra.contextid = ctx.id AND ctx.contextlevel = {COURSE_CONTEXT}
        WHERE l.timecreated BETWEEN :start_ts AND :end_ts
            AND r.shortname = 'student'
            AND u.deleted = 0
    """


def teacher_compliance(rng: DateRange) -> Dict[str, Any]:
    """Compliance for one calendar month (see resolve_month), compared with the month before."""
    msg = "Failed to generate teacher compliance report"
    p = rng.params()
    prev = previous_month(rng)

    compliance_sql = f"""
        SELECT
            u.id AS user_id,
            u.firstname,
            u.lastname,
            u.email,
            c.id AS course_id,
            c.fullname AS course_name,
            c.shortname AS course_shortname,
            COUNT(DISTINCT l.id) AS activity_count
        FROM {table('user')} u
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        INNER JOIN {table('context')} ctx ON ra.contextid = ctx.id AND ctx.contextlevel = {COURSE_CONTEXT}
        INNER JOIN {table('course')} c ON ctx.instanceid = c.id
        LEFT JOIN {table('logstore_standard_log')} l ON u.id = l.userid
            AND l.courseid = c.id
            AND l.timecreated BETWEEN :start_ts AND :end_ts
            AND (
                (l.action IN ('created', 'updated', 'uploaded') AND l.target IN ('course_module', 'course_content'))
                OR (l.component LIKE 'mod_%' AND l.action IN ('created', 'updated'))
                OR l.objecttable IN ('resource', 'page', 'url', 'folder', 'book', 'assign', 'quiz', 'forum', 'label')
            )
        WHERE u.deleted = 0
            AND r.shortname IN {TEACHER_ROLES_SQL}
            AND c.id != 1
        GROUP BY u.id, u.firstname, u.lastname, u.email, c.id, c.fullname, c.shortname
        ORDER BY u.lastname, u.firstname, c.fullname
    """
    mix_sql = f"""
        SELECT
            SUM(CASE WHEN m.name IN {STATIC_MODULES_SQL} THEN 1 ELSE 0 END) AS static_count,
            SUM(CASE WHEN m.name IN {INTERACTIVE_MODULES_SQL} THEN 1 ELSE 0 END) AS interactive_count
        FROM {table('course_modules')} cm
        INNER JOIN {table('modules')} m ON cm.module = m.id
        WHERE cm.added BETWEEN :start_ts AND :end_ts
            AND cm.visible = 1
    """
    breakdown_sql = f"""
        SELECT
            CASE
                WHEN l.component IN ('mod_resource', 'mod_page', 'mod_url', 'mod_folder', 'mod_book', 'mod_label')
                    OR l.objecttable IN {STATIC_MODULES_SQL}
                THEN 'File/Resource'
                WHEN l.component = 'mod_quiz' OR l.objecttable = 'quiz' THEN 'Quiz'
                WHEN l.component = 'mod_assign' OR l.objecttable = 'assign' THEN 'Assignment'
                WHEN l.component = 'mod_forum' OR l.objecttable = 'forum' THEN 'Forum'
                ELSE 'Other'
            END AS feature_type,
            COUNT(DISTINCT l.id) AS count
        FROM {table('logstore_standard_log')} l
        INNER JOIN {table('user')} u ON l.userid = u.id
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        WHERE l.timecreated BETWEEN :start_ts AND :end_ts
            AND r.shortname IN {TEACHER_ROLES_SQL}
            AND u.deleted = 0
            AND l.action IN ('created', 'updated', 'uploaded')
            AND (
                l.component LIKE 'mod_%'
                OR l.objecttable IN ('resource', 'page', 'url', 'folder', 'book', 'label', 'quiz', 'assign', 'forum')
            )
        GROUP BY feature_type
        ORDER BY count DESC
    """
    top_courses_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS course_name,
            c.shortname AS course_shortname,
            COUNT(DISTINCT l.id) AS total_access,
            COUNT(DISTINCT l.userid) AS unique_students,
            (
                SELECT GROUP_CONCAT(DISTINCT u_t.firstname SEPARATOR ', ')
                FROM {table('context')} ctx_t
                INNER JOIN {table('role_assignments')} ra_t ON ctx_t.id = ra_t.contextid
                INNER JOIN {table('role')} r_t ON ra_t.roleid = r_t.id
                INNER JOIN {table('user')} u_t ON ra_t.userid = u_t.id
                WHERE ctx_t.instanceid = c.id
                    AND ctx_t.contextlevel = {COURSE_CONTEXT}
                    AND r_t.shortname IN {TEACHER_ROLES_SQL}
                    AND u_t.deleted = 0
            ) AS teachers
        FROM {table('course')} c
        INNER JOIN {table('logstore_standard_log')} l ON c.id = l.courseid
        INNER JOIN {table('user')} u_s ON l.userid = u_s.id
        INNER JOIN {table('role_assignments')} ra_s ON u_s.id = ra_s.userid
        INNER JOIN {table('role')} r_s ON ra_s.roleid = r_s.id
        INNER JOIN {table('context')} ctx_s ON ra_s.contextid = ctx_s.id
            AND ctx_s.contextlevel = {COURSE_CONTEXT} AND ctx_s.instanceid = c.id
        WHERE l.timecreated BETWEEN :start_ts AND :end_ts
            AND c.id != 1
            AND r_s.shortname = 'student'
            AND u_s.deleted = 0
        GROUP BY c.id, c.fullname, c.shortname
        ORDER BY total_access DESC
        LIMIT 5
    """
    active_teachers_sql = f"""
        SELECT COUNT(DISTINCT u.id) AS total
        FROM {table('user')} u
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        INNER JOIN {table('logstore_standard_log')} l ON u.id = l.userid
        WHERE u.deleted = 0
            AND r.shortname IN {TEACHER_ROLES_SQL}
            AND l.timecreated BETWEEN :start_ts AND :end_ts
            AND l.action IN ('created', 'updated', 'uploaded')
    """
    daily_sql = f"""
        SELECT
            {day_bucket_sql("l.timecreated")} AS day_number,
            COUNT(DISTINCT l.userid) AS unique_users,
            COUNT(DISTINCT l.id) AS total_activities
        FROM {table('logstore_standard_log')} l
        INNER JOIN {table('user')} u ON l.userid = u.id
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        WHERE l.timecreated BETWEEN :start_ts AND :end_ts
            AND r.shortname = 'student'
            AND u.deleted = 0
        GROUP BY day_number
        ORDER BY day_number ASC
    """

    entries = []
    for r in require_rows(run_query(compliance_sql, p), msg):
        row = dict(r)
        row["activity_count"] = int(row.get("activity_count") or 0)
        row["status"], row["status_label"] = compliance_status(row["activity_count"])
        entries.append(row)
    green = sum(1 for e in entries if e["status"] == "green")
    yellow = sum(1 for e in entries if e["status"] == "yellow")
    red = len(entries) - green - yellow

    mix_rows = require_rows(run_query(mix_sql, p), msg)
    static_n = _first_int(mix_rows, "static_count")
    interactive_n = _first_int(mix_rows, "interactive_count")
    mix_total = static_n + interactive_n
    activity_mix = {
        "static": static_n,
        "interactive": interactive_n,
        "staticPercentage": _pct(static_n, mix_total),
        "interactivePercentage": _pct(interactive_n, mix_total),
        "breakdown": require_rows(run_query(breakdown_sql, p), msg),
    }

    total_teachers = require_scalar(run_query(_role_count_sql(TEACHER_ROLES_SQL)), msg)
    active_teachers = require_scalar(run_query(active_teachers_sql, p), msg)
    current = require_scalar(run_query(_student_interactions_sql(), p), msg)
    previous = require_scalar(run_query(_student_interactions_sql(), prev.params()), msg)

    daily = []
    for r in require_rows(run_query(daily_sql, p), msg):
        if r.get("day_number") is None:
            continue
        d = day_from_number(r["day_number"])
        daily.append({
            "date": d.isoformat(),
            "day": f"{WEEKDAY_NAMES[(d.weekday() + 1) % 7]} {d.day}",
            "users": int(r.get("unique_users") or 0),
            "activities": int(r.get("total_activities") or 0),
        })

    return {
        "period": {"month": rng.start.strftime("%B %Y"), **rng.as_period()},
        "summary": {
            "totalTeachers": total_teachers,
            "activeTeachers": active_teachers,
            "participationRate": _pct(active_teachers, total_teachers),
            "complianceRate": _pct(green, len(entries)),
            "nonCompliantCount": yellow + red,
            "totalStudentInteractions": current,
            "interactionChange": interaction_change(current, previous),
            "compliance": {"green": green, "yellow": yellow, "red": red},
        },
        "teacherCompliance": entries,
        "activityMix": activity_mix,
        "dailyEngagement": daily,
        "topEngagedCourses": require_rows(run_query(top_courses_sql, p), msg),
    }


def teacher_compliance_export(rng: DateRange) -> Dict[str, Any]:
    """Tabular feed for the printed compliance report."""
    msg = "Failed to generate export data"
    p = rng.params()

    total_users_sql = f"SELECT COUNT(*) AS total FROM {table('user')} WHERE deleted = 0"
    active_users_sql = f"""
        SELECT COUNT(DISTINCT userid) AS total
        FROM {table('logstore_standard_log')}
        WHERE timecreated BETWEEN :start_ts AND :end_ts
    """
    new_users_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('user')}
        WHERE deleted = 0 AND timecreated BETWEEN :start_ts AND :end_ts
    """
    never_logged_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('user')}
        WHERE deleted = 0 AND (lastaccess = 0 OR lastaccess IS NULL)
    """
    teacher_days_sql = f"""
        SELECT
            u.id AS user_id,
            u.firstname AS name,
            {day_bucket_sql("l.timecreated")} AS day_number,
            GROUP_CONCAT(
                DISTINCT CASE
                    WHEN l.target = 'course_module' AND l.action = 'created' THEN 'Uploaded material'
                    WHEN l.component LIKE 'mod_assign%' AND l.action = 'created' THEN 'Created assignment'
                    WHEN l.component LIKE 'mod_quiz%' AND l.action = 'created' THEN 'Created quiz'
                    WHEN l.action = 'graded' THEN 'Graded'
                    ELSE NULL
                END
                SEPARATOR ', '
            ) AS activities,
            GROUP_CONCAT(DISTINCT c.shortname SEPARATOR ', ') AS classes
        FROM {table('logstore_standard_log')} l
        INNER JOIN {table('user')} u ON l.userid = u.id
        INNER JOIN {table('course')} c ON l.courseid = c.id AND c.id > 1
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        WHERE l.timecreated BETWEEN :start_ts AND :end_ts
            AND r.shortname IN {TEACHER_ROLES_SQL}
            AND u.deleted = 0
        GROUP BY u.id, u.firstname, day_number
        ORDER BY day_number DESC, name ASC
        LIMIT {EXPORT_TEACHER_ROW_CAP}
    """
    courses_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS class_name,
            COUNT(DISTINCT CASE
                WHEN m.name IN ('resource', 'url', 'page', 'folder') AND cm.added BETWEEN :start_ts AND :end_ts
                THEN cm.id
            END) AS new_materials,
            COUNT(DISTINCT CASE
                WHEN m.name IN ('assign', 'quiz') AND cm.added BETWEEN :start_ts AND :end_ts
                THEN cm.id
            END) AS new_assessments,
            (
                SELECT GROUP_CONCAT(DISTINCT u2.firstname SEPARATOR ', ')
                FROM {table('context')} ctx2
                INNER JOIN {table('role_assignments')} ra2 ON ra2.contextid = ctx2.id
                INNER JOIN {table('role')} r2 ON ra2.roleid = r2.id
                INNER JOIN {table('user')} u2 ON ra2.userid = u2.id
                WHERE ctx2.instanceid = c.id
                    AND ctx2.contextlevel = {COURSE_CONTEXT}
                    AND r2.shortname IN {TEACHER_ROLES_SQL}
                    AND u2.deleted = 0
            ) AS teachers
        FROM {table('course')} c
        LEFT JOIN {table('course_modules')} cm ON c.id = cm.course
        LEFT JOIN {table('modules')} m ON cm.module = m.id
        WHERE c.visible = 1 AND c.id > 1
        GROUP BY c.id, c.fullname
        HAVING new_materials > 0 OR new_assessments > 0
        ORDER BY (new_materials + new_assessments) DESC
        LIMIT {PER_USER_ROW_CAP}
    """

    user_stats = [
        ("Registered users", require_scalar(run_query(total_users_sql), msg), "Teachers, students, admins"),
        ("Active users in period", require_scalar(run_query(active_users_sql, p), msg), "At least one logged action"),
        ("New users in period", require_scalar(run_query(new_users_sql, p), msg), "New students/teachers"),
        ("Accounts never logged in", require_scalar(run_query(never_logged_sql), msg), "Out of all users"),
    ]

    teacher_rows = []
    for i, r in enumerate(require_rows(run_query(teacher_days_sql, p), msg), start=1):
        day = day_from_number(r["day_number"]) if r.get("day_number") is not None else None
        teacher_rows.append({
            "no": i,
            "name": r.get("name"),
            "date": day.strftime("%d-%m-%Y") if day else None,
            "activities": r.get("activities") or "Accessed LMS",
            "classes": r.get("classes") or "-",
        })

    course_rows = []
    for i, r in enumerate(require_rows(run_query(courses_sql, p), msg), start=1):
        course_rows.append({
            "no": i,
            "className": r.get("class_name"),
            "newMaterials": int(r.get("new_materials") or 0),
            "newAssignmentsQuizzes": int(r.get("new_assessments") or 0),
            "teachers": r.get("teachers") or "-",
        })

    return {
        "period": rng.as_period(),
        "userStatistics": [
            {"no": i, "description": label, "count": count, "note": note}
            for i, (label, count, note) in enumerate(user_stats, start=1)
        ],
        "teacherActivity": teacher_rows,
        "courseActivity": course_rows,
    }


# ----------------------
# Executive summary
# ----------------------
def executive_summary(rng: DateRange, now: Optional[datetime] = None) -> Dict[str, Any]:
    msg = "Failed to generate executive summary report"
    p = rng.params()
    today = (now or local_now()).date()
    today_p = {"today_start": day_start_ts(today)}
    course_grade = "gi.itemtype = 'course' AND gg.finalgrade IS NOT NULL AND gi.grademax > 0"

    adoption_sql = f"""
        SELECT
            COUNT(DISTINCT c.id) AS total_courses,
            COUNT(DISTINCT CASE WHEN cm.id IS NOT NULL THEN c.id END) AS active_courses
        FROM {table('course')} c
        LEFT JOIN {table('course_modules')} cm ON c.id = cm.course AND cm.visible = 1
        WHERE c.id > 1 AND c.visible = 1
    """
    dau_sql = f"""
        SELECT COUNT(DISTINCT l.userid) AS total
        FROM {table('logstore_standard_log')} l
        WHERE l.timecreated >= :today_start
    """
    completion_sql = f"""
        SELECT
            COUNT(DISTINCT ue.userid) AS total_enrolled,
            COUNT(DISTINCT cc.userid) AS total_completed
        FROM {table('user_enrolments')} ue
        INNER JOIN {table('enrol')} e ON ue.enrolid = e.id
        LEFT JOIN {table('course_completions')} cc
            ON e.courseid = cc.course AND ue.userid = cc.userid AND cc.timecompleted IS NOT NULL
        WHERE ue.status = 0
    """
    pct_expr = "(gg.finalgrade / gi.grademax * 100)"
    distribution_sql = f"""
        SELECT
            CASE
                WHEN {pct_expr} >= 90 THEN 'A (90-100)'
                WHEN {pct_expr} >= 80 THEN 'B (80-89)'
                WHEN {pct_expr} >= 70 THEN 'C (70-79)'
                WHEN {pct_expr} >= 60 THEN 'D (60-69)'
                ELSE 'E (<60)'
            END AS grade_range,
            COUNT(*) AS count
        FROM {table('grade_grades')} gg
        INNER JOIN {table('grade_items')} gi ON gg.itemid = gi.id
        WHERE {course_grade}
        GROUP BY grade_range
        ORDER BY grade_range
    """
    per_category_sql = f"""
        SELECT
            cat.name AS category_name,
            ROUND(AVG({pct_expr}), 1) AS avg_grade,
            COUNT(DISTINCT gg.userid) AS student_count
        FROM {table('grade_grades')} gg
        INNER JOIN {table('grade_items')} gi ON gg.itemid = gi.id
        INNER JOIN {table('course')} c ON gi.courseid = c.id
        INNER JOIN {table('course_categories')} cat ON c.category = cat.id
        WHERE {course_grade}
        GROUP BY cat.id, cat.name
        ORDER BY avg_grade DESC
        LIMIT 10
    """
    popular_sql = f"""
        SELECT
            m.name AS activity_type,
            CASE m.name
                WHEN 'quiz' THEN 'Quiz'
                WHEN 'assign' THEN 'Assignment'
                WHEN 'forum' THEN 'Forum'
                WHEN 'resource' THEN 'File/Resource'
                WHEN 'page' THEN 'Page'
                WHEN 'url' THEN 'URL/Link'
                WHEN 'h5pactivity' THEN 'H5P Interactive'
                WHEN 'lesson' THEN 'Lesson'
                WHEN 'book' THEN 'Book'
                WHEN 'folder' THEN 'Folder'
                WHEN 'choice' THEN 'Poll'
                WHEN 'feedback' THEN 'Feedback'
                ELSE m.name
            END AS activity_label,
            COUNT(DISTINCT cm.id) AS total_modules,
            COUNT(DISTINCT l.id) AS total_access
        FROM {table('modules')} m
        LEFT JOIN {table('course_modules')} cm ON m.id = cm.module AND cm.visible = 1
        LEFT JOIN {table('logstore_standard_log')} l ON cm.id = l.contextinstanceid
            AND l.contextlevel = {MODULE_CONTEXT}
            AND l.timecreated BETWEEN :start_ts AND :end_ts
        GROUP BY m.id, m.name
        HAVING COUNT(DISTINCT cm.id) > 0
        ORDER BY total_access DESC
        LIMIT 5
    """
    participation_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS course_name,
            (
                SELECT GROUP_CONCAT(DISTINCT CONCAT(u_t.firstname, ' ', u_t.lastname) SEPARATOR ', ')
                FROM {table('context')} ctx_t
                INNER JOIN {table('role_assignments')} ra_t ON ctx_t.id = ra_t.contextid
                INNER JOIN {table('role')} r_t ON ra_t.roleid = r_t.id
                INNER JOIN {table('user')} u_t ON ra_t.userid = u_t.id
                WHERE ctx_t.instanceid = c.id
                    AND ctx_t.contextlevel = {COURSE_CONTEXT}
                    AND r_t.shortname IN {TEACHER_ROLES_SQL}
                    AND u_t.deleted = 0
            ) AS teacher_name,
            COUNT(DISTINCT ue.userid) AS enrolled_students,
            COUNT(DISTINCT l.userid) AS active_students
        FROM {table('course')} c
        INNER JOIN {table('enrol')} e ON c.id = e.courseid
        INNER JOIN {table('user_enrolments')} ue ON e.id = ue.enrolid AND ue.status = 0
        LEFT JOIN {table('logstore_standard_log')} l ON ue.userid = l.userid
            AND l.courseid = c.id
            AND l.timecreated BETWEEN :start_ts AND :end_ts
        WHERE c.visible = 1 AND c.id > 1
        GROUP BY c.id, c.fullname
        HAVING COUNT(DISTINCT ue.userid) > 0
    """
    avg_grade_sql = f"""
        SELECT ROUND(AVG({pct_expr}), 1) AS avg_grade
        FROM {table('grade_grades')} gg
        INNER JOIN {table('grade_items')} gi ON gg.itemid = gi.id
        WHERE {course_grade}
    """
    attendance_sql = f"""
        SELECT
            COUNT(DISTINCT u.id) AS total_users,
            COUNT(DISTINCT CASE WHEN u.lastaccess >= :today_start THEN u.id END) AS accessed_today
        FROM {table('user')} u
        WHERE u.deleted = 0 AND u.confirmed = 1
    """

    adoption = require_rows(run_query(adoption_sql), msg)
    total_courses = _first_int(adoption, "total_courses")
    active_courses = _first_int(adoption, "active_courses")
    adoption_rate = completion_rate(total_courses, active_courses)

    completion = require_rows(run_query(completion_sql), msg)
    total_enrolled = _first_int(completion, "total_enrolled")
    total_completed = _first_int(completion, "total_completed")
    overall_completion = completion_rate(total_enrolled, total_completed)

    attendance = require_rows(run_query(attendance_sql, today_p), msg)
    attendance_rate = completion_rate(_first_int(attendance, "total_users"), _first_int(attendance, "accessed_today"))

    avg_rows = require_rows(run_query(avg_grade_sql), msg)
    avg_school_grade = float(avg_rows[0].get("avg_grade") or 0) if avg_rows else 0.0

    participation = []
    for r in require_rows(run_query(participation_sql, p), msg):
        row = dict(r)
        enrolled = int(row.get("enrolled_students") or 0)
        active = int(row.get("active_students") or 0)
        row["participation_rate"] = round(active / enrolled * 100, 1) if enrolled else 0.0
        participation.append(row)
    participation.sort(key=lambda r: r["participation_rate"], reverse=True)

    return {
        "period": rng.as_period(),
        "kpiScorecard": {
            "totalStudents": require_scalar(run_query(_role_count_sql("('student')")), msg),
            "totalTeachers": require_scalar(run_query(_role_count_sql(TEACHER_ROLES_SQL)), msg),
            "totalCourses": total_courses,
            "activeCourses": active_courses,
            "dailyActiveUsers": require_scalar(run_query(dau_sql, today_p), msg),
            "avgSchoolGrade": avg_school_grade,
            "completionRate": overall_completion,
            "adoptionRate": adoption_rate,
            "digitalAttendanceRate": attendance_rate,
        },
        "lmsAdoption": {"total": total_courses, "active": active_courses, "percentage": adoption_rate},
        "loginTrends": lms_store.login_activity(7, today=today)["data"],
        "completionStats": {"totalEnrolled": total_enrolled, "totalCompleted": total_completed, "rate": overall_completion},
        "gradeDistribution": require_rows(run_query(distribution_sql), msg),
        "gradePerCategory": require_rows(run_query(per_category_sql), msg),
        "popularActivities": require_rows(run_query(popular_sql, p), msg),
        "participationPerClass": participation[:10],
    }


# ----------------------
# Teacher detail
# ----------------------
def teacher_status(lastaccess: Any, grading_percentage: int, now_ts: int) -> Tuple[str, str]:
    last = int(lastaccess or 0)
    if last == 0 or last < now_ts - 3 * DAY_SECONDS:
        return "red", "Inactive for more than 3 days"
    if grading_percentage < GRADING_FOLLOW_UP_BELOW:
        return "yellow", "Needs follow-up"
    return "green", "Active"


def teacher_detail_master(
    rng: DateRange, category: Optional[int] = None, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Every teacher with workload counters and a status colour.

    ``category`` keeps teachers assigned to at least one course in that
    course category.
    """
    msg = "Failed to generate teacher detail master report"
    now_ts = _now_ts(now)
    params: Dict[str, Any] = {"week_ago": now_ts - 7 * DAY_SECONDS}
    category_filter = ""
    if category is not None:
        params["category"] = category
        category_filter = f"""
            AND EXISTS (
                SELECT 1
                FROM {table('context')} cx
                INNER JOIN {table('role_assignments')} rx ON cx.id = rx.contextid
                INNER JOIN {table('course')} cf ON cx.instanceid = cf.id
                WHERE rx.userid = u.id
                    AND cx.contextlevel = {COURSE_CONTEXT}
                    AND cf.category = :category
            )"""

    teachers_sql = f"""
        SELECT
            u.id AS user_id,
            u.firstname,
            u.lastname,
            u.email,
            u.lastaccess,
            (
                SELECT GROUP_CONCAT(DISTINCT c.shortname SEPARATOR ', ')
                FROM {table('context')} ctx
                INNER JOIN {table('role_assignments')} ra2 ON ctx.id = ra2.contextid
                INNER JOIN {table('course')} c ON ctx.instanceid = c.id
                WHERE ra2.userid = u.id
                    AND ctx.contextlevel = {COURSE_CONTEXT}
                    AND c.visible = 1 AND c.id > 1
            ) AS courses_taught,
            (
                SELECT GROUP_CONCAT(DISTINCT cat.name SEPARATOR ', ')
                FROM {table('context')} ctx
                INNER JOIN {table('role_assignments')} ra2 ON ctx.id = ra2.contextid
                INNER JOIN {table('course')} c ON ctx.instanceid = c.id
                INNER JOIN {table('course_categories')} cat ON c.category = cat.id
                WHERE ra2.userid = u.id
                    AND ctx.contextlevel = {COURSE_CONTEXT}
                    AND c.visible = 1 AND c.id > 1
            ) AS departments,
            (
                SELECT COUNT(*)
                FROM {table('logstore_standard_log')} l
                WHERE l.userid = u.id
                    AND l.timecreated >= :week_ago
                    AND l.action IN ('created', 'updated')
                    AND (l.component LIKE 'mod_%' OR l.objecttable IN ('resource', 'page', 'quiz', 'assign', 'forum'))
            ) AS content_updates_7days,
            (
                SELECT COUNT(DISTINCT asub.id)
                FROM {table('assign_submission')} asub
                INNER JOIN {table('assign')} a ON asub.assignment = a.id
                INNER JOIN {table('context')} ctx ON ctx.instanceid = a.course AND ctx.contextlevel = {COURSE_CONTEXT}
                INNER JOIN {table('role_assignments')} ra2 ON ctx.id = ra2.contextid AND ra2.userid = u.id
                WHERE asub.status = 'submitted'
            ) AS total_submissions,
            (
                SELECT COUNT(*)
                FROM {table('assign_grades')} ag
                WHERE ag.grader = u.id
            ) AS total_graded,
            (
                SELECT ROUND(AVG(ag.timecreated - asub.timecreated) / 3600, 1)
                FROM {table('assign_grades')} ag
                INNER JOIN {table('assign_submission')} asub
                    ON ag.assignment = asub.assignment AND ag.userid = asub.userid
                WHERE ag.grader = u.id AND ag.timecreated > asub.timecreated
            ) AS avg_response_hours
        FROM {table('user')} u
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        WHERE u.deleted = 0
            AND r.shortname IN {TEACHER_ROLES_SQL}{category_filter}
        GROUP BY u.id, u.firstname, u.lastname, u.email, u.lastaccess
        ORDER BY u.lastname, u.firstname
    """

    teachers = []
    for r in require_rows(run_query(teachers_sql, params), msg):
        row = dict(r)
        submissions = int(row.get("total_submissions") or 0)
        graded = int(row.get("total_graded") or 0)
        grading = completion_rate(submissions, graded) if submissions > 0 else 100
        row["grading_percentage"] = grading
        row["status"], row["status_label"] = teacher_status(row.get("lastaccess"), grading, now_ts)
        row["avg_response_hours"] = float(row.get("avg_response_hours") or 0)
        teachers.append(row)

    return {
        "period": rng.as_period(),
        "teachers": teachers,
        "categories": require_rows(run_query(_categories_sql()), msg),
        "summary": {
            "total": len(teachers),
            "active": sum(1 for t in teachers if t["status"] == "green"),
            "needsAttention": sum(1 for t in teachers if t["status"] == "yellow"),
            "inactive": sum(1 for t in teachers if t["status"] == "red"),
        },
    }


def teacher_detail(teacher_id: int, rng: DateRange) -> Optional[Dict[str, Any]]:
    """Drill-down for one teacher; None when the user does not exist."""
    msg = "Failed to generate teacher detail report"
    p = {**rng.params(), "user_id": teacher_id}

    info = require_rows(run_query(_user_info_sql(), {"user_id": teacher_id}), msg)
    if not info:
        return None

    courses_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS course_name,
            c.shortname,
            cat.name AS category_name,
            (
                SELECT COUNT(DISTINCT ue.userid)
                FROM {table('enrol')} e
                INNER JOIN {table('user_enrolments')} ue ON e.id = ue.enrolid
                WHERE e.courseid = c.id AND ue.status = 0
            ) AS enrolled_students,
            (
                SELECT COUNT(DISTINCT cc.userid)
                FROM {table('course_completions')} cc
                WHERE cc.course = c.id AND cc.timecompleted IS NOT NULL
            ) AS completed_students,
            (
                SELECT COUNT(*)
                FROM {table('course_modules')} cm
                WHERE cm.course = c.id AND cm.visible = 1
            ) AS total_modules
        FROM {table('course')} c
        INNER JOIN {table('context')} ctx ON c.id = ctx.instanceid AND ctx.contextlevel = {COURSE_CONTEXT}
        INNER JOIN {table('role_assignments')} ra ON ctx.id = ra.contextid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        LEFT JOIN {table('course_categories')} cat ON c.category = cat.id
        WHERE ra.userid = :user_id
            AND r.shortname IN {TEACHER_ROLES_SQL}
            AND c.visible = 1 AND c.id > 1
        GROUP BY c.id, c.fullname, c.shortname, cat.name
    """
    forum_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('logstore_standard_log')} l
        WHERE l.userid = :user_id
            AND l.component = 'mod_forum'
            AND l.timecreated BETWEEN :start_ts AND :end_ts
    """
    variety_sql = f"""
        SELECT COUNT(DISTINCT l.component) AS total
        FROM {table('logstore_standard_log')} l
        WHERE l.userid = :user_id
            AND l.action = 'created'
            AND l.component LIKE 'mod_%'
            AND l.timecreated BETWEEN :start_ts AND :end_ts
    """
    response_sql = f"""
        SELECT AVG(ag.timecreated - asub.timecreated) / 3600 AS avg_hours
        FROM {table('assign_grades')} ag
        INNER JOIN {table('assign_submission')} asub
            ON ag.assignment = asub.assignment AND ag.userid = asub.userid
        WHERE ag.grader = :user_id
            AND ag.timecreated BETWEEN :start_ts AND :end_ts
            AND ag.timecreated > asub.timecreated
    """
    # Quizzes with at least five question slots.
    quiz_quality_sql = f"""
        SELECT COUNT(DISTINCT q.id) AS total
        FROM {table('quiz')} q
        INNER JOIN {table('context')} ctx ON q.course = ctx.instanceid AND ctx.contextlevel = {COURSE_CONTEXT}
        INNER JOIN {table('role_assignments')} ra ON ctx.id = ra.contextid
        WHERE ra.userid = :user_id
            AND (SELECT COUNT(*) FROM {table('quiz_slots')} qs WHERE qs.quizid = q.id) >= 5
    """

    courses = []
    for r in require_rows(run_query(courses_sql, p), msg):
        row = dict(r)
        row["completion_rate"] = completion_rate(row.get("enrolled_students"), row.get("completed_students"))
        courses.append(row)

    forum = require_scalar(run_query(forum_sql, p), msg)
    variety = require_scalar(run_query(variety_sql, p), msg)
    response_rows = require_rows(run_query(response_sql, p), msg)
    avg_hours = float(response_rows[0].get("avg_hours") or 0) if response_rows else 0.0
    quiz_quality = require_scalar(run_query(quiz_quality_sql, p), msg)

    timeliness = max(100 - round_half_up(avg_hours * 2), 0) if avg_hours > 0 else 50
    radar = [
        {"subject": "Forum activity", "value": min(forum * 2, 100), "fullMark": 100},
        {"subject": "Content variety", "value": min(variety * 15, 100), "fullMark": 100},
        {"subject": "Grading timeliness", "value": timeliness, "fullMark": 100},
        {"subject": "Quiz quality", "value": min(quiz_quality * 20, 100), "fullMark": 100},
    ]

    return {
        "teacher": info[0],
        "courses": courses,
        "radarData": radar,
        "heatmapData": _weekly_heatmap(require_rows(run_query(_heatmap_sql(), p), msg)),
        "period": rng.as_period(),
    }


# ----------------------
# Student detail
# ----------------------
def student_risk(lastaccess: Any, missing: int, avg_grade: float, now_ts: int) -> Tuple[str, str, List[str]]:
    """First matching rule wins; red rules are checked before yellow ones."""
    last = int(lastaccess or 0)
    if last == 0 or last < now_ts - 7 * DAY_SECONDS:
        return "red", "Critical", ["No login for more than 7 days"]
    if missing >= 3:
        return "red", "Critical", [f"{missing} assignments not submitted"]
    if 0 < avg_grade < PASSING_GRADE:
        return "red", "Critical", ["Grade below the passing mark"]
    if last < now_ts - 3 * DAY_SECONDS:
        return "yellow", "Needs attention", ["No login for more than 3 days"]
    if missing >= 1:
        return "yellow", "Needs attention", [f"{missing} assignments not submitted"]
    if 0 < avg_grade < WARNING_GRADE:
        return "yellow", "Needs attention", ["Grade close to the passing mark"]
    return "green", "Safe", []


def student_detail_master(
    rng: DateRange, category: Optional[int] = None, now: Optional[datetime] = None
) -> Dict[str, Any]:
    msg = "Failed to generate student detail master report"
    now_ts = _now_ts(now)
    params: Dict[str, Any] = {"now_ts": now_ts}
    category_filter = ""
    if category is not None:
        params["category"] = category
        category_filter = f"""
            AND EXISTS (
                SELECT 1
                FROM {table('user_enrolments')} uex
                INNER JOIN {table('enrol')} ex ON uex.enrolid = ex.id
                INNER JOIN {table('course')} cf ON ex.courseid = cf.id
                WHERE uex.userid = u.id AND uex.status = 0 AND cf.category = :category
            )"""

    visible_enrolment = f"""
        FROM {table('user_enrolments')} ue
        INNER JOIN {table('enrol')} e ON ue.enrolid = e.id
        INNER JOIN {table('course')} c ON e.courseid = c.id
        WHERE ue.userid = u.id AND ue.status = 0 AND c.visible = 1 AND c.id > 1"""
    students_sql = f"""
        SELECT
            u.id AS user_id,
            u.firstname,
            u.lastname,
            u.email,
            u.lastaccess,
            (SELECT GROUP_CONCAT(DISTINCT c.shortname SEPARATOR ', '){visible_enrolment}
            ) AS enrolled_courses,
            (SELECT COUNT(DISTINCT e.courseid){visible_enrolment}
            ) AS total_enrolled,
            (
                SELECT COUNT(DISTINCT cc.course)
                FROM {table('course_completions')} cc
                WHERE cc.userid = u.id AND cc.timecompleted IS NOT NULL
            ) AS completed_courses,
            (
                SELECT ROUND(AVG(gg.finalgrade / gi.grademax * 100), 1)
                FROM {table('grade_grades')} gg
                INNER JOIN {table('grade_items')} gi ON gg.itemid = gi.id
                WHERE gg.userid = u.id AND gg.finalgrade IS NOT NULL
                    AND gi.itemtype = 'course' AND gi.grademax > 0
            ) AS avg_grade,
            (
                SELECT COUNT(DISTINCT a.id)
                FROM {table('assign')} a
                INNER JOIN {table('enrol')} e ON e.courseid = a.course
                INNER JOIN {table('user_enrolments')} ue ON ue.enrolid = e.id AND ue.userid = u.id AND ue.status = 0
                LEFT JOIN {table('assign_submission')} asub
                    ON a.id = asub.assignment AND asub.userid = u.id AND asub.status = 'submitted'
                WHERE asub.id IS NULL AND a.duedate > 0 AND a.duedate < :now_ts
            ) AS missing_assignments,
            (
                SELECT COUNT(*)
                FROM {table('assign_submission')} asub2
                INNER JOIN {table('assign')} a2 ON asub2.assignment = a2.id
                WHERE asub2.userid = u.id AND asub2.status = 'submitted'
                    AND a2.duedate > 0 AND asub2.timemodified > a2.duedate
            ) AS late_submissions
        FROM {table('user')} u
        INNER JOIN {table('role_assignments')} ra ON u.id = ra.userid
        INNER JOIN {table('role')} r ON ra.roleid = r.id
        WHERE u.deleted = 0
            AND r.shortname = 'student'{category_filter}
        GROUP BY u.id, u.firstname, u.lastname, u.email, u.lastaccess
        ORDER BY u.lastname, u.firstname
    """

    students = []
    for r in require_rows(run_query(students_sql, params), msg):
        row = dict(r)
        missing = int(row.get("missing_assignments") or 0)
        avg_grade = float(row.get("avg_grade") or 0)
        row["missing_assignments"] = missing
        row["avg_grade"] = avg_grade
        row["completion_rate"] = completion_rate(row.get("total_enrolled"), row.get("completed_courses"))
        row["risk_level"], row["risk_label"], row["warnings"] = student_risk(
            row.get("lastaccess"), missing, avg_grade, now_ts
        )
        students.append(row)

    return {
        "period": rng.as_period(),
        "students": students,
        "categories": require_rows(run_query(_categories_sql()), msg),
        "summary": {
            "total": len(students),
            "safe": sum(1 for s in students if s["risk_level"] == "green"),
            "needsAttention": sum(1 for s in students if s["risk_level"] == "yellow"),
            "critical": sum(1 for s in students if s["risk_level"] == "red"),
        },
    }


def course_progress_status(completed_at: Any, missing: int) -> str:
    if completed_at:
        return "completed"
    if missing > 0:
        return "behind"
    return "on-track"


def student_scorecard(
    courses: List[Dict[str, Any]], lastaccess: Any, now_ts: int
) -> Dict[str, Any]:
    """Overall risk accumulates warnings; a low average alone only reaches yellow."""
    total = len(courses)
    completed = sum(1 for c in courses if c["status"] == "completed")
    avg_grade = round_half_up(sum(c["grade_percentage"] for c in courses) / total) if total else 0
    missing = sum(c["missing_assignments"] for c in courses)
    last = int(lastaccess or 0)

    level, label, warnings = "green", "Safe", []
    if last == 0 or last < now_ts - 7 * DAY_SECONDS:
        level, label = "red", "Critical"
        warnings.append("Inactive for more than 7 days")
    if missing >= 3:
        level, label = "red", "Critical"
        warnings.append(f"{missing} assignments not submitted")
    if 0 < avg_grade < PASSING_GRADE:
        if level != "red":
            level, label = "yellow", "Needs attention"
        warnings.append("Average grade below the passing mark")

    return {
        "riskLevel": level,
        "riskLabel": label,
        "warnings": warnings,
        "overallProgress": completion_rate(total, completed),
        "avgGrade": avg_grade,
        "totalCourses": total,
        "completedCourses": completed,
    }


def student_detail(student_id: int, rng: DateRange, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Drill-down for one student; None when the user does not exist."""
    msg = "Failed to generate student detail report"
    now_ts = _now_ts(now)
    p = {**rng.params(), "user_id": student_id, "now_ts": now_ts}

    info = require_rows(run_query(_user_info_sql(), {"user_id": student_id}), msg)
    if not info:
        return None

    grade_trend_sql = f"""
        SELECT
            {day_bucket_sql("gg.timemodified")} AS day_number,
            gi.itemname,
            gg.finalgrade AS grade,
            gi.grademax AS max_grade
        FROM {table('grade_grades')} gg
        INNER JOIN {table('grade_items')} gi ON gg.itemid = gi.id
        WHERE gg.userid = :user_id
            AND gg.finalgrade IS NOT NULL
            AND gg.timemodified BETWEEN :start_ts AND :end_ts
            AND gi.itemtype != 'course'
        ORDER BY gg.timemodified ASC
        LIMIT 30
    """
    quiz_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('quiz_attempts')} qa
        WHERE qa.userid = :user_id
            AND qa.timefinish BETWEEN :start_ts AND :end_ts
    """
    forum_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('forum_posts')} fp
        WHERE fp.userid = :user_id
            AND fp.created BETWEEN :start_ts AND :end_ts
    """
    assign_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('assign_submission')} asub
        WHERE asub.userid = :user_id
            AND asub.status = 'submitted'
            AND asub.timemodified BETWEEN :start_ts AND :end_ts
    """
    resource_sql = f"""
        SELECT COUNT(*) AS total
        FROM {table('logstore_standard_log')} l
        WHERE l.userid = :user_id
            AND l.action = 'viewed'
            AND l.component IN ('mod_resource', 'mod_page', 'mod_book', 'mod_url')
            AND l.timecreated BETWEEN :start_ts AND :end_ts
    """
    courses_sql = f"""
        SELECT
            c.id AS course_id,
            c.fullname AS course_name,
            c.shortname,
            cat.name AS category_name,
            (
                SELECT MAX(gg.finalgrade)
                FROM {table('grade_grades')} gg
                INNER JOIN {table('grade_items')} gi ON gg.itemid = gi.id
                WHERE gg.userid = :user_id AND gi.courseid = c.id AND gi.itemtype = 'course'
            ) AS course_grade,
            (
                SELECT MAX(gi2.grademax)
                FROM {table('grade_items')} gi2
                WHERE gi2.courseid = c.id AND gi2.itemtype = 'course'
            ) AS grade_max,
            (
                SELECT MAX(cc.timecompleted)
                FROM {table('course_completions')} cc
                WHERE cc.userid = :user_id AND cc.course = c.id
            ) AS completed_at,
            (
                SELECT COUNT(*)
                FROM {table('assign')} a
                WHERE a.course = c.id
            ) AS total_assignments,
            (
                SELECT COUNT(*)
                FROM {table('assign_submission')} asub
                INNER JOIN {table('assign')} a ON asub.assignment = a.id
                WHERE asub.userid = :user_id AND a.course = c.id AND asub.status = 'submitted'
            ) AS submitted_assignments,
            (
                SELECT COUNT(*)
                FROM {table('assign')} a2
                LEFT JOIN {table('assign_submission')} asub2
                    ON a2.id = asub2.assignment AND asub2.userid = :user_id AND asub2.status = 'submitted'
                WHERE a2.course = c.id AND asub2.id IS NULL AND a2.duedate > 0 AND a2.duedate < :now_ts
            ) AS missing_assignments
        FROM {table('course')} c
        INNER JOIN {table('enrol')} e ON c.id = e.courseid
        INNER JOIN {table('user_enrolments')} ue ON e.id = ue.enrolid
        LEFT JOIN {table('course_categories')} cat ON c.category = cat.id
        WHERE ue.userid = :user_id
            AND ue.status = 0
            AND c.visible = 1 AND c.id > 1
        GROUP BY c.id, c.fullname, c.shortname, cat.name
    """

    grade_trend = []
    for r in require_rows(run_query(grade_trend_sql, p), msg):
        grade = float(r.get("grade") or 0)
        max_grade = float(r.get("max_grade") or 0) or 100.0
        grade_trend.append({
            "date": day_from_number(r["day_number"]).isoformat() if r.get("day_number") is not None else None,
            "name": (r.get("itemname") or "")[:20] or "N/A",
            "grade": round_half_up(grade / max_grade * 100),
            "rawGrade": grade,
        })

    quizzes = require_scalar(run_query(quiz_sql, p), msg)
    posts = require_scalar(run_query(forum_sql, p), msg)
    submissions = require_scalar(run_query(assign_sql, p), msg)
    views = require_scalar(run_query(resource_sql, p), msg)
    engagement = [
        {"subject": "Quizzes", "value": min(quizzes * 10, 100), "fullMark": 100},
        {"subject": "Forum", "value": min(posts * 15, 100), "fullMark": 100},
        {"subject": "Assignments", "value": min(submissions * 12, 100), "fullMark": 100},
        {"subject": "Materials", "value": min(views * 3, 100), "fullMark": 100},
    ]

    courses = []
    for r in require_rows(run_query(courses_sql, p), msg):
        row = dict(r)
        grade = float(row.get("course_grade") or 0)
        grade_max = float(row.get("grade_max") or 0) or 100.0
        missing = int(row.get("missing_assignments") or 0)
        row["grade_percentage"] = round_half_up(grade / grade_max * 100)
        row["total_assignments"] = int(row.get("total_assignments") or 0)
        row["submitted_assignments"] = int(row.get("submitted_assignments") or 0)
        row["missing_assignments"] = missing
        row["status"] = course_progress_status(row.get("completed_at"), missing)
        courses.append(row)

    return {
        "student": info[0],
        "scorecard": student_scorecard(courses, info[0].get("lastaccess"), now_ts),
        "gradeTrend": grade_trend,
        "engagementData": engagement,
        "timelineData": _weekly_heatmap(require_rows(run_query(_heatmap_sql(), p), msg)),
        "courses": courses,
        "period": rng.as_period(),
    }
