"""Tests for the LMS read models (dashboard, courses, users, logs)."""

from datetime import date, datetime, timedelta

import pytest

import lms_store
from config import LOGIN_ACTIVITY_MAX_DAYS, MAX_PAGE_LIMIT
from db import QueryExecutionError
from lms_store import (
    build_pagination,
    completion_rate,
    day_end_ts,
    day_start_ts,
    describe_log_entry,
    fill_daily_series,
    page_params,
    relative_time,
    report_tz,
    tz_offset_seconds,
)

TODAY = date(2026, 10, 19)


def day_number(d: date) -> int:
    return (d - date(1970, 1, 1)).days


# ---------------------------------------------------------------------------
# Arithmetic helpers
# ---------------------------------------------------------------------------


class TestCompletionRate:
    @pytest.mark.parametrize(
        "enrolled,completed,expected",
        [
            (0, 0, 0),
            (None, 3, 0),
            (3, 1, 33),
            (3, 2, 67),
            (8, 1, 13),
            (4, 4, 100),
            (2, 5, 100),
        ],
    )
    def test_rate(self, enrolled, completed, expected) -> None:
        assert completion_rate(enrolled, completed) == expected


class TestPagination:
    def test_total_pages_rounds_up(self) -> None:
        assert build_pagination(2, 10, 25) == {"page": 2, "limit": 10, "total": 25, "totalPages": 3}

    def test_empty(self) -> None:
        assert build_pagination(1, 10, 0)["totalPages"] == 0

    def test_page_params_clamp(self) -> None:
        assert page_params("3", "20") == (3, 20, 40)
        assert page_params("abc", "100000") == (1, MAX_PAGE_LIMIT, 0)
        assert page_params(None, None) == (1, 10, 0)


class TestDayBoundaries:
    def test_offset(self) -> None:
        assert tz_offset_seconds() == 7 * 3600

    def test_day_start_and_end(self) -> None:
        assert day_start_ts(date(1970, 1, 2)) == 86400 - 7 * 3600
        assert day_end_ts(date(1970, 1, 2)) == 2 * 86400 - 7 * 3600 - 1

    def test_fill_daily_series(self) -> None:
        rows = [{"day_number": day_number(date(2026, 10, 18)), "login_count": 4, "unique_users": 2}]
        series = fill_daily_series(rows, date(2026, 10, 17), 3)
        assert series == [
            {"date": "2026-10-17", "login_count": 0, "unique_users": 0},
            {"date": "2026-10-18", "login_count": 4, "unique_users": 2},
            {"date": "2026-10-19", "login_count": 0, "unique_users": 0},
        ]


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class TestOverview:
    def test_counts(self, fake_db) -> None:
        fake_db.on("user_enrolments", rows=[{"total": 40}])
        fake_db.on("logstore_standard_log", rows=[{"total": 7}])
        fake_db.on("FROM course", rows=[{"total": 5}])
        fake_db.on("FROM user", rows=[{"total": 12}])

        assert lms_store.get_overview(today=TODAY) == {
            "totalUsers": 12,
            "totalCourses": 5,
            "todayActivities": 7,
            "totalEnrollments": 40,
        }
        _, params = fake_db.calls_matching("logstore_standard_log")[0]
        assert params == {"since": day_start_ts(TODAY)}

    def test_failure_raises(self, fake_db) -> None:
        fake_db.on("FROM user", error="connection refused")
        with pytest.raises(QueryExecutionError) as exc_info:
            lms_store.get_overview(today=TODAY)
        assert exc_info.value.message == "Failed to fetch dashboard data"
        assert exc_info.value.details == "connection refused"


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


class TestCourses:
    def test_second_page(self, fake_db) -> None:
        rows = [
            {"id": 10 + i, "fullname": f"Course {i}", "enrolled_count": 3, "completed_count": 2}
            for i in range(10)
        ]
        fake_db.on("enrolled_count", rows=rows)
        fake_db.on("COUNT(*) AS total", rows=[{"total": 25}])

        out = lms_store.list_courses(page="2", limit="10")

        assert out["pagination"] == {"page": 2, "limit": 10, "total": 25, "totalPages": 3}
        assert len(out["courses"]) == 10
        assert out["courses"][0]["completion_rate"] == 67
        sql, _ = fake_db.calls_matching("enrolled_count")[0]
        assert "LIMIT 10 OFFSET 10" in sql

    def test_search_is_bound(self, fake_db) -> None:
        lms_store.list_courses(search=" math ")
        for sql, params in fake_db.calls:
            assert ":search" in sql
            assert params == {"search": "%math%"}

    def test_zero_enrolled(self, fake_db) -> None:
        fake_db.on("enrolled_count", rows=[{"id": 2, "enrolled_count": None, "completed_count": None}])
        course = lms_store.list_courses()["courses"][0]
        assert course["enrolled_count"] == 0
        assert course["completion_rate"] == 0

    def test_get_course_missing(self, fake_db) -> None:
        assert lms_store.get_course(99) is None
        assert fake_db.calls[0][1] == {"course_id": 99}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestUsers:
    @pytest.mark.parametrize("q", [None, "", "a", " b "])
    def test_short_query_skips_database(self, fake_db, q) -> None:
        out = lms_store.search_users(q)
        assert out == {"users": [], "pagination": {"page": 1, "limit": 10, "total": 0, "totalPages": 0}}
        assert fake_db.calls == []

    def test_search_binds_term(self, fake_db) -> None:
        fake_db.on("u.lastaccess,", rows=[{"id": 3, "username": "ana"}])
        fake_db.on("COUNT(*) AS total", rows=[{"total": 1}])

        out = lms_store.search_users("an", limit="5")

        assert out["users"] == [{"id": 3, "username": "ana"}]
        assert out["pagination"] == {"page": 1, "limit": 5, "total": 1, "totalPages": 1}
        assert all(params == {"term": "%an%"} for _, params in fake_db.calls)

    def test_grades_unknown_user(self, fake_db) -> None:
        assert lms_store.get_user_grades(5) is None
        assert len(fake_db.calls) == 1

    def test_grades(self, fake_db) -> None:
        fake_db.on("AND deleted = 0", rows=[{"id": 5, "username": "ana"}])
        fake_db.on("grade_items", rows=[{"course_id": 2, "finalgrade": 80}])
        fake_db.on("ue.timestart", rows=[{"course_id": 2}, {"course_id": 3}])

        out = lms_store.get_user_grades(5)

        assert out["user"] == {"id": 5, "username": "ana"}
        assert out["grades"] == [{"course_id": 2, "finalgrade": 80}]
        assert len(out["enrolledCourses"]) == 2


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


class TestLoginActivity:
    def test_empty_days_are_zero_filled(self, fake_db) -> None:
        out = lms_store.login_activity(days=7, today=TODAY)

        assert out["period"] == "Last 7 days"
        assert [d["date"] for d in out["data"]] == [
            (TODAY - timedelta(days=6 - i)).isoformat() for i in range(7)
        ]
        assert all(d["login_count"] == 0 and d["unique_users"] == 0 for d in out["data"])

    def test_params_and_rows(self, fake_db) -> None:
        fake_db.on(
            "login_count",
            rows=[{"day_number": day_number(date(2026, 10, 18)), "login_count": 9, "unique_users": 4}],
        )

        out = lms_store.login_activity(days="3", today=TODAY)

        assert out["data"][1] == {"date": "2026-10-18", "login_count": 9, "unique_users": 4}
        sql, params = fake_db.calls[0]
        assert "GROUP BY day_number" in sql
        assert params == {
            "since": day_start_ts(date(2026, 10, 17)),
            "tz_offset": 7 * 3600,
            "login_event": "%loggedin%",
        }

    def test_days_clamped(self, fake_db) -> None:
        out = lms_store.login_activity(days=365, today=TODAY)
        assert len(out["data"]) == LOGIN_ACTIVITY_MAX_DAYS
        assert lms_store.login_activity(days="junk", today=TODAY)["period"] == "Last 7 days"

    def test_recent_logs_limit(self, fake_db) -> None:
        lms_store.recent_logs(limit=10**6)
        assert "LIMIT 200" in fake_db.calls[0][0]


class TestActivityFeed:
    @pytest.mark.parametrize(
        "log,expected",
        [
            (
                {"action": "loggedin", "firstname": "Ana", "lastname": "Lee", "ip": "10.0.0.1"},
                ("login", "User 'Ana Lee' logged in from 10.0.0.1"),
            ),
            (
                {"eventname": "\\core\\event\\user_loggedout", "firstname": "Ana", "lastname": "Lee"},
                ("login", "User 'Ana Lee' logged out"),
            ),
            (
                {"action": "created", "target": "course_module", "firstname": "Ana", "lastname": "Lee", "course_name": "Algebra"},
                ("update", "User 'Ana Lee' created a new module in course 'Algebra'"),
            ),
            (
                {"action": "updated", "target": "course", "firstname": "Ana", "lastname": "Lee", "course_name": "Algebra"},
                ("update", "User 'Ana Lee' updated course 'Algebra'"),
            ),
            ({"action": "assigned", "firstname": "Ana", "lastname": "Lee"}, ("permission", "Role assigned for user 'Ana Lee'")),
            (
                {"action": "viewed", "target": "course", "course_name": "Algebra"},
                ("login", "User 'System' viewed course 'Algebra'"),
            ),
            ({"action": "deleted", "target": "file", "firstname": "Ana", "lastname": "Lee"}, ("backup", "User 'Ana Lee' deleted file")),
            ({"action": "graded", "firstname": "Ana", "lastname": "Lee"}, ("login", "User 'Ana Lee' performed graded on system")),
        ],
    )
    def test_describe(self, log, expected) -> None:
        assert describe_log_entry(log) == expected

    def test_relative_time(self) -> None:
        now = datetime(2026, 10, 19, 12, 0, tzinfo=report_tz())
        ts = int(now.timestamp())

        assert relative_time(ts - 30, now) == "Just now"
        assert relative_time(ts - 60, now) == "1 minute ago"
        assert relative_time(ts - 5 * 60, now) == "5 minutes ago"
        assert relative_time(ts - 3 * 3600, now) == "3 hours ago"
        assert relative_time(ts - 26 * 3600, now) == "Yesterday, 10:00 AM"
        assert relative_time(ts - 3 * 86400, now) == "3 days ago"
        assert relative_time(ts - 10 * 86400, now) == "Oct 9, 2026"

    def test_recent_activity(self, fake_db) -> None:
        now = datetime(2026, 10, 19, 12, 0, tzinfo=report_tz())
        fake_db.on(
            "l.eventname",
            rows=[{"id": 1, "timecreated": int(now.timestamp()) - 120, "action": "loggedin", "firstname": "Ana", "lastname": "Lee", "ip": "1.2.3.4"}],
        )

        activities = lms_store.recent_activity(limit=5, now=now)

        assert activities == [
            {
                "id": 1,
                "type": "login",
                "message": "User 'Ana Lee' logged in from 1.2.3.4",
                "time": "2 minutes ago",
                "timestamp": int(now.timestamp()) - 120,
            }
        ]
        assert "LIMIT 5" in fake_db.calls[0][0]
