"""Request/response models for the LMS Dashboard API.

Field names follow the JSON the dashboard client reads (camelCase where the
client expects it). Row payloads coming straight from SQL stay as dicts.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

Row = Dict[str, Any]


def _clean_text(v):
    if v is None:
        return None
    return str(v).strip()


# ============================================================================
# Shared
# ============================================================================

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
    message: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    database: str
    db: Dict[str, Any] = Field(default_factory=dict)
    cache: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Dashboard / courses / users / logs
# ============================================================================

class OverviewResponse(BaseModel):
    ok: bool = True
    totalUsers: int = Field(..., ge=0)
    totalCourses: int = Field(..., ge=0)
    todayActivities: int = Field(..., ge=0)
    totalEnrollments: int = Field(..., ge=0)


class CourseSummary(BaseModel):
    id: int
    fullname: Optional[str] = None
    shortname: Optional[str] = None
    visible: Optional[int] = None
    timecreated: Optional[int] = None
    category_name: Optional[str] = None
    enrolled_count: int = 0
    completed_count: int = 0
    completion_rate: int = Field(0, ge=0, le=100)


class CourseListResponse(BaseModel):
    ok: bool = True
    courses: List[CourseSummary]
    pagination: Pagination


class CourseDetail(BaseModel):
    id: int
    fullname: Optional[str] = None
    shortname: Optional[str] = None
    summary: Optional[str] = None
    visible: Optional[int] = None
    startdate: Optional[int] = None
    enddate: Optional[int] = None
    timecreated: Optional[int] = None
    category_name: Optional[str] = None


class CourseDetailResponse(BaseModel):
    ok: bool = True
    course: CourseDetail


class UserSummary(BaseModel):
    id: int
    username: Optional[str] = None
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    email: Optional[str] = None
    lastaccess: Optional[int] = None
    timecreated: Optional[int] = None


class UserSearchResponse(BaseModel):
    ok: bool = True
    users: List[UserSummary]
    pagination: Pagination


class UserGradesResponse(BaseModel):
    ok: bool = True
    user: UserSummary
    grades: List[Row] = Field(default_factory=list)
    enrolledCourses: List[Row] = Field(default_factory=list)


class DailyLogins(BaseModel):
    date: str
    login_count: int = 0
    unique_users: int = 0


class LoginActivityResponse(BaseModel):
    ok: bool = True
    period: str
    data: List[DailyLogins]


class RecentLogsResponse(BaseModel):
    ok: bool = True
    logs: List[Row]


class ActivityItem(BaseModel):
    id: Optional[int] = None
    type: str
    message: str
    time: str
    timestamp: Optional[int] = None


class RecentActivityResponse(BaseModel):
    ok: bool = True
    activities: List[ActivityItem]


# ============================================================================
# Statistics reports
# ============================================================================

class ReportPeriod(BaseModel):
    startDate: str
    endDate: str


class UserStatisticsSummary(BaseModel):
    totalRegistered: int = 0
    neverLoggedIn: int = 0


class UserStatisticsResponse(BaseModel):
    ok: bool = True
    period: ReportPeriod
    summary: UserStatisticsSummary
    usersByRole: List[Row] = Field(default_factory=list)
    newUsersOverTime: List[Row] = Field(default_factory=list)
    recentLogins: List[Row] = Field(default_factory=list)
    neverLoggedInUsers: List[Row] = Field(default_factory=list)
    usersPerCourse: List[Row] = Field(default_factory=list)


class CourseActivityResponse(BaseModel):
    ok: bool = True
    period: ReportPeriod
    summary: Row = Field(default_factory=dict)
    courseActivity: List[Row] = Field(default_factory=list)
    enrollmentTrends: List[Row] = Field(default_factory=list)
    completionRates: List[Row] = Field(default_factory=list)
    mostActiveCourses: List[Row] = Field(default_factory=list)


class TeacherActivityResponse(BaseModel):
    ok: bool = True
    period: ReportPeriod
    teacherLogins: List[Row] = Field(default_factory=list)
    materialUploads: List[Row] = Field(default_factory=list)
    assignmentsCreated: List[Row] = Field(default_factory=list)
    quizzesCreated: List[Row] = Field(default_factory=list)
    gradingActivity: List[Row] = Field(default_factory=list)
    totalActivitySummary: List[Row] = Field(default_factory=list)


class StudentActivityResponse(BaseModel):
    ok: bool = True
    period: ReportPeriod
    studentLogins: List[Row] = Field(default_factory=list)
    assignmentSubmissions: List[Row] = Field(default_factory=list)
    quizAttempts: List[Row] = Field(default_factory=list)
    courseProgress: List[Row] = Field(default_factory=list)
    gradeSummary: List[Row] = Field(default_factory=list)
    totalActivitySummary: List[Row] = Field(default_factory=list)


class MonthPeriod(ReportPeriod):
    month: str


class ComplianceCounts(BaseModel):
    green: int = 0
    yellow: int = 0
    red: int = 0


class ComplianceSummary(BaseModel):
    totalTeachers: int = 0
    activeTeachers: int = 0
    participationRate: int = 0
    complianceRate: int = 0
    nonCompliantCount: int = 0
    totalStudentInteractions: int = 0
    interactionChange: int = 0
    compliance: ComplianceCounts


class TeacherComplianceResponse(BaseModel):
    ok: bool = True
    period: MonthPeriod
    summary: ComplianceSummary
    teacherCompliance: List[Row] = Field(default_factory=list)
    activityMix: Row = Field(default_factory=dict)
    dailyEngagement: List[Row] = Field(default_factory=list)
    topEngagedCourses: List[Row] = Field(default_factory=list)


class ComplianceExportResponse(BaseModel):
    ok: bool = True
    period: ReportPeriod
    userStatistics: List[Row] = Field(default_factory=list)
    teacherActivity: List[Row] = Field(default_factory=list)
    courseActivity: List[Row] = Field(default_factory=list)


class KpiScorecard(BaseModel):
    totalStudents: int = 0
    totalTeachers: int = 0
    totalCourses: int = 0
    activeCourses: int = 0
    dailyActiveUsers: int = 0
    avgSchoolGrade: float = 0.0
    completionRate: int = 0
    adoptionRate: int = 0
    digitalAttendanceRate: int = 0


class ExecutiveSummaryResponse(BaseModel):
    ok: bool = True
    period: ReportPeriod
    kpiScorecard: KpiScorecard
    lmsAdoption: Row = Field(default_factory=dict)
    loginTrends: List[DailyLogins] = Field(default_factory=list)
    completionStats: Row = Field(default_factory=dict)
    gradeDistribution: List[Row] = Field(default_factory=list)
    gradePerCategory: List[Row] = Field(default_factory=list)
    popularActivities: List[Row] = Field(default_factory=list)
    participationPerClass: List[Row] = Field(default_factory=list)


class HeatmapCell(BaseModel):
    day: str
    dayIndex: int
    hour: int
    count: int = 0


class TeacherDetailMasterResponse(BaseModel):
    ok: bool = True
    period: ReportPeriod
    teachers: List[Row] = Field(default_factory=list)
    categories: List[Row] = Field(default_factory=list)
    summary: Dict[str, int] = Field(default_factory=dict)


class TeacherDetailResponse(BaseModel):
    ok: bool = True
    period: ReportPeriod
    teacher: Row
    courses: List[Row] = Field(default_factory=list)
    radarData: List[Row] = Field(default_factory=list)
    heatmapData: List[HeatmapCell] = Field(default_factory=list)


class StudentDetailMasterResponse(BaseModel):
    ok: bool = True
    period: ReportPeriod
    students: List[Row] = Field(default_factory=list)
    categories: List[Row] = Field(default_factory=list)
    summary: Dict[str, int] = Field(default_factory=dict)


class StudentScorecard(BaseModel):
    riskLevel: str
    riskLabel: str
    warnings: List[str] = Field(default_factory=list)
    overallProgress: int = 0
    avgGrade: int = 0
    totalCourses: int = 0
    completedCourses: int = 0


class StudentDetailResponse(BaseModel):
    ok: bool = True
    period: ReportPeriod
    student: Row
    scorecard: StudentScorecard
    gradeTrend: List[Row] = Field(default_factory=list)
    engagementData: List[Row] = Field(default_factory=list)
    timelineData: List[HeatmapCell] = Field(default_factory=list)
    courses: List[Row] = Field(default_factory=list)


# ============================================================================
# Custom reports
# ============================================================================

class ReportDefinition(BaseModel):
    id: str
    name: str
    description: str = ""
    sql: str
    createdAt: str
    updatedAt: str


class ReportCreateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field("", max_length=2000)
    sql: Optional[str] = Field(None, max_length=20000)

    model_config = {"extra": "ignore"}

    @field_validator("name", "description", "sql", mode="before")
    @classmethod
    def _clean(cls, v):
        return _clean_text(v)


class ReportUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    sql: Optional[str] = Field(None, max_length=20000)

    model_config = {"extra": "ignore"}

    @field_validator("name", "description", "sql", mode="before")
    @classmethod
    def _clean(cls, v):
        return _clean_text(v)


class ReportResponse(BaseModel):
    ok: bool = True
    report: ReportDefinition


class ReportListResponse(BaseModel):
    ok: bool = True
    reports: List[ReportDefinition]


class ReportDeleteResponse(BaseModel):
    ok: bool = True
    deleted: str


class ExecuteQueryRequest(BaseModel):
    sql: Optional[str] = Field(None, max_length=20000)
    # Clamped server-side; accepts "50" as well as 50.
    limit: Optional[Union[int, str]] = None

    model_config = {"extra": "ignore"}


class ExecuteSavedRequest(BaseModel):
    limit: Optional[Union[int, str]] = None

    model_config = {"extra": "ignore"}


class ExecuteQueryResponse(BaseModel):
    ok: bool = True
    success: bool = True
    rowCount: int
    executionTime: int = Field(..., description="Milliseconds")
    columns: List[str] = Field(default_factory=list)
    data: List[Row] = Field(default_factory=list)
