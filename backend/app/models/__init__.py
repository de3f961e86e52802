from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.class_group import ClassGroup  # noqa: F401
from app.models.class_session import ClassSession  # noqa: F401
from app.models.classroom import Classroom  # noqa: F401
from app.models.course import Course  # noqa: F401
from app.models.department import Department  # noqa: F401
from app.models.instructor import Instructor  # noqa: F401
from app.models.notification import NotificationType, RequestNotification  # noqa: F401
from app.models.program import Program  # noqa: F401
from app.models.resource_request import RequestStatus, ResourceRequest, ResourceType  # noqa: F401
from app.models.semester import ScheduleConfiguration, Semester  # noqa: F401
from app.models.timetable import AssignmentStatus, TimetableAssignment  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
