from edubus.models.notification import Notification, NotificationRead, NotificationType  # noqa: F401
from edubus.models.route import Route, RoutePickupPoint  # noqa: F401
from edubus.models.route_schedule import RouteSchedule  # noqa: F401
from edubus.models.schedule import Schedule, ScheduleTimeOverride  # noqa: F401
from edubus.models.trip import (  # noqa: F401
    AttendanceState,
    Trip,
    TripAttendance,
    TripStatus,
    TripStop,
)
