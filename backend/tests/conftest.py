from typing import Any

import pytest


def _studio() -> dict[str, Any]:
    return {
        "courses": {
            "course-flow": {
                "dayOfWeek": "Monday",
                "time": "18:30",
                "capacity": 10,
                "duration": 60,
                "price": 12.5,
                "classType": "Vinyasa Flow",
            },
            "course-hatha": {
                "dayOfWeek": "Saturday",
                "time": "09:00",
                "capacity": 2,
                "duration": 45,
                "price": 8.0,
                "classType": "Hatha Yoga",
            },
        },
        "classes": {
            # capacity override of 1 on a course that defaults to 10
            "C1": {
                "courseFirebaseKey": "course-flow",
                "date": "06/01/2025",
                "assignedInstructor": "Mira",
                "actualCapacity": 1,
                "slotsAvailable": 1,
                "status": "active",
            },
            # admin app writes capitalised statuses
            "C2": {
                "courseFirebaseKey": "course-hatha",
                "date": "04/01/2025",
                "assignedInstructor": "Tom",
                "slotsAvailable": 2,
                "status": "Active",
            },
            "C3": {
                "courseFirebaseKey": "course-flow",
                "date": "13/01/2025",
                "assignedInstructor": "Mira",
                "slotsAvailable": 5,
                "status": "cancelled",
            },
            "C4": {
                "courseFirebaseKey": "course-gone",
                "date": "20/01/2025",
                "assignedInstructor": "Ana",
                "slotsAvailable": 3,
                "status": "active",
            },
            "C5": {
                "courseFirebaseKey": "course-hatha",
                "date": "28/12/2024",
                "assignedInstructor": "Tom",
                "slotsAvailable": 2,
                "status": "completed",
            },
        },
    }


@pytest.fixture
def studio() -> dict[str, Any]:
    return _studio()
