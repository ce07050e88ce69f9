"""Record-store path layout shared by the ledger, the indexes and the aggregator."""

CLASSES = "classes"
COURSES = "courses"
BOOKINGS = "bookings"
USER_BOOKINGS = "userBookings"
CLASS_BOOKINGS = "classBookings"
USERS = "users"

_FORBIDDEN_KEY_CHARS = frozenset("/.#$[]")


def validate_key(key: str) -> str:
    if not isinstance(key, str) or not key:
        raise ValueError("record key must be a non-empty string")
    bad = _FORBIDDEN_KEY_CHARS.intersection(key)
    if bad:
        raise ValueError(f"record key {key!r} contains forbidden characters {''.join(sorted(bad))!r}")
    return key


def booking_id(user_id: str, class_key: str) -> str:
    """Deterministic booking id; doubles as the (user, class) uniqueness key."""
    return f"{validate_key(user_id)}_{validate_key(class_key)}"


def class_path(class_key: str) -> str:
    return f"{CLASSES}/{validate_key(class_key)}"


def course_path(course_key: str) -> str:
    return f"{COURSES}/{validate_key(course_key)}"


def booking_path(booking_key: str) -> str:
    return f"{BOOKINGS}/{validate_key(booking_key)}"


def user_bookings_path(user_id: str) -> str:
    return f"{USER_BOOKINGS}/{validate_key(user_id)}"


def user_booking_path(user_id: str, class_key: str) -> str:
    return f"{user_bookings_path(user_id)}/{validate_key(class_key)}"


def class_bookings_path(class_key: str) -> str:
    return f"{CLASS_BOOKINGS}/{validate_key(class_key)}"


def class_booking_path(class_key: str, user_id: str) -> str:
    return f"{class_bookings_path(class_key)}/{validate_key(user_id)}"


def user_profile_path(user_id: str) -> str:
    return f"{USERS}/{validate_key(user_id)}"
