from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import ClassStatus


def _coerce_status(value: Any) -> Optional[ClassStatus]:
    # The admin app writes "Active"/"Cancelled"; anything unrecognised is treated as unknown.
    if value is None or isinstance(value, ClassStatus):
        return value
    if isinstance(value, str):
        try:
            return ClassStatus(value.strip().lower())
        except ValueError:
            return None
    return None


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CourseTemplate(_Record):
    key: str = Field(default="", alias="firebaseKey")
    day_of_week: str = Field(default="", alias="dayOfWeek")
    time: str = ""
    capacity: int = 0
    duration: int = 0
    price: float = 0.0
    class_type: str = Field(default="", alias="classType")
    description: Optional[str] = None
    instructor_name: Optional[str] = Field(default=None, alias="instructorName")
    room_number: Optional[str] = Field(default=None, alias="roomNumber")
    difficulty_level: Optional[str] = Field(default=None, alias="difficultyLevel")
    equipment_needed: Optional[str] = Field(default=None, alias="equipmentNeeded")
    age_group: Optional[str] = Field(default=None, alias="ageGroup")
    created_date: Optional[int] = Field(default=None, alias="createdDate")

    @classmethod
    def from_record(cls, key: str, data: dict[str, Any]) -> "CourseTemplate":
        return cls.model_validate({**data, "firebaseKey": key})


class ClassSession(_Record):
    key: str = Field(default="", alias="firebaseKey")
    course_key: str = Field(default="", alias="courseFirebaseKey")
    date: str = ""
    assigned_instructor: str = Field(default="", alias="assignedInstructor")
    actual_capacity: Optional[int] = Field(default=None, alias="actualCapacity")
    slots_available: Optional[int] = Field(default=None, alias="slotsAvailable")
    status: Optional[ClassStatus] = None
    additional_comments: Optional[str] = Field(default=None, alias="additionalComments")
    created_date: Optional[int] = Field(default=None, alias="createdDate")
    course: Optional[CourseTemplate] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Optional[ClassStatus]:
        return _coerce_status(value)

    @classmethod
    def from_record(cls, key: str, data: dict[str, Any]) -> "ClassSession":
        record = {k: v for k, v in data.items() if k != "course"}
        return cls.model_validate({**record, "firebaseKey": key})


class ClassDetail(ClassSession):
    is_booked: bool = Field(default=False, alias="isBooked")


class Booking(_Record):
    id: str
    user_id: str = Field(alias="userId")
    class_id: str = Field(alias="classId")
    booking_date: str = Field(alias="bookingDate")
    user_name: Optional[str] = Field(default=None, alias="userName")
    user_email: Optional[str] = Field(default=None, alias="userEmail")
    class_name: Optional[str] = Field(default=None, alias="className")
    class_date: Optional[str] = Field(default=None, alias="classDate")
    class_time: Optional[str] = Field(default=None, alias="classTime")
    price: Optional[float] = None
    class_status: Optional[ClassStatus] = Field(default=None, alias="classStatus")

    @field_validator("class_status", mode="before")
    @classmethod
    def normalize_class_status(cls, value: Any) -> Optional[ClassStatus]:
        return _coerce_status(value)

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "Booking":
        return cls.model_validate(data)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class LoadingState(_Record):
    is_loading: bool = Field(alias="isLoading")
    error: Optional[str] = None


class BookingFeed(_Record):
    bookings: list[Booking]
    loading: LoadingState


class ProfileUpdate(_Record):
    display_name: str = Field(alias="displayName", min_length=1, max_length=100)

    @field_validator("display_name")
    @classmethod
    def _strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("display name must not be blank")
        return stripped


class ProfileRead(_Record):
    user_id: str = Field(alias="userId")
    display_name: str = Field(alias="displayName")
