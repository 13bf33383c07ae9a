from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum


class AssessmentType(str, Enum):
    SO = "SO"
    PW = "PW"
    TOETS = "Toets"
    MONDELING = "Mondeling"
    PRESENTATIE = "Presentatie"
    PRAKTIJK = "Praktijk"
    OVERIG = "Overig"


SUBJECT_COLORS: list[str] = [
    "#3B82F6",
    "#10B981",
    "#F59E0B",
    "#EF4444",
    "#8B5CF6",
    "#F97316",
    "#06B6D4",
    "#84CC16",
    "#EC4899",
    "#6B7280",
]

DEFAULT_COLOR = SUBJECT_COLORS[0]


@dataclass(frozen=True)
class Subject:
    id: str
    name: str
    color: str = DEFAULT_COLOR
    target_grade: float | None = None


@dataclass(frozen=True)
class Grade:
    id: str
    subject_id: str
    value: float
    weight: float = 1.0
    test_type: AssessmentType = AssessmentType.SO
    description: str | None = None
    test_date: date | None = None


@dataclass(frozen=True)
class Profile:
    display_name: str | None = None
    school_name: str | None = None
    grade_level: str | None = None

    def greeting_name(self, email: str | None) -> str:
        if self.display_name and self.display_name.strip():
            return self.display_name.strip()
        if email:
            return email.split("@", 1)[0]
        return ""
