from dataclasses import dataclass, field
from typing import List

from gradetrackr.core.models import Grade, Profile, Subject
from gradetrackr.state.session_state import SessionState


@dataclass
class AppState:
    session: SessionState = field(default_factory=SessionState)
    profile: Profile = field(default_factory=Profile)
    subjects: List[Subject] = field(default_factory=list)
    grades: List[Grade] = field(default_factory=list)

    def grades_for(self, subject_id: str) -> List[Grade]:
        return [grade for grade in self.grades if grade.subject_id == subject_id]

    def reset(self) -> None:
        self.session.clear()
        self.profile = Profile()
        self.subjects = []
        self.grades = []
