from datetime import date
import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from gradetrackr.config.settings import settings
from gradetrackr.core import aggregator
from gradetrackr.core.formatting import round_tenth
from gradetrackr.core.models import AssessmentType, DEFAULT_COLOR, Grade, Subject
from gradetrackr.core.validation import parse_subject_name
from gradetrackr.services.appwrite_service import AppwriteService, StorageServiceError
from gradetrackr.services.auth_service import AppwriteAuthService, Authenticated, AuthServiceError


logger = logging.getLogger(__name__)

app = FastAPI(title="GradeTrackr API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AuthPayload(BaseModel):
    email: str
    password: str
    name: Optional[str] = None


class SubjectPayload(BaseModel):
    name: str = Field(min_length=1)
    color: str = DEFAULT_COLOR
    target_grade: Optional[float] = Field(default=None, ge=1, le=10)


class SubjectUpdatePayload(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    color: Optional[str] = None
    target_grade: Optional[float] = Field(default=None, ge=1, le=10)

    @field_validator("name")
    @classmethod
    def _trimmed_name(cls, value: Optional[str]) -> str:
        return parse_subject_name(value)

    @field_validator("color")
    @classmethod
    def _color_not_null(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("color cannot be null")
        return value


class GradePayload(BaseModel):
    subject_id: str
    value: float = Field(ge=1, le=10)
    weight: float = Field(default=1.0, gt=0)
    test_type: AssessmentType = AssessmentType.SO
    description: Optional[str] = None
    test_date: date = Field(default_factory=date.today)


class GradeUpdatePayload(BaseModel):
    value: Optional[float] = Field(default=None, ge=1, le=10)
    weight: Optional[float] = Field(default=None, gt=0)
    test_type: Optional[AssessmentType] = None
    description: Optional[str] = None
    test_date: Optional[date] = None

    # Omitted fields stay unchanged; an explicit null is not a valid grade.
    @field_validator("value", "weight", "test_type")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("field cannot be null")
        return value


class RequiredGradePayload(BaseModel):
    subject_id: str
    target_average: float = Field(ge=1, le=10)
    next_weight: float = Field(default=1.0, gt=0)


def get_store() -> AppwriteService:
    return AppwriteService.from_settings()


def get_auth() -> AppwriteAuthService:
    return AppwriteAuthService.from_settings()


def _required_uid(x_user_id: Optional[str]) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing x-user-id header")
    return x_user_id


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _subject_json(subject: Subject) -> Dict[str, Any]:
    return {
        "id": subject.id,
        "name": subject.name,
        "color": subject.color,
        "target_grade": subject.target_grade,
    }


def _grade_json(grade: Grade) -> Dict[str, Any]:
    return {
        "id": grade.id,
        "subject_id": grade.subject_id,
        "grade": grade.value,
        "weight": grade.weight,
        "test_type": grade.test_type.value,
        "description": grade.description,
        "test_date": grade.test_date.isoformat() if grade.test_date else None,
    }


def _progress_json(progress: Optional[aggregator.TargetProgress]) -> Optional[Dict[str, Any]]:
    if progress is None:
        return None
    return {
        "average": progress.average,
        "target": progress.target,
        "achieved": progress.achieved,
        "remaining": progress.remaining,
        "percent": progress.percent,
    }


def _distribution_json(counts: Dict[int, int]) -> List[Dict[str, int]]:
    return [{"grade": bucket, "count": count} for bucket, count in sorted(counts.items())]


def _auth_json(result) -> Dict[str, str]:
    return {
        "uid": result.uid,
        "email": result.email,
        "session_secret": result.session_secret,
        "session_id": result.session_id,
    }


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "INTERNAL_SERVER_ERROR"})


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/auth/signup")
def sign_up(
    payload: AuthPayload,
    auth: AppwriteAuthService = Depends(get_auth),
    store: AppwriteService = Depends(get_store),
) -> Dict:
    try:
        result = auth.sign_up(payload.email, payload.password, payload.name)
        store.ensure_profile(result.uid, payload.name)
        return _auth_json(result)
    except AuthServiceError as exc:
        raise _bad_request(exc) from exc
    except StorageServiceError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc


@app.post("/auth/login")
def login(payload: AuthPayload, auth: AppwriteAuthService = Depends(get_auth)) -> Dict:
    try:
        return _auth_json(auth.sign_in(payload.email, payload.password))
    except AuthServiceError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


@app.post("/auth/logout")
def logout(
    x_session_secret: Optional[str] = Header(default=None),
    auth: AppwriteAuthService = Depends(get_auth),
) -> Dict[str, str]:
    try:
        auth.sign_out(x_session_secret or "")
        return {"status": "signed_out"}
    except AuthServiceError as exc:
        raise _bad_request(exc) from exc


@app.get("/auth/me")
def me(
    x_session_secret: Optional[str] = Header(default=None),
    auth: AppwriteAuthService = Depends(get_auth),
) -> Dict:
    state = auth.current_user(x_session_secret)
    if not isinstance(state, Authenticated):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not signed in")
    return {"uid": state.user_id, "email": state.email}


@app.get("/profile")
def get_profile(x_user_id: Optional[str] = Header(default=None), store: AppwriteService = Depends(get_store)) -> Dict:
    uid = _required_uid(x_user_id)
    try:
        profile = store.get_profile(uid)
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc
    return {
        "uid": uid,
        "display_name": profile.display_name,
        "school_name": profile.school_name,
        "grade_level": profile.grade_level,
    }


@app.get("/subjects")
def list_subjects(x_user_id: Optional[str] = Header(default=None), store: AppwriteService = Depends(get_store)) -> List[Dict]:
    uid = _required_uid(x_user_id)
    try:
        return [_subject_json(subject) for subject in store.list_subjects(uid)]
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc


@app.post("/subjects")
def create_subject(
    payload: SubjectPayload,
    x_user_id: Optional[str] = Header(default=None),
    store: AppwriteService = Depends(get_store),
) -> Dict:
    uid = _required_uid(x_user_id)
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")
    try:
        subject = store.create_subject(uid, name=name, color=payload.color, target_grade=payload.target_grade)
        return _subject_json(subject)
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc


def _owned_subject(store: AppwriteService, uid: str, subject_id: str) -> Subject:
    try:
        subject = store.get_subject(uid, subject_id)
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc
    if subject is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")
    return subject


@app.get("/subjects/{subject_id}")
def get_subject(subject_id: str, x_user_id: Optional[str] = Header(default=None), store: AppwriteService = Depends(get_store)) -> Dict:
    uid = _required_uid(x_user_id)
    return _subject_json(_owned_subject(store, uid, subject_id))


@app.patch("/subjects/{subject_id}")
def update_subject(
    subject_id: str,
    payload: SubjectUpdatePayload,
    x_user_id: Optional[str] = Header(default=None),
    store: AppwriteService = Depends(get_store),
) -> Dict:
    uid = _required_uid(x_user_id)
    try:
        subject = store.update_subject(uid, subject_id, **payload.model_dump(exclude_unset=True))
        return _subject_json(subject)
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc


@app.delete("/subjects/{subject_id}")
def delete_subject(subject_id: str, x_user_id: Optional[str] = Header(default=None), store: AppwriteService = Depends(get_store)) -> Dict[str, str]:
    uid = _required_uid(x_user_id)
    try:
        store.delete_subject(uid, subject_id)
        return {"status": "deleted"}
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc


@app.get("/subjects/{subject_id}/stats")
def subject_stats(subject_id: str, x_user_id: Optional[str] = Header(default=None), store: AppwriteService = Depends(get_store)) -> Dict:
    uid = _required_uid(x_user_id)
    subject = _owned_subject(store, uid, subject_id)
    try:
        grades = store.list_grades(uid, subject_id=subject_id)
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc

    stats = aggregator.subject_stats(subject, grades)
    return {
        "subject": _subject_json(subject),
        "grade_count": stats.grade_count,
        "average": stats.average,
        "highest": stats.highest,
        "lowest": stats.lowest,
        "pass_rate": stats.pass_rate,
        "distribution": _distribution_json(stats.distribution),
        "timeline": [_grade_json(grade) for grade in stats.timeline],
        "target_progress": _progress_json(stats.progress),
    }


@app.get("/grades")
def list_grades(
    subject_id: Optional[str] = None,
    x_user_id: Optional[str] = Header(default=None),
    store: AppwriteService = Depends(get_store),
) -> List[Dict]:
    uid = _required_uid(x_user_id)
    try:
        return [_grade_json(grade) for grade in store.list_grades(uid, subject_id=subject_id)]
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc


@app.post("/grades")
def create_grade(
    payload: GradePayload,
    x_user_id: Optional[str] = Header(default=None),
    store: AppwriteService = Depends(get_store),
) -> Dict:
    uid = _required_uid(x_user_id)
    data = payload.model_dump()
    data["description"] = (data.get("description") or "").strip() or None
    try:
        return _grade_json(store.create_grade(uid, **data))
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc


@app.patch("/grades/{grade_id}")
def update_grade(
    grade_id: str,
    payload: GradeUpdatePayload,
    x_user_id: Optional[str] = Header(default=None),
    store: AppwriteService = Depends(get_store),
) -> Dict:
    uid = _required_uid(x_user_id)
    try:
        return _grade_json(store.update_grade(uid, grade_id, **payload.model_dump(exclude_unset=True)))
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc


@app.delete("/grades/{grade_id}")
def delete_grade(grade_id: str, x_user_id: Optional[str] = Header(default=None), store: AppwriteService = Depends(get_store)) -> Dict[str, str]:
    uid = _required_uid(x_user_id)
    try:
        store.delete_grade(uid, grade_id)
        return {"status": "deleted"}
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc


@app.get("/stats")
def dashboard_stats(x_user_id: Optional[str] = Header(default=None), store: AppwriteService = Depends(get_store)) -> Optional[Dict]:
    uid = _required_uid(x_user_id)
    try:
        subjects = store.list_subjects(uid)
        grades = store.list_grades(uid)
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc

    stats = aggregator.dashboard_stats(subjects, grades)
    if stats is None:
        return None
    return {
        "overall_average": stats.overall_average,
        "highest": stats.highest,
        "lowest": stats.lowest,
        "pass_rate": stats.pass_rate,
        "subject_count": len(subjects),
        "grade_count": len(grades),
        "subject_averages": [
            {"subject_id": row.subject_id, "subject": row.name, "color": row.color, "average": row.average}
            for row in stats.subject_averages
        ],
        "monthly": [{"month": period.isoformat(), "average": average} for period, average in stats.monthly],
        "distribution": _distribution_json(stats.distribution),
        "timeline": [_grade_json(grade) for grade in stats.timeline],
    }


@app.post("/calculator/required-grade")
def calculate_required_grade(
    payload: RequiredGradePayload,
    x_user_id: Optional[str] = Header(default=None),
    store: AppwriteService = Depends(get_store),
) -> Dict:
    uid = _required_uid(x_user_id)
    _owned_subject(store, uid, payload.subject_id)
    try:
        grades = store.list_grades(uid, subject_id=payload.subject_id)
    except StorageServiceError as exc:
        raise _bad_request(exc) from exc

    required = aggregator.required_grade(grades, payload.target_average, payload.next_weight)
    return {
        "subject_id": payload.subject_id,
        "current_average": aggregator.weighted_average(grades),
        "required_grade": round_tenth(required),
        "verdict": aggregator.required_grade_verdict(required),
    }
