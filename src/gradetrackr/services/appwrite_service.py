from datetime import date, datetime, timezone
import logging
from typing import Any, Dict, List, Optional

from appwrite.client import Client
from appwrite.exception import AppwriteException
from appwrite.id import ID
from appwrite.query import Query
from appwrite.services.databases import Databases

from gradetrackr.config.settings import settings
from gradetrackr.core.models import AssessmentType, DEFAULT_COLOR, Grade, Profile, Subject


logger = logging.getLogger(__name__)

PAGE_SIZE = 100
GRADE_ORDER_FIELDS = {"test_date", "grade", "weight", "test_type"}


class StorageServiceError(Exception):
    pass


class AppwriteService:
    def __init__(
        self,
        endpoint: str,
        project_id: str,
        api_key: str,
        database_id: str,
        profiles_collection_id: str,
        subjects_collection_id: str,
        grades_collection_id: str,
        db: Optional[Databases] = None,
    ) -> None:
        if db is None:
            if not endpoint:
                raise StorageServiceError("Missing APPWRITE_ENDPOINT in environment")
            if not project_id:
                raise StorageServiceError("Missing APPWRITE_PROJECT_ID in environment")
            if not api_key:
                raise StorageServiceError("Missing APPWRITE_API_KEY in environment")
        if not database_id:
            raise StorageServiceError("Missing APPWRITE_DATABASE_ID in environment")

        self.database_id = database_id
        self.profiles_collection_id = profiles_collection_id
        self.subjects_collection_id = subjects_collection_id
        self.grades_collection_id = grades_collection_id

        if db is None:
            client = Client()
            client.set_endpoint(endpoint.rstrip("/"))
            client.set_project(project_id)
            client.set_key(api_key)
            db = Databases(client)

        self.db = db

    @classmethod
    def from_settings(cls) -> "AppwriteService":
        return cls(
            endpoint=settings.appwrite_endpoint,
            project_id=settings.appwrite_project_id,
            api_key=settings.appwrite_api_key,
            database_id=settings.appwrite_database_id,
            profiles_collection_id=settings.appwrite_profiles_collection_id,
            subjects_collection_id=settings.appwrite_subjects_collection_id,
            grades_collection_id=settings.appwrite_grades_collection_id,
        )

    @staticmethod
    def _to_iso(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

    @staticmethod
    def _parse_date(value: Optional[str]) -> Optional[date]:
        if not value:
            return None
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            return None

    @staticmethod
    def _optional_float(value: Any) -> Optional[float]:
        if value is None or value == "":
            return None
        return float(value)

    def _to_subject(self, doc: Dict) -> Subject:
        return Subject(
            id=str(doc["$id"]),
            name=str(doc.get("name", "")),
            color=str(doc.get("color") or DEFAULT_COLOR),
            target_grade=self._optional_float(doc.get("target_grade")),
        )

    def _to_grade(self, doc: Dict) -> Grade:
        raw_type = doc.get("test_type") or AssessmentType.SO.value
        try:
            test_type = AssessmentType(raw_type)
        except ValueError:
            test_type = AssessmentType.OVERIG
        if doc.get("grade") is None:
            raise StorageServiceError(f"Grade document {doc.get('$id')} has no grade value.")
        return Grade(
            id=str(doc["$id"]),
            subject_id=str(doc.get("subject_id", "")),
            value=float(doc["grade"]),
            weight=float(doc.get("weight") or 1),
            test_type=test_type,
            description=doc.get("description") or None,
            test_date=self._parse_date(doc.get("test_date")),
        )

    def _list_documents(self, collection_id: str, queries: List[str]) -> List[Dict]:
        documents: List[Dict] = []
        cursor: Optional[str] = None
        while True:
            page_queries = [*queries, Query.limit(PAGE_SIZE)]
            if cursor:
                page_queries.append(Query.cursor_after(cursor))
            try:
                result = self.db.list_documents(self.database_id, collection_id, queries=page_queries)
            except AppwriteException as exc:
                logger.warning("list_documents failed for %s: %s", collection_id, exc)
                raise StorageServiceError(str(exc)) from exc
            page = list(result.get("documents", []))
            documents.extend(page)
            if len(page) < PAGE_SIZE:
                return documents
            cursor = page[-1]["$id"]

    def _create_document(self, collection_id: str, data: Dict, document_id: Optional[str] = None) -> Dict:
        try:
            return self.db.create_document(
                self.database_id,
                collection_id,
                document_id or ID.unique(),
                data,
            )
        except AppwriteException as exc:
            logger.warning("create_document failed for %s: %s", collection_id, exc)
            raise StorageServiceError(str(exc)) from exc

    def _update_document(self, collection_id: str, document_id: str, data: Dict) -> Dict:
        try:
            return self.db.update_document(self.database_id, collection_id, document_id, data)
        except AppwriteException as exc:
            logger.warning("update_document failed for %s/%s: %s", collection_id, document_id, exc)
            raise StorageServiceError(str(exc)) from exc

    def _delete_document(self, collection_id: str, document_id: str) -> None:
        try:
            self.db.delete_document(self.database_id, collection_id, document_id)
        except AppwriteException as exc:
            logger.warning("delete_document failed for %s/%s: %s", collection_id, document_id, exc)
            raise StorageServiceError(str(exc)) from exc

    def _find_owned(self, collection_id: str, uid: str, document_id: str) -> Optional[Dict]:
        try:
            result = self.db.list_documents(
                self.database_id,
                collection_id,
                queries=[
                    Query.equal("$id", [document_id]),
                    Query.equal("user_id", [uid]),
                    Query.limit(1),
                ],
            )
        except AppwriteException as exc:
            raise StorageServiceError(str(exc)) from exc
        docs = list(result.get("documents", []))
        if not docs:
            return None
        return docs[0]

    def get_profile(self, uid: str) -> Profile:
        try:
            doc = self.db.get_document(self.database_id, self.profiles_collection_id, uid)
        except AppwriteException as exc:
            if getattr(exc, "code", None) == 404:
                return Profile()
            raise StorageServiceError(str(exc)) from exc
        return Profile(
            display_name=doc.get("display_name") or None,
            school_name=doc.get("school_name") or None,
            grade_level=doc.get("grade_level") or None,
        )

    def ensure_profile(self, uid: str, display_name: Optional[str] = None) -> None:
        try:
            self.db.get_document(self.database_id, self.profiles_collection_id, uid)
            return
        except AppwriteException as exc:
            if getattr(exc, "code", None) != 404:
                raise StorageServiceError(str(exc)) from exc
        self._create_document(
            self.profiles_collection_id,
            {
                "user_id": uid,
                "display_name": display_name,
                "school_name": None,
                "grade_level": None,
                "created_at": self._to_iso(datetime.now(timezone.utc)),
            },
            document_id=uid,
        )

    def list_subjects(self, uid: str) -> List[Subject]:
        docs = self._list_documents(
            self.subjects_collection_id,
            [
                Query.equal("user_id", [uid]),
                Query.order_asc("name"),
            ],
        )
        return [self._to_subject(doc) for doc in docs]

    def get_subject(self, uid: str, subject_id: str) -> Optional[Subject]:
        doc = self._find_owned(self.subjects_collection_id, uid, subject_id)
        if not doc:
            return None
        return self._to_subject(doc)

    def create_subject(
        self,
        uid: str,
        *,
        name: str,
        color: str = DEFAULT_COLOR,
        target_grade: Optional[float] = None,
    ) -> Subject:
        doc = self._create_document(
            self.subjects_collection_id,
            {
                "user_id": uid,
                "name": name,
                "color": color,
                "target_grade": target_grade,
                "created_at": self._to_iso(datetime.now(timezone.utc)),
            },
        )
        logger.info("Created subject %s for %s", doc["$id"], uid)
        return self._to_subject(doc)

    def update_subject(self, uid: str, subject_id: str, **changes: Any) -> Subject:
        if not self._find_owned(self.subjects_collection_id, uid, subject_id):
            raise StorageServiceError("Subject not found.")
        allowed = {key: value for key, value in changes.items() if key in ("name", "color", "target_grade")}
        if allowed.get("color") is None:
            allowed.pop("color", None)
        if "name" in allowed:
            allowed["name"] = str(allowed["name"] or "").strip()
            if not allowed["name"]:
                raise StorageServiceError("Subject name is required.")
        doc = self._update_document(self.subjects_collection_id, subject_id, allowed)
        return self._to_subject(doc)

    def delete_subject(self, uid: str, subject_id: str) -> None:
        if not self._find_owned(self.subjects_collection_id, uid, subject_id):
            return
        for doc in self._list_documents(
            self.grades_collection_id,
            [
                Query.equal("user_id", [uid]),
                Query.equal("subject_id", [subject_id]),
            ],
        ):
            self._delete_document(self.grades_collection_id, doc["$id"])
        self._delete_document(self.subjects_collection_id, subject_id)
        logger.info("Deleted subject %s for %s", subject_id, uid)

    def list_grades(
        self,
        uid: str,
        subject_id: Optional[str] = None,
        order_by: str = "test_date",
        descending: bool = True,
    ) -> List[Grade]:
        if order_by not in GRADE_ORDER_FIELDS:
            raise StorageServiceError(f"Cannot order grades by {order_by}")
        queries = [Query.equal("user_id", [uid])]
        if subject_id:
            queries.append(Query.equal("subject_id", [subject_id]))
        queries.append(Query.order_desc(order_by) if descending else Query.order_asc(order_by))

        docs = self._list_documents(self.grades_collection_id, queries)
        known_subjects = {subject.id for subject in self.list_subjects(uid)}
        grades = [self._to_grade(doc) for doc in docs]
        return [grade for grade in grades if grade.subject_id in known_subjects]

    def create_grade(
        self,
        uid: str,
        *,
        subject_id: str,
        value: float,
        weight: float = 1.0,
        test_type: AssessmentType = AssessmentType.SO,
        description: Optional[str] = None,
        test_date: Optional[date] = None,
    ) -> Grade:
        if not self._find_owned(self.subjects_collection_id, uid, subject_id):
            raise StorageServiceError("Subject not found for grade input.")
        doc = self._create_document(
            self.grades_collection_id,
            {
                "user_id": uid,
                "subject_id": subject_id,
                "grade": value,
                "weight": weight,
                "test_type": AssessmentType(test_type).value,
                "description": description,
                "test_date": (test_date or date.today()).isoformat(),
                "created_at": self._to_iso(datetime.now(timezone.utc)),
            },
        )
        return self._to_grade(doc)

    def update_grade(self, uid: str, grade_id: str, **changes: Any) -> Grade:
        if not self._find_owned(self.grades_collection_id, uid, grade_id):
            raise StorageServiceError("Grade not found.")
        data: Dict[str, Any] = {}
        if changes.get("value") is not None:
            data["grade"] = changes["value"]
        if changes.get("weight") is not None:
            data["weight"] = changes["weight"]
        if changes.get("test_type") is not None:
            data["test_type"] = AssessmentType(changes["test_type"]).value
        if "description" in changes:
            data["description"] = changes["description"]
        if "test_date" in changes and changes["test_date"] is not None:
            data["test_date"] = changes["test_date"].isoformat()
        doc = self._update_document(self.grades_collection_id, grade_id, data)
        return self._to_grade(doc)

    def delete_grade(self, uid: str, grade_id: str) -> None:
        if not self._find_owned(self.grades_collection_id, uid, grade_id):
            return
        self._delete_document(self.grades_collection_id, grade_id)
