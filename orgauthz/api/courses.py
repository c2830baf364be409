"""Course endpoints, scoped to an organization.

The course catalogue itself lives in another service; these handlers keep
a small in-memory stand-in so each route has a body.  What matters here
is the permission each route declares.  The organization id comes from
the ``organizationId`` path parameter.

Reading a course needs only a profile.  Sessions and their classes are
both managed under MANAGE_SESSIONS; enrollments under MANAGE_ENROLLMENTS.
"""

from __future__ import annotations

import itertools
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Path, status
from pydantic import Field

from orgauthz.api.dependencies import require_permissions
from orgauthz.api.schemas import CamelModel
from orgauthz.core.errors import Conflict, NotFound
from orgauthz.models.permission import PermissionKind as P
from orgauthz.models.requirement import AuthorizationDecision

router = APIRouter(
    prefix="/organizations/{organizationId}/courses", tags=["courses"]
)


class CourseIn(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""


class CourseOut(CamelModel):
    id: int
    organization_id: int
    title: str
    description: str
    created_by_profile_id: int
    created_at: datetime


class SessionIn(CamelModel):
    title: str = Field(min_length=1, max_length=200)


class SessionOut(CamelModel):
    id: int
    course_id: int
    title: str
    created_by_profile_id: int


class ClassIn(CamelModel):
    title: str = Field(min_length=1, max_length=200)


class ClassOut(CamelModel):
    id: int
    course_id: int
    session_id: int
    title: str


class EnrollmentIn(CamelModel):
    profile_id: int = Field(gt=0)


class EnrollmentOut(CamelModel):
    course_id: int
    profile_id: int
    enrolled_by_profile_id: int
    enrolled_at: datetime


class CourseDetailOut(CourseOut):
    sessions: list[SessionOut]
    enrollment_count: int


class CourseActivityIn(CamelModel):
    """Body for instructor and attendance calls."""

    profile_id: int | None = Field(default=None, gt=0)
    note: str = ""


class CourseActivityOut(CamelModel):
    course_id: int
    organization_id: int
    action: str
    profile_id: int | None
    performed_by_profile_id: int


# --- In-memory store ---

_COURSES: dict[int, CourseOut] = {}
_SESSIONS: dict[int, SessionOut] = {}
_CLASSES: dict[int, ClassOut] = {}
_ENROLLMENTS: dict[tuple[int, int], EnrollmentOut] = {}
_ids = itertools.count(1)


def reset_courses() -> None:
    global _ids
    _COURSES.clear()
    _SESSIONS.clear()
    _CLASSES.clear()
    _ENROLLMENTS.clear()
    _ids = itertools.count(1)


def _get(organization_id: int, course_id: int) -> CourseOut:
    course = _COURSES.get(course_id)
    if course is None or course.organization_id != organization_id:
        raise NotFound("Course not found")
    return course


def _get_session(organization_id: int, course_id: int, session_id: int) -> SessionOut:
    _get(organization_id, course_id)
    session = _SESSIONS.get(session_id)
    if session is None or session.course_id != course_id:
        raise NotFound("Session not found")
    return session


def _get_class(
    organization_id: int, course_id: int, session_id: int, class_id: int
) -> ClassOut:
    _get_session(organization_id, course_id, session_id)
    klass = _CLASSES.get(class_id)
    if klass is None or klass.session_id != session_id:
        raise NotFound("Class not found")
    return klass


def _drop_session(session_id: int) -> None:
    del _SESSIONS[session_id]
    for class_id in [c.id for c in _CLASSES.values() if c.session_id == session_id]:
        del _CLASSES[class_id]


def _sessions_of(course_id: int) -> list[SessionOut]:
    return [s for s in _SESSIONS.values() if s.course_id == course_id]


def _enrollments_of(course_id: int) -> list[EnrollmentOut]:
    return [e for e in _ENROLLMENTS.values() if e.course_id == course_id]


def _activity(
    decision: AuthorizationDecision,
    course_id: int,
    action: str,
    body: CourseActivityIn,
) -> CourseActivityOut:
    course = _get(decision.organization_id, course_id)
    return CourseActivityOut(
        course_id=course.id,
        organization_id=course.organization_id,
        action=action,
        profile_id=body.profile_id,
        performed_by_profile_id=decision.profile_id,
    )


OrganizationIdPath = Annotated[int, Path(alias="organizationId", gt=0)]
CourseIdPath = Annotated[int, Path(alias="courseId", gt=0)]
SessionIdPath = Annotated[int, Path(alias="sessionId", gt=0)]
ClassIdPath = Annotated[int, Path(alias="classId", gt=0)]
ProfileIdPath = Annotated[int, Path(alias="profileId", gt=0)]

ProfileOnly = Annotated[AuthorizationDecision, Depends(require_permissions())]
SessionManager = Annotated[
    AuthorizationDecision, Depends(require_permissions(P.MANAGE_SESSIONS))
]
EnrollmentManager = Annotated[
    AuthorizationDecision, Depends(require_permissions(P.MANAGE_ENROLLMENTS))
]


# --- Courses ---


@router.post("", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
async def create_course(
    body: CourseIn,
    decision: Annotated[AuthorizationDecision, Depends(require_permissions(P.CREATE_COURSE))],
) -> CourseOut:
    course = CourseOut(
        id=next(_ids),
        organization_id=decision.organization_id,
        title=body.title,
        description=body.description,
        created_by_profile_id=decision.profile_id,
        created_at=datetime.now(UTC),
    )
    _COURSES[course.id] = course
    return course


@router.get("", response_model=list[CourseOut])
async def list_courses(
    organization_id: OrganizationIdPath, _decision: ProfileOnly
) -> list[CourseOut]:
    """Any caller with a profile may browse the catalogue."""
    return [c for c in _COURSES.values() if c.organization_id == organization_id]


@router.get("/{courseId}", response_model=CourseOut)
async def get_course(
    organization_id: OrganizationIdPath, course_id: CourseIdPath, _decision: ProfileOnly
) -> CourseOut:
    return _get(organization_id, course_id)


@router.get("/{courseId}/detail", response_model=CourseDetailOut)
async def get_course_detail(
    organization_id: OrganizationIdPath, course_id: CourseIdPath, _decision: ProfileOnly
) -> CourseDetailOut:
    course = _get(organization_id, course_id)
    return CourseDetailOut(
        **course.model_dump(),
        sessions=_sessions_of(course_id),
        enrollment_count=len(_enrollments_of(course_id)),
    )


@router.put("/{courseId}", response_model=CourseOut)
async def update_course(
    course_id: CourseIdPath,
    body: CourseIn,
    decision: Annotated[AuthorizationDecision, Depends(require_permissions(P.UPDATE_COURSE))],
) -> CourseOut:
    course = _get(decision.organization_id, course_id)
    updated = course.model_copy(
        update={"title": body.title, "description": body.description}
    )
    _COURSES[course_id] = updated
    return updated


@router.delete("/{courseId}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course(
    course_id: CourseIdPath,
    decision: Annotated[AuthorizationDecision, Depends(require_permissions(P.DELETE_COURSE))],
) -> None:
    _get(decision.organization_id, course_id)
    for session in _sessions_of(course_id):
        _drop_session(session.id)
    for enrollment in _enrollments_of(course_id):
        del _ENROLLMENTS[(course_id, enrollment.profile_id)]
    del _COURSES[course_id]


@router.post(
    "/{courseId}/duplicate",
    response_model=CourseOut,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_course(
    course_id: CourseIdPath,
    decision: Annotated[
        AuthorizationDecision,
        Depends(require_permissions(P.CREATE_COURSE, P.MANAGE_ENROLLMENTS)),
    ],
) -> CourseOut:
    """Copy a course along with its enrollment roster."""
    source = _get(decision.organization_id, course_id)
    copy = source.model_copy(
        update={
            "id": next(_ids),
            "title": f"{source.title} (copy)",
            "created_by_profile_id": decision.profile_id,
            "created_at": datetime.now(UTC),
        }
    )
    _COURSES[copy.id] = copy
    for enrollment in _enrollments_of(course_id):
        _ENROLLMENTS[(copy.id, enrollment.profile_id)] = enrollment.model_copy(
            update={"course_id": copy.id, "enrolled_by_profile_id": decision.profile_id}
        )
    return copy


# --- Sessions and classes ---


@router.post(
    "/{courseId}/sessions",
    response_model=SessionOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    course_id: CourseIdPath, body: SessionIn, decision: SessionManager
) -> SessionOut:
    _get(decision.organization_id, course_id)
    session = SessionOut(
        id=next(_ids),
        course_id=course_id,
        title=body.title,
        created_by_profile_id=decision.profile_id,
    )
    _SESSIONS[session.id] = session
    return session


@router.get("/{courseId}/sessions", response_model=list[SessionOut])
async def list_sessions(course_id: CourseIdPath, decision: SessionManager) -> list[SessionOut]:
    _get(decision.organization_id, course_id)
    return _sessions_of(course_id)


@router.put("/{courseId}/sessions/{sessionId}", response_model=SessionOut)
async def update_session(
    course_id: CourseIdPath,
    session_id: SessionIdPath,
    body: SessionIn,
    decision: SessionManager,
) -> SessionOut:
    session = _get_session(decision.organization_id, course_id, session_id)
    updated = session.model_copy(update={"title": body.title})
    _SESSIONS[session_id] = updated
    return updated


@router.delete(
    "/{courseId}/sessions/{sessionId}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_session(
    course_id: CourseIdPath, session_id: SessionIdPath, decision: SessionManager
) -> None:
    _get_session(decision.organization_id, course_id, session_id)
    _drop_session(session_id)


@router.post(
    "/{courseId}/sessions/{sessionId}/classes",
    response_model=ClassOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_class(
    course_id: CourseIdPath,
    session_id: SessionIdPath,
    body: ClassIn,
    decision: SessionManager,
) -> ClassOut:
    _get_session(decision.organization_id, course_id, session_id)
    klass = ClassOut(
        id=next(_ids), course_id=course_id, session_id=session_id, title=body.title
    )
    _CLASSES[klass.id] = klass
    return klass


@router.get("/{courseId}/sessions/{sessionId}/classes", response_model=list[ClassOut])
async def list_classes(
    course_id: CourseIdPath, session_id: SessionIdPath, decision: SessionManager
) -> list[ClassOut]:
    _get_session(decision.organization_id, course_id, session_id)
    return [c for c in _CLASSES.values() if c.session_id == session_id]


@router.put(
    "/{courseId}/sessions/{sessionId}/classes/{classId}", response_model=ClassOut
)
async def update_class(
    course_id: CourseIdPath,
    session_id: SessionIdPath,
    class_id: ClassIdPath,
    body: ClassIn,
    decision: SessionManager,
) -> ClassOut:
    klass = _get_class(decision.organization_id, course_id, session_id, class_id)
    updated = klass.model_copy(update={"title": body.title})
    _CLASSES[class_id] = updated
    return updated


@router.delete(
    "/{courseId}/sessions/{sessionId}/classes/{classId}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_class(
    course_id: CourseIdPath,
    session_id: SessionIdPath,
    class_id: ClassIdPath,
    decision: SessionManager,
) -> None:
    _get_class(decision.organization_id, course_id, session_id, class_id)
    del _CLASSES[class_id]


# --- Enrollments ---


@router.post(
    "/{courseId}/enrollments",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll(
    course_id: CourseIdPath, body: EnrollmentIn, decision: EnrollmentManager
) -> EnrollmentOut:
    _get(decision.organization_id, course_id)
    key = (course_id, body.profile_id)
    if key in _ENROLLMENTS:
        raise Conflict("Profile is already enrolled in this course")
    enrollment = EnrollmentOut(
        course_id=course_id,
        profile_id=body.profile_id,
        enrolled_by_profile_id=decision.profile_id,
        enrolled_at=datetime.now(UTC),
    )
    _ENROLLMENTS[key] = enrollment
    return enrollment


@router.get("/{courseId}/enrollments", response_model=list[EnrollmentOut])
async def list_enrollments(
    course_id: CourseIdPath, decision: EnrollmentManager
) -> list[EnrollmentOut]:
    _get(decision.organization_id, course_id)
    return _enrollments_of(course_id)


@router.delete(
    "/{courseId}/enrollments/{profileId}", status_code=status.HTTP_204_NO_CONTENT
)
async def unenroll(
    course_id: CourseIdPath, profile_id: ProfileIdPath, decision: EnrollmentManager
) -> None:
    _get(decision.organization_id, course_id)
    if _ENROLLMENTS.pop((course_id, profile_id), None) is None:
        raise NotFound("Enrollment not found")


# --- Instructors and attendance ---


@router.post("/{courseId}/instructors", response_model=CourseActivityOut)
async def assign_instructor(
    course_id: CourseIdPath,
    body: CourseActivityIn,
    decision: Annotated[
        AuthorizationDecision, Depends(require_permissions(P.ASSIGN_INSTRUCTOR))
    ],
) -> CourseActivityOut:
    return _activity(decision, course_id, "instructor", body)


@router.post("/{courseId}/attendance", response_model=CourseActivityOut)
async def manage_attendance(
    course_id: CourseIdPath,
    body: CourseActivityIn,
    decision: Annotated[
        AuthorizationDecision, Depends(require_permissions(P.MANAGE_ATTENDANCE))
    ],
) -> CourseActivityOut:
    return _activity(decision, course_id, "attendance", body)
