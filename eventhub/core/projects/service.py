import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.common.enums import Capability
from eventhub.common.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from eventhub.common.identity import Caller
from eventhub.common.logging import get_logger
from eventhub.core import audit
from eventhub.db.models.project import Project
from eventhub.db.models.user import User

logger = get_logger("projects.service")


async def create_project(db: AsyncSession, caller: Caller, name: str) -> Project:
    caller.require(Capability.ACT_AS_USER)
    name = name.strip()
    if not name:
        raise BadRequestError("Project name must not be empty")

    owner = await db.get(User, caller.id)
    if owner is None or owner.is_deleted:
        raise NotFoundError("User", str(caller.id))

    result = await db.execute(
        select(Project.id).where(
            Project.owner_id == caller.id,
            Project.is_deleted.is_(False),
            func.lower(Project.name) == name.lower(),
        )
    )
    if result.first() is not None:
        raise ConflictError(f"You already have a project named '{name}'")

    project = Project(owner_id=caller.id, name=name, sent_requests=[])
    db.add(project)
    await db.flush()
    await audit.record(db, "project", project.id, "created", actor_id=caller.id)

    logger.info("User %s created project %s", caller.id, project.id)
    return project


async def get_project_for_caller(
    db: AsyncSession, caller: Caller, project_id: uuid.UUID, allow_admin: bool = True
) -> Project:
    result = await db.execute(
        select(Project).where(Project.id == project_id, Project.is_deleted.is_(False))
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project", str(project_id))
    if project.owner_id != caller.id and not (allow_admin and caller.is_admin):
        raise PermissionDeniedError("You do not have access to this project")
    return project


async def list_projects(db: AsyncSession, caller: Caller) -> list[Project]:
    caller.require(Capability.ACT_AS_USER)
    query = select(Project).where(Project.is_deleted.is_(False))
    if not caller.is_admin:
        query = query.where(Project.owner_id == caller.id)

    result = await db.execute(query.order_by(Project.created_at.desc(), Project.id))
    return list(result.scalars().all())
