"""Projects / builds / runs router."""

from typing import List, Type, TypeVar

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from backend.models import (
    BuildCreate,
    BuildOut,
    ProjectCreate,
    ProjectCreated,
    ProjectLookup,
    ProjectOut,
    RunCreate,
    RunOut,
)
from perfbudget.core.errors import ValidationError
from perfbudget.core.models import BuildMetadata, Project
from perfbudget.core.service import StorageService

router = APIRouter(prefix="/v1/projects", tags=["projects"])

TOKEN_HEADER = "X-Project-Token"

M = TypeVar("M", bound=BaseModel)


def get_service(request: Request) -> StorageService:
    """Получить сервис хранения из состояния приложения."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(503, "Storage not initialized")
    return service


def require_token(operation: str):
    """
    Dependency: проверка write token по заголовку.

    Тело запроса в write-роутах разбирается только после неё, поэтому
    чужой токен даёт 403 независимо от содержимого тела.
    """

    async def dependency(
        project_id: str,
        token: str = Header("", alias=TOKEN_HEADER),
        service: StorageService = Depends(get_service),
    ) -> Project:
        return await service.authorize_write(project_id, token, operation)

    return dependency


async def read_body(request: Request, model: Type[M]) -> M:
    """Разобрать JSON тело в модель; ошибки → ValidationError (422)."""
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Request body is not valid JSON") from None
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'body'}: {error['msg']}"
            for error in e.errors()
        )
        raise ValidationError(f"Invalid request body: {problems}") from None


def body_schema(model: Type[BaseModel]) -> dict:
    return {
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": model.model_json_schema()}},
        }
    }


# ==================== Projects ====================

@router.get("", response_model=List[ProjectOut])
async def list_projects(service: StorageService = Depends(get_service)):
    """Все проекты (без токенов)."""
    return [project.to_dict() for project in await service.list_projects()]


@router.post("", response_model=ProjectCreated, status_code=status.HTTP_201_CREATED)
async def create_project(request: ProjectCreate, service: StorageService = Depends(get_service)):
    """Создать проект. Токены возвращаются только здесь."""
    project = await service.create_project(request.name, request.external_url)
    return project.to_dict(include_tokens=True)


@router.post("/lookup", response_model=ProjectOut)
async def lookup_project(request: ProjectLookup, service: StorageService = Depends(get_service)):
    """Найти проект по write token."""
    project = await service.find_project_by_token(request.token)
    return project.to_dict()


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(project_id: str, service: StorageService = Depends(get_service)):
    return (await service.get_project(project_id)).to_dict()


# ==================== Builds ====================

@router.get("/{project_id}/builds", response_model=List[BuildOut])
async def list_builds(project_id: str, service: StorageService = Depends(get_service)):
    """Билды проекта, новые первыми."""
    return [build.to_dict() for build in await service.list_builds(project_id)]


@router.post(
    "/{project_id}/builds",
    response_model=BuildOut,
    status_code=status.HTTP_201_CREATED,
    openapi_extra=body_schema(BuildCreate),
)
async def create_build(
    project_id: str,
    request: Request,
    project: Project = Depends(require_token("create_build")),
    token: str = Header("", alias=TOKEN_HEADER),
    service: StorageService = Depends(get_service),
):
    """Создать билд. Токен проверяется до разбора тела."""
    body = await read_body(request, BuildCreate)
    build = await service.create_build(project.id, token, BuildMetadata(**body.model_dump()))
    return build.to_dict()


@router.get("/{project_id}/builds/{build_id}", response_model=BuildOut)
async def get_build(project_id: str, build_id: str, service: StorageService = Depends(get_service)):
    return (await service.get_build(project_id, build_id)).to_dict()


# ==================== Runs ====================

@router.get("/{project_id}/builds/{build_id}/runs", response_model=List[RunOut])
async def list_runs(project_id: str, build_id: str, service: StorageService = Depends(get_service)):
    """Прогоны билда, новые первыми."""
    return [run.to_dict() for run in await service.list_runs(project_id, build_id)]


@router.post(
    "/{project_id}/builds/{build_id}/runs",
    response_model=RunOut,
    status_code=status.HTTP_201_CREATED,
    openapi_extra=body_schema(RunCreate),
)
async def create_run(
    project_id: str,
    build_id: str,
    request: Request,
    project: Project = Depends(require_token("create_run")),
    token: str = Header("", alias=TOKEN_HEADER),
    service: StorageService = Depends(get_service),
):
    """Создать прогон. Токен проверяется до разбора тела."""
    body = await read_body(request, RunCreate)
    run = await service.create_run(project.id, build_id, token, body.url or "", body.lhr)
    return run.to_dict()
