"""
Results Storage Service.

Операции над иерархией Project → Build → Run поверх StorageMethod:
- проверка write token до любой мутации (единый предикат authorize)
- валидация имени проекта и payload отчёта
- перевод неизвестных ошибок backend'а в StorageError
"""

import hmac
import logging
import uuid
from typing import List

from perfbudget.core.errors import AuthorizationError, NotFoundError, ValidationError
from perfbudget.core.models import Build, BuildMetadata, Project, Run, parse_report
from perfbudget.core.storage import StorageMethod
from perfbudget.infrastructure.metrics import rejected_writes

logger = logging.getLogger(__name__)


def authorize(project: Project, token: str) -> bool:
    """Токен совпадает с write token проекта."""
    if not token:
        return False
    return hmac.compare_digest(project.token.encode("utf-8"), token.encode("utf-8"))


class StorageService:
    """
    Сервис хранения результатов.

    Stateless: каждое обращение идёт в backend, кэша нет, поэтому запись,
    вернувшая управление, сразу видна последующим чтениям.
    """

    def __init__(self, storage: StorageMethod):
        self.storage = storage

    # ==================== Projects ====================

    async def create_project(self, name: str, external_url: str = "") -> Project:
        """
        Создать проект.

        Returns:
            Project с write token (показывается один раз)

        Raises:
            ValidationError: пустое или занятое имя
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Project name must not be empty")
        if await self.storage.find_project_by_name(name):
            raise ValidationError(f"Project name '{name}' is already taken")

        project = Project(
            id=str(uuid.uuid4()),
            name=name,
            external_url=(external_url or "").strip(),
            token=str(uuid.uuid4()),
            read_token=str(uuid.uuid4()),
        )
        project = await self.storage.create_project(project)
        logger.info(f"Created project {project.name} ({project.id})")
        return project

    async def list_projects(self) -> List[Project]:
        return await self.storage.get_projects()

    async def get_project(self, project_id: str) -> Project:
        project = await self.storage.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        return project

    async def find_project_by_token(self, token: str) -> Project:
        project = await self.storage.find_project_by_token(token) if token else None
        if project is None:
            raise NotFoundError("No project matches the given token")
        return project

    async def authorize_write(self, project_id: str, token: str, operation: str) -> Project:
        """
        Проект, если token совпадает с его write token.

        Raises:
            NotFoundError: неизвестный project_id
            AuthorizationError: токен не совпадает
        """
        project = await self.get_project(project_id)
        if not authorize(project, token):
            rejected_writes.labels(operation=operation).inc()
            logger.warning(f"Rejected {operation} for project {project_id}: token mismatch")
            raise AuthorizationError("Invalid token for project")
        return project

    # ==================== Builds ====================

    async def create_build(self, project_id: str, token: str, metadata: BuildMetadata) -> Build:
        """
        Создать билд.

        Raises:
            NotFoundError: неизвестный project_id
            AuthorizationError: токен не совпадает
        """
        project = await self.authorize_write(project_id, token, "create_build")
        build = await self.storage.create_build(project.id, metadata)
        logger.info(f"Created build {build.id} for project {project.name} (branch={build.branch or '-'})")
        return build

    async def list_builds(self, project_id: str) -> List[Build]:
        await self.get_project(project_id)
        return await self.storage.get_builds(project_id)

    async def get_build(self, project_id: str, build_id: str) -> Build:
        build = await self.storage.get_build(build_id)
        if build is None or build.project_id != project_id:
            raise NotFoundError(f"Build {build_id} not found in project {project_id}")
        return build

    # ==================== Runs ====================

    async def create_run(
        self,
        project_id: str,
        build_id: str,
        token: str,
        url: str,
        report_payload: str,
    ) -> Run:
        """
        Создать прогон.

        Raises:
            NotFoundError: неизвестный проект или билд
            AuthorizationError: токен не совпадает
            ValidationError: payload не разбирается как отчёт аудитора
        """
        await self.authorize_write(project_id, token, "create_run")
        build = await self.get_build(project_id, build_id)
        report = parse_report(report_payload)
        run = await self.storage.create_run(build, url or report.requested_url, report_payload)
        logger.info(f"Created run {run.id} for build {build.id} ({run.url})")
        return run

    async def list_runs(self, project_id: str, build_id: str) -> List[Run]:
        """Прогоны билда, новые первыми. Пустой список, если прогонов нет."""
        build = await self.get_build(project_id, build_id)
        return await self.storage.get_runs(build.id)
