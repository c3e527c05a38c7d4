"""
Контракт хранилища для иерархии Project → Build → Run.

Реализации:
- SqlStorageMethod: SQLAlchemy (SQLite по умолчанию)
- RedisStorageMethod: Redis (hash + streams)
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from perfbudget.core.models import Build, BuildMetadata, Project, Run


class StorageMethod(ABC):
    """
    Базовый класс backend'а.

    Все методы асинхронные. Мутации должны быть закоммичены до возврата.
    Ошибки драйвера переводятся в StorageError, конфликт имени проекта —
    в ValidationError.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Подключиться и подготовить схему."""

    @abstractmethod
    async def close(self) -> None:
        """Закрыть соединения."""

    @abstractmethod
    async def ping(self) -> None:
        """Проверить доступность backend'а (health check)."""

    # ==================== Projects ====================

    @abstractmethod
    async def get_projects(self) -> List[Project]:
        """Все проекты в порядке создания."""

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]:
        ...

    @abstractmethod
    async def find_project_by_name(self, name: str) -> Optional[Project]:
        ...

    @abstractmethod
    async def find_project_by_token(self, token: str) -> Optional[Project]:
        ...

    @abstractmethod
    async def create_project(self, project: Project) -> Project:
        ...

    # ==================== Builds ====================

    @abstractmethod
    async def get_builds(self, project_id: str) -> List[Build]:
        """Билды проекта, новые первыми."""

    @abstractmethod
    async def get_build(self, build_id: str) -> Optional[Build]:
        ...

    @abstractmethod
    async def create_build(self, project_id: str, metadata: BuildMetadata) -> Build:
        ...

    # ==================== Runs ====================

    @abstractmethod
    async def get_runs(self, build_id: str) -> List[Run]:
        """
        Прогоны билда, новые первыми.

        При равном created_at порядок определяется последовательностью вставки
        (более поздняя вставка — раньше в списке).
        """

    @abstractmethod
    async def create_run(self, build: Build, url: str, lhr: str) -> Run:
        ...
