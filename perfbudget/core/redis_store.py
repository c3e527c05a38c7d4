"""
Redis хранилище для Project/Build/Run.

Используем:
- HSETNX на индекс имён — атомарная уникальность имени проекта
- XADD для билдов и прогонов — ID записи стрима задаёт время создания
- Lua скрипт для билда: XADD и HSET хэша билда атомарно
- XREVRANGE для чтения (новые первые)
"""

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from perfbudget.core.errors import StorageError, ValidationError
from perfbudget.core.models import Build, BuildMetadata, Project, Run
from perfbudget.core.storage import StorageMethod
from perfbudget.infrastructure.metrics import storage_latency, storage_operations

logger = logging.getLogger(__name__)

# Запись в стрим и хэш билда одним атомарным шагом: хэшу нужен ID записи стрима
CREATE_BUILD_SCRIPT = """
local stream_id = redis.call("XADD", KEYS[1], "*", "build", ARGV[1])
redis.call("HSET", KEYS[2], "build", ARGV[1], "stream_id", stream_id)
return stream_id
"""


def stream_id_to_datetime(stream_id: str) -> datetime:
    """'1700000000123-0' → datetime (миллисекунды из ID стрима)."""
    millis = int(stream_id.split("-", 1)[0])
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


class RedisStorageMethod(StorageMethod):
    """Хранилище иерархии на Redis."""

    def __init__(self, redis_url: str, prefix: str = "perfbudget"):
        self.redis_url = redis_url
        self.prefix = prefix
        self.client: Optional[redis.Redis] = None
        self._create_build_script = None

        # Ключи
        self.projects_key = f"{prefix}:projects"
        self.project_names_key = f"{prefix}:project:names"
        self.project_tokens_key = f"{prefix}:project:tokens"

    def _builds_stream(self, project_id: str) -> str:
        return f"{self.prefix}:project:{project_id}:builds"

    def _build_key(self, build_id: str) -> str:
        return f"{self.prefix}:build:{build_id}"

    def _runs_stream(self, build_id: str) -> str:
        return f"{self.prefix}:build:{build_id}:runs"

    async def initialize(self) -> None:
        """Подключиться к Redis."""
        self.client = redis.from_url(self.redis_url, decode_responses=True)
        self._create_build_script = self.client.register_script(CREATE_BUILD_SCRIPT)
        await self._call("ping", self.client.ping())
        logger.info(f"Redis storage connected: {self.redis_url} (prefix={self.prefix})")

    async def close(self) -> None:
        """Закрыть соединение."""
        if self.client:
            await self.client.aclose()
            self.client = None

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        start_time = time.perf_counter()
        try:
            result = await awaitable
        except RedisError as e:
            storage_operations.labels(operation=operation, outcome="error").inc()
            logger.error(f"Redis storage {operation} failed: {e}", exc_info=True)
            raise StorageError(f"Storage failure during {operation}") from e
        finally:
            storage_latency.labels(operation=operation).observe(time.perf_counter() - start_time)
        storage_operations.labels(operation=operation, outcome="ok").inc()
        return result

    def _require_client(self) -> redis.Redis:
        if self.client is None:
            raise StorageError("Redis storage is not initialized")
        return self.client

    async def ping(self) -> None:
        await self._call("ping", self._require_client().ping())

    # ==================== Projects ====================

    @staticmethod
    def _load_project(raw: str) -> Project:
        data = json.loads(raw)
        return Project(
            id=data["id"],
            name=data["name"],
            external_url=data["external_url"],
            token=data["token"],
            read_token=data["read_token"],
            created_at=datetime.fromisoformat(data["created_at"]),
        )

    async def get_projects(self) -> List[Project]:
        raw = await self._call("get_projects", self._require_client().hgetall(self.projects_key))
        projects = [self._load_project(value) for value in raw.values()]
        projects.sort(key=lambda p: p.created_at)
        return projects

    async def get_project(self, project_id: str) -> Optional[Project]:
        raw = await self._call("get_project", self._require_client().hget(self.projects_key, project_id))
        return self._load_project(raw) if raw else None

    async def find_project_by_name(self, name: str) -> Optional[Project]:
        project_id = await self._call(
            "find_project_by_name", self._require_client().hget(self.project_names_key, name)
        )
        return await self.get_project(project_id) if project_id else None

    async def find_project_by_token(self, token: str) -> Optional[Project]:
        project_id = await self._call(
            "find_project_by_token", self._require_client().hget(self.project_tokens_key, token)
        )
        return await self.get_project(project_id) if project_id else None

    async def create_project(self, project: Project) -> Project:
        client = self._require_client()

        claimed = await self._call(
            "create_project", client.hsetnx(self.project_names_key, project.name, project.id)
        )
        if not claimed:
            storage_operations.labels(operation="create_project", outcome="conflict").inc()
            raise ValidationError(f"Project name '{project.name}' is already taken")

        payload = json.dumps({
            "id": project.id,
            "name": project.name,
            "external_url": project.external_url,
            "token": project.token,
            "read_token": project.read_token,
            "created_at": project.created_at.isoformat(),
        })

        async def _commit() -> None:
            async with client.pipeline(transaction=True) as pipe:
                pipe.hset(self.projects_key, project.id, payload)
                pipe.hset(self.project_tokens_key, project.token, project.id)
                await pipe.execute()

        await self._call("create_project", _commit())
        return project

    # ==================== Builds ====================

    @staticmethod
    def _load_build(raw: str, stream_id: str) -> Build:
        data = json.loads(raw)
        return Build(
            id=data["id"],
            project_id=data["project_id"],
            branch=data["branch"],
            hash=data["hash"],
            commit_message=data["commit_message"],
            author=data["author"],
            external_build_url=data["external_build_url"],
            created_at=stream_id_to_datetime(stream_id),
        )

    async def get_builds(self, project_id: str) -> List[Build]:
        entries: List[Tuple[str, Dict[str, str]]] = await self._call(
            "get_builds", self._require_client().xrevrange(self._builds_stream(project_id))
        )
        return [self._load_build(fields["build"], stream_id) for stream_id, fields in entries]

    async def get_build(self, build_id: str) -> Optional[Build]:
        raw = await self._call("get_build", self._require_client().hgetall(self._build_key(build_id)))
        if not raw:
            return None
        return self._load_build(raw["build"], raw["stream_id"])

    async def create_build(self, project_id: str, metadata: BuildMetadata) -> Build:
        self._require_client()
        build_id = str(uuid.uuid4())
        payload = json.dumps({
            "id": build_id,
            "project_id": project_id,
            "branch": metadata.branch,
            "hash": metadata.hash,
            "commit_message": metadata.commit_message,
            "author": metadata.author,
            "external_build_url": metadata.external_build_url,
        })

        stream_id = await self._call(
            "create_build",
            self._create_build_script(
                keys=[self._builds_stream(project_id), self._build_key(build_id)],
                args=[payload],
            ),
        )
        return self._load_build(payload, stream_id)

    # ==================== Runs ====================

    @staticmethod
    def _load_run(raw: str, stream_id: str) -> Run:
        data = json.loads(raw)
        return Run(
            id=data["id"],
            project_id=data["project_id"],
            build_id=data["build_id"],
            url=data["url"],
            lhr=data["lhr"],
            created_at=stream_id_to_datetime(stream_id),
        )

    async def get_runs(self, build_id: str) -> List[Run]:
        entries: List[Tuple[str, Dict[str, str]]] = await self._call(
            "get_runs", self._require_client().xrevrange(self._runs_stream(build_id))
        )
        return [self._load_run(fields["run"], stream_id) for stream_id, fields in entries]

    async def create_run(self, build: Build, url: str, lhr: str) -> Run:
        payload = json.dumps({
            "id": str(uuid.uuid4()),
            "project_id": build.project_id,
            "build_id": build.id,
            "url": url,
            "lhr": lhr,
        })
        stream_id = await self._call(
            "create_run", self._require_client().xadd(self._runs_stream(build.id), {"run": payload})
        )
        return self._load_run(payload, stream_id)
