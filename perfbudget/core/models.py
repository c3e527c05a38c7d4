"""
Модели данных: иерархия Project → Build → Run и разобранный отчёт аудита.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from perfbudget.core.errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite теряет tzinfo — восстановить UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ═══════════════════════════════════════════════════════
# HIERARCHY
# ═══════════════════════════════════════════════════════

@dataclass
class Project:
    """CI проект. Токены отдаются только при создании."""

    id: str
    name: str
    external_url: str
    token: str
    read_token: str
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self, include_tokens: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "external_url": self.external_url,
            "created_at": self.created_at.isoformat(),
        }
        if include_tokens:
            data["token"] = self.token
            data["read_token"] = self.read_token
        return data


@dataclass
class BuildMetadata:
    """Метаданные CI запуска (ветка, коммит, ссылка на билд)."""

    branch: str = ""
    hash: str = ""
    commit_message: str = ""
    author: str = ""
    external_build_url: str = ""


@dataclass
class Build:
    """Один вызов CI. Не изменяется после создания."""

    id: str
    project_id: str
    branch: str
    hash: str
    commit_message: str
    author: str
    external_build_url: str
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "branch": self.branch,
            "hash": self.hash,
            "commit_message": self.commit_message,
            "author": self.author,
            "external_build_url": self.external_build_url,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Run:
    """Один прогон аудита страницы; lhr — сериализованный отчёт."""

    id: str
    project_id: str
    build_id: str
    url: str
    lhr: str
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "build_id": self.build_id,
            "url": self.url,
            "lhr": self.lhr,
            "created_at": self.created_at.isoformat(),
        }

    def report(self) -> "ReportPayload":
        return parse_report(self.lhr)


# ═══════════════════════════════════════════════════════
# REPORT PAYLOAD
# ═══════════════════════════════════════════════════════

@dataclass(frozen=True)
class AuditData:
    """Результат одного аудита внутри отчёта."""

    id: str
    score: Optional[float] = None
    numeric_value: Optional[float] = None
    score_display_mode: str = ""
    error_message: Optional[str] = None
    details: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def ran(self) -> bool:
        return self.score_display_mode != "error" and not self.error_message

    def detail_value(self, path: Tuple[str, ...]) -> Optional[float]:
        """
        Значение по пути свойства, например ("document", "size").

        Первый сегмент ищется как resourceType среди details.items,
        остальные — как ключи найденного элемента.
        """
        if not path:
            return None
        for item in self.details.get("items") or []:
            if not isinstance(item, dict) or item.get("resourceType") != path[0]:
                continue
            value: Any = item
            for key in path[1:]:
                if not isinstance(value, dict):
                    return None
                value = value.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return None
            return float(value)
        return None


@dataclass(frozen=True)
class ReportPayload:
    """Разобранный отчёт аудитора: requestedUrl + таблица аудитов."""

    requested_url: str
    audits: Mapping[str, AuditData]
    raw: Mapping[str, Any]


def _optional_number(audit_id: str, key: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Audit '{audit_id}' has non-numeric {key}: {value!r}")
    return float(value)


def parse_report(payload: Union[str, bytes, Mapping[str, Any]]) -> ReportPayload:
    """
    Разобрать отчёт аудитора.

    Raises:
        ValidationError: payload не JSON-объект, нет requestedUrl или audits
    """
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise ValidationError(f"Report payload is not valid JSON: {e}") from e
    else:
        data = payload

    if not isinstance(data, Mapping):
        raise ValidationError("Report payload must be a JSON object")

    requested_url = data.get("requestedUrl")
    if not isinstance(requested_url, str) or not requested_url:
        raise ValidationError("Report payload is missing 'requestedUrl'")

    raw_audits = data.get("audits")
    if not isinstance(raw_audits, Mapping):
        raise ValidationError("Report payload is missing the 'audits' table")

    audits = {}
    for audit_id, audit in raw_audits.items():
        if not isinstance(audit, Mapping):
            raise ValidationError(f"Audit '{audit_id}' must be an object")
        details = audit.get("details") or {}
        audits[audit_id] = AuditData(
            id=audit_id,
            score=_optional_number(audit_id, "score", audit.get("score")),
            numeric_value=_optional_number(audit_id, "numericValue", audit.get("numericValue")),
            score_display_mode=audit.get("scoreDisplayMode") or "",
            error_message=audit.get("errorMessage"),
            details=MappingProxyType(dict(details) if isinstance(details, Mapping) else {}),
        )

    return ReportPayload(
        requested_url=requested_url,
        audits=MappingProxyType(audits),
        raw=MappingProxyType(dict(data)),
    )
