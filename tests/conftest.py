"""
Pytest configuration and fixtures.

Использование:
    pytest tests/ -v
"""

import json
import sys
from pathlib import Path
from typing import Dict, Optional

import pytest

# Добавить корень проекта в path
sys.path.insert(0, str(Path(__file__).parent.parent))

from perfbudget.core.service import StorageService
from perfbudget.core.sql_store import SqlStorageMethod


# ═══════════════════════════════════════════════════════
# REPORT PAYLOADS
# ═══════════════════════════════════════════════════════

def make_lhr(url: str = "http://localhost/", audits: Optional[Dict] = None) -> str:
    """Минимальный отчёт аудитора в виде JSON текста."""
    return json.dumps({
        "requestedUrl": url,
        "finalUrl": url,
        "audits": audits or {},
    })


def budget_audit(document_size: int, script_count: int = 1) -> Dict:
    """Аудит performance-budget с таблицей ресурсов."""
    return {
        "score": None,
        "scoreDisplayMode": "informative",
        "details": {
            "type": "table",
            "items": [
                {"resourceType": "document", "label": "Document", "size": document_size, "requestCount": 1},
                {"resourceType": "script", "label": "Script", "size": 2048, "requestCount": script_count},
            ],
        },
    }


@pytest.fixture
def lhr_factory():
    return make_lhr


# ═══════════════════════════════════════════════════════
# STORAGE
# ═══════════════════════════════════════════════════════

@pytest.fixture
async def sql_storage():
    """SQL хранилище в памяти."""
    storage = SqlStorageMethod(":memory:")
    await storage.initialize()
    yield storage
    await storage.close()


@pytest.fixture
async def service(sql_storage):
    return StorageService(sql_storage)


@pytest.fixture
async def project(service):
    return await service.create_project("AwesomeCIProjectName", "https://example.com")


@pytest.fixture
def results_dir(tmp_path):
    """Директория с двумя прогонами chrome://version."""
    directory = tmp_path / ".perfbudgetci"
    directory.mkdir()
    audits = {
        "works-offline": {"score": 0, "scoreDisplayMode": "binary"},
        "first-contentful-paint": {
            "score": None,
            "scoreDisplayMode": "error",
            "errorMessage": "NO_FCP",
        },
        "performance-budget": budget_audit(4096),
    }
    for index in (1, 2):
        (directory / f"lhr-100000000{index}.json").write_text(make_lhr("chrome://version", audits))
    return directory


# ═══════════════════════════════════════════════════════
# MARKERS
# ═══════════════════════════════════════════════════════

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow"
    )
