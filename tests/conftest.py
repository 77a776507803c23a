"""
Pytest configuration and fixtures for commguard tests.
"""

import sys
from pathlib import Path

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import pytest
import pytest_asyncio

from commguard.configuration.app_configuration import AppConfig
from commguard.database.db_connection import ConnectionManager
from commguard.database.db_schema import SchemaManager
from commguard.datatypes.content_datatypes import ContentItem, ContentType
from commguard.datatypes.oracle_datatypes import OracleScores
from commguard.moderation.content_store import SQLiteContentStore
from commguard.oracle.scoring_oracle import ScoringOracle, ScoringOracleAdapter
from commguard.services.moderation_service import build_service

ORG_ID = "org-1"
COMMUNITY_ID = "community-1"


class FakeOracle(ScoringOracle):
    """Scripted oracle that counts how often it is asked."""

    def __init__(self, scores: OracleScores | None = None, error: Exception | None = None) -> None:
        self.scores = scores or OracleScores(sentiment=0.0, toxicity=0.0, spam=0.0)
        self.error = error
        self.calls: list[str] = []

    async def score(self, text: str) -> OracleScores:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.scores


def make_item(
    content_id: str = "msg-1",
    text: str = "hello there",
    *,
    content_type: ContentType = ContentType.MESSAGE,
    community_id: str = COMMUNITY_ID,
    author_id: str = "author-1",
) -> ContentItem:
    return ContentItem(
        id=content_id,
        organization_id=ORG_ID,
        community_id=community_id,
        author_id=author_id,
        text=text,
        type=content_type,
    )


@pytest.fixture()
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture()
def oracle_adapter(fake_oracle: FakeOracle) -> ScoringOracleAdapter:
    return ScoringOracleAdapter(fake_oracle, timeout_seconds=1.0)


@pytest_asyncio.fixture
async def db(tmp_path: Path):
    """Open a temporary database with the full schema."""
    manager = ConnectionManager()
    await manager.open(tmp_path / "commguard_test.db")
    await SchemaManager.initialize_schema(manager.connection)
    yield manager
    await manager.close()


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    config_path = tmp_path / "app_config.yml"
    config_path.write_text(
        "queue:\n  default_page_size: 20\n  max_page_size: 100\nrules:\n  cache_ttl_seconds: 0\n",
        encoding="utf-8",
    )
    return AppConfig(config_path)


@pytest.fixture()
def content_store(db: ConnectionManager) -> SQLiteContentStore:
    return SQLiteContentStore(db)


@pytest_asyncio.fixture
async def service(db, app_config, content_store, oracle_adapter):
    svc = build_service(db, app_config, content_store=content_store, oracle=oracle_adapter)
    await svc.create_community(ORG_ID, "Test community", community_id=COMMUNITY_ID)
    return svc


