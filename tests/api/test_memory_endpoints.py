"""Tests for the memory API endpoints."""

import time
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import jwt
import pytest
from fastapi.testclient import TestClient

from lifegraph.api.v1.endpoints.memory import (
    get_context_assembler,
    get_context_cache,
    get_extraction_service,
    get_graph_repository,
)
from lifegraph.core.auth import get_current_user
from lifegraph.core.exceptions import APIClientError, RateLimitError
from lifegraph.core.jwt import jwt_verifier
from lifegraph.database.models import MemoryEntity, MemoryMention
from lifegraph.main import app
from lifegraph.repositories.memory_graph_repository import MemoryGraphRepository
from lifegraph.schemas.auth import CurrentUser
from lifegraph.schemas.memory import ContextStats, EntityType
from lifegraph.services.memory.context_assembler import MemoryContext, MemoryContextAssembler
from lifegraph.services.memory.context_cache import ContextCache
from lifegraph.services.memory.extraction_service import ExtractionOutcome, MemoryExtractionService

USER_ID = "user-1"
BASE = "/api/v1/memory"


def _entity(name: str, entity_type: str = "person", mention_count: int = 1) -> MemoryEntity:
    return MemoryEntity(
        id=uuid.uuid4(),
        user_id=USER_ID,
        entity_type=entity_type,
        name=name,
        name_key=name.lower(),
        mention_count=mention_count,
    )


@pytest.fixture
def mock_service() -> MagicMock:
    service = MagicMock(spec=MemoryExtractionService)
    service.extract_and_store = AsyncMock(return_value=ExtractionOutcome())
    return service


@pytest.fixture
def mock_repository() -> MagicMock:
    repository = MagicMock(spec=MemoryGraphRepository)
    repository.list_entities = AsyncMock(return_value=[])
    repository.find_entity_by_name_fragment = AsyncMock(return_value=None)
    repository.get_connections = AsyncMock(return_value=[])
    repository.get_recent_mentions = AsyncMock(return_value=[])
    return repository


@pytest.fixture
def mock_assembler() -> MagicMock:
    assembler = MagicMock(spec=MemoryContextAssembler)
    assembler.build_context = AsyncMock(
        return_value=MemoryContext(
            text="**People mentioned in this autobiography:**\n- Father (mentioned 2 times)",
            stats=ContextStats(people=1),
        )
    )
    assembler.build_compact_context = AsyncMock(return_value="People in their story: Father.")
    return assembler


@pytest.fixture
def context_cache() -> ContextCache:
    return ContextCache()


@pytest.fixture
def authed_client(test_client, mock_service, mock_repository, mock_assembler, context_cache) -> TestClient:
    """Test client with auth and every memory collaborator overridden."""
    app.dependency_overrides[get_current_user] = lambda: CurrentUser(id=USER_ID)
    app.dependency_overrides[get_extraction_service] = lambda: mock_service
    app.dependency_overrides[get_graph_repository] = lambda: mock_repository
    app.dependency_overrides[get_context_assembler] = lambda: mock_assembler
    app.dependency_overrides[get_context_cache] = lambda: context_cache
    return test_client


class TestAuthentication:

    def test_missing_token_is_rejected(self, test_client, mock_repository):
        app.dependency_overrides[get_graph_repository] = lambda: mock_repository

        response = test_client.get(f"{BASE}/entities")

        assert response.status_code == 401
        mock_repository.list_entities.assert_not_called()

    def test_garbage_token_is_rejected(self, test_client, mock_repository):
        app.dependency_overrides[get_graph_repository] = lambda: mock_repository

        response = test_client.get(f"{BASE}/entities", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_valid_token_scopes_to_subject(self, test_client, mock_repository):
        """Test that the token subject becomes the graph owner."""
        app.dependency_overrides[get_graph_repository] = lambda: mock_repository
        now = int(time.time())
        claims = {"sub": "user-42", "iat": now, "exp": now + 3600, "aud": jwt_verifier.audience}
        if jwt_verifier.expected_issuer:
            claims["iss"] = jwt_verifier.expected_issuer
        token = jwt.encode(claims, jwt_verifier.jwt_secret, algorithm="HS256")

        response = test_client.get(f"{BASE}/entities", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        mock_repository.list_entities.assert_awaited_once_with("user-42")

    def test_expired_token_is_rejected(self, test_client, mock_repository):
        app.dependency_overrides[get_graph_repository] = lambda: mock_repository
        now = int(time.time())
        claims = {"sub": "user-42", "iat": now - 7200, "exp": now - 3600, "aud": jwt_verifier.audience}
        token = jwt.encode(claims, jwt_verifier.jwt_secret, algorithm="HS256")

        response = test_client.get(f"{BASE}/entities", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401


class TestExtractEndpoint:

    def test_extract_returns_stored_entities(self, authed_client, mock_service, context_cache):
        """Test a successful synchronous extraction."""
        mock_service.extract_and_store.return_value = ExtractionOutcome(
            entities=[_entity("Father", mention_count=2), _entity("Detroit", "place")],
            relationships_linked=1,
            raw={"people": [{"name": "Father"}]},
        )
        context_cache.set(USER_ID, "stale")

        response = authed_client.post(
            f"{BASE}/extract",
            json={"text": "My father worked in Detroit for years.", "chapterId": "ch-1", "storyId": "s-1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert [e["name"] for e in data["entities"]] == ["Father", "Detroit"]
        assert data["entities"][0]["mention_count"] == 2
        assert data["relationships"] == 1
        assert data["raw"] == {"people": [{"name": "Father"}]}
        assert "message" not in data
        mock_service.extract_and_store.assert_awaited_once_with(
            user_id=USER_ID,
            text="My father worked in Detroit for years.",
            chapter_id="ch-1",
            question_id=None,
            story_id="s-1",
        )
        assert context_cache.get(USER_ID) is None

    @pytest.mark.parametrize("body", [{}, {"text": ""}, {"text": "   "}])
    def test_empty_text_is_not_an_error(self, authed_client, mock_service, body):
        response = authed_client.post(f"{BASE}/extract", json=body)

        assert response.status_code == 200
        assert response.json() == {
            "entities": [],
            "relationships": 0,
            "raw": {},
            "message": "No text provided",
        }
        mock_service.extract_and_store.assert_not_called()

    def test_skipped_run_reports_reason(self, authed_client, mock_service):
        mock_service.extract_and_store.return_value = ExtractionOutcome(skipped_reason="text_too_short")

        response = authed_client.post(f"{BASE}/extract", json={"text": "short"})

        assert response.status_code == 200
        assert response.json()["message"] == "Text too short for entity extraction"

    def test_rate_limited(self, authed_client, mock_service):
        mock_service.extract_and_store.side_effect = RateLimitError(reset_in_ms=1500)

        response = authed_client.post(f"{BASE}/extract", json={"text": "My father worked in Detroit."})

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "2"
        detail = response.json()["detail"]
        assert detail["retryAfter"] == 2
        assert "2 seconds" in detail["error"]

    def test_upstream_failure_maps_to_bad_gateway(self, authed_client, mock_service):
        mock_service.extract_and_store.side_effect = APIClientError("timeout")

        response = authed_client.post(f"{BASE}/extract", json={"text": "My father worked in Detroit."})

        assert response.status_code == 502


class TestEntityEndpoints:

    def test_list_entities(self, authed_client, mock_repository):
        mock_repository.list_entities.return_value = [_entity("Father", mention_count=3)]

        response = authed_client.get(f"{BASE}/entities")

        assert response.status_code == 200
        entities = response.json()["entities"]
        assert entities[0]["name"] == "Father"
        assert entities[0]["entity_type"] == "person"
        mock_repository.list_entities.assert_awaited_once_with(USER_ID)

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("person", EntityType.PERSON),
            ("people", EntityType.PERSON),
            ("time_period", EntityType.TIME_PERIOD),
            ("time%20period", EntityType.TIME_PERIOD),
            ("Emotions", EntityType.EMOTION),
        ],
    )
    def test_list_entities_by_type(self, authed_client, mock_repository, label, expected):
        response = authed_client.get(f"{BASE}/entities/{label}")

        assert response.status_code == 200
        mock_repository.list_entities.assert_awaited_once_with(USER_ID, expected)

    def test_unknown_type_is_rejected(self, authed_client, mock_repository):
        response = authed_client.get(f"{BASE}/entities/pets")

        assert response.status_code == 400
        mock_repository.list_entities.assert_not_called()


class TestContextEndpoint:

    def test_full_context_is_cached(self, authed_client, mock_assembler):
        """Test that a second read within the TTL skips the assembler."""
        first = authed_client.get(f"{BASE}/context")
        second = authed_client.get(f"{BASE}/context")

        assert first.status_code == 200
        assert first.json() == second.json()
        assert first.json()["context"].startswith("**People mentioned")
        assert first.json()["stats"]["people"] == 1
        assert mock_assembler.build_context.await_count == 1

    def test_compact_context(self, authed_client, mock_assembler):
        response = authed_client.get(f"{BASE}/context", params={"compact": "true"})

        assert response.status_code == 200
        assert response.json() == {"context": "People in their story: Father."}
        mock_assembler.build_context.assert_not_called()

    def test_extraction_invalidates_cached_context(self, authed_client, mock_assembler):
        authed_client.get(f"{BASE}/context")
        authed_client.post(f"{BASE}/extract", json={"text": "My father worked in Detroit."})
        authed_client.get(f"{BASE}/context")

        assert mock_assembler.build_context.await_count == 2


class TestConnectionsEndpoint:

    def test_unknown_entity(self, authed_client):
        response = authed_client.get(f"{BASE}/connections/Atlantis")

        assert response.status_code == 200
        assert response.json() == {"connections": [], "message": "Entity not found"}

    def test_connections_and_mentions(self, authed_client, mock_repository):
        father = _entity("Father")
        mock_repository.find_entity_by_name_fragment.return_value = father
        mock_repository.get_connections.return_value = [
            {
                "connected_to": "Detroit",
                "connected_type": "place",
                "relationship_type": "lived in",
                "description": None,
            }
        ]
        mock_repository.get_recent_mentions.return_value = [
            MemoryMention(entity_id=father.id, story_id="s-1", context="worked at Ford", sentiment="positive")
        ]

        response = authed_client.get(f"{BASE}/connections/fath")

        assert response.status_code == 200
        data = response.json()
        assert data["entity"]["name"] == "Father"
        assert data["connections"][0]["connected_to"] == "Detroit"
        assert data["mentions"][0]["context"] == "worked at Ford"
        mock_repository.find_entity_by_name_fragment.assert_awaited_once_with(USER_ID, "fath")
        mock_repository.get_recent_mentions.assert_awaited_once_with(father.id, limit=5)


class TestHealthEndpoint:

    def test_health_check(self, test_client):
        with patch(
            "lifegraph.api.v1.endpoints.health.db_client.health_check",
            new=AsyncMock(return_value={"status": "healthy", "database": "sqlite"}),
        ):
            response = test_client.get("/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert set(data["extraction_queue"]) == {"backlog", "workers", "processed", "failed", "dropped"}
