from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from backend.app.dependencies import get_conversion_service, reset_cached_dependencies
from backend.app.main import create_app
from tests.fakes import FakeBrowserFactory, FakeFetcher, build_fake_service


@pytest.fixture(autouse=True)
def _runtime_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    monkeypatch.setenv("URL_TO_KINDLE_DATA_DIR", str(tmp_path / "runtime-data"))
    monkeypatch.setenv("URL_TO_KINDLE_TELEMETRY_SINK", "none")
    monkeypatch.delenv("URL_TO_KINDLE_DEFAULT_FORMAT", raising=False)
    monkeypatch.delenv("URL_TO_KINDLE_ENABLED_FORMATS", raising=False)
    monkeypatch.delenv("URL_TO_KINDLE_PDF_FONT_PATH", raising=False)
    reset_cached_dependencies()
    yield
    reset_cached_dependencies()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def browser_factory() -> FakeBrowserFactory:
    return FakeBrowserFactory()


@pytest.fixture
def client(fetcher: FakeFetcher, browser_factory: FakeBrowserFactory) -> Iterator[TestClient]:
    app = create_app()
    service = build_fake_service(fetcher, browser_factory)
    app.dependency_overrides[get_conversion_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
