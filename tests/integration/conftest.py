#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pytest fixtures for integration tests.

Provides:
- api_registry: Fresh JobRegistry wired into the app
- converter: ScriptedConverter handed out by the converter factory
- client: TestClient with every dependency overridden
"""

import pytest
from pathlib import Path
import sys

from fastapi.testclient import TestClient

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from api import main as api_main
from migrator.archive import ZipArchiver
from migrator.batch import JobRegistry, ProgressBroadcaster


@pytest.fixture
def api_broadcaster():
    return ProgressBroadcaster()


@pytest.fixture
def api_registry(api_broadcaster):
    return JobRegistry(broadcaster=api_broadcaster)


@pytest.fixture
def converter(converter_cls):
    """Converter every job receives. Fails on bad.sql."""
    return converter_cls(fail={"bad.sql"})


@pytest.fixture
def client(temp_dir, api_registry, api_broadcaster, converter):
    """
    TestClient against the real app with isolated state.

    Allowed input root is temp_dir; uploads land in temp_dir/uploads,
    bundles are extracted to temp_dir/work and written to temp_dir/zips.
    """
    app = api_main.app
    app.dependency_overrides[api_main.get_registry] = lambda: api_registry
    app.dependency_overrides[api_main.get_broadcaster] = lambda: api_broadcaster
    app.dependency_overrides[api_main.get_archiver] = lambda: ZipArchiver(
        temp_dir=temp_dir / "work", output_dir=temp_dir / "zips"
    )
    app.dependency_overrides[api_main.get_allowed_roots] = lambda: [temp_dir]
    app.dependency_overrides[api_main.get_upload_dir] = lambda: temp_dir / "uploads"
    app.dependency_overrides[api_main.get_converter_factory] = lambda: (lambda profile: converter)

    yield TestClient(app)

    app.dependency_overrides.clear()
