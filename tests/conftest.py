"""
Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and provides a scripted
translation backend, an in-memory store and sample documents.
"""

import sys
from pathlib import Path

# Add project root and the fixture builders to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent / 'fixtures'))

import pytest
import pytest_asyncio

from booktranslator.core.models import Chapter, Document
from booktranslator.core.retry_manager import RetryConfig
from booktranslator.persistence.checkpoint_manager import CheckpointManager
from booktranslator.persistence.database import LocalStore

from documents import make_segments
from llm_doubles import ScriptedProvider


@pytest.fixture
def provider():
    """Scripted backend with the default handler."""
    return ScriptedProvider()


@pytest.fixture
def fast_retry():
    """Two attempts, no backoff delay."""
    return RetryConfig(max_attempts=2, initial_delay=0)


@pytest.fixture
def local_store():
    """Throwaway SQLite store."""
    store = LocalStore(':memory:')
    yield store
    store._connection.close()


@pytest_asyncio.fixture
async def checkpoints(local_store):
    """CheckpointManager over an in-memory store with the schema created."""
    manager = CheckpointManager(local_store)
    await manager.ensure_schema()
    return manager


@pytest.fixture
def sample_document():
    """Two chapters: three segments then two."""
    return Document(
        title="Test Book",
        author="Test Author",
        source_language="en",
        target_language="zh",
        chapters=[
            Chapter(
                number=1,
                title="The Beginning",
                original_title="The Beginning",
                segments=make_segments([
                    "Napoleon entered the room.",
                    "He looked around.",
                    "Everyone was silent.",
                ]),
            ),
            Chapter(
                number=2,
                title="The End",
                original_title="The End",
                segments=make_segments([
                    "Wellington arrived.",
                    "The battle began.",
                ]),
            ),
        ],
    )


@pytest.fixture
def sample_xhtml():
    """A small namespaced chapter document."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
<head><title>Chapter One</title></head>
<body>
  <h1>Chapter One</h1>
  <p>It was a <b>bright</b> cold day in April.</p>
  <p>The clocks were striking thirteen.</p>
</body>
</html>"""
