"""Shared fixtures: quiet logging and fresh settings for every test."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from streamcase.foundation.config import clear_settings_cache
from streamcase.runtime.observability import configure_logging


@pytest.fixture(autouse=True)
def _isolate() -> Iterator[None]:
    configure_logging(format="none")
    clear_settings_cache()
    yield
    clear_settings_cache()
