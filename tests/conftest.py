"""Pytest configuration and shared fixtures for the drawing comparison pipeline.

Drawings are synthesized with OpenCV (white sheet, black linework) so the
tests need no binary fixtures, and the annotation service is replaced by an
in-process fake that records every call.
"""
import asyncio
import logging
import os
from typing import Callable, Dict, List, Optional

import cv2
import numpy as np
import pytest

from plandiff.config.settings import Config
from plandiff.core.entities import AnalysisMode, AnnotationResponse, RasterImage


# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)

# Disable some verbose loggers during testing
logging.getLogger('PIL').setLevel(logging.WARNING)


def make_drawing(width: int = 400, height: int = 300) -> np.ndarray:
    """White sheet with a border, a few walls and a symbol."""
    image = np.full((height, width, 3), 255, dtype=np.uint8)
    cv2.rectangle(image, (10, 10), (width - 11, height - 11), (0, 0, 0), 2)
    cv2.line(image, (10, height // 2), (width // 2, height // 2), (0, 0, 0), 2)
    cv2.line(image, (width // 2, 10), (width // 2, height - 11), (0, 0, 0), 2)
    cv2.circle(image, (60, 60), 12, (0, 0, 0), 1)
    return image


class FakeAnnotationClient:
    """Records calls and returns scripted responses.

    ``responses`` is consumed in call order; when it runs out the default
    response (one ADDED item covering the middle of the tile) is returned.
    Calls whose index is in ``fail_on`` raise RuntimeError instead.
    """

    def __init__(self, responses: Optional[List[AnnotationResponse]] = None,
                 fail_on: Optional[set] = None,
                 on_call: Optional[Callable[[int], None]] = None):
        self.responses = list(responses or [])
        self.fail_on = set(fail_on or ())
        self.on_call = on_call
        self.calls: List[Dict] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def annotate_tile(self, before_crop, after_crop, mode):
        index = len(self.calls)
        self.calls.append({"before": before_crop, "after": after_crop, "mode": mode})
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_call is not None:
                self.on_call(index)
            # hand control back so sibling requests of the batch start
            await asyncio.sleep(0.01)
            if index in self.fail_on:
                raise RuntimeError(f"simulated failure for call {index}")
            if self.responses:
                return self.responses.pop(0)
            return AnnotationResponse(
                candidates=[{
                    "title": "Outlet added",
                    "description": "A new outlet symbol",
                    "category": "EQUIPMENT",
                    "type": "ADDED",
                    "box_2d": [250, 250, 750, 750],
                }],
                tokens_used=100,
            )
        finally:
            self.in_flight -= 1


@pytest.fixture
def temp_dir(tmp_path):
    """Provide a temporary directory for test files."""
    return tmp_path


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No GEMINI_* variables and no .env file in the working directory."""
    for key in ("GEMINI_API_KEY", "GEMINI_MODEL", "GEMINI_TIMEOUT", "GEMINI_TEMPERATURE",
                "GEMINI_THINKING_BUDGET", "ANNOTATION_BATCH_SIZE", "DEBUG_LOGGING"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def default_config():
    """Provide a default configuration without an API key."""
    return Config()


@pytest.fixture
def before_pixels():
    return make_drawing()


@pytest.fixture
def after_pixels(before_pixels):
    """The before drawing plus one new filled equipment symbol."""
    image = before_pixels.copy()
    cv2.rectangle(image, (260, 200), (300, 240), (0, 0, 0), -1)
    return image


@pytest.fixture
def before_image(before_pixels):
    return RasterImage.from_array(before_pixels, source="before")


@pytest.fixture
def after_image(after_pixels):
    return RasterImage.from_array(after_pixels, source="after")


@pytest.fixture
def drawing_files(tmp_path, before_pixels, after_pixels):
    """Before/after drawings written as PNG files."""
    before_path = tmp_path / "before.png"
    after_path = tmp_path / "after.png"
    cv2.imwrite(str(before_path), before_pixels)
    cv2.imwrite(str(after_path), after_pixels)
    return before_path, after_path


@pytest.fixture
def fake_client():
    return FakeAnnotationClient()


@pytest.fixture
def fake_client_factory():
    """Provide the FakeAnnotationClient class for tests that script responses."""
    return FakeAnnotationClient


@pytest.fixture(params=[AnalysisMode.MACRO, AnalysisMode.MICRO])
def analysis_mode(request):
    return request.param


# Test markers and utilities
def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "service: mark test as service test")
    config.addinivalue_line("markers", "external: mark test as requiring external services")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location and skip external tests unless enabled."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        if item.get_closest_marker("external") and not os.getenv("RUN_EXTERNAL_TESTS"):
            item.add_marker(pytest.mark.skip(reason="External tests disabled"))
