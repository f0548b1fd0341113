"""
Pytest configuration and fixtures for engine and API testing
"""

import pytest
import os
import tempfile
import shutil
import struct
import zipfile
from pathlib import Path
from typing import Dict, Optional, Union
from fastapi.testclient import TestClient

# Set test environment before the application reads it
os.environ["ENVIRONMENT"] = "test"
os.environ["SCORM_DATA_DIR"] = tempfile.mkdtemp(prefix="scorm_medic_test_")

from scorm_medic.main import app


SCORM12_MANIFEST = """<?xml version="1.0" encoding="UTF-8"?>
<manifest identifier="test_course" version="1.0"
          xmlns="http://www.imsproject.org/xsd/imscp_rootv1p1p2"
          xmlns:adlcp="http://www.adlnet.org/xsd/adlcp_rootv1p2">
  <metadata>
    <schema>ADL SCORM</schema>
    <schemaversion>1.2</schemaversion>
  </metadata>
  <organizations default="org_1">
    <organization identifier="org_1">
      <title>Test Course</title>
      <item identifier="item_1" identifierref="res_1">
        <title>Lesson One</title>
      </item>
    </organization>
  </organizations>
  <resources>
    <resource identifier="res_1" type="webcontent" adlcp:scormtype="sco" href="{href}">
      <file href="{href}"/>
    </resource>
  </resources>
</manifest>
"""

ASSET_MANIFEST = """<?xml version="1.0" encoding="UTF-8"?>
<manifest identifier="asset_course"
          xmlns="http://www.imsproject.org/xsd/imscp_rootv1p1p2"
          xmlns:adlcp="http://www.adlnet.org/xsd/adlcp_rootv1p2">
  <organizations default="org_1">
    <organization identifier="org_1">
      <title>Asset Course</title>
    </organization>
  </organizations>
  <resources>
    <resource identifier="res_1" type="webcontent" adlcp:scormtype="asset" href="index.html"/>
  </resources>
</manifest>
"""

SIMPLE_HTML = "<html><head><title>Course</title></head><body>Test</body></html>"

# Uses adlcp: and xsi: without declaring either prefix
UNDECLARED_PREFIX_MANIFEST = """<?xml version="1.0" encoding="UTF-8"?>
<manifest identifier="authoring_tool_export" version="1.0"
          xmlns="http://www.imsproject.org/xsd/imscp_rootv1p1p2"
          xsi:schemaLocation="http://www.imsproject.org/xsd/imscp_rootv1p1p2 imscp_rootv1p1p2.xsd">
  <metadata>
    <schema>ADL SCORM</schema>
    <schemaversion>1.2</schemaversion>
  </metadata>
  <organizations default="org_main">
    <organization identifier="org_main">
      <title>Forklift Safety</title>
      <item identifier="item_intro" identifierref="res_intro"><title>Introduction</title></item>
      <item identifier="item_quiz" identifierref="res_quiz"><title>Quiz</title></item>
    </organization>
  </organizations>
  <resources>
    <resource identifier="res_intro" type="webcontent" adlcp:scormtype="sco" href="index.html">
      <file href="index.html"/>
    </resource>
    <resource identifier="res_quiz" type="webcontent" adlcp:scormtype="sco" href="quiz.html">
      <file href="quiz.html"/>
    </resource>
  </resources>
</manifest>
"""


def build_zip(path: Path, members: Dict[str, Union[str, bytes]]) -> Path:
    """Write a zip archive holding ``members`` (name -> content) at ``path``"""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in members.items():
            zf.writestr(name, content)
    return path


def patch_zip_member(path: Path, member: str, flag_bits: int = 0, method: Optional[int] = None) -> Path:
    """Rewrite the central directory entry of ``member`` in place

    ``flag_bits`` is OR-ed into the general purpose flags (0x1 marks the
    member encrypted); ``method`` replaces the compression method.
    """
    data = bytearray(path.read_bytes())
    encoded = member.encode()
    offset = data.find(b"PK\x01\x02")
    while offset != -1:
        name_length = struct.unpack_from("<H", data, offset + 28)[0]
        if bytes(data[offset + 46:offset + 46 + name_length]) == encoded:
            flags = struct.unpack_from("<H", data, offset + 8)[0]
            struct.pack_into("<H", data, offset + 8, flags | flag_bits)
            if method is not None:
                struct.pack_into("<H", data, offset + 10, method)
        offset = data.find(b"PK\x01\x02", offset + 4)
    path.write_bytes(bytes(data))
    return path


def read_zip(path: Path) -> Dict[str, bytes]:
    with zipfile.ZipFile(path) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def scorm12_manifest(href: str = "index.html") -> str:
    return SCORM12_MANIFEST.format(href=href)


@pytest.fixture(scope="session")
def test_client():
    """Create a test client for FastAPI application"""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing file operations"""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def scorm12_package(temp_directory: Path) -> Path:
    """Well-formed SCORM 1.2 package whose script reads suspend data"""
    return build_zip(temp_directory / "course.zip", {
        "imsmanifest.xml": scorm12_manifest(),
        "index.html": SIMPLE_HTML,
        "js/runtime.js": "var data = API.LMSGetValue('cmi.suspend_data');",
    })


@pytest.fixture
def asset_package(temp_directory: Path) -> Path:
    """Package with no SCO resource and no runtime scripts"""
    return build_zip(temp_directory / "asset.zip", {
        "imsmanifest.xml": ASSET_MANIFEST,
        "index.html": SIMPLE_HTML,
    })


@pytest.fixture
def corrupt_archive(temp_directory: Path) -> Path:
    path = temp_directory / "corrupt.zip"
    path.write_bytes(b"PK\x03\x04 this is not really a zip archive")
    return path


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on their location"""
    for item in items:
        if "test_api" in str(item.fspath) or "test_health" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# Helper functions for tests
def assert_response_success(response, expected_status=200):
    """Assert that response is successful"""
    assert response.status_code == expected_status, f"Expected {expected_status}, got {response.status_code}: {response.text}"


def assert_response_error(response, expected_status=400):
    """Assert that response is an error"""
    assert response.status_code == expected_status, f"Expected error {expected_status}, got {response.status_code}"
