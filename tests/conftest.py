from collections.abc import Callable
from pathlib import Path

import pytest

from builders import build_plugin, write_zip


@pytest.fixture
def make_zip(tmp_path: Path) -> Callable[[str, dict[str, bytes]], Path]:
    def _make(name: str, files: dict[str, bytes]) -> Path:
        return write_zip(tmp_path / name, files)

    return _make


@pytest.fixture
def make_plugin(tmp_path: Path) -> Callable[..., Path]:
    def _make(name: str, **kwargs) -> Path:
        path = tmp_path / name
        path.write_bytes(build_plugin(**kwargs))
        return path

    return _make
