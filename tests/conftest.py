import os
import tempfile

# Keep the TSV log out of scripts/ while testing; must happen before sft_replace is imported.
os.environ.setdefault("SFB_LOG_DIR", tempfile.mkdtemp(prefix="sft_replace_log_"))

import pytest

import sft_replace


@pytest.fixture
def make_request():
    """Build a ReplaceRequest with test-friendly defaults."""

    def _make(search="target", replace="REPLACED", **kwargs):
        return sft_replace.ReplaceRequest(search=search, replace=replace, **kwargs)

    return _make


@pytest.fixture
def write_file(tmp_path):
    """Create a file under tmp_path from str or bytes content."""

    def _write(name, content, mode=None):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode("utf-8")
        path.write_bytes(content)
        if mode is not None:
            path.chmod(mode)
        return path

    return _write
