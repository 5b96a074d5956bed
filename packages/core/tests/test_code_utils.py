"""Tests for file filtering utilities."""

import types

from hunkwise_core.utils.code import is_code_file, is_reviewable


class TestIsCodeFile:
    def test_python_file_is_code(self):
        assert is_code_file("app/services/user.py") is True

    def test_js_file_is_code(self):
        assert is_code_file("src/components/Button.tsx") is True

    def test_image_is_not_code(self):
        assert is_code_file("assets/logo.png") is False

    def test_lock_files_are_not_code(self):
        assert is_code_file("poetry.lock") is False
        assert is_code_file("web/package-lock.json") is False

    def test_generated_files_are_not_code(self):
        assert is_code_file("static/app.min.js") is False
        assert is_code_file("api/service_pb2.py") is False

    def test_case_insensitive(self):
        assert is_code_file("image.PNG") is False


class TestIsReviewable:
    def _file(self, filename="a.py", status="modified", patch="@@ -1,1 +1,1 @@\n-a\n+b"):
        return types.SimpleNamespace(filename=filename, status=status, patch=patch)

    def test_modified_code_file(self):
        assert is_reviewable(self._file()) is True

    def test_removed_file(self):
        assert is_reviewable(self._file(status="removed")) is False

    def test_missing_patch(self):
        assert is_reviewable(self._file(patch=None)) is False

    def test_binary_file(self):
        assert is_reviewable(self._file(filename="logo.png")) is False
