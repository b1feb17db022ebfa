"""Tests for shared API helpers."""

import pytest
from fastapi import HTTPException

from api.helpers import error_detail, get_current_user_id


class TestGetCurrentUserId:
    def test_strips_header(self):
        assert get_current_user_id("  user-1 ") == "user-1"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_header(self, value):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user_id(value)
        assert exc_info.value.status_code == 401


def test_error_detail_shape():
    assert error_detail("BATCH_NOT_FOUND", "Batch not found") == {
        "code": "BATCH_NOT_FOUND",
        "message": "Batch not found",
    }
