from __future__ import annotations

import pytest

from rolevault.auth.dependencies import _bearer_token
from rolevault.errors import AuthError


def test_bearer_token_ok() -> None:
    assert _bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"


@pytest.mark.parametrize("value", [None, "", "Basic xxx", "Bearer", "Bearer "])
def test_bearer_token_invalid(value) -> None:
    with pytest.raises(AuthError):
        _bearer_token(value)


def test_bearer_scheme_is_case_insensitive() -> None:
    assert _bearer_token("bearer abc") == "abc"
