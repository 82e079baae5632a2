from __future__ import annotations

import pyotp


def new_secret() -> str:
    return pyotp.random_base32()


def provisioning_uri(secret: str, account_name: str, issuer: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=issuer)


def verify_code(secret: str | None, code: str) -> bool:
    if not secret or not code:
        return False
    # one step of drift either way
    return pyotp.TOTP(secret).verify(code.strip(), valid_window=1)
