"""Boundary to the authentication service.

Sessions and credentials are handled upstream; by the time a request reaches
this service the auth layer has resolved the caller and forwarded it in headers.
"""
from dataclasses import dataclass
from flask import request
from .errors import UnauthorizedError

ACCOUNT_ID_HEADER = "X-Account-Id"
USERNAME_HEADER = "X-Username"


@dataclass(frozen=True)
class Account:
    account_id: str
    username: str


def resolve_account():
    account_id = request.headers.get(ACCOUNT_ID_HEADER, "").strip()
    if not account_id:
        raise UnauthorizedError("Missing authenticated account")
    return Account(account_id=account_id, username=request.headers.get(USERNAME_HEADER, ""))
