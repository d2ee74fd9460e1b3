"""Shared request dependencies."""

from __future__ import annotations

from fastapi import Header, HTTPException


async def get_account_id(x_account_id: str | None = Header(default=None)) -> str:
    """Account id set by the upstream auth layer in the X-Account-Id header."""
    if not x_account_id or not x_account_id.strip():
        raise HTTPException(status_code=401, detail="Missing authentication.")
    return x_account_id.strip()
