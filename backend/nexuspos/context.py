# Overview: Explicit authorization context passed into every service call.

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AuthContext:
    """
    Acting user and tenant for one service call.

    Built by the host (request decorator, CLI command, test) and passed
    down explicitly; services never read identity from globals.
    """
    user_id: int
    business_id: int
    ip_address: str | None = None
    user_agent: str | None = None
