"""Shared pagination response type aliases used by API routes."""

from __future__ import annotations

from typing import TypeVar

from fastapi import Query
from fastapi_pagination.customization import CustomizedPage, UseParamsFields
from fastapi_pagination.limit_offset import LimitOffsetPage

T = TypeVar("T")

# Project-wide default pagination response model for list endpoints.
DefaultLimitOffsetPage = CustomizedPage[
    LimitOffsetPage[T],
    UseParamsFields(
        limit=Query(100, ge=1, le=200),
        offset=Query(0, ge=0),
    ),
]
