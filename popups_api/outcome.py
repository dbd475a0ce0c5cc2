"""
popups_api/outcome.py – how a request concludes.

Every request ends in exactly one ``RequestOutcome``: ``Success`` (HTTP 200,
the accumulated payload) or ``Failure`` (HTTP 400, ``{"error": code}``).
Handlers return the outcome; ``to_response`` turns it into the HTTP reply.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from fastapi import status
from fastapi.responses import JSONResponse


@dataclass(frozen=True)
class Success:
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def status_code(self) -> int:
        return status.HTTP_200_OK

    @property
    def body(self) -> dict[str, Any]:
        return self.payload


@dataclass(frozen=True)
class Failure:
    code: str

    @property
    def status_code(self) -> int:
        return status.HTTP_400_BAD_REQUEST

    @property
    def body(self) -> dict[str, Any]:
        return {"error": self.code}


RequestOutcome = Union[Success, Failure]


def to_response(outcome: RequestOutcome) -> JSONResponse:
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
