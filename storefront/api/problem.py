# storefront/api/problem.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, NoReturn, Optional

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict


class ProblemDetail(BaseModel):
    """One entry of Problem.details; extra keys are carried through untouched."""

    model_config = ConfigDict(extra="allow")

    type: Literal["validation", "shortage", "state", "conflict"]
    path: Optional[str] = None
    reason: Optional[str] = None
    variant_id: Optional[str] = None
    item_id: Optional[int] = None
    required_qty: Optional[int] = None
    available_qty: Optional[int] = None


class NextAction(BaseModel):
    action: str
    label: Optional[str] = None


class Problem(BaseModel):
    """Error body shared by every non-2xx response."""

    error_code: str
    message: str
    http_status: int
    context: Optional[Dict[str, Any]] = None
    details: Optional[List[ProblemDetail]] = None
    next_actions: Optional[List[NextAction]] = None
    trace_id: Optional[str] = None


def make_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[List[Dict[str, Any]]] = None,
    next_actions: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    problem = Problem(
        error_code=error_code,
        message=message,
        http_status=int(status_code),
        context=context or None,
        details=[ProblemDetail(**d) for d in details] if details else None,
        next_actions=[NextAction(**a) for a in next_actions] if next_actions else None,
        trace_id=trace_id,
    )
    return problem.model_dump(exclude_none=True)


def raise_problem(status_code: int, error_code: str, message: str, **kw: Any) -> NoReturn:
    """Abort the request with a Problem body (rendered by the HTTPException handler)."""
    raise HTTPException(
        status_code=int(status_code),
        detail=make_problem(status_code=status_code, error_code=error_code, message=message, **kw),
    )
