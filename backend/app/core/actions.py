"""
Response shapes for intent-tagged form actions.

A successful action answers with a toast for the UI and the page the client
should navigate to next.
"""
from typing import Any, Literal

from pydantic import BaseModel


class Toast(BaseModel):
    type: Literal["success", "error", "message"] = "success"
    title: str
    description: str | None = None


class ActionResponse(BaseModel):
    toast: Toast
    redirect_to: str | None = None
    data: dict[str, Any] | None = None


def success(title: str, description: str | None = None, redirect_to: str | None = None, **data) -> ActionResponse:
    return ActionResponse(
        toast=Toast(type="success", title=title, description=description),
        redirect_to=redirect_to,
        data=data or None,
    )
