from __future__ import annotations

from typing import Any

from nicegui import ui

from app.models.bot import BotStatus, TradeLogEntry
from app.services.session_state import SessionState


class RefreshHint:
    """Spinner while an entity is loading, warning text when its refresh failed."""

    def __init__(self, entity: str) -> None:
        self.entity = entity
        with ui.row().classes("items-center gap-2 min-h-[1.25rem]"):
            self._spinner = ui.spinner(size="sm")
            self._warning = ui.label("").classes("text-xs text-amber-700")
        self._spinner.set_visibility(False)
        self._warning.set_visibility(False)

    def update(self, state: SessionState) -> None:
        self._spinner.set_visibility(state.is_pending(self.entity))
        failed = state.is_failed(self.entity)
        self._warning.set_visibility(failed)
        if failed:
            detail = state.errors.get(self.entity) or "refresh failed"
            self._warning.set_text(f"Showing last known value ({detail})")


def badge_stat(label: str, value: Any, color: str = "primary") -> ui.element:
    with ui.card().classes("items-center justify-center p-4") as card:
        ui.label(label).classes("text-xs text-gray-500")
        value_label = ui.label(value).classes(f"text-xl font-semibold text-{color}")
    card.value_label = value_label  # type: ignore[attr-defined]
    return card


def status_color(status: BotStatus | None) -> str:
    if status is BotStatus.RUNNING:
        return "text-green-600"
    if status is BotStatus.STOPPED:
        return "text-red-600"
    return "text-gray-500"


def format_log_time(entry: TradeLogEntry, fmt: str = "%H:%M:%S") -> str:
    return entry.observed_at.astimezone().strftime(fmt)


def trade_log_item(entry: TradeLogEntry) -> ui.element:
    with ui.column().classes("w-full gap-0 border-b border-gray-300 pb-2 text-sm") as item:
        with ui.row().classes("gap-1"):
            ui.label(entry.action).classes("font-semibold")
            ui.label(f"at {format_log_time(entry)}")
        ui.label(f"Reason: {entry.reason}").classes("text-gray-700")
        ui.label(f"Price: ${entry.price}").classes("text-gray-700")
    return item


__all__ = [
    "RefreshHint",
    "badge_stat",
    "format_log_time",
    "status_color",
    "trade_log_item",
]
