from __future__ import annotations

import asyncio
from typing import Any

from fastapi import FastAPI
from nicegui import app as nicegui_app
from nicegui import ui

from app.core.config import get_settings
from app.models.bot import MIN_PRICE_POINTS, BotStatus
from app.services.gateway import HttpBotGateway
from app.services.identity_service import IdentitySession, LoginBroker, RedirectIdentityProvider
from app.services.session_controller import ActionOutcome, SessionController
from app.services.session_state import SessionState
from app.ui.components import RefreshHint, badge_stat, status_color, trade_log_item

ACTIVITY_FEED_SIZE = 8


def register_pages(app: FastAPI) -> None:
    settings = get_settings()

    def page_container() -> ui.element:
        container = ui.card().classes(
            "w-full max-w-3xl mx-auto bg-white/95 p-6 md:p-8 gap-6 shadow-sm"
        )
        container.style("border-radius: 1.25rem")
        return container

    def render_unavailable(wrapper: ui.element) -> None:
        with wrapper:
            ui.label("Quanturnic AI Bot").classes("text-3xl font-bold text-center w-full")
            ui.label("Bot service connection is not configured.").classes(
                "text-center text-red-600 w-full"
            )

    def render_dashboard() -> None:
        page_client = ui.context.client
        wrapper = page_container()
        gateway: HttpBotGateway | None = getattr(app.state, "gateway", None)
        broker: LoginBroker | None = getattr(app.state, "login_broker", None)
        if gateway is None or broker is None:
            render_unavailable(wrapper)
            return

        session_key = str(nicegui_app.storage.browser.get("id") or page_client.id)

        def open_login(url: str) -> None:
            login_slot.clear()
            with login_slot:
                ui.link("Continue sign-in with the identity provider", url, new_tab=True).classes(
                    "text-sm text-blue-700 underline"
                )

        state = SessionState()
        identity = IdentitySession(
            RedirectIdentityProvider(broker, session_key, open_login),
            login_timeout=settings.login_timeout,
        )
        controller = SessionController(gateway.bind(lambda: state.principal), identity, state=state)

        def notify(outcome: ActionOutcome) -> None:
            with page_client:
                ui.notify(outcome.message, color="positive" if outcome.ok else "negative")

        async def run_action(button: ui.button, action) -> None:
            button.disable()
            try:
                outcome = await action()
            finally:
                button.enable()
            notify(outcome)

        async def handle_sign_in() -> None:
            await run_action(sign_in_button, controller.sign_in)

        async def handle_toggle() -> None:
            await run_action(toggle_button, controller.toggle_bot)

        async def handle_analyze() -> None:
            await run_action(analyze_button, lambda: controller.submit_prices(price_input.value))

        async def handle_update_config() -> None:
            await run_action(
                config_button,
                lambda: controller.update_config(strategy_input.value, threshold_input.value),
            )

        with wrapper:
            ui.label("Quanturnic AI Bot").classes("text-3xl font-bold text-center w-full")
            with ui.row().classes("w-full justify-center items-center gap-2"):
                principal_label = ui.label("").classes("text-sm text-gray-600")
                sign_in_button = ui.button("Sign in", on_click=handle_sign_in).props("flat dense")
                identity_hint = RefreshHint("identity")
            login_slot = ui.row().classes("w-full justify-center")

            with ui.row().classes("w-full justify-center gap-4"):
                status_card = badge_stat("Bot status", "--")
                balance_card = badge_stat("Simulated balance", "--")
            with ui.row().classes("w-full justify-center items-center gap-4"):
                toggle_button = ui.button("Start Bot", on_click=handle_toggle).classes(
                    "bg-blue-600 text-white"
                )
                status_hint = RefreshHint("status")
                balance_hint = RefreshHint("balance")

            ui.label("Analyze Market").classes("text-xl font-semibold")
            price_input = ui.textarea(
                placeholder="Enter price history (e.g. 30,32,31,33,35)"
            ).classes("w-full")
            ui.label(f"At least {MIN_PRICE_POINTS} numeric prices; other entries are ignored.").classes(
                "text-xs text-gray-500"
            )
            with ui.row().classes("items-center gap-4"):
                analyze_button = ui.button("Analyze Market", on_click=handle_analyze).classes(
                    "bg-green-600 text-white"
                )
                decision_label = ui.label("").classes("text-sm font-semibold")

            ui.label("Bot Configuration").classes("text-xl font-semibold")
            strategy_input = ui.input(
                "Strategy",
                placeholder="Strategy (e.g. basic, macd, svm)",
                on_change=lambda e: controller.config.edit(strategy=e.value or ""),
            ).classes("w-full")
            threshold_input = ui.input(
                "Threshold",
                placeholder="Threshold (e.g. 0.5)",
                on_change=lambda e: controller.config.edit(threshold=e.value or ""),
            ).classes("w-full")
            with ui.row().classes("items-center gap-4"):
                config_button = ui.button("Update Config", on_click=handle_update_config).classes(
                    "bg-yellow-500 text-white"
                )
                config_hint = RefreshHint("config")

            with ui.row().classes("items-center gap-4"):
                ui.label("Trade Logs").classes("text-xl font-semibold")
                logs_hint = RefreshHint("logs")
            logs_container = ui.column().classes(
                "w-full bg-gray-100 p-4 rounded max-h-64 overflow-y-auto gap-2"
            )

            with ui.expansion("Activity").classes("w-full text-sm"):
                activity_container = ui.column().classes("w-full gap-1 text-xs text-gray-600")

        hints = [identity_hint, status_hint, balance_hint, config_hint, logs_hint]
        rendered_logs: dict[str, Any] = {"entries": None}

        def render_logs(current: SessionState) -> None:
            if rendered_logs["entries"] is current.logs:
                return
            rendered_logs["entries"] = current.logs
            logs_container.clear()
            with logs_container:
                if not current.logs:
                    ui.label("No logs yet.").classes("text-gray-500")
                for entry in current.logs:
                    trade_log_item(entry)

        def update(current: SessionState) -> None:
            principal = current.principal
            principal_label.set_text(f"Logged in as: {principal}" if principal else "")
            principal_label.set_visibility(bool(principal))
            login_open = current.is_pending("identity")
            sign_in_button.set_visibility(not principal and not login_open)
            login_slot.set_visibility(login_open)

            status = current.bot_status
            status_card.value_label.set_text(status.label if status else "--")  # type: ignore[attr-defined]
            status_card.value_label.classes(  # type: ignore[attr-defined]
                replace=f"text-xl font-semibold {status_color(status)}"
            )
            toggle_button.set_text("Stop Bot" if status is BotStatus.RUNNING else "Start Bot")
            balance = current.balance
            balance_card.value_label.set_text(f"${balance.display}" if balance else "--")  # type: ignore[attr-defined]

            draft = current.draft_config
            if strategy_input.value != draft.strategy:
                strategy_input.value = draft.strategy
            if threshold_input.value != draft.threshold:
                threshold_input.value = draft.threshold
            decision_label.set_text(f"Last decision: {current.last_decision}" if current.last_decision else "")

            for hint in hints:
                hint.update(current)
            render_logs(current)

        def refresh_activity() -> None:
            events = list(getattr(app.state, "backend_events", None) or [])[-ACTIVITY_FEED_SIZE:]
            activity_container.clear()
            with activity_container:
                if not events:
                    ui.label("No activity yet.")
                for event in reversed(events):
                    ui.label(f"{event.get('timestamp')} · {event.get('message')}")

        controller.subscribe(update)
        update(state)
        startup_task = asyncio.create_task(controller.startup())
        activity_timer = ui.timer(5, refresh_activity)

        def _teardown_client(_: Any | None = None) -> None:
            controller.unsubscribe(update)
            activity_timer.cancel()
            controller.close()
            broker.forget(session_key)
            if not startup_task.done():
                startup_task.cancel()

        page_client.on_disconnect(_teardown_client)

    @ui.page("/")
    def home() -> None:
        render_dashboard()


__all__ = ["register_pages"]
