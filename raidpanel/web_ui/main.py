"""NiceGUI entrypoint for the storage assistant web runtime."""

from __future__ import annotations

import argparse
import asyncio
import os
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request
from nicegui import ui

from raidpanel.domain.entities import AccessMode
from raidpanel.domain.ports import UseCaseError
from raidpanel.usecases.storage_assistant import AssistantHooks, StorageAssistant
from raidpanel.utils import logging as logging_utils
from raidpanel.viewmodels.storage_vm import StorageAssistantVM
from raidpanel.web_ui.runtime import WebRuntime, location_from_request

REFRESH_INTERVAL_S = 0.25


def _install_theme() -> None:
    """Install the few CSS tokens the page uses."""
    ui.add_head_html(
        """
<style>
:root {
  --rp-card: rgba(255, 255, 255, 0.92);
  --rp-border: #d0d7e2;
}
.rp-page { max-width: 1100px; margin: 0 auto; padding: 14px; }
.rp-card { background: var(--rp-card); border: 1px solid var(--rp-border); border-radius: 12px; }
.rp-mono { font-family: monospace; font-size: 12px; }
</style>
        """
    )


def _build_ui(runtime: WebRuntime) -> None:
    """Register the NiceGUI pages for the runtime."""

    @ui.page("/")
    async def index(request: Request) -> None:
        loop = asyncio.get_running_loop()
        client = ui.context.client
        vm = StorageAssistantVM()
        notices: List[Tuple[str, str]] = []
        dirty = {"value": True}
        holder: Dict[str, Optional[StorageAssistant]] = {"assistant": None}
        settings_form: Dict[str, Any] = dict(runtime.settings_payload())

        def mark_dirty() -> None:
            dirty["value"] = True

        def on_error(err: UseCaseError) -> None:
            notices.append((err.message, "negative"))
            mark_dirty()

        def on_plan(plan) -> None:
            assistant = holder["assistant"]
            planner = assistant.planner if assistant is not None else None
            vm.apply_plan(
                plan,
                target=planner.target if planner is not None else None,
                pending=planner.pending if planner is not None else False,
            )

        vm.on_change = mark_dirty
        hooks = AssistantHooks(
            on_disks=vm.apply_disks,
            on_status=vm.apply_status,
            on_suggestion=vm.apply_suggestion,
            on_plan=on_plan,
            on_log=vm.apply_logs,
            on_progress=vm.apply_progress,
            on_execution_status=vm.apply_execution,
            on_channel_state=vm.apply_channel,
            on_mode=vm.apply_mode,
            on_poll_error=lambda err, failures: vm.apply_poll_error(err.message, failures),
            on_error=on_error,
        )

        @ui.refreshable
        def render_header() -> None:
            with ui.row().classes("w-full justify-between items-center rp-card p-3"):
                ui.label("RAID storage assistant").classes("text-h5")
                with ui.row().classes("items-center q-gutter-sm"):
                    ui.badge(f"mode: {vm.mode_label or '-'}", color="primary")
                    ui.badge(f"channel: {vm.channel_label}", color="teal")
                    text, color = vm.status_badge()
                    ui.badge(text, color=color)

        @ui.refreshable
        def render_array() -> None:
            with ui.card().classes("rp-card w-full"):
                ui.label(vm.array_summary()).classes("text-subtitle1")
                if vm.poll_warning:
                    ui.label(vm.poll_warning).classes("text-warning")
                if vm.advisor_text():
                    ui.label(vm.advisor_text()).classes("text-info")
                labels = vm.progress_labels()
                if labels.visible:
                    ui.linear_progress(value=labels.percent / 100.0, show_value=False)
                    ui.label(
                        " ".join(part for part in (labels.percent_text, labels.eta_text, labels.speed_text) if part)
                    ).classes("rp-mono")
                if vm.can_stop_resync():
                    ui.button("Stop resync", on_click=stop_resync, color="negative").props("outline")

        @ui.refreshable
        def render_disks() -> None:
            with ui.card().classes("rp-card w-full"):
                ui.label("Disks").classes("text-subtitle1")
                for row in vm.disk_rows():
                    with ui.row().classes("items-center q-gutter-sm"):
                        ui.button(
                            row.label,
                            color="primary" if row.selected else "grey-6",
                            on_click=lambda _, p=row.path: select_disk(p),
                        ).props("dense" if row.selectable else "dense disable")
                        ui.label(row.size_text).classes("rp-mono")
                        ui.label(row.badge).classes("text-caption")

        @ui.refreshable
        def render_plan() -> None:
            with ui.card().classes("rp-card w-full"):
                for banner in vm.banners():
                    color = "text-negative" if banner.level == "error" else "text-warning"
                    ui.label(banner.text).classes(color)
                action = vm.action_state()
                button = ui.button(action.label, on_click=open_confirmation, color="primary")
                if not action.enabled:
                    button.disable()
                    ui.label(action.reason).classes("text-caption")

        @ui.refreshable
        def render_log() -> None:
            with ui.card().classes("rp-card w-full"):
                ui.label("Operation log").classes("text-subtitle1")
                with ui.column().classes("rp-mono w-full"):
                    for line in vm.log_lines()[-200:]:
                        ui.label(line)

        def refresh_views() -> None:
            while notices:
                message, color = notices.pop(0)
                ui.notify(message, color=color, close_button="OK")
            if not dirty["value"]:
                return
            dirty["value"] = False
            render_header.refresh()
            render_array.refresh()
            render_disks.refresh()
            render_plan.refresh()
            render_log.refresh()

        def select_disk(path: str) -> None:
            assistant = holder["assistant"]
            if assistant is None:
                return
            vm.apply_selection(None if vm.selected == path else path)
            assistant.select_disk(vm.selected)

        def stop_resync() -> None:
            assistant = holder["assistant"]
            if assistant is not None:
                assistant.stop_resync()

        def open_confirmation() -> None:
            assistant = holder["assistant"]
            if assistant is None:
                return
            confirmation = assistant.confirm()
            if confirmation is None:
                return
            with ui.dialog() as dialog, ui.card():
                ui.label(f"Add {confirmation.target_disk} to the array").classes("text-h6")
                for warning in confirmation.warnings:
                    ui.label(warning).classes("text-warning")
                for step in confirmation.steps:
                    ui.label(step).classes("rp-mono")
                acknowledged = ui.checkbox(confirmation.acknowledgment_text)
                with ui.row():
                    ui.button("Cancel", on_click=dialog.close).props("flat")
                    run_button = ui.button(
                        "Execute",
                        color="negative",
                        on_click=lambda: (assistant.execute(bool(acknowledged.value)), dialog.close()),
                    )
                    run_button.bind_enabled_from(acknowledged, "value")
            dialog.open()

        def switch_mode(mode: AccessMode) -> None:
            assistant = holder["assistant"]
            if assistant is None:
                return

            def _done(result) -> None:
                if result.ok:
                    notices.append((f"Switched to {result.mode.value} access.", "positive"))
                    mark_dirty()

            assistant.switch_mode(mode, _done)

        def save_settings() -> None:
            try:
                runtime.save_settings(settings_form)
            except ValueError as exc:
                ui.notify(str(exc), color="negative", close_button="OK")
                return
            ui.notify(runtime.status_message, color="positive")

        with ui.column().classes("rp-page w-full q-gutter-sm"):
            render_header()
            with ui.row().classes("q-gutter-sm"):
                ui.button("Private", on_click=lambda: switch_mode(AccessMode.PRIVATE)).props("outline")
                ui.button("Public", on_click=lambda: switch_mode(AccessMode.PUBLIC)).props("outline")
                ui.button("Refresh", on_click=lambda: holder["assistant"] and holder["assistant"].refresh())
            render_array()
            render_disks()
            render_plan()
            render_log()
            with ui.expansion("Settings").classes("w-full rp-card"):
                ui.input(
                    "Array device",
                    value=settings_form["array_device"],
                    on_change=lambda e: settings_form.__setitem__("array_device", str(e.value or "")),
                ).props("dense outlined")
                ui.input(
                    "API token",
                    value=settings_form["api_token"],
                    password=True,
                    on_change=lambda e: settings_form.__setitem__("api_token", str(e.value or "")),
                ).props("dense outlined")
                ui.number(
                    "Status poll (ms)",
                    value=settings_form["status_poll_ms"],
                    on_change=lambda e: settings_form.__setitem__("status_poll_ms", int(e.value or 5000)),
                ).props("dense outlined")
                ui.checkbox(
                    "Enable debug logging",
                    value=settings_form["debug_logging"],
                    on_change=lambda e: settings_form.__setitem__("debug_logging", bool(e.value)),
                )
                ui.button("Save", on_click=save_settings, color="primary")

        location = location_from_request(str(request.url), dict(request.headers))
        holder["assistant"] = runtime.open_page(location, loop, hooks)
        client.on_disconnect(lambda: holder["assistant"] and holder["assistant"].teardown())
        ui.timer(REFRESH_INTERVAL_S, refresh_views)


def _parse_args() -> argparse.Namespace:
    """Parse CLI args for web runtime startup."""
    parser = argparse.ArgumentParser(description="Run the RAID storage assistant web UI.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument("--storage-root", default=None)
    parser.add_argument("--dry-run", action="store_true", help="Send dryRun with add-disk requests.")
    parser.add_argument("--smoke-test", action="store_true")
    return parser.parse_args()


def main() -> None:
    """CLI entrypoint for the NiceGUI runtime."""
    args = _parse_args()
    logging_utils.configure_root()
    runtime = WebRuntime(storage_root=args.storage_root, dry_run=args.dry_run)
    if args.smoke_test:
        payload = runtime.settings_payload()
        print("web-smoke-ok", payload.get("array_device"))
        return
    _install_theme()
    _build_ui(runtime)
    ui.run(
        host=args.host,
        port=args.port,
        title="RAID storage assistant",
        reload=args.reload,
        show=False,
        storage_secret=os.environ.get("RAIDPANEL_WEB_STORAGE_SECRET", "raidpanel-web-ui-secret"),
    )


if __name__ in {"__main__", "__mp_main__"}:
    main()
