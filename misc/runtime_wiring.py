from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_activity import register as register_activity
from misc.commands.commands_meeting import register as register_meeting
from misc.commands.commands_member import register as register_member
from misc.commands.commands_owner import register as register_owner
from misc.commands.commands_report import register as register_report
from misc.commands.commands_summary import register as register_summary
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps
from misc.events_runtime import register_runtime_events


def wire_bot_runtime(
    bot,
    *,
    db_lock,
    db_conn,
    list_schema_migrations_sync,
    send_chunked,
    member_directory,
    report_ledger,
    summary_compiler,
    meeting_engine,
    user_is_manager,
    user_is_member,
    page_size: int,
    max_page_size: int,
    activity_refresh_enabled: bool,
    activity_loop_func,
) -> None:
    command_deps = CommandDeps(
        send_chunked=send_chunked,
        page_size=page_size,
        max_page_size=max_page_size,
        members=member_directory,
        reports=report_ledger,
        summaries=summary_compiler,
        meetings=meeting_engine,
        db_lock=db_lock,
        db_conn=db_conn,
        list_schema_migrations_sync=list_schema_migrations_sync,
    )
    command_gates = CommandGates(
        user_is_manager=user_is_manager,
        user_is_member=user_is_member,
    )

    for register in (
        register_owner,
        register_member,
        register_activity,
        register_report,
        register_summary,
        register_meeting,
    ):
        register(
            bot,
            deps=command_deps,
            gates=command_gates,
        )

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            meetings=meeting_engine,
            members=member_directory,
        ),
        boot=RuntimeBootDeps(
            activity_refresh_enabled=activity_refresh_enabled,
            activity_loop_func=activity_loop_func,
        ),
    )
