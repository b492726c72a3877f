"""Router for handling RCON command requests.

Match setup, quick match actions, round backups and plugin overrides are
all expressed as fixed command sequences sent through the RCONManager.
Map names, cfg files and plugin paths arrive already resolved by the caller.
"""

import logging
import re

from fastapi import APIRouter, HTTPException, status

from rconpanel.rconclient import CommandResult, RCONManager, ResultKind
from rconpanel.servers import MatchState, ServerQueries

from .models import (
    CommandRequest,
    CommandResponse,
    ConVarRequest,
    MessageResponse,
    PluginOverrideRequest,
    RestoreRoundRequest,
    SayRequest,
    ServerStatus,
    SetupGameRequest,
)

LOGGER = logging.getLogger(__name__)

QUICK_ACTIONS: dict[str, tuple[str, ...]] = {
    "restart": ("mp_restartgame 1",),
    "warmup": ("mp_restartgame 1", "exec warmup.cfg"),
    "knife": ("mp_warmup_end", "mp_restartgame 1", "exec knife.cfg"),
    "go-live": ("mp_warmup_end", "mp_restartgame 1"),
    "swap-teams": ("mp_swapteams",),
    "scramble-teams": ("mp_shuffleteams",),
    "pause": ("mp_pause_match",),
    "unpause": ("mp_unpause_match",),
    "kick-all-bots": ("bot_kick all",),
    "add-bot": ("bot_add",),
    "kill-bots": ("bot_kill",),
}

TOGGLE_CONVARS = frozenset(
    {"mp_limitteams", "mp_autoteambalance", "mp_friendlyfire", "mp_autokick"},
)

_PLAYER_COUNT_PATTERN = re.compile(
    r"players\s*:\s*(\d+)\s*humans,\s*(\d+)\s*bots",
    re.IGNORECASE,
)


def parse_cvar_value(text: str) -> str:
    """Extract the value of a ``name = value`` reply, or the whole reply."""
    if "=" in text:
        return text.split("=", 1)[1].strip()
    return text.strip()


def parse_player_counts(text: str) -> tuple[int, int] | None:
    """Extract ``(humans, bots)`` from a ``status`` reply.

    :param text: The reply, e.g. containing ``players  : 0 humans, 2 bots``
    :return: The counts, or None if the line is missing
    """
    match = _PLAYER_COUNT_PATTERN.search(text)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def _require_connection(result: CommandResult) -> CommandResult:
    if result.kind is ResultKind.NO_CONNECTION:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="No RCON connection to server",
        )
    return result


def configure_command_router(
    router: APIRouter,
    manager: RCONManager,
    queries: ServerQueries,
) -> APIRouter:
    """Configure the command router with necessary dependencies.

    :param router: The FastAPI APIRouter to configure
    :param manager: The RCONManager executing the commands
    :param queries: The server store, for the remembered match state
    :return: The configured APIRouter
    """

    def _require_server(server_id: str) -> None:
        if server_id not in manager:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Server not found",
            )

    async def _run(server_id: str, *commands: str, tag: str) -> CommandResult:
        """Run commands in order, stopping at the first lost connection."""
        _require_server(server_id)
        result = CommandResult.no_connection()
        for command in commands:
            result = _require_connection(
                await manager.execute(server_id, command, tag=tag),
            )
        return result

    @router.post("/{server_id}/command")
    async def command(server_id: str, body: CommandRequest) -> CommandResponse:
        _require_server(server_id)
        result = await manager.execute(server_id, body.command)
        return CommandResponse(**result.to_dict())

    @router.post("/{server_id}/say")
    async def say(server_id: str, body: SayRequest) -> MessageResponse:
        await _run(server_id, f"say {body.message}", tag="rcon")
        return MessageResponse(message="Message sent!")

    @router.get("/{server_id}/hostname")
    async def hostname(server_id: str) -> MessageResponse:
        result = await _run(server_id, "hostname", tag="rcon")
        return MessageResponse(message=parse_cvar_value(result.text or ""))

    @router.get("/{server_id}/status")
    async def server_status(server_id: str) -> ServerStatus:
        match_state = await queries.get_match_state(server_id)
        if match_state is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Server not found",
            )

        counts = None
        result = await manager.execute(server_id, "status", tag="status")
        if result.kind is ResultKind.SUCCESS:
            counts = parse_player_counts(result.text or "")
        humans, bots = counts if counts is not None else (None, None)

        return ServerStatus(
            map=match_state.last_map,
            last_game_type=match_state.last_game_type,
            last_game_mode=match_state.last_game_mode,
            humans=humans,
            bots=bots,
        )

    @router.post("/{server_id}/setup-game")
    async def setup_game(server_id: str, body: SetupGameRequest) -> MessageResponse:
        commands = []
        if body.team1.strip():
            commands.append(f'mp_teamname_1 "{body.team1.strip()}"')
        if body.team2.strip():
            commands.append(f'mp_teamname_2 "{body.team2.strip()}"')
        commands.append(f"changelevel {body.map}")
        await _run(server_id, *commands, tag="setup-game")
        _require_connection(await manager.exec_cfg(server_id, body.exec_cfg))

        await queries.update_match_state(
            server_id,
            MatchState(
                last_map=body.map,
                last_game_type=body.game_type,
                last_game_mode=body.game_mode,
            ),
        )
        return MessageResponse(message="Game Created!")

    @router.post("/{server_id}/actions/{action}")
    async def quick_action(server_id: str, action: str) -> MessageResponse:
        commands = QUICK_ACTIONS.get(action)
        if commands is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown action: {action}",
            )
        await _run(server_id, *commands, tag="setup-game")
        return MessageResponse(message=f"{action} done")

    @router.post("/{server_id}/convars/{name}")
    async def toggle_convar(
        server_id: str,
        name: str,
        body: ConVarRequest,
    ) -> MessageResponse:
        if name not in TOGGLE_CONVARS:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown convar: {name}",
            )
        await _run(server_id, f"{name} {body.value}", tag="setup-game")
        return MessageResponse(message=f"{name} set to {body.value}")

    @router.get("/{server_id}/backups")
    async def list_backups(server_id: str) -> MessageResponse:
        result = await _run(server_id, "mp_backup_restore_list_files", tag="backups")
        return MessageResponse(message=result.text or "")

    @router.post("/{server_id}/backups/restore")
    async def restore_round(
        server_id: str,
        body: RestoreRoundRequest,
    ) -> MessageResponse:
        backup_file = f"backup_round{body.round_number:02d}.txt"
        await _run(
            server_id,
            f"mp_backup_restore_load_file {backup_file}",
            "mp_pause_match",
            tag="backups",
        )
        return MessageResponse(message="Round restored!")

    @router.post("/{server_id}/backups/restore-latest")
    async def restore_latest_backup(server_id: str) -> MessageResponse:
        result = await _run(server_id, "mp_backup_round_file_last", tag="backups")
        text = result.text or ""
        last_file = parse_cvar_value(text) if "=" in text else ""
        if not last_file.endswith(".txt"):
            return MessageResponse(message="No latest backup found!")

        await _run(
            server_id,
            f"mp_backup_restore_load_file {last_file}",
            "mp_pause_match",
            tag="backups",
        )
        return MessageResponse(message=f"Latest round restored ({last_file})")

    @router.post("/{server_id}/plugins")
    async def override_plugins(
        server_id: str,
        body: PluginOverrideRequest,
    ) -> MessageResponse:
        _require_server(server_id)
        for plugin_path in body.unload:
            _require_connection(
                await manager.exec_plugin_command(server_id, "unload", plugin_path),
            )
        for plugin_path in body.reload:
            _require_connection(
                await manager.exec_plugin_command(server_id, "reload", plugin_path),
            )
        return MessageResponse(message="Plugins successfully overridden via RCON.")

    return router
