"""Router for managing the stored servers and their connections."""

import logging

from fastapi import APIRouter, HTTPException, status

from rconpanel.rconclient import RCONManager, ServerRecord, UnknownServerError
from rconpanel.servers import ServerQueries

from .models import ConnectionInfo, MessageResponse, ServerCreate, ServerInfo

LOGGER = logging.getLogger(__name__)


def _server_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Server not found")


def configure_server_router(
    router: APIRouter,
    manager: RCONManager,
    queries: ServerQueries,
) -> APIRouter:
    """Configure the server router with necessary dependencies.

    :param router: The FastAPI APIRouter to configure
    :param manager: The RCONManager owning the sessions
    :param queries: The server store
    :return: The configured APIRouter
    """

    def _server_info(record: ServerRecord) -> ServerInfo:
        session_status = manager.status(record.id)
        return ServerInfo(
            id=record.id,
            host=record.host,
            port=record.port,
            connected=session_status.connected if session_status else False,
            authenticated=session_status.authenticated if session_status else False,
        )

    @router.get("")
    async def list_servers() -> list[ServerInfo]:
        records = await queries.list_all()
        return [_server_info(record) for record in records]

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def add_server(server: ServerCreate) -> ServerInfo:
        record = await queries.add_server(server.host, server.port, server.secret)
        await manager.add(record)
        return _server_info(record)

    @router.put("/{server_id}")
    async def update_server(server_id: str, server: ServerCreate) -> ServerInfo:
        record = ServerRecord(
            id=server_id,
            host=server.host,
            port=server.port,
            secret=server.secret,
        )
        if not await queries.update_server(record):
            raise _server_not_found()
        try:
            await manager.reconnect(server_id)
        except UnknownServerError as e:
            raise _server_not_found() from e
        return _server_info(record)

    @router.delete("/{server_id}")
    async def delete_server(server_id: str) -> MessageResponse:
        deleted = await queries.delete_server(server_id)
        await manager.delete(server_id)
        if not deleted:
            raise _server_not_found()
        return MessageResponse(message="Server deleted successfully")

    @router.post("/{server_id}/reconnect")
    async def reconnect_server(server_id: str) -> ConnectionInfo:
        try:
            await manager.reconnect(server_id)
        except UnknownServerError as e:
            raise _server_not_found() from e

        session_status = manager.status(server_id)
        if session_status is None:
            raise _server_not_found()
        return ConnectionInfo(
            id=session_status.id,
            connected=session_status.connected,
            authenticated=session_status.authenticated,
        )

    @router.get("/{server_id}/connection")
    async def connection_status(server_id: str) -> ConnectionInfo:
        session_status = manager.status(server_id)
        if session_status is None:
            raise _server_not_found()
        return ConnectionInfo(
            id=session_status.id,
            connected=session_status.connected,
            authenticated=session_status.authenticated,
        )

    return router
