# pyright: reportMissingTypeStubs=false
"""
MQTT Integration API endpoints.

Manage MQTT servers and the per-resource MQTT notification targets that
publish "in use" / "not in use" messages through them. Topics and messages are
Jinja2 templates (see services.template_renderer).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_mqtt_client_service, get_mqtt_publisher
from api.responses import ConnectionTestResponse
from auth.dependencies import UserContext, require_resource_manager
from core.database import get_db
from models import MqttResourceConfig, MqttServer
from services.mqtt_client_service import MqttClientService
from services.mqtt_config_service import MqttResourceConfigService, MqttServerService
from services.mqtt_publisher_service import MqttPublisherService
from services.template_renderer import TEMPLATE_SYNTAX_HELP

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request/Response Models =====

class MqttServerCreateRequest(BaseModel):
    """Request model for creating an MQTT server."""
    name: str = Field(..., min_length=1, max_length=255)
    host: str = Field(..., min_length=1, max_length=255)
    port: int = Field(1883, ge=1, le=65535)
    use_tls: bool = False
    client_id: Optional[str] = Field(None, max_length=255)
    username: Optional[str] = None
    password: Optional[str] = None


class MqttServerUpdateRequest(BaseModel):
    """Request model for updating an MQTT server."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    host: Optional[str] = Field(None, min_length=1, max_length=255)
    port: Optional[int] = Field(None, ge=1, le=65535)
    use_tls: Optional[bool] = None
    client_id: Optional[str] = Field(None, max_length=255)
    username: Optional[str] = None
    password: Optional[str] = None


class MqttServerResponse(BaseModel):
    """Response model for MQTT server. The password is never returned."""
    id: int
    name: str
    host: str
    port: int
    use_tls: bool
    client_id: Optional[str]
    username: Optional[str]
    has_password: bool
    connected: bool
    created_at: datetime
    updated_at: datetime


class MqttServerListResponse(BaseModel):
    """Response model for MQTT server list."""
    servers: List[MqttServerResponse]


class MqttServerStatusResponse(BaseModel):
    """Response model for MQTT server connection status."""
    server_id: int
    connected: bool
    connect_attempts: int
    connect_successes: int
    connect_failures: int
    publish_successes: int
    publish_failures: int
    last_error: Optional[str] = None
    last_connected_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None


class MqttStatusListResponse(BaseModel):
    """Response model for the status of every known server."""
    statuses: List[MqttServerStatusResponse]


class MqttConfigCreateRequest(BaseModel):
    """Request model for creating a resource MQTT config."""
    server_id: int
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    in_use_topic: str = Field(..., min_length=1)
    in_use_message: str = Field(..., description=TEMPLATE_SYNTAX_HELP)
    not_in_use_topic: str = Field(..., min_length=1)
    not_in_use_message: str = Field(..., description=TEMPLATE_SYNTAX_HELP)


class MqttConfigUpdateRequest(BaseModel):
    """Request model for updating a resource MQTT config."""
    server_id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    in_use_topic: Optional[str] = Field(None, min_length=1)
    in_use_message: Optional[str] = Field(None, description=TEMPLATE_SYNTAX_HELP)
    not_in_use_topic: Optional[str] = Field(None, min_length=1)
    not_in_use_message: Optional[str] = Field(None, description=TEMPLATE_SYNTAX_HELP)


class MqttConfigResponse(BaseModel):
    """Response model for resource MQTT config."""
    id: int
    resource_id: int
    server_id: int
    name: str
    in_use_topic: str
    in_use_message: str
    not_in_use_topic: str
    not_in_use_message: str
    created_at: datetime
    updated_at: datetime


class MqttConfigListResponse(BaseModel):
    """Response model for resource MQTT config list."""
    configs: List[MqttConfigResponse]


def _server_response(server: MqttServer, mqtt_client: MqttClientService) -> MqttServerResponse:
    return MqttServerResponse(
        id=server.id,
        name=server.name,
        host=server.host,
        port=server.port,
        use_tls=server.use_tls,
        client_id=server.client_id,
        username=server.username,
        has_password=bool(server.password),
        connected=mqtt_client.is_connected(server.id),
        created_at=server.created_at,
        updated_at=server.updated_at
    )


def _config_response(config: MqttResourceConfig) -> MqttConfigResponse:
    return MqttConfigResponse(
        id=config.id,
        resource_id=config.resource_id,
        server_id=config.server_id,
        name=config.name,
        in_use_topic=config.in_use_topic,
        in_use_message=config.in_use_message,
        not_in_use_topic=config.not_in_use_topic,
        not_in_use_message=config.not_in_use_message,
        created_at=config.created_at,
        updated_at=config.updated_at
    )


def _status_response(server_status: Dict[str, Any]) -> MqttServerStatusResponse:
    return MqttServerStatusResponse(**server_status)


# ===== Server Endpoints =====

@router.get("/mqtt/servers", summary="List MQTT servers")
async def list_servers(
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db),
    mqtt_client: MqttClientService = Depends(get_mqtt_client_service)
) -> MqttServerListResponse:
    """List all MQTT servers with their connection state."""
    try:
        servers = MqttServerService.list_servers(db)
        return MqttServerListResponse(servers=[_server_response(server, mqtt_client) for server in servers])
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list MQTT servers: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list MQTT servers"
        )


@router.get("/mqtt/servers/status", summary="Get the status of all MQTT servers")
async def get_all_server_statuses(
    current_user: UserContext = Depends(require_resource_manager),
    mqtt_client: MqttClientService = Depends(get_mqtt_client_service)
) -> MqttStatusListResponse:
    """Connection state and counters of every server used since startup."""
    try:
        statuses = mqtt_client.get_all_statuses()
        return MqttStatusListResponse(statuses=[_status_response(s) for s in statuses.values()])
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get MQTT statuses: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get MQTT statuses"
        )


@router.post("/mqtt/servers", summary="Create an MQTT server", status_code=status.HTTP_201_CREATED)
async def create_server(
    request: MqttServerCreateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db),
    mqtt_client: MqttClientService = Depends(get_mqtt_client_service)
) -> MqttServerResponse:
    """Create an MQTT server. A client id is generated when none is given."""
    try:
        server = MqttServerService.create_server(
            db,
            name=request.name,
            host=request.host,
            port=request.port,
            use_tls=request.use_tls,
            client_id=request.client_id,
            username=request.username,
            password=request.password
        )
        return _server_response(server, mqtt_client)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create MQTT server: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create MQTT server"
        )


@router.get("/mqtt/servers/{server_id}", summary="Get an MQTT server")
async def get_server(
    server_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db),
    mqtt_client: MqttClientService = Depends(get_mqtt_client_service)
) -> MqttServerResponse:
    """Get a single MQTT server."""
    try:
        return _server_response(MqttServerService.get_server(db, server_id), mqtt_client)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get MQTT server {server_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get MQTT server"
        )


@router.put("/mqtt/servers/{server_id}", summary="Update an MQTT server")
async def update_server(
    server_id: int,
    request: MqttServerUpdateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db),
    mqtt_client: MqttClientService = Depends(get_mqtt_client_service)
) -> MqttServerResponse:
    """Update an MQTT server and drop its cached connection."""
    try:
        server = MqttServerService.update_server(
            db,
            server_id,
            name=request.name,
            host=request.host,
            port=request.port,
            use_tls=request.use_tls,
            client_id=request.client_id,
            username=request.username,
            password=request.password
        )
        await mqtt_client.disconnect(server_id)
        return _server_response(server, mqtt_client)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update MQTT server {server_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update MQTT server"
        )


@router.delete("/mqtt/servers/{server_id}", summary="Delete an MQTT server", status_code=status.HTTP_204_NO_CONTENT)
async def delete_server(
    server_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db),
    mqtt_client: MqttClientService = Depends(get_mqtt_client_service)
) -> None:
    """Delete an MQTT server with every resource config using it."""
    try:
        MqttServerService.delete_server(db, server_id)
        await mqtt_client.disconnect(server_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete MQTT server {server_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete MQTT server"
        )


@router.post("/mqtt/servers/{server_id}/test", summary="Test an MQTT server connection")
async def test_server(
    server_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db),
    mqtt_client: MqttClientService = Depends(get_mqtt_client_service)
) -> ConnectionTestResponse:
    """Open a throwaway connection to the server and report the outcome."""
    try:
        MqttServerService.get_server(db, server_id)
        result = await mqtt_client.test_connection(db, server_id)
        return ConnectionTestResponse(**result)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to test MQTT server {server_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to test MQTT server"
        )


@router.get("/mqtt/servers/{server_id}/status", summary="Get the status of an MQTT server")
async def get_server_status(
    server_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db),
    mqtt_client: MqttClientService = Depends(get_mqtt_client_service)
) -> MqttServerStatusResponse:
    """Connection state and counters of a server."""
    try:
        MqttServerService.get_server(db, server_id)
        return _status_response(mqtt_client.get_status(server_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get status of MQTT server {server_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get MQTT server status"
        )


# ===== Resource Config Endpoints =====

@router.get("/resources/{resource_id}/mqtt", summary="List MQTT configs of a resource")
async def list_configs(
    resource_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> MqttConfigListResponse:
    """List the MQTT notification targets of a resource."""
    try:
        configs = MqttResourceConfigService.list_for_resource(db, resource_id)
        return MqttConfigListResponse(configs=[_config_response(config) for config in configs])
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list MQTT configs for resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list MQTT configs"
        )


@router.post("/resources/{resource_id}/mqtt", summary="Create an MQTT config", status_code=status.HTTP_201_CREATED)
async def create_config(
    resource_id: int,
    request: MqttConfigCreateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> MqttConfigResponse:
    """Add an MQTT notification target to a resource."""
    try:
        config = MqttResourceConfigService.create_config(
            db,
            resource_id,
            server_id=request.server_id,
            in_use_topic=request.in_use_topic,
            in_use_message=request.in_use_message,
            not_in_use_topic=request.not_in_use_topic,
            not_in_use_message=request.not_in_use_message,
            name=request.name
        )
        return _config_response(config)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create MQTT config for resource {resource_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create MQTT config"
        )


@router.get("/resources/{resource_id}/mqtt/{config_id}", summary="Get an MQTT config")
async def get_config(
    resource_id: int,
    config_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> MqttConfigResponse:
    """Get a single MQTT config of a resource."""
    try:
        return _config_response(MqttResourceConfigService.get_config(db, resource_id, config_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get MQTT config {config_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get MQTT config"
        )


@router.put("/resources/{resource_id}/mqtt/{config_id}", summary="Update an MQTT config")
async def update_config(
    resource_id: int,
    config_id: int,
    request: MqttConfigUpdateRequest,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> MqttConfigResponse:
    """Update an MQTT config of a resource."""
    try:
        config = MqttResourceConfigService.update_config(
            db,
            resource_id,
            config_id,
            server_id=request.server_id,
            name=request.name,
            in_use_topic=request.in_use_topic,
            in_use_message=request.in_use_message,
            not_in_use_topic=request.not_in_use_topic,
            not_in_use_message=request.not_in_use_message
        )
        return _config_response(config)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update MQTT config {config_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update MQTT config"
        )


@router.delete(
    "/resources/{resource_id}/mqtt/{config_id}",
    summary="Delete an MQTT config",
    status_code=status.HTTP_204_NO_CONTENT
)
async def delete_config(
    resource_id: int,
    config_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db)
) -> None:
    """Remove an MQTT notification target from a resource."""
    try:
        MqttResourceConfigService.delete_config(db, resource_id, config_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete MQTT config {config_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete MQTT config"
        )


@router.post("/resources/{resource_id}/mqtt/{config_id}/test", summary="Test an MQTT config")
async def test_config(
    resource_id: int,
    config_id: int,
    current_user: UserContext = Depends(require_resource_manager),
    db: Session = Depends(get_db),
    mqtt_publisher: MqttPublisherService = Depends(get_mqtt_publisher)
) -> ConnectionTestResponse:
    """Publish the rendered "in use" message once and report the outcome."""
    try:
        MqttResourceConfigService.get_config(db, resource_id, config_id)
        result = await mqtt_publisher.test_config(db, resource_id, config_id)
        return ConnectionTestResponse(**result)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to test MQTT config {config_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to test MQTT config"
        )
