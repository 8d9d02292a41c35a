"""
MQTT configuration service.

CRUD for MQTT servers and for the per-resource MQTT notification targets that
publish through them.
"""

import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from models import MqttResourceConfig, MqttServer, Resource
from services.mqtt_client_service import generate_client_id

logger = logging.getLogger(__name__)


class MqttServerService:
    """Service for MQTT server management."""

    @staticmethod
    def list_servers(db: Session) -> List[MqttServer]:
        """List all MQTT servers ordered by id."""
        return db.query(MqttServer).order_by(MqttServer.id).all()

    @staticmethod
    def get_server(db: Session, server_id: int) -> MqttServer:
        """
        Get an MQTT server.

        Raises:
            HTTPException: 404 if not found
        """
        server = db.get(MqttServer, server_id)
        if not server:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"MQTT server {server_id} not found"
            )
        return server

    @staticmethod
    def create_server(
        db: Session,
        name: str,
        host: str,
        port: int = 1883,
        use_tls: bool = False,
        client_id: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None
    ) -> MqttServer:
        """
        Create an MQTT server. A client id is generated when none is given.

        Returns:
            Created MqttServer
        """
        server = MqttServer(
            name=name,
            host=host,
            port=port,
            use_tls=use_tls,
            client_id=client_id or generate_client_id(),
            username=username,
            password=password
        )
        db.add(server)
        db.commit()
        db.refresh(server)

        logger.info(f"Created MQTT server {server.id} ({server.url})")
        return server

    @staticmethod
    def update_server(
        db: Session,
        server_id: int,
        name: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        use_tls: Optional[bool] = None,
        client_id: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None
    ) -> MqttServer:
        """
        Update an MQTT server. Fields left as None are unchanged.

        Callers should drop any cached connection to the server afterwards so
        the new settings take effect.

        Raises:
            HTTPException: 404 if not found
        """
        server = MqttServerService.get_server(db, server_id)

        if name is not None:
            server.name = name
        if host is not None:
            server.host = host
        if port is not None:
            server.port = port
        if use_tls is not None:
            server.use_tls = use_tls
        if client_id is not None:
            server.client_id = client_id
        if username is not None:
            server.username = username
        if password is not None:
            server.password = password

        db.commit()
        db.refresh(server)

        logger.info(f"Updated MQTT server {server_id}")
        return server

    @staticmethod
    def delete_server(db: Session, server_id: int) -> None:
        """Delete an MQTT server and every resource config that uses it."""
        server = MqttServerService.get_server(db, server_id)
        db.delete(server)
        db.commit()
        logger.info(f"Deleted MQTT server {server_id}")


class MqttResourceConfigService:
    """Service for per-resource MQTT notification targets."""

    @staticmethod
    def list_for_resource(db: Session, resource_id: int) -> List[MqttResourceConfig]:
        """List a resource's MQTT configs ordered by id."""
        return db.query(MqttResourceConfig).filter(
            MqttResourceConfig.resource_id == resource_id
        ).order_by(MqttResourceConfig.id).all()

    @staticmethod
    def get_config(db: Session, resource_id: int, config_id: int) -> MqttResourceConfig:
        """
        Get an MQTT config of a resource.

        Raises:
            HTTPException: 404 if not found for this resource
        """
        config = db.query(MqttResourceConfig).filter(
            MqttResourceConfig.id == config_id,
            MqttResourceConfig.resource_id == resource_id
        ).first()
        if not config:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"MQTT configuration {config_id} not found"
            )
        return config

    @staticmethod
    def create_config(
        db: Session,
        resource_id: int,
        server_id: int,
        in_use_topic: str,
        in_use_message: str,
        not_in_use_topic: str,
        not_in_use_message: str,
        name: Optional[str] = None
    ) -> MqttResourceConfig:
        """
        Create an MQTT config for a resource.

        Raises:
            HTTPException: 404 if the resource or server does not exist
        """
        if not db.get(Resource, resource_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Resource {resource_id} not found"
            )
        MqttServerService.get_server(db, server_id)

        config = MqttResourceConfig(
            resource_id=resource_id,
            server_id=server_id,
            in_use_topic=in_use_topic,
            in_use_message=in_use_message,
            not_in_use_topic=not_in_use_topic,
            not_in_use_message=not_in_use_message
        )
        if name is not None:
            config.name = name

        db.add(config)
        db.commit()
        db.refresh(config)

        logger.info(f"Created MQTT config {config.id} for resource {resource_id}")
        return config

    @staticmethod
    def update_config(
        db: Session,
        resource_id: int,
        config_id: int,
        server_id: Optional[int] = None,
        name: Optional[str] = None,
        in_use_topic: Optional[str] = None,
        in_use_message: Optional[str] = None,
        not_in_use_topic: Optional[str] = None,
        not_in_use_message: Optional[str] = None
    ) -> MqttResourceConfig:
        """
        Update an MQTT config. Fields left as None are unchanged.

        Raises:
            HTTPException: 404 if the config or the new server does not exist
        """
        config = MqttResourceConfigService.get_config(db, resource_id, config_id)

        if server_id is not None:
            MqttServerService.get_server(db, server_id)
            config.server_id = server_id
        if name is not None:
            config.name = name
        if in_use_topic is not None:
            config.in_use_topic = in_use_topic
        if in_use_message is not None:
            config.in_use_message = in_use_message
        if not_in_use_topic is not None:
            config.not_in_use_topic = not_in_use_topic
        if not_in_use_message is not None:
            config.not_in_use_message = not_in_use_message

        db.commit()
        db.refresh(config)

        logger.info(f"Updated MQTT config {config_id} for resource {resource_id}")
        return config

    @staticmethod
    def delete_config(db: Session, resource_id: int, config_id: int) -> None:
        """Delete an MQTT config."""
        config = MqttResourceConfigService.get_config(db, resource_id, config_id)
        db.delete(config)
        db.commit()
        logger.info(f"Deleted MQTT config {config_id} for resource {resource_id}")
