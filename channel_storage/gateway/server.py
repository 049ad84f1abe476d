"""
Channel Storage Gateway with FastAPI.

Multiplexes every configured channel behind one JSON-RPC 2.0 endpoint.

Architecture:
- FastAPI provides HTTP routing, the health check and the metrics export
- ``POST /rpc`` carries the storage and authorization operations; the
  channel is read from the ``X-Channel`` header (configurable)
- Each request resolves its channel, builds a backend from the channel's
  credentials, runs the operation in the threadpool and closes the backend;
  nothing is kept between requests
"""

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any
from typing import AsyncIterator

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from .. import __version__
from ..config.channels import ChannelConfigMap
from ..config.channels import load_channel_config_map
from ..config.settings import Settings
from ..config.settings import get_settings
from ..exceptions import ChannelStorageError
from ..exceptions import ConfigurationError
from ..exceptions import InternalError
from ..logger_config import ErrorCategory
from ..logger_config import log_gateway_call
from ..logger_config import log_structured_error
from ..logger_config import setup_logging
from ..metrics_config import ensure_metrics_initialized
from ..metrics_config import get_metrics_export
from ..metrics_config import get_metrics_summary
from ..metrics_config import record_gateway_call
from ..models import AccessToken
from ..models import DownloadUrl
from ..storage.factory import BackendClientFactory
from ..storage.factory import open_channel_storage
from . import protocol
from .protocol import KeyParams
from .protocol import ListParams
from .protocol import SaveFileParams
from .protocol import SignedUrlParams

logger = logging.getLogger(__name__)


class GatewayService:
    """The gateway operations, one backend per call.

    Every operation takes the request's channel as the ``channel`` keyword;
    an empty or unknown channel raises InvalidArgumentError before any
    credentials are touched.
    """

    def __init__(self, config_map: ChannelConfigMap, factory: BackendClientFactory):
        self.config_map = config_map
        self.factory = factory

    def _storage(self, channel: str):
        return open_channel_storage(self.config_map, channel, self.factory)

    @log_gateway_call
    def save_file(self, params: SaveFileParams, *, channel: str) -> str:
        with self._storage(channel) as storage:
            return storage.save(params.key, params.file)

    @log_gateway_call
    def get_file(self, params: KeyParams, *, channel: str) -> bytes:
        with self._storage(channel) as storage:
            return storage.get(params.key)

    @log_gateway_call
    def delete(self, params: KeyParams, *, channel: str) -> None:
        with self._storage(channel) as storage:
            storage.delete(params.key)

    @log_gateway_call
    def exist(self, params: KeyParams, *, channel: str) -> bool:
        with self._storage(channel) as storage:
            return storage.exists(params.key)

    @log_gateway_call
    def list(self, params: ListParams, *, channel: str) -> list[str]:
        with self._storage(channel) as storage:
            return storage.list(params.path)

    @log_gateway_call
    def get_download_url(self, params: KeyParams, *, channel: str) -> DownloadUrl:
        with self._storage(channel) as storage:
            return storage.get_download_url(params.key)

    @log_gateway_call
    def get_signed_url(self, params: SignedUrlParams, *, channel: str) -> str:
        with self._storage(channel) as storage:
            return storage.signed_url(params.key, params.content_type, params.expire_secs)

    @log_gateway_call
    def get_access_token(self, params: protocol.EmptyParams, *, channel: str) -> AccessToken:
        with self._storage(channel) as storage:
            return storage.get_access_token()

    def dispatch(self, method: str, params, channel: str) -> dict[str, Any]:
        """Run ``method`` and shape its result for the wire."""
        if method == protocol.SAVE_FILE:
            return {"url": self.save_file(params, channel=channel)}
        elif method == protocol.GET_FILE:
            return {"file": protocol.encode_bytes(self.get_file(params, channel=channel))}
        elif method == protocol.DELETE:
            self.delete(params, channel=channel)
            return {}
        elif method == protocol.EXIST:
            return {"exist": self.exist(params, channel=channel)}
        elif method == protocol.LIST:
            return {"files": self.list(params, channel=channel)}
        elif method == protocol.GET_DOWNLOAD_URL:
            return protocol.download_url_to_wire(self.get_download_url(params, channel=channel))
        elif method == protocol.GET_SIGNED_URL:
            return {"url": self.get_signed_url(params, channel=channel)}
        elif method == protocol.GET_ACCESS_TOKEN:
            return protocol.access_token_to_wire(self.get_access_token(params, channel=channel))
        raise InternalError(f"no handler for method {method}")


def create_app(
    config_map: ChannelConfigMap,
    factory: BackendClientFactory | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the gateway application for ``config_map``."""
    settings = settings or get_settings()
    factory = factory or BackendClientFactory.from_settings(settings)
    service = GatewayService(config_map, factory)
    channel_header = settings.channel_header

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Handle application startup and shutdown."""
        logger.info("Starting Channel Storage Gateway...")
        logger.info(f"Gateway version: {app.version}")
        logger.info(f"Channels: {', '.join(sorted(config_map)) or '(none)'}")
        ensure_metrics_initialized(settings)
        yield
        logger.info("Shutting down Channel Storage Gateway...")

    app = FastAPI(
        title="Channel Storage Gateway",
        description="Multi-tenant Google Cloud Storage gateway. "
        "One JSON-RPC endpoint serves every channel's bucket.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    @app.get("/health")
    async def health_check():
        """Health check endpoint for load balancers and monitoring."""
        return {
            "status": "healthy" if len(config_map) else "degraded",
            "version": app.version,
            "channels": len(config_map),
            "metrics": get_metrics_summary(),
        }

    @app.get("/metrics")
    async def metrics_endpoint():
        content, content_type = get_metrics_export()
        return PlainTextResponse(content, media_type=content_type)

    @app.post(protocol.RPC_PATH)
    async def rpc_endpoint(request: Request):
        """
        Storage gateway endpoint supporting JSON-RPC 2.0.

        Headers:
            X-Channel: Channel (tenant) the call operates on (REQUIRED)

        Errors are returned with HTTP 200 and a JSON-RPC ``error`` member,
        except for unparseable or malformed envelopes (HTTP 400).
        """
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(
                protocol.make_error(None, protocol.PARSE_ERROR, "Parse error"), status_code=400
            )

        request_id = body.get("id") if isinstance(body, dict) else None
        if (
            not isinstance(body, dict)
            or body.get("jsonrpc") != protocol.JSONRPC_VERSION
            or not isinstance(body.get("method"), str)
        ):
            return JSONResponse(
                protocol.make_error(
                    request_id, protocol.INVALID_REQUEST, "Invalid Request - must be JSON-RPC 2.0"
                ),
                status_code=400,
            )

        method = body["method"]
        channel = request.headers.get(channel_header, "")
        if method not in protocol.METHOD_PARAMS:
            # JSON-RPC errors are returned with 200
            logger.warning(f"Unknown gateway method: {method}")
            record_gateway_call(method, "unknown_method", channel)
            return JSONResponse(
                protocol.make_error(request_id, protocol.METHOD_NOT_FOUND, f"Method not found: {method}")
            )

        try:
            params = protocol.parse_params(method, body.get("params"))
            result = await run_in_threadpool(service.dispatch, method, params, channel)
        except ChannelStorageError as e:
            return JSONResponse({"jsonrpc": protocol.JSONRPC_VERSION, "id": request_id, "error": protocol.error_to_wire(e)})
        except Exception as e:
            log_structured_error(
                category=ErrorCategory.CRITICAL,
                message=f"Unhandled error processing {method}: {e}",
                exception=e,
                operation="rpc_endpoint",
                channel=channel,
            )
            error = InternalError(f"{type(e).__name__}: {e}", details={"method": method})
            return JSONResponse({"jsonrpc": protocol.JSONRPC_VERSION, "id": request_id, "error": protocol.error_to_wire(error)})

        return JSONResponse(protocol.make_result(request_id, result))

    return app


# --- Main Server Execution ---
def main(argv: list[str] | None = None):
    """Run the gateway with argument parsing."""
    load_dotenv()
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Channel Storage Gateway")
    parser.add_argument(
        "--config",
        default=settings.gcp_conf_map_path,
        help="Path to the YAML channel map (default: $GCP_CONF_MAP_PATH)",
    )
    parser.add_argument(
        "--host",
        default=settings.gateway_host,
        help=f"Host to bind to (default: {settings.gateway_host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.gateway_port,
        help=f"Port to bind to (default: {settings.gateway_port})",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    setup_logging(settings.log_level, settings.structured_logging, settings.log_file)

    if not args.config:
        parser.error("a channel map is required: pass --config or set GCP_CONF_MAP_PATH")
    try:
        config_map = load_channel_config_map(args.config)
    except ConfigurationError as e:
        logger.error(f"Cannot load channel map: {e}")
        sys.exit(1)

    logger.info(f"Gateway listening on {args.host}:{args.port}")
    logger.info(f"RPC endpoint: http://{args.host}:{args.port}{protocol.RPC_PATH}")
    uvicorn.run(
        create_app(config_map, settings=settings),
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
