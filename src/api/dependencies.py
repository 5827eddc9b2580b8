"""
FastAPI dependency injection.

Long-lived services (bucket client, object store, access gate, audit
channels) are built once in the application lifespan and kept on
app.state. Dependencies here hand them to route handlers, and build the
per-request pieces: the principal, the request context for auditing,
role gates and the upload adapter.

Each dependency is a function that FastAPI calls when needed.
"""

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Annotated, Callable, Generator, Optional

from fastapi import Depends, File, HTTPException, Request, Security, UploadFile, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings
from ..core.access import AccessDecision, AccessGate, Principal, RequestContext, normalize_roles
from ..core.access.models import RoleSpec
from ..core.audit import AuditLog, AuditSink
from ..core.errors import StorageError
from ..core.storage import BucketClient, Folder, ObjectStore
from ..infrastructure.audit import FileAuditSink, RepositoryAuditSink
from ..infrastructure.snowflake.client import MockSnowflakeConnection, create_snowflake_connection
from ..infrastructure.snowflake.repositories.audit_logs import AuditLogRepository, SnowflakeConfig
from ..infrastructure.storage import StorageConfig, create_bucket_client
from .errors import ApiError

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


# ---------------------------------------------------------------------------
# Service container
# ---------------------------------------------------------------------------

@dataclass
class PlatformServices:
    """
    Everything that lives for the whole process.

    Built in the lifespan, torn down on shutdown. The bucket client is the
    only shared handle the store touches, and it is safe for concurrent use.
    """
    settings: Settings
    bucket_client: BucketClient
    object_store: ObjectStore
    access_gate: AccessGate
    security_audit: AuditLog
    storage_audit: AuditLog
    snowflake_config: Optional[SnowflakeConfig] = None
    mock_snowflake: Optional[MockSnowflakeConnection] = field(default=None, repr=False)

    def snowflake_connection(self):
        """Real connection per use, or the shared in-memory one."""
        return create_snowflake_connection(
            config=self.snowflake_config,
            mock_connection=self.mock_snowflake,
        )

    def close(self) -> None:
        self.security_audit.close()
        self.storage_audit.close()
        self.bucket_client.close()
        if self.mock_snowflake is not None:
            self.mock_snowflake.close()


def build_snowflake_config(settings: Settings) -> SnowflakeConfig:
    return SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )


def create_services(settings: Settings) -> PlatformServices:
    """
    Build the process-wide services from settings.

    Mock flags swap in the in-memory bucket and Snowflake connection so
    the whole API runs without cloud credentials.
    """
    snowflake_config = None if settings.snowflake_mock_mode else build_snowflake_config(settings)
    mock_snowflake = MockSnowflakeConnection() if settings.snowflake_mock_mode else None

    bucket_client = create_bucket_client(
        config=StorageConfig(
            access_key_id=settings.gcs_access_key_id,
            secret_access_key=settings.gcs_secret_access_key,
            bucket_name=settings.gcs_bucket_name,
            endpoint_url=settings.gcs_endpoint_url,
            region=settings.gcs_region,
        ),
        mock_mode=settings.gcs_mock_mode,
    )

    connection_factory = partial(
        create_snowflake_connection,
        config=snowflake_config,
        mock_connection=mock_snowflake,
    )

    def sinks_for(path) -> list[AuditSink]:
        sinks: list[AuditSink] = [FileAuditSink(path)]
        if settings.audit_persist_enabled:
            sinks.append(RepositoryAuditSink(connection_factory))
        return sinks

    security_audit = AuditLog("security", sinks_for(settings.security_log_path))
    storage_audit = AuditLog("storage", sinks_for(settings.storage_log_path))

    services = PlatformServices(
        settings=settings,
        bucket_client=bucket_client,
        object_store=ObjectStore(
            bucket_client,
            storage_audit,
            public_host=settings.public_url_host,
            chunk_size=settings.stream_chunk_size,
        ),
        access_gate=AccessGate(security_audit),
        security_audit=security_audit,
        storage_audit=storage_audit,
        snowflake_config=snowflake_config,
        mock_snowflake=mock_snowflake,
    )

    logger.info(
        "Platform services created",
        extra={
            "bucket": settings.gcs_bucket_name,
            "mock_mode": {
                "gcs": settings.gcs_mock_mode,
                "snowflake": settings.snowflake_mock_mode,
            },
            "audit_persist": settings.audit_persist_enabled,
        }
    )

    return services


def get_services(request: Request) -> PlatformServices:
    return request.app.state.services


ServicesDep = Annotated[PlatformServices, Depends(get_services)]


def get_app_settings(services: ServicesDep) -> Settings:
    """Settings the running app was built with."""
    return services.settings


def get_object_store(services: ServicesDep) -> ObjectStore:
    return services.object_store


def get_access_gate(services: ServicesDep) -> AccessGate:
    return services.access_gate


def get_audit_repository(services: ServicesDep) -> Generator[AuditLogRepository, None, None]:
    """
    Provide AuditLogRepository with a database connection.

    Generator so the connection is closed after the request.
    """
    if not services.settings.audit_persist_enabled and services.mock_snowflake is None:
        raise ApiError(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "AUDIT_PERSISTENCE_DISABLED",
            "Audit records are not persisted on this deployment",
        )

    with services.snowflake_connection() as conn:
        yield AuditLogRepository(conn)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_app_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


def get_principal(request: Request) -> Optional[Principal]:
    """
    Principal forwarded by the upstream auth layer.

    The gateway verifies the user's token and passes X-User-Id and
    X-User-Role. Partial headers give an incomplete principal; the access
    gate, not this function, decides what that means.
    """
    user_id = request.headers.get("X-User-Id")
    role = request.headers.get("X-User-Role")
    if not user_id and not role:
        return None
    return Principal(id=user_id or None, role=role or None)


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        path=request.url.path,
        method=request.method,
        source_address=get_client_ip(request),
    )


# ---------------------------------------------------------------------------
# Role gates
# ---------------------------------------------------------------------------

def require_roles(roles: RoleSpec = None) -> Callable:
    """
    Build a dependency that runs the access gate for this route.

    Roles are normalised once here, so a bad role list fails at import
    time rather than on the first request.

    Usage:
        @router.delete("/{folder}/{filename}")
        async def delete_file(_: Annotated[AccessDecision, Depends(require_roles("exam_admin"))]):
            ...
    """
    role_set = normalize_roles(roles)

    def _check(
        gate: Annotated[AccessGate, Depends(get_access_gate)],
        principal: Annotated[Optional[Principal], Depends(get_principal)],
        context: Annotated[RequestContext, Depends(get_request_context)],
    ) -> AccessDecision:
        return gate.enforce(principal, role_set, context)

    return _check


# ---------------------------------------------------------------------------
# Upload adapter
# ---------------------------------------------------------------------------

def _file_too_large(folder: Optional[str], limit: int) -> ApiError:
    logger.warning("Rejected oversized upload", extra={"folder": folder, "limit_bytes": limit})
    return ApiError(
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        "FILE_TOO_LARGE",
        "File size exceeds limit",
        details=f"Maximum upload size for {folder} is {limit / (1024 * 1024):g}MB",
    )


def upload_via_request(folder: Optional[Folder] = None) -> Callable:
    """
    Build a dependency that uploads the request's optional `file` part.

    - No file attached: nothing happens, the handler gets None.
    - Declared type not accepted for the folder: 400 / INVALID_FILE_TYPE.
    - Larger than the folder's limit: 413 / FILE_TOO_LARGE.
    - File attached: stored under `folder` (or the route's `folder` path
      parameter) and the public URL is set on request.state.file_url.
    - Upload fails: the request stops with 500 / STORAGE_ERROR.
    """

    async def _upload(
        request: Request,
        services: ServicesDep,
        file: Annotated[Optional[UploadFile], File()] = None,
    ) -> Optional[str]:
        if file is None or not file.filename:
            logger.debug("No file attached to request", extra={"path": request.url.path})
            return None

        target = folder or request.path_params.get("folder")
        folder_value = target.value if isinstance(target, Folder) else target
        settings = services.settings

        allowed = settings.allowed_upload_types(folder_value)
        if allowed is not None and file.content_type not in allowed:
            logger.warning(
                "Rejected upload type",
                extra={"folder": folder_value, "content_type": file.content_type}
            )
            raise ApiError(
                status.HTTP_400_BAD_REQUEST,
                "INVALID_FILE_TYPE",
                "Invalid file type",
                details=f"Allowed types for {folder_value}: {', '.join(allowed)}",
            )

        limit = settings.max_upload_size_bytes_for(folder_value)
        # Declared size first so oversized bodies are never read into memory
        if file.size is not None and file.size > limit:
            raise _file_too_large(folder_value, limit)

        data = await file.read()
        if len(data) > limit:
            raise _file_too_large(folder_value, limit)

        try:
            url = await services.object_store.upload(data, file.filename, target)
        except StorageError as e:
            logger.error(
                "Upload adapter error",
                extra={"folder": str(target), "filename": file.filename, "error": str(e)}
            )
            raise ApiError(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "STORAGE_ERROR",
                "File upload failed",
                details=e.details or e.message,
            ) from e

        request.state.file_url = url
        return url

    return _upload


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
ObjectStoreDep = Annotated[ObjectStore, Depends(get_object_store)]
AuditRepositoryDep = Annotated[AuditLogRepository, Depends(get_audit_repository)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
