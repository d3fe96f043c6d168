"""
CommWatch tenant resolution
-----------------------------
Provides the `get_tenant` FastAPI dependency used by every tenant-scoped endpoint.

Authentication is owned by the surrounding gateway. Requests reach this service
with the tenant already resolved in the X-Tenant-Id header; when it is absent the
"default" tenant is used, which suits docker-compose local development and demos.

Usage in a FastAPI route:
    from commwatch.services.shared.auth import get_tenant

    @router.post("/anomalies/detect")
    def detect(tenant_id: str = Depends(get_tenant), db=Depends(get_db)):
        ...
"""

from fastapi import Header, HTTPException

DEFAULT_TENANT = "default"
_MAX_TENANT_LEN = 255


def get_tenant(
    x_tenant_id: str | None = Header(None, alias="X-Tenant-Id"),
) -> str:
    """
    FastAPI dependency: returns the tenant_id to scope all DB queries and stored records.
    """
    if x_tenant_id is None:
        return DEFAULT_TENANT

    tenant_id = x_tenant_id.strip()
    if not tenant_id or len(tenant_id) > _MAX_TENANT_LEN:
        raise HTTPException(status_code=400, detail="Invalid X-Tenant-Id header.")
    return tenant_id
