from typing import Optional

from fastapi import Header, HTTPException, Request

from content_catalog.infrastructure.catalog import CatalogComponents


def get_components(request: Request) -> CatalogComponents:
    components = getattr(request.app.state, "components", None)
    if components is None:
        raise HTTPException(status_code=503, detail="Catalog service is starting")
    return components


def verify_service_request(
    request: Request,
    x_service_token: Optional[str] = Header(default=None),
) -> None:
    token = get_components(request).settings.service_auth_token
    if token and x_service_token != token:
        raise HTTPException(status_code=401, detail="Invalid service token")
