"""JSON API over the Explore façade.

Read-only endpoints consumed by the explore UI. Every request captures the
current generation once and answers entirely from it.

Node ids are opaque and may contain slashes, so they are taken as path
parameters of the ``path`` type; the fixed suffix routes are unambiguous.

Usage:
    holder = GenerationHolder(config)
    app = create_app(holder)
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from .exceptions import AccessCoreError, get_http_status_code
from .explore import (
    AccessList,
    DirectMembers,
    Explorer,
    FetchInfo,
    NodeDetail,
    NodeSummary,
    PathsView,
    RelatedNodes,
    ResolutionView,
    SubgraphView,
)
from .generation import GenerationHolder
from .graph.edges import EdgeType
from .graph.nodes import NodeKind

logger = logging.getLogger(__name__)


def explorer_dependency(holder: GenerationHolder) -> Callable[[], Explorer]:
    def get_explorer() -> Explorer:
        if not holder.ready:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="No graph generation has been published yet",
            )
        return Explorer(holder.current)

    return get_explorer


def create_router(holder: GenerationHolder) -> APIRouter:
    """Build the ``/api`` router bound to ``holder``."""
    router = APIRouter(prefix="/api", tags=["Explore"])
    current = Depends(explorer_dependency(holder))

    # =========================================================================
    # Nodes
    # =========================================================================

    @router.get("/nodes", response_model=list[NodeSummary])
    def list_nodes(kind: Optional[NodeKind] = None, explorer: Explorer = current) -> list[NodeSummary]:
        return explorer.list_nodes(kind)

    @router.get("/users", response_model=list[NodeSummary])
    def list_users(explorer: Explorer = current) -> list[NodeSummary]:
        return explorer.list_nodes(NodeKind.USER)

    @router.get("/groups", response_model=list[NodeSummary])
    def list_groups(explorer: Explorer = current) -> list[NodeSummary]:
        return explorer.list_nodes(NodeKind.GROUP)

    @router.get("/assets", response_model=list[NodeSummary])
    def list_assets(explorer: Explorer = current) -> list[NodeSummary]:
        return explorer.list_nodes(NodeKind.ASSET)

    @router.get("/tags", response_model=list[NodeSummary])
    def list_tags(explorer: Explorer = current) -> list[NodeSummary]:
        return explorer.list_nodes(NodeKind.TAG)

    @router.get("/node/{node_id:path}/subgraph", response_model=SubgraphView)
    def node_subgraph(node_id: str, depth: int = Query(1, ge=0), explorer: Explorer = current) -> SubgraphView:
        """Neighbourhood of a node, up to ``depth`` hops over every edge type."""
        return explorer.subgraph(node_id, depth)

    @router.get("/node/{node_id:path}", response_model=NodeDetail)
    def get_node(node_id: str, explorer: Explorer = current) -> NodeDetail:
        return explorer.node(node_id)

    @router.get("/paths", response_model=PathsView)
    def paths_between(
        source: str,
        target: str,
        edge_type: Optional[list[EdgeType]] = Query(None),
        explorer: Explorer = current,
    ) -> PathsView:
        """Simple paths from ``source`` to ``target``, shortest first."""
        return explorer.paths_between(source, target, edge_type)

    @router.get("/last_fetch", response_model=FetchInfo)
    def last_fetch(explorer: Explorer = current) -> FetchInfo:
        return explorer.last_fetch()

    # =========================================================================
    # Users
    # =========================================================================

    @router.get("/user/{node_id:path}/assets", response_model=AccessList)
    def user_assets(node_id: str, explorer: Explorer = current) -> AccessList:
        return explorer.accessible_assets(node_id)

    @router.get("/user/{node_id:path}/tags", response_model=RelatedNodes)
    def user_tags(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.user_tags(node_id)

    @router.get("/user/{node_id:path}/direct_groups", response_model=RelatedNodes)
    def user_direct_groups(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.direct_groups(node_id)

    @router.get("/user/{node_id:path}/inherited_groups", response_model=RelatedNodes)
    def user_inherited_groups(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.inherited_groups(node_id)

    # =========================================================================
    # Groups
    # =========================================================================

    @router.get("/group/{node_id:path}/direct_groups", response_model=RelatedNodes)
    def group_direct_groups(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.direct_groups(node_id)

    @router.get("/group/{node_id:path}/inherited_groups", response_model=RelatedNodes)
    def group_inherited_groups(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.inherited_groups(node_id)

    @router.get("/group/{node_id:path}/direct_members_users", response_model=list[NodeSummary])
    def group_direct_member_users(node_id: str, explorer: Explorer = current) -> list[NodeSummary]:
        return explorer.direct_members(node_id).users

    @router.get("/group/{node_id:path}/direct_members_groups", response_model=list[NodeSummary])
    def group_direct_member_groups(node_id: str, explorer: Explorer = current) -> list[NodeSummary]:
        return explorer.direct_members(node_id).groups

    @router.get("/group/{node_id:path}/direct_members", response_model=DirectMembers)
    def group_direct_members(node_id: str, explorer: Explorer = current) -> DirectMembers:
        return explorer.direct_members(node_id)

    @router.get("/group/{node_id:path}/all_members", response_model=RelatedNodes)
    def group_all_members(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.all_members(node_id)

    # =========================================================================
    # Tags
    # =========================================================================

    @router.get("/tag/{node_id:path}/direct_assets", response_model=RelatedNodes)
    def tag_direct_assets(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.direct_assets(node_id)

    @router.get("/tag/{node_id:path}/all_assets", response_model=RelatedNodes)
    def tag_all_assets(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.all_assets(node_id)

    @router.get("/tag/{node_id:path}/users", response_model=AccessList)
    def tag_users(node_id: str, explorer: Explorer = current) -> AccessList:
        return explorer.tag_users(node_id)

    # =========================================================================
    # Assets
    # =========================================================================

    @router.get("/asset/{node_id:path}/hierarchy_upstream", response_model=RelatedNodes)
    def asset_hierarchy_upstream(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.hierarchy_upstream(node_id)

    @router.get("/asset/{node_id:path}/hierarchy_downstream", response_model=RelatedNodes)
    def asset_hierarchy_downstream(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.hierarchy_downstream(node_id)

    @router.get("/asset/{node_id:path}/lineage_upstream", response_model=RelatedNodes)
    def asset_lineage_upstream(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.lineage_upstream(node_id)

    @router.get("/asset/{node_id:path}/lineage_downstream", response_model=RelatedNodes)
    def asset_lineage_downstream(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.lineage_downstream(node_id)

    @router.get("/asset/{node_id:path}/tags", response_model=RelatedNodes)
    def asset_tags(node_id: str, explorer: Explorer = current) -> RelatedNodes:
        return explorer.asset_tags(node_id)

    @router.get("/asset/{node_id:path}/users", response_model=AccessList)
    def asset_users(node_id: str, explorer: Explorer = current) -> AccessList:
        return explorer.users_with_access(node_id)

    @router.get("/asset/{node_id:path}/all_users", response_model=AccessList)
    def asset_all_users(node_id: str, explorer: Explorer = current) -> AccessList:
        """Users with access to the asset or anything below or downstream of it."""
        return explorer.all_users(node_id)

    @router.get("/asset/{node_id:path}/explain", response_model=ResolutionView)
    def asset_explain(node_id: str, user: str, explorer: Explorer = current) -> ResolutionView:
        """Effective privilege of ``user`` on the asset, with every policy considered."""
        return explorer.explain(user, node_id)

    return router


async def access_core_error_handler(request: Request, exc: AccessCoreError) -> JSONResponse:
    status_code = get_http_status_code(exc)
    if status_code >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    else:
        logger.debug("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app(holder: GenerationHolder) -> FastAPI:
    """FastAPI application serving the explore API for ``holder``."""
    app = FastAPI(
        title="accesscore",
        description="Read-only access graph exploration",
    )
    app.add_exception_handler(AccessCoreError, access_core_error_handler)
    app.include_router(create_router(holder))
    return app


__all__ = [
    "access_core_error_handler",
    "create_app",
    "create_router",
    "explorer_dependency",
]
