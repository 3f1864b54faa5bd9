"""Assembly of the access-control components.

``create_access_control`` wires store, catalog, registry, assignment
store, engine, guard and administration service into one container.
Nothing is cached at module level: each call returns an independent
instance, which is what tests rely on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .admin import AccessAdministration
from .assignments import RoleAssignmentStore
from .config import RbacConfig
from .engine import AuthorizationEngine
from .hierarchy import HierarchyGuard
from .permissions.catalog import PermissionCatalog
from .permissions.seed import ProvisionReport, provision
from .roles import RoleRegistry
from .storage import RbacStore, build_store

logger = logging.getLogger(__name__)


@dataclass
class AccessControl:
    """Wired access-control components sharing one store."""

    config: RbacConfig
    store: RbacStore
    catalog: PermissionCatalog
    registry: RoleRegistry
    assignments: RoleAssignmentStore
    engine: AuthorizationEngine
    guard: HierarchyGuard
    admin: AccessAdministration
    provisioned: Optional[ProvisionReport] = None


def create_access_control(
    config: Optional[RbacConfig] = None,
    store: Optional[RbacStore] = None,
    *,
    seed: bool = True,
) -> AccessControl:
    """Build the components and, unless ``seed=False``, provision LMS defaults.

    Args:
        config: Settings (default: ``RbacConfig()``).
        store: Persistence collaborator (default: ``build_store(config)``).
        seed: Run :func:`lmsrbac.permissions.seed.provision`.
    """
    config = config or RbacConfig()
    store = store if store is not None else build_store(config)

    catalog = PermissionCatalog(store)
    registry = RoleRegistry(store, catalog)
    assignments = RoleAssignmentStore(store, registry)
    engine = AuthorizationEngine(catalog, registry, assignments)
    guard = HierarchyGuard(engine, registry, assignments)
    admin = AccessAdministration(store, catalog, registry, assignments, engine, guard, config)

    report = provision(catalog, registry) if seed else None
    if report is not None:
        logger.info(
            "Access control ready: %d permissions, %d roles, %d grants",
            report.permissions,
            report.roles,
            report.grants,
        )

    return AccessControl(
        config=config,
        store=store,
        catalog=catalog,
        registry=registry,
        assignments=assignments,
        engine=engine,
        guard=guard,
        admin=admin,
        provisioned=report,
    )


__all__ = ["AccessControl", "create_access_control"]
