# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Parent/child consistency checks for composite products.

Violations are collected, one issue string per problem, rather than failing
on the first one, so the trust score can degrade in proportion to the
number of issues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..did import is_valid_did
from ..models import Identity, IdentityCategory
from ..sync.datastore import HybridDataStore

logger = logging.getLogger(__name__)


@dataclass
class HierarchyReport:
    """Result of a hierarchy or integrity check."""

    valid: bool
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "issues": list(self.issues)}


class HierarchyValidator:
    """Checks product hierarchies against the merged identity set."""

    def __init__(self, datastore: HybridDataStore):
        self.datastore = datastore

    async def _identity_map(self) -> dict[str, Identity]:
        return {i.did: i for i in await self.datastore.fetch_identities()}

    def declared_children(self, parent_did: str, identities: dict[str, Identity]) -> list[str]:
        """Children named by relationship edges, then by the children's own parent_did.

        Duplicates are dropped, keeping the first occurrence.
        """
        children: list[str] = []
        seen: set[str] = set()
        for edge in self.datastore.relationships_by_parent(parent_did):
            if edge.child_did not in seen:
                seen.add(edge.child_did)
                children.append(edge.child_did)
        for identity in identities.values():
            if identity.parent_did == parent_did and identity.did not in seen:
                seen.add(identity.did)
                children.append(identity.did)
        return children

    async def check_hierarchy(self, parent_did: str) -> HierarchyReport:
        """Validate that parent_did is a main product whose children all exist as components."""
        identities = await self._identity_map()
        parent = identities.get(parent_did)
        if parent is None:
            return HierarchyReport(valid=False, issues=[f"Identity {parent_did} not found"])

        issues: list[str] = []
        if parent.category != IdentityCategory.MAIN:
            issues.append(f"Identity {parent_did} is not a main type")

        for child_did in self.declared_children(parent_did, identities):
            child = identities.get(child_did)
            if child is None:
                issues.append(f"Child {child_did} not found")
            elif child.category != IdentityCategory.COMPONENT:
                issues.append(f"Child {child_did} is not a component type")

        if issues:
            logger.debug(f"Hierarchy of {parent_did} has {len(issues)} issue(s)")
        return HierarchyReport(valid=not issues, issues=issues)

    def has_parent(self, identity: Identity) -> bool:
        """Whether a component references a parent, directly or via an edge."""
        return bool(identity.parent_did) or bool(self.datastore.relationships_by_child(identity.did))

    async def check_integrity(self, did: str) -> HierarchyReport:
        """Basic record integrity: DID syntax, owner present, components have a parent."""
        identity = (await self._identity_map()).get(did)
        if identity is None:
            return HierarchyReport(valid=False, issues=[f"Identity {did} not found"])

        issues = []
        if not is_valid_did(identity.did):
            issues.append("Invalid DID format")
        if not identity.owner:
            issues.append("Missing owner")
        if identity.category == IdentityCategory.COMPONENT and not self.has_parent(identity):
            issues.append("Component DPP must have a parent")
        return HierarchyReport(valid=not issues, issues=issues)

    async def find_orphans(self) -> list[Identity]:
        """Components without any parent reference."""
        return [
            identity
            for identity in (await self._identity_map()).values()
            if identity.category == IdentityCategory.COMPONENT and not self.has_parent(identity)
        ]
