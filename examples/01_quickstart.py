#!/usr/bin/env python3
"""Example: Quickstart for site-permissions

Minimal working example: load a permission document, check a few actions
for a site admin, then list what the user can reach.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install site-permissions
"""
from __future__ import annotations

import logging

import site_permissions as perms

_DOCUMENT = """
version: "1.1.0"
updatedAt: "2025-01-01T00:00:00Z"
permissions:
  site_admin:
    users: [create, read, update]
    tasks: [read]
    groups:
      sites: [read, update]
      schools: [create, read, update, delete]
      classes: [create, read, update, delete]
      cohorts: [read]
  research_assistant:
    users: [read]
"""


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print(f"site-permissions version: {perms.__version__}")

    # Step 1: Build a service with a cache and a logging sink
    config = perms.ConfigLoader().load_string("logging_mode: baseline\n")
    service = perms.PermissionService.from_config(config, sink=perms.LoggingEventSink())

    # Step 2: Load the document
    result = service.load_permissions(perms.DocumentLoader().load_string(_DOCUMENT))
    print(f"Loaded: {result.success} (version {service.get_version()})")
    for warning in result.warnings:
        print(f"  warning: {warning}")

    user = perms.User(
        uid="sa-1",
        roles=[perms.UserRole("north", "site_admin"), perms.UserRole("south", "research_assistant")],
    )

    # Step 3: Single checks
    checks = [
        ("north", "users", "update", None),
        ("north", "groups", "delete", "schools"),
        ("north", "groups", "delete", None),
        ("south", "users", "update", None),
    ]
    print("\nChecks:")
    for site_id, resource, action, sub_resource in checks:
        allowed = service.can_perform_site_action(user, site_id, resource, action, sub_resource)
        target = f"{resource}:{sub_resource}" if sub_resource else resource
        print(f"  [{'ALLOW' if allowed else 'DENY'}] {action} {target} at {site_id}")

    # Step 4: Listing and bulk
    print(f"\nReadable resources at north: {service.get_accessible_resources(user, 'north', 'read')}")
    print(f"Sites where user is admin+: {service.get_sites_with_min_role(user, 'admin')}")
    bulk = service.bulk_permission_check(
        user,
        "north",
        [perms.PermissionCheck("tasks", "read"), perms.PermissionCheck("groups", "update", "cohorts")],
    )
    for entry in bulk:
        print(f"  bulk {entry.resource}:{entry.sub_resource or '-'} {entry.action} -> {entry.allowed}")

    print(f"\nCache: {service.get_cache_stats()}")
    service.close()


if __name__ == "__main__":
    main()
