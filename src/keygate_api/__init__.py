"""keygate API: workspace-scoped RBAC for keys, roles and permissions."""
