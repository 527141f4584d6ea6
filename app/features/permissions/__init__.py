"""
Permission resolution feature module.

Decides which menus a user may use inside an organization by merging
organization-scoped role grants, per-user overrides and the admin bypass.
"""
