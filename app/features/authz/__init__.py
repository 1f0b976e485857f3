"""
Authorization feature module.

Decides whether an authenticated actor may perform an action on a protected
resource: role model, grant matrix, compliance overrides, and the guards that
apply those decisions to HTTP requests and client navigation.
"""
