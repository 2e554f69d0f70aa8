"""
Manage Azure App Service web apps through Azure Resource Manager or a private control plane.
"""
