"""
Authentication feature module.

Login, registration and logout. Issues bearer tokens through the AuthGateway
with the permission set granted to the user's role.
"""
