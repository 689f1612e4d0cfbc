"""Error taxonomy shared by the CRUD layer, the statistics engine and the API."""


class Unauthenticated(Exception):
    """No acting user; callers must not display data and should send the client to login."""


class Forbidden(Exception):
    """The acting user may not touch the requested record."""


class NotFound(ValueError):
    pass


class ReferentialIntegrityError(ValueError):
    """A write would leave a dangling or cross-user reference."""


class LastAdminDeletion(ValueError):
    """Removing or demoting the only remaining admin."""
