"""Error taxonomy shared by the cook and ranking cores.

Routers never build error bodies by hand; the handler registered in
``main.py`` renders every ``WeeknightError`` as ``{ok: false, message, code}``.
"""


class WeeknightError(Exception):
    status_code = 500
    code = "internal"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class InvalidInput(WeeknightError):
    """Missing or malformed request field. The caller must fix the request."""
    status_code = 400
    code = "invalid_input"


class NotFound(WeeknightError):
    """Referenced entity does not exist (or was already reaped)."""
    status_code = 404
    code = "not_found"


class InternalError(WeeknightError):
    status_code = 500
    code = "internal"
